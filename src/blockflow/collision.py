"""
Residual overlap removal for layered positions.

Nodes are bucketed into horizontal bands by y (a stand-in for rank, since
containers of irregular height keep ranks from lining up in pixels). Within
a band, nodes are walked left to right and each one is pushed right until
it clears its left neighbour plus padding. Nodes are never pushed left and
there is no second pass, so resolving one overlap cannot fling a node
across the canvas.
"""

from __future__ import annotations

from typing import Iterable, Mapping
from sortedcontainers import SortedList

from .geom import Point
from .model import PositionUpdate


COLLISION_PADDING = 20
BAND_TOLERANCE = 100
WRITE_THRESHOLD = 1.0


def group_bands(positions: Mapping[str, Point], tolerance: float = BAND_TOLERANCE) -> list[list[str]]:
    """
    Bucket node ids into horizontal bands.

    Nodes are visited top to bottom. A node joins the earliest band whose
    first member lies strictly within tolerance of its y, otherwise it
    starts a new band.

    Args:
        positions: Node id to top-left position
        tolerance: Largest y distance to a band's first member

    Returns:
        Bands in creation order, each a list of node ids
    """
    ordered = sorted(positions, key=lambda nid: positions[nid].y)
    # Band anchors are created in increasing y, so anchor index == band index
    anchors: SortedList = SortedList()
    bands: list[list[str]] = []

    for nid in ordered:
        y = positions[nid].y
        i = anchors.bisect_right(y - tolerance)
        if i < len(anchors) and abs(y - anchors[i]) < tolerance:
            bands[i].append(nid)
        else:
            anchors.add(y)
            bands.append([nid])

    return bands


def resolve_collisions(
    positions: Mapping[str, Point],
    widths: Mapping[str, float],
    padding: float = COLLISION_PADDING,
    tolerance: float = BAND_TOLERANCE,
    exclude: Iterable[str] = ()
) -> dict[str, Point]:
    """
    Push overlapping same-band nodes apart horizontally.

    Args:
        positions: Candidate top-left positions
        widths: Node widths
        padding: Gap to keep between neighbours in a band
        tolerance: Band tolerance passed to group_bands()
        exclude: Ids left out of collision accounting (placeholders);
            their positions are returned unchanged

    Returns:
        New mapping of every input id to its resolved position
    """
    excluded = set(exclude)
    resolved = {nid: p.copy() for nid, p in positions.items()}
    real = {nid: p for nid, p in positions.items() if nid not in excluded}

    for band in group_bands(real, tolerance):
        if len(band) <= 1:
            continue

        band.sort(key=lambda nid: resolved[nid].x)
        for prev, curr in zip(band, band[1:]):
            prev_right = resolved[prev].x + widths[prev]
            if prev_right + padding > resolved[curr].x:
                resolved[curr] = Point(prev_right + padding, resolved[curr].y)

    return resolved


def position_updates(
    current: Mapping[str, Point],
    proposed: Mapping[str, Point],
    preserved: Iterable[str] = (),
    threshold: float = WRITE_THRESHOLD
) -> list[PositionUpdate]:
    """
    Select the proposed positions worth writing back.

    Preserved ids, ids missing from current and moves of at most threshold
    on both axes are skipped.

    Args:
        current: Stored positions
        proposed: Positions produced by the layout pass
        preserved: Ids whose stored position must not be overwritten
        threshold: Per-axis movement that counts as no change

    Returns:
        PositionUpdate records in proposed order
    """
    keep = set(preserved)
    updates: list[PositionUpdate] = []
    for nid, p in proposed.items():
        if nid in keep or nid not in current:
            continue
        if not current[nid].close_to(p, threshold):
            updates.append(PositionUpdate(nid, p.copy()))
    return updates
