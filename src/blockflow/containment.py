"""
Container detection and sizing.

find_container_target() picks the container a dragged block would be
dropped into. resize_containers() grows or shrinks containers so that
each one encloses its children plus padding.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Optional
import numpy as np

from .geom import Point
from .model import (
    Block,
    BlockKind,
    Mutation,
    PositionUpdate,
    SizeUpdate,
    CONTAINER_MIN_WIDTH,
    CONTAINER_MIN_HEIGHT,
)
from .rectangle import Rectangle
from .hierarchy import absolute_position, ancestors, children, depth, is_ancestor_of


CONTAINER_PADDING = 50
SIZE_EPSILON = 0.5


def block_bounds(blocks: Mapping[str, Block], block_id: str) -> Rectangle:
    """Absolute bounding box of a block."""
    w, h = blocks[block_id].footprint()
    return Rectangle.from_origin(absolute_position(blocks, block_id), w, h)


def _edges_array(rects: list[Rectangle]) -> np.ndarray:
    """Stack rectangles into an (n, 4) array of [x, X, y, Y] rows."""
    return np.array([[r.x, r.X, r.y, r.Y] for r in rects], dtype=float).reshape(-1, 4)


def find_container_target(
    blocks: Mapping[str, Block],
    dragged_id: str,
    bounds: Optional[Rectangle] = None
) -> Optional[str]:
    """
    Find the best container to drop a dragged block into.

    Candidates are containers other than the dragged block, its current
    parent and its descendants. Among candidates whose absolute box
    intersects the dragged box, the deepest wins and ties go to the
    smaller area. Starter blocks never get a target.

    Args:
        blocks: Block collection
        dragged_id: Block being dragged
        bounds: Current absolute box of the dragged block; defaults to the
            box at its stored position

    Returns:
        Container id, or None if no container applies
    """
    dragged = blocks.get(dragged_id)
    if dragged is None or dragged.kind == BlockKind.starter:
        return None
    if bounds is None:
        bounds = block_bounds(blocks, dragged_id)

    candidates = [
        cid for cid, b in blocks.items()
        if b.is_container
        and cid != dragged_id
        and cid != dragged.parent_id
        and not is_ancestor_of(blocks, dragged_id, cid)
    ]
    if not candidates:
        return None

    rects = _edges_array([block_bounds(blocks, cid) for cid in candidates])
    hit = (
        (rects[:, 0] < bounds.X) & (rects[:, 1] > bounds.x)
        & (rects[:, 2] < bounds.Y) & (rects[:, 3] > bounds.y)
    )
    idx = np.flatnonzero(hit)
    if idx.size == 0:
        return None

    depths = np.array([depth(blocks, candidates[i]) for i in idx], dtype=float)
    areas = (rects[idx, 1] - rects[idx, 0]) * (rects[idx, 3] - rects[idx, 2])
    # np.lexsort treats the last key as primary
    order = np.lexsort((idx, areas, -depths))
    best = candidates[int(idx[order[0]])]

    # Dropping into an enclosing container is not a reparent target
    if best in ancestors(blocks, dragged_id):
        return None
    return best


def containers_to_resize(blocks: Mapping[str, Block], start_ids: Iterable[Optional[str]]) -> list[str]:
    """
    Expand container ids with every ancestor container up the chain.

    Args:
        blocks: Block collection
        start_ids: Container ids (None entries are ignored)

    Returns:
        Unique container ids, deepest first
    """
    found: dict[str, None] = {}
    for cid in start_ids:
        if cid is None or cid not in blocks:
            continue
        for c in [cid] + ancestors(blocks, cid):
            if blocks[c].is_container:
                found[c] = None
    return sorted(found, key=lambda c: -depth(blocks, c))


def children_extent(blocks: Mapping[str, Block], container_id: str) -> Rectangle:
    """Union of a container's direct children, in the container's frame."""
    extent = Rectangle.empty()
    for k in children(blocks, container_id):
        extent = extent.union(Rectangle.from_origin(blocks[k].position, *blocks[k].footprint()))
    return extent


def encloses_children(blocks: Mapping[str, Block], container_id: str, padding: float) -> bool:
    """True when every direct child sits padding or more inside the container."""
    extent = children_extent(blocks, container_id)
    if extent.is_empty():
        return True
    frame = Rectangle.from_origin(Point(0, 0), *blocks[container_id].footprint())
    return frame.contains(extent.inflate(padding))


def fit_container(
    blocks: Mapping[str, Block],
    container_id: str,
    padding: float,
    moved: dict[str, Point],
    resized: dict[str, tuple[float, float]],
    allow_shift: bool = True
) -> None:
    """
    Fit one container around its direct children, in place.

    Updates the blocks in the mapping and records every changed position in
    moved and every changed size in resized. With allow_shift False the
    container only grows right and down.
    """
    container = blocks[container_id]
    kids = children(blocks, container_id)
    extent = children_extent(blocks, container_id)
    if extent.is_empty():
        return

    dx = max(0.0, padding - extent.x) if allow_shift else 0.0
    dy = max(0.0, padding - extent.y) if allow_shift else 0.0
    if dx > 0 or dy > 0:
        container.position = Point(container.position.x - dx, container.position.y - dy)
        moved[container_id] = container.position.copy()
        for k in kids:
            kid = blocks[k]
            kid.position = Point(kid.position.x + dx, kid.position.y + dy)
            moved[k] = kid.position.copy()

    width = max(float(CONTAINER_MIN_WIDTH), extent.X + dx + padding)
    height = max(float(CONTAINER_MIN_HEIGHT), extent.Y + dy + padding)
    current_w, current_h = container.footprint()
    if abs(current_w - width) > SIZE_EPSILON or abs(current_h - height) > SIZE_EPSILON:
        container.width = width
        container.height = height
        resized[container_id] = (width, height)


def resize_containers(
    blocks: Mapping[str, Block],
    container_ids: Optional[Iterable[str]] = None,
    padding: float = CONTAINER_PADDING
) -> Mutation:
    """
    Size containers to enclose their children plus padding.

    Containers are processed deepest first so a nested container's new size
    feeds into its parent. When a child sits closer than padding to the
    container's top or left edge, the container origin moves up/left and its
    children move down/right by the same amount, leaving every child's
    absolute position unchanged. Empty containers keep their size.

    Args:
        blocks: Block collection (not modified)
        container_ids: Containers to resize (ancestors are added); all
            containers if None
        padding: Margin kept around the children

    Returns:
        Mutation with SizeUpdate and PositionUpdate records
    """
    work = {bid: b.copy() for bid, b in blocks.items()}
    if container_ids is None:
        targets = containers_to_resize(work, [bid for bid, b in work.items() if b.is_container])
    else:
        targets = containers_to_resize(work, container_ids)

    moved: dict[str, Point] = {}
    resized: dict[str, tuple[float, float]] = {}
    for cid in targets:
        fit_container(work, cid, padding, moved, resized)

    m = Mutation()
    m.moved = [PositionUpdate(bid, p) for bid, p in moved.items()]
    m.resized = [SizeUpdate(bid, w, h) for bid, (w, h) in resized.items()]
    return m
