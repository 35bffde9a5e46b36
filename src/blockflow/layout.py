"""
Hierarchical auto-layout of a workflow graph.

This module implements the Layout class which provides:
- Layered placement of every group of sibling blocks
- Bottom-up container sizing, so a container encloses its sub-layout
- Same-band collision removal
- Preserve-position support for freshly inserted blocks
- Enlarged footprints for transient append placeholders
- Write-back filtering of imperceptible moves
- Event system (start/tick/end events)
"""

from __future__ import annotations

from typing import Callable, Iterable, Optional, TypedDict, Union
from enum import IntEnum
import logging

from .geom import Point
from .model import Graph, Block, Mutation, Placeholder, PositionUpdate, SizeUpdate
from .hierarchy import ancestors, depth
from .containment import CONTAINER_PADDING, SIZE_EPSILON, encloses_children, fit_container
from .layered import LayoutNode, layout_group, NODE_SEPARATION, RANK_SEPARATION
from .collision import (
    resolve_collisions,
    position_updates,
    COLLISION_PADDING,
    BAND_TOLERANCE,
    WRITE_THRESHOLD,
)

logger = logging.getLogger(__name__)


MARGIN_X = 50
MARGIN_Y = 0
PLACEHOLDER_SIZE = 300


class EventType(IntEnum):
    """
    A layout pass fires three kinds of events:
    - start: the pass began
    - tick: one group of siblings (a container, or the top level) was placed
    - end: the pass finished; updates are ready to write back
    """
    start = 0
    tick = 1
    end = 2


class Event(TypedDict, total=False):
    """Event dictionary passed to event listeners."""
    type: EventType
    group: Optional[str]
    nodes: int
    updates: int


class LayoutResult:
    """
    Outcome of one layout pass.

    Attributes:
        positions: Final parent-relative position of every block
        ranks: Rank of every block and placeholder within its group
        updates: Position writes to apply (never for preserved blocks)
        resized: Container size writes to apply
        placeholders: Parent-relative position of every placeholder
    """

    def __init__(self):
        self.positions: dict[str, Point] = {}
        self.ranks: dict[str, int] = {}
        self.updates: list[PositionUpdate] = []
        self.resized: list[SizeUpdate] = []
        self.placeholders: dict[str, Point] = {}

    def is_settled(self) -> bool:
        """True when the pass would write nothing."""
        return not self.updates and not self.resized

    def as_mutation(self) -> Mutation:
        m = Mutation()
        m.moved = list(self.updates)
        m.resized = list(self.resized)
        return m


def _group_of(blocks: dict[str, Block], block_id: str) -> Optional[str]:
    """Group a block is laid out in: its existing parent, else the top level."""
    pid = blocks[block_id].parent_id
    return pid if pid is not None and pid in blocks else None


def _representative(blocks: dict[str, Block], block_id: str, group: Optional[str]) -> Optional[str]:
    """The block itself or the ancestor of it that is a member of group."""
    for bid in [block_id] + ancestors(blocks, block_id):
        if _group_of(blocks, bid) == group:
            return bid
    return None


class Layout:
    """
    Main interface to the hierarchical layout.

    Configuration uses fluent accessors: calling one without an argument
    returns the current value, calling it with an argument sets the value
    and returns the layout for chaining.
    """

    def __init__(self):
        """Initialize layout with default parameters."""
        self._node_separation: float = NODE_SEPARATION
        self._rank_separation: float = RANK_SEPARATION
        self._margin: tuple[float, float] = (MARGIN_X, MARGIN_Y)
        self._collision_padding: float = COLLISION_PADDING
        self._band_tolerance: float = BAND_TOLERANCE
        self._container_padding: float = CONTAINER_PADDING
        self._placeholder_size: float = PLACEHOLDER_SIZE
        self._write_threshold: float = WRITE_THRESHOLD

        # Event system - can be overridden by subclasses
        self.event: Optional[dict] = None

    def on(self, e: Union[EventType, str], listener: Callable[[Event], None]) -> Layout:
        """
        Subscribe a listener to an event.

        Args:
            e: Event type (EventType enum or string name)
            listener: Function to call when event fires

        Returns:
            self for method chaining
        """
        if self.event is None:
            self.event = {}

        if isinstance(e, str):
            self.event[EventType[e]] = listener
        else:
            self.event[e] = listener

        return self

    def trigger(self, e: Event) -> None:
        """
        Trigger an event by calling registered listeners.

        Subclasses can override this method to replace with a more
        sophisticated eventing mechanism.
        """
        if self.event and e['type'] in self.event:
            self.event[e['type']](e)

    def node_separation(self, v: Optional[float] = None) -> Union[float, Layout]:
        """Get or set the horizontal gap between neighbours in a rank."""
        if v is None:
            return self._node_separation
        self._node_separation = float(v)
        return self

    def rank_separation(self, v: Optional[float] = None) -> Union[float, Layout]:
        """Get or set the vertical gap between ranks."""
        if v is None:
            return self._rank_separation
        self._rank_separation = float(v)
        return self

    def margin(self, v: Optional[tuple[float, float]] = None) -> Union[tuple[float, float], Layout]:
        """Get or set the (x, y) margin around the top-level drawing."""
        if v is None:
            return self._margin
        self._margin = (float(v[0]), float(v[1]))
        return self

    def collision_padding(self, v: Optional[float] = None) -> Union[float, Layout]:
        """Get or set the gap the collision pass keeps between band neighbours."""
        if v is None:
            return self._collision_padding
        self._collision_padding = float(v)
        return self

    def band_tolerance(self, v: Optional[float] = None) -> Union[float, Layout]:
        """
        Get or set the y distance under which two nodes share a band.

        Bands approximate ranks in pixels; see blockflow.collision.
        """
        if v is None:
            return self._band_tolerance
        self._band_tolerance = float(v)
        return self

    def container_padding(self, v: Optional[float] = None) -> Union[float, Layout]:
        """Get or set the margin kept inside containers around their children."""
        if v is None:
            return self._container_padding
        self._container_padding = float(v)
        return self

    def placeholder_size(self, v: Optional[float] = None) -> Union[float, Layout]:
        """Get or set the square footprint reserved for append placeholders."""
        if v is None:
            return self._placeholder_size
        self._placeholder_size = float(v)
        return self

    def write_threshold(self, v: Optional[float] = None) -> Union[float, Layout]:
        """Get or set the per-axis move below which positions are not written back."""
        if v is None:
            return self._write_threshold
        self._write_threshold = float(v)
        return self

    def start(
        self,
        graph: Graph,
        preserved: Iterable[str] = (),
        placeholders: Iterable[Placeholder] = ()
    ) -> LayoutResult:
        """
        Run one full layout pass.

        Groups are processed deepest container first and the top level last.
        Each group is placed in layers, cleaned of same-band overlaps, and,
        for containers, the container is sized to enclose the result before
        its own group is placed. Edges crossing container boundaries are
        attributed to the outermost blocks inside each group.

        Args:
            graph: Graph to lay out (not modified)
            preserved: Block ids whose stored position must survive this pass;
                they still occupy space for everybody else. A preserved block
                inside its container's padding is moved with the container
                frame so the container keeps enclosing it
            placeholders: Append affordances to make room for

        Returns:
            LayoutResult with the updates to write back
        """
        keep = {bid for bid in preserved if bid in graph.blocks}
        work = {bid: b.copy() for bid, b in graph.blocks.items()}
        order = {bid: i for i, bid in enumerate(work)}
        pending = [p for p in placeholders if p.source_id in work]
        released: set[str] = set()
        result = LayoutResult()

        self.trigger({'type': EventType.start, 'group': None, 'nodes': len(work)})

        groups: dict[Optional[str], list[str]] = {None: []}
        for bid in work:
            groups.setdefault(_group_of(work, bid), []).append(bid)
        group_order = sorted(
            (g for g in groups if g is not None),
            key=lambda g: (-depth(work, g), order[g])
        )
        group_order.append(None)

        for group in group_order:
            self._place_group(work, graph, group, groups.get(group, []), pending, keep, released, order, result)

        current = {bid: b.position for bid, b in graph.blocks.items()}
        proposed = {bid: work[bid].position for bid in work if bid not in keep or bid in released}
        result.positions = {bid: b.position.copy() for bid, b in work.items()}
        result.updates = position_updates(current, proposed, keep - released, self._write_threshold)

        for bid, b in work.items():
            if not b.is_container:
                continue
            w, h = b.footprint()
            old_w, old_h = graph.blocks[bid].footprint()
            if abs(w - old_w) > SIZE_EPSILON or abs(h - old_h) > SIZE_EPSILON:
                result.resized.append(SizeUpdate(bid, w, h))

        logger.debug(
            "layout pass over %d blocks in %d groups: %d moves, %d resizes",
            len(work), len(group_order), len(result.updates), len(result.resized)
        )
        self.trigger({
            'type': EventType.end,
            'group': None,
            'nodes': len(work),
            'updates': len(result.updates) + len(result.resized)
        })
        return result

    def _place_group(
        self,
        work: dict[str, Block],
        graph: Graph,
        group: Optional[str],
        members: list[str],
        placeholders: list[Placeholder],
        keep: set[str],
        released: set[str],
        order: dict[str, int],
        result: LayoutResult
    ) -> None:
        """Place one group of siblings and fit its container."""
        nodes: list[LayoutNode] = []
        widths: dict[str, float] = {}
        for bid in members:
            w, h = work[bid].footprint()
            nodes.append(LayoutNode(bid, w, h, order[bid]))
            widths[bid] = w

        links: list[tuple[str, str]] = []
        for e in graph.edges:
            if e.source not in work or e.target not in work:
                continue
            s = _representative(work, e.source, group)
            t = _representative(work, e.target, group)
            if s is not None and t is not None and s != t:
                links.append((s, t))

        ghost_ids: list[str] = []
        for i, p in enumerate(placeholders):
            if p.parent_id != group:
                continue
            size = self._placeholder_size
            nodes.append(LayoutNode(p.id, size, size, len(order) + i, placeholder=True))
            widths[p.id] = size
            ghost_ids.append(p.id)
            s = _representative(work, p.source_id, group)
            if s is not None:
                links.append((s, p.id))

        if not nodes:
            return

        if group is None:
            margin_x, margin_y = self._margin
        else:
            margin_x = margin_y = self._container_padding
        layout_group(nodes, links, self._node_separation, self._rank_separation, margin_x, margin_y)

        candidates: dict[str, Point] = {}
        for n in nodes:
            result.ranks[n.id] = n.rank
            if n.id in keep:
                candidates[n.id] = work[n.id].position.copy()
            else:
                candidates[n.id] = Point(n.x, n.y)

        resolved = resolve_collisions(
            candidates,
            widths,
            self._collision_padding,
            self._band_tolerance,
            exclude=ghost_ids
        )
        for nid, p in resolved.items():
            if nid in ghost_ids:
                result.placeholders[nid] = p
            elif nid not in keep:
                work[nid].position = p

        if group is not None and work[group].is_container:
            fit_container(work, group, self._container_padding, {}, {}, allow_shift=False)
            if not encloses_children(work, group, self._container_padding):
                # a preserved child sits in the top or left padding: shift the
                # frame and release the moved preserved blocks for write-back
                shifted: dict[str, Point] = {}
                fit_container(work, group, self._container_padding, shifted, {})
                released.update(bid for bid in shifted if bid in keep)

        self.trigger({'type': EventType.tick, 'group': group, 'nodes': len(nodes)})
