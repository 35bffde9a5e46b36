"""
Canvas facade.

A Canvas owns one Graph and wires the engine together: edits go through
the topology mutator, every change pokes the layout debouncer, freshly
placed blocks are protected by the settle window, drags run through a
DragSession, and the host drives time with tick().
"""

from __future__ import annotations

from typing import Callable, Optional
import logging
import time

from .geom import Point
from .model import Block, BlockKind, Graph, Mutation, PositionUpdate, purge_reserved
from .rectangle import Rectangle
from .hierarchy import absolute_position, repair_hierarchy, to_relative
from .containment import block_bounds, resize_containers
from .layout import Layout, LayoutResult
from .mutator import TopologyMutator, default_handle, find_closest_block, placeholders_for
from .drag import DragOutcome, DragSession, DragState
from .scheduler import Debouncer, PreservedPositions, DEBOUNCE_DELAY, SETTLE_WINDOW

logger = logging.getLogger(__name__)


class Canvas:
    """
    Live editing surface over one workflow graph.

    Args:
        graph: Graph to own; cleaned on load (reserved ids purged, broken
            parent links repaired)
        layout: Configured Layout; a default one if None
        clock: Time source shared by the debouncer and the settle window
        debounce: Quiet period before an automatic layout pass
        settle: Settle window protecting freshly placed blocks
        show_placeholders: Reserve room for append affordances in layout
    """

    def __init__(
        self,
        graph: Optional[Graph] = None,
        layout: Optional[Layout] = None,
        clock: Callable[[], float] = time.monotonic,
        debounce: float = DEBOUNCE_DELAY,
        settle: float = SETTLE_WINDOW,
        show_placeholders: bool = False
    ):
        self.graph = graph if graph is not None else Graph()
        self.layout = layout if layout is not None else Layout()
        self.clock = clock
        self.debouncer = Debouncer(debounce, clock)
        self.preserved = PreservedPositions(settle, clock)
        self.show_placeholders = show_placeholders
        self.mutator = TopologyMutator(
            self.graph,
            settle=self.preserved,
            container_padding=self.layout.container_padding(),
            node_separation=self.layout.node_separation(),
            rank_separation=self.layout.rank_separation()
        )
        self.drag = DragSession(self.graph)
        self.last_layout: Optional[LayoutResult] = None
        self.load_repairs = self.clean()

    def clean(self) -> Mutation:
        """Purge reserved ids and repair broken parent links."""
        m = purge_reserved(self.graph)
        repairs = repair_hierarchy(self.graph.blocks)
        if not repairs.is_empty():
            logger.warning("repaired %d blocks with broken parent links", len(repairs.reparented))
            self.graph.apply(repairs)
            m.extend(repairs)
        return m

    def _changed(self, m: Mutation) -> Mutation:
        if not m.is_empty():
            self.debouncer.poke()
        return m

    def add_block(self, block: Block, auto_connect: bool = True) -> Mutation:
        """
        Add a block, optionally wiring it from the nearest existing block.

        Auto-connect never applies to starters and silently skips
        connections the validator refuses.
        """
        m = self.mutator.add_block(block)
        if auto_connect and block.kind != BlockKind.starter:
            origin = absolute_position(self.graph.blocks, block.id)
            closest = find_closest_block(self.graph, origin, exclude=[block.id])
            if closest is not None:
                source = self.graph.blocks[closest]
                verdict, wired = self.mutator.connect(closest, block.id, default_handle(source))
                if verdict:
                    m.extend(wired)
        return self._changed(m)

    def append_after(self, source_id: str, kind: BlockKind = BlockKind.regular, **kwargs) -> Mutation:
        return self._changed(self.mutator.append_after_terminal(source_id, kind, **kwargs))

    def insert_between(self, edge_id: str, kind: BlockKind = BlockKind.regular, **kwargs) -> Mutation:
        return self._changed(self.mutator.insert_between_edge(edge_id, kind, **kwargs))

    def branch_from(self, source_id: str, kind: BlockKind = BlockKind.regular, **kwargs) -> Mutation:
        return self._changed(self.mutator.branch_from_node(source_id, kind, **kwargs))

    def connect(self, source_id: str, target_id: str, **kwargs):
        verdict, m = self.mutator.connect(source_id, target_id, **kwargs)
        self._changed(m)
        return verdict, m

    def remove_edge(self, edge_id: str) -> Mutation:
        return self._changed(self.mutator.remove_edge(edge_id))

    def remove_block(self, block_id: str, children: str = 'delete') -> Mutation:
        m = self.mutator.remove_block(block_id, children)
        self.preserved.discard(block_id)
        return self._changed(m)

    def begin_drag(self, block_id: str) -> DragState:
        return self.drag.begin(block_id)

    def drag_to(self, position: Point) -> Optional[str]:
        """Move the dragged block to an absolute position sample."""
        return self.drag.move(position)

    def _starter_over_container(self, block: Block, position: Point) -> bool:
        if block.kind != BlockKind.starter:
            return False
        box = Rectangle.from_origin(position, *block.footprint())
        return any(
            b.is_container and block_bounds(self.graph.blocks, cid).intersects(box)
            for cid, b in self.graph.blocks.items()
        )

    def drop(self) -> tuple[DragOutcome, Mutation]:
        """
        Finish the current drag.

        The block is first moved to the last sample (within its current
        parent). A committed drop is then handed to the mutator, which
        refits both container chains; otherwise the current chain is
        refitted here. A starter dropped over a container snaps back to
        where it was.
        """
        outcome = self.drag.drop()
        m = Mutation()
        block = self.graph.block(outcome.block_id)
        if block is not None and outcome.position is not None and not self._starter_over_container(block, outcome.position):
            relative = to_relative(self.graph.blocks, outcome.position, block.parent_id)
            m.moved.append(PositionUpdate(block.id, relative))
            self.graph.apply(m)
        if outcome.state == DragState.committed:
            m.extend(self.mutator.reparent_on_drop(outcome.block_id, outcome.target_id))
        elif block is not None:
            resized = resize_containers(self.graph.blocks, [block.parent_id], self.layout.container_padding())
            self.graph.apply(resized)
            m.extend(resized)
        self.drag.reset()
        return outcome, self._changed(m)

    def apply_remote(self, mutation: Mutation) -> Mutation:
        """
        Merge a collaborator's mutation, last writer wins per field.

        Records naming unknown ids are ignored. Parent links broken by the
        merge (for instance a container deleted remotely) are repaired.

        Returns:
            The repairs applied on top of the remote mutation
        """
        self.graph.apply(mutation)
        repairs = self.clean()
        self.debouncer.poke()
        return repairs

    def run_layout(self, now: Optional[float] = None) -> LayoutResult:
        """Run one layout pass now and write its updates back."""
        placeholders = placeholders_for(self.graph, self.layout.rank_separation()) if self.show_placeholders else ()
        preserved = self.preserved.active(now)
        result = self.layout.start(self.graph, preserved=preserved, placeholders=placeholders)
        self.graph.apply(result.as_mutation())
        self.preserved.note_pass(preserved)
        self.last_layout = result
        return result

    def tick(self, now: Optional[float] = None) -> Optional[LayoutResult]:
        """
        Advance time: expire settle flags and run a layout pass if the
        debounce period has elapsed.

        Returns:
            The LayoutResult if a pass ran, else None
        """
        self.preserved.expire(now)
        if not self.debouncer.fire(now):
            return None
        return self.run_layout(now)
