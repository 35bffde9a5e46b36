"""
Drag-to-nest session.

A DragSession follows one block through a drag:

    idle -> dragging(block, candidate) -> committed | reverted -> idle

The caller feeds it absolute position samples with move(). Each sample
re-queries the containment detector; when the candidate container changes
the session fires a leave event for the old candidate and an enter event
for the new one, so the caller can clear and draw drop affordances. Nothing
is written to the graph: drop() reports the outcome and the caller hands a
committed target to the topology mutator.
"""

from __future__ import annotations

from typing import Callable, NamedTuple, Optional, TypedDict, Union
from enum import Enum, IntEnum
import logging

from .geom import Point
from .model import BlockKind, Graph
from .rectangle import Rectangle
from .hierarchy import absolute_position, ancestors
from .containment import block_bounds, find_container_target

logger = logging.getLogger(__name__)


class DragState(str, Enum):
    idle = 'idle'
    dragging = 'dragging'
    committed = 'committed'
    reverted = 'reverted'


class DragEventType(IntEnum):
    """
    - enter: a container became the drop candidate
    - leave: the previous candidate stopped being one
    - commit: the drop moves the block to a new parent
    - revert: the drop leaves the block's parent unchanged
    """
    enter = 0
    leave = 1
    commit = 2
    revert = 3


class DragEvent(TypedDict, total=False):
    type: DragEventType
    block: str
    target: Optional[str]


class DragOutcome(NamedTuple):
    """
    Result of a drop.

    Attributes:
        state: DragState.committed or DragState.reverted
        block_id: Dragged block
        target_id: New parent for a committed drop (None for top level)
        position: Last absolute position sample
    """
    state: DragState
    block_id: str
    target_id: Optional[str]
    position: Optional[Point]


class DragSession:
    """State machine for one drag at a time over a graph."""

    def __init__(self, graph: Graph):
        self.graph = graph
        self.state = DragState.idle
        self.block_id: Optional[str] = None
        self.candidate: Optional[str] = None
        self.position: Optional[Point] = None
        self.event: Optional[dict] = None

    def on(self, e: Union[DragEventType, str], listener: Callable[[DragEvent], None]) -> DragSession:
        """Subscribe a listener to a drag event; returns self for chaining."""
        if self.event is None:
            self.event = {}
        if isinstance(e, str):
            self.event[DragEventType[e]] = listener
        else:
            self.event[e] = listener
        return self

    def trigger(self, e: DragEvent) -> None:
        if self.event and e['type'] in self.event:
            self.event[e['type']](e)

    def begin(self, block_id: str) -> DragState:
        """
        Start dragging block_id.

        Raises:
            RuntimeError: If another drag is in progress
            KeyError: If block_id is not in the graph
        """
        if self.state == DragState.dragging:
            raise RuntimeError(f"already dragging {self.block_id!r}")
        if block_id not in self.graph.blocks:
            raise KeyError(block_id)
        self.state = DragState.dragging
        self.block_id = block_id
        self.candidate = None
        self.position = absolute_position(self.graph.blocks, block_id)
        return self.state

    def _bounds(self) -> Rectangle:
        w, h = self.graph.blocks[self.block_id].footprint()
        return Rectangle.from_origin(self.position, w, h)

    def _set_candidate(self, candidate: Optional[str]) -> None:
        if candidate == self.candidate:
            return
        if self.candidate is not None:
            self.trigger({'type': DragEventType.leave, 'block': self.block_id, 'target': self.candidate})
        self.candidate = candidate
        if candidate is not None:
            self.trigger({'type': DragEventType.enter, 'block': self.block_id, 'target': candidate})

    def move(self, position: Point) -> Optional[str]:
        """
        Feed an absolute top-left position sample.

        Returns:
            The current drop candidate, or None
        """
        if self.state != DragState.dragging:
            raise RuntimeError("move() outside of a drag")
        self.position = position.copy()
        if self.block_id not in self.graph.blocks:
            # deleted by a collaborator mid-drag
            self._set_candidate(None)
            return None
        self._set_candidate(find_container_target(self.graph.blocks, self.block_id, self._bounds()))
        return self.candidate

    def _exit_target(self) -> Optional[str]:
        """
        Parent for a drop without candidate: the nearest enclosing container
        the block still overlaps, or the top level.
        """
        bounds = self._bounds()
        for cid in ancestors(self.graph.blocks, self.block_id):
            if block_bounds(self.graph.blocks, cid).intersects(bounds):
                return cid
        return None

    def drop(self) -> DragOutcome:
        """
        End the drag.

        A drop onto a candidate commits to it. A drop without candidate
        commits to the nearest enclosing container the block still overlaps
        (or the top level) when that differs from the current parent, and
        reverts otherwise. Starter blocks always revert.
        """
        if self.state != DragState.dragging:
            raise RuntimeError("drop() outside of a drag")
        block = self.graph.block(self.block_id)

        target: Optional[str] = None
        committed = False
        if block is None:
            logger.debug("dragged block %s vanished before the drop", self.block_id)
        elif block.kind == BlockKind.starter:
            logger.debug("starter %s cannot be nested", self.block_id)
        elif self.candidate is not None:
            target, committed = self.candidate, True
        else:
            target = self._exit_target()
            current = block.parent_id if block.parent_id in self.graph.blocks else None
            committed = target != current

        self._set_candidate(None)
        self.state = DragState.committed if committed else DragState.reverted
        outcome = DragOutcome(self.state, self.block_id, target if committed else None, self.position)
        self.trigger({
            'type': DragEventType.commit if committed else DragEventType.revert,
            'block': self.block_id,
            'target': outcome.target_id
        })
        return outcome

    def reset(self) -> DragState:
        """Return to idle after a drop, or abandon a drag as reverted."""
        if self.state == DragState.dragging:
            self._set_candidate(None)
            self.trigger({'type': DragEventType.revert, 'block': self.block_id, 'target': None})
        self.state = DragState.idle
        self.block_id = None
        self.candidate = None
        self.position = None
        return self.state
