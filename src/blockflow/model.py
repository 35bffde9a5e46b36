"""
Workflow graph data model.

This module defines the records the engine reads and proposes updates to:
- Blocks (steps, conditions, containers and the starter)
- Edges between named handles on blocks
- The owned Graph collection and Mutation diffs applied to it
- Intrinsic block footprints and reserved affordance ids
"""

from __future__ import annotations

from typing import Iterable, NamedTuple, Optional, Union
from enum import Enum
import copy
import logging
import math
import uuid
import warnings

from .geom import Point

logger = logging.getLogger(__name__)


# Intrinsic footprints
BLOCK_WIDTH = 320
WIDE_BLOCK_WIDTH = 480
BLOCK_HEIGHT = 120
CONTAINER_MIN_WIDTH = 500
CONTAINER_MIN_HEIGHT = 300

# Default handle ids
SOURCE_HANDLE = 'source'
TARGET_HANDLE = 'target'

# Ids used by transient affordances; never valid for persisted blocks
RESERVED_PREFIXES = ('plus-', 'edge-plus-')


class TopologyError(ValueError):
    """Raised when a caller asks for an edit whose preconditions do not hold."""


class MalformedBlockWarning(UserWarning):
    """A block carries an unusable footprint; a default was substituted."""


class BlockKind(str, Enum):
    """Kinds of workflow blocks."""
    starter = 'starter'
    regular = 'regular'
    condition = 'condition'
    loop = 'loop'
    parallel = 'parallel'

    @property
    def is_container(self) -> bool:
        return self in (BlockKind.loop, BlockKind.parallel)


class HandleRole(str, Enum):
    start = 'start'
    end = 'end'


def start_handle(kind: BlockKind) -> str:
    """Pseudo-handle connecting a container to the first blocks inside it."""
    return f"{BlockKind(kind).value}-start-source"


def end_handle(kind: BlockKind) -> str:
    """Pseudo-handle connecting a container to whatever follows it."""
    return f"{BlockKind(kind).value}-end-source"


def parse_container_handle(handle: Optional[str]) -> Optional[tuple[BlockKind, HandleRole]]:
    """
    Decode a container pseudo-handle.

    Args:
        handle: Handle id such as 'loop-start-source'

    Returns:
        (container kind, role) or None if handle is not a container pseudo-handle
    """
    if not handle or not handle.endswith('-source'):
        return None
    parts = handle[:-len('-source')].rsplit('-', 1)
    if len(parts) != 2:
        return None
    kind_name, role_name = parts
    try:
        kind = BlockKind(kind_name)
        role = HandleRole(role_name)
    except ValueError:
        return None
    if not kind.is_container:
        return None
    return kind, role


def is_reserved_id(block_id: str) -> bool:
    return block_id.startswith(RESERVED_PREFIXES)


def _valid_dimension(value) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value > 0
    )


class Block:
    """
    A node in the workflow graph.

    Attributes:
        id: Unique identifier
        kind: Block kind
        position: Top-left corner, relative to the parent container's origin
            when parent_id is set, otherwise relative to the canvas origin
        width: Width; authoritative and auto-maintained for containers
        height: Height; authoritative and auto-maintained for containers
        parent_id: Enclosing container id, or None at top level
        enabled: Disabled blocks still take part in layout and containment
        branches: Ordered outgoing branch handles (condition blocks only)
        wide: Wide blocks use the wide intrinsic width
        name: Display name
    """

    def __init__(
        self,
        id: str,
        kind: Union[BlockKind, str] = BlockKind.regular,
        position: Optional[Point] = None,
        width: Optional[float] = None,
        height: Optional[float] = None,
        parent_id: Optional[str] = None,
        enabled: bool = True,
        branches: Optional[list[str]] = None,
        wide: bool = False,
        name: Optional[str] = None
    ):
        self.id = id
        self.kind = BlockKind(kind)
        self.position = position.copy() if position is not None else Point()
        self.width = width
        self.height = height
        self.parent_id = parent_id
        self.enabled = enabled
        self.branches: list[str] = list(branches) if branches else []
        self.wide = wide
        self.name = name if name is not None else id

    def __repr__(self) -> str:
        return (
            f"Block({self.id!r}, {self.kind.value}, position={self.position!r}, "
            f"parent_id={self.parent_id!r})"
        )

    @property
    def is_container(self) -> bool:
        return self.kind.is_container

    def intrinsic_size(self) -> tuple[float, float]:
        """Default footprint for this block's kind."""
        if self.is_container:
            return float(CONTAINER_MIN_WIDTH), float(CONTAINER_MIN_HEIGHT)
        return float(WIDE_BLOCK_WIDTH if self.wide else BLOCK_WIDTH), float(BLOCK_HEIGHT)

    def footprint(self) -> tuple[float, float]:
        """
        Width and height used for layout and geometry.

        Missing dimensions fall back to the intrinsic size. Unusable values
        (non-numeric, non-finite or non-positive) are reported with a
        MalformedBlockWarning and replaced by the intrinsic size.
        """
        default_w, default_h = self.intrinsic_size()
        w = default_w if self.width is None else self.width
        h = default_h if self.height is None else self.height
        if not _valid_dimension(w) or not _valid_dimension(h):
            warnings.warn(
                f"block {self.id!r} has malformed size {self.width!r}x{self.height!r}; "
                f"using {default_w}x{default_h}",
                MalformedBlockWarning,
                stacklevel=2
            )
            return default_w, default_h
        return float(w), float(h)

    def copy(self) -> Block:
        return copy.deepcopy(self)


class Placeholder:
    """
    Transient "append" affordance shown below a terminal block handle.

    Placeholders are never stored in a Graph. The layout pass gives them an
    enlarged footprint so they get breathing room, and reports their
    positions separately from block updates.

    Attributes:
        id: Affordance id, always carrying a reserved prefix
        source_id: Terminal block the affordance hangs off
        handle: Source handle a new block would be connected from
        parent_id: Group the affordance is laid out in
        position: Parent-relative top-left position
    """

    def __init__(
        self,
        id: str,
        source_id: str,
        handle: str = SOURCE_HANDLE,
        parent_id: Optional[str] = None,
        position: Optional[Point] = None
    ):
        if not is_reserved_id(id):
            raise ValueError(f"placeholder id {id!r} must start with one of {RESERVED_PREFIXES}")
        self.id = id
        self.source_id = source_id
        self.handle = handle
        self.parent_id = parent_id
        self.position = position.copy() if position is not None else Point()

    def __repr__(self) -> str:
        return f"Placeholder({self.id!r}, source={self.source_id!r}, handle={self.handle!r})"


class EdgeContainment(NamedTuple):
    """Containment context derived for an edge when it is created."""
    parent_id: Optional[str]
    inside_container: bool


class Edge:
    """
    Directed connection between two block handles.

    Attributes:
        id: Unique identifier
        source: Source block id
        target: Target block id
        source_handle: Output handle on the source block
        target_handle: Input handle on the target block
        containment: Derived containment metadata, set on creation
    """

    def __init__(
        self,
        source: str,
        target: str,
        source_handle: str = SOURCE_HANDLE,
        target_handle: str = TARGET_HANDLE,
        id: Optional[str] = None,
        containment: Optional[EdgeContainment] = None
    ):
        self.id = id if id is not None else str(uuid.uuid4())
        self.source = source
        self.target = target
        self.source_handle = source_handle
        self.target_handle = target_handle
        self.containment = containment

    def __repr__(self) -> str:
        return (
            f"Edge({self.source!r}:{self.source_handle} -> "
            f"{self.target!r}:{self.target_handle}, id={self.id!r})"
        )

    def same_connection(self, other: Edge) -> bool:
        """True if both edges join the same handles of the same blocks."""
        return (
            self.source == other.source
            and self.target == other.target
            and self.source_handle == other.source_handle
            and self.target_handle == other.target_handle
        )

    def copy(self) -> Edge:
        return Edge(
            self.source,
            self.target,
            self.source_handle,
            self.target_handle,
            id=self.id,
            containment=self.containment
        )


class PositionUpdate(NamedTuple):
    id: str
    position: Point


class SizeUpdate(NamedTuple):
    id: str
    width: float
    height: float


class ParentUpdate(NamedTuple):
    """New parent and the parent-relative position that keeps the block in place."""
    id: str
    parent_id: Optional[str]
    position: Point


class Mutation:
    """
    Diff produced by an engine operation.

    Collaborators merge it into the owned collection with Graph.apply().
    """

    def __init__(self):
        self.added_blocks: list[Block] = []
        self.removed_blocks: list[str] = []
        self.added_edges: list[Edge] = []
        self.removed_edges: list[str] = []
        self.moved: list[PositionUpdate] = []
        self.resized: list[SizeUpdate] = []
        self.reparented: list[ParentUpdate] = []

    def __repr__(self) -> str:
        return (
            f"Mutation(+blocks={[b.id for b in self.added_blocks]}, "
            f"-blocks={self.removed_blocks}, +edges={[e.id for e in self.added_edges]}, "
            f"-edges={self.removed_edges}, moved={len(self.moved)}, "
            f"resized={len(self.resized)}, reparented={len(self.reparented)})"
        )

    def is_empty(self) -> bool:
        return not (
            self.added_blocks or self.removed_blocks or self.added_edges
            or self.removed_edges or self.moved or self.resized or self.reparented
        )

    def extend(self, other: Mutation) -> Mutation:
        """Append another mutation's records to this one."""
        self.added_blocks.extend(other.added_blocks)
        self.removed_blocks.extend(other.removed_blocks)
        self.added_edges.extend(other.added_edges)
        self.removed_edges.extend(other.removed_edges)
        self.moved.extend(other.moved)
        self.resized.extend(other.resized)
        self.reparented.extend(other.reparented)
        return self


class Graph:
    """
    Owned, mutable collection of blocks and edges.

    Blocks keep insertion order, which the layout engine uses as its stable
    tie-breaker.
    """

    def __init__(
        self,
        blocks: Optional[Iterable[Block]] = None,
        edges: Optional[Iterable[Edge]] = None
    ):
        self.blocks: dict[str, Block] = {}
        self.edges: list[Edge] = []
        for b in blocks or []:
            self.add_block(b)
        for e in edges or []:
            self.edges.append(e)

    def __len__(self) -> int:
        return len(self.blocks)

    def block(self, block_id: Optional[str]) -> Optional[Block]:
        if block_id is None:
            return None
        return self.blocks.get(block_id)

    def edge(self, edge_id: str) -> Optional[Edge]:
        for e in self.edges:
            if e.id == edge_id:
                return e
        return None

    def add_block(self, block: Block) -> None:
        if block.id in self.blocks:
            raise TopologyError(f"block {block.id!r} already exists")
        self.blocks[block.id] = block

    def outgoing(self, block_id: str, handle: Optional[str] = None) -> list[Edge]:
        """Edges leaving block_id, optionally restricted to one source handle."""
        return [
            e for e in self.edges
            if e.source == block_id and (handle is None or e.source_handle == handle)
        ]

    def incoming(self, block_id: str) -> list[Edge]:
        return [e for e in self.edges if e.target == block_id]

    def incident(self, block_id: str) -> list[Edge]:
        return [e for e in self.edges if e.source == block_id or e.target == block_id]

    def snapshot(self) -> Graph:
        """Deep copy, suitable as an immutable-per-call input."""
        g = Graph()
        for b in self.blocks.values():
            g.blocks[b.id] = b.copy()
        g.edges = [e.copy() for e in self.edges]
        return g

    def apply(self, mutation: Mutation) -> None:
        """
        Merge a mutation into this collection.

        Later records win over earlier state field by field. Records that name
        blocks or edges no longer present are ignored.
        """
        removed_edges = set(mutation.removed_edges)
        removed_blocks = set(mutation.removed_blocks)
        if removed_blocks:
            self.edges = [
                e for e in self.edges
                if e.source not in removed_blocks and e.target not in removed_blocks
            ]
        if removed_edges:
            self.edges = [e for e in self.edges if e.id not in removed_edges]
        for block_id in mutation.removed_blocks:
            self.blocks.pop(block_id, None)

        for b in mutation.added_blocks:
            self.blocks[b.id] = b

        for e in mutation.added_edges:
            if e.source not in self.blocks or e.target not in self.blocks:
                logger.debug("dropping edge %s with a missing endpoint", e.id)
                continue
            self.edges = [x for x in self.edges if x.id != e.id]
            self.edges.append(e)

        for u in mutation.reparented:
            b = self.blocks.get(u.id)
            if b is not None:
                b.parent_id = u.parent_id
                b.position = u.position.copy()

        for u in mutation.moved:
            b = self.blocks.get(u.id)
            if b is not None:
                b.position = u.position.copy()

        for u in mutation.resized:
            b = self.blocks.get(u.id)
            if b is not None:
                b.width = u.width
                b.height = u.height


def purge_reserved(graph: Graph) -> Mutation:
    """
    Remove blocks whose ids use a reserved affordance prefix.

    Such entries are transient placeholders that leaked into the owned
    collection. Edges touching them are removed too.

    Args:
        graph: Graph to clean; modified in place

    Returns:
        Mutation describing what was removed
    """
    m = Mutation()
    for block_id in list(graph.blocks):
        if is_reserved_id(block_id):
            logger.warning("removing reserved affordance id %r from the graph", block_id)
            m.removed_blocks.append(block_id)
    for e in graph.edges:
        if is_reserved_id(e.source) or is_reserved_id(e.target):
            m.removed_edges.append(e.id)
    if not m.is_empty():
        graph.apply(m)
    return m
