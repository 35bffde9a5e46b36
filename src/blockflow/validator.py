"""
Connection legality.

can_connect() is a pure predicate over a graph and a proposed edge. It
returns a ConnectionResult rather than raising: rejection is an expected
outcome the caller acts on by not creating the edge.

Edges normally join blocks that share a parent. Container pseudo-handles
are the exception: a container's start handle reaches into the container,
and its end handle leads out of it (from the container itself, or from one
of its direct children).
"""

from __future__ import annotations

from typing import Optional

from .model import (
    Block,
    BlockKind,
    Edge,
    EdgeContainment,
    Graph,
    HandleRole,
    parse_container_handle,
)
from .hierarchy import is_ancestor_of


UNKNOWN_BLOCK = 'unknown block'
SELF_LOOP = 'self-loop'
STARTER_TARGET = 'starter cannot be a target'
DUPLICATE = 'duplicate'
CROSSES_BOUNDARY = 'crosses container boundary'

NOT_A_CONTAINER = 'target is not a container'
STARTER_NESTING = 'starter cannot be nested'
CIRCULAR_NESTING = 'circular nesting'


class ConnectionResult:
    """
    Verdict on a proposed edge or drop.

    Evaluates truthy when the proposal is accepted.

    Attributes:
        ok: Whether the proposal is legal
        reason: Why it was rejected (None when ok)
        containment: Containment metadata to attach to an accepted edge
    """

    def __init__(
        self,
        ok: bool,
        reason: Optional[str] = None,
        containment: Optional[EdgeContainment] = None
    ):
        self.ok = ok
        self.reason = reason
        self.containment = containment

    def __bool__(self) -> bool:
        return self.ok

    def __repr__(self) -> str:
        if self.ok:
            return f"ConnectionResult(ok=True, containment={self.containment!r})"
        return f"ConnectionResult(ok=False, reason={self.reason!r})"

    @classmethod
    def accept(cls, containment: Optional[EdgeContainment] = None) -> ConnectionResult:
        return cls(True, None, containment)

    @classmethod
    def reject(cls, reason: str) -> ConnectionResult:
        return cls(False, reason)


def _parent_of(graph: Graph, block: Block) -> Optional[str]:
    """Parent id, treating a reference to a missing block as top level."""
    if block.parent_id is not None and block.parent_id in graph.blocks:
        return block.parent_id
    return None


def handle_owner(graph: Graph, source: Block, handle: Optional[str]) -> Optional[tuple[Block, HandleRole]]:
    """
    Resolve the container a pseudo-handle belongs to.

    A container pseudo-handle on the source names either the source itself
    (when it is a container of that kind) or the source's parent (when the
    source is a direct child of such a container).

    Returns:
        (container, role), or None for ordinary handles
    """
    parsed = parse_container_handle(handle)
    if parsed is None:
        return None
    kind, role = parsed
    if source.kind == kind:
        return source, role
    parent = graph.block(_parent_of(graph, source))
    if parent is not None and parent.kind == kind:
        return parent, role
    return None


def edge_context(graph: Graph, edge: Edge) -> ConnectionResult:
    """
    Check the parent context of an edge whose endpoints exist.

    Ignores duplicates and the starter/self-loop rules; can_connect()
    layers those on top.
    """
    source = graph.blocks[edge.source]
    target = graph.blocks[edge.target]
    target_parent = _parent_of(graph, target)
    owned = handle_owner(graph, source, edge.source_handle)

    if owned is None:
        context = _parent_of(graph, source)
        if context != target_parent:
            return ConnectionResult.reject(CROSSES_BOUNDARY)
    else:
        owner, role = owned
        if role == HandleRole.start:
            context = owner.id
            if target_parent != owner.id:
                return ConnectionResult.reject(CROSSES_BOUNDARY)
        else:
            # end handles join the container's inside to its outside
            context = _parent_of(graph, source)
            if target_parent not in (owner.id, _parent_of(graph, owner)):
                return ConnectionResult.reject(CROSSES_BOUNDARY)

    parent_id = context if context is not None else target_parent
    return ConnectionResult.accept(EdgeContainment(parent_id, parent_id is not None))


def can_connect(graph: Graph, edge: Edge) -> ConnectionResult:
    """
    Decide whether a proposed edge may be created.

    Rejects, in order: unknown endpoints, self-loops, starter targets,
    duplicates of an existing connection (an edge with the same id does not
    count, so existing edges can be re-validated) and edges crossing a
    container boundary outside the pseudo-handle rules.

    Args:
        graph: Current graph
        edge: Proposed edge

    Returns:
        ConnectionResult; on acceptance it carries the containment metadata
        the new edge should be created with
    """
    if edge.source not in graph.blocks or edge.target not in graph.blocks:
        return ConnectionResult.reject(UNKNOWN_BLOCK)
    if edge.source == edge.target:
        return ConnectionResult.reject(SELF_LOOP)
    if graph.blocks[edge.target].kind == BlockKind.starter:
        return ConnectionResult.reject(STARTER_TARGET)
    for e in graph.edges:
        if e.id != edge.id and e.same_connection(edge):
            return ConnectionResult.reject(DUPLICATE)
    return edge_context(graph, edge)


def can_nest(graph: Graph, block_id: str, target_id: Optional[str]) -> ConnectionResult:
    """
    Decide whether a block may be dropped into target_id (None for top level).
    """
    block = graph.block(block_id)
    if block is None or (target_id is not None and target_id not in graph.blocks):
        return ConnectionResult.reject(UNKNOWN_BLOCK)
    if block.kind == BlockKind.starter:
        return ConnectionResult.reject(STARTER_NESTING)
    if target_id is None:
        return ConnectionResult.accept()
    if not graph.blocks[target_id].is_container:
        return ConnectionResult.reject(NOT_A_CONTAINER)
    if target_id == block_id or is_ancestor_of(graph.blocks, block_id, target_id):
        return ConnectionResult.reject(CIRCULAR_NESTING)
    return ConnectionResult.accept()
