"""
Topology edits on an owned workflow graph.

Every TopologyMutator operation computes a Mutation, merges it into the
graph it was created with and returns it, so collaborators can forward the
same diff to persistence or to other participants. Operations naming ids
that no longer exist (for instance after a concurrent remote delete) return
an empty Mutation instead of failing.

Also provides the read-only helpers the editor builds its affordances on:
find_terminals(), placeholders_for() and find_closest_block().
"""

from __future__ import annotations

from typing import Iterable, Optional
import logging
import uuid

from .geom import Point, midpoint
from .model import (
    Block,
    BlockKind,
    Edge,
    Graph,
    HandleRole,
    Mutation,
    ParentUpdate,
    Placeholder,
    TopologyError,
    SOURCE_HANDLE,
    TARGET_HANDLE,
    end_handle,
    is_reserved_id,
)
from .hierarchy import absolute_position, descendants, to_relative
from .containment import CONTAINER_PADDING, resize_containers
from .layered import NODE_SEPARATION, RANK_SEPARATION
from .scheduler import PreservedPositions
from .validator import ConnectionResult, can_connect, can_nest, handle_owner

logger = logging.getLogger(__name__)


CHILD_POLICIES = ('delete', 'reparent')


def default_handle(block: Block) -> str:
    """
    Output handle a new connection leaves block from.

    Conditions use their first branch, containers their end pseudo-handle.
    """
    if block.kind == BlockKind.condition and block.branches:
        return block.branches[0]
    if block.is_container:
        return end_handle(block.kind)
    return SOURCE_HANDLE


def output_handles(block: Block) -> list[str]:
    if block.kind == BlockKind.condition and block.branches:
        return list(block.branches)
    return [default_handle(block)]


def find_terminals(graph: Graph) -> list[tuple[str, str]]:
    """
    Find the output handles an append affordance should hang off.

    A terminal is an output handle with no outgoing edge on an enabled,
    non-starter block. Condition blocks contribute one entry per unconnected
    branch; containers contribute their end handle.

    Returns:
        (block id, handle) pairs in graph order
    """
    found: list[tuple[str, str]] = []
    for bid, b in graph.blocks.items():
        if not b.enabled or b.kind == BlockKind.starter:
            continue
        for handle in output_handles(b):
            if not graph.outgoing(bid, handle):
                found.append((bid, handle))
    return found


def placeholders_for(graph: Graph, rank_separation: float = RANK_SEPARATION) -> list[Placeholder]:
    """Append affordances below every terminal, in the terminal's own group."""
    result: list[Placeholder] = []
    for bid, handle in find_terminals(graph):
        b = graph.blocks[bid]
        _, h = b.footprint()
        parent = b.parent_id if b.parent_id in graph.blocks else None
        result.append(Placeholder(
            f"plus-{bid}-{handle}",
            bid,
            handle,
            parent,
            Point(b.position.x, b.position.y + h + rank_separation)
        ))
    return result


def find_closest_block(graph: Graph, point: Point, exclude: Iterable[str] = ()) -> Optional[str]:
    """
    Nearest enabled block to an absolute point, by top-left distance.

    Ties go to the block earliest in the graph.
    """
    skip = set(exclude)
    best: Optional[str] = None
    best_distance = float('inf')
    for bid, b in graph.blocks.items():
        if bid in skip or not b.enabled:
            continue
        d = absolute_position(graph.blocks, bid).distance_to(point)
        if d < best_distance:
            best, best_distance = bid, d
    return best


def _overlay(graph: Graph, blocks: Iterable[Block] = (), removed_edges: Iterable[str] = ()) -> Graph:
    """Shallow what-if view of graph with extra blocks and without some edges."""
    view = Graph()
    view.blocks = dict(graph.blocks)
    for b in blocks:
        view.blocks[b.id] = b
    dropped = set(removed_edges)
    view.edges = [e for e in graph.edges if e.id not in dropped]
    return view


class TopologyMutator:
    """
    Applies structural edits to one graph.

    Args:
        graph: Graph the mutator edits in place
        settle: Optional PreservedPositions; freshly placed blocks are marked
            in it so the next layout pass leaves them alone
        container_padding: Margin containers keep around their children
        node_separation: Horizontal offset between sibling branches
        rank_separation: Vertical gap between a block and one appended below
    """

    def __init__(
        self,
        graph: Graph,
        settle: Optional[PreservedPositions] = None,
        container_padding: float = CONTAINER_PADDING,
        node_separation: float = NODE_SEPARATION,
        rank_separation: float = RANK_SEPARATION
    ):
        self.graph = graph
        self.settle = settle
        self.container_padding = container_padding
        self.node_separation = node_separation
        self.rank_separation = rank_separation

    def _commit(self, m: Mutation) -> Mutation:
        if not m.is_empty():
            self.graph.apply(m)
        return m

    def _preserve(self, block_id: str) -> None:
        if self.settle is not None:
            self.settle.mark(block_id)

    def _parent_of(self, block: Block) -> Optional[str]:
        pid = block.parent_id
        return pid if pid is not None and pid in self.graph.blocks else None

    def _resize(self, container_ids: Iterable[Optional[str]]) -> Mutation:
        ids = [cid for cid in container_ids if cid is not None]
        if not ids:
            return Mutation()
        return resize_containers(self.graph.blocks, ids, self.container_padding)

    def _new_block(
        self,
        kind: BlockKind,
        parent_id: Optional[str],
        position: Point,
        block_id: Optional[str],
        options: dict
    ) -> Block:
        block_id = block_id if block_id is not None else str(uuid.uuid4())
        if is_reserved_id(block_id):
            raise TopologyError(f"block id {block_id!r} uses a reserved prefix")
        if block_id in self.graph.blocks:
            raise TopologyError(f"block {block_id!r} already exists")
        if BlockKind(kind) == BlockKind.starter:
            raise TopologyError("starter blocks can only be added at top level with add_block()")
        return Block(block_id, kind, position, parent_id=parent_id, **options)

    def _invalid_edges(self, graph: Graph, block_ids: Iterable[str]) -> list[str]:
        """Ids of edges touching block_ids that no longer validate in graph."""
        ids = set(block_ids)
        stale: list[str] = []
        for e in graph.edges:
            if e.source in ids or e.target in ids:
                if not can_connect(graph, e):
                    stale.append(e.id)
        return stale

    def add_block(self, block: Block) -> Mutation:
        """
        Add a block from the palette or a load.

        Raises:
            TopologyError: If the id is taken or reserved, a starter has a
                parent, or the parent is not an existing container
        """
        if is_reserved_id(block.id):
            raise TopologyError(f"block id {block.id!r} uses a reserved prefix")
        if block.id in self.graph.blocks:
            raise TopologyError(f"block {block.id!r} already exists")
        if block.parent_id is not None:
            if block.kind == BlockKind.starter:
                raise TopologyError("starter blocks cannot have a parent")
            parent = self.graph.block(block.parent_id)
            if parent is None or not parent.is_container:
                raise TopologyError(f"parent {block.parent_id!r} is not a container")

        m = Mutation()
        m.added_blocks.append(block)
        self._commit(m)
        return m.extend(self._commit(self._resize([block.parent_id])))

    def _attach(
        self,
        source_id: str,
        handle: Optional[str],
        kind: BlockKind,
        block_id: Optional[str],
        require_terminal: bool,
        options: dict
    ) -> Mutation:
        source = self.graph.block(source_id)
        if source is None:
            return Mutation()
        handle = handle if handle is not None else default_handle(source)
        existing = self.graph.outgoing(source_id, handle)
        if require_terminal and existing:
            raise TopologyError(f"handle {handle!r} of block {source_id!r} is already connected")

        owned = handle_owner(self.graph, source, handle)
        if owned is not None and owned[1] == HandleRole.start:
            container = owned[0]
            parent_id = container.id
            x = self.container_padding
            y = self.container_padding
        else:
            anchor = owned[0] if owned is not None else source
            parent_id = self._parent_of(anchor)
            _, h = anchor.footprint()
            x = anchor.position.x
            y = anchor.position.y + h + self.rank_separation

        block = self._new_block(kind, parent_id, Point(x, y), block_id, options)
        if existing:
            w, _ = block.footprint()
            block.position = Point(x + len(existing) * (w + self.node_separation), y)
        edge = Edge(source_id, block.id, handle, TARGET_HANDLE)
        verdict = can_connect(_overlay(self.graph, [block]), edge)
        if not verdict:
            raise TopologyError(f"cannot connect {source_id!r}:{handle} to a new block: {verdict.reason}")
        edge.containment = verdict.containment

        m = Mutation()
        m.added_blocks.append(block)
        m.added_edges.append(edge)
        self._commit(m)
        m.extend(self._commit(self._resize([parent_id])))
        self._preserve(block.id)
        logger.debug("attached %s below %s via %s", block.id, source_id, handle)
        return m

    def append_after_terminal(
        self,
        source_id: str,
        kind: BlockKind = BlockKind.regular,
        handle: Optional[str] = None,
        block_id: Optional[str] = None,
        **options
    ) -> Mutation:
        """
        Create a block below a terminal handle and connect it.

        Args:
            source_id: Block to append after
            kind: Kind of the new block
            handle: Source handle; defaults to the block's default output
                (first branch for conditions, end handle for containers).
                A container start handle places the new block inside the
                container instead.
            block_id: Id for the new block; generated if None
            **options: Extra Block fields (width, height, wide, name, ...)

        Returns:
            Mutation adding one block and one edge (plus container resizes)

        Raises:
            TopologyError: If the handle already has an outgoing edge
        """
        return self._attach(source_id, handle, kind, block_id, True, options)

    def branch_from_node(
        self,
        source_id: str,
        kind: BlockKind = BlockKind.regular,
        handle: Optional[str] = None,
        block_id: Optional[str] = None,
        **options
    ) -> Mutation:
        """
        Fan a handle out to one more downstream block.

        Existing edges from the handle are kept; the new block is offset to
        the right of the siblings already hanging off it.
        """
        return self._attach(source_id, handle, kind, block_id, False, options)

    def insert_between_edge(
        self,
        edge_id: str,
        kind: BlockKind = BlockKind.regular,
        block_id: Optional[str] = None,
        **options
    ) -> Mutation:
        """
        Split an edge S->T with a new block.

        The new block lands at the midpoint of S and T's absolute positions,
        inside the target's parent. S->new keeps the original source
        handle and new->T keeps the original target handle.

        Returns:
            Mutation removing one edge and adding one block and two edges
        """
        edge = self.graph.edge(edge_id)
        if edge is None or edge.source not in self.graph.blocks or edge.target not in self.graph.blocks:
            return Mutation()

        parent_id = self._parent_of(self.graph.blocks[edge.target])
        middle = midpoint(
            absolute_position(self.graph.blocks, edge.source),
            absolute_position(self.graph.blocks, edge.target)
        )
        block = self._new_block(kind, parent_id, to_relative(self.graph.blocks, middle, parent_id), block_id, options)

        view = _overlay(self.graph, [block], [edge.id])
        head = Edge(edge.source, block.id, edge.source_handle, TARGET_HANDLE)
        tail = Edge(block.id, edge.target, default_handle(block), edge.target_handle)
        for e in (head, tail):
            verdict = can_connect(view, e)
            if not verdict:
                raise TopologyError(f"cannot split edge {edge_id!r}: {verdict.reason}")
            e.containment = verdict.containment

        m = Mutation()
        m.removed_edges.append(edge.id)
        m.added_blocks.append(block)
        m.added_edges.extend([head, tail])
        self._commit(m)
        m.extend(self._commit(self._resize([parent_id])))
        self._preserve(block.id)
        logger.debug("inserted %s into edge %s", block.id, edge_id)
        return m

    def reparent_on_drop(self, block_id: str, target_id: Optional[str]) -> Mutation:
        """
        Move a dropped block into target_id (None for top level).

        The block's absolute position is unchanged by the move. Edges
        touching it that no longer validate are removed, and every container
        on the old and new parent chains is resized.

        Returns:
            Mutation with the ParentUpdate, removed edges and resizes; empty
            if the drop is refused or changes nothing
        """
        block = self.graph.block(block_id)
        if block is None or (target_id is not None and target_id not in self.graph.blocks):
            return Mutation()
        old_parent = self._parent_of(block)
        if target_id == old_parent and block.parent_id == old_parent:
            return Mutation()

        verdict = can_nest(self.graph, block_id, target_id)
        if not verdict:
            logger.info("refusing to move %s into %s: %s", block_id, target_id, verdict.reason)
            return Mutation()

        absolute = absolute_position(self.graph.blocks, block_id)
        m = Mutation()
        m.reparented.append(ParentUpdate(block_id, target_id, to_relative(self.graph.blocks, absolute, target_id)))
        self._commit(m)

        stale = self._invalid_edges(self.graph, [block_id])
        if stale:
            logger.info("removing %d edges of %s that cross its new boundary", len(stale), block_id)
            m.extend(self._commit(self._edges_removed(stale)))

        m.extend(self._commit(self._resize([old_parent, target_id])))
        return m

    def _edges_removed(self, edge_ids: Iterable[str]) -> Mutation:
        m = Mutation()
        m.removed_edges.extend(edge_ids)
        return m

    def connect(
        self,
        source_id: str,
        target_id: str,
        source_handle: str = SOURCE_HANDLE,
        target_handle: str = TARGET_HANDLE,
        edge_id: Optional[str] = None
    ) -> tuple[ConnectionResult, Mutation]:
        """
        Validate and create an edge.

        Returns:
            (verdict, mutation); the mutation is empty when the verdict
            rejects the edge
        """
        edge = Edge(source_id, target_id, source_handle, target_handle, id=edge_id)
        verdict = can_connect(self.graph, edge)
        if not verdict:
            logger.debug("rejected edge %s -> %s: %s", source_id, target_id, verdict.reason)
            return verdict, Mutation()
        edge.containment = verdict.containment
        m = Mutation()
        m.added_edges.append(edge)
        return verdict, self._commit(m)

    def remove_edge(self, edge_id: str) -> Mutation:
        if self.graph.edge(edge_id) is None:
            return Mutation()
        return self._commit(self._edges_removed([edge_id]))

    def remove_block(self, block_id: str, children: str = 'delete') -> Mutation:
        """
        Delete a block and every edge touching it.

        Args:
            block_id: Block to delete
            children: 'delete' removes every descendant too; 'reparent' moves
                the direct children to the deleted block's parent, keeping
                their absolute positions

        Returns:
            Mutation describing the removal
        """
        if children not in CHILD_POLICIES:
            raise ValueError(f"children must be one of {CHILD_POLICIES}, got {children!r}")
        block = self.graph.block(block_id)
        if block is None:
            return Mutation()

        grandparent = self._parent_of(block)
        m = Mutation()
        if children == 'delete':
            doomed = [block_id] + descendants(self.graph.blocks, block_id)
        else:
            doomed = [block_id]
            for cid in descendants(self.graph.blocks, block_id):
                child = self.graph.blocks[cid]
                if child.parent_id != block_id:
                    continue
                absolute = absolute_position(self.graph.blocks, cid)
                m.reparented.append(
                    ParentUpdate(cid, grandparent, to_relative(self.graph.blocks, absolute, grandparent))
                )

        gone = set(doomed)
        m.removed_blocks.extend(doomed)
        m.removed_edges.extend(e.id for e in self.graph.edges if e.source in gone or e.target in gone)
        self._commit(m)

        stale = self._invalid_edges(self.graph, [u.id for u in m.reparented])
        if stale:
            m.extend(self._commit(self._edges_removed(stale)))
        m.extend(self._commit(self._resize([grandparent])))
        logger.debug("removed %d blocks starting at %s", len(doomed), block_id)
        return m
