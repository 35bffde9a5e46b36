"""
Parent/child hierarchy queries.

Blocks store positions relative to their parent container. These helpers
walk parent chains to answer absolute positions, ancestor lists, nesting
depth and ancestor checks. Every walk is bounded: a missing parent ends the
walk as if the block were top level, and a cycle (or a chain deeper than
MAX_DEPTH) aborts it and treats the starting block as top level. Both
anomalies are reported as warnings rather than raised.
"""

from __future__ import annotations

from typing import Mapping, Optional
import warnings

from .geom import Point
from .model import Block, BlockKind, Mutation, ParentUpdate


MAX_DEPTH = 100

_OK = 'ok'
_ORPHAN = 'orphan'
_CYCLE = 'cycle'


class HierarchyWarning(UserWarning):
    """Base class for anomalies found while walking parent chains."""


class OrphanedBlockWarning(HierarchyWarning):
    """A block references a parent that does not exist."""


class ContainmentCycleWarning(HierarchyWarning):
    """A parent chain loops back on itself or exceeds MAX_DEPTH."""


def _parent_chain(blocks: Mapping[str, Block], node_id: str) -> tuple[list[str], str]:
    """
    Collect ancestor ids of node_id, nearest first.

    Returns:
        (ancestors, status) where status is one of _OK, _ORPHAN, _CYCLE
    """
    current = blocks[node_id]
    chain: list[str] = []
    seen = {node_id}

    while current.parent_id is not None:
        pid = current.parent_id
        parent = blocks.get(pid)
        if parent is None:
            warnings.warn(
                f"block {current.id!r} references missing parent {pid!r}",
                OrphanedBlockWarning,
                stacklevel=3
            )
            return chain, _ORPHAN
        if pid in seen or len(chain) >= MAX_DEPTH:
            warnings.warn(
                f"containment chain of block {node_id!r} does not terminate "
                f"(stopped at {pid!r} after {len(chain)} levels)",
                ContainmentCycleWarning,
                stacklevel=3
            )
            return [], _CYCLE
        chain.append(pid)
        seen.add(pid)
        current = parent

    return chain, _OK


def ancestors(blocks: Mapping[str, Block], node_id: str) -> list[str]:
    """
    Ancestor ids of a block, nearest first.

    Args:
        blocks: Block collection
        node_id: Block to start from

    Returns:
        List of container ids; empty for top-level blocks

    Raises:
        KeyError: If node_id is not in blocks
    """
    return _parent_chain(blocks, node_id)[0]


def depth(blocks: Mapping[str, Block], node_id: str) -> int:
    """Nesting depth; 0 for top-level blocks."""
    return len(ancestors(blocks, node_id))


def is_ancestor_of(blocks: Mapping[str, Block], candidate: str, node_id: str) -> bool:
    """
    Check whether candidate encloses node_id at any depth.

    A block is never its own ancestor.
    """
    if candidate == node_id or node_id not in blocks:
        return False
    return candidate in ancestors(blocks, node_id)


def absolute_position(blocks: Mapping[str, Block], node_id: str) -> Point:
    """
    Canvas position of a block's top-left corner.

    Accumulates the positions of every resolvable ancestor.
    """
    block = blocks[node_id]
    x = block.position.x
    y = block.position.y
    for pid in ancestors(blocks, node_id):
        p = blocks[pid].position
        x += p.x
        y += p.y
    return Point(x, y)


def to_relative(blocks: Mapping[str, Block], point: Point, parent_id: Optional[str]) -> Point:
    """Convert an absolute canvas point into parent_id's local coordinates."""
    if parent_id is None or parent_id not in blocks:
        return point.copy()
    return point - absolute_position(blocks, parent_id)


def children(blocks: Mapping[str, Block], parent_id: Optional[str]) -> list[str]:
    """Direct children of parent_id, in collection order (None for top level)."""
    if parent_id is None:
        return [bid for bid, b in blocks.items() if b.parent_id is None or b.parent_id not in blocks]
    return [bid for bid, b in blocks.items() if b.parent_id == parent_id]


def descendants(blocks: Mapping[str, Block], node_id: str) -> list[str]:
    """All blocks enclosed by node_id at any depth, breadth first."""
    by_parent: dict[str, list[str]] = {}
    for bid, b in blocks.items():
        if b.parent_id is not None:
            by_parent.setdefault(b.parent_id, []).append(bid)

    result: list[str] = []
    seen = {node_id}
    queue = [node_id]
    while queue:
        current = queue.pop(0)
        for child in by_parent.get(current, []):
            if child in seen:
                continue
            seen.add(child)
            result.append(child)
            queue.append(child)
    return result


def repair_hierarchy(blocks: Mapping[str, Block]) -> Mutation:
    """
    Detach blocks whose parent link breaks a hierarchy invariant.

    Four cases are repaired, each by clearing parent_id and keeping the
    block at its resolved absolute position:
    - the referenced parent does not exist (orphan)
    - the parent chain loops back on itself
    - a starter block has a parent
    - the parent is not a container

    Args:
        blocks: Block collection (not modified)

    Returns:
        Mutation with one ParentUpdate per repaired block
    """
    work = {bid: b.copy() for bid, b in blocks.items()}
    m = Mutation()

    for bid, block in work.items():
        if block.parent_id is None:
            continue

        if block.parent_id not in work:
            fixed = block.position.copy()
        else:
            _, status = _parent_chain(work, bid)
            if status == _CYCLE:
                fixed = block.position.copy()
            elif block.kind == BlockKind.starter or not work[block.parent_id].is_container:
                fixed = absolute_position(work, bid)
            else:
                continue

        block.parent_id = None
        block.position = fixed
        m.reparented.append(ParentUpdate(bid, None, fixed.copy()))

    return m
