"""
Layered (Sugiyama-style) placement for one group of sibling blocks.

Phases:
  1. Cycle breaking: edges closing a cycle in depth-first order are reversed
  2. Rank assignment: longest path from sources, top to bottom
  3. Ordering: input order refined by predecessor barycenters
  4. Coordinates: ranks stacked vertically, each rank centred horizontally

Containers are laid out one group at a time by blockflow.layout; this module
only sees a flat list of nodes and the links between them.
"""

from __future__ import annotations

from typing import Iterable
import networkx as nx


NODE_SEPARATION = 100
RANK_SEPARATION = 100
ORDERING_PASSES = 2


class LayoutNode:
    """
    Node handed to the layered placement.

    Attributes:
        id: Block or placeholder id
        width: Footprint width
        height: Footprint height
        order: Stable tie-breaking index (input order)
        placeholder: True for transient append affordances
        rank: Assigned layer, computed by layout_group()
        slot: Position within the rank, computed by layout_group()
        x: Left edge, computed by layout_group()
        y: Top edge, computed by layout_group()
    """

    def __init__(
        self,
        id: str,
        width: float,
        height: float,
        order: int = 0,
        placeholder: bool = False
    ):
        self.id = id
        self.width = width
        self.height = height
        self.order = order
        self.placeholder = placeholder
        self.rank: int = 0
        self.slot: int = 0
        self.x: float = 0.0
        self.y: float = 0.0

    def __repr__(self) -> str:
        return f"LayoutNode({self.id!r}, rank={self.rank}, slot={self.slot}, x={self.x}, y={self.y})"


def feedback_edges(graph: nx.DiGraph) -> set[tuple[str, str]]:
    """
    Find edges that close a cycle during a depth-first walk.

    The walk visits nodes in insertion order, so the result is stable for a
    given input order. Self-loops are always included.

    Args:
        graph: Directed graph

    Returns:
        Set of (source, target) pairs to reverse
    """
    back: set[tuple[str, str]] = set()
    on_stack: set[str] = set()
    for u, v, kind in nx.dfs_labeled_edges(graph):
        if kind == 'forward':
            on_stack.add(v)
        elif kind == 'reverse':
            on_stack.discard(v)
        elif kind == 'nontree' and v in on_stack:
            back.add((u, v))
    for u, v in nx.selfloop_edges(graph):
        back.add((u, v))
    return back


def acyclic_graph(nodes: list[LayoutNode], links: Iterable[tuple[str, str]]) -> nx.DiGraph:
    """
    Build a DAG over nodes from links.

    Links to unknown ids and self-loops are dropped; links closing a cycle
    are reversed.
    """
    g = nx.DiGraph()
    for n in nodes:
        g.add_node(n.id)
    for s, t in links:
        if s in g and t in g and s != t:
            g.add_edge(s, t)

    reversed_edges = feedback_edges(g)
    dag = nx.DiGraph()
    dag.add_nodes_from(g.nodes)
    for s, t in g.edges:
        if (s, t) in reversed_edges:
            dag.add_edge(t, s)
        else:
            dag.add_edge(s, t)
    return dag


def assign_ranks(nodes: list[LayoutNode], dag: nx.DiGraph) -> dict[str, int]:
    """
    Longest-path rank assignment: sources get rank 0, every other node one
    more than its deepest predecessor.
    """
    order = {n.id: n.order for n in nodes}
    ranks: dict[str, int] = {}
    for v in nx.lexicographical_topological_sort(dag, key=lambda nid: order[nid]):
        ranks[v] = max((ranks[u] + 1 for u in dag.predecessors(v)), default=0)
    return ranks


def order_ranks(
    nodes: list[LayoutNode],
    ranks: dict[str, int],
    dag: nx.DiGraph,
    passes: int = ORDERING_PASSES
) -> list[list[str]]:
    """
    Order nodes left to right within each rank.

    Starts from input order, then repeatedly sorts each rank by the mean
    slot of its predecessors. Nodes without predecessors keep their current
    slot as their key, and input order breaks ties.

    Returns:
        One list of node ids per rank
    """
    order = {n.id: n.order for n in nodes}
    layer_count = (max(ranks.values()) + 1) if ranks else 0
    layers: list[list[str]] = [[] for _ in range(layer_count)]
    for n in sorted(nodes, key=lambda n: n.order):
        layers[ranks[n.id]].append(n.id)

    for _ in range(passes):
        slot = {nid: i for layer in layers for i, nid in enumerate(layer)}
        for r in range(1, layer_count):
            def key(nid: str) -> tuple[float, int]:
                preds = list(dag.predecessors(nid))
                if not preds:
                    return float(slot[nid]), order[nid]
                return sum(slot[p] for p in preds) / len(preds), order[nid]

            layers[r].sort(key=key)
            for i, nid in enumerate(layers[r]):
                slot[nid] = i

    return layers


def layout_group(
    nodes: list[LayoutNode],
    links: Iterable[tuple[str, str]],
    node_separation: float = NODE_SEPARATION,
    rank_separation: float = RANK_SEPARATION,
    margin_x: float = 0.0,
    margin_y: float = 0.0
) -> tuple[float, float]:
    """
    Place a flat group of nodes in layers.

    Sets rank, slot, x and y on every node. Each node is centred in its
    slot (x = slot centre - width / 2) and on its rank's centre line
    (y = rank centre - height / 2).

    Args:
        nodes: Nodes to place
        links: (source id, target id) pairs between nodes
        node_separation: Horizontal gap between neighbours in a rank
        rank_separation: Vertical gap between ranks
        margin_x: Horizontal margin around the drawing
        margin_y: Vertical margin around the drawing

    Returns:
        (width, height) of the drawing including margins
    """
    if not nodes:
        return 2 * margin_x, 2 * margin_y

    by_id = {n.id: n for n in nodes}
    dag = acyclic_graph(nodes, links)
    ranks = assign_ranks(nodes, dag)
    layers = order_ranks(nodes, ranks, dag)

    rank_heights = [max(by_id[nid].height for nid in layer) for layer in layers]
    rank_widths = [
        sum(by_id[nid].width for nid in layer) + node_separation * (len(layer) - 1)
        for layer in layers
    ]
    max_width = max(rank_widths)

    cursor_y = margin_y
    for r, layer in enumerate(layers):
        rank_center = cursor_y + rank_heights[r] / 2.0
        cursor_x = margin_x + (max_width - rank_widths[r]) / 2.0
        for slot, nid in enumerate(layer):
            n = by_id[nid]
            slot_center = cursor_x + n.width / 2.0
            n.rank = r
            n.slot = slot
            n.x = slot_center - n.width / 2.0
            n.y = rank_center - n.height / 2.0
            cursor_x += n.width + node_separation
        cursor_y += rank_heights[r] + rank_separation

    height = sum(rank_heights) + rank_separation * (len(layers) - 1) + 2 * margin_y
    width = max_width + 2 * margin_x
    return width, height
