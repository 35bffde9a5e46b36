"""Tests for the hierarchical layout pass."""

import pytest
from blockflow.geom import Point
from blockflow.model import Block, BlockKind, Edge, Graph, Placeholder, MalformedBlockWarning
from blockflow.rectangle import Rectangle
from blockflow.hierarchy import absolute_position, descendants
from blockflow.containment import block_bounds
from blockflow.collision import group_bands
from blockflow.layout import Layout, LayoutResult, EventType


def chain_graph():
    return Graph(
        [Block('a'), Block('b')],
        [Edge('a', 'b', id='ab')]
    )


def loop_graph():
    """starter -> loop, loop contains c1 -> c2."""
    return Graph(
        [
            Block('start', BlockKind.starter),
            Block('loop', BlockKind.loop),
            Block('c1', parent_id='loop'),
            Block('c2', parent_id='loop'),
        ],
        [
            Edge('start', 'loop', id='e1'),
            Edge('loop', 'c1', 'loop-start-source', id='e2'),
            Edge('c1', 'c2', id='e3'),
        ]
    )


def nested_graph():
    """outer loop > inner parallel > two leaves, plus a top-level tail."""
    return Graph(
        [
            Block('start', BlockKind.starter),
            Block('outer', BlockKind.loop),
            Block('inner', BlockKind.parallel, parent_id='outer'),
            Block('x', parent_id='inner'),
            Block('y', parent_id='inner'),
            Block('z', parent_id='outer'),
            Block('tail'),
        ],
        [
            Edge('start', 'outer'),
            Edge('outer', 'inner', 'loop-start-source'),
            Edge('inner', 'x', 'parallel-start-source'),
            Edge('inner', 'y', 'parallel-start-source'),
            Edge('inner', 'z', 'parallel-end-source'),
            Edge('outer', 'tail', 'loop-end-source'),
        ]
    )


def settle(layout, graph, **kwargs):
    result = layout.start(graph, **kwargs)
    graph.apply(result.as_mutation())
    return result


def assert_containers_enclose(graph, padding):
    for cid, block in graph.blocks.items():
        if not block.is_container:
            continue
        outer = block_bounds(graph.blocks, cid)
        for did in descendants(graph.blocks, cid):
            inner = block_bounds(graph.blocks, did).inflate(padding)
            assert outer.contains(inner), (cid, did)


class TestConfiguration:
    """Test fluent accessors."""

    def test_defaults(self):
        """Test default parameters."""
        layout = Layout()
        assert layout.node_separation() == 100
        assert layout.rank_separation() == 100
        assert layout.margin() == (50, 0)
        assert layout.collision_padding() == 20
        assert layout.band_tolerance() == 100
        assert layout.container_padding() == 50
        assert layout.placeholder_size() == 300
        assert layout.write_threshold() == 1

    def test_chaining(self):
        """Test setters return the layout."""
        layout = Layout().node_separation(80).rank_separation(60).margin((0, 0))
        assert isinstance(layout, Layout)
        assert layout.node_separation() == 80
        assert layout.rank_separation() == 60
        assert layout.margin() == (0, 0)


class TestEvents:
    """Test start/tick/end events."""

    def test_event_values(self):
        """Test event type values."""
        assert EventType.start == 0
        assert EventType.tick == 1
        assert EventType.end == 2

    def test_events_fire(self):
        """Test one tick per group between start and end."""
        seen = []
        layout = Layout()
        layout.on('start', lambda e: seen.append(('start', e.get('group'))))
        layout.on(EventType.tick, lambda e: seen.append(('tick', e['group'])))
        layout.on(EventType.end, lambda e: seen.append(('end', e['updates'])))
        layout.start(loop_graph())
        assert seen[0] == ('start', None)
        assert seen[1:3] == [('tick', 'loop'), ('tick', None)]
        assert seen[3][0] == 'end'
        assert seen[3][1] > 0


class TestChain:
    """Test plain top-level placement."""

    def test_chain_positions(self):
        """Test a chain stacks below the margin."""
        result = Layout().start(chain_graph())
        assert result.positions['a'] == Point(50, 0)
        assert result.positions['b'] == Point(50, 220)
        assert result.ranks == {'a': 0, 'b': 1}
        assert {u.id for u in result.updates} == {'a', 'b'}

    def test_input_not_modified(self):
        """Test the pass does not write to the graph."""
        graph = chain_graph()
        Layout().start(graph)
        assert graph.blocks['b'].position == Point(0, 0)

    def test_idempotent_settle(self):
        """Test a second pass proposes nothing."""
        graph = nested_graph()
        layout = Layout()
        settle(layout, graph)
        second = layout.start(graph)
        assert second.updates == []
        assert second.resized == []
        assert second.is_settled()
        assert second.as_mutation().is_empty()

    def test_cycles_tolerated(self):
        """Test cyclic graphs still lay out."""
        graph = Graph(
            [Block('a'), Block('b'), Block('c')],
            [Edge('a', 'b'), Edge('b', 'c'), Edge('c', 'a')]
        )
        result = Layout().start(graph)
        assert sorted(result.ranks.values()) == [0, 1, 2]


class TestContainers:
    """Test bottom-up container layout."""

    def test_children_laid_out_inside(self):
        """Test children get padding offsets and the container grows."""
        result = Layout().start(loop_graph())
        assert result.positions['c1'] == Point(50, 50)
        assert result.positions['c2'] == Point(50, 270)
        sizes = {u.id: (u.width, u.height) for u in result.resized}
        assert sizes == {'loop': (500, 440)}

    def test_container_placed_with_its_size(self):
        """Test the parent group sees the grown container."""
        result = Layout().start(loop_graph())
        assert result.positions['start'] == Point(140, 0)
        assert result.positions['loop'] == Point(50, 220)

    def test_containers_enclose_descendants(self):
        """Test every container encloses its descendants plus padding."""
        graph = nested_graph()
        layout = Layout()
        settle(layout, graph)
        assert_containers_enclose(graph, layout.container_padding())

    def test_cross_boundary_edges_use_outermost_blocks(self):
        """Test an edge into a container ranks the container, not the child."""
        graph = Graph(
            [Block('a'), Block('loop', BlockKind.loop), Block('c', parent_id='loop')],
            [Edge('a', 'c')]
        )
        result = Layout().start(graph)
        assert result.ranks['a'] == 0
        assert result.ranks['loop'] == 1


class TestPreserve:
    """Test preserve-position flags."""

    def test_preserved_not_written(self):
        """Test preserved blocks keep their position and get no update."""
        graph = chain_graph()
        graph.blocks['b'].position = Point(999, 999)
        result = Layout().start(graph, preserved=['b'])
        assert 'b' not in {u.id for u in result.updates}
        assert result.positions['b'] == Point(999, 999)

    def test_preserved_still_occupies_space(self):
        """Test others are pushed clear of a preserved block."""
        graph = Graph([Block('a'), Block('b')])
        result = Layout().start(graph, preserved=['b'])
        assert result.positions['b'] == Point(0, 0)
        assert result.positions['a'] == Point(340, 0)

    def test_preserved_child_at_container_origin(self):
        """Test a container still encloses a preserved child sitting in its padding."""
        graph = loop_graph()
        graph.blocks['c1'].position = Point(0, 0)
        layout = Layout()
        result = settle(layout, graph, preserved=['c1'])
        assert_containers_enclose(graph, layout.container_padding())
        assert graph.blocks['c1'].position == Point(50, 50)
        assert 'c1' in {u.id for u in result.updates}

    def test_preserved_child_outside_container(self):
        """Test a container grows to reach a preserved child past its right edge."""
        graph = loop_graph()
        graph.blocks['c2'].position = Point(900, 600)
        layout = Layout()
        result = settle(layout, graph, preserved=['c2'])
        assert_containers_enclose(graph, layout.container_padding())
        assert graph.blocks['c2'].position == Point(900, 600)
        assert 'c2' not in {u.id for u in result.updates}

    def test_unknown_preserved_ids_ignored(self):
        """Test stale preserve flags are harmless."""
        result = Layout().start(chain_graph(), preserved=['gone'])
        assert len(result.updates) == 2


class TestPlaceholders:
    """Test append affordances."""

    def test_placeholder_reported_separately(self):
        """Test placeholders get a rank and position but no block update."""
        ghost = Placeholder('plus-b', 'b', parent_id=None)
        result = Layout().start(chain_graph(), placeholders=[ghost])
        assert result.ranks['plus-b'] == 2
        assert 'plus-b' in result.placeholders
        assert 'plus-b' not in {u.id for u in result.updates}
        assert result.placeholders['plus-b'].y == 220 + 120 + 100

    def test_placeholder_for_unknown_source_skipped(self):
        """Test placeholders of vanished blocks are dropped."""
        ghost = Placeholder('plus-zz', 'zz')
        result = Layout().start(chain_graph(), placeholders=[ghost])
        assert result.placeholders == {}


class TestMalformed:
    """Test local recovery from bad blocks."""

    def test_malformed_size_substituted(self):
        """Test a malformed block does not abort the pass."""
        graph = chain_graph()
        graph.blocks['a'].width = 'wide'
        with pytest.warns(MalformedBlockWarning):
            result = Layout().start(graph)
        assert result.positions['b'] == Point(50, 220)

    def test_orphan_laid_out_at_top_level(self):
        """Test blocks with a missing parent are laid out at top level."""
        graph = Graph([Block('a', parent_id='gone')])
        result = Layout().start(graph)
        assert result.positions['a'] == Point(50, 0)


class TestBands:
    """Test no overlap within a band after a pass."""

    def test_fan_out_has_no_overlap(self):
        """Test a wide fan-out keeps siblings apart."""
        blocks = [Block('root')] + [Block(f'n{i}', wide=(i % 2 == 0)) for i in range(5)]
        edges = [Edge('root', f'n{i}') for i in range(5)]
        graph = Graph(blocks, edges)
        layout = Layout()
        settle(layout, graph)
        positions = {bid: b.position for bid, b in graph.blocks.items()}
        for band in group_bands(positions):
            spans = sorted(
                (positions[bid].x, positions[bid].x + graph.blocks[bid].footprint()[0])
                for bid in band
            )
            for (_, right), (left, _) in zip(spans, spans[1:]):
                assert left - right >= layout.collision_padding() - 1e-9
