"""Tests for model module."""

import pytest
from blockflow.geom import Point
from blockflow.model import (
    Block, BlockKind, Edge, Graph, Mutation, Placeholder, HandleRole,
    PositionUpdate, SizeUpdate, ParentUpdate, TopologyError, MalformedBlockWarning,
    start_handle, end_handle, parse_container_handle, is_reserved_id, purge_reserved,
    BLOCK_WIDTH, WIDE_BLOCK_WIDTH, BLOCK_HEIGHT, CONTAINER_MIN_WIDTH, CONTAINER_MIN_HEIGHT
)


class TestBlockKind:
    """Test BlockKind enum."""

    def test_containers(self):
        """Test which kinds are containers."""
        assert BlockKind.loop.is_container
        assert BlockKind.parallel.is_container
        assert not BlockKind.regular.is_container
        assert not BlockKind.starter.is_container

    def test_string_values(self):
        """Test kinds round-trip through their names."""
        assert BlockKind('condition') == BlockKind.condition


class TestHandles:
    """Test container pseudo-handles."""

    def test_handle_names(self):
        """Test pseudo-handle ids."""
        assert start_handle(BlockKind.loop) == 'loop-start-source'
        assert end_handle(BlockKind.parallel) == 'parallel-end-source'

    def test_parse(self):
        """Test decoding pseudo-handles."""
        assert parse_container_handle('loop-start-source') == (BlockKind.loop, HandleRole.start)
        assert parse_container_handle('parallel-end-source') == (BlockKind.parallel, HandleRole.end)

    def test_parse_ordinary_handles(self):
        """Test ordinary handles are not pseudo-handles."""
        assert parse_container_handle('source') is None
        assert parse_container_handle('condition-true') is None
        assert parse_container_handle('regular-start-source') is None
        assert parse_container_handle(None) is None

    def test_reserved_ids(self):
        """Test reserved affordance prefixes."""
        assert is_reserved_id('plus-a')
        assert is_reserved_id('edge-plus-1')
        assert not is_reserved_id('a-plus')


class TestBlock:
    """Test Block footprints."""

    def test_intrinsic_sizes(self):
        """Test default footprints per kind."""
        assert Block('a').footprint() == (BLOCK_WIDTH, BLOCK_HEIGHT)
        assert Block('w', wide=True).footprint() == (WIDE_BLOCK_WIDTH, BLOCK_HEIGHT)
        assert Block('l', BlockKind.loop).footprint() == (CONTAINER_MIN_WIDTH, CONTAINER_MIN_HEIGHT)

    def test_explicit_size(self):
        """Test explicit sizes win."""
        assert Block('a', width=100, height=50).footprint() == (100.0, 50.0)

    def test_malformed_size_falls_back(self):
        """Test malformed sizes warn and use the default."""
        b = Block('a', width=float('nan'), height=-3)
        with pytest.warns(MalformedBlockWarning):
            assert b.footprint() == (BLOCK_WIDTH, BLOCK_HEIGHT)

    def test_copy_is_deep(self):
        """Test copies do not share positions."""
        b = Block('a', position=Point(1, 2))
        c = b.copy()
        c.position.x = 50
        assert b.position.x == 1


class TestPlaceholder:
    """Test Placeholder ids."""

    def test_requires_reserved_prefix(self):
        """Test placeholders must use a reserved id."""
        assert Placeholder('plus-a', 'a').source_id == 'a'
        with pytest.raises(ValueError):
            Placeholder('a', 'a')


class TestEdge:
    """Test Edge."""

    def test_defaults(self):
        """Test default handles and generated id."""
        e = Edge('a', 'b')
        assert e.source_handle == 'source'
        assert e.target_handle == 'target'
        assert e.id
        assert Edge('a', 'b').id != e.id

    def test_same_connection(self):
        """Test connection identity ignores ids."""
        assert Edge('a', 'b', id='1').same_connection(Edge('a', 'b', id='2'))
        assert not Edge('a', 'b').same_connection(Edge('a', 'b', 'other'))


class TestGraph:
    """Test Graph collection and merge."""

    def make_graph(self):
        return Graph(
            [Block('a'), Block('b'), Block('c')],
            [Edge('a', 'b', id='ab'), Edge('b', 'c', id='bc')]
        )

    def test_duplicate_block(self):
        """Test duplicate ids are refused."""
        g = self.make_graph()
        with pytest.raises(TopologyError):
            g.add_block(Block('a'))

    def test_queries(self):
        """Test edge lookups."""
        g = self.make_graph()
        assert [e.id for e in g.outgoing('a')] == ['ab']
        assert [e.id for e in g.incoming('c')] == ['bc']
        assert sorted(e.id for e in g.incident('b')) == ['ab', 'bc']
        assert g.edge('ab').target == 'b'
        assert g.edge('zz') is None
        assert g.block(None) is None

    def test_snapshot_is_independent(self):
        """Test snapshots deep-copy blocks."""
        g = self.make_graph()
        s = g.snapshot()
        s.blocks['a'].position.x = 99
        assert g.blocks['a'].position.x == 0

    def test_apply_removal_cascades_edges(self):
        """Test removing a block removes its edges."""
        g = self.make_graph()
        m = Mutation()
        m.removed_blocks.append('b')
        g.apply(m)
        assert 'b' not in g.blocks
        assert g.edges == []

    def test_apply_ignores_unknown_ids(self):
        """Test records for vanished blocks are no-ops."""
        g = self.make_graph()
        m = Mutation()
        m.removed_blocks.append('zz')
        m.moved.append(PositionUpdate('zz', Point(1, 1)))
        m.resized.append(SizeUpdate('zz', 10, 10))
        m.reparented.append(ParentUpdate('zz', None, Point()))
        m.added_edges.append(Edge('a', 'zz'))
        g.apply(m)
        assert len(g) == 3
        assert len(g.edges) == 2

    def test_apply_last_writer_wins(self):
        """Test later records override earlier ones."""
        g = self.make_graph()
        m = Mutation()
        m.moved.append(PositionUpdate('a', Point(1, 1)))
        m.moved.append(PositionUpdate('a', Point(2, 2)))
        g.apply(m)
        assert g.blocks['a'].position == Point(2, 2)

    def test_apply_replaces_edge_by_id(self):
        """Test an added edge with an existing id replaces it."""
        g = self.make_graph()
        m = Mutation()
        m.added_edges.append(Edge('a', 'c', id='ab'))
        g.apply(m)
        assert len(g.edges) == 2
        assert g.edge('ab').target == 'c'


class TestMutation:
    """Test Mutation helpers."""

    def test_empty(self):
        """Test empty detection and extend."""
        m = Mutation()
        assert m.is_empty()
        other = Mutation()
        other.removed_edges.append('x')
        m.extend(other)
        assert not m.is_empty()
        assert m.removed_edges == ['x']


class TestPurgeReserved:
    """Test reserved id hygiene."""

    def test_purge(self):
        """Test leaked affordances and their edges are removed."""
        g = Graph([Block('a'), Block('plus-a')], [Edge('a', 'plus-a', id='e')])
        m = purge_reserved(g)
        assert m.removed_blocks == ['plus-a']
        assert m.removed_edges == ['e']
        assert list(g.blocks) == ['a']
        assert g.edges == []

    def test_clean_graph_untouched(self):
        """Test clean graphs produce an empty mutation."""
        g = Graph([Block('a')])
        assert purge_reserved(g).is_empty()
