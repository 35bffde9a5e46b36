"""Tests for hierarchy module."""

import warnings

import pytest
from blockflow.geom import Point
from blockflow.model import Block, BlockKind
from blockflow.hierarchy import (
    ancestors, depth, is_ancestor_of, absolute_position, to_relative,
    children, descendants, repair_hierarchy,
    OrphanedBlockWarning, ContainmentCycleWarning, HierarchyWarning, MAX_DEPTH
)


def nested_blocks():
    """outer(100,100) > inner(50,50) > leaf(10,20); top at (0,0)."""
    blocks = [
        Block('outer', BlockKind.loop, Point(100, 100)),
        Block('inner', BlockKind.parallel, Point(50, 50), parent_id='outer'),
        Block('leaf', position=Point(10, 20), parent_id='inner'),
        Block('top', position=Point(0, 0)),
    ]
    return {b.id: b for b in blocks}


class TestQueries:
    """Test ancestor, depth and position queries."""

    def test_ancestors_nearest_first(self):
        """Test ancestor order."""
        blocks = nested_blocks()
        assert ancestors(blocks, 'leaf') == ['inner', 'outer']
        assert ancestors(blocks, 'top') == []

    def test_depth(self):
        """Test nesting depth."""
        blocks = nested_blocks()
        assert depth(blocks, 'top') == 0
        assert depth(blocks, 'outer') == 0
        assert depth(blocks, 'inner') == 1
        assert depth(blocks, 'leaf') == 2

    def test_is_ancestor_of(self):
        """Test ancestor checks."""
        blocks = nested_blocks()
        assert is_ancestor_of(blocks, 'outer', 'leaf')
        assert is_ancestor_of(blocks, 'inner', 'leaf')
        assert not is_ancestor_of(blocks, 'leaf', 'outer')
        assert not is_ancestor_of(blocks, 'leaf', 'leaf')
        assert not is_ancestor_of(blocks, 'top', 'leaf')

    def test_absolute_position(self):
        """Test positions accumulate up the chain."""
        blocks = nested_blocks()
        assert absolute_position(blocks, 'leaf') == Point(160, 170)
        assert absolute_position(blocks, 'top') == Point(0, 0)

    def test_to_relative(self):
        """Test conversion into a container's local frame."""
        blocks = nested_blocks()
        assert to_relative(blocks, Point(160, 170), 'inner') == Point(10, 20)
        assert to_relative(blocks, Point(5, 5), None) == Point(5, 5)

    def test_unknown_id_raises(self):
        """Test unknown ids are a programming error."""
        with pytest.raises(KeyError):
            ancestors(nested_blocks(), 'nope')

    def test_children_and_descendants(self):
        """Test child listings."""
        blocks = nested_blocks()
        assert children(blocks, 'outer') == ['inner']
        assert children(blocks, None) == ['outer', 'top']
        assert descendants(blocks, 'outer') == ['inner', 'leaf']
        assert descendants(blocks, 'leaf') == []


class TestAnomalies:
    """Test bounded walks over broken data."""

    def test_orphan_treated_as_top_level(self):
        """Test a missing parent ends the walk with a warning."""
        blocks = {'a': Block('a', position=Point(5, 5), parent_id='gone')}
        with pytest.warns(OrphanedBlockWarning):
            assert absolute_position(blocks, 'a') == Point(5, 5)

    def test_orphan_counts_as_top_level_child(self):
        """Test orphans are listed at top level."""
        blocks = {'a': Block('a', parent_id='gone')}
        assert children(blocks, None) == ['a']

    def test_cycle_terminates(self):
        """Test a containment cycle aborts the walk with a warning."""
        blocks = {
            'a': Block('a', BlockKind.loop, Point(1, 1), parent_id='b'),
            'b': Block('b', BlockKind.loop, Point(2, 2), parent_id='a'),
        }
        with pytest.warns(ContainmentCycleWarning):
            assert ancestors(blocks, 'a') == []
        with pytest.warns(ContainmentCycleWarning):
            assert absolute_position(blocks, 'a') == Point(1, 1)
        with pytest.warns(HierarchyWarning):
            assert not is_ancestor_of(blocks, 'b', 'a')

    def test_depth_cap(self):
        """Test very deep chains are capped."""
        blocks = {'c0': Block('c0', BlockKind.loop)}
        for i in range(1, MAX_DEPTH + 5):
            blocks[f'c{i}'] = Block(f'c{i}', BlockKind.loop, parent_id=f'c{i - 1}')
        with pytest.warns(ContainmentCycleWarning):
            assert depth(blocks, f'c{MAX_DEPTH + 4}') == 0

    def test_no_warning_on_clean_data(self):
        """Test clean hierarchies are silent."""
        with warnings.catch_warnings():
            warnings.simplefilter('error')
            ancestors(nested_blocks(), 'leaf')


class TestRepair:
    """Test repair_hierarchy."""

    def test_orphan_detached_in_place(self):
        """Test orphans keep their position and lose the parent."""
        blocks = {'a': Block('a', position=Point(5, 6), parent_id='gone')}
        m = repair_hierarchy(blocks)
        assert len(m.reparented) == 1
        update = m.reparented[0]
        assert update.id == 'a'
        assert update.parent_id is None
        assert update.position == Point(5, 6)
        assert blocks['a'].parent_id == 'gone'

    def test_starter_detached_at_absolute_position(self):
        """Test a nested starter moves to top level without jumping."""
        blocks = {
            'loop': Block('loop', BlockKind.loop, Point(100, 100)),
            'start': Block('start', BlockKind.starter, Point(10, 10), parent_id='loop'),
        }
        m = repair_hierarchy(blocks)
        assert m.reparented[0].position == Point(110, 110)

    def test_non_container_parent_detached(self):
        """Test a block parented to a plain block moves to top level in place."""
        blocks = {
            'plain': Block('plain', position=Point(100, 100)),
            'a': Block('a', position=Point(10, 20), parent_id='plain'),
        }
        m = repair_hierarchy(blocks)
        assert [u.id for u in m.reparented] == ['a']
        assert m.reparented[0].parent_id is None
        assert m.reparented[0].position == Point(110, 120)

    def test_cycle_broken(self):
        """Test cycle members are detached."""
        blocks = {
            'a': Block('a', BlockKind.loop, parent_id='b'),
            'b': Block('b', BlockKind.loop, parent_id='a'),
        }
        with pytest.warns(ContainmentCycleWarning):
            m = repair_hierarchy(blocks)
        assert [u.id for u in m.reparented] == ['a']

    def test_clean_hierarchy(self):
        """Test clean data needs no repair."""
        assert repair_hierarchy(nested_blocks()).is_empty()
