"""
Blockflow: hierarchical layout and containment engine for workflow graphs

Lays out nested loop/parallel containers, detects drag-to-nest targets,
validates connections across container boundaries and applies topology
edits to an owned block/edge collection.
"""

__version__ = "0.1.0"

from .geom import Point
from .rectangle import Rectangle
from .model import (
    Block,
    BlockKind,
    Edge,
    EdgeContainment,
    Graph,
    Mutation,
    Placeholder,
    TopologyError,
)
from .layout import Layout, LayoutResult, EventType
from .validator import ConnectionResult, can_connect, can_nest
from .mutator import TopologyMutator, find_terminals, placeholders_for, find_closest_block
from .drag import DragSession, DragState
from .scheduler import Debouncer, PreservedPositions
from .canvas import Canvas

__all__ = [
    'Point',
    'Rectangle',
    'Block',
    'BlockKind',
    'Edge',
    'EdgeContainment',
    'Graph',
    'Mutation',
    'Placeholder',
    'TopologyError',
    'Layout',
    'LayoutResult',
    'EventType',
    'ConnectionResult',
    'can_connect',
    'can_nest',
    'TopologyMutator',
    'find_terminals',
    'placeholders_for',
    'find_closest_block',
    'DragSession',
    'DragState',
    'Debouncer',
    'PreservedPositions',
    'Canvas',
]
