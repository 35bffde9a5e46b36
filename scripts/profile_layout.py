"""
Profiling script for blockflow layout and drag performance.

Builds random workflow graphs (chains with fan-out, nested containers) and
profiles full layout passes and drag sampling over them.
"""

import cProfile
import pstats
import io
from pstats import SortKey
import time
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import numpy as np
from blockflow.geom import Point
from blockflow.model import Block, BlockKind, Edge, Graph
from blockflow.layout import Layout
from blockflow.drag import DragSession


def create_workflow(n_blocks, n_containers=0, fan_out=0.2, seed=42):
    """
    Create a random workflow: a starter feeding a tree of blocks, with
    n_containers loop/parallel blocks each holding a short inner chain.
    """
    rng = np.random.default_rng(seed)
    graph = Graph([Block('start', BlockKind.starter)])
    top = ['start']

    for i in range(n_blocks):
        bid = f'b{i}'
        graph.add_block(Block(bid, wide=bool(rng.random() < 0.2)))
        source = top[-1] if rng.random() > fan_out else top[int(rng.integers(0, len(top)))]
        graph.edges.append(Edge(source, bid))
        top.append(bid)

    for c in range(n_containers):
        cid = f'c{c}'
        kind = BlockKind.loop if c % 2 == 0 else BlockKind.parallel
        graph.add_block(Block(cid, kind))
        graph.edges.append(Edge(top[int(rng.integers(1, len(top)))], cid))
        previous = None
        for j in range(4):
            kid = f'{cid}-k{j}'
            graph.add_block(Block(kid, parent_id=cid))
            if previous is None:
                graph.edges.append(Edge(cid, kid, f'{kind.value}-start-source'))
            else:
                graph.edges.append(Edge(previous, kid))
            previous = kid

    return graph


def profile_small_graph():
    """Profile a small graph (20 blocks)."""
    Layout().start(create_workflow(20))


def profile_medium_graph():
    """Profile a medium graph (150 blocks, 10 containers)."""
    Layout().start(create_workflow(150, 10))


def profile_large_graph():
    """Profile a large graph (600 blocks, 40 containers)."""
    Layout().start(create_workflow(600, 40))


def profile_drag():
    """Profile 500 drag samples across a graph with 40 containers."""
    graph = create_workflow(200, 40)
    layout = Layout()
    graph.apply(layout.start(graph).as_mutation())

    session = DragSession(graph)
    session.begin('b10')
    for x in np.linspace(0, 4000, 500):
        session.move(Point(float(x), float(x) / 2))
    session.drop()


def benchmark_scenario(name, func):
    """Benchmark a scenario and print timing."""
    print(f"\n{'='*60}")
    print(f"Profiling: {name}")
    print('='*60)

    profiler = cProfile.Profile()

    start_time = time.time()
    profiler.enable()
    func()
    profiler.disable()
    elapsed = time.time() - start_time

    print(f"\nTotal time: {elapsed:.3f}s")

    s = io.StringIO()
    ps = pstats.Stats(profiler, stream=s).sort_stats(SortKey.CUMULATIVE)
    ps.print_stats(20)

    print("\nTop 20 functions by cumulative time:")
    print(s.getvalue())

    return profiler


def main():
    """Run all profiling scenarios."""
    print("blockflow Performance Profiling")
    print("=" * 60)

    scenarios = [
        ("Small Graph (20 blocks)", profile_small_graph),
        ("Medium Graph (150 blocks, 10 containers)", profile_medium_graph),
        ("Large Graph (600 blocks, 40 containers)", profile_large_graph),
        ("Drag (500 samples, 40 containers)", profile_drag),
    ]

    profilers = {}
    for name, func in scenarios:
        profilers[name] = benchmark_scenario(name, func)

    print("\n" + "="*60)
    print("Saving detailed profiles...")
    print("="*60)

    for name, profiler in profilers.items():
        filename = f"profile_{name.lower().replace(' ', '_').replace('(', '').replace(')', '').replace(',', '')}.prof"
        profiler.dump_stats(filename)
        print(f"Saved: {filename}")


if __name__ == "__main__":
    main()
