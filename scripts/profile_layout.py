"""
Profiling script for PySpring layout performance analysis.

This script profiles the spring embedder on random graphs of growing size
to identify bottlenecks.
"""

import cProfile
import pstats
import io
from pstats import SortKey
import random
import time
import sys
from pathlib import Path

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pyspring import SpringLayout, create_random_graph, add_random_nodes


def make_layout(n_nodes, seed=42):
    """Create a layout over a random graph with n nodes."""
    layout = SpringLayout()
    create_random_graph(layout, n_nodes, rng=random.Random(seed))
    return layout


def run_steps(layout, steps):
    for _ in range(steps):
        layout.step()


def profile_small_graph():
    """Profile a small graph (20 nodes)."""
    run_steps(make_layout(20), 50)


def profile_medium_graph():
    """Profile a medium graph (100 nodes)."""
    run_steps(make_layout(100), 50)


def profile_large_graph():
    """Profile a large graph (500 nodes)."""
    run_steps(make_layout(500), 10)


def profile_growing_graph():
    """Profile a graph edited between ticks."""
    layout = make_layout(20)
    rng = random.Random(7)
    for _ in range(50):
        add_random_nodes(layout, 2, rng=rng)
        layout.step()


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
    print("PySpring Performance Profiling")
    print("=" * 60)

    scenarios = [
        ("Small Graph (20 nodes)", profile_small_graph),
        ("Medium Graph (100 nodes)", profile_medium_graph),
        ("Large Graph (500 nodes)", profile_large_graph),
        ("Growing Graph (20 to 120 nodes)", profile_growing_graph),
    ]

    profilers = {}
    for name, func in scenarios:
        profilers[name] = benchmark_scenario(name, func)

    print("\n" + "="*60)
    print("Saving detailed profiles...")
    print("="*60)

    for name, profiler in profilers.items():
        filename = f"profile_{name.lower().replace(' ', '_').replace('(', '').replace(')', '')}.prof"
        profiler.dump_stats(filename)
        print(f"Saved: {filename}")

    print("\nTo view detailed profile, use:")
    print("  python -m pstats <profile_file>")


if __name__ == "__main__":
    main()
