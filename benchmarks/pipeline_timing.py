#!/usr/bin/env python3
"""
Pipeline timing benchmark.

Measures how long each default pass takes on a deep stack of Conv+BN+ReLU
blocks followed by a linear classifier.

Usage:
    python benchmarks/pipeline_timing.py [num_blocks]

Output:
    - Per-pass timing (mean / p50 / p99 over iterations)
    - Node counts before and after optimization
"""

import sys
import time
from pathlib import Path

import numpy as np

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from graphopt.analysis import compute_metrics, format_bytes, format_flops
from graphopt.ir import Graph, GraphBuilder, reset_id_counter
from graphopt.passes import default_passes, run_pass


# =============================================================================
# Configuration
# =============================================================================

WARMUP_ITERS = 2
BENCH_ITERS = 20
DEFAULT_BLOCKS = 32


def build_conv_stack(num_blocks: int) -> Graph:
    """Conv+BN+ReLU blocks at 32x32, then flatten -> linear -> softmax."""
    b = GraphBuilder(f"conv_stack_{num_blocks}")
    h = b.input("x", (1, 16, 32, 32))
    for i in range(num_blocks):
        h = b.conv2d(h, filters=16, kernel=3, padding=1, name=f"conv{i}")
        h = b.batch_norm(h, name=f"bn{i}")
        h = b.relu(h, name=f"relu{i}")
    h = b.flatten(h)
    w = b.constant("fc_w", (16 * 32 * 32, 10))
    bias = b.constant("fc_b", (1, 10))
    b.output(b.softmax(b.add(b.matmul(h, w), bias)))
    return b.build()


def time_passes(graph: Graph, iters: int, warmup: int) -> dict[str, np.ndarray]:
    timings: dict[str, list[float]] = {}
    for i in range(warmup + iters):
        reset_id_counter()
        current = graph
        for pass_ in default_passes():
            start = time.perf_counter()
            current = run_pass(current, pass_).graph
            elapsed = time.perf_counter() - start
            if i >= warmup:
                timings.setdefault(pass_.name, []).append(elapsed)
    return {name: np.array(values) * 1000 for name, values in timings.items()}


def main():
    num_blocks = int(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_BLOCKS

    print("=" * 70)
    print(f"Pipeline Timing Benchmark ({num_blocks} blocks)")
    print("=" * 70)

    graph = build_conv_stack(num_blocks)
    before = compute_metrics(graph)
    print(f"\nInput graph: {before.node_count} nodes, {before.edge_count} edges")

    timings = time_passes(graph, BENCH_ITERS, WARMUP_ITERS)

    print("\n" + "-" * 70)
    print(f"{'Pass':<28}{'mean ms':>12}{'p50 ms':>12}{'p99 ms':>12}")
    print("-" * 70)
    total = 0.0
    for name, ms in timings.items():
        total += float(np.mean(ms))
        print(
            f"{name:<28}{np.mean(ms):>12.3f}{np.percentile(ms, 50):>12.3f}"
            f"{np.percentile(ms, 99):>12.3f}"
        )
    print("-" * 70)
    print(f"{'Total':<28}{total:>12.3f}")

    reset_id_counter()
    final = graph
    for pass_ in default_passes():
        final = run_pass(final, pass_).graph
    after = compute_metrics(final)
    plan = final.metadata.memory_plan

    print(f"\nOptimized graph: {after.node_count} nodes, {after.edge_count} edges")
    print(f"Estimated FLOPs: {format_flops(after.total_flops)}")
    if plan is not None:
        print(f"Peak memory:     {format_bytes(plan.peak_bytes)}")


if __name__ == "__main__":
    main()
