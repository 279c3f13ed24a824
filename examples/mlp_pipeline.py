from __future__ import annotations

import logging
import sys
from pathlib import Path

repo_root = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(repo_root / "src"))

from graphopt import Pipeline, from_model_dict
from graphopt.analysis import compute_graph_diff, compute_metrics, format_bytes, format_flops

SIMPLE_MLP = {
    "name": "SimpleMLP",
    "description": "784 -> 128 -> 10 classifier",
    "nodes": [
        {"name": "x", "op": "Input", "tensor_type": {"dtype": "float32", "shape": [1, 784]}},
        {"name": "w1", "op": "Constant", "tensor_type": {"dtype": "float32", "shape": [784, 128]}},
        {"name": "b1", "op": "Constant", "tensor_type": {"dtype": "float32", "shape": [1, 128]}},
        {"name": "h1", "op": "MatMul", "inputs": ["x", "w1"]},
        {"name": "h1b", "op": "Add", "inputs": ["h1", "b1"]},
        {"name": "a1", "op": "ReLU", "inputs": ["h1b"]},
        {"name": "w2", "op": "Constant", "tensor_type": {"dtype": "float32", "shape": [128, 10]}},
        {"name": "b2", "op": "Constant", "tensor_type": {"dtype": "float32", "shape": [1, 10]}},
        {"name": "h2", "op": "MatMul", "inputs": ["a1", "w2"]},
        {"name": "h2b", "op": "Add", "inputs": ["h2", "b2"]},
        {"name": "probs", "op": "Softmax", "inputs": ["h2b"]},
    ],
    "outputs": ["probs"],
}


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    graph = from_model_dict(SIMPLE_MLP)
    print("Input graph:")
    print(graph.summary())

    results = Pipeline().run(graph)

    previous = graph
    for result in results:
        m = compute_metrics(result.graph)
        diff = compute_graph_diff(previous, result.graph)
        print(f"\n== {result.pass_name} ==")
        print(
            f"  nodes={m.node_count} edges={m.edge_count} depth={m.depth} "
            f"flops={format_flops(m.total_flops)} memory={format_bytes(m.total_memory_bytes)}"
        )
        print(
            f"  +{len(diff.added_nodes)} / -{len(diff.removed_nodes)} nodes, "
            f"+{len(diff.added_edges)} / -{len(diff.removed_edges)} edges"
        )
        previous = result.graph

    final = results[-1].graph
    print("\nOptimized graph:")
    print(final.summary())
    plan = final.metadata.memory_plan
    if plan is not None:
        print(
            f"\nPeak memory {format_bytes(plan.peak_bytes)} "
            f"({plan.in_place_count} in-place op(s))"
        )


if __name__ == "__main__":
    main()
