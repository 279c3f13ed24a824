from __future__ import annotations

import sys
from pathlib import Path

repo_root = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(repo_root / "src"))

from graphopt.ir import Graph, GraphBuilder, OpKind
from graphopt.memory import compute_memory_plan, format_plan
from graphopt.passes import (
    ConstantFoldingPass,
    DeadCodeEliminationPass,
    FusionPass,
    MemoryPlanningPass,
    ShapeInferencePass,
    run_pipeline,
)


def build_resnet_block(channels: int = 64, size: int = 56) -> Graph:
    b = GraphBuilder("ResNetBlock")
    x = b.input("x", (1, channels, size, size))

    h = b.conv2d(x, filters=channels, kernel=3, padding=1, name="conv1")
    h = b.batch_norm(h, name="bn1")
    h = b.relu(h, name="relu1")

    h = b.conv2d(h, filters=channels, kernel=3, padding=1, name="conv2")
    h = b.batch_norm(h, name="bn2")

    h = b.add(h, x, name="residual")
    h = b.relu(h, name="relu2")
    b.output(h)
    return b.build()


def main() -> None:
    graph = build_resnet_block()
    passes = [
        ShapeInferencePass(),
        ConstantFoldingPass(),
        DeadCodeEliminationPass(),
        FusionPass(),
        MemoryPlanningPass(reuse_freed=True),
    ]
    results = run_pipeline(graph, passes)
    final = results[-1].graph

    print(f"Original: {len(graph.nodes)} nodes")
    print(f"Fused:    {len(final.nodes)} nodes")
    for node in final.topological_sort():
        origins = node.annotations.get("fused_from")
        if origins:
            print(f"- {node.name}: {node.op} <- {' + '.join(o.op.value for o in origins)}")
        elif node.op is not OpKind.INPUT:
            print(f"- {node.name} ({node.op})")

    for reuse in (False, True):
        plan = compute_memory_plan(final, reuse_freed=reuse)
        print(f"\nMemory plan (reuse_freed={reuse}):")
        print(format_plan(plan, final))


if __name__ == "__main__":
    main()
