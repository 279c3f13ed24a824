"""Read-only cost and size summaries of a graph snapshot."""

from __future__ import annotations

import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable

from graphopt.ir import Graph, op_spec

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class GraphMetrics:
    node_count: int
    edge_count: int
    op_counts: dict[str, int] = field(default_factory=dict)
    total_flops: int = 0
    total_params: int = 0
    total_memory_bytes: int = 0
    depth: int = 0

    def format(self, *, indent: str = "  ") -> str:
        ops = ", ".join(f"{op}={n}" for op, n in sorted(self.op_counts.items()))
        return "\n".join([
            f"{indent}Nodes:  {self.node_count}",
            f"{indent}Edges:  {self.edge_count}",
            f"{indent}Depth:  {self.depth}",
            f"{indent}FLOPs:  {format_flops(self.total_flops)}",
            f"{indent}Params: {self.total_params:,}",
            f"{indent}Memory: {format_bytes(self.total_memory_bytes)}",
            f"{indent}Ops:    {ops}",
        ])


def compute_metrics(graph: Graph) -> GraphMetrics:
    """Count ops, estimate FLOPs/params and measure depth.

    Cost formulas live on each kind's OpSpec and read the typed input ports;
    an untyped input contributes a dimension of 1, an untyped output costs 0.
    """
    op_counts: Counter[str] = Counter()
    total_flops = 0
    total_params = 0
    total_memory = 0

    for node in graph.nodes.values():
        op_counts[node.op.value] += 1
        spec = op_spec(node.op)
        inputs = [port.tensor_type for port in node.inputs]
        output = node.output_type
        total_flops += spec.estimate_flops(node, inputs, output)
        total_params += spec.estimate_params(node, inputs, output)
        if output is not None:
            total_memory += output.nbytes

    # Longest path, one forward sweep over the topological order.
    incoming = graph.incoming_index()
    depths: dict[str, int] = {}
    max_depth = 0
    for node in graph.topological_sort():
        preds = [e.source.node_id for e in incoming.get(node.id, ())]
        depth = max((depths.get(p, 0) + 1 for p in preds), default=0)
        depths[node.id] = depth
        max_depth = max(max_depth, depth)

    return GraphMetrics(
        node_count=len(graph.nodes),
        edge_count=len(graph.edges),
        op_counts=dict(op_counts),
        total_flops=int(total_flops),
        total_params=int(total_params),
        total_memory_bytes=int(total_memory),
        depth=max_depth,
    )


def compute_metrics_many(graphs: Iterable[Graph], max_workers: int | None = None) -> list[GraphMetrics]:
    """Metrics for independent snapshots, computed concurrently, in input order."""
    graphs = list(graphs)
    if not graphs:
        return []
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        results = list(pool.map(compute_metrics, graphs))
    logger.debug("Computed metrics for %d snapshot(s)", len(results))
    return results


def format_bytes(num_bytes: int) -> str:
    if num_bytes < 1024:
        return f"{num_bytes} B"
    if num_bytes < 1024**2:
        return f"{num_bytes / 1024:.1f} KB"
    if num_bytes < 1024**3:
        return f"{num_bytes / 1024**2:.1f} MB"
    return f"{num_bytes / 1024**3:.2f} GB"


def format_flops(flops: int) -> str:
    if flops < 1e3:
        return f"{flops}"
    if flops < 1e6:
        return f"{flops / 1e3:.1f}K"
    if flops < 1e9:
        return f"{flops / 1e6:.1f}M"
    if flops < 1e12:
        return f"{flops / 1e9:.1f}G"
    return f"{flops / 1e12:.2f}T"
