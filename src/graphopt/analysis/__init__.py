from .diff import GraphDiff, compute_graph_diff
from .metrics import GraphMetrics, compute_metrics, compute_metrics_many, format_bytes, format_flops

__all__ = [
    "GraphDiff",
    "compute_graph_diff",
    "GraphMetrics",
    "compute_metrics",
    "compute_metrics_many",
    "format_bytes",
    "format_flops",
]
