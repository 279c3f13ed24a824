"""graphopt: a compiler-style optimizer for neural-network computation graphs.

Graphs are immutable values. Each pass maps a Graph to a new Graph, so every
intermediate snapshot of a pipeline run stays inspectable.
"""

from .analysis import GraphDiff, GraphMetrics, compute_graph_diff, compute_metrics
from .ir import (
    ElementType,
    Graph,
    GraphBuilder,
    GraphValidationError,
    OpKind,
    TensorType,
    create_graph,
    from_model_dict,
    reset_id_counter,
)
from .passes import Pipeline, PassResult, default_passes, run_pass, run_pipeline

__all__ = [
    "ElementType",
    "Graph",
    "GraphBuilder",
    "GraphValidationError",
    "OpKind",
    "TensorType",
    "create_graph",
    "from_model_dict",
    "reset_id_counter",
    "Pipeline",
    "PassResult",
    "default_passes",
    "run_pass",
    "run_pipeline",
    "GraphDiff",
    "GraphMetrics",
    "compute_graph_diff",
    "compute_metrics",
]
