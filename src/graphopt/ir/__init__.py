from .builder import GraphBuilder, from_model_dict
from .dtypes import ElementType, Shape, TensorType, float32
from .graph import (
    Edge,
    Graph,
    GraphMetadata,
    GraphValidationError,
    MemorySummary,
    Node,
    PassRecord,
    Port,
    PortRef,
    create_graph,
)
from .ids import gen_id, reset_id_counter
from .ops import OP_REGISTRY, Category, OpKind, OpSpec, op_spec

__all__ = [
    "ElementType",
    "Shape",
    "TensorType",
    "float32",
    "Edge",
    "Graph",
    "GraphMetadata",
    "GraphValidationError",
    "MemorySummary",
    "Node",
    "PassRecord",
    "Port",
    "PortRef",
    "create_graph",
    "gen_id",
    "reset_id_counter",
    "OP_REGISTRY",
    "Category",
    "OpKind",
    "OpSpec",
    "op_spec",
    "GraphBuilder",
    "from_model_dict",
]
