from .base import OptimizationPass, PassResult, Pipeline, default_passes, run_pass, run_pipeline
from .constant_folding import ConstantFoldingPass, FoldOrigin, fold_constants
from .dce import DeadCodeEliminationPass, eliminate_dead_code
from .fusion import DEFAULT_PATTERNS, FusedOrigin, FusionPass, FusionPattern, find_chain, fuse_chain
from .memory_planning import MemoryPlanningPass
from .shape_inference import ShapeInferencePass, infer_shapes

__all__ = [
    "OptimizationPass",
    "PassResult",
    "Pipeline",
    "default_passes",
    "run_pass",
    "run_pipeline",
    "ShapeInferencePass",
    "infer_shapes",
    "ConstantFoldingPass",
    "FoldOrigin",
    "fold_constants",
    "DeadCodeEliminationPass",
    "eliminate_dead_code",
    "FusionPass",
    "FusionPattern",
    "FusedOrigin",
    "DEFAULT_PATTERNS",
    "find_chain",
    "fuse_chain",
    "MemoryPlanningPass",
]
