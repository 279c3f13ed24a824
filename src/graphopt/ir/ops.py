"""Operator kinds and their static semantics.

Every operator kind maps to one `OpSpec` carrying its arity bounds and the
formulas passes need: output type inference, FLOP estimate and parameter
estimate.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Mapping, Optional, Sequence

from .dtypes import TensorType

if TYPE_CHECKING:
    from .graph import Node


class OpKind(str, Enum):
    INPUT = "Input"
    OUTPUT = "Output"
    CONSTANT = "Constant"
    MATMUL = "MatMul"
    ADD = "Add"
    MUL = "Mul"
    CONV2D = "Conv2D"
    BATCH_NORM = "BatchNorm"
    LAYER_NORM = "LayerNorm"
    RELU = "ReLU"
    GELU = "GELU"
    SIGMOID = "Sigmoid"
    SOFTMAX = "Softmax"
    MAX_POOL2D = "MaxPool2D"
    AVG_POOL2D = "AvgPool2D"
    GLOBAL_AVG_POOL = "GlobalAvgPool"
    RESHAPE = "Reshape"
    TRANSPOSE = "Transpose"
    FLATTEN = "Flatten"
    CONCAT = "Concat"
    SPLIT = "Split"
    REDUCE_SUM = "ReduceSum"
    REDUCE_MEAN = "ReduceMean"
    FUSED_CONV_BN_RELU = "FusedConvBNReLU"
    FUSED_LINEAR = "FusedLinear"
    FUSED_MATMUL_ADD = "FusedMatMulAdd"

    def __str__(self) -> str:
        return self.value


class Category(str, Enum):
    IO = "io"
    LINEAR = "linear"
    CONV = "conv"
    NORM = "norm"
    ACTIVATION = "activation"
    POOL = "pool"
    SHAPE = "shape"
    REDUCE = "reduce"
    FUSED = "fused"


InputTypes = Sequence[Optional[TensorType]]


def _int_attr(node: Node, key: str, default: int) -> int:
    value = node.attrs.get(key)
    if value is None:
        return default
    return int(value)


def _int_tuple_attr(node: Node, key: str) -> tuple[int, ...] | None:
    """Read an int sequence; accepts "0,2,1" strings from declarative sources.

    Returns None when the attribute is absent or not a list of integers.
    """
    value = node.attrs.get(key)
    if value is None:
        return None
    try:
        if isinstance(value, str):
            parts = value.strip("[]() ").split(",")
            return tuple(int(p) for p in parts if p.strip())
        if isinstance(value, (int, float)):
            return (int(value),)
        return tuple(int(v) for v in value)
    except (TypeError, ValueError):
        return None


def _first(inputs: InputTypes) -> TensorType | None:
    return inputs[0] if inputs else None


def _axis(axis: int, rank: int) -> int | None:
    if axis < 0:
        axis += rank
    return axis if 0 <= axis < rank else None


def _resolve_target(target: tuple[int, ...], numel: int) -> tuple[int, ...] | None:
    """Fill a single -1 in a reshape target from the element count."""
    if any(d < -1 for d in target):
        return None
    unknown = [i for i, d in enumerate(target) if d == -1]
    if not unknown:
        return target
    if len(unknown) > 1:
        return None
    known = 1
    for d in target:
        if d != -1:
            known *= d
    if known == 0 or numel % known:
        return None
    resolved = list(target)
    resolved[unknown[0]] = numel // known
    return tuple(resolved)


def _dim(t: TensorType | None, axis: int, default: int = 1) -> int:
    if t is None or t.rank == 0:
        return default
    try:
        return t.shape[axis]
    except IndexError:
        return default


@dataclass(frozen=True, slots=True)
class OpSpec:
    """Static signature of an operator kind.

    The base class is the fallback for kinds with no dedicated formula:
    output type is the first input's type, cost and parameters are zero.
    """

    min_inputs: int
    max_inputs: int
    num_outputs: int
    description: str
    category: Category
    in_place: bool = False

    def accepts(self, num_inputs: int) -> bool:
        return self.min_inputs <= num_inputs <= self.max_inputs

    def infer_output(self, node: Node, inputs: InputTypes) -> TensorType | None:
        return _first(inputs)

    def estimate_flops(self, node: Node, inputs: InputTypes, output: TensorType | None) -> int:
        return 0

    def estimate_params(self, node: Node, inputs: InputTypes, output: TensorType | None) -> int:
        return 0


@dataclass(frozen=True, slots=True)
class SourceSpec(OpSpec):
    """Input / Constant: the type is whatever the producer declared."""

    def infer_output(self, node: Node, inputs: InputTypes) -> TensorType | None:
        return node.output_type


@dataclass(frozen=True, slots=True)
class ConvSpec(OpSpec):
    """NCHW 2D convolution: (in + 2*padding - kernel) // stride + 1."""

    def infer_output(self, node: Node, inputs: InputTypes) -> TensorType | None:
        x = _first(inputs)
        if x is None or x.rank != 4:
            return None
        n, c, h, w = x.shape
        filters = _int_attr(node, "filters", c)
        kernel = _int_attr(node, "kernel", 3)
        stride = _int_attr(node, "stride", 1)
        padding = _int_attr(node, "padding", 0)
        if stride <= 0 or filters < 0:
            return None
        out_h = max(0, (h + 2 * padding - kernel) // stride + 1)
        out_w = max(0, (w + 2 * padding - kernel) // stride + 1)
        return x.with_shape((n, filters, out_h, out_w))

    def estimate_flops(self, node: Node, inputs: InputTypes, output: TensorType | None) -> int:
        if output is None:
            return 0
        in_c = _dim(_first(inputs), 1)
        k = _int_attr(node, "kernel", 3)
        return output.numel * in_c * k * k * 2

    def estimate_params(self, node: Node, inputs: InputTypes, output: TensorType | None) -> int:
        in_c = _dim(_first(inputs), 1)
        out_c = _int_attr(node, "filters", in_c)
        k = _int_attr(node, "kernel", 3)
        return out_c * in_c * k * k + out_c


@dataclass(frozen=True, slots=True)
class MatMulSpec(OpSpec):
    """(..., M, K) @ (K, N) -> (..., M, N).

    Only the left operand is required. Without a typed right operand (a
    single-operand FusedLinear, or an untyped weight Constant) the left type
    passes through.
    """

    def infer_output(self, node: Node, inputs: InputTypes) -> TensorType | None:
        a = _first(inputs)
        if a is None:
            return None
        b = inputs[1] if len(inputs) > 1 else None
        if b is None:
            return a
        if a.rank == 0 or b.rank == 0:
            return None
        return a.with_shape(a.shape[:-1] + (b.shape[-1],))

    def estimate_flops(self, node: Node, inputs: InputTypes, output: TensorType | None) -> int:
        if output is None:
            return 0
        k = _dim(_first(inputs), -1)
        return output.numel * k * 2

    def estimate_params(self, node: Node, inputs: InputTypes, output: TensorType | None) -> int:
        in_features = _dim(_first(inputs), -1)
        out_features = _dim(output, -1)
        return in_features * out_features + out_features


@dataclass(frozen=True, slots=True)
class NormSpec(OpSpec):
    def estimate_flops(self, node: Node, inputs: InputTypes, output: TensorType | None) -> int:
        return output.numel * 4 if output is not None else 0

    def estimate_params(self, node: Node, inputs: InputTypes, output: TensorType | None) -> int:
        # gamma, beta, running mean, running var
        return _dim(_first(inputs), 1) * 4


@dataclass(frozen=True, slots=True)
class ElementwiseSpec(OpSpec):
    def estimate_flops(self, node: Node, inputs: InputTypes, output: TensorType | None) -> int:
        return output.numel if output is not None else 0


@dataclass(frozen=True, slots=True)
class SoftmaxSpec(OpSpec):
    def estimate_flops(self, node: Node, inputs: InputTypes, output: TensorType | None) -> int:
        # exp, sum, div
        return output.numel * 3 if output is not None else 0


@dataclass(frozen=True, slots=True)
class PoolSpec(OpSpec):
    def infer_output(self, node: Node, inputs: InputTypes) -> TensorType | None:
        x = _first(inputs)
        if x is None or x.rank != 4:
            return None
        n, c, h, w = x.shape
        kernel = _int_attr(node, "kernel", 2)
        stride = _int_attr(node, "stride", kernel)
        if stride <= 0:
            return None
        return x.with_shape((n, c, h // stride, w // stride))


@dataclass(frozen=True, slots=True)
class GlobalPoolSpec(OpSpec):
    def infer_output(self, node: Node, inputs: InputTypes) -> TensorType | None:
        x = _first(inputs)
        if x is None or x.rank < 2:
            return x
        return x.with_shape(x.shape[:2] + (1,) * (x.rank - 2))


@dataclass(frozen=True, slots=True)
class FlattenSpec(OpSpec):
    def infer_output(self, node: Node, inputs: InputTypes) -> TensorType | None:
        x = _first(inputs)
        if x is None or x.rank == 0:
            return x
        rest = 1
        for d in x.shape[1:]:
            rest *= d
        return x.with_shape((x.shape[0], rest))


@dataclass(frozen=True, slots=True)
class ReshapeSpec(OpSpec):
    def infer_output(self, node: Node, inputs: InputTypes) -> TensorType | None:
        x = _first(inputs)
        if x is None or "shape" not in node.attrs:
            return x
        target = _int_tuple_attr(node, "shape")
        if target is None:
            return None
        resolved = _resolve_target(target, x.numel)
        return x.with_shape(resolved) if resolved is not None else None


@dataclass(frozen=True, slots=True)
class TransposeSpec(OpSpec):
    def infer_output(self, node: Node, inputs: InputTypes) -> TensorType | None:
        x = _first(inputs)
        if x is None:
            return None
        if "perm" not in node.attrs:
            return x.with_shape(reversed(x.shape))
        perm = _int_tuple_attr(node, "perm")
        if perm is None or sorted(perm) != list(range(x.rank)):
            return None
        return x.with_shape(x.shape[i] for i in perm)


@dataclass(frozen=True, slots=True)
class ConcatSpec(OpSpec):
    """Untyped inputs after the first contribute nothing along the axis."""

    def infer_output(self, node: Node, inputs: InputTypes) -> TensorType | None:
        x = _first(inputs)
        if x is None:
            return None
        axis = _axis(_int_attr(node, "axis", 0), x.rank)
        if axis is None:
            return None
        shape = list(x.shape)
        shape[axis] = 0
        for t in inputs:
            if t is None:
                continue
            if t.rank != x.rank:
                return None
            shape[axis] += t.shape[axis]
        return x.with_shape(shape)


@dataclass(frozen=True, slots=True)
class ReduceSpec(OpSpec):
    def infer_output(self, node: Node, inputs: InputTypes) -> TensorType | None:
        x = _first(inputs)
        if x is None:
            return None
        if x.rank == 0:
            return x.with_shape((1,))
        axis = _axis(_int_attr(node, "axis", -1), x.rank)
        if axis is None:
            return None
        shape = tuple(d for i, d in enumerate(x.shape) if i != axis)
        return x.with_shape(shape or (1,))


_REGISTRY: dict[OpKind, OpSpec] = {
    OpKind.INPUT: SourceSpec(0, 0, 1, "Model input tensor", Category.IO),
    OpKind.OUTPUT: OpSpec(1, 1, 0, "Model output tensor", Category.IO),
    OpKind.CONSTANT: SourceSpec(0, 0, 1, "Constant tensor value", Category.IO),
    OpKind.MATMUL: MatMulSpec(2, 2, 1, "Matrix multiplication", Category.LINEAR),
    OpKind.ADD: ElementwiseSpec(2, 2, 1, "Element-wise addition", Category.LINEAR),
    OpKind.MUL: ElementwiseSpec(2, 2, 1, "Element-wise multiplication", Category.LINEAR),
    OpKind.CONV2D: ConvSpec(1, 3, 1, "2D convolution", Category.CONV),
    OpKind.BATCH_NORM: NormSpec(1, 1, 1, "Batch normalization", Category.NORM, in_place=True),
    OpKind.LAYER_NORM: NormSpec(1, 1, 1, "Layer normalization", Category.NORM, in_place=True),
    OpKind.RELU: ElementwiseSpec(1, 1, 1, "Rectified linear unit", Category.ACTIVATION, in_place=True),
    OpKind.GELU: ElementwiseSpec(1, 1, 1, "Gaussian error linear unit", Category.ACTIVATION, in_place=True),
    OpKind.SIGMOID: ElementwiseSpec(1, 1, 1, "Sigmoid activation", Category.ACTIVATION, in_place=True),
    OpKind.SOFTMAX: SoftmaxSpec(1, 1, 1, "Softmax normalization", Category.ACTIVATION),
    OpKind.MAX_POOL2D: PoolSpec(1, 1, 1, "2D max pooling", Category.POOL),
    OpKind.AVG_POOL2D: PoolSpec(1, 1, 1, "2D average pooling", Category.POOL),
    OpKind.GLOBAL_AVG_POOL: GlobalPoolSpec(1, 1, 1, "Global average pooling", Category.POOL),
    OpKind.RESHAPE: ReshapeSpec(1, 1, 1, "Reshape tensor", Category.SHAPE),
    OpKind.TRANSPOSE: TransposeSpec(1, 1, 1, "Transpose tensor dimensions", Category.SHAPE),
    OpKind.FLATTEN: FlattenSpec(1, 1, 1, "Flatten tensor to 2D", Category.SHAPE),
    OpKind.CONCAT: ConcatSpec(2, 16, 1, "Concatenate tensors", Category.SHAPE),
    OpKind.SPLIT: OpSpec(1, 1, 4, "Split tensor", Category.SHAPE),
    OpKind.REDUCE_SUM: ReduceSpec(1, 1, 1, "Sum reduction", Category.REDUCE),
    OpKind.REDUCE_MEAN: ReduceSpec(1, 1, 1, "Mean reduction", Category.REDUCE),
    OpKind.FUSED_CONV_BN_RELU: ConvSpec(1, 3, 1, "Fused Conv2D + BatchNorm + ReLU", Category.FUSED),
    OpKind.FUSED_LINEAR: MatMulSpec(1, 1, 1, "Fused MatMul + Add (linear layer)", Category.FUSED),
    OpKind.FUSED_MATMUL_ADD: MatMulSpec(2, 3, 1, "Fused MatMul + Add", Category.FUSED),
}

OP_REGISTRY: Mapping[OpKind, OpSpec] = MappingProxyType(_REGISTRY)


def op_spec(kind: OpKind | str) -> OpSpec:
    return OP_REGISTRY[OpKind(kind)]
