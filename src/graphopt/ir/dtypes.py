from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

import numpy as np


Shape = tuple[int, ...]


class ElementType(str, Enum):
    """Scalar element kind of an IR tensor.

    Byte widths are taken from numpy's dtype table so they always agree with
    what a numpy-backed producer would allocate.
    """

    FLOAT32 = "float32"
    FLOAT16 = "float16"
    INT32 = "int32"
    INT64 = "int64"
    INT8 = "int8"
    UINT8 = "uint8"
    BOOL = "bool"

    @property
    def itemsize(self) -> int:
        return int(np.dtype(self.value).itemsize)

    def __str__(self) -> str:
        return self.value


float32 = ElementType.FLOAT32
float16 = ElementType.FLOAT16
int32 = ElementType.INT32
int64 = ElementType.INT64
int8 = ElementType.INT8
uint8 = ElementType.UINT8
bool_ = ElementType.BOOL


def as_shape(dims: Iterable[int]) -> Shape:
    shape = tuple(int(d) for d in dims)
    for d in shape:
        if d < 0:
            raise ValueError(f"Negative dimension in shape {list(shape)}")
    return shape


def shape_to_string(shape: Shape) -> str:
    return f"[{', '.join(str(d) for d in shape)}]"


@dataclass(frozen=True, slots=True)
class TensorType:
    """Element kind + shape of a value flowing along an edge."""

    dtype: ElementType
    shape: Shape

    def __post_init__(self) -> None:
        object.__setattr__(self, "dtype", ElementType(self.dtype))
        object.__setattr__(self, "shape", as_shape(self.shape))

    @property
    def rank(self) -> int:
        return len(self.shape)

    @property
    def numel(self) -> int:
        return int(np.prod(self.shape, dtype=np.int64))

    @property
    def nbytes(self) -> int:
        return self.numel * self.dtype.itemsize

    def with_shape(self, shape: Iterable[int]) -> TensorType:
        return TensorType(self.dtype, as_shape(shape))

    def __str__(self) -> str:
        return f"Tensor<{self.dtype}>{shape_to_string(self.shape)}"
