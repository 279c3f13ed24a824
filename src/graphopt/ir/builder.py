"""Producer-side helpers that assemble well-formed graphs.

Passes never call into this module; it exists so callers (examples, tests, a
declarative-format frontend) have one place that enforces the registry's
arity bounds and port conventions at construction time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Union

from .dtypes import ElementType, TensorType, float32
from .graph import Edge, Graph, GraphValidationError, Node, Port, PortRef, create_graph
from .ids import gen_id
from .ops import OpKind, op_spec


Source = Union[str, PortRef, tuple[str, int]]


def _parse_kind(op: OpKind | str) -> OpKind:
    try:
        return OpKind(op)
    except ValueError:
        raise GraphValidationError(f"Unknown operator kind {op!r}") from None


def _parse_tensor_type(value: object) -> TensorType | None:
    if value is None or isinstance(value, TensorType):
        return value
    if isinstance(value, Mapping):
        return TensorType(ElementType(value.get("dtype", "float32")), tuple(value["shape"]))
    raise TypeError(f"Cannot interpret {value!r} as a tensor type")


def make_node(
    kind: OpKind,
    name: str,
    num_inputs: int,
    *,
    tensor_type: TensorType | None = None,
    attrs: Mapping[str, object] | None = None,
) -> Node:
    """Create a node with ports laid out per the registry.

    Raises GraphValidationError when `num_inputs` is outside the kind's
    declared arity.
    """
    spec = op_spec(kind)
    if not spec.accepts(num_inputs):
        raise GraphValidationError(
            f"{kind.value} {name!r} expects {spec.min_inputs}..{spec.max_inputs} inputs, "
            f"got {num_inputs}"
        )

    if kind is OpKind.OUTPUT:
        inputs = (Port("input"),)
    else:
        inputs = tuple(Port(f"input_{i}") for i in range(num_inputs))

    if spec.num_outputs == 1:
        outputs = (Port("output", tensor_type),)
    else:
        outputs = tuple(Port(f"output_{i}", tensor_type) for i in range(spec.num_outputs))

    return Node(
        id=gen_id("n"),
        op=kind,
        name=name,
        inputs=inputs,
        outputs=outputs,
        attrs=dict(attrs or {}),
    )


@dataclass
class GraphBuilder:
    """Incrementally build a graph; every method returns the new node's id.

    Example:
        >>> b = GraphBuilder("mlp")
        >>> x = b.input("x", (1, 784))
        >>> w = b.constant("w", (784, 128))
        >>> y = b.relu(b.matmul(x, w))
        >>> _ = b.output(y)
        >>> graph = b.build()
    """

    name: str = "graph"
    description: str = ""
    _graph: Graph = field(init=False, repr=False)
    _name_counters: dict[str, int] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        self._graph = create_graph(self.name, self.description)

    def _fresh_name(self, prefix: str) -> str:
        n = self._name_counters.get(prefix, 0) + 1
        self._name_counters[prefix] = n
        return f"{prefix}{n}"

    def _resolve(self, source: Source) -> PortRef:
        ref = PortRef(source) if isinstance(source, str) else PortRef(*source)
        if ref.node_id not in self._graph.nodes:
            raise GraphValidationError(f"Unknown source node {ref.node_id!r}")
        return ref

    def _add(
        self,
        kind: OpKind,
        inputs: Iterable[Source],
        *,
        name: str | None,
        tensor_type: TensorType | None = None,
        attrs: Mapping[str, object] | None = None,
    ) -> str:
        refs = [self._resolve(src) for src in inputs]
        node = make_node(
            kind,
            name or self._fresh_name(kind.value.lower()),
            len(refs),
            tensor_type=tensor_type,
            attrs={k: v for k, v in (attrs or {}).items() if v is not None},
        )
        graph = self._graph.add_node(node)
        for i, ref in enumerate(refs):
            graph = graph.add_edge(Edge(gen_id("e"), ref, PortRef(node.id, i)))
        self._graph = graph
        return node.id

    def build(self) -> Graph:
        return self._graph

    # ------------------------------------------------------------------
    # Sources and sinks
    # ------------------------------------------------------------------

    def input(self, name: str, shape: Iterable[int], dtype: ElementType = float32) -> str:
        return self._add(OpKind.INPUT, (), name=name, tensor_type=TensorType(dtype, tuple(shape)))

    def constant(
        self,
        name: str | None = None,
        shape: Iterable[int] | None = None,
        dtype: ElementType = float32,
    ) -> str:
        tensor_type = TensorType(dtype, tuple(shape)) if shape is not None else None
        return self._add(OpKind.CONSTANT, (), name=name, tensor_type=tensor_type)

    def output(self, source: Source, *, name: str | None = None) -> str:
        ref = self._resolve(source)
        label = name or f"output_{self._graph.nodes[ref.node_id].name}"
        return self._add(OpKind.OUTPUT, (ref,), name=label)

    # ------------------------------------------------------------------
    # Operators
    # ------------------------------------------------------------------

    def op(self, kind: OpKind | str, *inputs: Source, name: str | None = None, **attrs: object) -> str:
        return self._add(_parse_kind(kind), inputs, name=name, attrs=attrs)

    def matmul(self, a: Source, b: Source, *, name: str | None = None) -> str:
        return self.op(OpKind.MATMUL, a, b, name=name)

    def add(self, a: Source, b: Source, *, name: str | None = None) -> str:
        return self.op(OpKind.ADD, a, b, name=name)

    def mul(self, a: Source, b: Source, *, name: str | None = None) -> str:
        return self.op(OpKind.MUL, a, b, name=name)

    def conv2d(
        self,
        x: Source,
        *,
        filters: int | None = None,
        kernel: int = 3,
        stride: int = 1,
        padding: int = 0,
        name: str | None = None,
    ) -> str:
        return self.op(
            OpKind.CONV2D, x, name=name, filters=filters, kernel=kernel, stride=stride, padding=padding
        )

    def batch_norm(self, x: Source, *, name: str | None = None) -> str:
        return self.op(OpKind.BATCH_NORM, x, name=name)

    def layer_norm(self, x: Source, *, name: str | None = None) -> str:
        return self.op(OpKind.LAYER_NORM, x, name=name)

    def relu(self, x: Source, *, name: str | None = None) -> str:
        return self.op(OpKind.RELU, x, name=name)

    def gelu(self, x: Source, *, name: str | None = None) -> str:
        return self.op(OpKind.GELU, x, name=name)

    def softmax(self, x: Source, *, name: str | None = None) -> str:
        return self.op(OpKind.SOFTMAX, x, name=name)

    def flatten(self, x: Source, *, name: str | None = None) -> str:
        return self.op(OpKind.FLATTEN, x, name=name)


def from_model_dict(model: Mapping[str, Any]) -> Graph:
    """Build a graph from a plain-data model description.

    Expected layout::

        {
            "name": "SimpleMLP",
            "description": "...",                    # optional
            "nodes": [
                {"name": "x", "op": "Input",
                 "tensor_type": {"dtype": "float32", "shape": [1, 784]}},
                {"name": "h", "op": "MatMul", "inputs": ["x", "w"],
                 "attributes": {...}},
                ...
            ],
            "outputs": ["h"],                        # optional
        }

    Nodes may reference nodes defined later in the list. Referencing an
    undefined name or breaking an arity bound raises GraphValidationError.
    """
    graph = create_graph(str(model.get("name", "graph")), str(model.get("description", "")))
    defs = list(model.get("nodes", ()))
    name_to_id: dict[str, str] = {}

    for definition in defs:
        node_name = str(definition["name"])
        if node_name in name_to_id:
            raise GraphValidationError(f"Duplicate node name {node_name!r}")
        node = make_node(
            _parse_kind(definition["op"]),
            node_name,
            len(definition.get("inputs", ())),
            tensor_type=_parse_tensor_type(definition.get("tensor_type")),
            attrs=definition.get("attributes") or {},
        )
        graph = graph.add_node(node)
        name_to_id[node_name] = node.id

    for definition in defs:
        target_id = name_to_id[str(definition["name"])]
        for index, source_name in enumerate(definition.get("inputs", ())):
            source_id = name_to_id.get(source_name)
            if source_id is None:
                raise GraphValidationError(
                    f"{definition['name']!r} references unknown node {source_name!r}"
                )
            graph = graph.add_edge(Edge(gen_id("e"), PortRef(source_id), PortRef(target_id, index)))

    for out_name in model.get("outputs", ()):
        source_id = name_to_id.get(out_name)
        if source_id is None:
            raise GraphValidationError(f"Output references unknown node {out_name!r}")
        sink = make_node(OpKind.OUTPUT, f"output_{out_name}", 1)
        graph = graph.add_node(sink)
        graph = graph.add_edge(Edge(gen_id("e"), PortRef(source_id), PortRef(sink.id, 0)))

    return graph
