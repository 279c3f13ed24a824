from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from typing import Mapping, NamedTuple, Union

import numpy as np

from .dtypes import TensorType
from .ids import gen_id
from .ops import OpKind


class GraphValidationError(ValueError):
    pass


AttrValue = Union[bool, int, float, str, tuple]


def freeze_attr(value: object) -> AttrValue:
    if isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, (list, tuple, np.ndarray)):
        return tuple(freeze_attr(v) for v in value)
    raise TypeError(f"Unsupported attribute value of type {type(value).__name__}: {value!r}")


def freeze_attrs(attrs: Mapping[str, object]) -> dict[str, AttrValue]:
    return {str(key): freeze_attr(value) for key, value in attrs.items()}


@dataclass(frozen=True, slots=True)
class Port:
    name: str
    tensor_type: TensorType | None = None

    def with_type(self, tensor_type: TensorType | None) -> Port:
        return Port(self.name, tensor_type)


class PortRef(NamedTuple):
    """(node id, port index) endpoint of an edge."""

    node_id: str
    index: int = 0


@dataclass(frozen=True, slots=True)
class Node:
    """One operation in the graph.

    `attrs` holds user-facing operator parameters (kernel size, axis, ...).
    `annotations` is the side-table passes write their results into; it never
    feeds back into operator semantics.
    """

    id: str
    op: OpKind
    name: str
    inputs: tuple[Port, ...] = ()
    outputs: tuple[Port, ...] = ()
    attrs: dict[str, AttrValue] = field(default_factory=dict)
    annotations: dict[str, object] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "op", OpKind(self.op))
        object.__setattr__(self, "inputs", tuple(self.inputs))
        object.__setattr__(self, "outputs", tuple(self.outputs))
        object.__setattr__(self, "attrs", freeze_attrs(self.attrs))
        object.__setattr__(self, "annotations", dict(self.annotations))

    @property
    def output_type(self) -> TensorType | None:
        return self.outputs[0].tensor_type if self.outputs else None

    def evolve(self, **changes: object) -> Node:
        return replace(self, **changes)

    def annotate(self, **items: object) -> Node:
        return replace(self, annotations={**self.annotations, **items})


@dataclass(frozen=True, slots=True)
class Edge:
    id: str
    source: PortRef
    target: PortRef
    tensor_type: TensorType | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "source", PortRef(*self.source))
        object.__setattr__(self, "target", PortRef(*self.target))

    def with_source(self, node_id: str, index: int | None = None) -> Edge:
        idx = self.source.index if index is None else index
        return replace(self, source=PortRef(node_id, idx))

    def with_target(self, node_id: str, index: int | None = None) -> Edge:
        idx = self.target.index if index is None else index
        return replace(self, target=PortRef(node_id, idx))

    def with_type(self, tensor_type: TensorType | None) -> Edge:
        return replace(self, tensor_type=tensor_type)


@dataclass(frozen=True, slots=True)
class PassRecord:
    name: str
    description: str
    timestamp: float


@dataclass(frozen=True, slots=True)
class MemorySummary:
    """Whole-graph result of memory planning."""

    peak_bytes: int
    total_tensor_bytes: int
    in_place_count: int


@dataclass(frozen=True, slots=True)
class GraphMetadata:
    name: str = "graph"
    description: str = ""
    pass_history: tuple[PassRecord, ...] = ()
    memory_plan: MemorySummary | None = None


_GRAY = 1
_BLACK = 2


@dataclass(frozen=True, slots=True)
class Graph:
    """Immutable dataflow graph.

    Design choices:
    - Every mutator returns a new Graph; Node and Edge values are shared with
      the previous snapshot, only the containers are copied.
    - Edges are the only record of dependencies. Nodes carry no adjacency, so
      all traversal goes through `edges`.
    - `nodes` keeps insertion order; `edges` order is significant for diffing.
    """

    id: str
    nodes: dict[str, Node] = field(default_factory=dict)
    edges: tuple[Edge, ...] = ()
    metadata: GraphMetadata = field(default_factory=GraphMetadata)

    def __post_init__(self) -> None:
        object.__setattr__(self, "nodes", dict(self.nodes))
        object.__setattr__(self, "edges", tuple(self.edges))

    @property
    def name(self) -> str:
        return self.metadata.name

    def evolve(
        self,
        *,
        nodes: Mapping[str, Node] | None = None,
        edges: tuple[Edge, ...] | list[Edge] | None = None,
        metadata: GraphMetadata | None = None,
    ) -> Graph:
        return Graph(
            id=self.id,
            nodes=self.nodes if nodes is None else nodes,
            edges=self.edges if edges is None else edges,
            metadata=self.metadata if metadata is None else metadata,
        )

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def add_node(self, node: Node) -> Graph:
        if node.id in self.nodes:
            raise GraphValidationError(f"Duplicate node id: {node.id}")
        return self.evolve(nodes={**self.nodes, node.id: node})

    def replace_node(self, node: Node) -> Graph:
        if node.id not in self.nodes:
            raise KeyError(f"Cannot replace unknown node {node.id!r}")
        return self.evolve(nodes={**self.nodes, node.id: node})

    def remove_node(self, node_id: str) -> Graph:
        nodes = {nid: n for nid, n in self.nodes.items() if nid != node_id}
        edges = tuple(
            e for e in self.edges if e.source.node_id != node_id and e.target.node_id != node_id
        )
        return self.evolve(nodes=nodes, edges=edges)

    def add_edge(self, edge: Edge) -> Graph:
        return self.evolve(edges=self.edges + (edge,))

    def remove_edge(self, edge_id: str) -> Graph:
        return self.evolve(edges=tuple(e for e in self.edges if e.id != edge_id))

    def record_pass(self, name: str, description: str, timestamp: float | None = None) -> Graph:
        record = PassRecord(name, description, time.time() if timestamp is None else timestamp)
        metadata = replace(self.metadata, pass_history=self.metadata.pass_history + (record,))
        return self.evolve(metadata=metadata)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def node(self, node_id: str) -> Node:
        return self.nodes[node_id]

    def input_edges(self, node_id: str) -> list[Edge]:
        return [e for e in self.edges if e.target.node_id == node_id]

    def output_edges(self, node_id: str) -> list[Edge]:
        return [e for e in self.edges if e.source.node_id == node_id]

    def producers(self, node_id: str) -> list[Node]:
        return [
            self.nodes[e.source.node_id]
            for e in self.input_edges(node_id)
            if e.source.node_id in self.nodes
        ]

    def consumers(self, node_id: str) -> list[Node]:
        return [
            self.nodes[e.target.node_id]
            for e in self.output_edges(node_id)
            if e.target.node_id in self.nodes
        ]

    def incoming_index(self) -> dict[str, list[Edge]]:
        """Edges grouped by target node id, in edge-list order."""
        index: dict[str, list[Edge]] = {}
        for edge in self.edges:
            index.setdefault(edge.target.node_id, []).append(edge)
        return index

    def outgoing_index(self) -> dict[str, list[Edge]]:
        """Edges grouped by source node id, in edge-list order."""
        index: dict[str, list[Edge]] = {}
        for edge in self.edges:
            index.setdefault(edge.source.node_id, []).append(edge)
        return index

    def topological_sort(self) -> list[Node]:
        """Depth-first post-order: a node is emitted after all its producers.

        Roots are taken in node iteration order and producers in edge-list
        order. The graph must be acyclic; call `validate()` first on
        untrusted input.
        """
        incoming = self.incoming_index()
        visited: set[str] = set()
        order: list[Node] = []

        for root in self.nodes:
            if root in visited:
                continue
            visited.add(root)
            stack = [(root, iter(incoming.get(root, ())))]
            while stack:
                node_id, pending = stack[-1]
                for edge in pending:
                    src = edge.source.node_id
                    if src not in visited:
                        visited.add(src)
                        stack.append((src, iter(incoming.get(src, ()))))
                        break
                else:
                    stack.pop()
                    node = self.nodes.get(node_id)
                    if node is not None:
                        order.append(node)
        return order

    def validate(self) -> None:
        """Reject dangling edges, bad port indices, duplicate edge ids and cycles."""
        problems: list[str] = []
        seen: set[str] = set()
        for edge in self.edges:
            if edge.id in seen:
                problems.append(f"duplicate edge id {edge.id}")
            seen.add(edge.id)

            src = self.nodes.get(edge.source.node_id)
            if src is None:
                problems.append(f"{edge.id}: unknown source node {edge.source.node_id}")
            elif not 0 <= edge.source.index < len(src.outputs):
                problems.append(
                    f"{edge.id}: source {src.name} has no output port {edge.source.index}"
                )

            dst = self.nodes.get(edge.target.node_id)
            if dst is None:
                problems.append(f"{edge.id}: unknown target node {edge.target.node_id}")
            elif not 0 <= edge.target.index < len(dst.inputs):
                problems.append(
                    f"{edge.id}: target {dst.name} has no input port {edge.target.index}"
                )

        if problems:
            raise GraphValidationError(
                f"Graph {self.name!r} is malformed:\n" + "\n".join(problems)
            )

        cycle = self._find_cycle()
        if cycle is not None:
            names = " -> ".join(self.nodes[nid].name for nid in cycle)
            raise GraphValidationError(f"Graph {self.name!r} has a cycle: {names}")

    def _find_cycle(self) -> list[str] | None:
        incoming = self.incoming_index()
        state: dict[str, int] = {}

        for root in self.nodes:
            if root in state:
                continue
            state[root] = _GRAY
            stack = [(root, iter(incoming.get(root, ())))]
            while stack:
                node_id, pending = stack[-1]
                for edge in pending:
                    src = edge.source.node_id
                    mark = state.get(src)
                    if mark == _GRAY:
                        path = [nid for nid, _ in stack]
                        # Stack runs consumer -> producer; report it producer-first.
                        cycle = path[path.index(src):]
                        cycle.reverse()
                        return cycle + [cycle[0]]
                    if mark is None:
                        state[src] = _GRAY
                        stack.append((src, iter(incoming.get(src, ()))))
                        break
                else:
                    state[node_id] = _BLACK
                    stack.pop()
        return None

    def summary(self) -> str:
        lines: list[str] = [
            f"Graph(name={self.name!r}, nodes={len(self.nodes)}, edges={len(self.edges)})"
        ]
        incoming = self.incoming_index()
        for node in self.topological_sort():
            ins = ", ".join(
                self.nodes[e.source.node_id].name if e.source.node_id in self.nodes else "?"
                for e in incoming.get(node.id, ())
            )
            out = node.output_type
            out_part = f" -> {out}" if out is not None else ""
            lines.append(f"- {node.name}: {node.op.value}({ins}){out_part}")
        return "\n".join(lines)


def create_graph(name: str = "graph", description: str = "") -> Graph:
    return Graph(id=gen_id("g"), metadata=GraphMetadata(name=name, description=description))
