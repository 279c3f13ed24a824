from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import ClassVar

from graphopt.ir import Graph, TensorType, op_spec

logger = logging.getLogger(__name__)


def infer_shapes(graph: Graph) -> Graph:
    """Propagate tensor types forward in topological order.

    Each input port reads the type of the first edge feeding it. A node whose
    formula cannot run (missing first operand or an unresolvable attribute)
    keeps its current output ports; that is a deferred result, not an error.
    """
    incoming = graph.incoming_index()
    inferred: dict[str, TensorType] = {}
    nodes = dict(graph.nodes)

    for node in graph.topological_sort():
        feeding: dict[int, str] = {}
        for edge in incoming.get(node.id, ()):
            feeding.setdefault(edge.target.index, edge.source.node_id)

        input_types = [
            inferred.get(feeding[i]) if i in feeding else None for i in range(len(node.inputs))
        ]
        inputs = tuple(
            port.with_type(t) if t is not None else port for port, t in zip(node.inputs, input_types)
        )

        out = op_spec(node.op).infer_output(node, input_types)
        if out is None:
            logger.debug(
                "Shape of %s (%s) deferred: missing input type or bad attribute",
                node.name,
                node.op.value,
            )
            if inputs != node.inputs:
                nodes[node.id] = node.evolve(inputs=inputs)
            continue

        inferred[node.id] = out
        outputs = tuple(port.with_type(out) for port in node.outputs)
        nodes[node.id] = node.evolve(inputs=inputs, outputs=outputs)

    edges = tuple(
        e.with_type(inferred[e.source.node_id]) if e.source.node_id in inferred else e
        for e in graph.edges
    )
    return graph.evolve(nodes=nodes, edges=edges)


@dataclass(slots=True)
class ShapeInferencePass:
    """Annotate every output port and edge with its inferred TensorType."""

    name: ClassVar[str] = "Shape Inference"
    description: ClassVar[str] = "Propagate tensor shapes through the computation graph"

    def run(self, graph: Graph) -> Graph:
        return infer_shapes(graph)
