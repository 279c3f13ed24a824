from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import ClassVar, NamedTuple, Sequence

from graphopt.ir import Edge, Graph, Node, OpKind, Port, gen_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FusionPattern:
    """A linear chain of op kinds replaced by a single fused kind."""

    name: str
    ops: tuple[OpKind, ...]
    fused_op: OpKind


class FusedOrigin(NamedTuple):
    op: OpKind
    name: str


# Order matters: the first pattern that matches anywhere wins, so the longer
# Conv chain must come before its two-op prefix.
DEFAULT_PATTERNS: tuple[FusionPattern, ...] = (
    FusionPattern(
        "Conv2D + BatchNorm + ReLU",
        (OpKind.CONV2D, OpKind.BATCH_NORM, OpKind.RELU),
        OpKind.FUSED_CONV_BN_RELU,
    ),
    FusionPattern(
        "Conv2D + BatchNorm",
        (OpKind.CONV2D, OpKind.BATCH_NORM),
        OpKind.FUSED_CONV_BN_RELU,
    ),
    FusionPattern(
        "MatMul + Add",
        (OpKind.MATMUL, OpKind.ADD),
        OpKind.FUSED_MATMUL_ADD,
    ),
)


def find_chain(graph: Graph, start_id: str, ops: Sequence[OpKind]) -> list[Node] | None:
    """Match `ops` as an unbranched chain starting at `start_id`.

    Condition per step: the current node has exactly one outgoing edge and
    that edge is the only link from the current node into the next one.
    """
    chain: list[Node] = []
    current_id = start_id

    for step, expected in enumerate(ops):
        node = graph.nodes.get(current_id)
        if node is None or node.op is not expected:
            return None
        chain.append(node)

        if step == len(ops) - 1:
            break

        out_edges = graph.output_edges(current_id)
        if len(out_edges) != 1:
            return None
        next_id = out_edges[0].target.node_id
        if next_id not in graph.nodes:
            return None
        links = [e for e in graph.input_edges(next_id) if e.source.node_id == current_id]
        if len(links) != 1:
            return None
        current_id = next_id

    return chain


def fuse_chain(graph: Graph, chain: Sequence[Node], pattern: FusionPattern) -> Graph:
    """Replace `chain` with one node of kind `pattern.fused_op`.

    Edge rewiring:
    - into the first node: retargeted to the fused node, same port.
    - from outside into a later chain node (e.g. the bias of Add): retargeted
      to an extra input port appended to the fused node.
    - out of the last node: re-sourced from the fused node.
    - internal edges, and anything else touching an interior node: dropped.
    """
    first, last = chain[0], chain[-1]
    chain_ids = {n.id for n in chain}
    fused_id = gen_id("fused")

    inputs: list[Port] = list(first.inputs)
    edges: list[Edge] = []
    for edge in graph.edges:
        src_in = edge.source.node_id in chain_ids
        dst_in = edge.target.node_id in chain_ids

        if src_in and dst_in:
            continue
        if dst_in and edge.target.node_id == first.id:
            edges.append(edge.with_target(fused_id))
        elif dst_in:
            owner = graph.nodes[edge.target.node_id]
            port = owner.inputs[edge.target.index]
            inputs.append(Port(f"{owner.name}.{port.name}", port.tensor_type))
            edges.append(edge.with_target(fused_id, len(inputs) - 1))
        elif src_in and edge.source.node_id == last.id:
            edges.append(edge.with_source(fused_id))
        elif not src_in and not dst_in:
            edges.append(edge)

    fused = Node(
        id=fused_id,
        op=pattern.fused_op,
        name="fused_" + "_".join(n.name for n in chain),
        inputs=tuple(inputs),
        outputs=last.outputs,
        attrs=first.attrs,
        annotations={
            "fused_from": tuple(FusedOrigin(n.op, n.name) for n in chain),
            "pattern": pattern.name,
        },
    )

    nodes = {nid: n for nid, n in graph.nodes.items() if nid not in chain_ids}
    nodes[fused.id] = fused

    logger.debug(
        "Fused %s via %r into %s",
        " -> ".join(n.name for n in chain),
        pattern.name,
        fused.name,
    )
    return graph.evolve(nodes=nodes, edges=edges)


@dataclass(slots=True)
class FusionPass:
    """Collapse unbranched operator chains into fused kernels.

    After every successful fusion the search restarts from the first pattern,
    until no pattern matches anywhere.
    """

    patterns: tuple[FusionPattern, ...] = DEFAULT_PATTERNS

    name: ClassVar[str] = "Operator Fusion"
    description: ClassVar[str] = (
        "Fuse sequences of operators into single optimized kernels (Conv+BN+ReLU, MatMul+Add)"
    )

    def run(self, graph: Graph) -> Graph:
        result = graph
        fused = 0
        while True:
            match = self._first_match(result)
            if match is None:
                break
            pattern, chain = match
            result = fuse_chain(result, chain, pattern)
            fused += 1

        if fused:
            logger.debug("Operator fusion applied %d fusion(s) to %r", fused, graph.name)
        return result

    def _first_match(self, graph: Graph) -> tuple[FusionPattern, list[Node]] | None:
        for pattern in self.patterns:
            for node_id, node in graph.nodes.items():
                if node.op is not pattern.ops[0]:
                    continue
                chain = find_chain(graph, node_id, pattern.ops)
                if chain is not None:
                    return pattern, chain
        return None
