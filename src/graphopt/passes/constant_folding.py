from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import ClassVar, NamedTuple

from graphopt.ir import Graph, Node, OpKind, gen_id

logger = logging.getLogger(__name__)

_NOT_FOLDABLE = frozenset({OpKind.INPUT, OpKind.OUTPUT, OpKind.CONSTANT})


class FoldOrigin(NamedTuple):
    """Annotation left on a folded constant: what it replaced."""

    op: OpKind
    name: str


def can_fold(graph: Graph, node: Node) -> bool:
    """True if `node` is a compute op fed only by Constant nodes."""
    if node.op in _NOT_FOLDABLE:
        return False
    in_edges = graph.input_edges(node.id)
    if not in_edges:
        return False
    for edge in in_edges:
        source = graph.nodes.get(edge.source.node_id)
        if source is None or source.op is not OpKind.CONSTANT:
            return False
    return True


def _fold_node(graph: Graph, node: Node) -> Graph:
    constant = Node(
        id=gen_id("const"),
        op=OpKind.CONSTANT,
        name=f"folded_{node.name}",
        outputs=node.outputs,
        annotations={"folded_from": FoldOrigin(node.op, node.name)},
    )

    # Inputs of the folded node go away; its consumers now read the constant.
    edges = [
        e.with_source(constant.id) if e.source.node_id == node.id else e
        for e in graph.edges
        if e.target.node_id != node.id
    ]
    nodes = {nid: n for nid, n in graph.nodes.items() if nid != node.id}
    nodes[constant.id] = constant

    used = {e.source.node_id for e in edges}
    orphans = {
        nid
        for nid, n in nodes.items()
        if n.op is OpKind.CONSTANT and nid != constant.id and nid not in used
    }
    if orphans:
        nodes = {nid: n for nid, n in nodes.items() if nid not in orphans}
        edges = [
            e for e in edges if e.source.node_id not in orphans and e.target.node_id not in orphans
        ]

    logger.debug(
        "Folded %s (%s) into %s, pruned %d orphan constant(s)",
        node.name,
        node.op.value,
        constant.id,
        len(orphans),
    )
    return graph.evolve(nodes=nodes, edges=edges)


def fold_constants(graph: Graph) -> Graph:
    """Replace all-constant subcomputations with Constant nodes, one at a time.

    The scan restarts after every fold so a freshly folded constant can make
    its consumers foldable in turn. Terminates when no node qualifies.
    """
    result = graph
    folds = 0
    while True:
        candidate = next((n for n in result.nodes.values() if can_fold(result, n)), None)
        if candidate is None:
            break
        result = _fold_node(result, candidate)
        folds += 1

    if folds:
        logger.debug("Constant folding applied %d fold(s) to %r", folds, graph.name)
    return result


@dataclass(slots=True)
class ConstantFoldingPass:
    name: ClassVar[str] = "Constant Folding"
    description: ClassVar[str] = "Evaluate subgraphs with all-constant inputs at compile time"

    def run(self, graph: Graph) -> Graph:
        return fold_constants(graph)
