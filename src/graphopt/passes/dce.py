from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import ClassVar

from graphopt.ir import Graph, OpKind

logger = logging.getLogger(__name__)


def eliminate_dead_code(graph: Graph) -> Graph:
    """Keep only nodes that some Output node transitively depends on.

    A graph without any Output node comes back empty.
    """
    incoming = graph.incoming_index()
    reachable: set[str] = set()
    queue: deque[str] = deque()

    for node_id, node in graph.nodes.items():
        if node.op is OpKind.OUTPUT:
            reachable.add(node_id)
            queue.append(node_id)

    while queue:
        node_id = queue.popleft()
        for edge in incoming.get(node_id, ()):
            src = edge.source.node_id
            if src not in reachable:
                reachable.add(src)
                queue.append(src)

    nodes = {nid: n for nid, n in graph.nodes.items() if nid in reachable}
    edges = tuple(
        e for e in graph.edges if e.source.node_id in nodes and e.target.node_id in nodes
    )

    removed = len(graph.nodes) - len(nodes)
    if removed:
        logger.debug("Removed %d unreachable node(s) from %r", removed, graph.name)
    return graph.evolve(nodes=nodes, edges=edges)


@dataclass(slots=True)
class DeadCodeEliminationPass:
    name: ClassVar[str] = "Dead Code Elimination"
    description: ClassVar[str] = "Remove unreachable nodes that do not contribute to any output"

    def run(self, graph: Graph) -> Graph:
        return eliminate_dead_code(graph)
