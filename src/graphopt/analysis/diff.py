from __future__ import annotations

from dataclasses import dataclass

from graphopt.ir import Graph


@dataclass(frozen=True, slots=True)
class GraphDiff:
    """Id-level difference between two snapshots.

    A node is modified when its id survives but its op kind or name changed.
    """

    added_nodes: tuple[str, ...] = ()
    removed_nodes: tuple[str, ...] = ()
    modified_nodes: tuple[str, ...] = ()
    added_edges: tuple[str, ...] = ()
    removed_edges: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (
            self.added_nodes
            or self.removed_nodes
            or self.modified_nodes
            or self.added_edges
            or self.removed_edges
        )


def compute_graph_diff(before: Graph, after: Graph) -> GraphDiff:
    added: list[str] = []
    modified: list[str] = []
    for node_id, node in after.nodes.items():
        old = before.nodes.get(node_id)
        if old is None:
            added.append(node_id)
        elif old.op is not node.op or old.name != node.name:
            modified.append(node_id)

    removed = [nid for nid in before.nodes if nid not in after.nodes]

    before_edges = {e.id for e in before.edges}
    after_edges = {e.id for e in after.edges}

    return GraphDiff(
        added_nodes=tuple(added),
        removed_nodes=tuple(removed),
        modified_nodes=tuple(modified),
        added_edges=tuple(e.id for e in after.edges if e.id not in before_edges),
        removed_edges=tuple(e.id for e in before.edges if e.id not in after_edges),
    )
