from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import ClassVar

from graphopt.ir import Graph
from graphopt.memory import ArenaConfig, compute_memory_plan

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MemoryPlanningPass:
    """Annotate nodes with buffer placements and record the graph-wide summary.

    Attributes:
        config: Arena alignment.
        reuse_freed: Release buffers after their last reader so later
            allocations can reuse them. Off by default: the plan is then a
            pure peak-footprint estimate where nothing is recycled.
    """

    config: ArenaConfig = field(default_factory=ArenaConfig)
    reuse_freed: bool = False

    name: ClassVar[str] = "Memory Planning"
    description: ClassVar[str] = (
        "Compute optimal memory allocation with liveness analysis and in-place operation detection"
    )

    def run(self, graph: Graph) -> Graph:
        plan = compute_memory_plan(graph, config=self.config, reuse_freed=self.reuse_freed)

        nodes = dict(graph.nodes)
        for alloc in plan.allocations:
            nodes[alloc.node_id] = nodes[alloc.node_id].annotate(memory=alloc)

        logger.debug(
            "Memory plan for %r: peak %d bytes, %d tensor bytes, %d in place",
            graph.name,
            plan.peak_bytes,
            plan.total_tensor_bytes,
            plan.in_place_count,
        )
        metadata = replace(graph.metadata, memory_plan=plan.summary())
        return graph.evolve(nodes=nodes, metadata=metadata)
