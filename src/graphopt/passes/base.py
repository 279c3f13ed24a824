"""Pass protocol and the sequential pipeline driver."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol, Sequence

from graphopt.ir import Graph

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class OptimizationPass(Protocol):
    """A pure Graph -> Graph step. Implementations must not mutate their input."""

    name: str
    description: str

    def run(self, graph: Graph) -> Graph: ...


@dataclass(frozen=True, slots=True)
class PassResult:
    graph: Graph
    pass_name: str
    description: str


def run_pass(graph: Graph, pass_: OptimizationPass, *, clock: Clock = time.time) -> PassResult:
    """Validate `graph`, apply one pass and append it to the pass history.

    Raises:
        GraphValidationError: If `graph` has dangling edges or a cycle.
    """
    graph.validate()

    start = time.perf_counter()
    result = pass_.run(graph)
    elapsed_ms = (time.perf_counter() - start) * 1000.0

    logger.info(
        "%s: nodes %d -> %d, edges %d -> %d (%.2f ms)",
        pass_.name,
        len(graph.nodes),
        len(result.nodes),
        len(graph.edges),
        len(result.edges),
        elapsed_ms,
    )

    recorded = result.record_pass(pass_.name, pass_.description, clock())
    return PassResult(graph=recorded, pass_name=pass_.name, description=pass_.description)


def run_pipeline(
    graph: Graph,
    passes: Sequence[OptimizationPass],
    *,
    clock: Clock = time.time,
) -> list[PassResult]:
    """Thread `graph` through `passes` in order, keeping every snapshot."""
    results: list[PassResult] = []
    current = graph
    for pass_ in passes:
        result = run_pass(current, pass_, clock=clock)
        results.append(result)
        current = result.graph
    return results


def default_passes() -> list[OptimizationPass]:
    from .constant_folding import ConstantFoldingPass
    from .dce import DeadCodeEliminationPass
    from .fusion import FusionPass
    from .memory_planning import MemoryPlanningPass
    from .shape_inference import ShapeInferencePass

    return [
        ShapeInferencePass(),
        ConstantFoldingPass(),
        DeadCodeEliminationPass(),
        FusionPass(),
        MemoryPlanningPass(),
    ]


@dataclass
class Pipeline:
    """Object form of `run_pipeline`.

    Attributes:
        passes: Ordered passes; defaults to `default_passes()`.
        clock: Timestamp source for pass records. Inject a fixed clock to make
            repeated runs produce identical graphs.
    """

    passes: list[OptimizationPass] = field(default_factory=default_passes)
    clock: Clock = time.time

    def run(self, graph: Graph) -> list[PassResult]:
        return run_pipeline(graph, self.passes, clock=self.clock)

    def final(self, graph: Graph) -> Graph:
        results = self.run(graph)
        return results[-1].graph if results else graph
