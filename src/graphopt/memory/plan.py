"""Liveness-based buffer planning over a topologically ordered graph.

Each non-Output node with a known output type owns one buffer, live from its
own rank in the topological order to the rank of its last consumer. Buffers
are placed by a first-fit GrowableArena in order of birth; the arena tail is
the estimated peak footprint.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from graphopt.ir import Graph, MemorySummary, OpKind, op_spec

from .arena import ArenaConfig, GrowableArena

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MemoryAllocation:
    """Placement of one node's output buffer.

    Attributes:
        node_id: Producing node.
        offset: Byte offset in the arena. In-place nodes report the offset of
                the buffer they overwrite.
        size: Bytes reserved for this node (0 when in place).
        live_range: (birth, death) as topological ranks.
        in_place: Output overwrites the sole producer's buffer. Producers
                  without a planned buffer (untyped) are never aliased.
    """

    node_id: str
    offset: int
    size: int
    live_range: tuple[int, int]
    in_place: bool = False


@dataclass(frozen=True, slots=True)
class MemoryPlan:
    allocations: tuple[MemoryAllocation, ...]
    peak_bytes: int
    total_tensor_bytes: int
    in_place_count: int

    def summary(self) -> MemorySummary:
        return MemorySummary(
            peak_bytes=self.peak_bytes,
            total_tensor_bytes=self.total_tensor_bytes,
            in_place_count=self.in_place_count,
        )

    def by_node(self) -> dict[str, MemoryAllocation]:
        return {a.node_id: a for a in self.allocations}


def compute_memory_plan(
    graph: Graph,
    *,
    config: ArenaConfig | None = None,
    reuse_freed: bool = False,
) -> MemoryPlan:
    """Plan buffers for every typed, non-Output node of `graph`.

    With `reuse_freed=False` no buffer is ever released, so the peak equals
    the sum of all non-in-place sizes (rounded to the alignment). With
    `reuse_freed=True` a buffer goes back to the arena once the last node
    reading it has run; in-place nodes keep their owner's buffer alive until
    they die.
    """
    order = graph.topological_sort()
    rank = {node.id: i for i, node in enumerate(order)}
    incoming = graph.incoming_index()
    outgoing = graph.outgoing_index()

    live_ranges: dict[str, tuple[int, int]] = {}
    sizes: dict[str, int] = {}
    owner: dict[str, str] = {}

    for node in order:
        if node.op is OpKind.OUTPUT:
            continue
        out_type = node.output_type
        if out_type is None:
            continue

        birth = rank[node.id]
        death = birth
        for edge in outgoing.get(node.id, ()):
            death = max(death, rank.get(edge.target.node_id, birth))
        live_ranges[node.id] = (birth, death)

        in_edges = incoming.get(node.id, ())
        if len(in_edges) == 1 and op_spec(node.op).in_place:
            producer_id = in_edges[0].source.node_id
            if producer_id in live_ranges and len(outgoing.get(producer_id, ())) == 1:
                # Alias the buffer the producer writes into (it may itself be in place).
                owner[node.id] = owner.get(producer_id, producer_id)
                sizes[node.id] = 0
                continue
        sizes[node.id] = out_type.nbytes

    # An in-place chain keeps its root buffer alive until the chain's last reader.
    release_at = {nid: live_ranges[nid][1] for nid in live_ranges if nid not in owner}
    for nid, root in owner.items():
        if root in release_at:
            release_at[root] = max(release_at[root], live_ranges[nid][1])

    arena = GrowableArena(config or ArenaConfig())
    offsets: dict[str, int] = {}
    live: list[tuple[int, int, str]] = []

    for nid in sorted(release_at, key=lambda n: live_ranges[n][0]):
        birth = live_ranges[nid][0]
        if reuse_freed:
            live.sort()
            while live and live[0][0] < birth:
                _, offset, dead = live.pop(0)
                arena.release(offset)
                logger.debug("Released buffer of %s at offset %d", dead, offset)
        offsets[nid] = arena.alloc(sizes[nid], tag=graph.nodes[nid].name)
        if sizes[nid] > 0:
            live.append((release_at[nid], offsets[nid], nid))

    allocations = tuple(
        MemoryAllocation(
            node_id=nid,
            offset=offsets[owner.get(nid, nid)],
            size=sizes[nid],
            live_range=live_ranges[nid],
            in_place=nid in owner,
        )
        for nid in live_ranges
    )

    return MemoryPlan(
        allocations=allocations,
        peak_bytes=arena.tail,
        total_tensor_bytes=sum(a.size for a in allocations),
        in_place_count=len(owner),
    )


def format_plan(plan: MemoryPlan, graph: Graph | None = None, *, indent: str = "  ") -> str:
    """Human-readable memory plan report.

    Args:
        plan: The plan to format.
        graph: When given, node ids are shown with their names.
        indent: Indentation prefix for each line.
    """
    saved = plan.total_tensor_bytes - plan.peak_bytes
    lines = [
        f"{indent}Peak memory:        {plan.peak_bytes:,} bytes ({plan.peak_bytes / 1024:.1f} KiB)",
        f"{indent}Total tensor bytes: {plan.total_tensor_bytes:,} bytes",
        f"{indent}Reused bytes:       {max(saved, 0):,}",
        f"{indent}In-place ops:       {plan.in_place_count}",
    ]
    for alloc in plan.allocations:
        label = alloc.node_id
        if graph is not None and alloc.node_id in graph.nodes:
            label = graph.nodes[alloc.node_id].name
        birth, death = alloc.live_range
        flag = " (in place)" if alloc.in_place else ""
        lines.append(
            f"{indent}{indent}@0x{alloc.offset:04X} {alloc.size:>10,} B  "
            f"[{birth}, {death}] {label}{flag}"
        )
    return "\n".join(lines)
