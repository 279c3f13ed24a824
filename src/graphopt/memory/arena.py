"""GrowableArena: deterministic first-fit allocator used by memory planning.

Unlike a fixed-size allocator, the arena never runs out of space: when no free
range is large enough it extends its tail. The final tail offset is therefore
the peak footprint of the allocation sequence.

Key design principles:
- Determinism: the same request sequence always yields the same offsets.
- Simplicity: first-fit over an address-ordered free list, no size classes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import NamedTuple


@dataclass(frozen=True, slots=True)
class ArenaConfig:
    """Configuration for the growable arena.

    Attributes:
        alignment: Offsets and sizes are rounded up to this many bytes. Must
                   be a power of 2. Default 1 (byte-packed).
    """

    alignment: int = 1

    def __post_init__(self) -> None:
        if self.alignment <= 0 or (self.alignment & (self.alignment - 1)) != 0:
            raise ValueError(
                f"alignment must be a positive power of 2, got {self.alignment}"
            )


class Allocation(NamedTuple):
    """Record of a single allocation in the arena."""

    offset: int
    size: int
    tag: str


class FreeRange(NamedTuple):
    """A contiguous free region below the arena tail."""

    offset: int
    size: int


@dataclass
class GrowableArena:
    """First-fit allocator over a free list, growing at the tail on a miss.

    Example:
        >>> arena = GrowableArena()
        >>> a = arena.alloc(256, tag="conv1")
        >>> b = arena.alloc(128, tag="relu1")
        >>> arena.release(a)
        >>> arena.alloc(64, tag="add1")  # reuses the front of conv1's range
        0
        >>> arena.tail
        384
    """

    config: ArenaConfig = field(default_factory=ArenaConfig)

    _allocations: dict[int, Allocation] = field(default_factory=dict, repr=False)
    _free_list: list[FreeRange] = field(default_factory=list, repr=False)
    _tail: int = field(default=0, repr=False)
    _live_bytes: int = field(default=0, repr=False)

    # -------------------------------------------------------------------------
    # Public Properties
    # -------------------------------------------------------------------------

    @property
    def tail(self) -> int:
        """End of the highest range ever handed out (the peak footprint)."""
        return self._tail

    @property
    def live_bytes(self) -> int:
        return self._live_bytes

    @property
    def free_ranges(self) -> list[FreeRange]:
        return list(self._free_list)

    # -------------------------------------------------------------------------
    # Core Operations
    # -------------------------------------------------------------------------

    def alloc(self, size: int, tag: str) -> int:
        """Allocate `size` bytes and return the offset.

        Scans free ranges in address order and takes the first one large
        enough, returning any leftover to the free list. Otherwise the arena
        grows at its tail. Zero-byte requests get the current tail and consume
        nothing.
        """
        if size < 0:
            raise ValueError(f"Allocation size must be non-negative, got {size}")
        if size == 0:
            return self._tail

        aligned_size = self._align_up(size)

        for i, block in enumerate(self._free_list):
            if block.size >= aligned_size:
                self._free_list.pop(i)
                if block.size > aligned_size:
                    self._insert_free_range(
                        FreeRange(block.offset + aligned_size, block.size - aligned_size)
                    )
                return self._record(block.offset, aligned_size, tag)

        offset = self._align_up(self._tail)
        if offset > self._tail:
            self._insert_and_coalesce(FreeRange(self._tail, offset - self._tail))
        self._tail = offset + aligned_size
        return self._record(offset, aligned_size, tag)

    def release(self, offset: int) -> None:
        """Return a previously allocated range to the free list.

        Raises:
            KeyError: If `offset` is not a live allocation.
        """
        if offset not in self._allocations:
            raise KeyError(f"Cannot release offset {offset}: not allocated or already released")
        alloc = self._allocations.pop(offset)
        self._live_bytes -= alloc.size
        self._insert_and_coalesce(FreeRange(alloc.offset, alloc.size))

    def get_allocations(self) -> list[Allocation]:
        """Live allocations sorted by offset."""
        return sorted(self._allocations.values(), key=lambda a: a.offset)

    def format_state(self, *, max_allocs: int = 10) -> str:
        """Multi-line dump of the arena for debugging."""
        lines = [
            "GrowableArena:",
            f"  Tail:      {self._tail:,} bytes",
            f"  Live:      {self._live_bytes:,} bytes",
            f"  Free:      {sum(b.size for b in self._free_list):,} bytes "
            f"in {len(self._free_list)} range(s)",
            f"  Alignment: {self.config.alignment} bytes",
        ]

        allocations = self.get_allocations()
        if allocations:
            lines.append(f"  Allocations ({len(allocations)} total):")
            for alloc in allocations[:max_allocs]:
                lines.append(f"    @0x{alloc.offset:04X}: {alloc.size:,} bytes [{alloc.tag}]")
            if len(allocations) > max_allocs:
                lines.append(f"    ... ({len(allocations) - max_allocs} more)")

        return "\n".join(lines)

    # -------------------------------------------------------------------------
    # Internal Helpers
    # -------------------------------------------------------------------------

    def _align_up(self, value: int) -> int:
        alignment = self.config.alignment
        return (value + alignment - 1) & ~(alignment - 1)

    def _record(self, offset: int, size: int, tag: str) -> int:
        self._allocations[offset] = Allocation(offset=offset, size=size, tag=tag)
        self._live_bytes += size
        return offset

    def _find_slot(self, offset: int) -> int:
        lo, hi = 0, len(self._free_list)
        while lo < hi:
            mid = (lo + hi) // 2
            if self._free_list[mid].offset < offset:
                lo = mid + 1
            else:
                hi = mid
        return lo

    def _insert_free_range(self, block: FreeRange) -> None:
        """Insert into the address-ordered free list (no coalescing)."""
        self._free_list.insert(self._find_slot(block.offset), block)

    def _insert_and_coalesce(self, block: FreeRange) -> None:
        """Insert a free range and merge it with adjacent free ranges."""
        lo = self._find_slot(block.offset)

        merged = block
        if lo > 0:
            prev = self._free_list[lo - 1]
            if prev.offset + prev.size == merged.offset:
                merged = FreeRange(prev.offset, prev.size + merged.size)
                self._free_list.pop(lo - 1)
                lo -= 1

        if lo < len(self._free_list):
            nxt = self._free_list[lo]
            if merged.offset + merged.size == nxt.offset:
                merged = FreeRange(merged.offset, merged.size + nxt.size)
                self._free_list.pop(lo)

        self._free_list.insert(lo, merged)
