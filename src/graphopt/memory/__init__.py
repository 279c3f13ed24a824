from .arena import Allocation, ArenaConfig, FreeRange, GrowableArena
from .plan import MemoryAllocation, MemoryPlan, compute_memory_plan, format_plan

__all__ = [
    "Allocation",
    "ArenaConfig",
    "FreeRange",
    "GrowableArena",
    "MemoryAllocation",
    "MemoryPlan",
    "compute_memory_plan",
    "format_plan",
]
