"""Process-wide id generation for graphs, nodes and edges.

Ids only need to be unique; the counter is resettable so that two compiles of
the same input produce identical ids.
"""

from __future__ import annotations

import threading


class IdGenerator:
    """Monotonic `<prefix>_<n>` id source shared by every producer and pass."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counter = 0

    def next(self, prefix: str = "n") -> str:
        with self._lock:
            self._counter += 1
            return f"{prefix}_{self._counter}"

    def reset(self) -> None:
        with self._lock:
            self._counter = 0

    @property
    def current(self) -> int:
        return self._counter


_default = IdGenerator()


def gen_id(prefix: str = "n") -> str:
    return _default.next(prefix)


def reset_id_counter() -> None:
    _default.reset()
