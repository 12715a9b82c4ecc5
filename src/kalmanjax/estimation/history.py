"""Time-indexed archive of accepted filter estimates.

A :class:`TimeHistory` maps each accepted update time to a snapshot (a
state vector, a covariance matrix or a set of sigma points) in insertion
order.  By default the archive grows without bound; passing
``max_length`` turns it into a ring buffer that evicts the oldest entry
once full, which bounds memory in long estimation sessions.

Recording a time that is already present replaces its snapshot in place,
so every time keeps exactly one entry.
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Iterator
from typing import Generic, TypeVar

from kalmanjax.errors import ConfigurationError

T = TypeVar("T")


class TimeHistory(Generic[T]):
    """Insertion-ordered mapping from time to snapshot with optional bound.

    Args:
        max_length: Maximum number of entries kept, or ``None`` to keep
            the full archive.

    Raises:
        ConfigurationError: If *max_length* is not a positive integer.

    Examples:
        ```python
        from kalmanjax.estimation import TimeHistory
        history = TimeHistory(max_length=2)
        history.record(0.0, "a")
        history.record(1.0, "b")
        history.record(2.0, "c")
        list(history.times())  # [1.0, 2.0]
        ```
    """

    def __init__(self, max_length: int | None = None):
        if max_length is not None and (
            isinstance(max_length, bool) or not isinstance(max_length, int) or max_length < 1
        ):
            raise ConfigurationError(f"history length must be a positive integer or None, got {max_length!r}")
        self._max_length = max_length
        self._entries: OrderedDict[float, T] = OrderedDict()

    @property
    def max_length(self) -> int | None:
        """Retention bound, ``None`` for a full archive."""
        return self._max_length

    def record(self, time: float, value: T) -> None:
        """Store *value* under *time*, evicting the oldest entry if full."""
        time = float(time)
        if time in self._entries:
            self._entries[time] = value
            return
        self._entries[time] = value
        if self._max_length is not None:
            while len(self._entries) > self._max_length:
                self._entries.popitem(last=False)

    def latest(self) -> tuple[float, T]:
        """Return the most recently inserted ``(time, value)`` pair.

        Raises:
            KeyError: If the history is empty.
        """
        if not self._entries:
            raise KeyError("History is empty")
        return next(reversed(self._entries.items()))

    def times(self) -> list[float]:
        return list(self._entries)

    def as_dict(self) -> dict[float, T]:
        """Shallow copy of the archive as a plain ``dict``."""
        return dict(self._entries)

    def __getitem__(self, time: float) -> T:
        return self._entries[float(time)]

    def __contains__(self, time) -> bool:
        return float(time) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[float]:
        return iter(self._entries)

    def items(self):
        return self._entries.items()

    def __repr__(self) -> str:
        return f"TimeHistory(entries={len(self)}, max_length={self._max_length})"
