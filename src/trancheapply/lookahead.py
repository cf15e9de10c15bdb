"""Forward-only lookahead buffer over a coordinate-ordered source.

The queue holds only the entries that overlap the current site plus a single
pending entry read ahead from the source, so memory stays bounded by the
local depth of the data regardless of how large the source is.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Generic, Iterable, Iterator, List, Optional, Tuple, TypeVar

from .errors import SequenceOrderViolation
from .models import Coordinate

logger = logging.getLogger(__name__)

E = TypeVar("E")

_EXHAUSTED = object()


def _coordinate_attr(entry: Any) -> Coordinate:
    return entry.coordinate


class LookaheadCoordinateQueue(Generic[E]):
    """Seekable view of one auxiliary source.

    Usage::

        queue = LookaheadCoordinateQueue(records)
        for site in sites:
            here = queue.seek(site).peek()

    ``seek`` must be called with non-decreasing coordinates; the source must
    yield entries ordered by ``(rank, start)``.
    """

    def __init__(
        self,
        source: Iterable[E],
        *,
        coordinate_of: Callable[[E], Coordinate] = _coordinate_attr,
        name: str = "source",
    ) -> None:
        self.name = name
        self._it: Iterator[E] = iter(source)
        self._coordinate_of = coordinate_of
        self._pending: Any = None
        self._has_pending = False
        self._last_pulled: Optional[Coordinate] = None
        self._last_sought: Optional[Coordinate] = None
        self._buffer: List[E] = []
        self._current: Tuple[E, ...] = ()

    def _next_pending(self) -> Any:
        if not self._has_pending:
            self._pending = next(self._it, _EXHAUSTED)
            self._has_pending = True
        return self._pending

    def _take_pending(self, loc: Coordinate) -> E:
        entry = self._pending
        self._pending = None
        self._has_pending = False
        prev = self._last_pulled
        if prev is not None and (loc.rank, loc.start) < (prev.rank, prev.start):
            raise SequenceOrderViolation(
                f"Source '{self.name}' is not coordinate-sorted: {loc} follows {prev}",
                previous=prev,
                current=loc,
            )
        self._last_pulled = loc
        return entry

    def seek(self, coordinate: Coordinate) -> "LookaheadCoordinateQueue[E]":
        """Advance to ``coordinate`` and collect the entries overlapping it."""
        prev = self._last_sought
        if prev is not None and coordinate < prev:
            raise SequenceOrderViolation(
                f"Queue '{self.name}' sought to {coordinate} after {prev}; "
                "seeks must be in non-decreasing coordinate order",
                previous=prev,
                current=coordinate,
            )
        self._last_sought = coordinate

        key = self._coordinate_of
        self._buffer = [e for e in self._buffer if not key(e).precedes(coordinate)]

        while True:
            entry = self._next_pending()
            if entry is _EXHAUSTED:
                break
            loc = key(entry)
            if (loc.rank, loc.start) > (coordinate.rank, coordinate.end):
                break
            self._take_pending(loc)
            if not loc.precedes(coordinate):
                self._buffer.append(entry)

        self._current = tuple(e for e in self._buffer if key(e).overlaps(coordinate))
        return self

    def peek(self) -> Tuple[E, ...]:
        """Entries overlapping the last sought coordinate (empty before any seek)."""
        return self._current

    @property
    def buffered(self) -> int:
        return len(self._buffer)
