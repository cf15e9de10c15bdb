from __future__ import annotations

from typing import Optional

from .models import Coordinate


class ConfigurationError(ValueError):
    """Raised at start-up when inputs cannot yield a usable threshold table or run setup."""


class JoinMismatchError(RuntimeError):
    """Raised when an input record has no usable score in the recalibration file."""

    def __init__(self, message: str, *, coordinate: Optional[Coordinate] = None) -> None:
        super().__init__(message)
        self.coordinate = coordinate


class SequenceOrderViolation(RuntimeError):
    """Raised when coordinates arrive out of order (a driver or source bug)."""

    def __init__(
        self,
        message: str,
        *,
        previous: Optional[Coordinate] = None,
        current: Optional[Coordinate] = None,
    ) -> None:
        super().__init__(message)
        self.previous = previous
        self.current = current
