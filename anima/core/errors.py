# ═══════════════════════════════════════════════════════════════════════════════
# PART 0: ERROR TAXONOMY
# Design: shared by every component
# ═══════════════════════════════════════════════════════════════════════════════

"""
Errors raised inside the engine.

Numeric drift is never an error: every normalized value is clamped back into
range. Exceptions are reserved for structurally invalid input, failed gateway
calls, metrics that cannot be computed at all, a saturated pattern store and,
finally, exhausted recovery, which is the only one allowed to reach the host.
"""

from __future__ import annotations

from typing import Optional


class AnimaError(Exception):
    """Base class for engine errors."""
    pass


class ValidationError(AnimaError, ValueError):
    """Raised when input is structurally missing or of the wrong shape."""
    pass


class TransientExternalError(AnimaError):
    """Raised when a gateway call fails. Retryable."""

    def __init__(self, operation: str, message: str = "") -> None:
        self.operation = operation
        super().__init__(f"{operation} failed: {message}" if message else f"{operation} failed")


class CriticalStateError(AnimaError):
    """Raised when metrics could not be computed."""
    pass


class SaturationError(AnimaError):
    """Raised when a bounded store is full and cannot accept a new entry."""
    pass


class RecoveryExhaustedError(AnimaError):
    """Raised when bounded recovery for a category has run out of attempts."""

    def __init__(self, category: str, attempts: int, message: Optional[str] = None) -> None:
        self.category = category
        self.attempts = attempts
        super().__init__(
            message
            or f"Recovery exhausted for {category} after {attempts} attempts"
        )
