# ═══════════════════════════════════════════════════════════════════════════════
# PART 7: ERROR TRACKING & RECOVERY
# Design: classification, bounded-retry recovery with cooldown, escalation
# Implementation: cross-cutting
# ═══════════════════════════════════════════════════════════════════════════════

"""
Every component reports failures here. Errors are logged per category in a
bounded buffer and forwarded to the ErrorSink and to subscribers.

Only CRITICAL errors trigger recovery, and recovery is rationed: at most
max_recovery_attempts per category inside one cooldown window. The next
CRITICAL error in the same window skips recovery, escalates the tracker's
status to CRITICAL and raises RecoveryExhaustedError.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Set, Union

from anima.core.dimensional_state import QuantumStatus
from anima.core.errors import RecoveryExhaustedError
from anima.core.gateways import Clock, ErrorSink, LoggingErrorSink, SystemClock

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class ErrorCategory(Enum):
    QUANTUM = "QUANTUM"
    CONSCIOUSNESS = "CONSCIOUSNESS"
    EMOTIONAL = "EMOTIONAL"
    EVOLUTION = "EVOLUTION"
    PATTERN = "PATTERN"
    STATE = "STATE"
    NETWORK = "NETWORK"
    PERSISTENCE = "PERSISTENCE"


@dataclass
class TrackedError:
    id: str
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    error_type: str
    timestamp: float
    context: Dict[str, Any] = field(default_factory=dict)
    recovery: Optional[str] = None     # recovered / failed / no_action / in_progress / exhausted

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category.value,
            "severity": self.severity.value,
            "message": self.message,
            "error_type": self.error_type,
            "timestamp": datetime.fromtimestamp(self.timestamp / 1000.0, tz=timezone.utc).isoformat(),
            "context": self.context,
            "recovery": self.recovery,
        }


@dataclass
class RecoveryPolicy:
    """Limits on recovery."""
    max_recovery_attempts: int = 3
    cooldown_ms: float = 5000.0
    max_errors_per_category: int = 100


RecoveryAction = Callable[[TrackedError], Optional[bool]]
Subscriber = Callable[[TrackedError], None]


class ErrorTracker:
    """Per-entity error log and recovery gate."""

    def __init__(
        self,
        clock: Optional[Clock] = None,
        sink: Optional[ErrorSink] = None,
        policy: Optional[RecoveryPolicy] = None,
    ) -> None:
        self.clock = clock or SystemClock()
        self.sink = sink or LoggingErrorSink()
        self.policy = policy or RecoveryPolicy()

        self.status = QuantumStatus.STABLE
        self._errors: Dict[ErrorCategory, Deque[TrackedError]] = {}
        self._subscribers: List[Subscriber] = []
        self._recoveries: Dict[ErrorCategory, RecoveryAction] = {}
        self._counter: int = 0

        # Cooldown window per category: (window start, attempts in window)
        self._windows: Dict[ErrorCategory, List[float]] = {}
        self._in_progress: Set[ErrorCategory] = set()

    # ── Public Methods ───────────────────────────────────────────────────────

    def track_error(
        self,
        category: ErrorCategory,
        error: Union[BaseException, str],
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Record an error and, for CRITICAL severity, attempt recovery.

        Returns:
            The error id.

        Raises:
            RecoveryExhaustedError: A CRITICAL error arrived after the
                category's recovery attempts for this window were used up.
        """
        now = self.clock.now()
        self._counter += 1
        error_id = f"{int(now)}-{self._counter:06d}"

        tracked = TrackedError(
            id=error_id,
            category=category,
            severity=severity,
            message=str(error),
            error_type=type(error).__name__ if isinstance(error, BaseException) else "str",
            timestamp=now,
            context=dict(context or {}),
        )

        bucket = self._errors.setdefault(
            category, deque(maxlen=self.policy.max_errors_per_category)
        )
        bucket.append(tracked)

        self._record(tracked)
        self._notify(tracked)

        if severity == ErrorSeverity.CRITICAL:
            self._handle_critical(tracked)

        return error_id

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a subscriber. Returns a callable that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def register_recovery(self, category: ErrorCategory, action: RecoveryAction) -> None:
        """Set the recovery action for a category. Returning False means it failed."""
        self._recoveries[category] = action

    def get_errors(self, category: Optional[ErrorCategory] = None) -> List[TrackedError]:
        if category is not None:
            return list(self._errors.get(category, ()))
        merged = [e for bucket in self._errors.values() for e in bucket]
        return sorted(merged, key=lambda e: (e.timestamp, e.id))

    def get_error_report(self, category: Optional[ErrorCategory] = None) -> str:
        return json.dumps([e.to_dict() for e in self.get_errors(category)], indent=2, default=str)

    def clear_errors(self, category: Optional[ErrorCategory] = None) -> None:
        if category is None:
            self._errors.clear()
        else:
            self._errors.pop(category, None)

    def recovery_attempts(self, category: ErrorCategory) -> int:
        """Attempts used in the category's current window (0 if it has lapsed)."""
        window = self._windows.get(category)
        if window is None or self.clock.now() - window[0] >= self.policy.cooldown_ms:
            return 0
        return int(window[1])

    def reset_status(self) -> None:
        self.status = QuantumStatus.STABLE
        self._windows.clear()
        logger.info("Error tracker status reset")

    # ── Internal ─────────────────────────────────────────────────────────────

    def _record(self, tracked: TrackedError) -> None:
        try:
            self.sink.record(
                tracked.category.value, tracked.severity.value, tracked.message, tracked.context
            )
        except Exception:
            logger.exception("Error sink failed for %s", tracked.id)

    def _notify(self, tracked: TrackedError) -> None:
        for callback in list(self._subscribers):
            try:
                callback(tracked)
            except Exception:
                logger.exception("Error subscriber failed for %s", tracked.id)

    def _handle_critical(self, tracked: TrackedError) -> None:
        policy = self.policy
        category = tracked.category
        now = self.clock.now()

        window = self._windows.get(category)
        if window is None or now - window[0] >= policy.cooldown_ms:
            window = [now, 0]
            self._windows[category] = window

        if window[1] >= policy.max_recovery_attempts:
            tracked.recovery = "exhausted"
            self.status = QuantumStatus.CRITICAL
            logger.error(
                "Recovery exhausted for %s (%d attempts within %.0fms)",
                category.value, window[1], policy.cooldown_ms,
            )
            raise RecoveryExhaustedError(category.value, int(window[1]))

        if category in self._in_progress:
            tracked.recovery = "in_progress"
            return

        window[1] += 1
        action = self._recoveries.get(category)
        if action is None:
            tracked.recovery = "no_action"
            return

        logger.warning(
            "Recovery attempt %d/%d for %s",
            window[1], policy.max_recovery_attempts, category.value,
        )
        self._in_progress.add(category)
        try:
            outcome = action(tracked)
        except Exception:
            logger.exception("Recovery action for %s raised", category.value)
            outcome = False
        finally:
            self._in_progress.discard(category)

        tracked.recovery = "failed" if outcome is False else "recovered"
        if outcome is False and self.status == QuantumStatus.STABLE:
            self.status = QuantumStatus.UNSTABLE
