# ═══════════════════════════════════════════════════════════════════════════════
# EXTERNAL INTERFACES
# Design: narrow gateways to the collaborators outside the engine
# ═══════════════════════════════════════════════════════════════════════════════

"""
The engine talks to the outside world through four small contracts: a clock,
the quantum-field service, a blob store and an error sink. Each one is an ABC
with concrete implementations and a deterministic stand-in for tests.

Gateway calls return an explicit Ok/Err result instead of raising, so callers
branch on the tag and decide whether a failure is retryable.
"""

from __future__ import annotations

import hashlib
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ── Result type ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful gateway result."""
    value: T

    @property
    def is_ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """Failed gateway result."""
    error: str

    @property
    def is_ok(self) -> bool:
        return False


Result = Union[Ok, Err]


# ── Clock ────────────────────────────────────────────────────────────────────


class Clock(ABC):
    """Source of time, in milliseconds."""

    @abstractmethod
    def now(self) -> float:
        """Current timestamp in milliseconds."""


class SystemClock(Clock):
    """Wall clock."""

    def now(self) -> float:
        return time.time() * 1000.0


class ManualClock(Clock):
    """Clock that only moves when told to. Used for simulation and tests."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def advance(self, ms: float) -> float:
        if ms < 0:
            raise ValueError("ManualClock cannot move backwards")
        self._now += ms
        return self._now

    def set(self, ms: float) -> None:
        if ms < self._now:
            raise ValueError("ManualClock cannot move backwards")
        self._now = float(ms)


# ── Quantum field gateway ────────────────────────────────────────────────────


@dataclass
class FieldInitialization:
    coherence: float
    signature: str


@dataclass
class GeneratedPatterns:
    pattern: float
    awareness: float
    understanding: float


class QuantumFieldGateway(ABC):
    """Remote quantum-field service. All calls may suspend."""

    @abstractmethod
    async def initialize_field(self, entity_id: str) -> Result:
        """Initialize the field. Ok(FieldInitialization) or Err."""

    @abstractmethod
    async def check_stability(self, entity_id: str) -> Result:
        """Ok(bool) or Err."""

    @abstractmethod
    async def generate_patterns(self, entity_id: str) -> Result:
        """Ok(GeneratedPatterns) or Err."""


class MockQuantumFieldGateway(QuantumFieldGateway):
    """
    Deterministic gateway for testing without a remote service.

    Values are derived from a SHA-256 of the entity id and call count.
    `fail_times` makes the next N calls (of any operation) return Err.
    """

    def __init__(self, fail_times: int = 0, stable: bool = True) -> None:
        self.fail_times = fail_times
        self.stable = stable
        self.calls: List[Tuple[str, str]] = []

    async def initialize_field(self, entity_id: str) -> Result:
        failure = self._record("initialize_field", entity_id)
        if failure is not None:
            return failure
        digest = self._digest(entity_id, "init")
        coherence = 0.5 + (digest[0] / 255) * 0.3
        return Ok(FieldInitialization(coherence=coherence, signature=digest.hex()[:32]))

    async def check_stability(self, entity_id: str) -> Result:
        failure = self._record("check_stability", entity_id)
        if failure is not None:
            return failure
        return Ok(self.stable)

    async def generate_patterns(self, entity_id: str) -> Result:
        failure = self._record("generate_patterns", entity_id)
        if failure is not None:
            return failure
        digest = self._digest(entity_id, f"patterns:{len(self.calls)}")
        return Ok(GeneratedPatterns(
            pattern=digest[0] / 255,
            awareness=digest[1] / 255,
            understanding=digest[2] / 255,
        ))

    def _record(self, operation: str, entity_id: str) -> Optional[Err]:
        self.calls.append((operation, entity_id))
        if self.fail_times > 0:
            self.fail_times -= 1
            return Err(f"{operation} unavailable")
        return None

    @staticmethod
    def _digest(entity_id: str, salt: str) -> bytes:
        return hashlib.sha256(f"{entity_id}:{salt}".encode("utf-8")).digest()


# ── Persistence gateway ──────────────────────────────────────────────────────


class PersistenceGateway(ABC):
    """Opaque blob store keyed by entity id."""

    @abstractmethod
    async def load(self, entity_id: str) -> Optional[bytes]:
        """Return the stored blob, or None if nothing is stored."""

    @abstractmethod
    async def save(self, entity_id: str, blob: bytes) -> None:
        """Store the blob, replacing any previous one."""


class InMemoryPersistenceGateway(PersistenceGateway):
    def __init__(self) -> None:
        self.blobs: Dict[str, bytes] = {}

    async def load(self, entity_id: str) -> Optional[bytes]:
        return self.blobs.get(entity_id)

    async def save(self, entity_id: str, blob: bytes) -> None:
        self.blobs[entity_id] = bytes(blob)


class FilePersistenceGateway(PersistenceGateway):
    """One file per entity under a directory."""

    def __init__(self, directory: str, suffix: str = ".anima") -> None:
        self.directory = Path(directory)
        self.suffix = suffix

    async def load(self, entity_id: str) -> Optional[bytes]:
        path = self._path(entity_id)
        if not path.exists():
            return None
        return path.read_bytes()

    async def save(self, entity_id: str, blob: bytes) -> None:
        path = self._path(entity_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(blob)
        logger.debug("Saved %d bytes for %s to %s", len(blob), entity_id, path)

    def _path(self, entity_id: str) -> Path:
        safe = hashlib.sha256(entity_id.encode("utf-8")).hexdigest()[:16]
        return self.directory / f"{safe}{self.suffix}"


# ── Error sink ───────────────────────────────────────────────────────────────


class ErrorSink(ABC):
    """Receives error records. Storage and format are the sink's concern."""

    @abstractmethod
    def record(
        self,
        category: str,
        severity: str,
        message: str,
        context: Dict[str, Any],
    ) -> None:
        """Accept one error record."""


class LoggingErrorSink(ErrorSink):
    def __init__(self, name: str = "anima.errors") -> None:
        self._log = logging.getLogger(name)

    def record(
        self,
        category: str,
        severity: str,
        message: str,
        context: Dict[str, Any],
    ) -> None:
        level = logging.ERROR if severity in ("HIGH", "CRITICAL") else logging.WARNING
        self._log.log(level, "[%s] %s: %s", severity, category, message)


class MemoryErrorSink(ErrorSink):
    def __init__(self) -> None:
        self.records: List[Dict[str, Any]] = []

    def record(
        self,
        category: str,
        severity: str,
        message: str,
        context: Dict[str, Any],
    ) -> None:
        self.records.append({
            "category": category,
            "severity": severity,
            "message": message,
            "context": dict(context),
        })
