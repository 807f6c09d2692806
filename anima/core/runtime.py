# ═══════════════════════════════════════════════════════════════════════════════
# PART 11: RUNTIME
# Design: one serialized update pipeline per entity
# Implementation: asyncio
# ═══════════════════════════════════════════════════════════════════════════════

"""
The engine itself is synchronous. The runtime is where it meets the async
gateways: every mutation of an entity goes through that entity's lock, gateway
results are awaited before anything derived from them is applied, and timer
ticks that find a tick already running are skipped rather than queued.

Entities never share a runtime, a lock or any state.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional

from anima.core.entity import AnimaEntity, EntityConfig
from anima.core.errors import RecoveryExhaustedError, TransientExternalError
from anima.core.gateways import (
    Clock,
    Err,
    ErrorSink,
    FieldInitialization,
    GeneratedPatterns,
    Ok,
    PersistenceGateway,
    QuantumFieldGateway,
    Result,
)
from anima.core.persistence import EntityPersistence, SaveResult
from anima.core.recovery import ErrorCategory, ErrorSeverity

logger = logging.getLogger(__name__)


class EntityRuntime:
    """Async wrapper that serializes all work on one entity."""

    def __init__(
        self,
        entity: AnimaEntity,
        gateway: QuantumFieldGateway,
        persistence: Optional[PersistenceGateway] = None,
        max_retries: int = 3,
        retry_backoff: float = 0.05,
    ) -> None:
        self.entity = entity
        self.gateway = gateway
        self.persistence = persistence
        self.max_retries = max(1, max_retries)
        self.retry_backoff = retry_backoff

        self._lock = asyncio.Lock()
        self._ticking = False
        self.skipped_ticks: int = 0

    @property
    def entity_id(self) -> str:
        return self.entity.entity_id

    # ── Public Methods ───────────────────────────────────────────────────────

    async def initialize(self) -> bool:
        """Initialize the field from the gateway. False if the gateway failed."""
        async with self._lock:
            result = await self._call("initialize_field")
            if isinstance(result, Err):
                return False
            init: FieldInitialization = result.value
            self.entity.field.reinitialize(init.coherence, init.signature)
            return True

    async def interact(
        self,
        strength: float,
        context: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        async with self._lock:
            return self.entity.process_interaction(strength, context)

    async def tick(self) -> Optional[Dict[str, Any]]:
        """
        One timer tick. Returns None if a tick was already running.

        Every `stability_check_interval` ticks the gateway is asked whether the
        field is stable and for freshly generated patterns.
        """
        if self._ticking:
            self.skipped_ticks += 1
            logger.debug("Tick skipped for %s: previous tick still running", self.entity_id)
            return None

        self._ticking = True
        try:
            async with self._lock:
                summary = self.entity.tick()
                interval = self.entity.config.stability_check_interval
                if interval > 0 and summary["tick"] % interval == 0:
                    await self._sync_with_gateway()
                    summary["coherence"] = self.entity.field.state.coherence_level
                return summary
        finally:
            self._ticking = False

    async def save(self) -> SaveResult:
        if self.persistence is None:
            raise RuntimeError("runtime has no persistence gateway")
        async with self._lock:
            return await EntityPersistence.save(self.entity, self.persistence)

    async def load(self) -> bool:
        """Replace the live entity with the stored one. False if nothing is stored."""
        if self.persistence is None:
            raise RuntimeError("runtime has no persistence gateway")
        async with self._lock:
            restored = await EntityPersistence.load(
                self.persistence,
                self.entity_id,
                self.entity.config,
                self.entity.clock,
                self.entity.tracker.sink,
            )
            if restored is None:
                return False
            self.entity = restored
            return True

    # ── Internal ─────────────────────────────────────────────────────────────

    async def _sync_with_gateway(self) -> None:
        stability = await self._call("check_stability")
        if isinstance(stability, Ok) and not stability.value:
            self.entity.tracker.track_error(
                ErrorCategory.QUANTUM,
                "gateway reports unstable field",
                ErrorSeverity.HIGH,
                {"entity_id": self.entity_id},
            )
            self.entity.field.emergency_recovery()

        patterns = await self._call("generate_patterns")
        if isinstance(patterns, Ok):
            generated: GeneratedPatterns = patterns.value
            self.entity.field.apply_generated_patterns(
                generated.pattern, generated.awareness, generated.understanding
            )

    async def _call(self, operation: str) -> Result:
        """
        Call a gateway operation with bounded retries.

        Each failure is tracked as a MEDIUM network error; running out of
        retries is tracked as CRITICAL, which may raise RecoveryExhaustedError.
        """
        method = getattr(self.gateway, operation)
        result: Result = Err(f"{operation} not attempted")

        for attempt in range(1, self.max_retries + 1):
            try:
                result = await method(self.entity_id)
            except (OSError, asyncio.TimeoutError) as exc:
                result = Err(str(exc))

            if isinstance(result, Ok):
                return result

            self.entity.tracker.track_error(
                ErrorCategory.NETWORK,
                TransientExternalError(operation, result.error),
                ErrorSeverity.MEDIUM,
                {"entity_id": self.entity_id, "attempt": attempt},
            )
            if attempt < self.max_retries and self.retry_backoff > 0:
                await asyncio.sleep(self.retry_backoff * 2 ** (attempt - 1))

        self.entity.tracker.track_error(
            ErrorCategory.NETWORK,
            TransientExternalError(operation, f"gave up after {self.max_retries} attempts"),
            ErrorSeverity.CRITICAL,
            {"entity_id": self.entity_id, "attempts": self.max_retries},
        )
        return result


class EntityRegistry:
    """Entity id -> independent EntityRuntime."""

    def __init__(
        self,
        gateway: QuantumFieldGateway,
        persistence: Optional[PersistenceGateway] = None,
        clock: Optional[Clock] = None,
        sink: Optional[ErrorSink] = None,
        retry_backoff: float = 0.05,
    ) -> None:
        self.gateway = gateway
        self.persistence = persistence
        self.clock = clock
        self.sink = sink
        self.retry_backoff = retry_backoff

        self._runtimes: Dict[str, EntityRuntime] = {}
        self._lock = asyncio.Lock()
        # One lock per id while its entity is loaded or initialized
        self._creating: Dict[str, asyncio.Lock] = {}

    def __contains__(self, entity_id: str) -> bool:
        return entity_id in self._runtimes

    def __len__(self) -> int:
        return len(self._runtimes)

    @property
    def ids(self) -> List[str]:
        return list(self._runtimes)

    def get(self, entity_id: str) -> Optional[EntityRuntime]:
        return self._runtimes.get(entity_id)

    async def get_or_create(
        self,
        entity_id: str,
        name: Optional[str] = None,
        seed: Optional[int] = None,
    ) -> EntityRuntime:
        """
        Return the runtime for an id, loading or creating the entity once.

        Stored entities are restored from persistence; new ones get a field
        initialized through the gateway.
        """
        async with self._lock:
            runtime = self._runtimes.get(entity_id)
            if runtime is not None:
                return runtime
            creating = self._creating.setdefault(entity_id, asyncio.Lock())

        async with creating:
            runtime = self._runtimes.get(entity_id)
            if runtime is not None:
                return runtime

            config = EntityConfig(name=name or entity_id, entity_id=entity_id, seed=seed)
            entity: Optional[AnimaEntity] = None
            if self.persistence is not None:
                entity = await EntityPersistence.load(
                    self.persistence, entity_id, config, self.clock, self.sink
                )

            fresh = entity is None
            if fresh:
                entity = AnimaEntity(config, self.clock, self.sink)

            runtime = EntityRuntime(
                entity, self.gateway, self.persistence, retry_backoff=self.retry_backoff
            )
            if fresh:
                await runtime.initialize()

            self._runtimes[entity_id] = runtime
            self._creating.pop(entity_id, None)
            logger.info("Registered %s (%s)", entity_id, "new" if fresh else "restored")
            return runtime

    def remove(self, entity_id: str) -> bool:
        return self._runtimes.pop(entity_id, None) is not None

    async def tick_all(self) -> Dict[str, Optional[Dict[str, Any]]]:
        """
        Tick every entity. An entity whose recovery is exhausted reports a
        critical summary instead of failing the others.
        """
        ids = list(self._runtimes)
        results = await asyncio.gather(
            *(self._runtimes[i].tick() for i in ids), return_exceptions=True
        )

        summaries: Dict[str, Optional[Dict[str, Any]]] = {}
        for entity_id, result in zip(ids, results):
            if isinstance(result, RecoveryExhaustedError):
                logger.error("Entity %s is critical: %s", entity_id, result)
                summaries[entity_id] = {"status": "critical", "error": str(result)}
            elif isinstance(result, BaseException):
                raise result
            else:
                summaries[entity_id] = result
        return summaries

    async def save_all(self) -> List[SaveResult]:
        return [await runtime.save() for runtime in self._runtimes.values()]
