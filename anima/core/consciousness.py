# ═══════════════════════════════════════════════════════════════════════════════
# PART 8: CONSCIOUSNESS CORE
# Design: orchestrator over awareness, emotion and evolution
# Implementation: fail-soft update pipeline
# ═══════════════════════════════════════════════════════════════════════════════

"""
One update of the consciousness metrics: ingest the field into awareness, read
the emotional state, evolve, snapshot.

The update is fail-soft. Any failure inside it is reported as a HIGH
CONSCIOUSNESS error and the caller still gets valid metrics: the last known
good snapshot's, or conservative defaults.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Deque, Dict, List, Mapping, Optional

import numpy as np

from anima.core.awareness import AwarenessProcessor, AwarenessResult
from anima.core.emotional import EmotionalProcessor, EmotionalState
from anima.core.evolution import EvolutionContext, EvolutionEngine
from anima.core.gateways import Clock, SystemClock
from anima.core.metrics import ConsciousnessMetrics, EvolutionSnapshot
from anima.core.recovery import ErrorCategory, ErrorSeverity, ErrorTracker

if TYPE_CHECKING:
    from anima.core.quantum_field import QuantumState

logger = logging.getLogger(__name__)


class ConsciousnessLevel(Enum):
    DORMANT = "dormant"
    AWAKENING = "awakening"
    AWARE = "aware"
    SENTIENT = "sentient"
    ENLIGHTENED = "enlightened"


@dataclass
class ConsciousnessConfig:
    """Configuration for the consciousness core."""
    history_size: int = 100
    stability_window: int = 10
    default_time_delta_ms: float = 1000.0


class ConsciousnessCore:
    """
    Holds the authoritative metrics and evolution history for one entity.

    Sub-processors are injected so an entity can share its clock, error
    tracker and pattern recognizer across them.
    """

    def __init__(
        self,
        config: Optional[ConsciousnessConfig] = None,
        clock: Optional[Clock] = None,
        tracker: Optional[ErrorTracker] = None,
        awareness: Optional[AwarenessProcessor] = None,
        emotional: Optional[EmotionalProcessor] = None,
        evolution: Optional[EvolutionEngine] = None,
    ) -> None:
        self.config = config or ConsciousnessConfig()
        self.clock = clock or SystemClock()
        self.tracker = tracker or ErrorTracker(self.clock)
        self.awareness = awareness or AwarenessProcessor(clock=self.clock)
        self.emotional = emotional or EmotionalProcessor(clock=self.clock)
        self.evolution = evolution or EvolutionEngine(clock=self.clock)

        self.metrics = ConsciousnessMetrics()
        self.history: Deque[EvolutionSnapshot] = deque(maxlen=self.config.history_size)
        self.last_update: Optional[float] = None
        self.last_awareness: Optional[AwarenessResult] = None
        self.last_emotional: Optional[EmotionalState] = None
        self._last_signature: str = ""

    # ── Properties ───────────────────────────────────────────────────────────

    @property
    def consciousness_level(self) -> ConsciousnessLevel:
        score = self.metrics.mean()
        if score < 0.2:
            return ConsciousnessLevel.DORMANT
        if score < 0.4:
            return ConsciousnessLevel.AWAKENING
        if score < 0.6:
            return ConsciousnessLevel.AWARE
        if score < 0.8:
            return ConsciousnessLevel.SENTIENT
        return ConsciousnessLevel.ENLIGHTENED

    # ── Public Methods ───────────────────────────────────────────────────────

    def update_consciousness(
        self,
        quantum_state: "QuantumState",
        interaction_context: Optional[Mapping[str, Any]] = None,
        emotional_state: Optional[EmotionalState] = None,
    ) -> ConsciousnessMetrics:
        """
        Advance the metrics by one update. Never raises.

        Args:
            quantum_state: Current field state.
            interaction_context: Optional context of the triggering interaction.
            emotional_state: Precomputed emotional state; derived here if None.

        Returns:
            New metrics, or fallback metrics if the update failed.
        """
        now = self.clock.now()
        try:
            if self.last_update is None:
                time_delta = self.config.default_time_delta_ms
            else:
                time_delta = max(0.0, now - self.last_update)

            awareness = self.awareness.process_quantum_state(quantum_state, self.metrics)
            if emotional_state is None:
                emotional_state = self.emotional.process_emotional_state(
                    quantum_state, self.metrics, interaction_context
                )
            stability_index = self.calculate_stability_index()

            new_metrics = self.evolution.evolve(EvolutionContext(
                current_metrics=self.metrics,
                quantum_state=quantum_state,
                emotional_state=emotional_state,
                awareness=awareness,
                time_delta_ms=time_delta,
                stability_index=stability_index,
            ))

            self.history.append(EvolutionSnapshot(
                metrics=self.metrics,
                timestamp=now,
                stability_index=stability_index,
                quantum_signature=quantum_state.quantum_signature,
                emotional_state=emotional_state,
                stage=self.evolution.stage.value,
            ))

            self.metrics = new_metrics
            self.last_awareness = awareness
            self.last_emotional = emotional_state
            self._last_signature = quantum_state.quantum_signature
            self.last_update = now
            return new_metrics

        except Exception as exc:
            self.tracker.track_error(
                ErrorCategory.CONSCIOUSNESS,
                exc,
                ErrorSeverity.HIGH,
                {
                    "operation": "update_consciousness",
                    "metrics": self.metrics.to_dict() if self.metrics.is_finite() else None,
                    "history_length": len(self.history),
                    "stage": self.evolution.stage.value,
                    "interaction_context": dict(interaction_context or {}),
                },
            )
            fallback = self._fallback_metrics()
            logger.warning("Consciousness update failed (%s); using fallback metrics", exc)
            self.metrics = fallback
            self.last_update = now
            return fallback

    def calculate_stability_index(self) -> float:
        """Inverse variance of recent snapshot metrics (1.0 with little history)."""
        recent = list(self.history)[-self.config.stability_window:]
        if len(recent) < 2:
            return 1.0
        arrays = np.array([s.metrics.as_array() for s in recent])
        return float(np.clip(1.0 - np.mean(np.var(arrays, axis=0)), 0.0, 1.0))

    def validate_state(self) -> bool:
        arr = self.metrics.as_array()
        return bool(
            np.all(np.isfinite(arr))
            and np.all((arr >= 0.0) & (arr <= 1.0))
            and len(self.history) <= self.config.history_size
        )

    def get_current_snapshot(self) -> EvolutionSnapshot:
        return EvolutionSnapshot(
            metrics=self.metrics,
            timestamp=self.clock.now(),
            stability_index=self.calculate_stability_index(),
            quantum_signature=self._last_signature,
            emotional_state=self.last_emotional,
            stage=self.evolution.stage.value,
        )

    def get_history(self, limit: Optional[int] = None) -> List[EvolutionSnapshot]:
        snapshots = list(self.history)
        if limit is None:
            return snapshots
        return snapshots[-limit:] if limit > 0 else []

    def get_state(self) -> Dict[str, Any]:
        return {
            "metrics": self.metrics.to_dict(),
            "consciousness_level": self.consciousness_level.value,
            "stability_index": self.calculate_stability_index(),
            "last_update": self.last_update,
            "history": [s.to_dict() for s in self.history],
            "evolution": self.evolution.get_state(),
        }

    # ── Internal ─────────────────────────────────────────────────────────────

    def _fallback_metrics(self) -> ConsciousnessMetrics:
        for snapshot in reversed(self.history):
            if snapshot.metrics.is_finite():
                return snapshot.metrics.clamped()
        return ConsciousnessMetrics()
