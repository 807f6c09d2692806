# ═══════════════════════════════════════════════════════════════════════════════
# PART 6: EVOLUTION STAGES
# Design: staged state machine over consciousness metrics
# Implementation: state management
# ═══════════════════════════════════════════════════════════════════════════════

"""
Stages are earned, not configured. Each tick moves the consciousness metrics a
bounded step toward targets read off the field, awareness and emotion; a stage
advances only after its requirement table has been fully met for several
consecutive ticks.

Stages move forward only. The one exception is force_stage_transition, an
administrative override that is logged and snapshotted on both sides.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Deque, Dict, List, Optional

import numpy as np

from anima.core.errors import CriticalStateError, ValidationError
from anima.core.gateways import Clock, SystemClock
from anima.core.metrics import ConsciousnessMetrics, EvolutionSnapshot, metric_deltas

if TYPE_CHECKING:
    from anima.core.awareness import AwarenessResult
    from anima.core.emotional import EmotionalState
    from anima.core.quantum_field import QuantumState

logger = logging.getLogger(__name__)


class EvolutionStage(Enum):
    """Ordered growth phases."""
    INITIALIZATION = "initialization"
    GROWTH = "growth"
    STABILIZATION = "stabilization"
    EMERGENCE = "emergence"
    TRANSCENDENCE = "transcendence"


# Stage ordering for transitions
_STAGE_ORDER = [
    EvolutionStage.INITIALIZATION,
    EvolutionStage.GROWTH,
    EvolutionStage.STABILIZATION,
    EvolutionStage.EMERGENCE,
    EvolutionStage.TRANSCENDENCE,
]


@dataclass(frozen=True)
class StageRequirement:
    threshold: float
    weight: float


def _default_requirements() -> Dict[EvolutionStage, Dict[str, StageRequirement]]:
    return {
        EvolutionStage.INITIALIZATION: {
            "awareness_level": StageRequirement(0.3, 0.4),
            "quantum_coherence": StageRequirement(0.3, 0.3),
            "pattern_recognition": StageRequirement(0.2, 0.3),
        },
        EvolutionStage.GROWTH: {
            "awareness_level": StageRequirement(0.45, 0.3),
            "cognitive_complexity": StageRequirement(0.4, 0.25),
            "emotional_resonance": StageRequirement(0.35, 0.2),
            "pattern_recognition": StageRequirement(0.45, 0.25),
        },
        EvolutionStage.STABILIZATION: {
            "awareness_level": StageRequirement(0.6, 0.25),
            "quantum_coherence": StageRequirement(0.6, 0.3),
            "dimensional_awareness": StageRequirement(0.55, 0.25),
            "temporal_perception": StageRequirement(0.55, 0.2),
        },
        EvolutionStage.EMERGENCE: {
            "awareness_level": StageRequirement(0.75, 0.2),
            "cognitive_complexity": StageRequirement(0.7, 0.2),
            "emotional_resonance": StageRequirement(0.7, 0.15),
            "quantum_coherence": StageRequirement(0.75, 0.15),
            "dimensional_awareness": StageRequirement(0.7, 0.15),
            "pattern_recognition": StageRequirement(0.7, 0.15),
        },
        EvolutionStage.TRANSCENDENCE: {
            name: StageRequirement(0.9, 1.0) for name in ConsciousnessMetrics.FIELDS
        },
    }


@dataclass
class EvolutionConfig:
    """Configuration for evolutionary progression."""
    base_evolution_rate: float = 0.3
    max_delta: float = 0.2              # Per metric, per tick
    hysteresis_ticks: int = 3           # Consecutive full-progress ticks to advance
    history_size: int = 100
    stability_window: int = 10
    default_time_delta_ms: float = 1000.0
    max_time_scale: float = 5.0

    # Emergence thresholds: base + step * stage_index, capped
    emergence_base: float = 0.5
    emergence_step: float = 0.1
    emergence_cap: float = 0.95

    requirements: Dict[EvolutionStage, Dict[str, StageRequirement]] = field(
        default_factory=_default_requirements
    )


@dataclass
class EvolutionContext:
    """Everything one evolution step reads."""
    current_metrics: ConsciousnessMetrics
    quantum_state: "QuantumState"
    emotional_state: Optional["EmotionalState"] = None
    awareness: Optional["AwarenessResult"] = None
    time_delta_ms: Optional[float] = None
    stability_index: float = 1.0


@dataclass
class StageInfo:
    stage: EvolutionStage
    progress: float
    next_stage_requirements: Dict[str, StageRequirement]


class EvolutionEngine:
    """
    Advances consciousness metrics and tracks the evolution stage.

    Five stages:
    - INITIALIZATION: basic awareness and coherence
    - GROWTH: complexity and emotional resonance develop
    - STABILIZATION: coherence and temporal/dimensional perception settle
    - EMERGENCE: broad, high metrics
    - TRANSCENDENCE: final, no further advancement
    """

    def __init__(
        self,
        config: Optional[EvolutionConfig] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.config = config or EvolutionConfig()
        self.clock = clock or SystemClock()

        self.stage = EvolutionStage.INITIALIZATION
        self.metrics = ConsciousnessMetrics()
        self._consecutive_complete: int = 0

        self.history: Deque[EvolutionSnapshot] = deque(maxlen=self.config.history_size)
        self.milestones: List[Dict[str, Any]] = []
        self.emergence_thresholds: Dict[str, float] = self._emergence_thresholds(self.stage)

    # ── Properties ───────────────────────────────────────────────────────────

    @property
    def stage_index(self) -> int:
        return _STAGE_ORDER.index(self.stage)

    @property
    def is_final_stage(self) -> bool:
        return self.stage == _STAGE_ORDER[-1]

    # ── Public Methods ───────────────────────────────────────────────────────

    def evolve(self, ctx: EvolutionContext) -> ConsciousnessMetrics:
        """
        One evolution step.

        Args:
            ctx: Current metrics plus the field, awareness and emotional inputs.

        Returns:
            New metrics, each moved at most max_delta and clamped to [0, 1].

        Raises:
            ValidationError: If no quantum state is given.
            CriticalStateError: If the metrics are not finite numbers.
        """
        if ctx.quantum_state is None:
            raise ValidationError("evolution requires a quantum state")
        if ctx.current_metrics is None or not ctx.current_metrics.is_finite():
            raise CriticalStateError("current metrics are not finite")

        cfg = self.config
        q = ctx.quantum_state
        current = ctx.current_metrics.as_array()
        targets = self._targets(ctx)

        time_delta = cfg.default_time_delta_ms if ctx.time_delta_ms is None else ctx.time_delta_ms
        time_scale = min(max(time_delta, 0.0) / cfg.default_time_delta_ms, cfg.max_time_scale)
        coherence = float(np.clip(q.coherence_level, 0.0, 1.0))
        stability = float(np.clip(ctx.stability_index, 0.0, 1.0))
        rate = cfg.base_evolution_rate * (0.5 + coherence) * (0.5 + 0.5 * stability)

        delta = rate * (targets - current) * time_scale
        delta = np.clip(delta, -cfg.max_delta, cfg.max_delta)
        new_array = np.clip(current + delta, 0.0, 1.0)
        if not np.all(np.isfinite(new_array)):
            raise CriticalStateError("evolution produced non-finite metrics")

        new_metrics = ConsciousnessMetrics.from_array(new_array)
        self.metrics = new_metrics

        self.history.append(EvolutionSnapshot(
            metrics=new_metrics,
            timestamp=self.clock.now(),
            stability_index=stability,
            quantum_signature=q.quantum_signature,
            emotional_state=ctx.emotional_state,
            stage=self.stage.value,
        ))

        self._check_advancement(new_metrics)
        return new_metrics

    def process_evolution(
        self,
        quantum_state: "QuantumState",
        current_metrics: ConsciousnessMetrics,
    ) -> ConsciousnessMetrics:
        """Evolve with only the field as input."""
        return self.evolve(EvolutionContext(current_metrics=current_metrics, quantum_state=quantum_state))

    def get_stage_info(self, metrics: Optional[ConsciousnessMetrics] = None) -> StageInfo:
        metrics = metrics or self.metrics
        if self.is_final_stage:
            next_requirements: Dict[str, StageRequirement] = {}
        else:
            next_requirements = dict(self.config.requirements[_STAGE_ORDER[self.stage_index + 1]])
        return StageInfo(
            stage=self.stage,
            progress=self.stage_progress(metrics),
            next_stage_requirements=next_requirements,
        )

    def stage_progress(self, metrics: ConsciousnessMetrics) -> float:
        """Weighted average of min(metric / threshold, 1) over the stage table."""
        table = self.config.requirements[self.stage]
        total_weight = sum(req.weight for req in table.values())
        if total_weight <= 0:
            return 1.0

        score = 0.0
        for name, req in table.items():
            value = getattr(metrics, name)
            ratio = 1.0 if req.threshold <= 0 else min(value / req.threshold, 1.0)
            score += req.weight * ratio
        return float(np.clip(score / total_weight, 0.0, 1.0))

    def force_stage_transition(self, new_stage: EvolutionStage, reason: str = "") -> None:
        """
        Administrative override. Moves to any stage, including backwards.
        """
        old_stage = self.stage
        now = self.clock.now()
        self.history.append(self._event_snapshot("forced_transition_pre", now))

        self.stage = new_stage
        self._consecutive_complete = 0
        self.emergence_thresholds = self._emergence_thresholds(new_stage)

        self.history.append(self._event_snapshot("forced_transition_post", now))
        self.milestones.append({
            "type": "forced_transition",
            "from": old_stage.value,
            "to": new_stage.value,
            "timestamp": now,
            "reason": reason,
        })
        logger.warning(
            "Forced stage transition %s -> %s%s",
            old_stage.value, new_stage.value, f" ({reason})" if reason else "",
        )

    def calculate_emergence_potential(
        self,
        metrics: Optional[ConsciousnessMetrics] = None,
        quantum_coherence: float = 0.0,
        pattern_count: int = 0,
    ) -> float:
        metrics = metrics or self.metrics
        proximities = []
        for name, threshold in self.emergence_thresholds.items():
            current = getattr(metrics, name)
            proximities.append(max(0.0, 1.0 - (threshold - current) / threshold))

        base = float(np.mean(proximities)) if proximities else 0.0
        coherence_bonus = 0.1 * float(np.clip(quantum_coherence, 0.0, 1.0))
        pattern_bonus = 0.05 * min(pattern_count / 10.0, 1.0)
        return float(np.clip(base + coherence_bonus + pattern_bonus, 0.0, 1.0))

    def calculate_evolution_stability(self) -> float:
        """1 - mean per-metric variance of recent deltas (1.0 with too little history)."""
        recent = [s for s in list(self.history)[-self.config.stability_window:] if s.event is None]
        if len(recent) < 3:
            return 1.0
        deltas = np.array(metric_deltas(recent))
        return float(np.clip(1.0 - np.mean(np.var(deltas, axis=0)), 0.0, 1.0))

    def get_state(self) -> Dict[str, Any]:
        return {
            "stage": self.stage.value,
            "metrics": self.metrics.to_dict(),
            "consecutive_complete": self._consecutive_complete,
            "emergence_thresholds": dict(self.emergence_thresholds),
            "milestones": list(self.milestones),
            "history_length": len(self.history),
        }

    def restore_state(self, state: Dict[str, Any]) -> None:
        self.stage = EvolutionStage(state["stage"])
        self.metrics = ConsciousnessMetrics.from_dict(state.get("metrics", {}))
        self._consecutive_complete = int(state.get("consecutive_complete", 0))
        self.milestones = list(state.get("milestones", []))
        self.emergence_thresholds = self._emergence_thresholds(self.stage)

    # ── Internal ─────────────────────────────────────────────────────────────

    def _targets(self, ctx: EvolutionContext) -> np.ndarray:
        q = ctx.quantum_state
        aw = ctx.awareness
        em = ctx.emotional_state

        coherence = q.coherence_level
        sync = q.dimensional_sync
        resonance = q.resonance
        entanglement = q.entanglement_index

        base_complexity = (coherence + q.evolution_factor + sync) / 3.0
        targets = {
            "quantum_coherence": coherence,
            "awareness_level": aw.overall_awareness if aw else (coherence + sync) / 2.0,
            "pattern_recognition": aw.pattern_recognition_rate if aw else (coherence + resonance) / 2.0,
            "temporal_perception": aw.temporal_awareness if aw else (resonance + sync) / 2.0,
            "dimensional_awareness": (
                0.5 * aw.environmental_sensitivity + 0.5 * sync if aw else sync
            ),
            "emotional_resonance": (
                0.6 * em.intensity + 0.4 * em.stability if em else (coherence + entanglement) / 2.0
            ),
            "cognitive_complexity": (
                0.7 * base_complexity + 0.3 * em.complexity if em else base_complexity
            ),
        }
        return np.clip(
            np.array([targets[name] for name in ConsciousnessMetrics.FIELDS], dtype=float),
            0.0, 1.0,
        )

    def _check_advancement(self, metrics: ConsciousnessMetrics) -> None:
        if self.is_final_stage:
            return

        if self.stage_progress(metrics) >= 1.0:
            self._consecutive_complete += 1
        else:
            self._consecutive_complete = 0

        if self._consecutive_complete < self.config.hysteresis_ticks:
            return

        old_stage = self.stage
        self.stage = _STAGE_ORDER[self.stage_index + 1]
        self._consecutive_complete = 0
        self.emergence_thresholds = self._emergence_thresholds(self.stage)
        self.milestones.append({
            "type": "stage_transition",
            "from": old_stage.value,
            "to": self.stage.value,
            "timestamp": self.clock.now(),
        })
        logger.info("Evolution stage %s -> %s", old_stage.value, self.stage.value)

    def _emergence_thresholds(self, stage: EvolutionStage) -> Dict[str, float]:
        cfg = self.config
        value = min(cfg.emergence_base + cfg.emergence_step * _STAGE_ORDER.index(stage), cfg.emergence_cap)
        return {name: value for name in ConsciousnessMetrics.FIELDS}

    def _event_snapshot(self, event: str, now: float) -> EvolutionSnapshot:
        return EvolutionSnapshot(
            metrics=self.metrics,
            timestamp=now,
            stability_index=self.calculate_evolution_stability(),
            stage=self.stage.value,
            event=event,
        )
