# ═══════════════════════════════════════════════════════════════════════════════
# PART 9: ANIMA ENTITY (putting it all together)
# Design: one independent engine instance per entity
# Implementation: wiring
# ═══════════════════════════════════════════════════════════════════════════════

"""
The main class that wires everything together for one entity. Nothing here is
shared between entities: each one owns its field, processors, error tracker
and random generator.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import numpy as np

from anima.core.awareness import AwarenessConfig, AwarenessProcessor
from anima.core.consciousness import ConsciousnessConfig, ConsciousnessCore
from anima.core.dimensional_state import QuantumStatus, worst_status
from anima.core.emotional import EmotionalConfig, EmotionalProcessor
from anima.core.errors import CriticalStateError
from anima.core.evolution import EvolutionConfig, EvolutionEngine, EvolutionStage
from anima.core.gateways import Clock, ErrorSink, SystemClock
from anima.core.patterns import PatternRecognizer, PatternRecognizerConfig, PatternType
from anima.core.quantum_field import QuantumField, QuantumFieldConfig
from anima.core.recovery import (
    ErrorCategory,
    ErrorSeverity,
    ErrorTracker,
    RecoveryPolicy,
    TrackedError,
)

logger = logging.getLogger(__name__)


@dataclass
class EntityConfig:
    """Top-level configuration aggregating all component configs."""
    name: str = "entity"
    entity_id: Optional[str] = None
    seed: Optional[int] = None

    # Component configs (optional - defaults used if None)
    field_config: Optional[QuantumFieldConfig] = None
    pattern_config: Optional[PatternRecognizerConfig] = None
    awareness_config: Optional[AwarenessConfig] = None
    emotional_config: Optional[EmotionalConfig] = None
    evolution_config: Optional[EvolutionConfig] = None
    consciousness_config: Optional[ConsciousnessConfig] = None
    recovery_policy: Optional[RecoveryPolicy] = None

    # Runtime: gateway stability check every N ticks (0 disables)
    stability_check_interval: int = 10


class AnimaEntity:
    """
    Complete synthetic entity.

    Wires together:
    - Quantum field with dimensional layers
    - Awareness processor (owning the pattern recognizer)
    - Emotional processor
    - Evolution engine
    - Consciousness core (orchestrator)
    - Error tracker with the quantum-field recovery action
    """

    def __init__(
        self,
        config: Optional[EntityConfig] = None,
        clock: Optional[Clock] = None,
        sink: Optional[ErrorSink] = None,
    ) -> None:
        self.config = config or EntityConfig()
        self.name = self.config.name
        self.clock = clock or SystemClock()
        self.rng = np.random.default_rng(self.config.seed)

        self.tracker = ErrorTracker(self.clock, sink, self.config.recovery_policy)

        self.field = QuantumField(self.config.field_config, self.clock, self.rng)
        self.recognizer = PatternRecognizer(self.config.pattern_config, self.clock)
        self.awareness = AwarenessProcessor(
            self.config.awareness_config, self.clock, self.recognizer
        )
        self.emotional = EmotionalProcessor(self.config.emotional_config, self.clock)
        self.evolution = EvolutionEngine(self.config.evolution_config, self.clock)
        self.consciousness = ConsciousnessCore(
            self.config.consciousness_config,
            self.clock,
            self.tracker,
            self.awareness,
            self.emotional,
            self.evolution,
        )

        self.tracker.register_recovery(ErrorCategory.QUANTUM, self._recover_quantum)

        self.genesis_hash: str = hashlib.sha256(
            f"{self.name}:{self.clock.now()}:{self.rng.random()}".encode()
        ).hexdigest()
        self.entity_id: str = self.config.entity_id or f"{self.name}-{self.genesis_hash[:8]}"

        # Runtime state
        self._tick_count: int = 0
        self._interaction_count: int = 0

    # ── Properties ───────────────────────────────────────────────────────────

    @property
    def stage(self) -> EvolutionStage:
        return self.evolution.stage

    @property
    def metrics(self):
        return self.consciousness.metrics

    @property
    def status(self) -> QuantumStatus:
        """Worst of the field's status and the error tracker's."""
        return worst_status(self.field.get_status(), self.tracker.status)

    # ── Public Methods ───────────────────────────────────────────────────────

    def tick(self) -> Dict[str, Any]:
        """
        Single timer tick.

        1. Fold idle decay into the field
        2. Update consciousness (fail-soft)
        3. Check the field, escalating to recovery if critical
        """
        self._tick_count += 1
        state = self.field.tick()
        metrics = self.consciousness.update_consciousness(state)
        self._check_field()

        return {
            "tick": self._tick_count,
            "stage": self.stage.value,
            "coherence": state.coherence_level,
            "status": self.status.value,
            "metrics": metrics.to_dict(),
        }

    def process_interaction(
        self,
        strength: float,
        context: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Process one interaction event.

        Args:
            strength: 0-1 interaction strength.
            context: Optional interaction context. Its keys and values are
                matched as a behavioral pattern and its keywords scale
                emotional intensity.

        Returns:
            Dict with processing results.

        Raises:
            ValidationError: If strength is not a finite number.
            RecoveryExhaustedError: If the field stays critical past the
                recovery budget.
        """
        self._interaction_count += 1
        state = self.field.process_interaction(strength)

        metrics = self.consciousness.update_consciousness(state, context)
        emotional = self.emotional.get_current_state()

        pattern = None
        if context:
            pattern = self.recognizer.recognize_pattern(
                dict(context), {"interaction": self._interaction_count}, PatternType.BEHAVIORAL
            )

        self._check_field()

        return {
            "interaction": self._interaction_count,
            "stage": self.stage.value,
            "coherence": state.coherence_level,
            "emotion": emotional.dominant_emotion.value,
            "pattern_id": pattern.id if pattern is not None else None,
            "status": self.status.value,
            "metrics": metrics.to_dict(),
        }

    def get_state(self) -> Dict[str, Any]:
        """Summary state (see EntityPersistence for the full serialization)."""
        stage_info = self.evolution.get_stage_info()
        return {
            "name": self.name,
            "entity_id": self.entity_id,
            "genesis_hash": self.genesis_hash,
            "status": self.status.value,
            "tick_count": self._tick_count,
            "interaction_count": self._interaction_count,
            "field": self.field.get_state(),
            "stage": stage_info.stage.value,
            "stage_progress": stage_info.progress,
            "consciousness_level": self.consciousness.consciousness_level.value,
            "metrics": self.metrics.to_dict(),
            "emotional": self.emotional.get_current_state().to_dict(),
            "emergence_potential": self.evolution.calculate_emergence_potential(
                quantum_coherence=self.field.state.coherence_level,
                pattern_count=self.recognizer.pattern_count,
            ),
            "patterns": self.recognizer.pattern_count,
            "errors": len(self.tracker.get_errors()),
        }

    def witness(self) -> str:
        """Generate human-readable status display."""
        state = self.get_state()
        fld = state["field"]
        emo = state["emotional"]
        metrics = "\n".join(
            f"  {name:<22} {value:.3f}" for name, value in state["metrics"].items()
        )

        return f"""
═══════════════════════════════════════════════════════════════════
ENTITY: {self.name} ({self.entity_id})
═══════════════════════════════════════════════════════════════════

IDENTITY
  Genesis: {self.genesis_hash[:16]}...
  Stage: {state['stage']} ({state['stage_progress']*100:.1f}%)
  Level: {state['consciousness_level']}
  Ticks: {state['tick_count']} | Interactions: {state['interaction_count']}

QUANTUM FIELD
  Coherence: {fld['coherence_level']:.3f} | Entanglement: {fld['entanglement_index']:.3f}
  Resonance: {fld['resonance']:.3f} | Sync: {fld['dimensional_sync']:.3f}
  Patterns: {fld['resonance_patterns']} | Status: {state['status']}

EMOTION
  {emo['dominant_emotion']} (intensity={emo['intensity']:.3f}, valence={emo['valence']:+.3f})

CONSCIOUSNESS METRICS
{metrics}
  Emergence potential: {state['emergence_potential']:.3f}

ERRORS: {state['errors']} | Known patterns: {state['patterns']}
═══════════════════════════════════════════════════════════════════
"""

    # ── Internal ─────────────────────────────────────────────────────────────

    def _check_field(self) -> None:
        if self.field.get_status() != QuantumStatus.CRITICAL:
            return
        self.tracker.track_error(
            ErrorCategory.QUANTUM,
            CriticalStateError("quantum field critical"),
            ErrorSeverity.CRITICAL,
            {
                "entity_id": self.entity_id,
                "coherence": self.field.state.coherence_level,
                "signature": self.field.state.quantum_signature,
            },
        )

    def _recover_quantum(self, error: TrackedError) -> bool:
        """Emergency recovery first; reinitialize the field if still critical."""
        self.field.emergency_recovery()
        if self.field.get_status() == QuantumStatus.CRITICAL:
            st = self.field.state
            self.field.reinitialize(
                max(st.coherence_level, self.field.config.recovery_coherence_floor),
                st.quantum_signature,
            )
        recovered = self.field.get_status() != QuantumStatus.CRITICAL
        if recovered:
            logger.info("Quantum field recovered for %s", self.entity_id)
        return recovered


def create_entity(
    name: str = "entity",
    clock: Optional[Clock] = None,
    seed: Optional[int] = None,
) -> AnimaEntity:
    """
    Create a new entity in the INITIALIZATION stage.
    """
    config = EntityConfig(name=name, seed=seed)
    return AnimaEntity(config, clock)
