# ═══════════════════════════════════════════════════════════════════════════════
# PART 1: DIMENSIONAL STATE
# Design: stability / resonance / entropy submodel of one field layer
# Implementation: numerics
# ═══════════════════════════════════════════════════════════════════════════════

"""
A dimensional layer loses stability when left alone and regains it through
interaction. Decay is never scheduled: every accessor and mutator first applies
whatever decay has accumulated since it was last applied, so reading twice at
the same instant sees the same state.

All eight normalized fields stay in [0, 1]. Drift is clamped, never raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional, Tuple

import numpy as np

from anima.core.errors import ValidationError
from anima.core.gateways import Clock, SystemClock

if TYPE_CHECKING:
    from anima.core.quantum_field import ResonancePattern

logger = logging.getLogger(__name__)

_TWO_PI = 2 * np.pi


class QuantumStatus(Enum):
    """Coarse health of a layer (and of the entity built on it)."""
    STABLE = "stable"
    UNSTABLE = "unstable"
    CRITICAL = "critical"


# Worst-first ordering, used when combining statuses
STATUS_SEVERITY = {
    QuantumStatus.STABLE: 0,
    QuantumStatus.UNSTABLE: 1,
    QuantumStatus.CRITICAL: 2,
}


def worst_status(*statuses: QuantumStatus) -> QuantumStatus:
    return max(statuses, key=lambda s: STATUS_SEVERITY[s])


@dataclass
class DimensionalConfig:
    """Configuration for a dimensional layer."""
    # Decay
    base_decay_rate: float = 0.995         # Per second of idle time
    degradation_threshold_ms: float = 1000.0
    max_entropy_increase: float = 0.1
    oscillation_amplitude: float = 0.01    # Size of frequency-driven wobble

    # Restoration
    recency_window_ms: float = 5000.0      # Recency bonus fades to 0 over this
    recency_bonus: float = 0.5
    stability_weight: float = 0.6
    alignment_weight: float = 0.5
    sync_weight: float = 0.3
    frequency_weight: float = 0.2
    phase_weight: float = 0.4
    entropy_weight: float = 0.1

    # Resonance
    temporal_scale_ms: float = 10000.0

    # Pattern resonance
    resonance_threshold: float = 0.7
    frequency_tolerance: float = 0.2
    pattern_decay_ms: float = 60000.0

    # Emergency recovery
    emergency_floor: float = 0.3
    emergency_entropy_cap: float = 0.7


class DimensionalState:
    """
    Stability model for one dimensional layer.

    Fields (all in [0, 1]):
    - frequency, resonance: set points for the layer
    - stability, quantum_alignment, sync_level, phase_coherence: decay when idle
    - dimensional_frequency: drives the small sinusoidal wobble
    - entropy_level: rises as the layer decays, falls with interaction
    """

    def __init__(
        self,
        config: Optional[DimensionalConfig] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.config = config or DimensionalConfig()
        self.clock = clock or SystemClock()

        self.frequency: float = 0.0
        self.resonance: float = 1.0
        self.stability: float = 1.0
        self.sync_level: float = 1.0
        self.quantum_alignment: float = 1.0
        self.dimensional_frequency: float = 0.0
        self.entropy_level: float = 0.0
        self.phase_coherence: float = 1.0

        now = self.clock.now()
        # Last interaction; drives recency and the temporal resonance factor
        self.last_update: float = now
        # Last time accumulated decay was folded in
        self._last_degradation: float = now

    # ── Public Methods ───────────────────────────────────────────────────────

    def apply_degradation(self) -> float:
        """
        Fold in decay accumulated since the last application.

        Returns:
            The degradation factor applied (1.0 if nothing was due).
        """
        cfg = self.config
        now = self.clock.now()
        elapsed = now - self._last_degradation

        if elapsed <= cfg.degradation_threshold_ms:
            return 1.0

        wobble = self._oscillation(self.dimensional_frequency)
        factor = cfg.base_decay_rate ** (elapsed / 1000.0) * (1.0 + wobble)
        factor = float(np.clip(factor, 0.0, 1.0))

        self.stability *= factor
        self.quantum_alignment *= factor
        self.sync_level *= factor
        self.phase_coherence *= factor

        entropy_increase = max(0.0, (1.0 - factor) * cfg.max_entropy_increase + wobble)
        self.entropy_level += entropy_increase

        self._clamp()
        self._last_degradation = now

        logger.debug(
            "Degraded layer by %.4f after %.0fms (entropy=%.3f)",
            factor, elapsed, self.entropy_level,
        )
        return factor

    def update_stability(self, interaction_strength: float) -> None:
        """
        Restore the layer from an interaction.

        Args:
            interaction_strength: 0-1. Values outside are clamped.

        Raises:
            ValidationError: If the strength is not a finite number.
        """
        strength = _validated_strength(interaction_strength)
        self.apply_degradation()

        cfg = self.config
        now = self.clock.now()
        since_last = max(0.0, now - self.last_update)
        recency = max(0.0, 1.0 - since_last / cfg.recency_window_ms)
        effective = strength * (1.0 + cfg.recency_bonus * recency)

        self.stability += effective * cfg.stability_weight
        self.quantum_alignment += effective * cfg.alignment_weight
        self.sync_level += effective * cfg.sync_weight
        self.dimensional_frequency += effective * cfg.frequency_weight
        self.phase_coherence += effective * cfg.phase_weight
        self.entropy_level -= effective * cfg.entropy_weight

        self._clamp()
        self.last_update = now
        self._last_degradation = now

    def calculate_resonance(self) -> float:
        """
        Combined resonance of the layer, in [0, 1].

        Pure apart from the lazy decay: two calls with nothing in between
        return the same value.
        """
        self.apply_degradation()

        cfg = self.config
        amp = cfg.oscillation_amplitude
        f = self.dimensional_frequency
        elapsed = max(0.0, self.clock.now() - self.last_update)

        base_resonance = self.resonance * self.stability
        alignment_factor = self.quantum_alignment * self.sync_level
        entropy_modifier = max(
            0.1, 1.0 - 0.5 * self.entropy_level + amp * np.cos(_TWO_PI * f)
        )
        coherence_boost = self.phase_coherence * 0.2 + amp * np.sin(_TWO_PI * self.resonance)
        temporal_factor = np.exp(-elapsed / (cfg.temporal_scale_ms * (1.0 + 0.1 * f)))
        nonlinear = amp * np.sin(np.pi * base_resonance * alignment_factor)

        raw = (
            ((base_resonance + alignment_factor) / 2.0 * entropy_modifier + coherence_boost)
            * (0.5 + 0.5 * temporal_factor)
            + nonlinear
        )
        return float(np.clip(raw, 0.0, 1.0))

    def get_stability_metrics(self) -> Tuple[float, float, float]:
        """(stability, quantum_alignment, phase_coherence), lightly perturbed."""
        self.apply_degradation()
        f = self.dimensional_frequency
        return (
            _clip01(self.stability + self._oscillation(f)),
            _clip01(self.quantum_alignment + self._oscillation(f, _TWO_PI / 3)),
            _clip01(self.phase_coherence + self._oscillation(f, 2 * _TWO_PI / 3)),
        )

    def get_quantum_status(self) -> QuantumStatus:
        self.apply_degradation()
        core = (self.stability + self.quantum_alignment + self.phase_coherence) / 3.0
        score = core * (1.0 - self.entropy_level)

        if score > 0.7:
            return QuantumStatus.STABLE
        if score > 0.3:
            return QuantumStatus.UNSTABLE
        return QuantumStatus.CRITICAL

    def emergency_recovery(self) -> bool:
        """
        Pull a critical layer back to a safe floor.

        Returns:
            True if the layer was critical and was modified.
        """
        if self.get_quantum_status() != QuantumStatus.CRITICAL:
            return False

        cfg = self.config
        self.stability = max(self.stability, cfg.emergency_floor)
        self.quantum_alignment = max(self.quantum_alignment, cfg.emergency_floor)
        self.sync_level = max(self.sync_level, cfg.emergency_floor)
        self.phase_coherence = max(self.phase_coherence, cfg.emergency_floor)
        self.entropy_level = min(self.entropy_level, cfg.emergency_entropy_cap)

        logger.warning("Emergency recovery applied to dimensional layer")
        return True

    def check_pattern_resonance(self, pattern: "ResonancePattern") -> bool:
        """True if a resonance pattern is still strong and close in frequency."""
        self.apply_degradation()
        cfg = self.config
        age = max(0.0, self.clock.now() - pattern.timestamp)
        decayed_coherence = pattern.coherence * np.exp(-age / cfg.pattern_decay_ms)

        return bool(
            decayed_coherence > cfg.resonance_threshold
            and abs(pattern.frequency - self.dimensional_frequency) <= cfg.frequency_tolerance
        )

    def get_state(self) -> dict:
        """Serialize raw fields (no decay applied)."""
        return {
            "frequency": self.frequency,
            "resonance": self.resonance,
            "stability": self.stability,
            "sync_level": self.sync_level,
            "quantum_alignment": self.quantum_alignment,
            "dimensional_frequency": self.dimensional_frequency,
            "entropy_level": self.entropy_level,
            "phase_coherence": self.phase_coherence,
            "last_update": self.last_update,
            "last_degradation": self._last_degradation,
        }

    # ── Internal ─────────────────────────────────────────────────────────────

    def _oscillation(self, x: float, offset: float = 0.0) -> float:
        return float(self.config.oscillation_amplitude * np.sin(_TWO_PI * x + offset))

    def _clamp(self) -> None:
        self.frequency = _clip01(self.frequency)
        self.resonance = _clip01(self.resonance)
        self.stability = _clip01(self.stability)
        self.sync_level = _clip01(self.sync_level)
        self.quantum_alignment = _clip01(self.quantum_alignment)
        self.dimensional_frequency = _clip01(self.dimensional_frequency)
        self.entropy_level = _clip01(self.entropy_level)
        self.phase_coherence = _clip01(self.phase_coherence)


def _clip01(value: float) -> float:
    return float(np.clip(value, 0.0, 1.0))


def _validated_strength(value: float) -> float:
    try:
        strength = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"interaction strength must be a number, got {value!r}") from exc
    if not np.isfinite(strength):
        raise ValidationError(f"interaction strength must be finite, got {value!r}")
    return _clip01(strength)
