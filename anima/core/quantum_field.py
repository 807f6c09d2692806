# ═══════════════════════════════════════════════════════════════════════════════
# PART 2: QUANTUM FIELD
# Design: per-entity field state built on dimensional layers
# Implementation: numerics
# ═══════════════════════════════════════════════════════════════════════════════

"""
The quantum field is the entity's lowest-level state: a coherence level that
decays over idle time and is restored by interaction, a stack of dimensional
layers, and a bounded FIFO of resonance patterns.

QuantumField is the only writer of its QuantumState. Everything downstream
(awareness, emotion, evolution) reads the state and never mutates it.
"""

from __future__ import annotations

import hashlib
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional

import numpy as np

from anima.core.dimensional_state import (
    DimensionalConfig,
    DimensionalState,
    QuantumStatus,
    worst_status,
    _validated_strength,
)
from anima.core.gateways import Clock, SystemClock

logger = logging.getLogger(__name__)


@dataclass
class ResonancePattern:
    """Timestamped oscillatory parameters contributing to coherence."""
    id: str
    coherence: float
    frequency: float
    amplitude: float
    phase: float
    timestamp: float
    stability_index: float
    entropy_level: float


@dataclass
class QuantumState:
    """One per entity. Mutated in place by QuantumField."""
    amplitude: complex = complex(1.0, 0.0)
    phase: float = 0.0
    coherence_level: float = 0.5
    entanglement_index: float = 0.3
    dimensional_sync: float = 0.5
    resonance: float = 0.5              # Mean layer resonance at last refresh
    resonance_patterns: Deque[ResonancePattern] = field(default_factory=deque)
    dimensional_layers: List[DimensionalState] = field(default_factory=list)
    quantum_signature: str = ""
    last_update: float = 0.0
    evolution_factor: float = 0.1

    @property
    def dimensional_state(self) -> DimensionalState:
        """Primary dimensional layer."""
        return self.dimensional_layers[0]


@dataclass
class QuantumFieldConfig:
    """Configuration for the quantum field."""
    n_layers: int = 3
    max_resonance_history: int = 100

    # Initial values
    initial_coherence: float = 0.5
    initial_entanglement: float = 0.3
    initial_evolution_factor: float = 0.1

    # Decay (per second of idle time)
    coherence_decay_rate: float = 0.998
    phase_frequency: float = 0.1        # Hz, phase advance of the field

    # Interaction response
    coherence_gain: float = 0.3
    entanglement_gain: float = 0.05
    entanglement_jitter: float = 0.02
    evolution_gain: float = 0.02
    pattern_noise: float = 0.05

    # Recovery
    recovery_coherence_floor: float = 0.3

    dimensional: Optional[DimensionalConfig] = None


class QuantumField:
    """
    Owner and sole mutator of an entity's QuantumState.

    Two entry points move the field forward:
    - tick(): fold in idle decay (coherence, entanglement, every layer)
    - process_interaction(strength): decay, then restore and record a pattern
    """

    def __init__(
        self,
        config: Optional[QuantumFieldConfig] = None,
        clock: Optional[Clock] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self.config = config or QuantumFieldConfig()
        self.clock = clock or SystemClock()
        self.rng = rng if rng is not None else np.random.default_rng()

        self.state = self._initial_state()
        self._last_tick: float = self.clock.now()
        self._pattern_counter: int = 0

    # ── Properties ───────────────────────────────────────────────────────────

    @property
    def layers(self) -> List[DimensionalState]:
        return self.state.dimensional_layers

    # ── Public Methods ───────────────────────────────────────────────────────

    def tick(self) -> QuantumState:
        """Apply decay accumulated since the last tick and refresh derived fields."""
        self._advance()
        self._refresh()
        return self.state

    def process_interaction(self, strength: float) -> QuantumState:
        """
        Restore the field from an interaction.

        Args:
            strength: 0-1 interaction strength (clamped).

        Returns:
            The mutated QuantumState.
        """
        cfg = self.config
        s = _validated_strength(strength)
        self._advance()

        for layer in self.layers:
            layer.update_stability(s)

        st = self.state
        st.coherence_level += s * cfg.coherence_gain * (1.0 - st.coherence_level)
        st.entanglement_index += (
            s * cfg.entanglement_gain
            + float(self.rng.normal(0.0, cfg.entanglement_jitter))
        )
        st.evolution_factor += s * cfg.evolution_gain
        self._clamp()

        self._refresh()
        st.resonance_patterns.append(self._generate_pattern())
        return st

    def get_status(self) -> QuantumStatus:
        """Worst status across all layers."""
        return worst_status(*(layer.get_quantum_status() for layer in self.layers))

    def emergency_recovery(self) -> bool:
        """
        Run emergency recovery on every layer.

        Returns:
            True if any layer was critical and got pulled back.
        """
        acted = [layer.emergency_recovery() for layer in self.layers]
        if not any(acted):
            return False

        self.state.coherence_level = max(
            self.state.coherence_level, self.config.recovery_coherence_floor
        )
        self._refresh()
        logger.warning("Quantum field emergency recovery on %d layer(s)", sum(acted))
        return True

    def reinitialize(self, coherence: float, signature: str) -> QuantumState:
        """Reset the field from a gateway initialization result."""
        self.state = self._initial_state()
        self.state.coherence_level = float(np.clip(coherence, 0.0, 1.0))
        self.state.quantum_signature = signature
        self._last_tick = self.clock.now()
        self._refresh()
        logger.info(
            "Quantum field initialized (coherence=%.3f, signature=%s)",
            self.state.coherence_level, signature[:12],
        )
        return self.state

    def apply_generated_patterns(
        self, pattern: float, awareness: float, understanding: float
    ) -> QuantumState:
        """Fold a gateway pattern-generation result into the field."""
        st = self.state
        target = (float(pattern) + float(understanding)) / 2.0
        st.coherence_level = 0.7 * st.coherence_level + 0.3 * target
        st.evolution_factor += 0.05 * float(awareness)
        self._clamp()
        self._refresh()
        return st

    def resonant_patterns(self) -> List[ResonancePattern]:
        """Patterns still resonating with the primary layer."""
        primary = self.state.dimensional_state
        return [p for p in self.state.resonance_patterns if primary.check_pattern_resonance(p)]

    def temporal_stability(self) -> float:
        """Consistency of the last five patterns (0.5 with too few)."""
        recent = list(self.state.resonance_patterns)[-5:]
        if len(recent) < 2:
            return 0.5

        total = 0.0
        for prev, curr in zip(recent, recent[1:]):
            coherence_diff = abs(curr.coherence - prev.coherence)
            frequency_diff = abs(curr.frequency - prev.frequency)
            total += 1.0 - (coherence_diff + frequency_diff) / 2.0
        return float(np.clip(total / (len(recent) - 1), 0.0, 1.0))

    def pattern_complexity(self) -> float:
        """Diversity plus coherence churn of the pattern history."""
        patterns = list(self.state.resonance_patterns)
        if len(patterns) < 2:
            return 0.1

        unique = {
            (round(p.frequency, 2), round(p.amplitude, 2), round(p.phase, 2))
            for p in patterns
        }
        diversity = len(unique) / len(patterns)
        churn = np.mean([
            abs(curr.coherence - prev.coherence)
            for prev, curr in zip(patterns, patterns[1:])
        ])
        return float(min(diversity * 0.5 + churn * 0.5, 1.0))

    def get_state(self) -> dict:
        st = self.state
        return {
            "amplitude": [st.amplitude.real, st.amplitude.imag],
            "phase": st.phase,
            "coherence_level": st.coherence_level,
            "entanglement_index": st.entanglement_index,
            "dimensional_sync": st.dimensional_sync,
            "resonance": st.resonance,
            "quantum_signature": st.quantum_signature,
            "last_update": st.last_update,
            "evolution_factor": st.evolution_factor,
            "resonance_patterns": len(st.resonance_patterns),
            "layers": [layer.get_state() for layer in self.layers],
        }

    # ── Internal ─────────────────────────────────────────────────────────────

    def _initial_state(self) -> QuantumState:
        cfg = self.config
        layers = []
        for i in range(max(1, cfg.n_layers)):
            layer = DimensionalState(cfg.dimensional, self.clock)
            layer.frequency = 0.4 + 0.1 * i
            layer.dimensional_frequency = 0.4 + 0.05 * i
            layers.append(layer)

        now = self.clock.now()
        return QuantumState(
            coherence_level=cfg.initial_coherence,
            entanglement_index=cfg.initial_entanglement,
            resonance_patterns=deque(maxlen=cfg.max_resonance_history),
            dimensional_layers=layers,
            quantum_signature=self._generate_signature(now),
            last_update=now,
            evolution_factor=cfg.initial_evolution_factor,
        )

    def _advance(self) -> None:
        """Decay coherence/entanglement and advance phase over idle time."""
        now = self.clock.now()
        elapsed = now - self._last_tick
        if elapsed <= 0:
            return

        st = self.state
        factor = self.config.coherence_decay_rate ** (elapsed / 1000.0)
        st.coherence_level *= factor
        st.entanglement_index *= np.sqrt(factor)
        st.phase = float(
            (st.phase + 2 * np.pi * self.config.phase_frequency * elapsed / 1000.0)
            % (2 * np.pi)
        )
        for layer in self.layers:
            layer.apply_degradation()

        self._clamp()
        self._last_tick = now

    def _refresh(self) -> None:
        """Recompute derived fields from the layers."""
        st = self.state
        st.resonance = float(np.mean([layer.calculate_resonance() for layer in self.layers]))
        st.dimensional_sync = float(np.mean([layer.sync_level for layer in self.layers]))
        magnitude = np.sqrt(st.coherence_level)
        st.amplitude = complex(magnitude * np.cos(st.phase), magnitude * np.sin(st.phase))
        st.last_update = self.clock.now()

    def _clamp(self) -> None:
        st = self.state
        st.coherence_level = float(np.clip(st.coherence_level, 0.0, 1.0))
        st.entanglement_index = float(np.clip(st.entanglement_index, 0.0, 1.0))
        st.dimensional_sync = float(np.clip(st.dimensional_sync, 0.0, 1.0))
        st.evolution_factor = float(np.clip(st.evolution_factor, 0.0, 1.0))

    def _generate_pattern(self) -> ResonancePattern:
        cfg = self.config
        st = self.state
        primary = st.dimensional_state
        now = self.clock.now()
        self._pattern_counter += 1

        pattern_id = hashlib.sha256(
            f"{st.quantum_signature}:{now}:{self._pattern_counter}".encode()
        ).hexdigest()[:16]

        return ResonancePattern(
            id=pattern_id,
            coherence=float(np.clip(st.coherence_level + self.rng.normal(0.0, cfg.pattern_noise), 0.0, 1.0)),
            frequency=float(np.clip(
                primary.dimensional_frequency + self.rng.normal(0.0, cfg.pattern_noise), 0.0, 1.0
            )),
            amplitude=float(min(abs(st.amplitude), 1.0)),
            phase=st.phase,
            timestamp=now,
            stability_index=primary.stability,
            entropy_level=primary.entropy_level,
        )

    def _generate_signature(self, now: float) -> str:
        return hashlib.sha256(f"{now}:{self.rng.random()}".encode()).hexdigest()[:32]
