# ═══════════════════════════════════════════════════════════════════════════════
# PART 4: AWARENESS
# Design: sliding window of temporal snapshots with smoothed metrics
# Implementation: bounded-history analytics
# ═══════════════════════════════════════════════════════════════════════════════

"""
Awareness is how well the entity tracks its own field over time. Every ingested
QuantumState becomes a TemporalPattern in a bounded window; four metrics are
exponentially smoothed against instantaneous values computed from that window.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from itertools import combinations
from typing import TYPE_CHECKING, Any, Deque, Dict, List, Optional

import numpy as np

from anima.core.gateways import Clock, SystemClock
from anima.core.patterns import PatternRecognizer, PatternRecognizerConfig, PatternType

if TYPE_CHECKING:
    from anima.core.metrics import ConsciousnessMetrics
    from anima.core.quantum_field import QuantumState

logger = logging.getLogger(__name__)


@dataclass
class TemporalPattern:
    """Snapshot of the field at one instant."""
    timestamp: float
    quantum_phase: float
    coherence: float
    stability: float
    dimensional_alignment: float
    signature: str = ""
    dimensional_resonance: List[float] = field(default_factory=list)


@dataclass
class AwarenessResult:
    pattern_recognition_rate: float
    temporal_awareness: float
    environmental_sensitivity: float
    quantum_alignment: float
    overall_awareness: float
    significant: bool = False
    anomaly: bool = False
    pattern_id: Optional[str] = None


@dataclass
class AwarenessConfig:
    """Configuration for the awareness window."""
    window_size: int = 100
    similarity_window: int = 10        # Entries used for pairwise similarity
    smoothing: float = 0.3             # Weight of the instantaneous value
    optimal_interval_ms: float = 1000.0
    recognizer: Optional[PatternRecognizerConfig] = None


def temporal_similarity(a: TemporalPattern, b: TemporalPattern) -> float:
    """(1 - |Δcoherence|) times mean per-layer resonance closeness."""
    n = min(len(a.dimensional_resonance), len(b.dimensional_resonance))
    if n:
        dimensional = float(np.mean([
            1.0 - abs(x - y)
            for x, y in zip(a.dimensional_resonance[:n], b.dimensional_resonance[:n])
        ]))
    else:
        dimensional = 1.0
    return float(np.clip((1.0 - abs(a.coherence - b.coherence)) * dimensional, 0.0, 1.0))


class AwarenessProcessor:
    """
    Owns the temporal window and the four smoothed awareness metrics.

    Also owns a PatternRecognizer and records a QUANTUM pattern for every
    ingested state, so recurring field configurations are learned.
    """

    def __init__(
        self,
        config: Optional[AwarenessConfig] = None,
        clock: Optional[Clock] = None,
        recognizer: Optional[PatternRecognizer] = None,
    ) -> None:
        self.config = config or AwarenessConfig()
        self.clock = clock or SystemClock()
        self.recognizer = recognizer or PatternRecognizer(self.config.recognizer, self.clock)

        self.window: Deque[TemporalPattern] = deque(maxlen=self.config.window_size)

        self.pattern_recognition_rate: float = 0.5
        self.temporal_awareness: float = 0.5
        self.environmental_sensitivity: float = 0.5
        self.quantum_alignment: float = 0.0
        self.last_processed: Optional[float] = None

    # ── Public Methods ───────────────────────────────────────────────────────

    def process_quantum_state(
        self,
        state: "QuantumState",
        current_metrics: Optional["ConsciousnessMetrics"] = None,
    ) -> AwarenessResult:
        """
        Ingest one QuantumState and update the smoothed metrics.

        Args:
            state: Field state to snapshot.
            current_metrics: Unused by the formulas; accepted so the
                orchestrator can pass its current view.

        Returns:
            AwarenessResult with the updated metrics.
        """
        cfg = self.config
        now = self.clock.now()
        previous = self.window[-1] if self.window else None

        snapshot = self._snapshot(state, now)
        self.window.append(snapshot)

        # Pattern recognition rate
        recent = list(self.window)[-cfg.similarity_window:]
        if len(recent) >= 2:
            instant = float(np.mean([temporal_similarity(a, b) for a, b in combinations(recent, 2)]))
            self.pattern_recognition_rate = self._blend(self.pattern_recognition_rate, instant)

        # Temporal awareness
        delta = now - previous.timestamp if previous is not None else cfg.optimal_interval_ms
        ratio = min(max(delta, 0.0), cfg.optimal_interval_ms) / cfg.optimal_interval_ms
        self.temporal_awareness = self._blend(self.temporal_awareness, float(np.exp(-abs(ratio - 1.0))))

        # Environmental sensitivity
        environmental = float(np.clip(
            (state.resonance + state.coherence_level + state.evolution_factor) / 3.0, 0.0, 1.0
        ))
        self.environmental_sensitivity = self._blend(self.environmental_sensitivity, environmental)

        # Quantum alignment tracks coherence directly
        self.quantum_alignment = float(np.clip(state.coherence_level, 0.0, 1.0))

        pattern = self.recognizer.recognize_pattern(
            {
                "coherence": snapshot.coherence,
                "phase": snapshot.quantum_phase,
                "dimensional": list(snapshot.dimensional_resonance),
            },
            {"signature": snapshot.signature},
            PatternType.QUANTUM,
        )

        self.last_processed = now
        result = AwarenessResult(
            pattern_recognition_rate=self.pattern_recognition_rate,
            temporal_awareness=self.temporal_awareness,
            environmental_sensitivity=self.environmental_sensitivity,
            quantum_alignment=self.quantum_alignment,
            overall_awareness=self.overall_awareness,
            significant=self.is_significant_pattern(snapshot),
            anomaly=self.detect_anomalies(list(self.window)[-5:]),
            pattern_id=pattern.id if pattern is not None else None,
        )
        if result.anomaly:
            logger.debug("Awareness anomaly in recent window (coherence=%.3f)", snapshot.coherence)
        return result

    @property
    def overall_awareness(self) -> float:
        return float(np.mean([
            self.pattern_recognition_rate,
            self.temporal_awareness,
            self.environmental_sensitivity,
            self.quantum_alignment,
        ]))

    @staticmethod
    def is_significant_pattern(pattern: TemporalPattern) -> bool:
        return (
            pattern.coherence > 0.7
            or pattern.stability > 0.8
            or pattern.dimensional_alignment > 0.75
        )

    @staticmethod
    def detect_anomalies(patterns: List[TemporalPattern]) -> bool:
        """True if any snapshot has collapsed coherence or stability."""
        return any(p.coherence < 0.2 or p.stability < 0.2 for p in patterns)

    def analyze_pattern_transitions(
        self, patterns: Optional[List[TemporalPattern]] = None
    ) -> Dict[str, float]:
        """Stability and predictability of consecutive snapshots."""
        patterns = list(self.window) if patterns is None else patterns
        if len(patterns) < 2:
            return {"stability": 1.0, "predictability": 1.0}

        coherence_changes = [abs(b.coherence - a.coherence) for a, b in zip(patterns, patterns[1:])]
        stability_changes = [abs(b.stability - a.stability) for a, b in zip(patterns, patterns[1:])]
        avg_coherence = float(np.mean(coherence_changes))
        avg_stability = float(np.mean(stability_changes))

        return {
            "stability": float(np.clip(1.0 - (avg_coherence + avg_stability) / 2.0, 0.0, 1.0)),
            "predictability": 1.0 - min(1.0, avg_coherence * 2.0),
        }

    def get_metrics(self) -> Dict[str, Any]:
        return {
            "window_size": len(self.window),
            "last_processed": self.last_processed,
            "pattern_recognition_rate": self.pattern_recognition_rate,
            "temporal_awareness": self.temporal_awareness,
            "environmental_sensitivity": self.environmental_sensitivity,
            "quantum_alignment": self.quantum_alignment,
            "overall_awareness": self.overall_awareness,
            "pattern_analysis": self.analyze_pattern_transitions(),
            "anomalies": self.detect_anomalies(list(self.window)[-5:]),
            "patterns_known": self.recognizer.pattern_count,
        }

    def clear_history(self) -> None:
        self.window.clear()
        self.last_processed = self.clock.now()

    # ── Internal ─────────────────────────────────────────────────────────────

    def _blend(self, old: float, instant: float) -> float:
        alpha = self.config.smoothing
        return float(np.clip((1.0 - alpha) * old + alpha * instant, 0.0, 1.0))

    @staticmethod
    def _snapshot(state: "QuantumState", now: float) -> TemporalPattern:
        layers = state.dimensional_layers
        return TemporalPattern(
            timestamp=now,
            quantum_phase=state.phase,
            coherence=state.coherence_level,
            stability=float(np.mean([layer.stability for layer in layers])) if layers else 0.5,
            dimensional_alignment=float(np.mean([layer.quantum_alignment for layer in layers])) if layers else 0.5,
            signature=state.quantum_signature,
            dimensional_resonance=[layer.calculate_resonance() for layer in layers],
        )
