# ═══════════════════════════════════════════════════════════════════════════════
# PART 5: EMOTIONAL PROCESSING
# Design: categorical + continuous state from field, metrics and momentum
# Implementation: bounded-history analytics
# ═══════════════════════════════════════════════════════════════════════════════

"""
Emotion here is derived, not felt: intensity and valence come from the quantum
field, the consciousness metrics and the momentum of recent emotional history.
A fixed decision table turns (valence, intensity, stability) into a category.
"""

from __future__ import annotations

import logging
from collections import Counter, deque
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Deque, Dict, List, Mapping, Optional

import numpy as np

from anima.core.gateways import Clock, SystemClock
from anima.core.metrics import ConsciousnessMetrics

if TYPE_CHECKING:
    from anima.core.quantum_field import QuantumState

logger = logging.getLogger(__name__)


class Emotion(Enum):
    NEUTRAL = "neutral"
    CHAOTIC = "chaotic"
    ELATED = "elated"
    CONTENT = "content"
    DISTRESSED = "distressed"
    MELANCHOLIC = "melancholic"
    POSITIVE = "positive"
    NEGATIVE = "negative"
    BALANCED = "balanced"


@dataclass
class EmotionalState:
    dominant_emotion: Emotion = Emotion.NEUTRAL
    intensity: float = 0.0             # [0, 1]
    valence: float = 0.0               # [-1, 1]
    stability: float = 1.0             # [0, 1]
    complexity: float = 0.0            # [0, 1]
    timestamp: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dominant_emotion": self.dominant_emotion.value,
            "intensity": self.intensity,
            "valence": self.valence,
            "stability": self.stability,
            "complexity": self.complexity,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EmotionalState":
        return cls(
            dominant_emotion=Emotion(data.get("dominant_emotion", "neutral")),
            intensity=float(np.clip(data.get("intensity", 0.0), 0.0, 1.0)),
            valence=float(np.clip(data.get("valence", 0.0), -1.0, 1.0)),
            stability=float(np.clip(data.get("stability", 1.0), 0.0, 1.0)),
            complexity=float(np.clip(data.get("complexity", 0.0), 0.0, 1.0)),
            timestamp=float(data.get("timestamp", 0.0)),
        )


@dataclass
class EmotionalConfig:
    """Configuration for emotional processing."""
    history_size: int = 100
    momentum_window: int = 3
    stability_window: int = 5
    complexity_window: int = 10

    # Context keyword -> intensity multiplier (all >= 1.0)
    keyword_modifiers: Dict[str, float] = field(default_factory=lambda: {
        "joy": 1.2,
        "excited": 1.3,
        "calm": 1.05,
        "curious": 1.1,
        "stress": 1.15,
        "conflict": 1.25,
    })
    max_context_modifier: float = 1.5


def classify_emotion(valence: float, intensity: float, stability: float) -> Emotion:
    """Fixed decision table, first match wins."""
    if intensity < 0.2:
        return Emotion.NEUTRAL
    if stability < 0.3:
        return Emotion.CHAOTIC
    if valence > 0.6:
        return Emotion.ELATED if intensity > 0.7 else Emotion.CONTENT
    if valence < -0.6:
        return Emotion.DISTRESSED if intensity > 0.7 else Emotion.MELANCHOLIC
    if valence > 0.2:
        return Emotion.POSITIVE
    if valence < -0.2:
        return Emotion.NEGATIVE
    return Emotion.BALANCED


class EmotionalProcessor:
    """Derives the entity's emotional state and keeps a bounded history of it."""

    def __init__(
        self,
        config: Optional[EmotionalConfig] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.config = config or EmotionalConfig()
        self.clock = clock or SystemClock()
        self.history: Deque[EmotionalState] = deque(maxlen=self.config.history_size)

    # ── Public Methods ───────────────────────────────────────────────────────

    def process_emotional_state(
        self,
        quantum_state: "QuantumState",
        metrics: ConsciousnessMetrics,
        context: Optional[Mapping[str, Any]] = None,
    ) -> EmotionalState:
        """
        Derive the current emotional state and append it to history.

        Args:
            quantum_state: Current field state (coherence, resonance, entanglement).
            metrics: Current consciousness metrics.
            context: Optional interaction context; keywords in it scale intensity.

        Returns:
            The new EmotionalState.
        """
        quantum_influence = (
            0.4 * quantum_state.coherence_level
            + 0.3 * quantum_state.resonance
            + 0.3 * quantum_state.entanglement_index
        )
        consciousness_influence = (
            0.4 * metrics.emotional_resonance
            + 0.3 * metrics.awareness_level
            + 0.3 * metrics.cognitive_complexity
        )
        momentum = self.emotional_momentum()

        base_intensity = (
            0.4 * quantum_influence
            + 0.4 * consciousness_influence
            + 0.2 * abs(momentum)
        )
        base_valence = 0.6 * np.tanh(momentum) + 0.4 * np.tanh(consciousness_influence - 0.5)

        intensity = float(np.clip(base_intensity * self.context_modifier(context), 0.0, 1.0))
        valence = float(np.clip(base_valence, -1.0, 1.0))
        stability = self._stability()
        dominant = classify_emotion(valence, intensity, stability)

        state = EmotionalState(
            dominant_emotion=dominant,
            intensity=intensity,
            valence=valence,
            stability=stability,
            complexity=0.0,
            timestamp=self.clock.now(),
        )
        state.complexity = self._complexity(state)

        self.history.append(state)
        logger.debug(
            "Emotional state %s (intensity=%.3f, valence=%.3f)",
            dominant.value, intensity, valence,
        )
        return state

    def emotional_momentum(self) -> float:
        """Signed average intensity of the last few states."""
        recent = list(self.history)[-self.config.momentum_window:]
        if not recent:
            return 0.0
        return float(np.mean([np.sign(s.valence) * s.intensity for s in recent]))

    def context_modifier(self, context: Optional[Mapping[str, Any]]) -> float:
        """Product of matched keyword multipliers, capped. 1.0 with no match."""
        if not context:
            return 1.0

        text = " ".join(_flatten(context)).lower()
        modifier = 1.0
        for keyword, multiplier in self.config.keyword_modifiers.items():
            if keyword in text:
                modifier *= max(1.0, multiplier)
        return min(modifier, self.config.max_context_modifier)

    def get_current_state(self) -> EmotionalState:
        if self.history:
            return self.history[-1]
        return EmotionalState(timestamp=self.clock.now())

    def get_emotional_trends(self) -> Dict[Emotion, float]:
        """Share of each emotion among the last 10 states."""
        recent = list(self.history)[-self.config.complexity_window:]
        if not recent:
            return {}
        counts = Counter(s.dominant_emotion for s in recent)
        return {emotion: count / len(recent) for emotion, count in counts.items()}

    def get_emotional_profile(self) -> Dict[str, Any]:
        if not self.history:
            return {
                "baseline_valence": 0.0,
                "volatility": 0.0,
                "emotional_range": 0.0,
                "dominant_emotions": [],
            }

        valences = np.array([s.valence for s in self.history])
        intensities = np.array([s.intensity for s in self.history])
        counts = Counter(s.dominant_emotion.value for s in self.history)
        return {
            "baseline_valence": float(np.mean(valences)),
            "volatility": float(np.std(valences)),
            "emotional_range": float(np.max(intensities) - np.min(intensities)),
            "dominant_emotions": [name for name, _ in counts.most_common(3)],
        }

    # ── Internal ─────────────────────────────────────────────────────────────

    def _stability(self) -> float:
        window = self.config.stability_window
        recent = list(self.history)[-window:]
        if len(recent) < window:
            return 1.0
        intensity_var = np.var([s.intensity for s in recent])
        valence_var = np.var([s.valence for s in recent])
        return float(np.clip(1.0 - (intensity_var + valence_var) / 2.0, 0.0, 1.0))

    def _complexity(self, current: EmotionalState) -> float:
        window = self.config.complexity_window
        recent = (list(self.history) + [current])[-window:]
        distinct = len({s.dominant_emotion for s in recent})
        mean_abs_valence = float(np.mean([abs(s.valence) for s in recent]))
        return float(np.clip(0.6 * (distinct / window) + 0.4 * mean_abs_valence, 0.0, 1.0))


def _flatten(value: Any) -> List[str]:
    if isinstance(value, Mapping):
        return [s for k, v in value.items() for s in [str(k)] + _flatten(v)]
    if isinstance(value, (list, tuple, set)):
        return [s for v in value for s in _flatten(v)]
    return [str(value)]
