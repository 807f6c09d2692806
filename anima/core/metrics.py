"""
Consciousness metrics and evolution snapshots.

Shared value types for the emotional processor, the evolution engine and the
consciousness core.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Dict, Optional, Tuple

import numpy as np


@dataclass
class ConsciousnessMetrics:
    """The 7-field normalized vector describing an entity's cognitive state."""
    awareness_level: float = 0.1
    cognitive_complexity: float = 0.1
    emotional_resonance: float = 0.1
    quantum_coherence: float = 0.1
    dimensional_awareness: float = 0.1
    temporal_perception: float = 0.1
    pattern_recognition: float = 0.1

    FIELDS = (
        "awareness_level",
        "cognitive_complexity",
        "emotional_resonance",
        "quantum_coherence",
        "dimensional_awareness",
        "temporal_perception",
        "pattern_recognition",
    )

    def as_array(self) -> np.ndarray:
        return np.array([getattr(self, name) for name in self.FIELDS], dtype=float)

    @classmethod
    def from_array(cls, values) -> "ConsciousnessMetrics":
        arr = np.clip(np.asarray(values, dtype=float), 0.0, 1.0)
        return cls(**{name: float(v) for name, v in zip(cls.FIELDS, arr)})

    @classmethod
    def uniform(cls, value: float) -> "ConsciousnessMetrics":
        return cls.from_array([value] * len(cls.FIELDS))

    def clamped(self) -> "ConsciousnessMetrics":
        return ConsciousnessMetrics.from_array(np.nan_to_num(self.as_array(), nan=0.0))

    def is_finite(self) -> bool:
        return bool(np.all(np.isfinite(self.as_array())))

    def mean(self) -> float:
        return float(np.mean(self.as_array()))

    def to_dict(self) -> Dict[str, float]:
        return {name: float(getattr(self, name)) for name in self.FIELDS}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConsciousnessMetrics":
        known = {f.name for f in fields(cls)}
        return cls(**{k: float(v) for k, v in data.items() if k in known}).clamped()


@dataclass
class EvolutionSnapshot:
    """One entry of the evolution history."""
    metrics: ConsciousnessMetrics
    timestamp: float
    stability_index: float
    quantum_signature: str = ""
    emotional_state: Optional[Any] = None
    stage: Optional[str] = None
    event: Optional[str] = None        # e.g. "forced_transition_pre"

    def to_dict(self) -> Dict[str, Any]:
        emotional = self.emotional_state
        if emotional is not None and hasattr(emotional, "to_dict"):
            emotional = emotional.to_dict()
        return {
            "metrics": self.metrics.to_dict(),
            "timestamp": self.timestamp,
            "stability_index": self.stability_index,
            "quantum_signature": self.quantum_signature,
            "emotional_state": emotional,
            "stage": self.stage,
            "event": self.event,
        }


def metric_deltas(snapshots) -> Tuple[np.ndarray, ...]:
    """Per-step metric deltas across a sequence of snapshots."""
    arrays = [s.metrics.as_array() for s in snapshots]
    return tuple(b - a for a, b in zip(arrays, arrays[1:]))
