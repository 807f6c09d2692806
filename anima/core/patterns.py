# ═══════════════════════════════════════════════════════════════════════════════
# PART 3: PATTERN RECOGNITION
# Design: bounded typed store with similarity matching and reinforcement
# Implementation: state management
# ═══════════════════════════════════════════════════════════════════════════════

"""
Patterns are learned by repetition. An input either reinforces the closest
stored pattern of its type or, if nothing is close enough, becomes a new one.

The store is bounded twice over: by capacity (a full store refuses new
patterns, which is not an error for the caller) and by time (patterns not seen
for the TTL are forgotten at the start of every call).
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

import numpy as np

from anima.core.errors import SaturationError
from anima.core.gateways import Clock, SystemClock

logger = logging.getLogger(__name__)

_DAY_MS = 24 * 60 * 60 * 1000.0


class PatternType(Enum):
    BEHAVIORAL = "behavioral"
    EMOTIONAL = "emotional"
    QUANTUM = "quantum"
    INTERACTION = "interaction"
    MEDIA = "media"


@dataclass
class Pattern:
    """A recurring input, with how often and how surely it has been seen."""
    id: str
    type: PatternType
    confidence: float = 1.0
    frequency: int = 1
    timestamp: float = 0.0
    context: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def input(self) -> Any:
        return self.metadata.get("input")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "confidence": self.confidence,
            "frequency": self.frequency,
            "timestamp": self.timestamp,
            "context": dict(self.context),
            "metadata": dict(self.metadata),
        }


@dataclass
class PatternRecognizerConfig:
    """Configuration for pattern recognition."""
    capacity: int = 1000
    ttl_ms: float = 7 * _DAY_MS
    confidence_threshold: float = 0.7
    reinforcement_step: float = 0.1


# ── Similarity comparators ───────────────────────────────────────────────────
# Each takes (input, stored_input) and returns a similarity in [0, 1].
# Inputs are plain mappings; missing fields count as complete mismatch.


def _num(mapping: Mapping[str, Any], key: str) -> Optional[float]:
    value = mapping.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _closeness(a: Mapping[str, Any], b: Mapping[str, Any], key: str, scale: float = 1.0) -> float:
    x, y = _num(a, key), _num(b, key)
    if x is None or y is None:
        return 0.0
    return max(0.0, 1.0 - abs(x - y) / scale)


def _behavioral_similarity(a: Mapping[str, Any], b: Mapping[str, Any]) -> float:
    """Share of keys present in either input that carry the same value."""
    keys = set(a) | set(b)
    if not keys:
        return 1.0

    score = 0.0
    for key in keys:
        if key not in a or key not in b:
            continue
        x, y = _num(a, key), _num(b, key)
        if x is not None and y is not None:
            score += max(0.0, 1.0 - abs(x - y))
        elif a[key] == b[key]:
            score += 1.0
    return score / len(keys)


def _emotional_similarity(a: Mapping[str, Any], b: Mapping[str, Any]) -> float:
    dominant_match = 1.0 if a.get("dominant") is not None and a.get("dominant") == b.get("dominant") else 0.0
    return (
        dominant_match * 0.5
        + _closeness(a, b, "intensity") * 0.3
        + _closeness(a, b, "stability") * 0.2
    )


def _phase_closeness(a: Mapping[str, Any], b: Mapping[str, Any]) -> float:
    """Closeness of two phases measured around the circle."""
    x, y = _num(a, "phase"), _num(b, "phase")
    if x is None or y is None:
        return 0.0
    d = abs(x - y) % (2 * np.pi)
    return 1.0 - min(d, 2 * np.pi - d) / np.pi


def _quantum_similarity(a: Mapping[str, Any], b: Mapping[str, Any]) -> float:
    layers_a = list(a.get("dimensional") or [])
    layers_b = list(b.get("dimensional") or [])
    n = min(len(layers_a), len(layers_b))
    if n:
        dimensional = float(np.mean([
            1.0 - abs(float(x) - float(y)) for x, y in zip(layers_a[:n], layers_b[:n])
        ]))
    else:
        dimensional = 0.0

    return (
        _closeness(a, b, "coherence") * 0.4
        + _phase_closeness(a, b) * 0.3
        + dimensional * 0.3
    )


def _interaction_similarity(a: Mapping[str, Any], b: Mapping[str, Any]) -> float:
    return (
        _closeness(a, b, "engagement") * 0.4
        + _closeness(a, b, "response_quality") * 0.3
        + _closeness(a, b, "coherence") * 0.3
    )


def _media_similarity(a: Mapping[str, Any], b: Mapping[str, Any]) -> float:
    type_match = 1.0 if a.get("media_type") is not None and a.get("media_type") == b.get("media_type") else 0.0
    return (
        type_match * 0.4
        + _closeness(a, b, "quality") * 0.3
        + _closeness(a, b, "resonance") * 0.3
    )


COMPARATORS: Dict[PatternType, Callable[[Mapping[str, Any], Mapping[str, Any]], float]] = {
    PatternType.BEHAVIORAL: _behavioral_similarity,
    PatternType.EMOTIONAL: _emotional_similarity,
    PatternType.QUANTUM: _quantum_similarity,
    PatternType.INTERACTION: _interaction_similarity,
    PatternType.MEDIA: _media_similarity,
}


class PatternRecognizer:
    """
    Bounded store of typed patterns.

    Storage is a dict keyed by pattern id plus a per-type index of ids, so a
    recognition only scores patterns of the requested type.
    """

    def __init__(
        self,
        config: Optional[PatternRecognizerConfig] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.config = config or PatternRecognizerConfig()
        self.clock = clock or SystemClock()

        self._patterns: Dict[str, Pattern] = {}
        self._by_type: Dict[PatternType, Set[str]] = {t: set() for t in PatternType}
        self._counter: int = 0

    # ── Properties ───────────────────────────────────────────────────────────

    @property
    def pattern_count(self) -> int:
        return len(self._patterns)

    # ── Public Methods ───────────────────────────────────────────────────────

    def recognize_pattern(
        self,
        input_data: Mapping[str, Any],
        context: Optional[Dict[str, Any]] = None,
        pattern_type: PatternType = PatternType.BEHAVIORAL,
    ) -> Optional[Pattern]:
        """
        Match an input against stored patterns of the same type.

        Args:
            input_data: Mapping of features, compared by the type's comparator.
            context: Merged into the matched pattern's context.
            pattern_type: Which comparator and which slice of the store to use.

        Returns:
            The reinforced best match, a newly created pattern, or None if
            nothing matched and the store is full.
        """
        self._evict_expired()
        context = dict(context or {})

        matches = self._score(input_data, pattern_type)
        if matches:
            best = matches[0][1]
            self._reinforce(best, context)
            return best

        try:
            return self._create(input_data, context, pattern_type)
        except SaturationError as exc:
            logger.warning("Pattern store saturated: %s", exc)
            return None

    def get_patterns_by_type(self, pattern_type: PatternType) -> List[Pattern]:
        """Patterns of one type, most confident (then most recent) first."""
        self._evict_expired()
        patterns = [self._patterns[pid] for pid in self._by_type[pattern_type]]
        return sorted(patterns, key=lambda p: (p.confidence, p.timestamp), reverse=True)

    def get_recent_patterns(self, window_ms: float) -> List[Pattern]:
        """Patterns seen within the last `window_ms`, newest first."""
        self._evict_expired()
        cutoff = self.clock.now() - window_ms
        recent = [p for p in self._patterns.values() if p.timestamp >= cutoff]
        return sorted(recent, key=lambda p: (p.timestamp, p.confidence), reverse=True)

    def get_pattern(self, pattern_id: str) -> Optional[Pattern]:
        return self._patterns.get(pattern_id)

    def add_pattern(self, pattern: Pattern) -> None:
        """Insert or replace a pattern directly.

        Raises:
            SaturationError: If the store is full and the id is new.
        """
        self._evict_expired()
        if pattern.id not in self._patterns and len(self._patterns) >= self.config.capacity:
            raise SaturationError(f"capacity {self.config.capacity} reached")
        pattern.confidence = float(np.clip(pattern.confidence, 0.0, 1.0))
        self._remove_from_index(pattern.id)
        self._patterns[pattern.id] = pattern
        self._by_type[pattern.type].add(pattern.id)

    def remove_pattern(self, pattern_id: str) -> bool:
        if pattern_id not in self._patterns:
            return False
        self._remove_from_index(pattern_id)
        del self._patterns[pattern_id]
        return True

    def get_state(self) -> Dict[str, Any]:
        return {
            "pattern_count": self.pattern_count,
            "by_type": {t.value: len(ids) for t, ids in self._by_type.items()},
            "patterns": [p.to_dict() for p in self._patterns.values()],
        }

    # ── Internal ─────────────────────────────────────────────────────────────

    def _score(self, input_data: Mapping[str, Any], pattern_type: PatternType) -> List[tuple]:
        comparator = COMPARATORS[pattern_type]
        scored = []
        for pid in self._by_type[pattern_type]:
            pattern = self._patterns[pid]
            similarity = float(np.clip(comparator(input_data, pattern.input or {}), 0.0, 1.0))
            if similarity >= self.config.confidence_threshold:
                scored.append((similarity, pattern))
        scored.sort(key=lambda item: (item[0], item[1].confidence), reverse=True)
        return scored

    def _reinforce(self, pattern: Pattern, context: Dict[str, Any]) -> None:
        pattern.frequency += 1
        pattern.confidence = min(1.0, pattern.confidence + self.config.reinforcement_step)
        pattern.context.update(context)
        pattern.timestamp = self.clock.now()
        logger.debug(
            "Reinforced %s pattern %s (frequency=%d)",
            pattern.type.value, pattern.id, pattern.frequency,
        )

    def _create(
        self,
        input_data: Mapping[str, Any],
        context: Dict[str, Any],
        pattern_type: PatternType,
    ) -> Pattern:
        if len(self._patterns) >= self.config.capacity:
            raise SaturationError(f"capacity {self.config.capacity} reached")

        now = self.clock.now()
        self._counter += 1
        fingerprint = json.dumps(dict(input_data), sort_keys=True, default=str)
        pattern_id = hashlib.sha256(
            f"{pattern_type.value}:{fingerprint}:{now}:{self._counter}".encode()
        ).hexdigest()[:16]

        pattern = Pattern(
            id=pattern_id,
            type=pattern_type,
            confidence=1.0,
            frequency=1,
            timestamp=now,
            context=context,
            metadata={"input": dict(input_data), "created": now},
        )
        self._patterns[pattern_id] = pattern
        self._by_type[pattern_type].add(pattern_id)
        logger.info("New %s pattern %s", pattern_type.value, pattern_id)
        return pattern

    def _evict_expired(self) -> None:
        cutoff = self.clock.now() - self.config.ttl_ms
        expired = [pid for pid, p in self._patterns.items() if p.timestamp < cutoff]
        for pid in expired:
            self.remove_pattern(pid)
        if expired:
            logger.debug("Evicted %d expired patterns", len(expired))

    def _remove_from_index(self, pattern_id: str) -> None:
        existing = self._patterns.get(pattern_id)
        if existing is not None:
            self._by_type[existing.type].discard(pattern_id)
