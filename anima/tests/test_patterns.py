"""Tests for PatternRecognizer."""

import pytest

from anima.core.errors import SaturationError
from anima.core.gateways import ManualClock
from anima.core.patterns import (
    COMPARATORS,
    Pattern,
    PatternRecognizer,
    PatternRecognizerConfig,
    PatternType,
)


@pytest.fixture
def clock():
    return ManualClock(start=0.0)


@pytest.fixture
def recognizer(clock):
    return PatternRecognizer(clock=clock)


# ── Example scenario ────────────────────────────────────────────────────────


def test_near_identical_behavioral_inputs_reinforce(recognizer):
    """Second near-identical input returns the same pattern with frequency 2."""
    first = recognizer.recognize_pattern(
        {"action": "greet", "energy": 0.80}, {}, PatternType.BEHAVIORAL
    )
    second = recognizer.recognize_pattern(
        {"action": "greet", "energy": 0.82}, {}, PatternType.BEHAVIORAL
    )

    assert first is not None
    assert second.id == first.id
    assert second.frequency == 2


# ── Recognition ─────────────────────────────────────────────────────────────


def test_new_pattern_defaults(recognizer, clock):
    clock.advance(1_234)
    p = recognizer.recognize_pattern({"action": "wave"}, {"who": "a"}, PatternType.BEHAVIORAL)

    assert p.confidence == 1.0
    assert p.frequency == 1
    assert p.timestamp == 1_234
    assert p.context == {"who": "a"}
    assert p.input == {"action": "wave"}


def test_dissimilar_input_creates_new_pattern(recognizer):
    a = recognizer.recognize_pattern({"action": "greet"}, {}, PatternType.BEHAVIORAL)
    b = recognizer.recognize_pattern({"action": "leave", "energy": 0.1}, {}, PatternType.BEHAVIORAL)

    assert a.id != b.id
    assert recognizer.pattern_count == 2


def test_types_are_matched_separately(recognizer):
    data = {"dominant": "joy", "intensity": 0.5, "stability": 0.5}
    a = recognizer.recognize_pattern(data, {}, PatternType.EMOTIONAL)
    b = recognizer.recognize_pattern(data, {}, PatternType.MEDIA)

    assert a.id != b.id
    assert recognizer.get_patterns_by_type(PatternType.EMOTIONAL) == [a]


def test_reinforcement_merges_context_and_refreshes(recognizer, clock):
    p = recognizer.recognize_pattern({"action": "greet"}, {"a": 1}, PatternType.BEHAVIORAL)
    clock.advance(500)
    recognizer.recognize_pattern({"action": "greet"}, {"b": 2}, PatternType.BEHAVIORAL)

    assert p.context == {"a": 1, "b": 2}
    assert p.timestamp == 500


def test_confidence_rises_and_caps(recognizer):
    """Confidence only increases through reinforcement, never past 1.0."""
    recognizer.add_pattern(Pattern(
        id="seed",
        type=PatternType.INTERACTION,
        confidence=0.5,
        metadata={"input": {"engagement": 0.5, "response_quality": 0.5, "coherence": 0.5}},
    ))

    previous = 0.5
    for _ in range(10):
        p = recognizer.recognize_pattern(
            {"engagement": 0.5, "response_quality": 0.5, "coherence": 0.5},
            {},
            PatternType.INTERACTION,
        )
        assert p.id == "seed"
        assert previous <= p.confidence <= 1.0
        previous = p.confidence

    assert previous == 1.0


# ── Bounds ──────────────────────────────────────────────────────────────────


def test_saturation_returns_none(clock):
    r = PatternRecognizer(PatternRecognizerConfig(capacity=2), clock)
    r.recognize_pattern({"action": "a"}, {}, PatternType.BEHAVIORAL)
    r.recognize_pattern({"action": "b"}, {}, PatternType.BEHAVIORAL)

    assert r.recognize_pattern({"action": "c"}, {}, PatternType.BEHAVIORAL) is None
    assert r.pattern_count == 2


def test_saturated_store_still_reinforces(clock):
    r = PatternRecognizer(PatternRecognizerConfig(capacity=1), clock)
    first = r.recognize_pattern({"action": "a"}, {}, PatternType.BEHAVIORAL)

    again = r.recognize_pattern({"action": "a"}, {}, PatternType.BEHAVIORAL)

    assert again.id == first.id
    assert again.frequency == 2


def test_add_pattern_raises_when_full(clock):
    r = PatternRecognizer(PatternRecognizerConfig(capacity=1), clock)
    r.add_pattern(Pattern(id="one", type=PatternType.BEHAVIORAL))

    with pytest.raises(SaturationError):
        r.add_pattern(Pattern(id="two", type=PatternType.BEHAVIORAL))


def test_ttl_eviction(clock):
    r = PatternRecognizer(PatternRecognizerConfig(ttl_ms=1_000), clock)
    old = r.recognize_pattern({"action": "a"}, {}, PatternType.BEHAVIORAL)

    clock.advance(2_000)
    r.recognize_pattern({"action": "b"}, {}, PatternType.BEHAVIORAL)

    assert r.get_pattern(old.id) is None
    assert r.pattern_count == 1


def test_remove_pattern(recognizer):
    p = recognizer.recognize_pattern({"action": "a"}, {}, PatternType.BEHAVIORAL)

    assert recognizer.remove_pattern(p.id)
    assert not recognizer.remove_pattern(p.id)
    assert recognizer.get_patterns_by_type(PatternType.BEHAVIORAL) == []


# ── Queries ─────────────────────────────────────────────────────────────────


def test_patterns_by_type_sorted_by_confidence(recognizer):
    recognizer.add_pattern(Pattern(id="low", type=PatternType.MEDIA, confidence=0.3))
    recognizer.add_pattern(Pattern(id="high", type=PatternType.MEDIA, confidence=0.9))

    ids = [p.id for p in recognizer.get_patterns_by_type(PatternType.MEDIA)]

    assert ids == ["high", "low"]


def test_recent_patterns_window(recognizer, clock):
    old = recognizer.recognize_pattern({"action": "a"}, {}, PatternType.BEHAVIORAL)
    clock.advance(10_000)
    new = recognizer.recognize_pattern({"action": "b"}, {}, PatternType.BEHAVIORAL)

    recent = recognizer.get_recent_patterns(5_000)

    assert [p.id for p in recent] == [new.id]
    assert old.id in [p.id for p in recognizer.get_recent_patterns(20_000)]


def test_get_state(recognizer):
    recognizer.recognize_pattern({"action": "a"}, {}, PatternType.BEHAVIORAL)
    state = recognizer.get_state()

    assert state["pattern_count"] == 1
    assert state["by_type"]["behavioral"] == 1


# ── Comparators ─────────────────────────────────────────────────────────────


def test_every_type_has_a_comparator():
    assert set(COMPARATORS) == set(PatternType)


def test_identical_inputs_score_one():
    samples = {
        PatternType.BEHAVIORAL: {"action": "x", "energy": 0.4},
        PatternType.EMOTIONAL: {"dominant": "calm", "intensity": 0.3, "stability": 0.9},
        PatternType.QUANTUM: {"coherence": 0.6, "phase": 1.0, "dimensional": [0.5, 0.6]},
        PatternType.INTERACTION: {"engagement": 0.2, "response_quality": 0.8, "coherence": 0.5},
        PatternType.MEDIA: {"media_type": "image", "quality": 0.7, "resonance": 0.4},
    }
    for pattern_type, data in samples.items():
        assert COMPARATORS[pattern_type](data, dict(data)) == pytest.approx(1.0)


def test_emotional_dominant_mismatch_scores_low():
    a = {"dominant": "joy", "intensity": 0.5, "stability": 0.5}
    b = {"dominant": "fear", "intensity": 0.5, "stability": 0.5}

    assert COMPARATORS[PatternType.EMOTIONAL](a, b) == pytest.approx(0.5)


def test_missing_fields_score_zero():
    assert COMPARATORS[PatternType.MEDIA]({}, {"media_type": "x", "quality": 1.0}) == 0.0


def test_quantum_phase_wraps_around():
    """Phases either side of 0/2pi are close, not opposite."""
    a = {"coherence": 0.6, "phase": 0.01, "dimensional": [0.5, 0.6]}
    b = {"coherence": 0.6, "phase": 6.27, "dimensional": [0.5, 0.6]}

    assert COMPARATORS[PatternType.QUANTUM](a, b) > 0.99


def test_quantum_opposite_phases_score_zero_on_phase():
    a = {"coherence": 0.6, "phase": 0.0, "dimensional": [0.5]}
    b = {"coherence": 0.6, "phase": 3.141592653589793, "dimensional": [0.5]}

    assert COMPARATORS[PatternType.QUANTUM](a, b) == pytest.approx(0.7)
