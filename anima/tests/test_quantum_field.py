"""Tests for QuantumField."""

import numpy as np
import pytest

from anima.core.dimensional_state import QuantumStatus
from anima.core.errors import ValidationError
from anima.core.gateways import ManualClock
from anima.core.quantum_field import QuantumField, QuantumFieldConfig


@pytest.fixture
def clock():
    return ManualClock(start=0.0)


@pytest.fixture
def field(clock):
    return QuantumField(clock=clock, rng=np.random.default_rng(0))


def _assert_in_range(field):
    st = field.state
    for value in (st.coherence_level, st.entanglement_index, st.dimensional_sync,
                  st.evolution_factor, st.resonance):
        assert 0.0 <= value <= 1.0
    for p in st.resonance_patterns:
        assert 0.0 <= p.coherence <= 1.0
        assert 0.0 <= p.amplitude <= 1.0
        assert 0.0 <= p.stability_index <= 1.0
        assert 0.0 <= p.entropy_level <= 1.0


# ── Initialization ──────────────────────────────────────────────────────────


def test_initial_state(field):
    st = field.state
    assert st.coherence_level == pytest.approx(0.5)
    assert len(st.dimensional_layers) == 3
    assert st.dimensional_state is st.dimensional_layers[0]
    assert len(st.quantum_signature) == 32
    assert len(st.resonance_patterns) == 0


def test_layers_have_distinct_frequencies(field):
    freqs = [layer.frequency for layer in field.layers]
    assert len(set(freqs)) == len(freqs)


# ── Interaction & decay ─────────────────────────────────────────────────────


def test_interaction_raises_coherence(field):
    before = field.state.coherence_level
    field.process_interaction(0.8)

    assert field.state.coherence_level > before
    assert len(field.state.resonance_patterns) == 1


def test_zero_strength_interaction_keeps_coherence(field):
    before = field.state.coherence_level
    field.process_interaction(0.0)

    assert field.state.coherence_level == pytest.approx(before)


def test_tick_decays_coherence(field, clock):
    before = field.state.coherence_level
    clock.advance(10_000)
    field.tick()

    assert field.state.coherence_level < before
    assert field.state.coherence_level == pytest.approx(before * 0.998 ** 10)


def test_tick_is_idempotent_without_elapsed_time(field, clock):
    clock.advance(5_000)
    field.tick()
    first = field.get_state()
    field.tick()

    assert field.get_state() == first


def test_tick_advances_phase(field, clock):
    clock.advance(2_500)
    field.tick()

    assert field.state.phase > 0.0


def test_invalid_strength_rejected(field):
    with pytest.raises(ValidationError):
        field.process_interaction(float("nan"))


def test_ranges_under_random_sequence(field, clock):
    rng = np.random.default_rng(7)
    for _ in range(200):
        clock.advance(float(rng.uniform(0, 30_000)))
        if rng.random() < 0.5:
            field.process_interaction(float(rng.uniform(0, 1)))
        else:
            field.tick()
        _assert_in_range(field)


def test_same_seed_same_trajectory():
    """Entanglement jitter is reproducible from the seed."""
    results = []
    for _ in range(2):
        clock = ManualClock()
        f = QuantumField(clock=clock, rng=np.random.default_rng(123))
        for _ in range(10):
            clock.advance(1_500)
            f.process_interaction(0.6)
        results.append((f.state.coherence_level, f.state.entanglement_index))

    assert results[0] == pytest.approx(results[1])


# ── Resonance history ───────────────────────────────────────────────────────


def test_resonance_history_is_bounded(clock):
    field = QuantumField(QuantumFieldConfig(max_resonance_history=5), clock, np.random.default_rng(0))
    for _ in range(5):
        field.process_interaction(0.5)
    oldest = field.state.resonance_patterns[0].id

    field.process_interaction(0.5)

    assert len(field.state.resonance_patterns) == 5
    assert oldest not in [p.id for p in field.state.resonance_patterns]


def test_resonant_patterns_fade(field, clock):
    field.state.coherence_level = 0.95
    field.process_interaction(1.0)

    assert len(field.resonant_patterns()) == 1

    clock.advance(600_000)
    assert field.resonant_patterns() == []


def test_temporal_stability_and_complexity(field, clock):
    assert field.temporal_stability() == 0.5
    assert field.pattern_complexity() == 0.1

    for _ in range(8):
        clock.advance(1_000)
        field.process_interaction(0.7)

    assert 0.0 <= field.temporal_stability() <= 1.0
    assert 0.0 <= field.pattern_complexity() <= 1.0


# ── Status & recovery ───────────────────────────────────────────────────────


def test_fresh_field_is_stable(field):
    assert field.get_status() == QuantumStatus.STABLE


def test_worst_layer_sets_status(field):
    layer = field.layers[2]
    layer.stability = layer.quantum_alignment = layer.phase_coherence = 0.05
    layer.entropy_level = 0.5

    assert field.get_status() == QuantumStatus.CRITICAL


def test_emergency_recovery_floors_coherence(field):
    assert not field.emergency_recovery()

    for layer in field.layers:
        layer.stability = layer.quantum_alignment = layer.phase_coherence = 0.05
    field.state.coherence_level = 0.1

    assert field.emergency_recovery()
    assert field.state.coherence_level >= 0.3
    for layer in field.layers:
        assert layer.stability >= 0.3


# ── Gateway results ─────────────────────────────────────────────────────────


def test_reinitialize(field):
    field.process_interaction(0.5)
    field.reinitialize(0.72, "abc123")

    assert field.state.coherence_level == pytest.approx(0.72)
    assert field.state.quantum_signature == "abc123"
    assert len(field.state.resonance_patterns) == 0


def test_reinitialize_clamps(field):
    field.reinitialize(3.0, "sig")
    assert field.state.coherence_level == 1.0


def test_apply_generated_patterns(field):
    before_coherence = field.state.coherence_level
    before_evolution = field.state.evolution_factor

    field.apply_generated_patterns(pattern=1.0, awareness=1.0, understanding=1.0)

    assert field.state.coherence_level > before_coherence
    assert field.state.evolution_factor > before_evolution


def test_same_seed_same_signature(clock):
    a = QuantumField(clock=clock, rng=np.random.default_rng(7))
    b = QuantumField(clock=clock, rng=np.random.default_rng(7))

    assert a.state.quantum_signature == b.state.quantum_signature
