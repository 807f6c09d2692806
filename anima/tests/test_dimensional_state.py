"""Tests for DimensionalState."""

import numpy as np
import pytest

from anima.core.dimensional_state import (
    DimensionalConfig,
    DimensionalState,
    QuantumStatus,
    worst_status,
)
from anima.core.errors import ValidationError
from anima.core.gateways import ManualClock
from anima.core.quantum_field import ResonancePattern


FIELDS = (
    "frequency",
    "resonance",
    "stability",
    "sync_level",
    "quantum_alignment",
    "dimensional_frequency",
    "entropy_level",
    "phase_coherence",
)


@pytest.fixture
def clock():
    return ManualClock(start=0.0)


def _pattern(clock, coherence=0.9, frequency=0.0):
    return ResonancePattern(
        id="p",
        coherence=coherence,
        frequency=frequency,
        amplitude=1.0,
        phase=0.0,
        timestamp=clock.now(),
        stability_index=1.0,
        entropy_level=0.0,
    )


# ── Example scenarios ───────────────────────────────────────────────────────


def test_resonance_after_idle_is_strictly_below_one(clock):
    """Fresh state left idle for 10s resonates in (0, 1)."""
    ds = DimensionalState(clock=clock)
    assert ds.stability == 1.0
    assert ds.entropy_level == 0.0

    clock.advance(10_000)
    r = ds.calculate_resonance()

    assert 0.0 < r < 1.0


def test_update_stability_raises_low_stability(clock):
    """update_stability(0.5) on stability=0.2 lands in (0.2, 1.0]."""
    ds = DimensionalState(clock=clock)
    ds.stability = 0.2

    ds.update_stability(0.5)

    assert 0.2 < ds.stability <= 1.0


# ── Decay ───────────────────────────────────────────────────────────────────


def test_no_decay_below_threshold(clock):
    """Elapsed time under the threshold applies no degradation."""
    ds = DimensionalState(clock=clock)
    clock.advance(500)

    assert ds.apply_degradation() == 1.0
    assert ds.stability == 1.0


@pytest.mark.parametrize("dim_freq", [0.0, 0.25, 0.6])
def test_decay_monotonic_without_interaction(clock, dim_freq):
    """Stability-class metrics never rise while idle."""
    ds = DimensionalState(clock=clock)
    ds.dimensional_frequency = dim_freq

    previous = {name: getattr(ds, name) for name in ("stability", "quantum_alignment", "sync_level", "phase_coherence")}
    for step in (1001, 1500, 3000, 10_000, 60_000, 1001):
        clock.advance(step)
        ds.apply_degradation()
        for name, before in previous.items():
            assert getattr(ds, name) <= before
        previous = {name: getattr(ds, name) for name in previous}


def test_decay_raises_entropy(clock):
    ds = DimensionalState(clock=clock)
    clock.advance(20_000)
    ds.apply_degradation()

    assert ds.entropy_level > 0.0


def test_resonance_idempotent(clock):
    """Two reads with nothing in between agree."""
    ds = DimensionalState(clock=clock)
    ds.update_stability(0.4)
    clock.advance(7_000)

    first = ds.calculate_resonance()
    second = ds.calculate_resonance()

    assert first == second


def test_resonance_does_not_change_fields(clock):
    ds = DimensionalState(clock=clock)
    clock.advance(3_000)
    ds.apply_degradation()
    before = ds.get_state()

    ds.calculate_resonance()

    assert ds.get_state() == before


# ── Restoration ─────────────────────────────────────────────────────────────


@pytest.mark.parametrize("strength", [0.05, 0.3, 0.7, 1.0])
def test_growth_monotonic(clock, strength):
    """A positive interaction never lowers stability."""
    ds = DimensionalState(clock=clock)
    ds.stability = 0.4

    for _ in range(5):
        clock.advance(3_000)
        ds.apply_degradation()
        before = ds.stability
        ds.update_stability(strength)
        assert ds.stability >= before


def test_recency_bonus_fades(clock):
    """A quick follow-up restores more than a late one."""
    quick = DimensionalState(clock=clock)
    late = DimensionalState(clock=clock)
    for ds in (quick, late):
        ds.stability = 0.1

    quick.update_stability(0.2)
    quick_gain = quick.stability - 0.1

    clock.advance(900)
    late.last_update = clock.now() - 4_900
    late._last_degradation = clock.now()
    late.update_stability(0.2)
    late_gain = late.stability - 0.1

    assert quick_gain > late_gain


def test_update_stability_lowers_entropy(clock):
    ds = DimensionalState(clock=clock)
    ds.entropy_level = 0.5
    ds.update_stability(0.8)

    assert ds.entropy_level < 0.5


def test_strength_is_clamped(clock):
    a = DimensionalState(clock=clock)
    b = DimensionalState(clock=clock)
    for ds in (a, b):
        ds.stability = 0.1

    a.update_stability(5.0)
    b.update_stability(1.0)

    assert a.stability == b.stability


@pytest.mark.parametrize("bad", ["abc", None, float("nan"), float("inf")])
def test_invalid_strength_rejected(clock, bad):
    ds = DimensionalState(clock=clock)

    with pytest.raises(ValidationError):
        ds.update_stability(bad)


# ── Ranges ──────────────────────────────────────────────────────────────────


def test_fields_stay_in_range_under_random_sequence(clock):
    """Every field and every derived value stays in [0, 1]."""
    rng = np.random.default_rng(42)
    ds = DimensionalState(clock=clock)

    for _ in range(300):
        clock.advance(float(rng.uniform(0, 20_000)))
        if rng.random() < 0.6:
            ds.update_stability(float(rng.uniform(-0.5, 1.5)))

        r = ds.calculate_resonance()
        assert 0.0 <= r <= 1.0
        for value in ds.get_stability_metrics():
            assert 0.0 <= value <= 1.0
        for name in FIELDS:
            assert 0.0 <= getattr(ds, name) <= 1.0


# ── Status & recovery ───────────────────────────────────────────────────────


def test_fresh_state_is_stable(clock):
    assert DimensionalState(clock=clock).get_quantum_status() == QuantumStatus.STABLE


def test_status_thresholds(clock):
    ds = DimensionalState(clock=clock)
    ds.stability = ds.quantum_alignment = ds.phase_coherence = 0.5
    assert ds.get_quantum_status() == QuantumStatus.UNSTABLE

    ds.stability = ds.quantum_alignment = ds.phase_coherence = 0.1
    assert ds.get_quantum_status() == QuantumStatus.CRITICAL


def test_emergency_recovery_only_when_critical(clock):
    ds = DimensionalState(clock=clock)
    assert not ds.emergency_recovery()

    ds.stability = ds.quantum_alignment = ds.sync_level = ds.phase_coherence = 0.05
    ds.entropy_level = 0.95

    assert ds.emergency_recovery()
    assert ds.stability == pytest.approx(0.3)
    assert ds.quantum_alignment == pytest.approx(0.3)
    assert ds.sync_level == pytest.approx(0.3)
    assert ds.phase_coherence == pytest.approx(0.3)
    assert ds.entropy_level == pytest.approx(0.7)


def test_worst_status():
    assert worst_status(QuantumStatus.STABLE, QuantumStatus.CRITICAL) == QuantumStatus.CRITICAL
    assert worst_status(QuantumStatus.STABLE, QuantumStatus.UNSTABLE) == QuantumStatus.UNSTABLE


# ── Pattern resonance ───────────────────────────────────────────────────────


def test_fresh_close_pattern_resonates(clock):
    ds = DimensionalState(clock=clock)
    assert ds.check_pattern_resonance(_pattern(clock, coherence=0.9, frequency=0.1))


def test_far_frequency_does_not_resonate(clock):
    ds = DimensionalState(clock=clock)
    assert not ds.check_pattern_resonance(_pattern(clock, coherence=0.9, frequency=0.5))


def test_old_pattern_stops_resonating(clock):
    ds = DimensionalState(clock=clock)
    pattern = _pattern(clock, coherence=0.9, frequency=0.0)

    clock.advance(60_000)

    assert not ds.check_pattern_resonance(pattern)


def test_custom_config_threshold(clock):
    ds = DimensionalState(DimensionalConfig(resonance_threshold=0.95), clock)
    assert not ds.check_pattern_resonance(_pattern(clock, coherence=0.9))
