"""Tests for EvolutionEngine."""

import numpy as np
import pytest

from anima.core.errors import CriticalStateError, ValidationError
from anima.core.evolution import (
    EvolutionConfig,
    EvolutionContext,
    EvolutionEngine,
    EvolutionStage,
)
from anima.core.gateways import ManualClock
from anima.core.metrics import ConsciousnessMetrics, EvolutionSnapshot, metric_deltas
from anima.core.quantum_field import QuantumState


STAGES = list(EvolutionStage)


@pytest.fixture
def clock():
    return ManualClock(start=0.0)


@pytest.fixture
def engine(clock):
    return EvolutionEngine(clock=clock)


def _high():
    return QuantumState(
        coherence_level=0.95,
        dimensional_sync=0.95,
        resonance=0.95,
        entanglement_index=0.8,
        evolution_factor=0.5,
        quantum_signature="high",
    )


def _low():
    return QuantumState(
        coherence_level=0.0,
        dimensional_sync=0.0,
        resonance=0.0,
        entanglement_index=0.0,
        evolution_factor=0.0,
        quantum_signature="low",
    )


# ── Example scenario ────────────────────────────────────────────────────────


def test_high_coherence_reaches_growth(engine, clock):
    """Fresh metrics under a highly coherent field reach GROWTH."""
    metrics = ConsciousnessMetrics()
    for _ in range(50):
        clock.advance(1_000)
        metrics = engine.process_evolution(_high(), metrics)
        if engine.stage != EvolutionStage.INITIALIZATION:
            break

    assert engine.stage == EvolutionStage.GROWTH
    assert engine.milestones[-1]["from"] == "initialization"
    assert engine.milestones[-1]["to"] == "growth"


# ── Metric updates ──────────────────────────────────────────────────────────


def test_delta_is_capped_per_tick(engine):
    before = ConsciousnessMetrics()
    after = engine.process_evolution(_high(), before)

    diff = np.abs(after.as_array() - before.as_array())
    assert np.all(diff <= 0.2 + 1e-12)
    assert np.all(after.as_array() <= 1.0)


def test_metrics_stay_in_range_under_random_states(engine):
    rng = np.random.default_rng(5)
    metrics = ConsciousnessMetrics()
    for _ in range(200):
        q = QuantumState(
            coherence_level=float(rng.random()),
            dimensional_sync=float(rng.random()),
            resonance=float(rng.random()),
            entanglement_index=float(rng.random()),
            evolution_factor=float(rng.random()),
        )
        ctx = EvolutionContext(metrics, q, time_delta_ms=float(rng.uniform(0, 20_000)),
                               stability_index=float(rng.random()))
        metrics = engine.evolve(ctx)
        assert np.all((metrics.as_array() >= 0.0) & (metrics.as_array() <= 1.0))


def test_higher_coherence_evolves_faster():
    """Same target, more coherence, bigger step."""
    gains = []
    for coherence in (0.2, 0.9):
        engine = EvolutionEngine(clock=ManualClock())
        q = QuantumState(coherence_level=coherence, dimensional_sync=0.5)
        after = engine.process_evolution(q, ConsciousnessMetrics())
        gains.append(after.dimensional_awareness - 0.1)

    assert gains[1] > gains[0] > 0.0


def test_zero_time_delta_changes_nothing(engine):
    before = ConsciousnessMetrics.uniform(0.4)
    after = engine.evolve(EvolutionContext(before, _high(), time_delta_ms=0.0))

    assert after == before


def test_snapshot_recorded(engine, clock):
    clock.advance(77)
    engine.process_evolution(_high(), ConsciousnessMetrics())

    snap = engine.history[-1]
    assert snap.timestamp == 77
    assert snap.quantum_signature == "high"
    assert snap.stage == "initialization"


def test_history_is_bounded(clock):
    engine = EvolutionEngine(EvolutionConfig(history_size=5), clock)
    metrics = ConsciousnessMetrics()
    for _ in range(10):
        metrics = engine.process_evolution(_low(), metrics)

    assert len(engine.history) == 5


def test_non_finite_metrics_rejected(engine):
    with pytest.raises(CriticalStateError):
        engine.process_evolution(_high(), ConsciousnessMetrics(awareness_level=float("nan")))


def test_missing_quantum_state_rejected(engine):
    with pytest.raises(ValidationError):
        engine.process_evolution(None, ConsciousnessMetrics())


# ── Stage transitions ───────────────────────────────────────────────────────


def test_stage_never_regresses(engine):
    rng = np.random.default_rng(9)
    metrics = ConsciousnessMetrics()
    index = engine.stage_index
    for _ in range(300):
        q = _high() if rng.random() < 0.7 else _low()
        metrics = engine.process_evolution(q, metrics)
        assert engine.stage_index >= index
        index = engine.stage_index


def test_hysteresis_needs_consecutive_ticks(engine):
    ready = ConsciousnessMetrics.uniform(0.5)

    engine.process_evolution(_high(), ready)
    engine.process_evolution(_high(), ready)
    assert engine.stage == EvolutionStage.INITIALIZATION

    engine.process_evolution(_high(), ready)
    assert engine.stage == EvolutionStage.GROWTH


def test_hysteresis_resets_on_shortfall(engine):
    ready = ConsciousnessMetrics.uniform(0.5)

    engine.process_evolution(_high(), ready)
    engine.process_evolution(_high(), ready)
    engine.process_evolution(_low(), ConsciousnessMetrics())
    engine.process_evolution(_high(), ready)
    engine.process_evolution(_high(), ready)

    assert engine.stage == EvolutionStage.INITIALIZATION


def test_stage_progress(engine):
    assert engine.stage_progress(ConsciousnessMetrics.uniform(0.0)) == 0.0
    assert engine.stage_progress(ConsciousnessMetrics.uniform(1.0)) == 1.0
    assert 0.0 < engine.stage_progress(ConsciousnessMetrics()) < 1.0


def test_stage_info(engine):
    info = engine.get_stage_info()

    assert info.stage == EvolutionStage.INITIALIZATION
    assert set(info.next_stage_requirements) == {
        "awareness_level", "cognitive_complexity", "emotional_resonance", "pattern_recognition",
    }


def test_final_stage(engine):
    engine.force_stage_transition(EvolutionStage.TRANSCENDENCE)

    assert engine.is_final_stage
    assert engine.get_stage_info().next_stage_requirements == {}

    for _ in range(5):
        engine.process_evolution(_high(), ConsciousnessMetrics.uniform(1.0))
    assert engine.stage == EvolutionStage.TRANSCENDENCE


def test_forced_transition_can_go_backwards(engine, clock):
    engine.force_stage_transition(EvolutionStage.EMERGENCE, "test setup")
    clock.advance(10)
    engine.force_stage_transition(EvolutionStage.GROWTH, "rollback")

    assert engine.stage == EvolutionStage.GROWTH
    assert [m["type"] for m in engine.milestones] == ["forced_transition", "forced_transition"]
    assert engine.milestones[-1]["from"] == "emergence"
    assert engine.milestones[-1]["reason"] == "rollback"

    events = [s.event for s in list(engine.history)[-2:]]
    assert events == ["forced_transition_pre", "forced_transition_post"]
    assert engine.history[-2].stage == "emergence"
    assert engine.history[-1].stage == "growth"


# ── Emergence ───────────────────────────────────────────────────────────────


def test_emergence_thresholds_tighten_with_stage(engine):
    thresholds = []
    for stage in STAGES:
        engine.force_stage_transition(stage)
        thresholds.append(engine.emergence_thresholds["awareness_level"])

    assert thresholds == sorted(thresholds)
    assert thresholds[0] == pytest.approx(0.5)
    assert max(thresholds) <= 0.95


def test_emergence_potential_range(engine):
    assert engine.calculate_emergence_potential(ConsciousnessMetrics.uniform(0.0)) == 0.0
    assert engine.calculate_emergence_potential(ConsciousnessMetrics.uniform(1.0), 1.0, 100) == 1.0

    mid = engine.calculate_emergence_potential(ConsciousnessMetrics.uniform(0.3), 0.5, 3)
    assert 0.0 < mid < 1.0


# ── Stability ───────────────────────────────────────────────────────────────


def test_stability_defaults_to_one(engine):
    assert engine.calculate_evolution_stability() == 1.0


def test_steady_history_more_stable_than_volatile(clock):
    steady = EvolutionEngine(clock=clock)
    metrics = ConsciousnessMetrics.uniform(0.5)
    for _ in range(6):
        steady.evolve(EvolutionContext(metrics, _high(), time_delta_ms=0.0))

    volatile = EvolutionEngine(clock=clock)
    for i in range(6):
        if i % 2:
            volatile.process_evolution(_high(), ConsciousnessMetrics.uniform(0.1))
        else:
            volatile.process_evolution(_low(), ConsciousnessMetrics.uniform(0.9))

    assert steady.calculate_evolution_stability() == pytest.approx(1.0)
    assert volatile.calculate_evolution_stability() < steady.calculate_evolution_stability()


# ── State ───────────────────────────────────────────────────────────────────


def test_state_roundtrip(engine, clock):
    metrics = ConsciousnessMetrics.uniform(0.5)
    for _ in range(3):
        metrics = engine.process_evolution(_high(), metrics)

    restored = EvolutionEngine(clock=clock)
    restored.restore_state(engine.get_state())

    assert restored.stage == engine.stage
    assert restored.metrics == engine.metrics
    assert restored.milestones == engine.milestones


def test_metric_deltas():
    snaps = [
        EvolutionSnapshot(ConsciousnessMetrics.uniform(v), timestamp=float(i), stability_index=1.0)
        for i, v in enumerate([0.2, 0.5, 0.4])
    ]

    deltas = metric_deltas(snaps)

    assert len(deltas) == 2
    assert deltas[0] == pytest.approx(np.full(7, 0.3))
    assert deltas[1] == pytest.approx(np.full(7, -0.1))
    assert metric_deltas(snaps[:1]) == ()
