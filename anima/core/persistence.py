# ═══════════════════════════════════════════════════════════════════════════════
# PART 10: PERSISTENCE
# Design: opaque verified blob per entity
# Implementation: state management
# ═══════════════════════════════════════════════════════════════════════════════


"""
Every component has state: field and layers, patterns, the awareness window,
emotional history, evolution stage and the consciousness history. All of it
serializes to one JSON blob and restores exactly.

The blob carries a verification envelope. On save we record a hash of the
state; on load we recompute and compare, and after restoring we check the
genesis hash and quantum signature. The storage backend only ever sees bytes.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections import deque
from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, Optional

import numpy as np

from anima.core.awareness import TemporalPattern
from anima.core.dimensional_state import DimensionalState, QuantumStatus
from anima.core.emotional import EmotionalState
from anima.core.entity import AnimaEntity, EntityConfig
from anima.core.errors import AnimaError
from anima.core.evolution import EvolutionStage
from anima.core.gateways import Clock, ErrorSink, PersistenceGateway
from anima.core.metrics import ConsciousnessMetrics, EvolutionSnapshot
from anima.core.patterns import Pattern, PatternType
from anima.core.quantum_field import ResonancePattern

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0"


# ── Exceptions ───────────────────────────────────────────────────────────────


class PersistenceError(AnimaError):
    """Base class for persistence errors."""
    pass


class ContinuityError(PersistenceError):
    """Raised when identity continuity cannot be verified."""
    pass


class StateCorruptionError(PersistenceError):
    """Raised when saved state is corrupted or invalid."""
    pass


# ── Result / Info Dataclasses ────────────────────────────────────────────────


@dataclass
class SaveResult:
    entity_id: str
    genesis_hash: str
    state_hash: str
    timestamp: float
    size_bytes: int
    verified: bool


@dataclass
class VerificationResult:
    valid: bool
    genesis_hash: str
    state_hash: str
    error: Optional[str] = None


# ── Persistence Class ────────────────────────────────────────────────────────


class _NumpyEncoder(json.JSONEncoder):
    """JSON encoder that handles numpy types."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, np.bool_):
            return bool(obj)
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        return super().default(obj)


def _hash_state(state_dict: dict) -> str:
    check_dict = {k: v for k, v in state_dict.items() if k not in ("saved_at", "state_hash")}
    state_json = json.dumps(check_dict, sort_keys=True, cls=_NumpyEncoder)
    return hashlib.sha256(state_json.encode()).hexdigest()


class EntityPersistence:
    """
    Serialize entities to verified blobs and back.

    Three layers:
    1. Serialization - live objects to JSON-safe dicts (dumps / loads)
    2. Storage - a PersistenceGateway (save / load)
    3. Verification - prove the restored entity is the one that was saved
    """

    # ── Public API ───────────────────────────────────────────────────────

    @classmethod
    def dumps(cls, entity: AnimaEntity) -> bytes:
        """Serialize an entity into a blob with a verification envelope."""
        state_dict = cls._extract_state(entity)
        state_hash = _hash_state(state_dict)

        saved_at = entity.clock.now()
        state_dict["saved_at"] = saved_at
        state_dict["state_hash"] = state_hash

        envelope = {
            "version": FORMAT_VERSION,
            "state": state_dict,
            "verification": {
                "genesis_hash": entity.genesis_hash,
                "quantum_signature": entity.field.state.quantum_signature,
                "state_hash": state_hash,
                "saved_at": saved_at,
            },
        }
        return json.dumps(envelope, cls=_NumpyEncoder).encode("utf-8")

    @classmethod
    def loads(
        cls,
        blob: bytes,
        config: Optional[EntityConfig] = None,
        clock: Optional[Clock] = None,
        sink: Optional[ErrorSink] = None,
    ) -> AnimaEntity:
        """
        Restore an entity from a blob.

        Raises:
            ContinuityError: If verification fails.
            StateCorruptionError: If the blob is unreadable or incomplete.
        """
        envelope = cls._decode(blob)

        version = str(envelope.get("version", ""))
        if not version.startswith("1."):
            raise StateCorruptionError(f"Unsupported version: {version}")

        try:
            verification = envelope["verification"]
            state_dict = envelope["state"]
        except KeyError as exc:
            raise StateCorruptionError(f"Missing envelope field: {exc}") from exc

        computed_hash = _hash_state(state_dict)
        if computed_hash != verification.get("state_hash"):
            raise ContinuityError(
                f"State hash mismatch: expected {verification.get('state_hash')}, "
                f"got {computed_hash}"
            )

        try:
            entity = cls._restore_entity(state_dict, config, clock, sink)
        except (KeyError, TypeError, ValueError) as exc:
            raise StateCorruptionError(f"Invalid state: {exc}") from exc

        if entity.genesis_hash != verification.get("genesis_hash"):
            raise ContinuityError(
                f"Genesis hash mismatch: expected {verification.get('genesis_hash')}, "
                f"got {entity.genesis_hash}"
            )
        if entity.field.state.quantum_signature != verification.get("quantum_signature"):
            raise ContinuityError("Quantum signature mismatch after restore")

        return entity

    @classmethod
    def verify(cls, blob: bytes) -> VerificationResult:
        """
        Verify a blob without restoring it.

        Checks:
        1. Blob is valid JSON
        2. State hash matches content
        """
        try:
            envelope = cls._decode(blob)
            verification = envelope.get("verification", {})
            computed_hash = _hash_state(envelope.get("state", {}))
            expected_hash = verification.get("state_hash", "")

            if computed_hash != expected_hash:
                return VerificationResult(
                    valid=False,
                    genesis_hash=verification.get("genesis_hash", ""),
                    state_hash=computed_hash,
                    error=f"Hash mismatch: expected {expected_hash}, got {computed_hash}",
                )

            return VerificationResult(
                valid=True,
                genesis_hash=verification["genesis_hash"],
                state_hash=computed_hash,
            )

        except (PersistenceError, KeyError, AttributeError) as e:
            return VerificationResult(valid=False, genesis_hash="", state_hash="", error=str(e))

    @classmethod
    async def save(cls, entity: AnimaEntity, gateway: PersistenceGateway) -> SaveResult:
        """Serialize and store an entity under its id."""
        blob = cls.dumps(entity)
        await gateway.save(entity.entity_id, blob)
        verification = cls.verify(blob)

        logger.info("Saved %s (%d bytes)", entity.entity_id, len(blob))
        return SaveResult(
            entity_id=entity.entity_id,
            genesis_hash=entity.genesis_hash,
            state_hash=verification.state_hash,
            timestamp=entity.clock.now(),
            size_bytes=len(blob),
            verified=verification.valid,
        )

    @classmethod
    async def load(
        cls,
        gateway: PersistenceGateway,
        entity_id: str,
        config: Optional[EntityConfig] = None,
        clock: Optional[Clock] = None,
        sink: Optional[ErrorSink] = None,
    ) -> Optional[AnimaEntity]:
        """Load an entity by id. None if nothing is stored."""
        blob = await gateway.load(entity_id)
        if blob is None:
            return None
        entity = cls.loads(blob, config, clock, sink)
        logger.info("Loaded %s (stage=%s)", entity.entity_id, entity.stage.value)
        return entity

    # ── State Extraction ─────────────────────────────────────────────────

    @classmethod
    def _extract_state(cls, entity: AnimaEntity) -> dict:
        """Extract serializable state from live entity."""
        fld = entity.field
        st = fld.state

        field_state = {
            "amplitude": [st.amplitude.real, st.amplitude.imag],
            "phase": st.phase,
            "coherence_level": st.coherence_level,
            "entanglement_index": st.entanglement_index,
            "dimensional_sync": st.dimensional_sync,
            "resonance": st.resonance,
            "quantum_signature": st.quantum_signature,
            "last_update": st.last_update,
            "evolution_factor": st.evolution_factor,
            "resonance_patterns": [asdict(p) for p in st.resonance_patterns],
            "layers": [layer.get_state() for layer in fld.layers],
            "last_tick": fld._last_tick,
            "pattern_counter": fld._pattern_counter,
        }

        awareness = {
            "window": [asdict(p) for p in entity.awareness.window],
            "pattern_recognition_rate": entity.awareness.pattern_recognition_rate,
            "temporal_awareness": entity.awareness.temporal_awareness,
            "environmental_sensitivity": entity.awareness.environmental_sensitivity,
            "quantum_alignment": entity.awareness.quantum_alignment,
            "last_processed": entity.awareness.last_processed,
        }

        patterns = {
            "patterns": [p.to_dict() for p in entity.recognizer._patterns.values()],
            "counter": entity.recognizer._counter,
        }

        evolution = entity.evolution.get_state()
        evolution["history"] = [s.to_dict() for s in entity.evolution.history]

        consciousness = {
            "metrics": entity.consciousness.metrics.to_dict(),
            "history": [s.to_dict() for s in entity.consciousness.history],
            "last_update": entity.consciousness.last_update,
            "last_signature": entity.consciousness._last_signature,
        }

        return {
            "name": entity.name,
            "entity_id": entity.entity_id,
            "genesis_hash": entity.genesis_hash,
            "tick_count": entity._tick_count,
            "interaction_count": entity._interaction_count,
            "rng_state": entity.rng.bit_generator.state,
            "tracker_status": entity.tracker.status.value,
            "field": field_state,
            "awareness": awareness,
            "patterns": patterns,
            "emotional": [s.to_dict() for s in entity.emotional.history],
            "evolution": evolution,
            "consciousness": consciousness,
        }

    # ── State Restoration ────────────────────────────────────────────────

    @classmethod
    def _restore_entity(
        cls,
        state_dict: dict,
        config: Optional[EntityConfig],
        clock: Optional[Clock],
        sink: Optional[ErrorSink],
    ) -> AnimaEntity:
        """Restore entity from state dict."""
        config = replace(
            config or EntityConfig(),
            name=state_dict["name"],
            entity_id=state_dict["entity_id"],
        )

        # Create entity (this initializes with defaults)
        entity = AnimaEntity(config, clock, sink)

        # Override with saved state
        entity.genesis_hash = state_dict["genesis_hash"]
        entity._tick_count = state_dict["tick_count"]
        entity._interaction_count = state_dict["interaction_count"]
        entity.rng.bit_generator.state = state_dict["rng_state"]
        entity.tracker.status = QuantumStatus(state_dict.get("tracker_status", "stable"))

        cls._restore_field(entity, state_dict["field"])
        cls._restore_awareness(entity, state_dict["awareness"])
        cls._restore_patterns(entity, state_dict["patterns"])

        entity.emotional.history.clear()
        for item in state_dict["emotional"]:
            entity.emotional.history.append(EmotionalState.from_dict(item))

        cls._restore_evolution(entity, state_dict["evolution"])
        cls._restore_consciousness(entity, state_dict["consciousness"])
        return entity

    @classmethod
    def _restore_field(cls, entity: AnimaEntity, state: dict) -> None:
        fld = entity.field
        st = fld.state

        layers = []
        for layer_state in state["layers"]:
            layer = DimensionalState(fld.config.dimensional, fld.clock)
            for name in (
                "frequency", "resonance", "stability", "sync_level", "quantum_alignment",
                "dimensional_frequency", "entropy_level", "phase_coherence", "last_update",
            ):
                setattr(layer, name, float(layer_state[name]))
            layer._last_degradation = float(layer_state["last_degradation"])
            layers.append(layer)
        st.dimensional_layers = layers

        st.amplitude = complex(*state["amplitude"])
        st.phase = state["phase"]
        st.coherence_level = state["coherence_level"]
        st.entanglement_index = state["entanglement_index"]
        st.dimensional_sync = state["dimensional_sync"]
        st.resonance = state["resonance"]
        st.quantum_signature = state["quantum_signature"]
        st.last_update = state["last_update"]
        st.evolution_factor = state["evolution_factor"]

        st.resonance_patterns = deque(
            (ResonancePattern(**p) for p in state["resonance_patterns"]),
            maxlen=fld.config.max_resonance_history,
        )
        fld._last_tick = state["last_tick"]
        fld._pattern_counter = state["pattern_counter"]

    @classmethod
    def _restore_awareness(cls, entity: AnimaEntity, state: dict) -> None:
        aw = entity.awareness
        aw.window.clear()
        for item in state["window"]:
            aw.window.append(TemporalPattern(**item))
        aw.pattern_recognition_rate = state["pattern_recognition_rate"]
        aw.temporal_awareness = state["temporal_awareness"]
        aw.environmental_sensitivity = state["environmental_sensitivity"]
        aw.quantum_alignment = state["quantum_alignment"]
        aw.last_processed = state["last_processed"]

    @classmethod
    def _restore_patterns(cls, entity: AnimaEntity, state: dict) -> None:
        recognizer = entity.recognizer
        for item in state["patterns"]:
            recognizer.add_pattern(Pattern(
                id=item["id"],
                type=PatternType(item["type"]),
                confidence=item["confidence"],
                frequency=item["frequency"],
                timestamp=item["timestamp"],
                context=dict(item["context"]),
                metadata=dict(item["metadata"]),
            ))
        recognizer._counter = state["counter"]

    @classmethod
    def _restore_evolution(cls, entity: AnimaEntity, state: dict) -> None:
        evolution = entity.evolution
        evolution.restore_state(state)
        evolution.history.clear()
        for item in state.get("history", []):
            evolution.history.append(cls._dict_to_snapshot(item))

    @classmethod
    def _restore_consciousness(cls, entity: AnimaEntity, state: dict) -> None:
        core = entity.consciousness
        core.metrics = ConsciousnessMetrics.from_dict(state["metrics"])
        core.history.clear()
        for item in state["history"]:
            core.history.append(cls._dict_to_snapshot(item))
        core.last_update = state["last_update"]
        core._last_signature = state.get("last_signature", "")

    # ── Serialization Helpers ────────────────────────────────────────────

    @classmethod
    def _dict_to_snapshot(cls, d: dict) -> EvolutionSnapshot:
        emotional = d.get("emotional_state")
        return EvolutionSnapshot(
            metrics=ConsciousnessMetrics.from_dict(d["metrics"]),
            timestamp=d["timestamp"],
            stability_index=d["stability_index"],
            quantum_signature=d.get("quantum_signature", ""),
            emotional_state=EmotionalState.from_dict(emotional) if emotional else None,
            stage=EvolutionStage(d["stage"]).value if d.get("stage") else None,
            event=d.get("event"),
        )

    @classmethod
    def _decode(cls, blob: bytes) -> dict:
        try:
            envelope = json.loads(blob.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise StateCorruptionError(f"Unreadable blob: {exc}") from exc
        if not isinstance(envelope, dict):
            raise StateCorruptionError("Blob is not an envelope")
        return envelope
