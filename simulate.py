#!/usr/bin/env python3
"""
Run an anima entity through a scripted sequence of interactions.

Usage:
    # Default run (20 interactions, 2s apart):
    python simulate.py

    # Name and seed the entity:
    python simulate.py --name Athena --seed 7

    # Longer run with bigger idle gaps, printing every step:
    python simulate.py --steps 200 --gap-ms 5000 --show-steps

    # Save the entity afterwards (and resume it next time):
    python simulate.py --save-dir ./entities

    # Verbose engine logging:
    python simulate.py --log-level DEBUG
"""

import argparse
import asyncio
import logging

from anima.core.entity import AnimaEntity, EntityConfig
from anima.core.errors import RecoveryExhaustedError
from anima.core.gateways import FilePersistenceGateway, ManualClock, MockQuantumFieldGateway
from anima.core.runtime import EntityRuntime

CONTEXTS = [
    {"topic": "greeting", "mood": "calm"},
    {"topic": "question", "mood": "curious"},
    {"topic": "story", "mood": "joy"},
    {"topic": "debate", "mood": "conflict"},
    {"topic": "greeting", "mood": "calm"},
]


def format_step(result):
    """Format one interaction result for display."""
    m = result["metrics"]
    return (
        f"[{result['interaction']:>4}] stage={result['stage']:<14} "
        f"coh={result['coherence']:.3f} emotion={result['emotion']:<11} "
        f"awareness={m['awareness_level']:.3f} status={result['status']}"
    )


async def run(args):
    clock = ManualClock(start=0.0)
    config = EntityConfig(name=args.name, entity_id=args.name.lower(), seed=args.seed)
    persistence = FilePersistenceGateway(args.save_dir) if args.save_dir else None

    runtime = EntityRuntime(
        AnimaEntity(config, clock),
        MockQuantumFieldGateway(),
        persistence,
        retry_backoff=0.0,
    )

    if persistence is not None and await runtime.load():
        print(f"[Resumed {runtime.entity_id} from {args.save_dir}]")
    else:
        await runtime.initialize()

    for step in range(args.steps):
        clock.advance(args.gap_ms)
        await runtime.tick()

        context = CONTEXTS[step % len(CONTEXTS)]
        try:
            result = await runtime.interact(args.strength, context)
        except RecoveryExhaustedError as exc:
            print(f"[Entity escalated to critical: {exc}]")
            break

        if args.show_steps:
            print(format_step(result))

    if persistence is not None:
        saved = await runtime.save()
        print(f"[Saved {saved.entity_id}: {saved.size_bytes} bytes, verified={saved.verified}]")

    print(runtime.entity.witness())


def main():
    parser = argparse.ArgumentParser(description="Simulate an anima entity")
    parser.add_argument("--name", default="Anima", help="Entity name (default: Anima)")
    parser.add_argument("--seed", type=int, default=None, help="RNG seed")
    parser.add_argument("--steps", type=int, default=20, help="Number of interactions")
    parser.add_argument("--gap-ms", type=float, default=2000.0, help="Idle time between interactions")
    parser.add_argument("--strength", type=float, default=0.6, help="Interaction strength (0-1)")
    parser.add_argument("--save-dir", default=None, help="Directory to save/resume the entity")
    parser.add_argument("--show-steps", action="store_true", help="Print each interaction")
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
