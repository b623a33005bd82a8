# src/replaylink/derive/brought.py

"""Derivation of pokemon instances and brought-pokemon facts from events.

Switch-type events name a battle position ("p1a: Nickname") and free-text
details ("Amoonguss, L50, F"), not a stable identity. This pass replays the
committed events of a battle and resolves one ``BattlePokemonInstance`` per
species actually sent out on each side, then records a
``BattleBroughtPokemon`` fact for it.

Flags:
    is_lead: the species' first switch-in happened before the first turn.
    fainted: a faint line named a position this species was occupying.

The pass is a full recompute: brought rows are deleted and rebuilt. Flags
already raised on previous rows are merged back with MAX, so a rerun can add
flags but never clear them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from replaylink.db import models
from replaylink.db.upsert import greatest, insert_for
from replaylink.protocol.classifier import SIDES, SWITCH_LINE_TYPES
from replaylink.protocol.names import normalize_species
from replaylink.protocol.tokenizer import token_at, tokenize_line

logger = logging.getLogger(__name__)

FAINT_LINE_TYPE = "faint"


@dataclass
class BroughtCandidate:
    """Earliest sighting of one species on one side."""

    side: str
    species_name: str
    species_key: str
    first_seen_event_index: int
    is_lead: int = 0
    fainted: int = 0


@dataclass(frozen=True)
class BroughtSummary:
    p1: int
    p2: int
    total: int


def parse_position(position_token: str | None) -> tuple[str | None, str]:
    """Side and position id from an actor token like ``"p2a: Incineroar"``."""
    position = (position_token or "").split(":", 1)[0].strip().lower()
    for side in SIDES:
        if position.startswith(side):
            return side, position
    return None, position


def parse_species(details: str | None) -> str | None:
    """Species is the text before the first comma of the details field."""
    species = (details or "").split(",", 1)[0].strip()
    return species or None


def collect_brought(
    events: list[tuple[int, int | None, str, str]],
) -> list[BroughtCandidate]:
    """Group switch-type events by side and species, keeping first sightings.

    ``events`` are ``(event_index, turn_num, line_type, raw_line)`` tuples in
    index order. Events with no side or no species are skipped.
    """
    first_seen: dict[tuple[str, str], BroughtCandidate] = {}
    occupants: dict[str, tuple[str, str]] = {}

    for event_index, turn_num, line_type, raw_line in events:
        tokens = tokenize_line(raw_line)

        if line_type == FAINT_LINE_TYPE:
            _, position = parse_position(token_at(tokens, 1))
            occupant = occupants.get(position)
            if occupant in first_seen:
                first_seen[occupant].fainted = 1
            continue

        if line_type not in SWITCH_LINE_TYPES:
            continue

        side, position = parse_position(token_at(tokens, 1))
        species = parse_species(token_at(tokens, 2))
        if side is None or species is None:
            continue

        key = (side, normalize_species(species))
        occupants[position] = key
        if key not in first_seen:
            first_seen[key] = BroughtCandidate(
                side=side,
                species_name=species,
                species_key=key[1],
                first_seen_event_index=event_index,
                is_lead=1 if not turn_num else 0,
            )

    return sorted(first_seen.values(), key=lambda c: c.first_seen_event_index)


async def _get_or_create_instance(
    db: AsyncSession, battle_id: int, candidate: BroughtCandidate
) -> models.BattlePokemonInstance:
    instance = await models.BattlePokemonInstance.find(
        db, battle_id, candidate.side, candidate.species_key
    )
    if instance is None:
        instance = models.BattlePokemonInstance(
            battle_id=battle_id,
            side=candidate.side,
            species_name=candidate.species_name,
            species_key=candidate.species_key,
        )
        db.add(instance)
        await db.flush()
    return instance


async def _prior_flags(
    db: AsyncSession, battle_id: int
) -> dict[tuple[str, str], tuple[int, int]]:
    Brought = models.BattleBroughtPokemon
    Instance = models.BattlePokemonInstance
    result = await db.execute(
        select(Brought.side, Instance.species_key, Brought.is_lead, Brought.fainted)
        .join(Instance, Instance.id == Brought.pokemon_instance_id)
        .where(Brought.battle_id == battle_id)
    )
    return {(side, key): (lead, fainted) for side, key, lead, fainted in result.all()}


async def derive_brought_from_events(
    db: AsyncSession, battle_id: int
) -> BroughtSummary:
    """Rebuild instances and brought facts for one battle from its events.

    Runs in its own transaction; safe to repeat.
    """
    Event = models.BattleEvent
    Brought = models.BattleBroughtPokemon

    try:
        result = await db.execute(
            select(Event.event_index, Event.turn_num, Event.line_type, Event.raw_line)
            .where(
                Event.battle_id == battle_id,
                Event.line_type.in_(SWITCH_LINE_TYPES | {FAINT_LINE_TYPE}),
            )
            .order_by(Event.event_index)
        )
        candidates = collect_brought([tuple(row) for row in result.all()])

        prior = await _prior_flags(db, battle_id)
        await db.execute(delete(Brought).where(Brought.battle_id == battle_id))

        for candidate in candidates:
            instance = await _get_or_create_instance(db, battle_id, candidate)
            old_lead, old_fainted = prior.get(
                (candidate.side, candidate.species_key), (0, 0)
            )

            stmt = insert_for(db, Brought.__table__).values(
                battle_id=battle_id,
                side=candidate.side,
                pokemon_instance_id=instance.id,
                first_seen_event_index=candidate.first_seen_event_index,
                is_lead=max(candidate.is_lead, old_lead),
                fainted=max(candidate.fainted, old_fainted),
            )
            columns = Brought.__table__.c
            stmt = stmt.on_conflict_do_update(
                index_elements=["battle_id", "side", "pokemon_instance_id"],
                set_={
                    "is_lead": greatest(db, columns.is_lead, stmt.excluded.is_lead),
                    "fainted": greatest(db, columns.fainted, stmt.excluded.fainted),
                },
            )
            await db.execute(stmt)

        await db.commit()

    except Exception as e:
        logger.error(
            "Failed to derive brought pokemon",
            extra={"battle_id": battle_id, "error": str(e)},
            exc_info=True,
        )
        await db.rollback()
        raise

    p1 = sum(1 for c in candidates if c.side == "p1")
    summary = BroughtSummary(p1=p1, p2=len(candidates) - p1, total=len(candidates))
    logger.info(
        "Derived brought pokemon",
        extra={"battle_id": battle_id, "p1": summary.p1, "p2": summary.p2},
    )
    return summary
