"""
backend/golaco/services/tournament_service.py

Purpose:
    Championship lifecycle and schedule generation. Leagues get a complete
    single round-robin up front; cups are generated one two-legged phase at
    a time as winners become known.

    Generation is write-once per championship: a compare-and-swap claim on
    generation_state serialises concurrent requests and the unique
    (championship_id, round_number) index rejects any duplicate round set.

Dependencies:
    - golaco.database
    - golaco.services.standings_service
    - golaco.services.event_bus
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Optional

from bson import ObjectId
from pymongo import ReturnDocument

import golaco.database as _db
from golaco.config import settings
from golaco.errors import ConflictError, NotFoundError, ValidationError
from golaco.models.championship import (
    ALLOWED_TEAM_COUNTS,
    ChampionshipType,
    GenerationState,
    Leg,
    LifecycleStatus,
)
from golaco.services import standings_service
from golaco.services.event_bus import event_bus
from golaco.services.event_models import ChampionshipGeneratedEvent
from golaco.utils import ensure_utc, utcnow

logger = logging.getLogger("golaco.tournament_service")

_PHASE_NAMES = {1: "Final", 2: "Semi-finals", 4: "Quarter-finals", 8: "Round of 16"}


# ---------- Pure schedule builders ----------

def validate_team_count(championship_type: ChampionshipType | str, count: int) -> None:
    ctype = ChampionshipType(championship_type)
    allowed = ALLOWED_TEAM_COUNTS[ctype]
    if count not in allowed:
        options = " or ".join(str(n) for n in allowed)
        raise ValidationError(
            f"A {ctype.value} needs exactly {options} teams, got {count}.",
            allowed=list(allowed),
        )


def league_fixtures(team_ids: list) -> list[tuple[Any, Any]]:
    """All unordered pairs of a single round-robin, via the circle method.

    Fixtures come out grouped by matchday so every team plays once before
    anyone plays twice. The fixed team alternates between home and away.
    """
    teams = list(team_ids)
    if len(teams) % 2:
        teams.append(None)
    n = len(teams)
    fixtures: list[tuple[Any, Any]] = []
    rotation = teams[1:]
    for day in range(n - 1):
        lineup = [teams[0]] + rotation
        for i in range(n // 2):
            home, away = lineup[i], lineup[n - 1 - i]
            if home is None or away is None:
                continue
            if i == 0 and day % 2:
                home, away = away, home
            fixtures.append((home, away))
        rotation = rotation[-1:] + rotation[:-1]
    return fixtures


def league_schedule(team_ids: list, start: datetime, duration: timedelta) -> list[dict]:
    """One round per fixture, back to back, numbered from 1."""
    start = ensure_utc(start)
    rounds = []
    for index, (team_a, team_b) in enumerate(league_fixtures(team_ids)):
        round_start = start + duration * index
        rounds.append({
            "round_number": index + 1,
            "phase": None,
            "phase_name": None,
            "leg": None,
            "start_time": round_start,
            "end_time": round_start + duration,
            "fixtures": [{"team_a_id": team_a, "team_b_id": team_b, "match_number": None}],
        })
    return rounds


def phase_count(team_count: int) -> int:
    return int(math.log2(team_count))


def phase_name(tie_count: int) -> str:
    return _PHASE_NAMES.get(tie_count, f"Round of {tie_count * 2}")


def cup_pairings(team_ids: list) -> list[tuple[Any, Any]]:
    """Bracket order: 1st vs 2nd, 3rd vs 4th, and so on."""
    teams = list(team_ids)
    if len(teams) % 2:
        raise ValidationError("A cup phase needs an even number of teams.")
    return [(teams[i], teams[i + 1]) for i in range(0, len(teams), 2)]


def cup_phase_rounds(
    pairings: list[tuple[Any, Any]],
    *,
    phase: int,
    first_round_number: int,
    first_match_number: int,
    start: datetime,
    duration: timedelta,
) -> list[dict]:
    """First and second leg rounds of one phase. Both legs of a tie share its match number."""
    start = ensure_utc(start)
    name = phase_name(len(pairings))
    first = {
        "round_number": first_round_number,
        "phase": phase,
        "phase_name": name,
        "leg": Leg.first.value,
        "start_time": start,
        "end_time": start + duration,
        "fixtures": [
            {"team_a_id": a, "team_b_id": b, "match_number": first_match_number + i}
            for i, (a, b) in enumerate(pairings)
        ],
    }
    second = {
        "round_number": first_round_number + 1,
        "phase": phase,
        "phase_name": name,
        "leg": Leg.second.value,
        "start_time": start + duration,
        "end_time": start + duration * 2,
        "fixtures": [
            {"team_a_id": b, "team_b_id": a, "match_number": first_match_number + i}
            for i, (a, b) in enumerate(pairings)
        ],
    }
    return [first, second]


def total_rounds_for(championship_type: ChampionshipType | str, team_count: int) -> int:
    if ChampionshipType(championship_type) == ChampionshipType.league:
        return team_count * (team_count - 1) // 2
    return 2 * phase_count(team_count)


# ---------- Persistence helpers ----------

def _round_duration() -> timedelta:
    return timedelta(hours=settings.ROUND_DURATION_HOURS)


async def insert_rounds(championship_id: ObjectId, planned: list[dict], now: datetime) -> list[dict]:
    """Insert planned rounds and their matches. Matches copy the round window."""
    inserted = []
    for plan in planned:
        round_doc = {
            "championship_id": championship_id,
            "round_number": plan["round_number"],
            "phase": plan["phase"],
            "phase_name": plan["phase_name"],
            "leg": plan["leg"],
            "start_time": plan["start_time"],
            "end_time": plan["end_time"],
            "status": LifecycleStatus.scheduled.value,
            "created_at": now,
            "updated_at": now,
        }
        result = await _db.db.rounds.insert_one(round_doc)
        round_doc["_id"] = result.inserted_id
        match_docs = [
            {
                "round_id": round_doc["_id"],
                "championship_id": championship_id,
                "team_a_id": fixture["team_a_id"],
                "team_b_id": fixture["team_b_id"],
                "score_team_a": 0,
                "score_team_b": 0,
                "status": LifecycleStatus.scheduled.value,
                "match_number": fixture["match_number"],
                "start_time": plan["start_time"],
                "end_time": plan["end_time"],
                "created_at": now,
                "updated_at": now,
            }
            for fixture in plan["fixtures"]
        ]
        if match_docs:
            await _db.db.matches.insert_many(match_docs)
        inserted.append(round_doc)
    return inserted


async def next_available_start(*, now: Optional[datetime] = None) -> datetime:
    """Day after the latest scheduled round end, or tomorrow when nothing is scheduled."""
    now = ensure_utc(now) if now else utcnow()
    latest = await _db.db.rounds.find({}, {"end_time": 1}).sort("end_time", -1).limit(1).to_list(length=1)
    if latest:
        return ensure_utc(latest[0]["end_time"]) + timedelta(days=1)
    return now + timedelta(days=1)


async def _first_free_start(championship_id: ObjectId, start: datetime, span: timedelta) -> datetime:
    """Earliest start at or after ``start`` where [start, start + span) clears every round of the championship."""
    start = ensure_utc(start)
    while True:
        clash = await _db.db.rounds.find(
            {
                "championship_id": championship_id,
                "start_time": {"$lt": start + span},
                "end_time": {"$gt": start},
            },
            {"end_time": 1},
        ).sort("end_time", -1).limit(1).to_list(length=1)
        if not clash:
            return start
        start = ensure_utc(clash[0]["end_time"])


async def _last_numbers(championship_id: ObjectId) -> tuple[int, int]:
    """Highest round number and match number used so far in the championship."""
    last_round = await _db.db.rounds.find(
        {"championship_id": championship_id}, {"round_number": 1}
    ).sort("round_number", -1).limit(1).to_list(length=1)
    last_match = await _db.db.matches.find(
        {"championship_id": championship_id}, {"match_number": 1}
    ).sort("match_number", -1).limit(1).to_list(length=1)
    return (
        int(last_round[0]["round_number"]) if last_round else 0,
        int(last_match[0].get("match_number") or 0) if last_match else 0,
    )


async def _validated_team_ids(championship_type: ChampionshipType | str, team_ids: list[str]) -> list[ObjectId]:
    validate_team_count(championship_type, len(team_ids))
    if len(set(team_ids)) != len(team_ids):
        raise ValidationError("A team can only be entered once per championship.")
    oids = [ObjectId(tid) for tid in team_ids]
    found = await _db.db.teams.count_documents({"_id": {"$in": oids}})
    if found != len(oids):
        raise ValidationError("One or more teams do not exist.")
    return oids


async def _has_active_match(championship_id: ObjectId) -> bool:
    active = await _db.db.matches.find_one(
        {"championship_id": championship_id, "status": LifecycleStatus.active.value},
        {"_id": 1},
    )
    return active is not None


async def _delete_schedule(championship_id: ObjectId) -> None:
    await _db.db.goals.delete_many({"championship_id": championship_id})
    await _db.db.matches.delete_many({"championship_id": championship_id})
    await _db.db.rounds.delete_many({"championship_id": championship_id})
    await standings_service.invalidate_standings(championship_id)


async def _delete_phase(championship_id: ObjectId, phase: int) -> None:
    rows = await _db.db.rounds.find({"championship_id": championship_id, "phase": phase}, {"_id": 1}).to_list(length=None)
    round_ids = [row["_id"] for row in rows]
    if round_ids:
        await _db.db.matches.delete_many({"round_id": {"$in": round_ids}})
        await _db.db.rounds.delete_many({"_id": {"$in": round_ids}})


# ---------- Championship operations ----------

async def get_championship(championship_id: str) -> dict:
    champ = await _db.db.championships.find_one({"_id": ObjectId(championship_id)})
    if not champ:
        raise NotFoundError("Championship not found.")
    return champ


async def list_championships(status: Optional[str] = None) -> list[dict]:
    query = {"status": status} if status else {}
    return await _db.db.championships.find(query).sort("start_date", -1).to_list(length=None)


async def create_championship(
    name: str,
    championship_type: ChampionshipType | str,
    team_ids: list[str],
    start_date: Optional[datetime] = None,
    *,
    now: Optional[datetime] = None,
) -> dict:
    """Create a championship and generate its schedule.

    Team count, uniqueness and existence are checked before anything is
    written.
    """
    now = ensure_utc(now) if now else utcnow()
    ctype = ChampionshipType(championship_type)
    team_oids = await _validated_team_ids(ctype, team_ids)
    start = ensure_utc(start_date) if start_date else await next_available_start(now=now)

    champ_doc = {
        "name": name.strip(),
        "type": ctype.value,
        "status": LifecycleStatus.scheduled.value,
        "start_date": start,
        "current_round": 1,
        "total_rounds": total_rounds_for(ctype, len(team_oids)),
        "team_ids": team_oids,
        "generation_state": GenerationState.pending.value,
        "generated_phases": 0,
        "created_at": now,
        "updated_at": now,
    }
    result = await _db.db.championships.insert_one(champ_doc)
    champ_doc["_id"] = result.inserted_id
    logger.info("Championship created: id=%s type=%s teams=%d", result.inserted_id, ctype.value, len(team_oids))

    await generate_schedule(str(result.inserted_id), now=now)
    return await get_championship(str(result.inserted_id))


async def generate_schedule(championship_id: str, *, now: Optional[datetime] = None) -> dict:
    """Materialise the initial schedule exactly once.

    League: every round of the round-robin. Cup: the first phase only.
    """
    now = ensure_utc(now) if now else utcnow()
    champ_oid = ObjectId(championship_id)
    champ = await _db.db.championships.find_one_and_update(
        {"_id": champ_oid, "generation_state": GenerationState.pending.value},
        {"$set": {"generation_state": GenerationState.running.value, "updated_at": now}},
        return_document=ReturnDocument.AFTER,
    )
    if champ is None:
        if not await _db.db.championships.find_one({"_id": champ_oid}, {"_id": 1}):
            raise NotFoundError("Championship not found.")
        logger.warning("Schedule generation already claimed: championship=%s", championship_id)
        raise ConflictError("Schedule generation already done or in progress.")

    team_ids = list(champ["team_ids"])
    start = ensure_utc(champ["start_date"])
    duration = _round_duration()
    if champ["type"] == ChampionshipType.league.value:
        planned = league_schedule(team_ids, start, duration)
        phases = 0
    else:
        planned = cup_phase_rounds(
            cup_pairings(team_ids),
            phase=1,
            first_round_number=1,
            first_match_number=1,
            start=start,
            duration=duration,
        )
        phases = 1

    try:
        rounds = await insert_rounds(champ_oid, planned, now)
    except Exception:
        # Release the claim so the schedule can be regenerated after cleanup.
        await _delete_schedule(champ_oid)
        await _db.db.championships.update_one(
            {"_id": champ_oid},
            {"$set": {"generation_state": GenerationState.pending.value, "updated_at": utcnow()}},
        )
        raise

    await _db.db.championships.update_one(
        {"_id": champ_oid},
        {"$set": {
            "generation_state": GenerationState.done.value,
            "generated_phases": phases,
            "current_round": 1,
            "updated_at": now,
        }},
    )
    logger.info("Schedule generated: championship=%s rounds=%d", championship_id, len(rounds))
    event_bus.publish(ChampionshipGeneratedEvent(
        source="tournament_service",
        championship_id=str(champ_oid),
        rounds_created=len(rounds),
        phase=phases or None,
    ))
    return {"championship_id": str(champ_oid), "rounds_created": len(rounds)}


async def materialize_next_cup_phase(championship_id, *, now: Optional[datetime] = None) -> list[dict]:
    """Insert the next cup phase once both legs of the latest phase are finished.

    Returns the inserted rounds, or an empty list when the phase is still
    running, the final has been played, or another caller got there first.
    """
    now = ensure_utc(now) if now else utcnow()
    champ_oid = ObjectId(str(championship_id))
    champ = await _db.db.championships.find_one({"_id": champ_oid})
    if not champ or champ.get("type") != ChampionshipType.cup.value:
        return []

    generated = int(champ.get("generated_phases", 0))
    if generated == 0 or generated >= phase_count(len(champ.get("team_ids", []))):
        return []

    rounds = await _db.db.rounds.find({"championship_id": champ_oid, "phase": generated}).to_list(length=None)
    if not rounds or any(r.get("status") != LifecycleStatus.finished.value for r in rounds):
        return []

    round_ids = [r["_id"] for r in rounds]
    matches = await _db.db.matches.find({"round_id": {"$in": round_ids}}).to_list(length=None)
    phase = standings_service.pair_cup_legs(rounds, matches)[0]
    winners = []
    for tie in phase["ties"]:
        outcome = standings_service.resolve_cup_tie(
            tie["first_leg"],
            tie["second_leg"],
            fallback=settings.CUP_TIEBREAK_FALLBACK,
            seed=standings_service.tie_seed(champ_oid, tie["match_number"]),
        )
        if outcome["winner_id"] is None:
            return []
        winners.append(outcome["winner_id"])

    claimed = await _db.db.championships.update_one(
        {"_id": champ_oid, "generated_phases": generated},
        {"$set": {"generated_phases": generated + 1, "updated_at": now}},
    )
    if not claimed.modified_count:
        logger.warning("Cup phase %d already materialised: championship=%s", generated + 1, champ_oid)
        return []

    # Manual rounds may sit anywhere in the championship, so numbers and the
    # window come from every round, not just the finished phase.
    next_phase = generated + 1
    duration = _round_duration()
    phase_end = max(ensure_utc(r["end_time"]) for r in rounds)
    last_round_number, last_match_number = await _last_numbers(champ_oid)
    planned = cup_phase_rounds(
        cup_pairings(winners),
        phase=next_phase,
        first_round_number=last_round_number + 1,
        first_match_number=last_match_number + 1,
        start=await _first_free_start(champ_oid, max(phase_end, now), duration * 2),
        duration=duration,
    )
    try:
        inserted = await insert_rounds(champ_oid, planned, now)
    except Exception:
        # Release the claim so the next sweep can materialise the phase again.
        await _delete_phase(champ_oid, next_phase)
        await _db.db.championships.update_one(
            {"_id": champ_oid, "generated_phases": next_phase},
            {"$set": {"generated_phases": generated, "updated_at": utcnow()}},
        )
        raise
    logger.info("Cup phase materialised: championship=%s phase=%d ties=%d", champ_oid, next_phase, len(winners) // 2)
    event_bus.publish(ChampionshipGeneratedEvent(
        source="tournament_service",
        championship_id=str(champ_oid),
        rounds_created=len(inserted),
        phase=next_phase,
    ))
    return inserted


async def update_championship(
    championship_id: str,
    *,
    name: Optional[str] = None,
    championship_type: Optional[ChampionshipType | str] = None,
    team_ids: Optional[list[str]] = None,
    start_date: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Rename in place, or rebuild the schedule when its structure changes."""
    now = ensure_utc(now) if now else utcnow()
    champ = await get_championship(championship_id)
    champ_oid = champ["_id"]

    updates: dict[str, Any] = {}
    if name is not None:
        updates["name"] = name.strip()

    new_type = ChampionshipType(championship_type) if championship_type else ChampionshipType(champ["type"])
    current_team_ids = [str(t) for t in champ.get("team_ids", [])]
    new_team_ids = list(team_ids) if team_ids is not None else current_team_ids
    new_start = ensure_utc(start_date) if start_date else ensure_utc(champ["start_date"])

    regenerate = (
        new_type.value != champ["type"]
        or new_team_ids != current_team_ids
        or new_start != ensure_utc(champ["start_date"])
    )
    if regenerate:
        if await _has_active_match(champ_oid):
            raise ValidationError("Cannot change the schedule while a match is being played.")
        team_oids = await _validated_team_ids(new_type, new_team_ids)
        await _delete_schedule(champ_oid)
        updates.update({
            "type": new_type.value,
            "team_ids": team_oids,
            "start_date": new_start,
            "status": LifecycleStatus.scheduled.value,
            "current_round": 1,
            "total_rounds": total_rounds_for(new_type, len(team_oids)),
            "generation_state": GenerationState.pending.value,
            "generated_phases": 0,
        })

    if updates:
        updates["updated_at"] = now
        await _db.db.championships.update_one({"_id": champ_oid}, {"$set": updates})
    if regenerate:
        logger.info("Championship schedule rebuilt: id=%s", champ_oid)
        await generate_schedule(str(champ_oid), now=now)
    return await get_championship(str(champ_oid))


async def delete_championship(championship_id: str) -> None:
    champ = await get_championship(championship_id)
    if await _has_active_match(champ["_id"]):
        raise ValidationError("Cannot delete a championship while a match is being played.")
    await _delete_schedule(champ["_id"])
    await _db.db.championships.delete_one({"_id": champ["_id"]})
    logger.info("Championship deleted: id=%s", champ["_id"])
