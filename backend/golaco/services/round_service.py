"""
backend/golaco/services/round_service.py

Purpose:
    Round and match lifecycle: scheduled -> active -> finished. Every
    transition is a conditional update filtered on the source status, so
    applying it twice is a no-op and the periodic sweeper and lazy readers
    can evaluate the same round concurrently.

    Also hosts the admin round operations (create, edit, delete, early
    advance) and retroactive score corrections.

Dependencies:
    - golaco.database
    - golaco.services.tournament_service
    - golaco.services.standings_service
    - golaco.services.event_bus
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from bson import ObjectId
from pymongo import ReturnDocument

import golaco.database as _db
from golaco.errors import NotFoundError, ValidationError
from golaco.models.championship import ChampionshipType, LifecycleStatus
from golaco.services import standings_service, tournament_service
from golaco.services.event_bus import event_bus
from golaco.services.event_models import RoundFinishedEvent, RoundStartedEvent
from golaco.utils import ensure_utc, utcnow

logger = logging.getLogger("golaco.round_service")

SCHEDULED = LifecycleStatus.scheduled.value
ACTIVE = LifecycleStatus.active.value
FINISHED = LifecycleStatus.finished.value

# Finishing a cup phase can insert rounds that are already due.
_MAX_SWEEP_PASSES = 4


def _oid(value) -> ObjectId:
    return value if isinstance(value, ObjectId) else ObjectId(str(value))


async def _round_match_ids(round_id: ObjectId) -> list[str]:
    rows = await _db.db.matches.find({"round_id": round_id}, {"_id": 1}).to_list(length=None)
    return [str(row["_id"]) for row in rows]


# ---------- Transitions ----------

async def _activate_round(round_doc: dict, now: datetime) -> bool:
    result = await _db.db.rounds.update_one(
        {"_id": round_doc["_id"], "status": SCHEDULED},
        {"$set": {"status": ACTIVE, "updated_at": now}},
    )
    if not result.modified_count:
        return False

    await _db.db.matches.update_many(
        {"round_id": round_doc["_id"], "status": SCHEDULED},
        {"$set": {"status": ACTIVE, "updated_at": now}},
    )
    await _db.db.championships.update_one(
        {"_id": round_doc["championship_id"], "status": {"$ne": FINISHED}},
        {"$set": {
            "status": ACTIVE,
            "current_round": round_doc["round_number"],
            "updated_at": now,
        }},
    )
    logger.info("Round activated: id=%s number=%d", round_doc["_id"], round_doc["round_number"])
    event_bus.publish(RoundStartedEvent(
        source="round_service",
        round_id=str(round_doc["_id"]),
        championship_id=str(round_doc["championship_id"]),
        round_number=round_doc["round_number"],
        match_ids=await _round_match_ids(round_doc["_id"]),
    ))
    return True


async def _close_championship_if_done(championship_id: ObjectId, last_round_number: int, now: datetime) -> None:
    champ = await _db.db.championships.find_one({"_id": championship_id})
    if not champ:
        return

    remaining = await _db.db.rounds.find(
        {"championship_id": championship_id, "status": {"$ne": FINISHED}},
        {"round_number": 1},
    ).sort("round_number", 1).limit(1).to_list(length=1)
    if remaining:
        await _db.db.championships.update_one(
            {"_id": championship_id},
            {"$set": {"current_round": remaining[0]["round_number"], "updated_at": now}},
        )
        return

    if champ.get("type") == ChampionshipType.cup.value:
        phases_needed = tournament_service.phase_count(len(champ.get("team_ids", [])))
        if int(champ.get("generated_phases", 0)) < phases_needed:
            return

    result = await _db.db.championships.update_one(
        {"_id": championship_id, "status": {"$ne": FINISHED}},
        {"$set": {
            "status": FINISHED,
            "current_round": last_round_number,
            "finished_at": now,
            "updated_at": now,
        }},
    )
    if result.modified_count:
        logger.info("Championship finished: id=%s", championship_id)


async def _finish_round(round_doc: dict, now: datetime, *, early: bool = False) -> bool:
    result = await _db.db.rounds.update_one(
        {"_id": round_doc["_id"], "status": ACTIVE},
        {"$set": {"status": FINISHED, "settled": False, "early": early, "updated_at": now}},
    )
    if not result.modified_count:
        return False
    return await _settle_round(round_doc, now, early=early)


async def _settle_round(round_doc: dict, now: datetime, *, early: bool = False) -> bool:
    """Apply the effects of a finished round, then mark it settled.

    Every step tolerates being repeated, so a round left unsettled by a
    failure is picked up again by the next sweep.
    """
    matches = await _db.db.matches.find({"round_id": round_doc["_id"]}).to_list(length=None)
    await _db.db.matches.update_many(
        {"round_id": round_doc["_id"], "status": {"$ne": FINISHED}},
        {"$set": {"status": FINISHED, "updated_at": now}},
    )

    team_ids = set()
    for match in matches:
        team_ids.update(t for t in (match.get("team_a_id"), match.get("team_b_id")) if t is not None)
    if team_ids:
        await _db.db.users.update_many(
            {"team_defending_id": {"$in": list(team_ids)}},
            {"$set": {"gols_current_round": 0, "updated_at": now}},
        )

    championship_id = round_doc["championship_id"]
    champ = await _db.db.championships.find_one({"_id": championship_id}, {"type": 1})
    if champ and champ.get("type") == ChampionshipType.cup.value:
        await tournament_service.materialize_next_cup_phase(championship_id, now=now)
    await _close_championship_if_done(championship_id, round_doc["round_number"], now)
    await standings_service.invalidate_standings(championship_id)

    settled = await _db.db.rounds.update_one(
        {"_id": round_doc["_id"], "status": FINISHED, "settled": False},
        {"$set": {"settled": True, "updated_at": now}},
    )
    if not settled.modified_count:
        return False

    logger.info(
        "Round finished: id=%s number=%d early=%s matches=%d",
        round_doc["_id"], round_doc["round_number"], early, len(matches),
    )
    event_bus.publish(RoundFinishedEvent(
        source="round_service",
        round_id=str(round_doc["_id"]),
        championship_id=str(championship_id),
        round_number=round_doc["round_number"],
        match_ids=[str(m["_id"]) for m in matches],
        early=early,
    ))
    return True


async def apply_due_transitions(
    *,
    now: Optional[datetime] = None,
    championship_id=None,
    round_id=None,
) -> dict:
    """Activate and finish every round whose window says so.

    Scope it to one championship or one round for lazy evaluation on read;
    with no scope it sweeps everything.
    """
    now = ensure_utc(now) if now else utcnow()
    scope: dict[str, Any] = {}
    if championship_id is not None:
        scope["championship_id"] = _oid(championship_id)
    if round_id is not None:
        scope["_id"] = _oid(round_id)

    activated = finished = 0
    for _ in range(_MAX_SWEEP_PASSES):
        progressed = False
        unsettled = await _db.db.rounds.find({**scope, "status": FINISHED, "settled": False}).to_list(length=None)
        for round_doc in unsettled:
            if await _settle_round(round_doc, now, early=bool(round_doc.get("early"))):
                finished += 1
                progressed = True

        due_start = await _db.db.rounds.find(
            {**scope, "status": SCHEDULED, "start_time": {"$lte": now}}
        ).sort("start_time", 1).to_list(length=None)
        for round_doc in due_start:
            if await _activate_round(round_doc, now):
                activated += 1
                progressed = True

        due_end = await _db.db.rounds.find(
            {**scope, "status": ACTIVE, "end_time": {"$lte": now}}
        ).sort("end_time", 1).to_list(length=None)
        for round_doc in due_end:
            if await _finish_round(round_doc, now):
                finished += 1
                progressed = True

        if not progressed:
            break

    return {"activated": activated, "finished": finished}


async def advance_round(round_id: str, *, now: Optional[datetime] = None) -> dict:
    """Finish an active round early and pull the next scheduled round forward to now."""
    now = ensure_utc(now) if now else utcnow()
    round_oid = ObjectId(round_id)
    await apply_due_transitions(now=now, round_id=round_oid)
    round_doc = await _db.db.rounds.find_one({"_id": round_oid})
    if not round_doc:
        raise NotFoundError("Round not found.")
    if round_doc.get("status") != ACTIVE:
        raise ValidationError("Only an active round can be advanced.", status=round_doc.get("status"))

    closing = await _db.db.rounds.find_one_and_update(
        {"_id": round_oid, "status": ACTIVE},
        {"$set": {"end_time": now, "updated_at": now}},
        return_document=ReturnDocument.AFTER,
    )
    if closing is None:
        raise ValidationError("Only an active round can be advanced.")
    await _db.db.matches.update_many({"round_id": round_oid}, {"$set": {"end_time": now}})
    await _finish_round(closing, now, early=True)

    next_round = await _db.db.rounds.find(
        {"championship_id": closing["championship_id"], "status": SCHEDULED}
    ).sort("start_time", 1).limit(1).to_list(length=1)
    pulled = None
    if next_round:
        candidate = next_round[0]
        duration = ensure_utc(candidate["end_time"]) - ensure_utc(candidate["start_time"])
        window = {"start_time": now, "end_time": now + duration}
        result = await _db.db.rounds.update_one(
            {"_id": candidate["_id"], "status": SCHEDULED},
            {"$set": {**window, "updated_at": now}},
        )
        if result.modified_count:
            await _db.db.matches.update_many({"round_id": candidate["_id"]}, {"$set": window})
            await apply_due_transitions(now=now, round_id=candidate["_id"])
            pulled = await _db.db.rounds.find_one({"_id": candidate["_id"]})

    logger.info("Round advanced: id=%s next=%s", round_oid, pulled["_id"] if pulled else None)
    return {
        "round": await _db.db.rounds.find_one({"_id": round_oid}),
        "next_round": pulled,
    }


# ---------- Reads ----------

async def active_match_for_team(team_id, *, now: Optional[datetime] = None) -> Optional[dict]:
    """The team's match that is active at ``now``, after applying due transitions."""
    if team_id is None:
        return None
    now = ensure_utc(now) if now else utcnow()
    team_filter = {"$or": [{"team_a_id": team_id}, {"team_b_id": team_id}]}

    candidates = await _db.db.matches.find(
        {**team_filter, "status": {"$in": [SCHEDULED, ACTIVE]}, "start_time": {"$lte": now}},
        {"round_id": 1},
    ).to_list(length=None)
    for round_id in {c["round_id"] for c in candidates}:
        await apply_due_transitions(now=now, round_id=round_id)

    rows = await _db.db.matches.find(
        {**team_filter, "status": ACTIVE}
    ).sort("start_time", 1).limit(1).to_list(length=1)
    return rows[0] if rows else None


async def list_rounds(championship_id: str, *, now: Optional[datetime] = None) -> list[dict]:
    """Rounds of a championship in order, each with its matches."""
    champ_oid = ObjectId(championship_id)
    if not await _db.db.championships.find_one({"_id": champ_oid}, {"_id": 1}):
        raise NotFoundError("Championship not found.")
    await apply_due_transitions(now=now, championship_id=champ_oid)

    rounds = await _db.db.rounds.find({"championship_id": champ_oid}).sort("round_number", 1).to_list(length=None)
    matches = await _db.db.matches.find({"championship_id": champ_oid}).sort("match_number", 1).to_list(length=None)
    by_round: dict[Any, list[dict]] = {}
    for match in matches:
        by_round.setdefault(match["round_id"], []).append(match)
    for round_doc in rounds:
        round_doc["matches"] = by_round.get(round_doc["_id"], [])
    return rounds


async def get_round(round_id: str, *, now: Optional[datetime] = None) -> dict:
    round_oid = ObjectId(round_id)
    await apply_due_transitions(now=now, round_id=round_oid)
    round_doc = await _db.db.rounds.find_one({"_id": round_oid})
    if not round_doc:
        raise NotFoundError("Round not found.")
    round_doc["matches"] = await _db.db.matches.find({"round_id": round_oid}).to_list(length=None)
    return round_doc


async def get_match(match_id: str) -> dict:
    match = await _db.db.matches.find_one({"_id": ObjectId(match_id)})
    if not match:
        raise NotFoundError("Match not found.")
    return match


# ---------- Admin operations ----------

def _validate_window(start_time: datetime, end_time: datetime) -> tuple[datetime, datetime]:
    start, end = ensure_utc(start_time), ensure_utc(end_time)
    if end <= start:
        raise ValidationError("Round end time must be after its start time.")
    return start, end


async def check_overlap(championship_id: ObjectId, start: datetime, end: datetime, *, exclude_id=None) -> None:
    """Reject a [start, end) window that intersects another round of the championship."""
    query: dict[str, Any] = {
        "championship_id": championship_id,
        "start_time": {"$lt": end},
        "end_time": {"$gt": start},
    }
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    clash = await _db.db.rounds.find_one(query, {"round_number": 1})
    if clash:
        raise ValidationError(
            f"Round window overlaps round {clash['round_number']} of this championship.",
            round_id=str(clash["_id"]),
        )


async def create_round(
    championship_id: str,
    start_time: datetime,
    end_time: datetime,
    fixtures: list[dict],
    *,
    now: Optional[datetime] = None,
) -> dict:
    now = ensure_utc(now) if now else utcnow()
    champ_oid = ObjectId(championship_id)
    champ = await _db.db.championships.find_one({"_id": champ_oid})
    if not champ:
        raise NotFoundError("Championship not found.")
    if champ.get("status") == FINISHED:
        raise ValidationError("Cannot add rounds to a finished championship.")

    start, end = _validate_window(start_time, end_time)
    entered = set(champ.get("team_ids", []))
    seen: set[ObjectId] = set()
    planned_fixtures = []
    for fixture in fixtures:
        team_a, team_b = ObjectId(fixture["team_a_id"]), ObjectId(fixture["team_b_id"])
        if team_a == team_b:
            raise ValidationError("A team cannot play against itself.")
        if team_a not in entered or team_b not in entered:
            raise ValidationError("Both teams must be entered in the championship.")
        if team_a in seen or team_b in seen:
            raise ValidationError("A team can only play once per round.")
        seen.update((team_a, team_b))
        planned_fixtures.append({"team_a_id": team_a, "team_b_id": team_b})
    await check_overlap(champ_oid, start, end)

    last = await _db.db.rounds.find({"championship_id": champ_oid}, {"round_number": 1}).sort(
        "round_number", -1
    ).limit(1).to_list(length=1)
    round_number = last[0]["round_number"] + 1 if last else 1
    last_match = await _db.db.matches.find({"championship_id": champ_oid}, {"match_number": 1}).sort(
        "match_number", -1
    ).limit(1).to_list(length=1)
    next_match_number = int(last_match[0].get("match_number") or 0) + 1 if last_match else 1

    inserted = await tournament_service.insert_rounds(
        champ_oid,
        [{
            "round_number": round_number,
            "phase": None,
            "phase_name": None,
            "leg": None,
            "start_time": start,
            "end_time": end,
            "fixtures": [
                {**fixture, "match_number": next_match_number + i}
                for i, fixture in enumerate(planned_fixtures)
            ],
        }],
        now,
    )
    await _db.db.championships.update_one(
        {"_id": champ_oid},
        {"$inc": {"total_rounds": 1}, "$set": {"updated_at": now}},
    )
    await standings_service.invalidate_standings(champ_oid)
    logger.info("Round created: championship=%s number=%d", champ_oid, round_number)
    await apply_due_transitions(now=now, round_id=inserted[0]["_id"])
    return await get_round(str(inserted[0]["_id"]), now=now)


async def update_round(
    round_id: str,
    start_time: datetime,
    end_time: datetime,
    *,
    now: Optional[datetime] = None,
) -> dict:
    now = ensure_utc(now) if now else utcnow()
    round_oid = ObjectId(round_id)
    round_doc = await _db.db.rounds.find_one({"_id": round_oid})
    if not round_doc:
        raise NotFoundError("Round not found.")
    if round_doc.get("status") != SCHEDULED:
        raise ValidationError("Only scheduled rounds can be edited.", status=round_doc.get("status"))

    start, end = _validate_window(start_time, end_time)
    await check_overlap(round_doc["championship_id"], start, end, exclude_id=round_oid)

    window = {"start_time": start, "end_time": end}
    result = await _db.db.rounds.update_one(
        {"_id": round_oid, "status": SCHEDULED},
        {"$set": {**window, "updated_at": now}},
    )
    if not result.modified_count:
        raise ValidationError("Only scheduled rounds can be edited.")
    await _db.db.matches.update_many({"round_id": round_oid}, {"$set": {**window, "updated_at": now}})
    await apply_due_transitions(now=now, round_id=round_oid)
    return await get_round(round_id, now=now)


async def delete_round(round_id: str) -> None:
    round_oid = ObjectId(round_id)
    round_doc = await _db.db.rounds.find_one({"_id": round_oid})
    if not round_doc:
        raise NotFoundError("Round not found.")
    active = await _db.db.matches.find_one({"round_id": round_oid, "status": ACTIVE}, {"_id": 1})
    if active:
        raise ValidationError("Cannot delete a round while one of its matches is being played.")

    await _db.db.goals.delete_many({"round_id": round_oid})
    await _db.db.matches.delete_many({"round_id": round_oid})
    await _db.db.rounds.delete_one({"_id": round_oid})
    await _db.db.championships.update_one(
        {"_id": round_doc["championship_id"], "total_rounds": {"$gt": 0}},
        {"$inc": {"total_rounds": -1}, "$set": {"updated_at": utcnow()}},
    )
    await standings_service.invalidate_standings(round_doc["championship_id"])
    logger.info("Round deleted: id=%s", round_oid)


async def correct_match_score(match_id: str, score_team_a: int, score_team_b: int) -> dict:
    """Overwrite a match score. Standings pick it up on their next computation."""
    if score_team_a < 0 or score_team_b < 0:
        raise ValidationError("Scores cannot be negative.")
    match = await _db.db.matches.find_one_and_update(
        {"_id": ObjectId(match_id)},
        {"$set": {
            "score_team_a": int(score_team_a),
            "score_team_b": int(score_team_b),
            "updated_at": utcnow(),
        }},
        return_document=ReturnDocument.AFTER,
    )
    if not match:
        raise NotFoundError("Match not found.")
    await standings_service.invalidate_standings(match["championship_id"])
    logger.info("Match score corrected: id=%s score=%d-%d", match["_id"], score_team_a, score_team_b)
    return match
