"""
backend/golaco/services/standings_service.py

Purpose:
    League tables and cup bracket state, always recomputed from the match
    history. Results are cached in MongoDB for a short TTL so repeated reads
    stay cheap; the cache is never treated as the source of truth.

Dependencies:
    - golaco.database
    - golaco.config
    - golaco.utils
"""

from __future__ import annotations

import logging
import random
from datetime import timedelta
from typing import Any

from bson import ObjectId

import golaco.database as _db
from golaco.config import CupTiebreakFallback, settings
from golaco.errors import NotFoundError
from golaco.models.championship import ChampionshipType, Leg, LifecycleStatus
from golaco.utils import ensure_utc, utcnow

logger = logging.getLogger("golaco.standings_service")

_COLLECTION = "standings_cache"

WIN_POINTS = 3
DRAW_POINTS = 1


def _is_finished(match: dict | None) -> bool:
    return bool(match) and match.get("status") == LifecycleStatus.finished.value


def _empty_row(team_id: Any) -> dict:
    return {
        "team_id": team_id,
        "played": 0,
        "wins": 0,
        "draws": 0,
        "losses": 0,
        "goals_for": 0,
        "goals_against": 0,
        "goal_difference": 0,
        "points": 0,
    }


def _record(row: dict, scored: int, conceded: int) -> None:
    row["played"] += 1
    row["goals_for"] += scored
    row["goals_against"] += conceded
    if scored > conceded:
        row["wins"] += 1
        row["points"] += WIN_POINTS
    elif scored == conceded:
        row["draws"] += 1
        row["points"] += DRAW_POINTS
    else:
        row["losses"] += 1


def league_table(team_ids: list, matches: list[dict]) -> list[dict]:
    """Build the league table from finished matches.

    Sorted by points, goal difference and goals for, all descending. Teams
    still level keep the order of ``team_ids``.
    """
    rows: dict[Any, dict] = {team_id: _empty_row(team_id) for team_id in team_ids}
    for match in matches:
        if not _is_finished(match):
            continue
        team_a, team_b = match.get("team_a_id"), match.get("team_b_id")
        if team_a not in rows or team_b not in rows:
            continue
        score_a = int(match.get("score_team_a", 0))
        score_b = int(match.get("score_team_b", 0))
        _record(rows[team_a], score_a, score_b)
        _record(rows[team_b], score_b, score_a)

    for row in rows.values():
        row["goal_difference"] = row["goals_for"] - row["goals_against"]

    ordered = sorted(
        rows.values(),
        key=lambda r: (r["points"], r["goal_difference"], r["goals_for"]),
        reverse=True,
    )
    for position, row in enumerate(ordered, start=1):
        row["position"] = position
    return ordered


def _goals_for(team_id: Any, match: dict) -> int:
    if match.get("team_a_id") == team_id:
        return int(match.get("score_team_a", 0))
    if match.get("team_b_id") == team_id:
        return int(match.get("score_team_b", 0))
    return 0


def _away_goals_for(team_id: Any, match: dict) -> int:
    return int(match.get("score_team_b", 0)) if match.get("team_b_id") == team_id else 0


def resolve_cup_tie(
    first_leg: dict,
    second_leg: dict | None,
    *,
    fallback: CupTiebreakFallback = "team_a",
    seed: str | None = None,
) -> dict:
    """Decide a two-legged tie.

    Team A is the first-leg home side. The winner is decided by aggregate
    score, then away goals, then the ``fallback`` policy. ``coin_toss`` is
    drawn from a generator seeded with ``seed`` so the same tie always
    resolves the same way. Ties with an unfinished leg have no winner.
    """
    team_a = first_leg.get("team_a_id")
    team_b = first_leg.get("team_b_id")
    legs = [leg for leg in (first_leg, second_leg) if leg]

    aggregate_a = sum(_goals_for(team_a, leg) for leg in legs)
    aggregate_b = sum(_goals_for(team_b, leg) for leg in legs)
    away_a = sum(_away_goals_for(team_a, leg) for leg in legs)
    away_b = sum(_away_goals_for(team_b, leg) for leg in legs)

    result = {
        "team_a_id": team_a,
        "team_b_id": team_b,
        "aggregate_a": aggregate_a,
        "aggregate_b": aggregate_b,
        "away_goals_a": away_a,
        "away_goals_b": away_b,
        "winner_id": None,
        "decided_by": None,
    }
    if not (_is_finished(first_leg) and _is_finished(second_leg)):
        return result

    if aggregate_a != aggregate_b:
        result["winner_id"] = team_a if aggregate_a > aggregate_b else team_b
        result["decided_by"] = "aggregate"
    elif away_a != away_b:
        result["winner_id"] = team_a if away_a > away_b else team_b
        result["decided_by"] = "away_goals"
    else:
        if fallback == "team_b":
            winner = team_b
        elif fallback == "coin_toss":
            winner = random.Random(seed).choice([team_a, team_b])
        else:
            winner = team_a
        result["winner_id"] = winner
        result["decided_by"] = "fallback"
    return result


def tie_seed(championship_id: Any, match_number: Any) -> str:
    return f"{championship_id}:{match_number}"


def pair_cup_legs(rounds: list[dict], matches: list[dict]) -> list[dict]:
    """Group cup rounds into phases and pair first/second legs by match number."""
    rounds_by_id = {r["_id"]: r for r in rounds}
    phases: dict[int, dict] = {}
    for rnd in sorted(rounds, key=lambda r: r.get("round_number", 0)):
        phase = rnd.get("phase")
        if phase is None:
            continue
        entry = phases.setdefault(phase, {"phase": phase, "name": rnd.get("phase_name"), "ties": {}})
        entry["name"] = entry["name"] or rnd.get("phase_name")

    for match in matches:
        rnd = rounds_by_id.get(match.get("round_id"))
        if not rnd or rnd.get("phase") not in phases:
            continue
        ties = phases[rnd["phase"]]["ties"]
        tie = ties.setdefault(match.get("match_number"), {"match_number": match.get("match_number"), "first_leg": None, "second_leg": None})
        key = "second_leg" if rnd.get("leg") == Leg.second.value else "first_leg"
        tie[key] = match

    out: list[dict] = []
    for phase in sorted(phases):
        entry = phases[phase]
        ties = [entry["ties"][n] for n in sorted(entry["ties"], key=lambda n: (n is None, n))]
        out.append({"phase": phase, "name": entry["name"], "ties": ties})
    return out


def _serialize_id(value: Any) -> Any:
    return str(value) if isinstance(value, ObjectId) else value


def _serialize_leg(match: dict | None) -> dict | None:
    if not match:
        return None
    return {
        "match_id": str(match["_id"]),
        "team_a_id": _serialize_id(match.get("team_a_id")),
        "team_b_id": _serialize_id(match.get("team_b_id")),
        "score_team_a": int(match.get("score_team_a", 0)),
        "score_team_b": int(match.get("score_team_b", 0)),
        "status": match.get("status"),
    }


def cup_bracket(championship_id: Any, rounds: list[dict], matches: list[dict]) -> list[dict]:
    phases = []
    for phase in pair_cup_legs(rounds, matches):
        ties = []
        for tie in phase["ties"]:
            if not tie["first_leg"]:
                continue
            outcome = resolve_cup_tie(
                tie["first_leg"],
                tie["second_leg"],
                fallback=settings.CUP_TIEBREAK_FALLBACK,
                seed=tie_seed(championship_id, tie["match_number"]),
            )
            ties.append({
                "match_number": tie["match_number"],
                "team_a_id": _serialize_id(outcome["team_a_id"]),
                "team_b_id": _serialize_id(outcome["team_b_id"]),
                "first_leg": _serialize_leg(tie["first_leg"]),
                "second_leg": _serialize_leg(tie["second_leg"]),
                "aggregate_a": outcome["aggregate_a"],
                "aggregate_b": outcome["aggregate_b"],
                "away_goals_a": outcome["away_goals_a"],
                "away_goals_b": outcome["away_goals_b"],
                "winner_id": _serialize_id(outcome["winner_id"]),
                "decided_by": outcome["decided_by"],
            })
        phases.append({"phase": phase["phase"], "name": phase["name"], "ties": ties})
    return phases


# ---------- Cache ----------

def build_standings_cache_key(championship_id: str) -> str:
    return f"standings:{championship_id}"


async def get_cached_standings(*, cache_key: str) -> dict | None:
    doc = await getattr(_db.db, _COLLECTION).find_one({"_id": cache_key})
    if not isinstance(doc, dict):
        return None
    expires_at = doc.get("expires_at")
    if expires_at is None or ensure_utc(expires_at) <= utcnow():
        return None
    payload = doc.get("payload")
    return payload if isinstance(payload, dict) else None


async def set_cached_standings(*, cache_key: str, payload: dict, ttl_seconds: int) -> None:
    now = utcnow()
    await getattr(_db.db, _COLLECTION).update_one(
        {"_id": cache_key},
        {
            "$set": {
                "payload": payload,
                "updated_at": now,
                "expires_at": now + timedelta(seconds=max(1, int(ttl_seconds))),
            },
            "$setOnInsert": {"created_at": now},
        },
        upsert=True,
    )


async def invalidate_standings(championship_id) -> int:
    result = await getattr(_db.db, _COLLECTION).delete_one(
        {"_id": build_standings_cache_key(str(championship_id))}
    )
    return int(result.deleted_count or 0)


async def compute_standings(championship_id: str) -> dict:
    """League table or cup bracket for a championship."""
    cache_key = build_standings_cache_key(championship_id)
    cached = await get_cached_standings(cache_key=cache_key)
    if cached is not None:
        return cached

    champ_oid = ObjectId(championship_id)
    champ = await _db.db.championships.find_one({"_id": champ_oid})
    if not champ:
        raise NotFoundError("Championship not found.")

    matches = await _db.db.matches.find({"championship_id": champ_oid}).sort("match_number", 1).to_list(length=None)
    payload: dict[str, Any] = {
        "championship_id": str(champ_oid),
        "type": champ["type"],
        "status": champ.get("status"),
    }
    if champ["type"] == ChampionshipType.league.value:
        table = league_table(champ.get("team_ids", []), matches)
        for row in table:
            row["team_id"] = _serialize_id(row["team_id"])
        payload["table"] = table
    else:
        rounds = await _db.db.rounds.find({"championship_id": champ_oid}).sort("round_number", 1).to_list(length=None)
        payload["phases"] = cup_bracket(champ_oid, rounds, matches)

    await set_cached_standings(
        cache_key=cache_key,
        payload=payload,
        ttl_seconds=settings.STANDINGS_CACHE_TTL_SECONDS,
    )
    logger.debug("Standings recomputed: championship=%s", championship_id)
    return payload
