"""
backend/tests/test_round_service.py

Purpose:
    Round state machine: idempotent transitions, per-round counter reset,
    early advance, manual round windows and delete guards.
"""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from bson import ObjectId

sys.path.insert(0, "backend")

from golaco.errors import ValidationError
from golaco.services import round_service

T0 = datetime(2026, 5, 10, 9, 0, tzinfo=timezone.utc)
DAY = timedelta(hours=24)


async def _seed_league(fake_db, *, rounds: int = 2):
    teams = [ObjectId() for _ in range(4)]
    champ_id = ObjectId()
    await fake_db.championships.insert_one({
        "_id": champ_id,
        "name": "Liga",
        "type": "league",
        "status": "scheduled",
        "team_ids": teams,
        "current_round": 1,
        "total_rounds": rounds,
    })
    round_ids = []
    for index in range(rounds):
        round_id = ObjectId()
        start = T0 + DAY * index
        await fake_db.rounds.insert_one({
            "_id": round_id,
            "championship_id": champ_id,
            "round_number": index + 1,
            "phase": None,
            "leg": None,
            "start_time": start,
            "end_time": start + DAY,
            "status": "scheduled",
        })
        await fake_db.matches.insert_one({
            "round_id": round_id,
            "championship_id": champ_id,
            "team_a_id": teams[(2 * index) % 4],
            "team_b_id": teams[(2 * index + 1) % 4],
            "score_team_a": 0,
            "score_team_b": 0,
            "status": "scheduled",
            "match_number": index + 1,
            "start_time": start,
            "end_time": start + DAY,
        })
        round_ids.append(round_id)
    return SimpleNamespace(championship_id=champ_id, round_ids=round_ids, teams=teams)


def _doc(collection, oid) -> dict:
    return next(d for d in collection.docs if d["_id"] == oid)


@pytest.mark.asyncio
async def test_transitions_follow_the_clock_and_are_idempotent(fake_db):
    seeded = await _seed_league(fake_db)

    assert await round_service.apply_due_transitions(now=T0 - timedelta(minutes=1)) == {"activated": 0, "finished": 0}

    first = await round_service.apply_due_transitions(now=T0 + timedelta(hours=1))
    assert first == {"activated": 1, "finished": 0}
    again = await round_service.apply_due_transitions(now=T0 + timedelta(hours=1))
    assert again == {"activated": 0, "finished": 0}

    round_one = _doc(fake_db.rounds, seeded.round_ids[0])
    assert round_one["status"] == "active"
    assert all(m["status"] == "active" for m in fake_db.matches.docs if m["round_id"] == round_one["_id"])
    champ = _doc(fake_db.championships, seeded.championship_id)
    assert champ["status"] == "active"
    assert champ["current_round"] == 1


@pytest.mark.asyncio
async def test_round_boundary_is_half_open(fake_db):
    seeded = await _seed_league(fake_db)

    result = await round_service.apply_due_transitions(now=T0 + DAY)

    assert result == {"activated": 2, "finished": 1}
    assert _doc(fake_db.rounds, seeded.round_ids[0])["status"] == "finished"
    assert _doc(fake_db.rounds, seeded.round_ids[1])["status"] == "active"
    assert _doc(fake_db.championships, seeded.championship_id)["current_round"] == 2


@pytest.mark.asyncio
async def test_finishing_the_last_round_closes_the_league(fake_db):
    seeded = await _seed_league(fake_db)

    await round_service.apply_due_transitions(now=T0 + DAY * 3)

    champ = _doc(fake_db.championships, seeded.championship_id)
    assert champ["status"] == "finished"
    assert champ["current_round"] == 2
    assert all(m["status"] == "finished" for m in fake_db.matches.docs)


@pytest.mark.asyncio
async def test_interrupted_finish_is_completed_by_the_next_sweep(fake_db, monkeypatch):
    seeded = await _seed_league(fake_db)
    original_invalidate = round_service.standings_service.invalidate_standings

    async def _unavailable(championship_id):
        raise RuntimeError("cache unavailable")

    monkeypatch.setattr(round_service.standings_service, "invalidate_standings", _unavailable)
    with pytest.raises(RuntimeError):
        await round_service.apply_due_transitions(now=T0 + DAY * 3)

    round_one = _doc(fake_db.rounds, seeded.round_ids[0])
    assert round_one["status"] == "finished"
    assert round_one["settled"] is False

    monkeypatch.setattr(round_service.standings_service, "invalidate_standings", original_invalidate)
    result = await round_service.apply_due_transitions(now=T0 + DAY * 3)

    assert result == {"activated": 0, "finished": 2}
    assert all(r["settled"] is True for r in fake_db.rounds.docs)
    assert _doc(fake_db.championships, seeded.championship_id)["status"] == "finished"


@pytest.mark.asyncio
async def test_round_finish_resets_round_counter_of_defenders(fake_db):
    seeded = await _seed_league(fake_db)
    await fake_db.users.insert_many([
        {"_id": "playing", "team_defending_id": seeded.teams[0], "total_goals": 9, "gols_current_round": 4},
        {"_id": "resting", "team_defending_id": seeded.teams[2], "total_goals": 5, "gols_current_round": 2},
    ])

    await round_service.apply_due_transitions(now=T0 + DAY + timedelta(minutes=1))

    playing = _doc(fake_db.users, "playing")
    assert playing["gols_current_round"] == 0
    assert playing["total_goals"] == 9
    # Team 2 plays in round two, which is still running.
    assert _doc(fake_db.users, "resting")["gols_current_round"] == 2


@pytest.mark.asyncio
async def test_advance_round_closes_early_and_pulls_next_round_forward(fake_db):
    seeded = await _seed_league(fake_db)
    now = T0 + timedelta(hours=5)
    await round_service.apply_due_transitions(now=now)

    result = await round_service.advance_round(str(seeded.round_ids[0]), now=now)

    assert result["round"]["status"] == "finished"
    assert result["round"]["end_time"] == now
    assert result["next_round"]["_id"] == seeded.round_ids[1]
    assert result["next_round"]["status"] == "active"
    assert result["next_round"]["start_time"] == now
    assert result["next_round"]["end_time"] == now + DAY
    next_match = next(m for m in fake_db.matches.docs if m["round_id"] == seeded.round_ids[1])
    assert next_match["start_time"] == now
    assert next_match["status"] == "active"


@pytest.mark.asyncio
async def test_only_active_rounds_can_be_advanced(fake_db):
    seeded = await _seed_league(fake_db)

    with pytest.raises(ValidationError):
        await round_service.advance_round(str(seeded.round_ids[1]), now=T0 - DAY)


@pytest.mark.asyncio
async def test_manual_round_rejects_overlapping_window(fake_db):
    seeded = await _seed_league(fake_db, rounds=1)
    champ_id = str(seeded.championship_id)
    fixtures = [{"team_a_id": str(seeded.teams[2]), "team_b_id": str(seeded.teams[3])}]

    with pytest.raises(ValidationError):
        await round_service.create_round(
            champ_id, T0 + timedelta(hours=12), T0 + timedelta(hours=36), fixtures, now=T0 - DAY
        )

    created = await round_service.create_round(champ_id, T0 + DAY, T0 + DAY * 2, fixtures, now=T0 - DAY)

    assert created["round_number"] == 2
    assert created["status"] == "scheduled"
    assert [m["match_number"] for m in created["matches"]] == [2]
    assert _doc(fake_db.championships, seeded.championship_id)["total_rounds"] == 2


@pytest.mark.asyncio
async def test_manual_round_validates_fixtures(fake_db):
    seeded = await _seed_league(fake_db, rounds=1)
    champ_id = str(seeded.championship_id)
    a, b, c = (str(t) for t in seeded.teams[:3])

    with pytest.raises(ValidationError):
        await round_service.create_round(
            champ_id, T0 + DAY, T0 + DAY * 2,
            [{"team_a_id": a, "team_b_id": str(ObjectId())}], now=T0,
        )
    with pytest.raises(ValidationError):
        await round_service.create_round(
            champ_id, T0 + DAY, T0 + DAY * 2,
            [{"team_a_id": a, "team_b_id": b}, {"team_a_id": a, "team_b_id": c}], now=T0,
        )
    with pytest.raises(ValidationError):
        await round_service.create_round(
            champ_id, T0 + DAY * 2, T0 + DAY,
            [{"team_a_id": a, "team_b_id": b}], now=T0,
        )


@pytest.mark.asyncio
async def test_update_round_only_while_scheduled(fake_db):
    seeded = await _seed_league(fake_db)
    second = str(seeded.round_ids[1])

    moved = await round_service.update_round(second, T0 + DAY * 3, T0 + DAY * 4, now=T0 - DAY)
    assert moved["start_time"] == T0 + DAY * 3
    assert all(m["start_time"] == T0 + DAY * 3 for m in moved["matches"])

    with pytest.raises(ValidationError):
        await round_service.update_round(second, T0 + timedelta(hours=6), T0 + DAY * 2, now=T0 - DAY)

    await round_service.apply_due_transitions(now=T0 + timedelta(hours=1))
    with pytest.raises(ValidationError):
        await round_service.update_round(str(seeded.round_ids[0]), T0 + DAY * 5, T0 + DAY * 6, now=T0)


@pytest.mark.asyncio
async def test_delete_round_blocked_while_match_is_live(fake_db):
    seeded = await _seed_league(fake_db)
    await round_service.apply_due_transitions(now=T0 + timedelta(hours=1))

    with pytest.raises(ValidationError):
        await round_service.delete_round(str(seeded.round_ids[0]))

    await fake_db.goals.insert_one({"round_id": seeded.round_ids[1], "user_id": "u"})
    await round_service.delete_round(str(seeded.round_ids[1]))

    assert [r["_id"] for r in fake_db.rounds.docs] == [seeded.round_ids[0]]
    assert all(m["round_id"] == seeded.round_ids[0] for m in fake_db.matches.docs)
    assert fake_db.goals.docs == []
    assert _doc(fake_db.championships, seeded.championship_id)["total_rounds"] == 1


@pytest.mark.asyncio
async def test_score_correction_rejects_negative_and_invalidates_cache(fake_db):
    seeded = await _seed_league(fake_db, rounds=1)
    match_id = str(fake_db.matches.docs[0]["_id"])
    await fake_db.standings_cache.insert_one({"_id": f"standings:{seeded.championship_id}", "payload": {}})

    with pytest.raises(ValidationError):
        await round_service.correct_match_score(match_id, -1, 0)

    match = await round_service.correct_match_score(match_id, 2, 1)
    assert (match["score_team_a"], match["score_team_b"]) == (2, 1)
    assert fake_db.standings_cache.docs == []
