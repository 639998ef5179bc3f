"""
backend/tests/test_standings_service.py

Purpose:
    League table ordering and cup tie resolution, plus the short-lived
    standings cache.
"""

from __future__ import annotations

import random
import sys

import pytest
from bson import ObjectId

sys.path.insert(0, "backend")

from golaco.services import standings_service
from golaco.services.standings_service import league_table, resolve_cup_tie


def _match(team_a, team_b, score_a, score_b, status="finished", **extra) -> dict:
    return {
        "_id": ObjectId(),
        "team_a_id": team_a,
        "team_b_id": team_b,
        "score_team_a": score_a,
        "score_team_b": score_b,
        "status": status,
        **extra,
    }


def test_league_table_counts_finished_matches_only():
    table = league_table(
        ["A", "B", "C"],
        [
            _match("A", "B", 2, 0),
            _match("B", "C", 1, 1),
            _match("C", "A", 5, 0, status="active"),
        ],
    )

    rows = {row["team_id"]: row for row in table}
    assert rows["A"] == {
        "team_id": "A", "played": 1, "wins": 1, "draws": 0, "losses": 0,
        "goals_for": 2, "goals_against": 0, "goal_difference": 2, "points": 3, "position": 1,
    }
    assert rows["B"]["points"] == 1 and rows["B"]["losses"] == 1
    assert rows["C"]["played"] == 1 and rows["C"]["draws"] == 1


def test_league_table_orders_by_points_then_goal_difference():
    table = league_table(
        ["A", "B", "C", "D"],
        [_match("C", "D", 3, 0), _match("B", "A", 1, 0)],
    )
    assert [row["team_id"] for row in table] == ["C", "B", "A", "D"]
    assert [row["position"] for row in table] == [1, 2, 3, 4]


def test_league_table_uses_goals_for_after_goal_difference():
    # Everyone on one point and zero difference; A and B scored more.
    table = league_table(
        ["C", "D", "A", "B"],
        [_match("A", "B", 2, 2), _match("C", "D", 1, 1)],
    )
    assert [row["team_id"] for row in table] == ["A", "B", "C", "D"]


def test_fully_level_teams_keep_entry_order():
    teams = ["D", "A", "C", "B"]
    table = league_table(teams, [_match("D", "A", 1, 1), _match("C", "B", 1, 1)])
    assert [row["team_id"] for row in table] == teams
    assert league_table(teams, []) == league_table(teams, [])


def test_cup_tie_decided_on_aggregate():
    outcome = resolve_cup_tie(_match("A", "B", 3, 1), _match("B", "A", 2, 1))
    assert outcome["aggregate_a"] == 4 and outcome["aggregate_b"] == 3
    assert outcome["winner_id"] == "A"
    assert outcome["decided_by"] == "aggregate"


def test_cup_tie_decided_on_away_goals():
    # 2-2 on aggregate; B scored once away, A never did.
    outcome = resolve_cup_tie(_match("A", "B", 2, 1), _match("B", "A", 1, 0))
    assert (outcome["aggregate_a"], outcome["aggregate_b"]) == (2, 2)
    assert (outcome["away_goals_a"], outcome["away_goals_b"]) == (0, 1)
    assert outcome["winner_id"] == "B"
    assert outcome["decided_by"] == "away_goals"


@pytest.mark.parametrize("fallback,winner", [("team_a", "A"), ("team_b", "B")])
def test_cup_tie_fully_level_uses_fallback(fallback, winner):
    outcome = resolve_cup_tie(_match("A", "B", 2, 1), _match("B", "A", 2, 1), fallback=fallback)
    assert (outcome["aggregate_a"], outcome["aggregate_b"]) == (3, 3)
    assert (outcome["away_goals_a"], outcome["away_goals_b"]) == (1, 1)
    assert outcome["winner_id"] == winner
    assert outcome["decided_by"] == "fallback"


def test_cup_coin_toss_is_deterministic_per_seed():
    first, second = _match("A", "B", 0, 0), _match("B", "A", 0, 0)
    seed = standings_service.tie_seed("champ-1", 3)

    outcomes = {resolve_cup_tie(first, second, fallback="coin_toss", seed=seed)["winner_id"] for _ in range(5)}

    assert outcomes == {random.Random(seed).choice(["A", "B"])}


def test_cup_tie_without_finished_second_leg_has_no_winner():
    assert resolve_cup_tie(_match("A", "B", 3, 0), None)["winner_id"] is None
    pending = resolve_cup_tie(_match("A", "B", 3, 0), _match("B", "A", 0, 0, status="active"))
    assert pending["winner_id"] is None
    assert pending["aggregate_a"] == 3


def test_pair_cup_legs_matches_legs_by_match_number():
    r1, r2 = ObjectId(), ObjectId()
    rounds = [
        {"_id": r2, "round_number": 2, "phase": 1, "phase_name": "Final", "leg": "second"},
        {"_id": r1, "round_number": 1, "phase": 1, "phase_name": "Final", "leg": "first"},
    ]
    first = _match("A", "B", 1, 0, round_id=r1, match_number=1)
    second = _match("B", "A", 0, 0, round_id=r2, match_number=1)

    phases = standings_service.pair_cup_legs(rounds, [second, first])

    assert len(phases) == 1
    assert phases[0]["name"] == "Final"
    tie = phases[0]["ties"][0]
    assert tie["first_leg"]["_id"] == first["_id"]
    assert tie["second_leg"]["_id"] == second["_id"]


@pytest.mark.asyncio
async def test_compute_standings_is_cached_until_invalidated(fake_db):
    team_a, team_b = ObjectId(), ObjectId()
    champ_id = ObjectId()
    await fake_db.championships.insert_one({
        "_id": champ_id, "type": "league", "status": "active", "team_ids": [team_a, team_b],
    })
    await fake_db.matches.insert_one({
        "championship_id": champ_id, "team_a_id": team_a, "team_b_id": team_b,
        "score_team_a": 1, "score_team_b": 0, "status": "finished", "match_number": 1,
    })

    first = await standings_service.compute_standings(str(champ_id))
    assert first["table"][0]["team_id"] == str(team_a)
    assert len(fake_db.standings_cache.docs) == 1

    fake_db.matches.docs[0]["score_team_b"] = 3
    cached = await standings_service.compute_standings(str(champ_id))
    assert cached["table"][0]["team_id"] == str(team_a)

    assert await standings_service.invalidate_standings(champ_id) == 1
    fresh = await standings_service.compute_standings(str(champ_id))
    assert fresh["table"][0]["team_id"] == str(team_b)


@pytest.mark.asyncio
async def test_compute_standings_for_cup_returns_bracket(fake_db):
    team_a, team_b = ObjectId(), ObjectId()
    champ_id, r1, r2 = ObjectId(), ObjectId(), ObjectId()
    await fake_db.championships.insert_one({
        "_id": champ_id, "type": "cup", "status": "finished", "team_ids": [team_a, team_b],
    })
    await fake_db.rounds.insert_many([
        {"_id": r1, "championship_id": champ_id, "round_number": 1, "phase": 1, "phase_name": "Final", "leg": "first"},
        {"_id": r2, "championship_id": champ_id, "round_number": 2, "phase": 1, "phase_name": "Final", "leg": "second"},
    ])
    await fake_db.matches.insert_many([
        _match(team_a, team_b, 2, 1, championship_id=champ_id, round_id=r1, match_number=1),
        _match(team_b, team_a, 1, 0, championship_id=champ_id, round_id=r2, match_number=1),
    ])

    standings = await standings_service.compute_standings(str(champ_id))

    tie = standings["phases"][0]["ties"][0]
    assert tie["winner_id"] == str(team_b)
    assert tie["decided_by"] == "away_goals"
    assert tie["first_leg"]["score_team_a"] == 2
