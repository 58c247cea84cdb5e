"""
Tests for team service. Rosters are always computed from Player.team_ids.
"""

import logging

import pytest

from club_backend.database.models import Player, Team
from club_backend.services import player_service, team_service
from club_backend.services.exceptions import TeamInUseError, TeamNotFoundError
from club_backend.tests.factories import create_match, reload


@pytest.mark.asyncio
async def test_create_team(db_session):
    team = await team_service.create_team(db_session, "  Smashers  ", match_level="4.0")
    assert team["name"] == "Smashers"
    assert team["match_level"] == "4.0"
    assert team["player_ids"] == []


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["A", "x" * 51])
async def test_create_team_rejects_bad_names(db_session, name):
    with pytest.raises(ValueError):
        await team_service.create_team(db_session, name)


@pytest.mark.asyncio
async def test_get_team_computes_active_roster(db_session, players, two_teams):
    await player_service.update_player_sports_data(db_session, players["carol"], {"isActivePlayer": False})

    team = await team_service.get_team(db_session, two_teams["a"])

    assert set(team["player_ids"]) == {players["alice"], players["bob"]}


@pytest.mark.asyncio
async def test_get_missing_team(db_session):
    assert await team_service.get_team(db_session, "missing") is None


@pytest.mark.asyncio
async def test_roster_follows_membership_changes(db_session, players, two_teams):
    await player_service.add_player_to_team(db_session, players["dana"], two_teams["b"])
    await player_service.remove_player_from_team(db_session, players["alice"], two_teams["b"])

    team = await team_service.get_team(db_session, two_teams["b"])
    assert set(team["player_ids"]) == {players["bob"], players["dana"]}


@pytest.mark.asyncio
async def test_update_team_ignores_player_ids(db_session, players, two_teams, caplog):
    with caplog.at_level(logging.WARNING):
        team = await team_service.update_team(
            db_session, two_teams["a"], {"name": "Renamed", "player_ids": [players["dana"]]}
        )

    assert team["name"] == "Renamed"
    assert players["dana"] not in team["player_ids"]
    assert "player_ids cannot be updated directly" in caplog.text


@pytest.mark.asyncio
async def test_update_missing_team(db_session):
    with pytest.raises(TeamNotFoundError):
        await team_service.update_team(db_session, "missing", {"name": "x"})


@pytest.mark.asyncio
async def test_delete_team_pulls_id_from_players(db_session, players, two_teams):
    await team_service.delete_team(db_session, two_teams["b"])

    assert await reload(db_session, Team, two_teams["b"]) is None
    assert (await reload(db_session, Player, players["alice"])).team_ids == [two_teams["a"]]
    assert (await reload(db_session, Player, players["carol"])).team_ids == [two_teams["a"]]


@pytest.mark.asyncio
async def test_delete_team_with_matches_is_refused(db_session, players, two_teams):
    await create_match(db_session, two_teams["a"])

    with pytest.raises(TeamInUseError):
        await team_service.delete_team(db_session, two_teams["a"])

    assert await reload(db_session, Team, two_teams["a"]) is not None


@pytest.mark.asyncio
async def test_get_team_players(db_session, players, two_teams):
    roster = await team_service.get_team_players(db_session, two_teams["b"])
    assert {p["id"] for p in roster} == {players["alice"], players["bob"]}


@pytest.mark.asyncio
async def test_list_teams_with_rosters(db_session, players, two_teams):
    teams = {team["id"]: team for team in await team_service.list_teams(db_session)}

    assert set(teams[two_teams["a"]]["player_ids"]) == {players["alice"], players["bob"], players["carol"]}
    assert set(teams[two_teams["b"]]["player_ids"]) == {players["alice"], players["bob"]}


@pytest.mark.asyncio
async def test_get_teams_for_player(db_session, players, two_teams):
    teams = await team_service.get_teams_for_player(db_session, players["carol"])
    assert [team["id"] for team in teams] == [two_teams["a"]]
    assert await team_service.get_teams_for_player(db_session, players["dana"]) == []


@pytest.mark.asyncio
async def test_get_team_stats_by_gender(db_session, players, two_teams):
    stats = await team_service.get_team_stats(db_session, two_teams["a"])
    assert (stats.total, stats.male, stats.female) == (3, 1, 2)


@pytest.mark.asyncio
async def test_get_team_with_stats(db_session, players, two_teams):
    await player_service.update_player_sports_data(db_session, players["bob"], {"isActivePlayer": False})

    team = await team_service.get_team_with_stats(db_session, two_teams["b"])

    assert team["player_count"] == 2
    assert team["active_player_count"] == 1
