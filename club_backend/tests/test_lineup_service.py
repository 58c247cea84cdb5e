"""
Tests for lineup normalization and batched population.
"""

from collections import OrderedDict
from unittest.mock import patch

import pytest

from club_backend.database.models import Match, Player
from club_backend.services.lineup_service import (
    empty_lineup,
    normalize_lineup,
    populate_lineup,
    populate_many_lineups,
)
from club_backend.tests.factories import create_match, reload
from club_backend.utils.constants import LINEUP_POSITIONS


def _ids(hydrated):
    """Extract raw id arrays back out of a hydrated lineup."""
    return {position: [player.id for player in players] for position, players in hydrated.items()}


# ──────────────────────────────────────────────────────────────
# Normalization
# ──────────────────────────────────────────────────────────────


def test_normalize_accepts_lists_single_ids_and_none():
    normalized = normalize_lineup(
        {"mens_doubles_1": ["p1", None, "p2"], "women_singles": "p3", "mixed_doubles": None}
    )
    assert normalized == {"mens_doubles_1": ["p1", "p2"], "women_singles": ["p3"], "mixed_doubles": []}


def test_normalize_accepts_pairs_and_preserves_order():
    pairs = [("women_doubles", ["p2", "p1"]), ("men_singles_1", ["p3"])]
    assert list(normalize_lineup(pairs).items()) == [("women_doubles", ["p2", "p1"]), ("men_singles_1", ["p3"])]


def test_normalize_accepts_ordered_mappings():
    raw = OrderedDict([("men_singles_2", ("p1",))])
    assert normalize_lineup(raw) == {"men_singles_2": ["p1"]}


def test_normalize_none():
    assert normalize_lineup(None) == {}


# ──────────────────────────────────────────────────────────────
# Population
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_empty_lineup_has_every_position_and_no_query(db_session):
    with patch.object(db_session, "execute", wraps=db_session.execute) as execute:
        lineup = await populate_lineup(db_session, {})
    assert lineup == empty_lineup()
    assert list(lineup) == list(LINEUP_POSITIONS)
    assert execute.call_count == 0


@pytest.mark.asyncio
async def test_populate_lineup_round_trip(db_session, players):
    """Hydrating then extracting ids gives back the original arrays, in order."""
    raw = {
        "men_singles_1": [players["bob"]],
        "mens_doubles_1": [players["bob"], players["alice"]],
        "mixed_doubles": [players["carol"], players["bob"]],
    }
    lineup = await populate_lineup(db_session, raw)

    expected = empty_lineup()
    expected.update(raw)
    assert _ids(lineup) == expected


@pytest.mark.asyncio
async def test_populate_lineup_details(db_session, players):
    lineup = await populate_lineup(db_session, {"women_singles": players["carol"]})
    carol = lineup["women_singles"][0]
    assert carol.first_name == "Carol"
    assert carol.last_name == "Gamma"
    assert carol.gender == "female"


@pytest.mark.asyncio
async def test_populate_lineup_drops_deleted_player(db_session, players):
    """One deleted id among two valid ones shortens the position by exactly one."""
    raw = {"mixed_doubles": [players["alice"], players["dana"], players["bob"]]}
    dana = await reload(db_session, Player, players["dana"])
    await db_session.delete(dana)
    await db_session.commit()

    lineup = await populate_lineup(db_session, raw)

    assert len(lineup["mixed_doubles"]) == len(raw["mixed_doubles"]) - 1
    assert [p.id for p in lineup["mixed_doubles"]] == [players["alice"], players["bob"]]


@pytest.mark.asyncio
async def test_populate_lineup_ignores_unknown_positions(db_session, players):
    lineup = await populate_lineup(db_session, {"quadruples": [players["alice"]]})
    assert "quadruples" not in lineup
    assert all(value == [] for value in lineup.values())


@pytest.mark.asyncio
async def test_populate_lineup_uses_one_query(db_session, players):
    raw = {position: [players["alice"], players["bob"]] for position in LINEUP_POSITIONS}
    with patch.object(db_session, "execute", wraps=db_session.execute) as execute:
        await populate_lineup(db_session, raw)
    assert execute.call_count == 1


@pytest.mark.asyncio
async def test_populate_many_lineups_one_query_in_match_order(db_session, players, two_teams):
    first = await create_match(db_session, two_teams["a"], lineup={"men_singles_1": [players["bob"]]})
    second = await create_match(db_session, two_teams["b"], lineup={"women_singles": [players["carol"]]})
    db_session.expunge_all()
    matches = [await db_session.get(Match, second), await db_session.get(Match, first)]

    with patch.object(db_session, "execute", wraps=db_session.execute) as execute:
        lineups = await populate_many_lineups(db_session, matches)

    assert execute.call_count == 1
    assert [p.id for p in lineups[0]["women_singles"]] == [players["carol"]]
    assert [p.id for p in lineups[1]["men_singles_1"]] == [players["bob"]]


@pytest.mark.asyncio
async def test_populate_many_lineups_accepts_mappings(db_session, players):
    lineups = await populate_many_lineups(
        db_session,
        [{"lineup": {"women_doubles": [players["alice"], players["carol"]]}}, {"lineup": None}],
    )
    assert [p.id for p in lineups[0]["women_doubles"]] == [players["alice"], players["carol"]]
    assert lineups[1] == empty_lineup()
