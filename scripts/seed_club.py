#!/usr/bin/env python3
"""
Seed a local dev database with a small club: users, players, two teams, and
an upcoming match with a lineup.

Idempotent: users and teams that already exist (by email / name) are reused,
and the match is only scheduled when the home team has none yet.

Usage:
    python scripts/seed_club.py
    python scripts/seed_club.py --init-db
"""

import argparse
import asyncio
import logging
import os
import sys
from datetime import timedelta

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

from sqlalchemy import select  # noqa: E402
from club_backend.database import db  # noqa: E402
from club_backend.database.models import Match, Team, User  # noqa: E402
from club_backend.services import match_service, player_service, team_service, user_service  # noqa: E402
from club_backend.utils.datetime_utils import utc_today  # noqa: E402

logger = logging.getLogger(__name__)

SEED_USERS = [
    {"email": "alice@club.test", "first_name": "Alice", "last_name": "Archer", "gender": "female", "role": "admin"},
    {"email": "bob@club.test", "first_name": "Bob", "last_name": "Baker", "gender": "male", "role": "member"},
    {"email": "carl@club.test", "first_name": "Carl", "last_name": "Cole", "gender": "male", "role": "member"},
    {"email": "dora@club.test", "first_name": "Dora", "last_name": "Dunn", "gender": "female", "role": "guest_player"},
    {"email": "evan@club.test", "first_name": "Evan", "last_name": "Ellis", "gender": "male", "role": "applicant"},
]

SEED_TEAMS = [
    {"name": "Club Firsts", "match_level": "4.5", "members": ["alice@club.test", "bob@club.test", "carl@club.test"]},
    {"name": "Club Seconds", "match_level": "3.5", "members": ["bob@club.test", "dora@club.test"]},
]


async def _get_or_create_user(session, data):
    result = await session.execute(select(User).where(User.email == data["email"]))
    existing = result.scalar_one_or_none()
    if existing:
        logger.info("User %s already exists (%s)", data["email"], existing.id)
        return existing.id
    user = await user_service.create_user(session, **data)
    return user["id"]


async def _get_or_create_team(session, name, match_level, created_by_id):
    result = await session.execute(select(Team).where(Team.name == name))
    existing = result.scalar_one_or_none()
    if existing:
        logger.info("Team '%s' already exists (%s)", name, existing.id)
        return existing.id
    team = await team_service.create_team(session, name, created_by_id=created_by_id, match_level=match_level)
    return team["id"]


async def seed(session):
    """Seed users, players, teams and one match. Returns the created/reused ids."""
    user_ids = {}
    for data in SEED_USERS:
        user_ids[data["email"]] = await _get_or_create_user(session, data)

    # Applicants can't play; the batch reports them instead of failing
    result = await user_service.batch_create_players(session, list(user_ids.values()))
    for error in result.errors:
        logger.info("Skipped player creation: %s", error)

    player_ids = {}
    for email, user_id in user_ids.items():
        player = await player_service.get_player_by_user_id(session, user_id)
        if player:
            player_ids[email] = player["id"]

    admin_id = user_ids["alice@club.test"]
    team_ids = {}
    for team_data in SEED_TEAMS:
        team_id = await _get_or_create_team(session, team_data["name"], team_data["match_level"], admin_id)
        team_ids[team_data["name"]] = team_id
        for email in team_data["members"]:
            await player_service.add_player_to_team(session, player_ids[email], team_id)

    firsts = team_ids["Club Firsts"]
    result = await session.execute(select(Match.id).where(Match.home_team_id == firsts))
    match_id = result.scalars().first()
    if match_id is None:
        match = await match_service.create_match(
            session,
            firsts,
            "Riverside Racquets",
            utc_today() + timedelta(days=7),
            "18:30",
            "Club Courts",
            created_by_id=admin_id,
        )
        match_id = match["id"]
        await match_service.update_lineup(
            session,
            match_id,
            [
                {"position": "men_singles_1", "player_id": player_ids["bob@club.test"]},
                {"position": "women_singles", "player_id": player_ids["alice@club.test"]},
                {"position": "mens_doubles_1", "player_id": player_ids["bob@club.test"]},
                {"position": "mens_doubles_1", "player_id": player_ids["carl@club.test"]},
            ],
        )
    else:
        logger.info("Team 'Club Firsts' already has match %s", match_id)

    return {"users": user_ids, "players": player_ids, "teams": team_ids, "match": match_id}


async def main(init_db: bool = False):
    if init_db:
        await db.init_database()
        logger.info("Database tables ensured")

    async with db.AsyncSessionLocal() as session:
        ids = await seed(session)

    logger.info(
        "Seeded %d users, %d players, %d teams, match %s",
        len(ids["users"]), len(ids["players"]), len(ids["teams"]), ids["match"],
    )


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Seed the club roster database with dev data")
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Create missing tables before seeding",
    )
    return parser.parse_args(argv)


if __name__ == "__main__":
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    args = parse_args()
    asyncio.run(main(init_db=args.init_db))
