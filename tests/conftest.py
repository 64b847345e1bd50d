import os

# Keep test runs from writing daily log files
os.environ.setdefault("LOG_DIR", "")

from datetime import datetime
from typing import Dict, List

import pytest
from sqlalchemy import text

from ladder.database.database import Database
from ladder.database.models import User
from ladder.operations.admin_operations import AdminOperations
from ladder.operations.challenge_operations import ChallengeOperations
from ladder.operations.dispute_operations import DisputeOperations
from ladder.operations.ladder_operations import LadderOperations
from ladder.operations.match_operations import MatchOperations
from ladder.operations.playoff_operations import PlayoffOperations
from ladder.operations.season_operations import SeasonOperations
from ladder.services.ladder_service import LadderService
from ladder.services.notifications import NotificationService



class RecordingNotifier(NotificationService):
    """Keeps every notification instead of delivering it"""

    def __init__(self):
        super().__init__(webhook_url="", enabled=True)
        self.sent = []

    async def _deliver(self, notification):
        self.sent.append(notification)

    def types_for(self, user_id: int):
        return [n.notification_type for n in self.sent if n.user_id == user_id]


class FailingNotifier(NotificationService):
    def __init__(self):
        super().__init__(webhook_url="", enabled=True)

    async def _deliver(self, notification):
        raise RuntimeError("notification backend down")


@pytest.fixture
async def db():
    database = Database("sqlite+aiosqlite:///:memory:")
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def admin_ops(db):
    return AdminOperations(db)


@pytest.fixture
def season_ops(db, admin_ops):
    return SeasonOperations(db, admin_ops)


@pytest.fixture
def ladder_ops(db, admin_ops):
    return LadderOperations(db, admin_ops)


@pytest.fixture
def challenge_ops(db, notifier):
    return ChallengeOperations(db, notifier)


@pytest.fixture
def match_ops(db, ladder_ops, notifier):
    return MatchOperations(db, ladder_ops, notifier)


@pytest.fixture
def dispute_ops(db, ladder_ops, admin_ops, notifier):
    return DisputeOperations(db, ladder_ops, admin_ops, notifier)


@pytest.fixture
def playoff_ops(db, admin_ops, notifier):
    return PlayoffOperations(db, admin_ops, notifier)


@pytest.fixture
def service(db, notifier):
    return LadderService(db, notifier)


@pytest.fixture
async def admin(db, admin_ops) -> User:
    user = await db.create_user("Club Admin", "admin@example.com")
    await admin_ops.grant_admin(user.id)
    return user


@pytest.fixture
async def season(season_ops, admin):
    created = await season_ops.create_season(admin.id, "Summer 2025", datetime(2025, 5, 1))
    return await season_ops.activate_season(admin.id, created.id)


@pytest.fixture
def make_players(db):
    async def _make(count: int, prefix: str = "player") -> List[User]:
        return [
            await db.create_user(f"{prefix.title()} {i}", f"{prefix}{i}@example.com")
            for i in range(1, count + 1)
        ]
    return _make


@pytest.fixture
def build_ladder(ladder_ops, admin):
    """Insert users top to bottom; users[0] ends at position 1"""
    async def _build(season_id: int, users: List[User]) -> None:
        for index, user in enumerate(users, start=1):
            await ladder_ops.insert_player(season_id, user.id, index, admin_id=admin.id)
    return _build


@pytest.fixture
async def ladder_players(season, make_players, build_ladder) -> List[User]:
    """Eight players on the ladder; ladder_players[i] holds position i + 1"""
    players = await make_players(8)
    await build_ladder(season.id, players)
    return players


async def positions_of(db: Database, season_id: int) -> Dict[int, int]:
    """user_id -> position for the season's active rows"""
    rows = await db.get_active_positions(season_id)
    return {row.user_id: row.position for row in rows}


@pytest.fixture
def current_positions(db):
    async def _current(season_id: int) -> Dict[int, int]:
        return await positions_of(db, season_id)
    return _current


@pytest.fixture
def failing_notifier():
    return FailingNotifier()


@pytest.fixture
def accepted_match(challenge_ops):
    """Create and accept a challenge; returns its Match"""
    async def _accepted(season_id: int, challenger: User, challenged: User, is_wildcard: bool = False):
        created = await challenge_ops.create_challenge(
            season_id, challenger.id, challenged.id, datetime(2025, 6, 1, 18, 0), "Court 1",
            is_wildcard=is_wildcard
        )
        result = await challenge_ops.accept_challenge(created.id, challenged.id)
        return result.match
    return _accepted


@pytest.fixture
def block_inserts(db):
    """Make every INSERT into a table fail the way a broken table would"""
    async def _block(table: str) -> None:
        async with db.engine.begin() as conn:
            await conn.execute(text(
                f"CREATE TRIGGER block_{table} BEFORE INSERT ON {table} "
                f"BEGIN SELECT RAISE(ABORT, '{table} is unavailable'); END"
            ))
    return _block
