"""Pytest configuration and fixtures."""
from datetime import datetime, timedelta
from typing import List

import pytest

from ladder_bot.database.database import Database
from ladder_bot.operations.ladder import LadderOperations
from ladder_bot.services.configuration import LadderSettings
from ladder_bot.utils.scores import parse_match


START = datetime(2025, 3, 3, 18, 0, 0)


class FakeClock:
    """Callable clock the tests move by hand."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingRenderer:
    """Leaderboard renderer that remembers every ladder it was handed."""

    def __init__(self):
        self.renders: List[List[str]] = []

    async def __call__(self, ladder):
        self.renders.append([p.discord_id for p in ladder])


class RecordingSink:
    """ReminderSink that records calls instead of posting."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.events = []

    async def _record(self, *event):
        if self.fail:
            raise RuntimeError("channel unavailable")
        self.events.append(event)

    async def challenge_expired(self, challenge):
        await self._record('expired', challenge.id)

    async def remind_score_submission(self, challenge):
        await self._record('score', challenge.id)

    async def remind_confirmation(self, challenge, result):
        await self._record('confirm', result.id)

    async def remind_dispute(self, challenge):
        await self._record('dispute', challenge.id)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return LadderSettings(cooldown_hours=8, response_window_hours=12, reminder_interval_minutes=30)


@pytest.fixture
async def db(tmp_path):
    """Fresh SQLite database per test."""
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'ladder_test.db'}")
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def renderer():
    return RecordingRenderer()


@pytest.fixture
async def ops(db, renderer, clock):
    operations = LadderOperations.build(db, renderer=renderer, clock=clock)
    yield operations
    await operations.leaderboard.shutdown()


@pytest.fixture
async def ladder(ops):
    """Ten ranked players, p1 at the top through p10 at the bottom."""
    for rank in range(1, 11):
        await ops.players.set_rank(f"p{rank}", rank)
    return [f"p{rank}" for rank in range(1, 11)]


async def ranks_of(ops, *player_ids):
    ranks = []
    for player_id in player_ids:
        player = await ops.players.get_player(player_id)
        ranks.append(player.rank if player else None)
    return ranks


async def accepted_challenge(ops, settings, challenger_id="p10", defender_id="p9"):
    challenge = await ops.challenges.create_challenge(challenger_id, defender_id, settings)
    return await ops.challenges.accept(challenge.id, defender_id)


async def play_match(ops, settings, challenge, sets=("10-6", "10-8")):
    """Submit as the challenger and confirm as the defender."""
    result = await ops.results.submit(challenge.id, challenge.challenger_id, parse_match(list(sets)))
    return await ops.results.confirm(result.id, challenge.defender_id, settings)
