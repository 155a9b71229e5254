"""Match history queries: form, head-to-head, nemesis and victim."""
from datetime import timedelta

import pytest

from ladder_bot.operations.history_operations import HistoryOperations


@pytest.fixture
async def rivalry(ops, settings, clock):
    """a beats b twice, then b beats a, then a beats c."""
    for winner, loser in (("a", "b"), ("a", "b"), ("b", "a"), ("a", "c")):
        clock.advance(hours=1)
        await ops.admin.force_result(winner, loser, 0, "admin", settings)


async def test_form_guide_is_newest_first(ops, rivalry):
    assert await ops.history.get_form_guide("a") == ["W", "L", "W", "W"]
    assert await ops.history.get_form_guide("a", limit=2) == ["W", "L"]


async def test_head_to_head(ops, rivalry, clock):
    record = await ops.history.get_head_to_head("a", "b")
    assert (record.wins, record.losses, record.total) == (2, 1, 3)
    assert record.last_match == clock.now - timedelta(hours=1)

    mirror = await ops.history.get_head_to_head("b", "a")
    assert (mirror.wins, mirror.losses) == (1, 2)


async def test_head_to_head_against_stranger(ops, rivalry):
    record = await ops.history.get_head_to_head("a", "z")
    assert (record.wins, record.losses, record.last_match) == (0, 0, None)


async def test_all_head_to_head_most_played_first(ops, rivalry):
    records = await ops.history.get_all_head_to_head("a")
    assert [(r.opponent_id, r.wins, r.losses) for r in records] == [("b", 2, 1), ("c", 1, 0)]


async def test_nemesis_and_victim(ops, rivalry):
    victim = await ops.history.get_victim("a")
    assert (victim.opponent_id, victim.count) == ("b", 2)
    nemesis = await ops.history.get_nemesis("b")
    assert (nemesis.opponent_id, nemesis.count) == ("a", 2)
    assert await ops.history.get_nemesis("c") is not None
    assert await ops.history.get_victim("c") is None


async def test_matches_between(ops, rivalry):
    meetings = await ops.history.get_matches_between("b", "a", limit=5)
    assert [m.result for m in meetings] == ["W", "L", "L"]


def test_format_form():
    assert HistoryOperations.format_form(["W", "L"]) == "WL"
    assert HistoryOperations.format_form([]) == "-"
