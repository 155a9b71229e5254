"""Leaderboard refresh service and rendering."""
from datetime import datetime, timedelta

from ladder_bot.database.models import Player
from ladder_bot.services.leaderboard import LeaderboardService
from ladder_bot.utils.embeds import build_leaderboard_content


async def test_refresh_without_renderer(ops):
    service = LeaderboardService(ops.players)
    assert not await service.refresh()


async def test_render_failure_is_contained(ops, ladder):
    async def broken(ladder):
        raise RuntimeError("message deleted")

    service = LeaderboardService(ops.players, broken)
    assert not await service.refresh()


async def test_refresh_hands_over_ranked_players(ops, ladder, renderer):
    await ops.players.upsert("spectator")
    assert await ops.leaderboard.refresh()
    assert renderer.renders[-1] == ladder


async def test_scheduled_refresh_ignores_past_instants(ops, clock):
    assert ops.leaderboard.schedule_refresh(clock.now - timedelta(seconds=1)) is None
    assert ops.leaderboard.pending_refreshes == 0


async def test_shutdown_cancels_scheduled_refreshes(ops, clock):
    task = ops.leaderboard.schedule_refresh(clock.now + timedelta(hours=8))
    assert ops.leaderboard.pending_refreshes == 1

    await ops.leaderboard.shutdown()
    assert task.cancelled()
    assert ops.leaderboard.pending_refreshes == 0


def test_leaderboard_content_shows_empty_slots_and_cooldowns():
    now = datetime(2025, 3, 3, 18, 0, 0)
    ladder = [
        Player(discord_id="111", rank=1, cooldown_until=None),
        Player(discord_id="333", rank=3, cooldown_until=now + timedelta(hours=2)),
    ]
    content = build_leaderboard_content(ladder, now, max_rank=4)

    assert content.startswith("# Leaderboard")
    assert "<@111>" in content
    assert "> **2.** *Empty*" in content
    assert "> **4.** *Empty*" in content
    assert "Cooldown expires" in content
