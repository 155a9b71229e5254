"""Ranking store: swaps, cascades, placement and per-player state."""
from datetime import timedelta

import pytest

from conftest import ranks_of
from ladder_bot.utils.ladder_exceptions import LadderValidationError, StateConflictError


async def test_unranked_winner_takes_rank_and_pushes_bottom_off(ops, ladder):
    assert await ops.players.swap_ranks("newcomer", "p9") == (9, 10)

    assert await ranks_of(ops, "newcomer", "p9", "p10") == [9, 10, None]
    board = await ops.players.get_leaderboard()
    assert [p.discord_id for p in board] == ["p1", "p2", "p3", "p4", "p5", "p6", "p7", "p8", "newcomer", "p9"]


async def test_unranked_winner_into_short_ladder_shifts_everyone_below(ops):
    for rank in range(1, 6):
        await ops.players.set_rank(f"p{rank}", rank)

    await ops.players.swap_ranks("newcomer", "p3")

    assert await ranks_of(ops, "newcomer", "p3", "p4", "p5") == [3, 4, 5, 6]


async def test_ranked_winner_exchanges_ranks(ops, ladder):
    assert await ops.players.swap_ranks("p10", "p8") == (8, 10)
    assert await ranks_of(ops, "p8", "p9", "p10") == [10, 9, 8]


async def test_swap_is_noop_when_winner_already_above(ops, ladder):
    assert await ops.players.swap_ranks("p3", "p5") == (3, 5)


async def test_swap_is_noop_against_unranked_loser(ops, ladder):
    assert await ops.players.swap_ranks("p5", "nobody") == (5, None)


async def test_swap_tracks_rank_history(ops, ladder, clock):
    clock.advance(hours=1)
    await ops.players.swap_ranks("p10", "p9")

    winner = await ops.players.get_player("p10")
    loser = await ops.players.get_player("p9")
    assert winner.highest_rank == 9
    assert winner.rank_since == clock.now
    assert loser.highest_rank == 9


async def test_remove_rank_closes_the_gap(ops, ladder):
    assert await ops.players.remove_rank_and_shift_up("p4") == 4

    assert await ranks_of(ops, "p3", "p4", "p5", "p10") == [3, None, 4, 9]
    assert await ops.players.get_player_by_rank(10) is None


async def test_remove_rank_of_unranked_player(ops, ladder):
    assert await ops.players.remove_rank_and_shift_up("nobody") is None


async def test_set_rank_validation(ops, ladder):
    with pytest.raises(LadderValidationError):
        await ops.players.set_rank("x", 11)
    with pytest.raises(LadderValidationError):
        await ops.players.set_rank("x", 0)
    with pytest.raises(LadderValidationError):
        await ops.players.set_rank("x", 3)


async def test_set_rank_moves_a_player_to_a_free_rank(ops, clock):
    await ops.players.set_rank("a", 7)
    clock.advance(minutes=5)
    player = await ops.players.set_rank("a", 4)

    assert player.rank == 4
    assert player.highest_rank == 4
    assert player.rank_since == clock.now
    assert await ops.players.get_player_by_rank(7) is None


async def test_upsert_rank_tracking_keeps_best_rank(ops):
    await ops.players.upsert("a", rank=5)
    await ops.players.upsert("a", rank=None)
    player = await ops.players.upsert("a", rank=7, dm_notifications=False)

    assert player.rank == 7
    assert player.highest_rank == 5
    assert player.dm_notifications is False


async def test_upsert_rejects_unknown_field(ops):
    with pytest.raises(AttributeError):
        await ops.players.upsert("a", favourite_colour="blue")


async def test_cooldown_is_strictly_before_expiry(ops, clock):
    await ops.players.set_cooldown("a", clock.now + timedelta(hours=1))
    assert await ops.players.is_on_cooldown("a")

    clock.advance(hours=1)
    assert not await ops.players.is_on_cooldown("a")


async def test_remove_own_cooldown(ops, clock):
    with pytest.raises(StateConflictError):
        await ops.players.remove_own_cooldown("a")

    await ops.players.set_cooldown("a", clock.now + timedelta(hours=3))
    player = await ops.players.remove_own_cooldown("a")
    assert player.cooldown_until is None


async def test_unknown_player_is_not_on_cooldown(ops):
    assert await ops.players.get_player("ghost") is None
    assert not await ops.players.is_on_cooldown("ghost")


async def test_update_elo(ops):
    update = await ops.players.update_elo("a", "b")
    assert (update.winner_new, update.loser_new) == (1216, 1184)
    assert update.winner_change == 16
    assert update.loser_change == -16
    assert (await ops.players.get_player("a")).elo == 1216


async def test_toggle_dm_notifications(ops):
    assert await ops.players.toggle_dm_notifications("a") is False
    assert await ops.players.toggle_dm_notifications("a") is True
