"""Administrative overrides."""
import pytest

from conftest import accepted_challenge, ranks_of
from ladder_bot.database.models import ChallengeStatus
from ladder_bot.utils.ladder_exceptions import LadderValidationError, StateConflictError


async def test_force_result_from_below_promotes_winner(ops, ladder, settings):
    completion = await ops.admin.force_result("p10", "p8", 1, "admin", settings)

    assert completion.winner_is_challenger
    assert await ranks_of(ops, "p10", "p8") == [8, 10]
    [entry] = await ops.history.get_recent_matches("p10")
    assert (entry.sets_won, entry.sets_lost, entry.was_perfect) == (2, 1, False)
    assert (await ops.players.get_player("p10")).title_takes == 1
    assert entry.challenge_id is None


async def test_force_result_from_above_keeps_ranks(ops, ladder, settings):
    completion = await ops.admin.force_result("p3", "p5", 0, "admin", settings)

    assert not completion.ranks_changed
    winner = await ops.players.get_player("p3")
    assert winner.wins == 1
    assert (winner.title_defenses, winner.title_takes) == (0, 0)
    assert winner.perfect_matches == 0
    [entry] = await ops.history.get_recent_matches("p3")
    assert (entry.sets_won, entry.sets_lost, entry.was_perfect) == (2, 0, False)
    assert await ops.players.is_on_cooldown("p5")


async def test_force_result_validation(ops, ladder, settings):
    with pytest.raises(LadderValidationError):
        await ops.admin.force_result("p3", "p3", 0, "admin", settings)
    with pytest.raises(LadderValidationError):
        await ops.admin.force_result("p3", "p5", 2, "admin", settings)


async def test_force_challenge_result(ops, ladder, settings):
    challenge = await accepted_challenge(ops, settings)

    with pytest.raises(LadderValidationError):
        await ops.admin.force_challenge_result(challenge.id, "p1", 0, "admin", settings)

    resolution = await ops.admin.force_challenge_result(challenge.id, "p9", 1, "admin", settings)
    assert resolution.challenge.status == ChallengeStatus.COMPLETED
    assert await ranks_of(ops, "p10", "p9") == [10, 9]
    defender = await ops.players.get_player("p9")
    assert (defender.wins, defender.title_defenses) == (1, 0)


async def test_force_challenge_result_needs_accepted_match(ops, ladder, settings):
    challenge = await ops.challenges.create_challenge("p10", "p9", settings)
    with pytest.raises(StateConflictError):
        await ops.admin.force_challenge_result(challenge.id, "p10", 0, "admin", settings)


async def test_remove_rank(ops, ladder, renderer):
    assert await ops.admin.remove_rank("p1", "admin") == 1
    assert await ranks_of(ops, "p2", "p10") == [1, 9]
    assert renderer.renders[-1][0] == "p2"

    with pytest.raises(StateConflictError):
        await ops.admin.remove_rank("p1", "admin")


async def test_set_rank_and_clear_cooldown(ops, settings, clock):
    await ops.admin.set_rank("a", 2, "admin")
    assert await ranks_of(ops, "a") == [2]

    await ops.admin.force_result("a", "b", 0, "admin", settings)
    assert await ops.players.is_on_cooldown("a")
    await ops.admin.clear_cooldown("a", "admin")
    assert not await ops.players.is_on_cooldown("a")


async def test_cancel_and_void(ops, ladder, settings):
    pending = await ops.challenges.create_challenge("p10", "p9", settings)
    assert (await ops.admin.cancel_challenge(pending.id, "admin")).challenge.status == ChallengeStatus.CANCELLED

    accepted = await accepted_challenge(ops, settings, challenger_id="p8", defender_id="p7")
    assert (await ops.admin.void_challenge(accepted.id, "admin")).challenge.status == ChallengeStatus.VOIDED
    assert await ranks_of(ops, "p8", "p7") == [8, 7]


async def test_refresh_leaderboard(ops, ladder, renderer):
    assert await ops.admin.refresh_leaderboard("admin")
    assert len(renderer.renders[-1]) == 10
