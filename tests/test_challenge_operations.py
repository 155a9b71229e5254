"""Challenge creation guards and the challenge state machine."""
from datetime import timedelta

import pytest

from conftest import accepted_challenge, ranks_of
from ladder_bot.database.models import ChallengeStatus
from ladder_bot.utils.ladder_exceptions import (
    ChallengeNotFoundError, LadderValidationError, NotAuthorizedError, StateConflictError
)


async def test_create_ranked_challenge(ops, ladder, settings, clock):
    challenge = await ops.challenges.create_challenge("p10", "p9", settings)

    assert challenge.status == ChallengeStatus.PENDING
    assert challenge.defender_rank == 9
    assert challenge.created_at == clock.now
    assert challenge.expires_at == clock.now + timedelta(hours=12)
    assert await ops.challenges.get_busy_player_ids() == {"p9", "p10"}


async def test_unranked_player_enters_through_open_band(ops, ladder, settings):
    challenge = await ops.challenges.create_challenge("newcomer", "p8", settings)
    assert challenge.defender_rank == 8

    with pytest.raises(LadderValidationError):
        await ops.challenges.create_challenge("other", "p7", settings)


async def test_out_of_reach_and_self_challenges_rejected(ops, ladder, settings):
    with pytest.raises(LadderValidationError):
        await ops.challenges.create_challenge("p10", "p5", settings)
    with pytest.raises(LadderValidationError):
        await ops.challenges.create_challenge("p4", "p4", settings)
    with pytest.raises(LadderValidationError):
        await ops.challenges.create_challenge("newcomer", "ghost", settings)


async def test_one_active_challenge_per_player(ops, ladder, settings):
    await ops.challenges.create_challenge("p10", "p9", settings)

    with pytest.raises(StateConflictError):
        await ops.challenges.create_challenge("p10", "p8", settings)
    with pytest.raises(StateConflictError):
        await ops.challenges.create_challenge("newcomer", "p9", settings)
    assert len(await ops.challenges.get_active_challenges()) == 1


async def test_cooldown_blocks_both_sides(ops, ladder, settings, clock):
    await ops.players.set_cooldown("p10", clock.now + timedelta(hours=1))
    with pytest.raises(StateConflictError):
        await ops.challenges.create_challenge("p10", "p9", settings)

    await ops.players.set_cooldown("p8", clock.now + timedelta(hours=1))
    with pytest.raises(StateConflictError):
        await ops.challenges.create_challenge("p9", "p8", settings)


async def test_only_defender_can_accept(ops, ladder, settings, clock):
    challenge = await ops.challenges.create_challenge("p10", "p9", settings)

    with pytest.raises(NotAuthorizedError):
        await ops.challenges.accept(challenge.id, "p10")

    clock.advance(minutes=10)
    accepted = await ops.challenges.accept(challenge.id, "p9")
    assert accepted.status == ChallengeStatus.ACCEPTED
    assert accepted.accepted_at == clock.now

    with pytest.raises(StateConflictError):
        await ops.challenges.accept(challenge.id, "p9")


async def test_accept_unknown_challenge(ops):
    with pytest.raises(ChallengeNotFoundError):
        await ops.challenges.accept(999, "p9")


async def test_decline_is_a_forfeit_win_without_cooldown(ops, ladder, settings):
    challenge = await ops.challenges.create_challenge("p10", "p9", settings)

    resolution = await ops.challenges.decline(challenge.id, "p9", settings)

    assert resolution.challenge.status == ChallengeStatus.FORFEITED
    assert resolution.completion.new_winner_rank == 9
    assert resolution.completion.cooldown_until is None
    assert await ranks_of(ops, "p10", "p9") == [9, 10]
    assert not await ops.players.is_on_cooldown("p10")
    assert not await ops.players.is_on_cooldown("p9")


async def test_only_defender_can_decline(ops, ladder, settings):
    challenge = await ops.challenges.create_challenge("p10", "p9", settings)
    with pytest.raises(NotAuthorizedError):
        await ops.challenges.decline(challenge.id, "p10", settings)
    assert (await ops.challenges.get_challenge(challenge.id)).status == ChallengeStatus.PENDING


async def test_cancel_leaves_ranks_alone(ops, ladder, settings):
    challenge = await accepted_challenge(ops, settings)

    cancelled = await ops.challenges.cancel(challenge.id, "admin")

    assert cancelled.status == ChallengeStatus.CANCELLED
    assert await ranks_of(ops, "p10", "p9") == [10, 9]
    assert await ops.challenges.get_active_for_player("p10") is None
    with pytest.raises(StateConflictError):
        await ops.challenges.cancel(challenge.id, "admin")


async def test_void_requires_match_in_progress(ops, ladder, settings):
    challenge = await ops.challenges.create_challenge("p10", "p9", settings)
    with pytest.raises(StateConflictError):
        await ops.challenges.void(challenge.id, "admin")

    await ops.challenges.accept(challenge.id, "p9")
    voided = await ops.challenges.void(challenge.id, "admin")
    assert voided.status == ChallengeStatus.VOIDED
    assert not await ops.players.is_on_cooldown("p10")


async def test_unranked_challenge(ops, settings):
    challenge = await ops.challenges.create_unranked_challenge("u1", "u2", settings)
    assert challenge.defender_rank == 0
    assert challenge.is_unranked_match


async def test_unranked_challenge_guards(ops, ladder, settings):
    with pytest.raises(LadderValidationError):
        await ops.challenges.create_unranked_challenge("p10", "u2", settings)
    with pytest.raises(LadderValidationError):
        await ops.challenges.create_unranked_challenge("u1", "p3", settings)
    with pytest.raises(LadderValidationError):
        await ops.challenges.create_unranked_challenge("u1", "bot", settings, defender_is_bot=True)


async def test_presentation_refs_are_stored(ops, ladder, settings):
    challenge = await ops.challenges.create_challenge("p10", "p9", settings)
    await ops.challenges.set_presentation_refs(challenge.id, message_ref=111, thread_ref=222)

    stored = await ops.challenges.get_challenge(challenge.id)
    assert (stored.message_ref, stored.channel_ref, stored.thread_ref) == ("111", None, "222")
