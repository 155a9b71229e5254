"""Score corrections on completed matches."""
import pytest

from conftest import accepted_challenge, play_match, ranks_of
from ladder_bot.database.models import CorrectionStatus
from ladder_bot.utils.ladder_exceptions import (
    CorrectionNotFoundError, NotAuthorizedError, StateConflictError
)
from ladder_bot.utils.scores import parse_match


@pytest.fixture
async def completed(ops, ladder, settings):
    challenge = await accepted_challenge(ops, settings)
    await play_match(ops, settings, challenge)
    return challenge


async def test_request_correction(ops, completed, clock):
    correction = await ops.corrections.request(completed.id, "p9", parse_match(["10-6", "10-9"]))

    assert correction.status == CorrectionStatus.PENDING
    assert correction.requested_by == "p9"
    assert correction.new_winner_id == "p10"
    assert correction.new_scores == [[10, 6], [10, 9]]
    assert correction.created_at == clock.now
    assert (await ops.challenges.get_challenge(completed.id)).pending_correction_id == correction.id


async def test_one_pending_correction_per_match(ops, completed):
    await ops.corrections.request(completed.id, "p9", parse_match(["10-6", "10-9"]))
    with pytest.raises(StateConflictError):
        await ops.corrections.request(completed.id, "p10", parse_match(["10-6", "10-7"]))


async def test_only_players_request(ops, completed):
    with pytest.raises(NotAuthorizedError):
        await ops.corrections.request(completed.id, "p1", parse_match(["10-6", "10-9"]))


async def test_match_must_be_completed(ops, ladder, settings):
    challenge = await accepted_challenge(ops, settings)
    with pytest.raises(StateConflictError):
        await ops.corrections.request(challenge.id, "p10", parse_match(["10-6", "10-9"]))


async def test_other_player_approves(ops, completed):
    correction = await ops.corrections.request(completed.id, "p9", parse_match(["10-6", "10-9"]))

    with pytest.raises(NotAuthorizedError):
        await ops.corrections.approve(correction.id, "p9")
    with pytest.raises(NotAuthorizedError):
        await ops.corrections.approve(correction.id, "p2")

    approved = await ops.corrections.approve(correction.id, "p10")

    assert approved.status == CorrectionStatus.APPROVED
    assert approved.approved_by == "p10"
    assert approved.resolved_at is not None
    assert (await ops.challenges.get_challenge(completed.id)).pending_correction_id is None
    # Approval records the line only
    assert await ranks_of(ops, "p10", "p9") == [9, 10]

    with pytest.raises(StateConflictError):
        await ops.corrections.reject(correction.id, "p10")


async def test_reject_frees_the_match_for_a_new_request(ops, completed):
    first = await ops.corrections.request(completed.id, "p9", parse_match(["10-6", "10-9"]))
    rejected = await ops.corrections.reject(first.id, "p10")
    assert rejected.status == CorrectionStatus.REJECTED

    second = await ops.corrections.request(completed.id, "p10", parse_match(["10-2", "10-2"]))
    assert [c.id for c in await ops.corrections.get_for_challenge(completed.id)] == [first.id, second.id]


async def test_unknown_correction(ops):
    with pytest.raises(CorrectionNotFoundError):
        await ops.corrections.approve(12, "p10")
