"""Spectator predictions."""
import pytest

from conftest import accepted_challenge, play_match
from ladder_bot.utils.ladder_exceptions import LadderValidationError, NotAuthorizedError, StateConflictError


@pytest.fixture
async def match(ops, ladder, settings):
    return await accepted_challenge(ops, settings)


async def test_predictions_only_while_in_progress(ops, ladder, settings):
    challenge = await ops.challenges.create_challenge("p10", "p9", settings)
    with pytest.raises(StateConflictError):
        await ops.predictions.predict(challenge.id, "fan", "p10")


async def test_players_cannot_predict_their_own_match(ops, match):
    with pytest.raises(NotAuthorizedError):
        await ops.predictions.predict(match.id, "p9", "p9")


async def test_pick_must_be_a_participant(ops, match):
    with pytest.raises(LadderValidationError):
        await ops.predictions.predict(match.id, "fan", "p1")


async def test_changing_a_pick_overwrites_it(ops, match):
    await ops.predictions.predict(match.id, "fan", "p10")
    await ops.predictions.predict(match.id, "fan", "p9")
    await ops.predictions.predict(match.id, "other", "p9")

    assert await ops.predictions.get_prediction_counts(match.id) == {"p9": 2}
    assert (await ops.predictions.get_user_prediction(match.id, "fan")).predicted_winner_id == "p9"
    assert len(await ops.predictions.get_for_challenge(match.id)) == 2


async def test_predictions_resolve_on_completion(ops, match, settings):
    await ops.predictions.predict(match.id, "right", "p10")
    await ops.predictions.predict(match.id, "wrong", "p9")

    await play_match(ops, settings, match)

    right = await ops.predictions.get_user_stats("right")
    wrong = await ops.predictions.get_user_stats("wrong")
    assert (right.total, right.correct, right.accuracy) == (1, 1, 1.0)
    assert (wrong.total, wrong.correct, wrong.accuracy) == (1, 0, 0.0)


async def test_unresolved_predictions_do_not_count(ops, match):
    await ops.predictions.predict(match.id, "fan", "p10")
    stats = await ops.predictions.get_user_stats("fan")
    assert stats.total == 0
    assert stats.accuracy == 0.0
