"""Result submission, confirmation and dispute."""
from datetime import timedelta

import pytest

from conftest import accepted_challenge, play_match, ranks_of
from ladder_bot.database.models import ChallengeStatus
from ladder_bot.utils.ladder_exceptions import NotAuthorizedError, ResultNotFoundError, StateConflictError
from ladder_bot.utils.scores import parse_match


@pytest.fixture
async def match(ops, ladder, settings):
    return await accepted_challenge(ops, settings)


async def test_only_challenger_submits(ops, match):
    score = parse_match(["10-6", "10-8"])
    with pytest.raises(NotAuthorizedError):
        await ops.results.submit(match.id, "p9", score)
    with pytest.raises(NotAuthorizedError):
        await ops.results.submit(match.id, "p1", score)


async def test_submit_records_pending_result(ops, match):
    result = await ops.results.submit(match.id, "p10", parse_match(["10-6", "10-8"]))

    assert result.winner_id == "p10"
    assert result.loser_id == "p9"
    assert (result.sets_winner, result.sets_loser) == (2, 0)
    assert result.scores == [[10, 6], [10, 8]]
    challenge = await ops.challenges.get_challenge(match.id)
    assert challenge.pending_result_id == result.id
    assert (await ops.results.get_pending_for_challenge(match.id)).id == result.id


async def test_second_submission_rejected(ops, match):
    await ops.results.submit(match.id, "p10", parse_match(["10-6", "10-8"]))
    with pytest.raises(StateConflictError):
        await ops.results.submit(match.id, "p10", parse_match(["10-2", "10-3"]))


async def test_submit_requires_accepted_match(ops, ladder, settings):
    challenge = await ops.challenges.create_challenge("p10", "p9", settings)
    with pytest.raises(StateConflictError):
        await ops.results.submit(challenge.id, "p10", parse_match(["10-6", "10-8"]))


async def test_confirmed_upset_swaps_ranks(ops, match, settings, clock):
    confirmed = await play_match(ops, settings, match)

    assert confirmed.challenge.status == ChallengeStatus.COMPLETED
    assert confirmed.completion.winner_is_challenger
    assert confirmed.completion.ranks_changed
    assert await ranks_of(ops, "p10", "p9") == [9, 10]

    expected_cooldown = clock.now + timedelta(hours=8)
    for player_id in ("p10", "p9"):
        assert (await ops.players.get_player(player_id)).cooldown_until == expected_cooldown

    stored = await ops.challenges.get_challenge(match.id)
    assert stored.pending_result_id is None
    assert stored.completion_applied
    assert stored.completed_at == clock.now


async def test_defender_holds_rank(ops, match, settings):
    confirmed = await play_match(ops, settings, match, sets=("3-10", "4-10"))

    assert not confirmed.completion.winner_is_challenger
    assert not confirmed.completion.ranks_changed
    assert await ranks_of(ops, "p10", "p9") == [10, 9]
    defender = await ops.players.get_player("p9")
    assert defender.title_defenses == 1
    assert defender.wins == 1
    assert defender.perfect_matches == 1
    assert defender.comeback_wins == 0
    assert (defender.total_points, defender.total_points_conceded) == (20, 7)
    challenger = await ops.players.get_player("p10")
    assert (challenger.total_points, challenger.total_points_conceded) == (7, 20)
    assert challenger.title_takes == 0
    assert await ops.players.is_on_cooldown("p10")


async def test_only_defender_confirms(ops, match, settings):
    result = await ops.results.submit(match.id, "p10", parse_match(["10-6", "10-8"]))
    with pytest.raises(NotAuthorizedError):
        await ops.results.confirm(result.id, "p10", settings)
    with pytest.raises(NotAuthorizedError):
        await ops.results.confirm(result.id, "p3", settings)


async def test_confirm_twice_rejected(ops, match, settings):
    result = await ops.results.submit(match.id, "p10", parse_match(["10-6", "10-8"]))
    await ops.results.confirm(result.id, "p9", settings)

    with pytest.raises(StateConflictError):
        await ops.results.confirm(result.id, "p9", settings)
    assert (await ops.players.get_player("p10")).wins == 1


async def test_confirm_unknown_result(ops, settings):
    with pytest.raises(ResultNotFoundError):
        await ops.results.confirm(404, "p9", settings)


async def test_dispute_sends_match_to_admins(ops, match, settings, clock):
    result = await ops.results.submit(match.id, "p10", parse_match(["10-6", "10-8"]))
    clock.advance(minutes=3)

    disputed = await ops.results.dispute(result.id, "p9")

    assert disputed.challenge.status == ChallengeStatus.DISPUTED
    assert disputed.challenge.last_reminder_at == clock.now
    assert disputed.challenge.pending_result_id is None
    assert disputed.result.disputed
    assert await ranks_of(ops, "p10", "p9") == [10, 9]

    with pytest.raises(StateConflictError):
        await ops.results.dispute(result.id, "p9")
    with pytest.raises(StateConflictError):
        await ops.results.confirm(result.id, "p9", settings)
    assert [c.id for c in await ops.challenges.get_disputed_challenges()] == [match.id]


async def test_admin_resolves_dispute(ops, match, settings):
    result = await ops.results.submit(match.id, "p10", parse_match(["10-6", "10-8"]))
    await ops.results.dispute(result.id, "p9")

    resolution = await ops.admin.resolve_dispute(match.id, parse_match(["10-8", "7-10", "10-9"]), "admin", settings)

    assert resolution.challenge.status == ChallengeStatus.COMPLETED
    assert await ranks_of(ops, "p10", "p9") == [9, 10]
    assert (await ops.players.get_player("p10")).comeback_wins == 0
    assert (await ops.results.get_latest_for_challenge(match.id)).id == result.id


async def test_confirm_refreshes_leaderboard(ops, match, settings, renderer):
    await play_match(ops, settings, match)

    assert renderer.renders
    assert renderer.renders[-1][8:] == ["p10", "p9"]
    assert ops.leaderboard.pending_refreshes == 1
