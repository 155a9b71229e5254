"""Expiry sweep and reminder sweeps."""
import pytest

from conftest import RecordingSink, accepted_challenge, ranks_of
from ladder_bot.database.models import ChallengeStatus
from ladder_bot.services.expiration import ExpirationService
from ladder_bot.utils.scores import parse_match


def make_service(ops, settings, sink):
    return ExpirationService(ops.challenges, ops.results, settings_provider=lambda: settings, sink=sink)


@pytest.fixture
def sink():
    return RecordingSink()


async def test_overdue_challenge_expires_as_forfeit(ops, ladder, settings, clock, sink):
    service = make_service(ops, settings, sink)
    challenge = await ops.challenges.create_challenge("p10", "p9", settings)

    clock.advance(hours=11, minutes=59)
    assert await service.process_expired_challenges() == []

    clock.advance(minutes=1)
    [resolution] = await service.process_expired_challenges()

    assert resolution.challenge.status == ChallengeStatus.EXPIRED
    assert await ranks_of(ops, "p10", "p9") == [9, 10]
    assert not await ops.players.is_on_cooldown("p10")
    assert sink.events == [("expired", challenge.id)]
    [entry] = await ops.history.get_recent_matches("p9")
    assert entry.was_forfeit

    assert await service.process_expired_challenges() == []


async def test_accepted_challenge_does_not_expire(ops, ladder, settings, clock, sink):
    service = make_service(ops, settings, sink)
    await accepted_challenge(ops, settings)

    clock.advance(hours=13)
    assert await service.process_expired_challenges() == []


async def test_expire_skips_challenge_answered_in_time(ops, ladder, settings, clock):
    challenge = await ops.challenges.create_challenge("p10", "p9", settings)
    clock.advance(hours=12)
    await ops.challenges.accept(challenge.id, "p9")

    assert await ops.challenges.expire(challenge.id, settings) is None
    assert await ranks_of(ops, "p10", "p9") == [10, 9]


async def test_sink_failure_keeps_the_transition(ops, ladder, settings, clock):
    service = make_service(ops, settings, RecordingSink(fail=True))
    challenge = await ops.challenges.create_challenge("p10", "p9", settings)
    clock.advance(hours=12)

    assert len(await service.process_expired_challenges()) == 1
    assert (await ops.challenges.get_challenge(challenge.id)).status == ChallengeStatus.EXPIRED


async def test_first_score_reminder_is_due_right_after_acceptance(ops, ladder, settings, clock, sink):
    service = make_service(ops, settings, sink)
    challenge = await accepted_challenge(ops, settings)

    clock.advance(minutes=5)
    sweep = await service.send_reminders()

    assert sweep.score_reminders == 1
    assert sink.events == [("score", challenge.id)]
    assert (await ops.challenges.get_challenge(challenge.id)).last_reminder_at == clock.now


async def test_score_reminders_follow_the_interval(ops, ladder, settings, clock, sink):
    service = make_service(ops, settings, sink)
    challenge = await accepted_challenge(ops, settings)

    assert (await service.send_reminders()).score_reminders == 1
    assert (await service.send_reminders()).total == 0

    clock.advance(minutes=29)
    assert (await service.send_reminders()).total == 0

    clock.advance(minutes=1)
    assert (await service.send_reminders()).score_reminders == 1
    assert sink.events == [("score", challenge.id), ("score", challenge.id)]


async def test_confirm_reminder_replaces_score_reminder(ops, ladder, settings, clock, sink):
    service = make_service(ops, settings, sink)
    challenge = await accepted_challenge(ops, settings)
    result = await ops.results.submit(challenge.id, "p10", parse_match(["10-6", "10-8"]))

    clock.advance(minutes=30)
    sweep = await service.send_reminders()

    assert (sweep.score_reminders, sweep.confirm_reminders) == (0, 1)
    assert sink.events == [("confirm", result.id)]
    assert (await ops.results.get_result(result.id)).last_reminder_at == clock.now


async def test_dispute_reminders(ops, ladder, settings, clock, sink):
    service = make_service(ops, settings, sink)
    challenge = await accepted_challenge(ops, settings)
    result = await ops.results.submit(challenge.id, "p10", parse_match(["10-6", "10-8"]))
    await ops.results.dispute(result.id, "p9")

    clock.advance(minutes=10)
    assert (await service.send_reminders()).total == 0

    clock.advance(minutes=20)
    sweep = await service.send_reminders()
    assert (sweep.dispute_reminders, sweep.confirm_reminders) == (1, 0)
    assert sink.events == [("dispute", challenge.id)]


async def test_failed_reminder_is_retried_on_the_next_sweep(ops, ladder, settings, clock, sink):
    challenge = await accepted_challenge(ops, settings)
    clock.advance(minutes=30)

    sweep = await make_service(ops, settings, RecordingSink(fail=True)).send_reminders()
    assert sweep.total == 0
    assert sweep.failures == [f"score:{challenge.id}"]
    assert (await ops.challenges.get_challenge(challenge.id)).last_reminder_at is None

    clock.advance(minutes=5)
    retry = await make_service(ops, settings, sink).send_reminders()
    assert retry.score_reminders == 1
    assert sink.events == [("score", challenge.id)]


async def test_failed_confirm_reminder_keeps_its_previous_stamp(ops, ladder, settings, clock, sink):
    challenge = await accepted_challenge(ops, settings)
    result = await ops.results.submit(challenge.id, "p10", parse_match(["10-6", "10-8"]))
    clock.advance(minutes=30)

    sweep = await make_service(ops, settings, RecordingSink(fail=True)).send_reminders()
    assert sweep.failures == [f"confirm:{result.id}"]
    assert (await ops.results.get_result(result.id)).last_reminder_at is None

    assert (await make_service(ops, settings, sink).send_reminders()).confirm_reminders == 1
