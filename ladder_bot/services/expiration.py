"""
Expiration and reminder sweeps.

The housekeeping cog calls these on a fixed schedule. Each sweep finds
records that crossed a deadline, applies the domain transition in its
own transaction and then hands the record to the reminder sink. A sink
failure is logged and never undoes the committed transition; a storage
failure leaves the record eligible for the next tick.
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from ladder_bot.operations.challenge_operations import ChallengeOperations, ChallengeResolution
from ladder_bot.operations.result_operations import ResultOperations
from ladder_bot.services.configuration import LadderSettings
from ladder_bot.services.notifications import ReminderSink
from ladder_bot.utils.logger import setup_logger

logger = setup_logger(__name__)

SettingsProvider = Callable[[], LadderSettings]


@dataclass
class ReminderSweep:
    """Counts from one reminder pass"""
    score_reminders: int = 0
    confirm_reminders: int = 0
    dispute_reminders: int = 0
    failures: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.score_reminders + self.confirm_reminders + self.dispute_reminders


class ExpirationService:
    """Drives time-based challenge transitions and periodic nags."""

    def __init__(self, challenges: ChallengeOperations, results: ResultOperations,
                 settings_provider: SettingsProvider, sink: Optional[ReminderSink] = None):
        self.challenges = challenges
        self.results = results
        self.settings_provider = settings_provider
        self.sink = sink

    async def _emit(self, label: str, call: Callable[[], Awaitable[None]]) -> bool:
        if self.sink is None:
            return True
        try:
            await call()
            return True
        except Exception as e:
            logger.warning(f"Reminder sink failed for {label}: {e}", exc_info=True)
            return False

    async def process_expired_challenges(self) -> List[ChallengeResolution]:
        """Expire overdue pending challenges as forfeit wins for the challenger."""
        settings = self.settings_provider()
        expired = []
        for challenge_id in await self.challenges.get_expired_pending_ids():
            try:
                resolution = await self.challenges.expire(challenge_id, settings)
            except Exception as e:
                logger.error(f"Failed to expire challenge {challenge_id}: {e}", exc_info=True)
                continue
            if resolution is None:
                continue
            expired.append(resolution)
            logger.info(
                f"Challenge {challenge_id} expired: {resolution.challenge.challenger_id} wins by forfeit"
            )
            await self._emit(
                f"expired challenge {challenge_id}",
                lambda c=resolution.challenge: self.sink.challenge_expired(c),
            )
        return expired

    async def send_reminders(self) -> ReminderSweep:
        """
        Run the three independent reminder categories. A record is stamped
        only after its nag went out, so a failed nag is retried next tick.
        """
        settings = self.settings_provider()
        sweep = ReminderSweep()

        for challenge in await self.challenges.get_due_score_reminders(settings):
            if await self._emit(f"score reminder {challenge.id}",
                                lambda c=challenge: self.sink.remind_score_submission(c)):
                await self.challenges.mark_reminded(challenge.id)
                sweep.score_reminders += 1
            else:
                sweep.failures.append(f"score:{challenge.id}")

        for challenge, result in await self.results.get_due_confirm_reminders(settings):
            if await self._emit(f"confirm reminder {result.id}",
                                lambda c=challenge, r=result: self.sink.remind_confirmation(c, r)):
                await self.results.mark_reminded(result.id)
                sweep.confirm_reminders += 1
            else:
                sweep.failures.append(f"confirm:{result.id}")

        for challenge in await self.challenges.get_due_dispute_reminders(settings):
            if await self._emit(f"dispute reminder {challenge.id}",
                                lambda c=challenge: self.sink.remind_dispute(c)):
                await self.challenges.mark_reminded(challenge.id)
                sweep.dispute_reminders += 1
            else:
                sweep.failures.append(f"dispute:{challenge.id}")

        if sweep.total:
            logger.info(
                f"Reminders sent: {sweep.score_reminders} score, "
                f"{sweep.confirm_reminders} confirm, {sweep.dispute_reminders} dispute"
            )
        return sweep
