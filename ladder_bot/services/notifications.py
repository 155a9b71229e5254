"""
Outbound notification interfaces.

The ladder core only knows these protocols. ui.publisher provides
the implementations; failures inside them are logged here and never
propagate into domain logic.
"""

from typing import Optional, Protocol

from ladder_bot.database.models import Challenge, MatchResult
from ladder_bot.utils.logger import setup_logger

logger = setup_logger(__name__)


class NotificationSink(Protocol):
    async def send(self, player_id: str, message: str) -> None:
        ...


class ReminderSink(Protocol):
    """Receives scheduler events that need a visible post."""

    async def challenge_expired(self, challenge: Challenge) -> None:
        ...

    async def remind_score_submission(self, challenge: Challenge) -> None:
        ...

    async def remind_confirmation(self, challenge: Challenge, result: MatchResult) -> None:
        ...

    async def remind_dispute(self, challenge: Challenge) -> None:
        ...


class Notifier:
    """Best-effort direct messages."""

    def __init__(self, sink: Optional[NotificationSink] = None):
        self.sink = sink

    async def notify(self, player_id: str, message: str) -> bool:
        if self.sink is None:
            return False
        try:
            await self.sink.send(str(player_id), message)
            return True
        except Exception as e:
            logger.warning(f"Could not notify {player_id}: {e}")
            return False
