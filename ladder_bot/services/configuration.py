"""
Runtime ladder settings.

Settings are read from the bot_state table with environment fallbacks
into an immutable LadderSettings snapshot. Admin setters persist the new
value and then rebuild the snapshot; operations receive the snapshot as
an argument and never read ambient configuration themselves.
"""

from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Dict, Optional, Tuple

from ladder_bot.config import Config
from ladder_bot.database.database import Database
from ladder_bot.utils.ladder_exceptions import LadderValidationError
from ladder_bot.utils.logger import setup_logger

logger = setup_logger(__name__)

COOLDOWN_KEY = 'setting_cooldown_hours'
RESPONSE_WINDOW_KEY = 'setting_response_window_hours'
CHANNEL_KEY_PREFIX = 'channel_'

MAX_SETTING_HOURS = 168


@dataclass(frozen=True)
class LadderSettings:
    """Configuration snapshot passed through ladder operations"""
    cooldown_hours: float = Config.COOLDOWN_HOURS
    response_window_hours: float = Config.RESPONSE_WINDOW_HOURS
    reminder_interval_minutes: int = Config.REMINDER_INTERVAL_MINUTES
    max_rank: int = Config.MAX_RANK
    open_challenge_ranks: Tuple[int, ...] = Config.OPEN_CHALLENGE_RANKS
    channels: Dict[str, Optional[int]] = field(default_factory=dict)

    @property
    def cooldown(self) -> timedelta:
        return timedelta(hours=self.cooldown_hours)

    @property
    def response_window(self) -> timedelta:
        return timedelta(hours=self.response_window_hours)

    @property
    def reminder_interval(self) -> timedelta:
        return timedelta(minutes=self.reminder_interval_minutes)

    def channel(self, key: str) -> Optional[int]:
        return self.channels.get(key)

    def with_overrides(self, **changes) -> 'LadderSettings':
        return replace(self, **changes)


def _parse_float(raw: Optional[str], default: float, key: str) -> float:
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid value {raw!r} for '{key}', using default {default}")
        return default


def _parse_channel(raw: Optional[str]) -> Optional[int]:
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


class ConfigurationService:
    """Owns the current LadderSettings snapshot and its bot_state overrides."""

    def __init__(self, db: Database):
        self.db = db
        self._settings = LadderSettings(channels=self._env_channels())

    @staticmethod
    def _env_channels() -> Dict[str, Optional[int]]:
        return {key: Config.get_channel_id(key) for key in Config.CHANNEL_KEYS}

    @property
    def settings(self) -> LadderSettings:
        return self._settings

    async def load(self) -> LadderSettings:
        """Build a fresh snapshot from bot_state, falling back to environment values."""
        async with self.db.get_session() as session:
            cooldown_raw = await self.db.get_state(COOLDOWN_KEY, session=session)
            window_raw = await self.db.get_state(RESPONSE_WINDOW_KEY, session=session)
            channels = {}
            for key in Config.CHANNEL_KEYS:
                stored = _parse_channel(await self.db.get_state(f'{CHANNEL_KEY_PREFIX}{key}', session=session))
                channels[key] = stored if stored is not None else Config.get_channel_id(key)

        self._settings = LadderSettings(
            cooldown_hours=_parse_float(cooldown_raw, Config.COOLDOWN_HOURS, COOLDOWN_KEY),
            response_window_hours=_parse_float(window_raw, Config.RESPONSE_WINDOW_HOURS, RESPONSE_WINDOW_KEY),
            channels=channels,
        )
        logger.info(
            f"Loaded ladder settings: cooldown={self._settings.cooldown_hours}h, "
            f"response window={self._settings.response_window_hours}h"
        )
        return self._settings

    async def invalidate(self) -> LadderSettings:
        """Drop the current snapshot and rebuild it from storage."""
        return await self.load()

    async def set_cooldown_hours(self, hours: float, admin_id: str) -> LadderSettings:
        if hours < 0 or hours > MAX_SETTING_HOURS:
            raise LadderValidationError(
                f"Cooldown hours out of range: {hours}",
                f"Cooldown must be between 0 and {MAX_SETTING_HOURS} hours."
            )
        await self.db.set_state(COOLDOWN_KEY, str(hours))
        logger.info(f"Admin {admin_id} set cooldown to {hours}h")
        return await self.invalidate()

    async def set_response_window_hours(self, hours: float, admin_id: str) -> LadderSettings:
        if hours < 1 or hours > MAX_SETTING_HOURS:
            raise LadderValidationError(
                f"Response window hours out of range: {hours}",
                f"Response window must be between 1 and {MAX_SETTING_HOURS} hours."
            )
        await self.db.set_state(RESPONSE_WINDOW_KEY, str(hours))
        logger.info(f"Admin {admin_id} set response window to {hours}h")
        return await self.invalidate()

    async def set_channel(self, key: str, channel_id: int, admin_id: str) -> LadderSettings:
        if key not in Config.CHANNEL_KEYS:
            raise LadderValidationError(f"Unknown channel key {key}", f"Unknown channel type `{key}`.")
        await self.db.set_state(f'{CHANNEL_KEY_PREFIX}{key}', str(channel_id))
        logger.info(f"Admin {admin_id} set {key} channel to {channel_id}")
        return await self.invalidate()
