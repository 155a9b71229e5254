import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _optional_int(name: str) -> Optional[int]:
    value = os.getenv(name, '').strip()
    return int(value) if value else None


class Config:
    """Bot configuration settings"""

    # Discord settings
    DISCORD_TOKEN = os.getenv('DISCORD_TOKEN')
    DISCORD_GUILD_ID = int(os.getenv('DISCORD_GUILD_ID', 0))
    DISCORD_GUILD_IDS = os.getenv('DISCORD_GUILD_IDS', '')  # Comma-separated for multi-guild support
    OWNER_DISCORD_ID = int(os.getenv('OWNER_DISCORD_ID', 0))
    ADMIN_ROLE_ID = _optional_int('ADMIN_ROLE_ID')

    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///ladder.db')

    # Bot settings
    COMMAND_PREFIX = os.getenv('COMMAND_PREFIX', '!')
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    LOG_DIR = os.getenv('LOG_DIR', 'logs')

    # Timing defaults (overridable at runtime through bot_state)
    COOLDOWN_HOURS = float(os.getenv('COOLDOWN_HOURS', 8))
    RESPONSE_WINDOW_HOURS = float(os.getenv('RESPONSE_WINDOW_HOURS', 12))
    REMINDER_INTERVAL_MINUTES = int(os.getenv('REMINDER_INTERVAL_MINUTES', 30))

    # Ladder rules
    MAX_RANK = 10
    OPEN_CHALLENGE_RANKS = (8, 9, 10)
    SETS_TO_WIN = 2
    MAX_SETS = 3
    POINTS_TO_WIN_SET = 10

    # Elo settings
    ELO_K_FACTOR = 32
    STARTING_ELO = 1200
    ELO_FLOOR = 100

    # Channel keys, each falls back to CHANNEL_<KEY> in the environment
    CHANNEL_KEYS = ('leaderboard', 'challenge_panel', 'request', 'logs', 'admin', 'disputes')

    @classmethod
    def get_guild_ids(cls):
        """Get list of guild IDs for command syncing"""
        if cls.DISCORD_GUILD_IDS:
            try:
                return [int(guild_id.strip()) for guild_id in cls.DISCORD_GUILD_IDS.split(',') if guild_id.strip()]
            except ValueError:
                raise ValueError("DISCORD_GUILD_IDS must be comma-separated integers")
        elif cls.DISCORD_GUILD_ID:
            return [cls.DISCORD_GUILD_ID]
        else:
            return []

    @classmethod
    def get_channel_id(cls, key: str) -> Optional[int]:
        """Channel id from the environment, or None when unset"""
        return _optional_int(f'CHANNEL_{key.upper()}')

    @classmethod
    def validate(cls):
        """Validate that required configuration is present"""
        if not cls.DISCORD_TOKEN:
            raise ValueError("DISCORD_TOKEN is required")
        if not cls.OWNER_DISCORD_ID:
            raise ValueError("OWNER_DISCORD_ID is required")
        if cls.COOLDOWN_HOURS < 0:
            raise ValueError("COOLDOWN_HOURS must not be negative")
        if cls.RESPONSE_WINDOW_HOURS <= 0:
            raise ValueError("RESPONSE_WINDOW_HOURS must be positive")
