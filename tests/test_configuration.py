"""Runtime settings snapshot and its bot_state overrides."""
from datetime import timedelta

import pytest

from ladder_bot.config import Config
from ladder_bot.services.configuration import COOLDOWN_KEY, ConfigurationService, LadderSettings
from ladder_bot.utils.ladder_exceptions import LadderValidationError


def test_settings_durations():
    settings = LadderSettings(cooldown_hours=1.5, response_window_hours=24, reminder_interval_minutes=45)
    assert settings.cooldown == timedelta(minutes=90)
    assert settings.response_window == timedelta(days=1)
    assert settings.reminder_interval == timedelta(minutes=45)


def test_overrides_return_a_new_snapshot():
    base = LadderSettings(cooldown_hours=8)
    changed = base.with_overrides(cooldown_hours=2)
    assert (base.cooldown_hours, changed.cooldown_hours) == (8, 2)


async def test_load_without_overrides_uses_environment(db):
    service = ConfigurationService(db)
    settings = await service.load()
    assert settings.cooldown_hours == Config.COOLDOWN_HOURS
    assert settings.response_window_hours == Config.RESPONSE_WINDOW_HOURS
    assert set(settings.channels) == set(Config.CHANNEL_KEYS)


async def test_cooldown_override_persists(db):
    service = ConfigurationService(db)
    settings = await service.set_cooldown_hours(4, "admin")
    assert settings.cooldown_hours == 4.0
    assert service.settings is settings

    reloaded = await ConfigurationService(db).load()
    assert reloaded.cooldown_hours == 4.0


async def test_zero_cooldown_is_allowed(db):
    settings = await ConfigurationService(db).set_cooldown_hours(0, "admin")
    assert settings.cooldown == timedelta(0)


@pytest.mark.parametrize("hours", [-1, 168.5])
async def test_cooldown_range(db, hours):
    with pytest.raises(LadderValidationError):
        await ConfigurationService(db).set_cooldown_hours(hours, "admin")


@pytest.mark.parametrize("hours", [0, 0.5, 200])
async def test_response_window_range(db, hours):
    with pytest.raises(LadderValidationError):
        await ConfigurationService(db).set_response_window_hours(hours, "admin")


async def test_response_window_override(db):
    settings = await ConfigurationService(db).set_response_window_hours(24, "admin")
    assert settings.response_window == timedelta(hours=24)


async def test_channel_override(db):
    service = ConfigurationService(db)
    settings = await service.set_channel("logs", 123456789, "admin")
    assert settings.channel("logs") == 123456789

    with pytest.raises(LadderValidationError):
        await service.set_channel("memes", 1, "admin")


async def test_corrupt_stored_value_falls_back(db):
    await db.set_state(COOLDOWN_KEY, "eight")
    settings = await ConfigurationService(db).load()
    assert settings.cooldown_hours == Config.COOLDOWN_HOURS


async def test_bot_state_round_trip(db):
    assert await db.get_state("leaderboard_message_id") is None
    await db.set_state("leaderboard_message_id", 42)
    await db.set_state("leaderboard_message_id", 43)
    assert await db.get_state("leaderboard_message_id") == "43"
    await db.delete_state("leaderboard_message_id")
    assert await db.get_state("leaderboard_message_id") is None
