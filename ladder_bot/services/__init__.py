"""
Services package for the ladder bot.

Settings snapshot, leaderboard refresh, notification interfaces and the
expiry/reminder sweeps. Services sit above the operations layer and are
driven by the cogs.
"""
