"""
Admin permission checks shared by slash commands and persistent buttons.
"""

import discord

from ladder_bot.config import Config


def is_ladder_admin(user: discord.abc.User) -> bool:
    """Owner, guild administrators and holders of ADMIN_ROLE_ID."""
    if user.id == Config.OWNER_DISCORD_ID:
        return True
    if not isinstance(user, discord.Member):
        return False
    if user.guild_permissions.administrator:
        return True
    return Config.ADMIN_ROLE_ID is not None and any(role.id == Config.ADMIN_ROLE_ID for role in user.roles)


def ladder_admin_check(interaction: discord.Interaction) -> bool:
    return is_ladder_admin(interaction.user)
