"""
Centralized error embeds for consistent error replies across the ladder bot.
"""

import discord

from ladder_bot.utils.ladder_exceptions import (
    LadderError, LadderNotFoundError, LadderValidationError, NotAuthorizedError
)


class ErrorEmbeds:
    """Centralized error embed factory."""

    @staticmethod
    def from_ladder_error(error: LadderError) -> discord.Embed:
        """Map a domain error to a short, specific reply."""
        if isinstance(error, LadderNotFoundError):
            title, color = "No Longer Available", discord.Color.light_grey()
        elif isinstance(error, LadderValidationError):
            title, color = "Invalid Input", discord.Color.red()
        elif isinstance(error, NotAuthorizedError):
            title, color = "Not Allowed", discord.Color.red()
        else:
            title, color = "Can't Do That Right Now", discord.Color.orange()
        return discord.Embed(title=title, description=error.user_message, color=color)

    @staticmethod
    def generic_failure() -> discord.Embed:
        """Create embed for unexpected failures."""
        return discord.Embed(
            title="Something Went Wrong",
            description="An unexpected error occurred. Please try again or contact an administrator.",
            color=discord.Color.red()
        )

    @staticmethod
    def permission_denied() -> discord.Embed:
        """Create embed for admin-only actions."""
        embed = discord.Embed(
            title="Administrative Privileges Required",
            description="This action is restricted to ladder administrators.",
            color=discord.Color.red()
        )
        embed.set_footer(text="Contact the bot owner if you believe you should have access.")
        return embed

    @staticmethod
    def no_match_history() -> discord.Embed:
        return discord.Embed(
            title="No Match History",
            description="No matches played yet.",
            color=discord.Color.orange()
        )
