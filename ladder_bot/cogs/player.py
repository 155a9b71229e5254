"""
Player commands: profile, head-to-head, history and DM preferences.
"""

import discord
from discord import app_commands
from discord.ext import commands
from typing import Optional

from ladder_bot.operations.ladder import LadderOperations
from ladder_bot.utils.embeds import build_head_to_head_embed, build_history_embed, build_profile_embed
from ladder_bot.utils.error_embeds import ErrorEmbeds
from ladder_bot.utils.logger import setup_logger

logger = setup_logger(__name__)

HISTORY_LIMIT = 10
H2H_RECENT_LIMIT = 5


class PlayerCog(commands.Cog):
    """Read-only ladder stats for players."""

    def __init__(self, bot):
        self.bot = bot
        self.ops: LadderOperations = bot.ops

    @app_commands.command(name="profile", description="View a player's ladder profile")
    @app_commands.describe(member="The player whose profile you want to view (defaults to you)")
    @app_commands.checks.cooldown(rate=1, per=10.0, key=lambda i: i.user.id)
    async def profile(self, interaction: discord.Interaction, member: Optional[discord.Member] = None):
        await interaction.response.defer()
        target = member or interaction.user
        player_id = str(target.id)
        try:
            player = await self.ops.players.get_player(player_id)
            form = await self.ops.history.get_form_guide(player_id)
            nemesis = await self.ops.history.get_nemesis(player_id)
            victim = await self.ops.history.get_victim(player_id)
            predictions = await self.ops.predictions.get_user_stats(player_id)
            embed = build_profile_embed(
                player, target.display_name, target.display_avatar.url if target.display_avatar else None,
                form, nemesis, victim, predictions, self.ops.players.clock(),
            )
            await interaction.followup.send(embed=embed)
        except Exception as e:
            logger.error(f"Error building profile for {player_id}: {e}", exc_info=True)
            await interaction.followup.send(embed=ErrorEmbeds.generic_failure(), ephemeral=True)

    @app_commands.command(name="h2h", description="Head-to-head record between two players")
    @app_commands.describe(opponent="The other player", member="First player (defaults to you)")
    async def h2h(self, interaction: discord.Interaction, opponent: discord.Member,
                  member: Optional[discord.Member] = None):
        first = member or interaction.user
        if first.id == opponent.id:
            await interaction.response.send_message("Pick two different players.", ephemeral=True)
            return
        await interaction.response.defer()
        try:
            record = await self.ops.history.get_head_to_head(str(first.id), str(opponent.id))
            recent = await self.ops.history.get_matches_between(str(first.id), str(opponent.id), H2H_RECENT_LIMIT)
            await interaction.followup.send(
                embed=build_head_to_head_embed(str(first.id), str(opponent.id), record, recent)
            )
        except Exception as e:
            logger.error(f"Error building h2h for {first.id} vs {opponent.id}: {e}", exc_info=True)
            await interaction.followup.send(embed=ErrorEmbeds.generic_failure(), ephemeral=True)

    @app_commands.command(name="history", description="Recent ladder matches for a player")
    @app_commands.describe(member="The player whose history you want to view (defaults to you)")
    async def history(self, interaction: discord.Interaction, member: Optional[discord.Member] = None):
        target = member or interaction.user
        await interaction.response.defer()
        try:
            matches = await self.ops.history.get_recent_matches(str(target.id), HISTORY_LIMIT)
            if not matches:
                await interaction.followup.send(embed=ErrorEmbeds.no_match_history())
                return
            await interaction.followup.send(embed=build_history_embed(str(target.id), matches))
        except Exception as e:
            logger.error(f"Error loading history for {target.id}: {e}", exc_info=True)
            await interaction.followup.send(embed=ErrorEmbeds.generic_failure(), ephemeral=True)

    @app_commands.command(name="notifications", description="Turn ladder DMs on or off")
    async def notifications(self, interaction: discord.Interaction):
        enabled = await self.ops.players.toggle_dm_notifications(interaction.user.id)
        await interaction.response.send_message(
            f"DM notifications **{'enabled' if enabled else 'disabled'}**.", ephemeral=True
        )


async def setup(bot):
    await bot.add_cog(PlayerCog(bot))
