"""
Admin Commands

Slash commands for ladder administrators: rank overrides, forced results,
challenge cancel/void, dispute resolution and runtime settings. Every
command is restricted to the owner, guild administrators and the
optional ADMIN_ROLE_ID role.
"""

from typing import Awaitable, Callable, Optional

import discord
from discord import app_commands
from discord.ext import commands

from ladder_bot.config import Config
from ladder_bot.database.models import ChallengeStatus
from ladder_bot.operations.ladder import LadderOperations
from ladder_bot.ui.publisher import DiscordPublisher
from ladder_bot.ui.views import challenge_panel_view
from ladder_bot.utils.clock import discord_timestamp
from ladder_bot.utils.embeds import build_challenge_panel_embed
from ladder_bot.utils.error_embeds import ErrorEmbeds
from ladder_bot.utils.ladder_exceptions import LadderError
from ladder_bot.utils.logger import setup_logger
from ladder_bot.utils.permissions import ladder_admin_check
from ladder_bot.utils.scores import parse_match

logger = setup_logger(__name__)

SET_SCORE_CHOICES = [
    app_commands.Choice(name="2-0", value=0),
    app_commands.Choice(name="2-1", value=1),
]
CHANNEL_CHOICES = [app_commands.Choice(name=key, value=key) for key in Config.CHANNEL_KEYS]


class AdminCog(commands.Cog):
    """Administrative overrides for the ladder"""

    def __init__(self, bot):
        self.bot = bot
        self.ops: LadderOperations = bot.ops
        self.publisher: DiscordPublisher = bot.publisher
        self.logger = logger

    @property
    def settings(self):
        return self.bot.config_service.settings

    async def _run(self, interaction: discord.Interaction, label: str,
                   action: Callable[[], Awaitable[str]]):
        """Defer, run an admin action and answer with its summary or the reason it was rejected."""
        await interaction.response.defer(ephemeral=True)
        try:
            summary = await action()
            await interaction.followup.send(summary, ephemeral=True)
        except LadderError as e:
            self.logger.info(f"Admin {interaction.user.id} {label} rejected: {e.message}")
            await interaction.followup.send(embed=ErrorEmbeds.from_ladder_error(e), ephemeral=True)
        except Exception as e:
            self.logger.error(f"Admin {interaction.user.id} {label} failed: {e}", exc_info=True)
            await interaction.followup.send(embed=ErrorEmbeds.generic_failure(), ephemeral=True)

    # Ranks and cooldowns

    @app_commands.command(name="admin-set-rank", description="Place a player at a rank")
    @app_commands.describe(member="Player to place", rank="Target rank (1-10)")
    @app_commands.check(ladder_admin_check)
    async def set_rank(self, interaction: discord.Interaction, member: discord.Member,
                       rank: app_commands.Range[int, 1, 10]):
        async def _action() -> str:
            await self.ops.admin.set_rank(str(member.id), rank, str(interaction.user.id))
            await self.publisher.log(content=f"<@{interaction.user.id}> placed {member.mention} at **#{rank}**.")
            return f"{member.mention} is now rank #{rank}."
        await self._run(interaction, "set-rank", _action)

    @app_commands.command(name="admin-remove-rank", description="Remove a player from the ladder")
    @app_commands.describe(member="Player to remove; everyone below moves up one")
    @app_commands.check(ladder_admin_check)
    async def remove_rank(self, interaction: discord.Interaction, member: discord.Member):
        async def _action() -> str:
            removed = await self.ops.admin.remove_rank(str(member.id), str(interaction.user.id))
            await self.publisher.log(
                content=f"<@{interaction.user.id}> removed {member.mention} from **#{removed}**. "
                        "Players below moved up."
            )
            return f"{member.mention} removed from rank #{removed}."
        await self._run(interaction, "remove-rank", _action)

    @app_commands.command(name="admin-clear-cooldown", description="Clear a player's cooldown")
    @app_commands.check(ladder_admin_check)
    async def clear_cooldown(self, interaction: discord.Interaction, member: discord.Member):
        async def _action() -> str:
            await self.ops.admin.clear_cooldown(str(member.id), str(interaction.user.id))
            return f"Cooldown cleared for {member.mention}."
        await self._run(interaction, "clear-cooldown", _action)

    # Results

    @app_commands.command(name="admin-force-result", description="Record a result between two players")
    @app_commands.describe(winner="Winning player", loser="Losing player", score="Set score")
    @app_commands.choices(score=SET_SCORE_CHOICES)
    @app_commands.check(ladder_admin_check)
    async def force_result(self, interaction: discord.Interaction, winner: discord.Member,
                           loser: discord.Member, score: app_commands.Choice[int]):
        async def _action() -> str:
            completion = await self.ops.admin.force_result(
                str(winner.id), str(loser.id), score.value, str(interaction.user.id), self.settings
            )
            await self.publisher.announce_completion(
                None, completion, "Result Recorded by Admin", f"2-{score.value} (admin <@{interaction.user.id}>)"
            )
            return f"Recorded {winner.mention} def. {loser.mention} 2-{score.value}."
        await self._run(interaction, "force-result", _action)

    @app_commands.command(name="admin-force-challenge", description="Complete an in-progress challenge")
    @app_commands.describe(challenge_id="Challenge number", winner="Winning player", score="Set score")
    @app_commands.choices(score=SET_SCORE_CHOICES)
    @app_commands.check(ladder_admin_check)
    async def force_challenge(self, interaction: discord.Interaction, challenge_id: int,
                              winner: discord.Member, score: app_commands.Choice[int]):
        async def _action() -> str:
            resolution = await self.ops.admin.force_challenge_result(
                challenge_id, str(winner.id), score.value, str(interaction.user.id), self.settings
            )
            await self.publisher.announce_completion(
                resolution.challenge, resolution.completion, "Result Recorded by Admin",
                f"2-{score.value} (admin <@{interaction.user.id}>)"
            )
            await self.publisher.close_thread(resolution.challenge, "**Result recorded by an admin.**")
            return f"Challenge #{challenge_id} completed: {winner.mention} wins 2-{score.value}."
        await self._run(interaction, "force-challenge", _action)

    @app_commands.command(name="admin-resolve-dispute", description="Settle a disputed match with final scores")
    @app_commands.describe(
        challenge_id="Challenge number",
        set1="Set 1, challenger score first (e.g. 10-7)",
        set2="Set 2",
        set3="Set 3 if played",
    )
    @app_commands.check(ladder_admin_check)
    async def resolve_dispute(self, interaction: discord.Interaction, challenge_id: int,
                              set1: str, set2: str, set3: Optional[str] = None):
        async def _action() -> str:
            score = parse_match([set1, set2, set3], submitter_is_challenger=True)
            resolution = await self.ops.admin.resolve_dispute(
                challenge_id, score, str(interaction.user.id), self.settings
            )
            await self.publisher.announce_completion(
                resolution.challenge, resolution.completion, "Dispute Resolved",
                f"{score.describe()} (admin <@{interaction.user.id}>)"
            )
            await self.publisher.close_thread(resolution.challenge, "**Dispute resolved.**")
            return f"Challenge #{challenge_id} resolved: {score.describe()}."
        await self._run(interaction, "resolve-dispute", _action)

    @app_commands.command(name="admin-cancel", description="Cancel a pending or accepted challenge")
    @app_commands.check(ladder_admin_check)
    async def cancel(self, interaction: discord.Interaction, challenge_id: int):
        async def _action() -> str:
            resolution = await self.ops.admin.cancel_challenge(challenge_id, str(interaction.user.id))
            await self.publisher.edit_request_message(
                resolution.challenge, content="**Challenge Cancelled** by an admin.", embed=None, view=None
            )
            await self.publisher.log(content=f"Challenge #{challenge_id} cancelled by <@{interaction.user.id}>.")
            await self.publisher.close_thread(resolution.challenge, "**Challenge cancelled.**")
            return f"Challenge #{challenge_id} cancelled."
        await self._run(interaction, "cancel", _action)

    @app_commands.command(name="admin-void", description="Void an in-progress or disputed match")
    @app_commands.check(ladder_admin_check)
    async def void(self, interaction: discord.Interaction, challenge_id: int):
        async def _action() -> str:
            resolution = await self.ops.admin.void_challenge(challenge_id, str(interaction.user.id))
            await self.publisher.edit_request_message(
                resolution.challenge, content="**Match Voided** by an admin.", embed=None, view=None
            )
            await self.publisher.log(content=f"Challenge #{challenge_id} voided by <@{interaction.user.id}>.")
            await self.publisher.close_thread(resolution.challenge, "**Match voided.**")
            return f"Challenge #{challenge_id} voided."
        await self._run(interaction, "void", _action)

    @app_commands.command(name="admin-pending", description="List active and disputed challenges")
    @app_commands.check(ladder_admin_check)
    async def pending(self, interaction: discord.Interaction):
        async def _action() -> str:
            challenges = await self.ops.challenges.get_challenges_by_status(
                [ChallengeStatus.PENDING, ChallengeStatus.ACCEPTED, ChallengeStatus.DISPUTED]
            )
            if not challenges:
                return "No open challenges."
            lines = []
            for challenge in challenges:
                stake = "unranked" if challenge.is_unranked_match else f"#{challenge.defender_rank}"
                line = (f"**#{challenge.id}** {challenge.status.value}: <@{challenge.challenger_id}> → "
                        f"<@{challenge.defender_id}> ({stake})")
                if challenge.status == ChallengeStatus.PENDING:
                    line += f", expires {discord_timestamp(challenge.expires_at)}"
                lines.append(line)
            return '\n'.join(lines)[:2000]
        await self._run(interaction, "pending", _action)

    # Settings

    @app_commands.command(name="admin-set-cooldown", description="Set the post-match cooldown in hours")
    @app_commands.check(ladder_admin_check)
    async def set_cooldown(self, interaction: discord.Interaction, hours: float):
        async def _action() -> str:
            settings = await self.bot.config_service.set_cooldown_hours(hours, str(interaction.user.id))
            return f"Cooldown set to {settings.cooldown_hours:g} hours."
        await self._run(interaction, "set-cooldown", _action)

    @app_commands.command(name="admin-set-response-window", description="Set how long defenders have to respond")
    @app_commands.check(ladder_admin_check)
    async def set_response_window(self, interaction: discord.Interaction, hours: float):
        async def _action() -> str:
            settings = await self.bot.config_service.set_response_window_hours(hours, str(interaction.user.id))
            return f"Response window set to {settings.response_window_hours:g} hours."
        await self._run(interaction, "set-response-window", _action)

    @app_commands.command(name="admin-set-channel", description="Choose the channel used for a ladder feature")
    @app_commands.choices(kind=CHANNEL_CHOICES)
    @app_commands.check(ladder_admin_check)
    async def set_channel(self, interaction: discord.Interaction, kind: app_commands.Choice[str],
                          channel: discord.TextChannel):
        async def _action() -> str:
            await self.bot.config_service.set_channel(kind.value, channel.id, str(interaction.user.id))
            return f"{kind.value} channel set to {channel.mention}."
        await self._run(interaction, "set-channel", _action)

    # Presentation

    @app_commands.command(name="admin-refresh-leaderboard", description="Re-render the leaderboard message")
    @app_commands.check(ladder_admin_check)
    async def refresh_leaderboard(self, interaction: discord.Interaction):
        async def _action() -> str:
            refreshed = await self.ops.admin.refresh_leaderboard(str(interaction.user.id))
            return "Leaderboard refreshed." if refreshed else "Leaderboard refresh failed. Check the logs."
        await self._run(interaction, "refresh-leaderboard", _action)

    @app_commands.command(name="admin-setup", description="Post the challenge panel and leaderboard")
    @app_commands.check(ladder_admin_check)
    async def setup_panel(self, interaction: discord.Interaction):
        async def _action() -> str:
            message = await self.publisher.post(
                'challenge_panel',
                embed=build_challenge_panel_embed(self.settings),
                view=challenge_panel_view(),
            )
            if message is None:
                return "Could not post the challenge panel. Set it with /admin-set-channel first."
            await self.ops.leaderboard.refresh()
            return f"Challenge panel posted in {message.channel.mention}."
        await self._run(interaction, "setup", _action)


async def setup(bot):
    await bot.add_cog(AdminCog(bot))
