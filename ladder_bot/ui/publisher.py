"""
Discord side effects of ladder transitions.

DiscordPublisher implements the NotificationSink and ReminderSink
protocols and the leaderboard renderer. Every method here runs after the
domain transaction has committed, so failures are logged and swallowed:
the ladder state is already authoritative.
"""

from typing import List, Optional

import discord

from ladder_bot.database.models import Challenge, MatchResult, Player
from ladder_bot.operations.match_completion import CompletionResult
from ladder_bot.services.configuration import LadderSettings
from ladder_bot.services.notifications import Notifier
from ladder_bot.ui.views import dispute_view, result_confirmation_view
from ladder_bot.utils.clock import utc_now
from ladder_bot.utils.embeds import (
    build_dispute_embed, build_leaderboard_content, build_outcome_embed, build_status_embed
)
from ladder_bot.utils.logger import setup_logger

LEADERBOARD_MESSAGE_KEY = 'leaderboard_message_id'


class DiscordPublisher:
    """Posts, edits and DMs on behalf of the ladder."""

    def __init__(self, bot):
        self.bot = bot
        self.logger = setup_logger(f"{__name__}.DiscordPublisher")
        self.notifier = Notifier(self)

    @property
    def settings(self) -> LadderSettings:
        return self.bot.config_service.settings

    async def get_channel(self, key: str) -> Optional[discord.abc.Messageable]:
        channel_id = self.settings.channel(key)
        if channel_id is None:
            self.logger.warning(f"No {key} channel configured")
            return None
        return await self._resolve_channel(channel_id)

    async def _resolve_channel(self, channel_id) -> Optional[discord.abc.Messageable]:
        channel = self.bot.get_channel(int(channel_id))
        if channel is not None:
            return channel
        try:
            return await self.bot.fetch_channel(int(channel_id))
        except discord.HTTPException as e:
            self.logger.warning(f"Could not fetch channel {channel_id}: {e}")
            return None

    async def post(self, key: str, **kwargs) -> Optional[discord.Message]:
        channel = await self.get_channel(key)
        if channel is None:
            return None
        try:
            return await channel.send(**kwargs)
        except discord.HTTPException as e:
            self.logger.warning(f"Could not post to {key} channel: {e}")
            return None

    async def log(self, **kwargs) -> Optional[discord.Message]:
        return await self.post('logs', **kwargs)

    # Direct messages

    async def send(self, player_id: str, message: str) -> None:
        """NotificationSink: DM a player unless they opted out."""
        player = await self.bot.ops.players.get_player(player_id)
        if player is not None and not player.dm_notifications:
            return
        user = self.bot.get_user(int(player_id)) or await self.bot.fetch_user(int(player_id))
        await user.send(message)

    async def dm(self, player_id: str, message: str) -> bool:
        return await self.notifier.notify(player_id, message)

    # Challenge messages and threads

    async def match_channel(self, challenge: Challenge) -> Optional[discord.abc.Messageable]:
        """The challenge thread, falling back to the channel the request was posted in."""
        for ref in (challenge.thread_ref, challenge.channel_ref):
            if ref:
                channel = await self._resolve_channel(ref)
                if channel is not None:
                    return channel
        return await self.get_channel('request')

    async def post_to_match(self, challenge: Challenge, **kwargs) -> Optional[discord.Message]:
        channel = await self.match_channel(challenge)
        if channel is None:
            return None
        try:
            return await channel.send(**kwargs)
        except discord.HTTPException as e:
            self.logger.warning(f"Could not post to challenge {challenge.id}: {e}")
            return None

    async def edit_request_message(self, challenge: Challenge, **kwargs) -> bool:
        if not challenge.message_ref or not challenge.channel_ref:
            return False
        channel = await self._resolve_channel(challenge.channel_ref)
        if channel is None:
            return False
        try:
            message = await channel.fetch_message(int(challenge.message_ref))
            await message.edit(**kwargs)
            return True
        except discord.HTTPException as e:
            self.logger.warning(f"Could not edit request message for challenge {challenge.id}: {e}")
            return False

    async def close_thread(self, challenge: Challenge, farewell: str):
        if not challenge.thread_ref:
            return
        thread = await self._resolve_channel(challenge.thread_ref)
        if not isinstance(thread, discord.Thread):
            return
        try:
            await thread.send(farewell)
            await thread.edit(archived=True)
        except discord.HTTPException as e:
            self.logger.warning(f"Could not archive thread for challenge {challenge.id}: {e}")

    async def announce_completion(self, challenge: Optional[Challenge], completion: CompletionResult,
                                  title: str, detail: Optional[str] = None):
        await self.log(embed=build_outcome_embed(challenge, completion, title, detail))
        if completion.ranks_changed:
            await self.dm(
                completion.loser_id,
                f"<@{completion.winner_id}> took your spot. You are now "
                f"{'#' + str(completion.new_loser_rank) if completion.new_loser_rank else 'unranked'}."
            )

    # Leaderboard

    async def render_leaderboard(self, ladder: List[Player]):
        """LeaderboardRenderer: edit the stored leaderboard message or post a new one."""
        content = build_leaderboard_content(ladder, utc_now(), self.settings.max_rank)
        channel = await self.get_channel('leaderboard')
        if channel is None:
            return
        message_id = await self.bot.db.get_state(LEADERBOARD_MESSAGE_KEY)
        if message_id:
            try:
                message = await channel.fetch_message(int(message_id))
                await message.edit(content=content)
                return
            except discord.NotFound:
                self.logger.info("Stored leaderboard message is gone, posting a new one")
        message = await channel.send(content=content)
        await self.bot.db.set_state(LEADERBOARD_MESSAGE_KEY, str(message.id))

    # ReminderSink

    async def challenge_expired(self, challenge: Challenge) -> None:
        stake = "an unranked win" if challenge.is_unranked_match else f"Rank #{challenge.defender_rank}"
        description = (
            f"<@{challenge.defender_id}> did not respond to <@{challenge.challenger_id}> in time.\n"
            f"<@{challenge.challenger_id}> claims {stake} by forfeit.\n\n*No cooldown applied.*"
        )
        await self.log(embed=build_status_embed(challenge, "Challenge Expired", description, discord.Color.orange()))
        await self.edit_request_message(
            challenge, content=f"**Challenge Expired**\n\n{description}", embed=None, view=None
        )
        await self.close_thread(challenge, "**Challenge expired.** This thread will be archived.")
        await self.dm(challenge.defender_id, "Your challenge expired and was recorded as a forfeit.")

    async def remind_score_submission(self, challenge: Challenge) -> None:
        await self.post_to_match(
            challenge,
            content=f"<@{challenge.challenger_id}> reminder: submit the result once your match is played."
        )

    async def remind_confirmation(self, challenge: Challenge, result: MatchResult) -> None:
        await self.post_to_match(
            challenge,
            content=f"<@{challenge.defender_id}> reminder: confirm or dispute the submitted result.",
            view=result_confirmation_view(result.id),
        )

    async def remind_dispute(self, challenge: Challenge) -> None:
        result = await self.bot.ops.results.get_latest_for_challenge(challenge.id)
        await self.post(
            'disputes',
            content="Reminder: this dispute is still open.",
            embed=build_dispute_embed(challenge, result),
            view=dispute_view(challenge.id),
        )
