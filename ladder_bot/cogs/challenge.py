"""
Challenge flow

Routes every persistent ladder button to its handler. Custom ids are
parsed once into a LadderAction; the handler table below maps each
action to one coroutine. Domain rules live in the operations layer,
this cog only renders outcomes.
"""

from typing import Awaitable, Callable, Dict, List, Optional

import discord
from discord.ext import commands

from ladder_bot.operations.challenge_operations import ChallengeResolution
from ladder_bot.operations.eligibility import build_target_list
from ladder_bot.operations.ladder import LadderOperations
from ladder_bot.ui.publisher import DiscordPublisher
from ladder_bot.ui.views import (
    LadderAction, ScoreModal, TargetSelectView, UnrankedSelectView,
    challenge_request_view, completed_match_view, correction_view, dispute_view,
    match_in_progress_view, parse_custom_id, result_confirmation_view
)
from ladder_bot.utils.clock import discord_timestamp
from ladder_bot.utils.embeds import (
    build_challenge_request_embed, build_correction_embed, build_dispute_embed,
    build_match_in_progress_embed, build_score_confirmation_content
)
from ladder_bot.utils.error_embeds import ErrorEmbeds
from ladder_bot.utils.ladder_exceptions import (
    ChallengeNotFoundError, LadderError, NotAuthorizedError, StateConflictError
)
from ladder_bot.utils.logger import setup_logger
from ladder_bot.utils.permissions import is_ladder_admin
from ladder_bot.utils.scores import parse_match

logger = setup_logger(__name__)

ActionHandler = Callable[[discord.Interaction, int], Awaitable[None]]


class ChallengeCog(commands.Cog):
    """Buttons, menus and modals for challenges, results and corrections"""

    def __init__(self, bot):
        self.bot = bot
        self.ops: LadderOperations = bot.ops
        self.publisher: DiscordPublisher = bot.publisher
        self.logger = logger
        self._handlers: Dict[LadderAction, ActionHandler] = {
            LadderAction.START_CHALLENGE: self._start_challenge,
            LadderAction.REMOVE_COOLDOWN: self._remove_cooldown,
            LadderAction.TOGGLE_DMS: self._toggle_dms,
            LadderAction.ACCEPT: self._accept,
            LadderAction.DECLINE: self._decline,
            LadderAction.SUBMIT_RESULT: self._open_submit_modal,
            LadderAction.PREDICT_CHALLENGER: self._predict_challenger,
            LadderAction.PREDICT_DEFENDER: self._predict_defender,
            LadderAction.CONFIRM_RESULT: self._confirm,
            LadderAction.DISPUTE_RESULT: self._dispute,
            LadderAction.REQUEST_CORRECTION: self._open_correction_modal,
            LadderAction.APPROVE_CORRECTION: self._approve_correction,
            LadderAction.REJECT_CORRECTION: self._reject_correction,
            LadderAction.RESOLVE_DISPUTE: self._open_resolve_modal,
            LadderAction.VOID_MATCH: self._void_match,
        }

    @property
    def settings(self):
        return self.bot.config_service.settings

    # Dispatch

    @commands.Cog.listener()
    async def on_interaction(self, interaction: discord.Interaction):
        if interaction.type is not discord.InteractionType.component:
            return
        ref = parse_custom_id((interaction.data or {}).get('custom_id'))
        if ref is None:
            return
        handler = self._handlers[ref.action]
        await self._guarded(interaction, f"{ref.action.value}:{ref.target_id}", handler, ref.target_id)

    async def _guarded(self, interaction: discord.Interaction, label: str, func, *args):
        """Run a handler, answering domain errors with their reason and anything else generically."""
        try:
            await func(interaction, *args)
        except LadderError as e:
            self.logger.info(f"Rejected {label} from {interaction.user.id}: {e.message}")
            await self._reply(interaction, embed=ErrorEmbeds.from_ladder_error(e))
        except Exception as e:
            self.logger.error(f"Error handling {label} from {interaction.user.id}: {e}", exc_info=True)
            await self._reply(interaction, embed=ErrorEmbeds.generic_failure())

    async def _reply(self, interaction: discord.Interaction, **kwargs):
        try:
            if interaction.response.is_done():
                await interaction.followup.send(ephemeral=True, **kwargs)
            else:
                await interaction.response.send_message(ephemeral=True, **kwargs)
        except discord.HTTPException as e:
            self.logger.warning(f"Could not reply to interaction: {e}")

    def _display_names(self, guild: Optional[discord.Guild], ids: List[str]) -> Dict[str, str]:
        if guild is None:
            return {}
        names = {}
        for discord_id in ids:
            member = guild.get_member(int(discord_id))
            if member is not None:
                names[discord_id] = member.display_name
        return names

    # Challenge panel

    async def _start_challenge(self, interaction: discord.Interaction, _: int):
        challenger_id = str(interaction.user.id)
        now = self.ops.players.clock()
        player = await self.ops.players.get_player(challenger_id)
        rank = player.rank if player else None

        if player is not None and player.is_on_cooldown(now):
            raise StateConflictError(
                f"{challenger_id} on cooldown",
                f"You are on cooldown. You can challenge again {discord_timestamp(player.cooldown_until)}"
            )
        if await self.ops.challenges.get_active_for_player(challenger_id):
            raise StateConflictError(
                f"{challenger_id} already has an active challenge",
                "You already have an active challenge. Complete it before starting a new one."
            )

        ladder = await self.ops.players.get_leaderboard()
        busy = await self.ops.challenges.get_busy_player_ids()
        targets = build_target_list(
            challenger_id, rank, ladder, busy, now,
            self.settings.open_challenge_ranks, self.settings.max_rank
        )
        if rank == 1:
            await self._reply(interaction, content="You're rank #1. Nobody is above you to challenge.")
            return
        if not targets and rank is not None:
            await self._reply(interaction, content="There's no one you can challenge right now.")
            return

        view = TargetSelectView(
            targets,
            on_target=self._challenge_ranked,
            on_unranked=self._offer_unranked if rank is None else None,
            names=self._display_names(interaction.guild, [t.discord_id for t in targets]),
        )
        await self._reply(interaction, content="**Select a player to challenge:**", view=view)

    async def _challenge_ranked(self, interaction: discord.Interaction, defender_id: str):
        async def _create(interaction: discord.Interaction):
            channel = await self._require_request_channel()
            challenge = await self.ops.challenges.create_challenge(
                interaction.user.id, defender_id, self.settings
            )
            await self._post_challenge(interaction, channel, challenge)
        await self._guarded(interaction, f"challenge:{defender_id}", _create)

    async def _offer_unranked(self, interaction: discord.Interaction):
        await interaction.response.edit_message(
            content="**Select an unranked player to challenge:**",
            view=UnrankedSelectView(self._challenge_unranked),
        )

    async def _challenge_unranked(self, interaction: discord.Interaction, defender_id: str):
        async def _create(interaction: discord.Interaction):
            member = interaction.guild.get_member(int(defender_id)) if interaction.guild else None
            channel = await self._require_request_channel()
            challenge = await self.ops.challenges.create_unranked_challenge(
                interaction.user.id, defender_id, self.settings,
                defender_is_bot=bool(member and member.bot),
            )
            await self._post_challenge(interaction, channel, challenge)
        await self._guarded(interaction, f"unranked:{defender_id}", _create)

    async def _require_request_channel(self):
        channel = await self.publisher.get_channel('request')
        if channel is None:
            raise StateConflictError("Request channel missing", "Error: Request channel not found.")
        return channel

    async def _post_challenge(self, interaction: discord.Interaction, channel, challenge):
        """Post the committed challenge; a failed post leaves it to expire normally."""
        await interaction.response.edit_message(
            content=f"Challenge sent to <@{challenge.defender_id}>! They have "
                    f"{self.settings.response_window_hours:g} hours to respond.\n\nCheck {channel.mention} for updates.",
            view=None,
        )
        try:
            message = await channel.send(
                content=f"<@{challenge.defender_id}>, you've been challenged!",
                embed=build_challenge_request_embed(challenge),
                view=challenge_request_view(challenge.id),
            )
        except discord.HTTPException as e:
            self.logger.error(f"Could not post challenge {challenge.id}: {e}")
            return

        thread = None
        try:
            thread = await message.create_thread(name=f"Challenge #{challenge.id}", auto_archive_duration=1440)
            await thread.send(
                f"<@{challenge.challenger_id}> vs <@{challenge.defender_id}>\n"
                "Use this thread to coordinate your match!"
            )
        except discord.HTTPException as e:
            self.logger.warning(f"Could not create thread for challenge {challenge.id}: {e}")

        await self.ops.challenges.set_presentation_refs(
            challenge.id, message_ref=message.id, channel_ref=channel.id,
            thread_ref=thread.id if thread else None,
        )
        stake = "an unranked match" if challenge.is_unranked_match else f"Rank #{challenge.defender_rank}"
        await self.publisher.dm(
            challenge.defender_id,
            f"<@{challenge.challenger_id}> challenged you for {stake}! "
            f"Respond in {channel.mention} before {discord_timestamp(challenge.expires_at)}."
        )

    async def _remove_cooldown(self, interaction: discord.Interaction, _: int):
        await self.ops.players.remove_own_cooldown(interaction.user.id)
        await self.ops.leaderboard.refresh()
        await self._reply(interaction, content="Your cooldown has been removed. You can be challenged again.")

    async def _toggle_dms(self, interaction: discord.Interaction, _: int):
        enabled = await self.ops.players.toggle_dm_notifications(interaction.user.id)
        await self._reply(interaction, content=f"DM notifications **{'enabled' if enabled else 'disabled'}**.")

    # Challenge response

    async def _accept(self, interaction: discord.Interaction, challenge_id: int):
        challenge = await self.ops.challenges.accept(challenge_id, interaction.user.id)
        await interaction.response.edit_message(
            content=None,
            embed=build_match_in_progress_embed(challenge, {}),
            view=match_in_progress_view(challenge.id),
        )
        await self.publisher.post_to_match(
            challenge,
            content=f"**Challenge accepted!** <@{challenge.challenger_id}> submits the result when you're done, "
                    f"then <@{challenge.defender_id}> confirms it."
        )
        await self.publisher.dm(challenge.challenger_id, f"<@{challenge.defender_id}> accepted your challenge!")

    async def _decline(self, interaction: discord.Interaction, challenge_id: int):
        resolution = await self.ops.challenges.decline(challenge_id, interaction.user.id, self.settings)
        challenge = resolution.challenge
        stake = "the match" if challenge.is_unranked_match else f"Rank #{challenge.defender_rank}"
        await interaction.response.edit_message(
            content=f"**Challenge Forfeited**\n\n<@{challenge.defender_id}> declined the challenge.\n"
                    f"<@{challenge.challenger_id}> wins by forfeit and takes {stake}!",
            embed=None,
            view=None,
        )
        await self._announce(resolution, "Forfeit", "Declined by the defender. *No cooldown applied.*")
        await self.publisher.close_thread(
            challenge, f"**Challenge Forfeited.** <@{challenge.challenger_id}> wins by forfeit. "
                       "This thread will be archived."
        )

    async def _announce(self, resolution: ChallengeResolution, title: str, detail: Optional[str] = None):
        if resolution.completion is not None:
            await self.publisher.announce_completion(resolution.challenge, resolution.completion, title, detail)

    # Predictions

    async def _predict(self, interaction: discord.Interaction, challenge_id: int, pick_challenger: bool):
        challenge = await self.ops.challenges.get_challenge(challenge_id)
        if challenge is None:
            raise ChallengeNotFoundError(challenge_id)
        pick = challenge.challenger_id if pick_challenger else challenge.defender_id
        await self.ops.predictions.predict(challenge_id, interaction.user.id, pick)
        counts = await self.ops.predictions.get_prediction_counts(challenge_id)
        await interaction.response.edit_message(embed=build_match_in_progress_embed(challenge, counts))
        await interaction.followup.send(f"Prediction saved: <@{pick}> to win.", ephemeral=True)

    async def _predict_challenger(self, interaction: discord.Interaction, challenge_id: int):
        await self._predict(interaction, challenge_id, True)

    async def _predict_defender(self, interaction: discord.Interaction, challenge_id: int):
        await self._predict(interaction, challenge_id, False)

    # Results

    async def _open_submit_modal(self, interaction: discord.Interaction, challenge_id: int):
        challenge = await self.ops.challenges.get_challenge(challenge_id)
        if challenge is None:
            raise ChallengeNotFoundError(challenge_id)
        if str(interaction.user.id) != challenge.challenger_id:
            raise NotAuthorizedError(
                f"{interaction.user.id} opened the submit form for challenge {challenge_id}",
                f"Only the challenger (<@{challenge.challenger_id}>) can submit the result."
            )

        async def on_scores(modal_interaction: discord.Interaction, sets: List[str]):
            await self._guarded(modal_interaction, f"submit:{challenge_id}", self._submit_scores, challenge_id, sets)

        await interaction.response.send_modal(ScoreModal("Submit Match Result", on_scores))

    async def _submit_scores(self, interaction: discord.Interaction, challenge_id: int, sets: List[str]):
        score = parse_match(sets, submitter_is_challenger=True)
        result = await self.ops.results.submit(challenge_id, interaction.user.id, score)
        challenge = await self.ops.challenges.get_challenge(challenge_id)
        await self._reply(interaction, content="Result submitted. Waiting for the defender to confirm.")
        await self.publisher.post_to_match(
            challenge,
            content=build_score_confirmation_content(challenge, result),
            view=result_confirmation_view(result.id),
        )
        await self.publisher.dm(challenge.defender_id, "A result was submitted for your match. Please confirm it.")

    async def _confirm(self, interaction: discord.Interaction, result_id: int):
        confirmed = await self.ops.results.confirm(result_id, interaction.user.id, self.settings)
        challenge = confirmed.challenge
        await interaction.response.edit_message(
            content=f"**Result confirmed** by <@{interaction.user.id}>.",
            view=completed_match_view(challenge.id),
        )
        await self.publisher.edit_request_message(
            challenge, content="**Match Completed**", embed=None, view=None
        )
        score_line = ' | '.join(f"{c}-{d}" for c, d in confirmed.result.scores)
        await self._announce(
            ChallengeResolution(challenge, confirmed.completion), "Match Completed", score_line
        )
        await self.publisher.close_thread(challenge, "**Match complete.** This thread will be archived.")

    async def _dispute(self, interaction: discord.Interaction, result_id: int):
        disputed = await self.ops.results.dispute(result_id, interaction.user.id)
        challenge = disputed.challenge
        await interaction.response.edit_message(
            content=f"**Result disputed** by <@{interaction.user.id}>. An admin will review it.",
            view=None,
        )
        await self.publisher.post(
            'disputes',
            embed=build_dispute_embed(challenge, disputed.result),
            view=dispute_view(challenge.id),
        )

    # Corrections

    async def _open_correction_modal(self, interaction: discord.Interaction, challenge_id: int):
        challenge = await self.ops.challenges.get_challenge(challenge_id)
        if challenge is None:
            raise ChallengeNotFoundError(challenge_id)
        if not challenge.involves(str(interaction.user.id)):
            raise NotAuthorizedError(
                f"{interaction.user.id} is not in challenge {challenge_id}",
                "Only the players in this match can request a correction."
            )
        is_challenger = str(interaction.user.id) == challenge.challenger_id

        async def on_scores(modal_interaction: discord.Interaction, sets: List[str]):
            await self._guarded(
                modal_interaction, f"correct:{challenge_id}", self._request_correction,
                challenge_id, sets, is_challenger
            )

        await interaction.response.send_modal(ScoreModal("Request Score Correction", on_scores))

    async def _request_correction(self, interaction: discord.Interaction, challenge_id: int,
                                  sets: List[str], is_challenger: bool):
        score = parse_match(sets, submitter_is_challenger=is_challenger)
        correction = await self.ops.corrections.request(challenge_id, interaction.user.id, score)
        challenge = await self.ops.challenges.get_challenge(challenge_id)
        other = challenge.opponent_of(str(interaction.user.id))
        await self._reply(interaction, content="Correction requested. The other player has to approve it.")
        await self.publisher.post_to_match(
            challenge,
            content=f"<@{other}>, a score correction was requested.",
            embed=build_correction_embed(challenge, correction),
            view=correction_view(correction.id),
        )
        await self.publisher.dm(other, "A score correction was requested for your match.")

    async def _resolve_correction(self, interaction: discord.Interaction, correction_id: int, approve: bool):
        if approve:
            correction = await self.ops.corrections.approve(correction_id, interaction.user.id)
        else:
            correction = await self.ops.corrections.reject(correction_id, interaction.user.id)
        challenge = await self.ops.challenges.get_challenge(correction.challenge_id)
        embed = build_correction_embed(challenge, correction)
        await interaction.response.edit_message(embed=embed, view=None)
        await self.publisher.log(embed=embed)

    async def _approve_correction(self, interaction: discord.Interaction, correction_id: int):
        await self._resolve_correction(interaction, correction_id, True)

    async def _reject_correction(self, interaction: discord.Interaction, correction_id: int):
        await self._resolve_correction(interaction, correction_id, False)

    # Disputes (admin only)

    def _require_admin(self, interaction: discord.Interaction):
        if not is_ladder_admin(interaction.user):
            raise NotAuthorizedError(
                f"{interaction.user.id} is not a ladder admin", "Only admins can resolve disputes."
            )

    async def _open_resolve_modal(self, interaction: discord.Interaction, challenge_id: int):
        self._require_admin(interaction)

        async def on_scores(modal_interaction: discord.Interaction, sets: List[str]):
            await self._guarded(
                modal_interaction, f"resolve:{challenge_id}", self._resolve_dispute, challenge_id, sets
            )

        await interaction.response.send_modal(
            ScoreModal("Resolve Dispute", on_scores, hint="Challenger score first, e.g. 10-7")
        )

    async def _resolve_dispute(self, interaction: discord.Interaction, challenge_id: int, sets: List[str]):
        score = parse_match(sets, submitter_is_challenger=True)
        resolution = await self.ops.admin.resolve_dispute(challenge_id, score, str(interaction.user.id), self.settings)
        await self._reply(interaction, content=f"Dispute resolved: {score.describe()}")
        await self._announce(resolution, "Dispute Resolved", f"{score.describe()} (admin <@{interaction.user.id}>)")
        await self.publisher.close_thread(resolution.challenge, "**Dispute resolved.** This thread will be archived.")

    async def _void_match(self, interaction: discord.Interaction, challenge_id: int):
        self._require_admin(interaction)
        resolution = await self.ops.admin.void_challenge(challenge_id, str(interaction.user.id))
        await interaction.response.edit_message(
            content=f"**Match voided** by <@{interaction.user.id}>. No ranks changed.", embed=None, view=None
        )
        await self.publisher.log(content=f"Challenge #{challenge_id} voided by <@{interaction.user.id}>.")
        await self.publisher.close_thread(resolution.challenge, "**Match voided.** This thread will be archived.")


async def setup(bot):
    await bot.add_cog(ChallengeCog(bot))
