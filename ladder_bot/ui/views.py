"""
Discord UI components for the ladder.

Components:
- LadderAction / ActionRef: the closed set of button actions and their
  ``ladder:<action>:<id>`` custom ids
- action views for challenge messages, results, corrections and disputes
- ScoreModal: set entry for submissions, corrections and
  dispute resolution
- TargetSelectView / UnrankedSelectView: ephemeral challenge target pickers

Persistent buttons carry no callbacks of their own. The challenge cog
parses every component interaction once with parse_custom_id and
dispatches on the resulting LadderAction, so buttons keep working
across restarts.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence

import discord

from ladder_bot.operations.eligibility import ChallengeTarget, TargetStatus
from ladder_bot.utils.logger import setup_logger

logger = setup_logger(__name__)

CUSTOM_ID_PREFIX = "ladder"
SELECT_LIMIT = 25


class LadderAction(Enum):
    """Every persistent button the ladder posts."""
    # Challenge panel (id is always 0)
    START_CHALLENGE = "start"
    REMOVE_COOLDOWN = "cooldown"
    TOGGLE_DMS = "dms"

    # Challenge id
    ACCEPT = "accept"
    DECLINE = "decline"
    SUBMIT_RESULT = "submit"
    PREDICT_CHALLENGER = "predict_c"
    PREDICT_DEFENDER = "predict_d"
    REQUEST_CORRECTION = "correct"
    RESOLVE_DISPUTE = "resolve"
    VOID_MATCH = "void"

    # Result id
    CONFIRM_RESULT = "confirm"
    DISPUTE_RESULT = "dispute"

    # Correction id
    APPROVE_CORRECTION = "approve"
    REJECT_CORRECTION = "reject"


@dataclass(frozen=True)
class ActionRef:
    """A parsed custom id"""
    action: LadderAction
    target_id: int = 0

    @property
    def custom_id(self) -> str:
        return build_custom_id(self.action, self.target_id)


def build_custom_id(action: LadderAction, target_id: int = 0) -> str:
    return f"{CUSTOM_ID_PREFIX}:{action.value}:{int(target_id)}"


def parse_custom_id(custom_id: Optional[str]) -> Optional[ActionRef]:
    """
    Resolve a component custom id into an ActionRef.

    Returns None for anything that is not a well-formed ladder id, so
    components owned by other views pass through untouched.
    """
    if not custom_id:
        return None
    parts = custom_id.split(":")
    if len(parts) != 3 or parts[0] != CUSTOM_ID_PREFIX:
        return None
    try:
        action = LadderAction(parts[1])
    except ValueError:
        return None
    if not parts[2].isdigit():
        return None
    return ActionRef(action, int(parts[2]))


def action_button(action: LadderAction, target_id: int, label: str,
                  style: discord.ButtonStyle = discord.ButtonStyle.secondary,
                  emoji: Optional[str] = None) -> discord.ui.Button:
    return discord.ui.Button(
        label=label,
        style=style,
        emoji=emoji,
        custom_id=build_custom_id(action, target_id),
    )


class ActionView(discord.ui.View):
    """A timeout-free row of ladder buttons."""

    def __init__(self, *buttons: discord.ui.Button):
        super().__init__(timeout=None)
        for button in buttons:
            self.add_item(button)


def challenge_panel_view() -> ActionView:
    return ActionView(
        action_button(LadderAction.START_CHALLENGE, 0, "Challenge Someone", discord.ButtonStyle.primary, "⚔️"),
        action_button(LadderAction.REMOVE_COOLDOWN, 0, "Remove My Cooldown"),
        action_button(LadderAction.TOGGLE_DMS, 0, "DM Notifications", emoji="🔔"),
    )


def challenge_request_view(challenge_id: int) -> ActionView:
    return ActionView(
        action_button(LadderAction.ACCEPT, challenge_id, "Accept", discord.ButtonStyle.success),
        action_button(LadderAction.DECLINE, challenge_id, "Decline (Forfeit)", discord.ButtonStyle.danger),
    )


def match_in_progress_view(challenge_id: int) -> ActionView:
    return ActionView(
        action_button(LadderAction.SUBMIT_RESULT, challenge_id, "Submit Result", discord.ButtonStyle.primary),
        action_button(LadderAction.PREDICT_CHALLENGER, challenge_id, "Challenger", emoji="⚫"),
        action_button(LadderAction.PREDICT_DEFENDER, challenge_id, "Defender", emoji="⚪"),
    )


def result_confirmation_view(result_id: int) -> ActionView:
    return ActionView(
        action_button(LadderAction.CONFIRM_RESULT, result_id, "Confirm", discord.ButtonStyle.success),
        action_button(LadderAction.DISPUTE_RESULT, result_id, "Dispute", discord.ButtonStyle.danger),
    )


def completed_match_view(challenge_id: int) -> ActionView:
    return ActionView(
        action_button(LadderAction.REQUEST_CORRECTION, challenge_id, "Request Score Correction"),
    )


def correction_view(correction_id: int) -> ActionView:
    return ActionView(
        action_button(LadderAction.APPROVE_CORRECTION, correction_id, "Approve", discord.ButtonStyle.success),
        action_button(LadderAction.REJECT_CORRECTION, correction_id, "Reject", discord.ButtonStyle.danger),
    )


def dispute_view(challenge_id: int) -> ActionView:
    return ActionView(
        action_button(LadderAction.RESOLVE_DISPUTE, challenge_id, "Resolve", discord.ButtonStyle.primary),
        action_button(LadderAction.VOID_MATCH, challenge_id, "Void Match", discord.ButtonStyle.danger),
    )


ScoresCallback = Callable[[discord.Interaction, List[str]], Awaitable[None]]


class ScoreModal(discord.ui.Modal):
    """Best-of-three set entry; the third set is optional."""

    def __init__(self, title: str, on_scores: ScoresCallback, hint: str = "Your score first, e.g. 10-7"):
        super().__init__(title=title, timeout=300)
        self.on_scores = on_scores
        self.set_inputs = [
            discord.ui.TextInput(label="Set 1", placeholder=hint, required=True, max_length=7),
            discord.ui.TextInput(label="Set 2", placeholder=hint, required=True, max_length=7),
            discord.ui.TextInput(label="Set 3 (if played)", placeholder=hint, required=False, max_length=7),
        ]
        for text_input in self.set_inputs:
            self.add_item(text_input)

    async def on_submit(self, interaction: discord.Interaction):
        await self.on_scores(interaction, [text_input.value or "" for text_input in self.set_inputs])

    async def on_error(self, interaction: discord.Interaction, error: Exception):
        logger.error(f"Score modal failed: {error}", exc_info=True)
        if not interaction.response.is_done():
            await interaction.response.send_message(
                "Something went wrong while saving the score. Please try again.", ephemeral=True
            )


TargetCallback = Callable[[discord.Interaction, str], Awaitable[None]]

UNRANKED_OPTION = "unranked"


def _target_option(target: ChallengeTarget) -> discord.SelectOption:
    if target.status is TargetStatus.ON_COOLDOWN:
        return discord.SelectOption(
            label=f"#{target.rank} (Cooldown)", value=target.discord_id, emoji="🔴",
            description="On cooldown",
        )
    if target.status is TargetStatus.BUSY:
        return discord.SelectOption(
            label=f"#{target.rank} (In Challenge)", value=target.discord_id, emoji="🔴",
            description="Already in a challenge",
        )
    return discord.SelectOption(label=f"#{target.rank}", value=target.discord_id, emoji="🟢")


class TargetSelectView(discord.ui.View):
    """
    Ephemeral picker listing the ranks a player may challenge.

    Unavailable targets are still listed so the player can see why; the
    challenge operation rejects them with a specific reason.
    """

    def __init__(self, targets: Sequence[ChallengeTarget], on_target: TargetCallback,
                 on_unranked: Optional[Callable[[discord.Interaction], Awaitable[None]]] = None,
                 names: Optional[dict] = None):
        super().__init__(timeout=120)
        self.on_target = on_target
        self.on_unranked = on_unranked

        options = []
        for target in targets:
            option = _target_option(target)
            if names and target.discord_id in names:
                option.label = f"{option.label} {names[target.discord_id]}"[:100]
            options.append(option)
        if on_unranked is not None:
            options.append(discord.SelectOption(
                label="Unranked match", value=UNRANKED_OPTION, emoji="⚔️",
                description="Challenge another unranked player",
            ))

        self.select = discord.ui.Select(
            placeholder="Choose who to challenge",
            options=options[:SELECT_LIMIT],
            min_values=1,
            max_values=1,
        )
        self.select.callback = self._selected
        self.add_item(self.select)

    async def _selected(self, interaction: discord.Interaction):
        value = self.select.values[0]
        self.stop()
        if value == UNRANKED_OPTION and self.on_unranked is not None:
            await self.on_unranked(interaction)
        else:
            await self.on_target(interaction, value)


class UnrankedSelectView(discord.ui.View):
    """Pick any server member for an unranked match."""

    def __init__(self, on_target: TargetCallback):
        super().__init__(timeout=120)
        self.on_target = on_target
        self.select = discord.ui.UserSelect(placeholder="Select an unranked player", min_values=1, max_values=1)
        self.select.callback = self._selected
        self.add_item(self.select)

    async def _selected(self, interaction: discord.Interaction):
        user = self.select.values[0]
        self.stop()
        await self.on_target(interaction, str(user.id))
