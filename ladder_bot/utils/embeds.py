"""
Shared embed and message builders for the ladder bot.

Every function here is a pure rendering of domain objects; none of them
touch the database.
"""

from datetime import datetime
from typing import Dict, List, Optional

import discord

from ladder_bot.database.models import Challenge, MatchHistory, MatchResult, Player, ScoreCorrection
from ladder_bot.operations.history_operations import HeadToHead, Rival
from ladder_bot.operations.match_completion import CompletionResult
from ladder_bot.operations.prediction_operations import PredictionStats
from ladder_bot.services.configuration import LadderSettings
from ladder_bot.utils.clock import discord_timestamp

PANEL_COLOR = discord.Color(0x2F3136)
CHALLENGER_MARK = '⚫'
DEFENDER_MARK = '⚪'


def _rank_label(rank: Optional[int]) -> str:
    return f"#{rank}" if rank else "Unranked"


def _score_line(scores: List[List[int]]) -> str:
    return ' | '.join(f"{c}-{d}" for c, d in scores)


def build_leaderboard_content(ladder: List[Player], now: datetime, max_rank: int) -> str:
    """Plain-text leaderboard with one line per rank slot."""
    by_rank = {p.rank: p for p in ladder}
    lines = ["# Leaderboard", "", f"## **Top {max_rank} Rankings**"]
    for rank in range(1, max_rank + 1):
        player = by_rank.get(rank)
        if player is None:
            lines.append(f"> **{rank}.** *Empty*")
        elif player.is_on_cooldown(now):
            lines.append(
                f"> **{rank}.** **<@{player.discord_id}>** `Cooldown expires` "
                f"{discord_timestamp(player.cooldown_until)}"
            )
        else:
            lines.append(f"> **{rank}.** **<@{player.discord_id}>**")
    return '\n'.join(lines)


def build_challenge_panel_embed(settings: LadderSettings) -> discord.Embed:
    open_band = ', '.join(str(r) for r in settings.open_challenge_ranks)
    embed = discord.Embed(
        title="Challenge System",
        description="Ready to fight for a rank?\nClick below to start a challenge.",
        color=PANEL_COLOR
    )
    embed.add_field(
        name="Rules",
        value=(
            f"• Unranked can challenge ranks {open_band}\n"
            f"• Rank {settings.max_rank} can challenge {settings.max_rank - 2} or {settings.max_rank - 1}\n"
            f"• Everyone else challenges 1 above"
        ),
        inline=True
    )
    embed.add_field(
        name="Format",
        value=f"> Best of 3 sets\n> First to 10 per set\n> {CHALLENGER_MARK} Challenger\n> {DEFENDER_MARK} Defender",
        inline=True
    )
    embed.add_field(
        name="Timing",
        value=(
            f"> {settings.response_window_hours:g}h to respond\n"
            f"> {settings.cooldown_hours:g}h cooldown after a match"
        ),
        inline=True
    )
    return embed


def build_challenge_request_embed(challenge: Challenge) -> discord.Embed:
    stake = "Unranked match" if challenge.is_unranked_match else f"#{challenge.defender_rank}"
    embed = discord.Embed(
        title="New Challenge!",
        description=(
            f"<@{challenge.challenger_id}> → <@{challenge.defender_id}> ({stake})\n\n"
            f"Respond by {discord_timestamp(challenge.expires_at, 'F')}\n"
            f"({discord_timestamp(challenge.expires_at)})"
        ),
        color=discord.Color.orange()
    )
    embed.add_field(name="Challenger", value=f"<@{challenge.challenger_id}>", inline=True)
    embed.add_field(name="Defender", value=f"<@{challenge.defender_id}>", inline=True)
    embed.add_field(name="Rank at Stake", value=stake, inline=True)
    embed.set_footer(text="Defender: accept or decline. No response counts as a forfeit.")
    return embed


def build_match_in_progress_embed(challenge: Challenge, prediction_counts: Optional[Dict[str, int]] = None) -> discord.Embed:
    embed = discord.Embed(
        title="Match In Progress",
        description=(
            f"{CHALLENGER_MARK} <@{challenge.challenger_id}> vs {DEFENDER_MARK} <@{challenge.defender_id}>\n\n"
            "Play your match, then the challenger submits the result here."
        ),
        color=discord.Color.green()
    )
    if prediction_counts is not None:
        embed.add_field(
            name="Predictions",
            value=(
                f"{CHALLENGER_MARK} {prediction_counts.get(challenge.challenger_id, 0)}  "
                f"{DEFENDER_MARK} {prediction_counts.get(challenge.defender_id, 0)}"
            ),
            inline=False
        )
    return embed


def build_score_confirmation_content(challenge: Challenge, result: MatchResult) -> str:
    return (
        f"**Result submitted** by <@{result.submitted_by}>\n"
        f"Winner: <@{result.winner_id}> ({result.sets_winner}-{result.sets_loser})\n"
        f"Sets ({CHALLENGER_MARK} challenger - {DEFENDER_MARK} defender): {_score_line(result.scores)}\n\n"
        f"<@{challenge.defender_id}>, please confirm or dispute this result."
    )


def build_outcome_embed(challenge: Optional[Challenge], completion: CompletionResult, title: str,
                        detail: Optional[str] = None) -> discord.Embed:
    """Log-channel summary of a finished match."""
    embed = discord.Embed(title=title, color=discord.Color.blue())
    embed.add_field(
        name="Winner",
        value=f"<@{completion.winner_id}> {_rank_label(completion.winner_rank_before)} → "
              f"{_rank_label(completion.new_winner_rank)}",
        inline=True
    )
    embed.add_field(
        name="Loser",
        value=f"<@{completion.loser_id}> {_rank_label(completion.loser_rank_before)} → "
              f"{_rank_label(completion.new_loser_rank)}",
        inline=True
    )
    if detail:
        embed.add_field(name="Score", value=detail, inline=False)
    if completion.elo:
        embed.add_field(
            name="Elo",
            value=f"{completion.elo.winner_new} ({completion.elo.winner_change:+d}) / "
                  f"{completion.elo.loser_new} ({completion.elo.loser_change:+d})",
            inline=False
        )
    if completion.cooldown_until:
        embed.add_field(name="Cooldown", value=f"Ends {discord_timestamp(completion.cooldown_until)}", inline=False)
    if challenge is not None:
        embed.set_footer(text=f"Challenge #{challenge.id}")
    return embed


def build_status_embed(challenge: Challenge, title: str, description: str,
                       color: discord.Color = discord.Color.dark_grey()) -> discord.Embed:
    embed = discord.Embed(title=title, description=description, color=color)
    embed.set_footer(text=f"Challenge #{challenge.id}")
    return embed


def build_dispute_embed(challenge: Challenge, result: Optional[MatchResult]) -> discord.Embed:
    embed = discord.Embed(
        title="Result Disputed",
        description=f"<@{challenge.defender_id}> disputed the result against <@{challenge.challenger_id}>.",
        color=discord.Color.red()
    )
    if result is not None:
        embed.add_field(name="Submitted", value=f"Winner <@{result.winner_id}>: {_score_line(result.scores)}")
    embed.set_footer(text=f"Challenge #{challenge.id} · Admins: resolve or void")
    return embed


def build_correction_embed(challenge: Challenge, correction: ScoreCorrection) -> discord.Embed:
    embed = discord.Embed(
        title=f"Score Correction ({correction.status.value})",
        description=(
            f"<@{correction.requested_by}> proposes: {_score_line(correction.new_scores)}\n"
            f"Corrected winner: <@{correction.new_winner_id}>"
        ),
        color=discord.Color.gold()
    )
    if correction.approved_by:
        embed.add_field(name="Handled by", value=f"<@{correction.approved_by}>")
    embed.set_footer(text=f"Challenge #{challenge.id} · Ranks and stats are not recalculated")
    return embed


def _days_at_rank(rank_since: Optional[datetime], now: datetime) -> Optional[str]:
    if rank_since is None:
        return None
    days = (now - rank_since).days
    if days == 0:
        return "today"
    return "1 day" if days == 1 else f"{days} days"


def build_profile_embed(player: Optional[Player], display_name: str, avatar_url: Optional[str],
                        form: List[str], nemesis: Optional[Rival], victim: Optional[Rival],
                        predictions: Optional[PredictionStats], now: datetime) -> discord.Embed:
    """Player profile with rank, record, streaks and rivalries."""
    embed = discord.Embed(title=display_name, color=PANEL_COLOR)
    if avatar_url:
        embed.set_thumbnail(url=avatar_url)

    if player is None or player.total_matches == 0 and player.rank is None:
        embed.description = "No matches played yet."
        return embed

    if player.rank:
        rank_line = f"**Rank #{player.rank}**"
        held = _days_at_rank(player.rank_since, now)
        if held:
            rank_line += f" ({held})"
        if player.highest_rank and player.highest_rank < player.rank:
            rank_line += f" · Peak: #{player.highest_rank}"
    else:
        rank_line = "**Unranked**"
        if player.highest_rank:
            rank_line += f" · Peak: #{player.highest_rank}"
    lines = [rank_line, f"{player.wins}W - {player.losses}L ({player.win_rate:.0%}) · Elo {player.elo}"]
    if form:
        lines.append(f"Form: {' '.join(form)}")
    if player.is_on_cooldown(now):
        lines.append(f"Cooldown ends {discord_timestamp(player.cooldown_until)}")
    embed.description = '\n'.join(lines)

    embed.add_field(
        name="Streaks",
        value=f"Current: {player.win_streak}W / {player.loss_streak}L\nBest: {player.best_win_streak}W",
        inline=True
    )
    embed.add_field(
        name="Titles",
        value=f"Takes: {player.title_takes}\nDefenses: {player.title_defenses}",
        inline=True
    )
    embed.add_field(
        name="Highlights",
        value=f"Perfect: {player.perfect_matches}\nComebacks: {player.comeback_wins}",
        inline=True
    )
    embed.add_field(
        name="Points",
        value=f"Scored: {player.total_points}\nConceded: {player.total_points_conceded}",
        inline=True
    )
    rivals = []
    if nemesis:
        rivals.append(f"Nemesis: <@{nemesis.opponent_id}> ({nemesis.count}L)")
    if victim:
        rivals.append(f"Victim: <@{victim.opponent_id}> ({victim.count}W)")
    if rivals:
        embed.add_field(name="Rivals", value='\n'.join(rivals), inline=True)
    if predictions and predictions.total:
        embed.add_field(
            name="Predictions",
            value=f"{predictions.correct}/{predictions.total} ({predictions.accuracy:.0%})",
            inline=True
        )
    return embed


def build_head_to_head_embed(player_id: str, opponent_id: str, record: HeadToHead,
                             recent: List[MatchHistory]) -> discord.Embed:
    embed = discord.Embed(
        title="Head to Head",
        description=f"<@{player_id}> **{record.wins} - {record.losses}** <@{opponent_id}>",
        color=PANEL_COLOR
    )
    if recent:
        embed.add_field(name="Recent Meetings", value='\n'.join(_history_line(m) for m in recent), inline=False)
    elif not record.total:
        embed.description += "\n\nThese players have never met."
    return embed


def _history_line(match: MatchHistory) -> str:
    if match.was_forfeit:
        detail = "forfeit"
    elif match.points_scored or match.points_conceded:
        detail = f"{match.sets_won}-{match.sets_lost} sets, {match.points_scored}-{match.points_conceded} pts"
    else:
        detail = f"{match.sets_won}-{match.sets_lost} sets"
    return f"**{match.result}** vs <@{match.opponent_id}> · {detail} · {discord_timestamp(match.match_date, 'd')}"


def build_history_embed(player_id: str, matches: List[MatchHistory]) -> discord.Embed:
    embed = discord.Embed(title="Match History", description=f"<@{player_id}>", color=PANEL_COLOR)
    embed.add_field(
        name=f"Last {len(matches)} matches",
        value='\n'.join(_history_line(m) for m in matches) or "No matches played yet.",
        inline=False
    )
    return embed
