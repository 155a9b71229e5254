"""
Eligibility rules for who may challenge whom.

Everything in this module is a pure function of ladder state passed in
by the caller. The stateful gates (cooldowns, active challenges) are
re-checked by ChallengeOperations inside the creating transaction.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Set

from ladder_bot.config import Config
from ladder_bot.database.models import Player
from ladder_bot.utils.ladder_exceptions import LadderValidationError


class TargetStatus(Enum):
    AVAILABLE = "available"
    ON_COOLDOWN = "on_cooldown"
    BUSY = "busy"


@dataclass
class ChallengeTarget:
    """A ladder slot the challenger may aim at, annotated with its current state"""
    rank: int
    discord_id: str
    status: TargetStatus
    cooldown_until: Optional[datetime] = None

    @property
    def is_available(self) -> bool:
        return self.status is TargetStatus.AVAILABLE


def challengeable_ranks(challenger_rank: Optional[int],
                        open_ranks: Sequence[int] = Config.OPEN_CHALLENGE_RANKS,
                        max_rank: int = Config.MAX_RANK) -> List[int]:
    """
    Ranks a player may challenge.

    Unranked players may enter through the open band. The bottom rank may
    reach two places up, everyone else exactly one.
    """
    if challenger_rank is None:
        return sorted(open_ranks)
    if challenger_rank == max_rank:
        return [r for r in (max_rank - 2, max_rank - 1) if r >= 1]
    if challenger_rank > 1:
        return [challenger_rank - 1]
    return []


def can_challenge(challenger_rank: Optional[int], target_rank: Optional[int],
                  open_ranks: Sequence[int] = Config.OPEN_CHALLENGE_RANKS,
                  max_rank: int = Config.MAX_RANK) -> bool:
    """True when a player at challenger_rank may challenge the holder of target_rank."""
    if target_rank is None:
        return False
    return target_rank in challengeable_ranks(challenger_rank, open_ranks, max_rank)


def check_unranked_match(challenger_id: str, defender_id: str,
                         challenger_rank: Optional[int], defender_rank: Optional[int],
                         defender_is_bot: bool = False) -> None:
    """
    Validate an unranked-vs-unranked challenge.

    Raises:
        LadderValidationError: with the reason the pairing is not allowed
    """
    if str(challenger_id) == str(defender_id):
        raise LadderValidationError("Self challenge", "You can't challenge yourself.")
    if defender_is_bot:
        raise LadderValidationError("Bot target", "You can't challenge a bot.")
    if challenger_rank is not None:
        raise LadderValidationError(
            "Ranked challenger on unranked path",
            "You're ranked - use the challenge panel to challenge someone above you."
        )
    if defender_rank is not None:
        raise LadderValidationError(
            "Ranked defender on unranked path",
            f"<@{defender_id}> is ranked #{defender_rank}. Challenge them through the challenge panel."
        )


def build_target_list(challenger_id: str, challenger_rank: Optional[int],
                      ladder: Iterable[Player], busy_ids: Set[str], now: datetime,
                      open_ranks: Sequence[int] = Config.OPEN_CHALLENGE_RANKS,
                      max_rank: int = Config.MAX_RANK) -> List[ChallengeTarget]:
    """Targets for the challenge menu, excluding the challenger and empty slots."""
    allowed = set(challengeable_ranks(challenger_rank, open_ranks, max_rank))
    targets = []
    for player in ladder:
        if player.rank not in allowed or player.discord_id == str(challenger_id):
            continue
        if player.discord_id in busy_ids:
            status = TargetStatus.BUSY
        elif player.is_on_cooldown(now):
            status = TargetStatus.ON_COOLDOWN
        else:
            status = TargetStatus.AVAILABLE
        targets.append(ChallengeTarget(player.rank, player.discord_id, status, player.cooldown_until))
    return sorted(targets, key=lambda t: t.rank)
