"""
Administrative Operations

Admin overrides on the ladder: manual rank placement and removal,
cooldown clearing, forced results, cancel/void and dispute resolution.
Every action is logged with the acting admin's id, and every action that
moves ranks or cooldowns re-renders the leaderboard after it commits.
"""

from typing import Optional

from ladder_bot.database.database import Database
from ladder_bot.database.models import ChallengeStatus, Player
from ladder_bot.operations.base import BaseOperations
from ladder_bot.operations.challenge_operations import ChallengeOperations, ChallengeResolution
from ladder_bot.operations.match_completion import CompletionResult, MatchCompletion, MatchOutcome
from ladder_bot.operations.player_operations import PlayerOperations
from ladder_bot.services.configuration import LadderSettings
from ladder_bot.services.leaderboard import LeaderboardService
from ladder_bot.utils.clock import Clock, utc_now
from ladder_bot.utils.ladder_exceptions import LadderValidationError, StateConflictError
from ladder_bot.utils.scores import MatchScore


def _check_sets_loser(sets_loser: int):
    if sets_loser not in (0, 1):
        raise LadderValidationError(
            f"Invalid sets_loser {sets_loser}", "The final set score must be 2-0 or 2-1."
        )


class AdminOperations(BaseOperations):
    """Business logic for administrative ladder management."""

    def __init__(self, db: Database, players: PlayerOperations, challenges: ChallengeOperations,
                 completion: MatchCompletion, leaderboard: Optional[LeaderboardService] = None,
                 clock: Clock = utc_now):
        super().__init__(db, clock)
        self.players = players
        self.challenges = challenges
        self.completion = completion
        self.leaderboard = leaderboard

    async def _refresh(self):
        if self.leaderboard is not None:
            await self.leaderboard.refresh()

    async def set_rank(self, target_id: str, rank: int, admin_id: str) -> Player:
        player = await self.players.set_rank(target_id, rank)
        self.logger.info(f"Admin {admin_id} placed {target_id} at #{rank}")
        await self._refresh()
        return player

    async def remove_rank(self, target_id: str, admin_id: str) -> int:
        """Remove a player's rank and close the gap. Returns the removed rank."""
        removed = await self.players.remove_rank_and_shift_up(target_id)
        if removed is None:
            raise StateConflictError(f"{target_id} is unranked", f"<@{target_id}> is not ranked.")
        self.logger.info(f"Admin {admin_id} removed {target_id} from #{removed}")
        await self._refresh()
        return removed

    async def clear_cooldown(self, target_id: str, admin_id: str) -> Player:
        player = await self.players.clear_cooldown(target_id)
        self.logger.info(f"Admin {admin_id} cleared cooldown for {target_id}")
        await self._refresh()
        return player

    async def force_result(self, winner_id: str, loser_id: str, sets_loser: int, admin_id: str,
                           settings: LadderSettings) -> CompletionResult:
        """
        Record a result between two players without a challenge.

        The worse-placed player (or the unranked one) is treated as the
        challenger, so a win from below promotes exactly as a normal
        upset would and a win from above changes no ranks.
        """
        winner_id, loser_id = str(winner_id), str(loser_id)
        if winner_id == loser_id:
            raise LadderValidationError("Winner equals loser", "Winner and loser must be different players.")
        _check_sets_loser(sets_loser)

        async with self.db.transaction() as session:
            winner = await self.players.get_or_create(winner_id, session)
            loser = await self.players.get_or_create(loser_id, session)
            winner_from_below = loser.rank is not None and (winner.rank is None or winner.rank > loser.rank)
            if winner_from_below:
                challenger_id, defender_id, defender_rank = winner_id, loser_id, loser.rank
            else:
                challenger_id, defender_id, defender_rank = loser_id, winner_id, winner.rank or 0

            outcome = MatchOutcome(
                challenger_id=challenger_id,
                defender_id=defender_id,
                defender_rank=defender_rank,
                winner_id=winner_id,
                loser_id=loser_id,
                sets_winner=2,
                sets_loser=sets_loser,
            )
            completion = await self.completion.apply(outcome, settings, session)

        self.logger.info(f"Admin {admin_id} forced result: {winner_id} beat {loser_id} 2-{sets_loser}")
        await self.completion.publish(completion)
        return completion

    async def force_challenge_result(self, challenge_id: int, winner_id: str, sets_loser: int,
                                     admin_id: str, settings: LadderSettings) -> ChallengeResolution:
        """Complete an in-progress challenge with an admin-chosen winner."""
        _check_sets_loser(sets_loser)
        async with self.db.transaction() as session:
            resolution = await self.challenges.complete_with_result(
                challenge_id, [ChallengeStatus.ACCEPTED], settings, session,
                winner_id=winner_id, sets_loser=sets_loser,
            )
        self.logger.info(f"Admin {admin_id} forced challenge {challenge_id}: {winner_id} won 2-{sets_loser}")
        await self.completion.publish(resolution.completion)
        return resolution

    async def resolve_dispute(self, challenge_id: int, score: MatchScore, admin_id: str,
                              settings: LadderSettings) -> ChallengeResolution:
        return await self.challenges.resolve_dispute(challenge_id, admin_id, score, settings)

    async def cancel_challenge(self, challenge_id: int, admin_id: str) -> ChallengeResolution:
        challenge = await self.challenges.cancel(challenge_id, admin_id)
        return ChallengeResolution(challenge)

    async def void_challenge(self, challenge_id: int, admin_id: str) -> ChallengeResolution:
        challenge = await self.challenges.void(challenge_id, admin_id)
        return ChallengeResolution(challenge)

    async def refresh_leaderboard(self, admin_id: str) -> bool:
        self.logger.info(f"Admin {admin_id} requested a leaderboard refresh")
        if self.leaderboard is None:
            return False
        return await self.leaderboard.refresh()
