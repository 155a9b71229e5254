"""
Score corrections on completed matches.

A participant proposes corrected scores; the other participant approves
or rejects. Approval records the corrected line only. Ranks, stats, Elo
and history written by the original completion are left as they are.
"""

from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ladder_bot.database.models import Challenge, ChallengeStatus, CorrectionStatus, ScoreCorrection
from ladder_bot.operations.base import BaseOperations
from ladder_bot.utils.ladder_exceptions import (
    ChallengeNotFoundError, CorrectionNotFoundError, NotAuthorizedError, StateConflictError
)
from ladder_bot.utils.scores import MatchScore


class CorrectionOperations(BaseOperations):
    """Propose, approve and reject score corrections."""

    async def _load(self, correction_id: int, session: AsyncSession) -> Optional[ScoreCorrection]:
        result = await session.execute(
            select(ScoreCorrection)
            .where(ScoreCorrection.id == correction_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_correction(self, correction_id: int,
                             session: Optional[AsyncSession] = None) -> Optional[ScoreCorrection]:
        async def _get(session: AsyncSession) -> Optional[ScoreCorrection]:
            return await self._load(correction_id, session)
        return await self._read(_get, session)

    async def get_for_challenge(self, challenge_id: int,
                                session: Optional[AsyncSession] = None) -> List[ScoreCorrection]:
        async def _get(session: AsyncSession) -> List[ScoreCorrection]:
            result = await session.execute(
                select(ScoreCorrection)
                .where(ScoreCorrection.challenge_id == challenge_id)
                .order_by(ScoreCorrection.id)
            )
            return list(result.scalars().all())
        return await self._read(_get, session)

    async def request(self, challenge_id: int, requester_id: str, score: MatchScore,
                      session: Optional[AsyncSession] = None) -> ScoreCorrection:
        """
        Propose corrected scores (challenger/defender order) for a completed match.

        Raises:
            StateConflictError: match not completed, or a correction is already pending
            NotAuthorizedError: requester did not play in the match
        """
        requester_id = str(requester_id)

        async def _request(session: AsyncSession) -> ScoreCorrection:
            challenge = await session.get(Challenge, challenge_id, populate_existing=True)
            if challenge is None:
                raise ChallengeNotFoundError(challenge_id)
            if not challenge.involves(requester_id):
                raise NotAuthorizedError(
                    f"{requester_id} is not in challenge {challenge_id}",
                    "Only the players in this match can request a correction."
                )
            if challenge.status != ChallengeStatus.COMPLETED:
                raise StateConflictError(
                    f"Challenge {challenge_id} is {challenge.status.value}",
                    "Only completed matches can be corrected."
                )
            if challenge.pending_correction_id is not None:
                raise StateConflictError(
                    f"Challenge {challenge_id} already has correction {challenge.pending_correction_id}",
                    "A correction is already pending for this match."
                )

            correction = ScoreCorrection(
                challenge_id=challenge_id,
                requested_by=requester_id,
                new_scores=score.to_json(),
                new_winner_id=challenge.challenger_id if score.challenger_won else challenge.defender_id,
                status=CorrectionStatus.PENDING,
                created_at=self.clock(),
            )
            session.add(correction)
            await session.flush()

            claimed = await session.execute(
                update(Challenge)
                .where(Challenge.id == challenge_id, Challenge.pending_correction_id.is_(None))
                .values(pending_correction_id=correction.id)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount != 1:
                raise StateConflictError(
                    f"Challenge {challenge_id} gained a correction concurrently",
                    "A correction is already pending for this match."
                )
            self.logger.info(
                f"Correction {correction.id} requested by {requester_id} for challenge {challenge_id}: "
                f"{score.describe()}"
            )
            return correction
        return await self._write(_request, session)

    async def _resolve(self, correction_id: int, actor_id: str, status: CorrectionStatus,
                       session: Optional[AsyncSession]) -> ScoreCorrection:
        actor_id = str(actor_id)

        async def _apply(session: AsyncSession) -> ScoreCorrection:
            correction = await self._load(correction_id, session)
            if correction is None:
                raise CorrectionNotFoundError(correction_id)
            challenge = await session.get(Challenge, correction.challenge_id, populate_existing=True)
            if challenge is None:
                raise ChallengeNotFoundError(correction.challenge_id)
            if actor_id == correction.requested_by:
                raise NotAuthorizedError(
                    f"Requester {actor_id} tried to resolve own correction {correction_id}",
                    "You requested this correction. The other player has to respond."
                )
            if not challenge.involves(actor_id):
                raise NotAuthorizedError(
                    f"{actor_id} is not in challenge {challenge.id}",
                    "Only the other player in this match can respond to the correction."
                )

            resolved = await session.execute(
                update(ScoreCorrection)
                .where(ScoreCorrection.id == correction_id, ScoreCorrection.status == CorrectionStatus.PENDING)
                .values(status=status, approved_by=actor_id, resolved_at=self.clock())
                .execution_options(synchronize_session=False)
            )
            if resolved.rowcount != 1:
                raise StateConflictError(
                    f"Correction {correction_id} is {correction.status.value}",
                    "This correction has already been handled."
                )
            await session.execute(
                update(Challenge)
                .where(Challenge.id == challenge.id, Challenge.pending_correction_id == correction_id)
                .values(pending_correction_id=None)
                .execution_options(synchronize_session=False)
            )
            self.logger.info(f"Correction {correction_id} {status.value} by {actor_id}")
            return await self._load(correction_id, session)
        return await self._write(_apply, session)

    async def approve(self, correction_id: int, actor_id: str,
                      session: Optional[AsyncSession] = None) -> ScoreCorrection:
        """Record the corrected line. Prior rank and stat changes stay in place."""
        return await self._resolve(correction_id, actor_id, CorrectionStatus.APPROVED, session)

    async def reject(self, correction_id: int, actor_id: str,
                     session: Optional[AsyncSession] = None) -> ScoreCorrection:
        return await self._resolve(correction_id, actor_id, CorrectionStatus.REJECTED, session)
