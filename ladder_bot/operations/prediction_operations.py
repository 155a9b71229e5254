from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy import select, update, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from ladder_bot.database.models import Challenge, ChallengeStatus, Prediction
from ladder_bot.operations.base import BaseOperations
from ladder_bot.utils.ladder_exceptions import (
    ChallengeNotFoundError, LadderValidationError, NotAuthorizedError, StateConflictError
)


@dataclass
class PredictionStats:
    total: int
    correct: int

    @property
    def accuracy(self) -> float:
        return self.correct / self.total if self.total else 0.0


class PredictionOperations(BaseOperations):
    """Spectator predictions on accepted challenges."""

    async def predict(self, challenge_id: int, user_id: str, predicted_winner_id: str,
                      session: Optional[AsyncSession] = None) -> Prediction:
        """Record or overwrite a user's pick for an accepted challenge."""
        user_id, predicted_winner_id = str(user_id), str(predicted_winner_id)

        async def _predict(session: AsyncSession) -> Prediction:
            challenge = await session.get(Challenge, challenge_id)
            if challenge is None:
                raise ChallengeNotFoundError(challenge_id)
            if challenge.status != ChallengeStatus.ACCEPTED:
                raise StateConflictError(
                    f"Challenge {challenge_id} is {challenge.status.value}",
                    "Predictions are only open while the match is in progress."
                )
            if challenge.involves(user_id):
                raise NotAuthorizedError(
                    f"Participant {user_id} tried to predict challenge {challenge_id}",
                    "You can't predict your own match."
                )
            if not challenge.involves(predicted_winner_id):
                raise LadderValidationError(
                    f"{predicted_winner_id} is not in challenge {challenge_id}",
                    "You can only pick one of the two players."
                )

            result = await session.execute(
                select(Prediction).where(
                    Prediction.challenge_id == challenge_id, Prediction.user_id == user_id
                )
            )
            prediction = result.scalar_one_or_none()
            if prediction is None:
                prediction = Prediction(
                    challenge_id=challenge_id, user_id=user_id,
                    predicted_winner_id=predicted_winner_id, created_at=self.clock(),
                )
                session.add(prediction)
            else:
                prediction.predicted_winner_id = predicted_winner_id
                prediction.created_at = self.clock()
            await session.flush()
            self.logger.debug(f"User {user_id} predicts {predicted_winner_id} in challenge {challenge_id}")
            return prediction
        return await self._write(_predict, session)

    async def get_for_challenge(self, challenge_id: int, session: Optional[AsyncSession] = None) -> List[Prediction]:
        async def _get(session: AsyncSession) -> List[Prediction]:
            result = await session.execute(
                select(Prediction).where(Prediction.challenge_id == challenge_id).order_by(Prediction.id)
            )
            return list(result.scalars().all())
        return await self._read(_get, session)

    async def get_user_prediction(self, challenge_id: int, user_id: str,
                                  session: Optional[AsyncSession] = None) -> Optional[Prediction]:
        async def _get(session: AsyncSession) -> Optional[Prediction]:
            result = await session.execute(
                select(Prediction).where(
                    Prediction.challenge_id == challenge_id, Prediction.user_id == str(user_id)
                )
            )
            return result.scalar_one_or_none()
        return await self._read(_get, session)

    async def get_prediction_counts(self, challenge_id: int,
                                    session: Optional[AsyncSession] = None) -> Dict[str, int]:
        """Number of picks per predicted winner."""
        async def _get(session: AsyncSession) -> Dict[str, int]:
            result = await session.execute(
                select(Prediction.predicted_winner_id, func.count())
                .where(Prediction.challenge_id == challenge_id)
                .group_by(Prediction.predicted_winner_id)
            )
            return {winner: int(n) for winner, n in result.all()}
        return await self._read(_get, session)

    async def resolve_predictions(self, challenge_id: int, winner_id: str, session: AsyncSession) -> int:
        """Mark every prediction for the challenge right or wrong. Returns rows touched."""
        result = await session.execute(
            update(Prediction)
            .where(Prediction.challenge_id == challenge_id)
            .values(correct=case((Prediction.predicted_winner_id == str(winner_id), True), else_=False))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def get_user_stats(self, user_id: str, session: Optional[AsyncSession] = None) -> PredictionStats:
        async def _get(session: AsyncSession) -> PredictionStats:
            result = await session.execute(
                select(
                    func.count(Prediction.id),
                    func.sum(case((Prediction.correct.is_(True), 1), else_=0)),
                ).where(Prediction.user_id == str(user_id), Prediction.correct.is_not(None))
            )
            total, correct = result.one()
            return PredictionStats(int(total or 0), int(correct or 0))
        return await self._read(_get, session)
