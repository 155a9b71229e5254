"""
Result Operations - the submitted-result ledger.

The challenger submits a score line, the defender confirms or disputes
it. A challenge points at its single pending result through
``Challenge.pending_result_id``; a second submission is rejected while
that result is unconfirmed and undisputed.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from ladder_bot.database.database import Database
from ladder_bot.database.models import Challenge, ChallengeStatus, MatchResult
from ladder_bot.operations.base import BaseOperations
from ladder_bot.operations.challenge_operations import ChallengeOperations
from ladder_bot.operations.match_completion import CompletionResult
from ladder_bot.services.configuration import LadderSettings
from ladder_bot.utils.clock import Clock, utc_now
from ladder_bot.utils.ladder_exceptions import (
    ChallengeNotFoundError, NotAuthorizedError, ResultNotFoundError, StateConflictError
)
from ladder_bot.utils.scores import MatchScore, match_score_from_json


@dataclass
class ConfirmedResult:
    challenge: Challenge
    result: MatchResult
    completion: CompletionResult


@dataclass
class DisputedResult:
    challenge: Challenge
    result: MatchResult


class ResultOperations(BaseOperations):
    """Submit, confirm and dispute match results."""

    def __init__(self, db: Database, challenges: ChallengeOperations, clock: Clock = utc_now):
        super().__init__(db, clock)
        self.challenges = challenges

    async def _load(self, result_id: int, session: AsyncSession) -> Optional[MatchResult]:
        query = await session.execute(
            select(MatchResult)
            .where(MatchResult.id == result_id)
            .execution_options(populate_existing=True)
        )
        return query.scalar_one_or_none()

    async def get_result(self, result_id: int, session: Optional[AsyncSession] = None) -> Optional[MatchResult]:
        async def _get(session: AsyncSession) -> Optional[MatchResult]:
            return await self._load(result_id, session)
        return await self._read(_get, session)

    async def get_pending_for_challenge(self, challenge_id: int,
                                        session: Optional[AsyncSession] = None) -> Optional[MatchResult]:
        async def _get(session: AsyncSession) -> Optional[MatchResult]:
            query = await session.execute(
                select(MatchResult)
                .where(
                    MatchResult.challenge_id == challenge_id,
                    MatchResult.confirmed.is_(False),
                    MatchResult.disputed.is_(False),
                )
                .order_by(MatchResult.id.desc())
                .limit(1)
            )
            return query.scalar_one_or_none()
        return await self._read(_get, session)

    async def submit(self, challenge_id: int, submitter_id: str, score: MatchScore,
                     session: Optional[AsyncSession] = None) -> MatchResult:
        """
        Record the challenger's score line for an accepted match.

        Raises:
            ChallengeNotFoundError: challenge is gone
            StateConflictError: match not in progress, or a result is already pending
            NotAuthorizedError: submitter is not the challenger
        """
        submitter_id = str(submitter_id)

        async def _submit(session: AsyncSession) -> MatchResult:
            challenge = await self.challenges.get_challenge(challenge_id, session=session)
            if challenge is None:
                raise ChallengeNotFoundError(challenge_id)
            if challenge.status != ChallengeStatus.ACCEPTED:
                raise StateConflictError(
                    f"Challenge {challenge_id} is {challenge.status.value}", "This match is no longer active."
                )
            if submitter_id == challenge.defender_id:
                raise NotAuthorizedError(
                    f"Defender {submitter_id} tried to submit for challenge {challenge_id}",
                    f"Only the challenger (<@{challenge.challenger_id}>) can submit the result. "
                    "You'll confirm it after they submit."
                )
            if submitter_id != challenge.challenger_id:
                raise NotAuthorizedError(
                    f"Non-participant {submitter_id} tried to submit for challenge {challenge_id}",
                    "Only the match participants can submit results."
                )

            existing = await self.get_pending_for_challenge(challenge_id, session=session)
            if challenge.pending_result_id is not None or existing is not None:
                raise StateConflictError(
                    f"Challenge {challenge_id} already has a pending result",
                    f"A result was already submitted! Waiting for <@{challenge.defender_id}> "
                    "to confirm or dispute it."
                )

            winner_id = challenge.challenger_id if score.challenger_won else challenge.defender_id
            result = MatchResult(
                challenge_id=challenge_id,
                submitted_by=submitter_id,
                winner_id=winner_id,
                loser_id=challenge.opponent_of(winner_id),
                sets_winner=score.sets_winner,
                sets_loser=score.sets_loser,
                scores=score.to_json(),
                created_at=self.clock(),
            )
            session.add(result)
            await session.flush()

            claimed = await session.execute(
                update(Challenge)
                .where(
                    Challenge.id == challenge_id,
                    Challenge.status == ChallengeStatus.ACCEPTED,
                    Challenge.pending_result_id.is_(None),
                )
                .values(pending_result_id=result.id)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount != 1:
                raise StateConflictError(
                    f"Challenge {challenge_id} changed during submission", "This match is no longer active."
                )
            self.logger.info(
                f"Result {result.id} submitted for challenge {challenge_id}: "
                f"winner {winner_id}, {score.describe()}"
            )
            return result
        return await self._write(_submit, session)

    async def _load_for_defender(self, result_id: int, actor_id: str,
                                 session: AsyncSession) -> Tuple[MatchResult, Challenge]:
        result = await self._load(result_id, session)
        if result is None:
            raise ResultNotFoundError(result_id)
        challenge = await self.challenges.get_challenge(result.challenge_id, session=session)
        if challenge is None:
            raise ChallengeNotFoundError(result.challenge_id)

        actor_id = str(actor_id)
        if actor_id == challenge.challenger_id:
            raise NotAuthorizedError(
                f"Submitter {actor_id} acted on own result {result_id}",
                f"You submitted this result. Waiting for <@{challenge.defender_id}> to confirm."
            )
        if actor_id != challenge.defender_id:
            raise NotAuthorizedError(
                f"{actor_id} is not the defender for result {result_id}",
                "Only the defender can confirm or dispute the result."
            )
        if result.confirmed:
            raise StateConflictError(f"Result {result_id} already confirmed",
                                     "This result has already been confirmed.")
        if result.disputed:
            raise StateConflictError(f"Result {result_id} already disputed", "This result has been disputed.")
        return result, challenge

    async def _mark(self, result_id: int, session: AsyncSession, **values):
        """Flip confirmed/disputed only if neither is set yet."""
        marked = await session.execute(
            update(MatchResult)
            .where(
                MatchResult.id == result_id,
                MatchResult.confirmed.is_(False),
                MatchResult.disputed.is_(False),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if marked.rowcount != 1:
            raise StateConflictError(f"Result {result_id} already processed",
                                     "This result has already been processed.")
        return await self._load(result_id, session)

    async def confirm(self, result_id: int, actor_id: str, settings: LadderSettings) -> ConfirmedResult:
        """Defender confirms: the challenge completes and the pipeline runs, atomically."""
        async with self.db.transaction() as session:
            result, challenge = await self._load_for_defender(result_id, actor_id, session)
            result = await self._mark(result_id, session, confirmed=True)
            resolution = await self.challenges.complete_with_result(
                challenge.id, [ChallengeStatus.ACCEPTED], settings, session,
                score=match_score_from_json(result.scores),
            )
        self.logger.info(f"Result {result_id} confirmed by {actor_id}")
        await self.challenges.completion.publish(resolution.completion)
        return ConfirmedResult(resolution.challenge, result, resolution.completion)

    async def dispute(self, result_id: int, actor_id: str) -> DisputedResult:
        """Defender disputes: the challenge waits for an admin."""
        async with self.db.transaction() as session:
            result, challenge = await self._load_for_defender(result_id, actor_id, session)
            result = await self._mark(result_id, session, disputed=True)
            challenge = await self.challenges.mark_disputed(challenge.id, session)
        self.logger.info(f"Result {result_id} disputed by {actor_id}")
        return DisputedResult(challenge, result)

    async def get_latest_for_challenge(self, challenge_id: int,
                                       session: Optional[AsyncSession] = None) -> Optional[MatchResult]:
        """Most recent result of any state, e.g. the disputed line shown to admins."""
        async def _get(session: AsyncSession) -> Optional[MatchResult]:
            query = await session.execute(
                select(MatchResult)
                .where(MatchResult.challenge_id == challenge_id)
                .order_by(MatchResult.id.desc())
                .limit(1)
            )
            return query.scalar_one_or_none()
        return await self._read(_get, session)

    async def get_due_confirm_reminders(self, settings: LadderSettings) -> List[Tuple[Challenge, MatchResult]]:
        """Pending results not nagged about within the reminder interval, with their challenge."""
        threshold = self.clock() - settings.reminder_interval

        async def _due(session: AsyncSession) -> List[Tuple[Challenge, MatchResult]]:
            query = await session.execute(
                select(Challenge, MatchResult)
                .join(MatchResult, Challenge.id == MatchResult.challenge_id)
                .where(
                    Challenge.status == ChallengeStatus.ACCEPTED,
                    MatchResult.confirmed.is_(False),
                    MatchResult.disputed.is_(False),
                    func.coalesce(MatchResult.last_reminder_at, MatchResult.created_at) <= threshold,
                )
                .order_by(MatchResult.id)
            )
            return [(challenge, result) for challenge, result in query.all()]
        return await self._read(_due)

    async def mark_reminded(self, result_id: int, session: Optional[AsyncSession] = None) -> bool:
        """Stamp last_reminder_at once a confirm nag went out. False when the result was settled meanwhile."""
        async def _mark(session: AsyncSession) -> bool:
            stamped = await session.execute(
                update(MatchResult)
                .where(
                    MatchResult.id == result_id,
                    MatchResult.confirmed.is_(False),
                    MatchResult.disputed.is_(False),
                )
                .values(last_reminder_at=self.clock())
                .execution_options(synchronize_session=False)
            )
            return stamped.rowcount == 1
        return await self._write(_mark, session)
