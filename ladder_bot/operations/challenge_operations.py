"""
Challenge Operations - the challenge ledger and its state machine.

    pending  -> accepted | expired | cancelled | forfeited
    accepted -> completed | disputed | cancelled | voided
    disputed -> completed | voided

Every transition is an UPDATE conditioned on the expected current status
and its rowcount is checked, so a transition that lost a race with the
scheduler or another member is rejected instead of applied twice.
Transitions that finish a match run the completion pipeline in the same
transaction.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Set

from sqlalchemy import select, update, or_
from sqlalchemy.ext.asyncio import AsyncSession

from ladder_bot.database.database import Database
from ladder_bot.database.models import Challenge, ChallengeStatus, Player
from ladder_bot.operations.base import BaseOperations
from ladder_bot.operations.eligibility import can_challenge, check_unranked_match
from ladder_bot.operations.match_completion import CompletionResult, MatchCompletion, MatchOutcome
from ladder_bot.operations.player_operations import PlayerOperations
from ladder_bot.services.configuration import LadderSettings
from ladder_bot.utils.clock import Clock, discord_timestamp, utc_now
from ladder_bot.utils.ladder_exceptions import (
    ChallengeNotFoundError, LadderValidationError, NotAuthorizedError, StateConflictError
)
from ladder_bot.utils.scores import MatchScore

_STATUS_MESSAGES = {
    ChallengeStatus.PENDING: "This challenge is still waiting for a response.",
    ChallengeStatus.ACCEPTED: "This match is already in progress.",
    ChallengeStatus.COMPLETED: "This match has already been completed.",
    ChallengeStatus.DISPUTED: "This match is under dispute.",
    ChallengeStatus.EXPIRED: "This challenge has expired.",
    ChallengeStatus.FORFEITED: "This challenge was declined.",
    ChallengeStatus.CANCELLED: "This challenge was cancelled.",
    ChallengeStatus.VOIDED: "This match was voided.",
}


@dataclass
class ChallengeResolution:
    """A challenge after a terminal transition, with the pipeline output when one ran"""
    challenge: Challenge
    completion: Optional[CompletionResult] = None


class ChallengeOperations(BaseOperations):
    """Service class for challenge ledger operations."""

    def __init__(self, db: Database, players: PlayerOperations, completion: MatchCompletion,
                 clock: Clock = utc_now):
        super().__init__(db, clock)
        self.players = players
        self.completion = completion

    # Queries

    async def _load(self, challenge_id: int, session: AsyncSession) -> Optional[Challenge]:
        result = await session.execute(
            select(Challenge)
            .where(Challenge.id == challenge_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _require(self, challenge_id: int, session: AsyncSession) -> Challenge:
        challenge = await self._load(challenge_id, session)
        if challenge is None:
            raise ChallengeNotFoundError(challenge_id)
        return challenge

    async def get_challenge(self, challenge_id: int, session: Optional[AsyncSession] = None) -> Optional[Challenge]:
        async def _get(session: AsyncSession) -> Optional[Challenge]:
            return await self._load(challenge_id, session)
        return await self._read(_get, session)

    async def get_active_for_player(self, discord_id: str,
                                    session: Optional[AsyncSession] = None) -> Optional[Challenge]:
        """The pending or accepted challenge this player is part of, if any."""
        async def _get(session: AsyncSession) -> Optional[Challenge]:
            result = await session.execute(
                select(Challenge)
                .where(
                    Challenge.status.in_(ChallengeStatus.active()),
                    or_(Challenge.challenger_id == str(discord_id), Challenge.defender_id == str(discord_id)),
                )
                .order_by(Challenge.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()
        return await self._read(_get, session)

    async def get_busy_player_ids(self, session: Optional[AsyncSession] = None) -> Set[str]:
        """Identities currently tied up in an active challenge."""
        async def _get(session: AsyncSession) -> Set[str]:
            result = await session.execute(
                select(Challenge.challenger_id, Challenge.defender_id)
                .where(Challenge.status.in_(ChallengeStatus.active()))
            )
            busy = set()
            for challenger_id, defender_id in result.all():
                busy.update((challenger_id, defender_id))
            return busy
        return await self._read(_get, session)

    async def get_challenges_by_status(self, statuses: Iterable[ChallengeStatus],
                                       session: Optional[AsyncSession] = None) -> List[Challenge]:
        async def _get(session: AsyncSession) -> List[Challenge]:
            result = await session.execute(
                select(Challenge)
                .where(Challenge.status.in_(list(statuses)))
                .order_by(Challenge.created_at)
            )
            return list(result.scalars().all())
        return await self._read(_get, session)

    async def get_active_challenges(self, session: Optional[AsyncSession] = None) -> List[Challenge]:
        return await self.get_challenges_by_status(ChallengeStatus.active(), session=session)

    async def get_disputed_challenges(self, session: Optional[AsyncSession] = None) -> List[Challenge]:
        return await self.get_challenges_by_status([ChallengeStatus.DISPUTED], session=session)

    # Creation

    async def _check_creation_gates(self, challenger: Player, defender: Player, session: AsyncSession):
        now = self.clock()
        if await self.get_active_for_player(challenger.discord_id, session=session):
            raise StateConflictError(
                f"Challenger {challenger.discord_id} already has an active challenge",
                "You already have an active challenge. Complete it before starting a new one."
            )
        if challenger.is_on_cooldown(now):
            raise StateConflictError(
                f"Challenger {challenger.discord_id} on cooldown",
                f"You are on cooldown. You can challenge again {discord_timestamp(challenger.cooldown_until)}"
            )
        if defender.is_on_cooldown(now):
            raise StateConflictError(
                f"Defender {defender.discord_id} on cooldown",
                f"<@{defender.discord_id}> is on cooldown. Try again later."
            )
        if await self.get_active_for_player(defender.discord_id, session=session):
            raise StateConflictError(
                f"Defender {defender.discord_id} already has an active challenge",
                f"<@{defender.discord_id}> is already waiting on another challenge. "
                "Try again once their current match is finished."
            )

    async def create_challenge(self, challenger_id: str, defender_id: str, settings: LadderSettings,
                               session: Optional[AsyncSession] = None) -> Challenge:
        """
        Create a ranked challenge against the holder of a rank.

        Raises:
            LadderValidationError: defender unranked or out of reach
            StateConflictError: an active challenge or cooldown blocks either side
        """
        challenger_id, defender_id = str(challenger_id), str(defender_id)
        if challenger_id == defender_id:
            raise LadderValidationError("Self challenge", "You can't challenge yourself.")

        async def _create(session: AsyncSession) -> Challenge:
            challenger = await self.players.get_or_create(challenger_id, session)
            defender = await self.players.get_or_create(defender_id, session)

            if defender.rank is None:
                raise LadderValidationError(
                    f"Defender {defender_id} is unranked", "This player is no longer ranked."
                )
            if not can_challenge(challenger.rank, defender.rank, settings.open_challenge_ranks, settings.max_rank):
                raise LadderValidationError(
                    f"{challenger_id} (#{challenger.rank}) may not challenge #{defender.rank}",
                    f"You can't challenge rank #{defender.rank} from "
                    f"{'unranked' if challenger.rank is None else f'rank #{challenger.rank}'}."
                )
            await self._check_creation_gates(challenger, defender, session)

            now = self.clock()
            challenge = Challenge(
                challenger_id=challenger_id,
                defender_id=defender_id,
                defender_rank=defender.rank,
                status=ChallengeStatus.PENDING,
                created_at=now,
                expires_at=now + settings.response_window,
            )
            session.add(challenge)
            await session.flush()
            self.logger.info(
                f"Created challenge {challenge.id}: {challenger_id} (#{challenger.rank}) -> "
                f"{defender_id} (#{defender.rank})"
            )
            return challenge
        return await self._write(_create, session)

    async def create_unranked_challenge(self, challenger_id: str, defender_id: str, settings: LadderSettings,
                                        defender_is_bot: bool = False,
                                        session: Optional[AsyncSession] = None) -> Challenge:
        """Create a challenge between two unranked players. No rank is at stake."""
        challenger_id, defender_id = str(challenger_id), str(defender_id)

        async def _create(session: AsyncSession) -> Challenge:
            challenger = await self.players.get_or_create(challenger_id, session)
            defender = await self.players.get_or_create(defender_id, session)
            check_unranked_match(challenger_id, defender_id, challenger.rank, defender.rank, defender_is_bot)
            await self._check_creation_gates(challenger, defender, session)

            now = self.clock()
            challenge = Challenge(
                challenger_id=challenger_id,
                defender_id=defender_id,
                defender_rank=0,
                status=ChallengeStatus.PENDING,
                created_at=now,
                expires_at=now + settings.response_window,
            )
            session.add(challenge)
            await session.flush()
            self.logger.info(f"Created unranked challenge {challenge.id}: {challenger_id} -> {defender_id}")
            return challenge

        return await self._write(_create, session)

    async def set_presentation_refs(self, challenge_id: int, message_ref: Optional[str] = None,
                                    channel_ref: Optional[str] = None, thread_ref: Optional[str] = None,
                                    session: Optional[AsyncSession] = None):
        """Store opaque handles to the rendered challenge post."""
        values = {k: str(v) for k, v in
                  (('message_ref', message_ref), ('channel_ref', channel_ref), ('thread_ref', thread_ref))
                  if v is not None}
        if not values:
            return

        async def _set(session: AsyncSession):
            await session.execute(
                update(Challenge).where(Challenge.id == challenge_id).values(**values)
                .execution_options(synchronize_session=False)
            )
        await self._write(_set, session)

    # Transitions

    async def _transition(self, challenge_id: int, from_statuses: Iterable[ChallengeStatus],
                          to_status: ChallengeStatus, session: AsyncSession,
                          extra_conditions=(), **values) -> Challenge:
        """Conditionally move a challenge to a new status, re-validating inside the UPDATE."""
        from_statuses = list(from_statuses)
        result = await session.execute(
            update(Challenge)
            .where(Challenge.id == challenge_id, Challenge.status.in_(from_statuses), *extra_conditions)
            .values(status=to_status, **values)
            .execution_options(synchronize_session=False)
        )
        challenge = await self._require(challenge_id, session)
        if result.rowcount != 1:
            raise StateConflictError(
                f"Challenge {challenge_id} is {challenge.status.value}, "
                f"expected one of {[s.value for s in from_statuses]}",
                _STATUS_MESSAGES.get(challenge.status, "This challenge can no longer be changed.")
            )
        self.logger.info(f"Challenge {challenge_id}: {'/'.join(s.value for s in from_statuses)} -> {to_status.value}")
        return challenge

    def _require_defender(self, challenge: Challenge, actor_id: str, verb: str):
        if str(actor_id) != challenge.defender_id:
            raise NotAuthorizedError(
                f"{actor_id} is not the defender of challenge {challenge.id}",
                f"Only the defender can {verb} this challenge."
            )

    async def accept(self, challenge_id: int, actor_id: str,
                     session: Optional[AsyncSession] = None) -> Challenge:
        """Defender accepts a pending challenge."""
        async def _accept(session: AsyncSession) -> Challenge:
            challenge = await self._require(challenge_id, session)
            self._require_defender(challenge, actor_id, "accept")
            return await self._transition(
                challenge_id, [ChallengeStatus.PENDING], ChallengeStatus.ACCEPTED, session,
                accepted_at=self.clock(),
            )
        return await self._write(_accept, session)

    def _forfeit_outcome(self, challenge: Challenge) -> MatchOutcome:
        """Challenger wins 2-0 without play and without cooldown."""
        return MatchOutcome(
            challenger_id=challenge.challenger_id,
            defender_id=challenge.defender_id,
            defender_rank=challenge.defender_rank,
            winner_id=challenge.challenger_id,
            loser_id=challenge.defender_id,
            is_forfeit=True,
            skip_cooldown=True,
            challenge_id=challenge.id,
        )

    async def decline(self, challenge_id: int, actor_id: str, settings: LadderSettings) -> ChallengeResolution:
        """Defender declines; the challenger wins by forfeit."""
        async with self.db.transaction() as session:
            challenge = await self._require(challenge_id, session)
            self._require_defender(challenge, actor_id, "decline")
            challenge = await self._transition(
                challenge_id, [ChallengeStatus.PENDING], ChallengeStatus.FORFEITED, session
            )
            completion = await self.completion.apply(self._forfeit_outcome(challenge), settings, session)
        await self.completion.publish(completion)
        return ChallengeResolution(challenge, completion)

    async def get_expired_pending_ids(self, session: Optional[AsyncSession] = None) -> List[int]:
        async def _get(session: AsyncSession) -> List[int]:
            result = await session.execute(
                select(Challenge.id)
                .where(Challenge.status == ChallengeStatus.PENDING, Challenge.expires_at <= self.clock())
                .order_by(Challenge.expires_at)
            )
            return list(result.scalars().all())
        return await self._read(_get, session)

    async def expire(self, challenge_id: int, settings: LadderSettings) -> Optional[ChallengeResolution]:
        """
        Expire an overdue pending challenge as a forfeit win for the challenger.

        Returns None when the challenge is no longer pending or not yet due,
        e.g. because the defender responded first.
        """
        try:
            async with self.db.transaction() as session:
                challenge = await self._transition(
                    challenge_id, [ChallengeStatus.PENDING], ChallengeStatus.EXPIRED, session,
                    extra_conditions=(Challenge.expires_at <= self.clock(),),
                )
                completion = await self.completion.apply(self._forfeit_outcome(challenge), settings, session)
        except (StateConflictError, ChallengeNotFoundError) as e:
            self.logger.warning(f"Skipping expiry of challenge {challenge_id}: {e.message}")
            return None
        await self.completion.publish(completion)
        return ChallengeResolution(challenge, completion)

    async def cancel(self, challenge_id: int, admin_id: str,
                     session: Optional[AsyncSession] = None) -> Challenge:
        """Admin cancel. No rank or cooldown change."""
        async def _cancel(session: AsyncSession) -> Challenge:
            challenge = await self._transition(
                challenge_id, [ChallengeStatus.PENDING, ChallengeStatus.ACCEPTED],
                ChallengeStatus.CANCELLED, session, pending_result_id=None,
            )
            self.logger.info(f"Admin {admin_id} cancelled challenge {challenge_id}")
            return challenge
        return await self._write(_cancel, session)

    async def void(self, challenge_id: int, admin_id: str,
                   session: Optional[AsyncSession] = None) -> Challenge:
        """Admin void of an in-progress or disputed match. No rank or cooldown change."""
        async def _void(session: AsyncSession) -> Challenge:
            challenge = await self._transition(
                challenge_id, [ChallengeStatus.ACCEPTED, ChallengeStatus.DISPUTED],
                ChallengeStatus.VOIDED, session, pending_result_id=None,
            )
            self.logger.info(f"Admin {admin_id} voided challenge {challenge_id}")
            return challenge
        return await self._write(_void, session)

    async def complete_with_result(self, challenge_id: int, from_statuses: Iterable[ChallengeStatus],
                                   settings: LadderSettings, session: AsyncSession,
                                   score: Optional[MatchScore] = None, winner_id: Optional[str] = None,
                                   sets_loser: int = 0) -> ChallengeResolution:
        """
        Move a challenge to completed and run the pipeline with cooldowns.

        The winner comes from ``score`` when given, otherwise ``winner_id``
        must name a participant.
        """
        challenge = await self._require(challenge_id, session)
        if score is not None:
            winner_id = challenge.challenger_id if score.challenger_won else challenge.defender_id
        elif winner_id is None or not challenge.involves(str(winner_id)):
            raise LadderValidationError(
                f"Winner {winner_id} not in challenge {challenge_id}",
                "The winner must be one of the two players in this match."
            )
        winner_id = str(winner_id)

        challenge = await self._transition(
            challenge_id, from_statuses, ChallengeStatus.COMPLETED, session, pending_result_id=None,
        )
        outcome = MatchOutcome(
            challenger_id=challenge.challenger_id,
            defender_id=challenge.defender_id,
            defender_rank=challenge.defender_rank,
            winner_id=winner_id,
            loser_id=challenge.opponent_of(winner_id),
            score=score,
            challenge_id=challenge.id,
            sets_winner=2,
            sets_loser=sets_loser,
        )
        completion = await self.completion.apply(outcome, settings, session)
        return ChallengeResolution(challenge, completion)

    async def mark_disputed(self, challenge_id: int, session: AsyncSession) -> Challenge:
        """Accepted match goes to admin review. The first dispute reminder is due one interval later."""
        return await self._transition(
            challenge_id, [ChallengeStatus.ACCEPTED], ChallengeStatus.DISPUTED, session,
            pending_result_id=None, last_reminder_at=self.clock(),
        )

    async def resolve_dispute(self, challenge_id: int, admin_id: str, score: MatchScore,
                              settings: LadderSettings) -> ChallengeResolution:
        """Admin settles a disputed match with final scores."""
        async with self.db.transaction() as session:
            resolution = await self.complete_with_result(
                challenge_id, [ChallengeStatus.DISPUTED], settings, session, score=score
            )
        self.logger.info(f"Admin {admin_id} resolved dispute on challenge {challenge_id}: {score.describe()}")
        await self.completion.publish(resolution.completion)
        return resolution

    # Reminders

    async def get_due_score_reminders(self, settings: LadderSettings) -> List[Challenge]:
        """
        Accepted matches with no submitted result that were never nagged,
        or whose last nag is older than the reminder interval.
        """
        threshold = self.clock() - settings.reminder_interval

        async def _due(session: AsyncSession) -> List[Challenge]:
            result = await session.execute(
                select(Challenge)
                .where(
                    Challenge.status == ChallengeStatus.ACCEPTED,
                    Challenge.pending_result_id.is_(None),
                    or_(Challenge.last_reminder_at.is_(None), Challenge.last_reminder_at <= threshold),
                )
                .order_by(Challenge.id)
            )
            return list(result.scalars().all())
        return await self._read(_due)

    async def get_due_dispute_reminders(self, settings: LadderSettings) -> List[Challenge]:
        """Disputed matches not nagged about within the reminder interval."""
        threshold = self.clock() - settings.reminder_interval

        async def _due(session: AsyncSession) -> List[Challenge]:
            result = await session.execute(
                select(Challenge)
                .where(
                    Challenge.status == ChallengeStatus.DISPUTED,
                    or_(Challenge.last_reminder_at.is_(None), Challenge.last_reminder_at <= threshold),
                )
                .order_by(Challenge.id)
            )
            return list(result.scalars().all())
        return await self._read(_due)

    async def mark_reminded(self, challenge_id: int, session: Optional[AsyncSession] = None) -> bool:
        """Stamp last_reminder_at once a nag went out. False when the match is no longer open."""
        async def _mark(session: AsyncSession) -> bool:
            result = await session.execute(
                update(Challenge)
                .where(
                    Challenge.id == challenge_id,
                    Challenge.status.in_((ChallengeStatus.ACCEPTED, ChallengeStatus.DISPUTED)),
                )
                .values(last_reminder_at=self.clock())
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1
        return await self._write(_mark, session)
