from enum import Enum

from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Text, JSON,
    ForeignKey, Enum as SQLEnum, UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.orm import declarative_base

from ladder_bot.utils.clock import utc_now

Base = declarative_base()


class ChallengeStatus(Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    COMPLETED = "completed"
    DISPUTED = "disputed"
    EXPIRED = "expired"
    FORFEITED = "forfeited"
    CANCELLED = "cancelled"
    VOIDED = "voided"

    @classmethod
    def active(cls):
        return (cls.PENDING, cls.ACCEPTED)


class CorrectionStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Player(Base):
    __tablename__ = 'players'

    discord_id = Column(String(32), primary_key=True)
    rank = Column(Integer, nullable=True, unique=True)
    cooldown_until = Column(DateTime, nullable=True)

    # Record
    wins = Column(Integer, default=0, nullable=False)
    losses = Column(Integer, default=0, nullable=False)
    win_streak = Column(Integer, default=0, nullable=False)
    best_win_streak = Column(Integer, default=0, nullable=False)
    loss_streak = Column(Integer, default=0, nullable=False)

    # Derived stats
    title_defenses = Column(Integer, default=0, nullable=False)
    title_takes = Column(Integer, default=0, nullable=False)
    perfect_matches = Column(Integer, default=0, nullable=False)
    comeback_wins = Column(Integer, default=0, nullable=False)
    highest_rank = Column(Integer, nullable=True)
    rank_since = Column(DateTime, nullable=True)
    total_points = Column(Integer, default=0, nullable=False)
    total_points_conceded = Column(Integer, default=0, nullable=False)
    elo = Column(Integer, default=1200, nullable=False)

    # Preferences
    dm_notifications = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=utc_now)

    __table_args__ = (
        CheckConstraint('rank IS NULL OR rank <> 0', name='ck_player_rank_nonzero'),
    )

    @property
    def is_ranked(self) -> bool:
        return self.rank is not None and self.rank > 0

    @property
    def total_matches(self) -> int:
        return (self.wins or 0) + (self.losses or 0)

    @property
    def win_rate(self) -> float:
        return (self.wins or 0) / self.total_matches if self.total_matches else 0.0

    def is_on_cooldown(self, now) -> bool:
        return self.cooldown_until is not None and self.cooldown_until > now

    def __repr__(self):
        return f"<Player(discord_id='{self.discord_id}', rank={self.rank}, elo={self.elo})>"


class Challenge(Base):
    __tablename__ = 'challenges'

    id = Column(Integer, primary_key=True, autoincrement=True)
    challenger_id = Column(String(32), nullable=False, index=True)
    defender_id = Column(String(32), nullable=False, index=True)
    defender_rank = Column(Integer, nullable=False, default=0)  # 0 for unranked matches
    status = Column(SQLEnum(ChallengeStatus), default=ChallengeStatus.PENDING, nullable=False, index=True)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    accepted_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    last_reminder_at = Column(DateTime, nullable=True)

    # Current sub-workflow records owned by this challenge
    pending_result_id = Column(Integer, nullable=True)
    pending_correction_id = Column(Integer, nullable=True)

    # Set in the same transaction that applies rank/stat effects
    completion_applied = Column(Boolean, default=False, nullable=False)

    # Opaque presentation handles
    message_ref = Column(String(32), nullable=True)
    channel_ref = Column(String(32), nullable=True)
    thread_ref = Column(String(32), nullable=True)

    @property
    def is_active(self) -> bool:
        return self.status in ChallengeStatus.active()

    @property
    def is_unranked_match(self) -> bool:
        return not self.defender_rank

    def involves(self, discord_id: str) -> bool:
        return discord_id in (self.challenger_id, self.defender_id)

    def opponent_of(self, discord_id: str) -> str:
        return self.defender_id if discord_id == self.challenger_id else self.challenger_id

    def __repr__(self):
        return (f"<Challenge(id={self.id}, challenger='{self.challenger_id}', "
                f"defender='{self.defender_id}', status={self.status.value})>")


class MatchResult(Base):
    """A submitted score line awaiting the defender's confirmation"""
    __tablename__ = 'match_results'

    id = Column(Integer, primary_key=True, autoincrement=True)
    challenge_id = Column(Integer, ForeignKey('challenges.id'), nullable=False, index=True)
    submitted_by = Column(String(32), nullable=False)
    winner_id = Column(String(32), nullable=False)
    loser_id = Column(String(32), nullable=False)
    sets_winner = Column(Integer, nullable=False)
    sets_loser = Column(Integer, nullable=False)
    scores = Column(JSON, nullable=False)  # [[challenger, defender], ...]
    confirmed = Column(Boolean, default=False, nullable=False)
    disputed = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    last_reminder_at = Column(DateTime, nullable=True)

    @property
    def is_pending(self) -> bool:
        return not self.confirmed and not self.disputed

    def __repr__(self):
        return f"<MatchResult(id={self.id}, challenge_id={self.challenge_id}, winner='{self.winner_id}')>"


class ScoreCorrection(Base):
    __tablename__ = 'score_corrections'

    id = Column(Integer, primary_key=True, autoincrement=True)
    challenge_id = Column(Integer, ForeignKey('challenges.id'), nullable=False, index=True)
    requested_by = Column(String(32), nullable=False)
    new_scores = Column(JSON, nullable=False)
    new_winner_id = Column(String(32), nullable=False)
    approved_by = Column(String(32), nullable=True)
    status = Column(SQLEnum(CorrectionStatus), default=CorrectionStatus.PENDING, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    resolved_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<ScoreCorrection(id={self.id}, challenge_id={self.challenge_id}, status={self.status.value})>"


class MatchHistory(Base):
    """Append-only record of one match from one player's perspective"""
    __tablename__ = 'match_history'

    id = Column(Integer, primary_key=True, autoincrement=True)
    player_id = Column(String(32), nullable=False)
    opponent_id = Column(String(32), nullable=False)
    result = Column(String(1), nullable=False)  # 'W' or 'L'
    was_challenger = Column(Boolean, nullable=False)
    sets_won = Column(Integer, default=0, nullable=False)
    sets_lost = Column(Integer, default=0, nullable=False)
    points_scored = Column(Integer, default=0, nullable=False)
    points_conceded = Column(Integer, default=0, nullable=False)
    was_comeback = Column(Boolean, default=False, nullable=False)
    was_perfect = Column(Boolean, default=False, nullable=False)
    was_forfeit = Column(Boolean, default=False, nullable=False)
    rank_before = Column(Integer, nullable=True)
    rank_after = Column(Integer, nullable=True)
    match_date = Column(DateTime, default=utc_now, nullable=False)
    challenge_id = Column(Integer, ForeignKey('challenges.id'), nullable=True)

    __table_args__ = (
        CheckConstraint("result IN ('W', 'L')", name='ck_history_result'),
        Index('ix_history_player_date', 'player_id', 'match_date'),
        Index('ix_history_pair', 'player_id', 'opponent_id'),
    )

    def __repr__(self):
        return f"<MatchHistory(player='{self.player_id}', opponent='{self.opponent_id}', result='{self.result}')>"


class Prediction(Base):
    __tablename__ = 'predictions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    challenge_id = Column(Integer, ForeignKey('challenges.id'), nullable=False)
    user_id = Column(String(32), nullable=False)
    predicted_winner_id = Column(String(32), nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    correct = Column(Boolean, nullable=True)

    __table_args__ = (
        UniqueConstraint('challenge_id', 'user_id', name='uq_prediction_challenge_user'),
    )


class BotState(Base):
    """Opaque key/value store for message handles and runtime setting overrides"""
    __tablename__ = 'bot_state'

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=True)
