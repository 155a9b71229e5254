"""
Match history log.

Two rows are appended per finished match, one from each participant's
point of view. Rows are never updated; everything here besides
record_match is a read query.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from ladder_bot.database.models import MatchHistory
from ladder_bot.operations.base import BaseOperations


@dataclass
class HistoryEntry:
    """One side of a match as it is written to the log"""
    player_id: str
    opponent_id: str
    won: bool
    was_challenger: bool
    sets_won: int = 0
    sets_lost: int = 0
    points_scored: int = 0
    points_conceded: int = 0
    was_comeback: bool = False
    was_perfect: bool = False
    was_forfeit: bool = False
    rank_before: Optional[int] = None
    rank_after: Optional[int] = None


@dataclass
class HeadToHead:
    opponent_id: str
    wins: int
    losses: int
    last_match: Optional[datetime] = None

    @property
    def total(self) -> int:
        return self.wins + self.losses


@dataclass
class Rival:
    opponent_id: str
    count: int


class HistoryOperations(BaseOperations):
    """Append and query per-player match history."""

    async def record_match(self, winner: HistoryEntry, loser: HistoryEntry,
                           challenge_id: Optional[int], session: AsyncSession) -> List[MatchHistory]:
        """Write both perspectives of a match inside the caller's transaction."""
        now = self.clock()
        rows = []
        for entry in (winner, loser):
            row = MatchHistory(
                player_id=entry.player_id,
                opponent_id=entry.opponent_id,
                result='W' if entry.won else 'L',
                was_challenger=entry.was_challenger,
                sets_won=entry.sets_won,
                sets_lost=entry.sets_lost,
                points_scored=entry.points_scored,
                points_conceded=entry.points_conceded,
                was_comeback=entry.was_comeback,
                was_perfect=entry.was_perfect,
                was_forfeit=entry.was_forfeit,
                rank_before=entry.rank_before,
                rank_after=entry.rank_after,
                match_date=now,
                challenge_id=challenge_id,
            )
            session.add(row)
            rows.append(row)
        await session.flush()
        return rows

    async def get_form_guide(self, player_id: str, limit: int = 5,
                             session: Optional[AsyncSession] = None) -> List[str]:
        """Most recent results, newest first, as 'W'/'L' strings."""
        async def _get(session: AsyncSession) -> List[str]:
            result = await session.execute(
                select(MatchHistory.result)
                .where(MatchHistory.player_id == str(player_id))
                .order_by(MatchHistory.match_date.desc(), MatchHistory.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())
        return await self._read(_get, session)

    @staticmethod
    def format_form(form: List[str]) -> str:
        return ''.join(form) if form else '-'

    async def get_head_to_head(self, player_id: str, opponent_id: str,
                               session: Optional[AsyncSession] = None) -> HeadToHead:
        async def _get(session: AsyncSession) -> HeadToHead:
            result = await session.execute(
                select(
                    func.sum(case((MatchHistory.result == 'W', 1), else_=0)),
                    func.sum(case((MatchHistory.result == 'L', 1), else_=0)),
                    func.max(MatchHistory.match_date),
                ).where(
                    MatchHistory.player_id == str(player_id),
                    MatchHistory.opponent_id == str(opponent_id),
                )
            )
            wins, losses, last = result.one()
            return HeadToHead(str(opponent_id), int(wins or 0), int(losses or 0), last)
        return await self._read(_get, session)

    async def get_all_head_to_head(self, player_id: str,
                                   session: Optional[AsyncSession] = None) -> List[HeadToHead]:
        """Record against every opponent, most played first."""
        async def _get(session: AsyncSession) -> List[HeadToHead]:
            wins = func.sum(case((MatchHistory.result == 'W', 1), else_=0))
            losses = func.sum(case((MatchHistory.result == 'L', 1), else_=0))
            result = await session.execute(
                select(MatchHistory.opponent_id, wins, losses, func.max(MatchHistory.match_date))
                .where(MatchHistory.player_id == str(player_id))
                .group_by(MatchHistory.opponent_id)
                .order_by(func.count().desc(), func.max(MatchHistory.match_date).desc())
            )
            return [HeadToHead(opp, int(w or 0), int(l or 0), last) for opp, w, l, last in result.all()]
        return await self._read(_get, session)

    async def _top_opponent(self, player_id: str, outcome: str,
                            session: Optional[AsyncSession]) -> Optional[Rival]:
        async def _get(session: AsyncSession) -> Optional[Rival]:
            result = await session.execute(
                select(MatchHistory.opponent_id, func.count().label('n'))
                .where(MatchHistory.player_id == str(player_id), MatchHistory.result == outcome)
                .group_by(MatchHistory.opponent_id)
                .order_by(func.count().desc(), func.max(MatchHistory.match_date).desc())
                .limit(1)
            )
            row = result.first()
            return Rival(row[0], int(row[1])) if row else None
        return await self._read(_get, session)

    async def get_nemesis(self, player_id: str, session: Optional[AsyncSession] = None) -> Optional[Rival]:
        """Opponent this player has lost to most often."""
        return await self._top_opponent(player_id, 'L', session)

    async def get_victim(self, player_id: str, session: Optional[AsyncSession] = None) -> Optional[Rival]:
        """Opponent this player has beaten most often."""
        return await self._top_opponent(player_id, 'W', session)

    async def get_recent_matches(self, player_id: str, limit: int = 10,
                                 session: Optional[AsyncSession] = None) -> List[MatchHistory]:
        async def _get(session: AsyncSession) -> List[MatchHistory]:
            result = await session.execute(
                select(MatchHistory)
                .where(MatchHistory.player_id == str(player_id))
                .order_by(MatchHistory.match_date.desc(), MatchHistory.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())
        return await self._read(_get, session)

    async def get_matches_between(self, player_id: str, opponent_id: str, limit: int = 5,
                                  session: Optional[AsyncSession] = None) -> List[MatchHistory]:
        """Recent meetings, from player_id's perspective."""
        async def _get(session: AsyncSession) -> List[MatchHistory]:
            result = await session.execute(
                select(MatchHistory)
                .where(
                    MatchHistory.player_id == str(player_id),
                    MatchHistory.opponent_id == str(opponent_id),
                )
                .order_by(MatchHistory.match_date.desc(), MatchHistory.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())
        return await self._read(_get, session)

