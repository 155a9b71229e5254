"""
Player Operations - the ranking store.

Owns player rows, rank assignment on the 1..MAX_RANK ladder and the
per-player counters updated by the match completion pipeline.

Rank moves that touch several rows are applied one row at a time with a
flush after each assignment, always vacating the target rank first, so
the UNIQUE constraint on players.rank holds after every statement. All
such moves run inside a single transaction.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ladder_bot.config import Config
from ladder_bot.database.models import Player
from ladder_bot.operations.base import BaseOperations
from ladder_bot.utils.elo import EloCalculator
from ladder_bot.utils.ladder_exceptions import LadderValidationError, StateConflictError


@dataclass
class EloUpdate:
    """Ratings before and after a match"""
    winner_old: int
    winner_new: int
    loser_old: int
    loser_new: int

    @property
    def winner_change(self) -> int:
        return self.winner_new - self.winner_old

    @property
    def loser_change(self) -> int:
        return self.loser_new - self.loser_old


class PlayerOperations(BaseOperations):
    """Ranking store operations."""

    max_rank = Config.MAX_RANK

    # Lookup and creation

    async def get_player(self, discord_id: str, session: Optional[AsyncSession] = None) -> Optional[Player]:
        """Return the player row, or None for an identity never seen before."""
        async def _get(session: AsyncSession) -> Optional[Player]:
            return await session.get(Player, str(discord_id))
        return await self._read(_get, session)

    async def get_or_create(self, discord_id: str, session: AsyncSession) -> Player:
        """Load a player inside the given session, creating it with zeroed stats if absent."""
        discord_id = str(discord_id)
        player = await session.get(Player, discord_id)
        if player is None:
            player = Player(
                discord_id=discord_id,
                wins=0, losses=0, win_streak=0, best_win_streak=0, loss_streak=0,
                title_defenses=0, title_takes=0, perfect_matches=0, comeback_wins=0,
                total_points=0, total_points_conceded=0,
                elo=Config.STARTING_ELO, dm_notifications=True,
                created_at=self.clock(),
            )
            session.add(player)
            await session.flush()
            self.logger.debug(f"Created player {discord_id}")
        return player

    async def get_player_by_rank(self, rank: int, session: Optional[AsyncSession] = None) -> Optional[Player]:
        async def _get(session: AsyncSession) -> Optional[Player]:
            result = await session.execute(select(Player).where(Player.rank == rank))
            return result.scalar_one_or_none()
        return await self._read(_get, session)

    async def get_leaderboard(self, session: Optional[AsyncSession] = None) -> List[Player]:
        """Ranked players ordered from rank 1 down."""
        async def _get(session: AsyncSession) -> List[Player]:
            result = await session.execute(
                select(Player).where(Player.rank.is_not(None)).order_by(Player.rank)
            )
            return list(result.scalars().all())
        return await self._read(_get, session)

    async def upsert(self, discord_id: str, session: Optional[AsyncSession] = None, **fields) -> Player:
        """
        Create the player if needed and merge the given attributes.

        A change to ``rank`` goes through rank tracking: rank_since is
        stamped and highest_rank improves when the new rank is better.
        The caller must make sure a new rank is free.
        """
        async def _upsert(session: AsyncSession) -> Player:
            player = await self.get_or_create(discord_id, session)
            if 'rank' in fields:
                self._assign_rank(player, fields.pop('rank'))
            for name, value in fields.items():
                if not hasattr(Player, name):
                    raise AttributeError(f"Player has no attribute '{name}'")
                setattr(player, name, value)
            await session.flush()
            return player
        return await self._write(_upsert, session)

    def _assign_rank(self, player: Player, new_rank: Optional[int]) -> None:
        """Set a player's rank with rank_since/highest_rank tracking. Does not flush."""
        if player.rank == new_rank:
            return
        player.rank = new_rank
        if new_rank is None:
            player.rank_since = None
            return
        player.rank_since = self.clock()
        if player.highest_rank is None or new_rank < player.highest_rank:
            player.highest_rank = new_rank

    # Cooldowns

    async def set_cooldown(self, discord_id: str, until: Optional[datetime],
                           session: Optional[AsyncSession] = None) -> Player:
        async def _set(session: AsyncSession) -> Player:
            player = await self.get_or_create(discord_id, session)
            player.cooldown_until = until
            await session.flush()
            return player
        return await self._write(_set, session)

    async def clear_cooldown(self, discord_id: str, session: Optional[AsyncSession] = None) -> Player:
        return await self.set_cooldown(discord_id, None, session=session)

    async def is_on_cooldown(self, discord_id: str, session: Optional[AsyncSession] = None) -> bool:
        """True strictly while the stored cooldown instant is in the future."""
        player = await self.get_player(discord_id, session=session)
        return player is not None and player.is_on_cooldown(self.clock())

    async def remove_own_cooldown(self, discord_id: str, session: Optional[AsyncSession] = None) -> Player:
        """Self-service cooldown removal; rejected when no cooldown is running."""
        async def _remove(session: AsyncSession) -> Player:
            player = await session.get(Player, str(discord_id))
            if player is None or not player.is_on_cooldown(self.clock()):
                raise StateConflictError(
                    f"Player {discord_id} is not on cooldown", "You're not on cooldown."
                )
            player.cooldown_until = None
            await session.flush()
            self.logger.info(f"Player {discord_id} removed their own cooldown")
            return player
        return await self._write(_remove, session)

    # Rank mutation

    async def swap_ranks(self, winner_id: str, loser_id: str,
                         session: Optional[AsyncSession] = None) -> Tuple[Optional[int], Optional[int]]:
        """
        Promote the winner into the loser's rank.

        Rules, in order:
          1. Loser unranked: nothing to take, no-op.
          2. Winner already ranked better than loser: no-op.
          3. Winner ranked (worse): the two ranks are exchanged.
          4. Winner unranked: ranks [loser_rank, max_rank] shift down one,
             anything pushed past max_rank is cleared, winner takes loser_rank.

        Returns:
            (winner_rank, loser_rank) after the operation
        """
        async def _swap(session: AsyncSession) -> Tuple[Optional[int], Optional[int]]:
            winner = await self.get_or_create(winner_id, session)
            loser = await self.get_or_create(loser_id, session)
            target = loser.rank

            if target is None:
                return winner.rank, loser.rank
            if winner.rank is not None and winner.rank < target:
                self.logger.warning(
                    f"Swap skipped: winner {winner_id} (#{winner.rank}) already outranks loser {loser_id} (#{target})"
                )
                return winner.rank, loser.rank

            if winner.rank is not None:
                old_winner_rank = winner.rank
                self._assign_rank(winner, None)
                await session.flush()
                self._assign_rank(loser, old_winner_rank)
                await session.flush()
                self._assign_rank(winner, target)
                await session.flush()
            else:
                await self._shift_down_from(target, session)
                self._assign_rank(winner, target)
                await session.flush()

            self.logger.info(f"Rank swap: {winner_id} -> #{winner.rank}, {loser_id} -> #{loser.rank}")
            return winner.rank, loser.rank
        return await self._write(_swap, session)

    async def _shift_down_from(self, start_rank: int, session: AsyncSession) -> None:
        """Move every player ranked start_rank..max_rank down one place, bottom first."""
        result = await session.execute(
            select(Player)
            .where(Player.rank >= start_rank)
            .order_by(Player.rank.desc())
        )
        for player in result.scalars().all():
            new_rank = player.rank + 1
            if new_rank > self.max_rank:
                self.logger.info(f"Player {player.discord_id} pushed off the ladder from #{player.rank}")
                new_rank = None
            self._assign_rank(player, new_rank)
            await session.flush()

    async def remove_rank_and_shift_up(self, discord_id: str, session: Optional[AsyncSession] = None) -> Optional[int]:
        """
        Clear a player's rank and close the gap.

        Returns:
            The rank that was removed, or None if the player was unranked
        """
        async def _remove(session: AsyncSession) -> Optional[int]:
            player = await session.get(Player, str(discord_id))
            if player is None or player.rank is None:
                return None
            removed = player.rank
            self._assign_rank(player, None)
            await session.flush()

            result = await session.execute(
                select(Player).where(Player.rank > removed).order_by(Player.rank)
            )
            for below in result.scalars().all():
                self._assign_rank(below, below.rank - 1)
                await session.flush()

            self.logger.info(f"Removed rank #{removed} from {discord_id} and shifted lower ranks up")
            return removed
        return await self._write(_remove, session)

    async def set_rank(self, discord_id: str, rank: int, session: Optional[AsyncSession] = None) -> Player:
        """Admin placement of a player on a free rank."""
        if not 1 <= rank <= self.max_rank:
            raise LadderValidationError(
                f"Rank {rank} out of range", f"Rank must be between 1 and {self.max_rank}."
            )

        async def _set(session: AsyncSession) -> Player:
            holder = await self.get_player_by_rank(rank, session=session)
            if holder is not None and holder.discord_id != str(discord_id):
                raise LadderValidationError(
                    f"Rank {rank} held by {holder.discord_id}",
                    f"Rank #{rank} is already held by <@{holder.discord_id}>. Remove them first."
                )
            player = await self.get_or_create(discord_id, session)
            if player.rank != rank:
                self._assign_rank(player, None)
                await session.flush()
                self._assign_rank(player, rank)
                await session.flush()
            return player
        return await self._write(_set, session)

    # Counters. These mutate a player already loaded in the caller's session.

    @staticmethod
    def record_win(player: Player) -> None:
        player.wins = (player.wins or 0) + 1

    @staticmethod
    def record_loss(player: Player) -> None:
        player.losses = (player.losses or 0) + 1

    @staticmethod
    def update_win_streak(player: Player) -> None:
        player.win_streak = (player.win_streak or 0) + 1
        player.best_win_streak = max(player.best_win_streak or 0, player.win_streak)
        player.loss_streak = 0

    @staticmethod
    def update_loss_streak(player: Player) -> None:
        player.loss_streak = (player.loss_streak or 0) + 1
        player.win_streak = 0

    @staticmethod
    def record_title_defense(player: Player) -> None:
        player.title_defenses = (player.title_defenses or 0) + 1

    @staticmethod
    def record_title_take(player: Player) -> None:
        player.title_takes = (player.title_takes or 0) + 1

    @staticmethod
    def record_perfect_match(player: Player) -> None:
        player.perfect_matches = (player.perfect_matches or 0) + 1

    @staticmethod
    def record_comeback_win(player: Player) -> None:
        player.comeback_wins = (player.comeback_wins or 0) + 1

    @staticmethod
    def add_points(player: Player, scored: int, conceded: int) -> None:
        player.total_points = (player.total_points or 0) + scored
        player.total_points_conceded = (player.total_points_conceded or 0) + conceded

    async def update_elo(self, winner_id: str, loser_id: str,
                         session: Optional[AsyncSession] = None) -> EloUpdate:
        """Apply a K=32 logistic rating update to both players, floored at 100."""
        async def _update(session: AsyncSession) -> EloUpdate:
            winner = await self.get_or_create(winner_id, session)
            loser = await self.get_or_create(loser_id, session)
            winner_old = winner.elo if winner.elo is not None else Config.STARTING_ELO
            loser_old = loser.elo if loser.elo is not None else Config.STARTING_ELO
            winner.elo, loser.elo = EloCalculator.calculate_match_ratings(winner_old, loser_old)
            await session.flush()
            self.logger.debug(
                f"Elo: {winner_id} {winner_old}->{winner.elo}, {loser_id} {loser_old}->{loser.elo}"
            )
            return EloUpdate(winner_old, winner.elo, loser_old, loser.elo)
        return await self._write(_update, session)

    async def toggle_dm_notifications(self, discord_id: str, session: Optional[AsyncSession] = None) -> bool:
        """Flip the DM preference and return the new value."""
        async def _toggle(session: AsyncSession) -> bool:
            player = await self.get_or_create(discord_id, session)
            player.dm_notifications = not player.dm_notifications
            await session.flush()
            return player.dm_notifications
        return await self._write(_toggle, session)
