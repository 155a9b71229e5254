"""
Set score parsing and best-of-three validation.

Scores are always stored in challenger/defender order. Input typed by a
member is in "your score - their score" order and is flipped as needed
before validation.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ladder_bot.config import Config
from ladder_bot.utils.ladder_exceptions import LadderValidationError

SET_SCORE_PATTERN = re.compile(r'^(\d{1,2})\s*[-–]\s*(\d{1,2})$')


@dataclass(frozen=True)
class SetScore:
    """Points in one set, challenger first"""
    challenger: int
    defender: int

    def to_list(self) -> List[int]:
        return [self.challenger, self.defender]


@dataclass(frozen=True)
class MatchScore:
    """A validated best-of-three score line"""
    sets: Tuple[SetScore, ...]
    challenger_sets: int
    defender_sets: int

    @property
    def challenger_won(self) -> bool:
        return self.challenger_sets > self.defender_sets

    @property
    def sets_winner(self) -> int:
        return max(self.challenger_sets, self.defender_sets)

    @property
    def sets_loser(self) -> int:
        return min(self.challenger_sets, self.defender_sets)

    @property
    def challenger_points(self) -> int:
        return sum(s.challenger for s in self.sets)

    @property
    def defender_points(self) -> int:
        return sum(s.defender for s in self.sets)

    @property
    def is_perfect(self) -> bool:
        """Loser took no sets"""
        return self.sets_loser == 0

    @property
    def is_comeback(self) -> bool:
        """Winner dropped the first set"""
        first = self.sets[0]
        first_to_challenger = first.challenger > first.defender
        return first_to_challenger != self.challenger_won

    def to_json(self) -> List[List[int]]:
        return [s.to_list() for s in self.sets]

    def describe(self) -> str:
        return ', '.join(f'{s.challenger}-{s.defender}' for s in self.sets)


def parse_set(text: str) -> Tuple[int, int]:
    """Parse "10-6" (hyphen or en dash) into a pair of ints"""
    match = SET_SCORE_PATTERN.match(text.strip())
    if not match:
        raise LadderValidationError(
            f"Unparseable set score {text!r}",
            'Invalid score format. Use "10-6" format.'
        )
    return int(match.group(1)), int(match.group(2))


def set_winner(first: int, second: int, points_to_win: int = Config.POINTS_TO_WIN_SET) -> int:
    """
    Return 0 if the first side won the set, 1 if the second side did.

    A set is won by reaching points_to_win or more while strictly ahead.
    """
    if first >= points_to_win and first > second:
        return 0
    if second >= points_to_win and second > first:
        return 1
    raise LadderValidationError(
        f"Invalid set score {first}-{second}",
        f"Invalid set score: {first}-{second}. Winner must reach {points_to_win}+ and be ahead."
    )


def validate_sets(pairs: Sequence[Tuple[int, int]],
                  sets_to_win: int = Config.SETS_TO_WIN,
                  max_sets: int = Config.MAX_SETS) -> MatchScore:
    """
    Validate (challenger, defender) point pairs as a complete match.

    Raises:
        LadderValidationError: on any invalid set or when exactly one side
            did not reach the set count needed to win
    """
    if not pairs:
        raise LadderValidationError("No sets given", "Enter at least two set scores.")
    if len(pairs) > max_sets:
        raise LadderValidationError(
            f"{len(pairs)} sets given", f"A match has at most {max_sets} sets."
        )

    wins = [0, 0]
    sets = []
    for challenger, defender in pairs:
        if challenger < 0 or defender < 0:
            raise LadderValidationError(
                f"Negative set score {challenger}-{defender}", "Set scores cannot be negative."
            )
        wins[set_winner(challenger, defender)] += 1
        sets.append(SetScore(challenger, defender))

    if wins[0] >= sets_to_win and wins[1] >= sets_to_win:
        raise LadderValidationError(
            "Both sides reached the set target",
            f"Invalid result - both players can't win {sets_to_win}+ sets in best of {max_sets}."
        )
    if wins[0] < sets_to_win and wins[1] < sets_to_win:
        raise LadderValidationError(
            "No side reached the set target",
            f"Invalid result - no one has won {sets_to_win} sets yet. Did you forget Set 3?"
        )

    return MatchScore(sets=tuple(sets), challenger_sets=wins[0], defender_sets=wins[1])


def parse_match(set_texts: Sequence[Optional[str]], submitter_is_challenger: bool = True) -> MatchScore:
    """
    Parse modal input into a validated MatchScore.

    Blank entries are skipped, so an optional third set may be left empty.
    Each entry is "submitter-opponent"; pairs are flipped into
    challenger/defender order when the submitter is the defender.
    """
    pairs = []
    for text in set_texts:
        if text is None or not text.strip():
            continue
        mine, theirs = parse_set(text)
        pairs.append((mine, theirs) if submitter_is_challenger else (theirs, mine))

    if len(pairs) < Config.SETS_TO_WIN:
        raise LadderValidationError(
            "Too few sets entered", 'Enter scores for at least Set 1 and Set 2, e.g. "10-6".'
        )
    return validate_sets(pairs)


def match_score_from_json(raw: Sequence[Sequence[int]]) -> MatchScore:
    """Rebuild a stored score line"""
    return validate_sets([(int(c), int(d)) for c, d in raw])
