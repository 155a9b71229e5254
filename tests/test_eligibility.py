"""Who may challenge whom."""
from datetime import datetime, timedelta

import pytest

from ladder_bot.database.models import Player
from ladder_bot.operations.eligibility import (
    TargetStatus, build_target_list, can_challenge, challengeable_ranks, check_unranked_match
)
from ladder_bot.utils.ladder_exceptions import LadderValidationError

NOW = datetime(2025, 3, 3, 18, 0, 0)


@pytest.mark.parametrize("rank, expected", [
    (None, [8, 9, 10]),
    (10, [8, 9]),
    (9, [8]),
    (5, [4]),
    (2, [1]),
    (1, []),
])
def test_challengeable_ranks(rank, expected):
    assert challengeable_ranks(rank) == expected


def test_can_challenge():
    assert can_challenge(None, 8)
    assert not can_challenge(None, 7)
    assert can_challenge(10, 8)
    assert not can_challenge(9, 7)
    assert not can_challenge(3, None)


def test_unranked_pairing_allowed():
    check_unranked_match("a", "b", None, None)


@pytest.mark.parametrize("challenger, defender, c_rank, d_rank, is_bot", [
    ("a", "a", None, None, False),
    ("a", "b", None, None, True),
    ("a", "b", 10, None, False),
    ("a", "b", None, 4, False),
])
def test_unranked_pairing_rejected(challenger, defender, c_rank, d_rank, is_bot):
    with pytest.raises(LadderValidationError):
        check_unranked_match(challenger, defender, c_rank, d_rank, is_bot)


def test_target_list_annotates_state():
    ladder = [
        Player(discord_id=f"p{rank}", rank=rank, cooldown_until=None) for rank in range(1, 11)
    ]
    ladder[8].cooldown_until = NOW + timedelta(hours=2)   # p9
    ladder[9].cooldown_until = NOW - timedelta(minutes=1)  # p10, already lapsed

    targets = build_target_list("newcomer", None, ladder, busy_ids={"p8"}, now=NOW)

    assert [t.rank for t in targets] == [8, 9, 10]
    assert [t.status for t in targets] == [TargetStatus.BUSY, TargetStatus.ON_COOLDOWN, TargetStatus.AVAILABLE]
    assert [t.is_available for t in targets] == [False, False, True]


def test_target_list_skips_self_and_empty_slots():
    ladder = [Player(discord_id="p8", rank=8), Player(discord_id="p10", rank=10)]
    targets = build_target_list("p10", 10, ladder, busy_ids=set(), now=NOW)
    assert [t.discord_id for t in targets] == ["p8"]
