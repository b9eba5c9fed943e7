import random

import pytest

from narrative_combat.combat.dice import DiceRoller, get_outcome_tier, get_probabilities, resolve_roll
from narrative_combat.combat.models.action import RollTier


@pytest.mark.parametrize(
    "total, difficulty, expected",
    [
        (20, "normal", RollTier.CRITICAL),
        (12, "normal", RollTier.SUCCESS),
        (11, "normal", RollTier.PARTIAL),
        (6, "normal", RollTier.PARTIAL),
        (5, "normal", RollTier.FAILURE),
        (18, "easy", RollTier.CRITICAL),
        (14, "hard", RollTier.PARTIAL),
        (17, "very_hard", RollTier.PARTIAL),
        (12, "unheard_of", RollTier.SUCCESS),
    ],
)
def test_outcome_tier_thresholds(total, difficulty, expected):
    assert get_outcome_tier(total, difficulty) == expected


def test_natural_twenty_is_at_least_success():
    result = resolve_roll(20, -10, "very_hard")

    assert result.total == 10
    assert result.is_nat20 is True
    assert result.tier == RollTier.SUCCESS


def test_natural_one_is_flagged():
    result = resolve_roll(1, 2)
    assert result.is_nat1 is True
    assert str(result) == "d20 (1) + 2 = 3 → failure"


def test_probabilities_sum_to_hundred():
    probabilities = get_probabilities(3, "normal")

    assert sum(probabilities.values()) == 100
    assert probabilities["critical"] == 20
    assert probabilities["failure"] == 10


def test_roll_notation_with_seeded_rng():
    roller = DiceRoller(random.Random(42))

    total, rolls = roller.roll("3d6+2")

    assert len(rolls) == 3
    assert all(1 <= value <= 6 for value in rolls)
    assert total == sum(rolls) + 2


def test_same_seed_replays_same_rolls():
    first = DiceRoller(random.Random(9))
    second = DiceRoller(random.Random(9))

    assert [first.d20() for _ in range(10)] == [second.d20() for _ in range(10)]


@pytest.mark.parametrize("notation", ["d20", "2x6", "0d6", ""])
def test_invalid_notation_is_rejected(notation):
    with pytest.raises(ValueError):
        DiceRoller().roll(notation)
