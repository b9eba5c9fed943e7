"""
骰子系统

骰子记号解析、d20 判定与结果档位。
随机源可注入（random.Random），固定种子即可重放一场战斗。
"""
import random
import re
from typing import Dict, List, Optional, Tuple

from .models.action import RollResult, RollTier
from .rules import get_difficulty_thresholds


def get_outcome_tier(total: int, difficulty: str = "normal") -> RollTier:
    """
    根据总值与难度得到判定档位

    Args:
        total: d20 + 加值
        difficulty: easy / normal / hard / very_hard

    Returns:
        RollTier: 判定档位
    """
    thresholds = get_difficulty_thresholds(difficulty)
    if total >= thresholds["critical"]:
        return RollTier.CRITICAL
    if total >= thresholds["success"]:
        return RollTier.SUCCESS
    if total >= thresholds["partial"]:
        return RollTier.PARTIAL
    return RollTier.FAILURE


def resolve_roll(natural: int, bonus: int = 0, difficulty: str = "normal") -> RollResult:
    """
    由自然骰值计算判定结果（表现层自己掷骰时使用）

    自然20至少算成功。
    """
    total = natural + bonus
    tier = get_outcome_tier(total, difficulty)
    is_nat20 = natural == 20
    if is_nat20 and tier.rank < RollTier.SUCCESS.rank:
        tier = RollTier.SUCCESS
    return RollResult(
        roll=natural,
        bonus=bonus,
        total=total,
        tier=tier,
        difficulty=difficulty,
        is_nat20=is_nat20,
        is_nat1=natural == 1,
    )


def get_probabilities(stat_bonus: int = 0, difficulty: str = "normal") -> Dict[str, int]:
    """
    各档位出现的概率（百分比）

    Returns:
        Dict[str, int]: 如 {"critical": 5, "success": 45, "partial": 30, "failure": 20}
    """
    counts = {tier.value: 0 for tier in RollTier}
    for natural in range(1, 21):
        counts[resolve_roll(natural, stat_bonus, difficulty).tier.value] += 1
    return {tier: count * 5 for tier, count in counts.items()}


class DiceRoller:
    """骰子投掷器"""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def roll(self, dice_notation: str) -> Tuple[int, List[int]]:
        """
        投掷骰子

        Args:
            dice_notation: 骰子记号（如 "1d20", "2d6", "3d8+2"）

        Returns:
            Tuple[int, List[int]]: (总值, 各骰子结果列表)
        """
        pattern = r"(\d+)d(\d+)([+-]\d+)?"
        match = re.fullmatch(pattern, dice_notation.lower().replace(" ", ""))

        if not match:
            raise ValueError(f"Invalid dice notation: {dice_notation}")

        num_dice = int(match.group(1))
        die_size = int(match.group(2))
        modifier = int(match.group(3)) if match.group(3) else 0
        if num_dice < 1 or die_size < 1:
            raise ValueError(f"Invalid dice notation: {dice_notation}")

        rolls = [self.rng.randint(1, die_size) for _ in range(num_dice)]
        return sum(rolls) + modifier, rolls

    def roll_single(self, die_size: int) -> int:
        """投掷单个骰子（1 到 die_size）"""
        return self.rng.randint(1, die_size)

    def d20(self) -> int:
        return self.roll_single(20)

    def d6(self) -> int:
        return self.roll_single(6)

    def perform_roll(self, stat_bonus: int = 0, difficulty: str = "normal") -> RollResult:
        """掷 d20 并按难度判定档位"""
        return resolve_roll(self.d20(), stat_bonus, difficulty)

    def roll_initiative(self, bonus: int = 0) -> int:
        """先攻：d20 + 狡诈"""
        return self.d20() + bonus
