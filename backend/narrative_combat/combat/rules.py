"""
战斗规则常量与纯函数

所有数值平衡参数集中在这里，便于统一调整。
"""
from typing import Dict

# ============================================
# 判定阈值
# ============================================

# 各难度下 暴击/成功/部分成功 需要达到的总值（d20 + 属性加值）
DIFFICULTY_THRESHOLDS: Dict[str, Dict[str, int]] = {
    "easy": {"critical": 18, "success": 8, "partial": 4},
    "normal": {"critical": 20, "success": 12, "partial": 6},
    "hard": {"critical": 22, "success": 15, "partial": 8},
    "very_hard": {"critical": 24, "success": 18, "partial": 10},
}

DEFAULT_DIFFICULTY = "normal"

# ============================================
# 伤害
# ============================================

CRITICAL_MULTIPLIER = 1.5
PARTIAL_MULTIPLIER = 0.5

# 攻击被标记的敌人时的额外伤害（一次性）
MARK_BONUS_DAMAGE = 1

# 效果未写数值时的默认减伤/易伤
DEFAULT_REDUCTION = 1
DEFAULT_VULNERABILITY = 1
SLOW_REDUCTION = 1
CONCEALMENT_REDUCTION = 1

# 中毒/燃烧每轮结束时的默认伤害
DEFAULT_DOT_DAMAGE = 1

# 暴击治疗额外恢复量
HEAL_CRITICAL_BONUS = 1

# ============================================
# 属性
# ============================================

INITIATIVE_STAT = "cunning"
BREAKFREE_STAT = "brawn"
BREAKFREE_DC = 4
THREAT_STATS = ("brawn", "cunning")

# ============================================
# 生命状态与战局走势
# ============================================

HEALTH_THRESHOLDS = {
    "critical": 0.25,
    "wounded": 0.5,
}

MOMENTUM_DOMINATING = "party dominating"
MOMENTUM_DESPERATE = "desperate situation"
MOMENTUM_ON_THE_ROPES = "enemy on the ropes"
MOMENTUM_EVEN = "evenly matched"

DOMINATING_PARTY_HP = 0.7
DOMINATING_ENEMY_HP = 0.5
DESPERATE_PARTY_HP = 0.3
DESPERATE_STANDING = 1

# 叙事上下文中“没有效果”的固定写法（下游依赖这个字符串）
NO_EFFECTS = "none"


def get_difficulty_thresholds(difficulty: str) -> Dict[str, int]:
    """获取难度阈值，未知难度按 normal 处理"""
    return DIFFICULTY_THRESHOLDS.get(
        (difficulty or "").strip().lower(),
        DIFFICULTY_THRESHOLDS[DEFAULT_DIFFICULTY],
    )


def health_fraction(current: int, maximum: int) -> float:
    """生命比例（0~1），最大生命为0时返回0"""
    if maximum <= 0:
        return 0.0
    return max(0.0, min(1.0, current / maximum))


def classify_momentum(
    party_avg_hp: float,
    enemy_hp: float,
    party_standing: int,
) -> str:
    """
    战局走势分类

    按优先级依次判断，第一个满足的分类生效：
    1. 队伍压制：队伍平均生命 > 0.7 且敌人生命 < 0.5
    2. 绝境：队伍平均生命 < 0.3 或站着的成员不超过1人
    3. 敌人濒死：敌人生命 < 危急阈值
    4. 势均力敌

    Args:
        party_avg_hp: 队伍平均生命比例
        enemy_hp: 敌人生命比例
        party_standing: 未倒地的队伍成员数

    Returns:
        str: 四个分类之一
    """
    if party_avg_hp > DOMINATING_PARTY_HP and enemy_hp < DOMINATING_ENEMY_HP:
        return MOMENTUM_DOMINATING
    if party_avg_hp < DESPERATE_PARTY_HP or party_standing <= DESPERATE_STANDING:
        return MOMENTUM_DESPERATE
    if enemy_hp < HEALTH_THRESHOLDS["critical"]:
        return MOMENTUM_ON_THE_ROPES
    return MOMENTUM_EVEN


def can_break_free(roll: int, brawn: int) -> bool:
    """挣脱束缚：d6 + 力量 >= 难度"""
    return roll + brawn >= BREAKFREE_DC
