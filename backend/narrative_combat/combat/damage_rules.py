"""
伤害规则

纯函数：
- 按判定档位计算技能基础伤害
- 按当前生效的效果计算伤害修正
- 最终伤害（不低于0）
"""
import math
from typing import Optional

from .models.action import RollTier
from .models.character import EffectType, StatusEffectInstance
from .models.combat_state import CombatState
from .rules import (
    CONCEALMENT_REDUCTION,
    CRITICAL_MULTIPLIER,
    DEFAULT_REDUCTION,
    DEFAULT_VULNERABILITY,
    PARTIAL_MULTIPLIER,
    SLOW_REDUCTION,
)


def compute_ability_damage(ability, tier: RollTier) -> int:
    """
    计算技能基础伤害

    Args:
        ability: 任何带 damage 字段的技能/攻击
        tier: 判定档位

    Returns:
        int: 基础伤害（失败或无伤害技能为0）

    档位系数：
    - critical: 向上取整(伤害 × 1.5)
    - success: 伤害
    - partial: 向上取整(伤害 × 0.5)
    - failure: 0
    """
    damage: Optional[int] = getattr(ability, "damage", None)
    if not damage:
        return 0
    if tier == RollTier.CRITICAL:
        return math.ceil(damage * CRITICAL_MULTIPLIER)
    if tier == RollTier.SUCCESS:
        return damage
    if tier == RollTier.PARTIAL:
        return math.ceil(damage * PARTIAL_MULTIPLIER)
    return 0


def _reduction(effect: StatusEffectInstance) -> int:
    return effect.reduction or effect.amount or DEFAULT_REDUCTION


def get_damage_modifier(state: CombatState, target_id: str, is_player_attack: bool) -> int:
    """
    汇总目标相关效果得到伤害修正（带符号）

    玩家攻击敌人：
    - 敌人减伤 -N，敌人易伤 +N，敌人天生减伤 -N

    敌方攻击队伍成员：
    - 队伍隐蔽 -1，队伍护盾 -N
    - 敌人迟缓 -1
    - 目标自身护盾 -N，目标易伤 +N，目标天生减伤 -N
    """
    modifier = 0

    if is_player_attack:
        enemy = state.enemy
        for effect in enemy.effects:
            if effect.effect == EffectType.DAMAGE_REDUCTION:
                modifier -= effect.amount or DEFAULT_REDUCTION
            elif effect.effect == EffectType.VULNERABLE:
                modifier += effect.amount or DEFAULT_VULNERABILITY
        modifier -= enemy.innate_reduction
        return modifier

    for effect in state.party_effects:
        if effect.effect == EffectType.CONCEALMENT:
            modifier -= CONCEALMENT_REDUCTION
        elif effect.effect == EffectType.SHIELD:
            modifier -= _reduction(effect)

    for effect in state.enemy.effects:
        if effect.effect == EffectType.SLOW:
            modifier -= SLOW_REDUCTION

    target = state.get_party_member(target_id)
    if target is not None:
        for effect in target.effects:
            if effect.effect in (EffectType.SHIELD, EffectType.STATIC_SHIELD):
                modifier -= _reduction(effect)
            elif effect.effect == EffectType.DAMAGE_REDUCTION:
                modifier -= effect.amount or DEFAULT_REDUCTION
            elif effect.effect == EffectType.VULNERABLE:
                modifier += effect.amount or DEFAULT_VULNERABILITY
        modifier -= target.innate_reduction

    return modifier


def calculate_final_damage(base: int, modifier: int = 0, mark_bonus: int = 0) -> int:
    """最终伤害 = max(0, 基础 + 修正 + 标记加成)"""
    return max(0, base + modifier + mark_bonus)
