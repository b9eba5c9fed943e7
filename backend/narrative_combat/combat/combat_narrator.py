"""
战斗叙事上下文构建

只读：从战斗状态推导效果摘要、战局走势与结算前的伤害预估，
作为普通字典交给外部叙事生成。不修改战斗状态。
"""
from typing import Any, Dict, List, Optional, Sequence, Union

from .damage_rules import calculate_final_damage, compute_ability_damage, get_damage_modifier
from .models.action import RollResult, RollTier
from .models.character import Character, StatusEffectInstance, classify_health
from .models.combat_state import CombatState
from .models.content import Ability, EnemyAttack
from .rules import MARK_BONUS_DAMAGE, NO_EFFECTS, classify_momentum
from .target_resolver import TargetResolver


def format_party_effect(effect: StatusEffectInstance) -> str:
    """队伍效果：'shield (-2 damage) (3 turns)'"""
    text = effect.label
    if effect.reduction:
        text += f" (-{effect.reduction} damage)"
    return f"{text} ({effect.turns_remaining} turns)"


def format_enemy_effect(effect: StatusEffectInstance) -> str:
    """敌人效果：'vulnerable (2) (1 turns)'"""
    text = effect.label
    if effect.amount:
        text += f" ({effect.amount})"
    return f"{text} ({effect.turns_remaining} turns)"


def summarize_effects(effects: Sequence[StatusEffectInstance], formatter) -> str:
    """效果列表为空时返回固定的 'none'"""
    if not effects:
        return NO_EFFECTS
    return ", ".join(formatter(effect) for effect in effects)


class CombatNarrator:
    """
    叙事上下文构建器

    所有方法都是只读的，结果是普通数据（dict），可以直接序列化。
    """

    def __init__(self, state: CombatState):
        self.state = state

    # ============================================
    # 战局上下文
    # ============================================

    def build_combat_context(self) -> Dict[str, Any]:
        """效果摘要 + 战局走势"""
        context: Dict[str, Any] = {}
        context.update(self.build_effect_context())
        context.update(self.build_momentum_context())
        return context

    def build_effect_context(self) -> Dict[str, Any]:
        return {
            "party_buffs": summarize_effects(self.state.party_effects, format_party_effect),
            "enemy_debuffs": summarize_effects(self.state.enemy.effects, format_enemy_effect),
            "enemy_marked": self.state.enemy_marked,
        }

    def build_momentum_context(self) -> Dict[str, Any]:
        party = self.state.party
        party_total = len(party)
        party_standing = len(self.state.active_party)
        party_avg = (
            sum(member.health_fraction for member in party) / party_total if party_total else 0.0
        )
        enemy_fraction = self.state.enemy.health_fraction

        return {
            "round": self.state.round,
            "party_standing": party_standing,
            "party_total": party_total,
            "party_avg_hp_percent": round(party_avg * 100),
            "enemy_hp_percent": round(enemy_fraction * 100),
            "momentum": classify_momentum(party_avg, enemy_fraction, party_standing),
        }

    def build_character_context(self, character: Character) -> Dict[str, Any]:
        return {
            "id": character.id,
            "name": character.name,
            "trait": character.trait,
            "description": character.description,
            "status": character.status,
        }

    # ============================================
    # 伤害预估（结算之前）
    # ============================================

    def build_enemy_damage_context(
        self,
        attack: EnemyAttack,
        targets: Union[Character, List[Character], None],
    ) -> Dict[str, Any]:
        return self._build_incoming_damage_context(attack, targets)

    def build_companion_damage_context(
        self,
        attack: EnemyAttack,
        targets: Union[Character, List[Character], None],
    ) -> Dict[str, Any]:
        return self._build_incoming_damage_context(attack, targets)

    def build_player_damage_context(
        self,
        ability: Ability,
        roll: Optional[RollResult],
        targets: Optional[List[Character]] = None,
    ) -> Dict[str, Any]:
        """
        玩家技能对敌人的伤害预估

        Args:
            ability: 技能
            roll: 判定结果
            targets: 计划中解析出的目标；不传时按技能的 target_mode 判断

        失败、无伤害或不以敌人为目标时只返回 damage_dealt=0。
        """
        if targets is None:
            hits_enemy = ability.targets_enemy
        else:
            hits_enemy = bool(targets) and targets[0] is self.state.enemy
        if roll is None or roll.tier == RollTier.FAILURE or not ability.damage or not hits_enemy:
            return {"damage_dealt": 0, "is_killing_blow": False}

        enemy = self.state.enemy
        base = compute_ability_damage(ability, roll.tier)
        modifier = get_damage_modifier(self.state, enemy.id, is_player_attack=True)
        had_mark = self.state.enemy_marked
        damage = calculate_final_damage(base, modifier, MARK_BONUS_DAMAGE if had_mark else 0)

        before = enemy.current_health
        after = max(0, before - damage)
        return {
            "damage_dealt": damage,
            "enemy_health_before": before,
            "enemy_health_after": after,
            "enemy_max_health": enemy.max_health,
            "enemy_status": classify_health(after, enemy.max_health),
            "is_killing_blow": before > 0 and after == 0,
            "had_mark": had_mark,
        }

    def _build_incoming_damage_context(
        self,
        attack: EnemyAttack,
        targets: Union[Character, List[Character], None],
    ) -> Dict[str, Any]:
        if targets is None:
            target_list: List[Character] = []
        elif isinstance(targets, list):
            target_list = targets
        else:
            target_list = [targets]

        if not attack.damage or not target_list:
            return {"damage_dealt": 0, "is_lethal": False}

        # 群体攻击时以生命最低者为叙事主目标
        primary = TargetResolver.get_lowest_health(target_list)
        modifier = get_damage_modifier(self.state, primary.id, is_player_attack=False)
        damage = calculate_final_damage(attack.damage, modifier)

        before = primary.current_health
        after = max(0, before - damage)
        return {
            "damage_dealt": damage,
            "target_id": primary.id,
            "target_name": primary.name,
            "target_health_before": before,
            "target_health_after": after,
            "target_max_health": primary.max_health,
            "target_status": classify_health(after, primary.max_health),
            "is_lethal": before > 0 and after == 0,
            "is_aoe": len(target_list) > 1,
        }
