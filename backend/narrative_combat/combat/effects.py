"""
状态效果生命周期

效果由内容数据创建，在轮次结束钩子中统一倒计时一次，
剩余回合归零即移除。
"""
import logging
from typing import List, Optional, Tuple

from .models.character import Character, CombatantType, EffectType, StatusEffectInstance
from .models.combat_state import CombatState
from .models.content import EffectPayload
from .rules import DEFAULT_DOT_DAMAGE, MARK_BONUS_DAMAGE

logger = logging.getLogger(__name__)

DAMAGE_OVER_TIME = (EffectType.POISON, EffectType.BURNING)


def create_effect(payload: EffectPayload, source: str = "") -> StatusEffectInstance:
    """创建效果实例；持续时间缺失或非正数时按 1 轮计"""
    effect_type = payload.effect_type
    if effect_type == EffectType.UNRECOGNIZED:
        logger.warning("[Effects] 未识别的效果类型 %r（来源=%s）", payload.type, source or "content")
    return StatusEffectInstance(
        effect=effect_type,
        turns_remaining=max(1, payload.duration or 1),
        amount=payload.amount,
        reduction=payload.reduction,
        bonus=payload.bonus,
        source=source,
        label=payload.type.strip() or effect_type.value,
    )


def apply_to_character(
    character: Character, payload: EffectPayload, source: str = ""
) -> StatusEffectInstance:
    effect = create_effect(payload, source)
    character.add_effect(effect)
    return effect


def apply_to_party(
    state: CombatState, payload: EffectPayload, source: str = ""
) -> StatusEffectInstance:
    effect = create_effect(payload, source)
    state.party_effects.append(effect)
    return effect


def apply_to_enemy(
    state: CombatState, payload: EffectPayload, source: str = ""
) -> Optional[StatusEffectInstance]:
    """对敌人施加效果；标记只设置一次性标志"""
    if payload.effect_type == EffectType.MARK:
        state.enemy_marked = True
        return None
    return apply_to_character(state.enemy, payload, source)


def consume_enemy_mark(state: CombatState) -> int:
    """消耗标记并返回额外伤害（未标记时为 0）"""
    if not state.enemy_marked:
        return 0
    state.enemy_marked = False
    return MARK_BONUS_DAMAGE


def tick_effect_list(
    effects: List[StatusEffectInstance],
) -> Tuple[List[StatusEffectInstance], List[StatusEffectInstance]]:
    """每个效果倒计时一次，返回 (保留, 过期)"""
    kept: List[StatusEffectInstance] = []
    expired: List[StatusEffectInstance] = []
    for effect in effects:
        (expired if effect.tick() else kept).append(effect)
    return kept, expired


def tick_all_effects(state: CombatState) -> List[Tuple[str, StatusEffectInstance]]:
    """
    轮次结束时对遭遇战内所有效果列表倒计时

    Returns:
        本轮过期的 (持有者ID, 效果) 列表
    """
    expired: List[Tuple[str, StatusEffectInstance]] = []

    state.party_effects, gone = tick_effect_list(state.party_effects)
    expired.extend(("party", effect) for effect in gone)

    owners = [state.enemy] + list(state.party)
    if state.companion:
        owners.append(state.companion)
    for owner in owners:
        owner.effects, gone = tick_effect_list(owner.effects)
        expired.extend((owner.id, effect) for effect in gone)

    return expired


def tick_cooldowns(state: CombatState) -> None:
    state.cooldowns = {
        attack_id: turns - 1 for attack_id, turns in state.cooldowns.items() if turns > 1
    }


def collect_damage_over_time(
    state: CombatState,
) -> List[Tuple[Character, int, StatusEffectInstance]]:
    """轮次结束时（倒计时之前）应结算的中毒/燃烧伤害"""
    due: List[Tuple[Character, int, StatusEffectInstance]] = []
    owners = [state.enemy] + list(state.party)
    for owner in owners:
        if owner.is_down:
            continue
        for effect in owner.effects:
            if effect.effect in DAMAGE_OVER_TIME:
                due.append((owner, effect.amount or DEFAULT_DOT_DAMAGE, effect))
    return due


def _sum_bonus(effects: List[StatusEffectInstance], effect_type: EffectType) -> int:
    return sum(effect.bonus or effect.amount or 1 for effect in effects if effect.effect == effect_type)


def get_party_accuracy_bonus(state: CombatState) -> int:
    return _sum_bonus(state.party_effects, EffectType.ACCURACY_BOOST)


def get_haste_bonus(character: Character, state: Optional[CombatState] = None) -> int:
    """加速加值 = 自身加速 + 队伍共享加速（传入 state 时）"""
    bonus = _sum_bonus(character.effects, EffectType.HASTE)
    if state is not None and character.combatant_type == CombatantType.PARTY:
        bonus += _sum_bonus(state.party_effects, EffectType.HASTE)
    return bonus


def is_stunned(character: Character) -> bool:
    return character.has_effect(EffectType.STUN)


def is_restrained(character: Character) -> bool:
    return character.has_effect(EffectType.RESTRAIN)


def clear_encounter_effects(state: CombatState) -> None:
    """效果不会带出遭遇战；队伍成员保留生命值"""
    state.party_effects = []
    state.enemy_marked = False
    for member in state.party:
        member.effects = []
