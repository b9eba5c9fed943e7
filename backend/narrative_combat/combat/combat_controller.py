"""
战斗控制器（回合状态机）

核心战斗流程实现
"""
import logging
import uuid
from typing import Any, Dict, List, Optional, Union

from ..config import settings
from . import fallback_narration
from .content_repository import CombatContentRepository
from .damage_rules import calculate_final_damage, compute_ability_damage, get_damage_modifier
from .dice import DiceRoller, resolve_roll
from .effects import (
    apply_to_character,
    apply_to_enemy,
    apply_to_party,
    clear_encounter_effects,
    collect_damage_over_time,
    consume_enemy_mark,
    get_haste_bonus,
    get_party_accuracy_bonus,
    is_restrained,
    is_stunned,
    tick_all_effects,
    tick_cooldowns,
)
from .enemy_tactics import EnemyTactics
from .errors import (
    AbilityUnavailableError,
    CombatError,
    EncounterEndedError,
    EncounterNotActiveError,
    NoValidTargetError,
    NotYourTurnError,
)
from .models.action import (
    AbilityOption,
    ActionKind,
    ActionPlan,
    ActionResult,
    DamageEvent,
    EnemyDecision,
    HealEvent,
    RollResult,
    RollTier,
)
from .models.character import Character, CombatantType, EffectType
from .models.combat_result import EncounterResult
from .models.combat_state import CombatEndReason, CombatPhase, CombatState, TurnSlot
from .models.content import Ability, EffectPayload, EnemyAttack
from .models.snapshot import CombatSnapshot
from .rules import BREAKFREE_STAT, HEAL_CRITICAL_BONUS, INITIATIVE_STAT, can_break_free
from .target_resolver import TargetResolver, is_aoe

logger = logging.getLogger(__name__)

# 技能目标写法中不经过目标解析器的几种
ENEMY_TARGET = "enemy"
SELF_TARGET = "self"
PARTY_TARGETS = ("party", "area")


class CombatController:
    """
    战斗控制器

    职责：
    - 开始/结束遭遇战
    - 先攻顺序与回合归属
    - 结算行动并写入战斗状态
    - 轮次结束钩子（持续伤害、效果倒计时、冷却、轮数）
    - 判定胜负

    状态机：
    AWAITING_PLAYER_ACTION → RESOLVING_ACTION → AWAITING_ENEMY_ACTION
    → RESOLVING_ACTION → ROUND_END → AWAITING_PLAYER_ACTION | ENCOUNTER_END
    """

    def __init__(
        self,
        repository: Optional[CombatContentRepository] = None,
        party: Optional[List[Character]] = None,
        dice: Optional[DiceRoller] = None,
        target_resolver: Optional[TargetResolver] = None,
        log_limit: Optional[int] = None,
    ):
        self.repository = repository or CombatContentRepository()
        self._party = party
        self.dice = dice or DiceRoller()
        self.target_resolver = target_resolver or TargetResolver()
        self.log_limit = settings.combat_log_limit if log_limit is None else log_limit

        self.state: Optional[CombatState] = None
        self.last_result: Optional[EncounterResult] = None
        self.final_snapshot: Optional[CombatSnapshot] = None
        self._pending_enemy_plan: Optional[ActionPlan] = None

    @property
    def party(self) -> List[Character]:
        """队伍名册（外部持有，控制器只引用）"""
        if self._party is None:
            self._party = self.repository.build_party()
        return self._party

    @property
    def phase(self) -> Optional[CombatPhase]:
        if self.state is not None:
            return self.state.phase
        if self.last_result is not None:
            return CombatPhase.ENCOUNTER_END
        return None

    # ============================================
    # 公共接口
    # ============================================

    def start_encounter(self, enemy_id: str) -> CombatState:
        """
        开始遭遇战

        Args:
            enemy_id: 敌人ID

        Returns:
            CombatState: 新的战斗状态

        流程：
        1. 校验数据（敌人、每个成员的技能），缺失直接报错，不创建任何状态
        2. 创建敌人（满血、无效果）与同伴
        3. 骰先攻并排序
        4. 进入第一个可行动者的回合
        """
        if self.state is not None:
            raise CombatError(f"Encounter already active: {self.state.encounter_id}")

        party = self.party
        enemy_def = self.repository.validate_encounter(enemy_id, party)
        if not any(not member.is_down for member in party):
            raise NoValidTargetError("party")

        enemy = Character(
            id=enemy_def.id,
            name=enemy_def.name,
            combatant_type=CombatantType.ENEMY,
            max_health=enemy_def.max_health,
            stats=dict(enemy_def.stats),
            innate_reduction=enemy_def.innate_reduction,
            description=enemy_def.description,
        )
        companion = None
        if enemy_def.companion:
            companion = Character(
                id=enemy_def.companion.id,
                name=enemy_def.companion.name,
                combatant_type=CombatantType.COMPANION,
                max_health=enemy_def.companion.max_health,
                stats=dict(enemy_def.companion.stats),
                description=enemy_def.companion.description,
            )

        for member in party:
            member.effects = []

        state = CombatState(
            encounter_id=f"encounter_{uuid.uuid4().hex[:8]}",
            enemy_definition=enemy_def,
            enemy=enemy,
            party=party,
            companion=companion,
            companion_definition=enemy_def.companion,
        )
        state.turn_order = self._roll_initiative(state)

        self.state = state
        self.last_result = None
        self.final_snapshot = None
        self._pending_enemy_plan = None

        order = ", ".join(slot.combatant_id for slot in state.turn_order)
        state.add_log("system", f"Combat begins against {enemy.name}! Turn order: {order}", "system")
        logger.info("[CombatController] 遭遇战开始 %s（敌人=%s）", state.encounter_id, enemy_def.id)

        self._begin_turn(state)
        return state

    def current_state(self) -> CombatState:
        """获取进行中的战斗状态"""
        return self._require_active()

    def snapshot(self) -> CombatSnapshot:
        """当前（或刚结束的）遭遇战的只读快照"""
        if self.state is not None:
            return CombatSnapshot.from_state(self.state, self.log_limit)
        if self.final_snapshot is not None:
            return self.final_snapshot
        raise EncounterNotActiveError("No encounter has been started")

    def get_available_abilities(self, character_id: str) -> List[AbilityOption]:
        """获取某成员的技能列表（含剩余次数）"""
        options = []
        for ability in self.repository.list_abilities(character_id):
            remaining = (
                self.state.uses_remaining(character_id, ability) if self.state else ability.uses
            )
            options.append(
                AbilityOption(
                    ability_id=ability.id,
                    name=ability.name,
                    description=ability.description,
                    target_mode=ability.target_mode,
                    uses_remaining=remaining,
                    available=remaining is None or remaining > 0,
                    damage=ability.damage,
                    stat=ability.stat,
                )
            )
        return options

    def get_roll_bonus(self, actor: Character, ability: Ability) -> int:
        """判定加值 = 技能属性 + 队伍命中加成 + 加速（自身与队伍共享）"""
        bonus = actor.stat(ability.stat)
        if self.state is not None:
            bonus += get_party_accuracy_bonus(self.state)
        return bonus + get_haste_bonus(actor, self.state)

    def roll_for(
        self, character_id: str, ability_id: str, natural: Optional[int] = None
    ) -> RollResult:
        """为技能掷骰；传入 natural 时使用表现层骰出的自然值"""
        state = self._require_active()
        actor = self._require_party_member(state, character_id)
        ability = self.repository.get_ability(character_id, ability_id)
        bonus = self.get_roll_bonus(actor, ability)
        if natural is None:
            return self.dice.perform_roll(bonus, ability.difficulty)
        if not 1 <= natural <= 20:
            raise CombatError(f"Natural roll must be between 1 and 20: {natural}")
        return resolve_roll(natural, bonus, ability.difficulty)

    # ============================================
    # 行动计划（不修改状态，可随时丢弃）
    # ============================================

    def plan_player_action(
        self,
        character_id: str,
        ability_id: str,
        roll: Optional[RollResult] = None,
        target: Optional[str] = None,
    ) -> ActionPlan:
        """
        校验并解析玩家行动

        Raises:
            NotYourTurnError: 阶段或回合归属不对
            ContentNotFoundError: 技能不存在
            AbilityUnavailableError: 次数用尽
            NoValidTargetError: 没有有效目标
        """
        state = self._require_active()
        if state.phase != CombatPhase.AWAITING_PLAYER_ACTION:
            raise NotYourTurnError(f"Not awaiting a player action (phase={state.phase.value})")
        if state.turn_owner_id != character_id:
            raise NotYourTurnError(f"It is {state.turn_owner_id}'s turn, not {character_id}'s")

        actor = self._require_party_member(state, character_id)
        ability = self.repository.get_ability(character_id, ability_id)
        remaining = state.uses_remaining(character_id, ability)
        if remaining is not None and remaining <= 0:
            raise AbilityUnavailableError(f"{ability.name} has no uses remaining")

        targets, aoe = self._resolve_player_targets(state, actor, ability, target)
        if roll is None:
            roll = self.dice.perform_roll(self.get_roll_bonus(actor, ability), ability.difficulty)

        return ActionPlan(
            encounter_id=state.encounter_id,
            round=state.round,
            turn_index=state.current_turn_index,
            kind=ActionKind.ABILITY,
            actor_id=actor.id,
            targets=targets,
            is_aoe=aoe,
            ability=ability,
            roll=roll,
        )

    def plan_enemy_action(self, decision: Optional[EnemyDecision] = None) -> ActionPlan:
        """
        校验并解析敌方（敌人或同伴）行动

        决策无效（攻击不存在/冷却中）时改用规则战术，并记录警告。
        同一回合内已有计划且决策一致时直接复用，不再消耗随机数，
        保证预览与实际执行的行动相同。
        """
        state = self._require_active()
        if state.phase != CombatPhase.AWAITING_ENEMY_ACTION:
            raise NotYourTurnError(f"Not awaiting an enemy action (phase={state.phase.value})")

        pending = self.pending_enemy_plan()
        if pending is not None and (decision is None or self._same_decision(decision, pending.decision)):
            return pending

        slot = state.current_slot
        tactics = EnemyTactics(state)
        if slot.side == CombatantType.COMPANION:
            kind = ActionKind.COMPANION_ATTACK
            attacks = state.companion_definition.attacks
            if decision is None:
                decision = tactics.decide_companion_action(self.dice.rng)
            attack = self._find_attack(attacks, decision.action_id if decision else None)
            if attack is None:
                logger.warning("[CombatController] 同伴决策无效 %s，改为随机攻击", decision)
                decision = tactics.decide_companion_action(self.dice.rng)
                attack = self._find_attack(attacks, decision.action_id)
        else:
            kind = ActionKind.ENEMY_ATTACK
            if decision is None or not tactics.is_valid_decision(decision):
                if decision is not None:
                    logger.warning("[CombatController] 敌人决策无效 %s，改用规则战术", decision.to_dict())
                decision = tactics.decide_action()
            attack = state.enemy_definition.get_attack(decision.action_id)

        target_spec = decision.target or attack.targeting
        resolved = self.target_resolver.resolve(target_spec, state.party, state.active_party)
        if resolved is None:
            raise NoValidTargetError(target_spec, slot.combatant_id)

        plan = ActionPlan(
            encounter_id=state.encounter_id,
            round=state.round,
            turn_index=state.current_turn_index,
            kind=kind,
            actor_id=slot.combatant_id,
            targets=resolved if is_aoe(resolved) else [resolved],
            is_aoe=is_aoe(resolved),
            attack=attack,
            decision=decision,
        )
        self._pending_enemy_plan = plan
        return plan

    def pending_enemy_plan(self) -> Optional[ActionPlan]:
        """当前回合已计划但未执行的敌方行动；回合变化后失效"""
        plan = self._pending_enemy_plan
        state = self.state
        if plan is None or state is None:
            return None
        if (plan.encounter_id, plan.round, plan.turn_index) != (
            state.encounter_id,
            state.round,
            state.current_turn_index,
        ):
            return None
        return plan

    @staticmethod
    def _same_decision(decision: EnemyDecision, planned: Optional[EnemyDecision]) -> bool:
        if planned is None:
            return False
        return decision.action_id == planned.action_id and (decision.target or None) == (
            planned.target or None
        )

    # ============================================
    # 结算
    # ============================================

    def execute(self, plan: ActionPlan) -> ActionResult:
        """
        执行行动计划

        一旦开始修改状态就会执行到底（包括回合推进与轮次结束钩子）。
        """
        state = self._require_active()
        if (
            plan.encounter_id != state.encounter_id
            or plan.round != state.round
            or plan.turn_index != state.current_turn_index
        ):
            raise NotYourTurnError("Action plan is stale; plan the action again")

        self._pending_enemy_plan = None
        actor = state.get_combatant(plan.actor_id)
        state.phase = CombatPhase.RESOLVING_ACTION
        result = ActionResult(
            action_id=plan.action_id,
            kind=plan.kind,
            actor_id=plan.actor_id,
            target_ids=[target.id for target in plan.targets],
            is_aoe=plan.is_aoe,
            roll=plan.roll,
        )

        if plan.kind == ActionKind.ABILITY:
            self._apply_player_ability(state, actor, plan, result)
            state.record_ability_use(actor.id, plan.ability)
            self._check_enemy_specials(state, result)
        else:
            self._apply_enemy_attack(state, actor, plan.attack, plan.targets, result)

        self._record_action_logs(state, actor, result)
        self._complete_action(state, result)
        return result

    def perform_player_action(
        self,
        character_id: str,
        ability_id: str,
        roll: Optional[RollResult] = None,
        target: Optional[str] = None,
    ) -> ActionResult:
        """玩家行动（计划 + 执行）"""
        return self.execute(self.plan_player_action(character_id, ability_id, roll, target))

    def perform_enemy_action(self, decision: Optional[EnemyDecision] = None) -> ActionResult:
        """敌方行动（计划 + 执行）"""
        return self.execute(self.plan_enemy_action(decision))

    def end_combat(self, reason: CombatEndReason = CombatEndReason.FLED) -> EncounterResult:
        """显式结束战斗（逃跑/场景切换/调试）"""
        state = self._require_active()
        return self._finish(state, reason)

    # ============================================
    # 调试接口（绕过正常结算，不做击杀判定）
    # ============================================

    def set_health(self, target_id: str, value: int) -> Character:
        state = self._require_active()
        target = state.get_combatant(target_id)
        if target is None:
            raise CombatError(f"Combatant not found: {target_id}")
        target.set_health(value)
        self._pending_enemy_plan = None
        state.add_log("debug", f"[debug] {target.name} health set to {target.current_health}", "debug")
        reason = state.check_combat_end()
        if reason:
            self._finish(state, reason)
        elif target.is_down and state.turn_owner_id == target.id:
            state.current_turn_index += 1
            self._begin_turn(state)
        return target

    def add_effect(
        self, target_id: str, payload: Union[EffectPayload, Dict[str, Any]]
    ) -> None:
        """target_id 为 'party' 时加到队伍共享效果，为敌人ID或 'enemy' 时加到敌人"""
        state = self._require_active()
        if not isinstance(payload, EffectPayload):
            payload = EffectPayload.model_validate(payload)
        if target_id == "party":
            apply_to_party(state, payload, source="debug")
        elif target_id in (ENEMY_TARGET, state.enemy.id):
            apply_to_enemy(state, payload, source="debug")
        else:
            target = state.get_combatant(target_id)
            if target is None:
                raise CombatError(f"Combatant not found: {target_id}")
            apply_to_character(target, payload, source="debug")
        self._pending_enemy_plan = None
        state.add_log("debug", f"[debug] {payload.type} added to {target_id}", "debug")

    def clear_effects(self, target_id: Optional[str] = None) -> None:
        """清除效果；不传 target_id 时清除全部"""
        state = self._require_active()
        self._pending_enemy_plan = None
        if target_id in (None, "party"):
            state.party_effects = []
        if target_id is None:
            for combatant in [state.enemy] + list(state.party):
                combatant.effects = []
            state.enemy_marked = False
        elif target_id != "party":
            target = state.get_combatant(target_id)
            if target is None:
                raise CombatError(f"Combatant not found: {target_id}")
            target.effects = []

    # ============================================
    # 私有方法 - 目标
    # ============================================

    def _resolve_player_targets(
        self,
        state: CombatState,
        actor: Character,
        ability: Ability,
        target: Optional[str],
    ):
        spec = (target or ability.target_mode or ENEMY_TARGET).strip()
        mode = spec.lower()
        if mode == ENEMY_TARGET:
            return [state.enemy], False
        if mode == SELF_TARGET:
            return [actor], False
        if mode in PARTY_TARGETS:
            active = state.active_party
            if not active:
                raise NoValidTargetError(spec, actor.id)
            return active, True

        resolved = self.target_resolver.resolve(spec, state.party, state.active_party)
        if resolved is None:
            raise NoValidTargetError(spec, actor.id)
        if is_aoe(resolved):
            return resolved, True
        return [resolved], False

    @staticmethod
    def _find_attack(attacks: List[EnemyAttack], attack_id: Optional[str]) -> Optional[EnemyAttack]:
        for attack in attacks:
            if attack.id == attack_id:
                return attack
        return None

    # ============================================
    # 私有方法 - 行动执行
    # ============================================

    def _apply_player_ability(
        self,
        state: CombatState,
        actor: Character,
        plan: ActionPlan,
        result: ActionResult,
    ):
        ability = plan.ability
        tier = plan.roll.tier
        if tier == RollTier.FAILURE:
            result.success = False
            result.add_message(f"{actor.name} attempts {ability.name} but fails.")
            return

        result.add_message(f"{actor.name} uses {ability.name} ({tier.value}).")
        hits_enemy = bool(plan.targets) and plan.targets[0] is state.enemy

        # 伤害（命中时消耗标记）
        if ability.damage and hits_enemy:
            base = compute_ability_damage(ability, tier)
            modifier = get_damage_modifier(state, state.enemy.id, is_player_attack=True)
            mark_bonus = consume_enemy_mark(state)
            result.mark_consumed = mark_bonus > 0
            event = self._apply_damage(state.enemy, calculate_final_damage(base, modifier, mark_bonus))
            state.damage_dealt += event.amount
            result.damage_events.append(event)
            self._describe_damage(result, event)

        payload = ability.effect
        if payload is None:
            return

        if payload.effect_type == EffectType.HEAL:
            amount = (payload.amount or 0) + (HEAL_CRITICAL_BONUS if tier == RollTier.CRITICAL else 0)
            for target in plan.targets:
                if target is state.enemy:
                    continue
                before = target.current_health
                healed = target.heal(amount)
                result.heal_events.append(
                    HealEvent(
                        target_id=target.id,
                        amount=healed,
                        health_before=before,
                        health_after=target.current_health,
                    )
                )
                result.add_message(f"{target.name} recovers {healed} health.")
            return

        if hits_enemy:
            apply_to_enemy(state, payload, source=actor.id)
            target_label = state.enemy.name
        elif plan.is_aoe or ability.target_mode.strip().lower() in PARTY_TARGETS:
            apply_to_party(state, payload, source=actor.id)
            target_label = "the party"
        else:
            for target in plan.targets:
                apply_to_character(target, payload, source=actor.id)
            target_label = ", ".join(target.name for target in plan.targets)
        result.effects_applied.append(payload.type)
        result.add_message(f"{target_label} gains {payload.type}.")

    def _apply_enemy_attack(
        self,
        state: CombatState,
        attacker: Character,
        attack: EnemyAttack,
        targets: List[Character],
        result: ActionResult,
    ):
        result.add_message(f"{attacker.name} uses {attack.name}.")
        for target in targets:
            if attack.damage:
                modifier = get_damage_modifier(state, target.id, is_player_attack=False)
                event = self._apply_damage(target, calculate_final_damage(attack.damage, modifier))
                state.damage_taken += event.amount
                result.damage_events.append(event)
                self._describe_damage(result, event)

            if target.is_down:
                continue
            for payload in (attack.effect, attack.bonus_effect):
                if payload is None or payload.effect_type == EffectType.HEAL:
                    continue
                apply_to_character(target, payload, source=attacker.id)
                result.effects_applied.append(payload.type)
                result.add_message(f"{target.name} is afflicted with {payload.type}.")

        if attack.cooldown and attacker is state.enemy:
            state.cooldowns[attack.id] = attack.cooldown

    @staticmethod
    def _apply_damage(target: Character, amount: int) -> DamageEvent:
        before = target.current_health
        actual = target.take_damage(amount)
        return DamageEvent(
            target_id=target.id,
            target_name=target.name,
            amount=actual,
            health_before=before,
            health_after=target.current_health,
        )

    @staticmethod
    def _describe_damage(result: ActionResult, event: DamageEvent):
        result.add_message(
            f"{event.target_name} takes {event.amount} damage "
            f"({event.health_before} → {event.health_after})."
        )
        if event.is_lethal:
            result.add_message(f"{event.target_name} goes down!")

    def _check_enemy_specials(self, state: CombatState, result: ActionResult):
        """敌人生命低于阈值时触发一次性特殊能力"""
        enemy = state.enemy
        if enemy.is_down:
            return
        for special in state.enemy_definition.special_abilities:
            if special.id in state.used_specials:
                continue
            if special.trigger.type != "health_below":
                continue
            if enemy.health_fraction > special.trigger.threshold:
                continue

            state.used_specials.append(special.id)
            effect = special.effect
            if effect.type == "transform":
                enemy.boost_max_health(effect.health_boost)
                state.enemy_form = effect.form or special.name
            else:
                apply_to_enemy(
                    state,
                    EffectPayload(type=effect.type, duration=effect.duration, amount=effect.amount),
                    source=enemy.id,
                )
            result.triggered_specials.append(special.id)
            result.add_message(fallback_narration.enemy_special(enemy.name, special.name))

    def _record_action_logs(self, state: CombatState, actor: Character, result: ActionResult):
        """记录行动日志（判定结果挂在第一条上）"""
        payload = {"roll": result.roll.to_dict()} if result.roll else None
        for message in result.messages:
            state.add_log(actor.id, message, event_type=result.kind.value, payload=payload)
            payload = None

    # ============================================
    # 私有方法 - 回合流程
    # ============================================

    def _complete_action(self, state: CombatState, result: ActionResult):
        """行动结算完毕：判定胜负 → 推进回合 → 收集自动事件 → 快照"""
        seq_before = state.log_seq
        if not self._check_end(state):
            state.current_turn_index += 1
            self._begin_turn(state)

        result.follow_up = [entry.message for entry in state.get_log_since(seq_before)]
        result.encounter_end = state.end_reason
        result.snapshot = CombatSnapshot.from_state(state, self.log_limit)

    def _begin_turn(self, state: CombatState):
        """
        找到下一个可以行动的单位并设置阶段

        倒地/眩晕的单位跳过；被束缚的队伍成员先尝试挣脱，失败则跳过。
        越过最后一个位置时执行轮次结束钩子。
        """
        while state.end_reason is None:
            if state.current_turn_index >= len(state.turn_order):
                self._end_round(state)
                if self._check_end(state):
                    return

            slot = state.turn_order[state.current_turn_index]
            if self._can_act(state, slot):
                if slot.side == CombatantType.PARTY:
                    state.phase = CombatPhase.AWAITING_PLAYER_ACTION
                else:
                    state.phase = CombatPhase.AWAITING_ENEMY_ACTION
                return
            state.current_turn_index += 1

    def _can_act(self, state: CombatState, slot: TurnSlot) -> bool:
        combatant = state.get_combatant(slot.combatant_id)
        if combatant is None:
            return False
        if combatant.is_down:
            if slot.side == CombatantType.PARTY:
                state.add_log(combatant.id, fallback_narration.unconscious(combatant.name), "skip")
            return False
        if slot.side == CombatantType.COMPANION and not (
            state.companion_definition and state.companion_definition.attacks
        ):
            return False
        if is_stunned(combatant):
            state.add_log(combatant.id, fallback_narration.stunned(combatant.name), "skip")
            return False
        if slot.side == CombatantType.PARTY and is_restrained(combatant):
            roll = self.dice.d6()
            freed = can_break_free(roll, combatant.stat(BREAKFREE_STAT))
            if freed:
                combatant.remove_effects(EffectType.RESTRAIN)
            state.add_log(
                combatant.id,
                fallback_narration.break_free(combatant.name, freed),
                "break_free",
                payload={"roll": roll, "success": freed},
            )
            return freed
        return True

    def _end_round(self, state: CombatState):
        """轮次结束钩子"""
        state.phase = CombatPhase.ROUND_END

        for owner, amount, effect in collect_damage_over_time(state):
            actual = owner.take_damage(amount)
            if owner is state.enemy:
                state.damage_dealt += actual
            else:
                state.damage_taken += actual
            state.add_log(
                owner.id,
                f"{owner.name} suffers {actual} damage from {effect.label}.",
                "effect",
                payload={"damage": actual, "effect": effect.label},
            )

        expired = tick_all_effects(state)
        for owner_id, effect in expired:
            logger.debug("[CombatController] 效果过期 %s: %s", owner_id, effect.label)
        tick_cooldowns(state)

        state.round += 1
        state.current_turn_index = 0
        state.add_log("system", fallback_narration.round_transition(state.round), "round")

    def _check_end(self, state: CombatState) -> bool:
        reason = state.check_combat_end()
        if reason is None:
            return False
        self._finish(state, reason)
        return True

    def _finish(self, state: CombatState, reason: CombatEndReason) -> EncounterResult:
        """结束遭遇战：生成结果、清除效果、丢弃状态"""
        state.end_reason = reason
        state.phase = CombatPhase.ENCOUNTER_END
        summaries = {
            CombatEndReason.VICTORY: f"The party defeated {state.enemy.name} in {state.round} rounds.",
            CombatEndReason.DEFEAT: f"The party was defeated by {state.enemy.name}.",
            CombatEndReason.FLED: f"The party escaped from {state.enemy.name}.",
            CombatEndReason.SPECIAL: f"The fight with {state.enemy.name} ended unexpectedly.",
        }
        summary = summaries[reason]
        state.add_log("system", summary, "system")

        result = EncounterResult(
            encounter_id=state.encounter_id,
            result=reason,
            enemy_id=state.enemy.id,
            enemy_name=state.enemy.name,
            summary=summary,
            party_health={
                member.id: {"current": member.current_health, "max": member.max_health}
                for member in state.party
            },
            full_log=[entry.message for entry in state.combat_log],
            total_rounds=state.round,
            total_damage_dealt=state.damage_dealt,
            total_damage_taken=state.damage_taken,
        )

        clear_encounter_effects(state)
        self.final_snapshot = CombatSnapshot.from_state(state, self.log_limit)
        self.last_result = result
        self.state = None
        self._pending_enemy_plan = None
        logger.info("[CombatController] 遭遇战结束 %s: %s", state.encounter_id, reason.value)
        return result

    def _roll_initiative(self, state: CombatState) -> List[TurnSlot]:
        """先攻：d20 + 狡诈，高者先；平局比加值，再随机"""
        slots: List[TurnSlot] = []
        for combatant, side in [(m, CombatantType.PARTY) for m in state.active_party] + [
            (state.enemy, CombatantType.ENEMY)
        ]:
            bonus = combatant.stat(INITIATIVE_STAT)
            slots.append(
                TurnSlot(
                    combatant_id=combatant.id,
                    side=side,
                    initiative=self.dice.roll_initiative(bonus),
                    bonus=bonus,
                    tiebreak=self.dice.rng.random(),
                )
            )
        slots.sort(key=lambda s: (s.initiative, s.bonus, s.tiebreak), reverse=True)

        # 同伴紧跟在敌人之后行动
        if state.companion is not None:
            enemy_index = next(i for i, s in enumerate(slots) if s.side == CombatantType.ENEMY)
            slots.insert(
                enemy_index + 1,
                TurnSlot(combatant_id=state.companion.id, side=CombatantType.COMPANION),
            )
        return slots

    # ============================================
    # 私有方法 - 校验
    # ============================================

    def _require_active(self) -> CombatState:
        if self.state is None:
            if self.last_result is not None:
                raise EncounterEndedError(
                    f"Encounter {self.last_result.encounter_id} has ended "
                    f"({self.last_result.result.value})"
                )
            raise EncounterNotActiveError("No active encounter")
        return self.state

    @staticmethod
    def _require_party_member(state: CombatState, character_id: str) -> Character:
        actor = state.get_party_member(character_id)
        if actor is None:
            raise CombatError(f"Party member not found: {character_id}")
        return actor
