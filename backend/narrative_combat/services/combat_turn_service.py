"""
战斗回合服务

串行化一回合的 决策 → 预估 → 结算，结算完成后再生成叙事。
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..combat.combat_controller import CombatController
from ..combat.combat_narrator import CombatNarrator
from ..combat.enemy_tactics import EnemyTactics
from ..combat.errors import NotYourTurnError
from ..combat.models.action import ActionKind, ActionPlan, ActionResult, EnemyDecision, RollResult
from ..combat.models.character import CombatantType
from ..combat.models.combat_state import CombatPhase, CombatState
from .combat_narration_service import CombatNarrationService

logger = logging.getLogger(__name__)


@dataclass
class TurnOutcome:
    """一回合的结果：结算 + 叙事 + 叙事用的上下文"""

    result: ActionResult
    narration: str
    context: Dict[str, Any] = field(default_factory=dict)
    extra_narration: List[str] = field(default_factory=list)  # 特殊能力等附加叙事

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result": self.result.to_dict(),
            "narration": self.narration,
            "extra_narration": self.extra_narration,
            "context": self.context,
            "snapshot": self.result.snapshot.model_dump(mode="json") if self.result.snapshot else None,
        }


class CombatTurnService:
    """
    战斗回合服务

    同一时间只结算一个行动：锁覆盖决策与状态修改，
    叙事在锁外等待，只读取结算前生成的上下文。
    """

    def __init__(
        self,
        controller: CombatController,
        narration_service: Optional[CombatNarrationService] = None,
    ):
        self.controller = controller
        self.narration_service = narration_service or CombatNarrationService()
        self._lock = asyncio.Lock()

    async def run_player_turn(
        self,
        character_id: str,
        ability_id: str,
        roll: Optional[RollResult] = None,
        target: Optional[str] = None,
    ) -> TurnOutcome:
        """执行玩家回合"""
        async with self._lock:
            state = self.controller.current_state()
            plan = self.controller.plan_player_action(character_id, ability_id, roll, target)
            narrator = CombatNarrator(state)
            actor = state.get_party_member(character_id)
            enemy_name = state.enemy.name

            context = self._base_context(state, narrator)
            context["actor"] = narrator.build_character_context(actor)
            context["damage"] = narrator.build_player_damage_context(
                plan.ability, plan.roll, plan.targets
            )

            result = self.controller.execute(plan)
            logger.info("[CombatTurnService] %s 使用 %s", plan.actor_id, plan.action_id)

        narration = await self.narration_service.narrate_player_action(
            actor.name, plan.ability, plan.roll, enemy_name, context
        )
        extra = []
        for special_id in result.triggered_specials:
            special = next(
                (s for s in state.enemy_definition.special_abilities if s.id == special_id), None
            )
            if special is None:
                continue
            extra.append(
                await self.narration_service.narrate_enemy_special(
                    enemy_name, special.name, special.narration_hints or special.description, context
                )
            )
        return TurnOutcome(result=result, narration=narration, context=context, extra_narration=extra)

    async def run_enemy_turn(
        self, decision: Optional[EnemyDecision] = None, use_llm: bool = True
    ) -> TurnOutcome:
        """
        执行敌方回合（敌人或其同伴，取决于当前回合归属）

        Args:
            decision: 调用方指定的决策；为空时沿用已预览的计划，否则由 LLM 或规则战术决定
            use_llm: 是否让 LLM 决定敌人行动（同伴总是随机选择）
        """
        async with self._lock:
            state = self.controller.current_state()
            if state.phase != CombatPhase.AWAITING_ENEMY_ACTION:
                raise NotYourTurnError(f"Not awaiting an enemy action (phase={state.phase.value})")

            narrator = CombatNarrator(state)
            context = self._base_context(state, narrator)

            if (
                decision is None
                and use_llm
                and state.current_slot.side == CombatantType.ENEMY
                and self.controller.pending_enemy_plan() is None
            ):
                tactics = EnemyTactics(state)
                decision = await self.narration_service.decide_enemy_action(
                    state.enemy_definition,
                    tactics.available_attacks(),
                    [
                        {"id": m.id, "name": m.name, "health": m.current_health, "max": m.max_health}
                        for m in state.active_party
                    ],
                    context["combat"],
                    fallback=tactics.decide_action(),
                )

            plan = self.controller.plan_enemy_action(decision)
            actor = state.get_combatant(plan.actor_id)
            context["damage"] = self._preview_damage(narrator, plan)
            target_name = context["damage"].get("target_name") or ", ".join(
                target.name for target in plan.targets
            )
            enemy_name = state.enemy.name

            result = self.controller.execute(plan)
            logger.info("[CombatTurnService] %s 使用 %s", plan.actor_id, plan.action_id)

        if plan.kind == ActionKind.COMPANION_ATTACK:
            narration = await self.narration_service.narrate_companion_action(
                actor.name, enemy_name, plan.attack, target_name, context
            )
        else:
            narration = await self.narration_service.narrate_enemy_action(
                enemy_name, plan.attack, target_name, context
            )
        return TurnOutcome(result=result, narration=narration, context=context)

    # ============================================
    # 内部
    # ============================================

    def _base_context(self, state: CombatState, narrator: CombatNarrator) -> Dict[str, Any]:
        return {
            "combat": narrator.build_combat_context(),
            "recent_log": state.recent_log(self.controller.log_limit),
        }

    @staticmethod
    def _preview_damage(narrator: CombatNarrator, plan: ActionPlan) -> Dict[str, Any]:
        if plan.kind == ActionKind.COMPANION_ATTACK:
            return narrator.build_companion_damage_context(plan.attack, plan.targets)
        return narrator.build_enemy_damage_context(plan.attack, plan.targets)
