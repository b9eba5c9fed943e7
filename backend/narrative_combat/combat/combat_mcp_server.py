"""
战斗系统 MCP 服务器

暴露标准 MCP 工具接口
"""
import argparse
import json
import os
from typing import Any, Dict, Optional

from mcp.server.fastmcp import FastMCP

from ..services.combat_turn_service import CombatTurnService
from .combat_controller import CombatController
from .combat_narrator import CombatNarrator
from .content_repository import CombatContentRepository
from .models.action import ActionKind, ActionResult, EnemyDecision
from .models.combat_state import CombatEndReason, CombatPhase


# 初始化 FastMCP
combat_mcp = FastMCP(
    name="Narrative Combat MCP",
    instructions="""
叙事战斗 MCP 服务器

数值结算完全由程序完成，LLM 只负责叙事与敌人决策。

核心功能：
- 先攻与回合顺序
- 目标解析、伤害与状态效果
- 结算前的叙事上下文
- 调试工具

使用流程：
1. start_encounter - 开始遭遇战
2. get_available_abilities - 获取当前角色的技能
3. perform_player_action / perform_enemy_action - 按回合归属执行行动
4. 重复2-3直到战斗结束（结果附在最后一次行动的返回里）
""",
)

# 全局实例
content_repository = CombatContentRepository()
combat_controller = CombatController(content_repository)
turn_service = CombatTurnService(combat_controller)


def _get_turn_service() -> CombatTurnService:
    """回合服务始终绑定当前的控制器"""
    global turn_service
    if turn_service.controller is not combat_controller:
        turn_service = CombatTurnService(combat_controller, turn_service.narration_service)
    return turn_service


def _dumps(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=2, default=str)


def _error(exc: Exception) -> str:
    return json.dumps({"error": str(exc)}, ensure_ascii=False)


def _result_payload(result: ActionResult, narration: Optional[str] = None) -> Dict[str, Any]:
    response: Dict[str, Any] = {
        "action_result": {
            "display_text": result.to_display_text(),
            **result.to_dict(),
        },
        "narration": narration,
        "combat_state": result.snapshot.model_dump(mode="json") if result.snapshot else None,
    }
    # 如果战斗已结束，附加结果
    if result.encounter_end and combat_controller.last_result:
        response["final_result"] = {
            "result": combat_controller.last_result.result.value,
            "summary": combat_controller.last_result.to_llm_summary(),
        }
    return response


# ============================================
# MCP 工具定义
# ============================================


@combat_mcp.tool()
async def start_encounter(enemy_id: str) -> str:
    """
    开始遭遇战

    Args:
        enemy_id: 敌人ID（战斗数据中的 key）

    Returns:
        str: JSON字符串，包含 encounter_id、行动顺序和初始状态
    """
    try:
        state = combat_controller.start_encounter(enemy_id)
    except ValueError as exc:
        return _error(exc)

    return _dumps(
        {
            "encounter_id": state.encounter_id,
            "phase": state.phase.value,
            "round": state.round,
            "turn_order": [slot.to_dict() for slot in state.turn_order],
            "current_turn": state.turn_owner_id,
            "combat_state": combat_controller.snapshot().model_dump(mode="json"),
        }
    )


@combat_mcp.tool()
async def get_combat_state() -> str:
    """
    获取当前战斗状态（战斗结束后返回最终状态与结果）
    """
    try:
        snapshot = combat_controller.snapshot()
    except ValueError as exc:
        return _error(exc)

    response: Dict[str, Any] = {"combat_state": snapshot.model_dump(mode="json")}
    if combat_controller.state is None and combat_controller.last_result:
        response["final_result"] = combat_controller.last_result.to_dict()
    return _dumps(response)


@combat_mcp.tool()
async def get_available_abilities(character_id: str) -> str:
    """
    获取队伍成员的技能列表

    Args:
        character_id: 队伍成员ID

    Returns:
        str: JSON字符串，包含技能选项（含剩余次数）
    """
    try:
        options = combat_controller.get_available_abilities(character_id)
    except ValueError as exc:
        return _error(exc)

    return _dumps(
        {
            "character_id": character_id,
            "abilities": [option.to_dict() for option in options],
        }
    )


@combat_mcp.tool()
async def perform_player_action(
    character_id: str,
    ability_id: str,
    natural_roll: Optional[int] = None,
    target: Optional[str] = None,
    narrate: bool = True,
) -> str:
    """
    执行玩家行动

    Args:
        character_id: 当前回合的队伍成员ID
        ability_id: 技能ID
        natural_roll: 表现层骰出的 d20 自然值（可选，不传则由服务器掷骰）
        target: 覆盖技能默认目标（成员ID或目标关键字）
        narrate: 是否生成叙事文本

    Returns:
        str: JSON字符串，包含行动结果、叙事与当前战斗状态
    """
    try:
        roll = None
        if natural_roll is not None:
            roll = combat_controller.roll_for(character_id, ability_id, natural_roll)
        if narrate:
            outcome = await _get_turn_service().run_player_turn(
                character_id, ability_id, roll=roll, target=target
            )
            response = _result_payload(outcome.result, outcome.narration)
            response["extra_narration"] = outcome.extra_narration
        else:
            result = combat_controller.perform_player_action(
                character_id, ability_id, roll=roll, target=target
            )
            response = _result_payload(result)
    except ValueError as exc:
        return _error(exc)

    return _dumps(response)


@combat_mcp.tool()
async def perform_enemy_action(
    action_id: Optional[str] = None,
    target: Optional[str] = None,
    use_llm: bool = True,
    narrate: bool = True,
) -> str:
    """
    执行敌方行动（敌人或其同伴）

    Args:
        action_id: 指定攻击ID（可选，不传则由 LLM 或规则战术决定）
        target: 指定目标（成员ID或目标关键字）
        use_llm: 未指定攻击时是否让 LLM 决策
        narrate: 是否生成叙事文本
    """
    decision = EnemyDecision(action_id=action_id, target=target) if action_id else None
    try:
        if narrate:
            outcome = await _get_turn_service().run_enemy_turn(decision=decision, use_llm=use_llm)
            response = _result_payload(outcome.result, outcome.narration)
        else:
            response = _result_payload(combat_controller.perform_enemy_action(decision))
    except ValueError as exc:
        return _error(exc)

    return _dumps(response)


@combat_mcp.tool()
async def get_narration_context(
    character_id: Optional[str] = None,
) -> str:
    """
    获取叙事上下文（只读）

    包含效果摘要、战局走势、最近日志；
    敌方回合时附带本回合计划行动的伤害预估，
    随后的 perform_enemy_action 执行同一计划。

    Args:
        character_id: 附带该角色的叙事信息（可选）
    """
    try:
        state = combat_controller.current_state()
    except ValueError as exc:
        return _error(exc)

    narrator = CombatNarrator(state)
    context: Dict[str, Any] = {
        "combat": narrator.build_combat_context(),
        "recent_log": state.recent_log(combat_controller.log_limit),
        "phase": state.phase.value,
        "current_turn": state.turn_owner_id,
    }
    if character_id:
        character = state.get_combatant(character_id)
        if character is None:
            return _error(ValueError(f"Combatant not found: {character_id}"))
        context["character"] = narrator.build_character_context(character)

    if state.phase == CombatPhase.AWAITING_ENEMY_ACTION:
        try:
            plan = combat_controller.plan_enemy_action()
        except ValueError as exc:
            return _error(exc)
        if plan.kind == ActionKind.COMPANION_ATTACK:
            preview = narrator.build_companion_damage_context(plan.attack, plan.targets)
        else:
            preview = narrator.build_enemy_damage_context(plan.attack, plan.targets)
        context["planned_action"] = {"action_id": plan.action_id, "damage": preview}

    return _dumps(context)


# ============================================
# 调试工具
# ============================================


@combat_mcp.tool()
async def debug_set_health(target_id: str, value: int) -> str:
    """
    调试：直接设置生命值（不做击杀判定，但会检查战斗是否结束）
    """
    try:
        character = combat_controller.set_health(target_id, value)
    except ValueError as exc:
        return _error(exc)

    return _dumps(
        {
            "character": character.to_dict(),
            "phase": combat_controller.phase.value if combat_controller.phase else None,
        }
    )


@combat_mcp.tool()
async def debug_add_effect(target_id: str, effect: Dict[str, Any]) -> str:
    """
    调试：添加状态效果

    Args:
        target_id: "party"（队伍共享）、敌人ID 或队伍成员ID
        effect: 效果内容，如 {"type": "shield", "duration": 2, "reduction": 1}
    """
    try:
        combat_controller.add_effect(target_id, effect)
        snapshot = combat_controller.snapshot()
    except ValueError as exc:
        return _error(exc)

    return _dumps({"success": True, "combat_state": snapshot.model_dump(mode="json")})


@combat_mcp.tool()
async def end_encounter(reason: str = "fled") -> str:
    """
    结束遭遇战

    Args:
        reason: victory / defeat / fled / special
    """
    try:
        result = combat_controller.end_combat(CombatEndReason(reason))
    except ValueError as exc:
        return _error(exc)

    return _dumps(
        {
            "final_result": result.to_dict(),
            "summary": result.to_llm_summary(),
        }
    )


# ============================================


def run_combat_mcp_server(transport: str = "stdio"):
    """
    启动战斗MCP服务器

    Args:
        transport: 传输方式（stdio/streamable-http/sse）
    """
    combat_mcp.run(transport=transport)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Narrative Combat MCP Server")
    parser.add_argument(
        "--transport",
        choices=["stdio", "sse", "streamable-http"],
        default=os.getenv("MCP_TRANSPORT", "stdio"),
        help="Transport protocol",
    )
    parser.add_argument(
        "--host",
        default=os.getenv("MCP_HOST", "127.0.0.1"),
        help="Bind host for HTTP transports",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("MCP_PORT", "9102")),
        help="Bind port for HTTP transports",
    )
    args = parser.parse_args()

    combat_mcp.settings.host = args.host
    combat_mcp.settings.port = args.port
    run_combat_mcp_server(args.transport)
