"""
战斗叙事服务

把只读的叙事上下文交给 LLM 生成描述文本，并为敌人选择行动。
任何失败都回退到固定模板，不会影响战斗数值。
"""
import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from ..combat import fallback_narration
from ..combat.errors import NarrationUnavailableError
from ..combat.models.action import EnemyDecision, RollResult, RollTier
from ..combat.models.content import Ability, EnemyAttack, EnemyDefinition
from ..config import settings
from .llm_service import LLMService

logger = logging.getLogger(__name__)


# ============================================
# 提示模板
# ============================================

NARRATION_RULES = """Rules:
- Write 1-2 vivid sentences in present tense.
- Use ONLY the numbers given above. Never invent damage or health values.
- If is_lethal / is_killing_blow is true, describe the target going down.
- Plain text only, no markdown."""

ENEMY_ACTION_PROMPT = """You narrate a turn-based fantasy fight.

Enemy: {enemy_name}
Attack: {attack_name} - {attack_description}
Target: {target_name}
Outcome: {damage}
Battle state: {combat}
Recent events:
{recent_log}

{rules}"""

COMPANION_ACTION_PROMPT = """You narrate a turn-based fantasy fight.

{companion_name} fights alongside {enemy_name}.
Attack: {attack_name} - {attack_description}
Target: {target_name}
Outcome: {damage}
Battle state: {combat}

{rules}"""

PLAYER_ACTION_PROMPT = """You narrate a turn-based fantasy fight.

Hero: {character}
Ability: {ability_name} - {ability_description}
Roll: {roll} (tier: {tier})
Enemy: {enemy_name}
Outcome: {damage}
Battle state: {combat}
Recent events:
{recent_log}

A "failure" tier means the ability misses or fizzles; "partial" means it only half works.
{rules}"""

ENEMY_SPECIAL_PROMPT = """You narrate a turn-based fantasy fight.

{enemy_name} is badly wounded and unleashes {special_name}: {special_description}
Battle state: {combat}

Write 1-2 dramatic sentences. Plain text only."""

ENEMY_DECISION_PROMPT = """You control {enemy_name} in a turn-based fight.
Personality: {personality}

Available attacks:
{attacks}

Party members:
{party}

Battle state: {combat}

Choose one attack and a target. The target is a party member id or one of:
lowest_health, highest_health, highest_threat, random, grouped.

Respond with JSON only:
{{"action_id": "<attack id>", "target": "<member id or keyword>", "reasoning": "<short>"}}"""


def _format_recent_log(context: Dict[str, Any]) -> str:
    lines = context.get("recent_log") or []
    if not lines:
        return "(none)"
    return "\n".join(f"- {line}" for line in lines)


def _dump(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, default=str)


class CombatNarrationService:
    """
    战斗叙事服务

    - 每次调用：最多 max_retries 次，每次都有超时，间隔线性递增
    - 空文本视为失败
    - 全部失败时使用 fallback_narration 模板
    """

    def __init__(
        self,
        llm_service: Optional[LLMService] = None,
        enabled: Optional[bool] = None,
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None,
        retry_delay: Optional[float] = None,
    ):
        self.enabled = settings.narration_enabled if enabled is None else enabled
        if llm_service is None and self.enabled and settings.gemini_api_key:
            llm_service = LLMService()
        self.llm_service = llm_service
        self.max_retries = max(1, max_retries or settings.narration_max_retries)
        self.timeout = timeout or settings.narration_timeout_seconds
        self.retry_delay = (
            settings.narration_retry_delay_seconds if retry_delay is None else retry_delay
        )

    @property
    def available(self) -> bool:
        return self.enabled and self.llm_service is not None

    # ============================================
    # 叙事
    # ============================================

    async def narrate_enemy_action(
        self,
        enemy_name: str,
        attack: EnemyAttack,
        target_name: str,
        context: Dict[str, Any],
    ) -> str:
        damage = context.get("damage", {})
        prompt = ENEMY_ACTION_PROMPT.format(
            enemy_name=enemy_name,
            attack_name=attack.name,
            attack_description=attack.narration_hints or attack.description,
            target_name=target_name,
            damage=_dump(damage),
            combat=_dump(context.get("combat", {})),
            recent_log=_format_recent_log(context),
            rules=NARRATION_RULES,
        )
        return await self._narrate(
            prompt,
            fallback_narration.enemy_attack(enemy_name, attack.name, target_name, damage),
        )

    async def narrate_companion_action(
        self,
        companion_name: str,
        enemy_name: str,
        attack: EnemyAttack,
        target_name: str,
        context: Dict[str, Any],
    ) -> str:
        damage = context.get("damage", {})
        prompt = COMPANION_ACTION_PROMPT.format(
            companion_name=companion_name,
            enemy_name=enemy_name,
            attack_name=attack.name,
            attack_description=attack.narration_hints or attack.description,
            target_name=target_name,
            damage=_dump(damage),
            combat=_dump(context.get("combat", {})),
            rules=NARRATION_RULES,
        )
        return await self._narrate(
            prompt,
            fallback_narration.companion_attack(companion_name, attack.name, target_name, damage),
        )

    async def narrate_player_action(
        self,
        character_name: str,
        ability: Ability,
        roll: Optional[RollResult],
        enemy_name: str,
        context: Dict[str, Any],
    ) -> str:
        damage = context.get("damage", {})
        tier = roll.tier if roll else RollTier.SUCCESS
        prompt = PLAYER_ACTION_PROMPT.format(
            character=_dump(context.get("actor", {"name": character_name})),
            ability_name=ability.name,
            ability_description=ability.narration_hints or ability.description,
            roll=str(roll) if roll else "automatic",
            tier=tier.value,
            enemy_name=enemy_name,
            damage=_dump(damage),
            combat=_dump(context.get("combat", {})),
            recent_log=_format_recent_log(context),
            rules=NARRATION_RULES,
        )
        return await self._narrate(
            prompt,
            fallback_narration.player_action(character_name, ability.name, tier, enemy_name, damage),
        )

    async def narrate_enemy_special(
        self,
        enemy_name: str,
        special_name: str,
        special_description: str = "",
        context: Optional[Dict[str, Any]] = None,
    ) -> str:
        prompt = ENEMY_SPECIAL_PROMPT.format(
            enemy_name=enemy_name,
            special_name=special_name,
            special_description=special_description,
            combat=_dump((context or {}).get("combat", {})),
        )
        return await self._narrate(prompt, fallback_narration.enemy_special(enemy_name, special_name))

    # ============================================
    # 敌人决策
    # ============================================

    async def decide_enemy_action(
        self,
        enemy: EnemyDefinition,
        attacks: List[EnemyAttack],
        party: List[Dict[str, Any]],
        context: Dict[str, Any],
        fallback: EnemyDecision,
    ) -> EnemyDecision:
        """
        让 LLM 为敌人选择攻击

        Args:
            enemy: 敌人定义
            attacks: 当前可用（不在冷却中）的攻击
            party: 队伍成员概要（id、名字、生命）
            context: 战局上下文
            fallback: 规则战术给出的决策

        Returns:
            EnemyDecision: LLM 的决策；不可用或结果无效时返回 fallback
        """
        if not self.available or not attacks:
            return fallback

        prompt = ENEMY_DECISION_PROMPT.format(
            enemy_name=enemy.name,
            personality=enemy.personality or enemy.description or "aggressive",
            attacks="\n".join(
                f"- {attack.id}: {attack.name} (damage {attack.damage or 0}, targeting {attack.targeting})"
                for attack in attacks
            ),
            party="\n".join(f"- {_dump(member)}" for member in party) or "(none)",
            combat=_dump(context),
        )
        try:
            text = await self._call_with_retry(prompt, settings.decision_max_tokens)
        except NarrationUnavailableError as exc:
            logger.info("[CombatNarration] 敌人决策回退到规则战术: %s", exc)
            return fallback

        data = self.llm_service.parse_json(text)
        valid_ids = {attack.id for attack in attacks}
        if not data or data.get("action_id") not in valid_ids:
            logger.warning("[CombatNarration] LLM 决策无效，使用规则战术: %s", text[:200])
            return fallback

        target = data.get("target")
        return EnemyDecision(
            action_id=data["action_id"],
            target=target.strip() if isinstance(target, str) and target.strip() else None,
            source="llm",
            reasoning=data.get("reasoning") if isinstance(data.get("reasoning"), str) else None,
        )

    # ============================================
    # 内部
    # ============================================

    async def _narrate(self, prompt: str, fallback: str) -> str:
        if not self.available:
            return fallback
        try:
            return await self._call_with_retry(prompt, settings.narration_max_tokens)
        except NarrationUnavailableError as exc:
            logger.info("[CombatNarration] 使用兜底文本: %s", exc)
            return fallback

    async def _call_with_retry(self, prompt: str, max_tokens: int) -> str:
        """
        带超时与重试的 LLM 调用

        Raises:
            NarrationUnavailableError: 禁用或全部尝试失败
        """
        if not self.available:
            raise NarrationUnavailableError("narration disabled")

        last_error: Optional[BaseException] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                text = await asyncio.wait_for(
                    self.llm_service.generate_simple(
                        prompt, max_output_tokens=max_tokens, timeout=self.timeout
                    ),
                    timeout=self.timeout,
                )
                if text and text.strip():
                    return text.strip()
                last_error = NarrationUnavailableError("empty response")
            except asyncio.TimeoutError as exc:
                last_error = exc
            except Exception as exc:
                last_error = exc

            logger.warning(
                "[CombatNarration] 第 %d/%d 次调用失败: %s",
                attempt,
                self.max_retries,
                last_error or "timeout",
            )
            if attempt < self.max_retries and self.retry_delay > 0:
                await asyncio.sleep(self.retry_delay * attempt)

        raise NarrationUnavailableError(
            f"narration failed after {self.max_retries} attempts"
        ) from last_error
