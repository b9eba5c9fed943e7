import asyncio

import pytest

from narrative_combat.combat.dice import resolve_roll
from narrative_combat.combat.errors import NarrationUnavailableError
from narrative_combat.combat.models.action import EnemyDecision
from narrative_combat.combat.models.content import Ability, EnemyAttack, EnemyDefinition
from narrative_combat.services.combat_narration_service import CombatNarrationService
from narrative_combat.services.llm_service import LLMService, LLMServiceError


class _FakeLLM(LLMService):
    """按顺序返回预设结果；异常实例会被抛出"""

    def __init__(self, responses):
        self.responses = list(responses)
        self.prompts = []

    async def generate_simple(self, prompt, max_output_tokens=None, temperature=None, timeout=30.0):
        self.prompts.append(prompt)
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


class _SlowLLM(LLMService):
    def __init__(self):
        self.calls = 0

    async def generate_simple(self, prompt, max_output_tokens=None, temperature=None, timeout=30.0):
        self.calls += 1
        await asyncio.sleep(1)
        return "too late"


ATTACK = EnemyAttack(id="slam", name="Slam", damage=3)
DAMAGE = {"damage": {"damage_dealt": 3, "target_name": "Ava", "is_lethal": False}}


def _service(llm, max_retries=3, timeout=1.0):
    return CombatNarrationService(
        llm_service=llm, enabled=True, max_retries=max_retries, timeout=timeout, retry_delay=0
    )


def _enemy():
    return EnemyDefinition.model_validate(
        {
            "id": "ogre",
            "name": "Ogre",
            "maxHealth": 20,
            "attacks": [ATTACK.model_dump(), {"id": "sweep", "name": "Sweep", "damage": 2}],
        }
    )


@pytest.mark.asyncio
async def test_retry_then_success():
    llm = _FakeLLM([LLMServiceError("boom"), "", "The ogre slams Ava into the mud."])

    text = await _service(llm).narrate_enemy_action("Ogre", ATTACK, "Ava", DAMAGE)

    assert text == "The ogre slams Ava into the mud."
    assert len(llm.prompts) == 3
    assert '"damage_dealt": 3' in llm.prompts[0]


@pytest.mark.asyncio
async def test_exhausted_retries_use_fallback():
    llm = _FakeLLM(["", "   "])

    text = await _service(llm, max_retries=2).narrate_enemy_action("Ogre", ATTACK, "Ava", DAMAGE)

    assert text == "Ogre uses Slam against Ava. Ava takes 3 damage."


@pytest.mark.asyncio
async def test_timeout_counts_as_failure():
    llm = _SlowLLM()
    service = _service(llm, max_retries=2, timeout=0.01)

    with pytest.raises(NarrationUnavailableError):
        await service._call_with_retry("prompt", 50)
    assert llm.calls == 2


@pytest.mark.asyncio
async def test_disabled_service_never_calls_llm():
    llm = _FakeLLM([])
    service = CombatNarrationService(llm_service=llm, enabled=False)
    ability = Ability(id="stab", name="Stab", damage=2)

    text = await service.narrate_player_action(
        "Ava", ability, resolve_roll(20, 3), "Ogre", {"damage": {"damage_dealt": 3}}
    )

    assert service.available is False
    assert text == "Ava lands a devastating Stab! Ogre takes 3 damage."
    assert llm.prompts == []


@pytest.mark.asyncio
async def test_failed_roll_fallback_mentions_failure():
    service = CombatNarrationService(enabled=False)
    ability = Ability(id="stab", name="Stab", damage=2)

    text = await service.narrate_player_action("Ava", ability, resolve_roll(2, 0), "Ogre", {})

    assert text == "Ava attempts but fails to use Stab."


@pytest.mark.asyncio
async def test_decide_enemy_action_accepts_valid_json():
    llm = _FakeLLM(['```json\n{"action_id": "sweep", "target": "grouped", "reasoning": "crowd"}\n```'])
    fallback = EnemyDecision(action_id="slam", source="tactics")
    enemy = _enemy()

    decision = await _service(llm).decide_enemy_action(
        enemy, list(enemy.attacks), [{"id": "ava", "health": 10}], {"round": 1}, fallback
    )

    assert decision.action_id == "sweep"
    assert decision.target == "grouped"
    assert decision.source == "llm"


@pytest.mark.asyncio
async def test_decide_enemy_action_rejects_unknown_attack():
    llm = _FakeLLM(['{"action_id": "meteor", "target": "ava"}'])
    fallback = EnemyDecision(action_id="slam", source="tactics")
    enemy = _enemy()

    decision = await _service(llm).decide_enemy_action(enemy, list(enemy.attacks), [], {}, fallback)

    assert decision is fallback


@pytest.mark.asyncio
async def test_decide_enemy_action_falls_back_when_llm_fails():
    llm = _FakeLLM([LLMServiceError("down")])
    fallback = EnemyDecision(action_id="slam", source="tactics")
    enemy = _enemy()

    decision = await _service(llm, max_retries=1).decide_enemy_action(
        enemy, list(enemy.attacks), [], {}, fallback
    )

    assert decision is fallback


def test_parse_json_ignores_non_objects():
    llm = _FakeLLM([])

    assert llm.parse_json('["slam"]') is None
    assert llm.parse_json("not json") is None
    assert llm.parse_json('{"action_id": "slam"}') == {"action_id": "slam"}


def test_narration_failure_is_not_a_rule_error():
    assert issubclass(NarrationUnavailableError, RuntimeError)
    assert not issubclass(NarrationUnavailableError, ValueError)
