import pytest

from conftest import make_controller
from narrative_combat.combat.dice import resolve_roll
from narrative_combat.combat.errors import NotYourTurnError
from narrative_combat.combat.models.action import EnemyDecision
from narrative_combat.combat.models.combat_state import CombatPhase
from narrative_combat.services.combat_narration_service import CombatNarrationService
from narrative_combat.services.combat_turn_service import CombatTurnService


class _RecordingNarration(CombatNarrationService):
    """记录敌人决策调用；总是返回规则战术的决策"""

    def __init__(self):
        super().__init__(enabled=False)
        self.decisions = []

    async def decide_enemy_action(self, enemy, attacks, party, context, fallback):
        self.decisions.append([attack.id for attack in attacks])
        return fallback


def _service(controller, narration=None):
    return CombatTurnService(controller, narration or CombatNarrationService(enabled=False))


@pytest.mark.asyncio
async def test_player_turn_uses_fallback_narration(controller):
    service = _service(controller)

    outcome = await service.run_player_turn("ava", "stab")

    assert outcome.result.total_damage == 2
    assert outcome.context["damage"]["damage_dealt"] == outcome.result.total_damage
    assert outcome.context["actor"]["name"] == "Ava"
    assert outcome.narration == "Ava successfully uses Stab. Ogre takes 2 damage."
    assert controller.current_state().turn_owner_id == "bram"


@pytest.mark.asyncio
async def test_context_is_captured_before_the_action(controller):
    service = _service(controller)

    outcome = await service.run_player_turn("ava", "stab")

    assert outcome.context["combat"]["enemy_hp_percent"] == 100
    assert outcome.result.snapshot.enemy.current_health == 18


@pytest.mark.asyncio
async def test_enemy_turn_rejected_during_player_phase(controller):
    with pytest.raises(NotYourTurnError):
        await _service(controller).run_enemy_turn()


@pytest.mark.asyncio
async def test_enemy_turn_consults_decision_service(controller):
    narration = _RecordingNarration()
    service = _service(controller, narration)
    await service.run_player_turn("ava", "stab")
    await service.run_player_turn("bram", "smash")

    outcome = await service.run_enemy_turn()

    assert narration.decisions == [["slam", "sweep", "crush", "grab"]]
    assert outcome.result.action_id == "slam"
    assert outcome.context["damage"]["target_id"] == "ava"
    assert outcome.narration == "Ogre uses Slam against Ava. Ava takes 3 damage."
    state = controller.current_state()
    assert state.round == 2
    assert state.phase == CombatPhase.AWAITING_PLAYER_ACTION


@pytest.mark.asyncio
async def test_caller_decision_skips_llm(controller):
    narration = _RecordingNarration()
    service = _service(controller, narration)
    await service.run_player_turn("ava", "stab")
    await service.run_player_turn("bram", "smash")

    outcome = await service.run_enemy_turn(EnemyDecision(action_id="sweep"))

    assert narration.decisions == []
    assert outcome.result.is_aoe is True
    assert sorted(outcome.result.target_ids) == ["ava", "bram"]


@pytest.mark.asyncio
async def test_companion_turn_is_narrated_as_companion():
    controller = make_controller()
    controller.start_encounter("wolf")
    service = _service(controller)
    await service.run_player_turn("ava", "stab")
    await service.run_player_turn("bram", "smash")
    await service.run_enemy_turn(use_llm=False)

    outcome = await service.run_enemy_turn(use_llm=False)

    assert outcome.result.actor_id == "pup"
    assert outcome.narration.startswith("Wolf Pup joins the fray with Nip on ")


@pytest.mark.asyncio
async def test_outcome_serializes(controller):
    outcome = await _service(controller).run_player_turn("ava", "stab")

    payload = outcome.to_dict()

    assert payload["result"]["action_id"] == "stab"
    assert payload["snapshot"]["phase"] == "awaiting_player_action"
    assert payload["extra_narration"] == []


@pytest.mark.asyncio
async def test_player_preview_follows_the_chosen_target(controller):
    outcome = await _service(controller).run_player_turn(
        "ava", "stab", roll=resolve_roll(12, 3), target="bram"
    )

    assert outcome.result.target_ids == ["bram"]
    assert outcome.result.damage_events == []
    assert outcome.context["damage"]["damage_dealt"] == 0
    assert controller.current_state().enemy.current_health == 20


@pytest.mark.asyncio
async def test_previewed_enemy_plan_is_executed_without_llm_decision(controller):
    narration = _RecordingNarration()
    service = _service(controller, narration)
    await service.run_player_turn("ava", "stab")
    await service.run_player_turn("bram", "smash")
    preview = controller.plan_enemy_action()

    outcome = await service.run_enemy_turn()

    assert narration.decisions == []
    assert outcome.result.action_id == preview.action_id
    assert outcome.result.target_ids == [target.id for target in preview.targets]
