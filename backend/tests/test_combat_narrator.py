import pytest

from conftest import make_member
from narrative_combat.combat.combat_narrator import (
    CombatNarrator,
    format_enemy_effect,
    format_party_effect,
    summarize_effects,
)
from narrative_combat.combat.dice import resolve_roll
from narrative_combat.combat.effects import apply_to_enemy, create_effect
from narrative_combat.combat.models.character import CharacterStatus
from narrative_combat.combat.models.content import Ability, EffectPayload, EnemyAttack
from narrative_combat.combat.rules import (
    MOMENTUM_DESPERATE,
    MOMENTUM_DOMINATING,
    MOMENTUM_EVEN,
    MOMENTUM_ON_THE_ROPES,
    classify_momentum,
)


def test_effect_summaries():
    shield = create_effect(EffectPayload(type="shield", duration=3, reduction=2))
    vulnerable = create_effect(EffectPayload(type="vulnerable", duration=1, amount=2))

    assert format_party_effect(shield) == "shield (-2 damage) (3 turns)"
    assert format_enemy_effect(vulnerable) == "vulnerable (2) (1 turns)"
    assert summarize_effects([], format_party_effect) == "none"


@pytest.mark.parametrize(
    "party_avg, enemy_hp, standing, expected",
    [
        (0.8, 0.4, 3, MOMENTUM_DOMINATING),
        (0.2, 0.9, 3, MOMENTUM_DESPERATE),
        (0.9, 0.9, 1, MOMENTUM_DESPERATE),
        (0.5, 0.2, 2, MOMENTUM_ON_THE_ROPES),
        (0.5, 0.5, 2, MOMENTUM_EVEN),
        (0.0, 0.0, 0, MOMENTUM_DESPERATE),
        (1.0, 1.0, 4, MOMENTUM_EVEN),
    ],
)
def test_momentum_classification(party_avg, enemy_hp, standing, expected):
    assert classify_momentum(party_avg, enemy_hp, standing) == expected


def test_momentum_covers_the_whole_grid():
    categories = {MOMENTUM_DOMINATING, MOMENTUM_DESPERATE, MOMENTUM_ON_THE_ROPES, MOMENTUM_EVEN}
    steps = [i / 10 for i in range(11)]
    party_size = 4

    for party_avg in steps:
        for enemy_hp in steps:
            for standing in range(party_size + 1):
                assert classify_momentum(party_avg, enemy_hp, standing) in categories


def test_momentum_with_three_members_is_even(controller):
    state = controller.current_state()
    state.party[:] = [make_member("ava", 10), make_member("bram", 10), make_member("cole", 2)]
    state.enemy.set_health(16)

    context = CombatNarrator(state).build_momentum_context()

    assert context["party_standing"] == 3
    assert context["enemy_hp_percent"] == 80
    assert context["momentum"] == MOMENTUM_EVEN


def test_effect_context_reports_none_and_mark(controller):
    state = controller.current_state()
    state.enemy_marked = True

    context = CombatNarrator(state).build_effect_context()

    assert context == {"party_buffs": "none", "enemy_debuffs": "none", "enemy_marked": True}


def test_enemy_damage_preview_detects_lethal_blow(controller):
    state = controller.current_state()
    ava = state.get_party_member("ava")
    ava.set_health(8)
    attack = EnemyAttack(id="crush", name="Crush", damage=10)

    context = CombatNarrator(state).build_enemy_damage_context(attack, ava)

    assert context["damage_dealt"] == 10
    assert context["target_health_after"] == 0
    assert context["is_lethal"] is True
    assert context["target_status"] == CharacterStatus.DOWNED
    # 只读
    assert ava.current_health == 8


def test_aoe_preview_uses_lowest_health_member(controller):
    state = controller.current_state()
    state.get_party_member("bram").set_health(4)
    attack = EnemyAttack(id="sweep", name="Sweep", damage=2)

    context = CombatNarrator(state).build_enemy_damage_context(attack, list(state.party))

    assert context["target_id"] == "bram"
    assert context["is_aoe"] is True
    assert context["target_health_after"] == 2


def test_preview_without_damage():
    attack = EnemyAttack(id="grab", name="Grab", damage=0)
    assert CombatNarrator(None).build_enemy_damage_context(attack, None) == {
        "damage_dealt": 0,
        "is_lethal": False,
    }


def test_player_preview_includes_mark_bonus(controller):
    state = controller.current_state()
    apply_to_enemy(state, EffectPayload(type="mark"))
    ability = Ability(id="stab", name="Stab", damage=2)

    context = CombatNarrator(state).build_player_damage_context(ability, resolve_roll(12, 1))

    assert context["damage_dealt"] == 3
    assert context["had_mark"] is True
    assert context["enemy_health_after"] == 17
    assert state.enemy_marked is True


def test_player_preview_for_failed_roll():
    ability = Ability(id="stab", name="Stab", damage=2)

    context = CombatNarrator(None).build_player_damage_context(ability, resolve_roll(2, 0))

    assert context == {"damage_dealt": 0, "is_killing_blow": False}
