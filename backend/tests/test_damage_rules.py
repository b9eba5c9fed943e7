import pytest

from conftest import make_controller
from narrative_combat.combat.damage_rules import (
    calculate_final_damage,
    compute_ability_damage,
    get_damage_modifier,
)
from narrative_combat.combat.effects import apply_to_character, apply_to_enemy, apply_to_party
from narrative_combat.combat.models.action import RollTier
from narrative_combat.combat.models.content import Ability, EffectPayload


@pytest.mark.parametrize(
    "tier, expected",
    [
        (RollTier.CRITICAL, 5),
        (RollTier.SUCCESS, 3),
        (RollTier.PARTIAL, 2),
        (RollTier.FAILURE, 0),
    ],
)
def test_compute_ability_damage_by_tier(tier, expected):
    ability = Ability(id="cleave", name="Cleave", damage=3)
    assert compute_ability_damage(ability, tier) == expected


def test_ability_without_damage_deals_nothing():
    ability = Ability(id="hide", name="Hide")
    assert compute_ability_damage(ability, RollTier.CRITICAL) == 0


def test_final_damage_never_negative():
    assert calculate_final_damage(2, -5) == 0
    assert calculate_final_damage(2, -1, mark_bonus=1) == 2


def test_player_attack_modifier_reads_enemy_effects(controller):
    state = controller.current_state()
    apply_to_enemy(state, EffectPayload(type="vulnerable", duration=2, amount=2))
    apply_to_enemy(state, EffectPayload(type="damage_reduction", duration=2))

    assert get_damage_modifier(state, state.enemy.id, is_player_attack=True) == 1


def test_enemy_attack_modifier_stacks_party_and_target_effects(controller):
    state = controller.current_state()
    ava = state.get_party_member("ava")
    apply_to_party(state, EffectPayload(type="concealment", duration=1))
    apply_to_party(state, EffectPayload(type="shield", duration=1, reduction=2))
    apply_to_enemy(state, EffectPayload(type="slow", duration=1))
    apply_to_character(ava, EffectPayload(type="vulnerable", duration=1))

    # -1 隐蔽, -2 护盾, -1 迟缓, +1 易伤
    assert get_damage_modifier(state, "ava", is_player_attack=False) == -3
    assert get_damage_modifier(state, "bram", is_player_attack=False) == -4


def test_innate_reduction_applies_to_incoming_damage():
    controller = make_controller()
    controller.start_encounter("ogre")
    state = controller.current_state()
    state.get_party_member("bram").innate_reduction = 1

    assert get_damage_modifier(state, "bram", is_player_attack=False) == -1
