import pytest

from conftest import make_member
from narrative_combat.combat.models.character import (
    Character,
    CharacterStatus,
    CombatantType,
    EffectType,
    classify_health,
)


@pytest.mark.parametrize(
    "current, maximum, expected",
    [
        (10, 10, CharacterStatus.OK),
        (9, 10, CharacterStatus.HURT),
        (3, 10, CharacterStatus.HURT),
        (2, 10, CharacterStatus.BADLY_HURT),
        (0, 10, CharacterStatus.DOWN),
        (-3, 10, CharacterStatus.DOWN),
        (5, 0, CharacterStatus.UNKNOWN),
    ],
)
def test_classify_health(current, maximum, expected):
    assert classify_health(current, maximum) == expected


def test_downed_is_alias_of_down():
    assert CharacterStatus.DOWNED is CharacterStatus.DOWN
    assert CharacterStatus("down") is CharacterStatus.DOWNED


def test_health_is_clamped_on_creation():
    member = Character(
        id="ava",
        name="Ava",
        combatant_type=CombatantType.PARTY,
        max_health=10,
        current_health=25,
    )
    assert member.current_health == 10


def test_negative_max_health_rejected():
    with pytest.raises(ValueError):
        Character(id="x", name="X", combatant_type=CombatantType.ENEMY, max_health=-1)


def test_take_damage_returns_actual_amount():
    member = make_member("ava", 3)

    assert member.take_damage(5) == 3
    assert member.current_health == 0
    assert member.status == CharacterStatus.DOWN
    assert member.take_damage(2) == 0


def test_heal_never_exceeds_max_and_never_revives():
    member = make_member("ava", 8)
    assert member.heal(5) == 2
    assert member.current_health == 10

    downed = make_member("bram", 0)
    assert downed.heal(5) == 0
    assert downed.is_down


def test_threat_is_higher_of_brawn_and_cunning():
    assert make_member("ava", 5, brawn=1, cunning=3).threat == 3
    assert make_member("bram", 5).threat == 0


def test_boost_max_health_restores_matching_health():
    member = make_member("troll", 4, max_health=10)

    member.boost_max_health(6)

    assert member.max_health == 16
    assert member.current_health == 10


def test_effect_type_parse_is_lenient():
    assert EffectType.parse(" Shield ") == EffectType.SHIELD
    assert EffectType.parse("mystery") == EffectType.UNRECOGNIZED
    assert EffectType.parse(None) == EffectType.UNRECOGNIZED
