from pathlib import Path

import pytest

from narrative_combat.combat.content_repository import CombatContentRepository
from narrative_combat.combat.errors import ContentNotFoundError

DATA_DIR = Path(__file__).resolve().parent.parent / "data" / "combat"


def test_accepts_camel_and_snake_case():
    repo = CombatContentRepository.from_payload(
        enemies=[
            {"id": "a", "name": "A", "maxHealth": 5, "attacks": [{"id": "x", "name": "X"}]},
            {"id": "b", "name": "B", "max_health": 6, "attacks": [{"id": "y", "name": "Y"}]},
        ],
    )

    assert [enemy.max_health for enemy in repo.list_enemies()] == [5, 6]


def test_dict_keys_become_ids():
    repo = CombatContentRepository.from_payload(
        enemies={"slime": {"name": "Slime", "maxHealth": 3, "attacks": [{"id": "ooze", "name": "Ooze"}]}},
        abilities={"ava": {"jab": {"name": "Jab", "damage": 1}}},
    )

    assert repo.get_enemy("slime").name == "Slime"
    assert repo.get_ability("ava", "jab").damage == 1


def test_grouped_abilities_are_flattened():
    repo = CombatContentRepository.from_payload(
        abilities={
            "bram": {
                "basic": [{"id": "punch", "name": "Punch", "damage": 1}],
                "special": [{"id": "roar", "name": "Roar", "targetType": "party"}],
            }
        }
    )

    abilities = repo.list_abilities("bram")

    assert [ability.id for ability in abilities] == ["punch", "roar"]
    assert abilities[1].target_mode == "party"


def test_invalid_entries_are_skipped(caplog):
    repo = CombatContentRepository.from_payload(
        enemies=[
            {"id": "ok", "name": "Ok", "maxHealth": 4, "attacks": [{"id": "x", "name": "X"}]},
            {"id": "broken", "name": "Broken", "maxHealth": 4, "attacks": []},
        ]
    )

    assert [enemy.id for enemy in repo.list_enemies()] == ["ok"]
    assert "broken" in caplog.text


def test_missing_content_raises():
    repo = CombatContentRepository.from_payload(abilities={"ava": []})

    with pytest.raises(ContentNotFoundError):
        repo.get_enemy("dragon")
    with pytest.raises(ContentNotFoundError):
        repo.get_ability("ava", "fireball")
    with pytest.raises(ContentNotFoundError):
        repo.list_abilities("nobody")


def test_build_party_starts_at_full_health():
    repo = CombatContentRepository.from_payload(
        party=[{"id": "ava", "name": "Ava", "health": 7, "stats": {"cunning": 2}}]
    )

    party = repo.build_party()

    assert party[0].current_health == 7
    assert party[0].stat("cunning") == 2
    assert party[0].effects == []


def test_missing_directory_yields_empty_content(tmp_path):
    repo = CombatContentRepository(content_dir=str(tmp_path / "nowhere"))

    assert repo.list_enemies() == []
    assert repo.list_party() == []


def test_shipped_content_loads():
    repo = CombatContentRepository(content_dir=str(DATA_DIR))

    troll = repo.get_enemy("bog_troll")
    party = repo.build_party()

    assert troll.max_health == 24
    assert troll.companion is not None
    assert troll.tactics.opening_move == "crushing_grip"
    assert [member.id for member in party] == ["mira", "tobin", "sable"]
    assert repo.validate_encounter("bog_troll", party) is troll
    assert {ability.id for ability in repo.list_abilities("tobin")} == {"heavy_swing", "shield_wall"}
