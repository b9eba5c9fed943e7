import random
from typing import Iterable, List, Optional

import pytest

from narrative_combat.combat.combat_controller import CombatController
from narrative_combat.combat.content_repository import CombatContentRepository
from narrative_combat.combat.dice import DiceRoller
from narrative_combat.combat.models.character import Character, CombatantType
from narrative_combat.combat.target_resolver import TargetResolver


PARTY = [
    {"id": "ava", "name": "Ava", "maxHealth": 10, "stats": {"brawn": 1, "cunning": 3}},
    {"id": "bram", "name": "Bram", "maxHealth": 12, "stats": {"brawn": 3, "cunning": 0}},
]

ABILITIES = {
    "ava": [
        {"id": "stab", "name": "Stab", "damage": 2, "stat": "cunning"},
        {
            "id": "mark_prey",
            "name": "Mark Prey",
            "damage": 1,
            "stat": "cunning",
            "effect": {"type": "mark"},
        },
        {
            "id": "smoke",
            "name": "Smoke",
            "stat": "cunning",
            "uses": 1,
            "targetMode": "party",
            "effect": {"type": "concealment", "duration": 1},
        },
    ],
    "bram": [
        {"id": "smash", "name": "Smash", "damage": 4, "stat": "brawn"},
        {
            "id": "patch_up",
            "name": "Patch Up",
            "targetMode": "lowest_health",
            "effect": {"type": "heal", "amount": 3},
        },
        {
            "id": "guard",
            "name": "Guard",
            "targetMode": "self",
            "effect": {"type": "shield", "duration": 2, "reduction": 1},
        },
    ],
}

ENEMIES = {
    "ogre": {
        "name": "Ogre",
        "maxHealth": 20,
        "stats": {"brawn": 2, "cunning": 0},
        "attacks": [
            {"id": "slam", "name": "Slam", "damage": 3, "targeting": "lowest_health"},
            {"id": "sweep", "name": "Sweep", "damage": 2, "targeting": "grouped", "cooldown": 2},
            {"id": "crush", "name": "Crush", "damage": 10, "targeting": "lowest_health"},
            {
                "id": "grab",
                "name": "Grab",
                "damage": 0,
                "targeting": "highest_threat",
                "effect": {"type": "restrain", "duration": 2},
            },
        ],
        "specialAbilities": [
            {
                "id": "enrage",
                "name": "Enrage",
                "trigger": {"type": "health_below", "threshold": 0.5},
                "effect": {"type": "damage_reduction", "amount": 1, "duration": 2},
            }
        ],
    },
    "wolf": {
        "name": "Alpha Wolf",
        "maxHealth": 12,
        "stats": {"cunning": 1},
        "attacks": [{"id": "bite", "name": "Bite", "damage": 2, "targeting": "random"}],
        "companion": {
            "id": "pup",
            "name": "Wolf Pup",
            "maxHealth": 3,
            "attacks": [{"id": "nip", "name": "Nip", "damage": 1, "targeting": "random"}],
        },
        "tactics": {"openingMove": "bite"},
    },
}


class ScriptedDice(DiceRoller):
    """d20/d6 依次返回预设值，用完后固定返回 10 / 1"""

    def __init__(self, d20: Iterable[int] = (), d6: Iterable[int] = ()):
        super().__init__(random.Random(7))
        self.d20_values: List[int] = list(d20)
        self.d6_values: List[int] = list(d6)

    def d20(self) -> int:
        return self.d20_values.pop(0) if self.d20_values else 10

    def d6(self) -> int:
        return self.d6_values.pop(0) if self.d6_values else 1


def make_repository(party=None, abilities=None, enemies=None) -> CombatContentRepository:
    return CombatContentRepository.from_payload(
        abilities=ABILITIES if abilities is None else abilities,
        enemies=ENEMIES if enemies is None else enemies,
        party=PARTY if party is None else party,
    )


def make_controller(
    d20: Iterable[int] = (20, 15, 1),
    d6: Iterable[int] = (),
    repository: Optional[CombatContentRepository] = None,
) -> CombatController:
    """默认先攻：ava 23, bram 15, 敌人 1"""
    return CombatController(
        repository or make_repository(),
        dice=ScriptedDice(d20, d6),
        target_resolver=TargetResolver(rng=random.Random(3), strict=False),
        log_limit=5,
    )


def make_member(member_id: str, health: int, max_health: int = 10, **stats) -> Character:
    return Character(
        id=member_id,
        name=member_id.title(),
        combatant_type=CombatantType.PARTY,
        max_health=max_health,
        current_health=health,
        stats=stats,
    )


@pytest.fixture
def controller() -> CombatController:
    ctrl = make_controller()
    ctrl.start_encounter("ogre")
    return ctrl
