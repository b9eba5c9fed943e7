"""
战斗内容仓库

技能、敌人与队伍定义的只读来源，按字符串ID索引。
默认读取 ``settings.combat_content_dir`` 下的 JSON 文件
（``abilities.json``、``enemies.json``、``party.json``），
也可直接传入内存中的数据。
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pydantic import ValidationError

from ..config import settings
from .errors import ContentNotFoundError
from .models.character import Character, CombatantType
from .models.content import Ability, EnemyDefinition, PartyMemberDefinition

logger = logging.getLogger(__name__)

_ENTITY_KEYS = ("id", "name", "damage", "attacks", "maxHealth", "max_health", "health")


def _looks_like_entity(raw: Any) -> bool:
    return isinstance(raw, dict) and any(key in raw for key in _ENTITY_KEYS)


def _flatten_entries(raw: Any, key_hint: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    递归展开嵌套的 list/dict 数据为实体字典列表

    没有 id 的条目使用字典键作为ID，因此
    ``[{"id": "troll", ...}]`` 与 ``{"troll": {...}}`` 都可接受；
    ``{"basic": [...], "special": [...]}`` 这类分组字典会继续向下展开。
    """
    result: List[Dict[str, Any]] = []

    if _looks_like_entity(raw):
        entry = dict(raw)
        if key_hint and not entry.get("id"):
            entry["id"] = key_hint
        result.append(entry)
        return result

    if isinstance(raw, dict):
        for key, value in raw.items():
            result.extend(_flatten_entries(value, key_hint=str(key)))
        return result

    if isinstance(raw, list):
        for entry in raw:
            result.extend(_flatten_entries(entry))

    return result


class CombatContentRepository:
    """从本地 JSON 内容或传入数据读取战斗定义"""

    def __init__(
        self,
        content_dir: Optional[str] = None,
        abilities: Any = None,
        enemies: Any = None,
        party: Any = None,
    ) -> None:
        self.content_dir = Path(content_dir or settings.combat_content_dir)
        self._payloads: Dict[str, Any] = {
            "abilities": abilities,
            "enemies": enemies,
            "party": party,
        }
        self._enemies: Optional[Dict[str, EnemyDefinition]] = None
        self._abilities: Optional[Dict[str, Dict[str, Ability]]] = None
        self._party: Optional[List[PartyMemberDefinition]] = None

    @classmethod
    def from_payload(
        cls, abilities: Any = None, enemies: Any = None, party: Any = None
    ) -> "CombatContentRepository":
        return cls(abilities=abilities or {}, enemies=enemies or {}, party=party or [])

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def list_enemies(self) -> List[EnemyDefinition]:
        return list(self._load_enemies().values())

    def get_enemy(self, enemy_id: str) -> EnemyDefinition:
        enemy = self._load_enemies().get(enemy_id)
        if enemy is None:
            raise ContentNotFoundError("enemy", enemy_id)
        return enemy

    def list_abilities(self, character_id: str) -> List[Ability]:
        abilities = self._load_abilities().get(character_id)
        if abilities is None:
            raise ContentNotFoundError("abilities for character", character_id)
        return list(abilities.values())

    def get_ability(self, character_id: str, ability_id: str) -> Ability:
        abilities = self._load_abilities().get(character_id, {})
        ability = abilities.get(ability_id)
        if ability is None:
            raise ContentNotFoundError("ability", f"{character_id}/{ability_id}")
        return ability

    def list_party(self) -> List[PartyMemberDefinition]:
        return list(self._load_party())

    def build_party(self) -> List[Character]:
        """按名册创建满血的队伍成员"""
        return [
            Character(
                id=member.id,
                name=member.name,
                combatant_type=CombatantType.PARTY,
                max_health=member.max_health,
                stats=dict(member.stats),
                innate_reduction=member.innate_reduction,
                trait=member.trait,
                description=member.description,
            )
            for member in self._load_party()
        ]

    def validate_encounter(
        self, enemy_id: str, party: Sequence[Character]
    ) -> EnemyDefinition:
        """在创建任何状态之前校验并取出遭遇战所需的全部定义"""
        enemy = self.get_enemy(enemy_id)
        for member in party:
            self.list_abilities(member.id)
        return enemy

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load_enemies(self) -> Dict[str, EnemyDefinition]:
        if self._enemies is None:
            self._enemies = {}
            for entry in self._validated(EnemyDefinition, _flatten_entries(self._raw("enemies"))):
                self._enemies[entry.id] = entry
            logger.info("[CombatContentRepository] 已加载 %d 个敌人定义", len(self._enemies))
        return self._enemies

    def _load_abilities(self) -> Dict[str, Dict[str, Ability]]:
        if self._abilities is None:
            self._abilities = {}
            raw = self._raw("abilities")
            if not isinstance(raw, dict):
                logger.warning("[CombatContentRepository] 技能内容必须以角色ID为键")
                raw = {}
            for character_id, entries in raw.items():
                parsed = self._validated(Ability, _flatten_entries(entries))
                self._abilities[str(character_id)] = {ability.id: ability for ability in parsed}
        return self._abilities

    def _load_party(self) -> List[PartyMemberDefinition]:
        if self._party is None:
            self._party = list(
                self._validated(PartyMemberDefinition, _flatten_entries(self._raw("party")))
            )
        return self._party

    def _validated(self, model, entries: Iterable[Dict[str, Any]]) -> List[Any]:
        parsed = []
        for entry in entries:
            try:
                parsed.append(model.model_validate(entry))
            except ValidationError as exc:
                logger.warning(
                    "[CombatContentRepository] 跳过无效的 %s 条目 %s: %s",
                    model.__name__,
                    entry.get("id") or entry.get("name"),
                    exc.errors()[:3],
                )
        return parsed

    def _raw(self, name: str) -> Any:
        payload = self._payloads.get(name)
        if payload is not None:
            return payload

        path = self.content_dir / f"{name}.json"
        if not path.exists():
            logger.warning("[CombatContentRepository] 战斗内容文件不存在: %s", path)
            return {}
        try:
            with path.open("r", encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("[CombatContentRepository] 加载战斗内容失败 %s: %s", path, exc)
            return {}
