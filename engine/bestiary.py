"""Monster data: tolerant ingestion of raw records and an in-memory repository.

Raw monster records come from hand-written adventure content and carry
their attack in one of several places::

    {"id": "goblin", "name": "Goblin",
     "stats": {"hp": 7, "ac": 15, "dex": 14},
     "attack": {"bonus": 4, "damageDice": "1d6", "damageBonus": 2, "label": "Scimitar"}}

Everything is resolved once here; the engine only ever sees MonsterRecord.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from config import (
    DEFAULT_ATTACK_BONUS,
    DEFAULT_ATTACK_LABEL,
    DEFAULT_DAMAGE_BONUS,
    DEFAULT_DAMAGE_DICE,
    DEFAULT_MONSTER_AC,
    DEFAULT_MONSTER_HP,
)
from engine.dice import normalize_expression
from models.adventure import MonsterRecord, MonsterStats
from models.characters import AbilityScores, AttackProfile, Combatant, CombatantSide

logger = logging.getLogger(__name__)

_ABILITY_KEYS = {
    "strength": ("str", "strength"),
    "dexterity": ("dex", "dexterity"),
    "constitution": ("con", "constitution"),
    "intelligence": ("int", "intelligence"),
    "wisdom": ("wis", "wisdom"),
    "charisma": ("cha", "charisma"),
}


def _number(record: dict[str, Any] | None, *keys: str) -> int | None:
    """First numeric value found under any of ``keys``."""
    if not record:
        return None
    for key in keys:
        value = record.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return int(value)
    return None


def _string(record: dict[str, Any] | None, *keys: str) -> str | None:
    if not record:
        return None
    for key in keys:
        value = record.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def normalize_monster(raw: dict[str, Any]) -> MonsterRecord:
    """Turn a loosely shaped monster record into a MonsterRecord.

    Attack fields are looked up on ``attack``, then ``stats``, then the
    record itself, before falling back to the defaults.

    Raises:
        ValueError: If the record has no id.
        InvalidExpression: If a damage expression is present but malformed.
    """
    monster_id = _string(raw, "id", "monsterId", "monster_id")
    if monster_id is None:
        raise ValueError(f"Monster record has no id: {raw!r}")

    stats = raw.get("stats") if isinstance(raw.get("stats"), dict) else {}
    attack = raw.get("attack") if isinstance(raw.get("attack"), dict) else None

    scores = {}
    for field, keys in _ABILITY_KEYS.items():
        value = _number(stats, *keys)
        if value is not None:
            scores[field] = value
    abilities = AbilityScores(**scores)

    damage_dice = _first(
        _string(attack, "damageDice", "damage_dice"),
        _string(stats, "damageDice", "damage_dice"),
        _string(raw, "damageDice", "damage_dice"),
        DEFAULT_DAMAGE_DICE,
    )

    return MonsterRecord(
        id=monster_id,
        name=_string(raw, "name") or monster_id,
        stats=MonsterStats(
            hp=_first(_number(stats, "hp", "maxHp", "max_hp"), DEFAULT_MONSTER_HP),
            ac=_first(_number(stats, "ac", "armorClass", "armor_class"), DEFAULT_MONSTER_AC),
            speed=_number(stats, "speed"),
            ability_scores=abilities,
        ),
        attack=AttackProfile(
            label=_string(attack, "label", "name") or DEFAULT_ATTACK_LABEL,
            bonus=_first(
                _number(attack, "bonus", "attackBonus", "attack_bonus"),
                _number(stats, "attackBonus", "attack_bonus"),
                _number(raw, "attackBonus", "attack_bonus"),
                DEFAULT_ATTACK_BONUS,
            ),
            damage_dice=normalize_expression(damage_dice),
            damage_bonus=_first(
                _number(attack, "damageBonus", "damage_bonus"),
                _number(stats, "damageBonus", "damage_bonus"),
                _number(raw, "damageBonus", "damage_bonus"),
                DEFAULT_DAMAGE_BONUS,
            ),
        ),
    )


def monster_combatant(record: MonsterRecord, index: int) -> Combatant:
    """Build the combatant for the ``index``-th monster of an encounter."""
    return Combatant(
        id=f"{record.id}__{index}",
        name=record.name,
        side=CombatantSide.MONSTER,
        ac=record.stats.ac,
        max_hp=record.stats.hp,
        hp=record.stats.hp,
        ability_scores=record.stats.ability_scores,
        alive=record.stats.hp > 0,
        attack=record.attack,
    )


class MonsterRepository:
    """In-memory monster store keyed by monster id."""

    def __init__(self, records: list[MonsterRecord] | None = None) -> None:
        self._records: dict[str, MonsterRecord] = {}
        for record in records or []:
            self.add(record)

    def add(self, record: MonsterRecord | dict[str, Any]) -> MonsterRecord:
        if isinstance(record, dict):
            record = normalize_monster(record)
        self._records[record.id] = record
        return record

    def get(self, monster_id: str) -> MonsterRecord | None:
        return self._records.get(monster_id)

    def get_monsters(self, monster_ids: list[str]) -> list[MonsterRecord]:
        """Look up monsters in the given order, skipping unknown ids.

        The same id may appear several times (e.g. three goblins).
        """
        found = []
        for monster_id in monster_ids:
            record = self._records.get(monster_id)
            if record is None:
                logger.warning("Unknown monster id '%s'", monster_id)
                continue
            found.append(record)
        return found

    def __len__(self) -> int:
        return len(self._records)


# ---------------------------------------------------------------------------
# Built-in monsters, used when no monster file is present
# ---------------------------------------------------------------------------

STARTER_MONSTERS: list[dict[str, Any]] = [
    {
        "id": "goblin",
        "name": "Goblin",
        "stats": {"hp": 7, "ac": 15, "speed": 30, "str": 8, "dex": 14, "con": 10,
                  "int": 10, "wis": 8, "cha": 8},
        "attack": {"bonus": 4, "damageDice": "1d6", "damageBonus": 2, "label": "Scimitar"},
    },
    {
        "id": "wolf",
        "name": "Wolf",
        "stats": {"hp": 11, "ac": 13, "speed": 40, "str": 12, "dex": 15, "con": 12,
                  "int": 3, "wis": 12, "cha": 6},
        "attack": {"bonus": 4, "damageDice": "2d4", "damageBonus": 2, "label": "Bite"},
    },
    {
        # Slow, sturdy and easy to hit
        "id": "stone_golem",
        "name": "Stone Golem",
        "stats": {"hp": 30, "ac": 8, "speed": 20, "str": 18, "dex": 6, "con": 20,
                  "int": 3, "wis": 10, "cha": 1},
        "attack": {"bonus": 6, "damageDice": "1d4", "damageBonus": 1, "label": "Stone Fist"},
    },
]


def starter_monsters() -> MonsterRepository:
    """A repository holding the built-in monsters."""
    repository = MonsterRepository()
    for raw in STARTER_MONSTERS:
        repository.add(raw)
    return repository


def load_monsters(path: str) -> MonsterRepository:
    """Load a monster repository from a JSON file.

    The file holds either a list of records or an object mapping ids to
    records. A missing file yields an empty repository.
    """
    repository = MonsterRepository()
    if not Path(path).exists():
        return repository
    with open(path) as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = [{"id": key, **value} for key, value in data.items()]
    for raw in data:
        repository.add(raw)
    logger.info("Loaded %d monsters from %s", len(repository), path)
    return repository
