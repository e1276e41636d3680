"""Tests for monster ingestion and the monster repository."""

import json
import logging

import pytest

from engine.bestiary import (
    MonsterRepository,
    load_monsters,
    monster_combatant,
    normalize_monster,
    starter_monsters,
)
from engine.errors import InvalidExpression
from models.characters import CombatantSide


class TestNormalizeMonster:
    """Tests for normalize_monster()."""

    def test_full_record(self):
        record = normalize_monster({
            "id": "goblin",
            "name": "Goblin",
            "stats": {"hp": 7, "ac": 15, "speed": 30, "dex": 14},
            "attack": {"bonus": 4, "damageDice": "1d6", "damageBonus": 2, "label": "Scimitar"},
        })
        assert record.id == "goblin"
        assert record.stats.hp == 7
        assert record.stats.ac == 15
        assert record.stats.speed == 30
        assert record.stats.ability_scores.dexterity == 14
        assert record.attack.label == "Scimitar"
        assert record.attack.bonus == 4
        assert record.attack.damage_dice == "1d6"
        assert record.attack.damage_bonus == 2

    def test_defaults(self):
        record = normalize_monster({"id": "blob"})
        assert record.name == "blob"
        assert record.stats.hp == 5
        assert record.stats.ac == 10
        assert record.stats.ability_scores.dexterity == 10
        assert record.attack.label == "Strike"
        assert record.attack.bonus == 2
        assert record.attack.damage_dice == "1d6"
        assert record.attack.damage_bonus == 0

    def test_attack_fields_on_stats(self):
        record = normalize_monster({
            "id": "wolf",
            "stats": {"attackBonus": 4, "damageDice": "2d4", "damageBonus": 2},
        })
        assert record.attack.bonus == 4
        assert record.attack.damage_dice == "2d4"
        assert record.attack.damage_bonus == 2

    def test_attack_fields_at_top_level(self):
        record = normalize_monster({"id": "rat", "attack_bonus": 1, "damage_dice": "1d4", "damage_bonus": -1})
        assert record.attack.bonus == 1
        assert record.attack.damage_dice == "1d4"
        assert record.attack.damage_bonus == -1

    def test_attack_object_takes_precedence(self):
        record = normalize_monster({
            "id": "orc",
            "attackBonus": 1,
            "stats": {"attackBonus": 3},
            "attack": {"bonus": 5},
        })
        assert record.attack.bonus == 5

    def test_long_ability_names(self):
        record = normalize_monster({"id": "ogre", "stats": {"strength": 19, "dexterity": 8}})
        assert record.stats.ability_scores.strength == 19
        assert record.stats.ability_scores.dexterity == 8

    def test_damage_dice_normalized(self):
        record = normalize_monster({"id": "imp", "attack": {"damageDice": "1 D4 + 3"}})
        assert record.attack.damage_dice == "1d4+3"

    def test_malformed_damage_dice(self):
        with pytest.raises(InvalidExpression):
            normalize_monster({"id": "imp", "attack": {"damageDice": "lots"}})

    def test_missing_id(self):
        with pytest.raises(ValueError, match="no id"):
            normalize_monster({"name": "Nameless"})

    def test_alternate_id_key(self):
        assert normalize_monster({"monsterId": "bat"}).id == "bat"


class TestMonsterCombatant:
    """Tests for monster_combatant()."""

    def test_instance_ids_unique(self):
        record = normalize_monster({"id": "goblin", "stats": {"hp": 7, "ac": 15}})
        first = monster_combatant(record, 0)
        second = monster_combatant(record, 1)
        assert first.id == "goblin__0"
        assert second.id == "goblin__1"
        assert first.side == CombatantSide.MONSTER
        assert first.hp == first.max_hp == 7
        assert first.alive


class TestMonsterRepository:
    """Tests for MonsterRepository."""

    def test_get_monsters_keeps_order_and_duplicates(self):
        repo = MonsterRepository()
        repo.add({"id": "goblin"})
        repo.add({"id": "wolf"})
        found = repo.get_monsters(["wolf", "goblin", "wolf"])
        assert [m.id for m in found] == ["wolf", "goblin", "wolf"]

    def test_unknown_ids_skipped(self, caplog):
        repo = MonsterRepository()
        repo.add({"id": "goblin"})
        with caplog.at_level(logging.WARNING):
            found = repo.get_monsters(["dragon", "goblin"])
        assert [m.id for m in found] == ["goblin"]
        assert "dragon" in caplog.text

    def test_len_and_get(self):
        repo = MonsterRepository([normalize_monster({"id": "goblin"})])
        assert len(repo) == 1
        assert repo.get("goblin").id == "goblin"
        assert repo.get("missing") is None

    def test_starter_monsters(self):
        repo = starter_monsters()
        assert len(repo) == 3
        assert repo.get("goblin").attack.label == "Scimitar"
        assert repo.get("stone_golem").stats.ac == 8


class TestLoadMonsters:
    """Tests for load_monsters()."""

    def test_missing_file(self, tmp_path):
        assert len(load_monsters(str(tmp_path / "nope.json"))) == 0

    def test_list_file(self, tmp_path):
        path = tmp_path / "monsters.json"
        path.write_text(json.dumps([{"id": "goblin"}, {"id": "wolf"}]))
        repo = load_monsters(str(path))
        assert len(repo) == 2

    def test_mapping_file(self, tmp_path):
        path = tmp_path / "monsters.json"
        path.write_text(json.dumps({"goblin": {"name": "Goblin", "stats": {"hp": 7}}}))
        repo = load_monsters(str(path))
        assert repo.get("goblin").stats.hp == 7
