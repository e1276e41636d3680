"""The hero's character sheet: HP bookkeeping and local persistence."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from models.characters import CharacterSheet, HeroSnapshot

logger = logging.getLogger(__name__)


class CharacterSheetStore:
    """Holds the current character sheet.

    During an encounter the combat engine is the only writer.
    """

    def __init__(self, sheet: CharacterSheet | None = None) -> None:
        self.sheet = sheet or CharacterSheet()

    def snapshot(self) -> HeroSnapshot:
        """The fields combat needs, copied from the sheet."""
        return HeroSnapshot(
            name=self.sheet.name,
            level=self.sheet.level,
            hp=self.sheet.hp,
            max_hp=self.sheet.max_hp,
            ac=self.sheet.ac,
            ability_scores=self.sheet.ability_scores.model_copy(),
        )

    def update_hp(self, delta: int) -> int:
        """Heal (positive) or damage (negative) the hero, clamped to [0, max_hp].

        Returns:
            The new HP.
        """
        self.sheet.hp = min(self.sheet.max_hp, max(0, self.sheet.hp + delta))
        if delta > 0:
            logger.info("%s healed for %d HP (%d/%d)", self.sheet.name, delta, self.sheet.hp, self.sheet.max_hp)
        elif delta < 0:
            logger.info("%s took %d damage (%d/%d)", self.sheet.name, -delta, self.sheet.hp, self.sheet.max_hp)
        return self.sheet.hp

    def replace(self, sheet: CharacterSheet) -> None:
        self.sheet = sheet

    @property
    def is_dead(self) -> bool:
        return self.sheet.hp <= 0


def save_sheet(sheet: CharacterSheet, path: str) -> None:
    """Persist a character sheet to a JSON file.

    Writes to a temporary file first, then renames for atomicity.

    Args:
        sheet: The sheet to save.
        path: File path to write to.
    """
    tmp_path = path + ".tmp"
    data = sheet.model_dump(mode="json")
    with open(tmp_path, "w") as f:
        json.dump(data, f, indent=2)
    os.replace(tmp_path, path)


def load_sheet(path: str) -> CharacterSheet | None:
    """Load a character sheet from a JSON file.

    Args:
        path: File path to read from.

    Returns:
        The loaded CharacterSheet, or None if the file doesn't exist.
    """
    if not Path(path).exists():
        return None
    with open(path) as f:
        data = json.load(f)
    return CharacterSheet.model_validate(data)
