"""Character, hero and combatant data models for the Solo Adventure server."""

from enum import Enum

from pydantic import AliasChoices, BaseModel, Field


class AbilityScores(BaseModel):
    """The six core ability scores.

    Short keys (``str``, ``dex``, ...) are accepted on input.
    """
    strength: int = Field(10, validation_alias=AliasChoices("strength", "str"))
    dexterity: int = Field(10, validation_alias=AliasChoices("dexterity", "dex"))
    constitution: int = Field(10, validation_alias=AliasChoices("constitution", "con"))
    intelligence: int = Field(10, validation_alias=AliasChoices("intelligence", "int"))
    wisdom: int = Field(10, validation_alias=AliasChoices("wisdom", "wis"))
    charisma: int = Field(10, validation_alias=AliasChoices("charisma", "cha"))


class AttackProfile(BaseModel):
    """The single attack a combatant makes on its turn."""
    label: str                      # e.g., "Longsword"
    bonus: int                      # Added to d20 roll
    damage_dice: str                # e.g., "1d8"
    damage_bonus: int = 0           # Added to damage roll


class DeathSaves(BaseModel):
    """Death saving throw tally of an unconscious hero."""
    successes: int = 0
    failures: int = 0


class CombatantSide(str, Enum):
    """Which side of the fight a combatant is on."""
    HERO = "hero"
    MONSTER = "monster"


class Combatant(BaseModel):
    """A participant in the initiative order."""
    id: str
    name: str
    side: CombatantSide
    ac: int
    max_hp: int
    hp: int
    ability_scores: AbilityScores = AbilityScores()
    initiative: int = 0
    alive: bool = True
    unconscious: bool = False       # Hero only
    death_saves: DeathSaves | None = None  # Hero only, while unconscious
    attack: AttackProfile | None = None

    @property
    def is_hero(self) -> bool:
        return self.side == CombatantSide.HERO


class HeroSnapshot(BaseModel):
    """The slice of the character sheet combat needs."""
    name: str
    level: int = 1
    hp: int
    max_hp: int
    ac: int
    ability_scores: AbilityScores = AbilityScores()


class CharacterSheet(BaseModel):
    """The player's persistent character."""
    name: str = "Hero"
    race: str = "Human"
    character_class: str = "Fighter"
    level: int = 1
    hp: int = 10
    max_hp: int = 10
    ac: int = 14
    ability_scores: AbilityScores = AbilityScores(
        strength=16,
        dexterity=12,
        constitution=14,
        intelligence=10,
        wisdom=10,
        charisma=12,
    )
    inventory: list[str] = ["Longsword", "Chain Mail"]
    tags: list[str] = ["human", "fighter"]
