"""D&D 5e SRD combat rules: attacks, death saves, damage, initiative."""

from __future__ import annotations

import random
from functools import cmp_to_key
from typing import TYPE_CHECKING

from pydantic import BaseModel

from config import HERO_DAMAGE_DICE, HERO_WEAPON_LABEL, MAX_DEATH_SAVES
from engine.dice import (
    DiceResult,
    ability_modifier,
    double_dice,
    format_modifier,
    proficiency_bonus,
    roll_dice,
    roll_die,
)
from models.characters import AttackProfile, CombatantSide, DeathSaves

if TYPE_CHECKING:
    from models.characters import Combatant, HeroSnapshot
    from models.combat_state import CombatEncounter


class AttackResolution(BaseModel):
    """Outcome of one attack roll and, on a hit, its damage roll."""
    attack_roll: DiceResult
    natural: int
    hit: bool
    critical: bool
    damage_roll: DiceResult | None = None
    target_ac: int


class DeathSaveResolution(BaseModel):
    """Tally after one death saving throw."""
    roll: DiceResult | None = None
    natural: int
    total: int
    successes: int
    failures: int
    revived: bool = False
    stabilized: bool = False
    dead: bool = False


def classify_attack(natural: int | None, total: int, target_ac: int) -> tuple[bool, bool]:
    """Decide (hit, critical) for an attack roll.

    A natural 20 always hits and crits; a natural 1 always misses.
    Otherwise the attack hits when the total meets the target's AC.
    """
    if natural == 20:
        return True, True
    if natural == 1:
        return False, False
    return total >= target_ac, False


def resolve_attack(
    attack_bonus: int,
    target_ac: int,
    damage_dice: str,
    damage_bonus: int,
    rng: random.Random | None = None,
) -> AttackResolution:
    """Roll to hit and, if the attack lands, roll damage.

    Critical hits double the number of damage dice, never the bonus.

    Args:
        attack_bonus: Added to the d20.
        target_ac: Armor class to beat.
        damage_dice: Damage notation, e.g. "1d8".
        damage_bonus: Added once to the damage total.
        rng: Optional Random instance for seeded/testing rolls.

    Returns:
        AttackResolution with both rolls.
    """
    rng = rng or random.Random()
    d20 = roll_die(20, rng)
    attack_roll = DiceResult(
        total=d20 + attack_bonus,
        rolls=[d20],
        modifier=attack_bonus,
        detail=f"d20 ({d20}){format_modifier(attack_bonus)}",
        expression="1d20",
    )
    hit, critical = classify_attack(d20, attack_roll.total, target_ac)

    damage_roll = None
    if hit:
        expression = double_dice(damage_dice) if critical else damage_dice
        damage_roll = roll_dice(expression, damage_bonus, rng)

    return AttackResolution(
        attack_roll=attack_roll,
        natural=d20,
        hit=hit,
        critical=critical,
        damage_roll=damage_roll,
        target_ac=target_ac,
    )


def apply_death_save(current: DeathSaves, natural: int | None, total: int) -> DeathSaveResolution:
    """Fold one death saving throw into the current tally.

    Natural 1 counts as two failures; natural 20 revives and resets the
    tally; 10 or more is a success; anything else is a failure.
    """
    successes = current.successes
    failures = current.failures
    revived = False

    if natural == 1:
        failures += 2
    elif natural == 20:
        revived = True
        successes = 0
        failures = 0
    elif total >= 10:
        successes += 1
    else:
        failures += 1

    return DeathSaveResolution(
        natural=natural if natural is not None else total,
        total=total,
        successes=successes,
        failures=failures,
        revived=revived,
        stabilized=successes >= MAX_DEATH_SAVES,
        dead=failures >= MAX_DEATH_SAVES,
    )


def resolve_death_save(current: DeathSaves, rng: random.Random | None = None) -> DeathSaveResolution:
    """Roll an unmodified d20 death saving throw.

    Reviving (restoring 1 HP) is left to the caller.
    """
    roll = roll_dice("1d20", 0, rng or random.Random())
    resolution = apply_death_save(current, roll.rolls[0], roll.total)
    resolution.roll = roll
    return resolution


def apply_damage(combatant: Combatant, damage: int, critical: bool = False) -> Combatant:
    """Apply damage to a combatant, reducing HP and checking for death.

    Monsters die at 0 HP. The hero falls unconscious at 0 HP and starts
    making death saves; damage taken while already down counts as one
    death save failure, two for a critical hit, and ends stability.

    Args:
        combatant: The combatant taking damage.
        damage: Amount of damage to deal.
        critical: Whether the damage came from a critical hit.

    Returns:
        The updated combatant.
    """
    if damage <= 0 or not combatant.alive:
        return combatant

    if combatant.side == CombatantSide.HERO and combatant.unconscious:
        saves = combatant.death_saves or DeathSaves()
        if saves.successes >= MAX_DEATH_SAVES:
            saves.successes = 0
        saves.failures += 2 if critical else 1
        combatant.death_saves = saves
        if saves.failures >= MAX_DEATH_SAVES:
            combatant.alive = False
        return combatant

    combatant.hp = max(0, combatant.hp - damage)
    if combatant.hp == 0:
        if combatant.side == CombatantSide.HERO:
            combatant.unconscious = True
            combatant.death_saves = DeathSaves()
        else:
            combatant.alive = False
    return combatant


def hero_attack_profile(hero: HeroSnapshot) -> AttackProfile:
    """The hero's weapon attack: STR mod plus proficiency to hit."""
    strength_mod = ability_modifier(hero.ability_scores.strength)
    return AttackProfile(
        label=HERO_WEAPON_LABEL,
        bonus=strength_mod + proficiency_bonus(hero.level),
        damage_dice=HERO_DAMAGE_DICE,
        damage_bonus=strength_mod,
    )


def roll_initiative(combatant: Combatant, rng: random.Random | None = None) -> int:
    """Roll initiative for a combatant: d20 + dexterity modifier.

    Args:
        combatant: The combatant rolling initiative.
        rng: Optional Random instance for seeded/testing rolls.

    Returns:
        The initiative roll total.
    """
    dex_mod = ability_modifier(combatant.ability_scores.dexterity)
    return roll_die(20, rng) + dex_mod


def sort_initiative(order: list[Combatant], rng: random.Random | None = None) -> list[Combatant]:
    """Sort combatants by initiative (descending), then by DEX modifier.

    Remaining ties are settled by a coin flip drawn from ``rng``, so the
    flip consumes the same stream as every other roll.
    """
    rng = rng or random.Random()

    def compare(a: Combatant, b: Combatant) -> int:
        if a.initiative != b.initiative:
            return b.initiative - a.initiative
        dex_diff = (
            ability_modifier(b.ability_scores.dexterity)
            - ability_modifier(a.ability_scores.dexterity)
        )
        if dex_diff != 0:
            return dex_diff
        return -1 if rng.random() < 0.5 else 1

    return sorted(order, key=cmp_to_key(compare))


def all_monsters_defeated(order: list[Combatant]) -> bool:
    """True when every monster in the order is dead."""
    return all(not c.alive for c in order if c.side == CombatantSide.MONSTER)


def validate_hero_attack(encounter: CombatEncounter, target_id: str) -> tuple[bool, str]:
    """Check if the hero may attack the given target right now.

    Args:
        encounter: Current encounter.
        target_id: Combatant the hero wants to attack.

    Returns:
        (valid, error_message) tuple.
    """
    ok, error = validate_hero_turn(encounter)
    if not ok:
        return ok, error

    target = encounter.find(target_id)
    if target is None:
        return False, f"Target '{target_id}' not found"
    if target.side != CombatantSide.MONSTER:
        return False, "The hero can only attack monsters"
    if not target.alive:
        return False, "Target is already dead"
    return True, ""


def validate_hero_turn(encounter: CombatEncounter) -> tuple[bool, str]:
    """Check that it is the conscious hero's turn and nothing is pending."""
    if not encounter.active:
        return False, "No active combat"
    if encounter.awaiting_player:
        return False, "A roll is already pending"
    current = encounter.current
    if current is None or current.side != CombatantSide.HERO:
        return False, "It's not the hero's turn"
    if not current.alive or current.unconscious:
        return False, "The hero cannot act"
    return True, ""
