"""Dice rolling utilities for the Solo Adventure combat server."""

import math
import random
import re

from pydantic import BaseModel

from engine.errors import InvalidExpression, InvalidInput

DICE_PATTERN = re.compile(r"^(\d+)d(\d+)([+-]\d+)?$")


class DiceResult(BaseModel):
    """Result of a dice roll."""
    total: int
    rolls: list[int]
    modifier: int                   # Caller modifier + inline modifier
    detail: str                     # e.g. "2d6+3 (4, 1)+3"
    expression: str = ""


def parse_expression(expression: str) -> tuple[int, int, int]:
    """Split an expression into (count, sides, inline modifier)."""
    notation = re.sub(r"\s+", "", expression).lower()
    match = DICE_PATTERN.match(notation)
    if not match:
        raise InvalidExpression(f"Invalid dice expression: {expression}")
    inline = int(match.group(3)) if match.group(3) else 0
    return int(match.group(1)), int(match.group(2)), inline


def format_modifier(modifier: int) -> str:
    """Render a modifier as '', '+n' or '-n'."""
    if modifier == 0:
        return ""
    return f"+{modifier}" if modifier > 0 else f"{modifier}"


def roll_die(sides: int, rng: random.Random | None = None) -> int:
    """Roll a single die with the given number of sides.

    Args:
        sides: Number of faces (must be at least 1).
        rng: Optional Random instance for seeded/testing rolls.

    Returns:
        A uniform integer in [1, sides].

    Raises:
        InvalidInput: If sides < 1.
    """
    if sides < 1:
        raise InvalidInput(f"A die needs at least one side, got {sides}")
    rng = rng or random.Random()
    return math.floor(rng.random() * sides) + 1


def roll_dice(
    expression: str,
    modifier: int = 0,
    rng: random.Random | None = None,
) -> DiceResult:
    """Parse and roll dice notation like '2d6+3', '1d20', '4d6-1'.

    Whitespace is ignored and the 'd' is case-insensitive.

    Args:
        expression: Dice notation string (e.g. "2d6+3").
        modifier: Extra modifier added on top of the inline one.
        rng: Optional Random instance for seeded/testing rolls.

    Returns:
        DiceResult with total, individual rolls, combined modifier and detail.

    Raises:
        InvalidExpression: If the notation is malformed.
    """
    rng = rng or random.Random()
    count, sides, inline = parse_expression(expression)
    total_modifier = modifier + inline

    rolls = [roll_die(sides, rng) for _ in range(count)]
    total = sum(rolls) + total_modifier
    mod_text = format_modifier(total_modifier)

    return DiceResult(
        total=total,
        rolls=rolls,
        modifier=total_modifier,
        detail=f"{count}d{sides}{mod_text} ({', '.join(str(r) for r in rolls)}){mod_text}",
        expression=f"{count}d{sides}{format_modifier(inline)}",
    )


def normalize_expression(expression: str) -> str:
    """Canonical form of an expression: '1 D8 + 2' becomes '1d8+2'.

    Raises:
        InvalidExpression: If the notation is malformed.
    """
    count, sides, inline = parse_expression(expression)
    return f"{count}d{sides}{format_modifier(inline)}"


def double_dice(expression: str) -> str:
    """Double the dice count of an expression for a critical hit.

    The inline modifier is kept as is: '2d8+1' becomes '4d8+1'.

    Raises:
        InvalidExpression: If the notation is malformed.
    """
    count, sides, inline = parse_expression(expression)
    return f"{count * 2}d{sides}{format_modifier(inline)}"


def ability_modifier(score: int) -> int:
    """Calculate ability modifier from a score using the 5e formula.

    Args:
        score: The ability score (e.g. 16).

    Returns:
        The modifier (e.g. +3 for score 16).
    """
    return (score - 10) // 2


def proficiency_bonus(level: int) -> int:
    """Proficiency bonus for a character level (5e table)."""
    if level >= 17:
        return 6
    if level >= 13:
        return 5
    if level >= 9:
        return 4
    if level >= 5:
        return 3
    return 2
