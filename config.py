"""Server-wide configuration constants for the Solo Adventure combat server."""

import os

DATA_DIR = os.environ.get("DATA_DIR", ".")  # Persistent data directory
SHEET_FILE = os.path.join(DATA_DIR, "character_sheet.json")
MONSTERS_FILE = os.path.join(DATA_DIR, "monsters.json")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

# Pacing only: the engine is correct with both delays at 0.
AUTO_STEP_DELAY_SECONDS = float(os.environ.get("AUTO_STEP_DELAY_SECONDS", "0.6"))
MONSTER_TURN_DELAY_SECONDS = float(os.environ.get("MONSTER_TURN_DELAY_SECONDS", "0.8"))

HERO_ID = "hero"               # Combatant id of the player character
HERO_WEAPON_LABEL = "Longsword"
HERO_DAMAGE_DICE = "1d8"

# Monster defaults when the record omits them
DEFAULT_MONSTER_HP = 5
DEFAULT_MONSTER_AC = 10
DEFAULT_ATTACK_BONUS = 2
DEFAULT_DAMAGE_DICE = "1d6"
DEFAULT_DAMAGE_BONUS = 0
DEFAULT_ATTACK_LABEL = "Strike"

MAX_DEATH_SAVES = 3            # Successes to stabilize, failures to die
