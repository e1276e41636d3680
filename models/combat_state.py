"""Encounter state and log models for the Solo Adventure server."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel

from models.characters import Combatant, CombatantSide
from models.rolls import PendingRoll


class CombatPhase(str, Enum):
    """Where the turn engine currently is."""
    IDLE = "idle"                   # No encounter
    INITIATIVE = "initiative"       # Waiting on the hero's initiative roll
    TURN_ACTIVE = "turn_active"     # Current combatant acts
    AWAITING_ROLL = "awaiting_roll" # Waiting on an attack, damage or death save
    RESOLVED = "resolved"           # Victory or defeat reached


class CombatOutcome(str, Enum):
    """How an encounter ended."""
    VICTORY = "victory"
    DEFEAT = "defeat"


class CombatLogEntry(BaseModel):
    """A logged event from the encounter."""
    timestamp: datetime
    text: str
    details: dict = {}              # Rolls, damage, etc.


class CombatEncounter(BaseModel):
    """The full state of one encounter."""
    active: bool = True
    adventure_id: str
    node_id: str
    round: int = 1
    turn_index: int = 0
    order: list[Combatant]          # Fixed membership for the encounter
    log: list[CombatLogEntry] = []
    pending_roll: PendingRoll | None = None
    awaiting_player: bool = False
    victory_node_id: str | None = None
    defeat_node_id: str | None = None
    outcome: CombatOutcome | None = None

    @property
    def current(self) -> Combatant | None:
        if not self.order or not 0 <= self.turn_index < len(self.order):
            return None
        return self.order[self.turn_index]

    def find(self, combatant_id: str) -> Combatant | None:
        for combatant in self.order:
            if combatant.id == combatant_id:
                return combatant
        return None

    @property
    def hero(self) -> Combatant | None:
        for combatant in self.order:
            if combatant.side == CombatantSide.HERO:
                return combatant
        return None
