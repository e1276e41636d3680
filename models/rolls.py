"""Roll request and result models exchanged with the roll actor."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class RollKind(str, Enum):
    """Why the engine is asking for a roll."""
    HERO_INITIATIVE = "hero_initiative"
    HERO_ATTACK = "hero_attack"
    HERO_DAMAGE = "hero_damage"
    DEATH_SAVE = "death_save"


class PendingRoll(BaseModel):
    """The single outstanding roll an encounter is waiting on."""
    id: str                         # Correlation token
    kind: RollKind
    actor_id: str
    target_id: str | None = None
    label: str                      # e.g., "Attack Goblin"
    expression: str                 # e.g., "1d20"
    modifier: int = 0
    critical: bool = False          # Damage roll of a critical hit
    created_at: datetime


class RollRequest(BaseModel):
    """What the roll actor (human or scripted) is asked to roll."""
    id: str
    kind: RollKind
    label: str
    expression: str
    modifier: int = 0
    actor_id: str | None = None
    target_id: str | None = None

    @classmethod
    def from_pending(cls, pending: PendingRoll) -> "RollRequest":
        return cls(
            id=pending.id,
            kind=pending.kind,
            label=pending.label,
            expression=pending.expression,
            modifier=pending.modifier,
            actor_id=pending.actor_id,
            target_id=pending.target_id,
        )


class RollResult(BaseModel):
    """The roll actor's answer to a RollRequest."""
    id: str                         # Must match the pending request
    total: int
    rolls: list[int] = []
    natural: int | None = None      # Unmodified d20 face, single-d20 rolls only

    @property
    def natural_face(self) -> int | None:
        """The natural die face, falling back to a lone die in ``rolls``."""
        if self.natural is not None:
            return self.natural
        if len(self.rolls) == 1:
            return self.rolls[0]
        return None
