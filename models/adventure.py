"""Narrative-side records the combat engine consumes."""

from pydantic import BaseModel

from models.characters import AbilityScores, AttackProfile


class CombatNode(BaseModel):
    """A narrative node that starts an encounter when entered."""
    node_id: str
    monster_ids: list[str] = []
    victory_node_id: str | None = None
    defeat_node_id: str | None = None


class MonsterStats(BaseModel):
    """Normalized monster statistics."""
    hp: int
    ac: int
    speed: int | None = None
    ability_scores: AbilityScores = AbilityScores()


class MonsterRecord(BaseModel):
    """A monster definition after ingestion; every field resolved."""
    id: str
    name: str
    stats: MonsterStats
    attack: AttackProfile
