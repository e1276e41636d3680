"""Game session (where the player is in the adventure) and combat node parsing."""

from __future__ import annotations

import logging
from typing import Any, Callable

from models.adventure import CombatNode

logger = logging.getLogger(__name__)


class GameSession:
    """Tracks the current adventure and node; the engine routes through it."""

    def __init__(self) -> None:
        self.adventure_id: str | None = None
        self.current_node_id: str | None = None
        self.history: list[str] = []
        self._listeners: list[Callable[[str], None]] = []

    def start_new_game(self, adventure_id: str, start_node_id: str) -> None:
        self.adventure_id = adventure_id
        self.current_node_id = start_node_id
        self.history = [start_node_id]

    def go_to_node(self, node_id: str) -> None:
        """Move the player to another narrative node."""
        logger.info("Navigating to node '%s'", node_id)
        self.current_node_id = node_id
        self.history.append(node_id)
        for listener in list(self._listeners):
            listener(node_id)

    def on_navigate(self, listener: Callable[[str], None]) -> None:
        self._listeners.append(listener)

    def reset(self) -> None:
        self.adventure_id = None
        self.current_node_id = None
        self.history = []


def _string(record: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = record.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def parse_combat_node(raw: dict[str, Any]) -> CombatNode | None:
    """Read the combat-relevant fields of a raw narrative node.

    Returns:
        A CombatNode, or None if the node neither has ``type == "combat"``
        nor lists any monsters.
    """
    monster_ids = raw.get("monsterIds", raw.get("monster_ids"))
    if not isinstance(monster_ids, list):
        monster_ids = []
    monster_ids = [m for m in monster_ids if isinstance(m, str)]

    if raw.get("type") != "combat" and not monster_ids:
        return None

    node_id = _string(raw, "nodeId", "node_id", "id")
    if node_id is None:
        raise ValueError("Combat node has no nodeId")

    return CombatNode(
        node_id=node_id,
        monster_ids=monster_ids,
        victory_node_id=_string(raw, "victoryNode", "victoryNodeId", "victory_node_id"),
        defeat_node_id=_string(raw, "defeatNode", "defeatNodeId", "defeat_node_id"),
    )
