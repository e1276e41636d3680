"""Combat orchestration: encounter start, initiative, turns, roll handling, outcome."""

from __future__ import annotations

import logging
import random
from datetime import datetime, timezone
from typing import Callable
from uuid import uuid4

from config import (
    AUTO_STEP_DELAY_SECONDS,
    DEFAULT_ATTACK_BONUS,
    DEFAULT_ATTACK_LABEL,
    DEFAULT_DAMAGE_BONUS,
    DEFAULT_DAMAGE_DICE,
    HERO_ID,
    MAX_DEATH_SAVES,
    MONSTER_TURN_DELAY_SECONDS,
)
from engine.bestiary import MonsterRepository, monster_combatant
from engine.character_sheet import CharacterSheetStore
from engine.dice import ability_modifier, double_dice
from engine.rolls import RollCoordinator
from engine.rules import (
    all_monsters_defeated,
    apply_damage,
    apply_death_save,
    classify_attack,
    hero_attack_profile,
    resolve_attack,
    roll_initiative,
    sort_initiative,
    validate_hero_attack,
    validate_hero_turn,
)
from engine.scheduler import AsyncioScheduler, Handle, Scheduler
from engine.session import GameSession
from models.adventure import CombatNode
from models.characters import (
    AttackProfile,
    Combatant,
    CombatantSide,
    DeathSaves,
    HeroSnapshot,
)
from models.combat_state import CombatEncounter, CombatLogEntry, CombatOutcome, CombatPhase
from models.rolls import PendingRoll, RollKind, RollRequest, RollResult

logger = logging.getLogger(__name__)

StateListener = Callable[[CombatEncounter | None], None]


def build_hero_combatant(hero: HeroSnapshot) -> Combatant:
    """Turn the character sheet snapshot into the hero's combatant.

    A hero entering combat at 0 HP starts unconscious, making death saves.
    """
    hp = max(0, min(hero.hp, hero.max_hp))
    return Combatant(
        id=HERO_ID,
        name=hero.name or "Hero",
        side=CombatantSide.HERO,
        ac=hero.ac,
        max_hp=hero.max_hp,
        hp=hp,
        ability_scores=hero.ability_scores.model_copy(),
        alive=True,
        unconscious=hp == 0,
        death_saves=DeathSaves() if hp == 0 else None,
        attack=hero_attack_profile(hero),
    )


def next_turn(encounter: CombatEncounter) -> Combatant | None:
    """Move to the next living combatant in initiative order.

    Increments the round when the order wraps. Gives up after
    ``len(order) + 1`` steps if nobody is alive.

    Args:
        encounter: Encounter to mutate.

    Returns:
        The combatant whose turn it now is, or None.
    """
    order_len = len(encounter.order)
    if order_len == 0:
        return None

    attempts = 0
    while attempts <= order_len:
        encounter.turn_index = (encounter.turn_index + 1) % order_len
        if encounter.turn_index == 0:
            encounter.round += 1
        attempts += 1
        if encounter.order[encounter.turn_index].alive:
            return encounter.order[encounter.turn_index]
    return None


def _fallback_attack() -> AttackProfile:
    return AttackProfile(
        label=DEFAULT_ATTACK_LABEL,
        bonus=DEFAULT_ATTACK_BONUS,
        damage_dice=DEFAULT_DAMAGE_DICE,
        damage_bonus=DEFAULT_DAMAGE_BONUS,
    )


class CombatEngine:
    """Turn-order state machine for one hero against a group of monsters.

    The engine never blocks. It parks whenever a roll is pending and picks
    up again when the matching RollResult arrives through the coordinator,
    or when a pacing timer fires. All state lives in a single slot that is
    replaced wholesale on every change; ``state`` hands out copies.
    """

    def __init__(
        self,
        monsters: MonsterRepository,
        rolls: RollCoordinator,
        sheet: CharacterSheetStore,
        session: GameSession,
        rng: random.Random | None = None,
        scheduler: Scheduler | None = None,
        auto_step_delay: float = AUTO_STEP_DELAY_SECONDS,
        monster_turn_delay: float = MONSTER_TURN_DELAY_SECONDS,
    ) -> None:
        self._monsters = monsters
        self._rolls = rolls
        self._sheet = sheet
        self._session = session
        self._rng = rng or random.Random()
        self._scheduler = scheduler or AsyncioScheduler()
        self.auto_step_delay = auto_step_delay
        self.monster_turn_delay = monster_turn_delay

        self._state: CombatEncounter | None = None
        self._processing = False
        self._advance_scheduled = False  # Current turn is spent, waiting on the reveal delay
        self._timers: list[Handle] = []
        self._listeners: list[StateListener] = []
        self.last_encounter: CombatEncounter | None = None

        rolls.subscribe(self.handle_roll_result)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def state(self) -> CombatEncounter | None:
        """A copy of the current encounter, or None when idle."""
        return self._state.model_copy(deep=True) if self._state else None

    @property
    def phase(self) -> CombatPhase:
        encounter = self._state
        if encounter is None:
            return CombatPhase.IDLE
        if not encounter.active:
            return CombatPhase.RESOLVED
        if encounter.awaiting_player and encounter.pending_roll is not None:
            if encounter.pending_roll.kind == RollKind.HERO_INITIATIVE:
                return CombatPhase.INITIATIVE
            return CombatPhase.AWAITING_ROLL
        return CombatPhase.TURN_ACTIVE

    @property
    def is_processing(self) -> bool:
        """True while a monster turn is waiting on its pacing delay."""
        return self._processing

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener`` with a copy of the state after every change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Encounter lifecycle
    # ------------------------------------------------------------------

    def start_combat(self, adventure_id: str, node: CombatNode, hero: HeroSnapshot) -> None:
        """Begin an encounter for a combat node.

        Monsters roll initiative right away; the hero's initiative is
        requested from the roll actor. Entering a node that already has an
        active encounter does nothing.

        Args:
            adventure_id: Adventure the node belongs to.
            node: The combat node being entered.
            hero: Current snapshot of the hero's sheet.
        """
        existing = self._state
        if existing is not None and existing.active and existing.node_id == node.node_id:
            logger.info("Combat for node '%s' is already running", node.node_id)
            return
        if existing is not None:
            self.clear_combat()

        records = self._monsters.get_monsters(node.monster_ids)
        monsters = [monster_combatant(record, index) for index, record in enumerate(records)]
        if all_monsters_defeated(monsters):
            logger.warning("Combat node '%s' has no living monsters; skipping to victory", node.node_id)
            if node.victory_node_id:
                self._session.go_to_node(node.victory_node_id)
            return

        hero_combatant = build_hero_combatant(hero)
        for monster in monsters:
            monster.initiative = roll_initiative(monster, self._rng)

        encounter = CombatEncounter(
            adventure_id=adventure_id,
            node_id=node.node_id,
            order=[hero_combatant, *monsters],
            victory_node_id=node.victory_node_id,
            defeat_node_id=node.defeat_node_id,
        )
        self._log(encounter, "Combat begins.")
        for monster in monsters:
            self._log(
                encounter,
                f"{monster.name} rolls initiative {monster.initiative}.",
                combatant_id=monster.id,
                initiative=monster.initiative,
            )
        logger.info(
            "Combat started at node '%s': %s vs %s",
            node.node_id, hero_combatant.name, ", ".join(m.name for m in monsters),
        )

        self._request(
            encounter,
            RollKind.HERO_INITIATIVE,
            actor_id=hero_combatant.id,
            label=f"{hero_combatant.name} initiative",
            expression="1d20",
            modifier=ability_modifier(hero_combatant.ability_scores.dexterity),
        )

    def end_combat(self, outcome: CombatOutcome) -> None:
        """Resolve the encounter, clear it and route the narrative.

        Args:
            outcome: Victory or defeat.
        """
        if self._state is None:
            return
        self._cancel_timers()

        encounter = self._draft()
        encounter.active = False
        encounter.pending_roll = None
        encounter.awaiting_player = False
        encounter.outcome = outcome
        self._log(encounter, "Victory!" if outcome == CombatOutcome.VICTORY else "Defeat...")
        self._rolls.clear_pending()
        self._commit(encounter)
        self.last_encounter = encounter.model_copy(deep=True)
        logger.info("Combat at node '%s' ended in %s", encounter.node_id, outcome.value)

        self._commit(None)
        target = (
            encounter.victory_node_id if outcome == CombatOutcome.VICTORY else encounter.defeat_node_id
        )
        if target:
            self._session.go_to_node(target)

    def clear_combat(self) -> None:
        """Drop the encounter, any pending roll and any pacing timer."""
        self._cancel_timers()
        if self._state is not None and self._state.pending_roll is not None:
            self._rolls.clear_pending()
        if self._state is not None:
            self._commit(None)

    # ------------------------------------------------------------------
    # Hero commands
    # ------------------------------------------------------------------

    def hero_attack(self, target_id: str) -> tuple[bool, str]:
        """Ask the roll actor for the hero's attack roll against a monster.

        Returns:
            (accepted, error_message) tuple.
        """
        if self._state is None:
            return False, "No active combat"
        valid, error = validate_hero_attack(self._state, target_id)
        if not valid:
            return False, error
        if self._advance_scheduled:
            return False, "The hero's turn is over"

        encounter = self._draft()
        hero = encounter.current
        target = encounter.find(target_id)
        attack = hero.attack or hero_attack_profile(self._sheet.snapshot())
        self._log(encounter, f"{hero.name} attacks {target.name} with {attack.label}.")
        self._request(
            encounter,
            RollKind.HERO_ATTACK,
            actor_id=hero.id,
            target_id=target.id,
            label=f"Attack {target.name}",
            expression="1d20",
            modifier=attack.bonus,
        )
        return True, ""

    def end_turn(self) -> tuple[bool, str]:
        """The hero passes.

        Returns:
            (accepted, error_message) tuple.
        """
        if self._state is None:
            return False, "No active combat"
        valid, error = validate_hero_turn(self._state)
        if not valid:
            return False, error
        if self._advance_scheduled:
            return False, "The hero's turn is over"

        encounter = self._draft()
        self._log(encounter, f"{encounter.current.name} ends their turn.")
        self._commit(encounter)
        self.advance_turn()
        return True, ""

    # ------------------------------------------------------------------
    # Roll results
    # ------------------------------------------------------------------

    def handle_roll_result(self, result: RollResult) -> None:
        """Apply a roll result if it answers the pending request.

        Anything else (stale, duplicate, no encounter) is dropped untouched.
        """
        current = self._state
        pending = current.pending_roll if current is not None else None
        if current is None or not current.active or pending is None or pending.id != result.id:
            logger.debug("Discarding roll result %s: no matching pending roll", result.id)
            return

        encounter = self._draft()
        encounter.pending_roll = None
        encounter.awaiting_player = False

        if pending.kind == RollKind.HERO_INITIATIVE:
            self._apply_initiative(encounter, pending, result)
        elif pending.kind == RollKind.HERO_ATTACK:
            self._apply_hero_attack(encounter, pending, result)
        elif pending.kind == RollKind.HERO_DAMAGE:
            self._apply_hero_damage(encounter, pending, result)
        elif pending.kind == RollKind.DEATH_SAVE:
            self._apply_death_save(encounter, pending, result)

    def _apply_initiative(self, encounter: CombatEncounter, pending: PendingRoll, result: RollResult) -> None:
        hero = encounter.find(pending.actor_id)
        hero.initiative = result.total
        self._log(encounter, f"{hero.name} rolls initiative {result.total}.", rolls=result.rolls)

        encounter.order = sort_initiative(encounter.order, self._rng)
        encounter.turn_index = 0
        self._log(
            encounter,
            "Initiative order: " + ", ".join(f"{c.name} ({c.initiative})" for c in encounter.order),
        )
        self._commit(encounter)
        self._begin_turn()

    def _apply_hero_attack(self, encounter: CombatEncounter, pending: PendingRoll, result: RollResult) -> None:
        hero = encounter.find(pending.actor_id)
        target = encounter.find(pending.target_id)
        attack = hero.attack or hero_attack_profile(self._sheet.snapshot())
        natural = result.natural_face
        hit, critical = classify_attack(natural, result.total, target.ac)

        text = f"{hero.name} rolls {result.total} vs AC {target.ac}."
        details = {"attack_roll": result.total, "natural": natural, "hit": hit, "critical": critical}
        if not hit:
            text += " Natural 1, miss." if natural == 1 else " Miss."
            self._log(encounter, text, **details)
            self._commit(encounter)
            self._schedule_advance()
            return

        text += " Critical hit!" if critical else " Hit!"
        self._log(encounter, text, **details)
        self._request(
            encounter,
            RollKind.HERO_DAMAGE,
            actor_id=hero.id,
            target_id=target.id,
            label=f"Damage to {target.name}",
            expression=double_dice(attack.damage_dice) if critical else attack.damage_dice,
            modifier=attack.damage_bonus,
            critical=critical,
        )

    def _apply_hero_damage(self, encounter: CombatEncounter, pending: PendingRoll, result: RollResult) -> None:
        target = encounter.find(pending.target_id)
        damage = max(0, result.total)
        apply_damage(target, damage, pending.critical)

        text = f"{target.name} takes {damage} damage ({target.hp}/{target.max_hp} HP)."
        if not target.alive:
            text += f" {target.name} falls."
        self._log(encounter, text, target_id=target.id, damage_dealt=damage, critical=pending.critical)
        self._commit(encounter)

        if all_monsters_defeated(encounter.order):
            self.end_combat(CombatOutcome.VICTORY)
            return
        self._schedule_advance()

    def _apply_death_save(self, encounter: CombatEncounter, pending: PendingRoll, result: RollResult) -> None:
        hero = encounter.find(pending.actor_id)
        resolution = apply_death_save(hero.death_saves or DeathSaves(), result.natural_face, result.total)

        text = f"Death save roll {result.total}."
        if resolution.revived:
            hero.hp = 1
            hero.unconscious = False
            hero.death_saves = None
            text += f" Natural 20. {hero.name} returns with 1 HP."
        else:
            hero.death_saves = DeathSaves(successes=resolution.successes, failures=resolution.failures)
            if resolution.dead:
                hero.alive = False
                text += f" {hero.name} dies."
            elif resolution.stabilized:
                text += f" {hero.name} is stable."
            elif result.natural_face == 1:
                text += " Critical failure."
            elif result.total >= 10:
                text += " Success."
            else:
                text += " Failure."
        self._log(
            encounter,
            text,
            successes=resolution.successes,
            failures=resolution.failures,
        )

        if resolution.revived:
            self._sheet.update_hp(1)
        self._commit(encounter)

        if resolution.dead:
            self.end_combat(CombatOutcome.DEFEAT)
            return
        if resolution.revived:
            # Back on their feet: the hero acts this turn.
            return
        self._schedule_advance()

    # ------------------------------------------------------------------
    # Turn flow
    # ------------------------------------------------------------------

    def advance_turn(self) -> None:
        """Pass the turn to the next living combatant and start its turn."""
        self._advance_scheduled = False
        if self._state is None or not self._state.active:
            return
        encounter = self._draft()
        next_turn(encounter)
        self._commit(encounter)
        self._begin_turn()

    def _begin_turn(self) -> None:
        encounter = self._state
        if encounter is None or not encounter.active:
            return
        current = encounter.current
        if current is None:
            return

        if not current.alive:
            self.advance_turn()
            return

        if current.side == CombatantSide.HERO:
            if not current.unconscious:
                return
            saves = current.death_saves or DeathSaves()
            if saves.successes >= MAX_DEATH_SAVES:
                draft = self._draft()
                self._log(draft, f"{current.name} is stable but unconscious.")
                self._commit(draft)
                self.advance_turn()
                return
            self._request(
                self._draft(),
                RollKind.DEATH_SAVE,
                actor_id=current.id,
                label=f"{current.name} death save",
                expression="1d20",
                modifier=0,
            )
            return

        self.process_current_turn()

    def process_current_turn(self) -> None:
        """Schedule the current monster's turn, unless one is already scheduled."""
        encounter = self._state
        if self._processing or encounter is None or not encounter.active or encounter.awaiting_player:
            return
        current = encounter.current
        if current is None or current.side != CombatantSide.MONSTER or not current.alive:
            return

        self._processing = True
        key = (encounter.round, encounter.turn_index, current.id)
        self._schedule(self.monster_turn_delay, lambda: self._run_monster_turn(key))

    def _run_monster_turn(self, key: tuple[int, int, str]) -> None:
        self._processing = False
        encounter = self._state
        if encounter is None or not encounter.active or encounter.awaiting_player:
            return
        current = encounter.current
        if current is None or (encounter.round, encounter.turn_index, current.id) != key:
            return

        encounter = self._draft()
        monster = encounter.current
        hero = encounter.hero
        if hero is None or not hero.alive:
            self.end_combat(CombatOutcome.DEFEAT)
            return

        attack = monster.attack or _fallback_attack()
        resolution = resolve_attack(
            attack.bonus, hero.ac, attack.damage_dice, attack.damage_bonus, self._rng,
        )
        text = (
            f"{monster.name} attacks {hero.name} with {attack.label}. "
            f"Roll {resolution.attack_roll.total} vs AC {resolution.target_ac}."
        )
        details = {
            "attacker_id": monster.id,
            "attack_roll": resolution.attack_roll.total,
            "natural": resolution.natural,
            "hit": resolution.hit,
            "critical": resolution.critical,
        }

        if not resolution.hit:
            self._log(encounter, text + " Miss.", **details)
            self._commit(encounter)
            self.advance_turn()
            return

        damage = max(0, resolution.damage_roll.total)
        was_down = hero.unconscious
        hp_before = hero.hp
        apply_damage(hero, damage, resolution.critical)
        hp_lost = hp_before - hero.hp

        if resolution.critical:
            text += " Critical hit!"
        text += f" Hit for {damage} damage."
        if was_down:
            text += f" {hero.name} suffers a death save failure ({hero.death_saves.failures}/{MAX_DEATH_SAVES})."
            if not hero.alive:
                text += f" {hero.name} dies."
        elif hero.unconscious:
            text += f" {hero.name} is unconscious."
        self._log(encounter, text, damage_dealt=damage, **details)

        if hp_lost:
            self._sheet.update_hp(-hp_lost)
        self._commit(encounter)

        if not hero.alive:
            self.end_combat(CombatOutcome.DEFEAT)
            return
        self.advance_turn()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _draft(self) -> CombatEncounter:
        return self._state.model_copy(deep=True)

    def _commit(self, encounter: CombatEncounter | None) -> None:
        self._state = encounter
        for listener in list(self._listeners):
            listener(self.state)

    @staticmethod
    def _log(encounter: CombatEncounter, text: str, **details) -> None:
        encounter.log.append(
            CombatLogEntry(timestamp=datetime.now(timezone.utc), text=text, details=details)
        )

    def _request(
        self,
        encounter: CombatEncounter,
        kind: RollKind,
        actor_id: str,
        label: str,
        expression: str,
        modifier: int,
        target_id: str | None = None,
        critical: bool = False,
    ) -> None:
        """Park the encounter on a new roll and publish it to the roll actor."""
        pending = PendingRoll(
            id=uuid4().hex,
            kind=kind,
            actor_id=actor_id,
            target_id=target_id,
            label=label,
            expression=expression,
            modifier=modifier,
            critical=critical,
            created_at=datetime.now(timezone.utc),
        )
        encounter.pending_roll = pending
        encounter.awaiting_player = True
        self._commit(encounter)
        self._rolls.request_roll(RollRequest.from_pending(pending))

    def _schedule(self, delay: float, callback: Callable[[], None]) -> None:
        handle: Handle | None = None

        def fire() -> None:
            if handle in self._timers:
                self._timers.remove(handle)
            callback()

        handle = self._scheduler.call_later(delay, fire)
        self._timers.append(handle)

    def _schedule_advance(self) -> None:
        """Advance after the reveal delay, if nothing moved in the meantime."""
        encounter = self._state
        key = (encounter.round, encounter.turn_index)
        self._advance_scheduled = True

        def step() -> None:
            current = self._state
            if current is None or not current.active or current.awaiting_player:
                return
            if (current.round, current.turn_index) != key:
                return
            self.advance_turn()

        self._schedule(self.auto_step_delay, step)

    def _cancel_timers(self) -> None:
        self._processing = False
        self._advance_scheduled = False
        for handle in self._timers:
            handle.cancel()
        self._timers = []
