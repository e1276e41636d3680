"""Tests for combat orchestration: initiative, turns, roll handling, outcomes."""

import random

from engine.auto_roller import AutoRoller
from engine.bestiary import MonsterRepository
from engine.character_sheet import CharacterSheetStore
from engine.combat import CombatEngine, build_hero_combatant, next_turn
from engine.rolls import RollCoordinator
from engine.scheduler import ManualScheduler
from engine.session import GameSession
from models.adventure import CombatNode
from models.characters import CharacterSheet, CombatantSide, HeroSnapshot
from models.combat_state import CombatOutcome, CombatPhase
from models.rolls import RollKind, RollResult

GOBLIN = {
    "id": "goblin",
    "name": "Goblin",
    "stats": {"hp": 7, "ac": 15, "dex": 14},
    "attack": {"bonus": 4, "damageDice": "1d6", "damageBonus": 2, "label": "Scimitar"},
}


class _SequenceRandom(random.Random):
    """Random whose random() replays a fixed list of floats."""

    def __init__(self, values: list[float]):
        super().__init__(0)
        self._values = list(values)

    def random(self) -> float:
        return self._values.pop(0)


def _face(face: int, sides: int = 20) -> float:
    return (face - 0.5) / sides


class _Table:
    """An engine wired to a manual clock, with a goblin in the bestiary."""

    def __init__(self, rng: random.Random, hero_hp: int = 10):
        self.monsters = MonsterRepository()
        self.monsters.add(GOBLIN)
        self.rolls = RollCoordinator()
        self.sheet = CharacterSheetStore(CharacterSheet(hp=hero_hp, max_hp=10))
        self.session = GameSession()
        self.session.start_new_game("adv", "ambush")
        self.scheduler = ManualScheduler()
        self.engine = CombatEngine(
            self.monsters, self.rolls, self.sheet, self.session,
            rng=rng, scheduler=self.scheduler,
        )

    def start(self, monster_ids: list[str] | None = None, node_id: str = "ambush") -> None:
        node = CombatNode(
            node_id=node_id,
            monster_ids=monster_ids if monster_ids is not None else ["goblin"],
            victory_node_id="won",
            defeat_node_id="lost",
        )
        self.engine.start_combat("adv", node, self.sheet.snapshot())

    def answer(self, total: int, natural: int | None = None, rolls: list[int] | None = None) -> None:
        """Answer the engine's pending roll."""
        pending = self.engine.state.pending_roll
        self.rolls.resolve_roll(RollResult(id=pending.id, total=total, rolls=rolls or [], natural=natural))


class TestHelpers:
    """Tests for build_hero_combatant() and next_turn()."""

    def test_hero_combatant(self):
        hero = build_hero_combatant(HeroSnapshot(name="Mira", hp=8, max_hp=10, ac=14))
        assert hero.id == "hero"
        assert hero.side == CombatantSide.HERO
        assert hero.hp == 8
        assert not hero.unconscious
        assert hero.attack.label == "Longsword"

    def test_hero_at_zero_starts_unconscious(self):
        hero = build_hero_combatant(HeroSnapshot(name="Mira", hp=0, max_hp=10, ac=14))
        assert hero.alive
        assert hero.unconscious
        assert hero.death_saves.failures == 0

    def test_next_turn_skips_dead_and_wraps(self):
        table = _Table(_SequenceRandom([_face(5), _face(5)]))
        table.start(["goblin", "goblin"])
        encounter = table.engine.state
        encounter.order[1].alive = False
        current = next_turn(encounter)
        assert current.id == encounter.order[2].id
        current = next_turn(encounter)
        assert encounter.turn_index == 0
        assert encounter.round == 2

    def test_next_turn_nobody_alive(self):
        table = _Table(_SequenceRandom([_face(5)]))
        table.start()
        encounter = table.engine.state
        for combatant in encounter.order:
            combatant.alive = False
        assert next_turn(encounter) is None


class TestStartCombat:
    """Tests for CombatEngine.start_combat()."""

    def test_requests_hero_initiative(self):
        table = _Table(_SequenceRandom([_face(5)]))
        table.start()
        state = table.engine.state
        assert table.engine.phase == CombatPhase.INITIATIVE
        assert state.pending_roll.kind == RollKind.HERO_INITIATIVE
        assert state.pending_roll.expression == "1d20"
        assert state.pending_roll.modifier == 1
        assert table.rolls.pending.id == state.pending_roll.id
        assert [c.id for c in state.order] == ["hero", "goblin__0"]
        assert state.order[1].initiative == 7
        assert "Goblin rolls initiative 7." in [e.text for e in state.log]

    def test_same_node_is_idempotent(self):
        table = _Table(_SequenceRandom([_face(5)]))
        table.start()
        before = table.engine.state
        table.start()
        after = table.engine.state
        assert after.pending_roll.id == before.pending_roll.id
        assert len(after.log) == len(before.log)

    def test_other_node_replaces_encounter(self):
        table = _Table(_SequenceRandom([_face(5), _face(9)]))
        table.start()
        first_roll = table.engine.state.pending_roll.id
        table.start(node_id="second_ambush")
        state = table.engine.state
        assert state.node_id == "second_ambush"
        assert state.pending_roll.id != first_roll

    def test_no_known_monsters_goes_to_victory(self):
        table = _Table(_SequenceRandom([]))
        table.start(["dragon"])
        assert table.engine.state is None
        assert table.engine.phase == CombatPhase.IDLE
        assert table.session.current_node_id == "won"

    def test_only_dead_monsters_goes_to_victory(self):
        table = _Table(_SequenceRandom([]))
        table.monsters.add({"id": "corpse", "name": "Corpse", "stats": {"hp": 0}})
        table.start(["corpse", "corpse"])
        assert table.engine.state is None
        assert table.engine.phase == CombatPhase.IDLE
        assert table.rolls.pending is None
        assert table.session.current_node_id == "won"

    def test_dead_monster_alongside_living_one(self):
        table = _Table(_SequenceRandom([_face(5), _face(5)]))
        table.monsters.add({"id": "corpse", "name": "Corpse", "stats": {"hp": 0}})
        table.start(["corpse", "goblin"])
        state = table.engine.state
        assert state.active
        assert not state.find("corpse__0").alive
        assert state.find("goblin__1").alive

    def test_state_is_a_copy(self):
        table = _Table(_SequenceRandom([_face(5)]))
        table.start()
        table.engine.state.order[1].hp = 0
        assert table.engine.state.order[1].hp == 7


class TestInitiative:
    """Tests for the hero's initiative result."""

    def test_hero_first(self):
        table = _Table(_SequenceRandom([_face(5)]))
        table.start()
        table.answer(16, natural=15, rolls=[15])
        state = table.engine.state
        assert [c.id for c in state.order] == ["hero", "goblin__0"]
        assert state.order[0].initiative == 16
        assert table.engine.phase == CombatPhase.TURN_ACTIVE
        assert table.scheduler.pending == 0

    def test_monster_first_takes_turn(self):
        table = _Table(_SequenceRandom([_face(19)]))
        table.start()
        table.answer(5, natural=4, rolls=[4])
        assert table.engine.state.current.id == "goblin__0"
        assert table.engine.is_processing
        assert table.scheduler.pending == 1

    def test_tie_goes_to_higher_dex(self):
        # Goblin 5 + 2 = 7; hero 6 + 1 = 7
        table = _Table(_SequenceRandom([_face(5)]))
        table.start()
        table.answer(7, natural=6, rolls=[6])
        assert table.engine.state.order[0].id == "goblin__0"


class TestHeroTurn:
    """Tests for the hero's attack and end-turn commands."""

    def _hero_turn(self, rng_values: list[float]) -> _Table:
        table = _Table(_SequenceRandom([_face(5), *rng_values]))
        table.start()
        table.answer(16, natural=15, rolls=[15])
        return table

    def test_victory(self):
        table = self._hero_turn([])
        outcomes = []
        table.session.on_navigate(outcomes.append)

        assert table.engine.hero_attack("goblin__0") == (True, "")
        pending = table.engine.state.pending_roll
        assert pending.kind == RollKind.HERO_ATTACK
        assert pending.modifier == 5
        assert table.engine.phase == CombatPhase.AWAITING_ROLL

        table.answer(25, natural=20, rolls=[20])
        pending = table.engine.state.pending_roll
        assert pending.kind == RollKind.HERO_DAMAGE
        assert pending.expression == "2d8"
        assert pending.modifier == 3
        assert pending.critical

        table.answer(11, rolls=[4, 4])
        assert table.engine.state is None
        assert table.engine.phase == CombatPhase.IDLE
        assert table.engine.last_encounter.outcome == CombatOutcome.VICTORY
        assert table.engine.last_encounter.log[-1].text == "Victory!"
        assert outcomes == ["won"]
        assert table.rolls.pending is None

    def test_weak_monster_falls_in_one_turn(self):
        table = _Table(_SequenceRandom([_face(5)]))
        table.monsters.add({"id": "rat", "name": "Rat", "stats": {"hp": 5, "ac": 10, "dex": 10}})
        table.start(["rat"])
        table.answer(18, natural=17, rolls=[17])
        table.engine.hero_attack("rat__0")
        table.answer(20, natural=15, rolls=[15])
        table.answer(8, rolls=[5])
        last = table.engine.last_encounter
        assert last.outcome == CombatOutcome.VICTORY
        assert not last.find("rat__0").alive
        assert table.session.current_node_id == "won"

    def test_hit_leaves_monster_standing(self):
        table = self._hero_turn([])
        table.engine.hero_attack("goblin__0")
        table.answer(17, natural=12, rolls=[12])
        table.answer(4, rolls=[1])
        goblin = table.engine.state.find("goblin__0")
        assert goblin.hp == 3
        assert goblin.alive
        assert table.scheduler.pending == 1

    def test_miss_then_monster_turn(self):
        table = self._hero_turn([_face(12), _face(4, 6)])
        table.engine.hero_attack("goblin__0")
        table.answer(8, natural=3, rolls=[3])
        assert table.engine.state.pending_roll is None
        assert table.engine.hero_attack("goblin__0") == (False, "The hero's turn is over")

        table.scheduler.run_next()
        assert table.engine.state.current.id == "goblin__0"
        assert table.engine.is_processing

        table.scheduler.run_next()
        state = table.engine.state
        assert state.round == 2
        assert state.current.id == "hero"
        assert state.hero.hp == 4
        assert table.sheet.sheet.hp == 4
        assert "Hit for 6 damage." in state.log[-1].text
        assert table.engine.phase == CombatPhase.TURN_ACTIVE

    def test_end_turn(self):
        table = self._hero_turn([])
        assert table.engine.end_turn() == (True, "")
        assert table.engine.state.current.id == "goblin__0"
        assert table.engine.is_processing

    def test_commands_rejected_while_roll_pending(self):
        table = self._hero_turn([])
        table.engine.hero_attack("goblin__0")
        accepted, error = table.engine.hero_attack("goblin__0")
        assert not accepted
        assert "pending" in error
        assert table.engine.end_turn()[0] is False

    def test_commands_without_combat(self):
        table = _Table(_SequenceRandom([]))
        assert table.engine.hero_attack("goblin__0") == (False, "No active combat")
        assert table.engine.end_turn() == (False, "No active combat")

    def test_attack_unknown_target(self):
        table = self._hero_turn([])
        accepted, error = table.engine.hero_attack("dragon__0")
        assert not accepted
        assert "not found" in error


class TestRollResults:
    """Tests for result correlation."""

    def test_stale_result_ignored(self):
        table = _Table(_SequenceRandom([_face(5)]))
        table.start()
        before = table.engine.state
        table.rolls.resolve_roll(RollResult(id="stale", total=20, natural=20))
        after = table.engine.state
        assert after.pending_roll.id == before.pending_roll.id
        assert len(after.log) == len(before.log)
        assert table.engine.phase == CombatPhase.INITIATIVE

    def test_stale_result_during_hero_turn(self):
        table = _Table(_SequenceRandom([_face(5)]))
        table.start()
        table.answer(16, natural=15, rolls=[15])
        table.engine.hero_attack("goblin__0")
        before = table.engine.state
        table.rolls.resolve_roll(RollResult(id="stale", total=25, natural=20, rolls=[20]))
        after = table.engine.state
        assert len(after.log) == len(before.log)
        assert after.turn_index == before.turn_index
        assert after.round == before.round
        assert [c.hp for c in after.order] == [c.hp for c in before.order]
        assert after.pending_roll.id == before.pending_roll.id
        assert table.engine.phase == CombatPhase.AWAITING_ROLL

    def test_duplicate_result_ignored(self):
        table = _Table(_SequenceRandom([_face(5)]))
        table.start()
        roll_id = table.engine.state.pending_roll.id
        table.rolls.resolve_roll(RollResult(id=roll_id, total=16, natural=15))
        log_length = len(table.engine.state.log)
        table.rolls.resolve_roll(RollResult(id=roll_id, total=3, natural=2))
        assert len(table.engine.state.log) == log_length
        assert table.engine.state.order[0].initiative == 16

    def test_result_without_encounter_ignored(self):
        table = _Table(_SequenceRandom([]))
        table.rolls.resolve_roll(RollResult(id="r1", total=10))
        assert table.engine.state is None


class TestMonsterTurns:
    """Tests for the monster turn pipeline."""

    def test_single_turn_in_flight(self):
        table = _Table(_SequenceRandom([_face(19)]))
        table.start()
        table.answer(5, natural=4, rolls=[4])
        table.engine.process_current_turn()
        table.engine.process_current_turn()
        assert table.scheduler.pending == 1

    def test_defeat(self):
        table = _Table(_SequenceRandom([
            _face(19),                   # Goblin initiative 21
            _face(15), _face(6, 6),      # Hit for 8
            _face(10), _face(1, 6),      # Hit for 3 while the hero is down
        ]), hero_hp=3)
        table.start()
        table.answer(5, natural=4, rolls=[4])

        table.scheduler.run_next()
        state = table.engine.state
        assert state.hero.unconscious
        assert state.hero.hp == 0
        assert table.sheet.sheet.hp == 0
        assert state.pending_roll.kind == RollKind.DEATH_SAVE
        assert state.pending_roll.modifier == 0

        table.answer(1, natural=1, rolls=[1])
        assert table.engine.state.hero.death_saves.failures == 2

        table.scheduler.run_all()
        assert table.engine.state is None
        assert table.engine.last_encounter.outcome == CombatOutcome.DEFEAT
        assert table.engine.last_encounter.log[-1].text == "Defeat..."
        assert table.session.current_node_id == "lost"

    def test_three_failed_saves(self):
        table = _Table(_SequenceRandom([
            _face(19),                   # Goblin initiative 21
            _face(15), _face(6, 6),      # Hit for 8
            _face(2), _face(2),          # Two misses
        ]), hero_hp=3)
        table.start()
        table.answer(5, natural=4, rolls=[4])
        table.scheduler.run_next()
        assert table.engine.state.hero.death_saves.model_dump() == {"successes": 0, "failures": 0}

        table.answer(5, natural=5, rolls=[5])
        table.scheduler.run_next()
        table.scheduler.run_next()
        table.answer(7, natural=7, rolls=[7])
        table.scheduler.run_next()
        table.scheduler.run_next()
        table.answer(9, natural=9, rolls=[9])

        last = table.engine.last_encounter
        assert last.outcome == CombatOutcome.DEFEAT
        assert not last.hero.alive
        assert last.hero.death_saves.failures == 3
        assert table.session.current_node_id == "lost"

    def test_clear_combat_cancels_timers(self):
        table = _Table(_SequenceRandom([_face(19)]))
        table.start()
        table.answer(5, natural=4, rolls=[4])
        table.engine.clear_combat()
        assert table.engine.state is None
        assert table.scheduler.pending == 0
        assert not table.engine.is_processing


class TestDeathSaves:
    """Tests for an unconscious hero's turns."""

    def _downed_hero_first(self, rng_values: list[float]) -> _Table:
        table = _Table(_SequenceRandom([_face(1), *rng_values]), hero_hp=0)
        table.start()
        table.answer(15, natural=14, rolls=[14])
        return table

    def test_unconscious_hero_rolls_death_save(self):
        table = self._downed_hero_first([])
        pending = table.engine.state.pending_roll
        assert pending.kind == RollKind.DEATH_SAVE
        assert table.engine.phase == CombatPhase.AWAITING_ROLL

    def test_natural_20_revives_and_acts(self):
        table = self._downed_hero_first([])
        table.answer(20, natural=20, rolls=[20])
        hero = table.engine.state.hero
        assert hero.hp == 1
        assert not hero.unconscious
        assert table.sheet.sheet.hp == 1
        assert table.engine.phase == CombatPhase.TURN_ACTIVE
        assert table.engine.hero_attack("goblin__0") == (True, "")

    def test_stable_hero_skips_turns(self):
        table = self._downed_hero_first([_face(2)] * 3)
        for _ in range(3):
            table.answer(15, natural=15, rolls=[15])
            table.scheduler.run_next()
            table.scheduler.run_next()
        state = table.engine.state
        assert state.hero.death_saves.successes == 3
        assert any("is stable" in e.text for e in state.log)
        assert state.current.id == "goblin__0"
        assert table.engine.is_processing

    def test_hit_on_stable_hero_resumes_saves(self):
        table = self._downed_hero_first([_face(2)] * 3 + [_face(15), _face(3, 6)])
        for _ in range(3):
            table.answer(15, natural=15, rolls=[15])
            table.scheduler.run_next()
            table.scheduler.run_next()
        table.scheduler.run_next()
        state = table.engine.state
        assert state.hero.death_saves.successes == 0
        assert state.hero.death_saves.failures == 1
        assert state.pending_roll.kind == RollKind.DEATH_SAVE


class TestInvariants:
    """Whole encounters played by the scripted roller."""

    def test_full_fight(self):
        table = _Table(random.Random(7))
        table.monsters.add({"id": "wolf", "name": "Wolf", "stats": {"hp": 11, "ac": 13}})
        AutoRoller(table.rolls, random.Random(11), scheduler=table.scheduler).attach()
        roster: set[str] = set()

        def check(encounter):
            if encounter is None:
                return
            assert encounter.awaiting_player == (encounter.pending_roll is not None)
            ids = {c.id for c in encounter.order}
            if not roster:
                roster.update(ids)
            assert ids == roster

        table.engine.subscribe(check)
        table.start(["goblin", "wolf"])

        for _ in range(300):
            table.scheduler.run_all()
            state = table.engine.state
            if state is None:
                break
            living = [c for c in state.order if c.side == CombatantSide.MONSTER and c.alive]
            accepted, _ = table.engine.hero_attack(living[0].id)
            assert accepted

        assert table.engine.phase == CombatPhase.IDLE
        assert table.engine.last_encounter.outcome in (CombatOutcome.VICTORY, CombatOutcome.DEFEAT)
        assert roster == {"hero", "goblin__0", "wolf__1"}

    def test_unsubscribe(self):
        table = _Table(_SequenceRandom([_face(5)]))
        seen = []
        unsubscribe = table.engine.subscribe(seen.append)
        unsubscribe()
        table.start()
        assert seen == []
