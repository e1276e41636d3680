"""FastAPI app entry point for the Solo Adventure combat server."""

import logging
import random

from fastapi import FastAPI

from api.character import router as character_router
from api.combat import router as combat_router
from api.rolls import router as rolls_router
from api.ws import notify_state, router as ws_router
from config import (
    AUTO_STEP_DELAY_SECONDS,
    LOG_LEVEL,
    MONSTER_TURN_DELAY_SECONDS,
    MONSTERS_FILE,
    SHEET_FILE,
)
from engine.bestiary import MonsterRepository, load_monsters, starter_monsters
from engine.character_sheet import CharacterSheetStore, load_sheet
from engine.combat import CombatEngine
from engine.rolls import RollCoordinator
from engine.scheduler import Scheduler
from engine.session import GameSession
from models.characters import CharacterSheet

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("solo-adventure")


def init_state(
    app: FastAPI,
    sheet: CharacterSheet | None = None,
    monsters: MonsterRepository | None = None,
    rng: random.Random | None = None,
    scheduler: Scheduler | None = None,
    sheet_path: str = SHEET_FILE,
    auto_step_delay: float = AUTO_STEP_DELAY_SECONDS,
    monster_turn_delay: float = MONSTER_TURN_DELAY_SECONDS,
) -> CombatEngine:
    """Wire the collaborators together and attach them to the app.

    Returns:
        The new combat engine.
    """
    rng = rng or random.Random()
    rolls = RollCoordinator()
    sheet_store = CharacterSheetStore(sheet)
    session = GameSession()
    engine = CombatEngine(
        monsters=monsters if monsters is not None else starter_monsters(),
        rolls=rolls,
        sheet=sheet_store,
        session=session,
        rng=rng,
        scheduler=scheduler,
        auto_step_delay=auto_step_delay,
        monster_turn_delay=monster_turn_delay,
    )
    engine.subscribe(notify_state)

    app.state.rng = rng
    app.state.rolls = rolls
    app.state.sheet = sheet_store
    app.state.sheet_path = sheet_path
    app.state.session = session
    app.state.engine = engine
    return engine


app = FastAPI(
    title="Solo Adventure Server",
    description="Combat turn engine for a solo tabletop adventure",
    version="0.1.0",
)

# Load the saved hero and the bestiary, falling back to the built-ins
_monsters = load_monsters(MONSTERS_FILE)
if len(_monsters) == 0:
    logger.info("No monster file at %s; using the starter bestiary", MONSTERS_FILE)
    _monsters = starter_monsters()
init_state(app, sheet=load_sheet(SHEET_FILE), monsters=_monsters)

app.include_router(character_router, prefix="/character", tags=["Character"])
app.include_router(combat_router, prefix="/combat", tags=["Combat"])
app.include_router(rolls_router, prefix="/rolls", tags=["Rolls"])
app.include_router(ws_router, prefix="/combat", tags=["WebSocket"])


@app.get("/")
def root() -> dict:
    """Root endpoint returning server info."""
    return {"name": "Solo Adventure Server", "version": "0.1.0", "status": "running"}


@app.get("/health")
def health() -> dict:
    """Health check endpoint."""
    return {"healthy": True}
