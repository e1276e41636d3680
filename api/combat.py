"""Combat start, hero commands, and encounter state endpoints."""

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from engine.combat import CombatEngine
from engine.session import GameSession, parse_combat_node
from models.combat_state import CombatEncounter, CombatLogEntry, CombatOutcome, CombatPhase

router = APIRouter()


class StartCombatRequest(BaseModel):
    """Request body for entering a combat node."""
    adventure_id: str
    node: dict[str, Any]            # Raw narrative node record


class AttackRequest(BaseModel):
    """Request body for the hero's attack."""
    target_id: str


class CommandResponse(BaseModel):
    """Response after a hero command was accepted."""
    message: str
    phase: CombatPhase


class CombatStateResponse(BaseModel):
    """Current phase and encounter (None when idle)."""
    phase: CombatPhase
    encounter: CombatEncounter | None = None
    last_outcome: CombatOutcome | None = None


def _get_engine(request: Request) -> CombatEngine:
    """Get the combat engine from app state."""
    return request.app.state.engine


def _get_session(request: Request) -> GameSession:
    return request.app.state.session


def _state_response(engine: CombatEngine) -> CombatStateResponse:
    last = engine.last_encounter
    return CombatStateResponse(
        phase=engine.phase,
        encounter=engine.state,
        last_outcome=last.outcome if last else None,
    )


@router.post("/start")
async def start_combat(body: StartCombatRequest, request: Request) -> CombatStateResponse:
    """Enter a combat node; re-entering the running node is a no-op."""
    engine = _get_engine(request)
    session = _get_session(request)

    try:
        node = parse_combat_node(body.node)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if node is None:
        raise HTTPException(status_code=400, detail="Node is not a combat node")

    if session.adventure_id != body.adventure_id:
        session.start_new_game(body.adventure_id, node.node_id)
    elif session.current_node_id != node.node_id:
        session.go_to_node(node.node_id)

    try:
        engine.start_combat(body.adventure_id, node, request.app.state.sheet.snapshot())
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _state_response(engine)


@router.get("/state")
async def get_combat_state(request: Request) -> CombatStateResponse:
    """Current phase and encounter."""
    return _state_response(_get_engine(request))


@router.get("/log")
async def get_combat_log(
    request: Request,
    limit: int = 50,
) -> list[CombatLogEntry]:
    """Log of the running encounter, or of the last finished one."""
    engine = _get_engine(request)
    encounter = engine.state or engine.last_encounter
    if encounter is None:
        return []
    return encounter.log[-limit:]


@router.post("/attack")
async def hero_attack(body: AttackRequest, request: Request) -> CommandResponse:
    """Hero attacks a monster; the attack roll is then pending."""
    engine = _get_engine(request)
    accepted, error = engine.hero_attack(body.target_id)
    if not accepted:
        raise HTTPException(status_code=409, detail=error)
    return CommandResponse(message="Attack roll requested", phase=engine.phase)


@router.post("/end-turn")
async def end_turn(request: Request) -> CommandResponse:
    """Hero passes the turn."""
    engine = _get_engine(request)
    accepted, error = engine.end_turn()
    if not accepted:
        raise HTTPException(status_code=409, detail=error)
    return CommandResponse(message="Turn ended", phase=engine.phase)


@router.delete("")
async def clear_combat(request: Request) -> CombatStateResponse:
    """Abandon the encounter, discarding any pending roll."""
    engine = _get_engine(request)
    engine.clear_combat()
    return _state_response(engine)
