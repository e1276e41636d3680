"""Roll actor endpoints: fetch the pending roll, deliver its result."""

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from engine.auto_roller import roll_request
from engine.combat import CombatEngine
from models.combat_state import CombatPhase
from models.rolls import RollRequest, RollResult

router = APIRouter()


class RollResultResponse(BaseModel):
    """Whether a delivered result answered the pending roll."""
    accepted: bool
    phase: CombatPhase
    result: RollResult


def _get_engine(request: Request) -> CombatEngine:
    return request.app.state.engine


def _pending_request(request: Request) -> RollRequest | None:
    encounter = _get_engine(request).state
    if encounter is None or encounter.pending_roll is None:
        return None
    return RollRequest.from_pending(encounter.pending_roll)


def _deliver(request: Request, result: RollResult) -> RollResultResponse:
    engine = _get_engine(request)
    encounter = engine.state
    accepted = (
        encounter is not None
        and encounter.pending_roll is not None
        and encounter.pending_roll.id == result.id
    )
    try:
        request.app.state.rolls.resolve_roll(result)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return RollResultResponse(accepted=accepted, phase=engine.phase, result=result)


@router.get("/pending")
async def get_pending_roll(request: Request) -> RollRequest | None:
    """The roll the engine is waiting on, or null."""
    return _pending_request(request)


@router.post("/result")
async def submit_roll_result(result: RollResult, request: Request) -> RollResultResponse:
    """Deliver a roll made by the player. Stale ids are ignored."""
    return _deliver(request, result)


@router.post("/auto")
async def auto_roll(request: Request) -> RollResultResponse:
    """Let the server roll the pending request itself."""
    pending = _pending_request(request)
    if pending is None:
        raise HTTPException(status_code=404, detail="No roll is pending")
    try:
        result = roll_request(pending, request.app.state.rng)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _deliver(request, result)
