"""Character sheet endpoints."""

from fastapi import APIRouter, HTTPException, Request

from engine.character_sheet import save_sheet
from models.characters import CharacterSheet
from models.combat_state import CombatPhase

router = APIRouter()


@router.get("")
def get_character(request: Request) -> CharacterSheet:
    """The hero's current sheet."""
    return request.app.state.sheet.sheet


@router.put("")
async def replace_character(sheet: CharacterSheet, request: Request) -> CharacterSheet:
    """Replace the hero's sheet. Not allowed while combat is running."""
    if request.app.state.engine.phase != CombatPhase.IDLE:
        raise HTTPException(status_code=409, detail="Cannot edit the character during combat")
    request.app.state.sheet.replace(sheet)
    return sheet


@router.post("/save")
def save_character(request: Request) -> dict:
    """Persist the hero's sheet to disk."""
    path = request.app.state.sheet_path
    save_sheet(request.app.state.sheet.sheet, path)
    return {"saved": True, "path": path}
