"""FastAPI endpoints under /api.

One game per installation: key entry, new game (character confirmation),
load/save of the single slot, turns, and exit back to the menu. Gameplay
endpoints answer 401 until an API key is configured.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from romance_city.llm import MissingCredentialError
from romance_city.pipeline.resolver import TurnCancelledError
from romance_city.session import GameHost, NoActiveGameError, TurnInProgressError
from romance_city.storage import StorageError

router = APIRouter()


class ApiKeyBody(BaseModel):
    api_key: str


class NewGameBody(BaseModel):
    player_name: str = "Hero"


class TurnBody(BaseModel):
    action: str


def _host(request: Request) -> GameHost:
    return request.app.state.host


def _session(request: Request):
    host = _host(request)
    if not host.has_credential:
        raise HTTPException(401, "API key required")
    try:
        return host.require_session()
    except NoActiveGameError:
        raise HTTPException(404, "No game in progress")


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/key")
async def key_status(request: Request):
    """Whether a Gemini API key is configured."""
    return {"configured": _host(request).has_credential}


@router.post("/key")
async def set_key(request: Request, body: ApiKeyBody):
    """Set the Gemini API key (manual key entry)."""
    try:
        _host(request).set_api_key(body.api_key)
    except MissingCredentialError as e:
        raise HTTPException(422, str(e))
    return {"configured": True}


@router.post("/game")
async def new_game(request: Request, body: NewGameBody):
    """Start a new game for the confirmed character."""
    try:
        session = await _host(request).new_game(body.player_name)
    except MissingCredentialError:
        raise HTTPException(401, "API key required")
    return session.state.model_dump()


@router.post("/game/load")
async def load_game(request: Request):
    """Resume from the save slot."""
    try:
        session = await _host(request).load_game()
    except MissingCredentialError:
        raise HTTPException(401, "API key required")
    except StorageError as e:
        raise HTTPException(422, str(e))
    if session is None:
        raise HTTPException(404, "No save found")
    return session.state.model_dump()


@router.post("/game/save")
async def save_game(request: Request):
    """Write the current state to the save slot."""
    session = _session(request)
    session.save()
    return {"ok": True}


@router.get("/game")
async def get_game(request: Request):
    """Current game state, including the latest committed image."""
    session = _session(request)
    return {"state": session.state.model_dump(), "busy": session.busy}


@router.post("/game/turn")
async def play_turn(request: Request, body: TurnBody):
    """Resolve one player action (a choice's text or free input)."""
    if not body.action.strip():
        raise HTTPException(422, "Action must not be empty")
    session = _session(request)
    try:
        outcome = await session.play_turn(body.action)
    except TurnInProgressError as e:
        raise HTTPException(409, str(e))
    except TurnCancelledError as e:
        raise HTTPException(409, str(e))
    effect = None
    if outcome.effect is not None:
        effect = {"effect": outcome.effect.effect, "duration_ms": outcome.effect.duration_ms}
    return {
        "state": outcome.state.model_dump(),
        "effect": effect,
        "refresh_visuals": outcome.refresh_visuals,
    }


@router.post("/game/cancel")
async def cancel_turn(request: Request):
    """Cancel the turn that is currently resolving, if any."""
    return {"cancelled": _session(request).cancel_turn()}


@router.delete("/game")
async def exit_game(request: Request):
    """Leave the game and return to the menu."""
    await _host(request).exit_game()
    return {"ok": True}
