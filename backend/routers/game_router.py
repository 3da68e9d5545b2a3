"""
Mini-game HTTP endpoints.

Routes:
  POST /api/gaming/{session_id}/start      Start a game (replaces any running one)
  POST /api/gaming/{session_id}/events     Feed one chat event into the session's game
  POST /api/gaming/{session_id}/stop       End the running game now
  GET  /api/gaming/{session_id}/status     Live snapshot incl. live stats
  GET  /api/gaming/{session_id}/playlist   DJ game playlist so far
  GET  /api/gaming/active                  Snapshots for every session holding a game
  GET  /api/gaming/history                 Finished games, newest first
  POST /api/gaming/cleanup                 Drop games past the retention window
  GET  /api/gaming/settings                Current per-game defaults
  POST /api/gaming/settings/refresh        Reload defaults from the settings store

No game logic lives here: every route delegates to the session registry.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from games.registry import SessionGameRegistry, get_registry
from models.errors import GameNotFoundError, InvalidGameConfigError
from models.game import (
    IngestEventRequest, IngestEventResponse,
    StartGameRequest, StartGameResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["gaming"])


@router.get("/gaming/active")
async def active_games(registry: SessionGameRegistry = Depends(get_registry)):
    return {
        session_id: snapshot.model_dump(mode="json")
        for session_id, snapshot in registry.active_games().items()
    }


@router.get("/gaming/history")
async def game_history(
    session_id: Optional[str] = Query(None, description="Only games from this session"),
    limit: int = Query(10, ge=1, le=100),
    registry: SessionGameRegistry = Depends(get_registry),
):
    records = registry.get_history(session_id, limit)
    return {"history": [r.model_dump(mode="json") for r in records]}


@router.post("/gaming/cleanup")
async def cleanup(registry: SessionGameRegistry = Depends(get_registry)):
    removed = registry.cleanup()
    return {"removed": removed}


@router.get("/gaming/settings")
async def game_settings(registry: SessionGameRegistry = Depends(get_registry)):
    return registry.settings.current.model_dump(mode="json", by_alias=True)


@router.post("/gaming/settings/refresh")
async def refresh_settings(registry: SessionGameRegistry = Depends(get_registry)):
    refreshed = await registry.refresh_settings()
    return refreshed.model_dump(mode="json", by_alias=True)


@router.post("/gaming/{session_id}/start", response_model=StartGameResponse, status_code=201)
async def start_game(
    session_id: str,
    body: StartGameRequest,
    registry: SessionGameRegistry = Depends(get_registry),
):
    try:
        game_id = registry.start_game(session_id, body.type, body.overrides())
    except InvalidGameConfigError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return StartGameResponse(game_id=game_id, session_id=session_id, type=body.type)


@router.post("/gaming/{session_id}/events", response_model=IngestEventResponse)
async def ingest_event(
    session_id: str,
    body: IngestEventRequest,
    registry: SessionGameRegistry = Depends(get_registry),
):
    accepted = registry.ingest(session_id, body.participant_id, body.text, body.profile)
    return IngestEventResponse(accepted=accepted)


@router.post("/gaming/{session_id}/stop")
async def stop_game(session_id: str, registry: SessionGameRegistry = Depends(get_registry)):
    try:
        result = registry.stop(session_id)
    except GameNotFoundError:
        raise HTTPException(status_code=404, detail="Nothing to stop: no active game")
    return result.model_dump(mode="json")


@router.get("/gaming/{session_id}/status")
async def game_status(session_id: str, registry: SessionGameRegistry = Depends(get_registry)):
    try:
        snapshot = registry.status(session_id)
    except GameNotFoundError:
        raise HTTPException(status_code=404, detail="No game for this session")
    return snapshot.model_dump(mode="json")


@router.get("/gaming/{session_id}/playlist")
async def playlist(session_id: str, registry: SessionGameRegistry = Depends(get_registry)):
    try:
        entries = registry.playlist(session_id)
    except GameNotFoundError:
        raise HTTPException(status_code=404, detail="No game for this session")
    return {"playlist": [e.model_dump(mode="json") for e in entries]}
