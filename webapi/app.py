"""
FastAPI application for the Blokus arena

REST endpoints create and inspect games; the WebSocket at
/ws/games/{game_id} carries player commands and server pushes.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from schemas.game_config import GameConfig
from schemas.game_state import ErrorResponse, GameCreateResponse, GameSnapshot, MatchHistoryResponse
from schemas.move import MoveRequest, MoveResponse, PlayerActionRequest, UseItemCardRequest
from schemas.state_update import StateUpdate, WireMessage
from utils.config import GameSettings
from webapi.game_manager import GameManager

logger = logging.getLogger(__name__)

game_manager = GameManager(GameSettings.from_env())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown: stop every game's timers on the way out."""
    logger.info("Starting Blokus arena API...")
    game_manager.settings.log_config(logger)
    yield
    logger.info("Shutting down Blokus arena API...")
    await game_manager.shutdown()


app = FastAPI(
    title="Blokus Arena API",
    description="Authoritative Blokus game server with REST and WebSocket support",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _snapshot_or_404(game_id: str) -> GameSnapshot:
    snapshot = game_manager.get_snapshot(game_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Game not found")
    return snapshot


# REST API Endpoints

@app.get("/")
async def root():
    return {
        "message": "Blokus Arena API",
        "version": "1.0.0",
        "endpoints": {
            "create_game": "POST /api/games",
            "get_game": "GET /api/games/{game_id}",
            "make_move": "POST /api/games/{game_id}/move",
            "websocket": "/ws/games/{game_id}?player_id=...",
        }
    }


@app.post("/api/games", response_model=GameCreateResponse)
async def create_game(config: GameConfig):
    """Create a new game."""
    try:
        session = game_manager.create_game(config)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return GameCreateResponse(
        game_id=session.game_id,
        game_state=_snapshot_or_404(session.game_id),
        message="Game created successfully"
    )


@app.get("/api/games/{game_id}", response_model=GameSnapshot)
async def get_game(game_id: str):
    return _snapshot_or_404(game_id)


@app.post("/api/games/{game_id}/start", response_model=GameSnapshot)
async def start_game(game_id: str):
    try:
        game_manager.start_game(game_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Game not found")
    return _snapshot_or_404(game_id)


@app.post("/api/games/{game_id}/move", response_model=MoveResponse)
async def make_move(game_id: str, move_request: MoveRequest):
    _snapshot_or_404(game_id)
    return game_manager.make_move(game_id, move_request)


@app.post("/api/games/{game_id}/settle", response_model=MoveResponse)
async def settle(game_id: str, request: PlayerActionRequest):
    _snapshot_or_404(game_id)
    return game_manager.settle(game_id, request.player_id)


@app.post("/api/games/{game_id}/items", response_model=MoveResponse)
async def use_item_card(game_id: str, request: UseItemCardRequest):
    _snapshot_or_404(game_id)
    return game_manager.use_item_card(game_id, request.player_id, request.card_index, request.target_id)


@app.post("/api/games/{game_id}/items/skip", response_model=MoveResponse)
async def skip_item_phase(game_id: str, request: PlayerActionRequest):
    _snapshot_or_404(game_id)
    return game_manager.skip_item_phase(game_id, request.player_id)


@app.post("/api/games/{game_id}/pause", response_model=MoveResponse)
async def pause_game(game_id: str):
    _snapshot_or_404(game_id)
    return game_manager.pause(game_id)


@app.post("/api/games/{game_id}/resume", response_model=MoveResponse)
async def resume_game(game_id: str):
    _snapshot_or_404(game_id)
    return game_manager.resume(game_id)


@app.get("/api/games/{game_id}/history", response_model=MatchHistoryResponse)
async def get_history(game_id: str):
    """Persisted record of a finished game."""
    record = game_manager.history.for_game(game_id)
    if record is None:
        raise HTTPException(status_code=404, detail="No finished game with this id")
    return MatchHistoryResponse(
        game_id=record.game_id,
        date=record.date,
        mode=record.mode,
        results=[vars(r) for r in record.results],
        winner_ids=record.winner_ids,
        move_count=len(record.moves),
        final_board=record.final_board,
    )


# WebSocket Endpoint

def _handle_command(game_id: str, message: WireMessage) -> Optional[MoveResponse]:
    """Run one client command; None for message types that need no response."""
    data: Dict[str, Any] = message.data
    if message.type == "game.move":
        return game_manager.make_move(game_id, MoveRequest(**data))
    if message.type == "game.settle":
        return game_manager.settle(game_id, PlayerActionRequest(**data).player_id)
    if message.type == "game.useItemCard":
        request = UseItemCardRequest(**data)
        return game_manager.use_item_card(game_id, request.player_id, request.card_index, request.target_id)
    if message.type == "game.skipItemPhase":
        return game_manager.skip_item_phase(game_id, PlayerActionRequest(**data).player_id)
    if message.type == "game.getState":
        snapshot = game_manager.get_snapshot(game_id)
        if snapshot is None:
            return MoveResponse(success=False, message="Game not found", error="GAME_NOT_FOUND")
        return MoveResponse(success=True, message="state", data=snapshot.model_dump())
    return MoveResponse(success=False, message=f"Unknown message type: {message.type}")


@app.websocket("/ws/games/{game_id}")
async def websocket_endpoint(websocket: WebSocket, game_id: str, player_id: Optional[str] = None):
    """WebSocket endpoint for real-time game updates."""
    await websocket.accept()

    if game_manager.get_session(game_id) is None:
        await websocket.send_text(StateUpdate(
            type="error",
            game_id=game_id,
            data={"error": "Game not found"}
        ).model_dump_json())
        await websocket.close()
        return

    game_manager.connect(game_id, websocket, player_id)
    try:
        await websocket.send_text(StateUpdate(
            type="game.state",
            game_id=game_id,
            data=game_manager.get_snapshot(game_id).model_dump()
        ).model_dump_json())

        while True:
            raw = await websocket.receive_text()
            try:
                message = WireMessage(**json.loads(raw))
                if message.type == "ping":
                    await websocket.send_text(json.dumps({"type": "pong"}))
                    continue
                response = _handle_command(game_id, message)
            except (ValueError, ValidationError) as e:
                logger.warning(f"Bad message in game {game_id}: {e}")
                await websocket.send_text(StateUpdate(
                    type="error",
                    game_id=game_id,
                    data={"error": str(e)}
                ).model_dump_json())
                continue

            await websocket.send_text(json.dumps({
                "type": "response",
                "request_id": message.request_id,
                "data": response.model_dump(mode="json"),
            }))
    except WebSocketDisconnect:
        logger.debug(f"Socket closed by {player_id or 'spectator'} in game {game_id}")
    finally:
        game_manager.disconnect(game_id, websocket, player_id)


# Error handlers

@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error="HTTP Error",
            message=str(exc.detail)
        ).model_dump()
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """Handle general exceptions."""
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="Internal Server Error",
            message="An unexpected error occurred"
        ).model_dump()
    )
