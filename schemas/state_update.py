"""
Pydantic schemas for WebSocket traffic: the message envelope and the
payloads of server-pushed game events.
"""

import time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .game_state import CreativeSnapshot, GameSnapshot, RankingEntry
from .move import CellChangeModel


# Scheduler event type -> wire event name
EVENT_NAMES = {
    "game_started": "game.started",
    "turn_changed": "game.turnChanged",
    "time_update": "game.timeUpdate",
    "move": "game.move",
    "player_settled": "game.playerSettled",
    "turn_skipped": "game.turnSkipped",
    "finished": "game.finished",
    "item_used": "game.itemUsed",
    "item_phase": "game.itemPhase",
    "paused": "game.paused",
    "resumed": "game.resumed",
    "presence": "game.presence",
}


class WireMessage(BaseModel):
    """Envelope of every WebSocket message, in both directions."""
    type: str = Field(description="Event name, e.g. 'game.move' or 'response'")
    request_id: Optional[str] = Field(default=None, description="Correlation id of a request and its response")
    data: Dict[str, Any] = Field(default_factory=dict)


class StateUpdate(BaseModel):
    """Server push for one game."""
    type: str = Field(description="Wire event name: 'game.state', 'game.move', 'error', ...")
    game_id: str
    data: Dict[str, Any]
    timestamp: float = Field(default_factory=time.time, description="Unix timestamp of the update")

    class Config:
        json_schema_extra = {
            "example": {
                "type": "game.timeUpdate",
                "game_id": "game_123",
                "data": {"player_id": "player-red", "time_left": 42, "turn_count": 3},
                "timestamp": 1640995200.0
            }
        }


class MovePayload(BaseModel):
    """A landed placement: the cell delta plus authoritative scores and pieces."""
    player_id: str
    color: str
    piece_id: int
    orientation: int
    anchor_row: int
    anchor_col: int
    move_number: int
    turn_count: int
    board_changes: List[CellChangeModel]
    scores: Dict[str, int]
    used_pieces: Dict[str, List[int]] = Field(default_factory=dict)
    removed_pieces: Dict[str, List[int]] = Field(default_factory=dict)
    settled: List[str] = Field(default_factory=list)
    effects: List[Dict[str, Any]] = Field(default_factory=list)
    extra_turn: bool = False
    board: Optional[List[List[int]]] = Field(
        default=None,
        description="Full board, sent when effects changed cells outside the placed piece"
    )
    creative: Optional[CreativeSnapshot] = None


class TurnChangedPayload(BaseModel):
    player_id: str
    current_player_index: int
    turn_count: int
    time_left: int


class TimeUpdatePayload(BaseModel):
    player_id: str
    time_left: int
    turn_count: int


class PlayerSettledPayload(BaseModel):
    player_id: str
    reason: str
    forced: bool = False
    score: int = 0


class FinishedPayload(BaseModel):
    rankings: List[RankingEntry]
    winners: List[str]
    snapshot: Optional[GameSnapshot] = None


class ItemPhasePayload(BaseModel):
    player_id: str
    active: bool
    remaining: int
    reason: str


class ItemUsedPayload(BaseModel):
    """A played card; ``snapshot`` carries the resulting authoritative state."""
    player_id: str
    card_type: str
    card_name: str
    target_id: Optional[str] = None
    blocked: bool = False
    snapshot: Optional[GameSnapshot] = None
