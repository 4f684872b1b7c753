"""
Game state schemas
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class PlayerSnapshot(BaseModel):
    """State of one seat."""
    player_id: str
    name: str
    color: str
    is_ai: bool = False
    score: int = Field(ge=0)
    used_pieces: List[int] = Field(default_factory=list, description="IDs of pieces placed on the board")
    removed_pieces: List[int] = Field(default_factory=list, description="IDs of pieces lost to effects")
    is_settled: bool = False
    is_current_turn: bool = False
    is_offline: bool = False


class SpecialTileModel(BaseModel):
    row: int
    col: int
    type: str
    used: bool = False


class StatusEffectModel(BaseModel):
    type: str
    remaining_turns: int
    fresh: bool = False


class ItemCardModel(BaseModel):
    id: str
    card_type: str
    name: str
    description: str = ""
    needs_target: bool = False


class CreativePlayerSnapshot(BaseModel):
    player_id: str
    color: str
    bonus_score: int = 0
    item_cards: List[ItemCardModel] = Field(default_factory=list)
    status_effects: List[StatusEffectModel] = Field(default_factory=list)


class ItemPhaseModel(BaseModel):
    player_id: str
    remaining: int
    duration: int


class CreativeSnapshot(BaseModel):
    """Creative-mode overlay: special tiles, per-player ledgers and the item phase."""
    special_tiles: List[SpecialTileModel] = Field(default_factory=list)
    players: Dict[str, CreativePlayerSnapshot] = Field(default_factory=dict)
    item_phase: Optional[ItemPhaseModel] = None


class GameSnapshot(BaseModel):
    """Complete authoritative state, sent on load and on reconnect."""
    game_id: str
    mode: str = "classic"
    phase: str
    paused: bool = False
    board: List[List[int]] = Field(description="NxN owner marks, 0 = empty")
    players: List[PlayerSnapshot]
    current_player_index: int = 0
    turn_count: int = 0
    time_left: int = 0
    time_limit: int = 60
    move_count: int = 0
    creative: Optional[CreativeSnapshot] = None

    class Config:
        json_schema_extra = {
            "example": {
                "game_id": "game_123",
                "mode": "classic",
                "phase": "playing",
                "board": [[0, 0, "..."], "..."],
                "players": [
                    {"player_id": "player-red", "name": "Alice", "color": "red", "score": 5,
                     "used_pieces": [12], "is_current_turn": True}
                ],
                "current_player_index": 0,
                "turn_count": 2,
                "time_left": 54,
                "time_limit": 60,
                "move_count": 1
            }
        }


class RankingEntry(BaseModel):
    player_id: str
    name: str
    color: str
    score: int
    rank: int


class GameCreateResponse(BaseModel):
    """Response when creating a new game."""
    game_id: str
    game_state: GameSnapshot
    message: str


class PlayerResultModel(BaseModel):
    player_id: str
    name: str
    color: str
    score: int
    rank: int
    pieces_used: int
    is_ai: bool


class MatchHistoryResponse(BaseModel):
    """Persisted result of a finished game."""
    game_id: str
    date: datetime
    mode: str
    results: List[PlayerResultModel]
    winner_ids: List[str]
    move_count: int
    final_board: List[List[int]]


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    message: str
    details: Optional[Dict[str, str]] = None
