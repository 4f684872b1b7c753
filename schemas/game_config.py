"""
Pydantic schemas for game configuration.
"""

from typing import List, Optional
from pydantic import BaseModel, Field
from enum import Enum


class PlayerType(str, Enum):
    """Types of players in a game."""
    HUMAN = "human"
    AI = "ai"


class GameMode(str, Enum):
    CLASSIC = "classic"
    CREATIVE = "creative"


class PlayerConfig(BaseModel):
    """One seat; colors are assigned in seat order (red, yellow, blue, green)."""
    name: str = Field(..., min_length=1, max_length=32)
    type: PlayerType = PlayerType.HUMAN
    difficulty: str = Field(default="medium", description="Kept for display; the AI is deterministic")
    weights: Optional[dict] = Field(default=None, description="Heuristic weight overrides for AI seats")


class GameConfig(BaseModel):
    """Configuration for a new game."""
    players: List[PlayerConfig] = Field(..., min_length=2, max_length=4)
    mode: GameMode = GameMode.CLASSIC
    game_id: Optional[str] = None
    time_limit: int = Field(default=60, ge=5, le=600, description="Seconds per turn")
    first_player: Optional[int] = Field(default=None, ge=0, le=3, description="Seat to move first; random when omitted")
    seed: Optional[int] = None
    ai_proxy: bool = Field(default=True, description="Let the AI play for disconnected humans")
    auto_start: bool = Field(default=True, description="Whether to start the game automatically")

    class Config:
        json_schema_extra = {
            "example": {
                "players": [
                    {"name": "Alice", "type": "human"},
                    {"name": "Bot 1", "type": "ai"},
                    {"name": "Bot 2", "type": "ai"},
                    {"name": "Bot 3", "type": "ai"}
                ],
                "mode": "creative",
                "time_limit": 60,
                "seed": 42,
                "auto_start": True
            }
        }
