"""
Pydantic schemas for player commands and their replies.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class CellChangeModel(BaseModel):
    """Absolute value written to one cell (0 clears it)."""
    row: int = Field(..., ge=0)
    col: int = Field(..., ge=0)
    color: int = Field(..., ge=0, le=4)


class MoveRequest(BaseModel):
    """Request to place a piece."""
    player_id: str
    piece_id: int = Field(..., ge=1, le=21, description="ID of the piece to place")
    orientation: int = Field(..., ge=0, description="Orientation index of the piece")
    anchor_row: int = Field(..., ge=0, le=19, description="Row position of the anchor")
    anchor_col: int = Field(..., ge=0, le=19, description="Column position of the anchor")

    class Config:
        json_schema_extra = {
            "example": {
                "player_id": "player-red",
                "piece_id": 1,
                "orientation": 0,
                "anchor_row": 0,
                "anchor_col": 0
            }
        }


class PlayerActionRequest(BaseModel):
    """Settle, skip the item phase or pause, on behalf of a player."""
    player_id: str


class UseItemCardRequest(BaseModel):
    """Play a card from the hand."""
    player_id: str
    card_index: int = Field(..., ge=0)
    target_id: Optional[str] = None


class MoveResponse(BaseModel):
    """Reply to any player command. Rule violations carry an error code."""
    success: bool
    message: str = ""
    error: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        json_schema_extra = {
            "example": {
                "success": False,
                "message": "Not your turn",
                "error": "NOT_YOUR_TURN",
                "data": {}
            }
        }
