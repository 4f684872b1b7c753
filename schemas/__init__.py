"""
Pydantic schemas for the Blokus web API.
"""

from .game_config import GameConfig, GameMode, PlayerConfig, PlayerType
from .move import CellChangeModel, MoveRequest, MoveResponse, PlayerActionRequest, UseItemCardRequest
from .game_state import (
    CreativePlayerSnapshot, CreativeSnapshot, ErrorResponse, GameCreateResponse,
    GameSnapshot, ItemCardModel, ItemPhaseModel, MatchHistoryResponse,
    PlayerResultModel, PlayerSnapshot, RankingEntry, SpecialTileModel, StatusEffectModel
)
from .state_update import (
    EVENT_NAMES, FinishedPayload, ItemPhasePayload, ItemUsedPayload, MovePayload,
    PlayerSettledPayload, StateUpdate, TimeUpdatePayload, TurnChangedPayload, WireMessage
)

__all__ = [
    "GameConfig",
    "GameMode",
    "PlayerConfig",
    "PlayerType",
    "CellChangeModel",
    "MoveRequest",
    "MoveResponse",
    "PlayerActionRequest",
    "UseItemCardRequest",
    "CreativePlayerSnapshot",
    "CreativeSnapshot",
    "ErrorResponse",
    "GameCreateResponse",
    "GameSnapshot",
    "ItemCardModel",
    "ItemPhaseModel",
    "MatchHistoryResponse",
    "PlayerResultModel",
    "PlayerSnapshot",
    "RankingEntry",
    "SpecialTileModel",
    "StatusEffectModel",
    "EVENT_NAMES",
    "FinishedPayload",
    "ItemPhasePayload",
    "ItemUsedPayload",
    "MovePayload",
    "PlayerSettledPayload",
    "StateUpdate",
    "TimeUpdatePayload",
    "TurnChangedPayload",
    "WireMessage"
]
