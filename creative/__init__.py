"""
Creative mode: special tiles, status effects and item cards.
"""

from .types import (
    CreativePlayerState, EffectResult, ItemCard, ItemCardType, SpecialTile,
    StatusEffect, StatusEffectType, TileEffect, TileType
)
from .tiles import generate_special_tiles, find_triggered_tiles, barrier_cells
from .effects import EffectEngine, tick_status_effects
from .items import ItemCardSystem, ItemPhase

__all__ = [
    "CreativePlayerState",
    "EffectResult",
    "ItemCard",
    "ItemCardType",
    "SpecialTile",
    "StatusEffect",
    "StatusEffectType",
    "TileEffect",
    "TileType",
    "generate_special_tiles",
    "find_triggered_tiles",
    "barrier_cells",
    "EffectEngine",
    "tick_status_effects",
    "ItemCardSystem",
    "ItemPhase"
]
