"""
Creative-mode data model: special tiles, tile effects, status effects,
item cards and the per-player overlay.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from engine.board import PlayerColor


class TileType(str, Enum):
    GOLD = "gold"
    PURPLE = "purple"
    RED = "red"
    BARRIER = "barrier"


@dataclass
class SpecialTile:
    """A board cell with a one-shot effect (or a permanent barrier)."""
    row: int
    col: int
    type: TileType
    used: bool = False

    @property
    def cell(self) -> Tuple[int, int]:
        return (self.row, self.col)

    def to_dict(self) -> Dict[str, Any]:
        return {"row": self.row, "col": self.col, "type": self.type.value, "used": self.used}


@dataclass(frozen=True)
class TileEffect:
    id: str
    name: str
    description: str
    type: TileType


class StatusEffectType(str, Enum):
    NEXT_DOUBLE = "next_double"
    SCORE_SHIELD = "score_shield"
    SKIP_TURN = "skip_turn"
    TIME_PRESSURE = "time_pressure"
    HALF_SCORE = "half_score"
    BIG_PIECE_BAN = "big_piece_ban"
    STEEL = "steel"
    PURPLE_UPGRADE = "purple_upgrade"


# Statuses that item_blame may hand over, in lookup order
DEBUFF_TYPES = (
    StatusEffectType.SKIP_TURN,
    StatusEffectType.TIME_PRESSURE,
    StatusEffectType.HALF_SCORE,
    StatusEffectType.BIG_PIECE_BAN,
)


@dataclass
class StatusEffect:
    """
    A timed buff or debuff.

    ``fresh`` marks a status granted during the owner's own turn; the tick
    at the end of that turn only clears the flag so the status still covers
    the owner's next turn.
    """
    type: StatusEffectType
    remaining_turns: int
    fresh: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "remaining_turns": self.remaining_turns, "fresh": self.fresh}


class ItemCardType(str, Enum):
    BLACKHOLE = "item_blackhole"
    SHRINK = "item_shrink"
    CURSE = "item_curse"
    STEEL = "item_steel"
    FREEZE = "item_freeze"
    PRESSURE = "item_pressure"
    PLUNDER = "item_plunder"
    BLAME = "item_blame"


@dataclass(frozen=True)
class ItemCardDef:
    card_type: ItemCardType
    name: str
    description: str
    needs_target: bool


@dataclass(frozen=True)
class ItemCard:
    """One card instance in a player's hand."""
    id: str
    card_type: ItemCardType
    name: str
    description: str
    needs_target: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "card_type": self.card_type.value,
            "name": self.name,
            "description": self.description,
            "needs_target": self.needs_target,
        }


@dataclass
class EffectResult:
    """
    Consequences of a tile effect or item card, applied by
    ``EffectEngine.apply_effect_result`` in a fixed order.

    Attributes:
        score_delta: Change to the acting player's total
        target_score_delta: Change to the target's total (cards only)
        statuses: Statuses granted to the acting player
        target_statuses: Statuses granted to the target
        grant_item_card: Draw one card for the acting player
        remove_piece: ``largest`` or ``random`` unused piece of the acting player
        target_remove_piece: ``largest`` unused piece of the target
        undo_last_move: Clear the acting player's last placement
        target_undo_last_move: Clear the target's last placement
        global_bonus: +1 per piece the acting player has placed
        swap_with_highest: Swap totals with the highest other scorer
        set_all_to_average: Every total becomes the floored average
        territory_expand: Grant a free single cell
        transfer_debuff: Move the acting player's first debuff to the target
        extra_turn: Keep the turn after this placement
        blocked: The effect was neutralised by a shield
    """
    score_delta: int = 0
    target_score_delta: int = 0
    statuses: List[StatusEffect] = field(default_factory=list)
    target_statuses: List[StatusEffect] = field(default_factory=list)
    grant_item_card: bool = False
    remove_piece: Optional[str] = None
    target_remove_piece: Optional[str] = None
    undo_last_move: bool = False
    target_undo_last_move: bool = False
    global_bonus: bool = False
    swap_with_highest: bool = False
    set_all_to_average: bool = False
    territory_expand: bool = False
    transfer_debuff: bool = False
    extra_turn: bool = False
    blocked: bool = False


@dataclass
class CreativePlayerState:
    """Per-player overlay: held cards, active statuses and the bonus ledger."""
    player_id: str
    color: PlayerColor
    item_cards: List[ItemCard] = field(default_factory=list)
    status_effects: List[StatusEffect] = field(default_factory=list)
    bonus_score: int = 0

    def has_status(self, status_type: StatusEffectType) -> bool:
        return any(s.type == status_type and s.remaining_turns > 0 for s in self.status_effects)

    @property
    def has_steel(self) -> bool:
        return self.has_status(StatusEffectType.STEEL)

    @property
    def is_shielded(self) -> bool:
        return self.has_status(StatusEffectType.SCORE_SHIELD) or self.has_steel

    def first_debuff(self) -> Optional[StatusEffect]:
        for status in self.status_effects:
            if status.type in DEBUFF_TYPES and status.remaining_turns > 0:
                return status
        return None

    def has_debuff(self) -> bool:
        return self.first_debuff() is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "player_id": self.player_id,
            "color": self.color.name.lower(),
            "item_cards": [c.to_dict() for c in self.item_cards],
            "status_effects": [s.to_dict() for s in self.status_effects],
            "bonus_score": self.bonus_score,
        }


def _effect(effect_id: str, name: str, description: str, tile_type: TileType) -> TileEffect:
    return TileEffect(id=effect_id, name=name, description=description, type=tile_type)


GOLD_EFFECTS: List[TileEffect] = [
    _effect("gold_plus3", "+3", "Gain 3 points", TileType.GOLD),
    _effect("gold_plus6", "+6", "Gain 6 points", TileType.GOLD),
    _effect("gold_plus10", "+10", "Gain 10 points", TileType.GOLD),
    _effect("gold_next_double", "x2", "Next turn's placement scores double", TileType.GOLD),
    _effect("gold_free_card", "Item card", "Draw a free item card", TileType.GOLD),
    _effect("gold_extra_turn", "Extra turn", "Move again right after this turn", TileType.GOLD),
    _effect("gold_score_shield", "Score shield", "Score cannot drop for 2 turns", TileType.GOLD),
    _effect("gold_global_bonus", "Global bonus", "+1 point per piece already placed", TileType.GOLD),
    _effect("gold_purple_upgrade", "Insight", "Purple tiles roll gold effects for 2 turns", TileType.GOLD),
    _effect("gold_territory", "Territory", "Claim a free 1x1 cell next to your pieces", TileType.GOLD),
]

PURPLE_EFFECTS: List[TileEffect] = [
    _effect("purple_plus5", "+5", "Gain 5 points", TileType.PURPLE),
    _effect("purple_plus2", "+2", "Gain 2 points", TileType.PURPLE),
    _effect("purple_minus3", "-3", "Lose 3 points", TileType.PURPLE),
    _effect("purple_minus1", "-1", "Lose 1 point", TileType.PURPLE),
    _effect("purple_minus10", "-10", "Lose 10 points", TileType.PURPLE),
    _effect("purple_next_double", "x2", "Next turn's placement scores double", TileType.PURPLE),
    _effect("purple_skip", "Skip", "Your next turn is skipped", TileType.PURPLE),
    _effect("purple_free_card", "Item card", "Draw an item card", TileType.PURPLE),
    _effect("purple_time5s", "5 seconds", "Your next turn lasts 5 seconds", TileType.PURPLE),
    _effect("purple_nothing", "Nothing", "Nothing happens", TileType.PURPLE),
    _effect("purple_score_swap", "Swap", "Swap scores with the highest scorer", TileType.PURPLE),
    _effect("purple_score_average", "Average", "Every score becomes the average", TileType.PURPLE),
    _effect("purple_remove_piece", "Lost piece", "A random unused piece is removed", TileType.PURPLE),
]

RED_EFFECTS: List[TileEffect] = [
    _effect("red_minus3", "-3 + card", "Lose 3 points, draw an item card", TileType.RED),
    _effect("red_minus5", "-5 + card", "Lose 5 points, draw an item card", TileType.RED),
    _effect("red_minus10", "-10 + card", "Lose 10 points, draw an item card", TileType.RED),
    _effect("red_skip", "Skip + card", "Your next turn is skipped, draw an item card", TileType.RED),
    _effect("red_time5s", "5 seconds + card", "Your next turn lasts 5 seconds, draw an item card", TileType.RED),
    _effect("red_remove_piece", "Lost piece + card", "Your largest unused piece is removed, draw an item card", TileType.RED),
    _effect("red_half_score", "x0.5 + card", "Next turn's placement scores half, draw an item card", TileType.RED),
    _effect("red_undo_last", "Recall + card", "Your previous piece is cleared, draw an item card", TileType.RED),
    _effect("red_big_piece_ban", "Ban + card", "No pieces of 4+ cells for 2 turns, draw an item card", TileType.RED),
    _effect("red_total_08", "x0.8 + card", "Total score x0.8, draw an item card", TileType.RED),
]

EFFECT_TABLES: Dict[TileType, List[TileEffect]] = {
    TileType.GOLD: GOLD_EFFECTS,
    TileType.PURPLE: PURPLE_EFFECTS,
    TileType.RED: RED_EFFECTS,
}

EFFECTS_BY_ID: Dict[str, TileEffect] = {
    effect.id: effect for table in EFFECT_TABLES.values() for effect in table
}

ITEM_CARD_DEFS: List[ItemCardDef] = [
    ItemCardDef(ItemCardType.BLACKHOLE, "Black hole", "Clear the target's last placed piece", True),
    ItemCardDef(ItemCardType.SHRINK, "Shrink", "Remove the target's largest unused piece", True),
    ItemCardDef(ItemCardType.CURSE, "Curse", "Target's next placement scores half", True),
    ItemCardDef(ItemCardType.STEEL, "Steel", "Immune to negative effects and cards for 2 turns", False),
    ItemCardDef(ItemCardType.FREEZE, "Freeze", "Target skips their next turn", True),
    ItemCardDef(ItemCardType.PRESSURE, "Pressure", "Target's next turn lasts 5 seconds", True),
    ItemCardDef(ItemCardType.PLUNDER, "Plunder", "Steal 3 points from the target", True),
    ItemCardDef(ItemCardType.BLAME, "Blame", "Pass one of your debuffs to the target", True),
]

ITEM_CARD_DEFS_BY_TYPE: Dict[ItemCardType, ItemCardDef] = {d.card_type: d for d in ITEM_CARD_DEFS}
