"""
Item cards: drawing, the capped hand, the timed item phase and card resolution.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from engine.game import GameState
from engine.rng import RandomSource
from engine.scheduler import ActionResult, ErrorCode

from .types import (
    ITEM_CARD_DEFS,
    CreativePlayerState,
    EffectResult,
    ItemCard,
    ItemCardType,
    StatusEffect,
    StatusEffectType,
)

logger = logging.getLogger(__name__)

HAND_LIMIT = 3
ITEM_PHASE_SECONDS = 30


def roll_item_card(rng: RandomSource) -> ItemCard:
    """Draw a uniformly random card with a fresh instance id."""
    definition = rng.choice(ITEM_CARD_DEFS)
    return ItemCard(
        id=f"card_{rng.token(8)}",
        card_type=definition.card_type,
        name=definition.name,
        description=definition.description,
        needs_target=definition.needs_target,
    )


def add_item_card(cards: List[ItemCard], card: ItemCard, limit: int = HAND_LIMIT) -> List[ItemCard]:
    """Append ``card``; when the hand overflows the oldest cards are dropped."""
    updated = list(cards) + [card]
    if len(updated) > limit:
        updated = updated[len(updated) - limit:]
    return updated


def resolve_item_card(
    card_type: ItemCardType,
    target: Optional[CreativePlayerState],
    target_total: int = 0,
) -> EffectResult:
    """
    Consequences of playing a card. A steel target turns every targeted
    card into a no-op (``blocked``).

    Args:
        card_type: Card being played
        target: Target overlay, None for self-targeted cards
        target_total: Target's current total (for plunder)
    """
    result = EffectResult()
    if card_type == ItemCardType.STEEL:
        result.statuses.append(StatusEffect(StatusEffectType.STEEL, 2))
        return result

    if target is None:
        raise ValueError(f"{card_type.value} needs a target")
    if target.has_steel:
        result.blocked = True
        return result

    if card_type == ItemCardType.BLACKHOLE:
        result.target_undo_last_move = True
    elif card_type == ItemCardType.SHRINK:
        result.target_remove_piece = "largest"
    elif card_type == ItemCardType.CURSE:
        result.target_statuses.append(StatusEffect(StatusEffectType.HALF_SCORE, 1))
    elif card_type == ItemCardType.FREEZE:
        result.target_statuses.append(StatusEffect(StatusEffectType.SKIP_TURN, 1))
    elif card_type == ItemCardType.PRESSURE:
        result.target_statuses.append(StatusEffect(StatusEffectType.TIME_PRESSURE, 1))
    elif card_type == ItemCardType.PLUNDER:
        steal = min(3, max(0, target_total))
        result.target_score_delta = -steal
        result.score_delta = steal
    elif card_type == ItemCardType.BLAME:
        result.transfer_debuff = True
    else:
        raise KeyError(f"Unknown card type: {card_type}")
    return result


@dataclass
class ItemPhase:
    """Open item phase of one player's turn."""
    player_id: str
    remaining: int
    duration: int = ITEM_PHASE_SECONDS


class ItemCardSystem:
    """
    Owns the item phase and plays cards through the effect engine.

    The effect engine is injected so tile effects and cards share one
    application routine.
    """

    def __init__(self, effect_engine, phase_time: int = ITEM_PHASE_SECONDS):
        self.effects = effect_engine
        self.phase_time = phase_time
        self.phase: Optional[ItemPhase] = None

    # ------------------------------------------------------------------
    # Phase
    # ------------------------------------------------------------------

    def open_phase(self, player_id: str, overlay: CreativePlayerState) -> bool:
        """Open the phase when the player holds a card and is not being skipped."""
        if not overlay.item_cards or overlay.has_status(StatusEffectType.SKIP_TURN):
            return False
        self.phase = ItemPhase(player_id=player_id, remaining=self.phase_time, duration=self.phase_time)
        logger.info(f"Item phase opened for {player_id} ({self.phase_time}s, {len(overlay.item_cards)} cards)")
        return True

    def remaining(self) -> Optional[int]:
        return None if self.phase is None else self.phase.remaining

    def tick(self) -> int:
        """One second of the phase; the phase closes itself at zero."""
        if self.phase is None:
            return 0
        self.phase.remaining -= 1
        remaining = self.phase.remaining
        if remaining <= 0:
            self.close("timeout")
        return remaining

    def close(self, reason: str) -> None:
        if self.phase is not None:
            logger.info(f"Item phase closed for {self.phase.player_id} ({reason})")
        self.phase = None

    # ------------------------------------------------------------------
    # Cards
    # ------------------------------------------------------------------

    @staticmethod
    def valid_targets(state: GameState, user_id: str) -> List[str]:
        """Other players who have not settled."""
        return [p.player_id for p in state.players if p.player_id != user_id and not p.is_settled]

    def use_card(
        self,
        state: GameState,
        overlays: Dict[str, CreativePlayerState],
        user_index: int,
        card_index: int,
        target_id: Optional[str] = None,
        require_phase: bool = True,
    ) -> Tuple[GameState, ActionResult]:
        """
        Play a card from the user's hand.

        Args:
            state: Current game state
            overlays: Creative overlays by player id
            user_index: Seat of the player using the card
            card_index: Position of the card in the hand
            target_id: Target player for targeted cards
            require_phase: Human plays need an open item phase; AI plays do not

        Returns:
            New state and the ActionResult (the card is consumed on success,
            even when a steel target blocks it)
        """
        user = state.players[user_index]
        overlay = overlays[user.player_id]

        if require_phase and (self.phase is None or self.phase.player_id != user.player_id):
            return state, ActionResult.fail(ErrorCode.NO_ITEM_PHASE, "No item phase is open")
        if not 0 <= card_index < len(overlay.item_cards):
            return state, ActionResult.fail(ErrorCode.INVALID_CARD, f"No card at index {card_index}")

        card = overlay.item_cards[card_index]
        target = None
        if card.needs_target:
            if target_id not in self.valid_targets(state, user.player_id):
                return state, ActionResult.fail(ErrorCode.INVALID_TARGET, f"Invalid target: {target_id}")
            target = overlays[target_id]
        else:
            target_id = None

        target_total = 0
        if target_id is not None:
            target_total = self.effects.total_score(state, overlays, target_id)
        result = resolve_item_card(card.card_type, target, target_total)

        overlay.item_cards = overlay.item_cards[:card_index] + overlay.item_cards[card_index + 1:]
        new_state, summary = self.effects.apply_effect_result(
            state, overlays, user.player_id, result, target_id=target_id
        )
        summary.update({"card_type": card.card_type.value, "card_name": card.name, "card_id": card.id})
        if result.blocked:
            logger.info(f"{card.name} from {user.name} was blocked by steel")
        return new_state, ActionResult.ok(f"{user.name} used {card.name}", **summary)
