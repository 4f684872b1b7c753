"""
Item-card decisions for AI seats.

The agent scores every card in hand with a fixed table and plays the best
one when its score is positive. No randomness: the same hand and scores
always give the same decision.
"""

from typing import Dict, List, Optional, Tuple

from creative.types import CreativePlayerState, ItemCardType
from engine.game import PlayerState
from engine.pieces import PieceGenerator

Decision = Tuple[int, Optional[str]]


class ItemCardAgent:
    """Scores a hand of item cards against the current standings."""

    def __init__(self, behind_margin: int = 5):
        self.behind_margin = behind_margin

    def decide(
        self,
        me: PlayerState,
        overlay: CreativePlayerState,
        players: List[PlayerState],
        overlays: Dict[str, CreativePlayerState],
        unused_red_tiles: int = 0,
    ) -> Optional[Decision]:
        """
        Pick a card to play.

        Args:
            me: The AI player's seat
            overlay: The AI player's creative state
            players: All seats (scores are totals)
            overlays: Creative state of every player
            unused_red_tiles: Red tiles still on the board

        Returns:
            (card index, target id or None), or None to keep the hand
        """
        if not overlay.item_cards:
            return None
        opponents = [p for p in players if p.player_id != me.player_id and not p.is_settled]
        if not opponents:
            return None

        best: Optional[Decision] = None
        best_score = 0.0
        for index, card in enumerate(overlay.item_cards):
            score, target_id = self._score_card(card.card_type, me, overlay, opponents, overlays, unused_red_tiles)
            if score > best_score:
                best_score = score
                best = (index, target_id)
        return best

    def _score_card(
        self,
        card_type: ItemCardType,
        me: PlayerState,
        overlay: CreativePlayerState,
        opponents: List[PlayerState],
        overlays: Dict[str, CreativePlayerState],
        unused_red_tiles: int,
    ) -> Tuple[float, Optional[str]]:
        debuffed = overlay.has_debuff()
        top = self._top_scorer(opponents)
        behind = top.score - me.score > self.behind_margin
        unshielded = [p for p in opponents if not overlays[p.player_id].has_steel]
        top_unshielded = self._top_scorer(unshielded) if unshielded else None

        if card_type == ItemCardType.STEEL:
            if overlay.has_steel:
                return -1, None
            return 10 + 15 * unused_red_tiles + (20 if debuffed else 0), None

        if card_type == ItemCardType.BLAME:
            if not debuffed:
                return -1, None
            return 35, top.player_id

        if card_type == ItemCardType.PLUNDER:
            positive = [p for p in opponents if p.score > 0]
            if not positive:
                return -1, None
            closest = min(positive, key=lambda p: abs(p.score - me.score))
            if overlays[closest.player_id].has_steel:
                return -1, None
            steal = min(3, closest.score)
            return 2 * steal + 5 + (10 if behind else 0), closest.player_id

        if card_type in (ItemCardType.FREEZE, ItemCardType.CURSE, ItemCardType.BLACKHOLE, ItemCardType.PRESSURE):
            if top_unshielded is None:
                return -1, None
            base = {
                ItemCardType.FREEZE: 25,
                ItemCardType.CURSE: 20,
                ItemCardType.BLACKHOLE: 22,
                ItemCardType.PRESSURE: 15,
            }[card_type]
            if card_type == ItemCardType.FREEZE and behind:
                base += 10
            return base, top_unshielded.player_id

        if card_type == ItemCardType.SHRINK:
            best_target = None
            best_count = 0
            for player in unshielded:
                count = self._large_piece_count(player)
                if count > best_count:
                    best_count = count
                    best_target = player
            if best_target is not None:
                return 15 + 2 * best_count, best_target.player_id
            if top_unshielded is None:
                return -1, None
            return 5, top_unshielded.player_id

        return -1, None

    @staticmethod
    def _top_scorer(players: List[PlayerState]) -> PlayerState:
        top = players[0]
        for player in players[1:]:
            if player.score > top.score:
                top = player
        return top

    @staticmethod
    def _large_piece_count(player: PlayerState) -> int:
        return sum(
            1 for piece_id in player.available_piece_ids()
            if PieceGenerator.get_piece_by_id(piece_id).is_large
        )
