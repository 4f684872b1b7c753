"""
Effect engine for creative mode.

Rolls tile effects, resolves them into ``EffectResult`` objects and applies
results (from tiles or item cards) to the game state and the per-player
overlays. All randomness goes through the injected ``RandomSource``.
"""

import logging
from dataclasses import replace
from typing import AbstractSet, Any, Dict, List, Optional, Tuple

from engine.board import Board, PlayerColor
from engine.game import GameState, place_free_cell, recompute_scores, remove_piece, undo_last_move
from engine.pieces import PieceGenerator
from engine.rng import RandomSource
from engine.scoring import ScoringEngine

from .items import HAND_LIMIT, add_item_card, roll_item_card
from .types import (
    EFFECT_TABLES,
    EffectResult,
    CreativePlayerState,
    StatusEffect,
    StatusEffectType,
    TileEffect,
    TileType,
)

logger = logging.getLogger(__name__)

Cell = Tuple[int, int]

_SCORE_DELTAS = {
    "gold_plus3": 3,
    "gold_plus6": 6,
    "gold_plus10": 10,
    "purple_plus5": 5,
    "purple_plus2": 2,
    "purple_minus3": -3,
    "purple_minus1": -1,
    "purple_minus10": -10,
    "red_minus3": -3,
    "red_minus5": -5,
    "red_minus10": -10,
}

# effect id -> (status, turns, negative)
_STATUS_GRANTS = {
    "gold_next_double": (StatusEffectType.NEXT_DOUBLE, 1, False),
    "gold_score_shield": (StatusEffectType.SCORE_SHIELD, 2, False),
    "gold_purple_upgrade": (StatusEffectType.PURPLE_UPGRADE, 2, False),
    "purple_next_double": (StatusEffectType.NEXT_DOUBLE, 1, False),
    "purple_skip": (StatusEffectType.SKIP_TURN, 1, True),
    "purple_time5s": (StatusEffectType.TIME_PRESSURE, 1, True),
    "red_skip": (StatusEffectType.SKIP_TURN, 1, True),
    "red_time5s": (StatusEffectType.TIME_PRESSURE, 1, True),
    "red_half_score": (StatusEffectType.HALF_SCORE, 1, True),
    "red_big_piece_ban": (StatusEffectType.BIG_PIECE_BAN, 2, True),
}


def tick_status_effects(effects: List[StatusEffect]) -> List[StatusEffect]:
    """
    End-of-turn tick for one player's statuses.

    Fresh statuses only lose the flag; the rest lose one turn and are
    dropped at zero.
    """
    ticked = []
    for status in effects:
        if status.fresh:
            status = replace(status, fresh=False)
        else:
            status = replace(status, remaining_turns=status.remaining_turns - 1)
        if status.remaining_turns > 0:
            ticked.append(status)
    return ticked


def find_territory_expansion_cell(
    board: Board,
    color: PlayerColor,
    rng: RandomSource,
    blocked: Optional[AbstractSet[Cell]] = None,
) -> Optional[Cell]:
    """
    Random empty cell that touches ``color`` diagonally but not by an edge.

    Returns:
        (row, col) or None when no such cell exists
    """
    grid = board.grid
    size = board.size
    own = color.value
    blocked = blocked or frozenset()
    candidates = []
    for r in range(size):
        for c in range(size):
            if grid[r, c] != 0 or (r, c) in blocked:
                continue
            has_diagonal = any(
                0 <= r + dr < size and 0 <= c + dc < size and grid[r + dr, c + dc] == own
                for dr, dc in ((-1, -1), (-1, 1), (1, -1), (1, 1))
            )
            if not has_diagonal:
                continue
            has_edge = any(
                0 <= r + dr < size and 0 <= c + dc < size and grid[r + dr, c + dc] == own
                for dr, dc in ((-1, 0), (1, 0), (0, -1), (0, 1))
            )
            if not has_edge:
                candidates.append((r, c))
    if not candidates:
        return None
    return rng.choice(candidates)


class EffectEngine:
    """Rolls, resolves and applies creative-mode effects."""

    def __init__(self, rng: RandomSource, hand_limit: int = HAND_LIMIT):
        self.rng = rng
        self.hand_limit = hand_limit

    def roll_effect(self, tile_type: TileType, purple_upgrade: bool = False) -> TileEffect:
        """Uniform pick from the tile's table; upgraded purple tiles use the gold table."""
        if tile_type == TileType.BARRIER:
            raise ValueError("Barrier tiles have no effect table")
        if tile_type == TileType.PURPLE and purple_upgrade:
            tile_type = TileType.GOLD
        return self.rng.choice(EFFECT_TABLES[tile_type])

    def resolve_effect(self, effect_id: str, overlay: CreativePlayerState, total_score: int) -> EffectResult:
        """
        Turn an effect id into its consequences for the triggering player.

        Shields are taken into account here: score_shield and steel zero
        negative score deltas, steel also blocks negative statuses, piece
        removal and undo.

        Args:
            effect_id: Id from one of the effect tables
            overlay: Triggering player's creative state
            total_score: Triggering player's current total

        Returns:
            EffectResult ready for ``apply_effect_result``
        """
        result = EffectResult()
        shielded = overlay.is_shielded
        steel = overlay.has_steel

        if effect_id in _SCORE_DELTAS:
            delta = _SCORE_DELTAS[effect_id]
            if delta < 0 and shielded:
                result.blocked = True
            else:
                result.score_delta = delta
        elif effect_id in _STATUS_GRANTS:
            status_type, turns, negative = _STATUS_GRANTS[effect_id]
            if negative and steel:
                result.blocked = True
            else:
                result.statuses.append(StatusEffect(status_type, turns, fresh=True))
        elif effect_id in ("gold_free_card", "purple_free_card"):
            result.grant_item_card = True
        elif effect_id == "gold_extra_turn":
            result.extra_turn = True
        elif effect_id == "gold_global_bonus":
            result.global_bonus = True
        elif effect_id == "gold_territory":
            result.territory_expand = True
        elif effect_id == "purple_score_swap":
            result.swap_with_highest = True
        elif effect_id == "purple_score_average":
            result.set_all_to_average = True
        elif effect_id == "purple_remove_piece":
            if steel:
                result.blocked = True
            else:
                result.remove_piece = "random"
        elif effect_id == "red_remove_piece":
            if steel:
                result.blocked = True
            else:
                result.remove_piece = "largest"
        elif effect_id == "red_undo_last":
            if steel:
                result.blocked = True
            else:
                result.undo_last_move = True
        elif effect_id == "red_total_08":
            if shielded:
                result.blocked = True
            else:
                result.score_delta = -(max(0, total_score) // 5)
        elif effect_id != "purple_nothing":
            raise KeyError(f"Unknown effect id: {effect_id}")

        if effect_id.startswith("red_"):
            result.grant_item_card = True
        return result

    def apply_effect_result(
        self,
        state: GameState,
        overlays: Dict[str, CreativePlayerState],
        actor_id: str,
        result: EffectResult,
        target_id: Optional[str] = None,
        exclude_move: Optional[int] = None,
        blocked_cells: Optional[AbstractSet[Cell]] = None,
    ) -> Tuple[GameState, Dict[str, Any]]:
        """
        Apply an effect result.

        Order: score deltas (including the global bonus), statuses, card
        grant, piece removal and undo, score redistribution, territory.
        ``overlays`` are updated in place; the game state is replaced.

        Args:
            state: Current game state
            overlays: Creative overlays by player id
            actor_id: Player who triggered the tile or played the card
            result: Resolved effect
            target_id: Card target, if any
            exclude_move: Move number that an undo must not clear (the
                placement that triggered the effect)
            blocked_cells: Cells a territory cell may not use

        Returns:
            New state and a summary of what changed
        """
        actor_index = state.player_index(actor_id)
        if actor_index is None:
            raise KeyError(f"Unknown player {actor_id}")
        target_index = state.player_index(target_id) if target_id else None
        actor = overlays[actor_id]
        summary: Dict[str, Any] = {"player_id": actor_id, "target_id": target_id, "blocked": result.blocked}

        # 1. score deltas
        score_delta = result.score_delta
        if result.global_bonus:
            score_delta += len(state.players[actor_index].used_pieces)
        if score_delta:
            self._add_total(state, overlays, actor_id, score_delta)
            summary["score_delta"] = score_delta
        if result.target_score_delta and target_index is not None:
            self._add_total(state, overlays, target_id, result.target_score_delta)
            summary["target_score_delta"] = result.target_score_delta

        # 2. statuses
        if result.statuses:
            actor.status_effects.extend(result.statuses)
            summary["statuses"] = [s.type.value for s in result.statuses]
        if target_index is not None:
            target = overlays[target_id]
            if result.target_statuses:
                target.status_effects.extend(result.target_statuses)
                summary["target_statuses"] = [s.type.value for s in result.target_statuses]
            if result.transfer_debuff:
                debuff = actor.first_debuff()
                if debuff is not None:
                    actor.status_effects.remove(debuff)
                    target.status_effects.append(replace(debuff, fresh=False))
                    summary["transferred"] = debuff.type.value

        # 3. item card
        if result.grant_item_card:
            card = roll_item_card(self.rng)
            actor.item_cards = add_item_card(actor.item_cards, card, self.hand_limit)
            summary["card_granted"] = card.card_type.value

        # 4. piece removal and undo
        if result.remove_piece:
            piece_id = self._pick_piece(state, actor_index, result.remove_piece)
            if piece_id is not None:
                state = remove_piece(state, actor_index, piece_id)
                summary["removed_piece"] = piece_id
        if result.target_remove_piece and target_index is not None:
            piece_id = self._pick_piece(state, target_index, result.target_remove_piece)
            if piece_id is not None:
                state = remove_piece(state, target_index, piece_id)
                summary["target_removed_piece"] = piece_id
        if result.undo_last_move:
            state, record = undo_last_move(state, actor_index, exclude_move=exclude_move)
            if record is not None:
                summary["undone_move"] = record.undoes
        if result.target_undo_last_move and target_index is not None:
            state, record = undo_last_move(state, target_index)
            if record is not None:
                summary["target_undone_move"] = record.undoes
        self.normalize_ledgers(state, overlays)

        # 5. redistribution
        if result.swap_with_highest:
            swapped_with = self._swap_with_highest(state, overlays, actor_id)
            if swapped_with:
                summary["swapped_with"] = swapped_with
        if result.set_all_to_average:
            summary["average"] = self._set_all_to_average(state, overlays)

        # 6. territory
        if result.territory_expand:
            cell = find_territory_expansion_cell(
                state.board, state.players[actor_index].color, self.rng, blocked_cells
            )
            if cell is not None:
                state, _ = place_free_cell(state, actor_index, cell[0], cell[1])
                summary["territory_cell"] = list(cell)

        if result.extra_turn:
            summary["extra_turn"] = True

        state = state.copy()
        recompute_scores(state, {pid: o.bonus_score for pid, o in overlays.items()})
        logger.debug(f"Applied effect for {actor_id}: {summary}")
        return state, summary

    # ------------------------------------------------------------------
    # Ledger helpers: every total change goes through ScoringEngine
    # ------------------------------------------------------------------

    @staticmethod
    def base_score(state: GameState, player_id: str) -> int:
        player = state.player_by_id(player_id)
        return ScoringEngine.base_score(state.board, player.color)

    def total_score(self, state: GameState, overlays: Dict[str, CreativePlayerState], player_id: str) -> int:
        return self.base_score(state, player_id) + overlays[player_id].bonus_score

    def _add_total(self, state: GameState, overlays: Dict[str, CreativePlayerState], player_id: str, delta: int) -> None:
        overlay = overlays[player_id]
        overlay.bonus_score = ScoringEngine.adjust_bonus(self.base_score(state, player_id), overlay.bonus_score, delta)

    def _set_total(self, state: GameState, overlays: Dict[str, CreativePlayerState], player_id: str, total: int) -> None:
        overlays[player_id].bonus_score = ScoringEngine.bonus_for_total(self.base_score(state, player_id), total)

    def normalize_ledgers(self, state: GameState, overlays: Dict[str, CreativePlayerState]) -> None:
        """Re-floor every total at zero after a board mutation."""
        for player_id in overlays:
            self._add_total(state, overlays, player_id, 0)

    def _swap_with_highest(self, state: GameState, overlays: Dict[str, CreativePlayerState], actor_id: str) -> Optional[str]:
        totals = {p.player_id: self.total_score(state, overlays, p.player_id) for p in state.players}
        others = [p.player_id for p in state.players if p.player_id != actor_id]
        if not others:
            return None
        highest = others[0]
        for player_id in others[1:]:
            if totals[player_id] > totals[highest]:
                highest = player_id
        if totals[highest] <= totals[actor_id]:
            return None
        self._set_total(state, overlays, actor_id, totals[highest])
        self._set_total(state, overlays, highest, totals[actor_id])
        return highest

    def _set_all_to_average(self, state: GameState, overlays: Dict[str, CreativePlayerState]) -> int:
        totals = [self.total_score(state, overlays, p.player_id) for p in state.players]
        average = sum(totals) // len(totals)
        for player in state.players:
            self._set_total(state, overlays, player.player_id, average)
        return average

    def _pick_piece(self, state: GameState, player_index: int, mode: str) -> Optional[int]:
        available = state.players[player_index].available_piece_ids()
        if not available:
            return None
        if mode == "random":
            return self.rng.choice(available)
        if mode == "largest":
            # largest size, highest id among equals
            return max(available, key=lambda pid: (PieceGenerator.get_piece_by_id(pid).size, pid))
        raise ValueError(f"Unknown piece removal mode: {mode}")
