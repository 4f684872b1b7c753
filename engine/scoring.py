"""
Scoring for Blokus games.

A player's visible score has two parts:

- the base score, derived from the board (one point per owned cell)
- the bonus ledger, an additive adjustment kept by creative-mode effects

``total = base + bonus`` always holds. Every change to a total goes through
``adjust_bonus`` / ``bonus_for_total``, which floor the total at zero and
rewrite the ledger so the identity survives board mutations such as undo.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from .board import Board, PlayerColor


@dataclass
class Ranking:
    """Final standing of one player."""
    player_id: str
    name: str
    color: PlayerColor
    score: int
    rank: int


class ScoringEngine:
    """Stateless score computations."""

    @staticmethod
    def base_score(board: Board, color: PlayerColor) -> int:
        """Number of cells owned by ``color``."""
        return board.count_cells(color)

    @staticmethod
    def total_score(board: Board, color: PlayerColor, bonus: int = 0) -> int:
        return board.count_cells(color) + bonus

    @staticmethod
    def placement_modifier(placed_count: int, next_double: bool = False, half_score: bool = False) -> int:
        """
        Extra points for a placement under score-modifying statuses.

        ``next_double`` adds the placed cell count again; ``half_score``
        removes half of it, rounded down.
        """
        delta = 0
        if next_double:
            delta += placed_count
        if half_score:
            delta -= placed_count // 2
        return delta

    @staticmethod
    def adjust_bonus(base: int, bonus: int, delta: int) -> int:
        """
        Apply ``delta`` to the total and return the new ledger value.

        The resulting total is floored at zero.
        """
        return ScoringEngine.bonus_for_total(base, base + bonus + delta)

    @staticmethod
    def bonus_for_total(base: int, total: int) -> int:
        """Ledger value that makes ``base + bonus`` equal ``max(0, total)``."""
        return max(0, total) - base

    @staticmethod
    def rank_players(players: Sequence, scores: Optional[Sequence[int]] = None) -> List[Ranking]:
        """
        Rank players by score, highest first.

        Ties keep seat order. Each player needs ``player_id``, ``name``,
        ``color`` and ``score`` attributes; ``scores`` overrides the latter.
        """
        if scores is None:
            scores = [p.score for p in players]
        order = sorted(range(len(players)), key=lambda i: -scores[i])
        return [
            Ranking(
                player_id=players[i].player_id,
                name=players[i].name,
                color=players[i].color,
                score=scores[i],
                rank=position + 1,
            )
            for position, i in enumerate(order)
        ]

    @staticmethod
    def winners(rankings: Iterable[Ranking]) -> List[str]:
        """Ids of every player sharing the top score."""
        rankings = list(rankings)
        if not rankings:
            return []
        best = rankings[0].score
        return [r.player_id for r in rankings if r.score == best]
