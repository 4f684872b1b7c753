"""
Legal move generator for Blokus game.
"""

import logging
import os
import time
from typing import AbstractSet, Iterable, Iterator, List, Optional, Tuple

from .board import Board, PlayerColor
from .pieces import Piece, PieceGenerator, PiecePlacement
from .placement import PlacementValidator

logger = logging.getLogger(__name__)

# Debug flag for move generation timing (controlled via environment variable)
MOVEGEN_DEBUG = bool(os.getenv("BLOKUS_MOVEGEN_DEBUG", ""))

Cell = Tuple[int, int]


class Move:
    """Represents a placement: piece id, orientation index and top-left anchor."""

    def __init__(self, piece_id: int, orientation: int, anchor_row: int, anchor_col: int):
        self.piece_id = piece_id
        self.orientation = orientation  # Index into get_unique_transformations()
        self.anchor_row = anchor_row
        self.anchor_col = anchor_col

    def get_piece(self) -> Optional[Piece]:
        """Oriented piece for this move, or None for an unknown piece/orientation."""
        orientations = PieceGenerator.get_orientations(self.piece_id)
        if not 0 <= self.orientation < len(orientations):
            return None
        return orientations[self.orientation]

    def get_cells(self) -> List[Cell]:
        piece = self.get_piece()
        if piece is None:
            return []
        return PiecePlacement.get_piece_positions(piece.shape, self.anchor_row, self.anchor_col)

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.piece_id, self.orientation, self.anchor_row, self.anchor_col)

    def __eq__(self, other):
        if not isinstance(other, Move):
            return NotImplemented
        return self.as_tuple() == other.as_tuple()

    def __hash__(self):
        return hash(self.as_tuple())

    def __repr__(self):
        return f"Move(piece_id={self.piece_id}, orientation={self.orientation}, anchor=({self.anchor_row}, {self.anchor_col}))"


class LegalMoveGenerator:
    """Generates legal moves for a color given its remaining pieces."""

    def __init__(self, validator: Optional[PlacementValidator] = None):
        self.validator = validator or PlacementValidator()
        self.all_pieces = PieceGenerator.get_all_pieces()

    def iter_legal_moves(
        self,
        board: Board,
        color: PlayerColor,
        piece_ids: Iterable[int],
        blocked: Optional[AbstractSet[Cell]] = None,
    ) -> Iterator[Move]:
        """
        Yield legal moves in (piece id, orientation, row, col) order.

        Args:
            board: Current board state
            color: Color to generate moves for
            piece_ids: Unused piece ids the color may still place
            blocked: Cells treated as occupied (creative barriers)
        """
        frontier = board.get_frontier(color)
        for piece_id in sorted(piece_ids):
            yield from self._iter_piece_moves(board, color, piece_id, blocked, frontier)

    def get_legal_moves(
        self,
        board: Board,
        color: PlayerColor,
        piece_ids: Iterable[int],
        blocked: Optional[AbstractSet[Cell]] = None,
    ) -> List[Move]:
        """
        Get all legal moves for a color on the current board.

        Returns:
            List of legal moves
        """
        start = time.perf_counter()
        piece_ids = list(piece_ids)
        legal_moves = list(self.iter_legal_moves(board, color, piece_ids, blocked))
        elapsed = time.perf_counter() - start

        if MOVEGEN_DEBUG:
            logger.info(f"MoveGen: color={color.name}, legal_moves={len(legal_moves)}, elapsed_ms={elapsed * 1000.0:.2f}")
        logger.debug(f"Legal move generation: {len(legal_moves)} moves in {elapsed:.4f}s for color={color.name}, pieces_checked={len(piece_ids)}")
        return legal_moves

    def get_legal_moves_for_piece(
        self,
        board: Board,
        color: PlayerColor,
        piece_id: int,
        blocked: Optional[AbstractSet[Cell]] = None,
    ) -> List[Move]:
        """
        Get all legal moves for a specific piece.

        Args:
            board: Current board state
            color: Color to generate moves for
            piece_id: ID of the piece to generate moves for
            blocked: Cells treated as occupied

        Returns:
            List of legal moves for the specific piece
        """
        return list(self._iter_piece_moves(board, color, piece_id, blocked))

    def _iter_piece_moves(
        self,
        board: Board,
        color: PlayerColor,
        piece_id: int,
        blocked: Optional[AbstractSet[Cell]],
        frontier: Optional[AbstractSet[Cell]] = None,
    ) -> Iterator[Move]:
        """
        Anchor each orientation so that one of its cells lands on a frontier
        cell, then keep the anchors that pass the placement check. Every legal
        placement covers a frontier cell, so nothing is missed.
        """
        if frontier is None:
            frontier = board.get_frontier(color)
        if not frontier:
            return
        for orientation_idx, oriented in enumerate(PieceGenerator.get_orientations(piece_id)):
            rows, cols = oriented.shape.shape
            offsets = oriented.offsets()
            anchors = set()
            for frontier_row, frontier_col in frontier:
                for rel_r, rel_c in offsets:
                    anchor_row = frontier_row - rel_r
                    anchor_col = frontier_col - rel_c
                    if 0 <= anchor_row <= board.size - rows and 0 <= anchor_col <= board.size - cols:
                        anchors.add((anchor_row, anchor_col))
            # sorted so callers see (orientation, row, col) order
            for anchor_row, anchor_col in sorted(anchors):
                cells = [(anchor_row + r, anchor_col + c) for r, c in offsets]
                if self.validator.can_place_cells(board, cells, color, blocked):
                    yield Move(piece_id, orientation_idx, anchor_row, anchor_col)

    def is_move_legal(
        self,
        board: Board,
        color: PlayerColor,
        move: Move,
        blocked: Optional[AbstractSet[Cell]] = None,
    ) -> bool:
        """
        Check if a specific move is legal (piece availability is the caller's concern).
        """
        piece = move.get_piece()
        if piece is None:
            return False
        return self.validator.can_place(board, piece, move.anchor_row, move.anchor_col, color, blocked)

    def has_legal_moves(
        self,
        board: Board,
        color: PlayerColor,
        piece_ids: Iterable[int],
        blocked: Optional[AbstractSet[Cell]] = None,
    ) -> bool:
        """
        Check if a color has any legal move, stopping at the first one found.
        """
        for _ in self.iter_legal_moves(board, color, piece_ids, blocked):
            return True
        return False
