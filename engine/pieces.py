"""
Blokus piece definitions with all 21 polyominoes and their rotations/reflections.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np


@dataclass(eq=False)
class Piece:
    """
    Represents a Blokus piece shape.

    Pieces are values: ``rotate_clockwise`` and ``flip_horizontal`` return new
    pieces and never touch ``shape`` in place.
    """
    id: int
    name: str
    shape: np.ndarray  # 2D array representing the piece
    size: int  # Number of squares in the piece

    def __post_init__(self):
        """Validate piece after initialization."""
        self.shape = np.array(self.shape, dtype=int)
        if self.shape.ndim != 2:
            raise ValueError("Piece shape must be 2D")
        if np.sum(self.shape) != self.size:
            raise ValueError("Piece shape sum must equal size")
        self.shape.setflags(write=False)

    def rotate_clockwise(self) -> "Piece":
        return Piece(self.id, self.name, np.rot90(self.shape, k=-1), self.size)

    def flip_horizontal(self) -> "Piece":
        return Piece(self.id, self.name, np.fliplr(self.shape), self.size)

    def offsets(self) -> List[Tuple[int, int]]:
        """Occupied (row, col) offsets relative to the top-left of ``shape``."""
        return shape_to_offsets(self.shape)

    def key(self) -> Tuple[Tuple[int, ...], ...]:
        """Structural identity of the shape matrix."""
        return tuple(tuple(int(v) for v in row) for row in self.shape)

    def same_shape(self, other: "Piece") -> bool:
        return self.shape.shape == other.shape.shape and np.array_equal(self.shape, other.shape)

    @property
    def is_large(self) -> bool:
        """Large pieces (4+ cells) are the ones a big-piece ban forbids."""
        return self.size >= 4


def shape_to_offsets(shape: np.ndarray) -> List[Tuple[int, int]]:
    """
    Convert a numpy shape array to a list of (row, col) offsets.

    Args:
        shape: 2D numpy array with 1s where cells are occupied

    Returns:
        List of (row, col) tuples for occupied cells, row-major
    """
    offsets = []
    rows, cols = shape.shape
    for i in range(rows):
        for j in range(cols):
            if shape[i, j] == 1:
                offsets.append((i, j))
    return offsets


def get_unique_transformations(piece: Piece) -> List[Piece]:
    """
    All distinct orientations of a piece.

    Order: the base shape and its three clockwise rotations, then the
    horizontal flip and its three rotations. Structurally equal shapes are
    dropped, keeping the first occurrence. The list index is the orientation
    index used by moves.
    """
    variants = []
    current = piece
    for _ in range(4):
        variants.append(current)
        current = current.rotate_clockwise()

    current = piece.flip_horizontal()
    for _ in range(4):
        variants.append(current)
        current = current.rotate_clockwise()

    unique: List[Piece] = []
    seen = set()
    for variant in variants:
        key = variant.key()
        if key in seen:
            continue
        seen.add(key)
        unique.append(variant)
    return unique


class PieceType(Enum):
    """Enumeration of all Blokus piece types."""
    MONOMINO = 1      # 1 square
    DOMINO = 2        # 2 squares
    TROMINO_I = 3     # 3 squares in line
    TROMINO_L = 4     # 3 squares in L shape
    TETROMINO_I = 5   # 4 squares in line
    TETROMINO_O = 6   # 2x2 square
    TETROMINO_T = 7   # T shape
    TETROMINO_L = 8   # L shape
    TETROMINO_S = 9   # S shape
    TETROMINO_Z = 10  # Z shape
    PENTOMINO_F = 11  # F shape
    PENTOMINO_I = 12  # 5 squares in line
    PENTOMINO_L = 13  # L shape
    PENTOMINO_N = 14  # N shape
    PENTOMINO_P = 15  # P shape
    PENTOMINO_T = 16  # T shape
    PENTOMINO_U = 17  # U shape
    PENTOMINO_V = 18  # V shape
    PENTOMINO_W = 19  # W shape
    PENTOMINO_X = 20  # X shape
    PENTOMINO_Y = 21  # Y shape


_PIECE_DEFINITIONS = [
    (1, "Monomino", [[1]]),
    (2, "Domino", [[1, 1]]),
    (3, "Tromino I", [[1, 1, 1]]),
    (4, "Tromino L", [[1, 0], [1, 1]]),
    (5, "Tetromino I", [[1, 1, 1, 1]]),
    (6, "Tetromino O", [[1, 1], [1, 1]]),
    (7, "Tetromino T", [[1, 1, 1], [0, 1, 0]]),
    (8, "Tetromino L", [[1, 0], [1, 0], [1, 1]]),
    (9, "Tetromino S", [[0, 1, 1], [1, 1, 0]]),
    (10, "Tetromino Z", [[1, 1, 0], [0, 1, 1]]),
    (11, "Pentomino F", [[0, 1, 1], [1, 1, 0], [0, 1, 0]]),
    (12, "Pentomino I", [[1, 1, 1, 1, 1]]),
    (13, "Pentomino L", [[1, 0], [1, 0], [1, 0], [1, 1]]),
    (14, "Pentomino N", [[1, 0], [1, 1], [0, 1], [0, 1]]),
    (15, "Pentomino P", [[1, 1], [1, 1], [1, 0]]),
    (16, "Pentomino T", [[1, 1, 1], [0, 1, 0], [0, 1, 0]]),
    (17, "Pentomino U", [[1, 0, 1], [1, 1, 1]]),
    (18, "Pentomino V", [[1, 0, 0], [1, 0, 0], [1, 1, 1]]),
    (19, "Pentomino W", [[1, 0, 0], [1, 1, 0], [0, 1, 1]]),
    (20, "Pentomino X", [[0, 1, 0], [1, 1, 1], [0, 1, 0]]),
    (21, "Pentomino Y", [[1, 0], [1, 1], [1, 0], [1, 0]]),
]


class PieceGenerator:
    """Catalog of the 21 Blokus pieces and their orientations."""

    _pieces: Optional[List[Piece]] = None
    _orientations: Dict[int, List[Piece]] = {}

    @classmethod
    def get_all_pieces(cls) -> List[Piece]:
        """Get all 21 Blokus pieces, ordered by id."""
        if cls._pieces is None:
            cls._pieces = [
                Piece(piece_id, name, np.array(shape), int(np.sum(shape)))
                for piece_id, name, shape in _PIECE_DEFINITIONS
            ]
        return list(cls._pieces)

    @classmethod
    def get_piece_by_id(cls, piece_id: int) -> Optional[Piece]:
        """Get a piece by its ID."""
        for piece in cls.get_all_pieces():
            if piece.id == piece_id:
                return piece
        return None

    @classmethod
    def get_orientations(cls, piece_id: int) -> List[Piece]:
        """Cached unique orientations for a piece id (empty for unknown ids)."""
        if piece_id not in cls._orientations:
            piece = cls.get_piece_by_id(piece_id)
            if piece is None:
                return []
            cls._orientations[piece_id] = get_unique_transformations(piece)
        return cls._orientations[piece_id]

    @classmethod
    def all_piece_ids(cls) -> List[int]:
        return [piece.id for piece in cls.get_all_pieces()]


class PiecePlacement:
    """Helper class for piece placement calculations."""

    @staticmethod
    def get_piece_positions(shape: np.ndarray, anchor_row: int, anchor_col: int) -> List[Tuple[int, int]]:
        """
        Get the board positions that a piece shape would occupy when placed at anchor position.

        Args:
            shape: 2D numpy array representing the piece
            anchor_row: Row position of the anchor (top-left of piece)
            anchor_col: Column position of the anchor (top-left of piece)

        Returns:
            List of (row, col) tuples representing occupied positions
        """
        return [(anchor_row + i, anchor_col + j) for i, j in shape_to_offsets(shape)]
