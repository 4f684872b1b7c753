"""
Tests for the board model and the piece catalog.
"""

import unittest

import numpy as np

from engine.board import Board, CellChange, PlayerColor, Position
from engine.pieces import PieceGenerator, get_unique_transformations


class TestBoard(unittest.TestCase):
    """Test the Board class."""

    def test_board_initialization(self):
        """A new board is a 20x20 grid of zeros."""
        board = Board()
        self.assertEqual(board.grid.shape, (20, 20))
        self.assertTrue(np.all(board.grid == 0))

    def test_start_corners(self):
        """Start corners follow seat order clockwise from the top-left."""
        board = Board()
        assert board.start_corner(PlayerColor.RED) == Position(0, 0)
        assert board.start_corner(PlayerColor.YELLOW) == Position(0, 19)
        assert board.start_corner(PlayerColor.BLUE) == Position(19, 19)
        assert board.start_corner(PlayerColor.GREEN) == Position(19, 0)

    def test_seats(self):
        self.assertEqual(PlayerColor.seats(2), [PlayerColor.RED, PlayerColor.YELLOW])
        self.assertEqual(len(PlayerColor.seats(4)), 4)
        with self.assertRaises(ValueError):
            PlayerColor.seats(5)

    def test_position_validation(self):
        board = Board()
        assert board.is_valid_position(Position(0, 0))
        assert board.is_valid_position(Position(19, 19))
        assert not board.is_valid_position(Position(-1, 0))
        assert not board.is_valid_position(Position(0, 20))
        assert board.get_cell(Position(20, 0)) == -1

    def test_apply_changes_skips_out_of_range(self):
        """Malformed deltas are skipped instead of corrupting the grid."""
        board = Board()
        written = board.apply_changes([
            CellChange(0, 0, 1),
            CellChange(25, 3, 2),
            CellChange(-1, 0, 3),
        ])
        self.assertEqual(written, 1)
        self.assertEqual(board.get_player_at(Position(0, 0)), PlayerColor.RED)
        self.assertEqual(board.count_cells(PlayerColor.RED), 1)

    def test_apply_changes_clears_cells(self):
        board = Board()
        board.apply_changes([CellChange(4, 4, 2)])
        board.apply_changes([CellChange(4, 4, 0)])
        assert board.is_empty(Position(4, 4))
        assert not board.has_cells(PlayerColor.YELLOW)

    def test_copy_is_independent(self):
        board = Board()
        clone = board.copy()
        clone.apply_changes([CellChange(3, 3, 4)])
        self.assertEqual(board.get_cell(Position(3, 3)), 0)
        self.assertNotEqual(board, clone)

    def test_list_round_trip(self):
        board = Board()
        board.apply_changes([CellChange(1, 2, 3)])
        self.assertEqual(Board.from_list(board.to_list()), board)

    def test_from_list_rejects_non_square(self):
        with self.assertRaises(ValueError):
            Board.from_list([[0, 0, 0], [0, 0, 0]])

    def test_adjacent_positions(self):
        board = Board()
        assert len(board.get_edge_adjacent_positions(Position(5, 5))) == 4
        assert len(board.get_corner_adjacent_positions(Position(5, 5))) == 4
        assert len(board.get_edge_adjacent_positions(Position(0, 0))) == 2
        assert len(board.get_corner_adjacent_positions(Position(0, 0))) == 1

    def test_frontier(self):
        board = Board()
        self.assertEqual(board.get_frontier(PlayerColor.RED), {(0, 0)})

        board.apply_changes([CellChange(0, 0, 1), CellChange(0, 1, 1)])
        self.assertEqual(board.get_frontier(PlayerColor.RED), {(1, 2)})

        # another color sitting on the start corner leaves nothing to grow from
        board.apply_changes([CellChange(19, 0, PlayerColor.YELLOW.value)])
        self.assertEqual(board.get_frontier(PlayerColor.GREEN), set())


class TestPieces(unittest.TestCase):
    """Test the piece catalog."""

    def test_twenty_one_pieces(self):
        pieces = PieceGenerator.get_all_pieces()
        self.assertEqual(len(pieces), 21)
        self.assertEqual([p.id for p in pieces], list(range(1, 22)))

    def test_piece_sizes(self):
        sizes = [p.size for p in PieceGenerator.get_all_pieces()]
        self.assertEqual(sizes.count(1), 1)
        self.assertEqual(sizes.count(2), 1)
        self.assertEqual(sizes.count(3), 2)
        self.assertEqual(sizes.count(4), 6)
        self.assertEqual(sizes.count(5), 11)
        self.assertEqual(sum(sizes), 88)

    def test_known_shapes(self):
        assert PieceGenerator.get_piece_by_id(1).key() == ((1,),)
        assert PieceGenerator.get_piece_by_id(2).key() == ((1, 1),)
        assert PieceGenerator.get_piece_by_id(12).key() == ((1, 1, 1, 1, 1),)
        assert PieceGenerator.get_piece_by_id(99) is None

    def test_large_pieces(self):
        self.assertFalse(PieceGenerator.get_piece_by_id(4).is_large)
        self.assertTrue(PieceGenerator.get_piece_by_id(5).is_large)

    def test_orientation_counts(self):
        """Distinct orientations per piece after removing symmetric duplicates."""
        expected = {
            1: 1, 2: 2, 3: 2, 4: 4, 5: 2, 6: 1, 7: 4, 8: 8, 9: 4, 10: 4,
            11: 8, 12: 2, 13: 8, 14: 8, 15: 8, 16: 4, 17: 4, 18: 4, 19: 4, 20: 1, 21: 8,
        }
        for piece_id, count in expected.items():
            self.assertEqual(
                len(PieceGenerator.get_orientations(piece_id)), count,
                f"Piece {piece_id} orientation count"
            )

    def test_orientation_zero_is_base_shape(self):
        for piece in PieceGenerator.get_all_pieces():
            first = PieceGenerator.get_orientations(piece.id)[0]
            self.assertTrue(first.same_shape(piece))

    def test_orientations_are_distinct_and_keep_size(self):
        for piece in PieceGenerator.get_all_pieces():
            variants = get_unique_transformations(piece)
            keys = [v.key() for v in variants]
            self.assertEqual(len(keys), len(set(keys)))
            for variant in variants:
                self.assertEqual(int(variant.shape.sum()), piece.size)

    def test_transforms_do_not_mutate(self):
        piece = PieceGenerator.get_piece_by_id(8)
        before = piece.key()
        piece.rotate_clockwise()
        piece.flip_horizontal()
        self.assertEqual(piece.key(), before)

    def test_unknown_piece_has_no_orientations(self):
        self.assertEqual(PieceGenerator.get_orientations(0), [])


if __name__ == '__main__':
    unittest.main()
