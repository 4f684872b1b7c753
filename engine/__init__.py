"""
Blokus rule engine package.

This package contains the core game logic, including:
- Board model, colors and piece catalog
- Placement rules and legal move generation
- Scoring (board-derived base plus bonus ledger)
- Game state with pure transition functions
- The authoritative turn scheduler
"""

from .board import Board, CellChange, PlayerColor, Position
from .game import GamePhase, GameState, MoveRecord, PlayerState
from .move_generator import LegalMoveGenerator, Move
from .pieces import Piece, PieceGenerator, PiecePlacement, PieceType
from .placement import PlacementValidator
from .rng import RandomSource, SeededRandom, SequenceRandom
from .scheduler import ActionResult, ClassicRules, ErrorCode, SchedulerEvent, TurnRules, TurnScheduler
from .scoring import ScoringEngine

__all__ = [
    'Board', 'CellChange', 'PlayerColor', 'Position',
    'Piece', 'PieceType', 'PieceGenerator', 'PiecePlacement',
    'PlacementValidator', 'Move', 'LegalMoveGenerator',
    'GamePhase', 'GameState', 'MoveRecord', 'PlayerState',
    'RandomSource', 'SeededRandom', 'SequenceRandom',
    'ScoringEngine',
    'ActionResult', 'ClassicRules', 'ErrorCode', 'SchedulerEvent', 'TurnRules', 'TurnScheduler',
]
