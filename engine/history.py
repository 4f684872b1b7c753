"""
Match history records handed to the persistence collaborator when a game ends.

The engine only writes through ``HistorySink``; nothing here is read back
during play.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol

from .game import MoveRecord


@dataclass
class PlayerResult:
    player_id: str
    name: str
    color: str
    score: int
    rank: int
    pieces_used: int
    is_ai: bool = False


@dataclass
class MatchRecord:
    """Everything needed to persist and later replay a finished game."""
    game_id: str
    date: datetime
    results: List[PlayerResult]
    moves: List[MoveRecord]
    final_board: List[List[int]]
    mode: str = "classic"
    winner_ids: List[str] = field(default_factory=list)

    def result_for(self, player_id: str) -> Optional[PlayerResult]:
        for result in self.results:
            if result.player_id == player_id:
                return result
        return None


@dataclass
class PlayerStats:
    total_games: int = 0
    wins: int = 0
    win_rate: float = 0.0
    best_score: int = 0
    average_score: float = 0.0


class HistorySink(Protocol):
    """Receives one record per finished game."""

    def record(self, match: MatchRecord) -> None:
        ...


class InMemoryHistory:
    """History sink that keeps records in a list (server default and tests)."""

    def __init__(self, max_records: Optional[int] = None):
        self.records: List[MatchRecord] = []
        self.max_records = max_records

    def record(self, match: MatchRecord) -> None:
        self.records.append(match)
        if self.max_records is not None and len(self.records) > self.max_records:
            self.records = self.records[-self.max_records:]

    def for_game(self, game_id: str) -> Optional[MatchRecord]:
        for match in self.records:
            if match.game_id == game_id:
                return match
        return None

    def for_player(self, player_id: str) -> List[MatchRecord]:
        return [m for m in self.records if m.result_for(player_id) is not None]

    def stats(self, player_id: str) -> PlayerStats:
        return aggregate_stats(self.records, player_id)


def aggregate_stats(records: Iterable[MatchRecord], player_id: str) -> PlayerStats:
    """
    Totals, win rate, best and average score for one player.

    A game counts as a win when the player is among ``winner_ids``.
    """
    scores: List[int] = []
    wins = 0
    for match in records:
        result = match.result_for(player_id)
        if result is None:
            continue
        scores.append(result.score)
        if player_id in match.winner_ids:
            wins += 1

    if not scores:
        return PlayerStats()

    return PlayerStats(
        total_games=len(scores),
        wins=wins,
        win_rate=wins / len(scores),
        best_score=max(scores),
        average_score=sum(scores) / len(scores),
    )


def summarize_results(records: Iterable[MatchRecord]) -> Dict[str, PlayerStats]:
    """Stats for every player that appears in ``records``."""
    records = list(records)
    player_ids = []
    for match in records:
        for result in match.results:
            if result.player_id not in player_ids:
                player_ids.append(result.player_id)
    return {player_id: aggregate_stats(records, player_id) for player_id in player_ids}
