"""
Game manager for handling multiple concurrent Blokus games.

Each ``GameSession`` wraps one authoritative ``TurnScheduler``. The manager
turns scheduler events into WebSocket pushes, drives AI seats (and AI
proxies for disconnected humans) after a short cosmetic delay, and tracks
which humans are connected.
"""

import asyncio
import logging
import random
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket

from agents.heuristic_agent import HeuristicAgent
from creative.rules import CreativeRules
from engine.game import GamePhase
from engine.history import InMemoryHistory
from engine.scheduler import ActionResult, ClassicRules, ErrorCode, SchedulerEvent, TurnScheduler, make_players
from engine.move_generator import Move
from engine.timers import default_timer_factory
from schemas.game_config import GameConfig, GameMode, PlayerType
from schemas.game_state import CreativeSnapshot, GameSnapshot, PlayerSnapshot
from schemas.move import MoveRequest, MoveResponse
from schemas.state_update import EVENT_NAMES, StateUpdate
from utils.config import GameSettings

logger = logging.getLogger(__name__)


@dataclass
class GameSession:
    """Represents an active game session."""
    game_id: str
    scheduler: TurnScheduler
    config: GameConfig
    created_at: float
    last_updated: float
    connections: Dict[Optional[str], List[WebSocket]] = field(default_factory=dict)
    ai_task: Optional[asyncio.Task] = None
    unsubscribe: Optional[Any] = None

    @property
    def status(self) -> str:
        return self.scheduler.phase.value

    def sockets(self) -> List[WebSocket]:
        return [ws for group in self.connections.values() for ws in group]


def build_snapshot(game_id: str, scheduler: TurnScheduler) -> GameSnapshot:
    """Authoritative snapshot of a scheduler's state."""
    state = scheduler.state
    creative = scheduler.rules.snapshot(state)
    return GameSnapshot(
        game_id=game_id,
        mode=scheduler.rules.mode,
        phase=state.phase.value,
        paused=scheduler.paused,
        board=state.board.to_list(),
        players=[
            PlayerSnapshot(
                player_id=p.player_id,
                name=p.name,
                color=p.color.name.lower(),
                is_ai=p.is_ai,
                score=p.score,
                used_pieces=sorted(p.used_pieces),
                removed_pieces=sorted(p.removed_pieces),
                is_settled=p.is_settled,
                is_current_turn=p.is_current_turn,
                is_offline=p.is_offline,
            )
            for p in state.players
        ],
        current_player_index=state.current_player_index,
        turn_count=state.turn_count,
        time_left=state.time_left,
        time_limit=state.time_limit,
        move_count=sum(1 for m in state.moves if m.kind == "place"),
        creative=CreativeSnapshot.model_validate(creative) if creative else None,
    )


def to_response(result: ActionResult) -> MoveResponse:
    return MoveResponse(
        success=result.success,
        message=result.message,
        error=result.error.value if result.error else None,
        data=result.data,
    )


class GameManager:
    """Manages multiple concurrent Blokus games."""

    def __init__(
        self,
        settings: Optional[GameSettings] = None,
        history: Optional[InMemoryHistory] = None,
        use_timers: bool = True,
    ):
        """
        Args:
            settings: Defaults for every game; per-game config overrides a few fields
            history: Sink for finished games
            use_timers: Run real countdowns; disabled in tests that drive ``tick()``
        """
        self.settings = settings or GameSettings()
        self.history = history or InMemoryHistory()
        self.use_timers = use_timers
        self.games: Dict[str, GameSession] = {}
        self._broadcasts: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_game(self, config: GameConfig) -> GameSession:
        """
        Create (and by default start) a new game.

        Args:
            config: Game configuration

        Returns:
            The new session

        Raises:
            ValueError: Duplicate game id or invalid seating
        """
        self.cleanup_old_games()
        game_id = config.game_id or str(uuid.uuid4())
        if game_id in self.games:
            raise ValueError(f"Game ID already exists: {game_id}")

        creative = config.mode == GameMode.CREATIVE
        settings = replace(
            self.settings,
            time_limit=config.time_limit,
            seed=config.seed if config.seed is not None else self.settings.seed,
            ai_proxy=config.ai_proxy,
            creative=creative,
        )
        players = make_players(
            [p.name for p in config.players],
            ai_flags=[p.type == PlayerType.AI for p in config.players],
        )
        agents = {
            seat.player_id: HeuristicAgent(weights=p.weights)
            for seat, p in zip(players, config.players)
            if p.type == PlayerType.AI
        }
        scheduler = TurnScheduler(
            players,
            settings=settings,
            rules=CreativeRules(settings) if creative else ClassicRules(),
            agents=agents,
            timer_factory=default_timer_factory if self.use_timers else None,
            history_sinks=[self.history],
            game_id=game_id,
        )

        now = time.time()
        session = GameSession(
            game_id=game_id,
            scheduler=scheduler,
            config=config,
            created_at=now,
            last_updated=now,
        )
        session.unsubscribe = scheduler.subscribe(lambda event: self._on_event(session, event))
        self.games[game_id] = session
        logger.info(f"Created {config.mode.value} game {game_id} with {len(players)} players")

        if config.auto_start:
            self.start_game(game_id)
        return session

    def start_game(self, game_id: str) -> None:
        session = self._require(game_id)
        if session.scheduler.phase == GamePhase.WAITING:
            session.scheduler.start(session.config.first_player)
            session.last_updated = time.time()

    def get_session(self, game_id: str) -> Optional[GameSession]:
        return self.games.get(game_id)

    def _require(self, game_id: str) -> GameSession:
        session = self.games.get(game_id)
        if session is None:
            raise KeyError(game_id)
        return session

    def get_snapshot(self, game_id: str) -> Optional[GameSnapshot]:
        session = self.get_session(game_id)
        if session is None:
            return None
        return build_snapshot(game_id, session.scheduler)

    async def shutdown(self) -> None:
        """Stop every game's timers and AI tasks."""
        for session in self.games.values():
            session.scheduler.close()
            if session.ai_task is not None and not session.ai_task.done():
                session.ai_task.cancel()
        logger.info(f"Stopped {len(self.games)} games")

    def remove_game(self, game_id: str) -> bool:
        session = self.games.pop(game_id, None)
        if session is None:
            return False
        session.scheduler.close()
        if session.ai_task is not None and not session.ai_task.done():
            session.ai_task.cancel()
        return True

    def cleanup_old_games(self, max_age_hours: int = 24) -> int:
        """Drop games that have not changed for ``max_age_hours``."""
        cutoff = time.time() - max_age_hours * 3600
        stale = [game_id for game_id, session in self.games.items() if session.last_updated < cutoff]
        for game_id in stale:
            self.remove_game(game_id)
        if stale:
            logger.info(f"Removed {len(stale)} idle games")
        return len(stale)

    # ------------------------------------------------------------------
    # Player commands
    # ------------------------------------------------------------------

    def _not_found(self, game_id: str) -> MoveResponse:
        return MoveResponse(success=False, message=f"Game not found: {game_id}", error=ErrorCode.GAME_NOT_FOUND.value)

    def _run(self, game_id: str, action) -> MoveResponse:
        session = self.get_session(game_id)
        if session is None:
            return self._not_found(game_id)
        result = action(session.scheduler)
        if result.success:
            session.last_updated = time.time()
        return to_response(result)

    def make_move(self, game_id: str, move_request: MoveRequest) -> MoveResponse:
        move = Move(
            move_request.piece_id,
            move_request.orientation,
            move_request.anchor_row,
            move_request.anchor_col,
        )
        return self._run(game_id, lambda s: s.place(move_request.player_id, move))

    def settle(self, game_id: str, player_id: str) -> MoveResponse:
        return self._run(game_id, lambda s: s.settle(player_id))

    def use_item_card(self, game_id: str, player_id: str, card_index: int, target_id: Optional[str] = None) -> MoveResponse:
        return self._run(game_id, lambda s: s.use_item_card(player_id, card_index, target_id))

    def skip_item_phase(self, game_id: str, player_id: str) -> MoveResponse:
        return self._run(game_id, lambda s: s.skip_item_phase(player_id))

    def pause(self, game_id: str) -> MoveResponse:
        return self._run(game_id, lambda s: s.pause())

    def resume(self, game_id: str) -> MoveResponse:
        return self._run(game_id, lambda s: s.resume())

    # ------------------------------------------------------------------
    # AI seats
    # ------------------------------------------------------------------

    def _schedule_ai_turn(self, session: GameSession) -> None:
        if not session.scheduler.is_ai_turn():
            return
        if session.ai_task is not None and not session.ai_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running loop, AI turn in game {session.game_id} left to the caller")
            return
        session.ai_task = loop.create_task(self._run_ai_turns(session))

    async def _run_ai_turns(self, session: GameSession) -> None:
        """Play AI-controlled turns until a human is to move or the game ends."""
        scheduler = session.scheduler
        settings = scheduler.settings
        while scheduler.is_ai_turn():
            turn = scheduler.state.turn_count
            await asyncio.sleep(random.uniform(settings.ai_delay_min, settings.ai_delay_max))
            if not scheduler.is_ai_turn() or scheduler.state.turn_count != turn:
                continue

            scheduler.ai_use_card()
            if not scheduler.is_ai_turn() or scheduler.state.turn_count != turn:
                continue

            start = time.perf_counter()
            player = scheduler.current_player
            try:
                move = await asyncio.wait_for(
                    asyncio.get_running_loop().run_in_executor(None, scheduler.compute_ai_move),
                    timeout=settings.agent_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning(f"Agent for {player.name} timed out after {settings.agent_timeout}s in game {session.game_id}")
                move = None
            logger.debug(f"AI move for {player.name} computed in {time.perf_counter() - start:.4f}s")

            result = scheduler.complete_ai_turn(move, turn)
            if result.success:
                session.last_updated = time.time()

    # ------------------------------------------------------------------
    # Connections and broadcasting
    # ------------------------------------------------------------------

    def connect(self, game_id: str, websocket: WebSocket, player_id: Optional[str] = None) -> GameSession:
        session = self._require(game_id)
        session.connections.setdefault(player_id, []).append(websocket)
        if player_id is not None and len(session.connections[player_id]) == 1:
            session.scheduler.set_offline(player_id, False)
        logger.info(f"Connected to game {game_id} as {player_id or 'spectator'}")
        return session

    def disconnect(self, game_id: str, websocket: WebSocket, player_id: Optional[str] = None) -> None:
        session = self.get_session(game_id)
        if session is None:
            return
        group = session.connections.get(player_id, [])
        if websocket in group:
            group.remove(websocket)
        if player_id is not None and not group:
            session.connections.pop(player_id, None)
            if session.scheduler.phase == GamePhase.PLAYING:
                session.scheduler.set_offline(player_id, True)
                self._schedule_ai_turn(session)
        logger.info(f"Disconnected {player_id or 'spectator'} from game {game_id}")

    def _event_payload(self, session: GameSession, event: SchedulerEvent) -> Dict[str, Any]:
        data = dict(event.data)
        scheduler = session.scheduler
        state = scheduler.state
        if event.type == "move":
            data["board_changes"] = [{"row": r, "col": c, "color": v} for r, c, v in data["board_changes"]]
            data["used_pieces"] = {p.player_id: sorted(p.used_pieces) for p in state.players}
            data["removed_pieces"] = {p.player_id: sorted(p.removed_pieces) for p in state.players}
            data["settled"] = [p.player_id for p in state.players if p.is_settled]
            if data.get("effects"):
                data["board"] = state.board.to_list()
            creative = scheduler.rules.snapshot(state)
            if creative:
                data["creative"] = creative
        elif event.type in ("game_started", "item_used", "finished"):
            data["snapshot"] = build_snapshot(session.game_id, scheduler).model_dump()
        return data

    def _on_event(self, session: GameSession, event: SchedulerEvent) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None and session.sockets():
            update = StateUpdate(
                type=EVENT_NAMES.get(event.type, event.type),
                game_id=session.game_id,
                data=self._event_payload(session, event),
            )
            task = loop.create_task(self.broadcast(session, update))
            self._broadcasts.add(task)
            task.add_done_callback(self._broadcasts.discard)

        if event.type in ("turn_changed", "item_phase", "resumed", "presence"):
            self._schedule_ai_turn(session)

    async def broadcast(self, session: GameSession, update: StateUpdate) -> None:
        """Send one update to every socket of the session, dropping dead ones."""
        message = update.model_dump_json()
        for player_id, group in list(session.connections.items()):
            for websocket in list(group):
                try:
                    await websocket.send_text(message)
                except Exception as e:
                    logger.warning(f"Dropping socket of {player_id or 'spectator'} in game {session.game_id}: {e}")
                    group.remove(websocket)
