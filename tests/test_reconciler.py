"""
Tests for the client-side mirror against an in-process authoritative server.
"""

import asyncio
import random
import unittest

from engine.board import Position
from engine.game import GamePhase
from engine.move_generator import LegalMoveGenerator, Move
from engine.scheduler import ErrorCode
from schemas.game_config import GameConfig, PlayerConfig
from schemas.game_state import (
    CreativePlayerSnapshot,
    CreativeSnapshot,
    ItemPhaseModel,
    SpecialTileModel,
    StatusEffectModel,
)
from schemas.move import MoveRequest
from schemas.state_update import EVENT_NAMES
from sync.reconciler import ConnectionState, SyncReconciler
from sync.transport import RequestChannel, Transport
from utils.config import GameSettings
from webapi.game_manager import GameManager


class LoopbackTransport(Transport):
    """Answers requests from a local GameManager on the next loop iteration."""

    def __init__(self, manager, game_id):
        self.manager = manager
        self.game_id = game_id
        self.channel = None
        self.online = True
        self.silent = False
        self.reject = None
        self.before_answer = None
        self.sent = []

    @property
    def connected(self):
        return self.online

    async def send(self, message):
        self.sent.append(message)
        if self.silent:
            return
        if self.before_answer is not None:
            self.before_answer(message)
        if self.reject is not None:
            response = self.reject
        elif message["type"] == "game.move":
            response = self.manager.make_move(self.game_id, MoveRequest(**message["data"])).model_dump()
        elif message["type"] == "game.getState":
            response = {"success": True, "data": self.manager.get_snapshot(self.game_id).model_dump()}
        else:
            response = {"success": False, "message": f"Unknown event {message['type']}"}
        reply = {"type": "response", "request_id": message["request_id"], "data": response}
        asyncio.get_running_loop().call_soon(self.channel.handle_message, reply)


def forward_pushes(manager, session, channel):
    """Feed every scheduler event to the channel the way the server broadcasts it."""
    def push(event):
        channel.handle_message({
            "type": EVENT_NAMES.get(event.type, event.type),
            "data": manager._event_payload(session, event),
        })

    session.scheduler.subscribe(push)


def server_and_mirror(player_id="player-red"):
    manager = GameManager(use_timers=False)
    config = GameConfig(
        players=[PlayerConfig(name="Alice"), PlayerConfig(name="Bob")],
        game_id="g1",
        first_player=0,
    )
    session = manager.create_game(config)
    transport = LoopbackTransport(manager, "g1")
    channel = RequestChannel(transport, timeout=0.05)
    transport.channel = channel
    forward_pushes(manager, session, channel)

    mirror = SyncReconciler(player_id, channel)
    mirror.attach()
    mirror.load_snapshot(manager.get_snapshot("g1").model_dump())
    return manager, session, transport, mirror


def summary(state):
    """The parts of a mirror both sync paths must agree on."""
    return (
        state.board.to_list(),
        [(p.player_id, p.score, sorted(p.used_pieces), p.is_settled, p.is_current_turn) for p in state.players],
        state.current_player_index,
        state.turn_count,
    )


class TestLocalValidation(unittest.TestCase):
    """validate_move gives the same error codes as the server."""

    def setUp(self):
        self.manager, self.session, self.transport, self.mirror = server_and_mirror()

    def assertRejected(self, move, code):
        result = self.mirror.validate_move(move)
        self.assertIsNotNone(result, f"{move} should be rejected")
        self.assertEqual(result.error, code)

    def test_legal_first_move(self):
        self.assertIsNone(self.mirror.validate_move(Move(1, 0, 0, 0)))

    def test_piece_and_board_errors(self):
        self.assertRejected(Move(99, 0, 0, 0), ErrorCode.INVALID_PIECE)
        self.assertRejected(Move(1, 5, 0, 0), ErrorCode.INVALID_ORIENTATION)
        self.assertRejected(Move(12, 0, 0, 17), ErrorCode.OUT_OF_BOUNDS)
        self.assertRejected(Move(1, 0, 5, 5), ErrorCode.ILLEGAL_PLACEMENT)
        self.mirror.state.players[0].used_pieces.add(1)
        self.assertRejected(Move(1, 0, 0, 0), ErrorCode.PIECE_USED)

    def test_turn_and_phase_errors(self):
        other = SyncReconciler("player-yellow", self.mirror.channel)
        other.load_snapshot(self.manager.get_snapshot("g1").model_dump())
        result = other.validate_move(Move(1, 0, 0, 19))
        self.assertEqual(result.error, ErrorCode.NOT_YOUR_TURN)

        self.mirror.paused = True
        self.assertRejected(Move(1, 0, 0, 0), ErrorCode.GAME_PAUSED)
        self.mirror.paused = False

        self.mirror.apply_optimistic(Move(1, 0, 0, 0))
        self.assertRejected(Move(2, 0, 1, 1), ErrorCode.NOT_YOUR_TURN)

    def test_no_state_yet(self):
        empty = SyncReconciler("player-red", self.mirror.channel)
        self.assertEqual(empty.validate_move(Move(1, 0, 0, 0)).error, ErrorCode.GAME_NOT_PLAYING)

    def test_creative_checks(self):
        self.mirror.creative = CreativeSnapshot(
            item_phase=ItemPhaseModel(player_id="player-red", remaining=5, duration=10)
        )
        self.assertRejected(Move(1, 0, 0, 0), ErrorCode.ITEM_PHASE_ACTIVE)

        self.mirror.creative = CreativeSnapshot(
            special_tiles=[SpecialTileModel(row=0, col=0, type="barrier")],
            players={
                "player-red": CreativePlayerSnapshot(
                    player_id="player-red",
                    color="red",
                    status_effects=[StatusEffectModel(type="big_piece_ban", remaining_turns=1)],
                )
            },
        )
        self.assertRejected(Move(12, 0, 0, 0), ErrorCode.PIECE_BANNED)
        self.assertRejected(Move(1, 0, 0, 0), ErrorCode.ILLEGAL_PLACEMENT)
        self.assertEqual(self.mirror.blocked_cells(), frozenset({(0, 0)}))


class TestOptimisticMoves(unittest.TestCase):
    """Own moves are applied at once and undone completely on failure."""

    def setUp(self):
        self.manager, self.session, self.transport, self.mirror = server_and_mirror()
        self.changes = []
        self.mirror.subscribe(self.changes.append)

    def submit(self, move):
        return asyncio.run(self.mirror.submit_move(move))

    def test_confirmed_move(self):
        result = self.submit(Move(1, 0, 0, 0))
        self.assertTrue(result.success)
        self.assertIsNone(self.mirror.pending)
        self.assertEqual(self.mirror.state.board.get_cell(Position(0, 0)), 1)
        self.assertEqual(self.mirror.state.current_player_index, 1)
        self.assertFalse(self.mirror.is_my_turn)
        self.assertEqual(summary(self.mirror.state), summary(self.session.scheduler.state))
        self.assertEqual(self.changes[0], "optimistic")

    def test_rejected_move_restores_everything(self):
        before = self.mirror.state.copy()
        self.transport.reject = {"success": False, "message": "Illegal placement", "error": "ILLEGAL_PLACEMENT"}
        result = self.submit(Move(1, 0, 0, 0))
        self.assertFalse(result.success)
        self.assertEqual(result.error, ErrorCode.ILLEGAL_PLACEMENT)
        self.assertEqual(self.mirror.state, before)
        self.assertIsNone(self.mirror.pending)
        self.assertEqual(self.changes, ["optimistic", "rollback"])

    def test_timeout_rolls_back_and_reconnects(self):
        before = self.mirror.state.copy()
        self.transport.silent = True
        result = self.submit(Move(1, 0, 0, 0))
        self.assertEqual(result.error, ErrorCode.NETWORK_ERROR)
        self.assertEqual(self.mirror.state, before)
        self.assertEqual(self.mirror.connection, ConnectionState.RECONNECTING)

        self.transport.silent = False
        self.assertTrue(asyncio.run(self.mirror.reconnect()))
        self.assertEqual(self.mirror.connection, ConnectionState.CONNECTED)
        self.assertEqual(self.mirror.game_id, "g1")

    def test_transport_down(self):
        before = self.mirror.state.copy()
        self.transport.online = False
        result = self.submit(Move(1, 0, 0, 0))
        self.assertEqual(result.error, ErrorCode.NETWORK_ERROR)
        self.assertEqual(self.mirror.state, before)
        self.assertEqual(self.mirror.connection, ConnectionState.RECONNECTING)

    def test_no_submit_while_reconnecting(self):
        self.mirror.mark_disconnected()
        result = self.submit(Move(1, 0, 0, 0))
        self.assertEqual(result.error, ErrorCode.NETWORK_ERROR)
        self.assertEqual(self.transport.sent, [])

    def test_pushes_while_pending_survive_rejection(self):
        """Red's clock runs out while the move is in flight; the server moves on to yellow."""
        def expire_turn(message):
            if message["type"] == "game.move":
                for _ in range(60):
                    self.session.scheduler.tick()

        self.transport.before_answer = expire_turn
        result = self.submit(Move(1, 0, 0, 0))

        self.assertEqual(result.error, ErrorCode.NOT_YOUR_TURN)
        self.assertIsNone(self.mirror.pending)
        self.assertEqual(self.mirror.state.current_player_index, 1)
        self.assertEqual(self.mirror.state.turn_count, 2)
        self.assertFalse(self.mirror.is_my_turn)
        self.assertTrue(self.mirror.state.board.is_empty(Position(0, 0)))
        self.assertEqual(summary(self.mirror.state), summary(self.session.scheduler.state))
        self.assertEqual(self.changes[-1], "rollback")

    def test_settle_and_presence_while_pending_survive_rollback(self):
        self.mirror.apply_optimistic(Move(1, 0, 0, 0))
        self.session.scheduler.set_offline("player-yellow", True)
        self.manager.settle("g1", "player-yellow")
        self.mirror.rollback("test")

        yellow = self.mirror.state.players[1]
        self.assertTrue(yellow.is_settled)
        self.assertTrue(yellow.is_offline)
        self.assertTrue(self.mirror.state.board.is_empty(Position(0, 0)))

    def test_snapshot_during_pending_move_becomes_rollback_point(self):
        self.mirror.apply_optimistic(Move(1, 0, 0, 0))
        self.session.scheduler.tick()
        self.mirror.load_snapshot(self.manager.get_snapshot("g1").model_dump())
        self.mirror.rollback("test")
        self.assertEqual(self.mirror.state.time_left, 59)
        self.assertTrue(self.mirror.state.board.is_empty(Position(0, 0)))
        self.assertIsNone(self.mirror.pending)


class TestServerPushes(unittest.TestCase):
    """Pushes overwrite the mirror by absolute value."""

    def setUp(self):
        self.manager, self.session, self.transport, self.mirror = server_and_mirror()

    def play(self, player_id, move, manager=None):
        request = MoveRequest(
            player_id=player_id,
            piece_id=move.piece_id,
            orientation=move.orientation,
            anchor_row=move.anchor_row,
            anchor_col=move.anchor_col,
        )
        response = (manager or self.manager).make_move("g1", request)
        self.assertTrue(response.success, response.message)

    def test_deltas_match_snapshot(self):
        """Following every delta gives the same mirror as loading the final snapshot."""
        for seed in (0, 1, 2):
            manager, session, _, mirror = server_and_mirror()
            rng = random.Random(seed)
            generator = LegalMoveGenerator()
            for _ in range(12):
                scheduler = session.scheduler
                if scheduler.is_finished:
                    break
                player = scheduler.current_player
                moves = generator.get_legal_moves(scheduler.state.board, player.color, player.available_piece_ids())
                self.play(player.player_id, rng.choice(moves), manager)

            fresh = SyncReconciler("player-red", mirror.channel)
            fresh.load_snapshot(manager.get_snapshot("g1").model_dump())
            self.assertEqual(summary(mirror.state), summary(fresh.state), f"seed {seed}")

    def test_time_ticks(self):
        self.session.scheduler.tick()
        self.assertEqual(self.mirror.state.time_left, 59)

        self.mirror.apply_time_update({"player_id": "player-red", "time_left": 50, "turn_count": 1})
        self.assertEqual(self.mirror.state.time_left, 59)
        self.mirror.apply_time_update({"player_id": "player-red", "time_left": 40, "turn_count": 0})
        self.assertEqual(self.mirror.state.time_left, 59)
        self.mirror.apply_time_update({"player_id": "player-red", "time_left": 57, "turn_count": 1})
        self.assertEqual(self.mirror.state.time_left, 57)

    def test_tick_from_newer_turn_is_accepted(self):
        self.mirror.state.time_left = 40
        self.mirror.apply_time_update({"player_id": "player-yellow", "time_left": 4, "turn_count": 2})
        self.assertEqual(self.mirror.state.time_left, 4)
        self.assertEqual(self.mirror.state.turn_count, 2)

        # the turn change for that turn still lands afterwards
        self.mirror.apply_turn_changed(
            {"player_id": "player-yellow", "current_player_index": 1, "turn_count": 2, "time_left": 5}
        )
        self.assertEqual(self.mirror.state.current_player_index, 1)
        self.assertEqual(self.mirror.state.time_left, 5)

    def test_stale_turn_change_ignored(self):
        self.play("player-red", Move(1, 0, 0, 0))
        self.assertEqual(self.mirror.state.turn_count, 2)
        self.mirror.apply_turn_changed(
            {"player_id": "player-red", "current_player_index": 0, "turn_count": 1, "time_left": 60}
        )
        self.assertEqual(self.mirror.state.current_player_index, 1)

    def test_pause_and_presence(self):
        self.manager.pause("g1")
        self.assertTrue(self.mirror.paused)
        self.manager.resume("g1")
        self.assertFalse(self.mirror.paused)
        self.session.scheduler.set_offline("player-yellow", True)
        self.assertTrue(self.mirror.state.players[1].is_offline)

    def test_frozen_after_finish(self):
        self.manager.settle("g1", "player-red")
        self.assertTrue(self.mirror.state.players[0].is_settled)
        self.manager.settle("g1", "player-yellow")

        self.assertTrue(self.mirror.frozen)
        self.assertEqual(self.mirror.state.phase, GamePhase.FINISHED)
        self.assertEqual(len(self.mirror.rankings), 2)
        self.assertEqual(self.mirror.validate_move(Move(1, 0, 0, 0)).error, ErrorCode.GAME_NOT_PLAYING)

        self.mirror.apply_time_update({"player_id": "player-red", "time_left": 1, "turn_count": 99})
        self.mirror.apply_turn_changed(
            {"player_id": "player-red", "current_player_index": 0, "turn_count": 99, "time_left": 60}
        )
        self.assertEqual(self.mirror.state.phase, GamePhase.FINISHED)
        self.assertNotEqual(self.mirror.state.turn_count, 99)

        self.mirror.load_snapshot(self.manager.get_snapshot("g1").model_dump())
        self.assertTrue(self.mirror.frozen)


class TestConnect(unittest.TestCase):

    def test_connect_applies_settings(self):
        manager = GameManager(use_timers=False)
        manager.create_game(GameConfig(players=[PlayerConfig(name="A"), PlayerConfig(name="B")], game_id="g2", first_player=0))
        transport = LoopbackTransport(manager, "g2")
        settings = GameSettings(request_timeout=0.5, time_tick_tolerance=5)
        mirror = SyncReconciler.connect("player-red", transport, settings)
        transport.channel = mirror.channel
        self.assertEqual(mirror.channel.timeout, 0.5)

        self.assertTrue(asyncio.run(mirror.reconnect()))
        self.assertEqual(mirror.state.time_left, 60)
        mirror.channel.handle_message(
            {"type": "game.timeUpdate", "data": {"player_id": "player-red", "time_left": 56, "turn_count": 1}}
        )
        self.assertEqual(mirror.state.time_left, 56)


if __name__ == '__main__':
    unittest.main()
