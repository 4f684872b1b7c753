"""
Tests for the REST and WebSocket endpoints.
"""

import asyncio
import json
import unittest

from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

import webapi.app as server
from schemas.game_config import GameConfig, PlayerConfig
from webapi.game_manager import GameManager

server.game_manager.use_timers = False
client = TestClient(server.app)


def create_game(**overrides):
    config = {
        "players": [{"name": "Alice"}, {"name": "Bob"}],
        "first_player": 0,
        "ai_proxy": False,
    }
    config.update(overrides)
    response = client.post("/api/games", json=config)
    assert response.status_code == 200, response.text
    return response.json()


def move_body(player_id, piece_id, row, col, orientation=0):
    return {
        "player_id": player_id,
        "piece_id": piece_id,
        "orientation": orientation,
        "anchor_row": row,
        "anchor_col": col,
    }


class TestRestApi(unittest.TestCase):

    def test_root(self):
        response = client.get("/")
        self.assertEqual(response.status_code, 200)
        self.assertIn("create_game", response.json()["endpoints"])

    def test_create_and_fetch(self):
        created = create_game()
        state = created["game_state"]
        self.assertEqual(state["phase"], "playing")
        self.assertEqual(state["mode"], "classic")
        self.assertEqual([p["color"] for p in state["players"]], ["red", "yellow"])
        self.assertTrue(state["players"][0]["is_current_turn"])
        self.assertIsNone(state["creative"])

        fetched = client.get(f"/api/games/{created['game_id']}").json()
        self.assertEqual(fetched["turn_count"], 1)
        self.assertEqual(len(fetched["board"]), 20)

    def test_creative_game(self):
        state = create_game(mode="creative", seed=11)["game_state"]
        self.assertEqual(state["mode"], "creative")
        tiles = state["creative"]["special_tiles"]
        self.assertTrue(10 <= len(tiles) <= 14)
        self.assertEqual(set(state["creative"]["players"]), {"player-red", "player-yellow"})

    def test_unknown_game(self):
        response = client.get("/api/games/does-not-exist")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"], "HTTP Error")

        response = client.post("/api/games/does-not-exist/move", json=move_body("player-red", 1, 0, 0))
        self.assertEqual(response.status_code, 404)

    def test_duplicate_game_id(self):
        create_game(game_id="dup-game")
        response = client.post("/api/games", json={"players": [{"name": "A"}, {"name": "B"}], "game_id": "dup-game"})
        self.assertEqual(response.status_code, 400)

    def test_invalid_config(self):
        response = client.post("/api/games", json={"players": [{"name": "Solo"}]})
        self.assertEqual(response.status_code, 422)

    def test_moves(self):
        game_id = create_game()["game_id"]
        response = client.post(f"/api/games/{game_id}/move", json=move_body("player-red", 1, 0, 0)).json()
        self.assertTrue(response["success"])
        self.assertEqual(response["data"]["score"], 1)

        again = client.post(f"/api/games/{game_id}/move", json=move_body("player-red", 2, 1, 1)).json()
        self.assertFalse(again["success"])
        self.assertEqual(again["error"], "NOT_YOUR_TURN")

        illegal = client.post(f"/api/games/{game_id}/move", json=move_body("player-yellow", 1, 5, 5)).json()
        self.assertEqual(illegal["error"], "ILLEGAL_PLACEMENT")

        snapshot = client.get(f"/api/games/{game_id}").json()
        self.assertEqual(snapshot["players"][0]["used_pieces"], [1])
        self.assertEqual(snapshot["current_player_index"], 1)
        self.assertEqual(snapshot["move_count"], 1)

    def test_move_payload_validation(self):
        game_id = create_game()["game_id"]
        response = client.post(f"/api/games/{game_id}/move", json=move_body("player-red", 30, 0, 0))
        self.assertEqual(response.status_code, 422)

    def test_pause_resume(self):
        game_id = create_game()["game_id"]
        self.assertTrue(client.post(f"/api/games/{game_id}/pause").json()["success"])
        paused = client.post(f"/api/games/{game_id}/move", json=move_body("player-red", 1, 0, 0)).json()
        self.assertEqual(paused["error"], "GAME_PAUSED")
        self.assertTrue(client.get(f"/api/games/{game_id}").json()["paused"])
        self.assertTrue(client.post(f"/api/games/{game_id}/resume").json()["success"])

    def test_settle_and_history(self):
        game_id = create_game()["game_id"]
        self.assertEqual(client.get(f"/api/games/{game_id}/history").status_code, 404)

        client.post(f"/api/games/{game_id}/move", json=move_body("player-red", 12, 0, 0))
        for player_id in ("player-red", "player-yellow"):
            response = client.post(f"/api/games/{game_id}/settle", json={"player_id": player_id}).json()
            self.assertTrue(response["success"])

        self.assertEqual(client.get(f"/api/games/{game_id}").json()["phase"], "finished")
        history = client.get(f"/api/games/{game_id}/history").json()
        self.assertEqual(history["winner_ids"], ["player-red"])
        self.assertEqual([r["score"] for r in history["results"]], [5, 0])
        self.assertEqual(history["move_count"], 1)

    def test_item_endpoints_in_classic_game(self):
        game_id = create_game()["game_id"]
        skip = client.post(f"/api/games/{game_id}/items/skip", json={"player_id": "player-red"}).json()
        self.assertEqual(skip["error"], "NO_ITEM_PHASE")
        use = client.post(f"/api/games/{game_id}/items", json={"player_id": "player-red", "card_index": 0}).json()
        self.assertFalse(use["success"])


class TestWebSocket(unittest.TestCase):

    def receive_until_response(self, websocket, limit=10):
        """Messages up to and including the next response, in arrival order."""
        messages = []
        for _ in range(limit):
            message = websocket.receive_json()
            messages.append(message)
            if message["type"] == "response":
                break
        return messages

    def test_initial_state_and_ping(self):
        game_id = create_game()["game_id"]
        with client.websocket_connect(f"/ws/games/{game_id}?player_id=player-red") as websocket:
            first = websocket.receive_json()
            self.assertEqual(first["type"], "game.state")
            self.assertEqual(first["data"]["game_id"], game_id)

            websocket.send_text(json.dumps({"type": "ping"}))
            self.assertEqual(websocket.receive_json(), {"type": "pong"})

    def test_get_state_request(self):
        game_id = create_game()["game_id"]
        with client.websocket_connect(f"/ws/games/{game_id}?player_id=player-red") as websocket:
            websocket.receive_json()
            websocket.send_text(json.dumps({"type": "game.getState", "request_id": "r1", "data": {}}))
            response = self.receive_until_response(websocket)[-1]
            self.assertEqual(response["request_id"], "r1")
            self.assertTrue(response["data"]["success"])
            self.assertEqual(response["data"]["data"]["game_id"], game_id)

    def test_move_over_websocket(self):
        game_id = create_game()["game_id"]
        with client.websocket_connect(f"/ws/games/{game_id}?player_id=player-red") as websocket:
            websocket.receive_json()
            websocket.send_text(json.dumps({
                "type": "game.move",
                "request_id": "m1",
                "data": move_body("player-red", 1, 0, 0),
            }))
            messages = self.receive_until_response(websocket)
            response = messages[-1]
            self.assertEqual(response["request_id"], "m1")
            self.assertTrue(response["data"]["success"])

            types = [m["type"] for m in messages[:-1]]
            while "game.turnChanged" not in types and len(types) < 10:
                types.append(websocket.receive_json()["type"])
            self.assertIn("game.turnChanged", types)

    def test_bad_message(self):
        game_id = create_game()["game_id"]
        with client.websocket_connect(f"/ws/games/{game_id}") as websocket:
            websocket.receive_json()
            websocket.send_text("not json")
            error = websocket.receive_json()
            self.assertEqual(error["type"], "error")

    def test_unknown_game(self):
        with client.websocket_connect("/ws/games/nope") as websocket:
            message = websocket.receive_json()
            self.assertEqual(message["type"], "error")
            self.assertEqual(message["data"]["error"], "Game not found")


class RecordingSocket:
    """Stands in for a FastAPI WebSocket; ``fail_reads`` makes receive_text raise."""

    def __init__(self, fail_reads=False):
        self.sent = []
        self.fail_reads = fail_reads

    async def accept(self):
        pass

    async def close(self):
        pass

    async def send_text(self, text):
        self.sent.append(json.loads(text))

    async def receive_text(self):
        if self.fail_reads:
            raise RuntimeError("connection reset")
        raise WebSocketDisconnect(code=1000)


def two_player_config(game_id):
    return GameConfig(
        players=[PlayerConfig(name="Alice"), PlayerConfig(name="Bob")],
        game_id=game_id,
        first_player=0,
        ai_proxy=False,
    )


class TestConnections(unittest.TestCase):
    """Socket bookkeeping in the game manager."""

    def test_unexpected_socket_error_still_disconnects(self):
        game_id = create_game()["game_id"]
        session = server.game_manager.get_session(game_id)
        socket = RecordingSocket(fail_reads=True)

        with self.assertRaises(RuntimeError):
            asyncio.run(server.websocket_endpoint(socket, game_id, "player-red"))

        self.assertEqual(socket.sent[0]["type"], "game.state")
        self.assertNotIn("player-red", session.connections)
        self.assertTrue(session.scheduler.state.players[0].is_offline)

    def test_closed_socket_disconnects(self):
        game_id = create_game()["game_id"]
        session = server.game_manager.get_session(game_id)
        asyncio.run(server.websocket_endpoint(RecordingSocket(), game_id, "player-yellow"))
        self.assertEqual(session.sockets(), [])
        self.assertTrue(session.scheduler.state.players[1].is_offline)

    def test_broadcast_tasks_are_kept_until_done(self):
        manager = GameManager(use_timers=False)
        manager.create_game(two_player_config("bcast"))
        socket = RecordingSocket()
        manager.connect("bcast", socket, "player-red")

        async def run_test():
            manager.pause("bcast")
            self.assertEqual(len(manager._broadcasts), 1)
            for _ in range(3):
                await asyncio.sleep(0)
            self.assertEqual(len(manager._broadcasts), 0)

        asyncio.run(run_test())
        self.assertEqual(socket.sent[-1]["type"], "game.paused")

    def test_idle_games_are_removed(self):
        manager = GameManager(use_timers=False)
        old = manager.create_game(two_player_config("idle"))
        old.last_updated -= 25 * 3600

        manager.create_game(two_player_config("fresh"))
        self.assertIsNone(manager.get_session("idle"))
        self.assertIsNotNone(manager.get_session("fresh"))
        self.assertEqual(old.scheduler.listeners, [])


if __name__ == '__main__':
    unittest.main()
