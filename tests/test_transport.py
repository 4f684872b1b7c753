"""
Tests for the client message channel and the event bus.
"""

import asyncio
import unittest

from sync.transport import EventBus, NotConnectedError, RequestChannel, RequestTimeoutError, Transport, TransportError


class FakeTransport(Transport):
    """Records sent messages; optionally answers them right away."""

    def __init__(self, connected=True):
        self._connected = connected
        self.sent = []
        self.channel = None
        self.reply = None

    @property
    def connected(self):
        return self._connected

    async def send(self, message):
        self.sent.append(message)
        if self.reply is not None and self.channel is not None:
            response = {"type": "response", "request_id": message["request_id"], "data": self.reply}
            asyncio.get_running_loop().call_soon(self.channel.handle_message, response)


class TestEventBus(unittest.TestCase):

    def test_publish_reaches_subscribers(self):
        bus = EventBus()
        seen = []
        bus.subscribe("game.move", seen.append)
        self.assertEqual(bus.publish("game.move", {"n": 1}), 1)
        self.assertEqual(bus.publish("game.other", {"n": 2}), 0)
        self.assertEqual(seen, [{"n": 1}])

    def test_unsubscribe(self):
        bus = EventBus()
        seen = []
        unsubscribe = bus.subscribe("tick", seen.append)
        unsubscribe()
        unsubscribe()
        bus.publish("tick", {})
        self.assertEqual(seen, [])

    def test_failing_handler_does_not_stop_others(self):
        bus = EventBus()
        seen = []

        def broken(data):
            raise RuntimeError("boom")

        bus.subscribe("tick", broken)
        bus.subscribe("tick", seen.append)
        self.assertEqual(bus.publish("tick", {"t": 3}), 2)
        self.assertEqual(seen, [{"t": 3}])


class TestRequestChannel(unittest.TestCase):

    def test_request_gets_matching_response(self):
        async def scenario():
            transport = FakeTransport()
            channel = RequestChannel(transport, timeout=1.0)
            transport.channel = channel
            transport.reply = {"success": True}
            response = await channel.request("game.move", {"piece_id": 1})
            return transport, channel, response

        transport, channel, response = asyncio.run(scenario())
        self.assertEqual(response, {"success": True})
        self.assertEqual(channel.pending_count, 0)
        sent = transport.sent[0]
        self.assertEqual(sent["type"], "game.move")
        self.assertEqual(sent["data"], {"piece_id": 1})
        self.assertEqual(len(sent["request_id"]), 36)

    def test_request_ids_are_unique(self):
        async def scenario():
            transport = FakeTransport()
            channel = RequestChannel(transport)
            transport.channel = channel
            transport.reply = {}
            await channel.request("a", {})
            await channel.request("b", {})
            return transport

        transport = asyncio.run(scenario())
        ids = [m["request_id"] for m in transport.sent]
        self.assertNotEqual(ids[0], ids[1])

    def test_request_times_out(self):
        async def scenario():
            channel = RequestChannel(FakeTransport(), timeout=0.01)
            with self.assertRaises(RequestTimeoutError):
                await channel.request("game.move", {})
            return channel

        channel = asyncio.run(scenario())
        self.assertEqual(channel.pending_count, 0)

    def test_not_connected(self):
        transport = FakeTransport(connected=False)
        channel = RequestChannel(transport)
        with self.assertRaises(NotConnectedError):
            asyncio.run(channel.request("game.move", {}))
        self.assertEqual(transport.sent, [])

    def test_fail_all_rejects_pending(self):
        async def scenario():
            channel = RequestChannel(FakeTransport(), timeout=5.0)
            task = asyncio.ensure_future(channel.request("game.getState", {}))
            await asyncio.sleep(0)
            failed = channel.fail_all(TransportError("connection lost"))
            with self.assertRaises(TransportError):
                await task
            return failed

        self.assertEqual(asyncio.run(scenario()), 1)

    def test_pushes_go_to_the_bus(self):
        bus = EventBus()
        seen = []
        bus.subscribe("game.timeUpdate", seen.append)
        channel = RequestChannel(FakeTransport(), bus=bus)
        channel.handle_message({"type": "game.timeUpdate", "data": {"time_left": 12}})
        channel.handle_message({"type": "response", "request_id": "unknown", "data": {}})
        self.assertEqual(seen, [{"time_left": 12}])


if __name__ == '__main__':
    unittest.main()
