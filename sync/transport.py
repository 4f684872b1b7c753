"""
Client-side messaging: request/response with correlation ids and a
subscriber bus for server pushes.

Every request carries a UUID4 ``request_id``; the matching ``response``
resolves the waiting future. Requests that get no reply within the timeout
are rejected with ``RequestTimeoutError``. Anything that is not a response
is published on the ``EventBus`` under its event name.
"""

import asyncio
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any]], None]

DEFAULT_REQUEST_TIMEOUT = 10.0


class TransportError(Exception):
    """Base class for messaging failures."""


class RequestTimeoutError(TransportError):
    """No response arrived before the request timed out."""


class NotConnectedError(TransportError):
    """The transport is down; the request was not sent."""


class Transport:
    """
    Outgoing half of a connection. Incoming messages are fed to
    ``RequestChannel.handle_message`` by whoever owns the socket.
    """

    @property
    def connected(self) -> bool:
        raise NotImplementedError

    async def send(self, message: Dict[str, Any]) -> None:
        raise NotImplementedError


class EventBus:
    """Named-event subscriptions. A failing handler never stops the others."""

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = {}

    def subscribe(self, event: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for ``event``; returns an unsubscribe function."""
        self._handlers.setdefault(event, []).append(handler)

        def unsubscribe():
            handlers = self._handlers.get(event, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, event: str, data: Dict[str, Any]) -> int:
        """
        Deliver ``data`` to every handler of ``event``.

        Returns:
            Number of handlers called
        """
        handlers = list(self._handlers.get(event, []))
        for handler in handlers:
            try:
                handler(data)
            except Exception as e:
                logger.error(f"Handler for {event} failed: {e}", exc_info=True)
        return len(handlers)


class RequestChannel:
    """Correlated request/response over a ``Transport``."""

    def __init__(
        self,
        transport: Transport,
        bus: Optional[EventBus] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        self.transport = transport
        self.bus = bus or EventBus()
        self.timeout = timeout
        self._pending: Dict[str, asyncio.Future] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def request(self, event: str, data: Dict[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Send ``event`` and wait for its response.

        Args:
            event: Event name, e.g. ``game.move``
            data: Request payload
            timeout: Seconds to wait; defaults to the channel timeout

        Returns:
            The response payload

        Raises:
            NotConnectedError: The transport is down
            RequestTimeoutError: No response in time
        """
        if not self.transport.connected:
            raise NotConnectedError(f"Cannot send {event}: not connected")

        request_id = str(uuid.uuid4())
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self.transport.send({"type": event, "request_id": request_id, "data": data})
            return await asyncio.wait_for(future, timeout=timeout or self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Request {event} ({request_id}) timed out")
            raise RequestTimeoutError(f"{event} timed out") from None
        finally:
            self._pending.pop(request_id, None)

    def handle_message(self, message: Dict[str, Any]) -> None:
        """Route one incoming message to its waiting request or to the bus."""
        message_type = message.get("type")
        data = message.get("data") or {}
        if message_type == "response":
            future = self._pending.get(message.get("request_id"))
            if future is None:
                logger.debug(f"Response for unknown request {message.get('request_id')} dropped")
                return
            if not future.done():
                future.set_result(data)
            return
        if message_type:
            self.bus.publish(message_type, data)

    def fail_all(self, error: TransportError) -> int:
        """Reject every waiting request (used when the connection drops)."""
        failed = 0
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
                failed += 1
        if failed:
            logger.error(f"Rejected {failed} pending requests: {error}")
        return failed
