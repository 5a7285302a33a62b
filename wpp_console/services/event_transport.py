"""WebSocket event stream for one device session."""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed, InvalidStatus, WebSocketException

from wpp_console.config import settings
from wpp_console.core.exceptions import TransportConnectionError
from wpp_console.schemas.events import (
    ConnectionState,
    SubscribeFrame,
    TransportEvent,
    decode_frame,
    parse_event,
)
from wpp_console.services.event_journal import EventJournal

logger = logging.getLogger(__name__)

# Server closes with this code when the token is invalid
POLICY_VIOLATION = 1008

EventHandler = Callable[[TransportEvent], Awaitable[None] | None]
StateHandler = Callable[[ConnectionState, bool], Awaitable[None] | None]


class EventTransport:
    """Manages the event stream connection for a single device session.

    Every (re)connection subscribes to the session again. Lost connections are
    retried with exponential backoff; a policy-violation close (invalid
    token) is final.
    """

    def __init__(
        self,
        session_id: str,
        url: str,
        token: str | None = None,
        device_id: str | None = None,
        journal: EventJournal | None = None,
    ):
        self.session_id = session_id
        self.url = url
        self.token = token
        self.device_id = device_id or session_id
        self.journal = journal
        self.websocket = None
        self.reconnect_delay = settings.RECONNECT_INITIAL_DELAY
        self.max_reconnect_delay = settings.RECONNECT_MAX_DELAY
        self.running = True
        self.state = ConnectionState.DISCONNECTED
        self._connected_once = False
        self._event_handlers: list[EventHandler] = []
        self._state_handlers: list[StateHandler] = []

    def on_event(self, handler: EventHandler) -> None:
        """Register a callback invoked once per received event, in order."""
        self._event_handlers.append(handler)

    def on_state_change(self, handler: StateHandler) -> None:
        """Register a callback invoked with ``(state, reconnected)``."""
        self._state_handlers.append(handler)

    async def _set_state(self, state: ConnectionState, reconnected: bool = False) -> None:
        self.state = state
        for handler in list(self._state_handlers):
            try:
                result = handler(state, reconnected)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"State handler failed for session {self.session_id}: {e}")

    async def connect(self) -> Any:
        """Establish the WebSocket connection and subscribe to the session.

        Raises:
            TransportConnectionError: If the server rejects the credentials
        """
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        await self._set_state(ConnectionState.CONNECTING)

        try:
            self.websocket = await websockets.connect(
                self.url,
                additional_headers=headers,
                ping_interval=settings.WS_PING_INTERVAL,
                ping_timeout=settings.WS_PING_TIMEOUT,
            )
        except InvalidStatus as e:
            status_code = e.response.status_code
            if status_code in (401, 403):
                self.running = False
                await self._set_state(ConnectionState.REJECTED)
                raise TransportConnectionError(f"handshake rejected with HTTP {status_code}") from e
            raise

        await self.websocket.send(SubscribeFrame(session_id=self.session_id).to_json())
        self.reconnect_delay = settings.RECONNECT_INITIAL_DELAY  # Reset delay on successful connection

        reconnected = self._connected_once
        self._connected_once = True
        logger.info(f"Connected to event stream for session {self.session_id} (reconnected={reconnected})")
        await self._set_state(ConnectionState.CONNECTED, reconnected)
        return self.websocket

    async def handle_frame(self, raw: str | bytes) -> None:
        """Decode one frame and deliver it to every event handler."""
        try:
            frame = decode_frame(raw)
        except ValueError:
            logger.warning(f"Invalid JSON received: {str(raw)[:100]}")
            return

        if self.journal is not None:
            await self.journal.record(self.device_id, frame)

        event = parse_event(frame)
        logger.debug(f"Session {self.session_id} received event: {event.type}")

        for handler in list(self._event_handlers):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Event handler failed for {event.type} on session {self.session_id}: {e}")

    async def listen(self) -> None:
        """Receive events until closed, reconnecting on connection loss.

        Raises:
            TransportConnectionError: If the server rejects the session
        """
        while self.running:
            try:
                if self.websocket is None:
                    await self.connect()

                async for raw_message in self.websocket:
                    await self.handle_frame(raw_message)

                # Iteration ends quietly on a normal close
                close_code = self.websocket.close_code if self.websocket else None
                self.websocket = None
                await self._connection_lost(close_code, None)

            except TransportConnectionError:
                raise

            except ConnectionClosed as e:
                self.websocket = None
                code = e.rcvd.code if e.rcvd else None
                reason = e.rcvd.reason if e.rcvd else None
                await self._connection_lost(code, reason)

            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                logger.error(f"Event stream error for session {self.session_id}: {e}")
                self.websocket = None
                await self._connection_lost(None, str(e))

    async def _connection_lost(self, code: int | None, reason: str | None) -> None:
        if not self.running:
            return

        if code == POLICY_VIOLATION:
            self.running = False
            logger.error(f"Event stream rejected session {self.session_id}: {reason or 'invalid token'}")
            await self._set_state(ConnectionState.REJECTED)
            raise TransportConnectionError(f"rejected by server: {reason or 'invalid token'}")

        logger.warning(
            f"Event stream lost for session {self.session_id}: {code} - {reason}; "
            f"retrying in {self.reconnect_delay}s"
        )
        await self._set_state(ConnectionState.DISCONNECTED)
        await asyncio.sleep(self.reconnect_delay)
        self.reconnect_delay = min(self.reconnect_delay * 2, self.max_reconnect_delay)

    async def close(self) -> None:
        """Close the WebSocket connection."""
        self.running = False
        if self.websocket is not None:
            await self.websocket.close()
            self.websocket = None
            logger.info(f"Closed event stream for session {self.session_id}")
        await self._set_state(ConnectionState.CLOSED)
