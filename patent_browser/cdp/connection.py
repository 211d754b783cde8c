"""
CDP WebSocket connection handler.

Multiplexes request/response pairs over a single WebSocket to a browser or
page DevTools endpoint. Writing and reading run as two independent tasks so a
backlogged write never delays delivery of responses that already arrived.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from patent_browser.config.defaults import WS_MAX_MESSAGE_SIZE
from patent_browser.exceptions import (
    CDPError,
    ConnectionFailedError,
    ResponseChannelClosedError,
)

logger = logging.getLogger(__name__)

_Outgoing = tuple[int, str, dict[str, Any], "asyncio.Future[Any]"]


class ConnectionState:
    """Identifier counter and pending-request table for one connection.

    Shared by the writer task, the reader task and every caller of
    ``CDPConnection.send``; all access goes through ``_lock``.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._next_id = 1
        self._pending: dict[int, asyncio.Future[Any]] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def allocate_id(self) -> int:
        async with self._lock:
            message_id = self._next_id
            self._next_id += 1
            return message_id

    async def register(self, message_id: int, future: asyncio.Future[Any]) -> bool:
        """Insert a response slot. Returns False once the state is closed."""
        async with self._lock:
            if self._closed:
                return False
            if message_id in self._pending:
                raise RuntimeError(f"Duplicate CDP message id {message_id}")
            self._pending[message_id] = future
            return True

    async def take(self, message_id: int) -> Optional[asyncio.Future[Any]]:
        """Remove and return the slot for *message_id* (first response wins)."""
        async with self._lock:
            return self._pending.pop(message_id, None)

    async def close(self) -> list[asyncio.Future[Any]]:
        """Mark closed and hand back every slot still waiting."""
        async with self._lock:
            self._closed = True
            futures = list(self._pending.values())
            self._pending.clear()
            return futures


class CDPConnection:
    """Manages the WebSocket connection to a CDP endpoint.

    Example:
        async with CDPConnection("ws://127.0.0.1:9222/devtools/page/xxx") as connection:
            result = await connection.send("Runtime.evaluate", {"expression": "1 + 1"})
    """

    def __init__(self, ws_url: str) -> None:
        """Initialize CDP connection.

        Args:
            ws_url: WebSocket URL to connect to.
        """
        self._ws_url = ws_url
        self._ws: Any = None
        self._state = ConnectionState()
        self._outbox: asyncio.Queue[_Outgoing] = asyncio.Queue()
        self._sender_task: Optional[asyncio.Task[None]] = None
        self._receiver_task: Optional[asyncio.Task[None]] = None
        self._connected = False
        self._closed = False

    @property
    def ws_url(self) -> str:
        """Get the WebSocket URL."""
        return self._ws_url

    @property
    def is_connected(self) -> bool:
        """Check if both loops are still running."""
        return (
            self._connected
            and self._sender_task is not None
            and not self._sender_task.done()
            and self._receiver_task is not None
            and not self._receiver_task.done()
        )

    @classmethod
    async def open(cls, ws_url: str) -> "CDPConnection":
        """Create a connection and connect it."""
        connection = cls(ws_url)
        await connection.connect()
        return connection

    async def connect(self) -> None:
        """Establish the WebSocket connection and start both loops.

        Raises:
            ConnectionFailedError: If the WebSocket handshake fails.
        """
        if self._connected:
            return

        if self._closed:
            raise RuntimeError("Connection was closed and cannot be reused")

        logger.debug(f"Connecting to CDP: {self._ws_url}")
        try:
            self._ws = await websockets.connect(
                self._ws_url,
                max_size=WS_MAX_MESSAGE_SIZE,
                ping_interval=30,
                ping_timeout=10,
            )
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            raise ConnectionFailedError(f"Failed to connect to {self._ws_url}: {e}") from e

        self._connected = True
        self._sender_task = asyncio.create_task(self._send_loop())
        self._receiver_task = asyncio.create_task(self._receive_loop())
        logger.debug("CDP connection established")

    async def send(
        self,
        method: str,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Send a CDP command and wait for its response.

        Args:
            method: CDP method name (e.g., "Page.navigate").
            params: Optional parameters for the method.

        Returns:
            The ``result`` member of the matching response.

        Raises:
            CDPError: If the browser answered with an error.
            ResponseChannelClosedError: If the connection ended first.
            RuntimeError: If never connected.
        """
        if not self._connected and not self._closed:
            raise RuntimeError("Not connected to CDP")
        if self._state.closed or self._closed:
            raise ResponseChannelClosedError(f"Connection closed before sending {method}")

        message_id = await self._state.allocate_id()
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        await self._outbox.put((message_id, method, params or {}, future))
        if self._sender_task is not None and self._sender_task.done():
            self._drain_outbox("Connection writer stopped")
        logger.debug(f"CDP queued: {method} (id={message_id})")

        return await future

    async def _send_loop(self) -> None:
        """Write queued commands, registering each slot before the write."""
        try:
            while True:
                message_id, method, params, future = await self._outbox.get()
                if future.done():
                    # caller gave up before the command went out
                    continue

                if not await self._state.register(message_id, future):
                    future.set_exception(
                        ResponseChannelClosedError(f"Connection closed before sending {method}")
                    )
                    continue

                payload = json.dumps({"id": message_id, "method": method, "params": params})
                try:
                    await self._ws.send(payload)
                except (ConnectionClosed, OSError) as e:
                    logger.error(f"Failed to send CDP command {method} (id={message_id}): {e}")
                    slot = await self._state.take(message_id)
                    if slot is not None and not slot.done():
                        slot.set_exception(
                            ResponseChannelClosedError(f"Failed to send {method}: {e}")
                        )
                    break

                logger.debug(f"CDP send: {method} (id={message_id})")
        except asyncio.CancelledError:
            pass
        finally:
            self._drain_outbox("Connection writer stopped")

    async def _receive_loop(self) -> None:
        """Read frames and resolve the matching pending slots."""
        try:
            async for message in self._ws:
                if not isinstance(message, str):
                    continue

                try:
                    data = json.loads(message)
                except json.JSONDecodeError:
                    logger.warning(f"Invalid JSON from CDP: {message[:100]}")
                    continue

                await self._handle_message(data)

        except ConnectionClosed:
            logger.debug("CDP WebSocket connection closed")
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.exception(f"CDP receive loop error: {e}")
        finally:
            for future in await self._state.close():
                if not future.done():
                    future.set_exception(
                        ResponseChannelClosedError("Connection closed while awaiting response")
                    )
            if self._sender_task is not None and not self._sender_task.done():
                self._sender_task.cancel()

    async def _handle_message(self, data: Any) -> None:
        """Resolve the slot a response frame belongs to; ignore anything else.

        Args:
            data: Parsed JSON message.
        """
        if not isinstance(data, dict):
            return

        message_id = data.get("id")
        if not isinstance(message_id, int) or isinstance(message_id, bool):
            # Events carry "method" and no id
            return

        future = await self._state.take(message_id)
        if future is None:
            logger.debug(f"Discarding response for unknown id {message_id}")
            return
        if future.done():
            return

        if "error" in data:
            error = data["error"] if isinstance(data["error"], dict) else {}
            future.set_exception(
                CDPError(
                    error.get("code", -1),
                    error.get("message", "unknown"),
                    error.get("data"),
                )
            )
        else:
            future.set_result(data.get("result", {}))

    def _drain_outbox(self, reason: str) -> None:
        while True:
            try:
                _, method, _, future = self._outbox.get_nowait()
            except asyncio.QueueEmpty:
                return
            if not future.done():
                future.set_exception(ResponseChannelClosedError(f"{reason} before sending {method}"))

    async def disconnect(self) -> None:
        """Close the WebSocket and stop both loops."""
        if not self._connected:
            return

        self._connected = False
        self._closed = True

        if self._ws is not None:
            try:
                await self._ws.close()
            except (ConnectionClosed, OSError) as e:
                logger.debug(f"Error closing CDP WebSocket: {e}")

        for task in (self._receiver_task, self._sender_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        logger.debug("CDP connection closed")

    async def __aenter__(self) -> "CDPConnection":
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.disconnect()
