"""
Kodi event-server client

Holds the raw TCP connection to Kodi's JSON-RPC notification port and hands
every notification (`System.OnQuit`, `Player.OnPlay`, ...) to a callback.
Messages arrive newline-delimited or simply concatenated.
"""
from __future__ import annotations

import asyncio
import codecs
import json
import logging
from typing import Any, Awaitable, Callable

from kodi_integration.services.session_types import Endpoint


logger = logging.getLogger(__name__)

MessageHandler = Callable[[str, dict[str, Any]], Awaitable[None]]
ClosedHandler = Callable[[], Awaitable[None]]

READ_CHUNK_SIZE = 4096
MAX_BUFFER_CHARS = 1024 * 1024


class JSONStreamDecoder:
    """Splits a character stream into JSON documents."""

    def __init__(self) -> None:
        self._decoder = json.JSONDecoder()
        self._buffer = ""

    @property
    def pending(self) -> str:
        return self._buffer

    def feed(self, text: str) -> list[Any]:
        """Append text and return every complete document decoded so far."""
        self._buffer += text
        documents: list[Any] = []
        while True:
            self._buffer = self._buffer.lstrip()
            if not self._buffer:
                break
            try:
                document, end = self._decoder.raw_decode(self._buffer)
            except json.JSONDecodeError as e:
                newline = self._buffer.find("\n", e.pos)
                if newline == -1:
                    if len(self._buffer) > MAX_BUFFER_CHARS:
                        logger.warning("Dropping %d undecodable characters from event stream", len(self._buffer))
                        self._buffer = ""
                    # Incomplete document, wait for more data
                    break
                logger.warning(f"Skipping malformed event-server message: {e.msg}")
                self._buffer = self._buffer[newline + 1:]
                continue
            documents.append(document)
            self._buffer = self._buffer[end:]
        return documents


class EventServerClient:
    """Reads notifications from the Kodi event server until closed."""

    def __init__(
        self,
        endpoint: Endpoint,
        on_message: MessageHandler,
        on_closed: ClosedHandler | None = None,
        *,
        connect_timeout: float = 5.0,
    ) -> None:
        self.endpoint = endpoint
        self._on_message = on_message
        self._on_closed = on_closed
        self._connect_timeout = connect_timeout
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._task: asyncio.Task | None = None
        self._closing = False

    @property
    def connected(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    async def open(self) -> bool:
        """Connect to the event server; returns False when it is unreachable."""
        host, port = self.endpoint.host, self.endpoint.port
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=self._connect_timeout,
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.warning(f"Kodi event server {host}:{port} unreachable: {type(e).__name__}: {e}")
            return False

        self._closing = False
        self._task = asyncio.create_task(self._read_loop(), name="kodi-event-server")
        logger.info(f"Connected to Kodi event server {host}:{port}")
        return True

    async def close(self) -> None:
        self._closing = True
        task, self._task = self._task, None
        # A handler may close the client from inside the read loop
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        writer, self._writer = self._writer, None
        self._reader = None
        if writer is not None:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError as e:
                logger.debug(f"Error while closing event server socket: {e}")
            logger.info("Kodi event server connection closed")

    async def _read_loop(self) -> None:
        decoder = JSONStreamDecoder()
        text_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        reader = self._reader
        try:
            while not self._closing and reader is not None:
                chunk = await reader.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                for message in decoder.feed(text_decoder.decode(chunk)):
                    await self._dispatch(message)
                    if self._closing:
                        return
        except (ConnectionError, OSError) as e:
            logger.warning(f"Kodi event server connection lost: {e}")

        if not self._closing:
            logger.warning("Kodi event server closed the connection")
            if self._on_closed is not None:
                await self._on_closed()

    async def _dispatch(self, message: Any) -> None:
        if not isinstance(message, dict) or message.get("jsonrpc") != "2.0" or "method" not in message:
            logger.debug(f"Ignoring event-server message: {message!r}")
            return

        method = message["method"]
        params = message.get("params") or {}
        logger.debug(f"Event-server notification: {method}")
        try:
            await self._on_message(method, params)
        except Exception as e:
            logger.error(f"Exception while handling {method}: {e}", exc_info=True)
