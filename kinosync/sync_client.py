import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urlsplit, urlunsplit

import websockets
from pydantic import ValidationError

from .config import settings
from .context import ContextBuilder
from .models import ConnectionState, Event, EventType, utc_now

logger = logging.getLogger(__name__)

# Opens a connection to the given URL. The result must support
# `await send(str)`, `await close()` and `async for message in conn`.
Connector = Callable[[str], Awaitable[Any]]


def event_stream_url(base_url: str, path: Optional[str] = None) -> str:
    """Event stream endpoint on the server's host, wss:// when the server is https."""
    parts = urlsplit(base_url)
    scheme = "wss" if parts.scheme in ("https", "wss") else "ws"
    return urlunsplit((scheme, parts.netloc, path or settings.EVENT_STREAM_PATH, "", ""))


def websocket_connector(url: str) -> Awaitable[Any]:
    # Liveness is handled by the application-level health exchange
    return websockets.connect(url, ping_interval=None, open_timeout=None)


class SyncClient:
    """
    Keeps a best-effort event stream open to the server.

    CONNECTING -> OPEN: push one context snapshot, then one every push_interval.
    OPEN -> CLOSED on close or transport error, disarming the push timer.
    CLOSED -> CONNECTING after reconnect_delay, forever, without backoff.

    At most one connection task, one push task and one reconnect timer exist
    at any time. Nothing here raises to the caller.
    """

    def __init__(
        self,
        builder: ContextBuilder,
        url: Optional[str] = None,
        push_interval: Optional[float] = None,
        reconnect_delay: Optional[float] = None,
        connector: Optional[Connector] = None,
    ):
        self.builder = builder
        self.url = url or event_stream_url(settings.SERVER_URL)
        self.push_interval = settings.PUSH_INTERVAL_SECONDS if push_interval is None else push_interval
        self.reconnect_delay = settings.RECONNECT_DELAY_SECONDS if reconnect_delay is None else reconnect_delay
        self.connector = connector or websocket_connector

        self.state = ConnectionState.CLOSED
        self.connection: Optional[Any] = None
        self.connect_attempts = 0
        self.pushes_sent = 0
        self.last_push_at: Optional[datetime] = None

        self._generation = 0
        self._conn_task: Optional[asyncio.Task] = None
        self._superseded_task: Optional[asyncio.Task] = None
        self._push_task: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._stopped = False
        self._done = asyncio.Event()

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    def start(self):
        self._stopped = False
        self._done.clear()
        self.connect()

    async def run(self):
        """Connect and keep reconnecting until stop() is called."""
        self.start()
        await self._done.wait()

    def connect(self):
        self._cancel_reconnect()
        if self._stopped:
            return

        self._disarm_push()
        previous = self._conn_task
        if previous is not None and not previous.done():
            # Superseded task closes its own socket and schedules nothing
            previous.cancel()
            self._superseded_task = previous
        else:
            previous = None

        self._generation += 1
        self.connection = None
        self.state = ConnectionState.CONNECTING
        self.connect_attempts += 1
        logger.info(f"Connecting to event stream at {self.url}")
        self._conn_task = asyncio.get_running_loop().create_task(self._run(self._generation, previous))

    async def stop(self):
        self._stopped = True
        self._cancel_reconnect()
        self._disarm_push()
        self._generation += 1

        task, self._conn_task = self._conn_task, None
        if task is not None and not task.done():
            self.state = ConnectionState.CLOSING
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        superseded, self._superseded_task = self._superseded_task, None
        if superseded is not None and not superseded.done():
            await asyncio.gather(superseded, return_exceptions=True)

        self.connection = None
        self.state = ConnectionState.CLOSED
        self._done.set()
        logger.info("Event stream stopped")

    async def send_context(self) -> bool:
        if self.state != ConnectionState.OPEN or self.connection is None:
            logger.info("Event stream not open, skipping client context update")
            return False

        try:
            snapshot = self.builder.build()
            event = Event(
                type=EventType.CLIENT_CONTEXT.value,
                payload=snapshot.model_dump(mode="json", by_alias=True),
            )
            await self.connection.send(event.model_dump_json())
        except Exception as e:
            logger.error(f"Failed to send client context: {e}", exc_info=True)
            return False

        self.pushes_sent += 1
        self.last_push_at = utc_now()
        logger.info(f"Sent client context update ({len(snapshot.viewing_history)} viewed items)")
        return True

    async def _run(self, generation: int, previous: Optional[asyncio.Task] = None):
        conn = None
        try:
            if previous is not None:
                # At most one live connection: let the old one finish closing first
                await asyncio.gather(previous, return_exceptions=True)
                if generation != self._generation:
                    return
            conn = await self.connector(self.url)
            if generation != self._generation:
                return

            self.connection = conn
            self.state = ConnectionState.OPEN
            logger.info("Event stream connected")
            await self.send_context()
            self._arm_push()

            async for message in conn:
                await self._handle_message(message)
            logger.info("Event stream closed by server")
        except Exception as e:
            # Handshake failures and transport errors both end in a close
            logger.warning(f"Event stream error: {e}")
        finally:
            if generation == self._generation:
                self.state = ConnectionState.CLOSING
            if conn is not None:
                await self._close_quietly(conn)
            if generation == self._generation:
                self._handle_close()

    def _handle_close(self):
        self._disarm_push()
        self.connection = None
        self.state = ConnectionState.CLOSED
        if self._stopped or self._reconnect_handle is not None:
            return

        logger.info(f"Event stream closed. Reconnecting in {self.reconnect_delay}s")
        self._reconnect_handle = asyncio.get_running_loop().call_later(self.reconnect_delay, self.connect)

    async def _handle_message(self, message: Any):
        try:
            event = Event.model_validate_json(message)
        except ValidationError as e:
            logger.warning(f"Dropping malformed event: {e}")
            return

        if event.type == EventType.HEALTH.value:
            await self._send_event(Event(type=EventType.HEALTH.value, payload={}))
        else:
            logger.debug(f"Ignoring event of type '{event.type}'")

    async def _send_event(self, event: Event):
        if self.connection is None:
            return
        try:
            await self.connection.send(event.model_dump_json())
        except Exception as e:
            logger.warning(f"Failed to send {event.type} event: {e}")

    def _arm_push(self):
        self._disarm_push()
        self._push_task = asyncio.get_running_loop().create_task(self._push_loop())

    def _disarm_push(self):
        if self._push_task is not None:
            self._push_task.cancel()
            self._push_task = None

    async def _push_loop(self):
        while True:
            await asyncio.sleep(self.push_interval)
            await self.send_context()

    def _cancel_reconnect(self):
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    @staticmethod
    async def _close_quietly(conn: Any):
        try:
            await conn.close()
        except Exception as e:
            logger.debug(f"Ignoring error while closing event stream: {e}")
