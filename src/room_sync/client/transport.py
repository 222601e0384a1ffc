"""
Transport Session

Owns the one live connection to the active room and runs its lifecycle:
connect, reconnect with exponential backoff, and clean teardown.

Each connection attempt gets a new generation number and its own
``Channel``. The channel reports what happens to it as a single stream of
``TransportEvent`` values which the session consumes sequentially. When an
attempt is superseded (manual close, new room, reconnect) its stream is
abandoned wholesale, and anything it still yields is discarded because its
generation no longer matches.

Status transitions::

    IDLE -> CONNECTING -> OPEN | RECONNECTING | FAILED
    OPEN -> CLOSING -> IDLE          (manual close)
    OPEN -> RECONNECTING             (abnormal close)
    RECONNECTING -> CONNECTING       (backoff timer fired)
"""

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Callable, Optional, Set, Union
from urllib.parse import quote, urlsplit, urlunsplit

import aiohttp

from ..config import ReconnectPolicy
from ..core.errors import (
    ABNORMAL_CLOSE_CODE,
    MANUAL_CLOSE_CODE,
    AbnormalClose,
    ConnectFault,
    ReconnectExhausted,
    is_manual_close,
)
from ..core.events import Closed, Faulted, FrameReceived, Opened, TransportEvent
from ..core.models import ConnectionState, ConnectionStatus, OutboundFrame
from .scheduler import Cancellable, LoopScheduler, Scheduler

logger = logging.getLogger(__name__)

# Default timeout in seconds for the websocket handshake and close
DEFAULT_CONNECT_TIMEOUT = 10.0
CLOSE_TIMEOUT = 5.0

LIVE_STATUSES = (
    ConnectionStatus.CONNECTING,
    ConnectionStatus.OPEN,
    ConnectionStatus.RECONNECTING,
)


def build_endpoint(base_url: str, room_id: int, token: str) -> str:
    """Websocket endpoint for a room, authenticated by a token parameter"""
    return f"{base_url.rstrip('/')}/chats/{room_id}/ws?token={quote(token, safe='')}"


def redact_url(url: str) -> str:
    """Drop the query string so tokens never reach the logs"""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def handshake_error_detail(error: BaseException) -> str:
    # response errors embed the request URL, token included
    if isinstance(error, aiohttp.ClientResponseError):
        return f"{error.status} {error.message}"
    return str(error) or type(error).__name__


class Channel(ABC):
    """One connection attempt"""

    @abstractmethod
    def events(self) -> AsyncIterator[TransportEvent]:
        """Stream of what happens to this connection, ending with ``Closed``"""

    @abstractmethod
    def send(self, data: str) -> None:
        """Queue a text frame; never blocks"""

    @abstractmethod
    async def close(self, code: int = MANUAL_CLOSE_CODE, reason: str = "") -> None:
        """Close the connection with the given close code"""


class Connector(ABC):
    """Creates channels for endpoint URLs"""

    @abstractmethod
    def open_channel(self, url: str) -> Channel:
        ...


class WebSocketChannel(Channel):
    """
    Channel over an aiohttp websocket.

    The handshake happens when ``events()`` is first iterated. Outbound
    frames are queued by ``send()`` and written by a background writer task
    for as long as the connection is up.
    """

    def __init__(
        self,
        url: str,
        heartbeat: Optional[float] = None,
        timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ) -> None:
        self.url = url
        self.heartbeat = heartbeat
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._outbox: "asyncio.Queue[str]" = asyncio.Queue()
        self._broken = False

    async def events(self) -> AsyncIterator[TransportEvent]:
        self._session = aiohttp.ClientSession()
        try:
            try:
                self._ws = await asyncio.wait_for(
                    self._session.ws_connect(self.url, heartbeat=self.heartbeat),
                    timeout=self.timeout,
                )
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                detail = handshake_error_detail(e)
                logger.debug(f"Websocket handshake with {redact_url(self.url)} failed: {detail}")
                yield Faulted(ConnectFault(f"Failed to connect to {redact_url(self.url)}: {detail}"))
                yield Closed(ABNORMAL_CLOSE_CODE, detail)
                return

            yield Opened()

            code, reason = ABNORMAL_CLOSE_CODE, "Connection lost"
            writer = asyncio.create_task(self._write_loop())
            try:
                while True:
                    msg = await self._ws.receive()
                    if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                        yield FrameReceived(msg.data)
                    elif msg.type == aiohttp.WSMsgType.CLOSE:
                        code, reason = msg.data, msg.extra or ""
                        break
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        yield Faulted(AbnormalClose(ABNORMAL_CLOSE_CODE, str(self._ws.exception())))
                        break
                    else:
                        # CLOSING / CLOSED without a close frame from the peer
                        break
            finally:
                writer.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await writer

            yield Closed(code, reason)
        finally:
            await self._cleanup()

    def send(self, data: str) -> None:
        if self._broken:
            raise ConnectionError("Websocket writer has stopped")
        self._outbox.put_nowait(data)

    async def close(self, code: int = MANUAL_CLOSE_CODE, reason: str = "") -> None:
        if self._ws is not None and not self._ws.closed:
            try:
                await asyncio.wait_for(
                    self._ws.close(code=code, message=reason.encode("utf-8")),
                    timeout=CLOSE_TIMEOUT,
                )
            except asyncio.TimeoutError:
                logger.warning("Websocket close timed out")
        await self._cleanup()

    async def _write_loop(self) -> None:
        while True:
            data = await self._outbox.get()
            try:
                await self._ws.send_str(data)
            except (aiohttp.ClientError, ConnectionError) as e:
                logger.warning(f"Failed to write frame: {e}")
                self._broken = True
                return

    async def _cleanup(self) -> None:
        if self._ws is not None and not self._ws.closed:
            try:
                await asyncio.wait_for(self._ws.close(), timeout=CLOSE_TIMEOUT)
            except asyncio.TimeoutError:
                logger.warning("Websocket close timed out")
            except Exception as e:
                logger.warning(f"Error closing websocket: {e}")
        if self._session is not None and not self._session.closed:
            await self._session.close()


class WebSocketConnector(Connector):
    """Connector producing aiohttp websocket channels"""

    def __init__(self, heartbeat: Optional[float] = None, timeout: float = DEFAULT_CONNECT_TIMEOUT):
        self.heartbeat = heartbeat
        self.timeout = timeout

    def open_channel(self, url: str) -> Channel:
        return WebSocketChannel(url, heartbeat=self.heartbeat, timeout=self.timeout)


class TransportSession:
    """
    Live connection to a single room.

    Must be driven from a running event loop: ``open`` and ``close`` start
    background tasks and return immediately. Progress is reported through
    ``on_event`` (every transport event of the current generation, after the
    session has updated its own state) and ``on_status`` (every status change).

    Usage:
        session = TransportSession(WebSocketConnector(), "ws://localhost:8080")
        session.open(42, token)
        ...
        session.send(OutboundFrame(content="hi"))
        session.close()
        await session.wait_closed()
    """

    def __init__(
        self,
        connector: Connector,
        endpoint: str,
        scheduler: Optional[Scheduler] = None,
        policy: Optional[ReconnectPolicy] = None,
        on_event: Optional[Callable[[TransportEvent], None]] = None,
        on_status: Optional[Callable[[ConnectionState], None]] = None,
    ) -> None:
        self.connector = connector
        self.endpoint = endpoint
        self.scheduler = scheduler or LoopScheduler()
        self.policy = policy or ReconnectPolicy()
        self.on_event = on_event
        self.on_status = on_status

        self.state = ConnectionState()
        self._generation = 0
        self._token: Optional[str] = None
        self._channel: Optional[Channel] = None
        self._task: Optional[asyncio.Task] = None
        self._timer: Optional[Cancellable] = None
        self._teardowns: Set[asyncio.Task] = set()

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def status(self) -> ConnectionStatus:
        return self.state.status

    @property
    def room_id(self) -> Optional[int]:
        return self.state.room_id

    @property
    def is_open(self) -> bool:
        return self.state.is_open

    @property
    def is_live(self) -> bool:
        """True while connected or still trying to connect"""
        return self.state.status in LIVE_STATUSES

    def open(self, room_id: Optional[int], auth_token: Optional[str]) -> None:
        """Connect to a room, superseding any live connection.

        Does nothing unless both a room id and a token are given.
        """
        if not room_id or not auth_token:
            logger.debug("Ignoring open without a room id and auth token")
            return

        if self.is_live:
            self.close("superseded")

        self._token = auth_token
        self.state.room_id = room_id
        self.state.reconnect_attempt = 0
        self.state.last_error = None
        self._connect()

    def close(self, reason: str = "Manual disconnect") -> None:
        """Close the connection and stop any automatic reconnection"""
        self._cancel_timer()
        self._generation += 1

        channel, task = self._channel, self._task
        self._channel = None
        self._task = None

        if channel is not None or task is not None:
            self._set_status(ConnectionStatus.CLOSING)
            teardown = asyncio.get_running_loop().create_task(
                self._teardown(channel, task, reason)
            )
            self._teardowns.add(teardown)
            teardown.add_done_callback(self._teardowns.discard)

        if self.state.status != ConnectionStatus.IDLE:
            logger.info(f"Closed transport for room {self.state.room_id} ({reason})")

        self.state.room_id = None
        self.state.reconnect_attempt = 0
        self._set_status(ConnectionStatus.IDLE)

    def send(self, frame: Union[OutboundFrame, str]) -> bool:
        """Hand a frame to the transport; False if the session is not open"""
        if self.state.status != ConnectionStatus.OPEN or self._channel is None:
            logger.debug(f"Send rejected: transport is {self.state.status.value}")
            return False

        data = frame if isinstance(frame, str) else frame.to_json()
        try:
            self._channel.send(data)
        except Exception as e:
            logger.warning(f"Failed to queue frame: {e}")
            return False
        return True

    async def wait_closed(self) -> None:
        """Wait until superseded channels have been torn down"""
        while self._teardowns:
            await asyncio.gather(*list(self._teardowns), return_exceptions=True)

    def _connect(self) -> None:
        self._generation += 1
        generation = self._generation
        url = build_endpoint(self.endpoint, self.state.room_id, self._token)

        self._channel = self.connector.open_channel(url)
        self._task = asyncio.get_running_loop().create_task(
            self._run(generation, self._channel)
        )
        logger.info(
            f"Connecting to {redact_url(url)} (generation {generation}, "
            f"attempt {self.state.reconnect_attempt})"
        )
        self._set_status(ConnectionStatus.CONNECTING)

    async def _run(self, generation: int, channel: Channel) -> None:
        """Consume one channel's event stream until it closes or is superseded"""
        try:
            async with contextlib.aclosing(channel.events()) as stream:
                async for event in stream:
                    if generation != self._generation:
                        logger.debug(
                            f"Discarding {type(event).__name__} from stale generation {generation}"
                        )
                        return
                    self._apply(event)
                    if isinstance(event, Closed):
                        return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if generation != self._generation:
                return
            logger.warning(f"Transport stream failed: {e}")
            self._apply(Faulted(e))
            self._apply(Closed(ABNORMAL_CLOSE_CODE, str(e)))
            return

        if generation == self._generation:
            self._apply(Closed(ABNORMAL_CLOSE_CODE, "Event stream ended"))

    def _apply(self, event: TransportEvent) -> None:
        if isinstance(event, Opened):
            self.state.reconnect_attempt = 0
            self.state.last_error = None
            logger.info(f"Transport open for room {self.state.room_id}")
            self._set_status(ConnectionStatus.OPEN)

        elif isinstance(event, Faulted):
            self.state.last_error = event.error
            logger.warning(f"Transport fault for room {self.state.room_id}: {event.error}")

        elif isinstance(event, Closed):
            was_open = self.state.status == ConnectionStatus.OPEN
            self._channel = None
            self._task = None

            if is_manual_close(event.code):
                logger.info(f"Transport for room {self.state.room_id} closed normally")
                self.state.reconnect_attempt = 0
                self._set_status(ConnectionStatus.IDLE)
            else:
                if was_open:
                    self.state.last_error = AbnormalClose(event.code, event.reason)
                elif not isinstance(self.state.last_error, ConnectFault):
                    self.state.last_error = ConnectFault(
                        event.reason or f"Connection closed during handshake (code={event.code})"
                    )
                self._schedule_reconnect()

        self._emit(event)

    def _schedule_reconnect(self) -> None:
        attempt = self.state.reconnect_attempt
        if attempt >= self.policy.max_attempts:
            self.state.last_error = ReconnectExhausted(attempt)
            logger.error(
                f"Giving up on room {self.state.room_id} after {attempt} reconnect attempts"
            )
            self._set_status(ConnectionStatus.FAILED)
            return

        delay = self.policy.delay_for(attempt)
        self.state.reconnect_attempt = attempt + 1
        generation = self._generation
        self._timer = self.scheduler.call_later(delay, lambda: self._reconnect(generation))
        logger.info(
            f"Reconnecting to room {self.state.room_id} in {delay}s "
            f"(attempt {self.state.reconnect_attempt})"
        )
        self._set_status(ConnectionStatus.RECONNECTING)

    def _reconnect(self, generation: int) -> None:
        if generation != self._generation or self.state.status != ConnectionStatus.RECONNECTING:
            return
        self._timer = None
        self._connect()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _teardown(
        self, channel: Optional[Channel], task: Optional[asyncio.Task], reason: str
    ) -> None:
        try:
            if channel is not None:
                await channel.close(MANUAL_CLOSE_CODE, reason)
        except Exception as e:
            logger.warning(f"Error closing channel: {e}")
        finally:
            if task is not None and not task.done():
                task.cancel()
                try:
                    await asyncio.wait_for(task, timeout=CLOSE_TIMEOUT)
                except (asyncio.TimeoutError, asyncio.CancelledError):
                    pass

    def _set_status(self, status: ConnectionStatus) -> None:
        if self.state.status == status:
            return
        self.state.status = status
        if self.on_status is not None:
            try:
                self.on_status(self.state)
            except Exception:
                logger.exception("Status listener failed")

    def _emit(self, event: TransportEvent) -> None:
        if self.on_event is not None:
            try:
                self.on_event(event)
            except Exception:
                logger.exception(f"Transport event handler failed on {type(event).__name__}")
