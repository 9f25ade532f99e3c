#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
YeelightConnection -- A long-lived TCP command connection to one appliance that:

  1. Assigns increasing request ids and writes line-delimited JSON requests
  2. Runs a single read loop task that decodes every incoming line and either resolves
     the pending command with the matching id, or offers the line to notification
     streams if it is an unsolicited notification
  3. Tears down the socket, the read loop, and every pending command together, exactly once,
     whether the connection is closed by the caller, by the appliance, or by an I/O error

Results are matched to requests only by id; the appliance may reply out of order.
"""

from __future__ import annotations

import asyncio
from asyncio import Future
from enum import Enum

from .internal_types import *
from .pkg_logging import logger
from .constants import (
    DEFAULT_COMMAND_PORT,
    DEFAULT_TIMEOUT,
    DEFAULT_CONNECT_TIMEOUT,
    MAX_LINE_LENGTH,
  )
from .exceptions import (
    YeelightError,
    DialError,
    CommandTimeoutError,
    ApplianceError,
    DecodeError,
    ConnectionClosedError,
  )
from .wire import CommandRequest, CommandResult, Notification, decode_message
from .notifications import NotificationStream, CancelHandle

class ConnectionState(Enum):
    NOT_CONNECTED = "not_connected"
    RUNNING = "running"
    CANCELLING = "cancelling"
    CLOSED = "closed"

class YeelightConnection(AsyncContextManager['YeelightConnection']):
    host: str
    port: int
    timeout_secs: float
    connect_timeout_secs: float

    state: ConnectionState = ConnectionState.NOT_CONNECTED

    reader: Optional[asyncio.StreamReader] = None
    writer: Optional[asyncio.StreamWriter] = None

    reader_task: Optional[asyncio.Task[None]] = None
    """The task running the read loop. Exactly one per connection."""

    final_result: Optional[Future[None]] = None
    """A future that is resolved when the connection has been torn down. It holds an exception
       if the connection was lost rather than closed by the caller."""

    pending_calls: Dict[int, Future[CommandResult]]
    """Commands awaiting their result, keyed by request id."""

    subscribers: Set[NotificationStream]
    """The notification streams that receive unsolicited notifications."""

    _next_id: int = 1
    _write_lock: Optional[asyncio.Lock] = None
    _socket_closed: bool = False

    def __init__(
            self,
            host: str,
            port: int=DEFAULT_COMMAND_PORT,
            timeout_secs: float=DEFAULT_TIMEOUT,
            connect_timeout_secs: float=DEFAULT_CONNECT_TIMEOUT,
          ):
        self.host = host
        self.port = port
        self.timeout_secs = timeout_secs
        self.connect_timeout_secs = connect_timeout_secs
        self.pending_calls = {}
        self.subscribers = set()

    @classmethod
    async def create(cls, host: str, port: int=DEFAULT_COMMAND_PORT, **kwargs: Any) -> YeelightConnection:
        """Creates and connects a YeelightConnection. Raises DialError if the connection fails."""
        self = cls(host, port, **kwargs)
        await self.connect()
        return self

    @property
    def is_running(self) -> bool:
        return self.state == ConnectionState.RUNNING

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    async def connect(self) -> None:
        """Opens the TCP connection and starts the read loop.

        A failed or timed-out dial raises DialError; it is not retried.
        """
        if self.state != ConnectionState.NOT_CONNECTED:
            raise YeelightError(f"{self} has already been connected")
        logger.debug(f"Connecting to {self}")
        try:
            self.reader, self.writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port, limit=MAX_LINE_LENGTH),
                self.connect_timeout_secs
              )
        except (OSError, asyncio.TimeoutError) as e:
            self.state = ConnectionState.CLOSED
            raise DialError(f"cannot connect to {self.host}:{self.port}: {str(e) or type(e).__name__}") from e
        self.final_result = asyncio.get_running_loop().create_future()
        self._write_lock = asyncio.Lock()
        self.state = ConnectionState.RUNNING
        self.reader_task = asyncio.create_task(self._run_reader_task())
        logger.info(f"{self}: connection established")

    def _allocate_id(self) -> int:
        # Only called with _write_lock held
        request_id = self._next_id
        self._next_id += 1
        return request_id

    async def send_request(self, method: str, params: Iterable[Jsonable]=()) -> Tuple[CommandRequest, Future[CommandResult]]:
        """Assigns an id, registers a pending call, and writes the request.

        Returns the request and the future that the read loop will resolve with its result.
        A write failure is fatal to the connection: every pending call fails with
        ConnectionClosedError, and so does this one.
        """
        if self.state == ConnectionState.NOT_CONNECTED:
            raise YeelightError(f"{self} is not connected")
        assert self._write_lock is not None
        async with self._write_lock:
            if self.state != ConnectionState.RUNNING:
                raise ConnectionClosedError(f"{self} is closed")
            assert self.writer is not None
            request = CommandRequest(self._allocate_id(), method, params)
            future: Future[CommandResult] = asyncio.get_running_loop().create_future()
            self.pending_calls[request.id] = future
            logger.debug(f"{self}: sending {request}")
            try:
                self.writer.write(request.raw_data)
                await asyncio.wait_for(self.writer.drain(), self.timeout_secs)
            except (OSError, asyncio.TimeoutError) as e:
                self.pending_calls.pop(request.id, None)
                logger.warning(f"{self}: write of {request} failed: {e!r}")
                self._abort(e)
                raise ConnectionClosedError(f"{self}: write failed: {str(e) or type(e).__name__}") from e
            except BaseException:
                self.pending_calls.pop(request.id, None)
                raise
        return request, future

    async def execute_command(self, method: str, *params: Jsonable) -> CommandResult:
        """Sends a command and waits for its result.

        Raises:
            CommandTimeoutError:   No result arrived within timeout_secs. A result that arrives
                                     later is dropped.
            ApplianceError:        The appliance rejected the command. The connection stays open.
            ConnectionClosedError: The connection was closed, before or while waiting.
        """
        request, future = await self.send_request(method, params)
        try:
            result = await asyncio.wait_for(future, self.timeout_secs)
        except asyncio.TimeoutError:
            raise CommandTimeoutError(f"{self}: no result for {request} within {self.timeout_secs} seconds") from None
        finally:
            if self.pending_calls.get(request.id) is future:
                del self.pending_calls[request.id]
        logger.debug(f"{self}: received {result}")
        if result.error is not None:
            raise ApplianceError(result.error, result)
        return result

    def listen(self) -> Tuple[NotificationStream, CancelHandle]:
        """Returns a new notification stream on this connection, and a handle that cancels it
           by closing the connection."""
        if self.state != ConnectionState.RUNNING:
            raise ConnectionClosedError(f"{self} is not running")
        stream = NotificationStream(self)
        self.subscribers.add(stream)
        return stream, CancelHandle(self)

    def remove_subscriber(self, stream: NotificationStream) -> None:
        self.subscribers.discard(stream)

    def dispatch_line(self, line: bytes) -> None:
        """Routes one line read from the socket. Malformed lines are logged and skipped."""
        logger.debug(f"{self}: received line {line!r}")
        try:
            message = decode_message(line)
        except DecodeError as e:
            logger.warning(f"{self}: skipping malformed line: {e}")
            return
        if isinstance(message, CommandResult):
            future = self.pending_calls.pop(message.id, None)
            if future is None or future.done():
                logger.debug(f"{self}: dropping result with no pending command: {message}")
            else:
                future.set_result(message)
        else:
            assert isinstance(message, Notification)
            for stream in list(self.subscribers):
                stream.on_notification(message)

    async def _run_reader_task(self) -> None:
        logger.debug(f"{self}: read loop starting")
        assert self.reader is not None
        exc: Optional[BaseException] = None
        try:
            while self.state == ConnectionState.RUNNING:
                try:
                    line = await self.reader.readline()
                except ValueError as e:
                    # Line longer than MAX_LINE_LENGTH; the reader has already discarded it
                    logger.warning(f"{self}: skipping overlong line: {e}")
                    continue
                if len(line) == 0:
                    raise ConnectionClosedError("connection closed by appliance")
                self.dispatch_line(line)
        except asyncio.CancelledError:
            logger.debug(f"{self}: read loop cancelled; exiting")
            raise
        except Exception as e:
            logger.info(f"{self}: read loop exiting with exception: {e!r}")
            exc = e
        finally:
            self._shutdown(exc)
        logger.debug(f"{self}: read loop exiting")

    def _abort(self, exc: BaseException) -> None:
        """Tears the connection down from outside the read loop after a fatal error."""
        self._shutdown(exc)
        if self.reader_task is not None:
            self.reader_task.cancel()

    def _close_socket(self) -> None:
        if not self._socket_closed and self.writer is not None:
            self._socket_closed = True
            try:
                self.writer.close()
            except Exception:
                logger.exception(f"{self}: exception while closing socket")

    def _shutdown(self, exc: Optional[BaseException]) -> None:
        """Closes the socket, fails every pending call, and ends every notification stream.
           Only the first call has any effect."""
        if self.state in (ConnectionState.CLOSED, ConnectionState.NOT_CONNECTED):
            return
        self.state = ConnectionState.CLOSED
        self._close_socket()

        reason = f"connection to {self.host}:{self.port} closed"
        if exc is not None:
            reason += f": {exc}"

        pending = list(self.pending_calls.items())
        self.pending_calls.clear()
        for request_id, future in pending:
            if not future.done():
                future.set_exception(ConnectionClosedError(f"{reason} (request {request_id} pending)"))

        stream_exc = None if exc is None else ConnectionClosedError(reason)
        for stream in list(self.subscribers):
            stream.on_end_of_stream(stream_exc)
        self.subscribers.clear()

        assert self.final_result is not None
        if not self.final_result.done():
            if exc is None:
                self.final_result.set_result(None)
            else:
                final_exc = ConnectionClosedError(reason)
                final_exc.__cause__ = exc
                self.final_result.set_exception(final_exc)
        logger.info(f"{self}: {reason}")

    async def wait_for_done(self) -> None:
        """Waits until the connection has been torn down. Raises ConnectionClosedError
           if it was lost rather than closed by the caller."""
        if self.final_result is None:
            return
        await asyncio.shield(self.final_result)

    async def close(self) -> None:
        """Closes the connection and waits for the read loop to exit. Safe to call more than once."""
        if self.state == ConnectionState.RUNNING:
            self.state = ConnectionState.CANCELLING
            logger.debug(f"{self}: cancelling")
            assert self.reader_task is not None
            self.reader_task.cancel()
        if self.reader_task is not None:
            await asyncio.wait({self.reader_task})
        # A reader task cancelled before it first ran never reaches its own teardown
        self._shutdown(None)
        if self.writer is not None:
            try:
                await self.writer.wait_closed()
            except Exception as e:
                logger.debug(f"{self}: exception while waiting for socket to close: {e!r}")
        if self.final_result is not None and self.final_result.done() and not self.final_result.cancelled():
            # Mark a connection-lost exception as retrieved; close() is not the place to report it
            self.final_result.exception()

    async def __aenter__(self) -> YeelightConnection:
        await self.connect()
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        await self.close()
        return False

    def __str__(self) -> str:
        return f"YeelightConnection(host={self.host}, port={self.port})"

    def __repr__(self) -> str:
        return str(self)
