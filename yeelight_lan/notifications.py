#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Delivery of unsolicited appliance notifications to a consumer.

Each NotificationStream is a mailbox with a single slot. The connection's read loop
offers every notification with a non-blocking put; if the slot is still occupied
because the consumer has not drained it, the new notification is dropped. The read
loop never waits on a consumer, since a stalled reader would also stall the
results that pending commands are waiting for.
"""

from __future__ import annotations

import asyncio

from typing import TYPE_CHECKING

from .internal_types import *
from .pkg_logging import logger
from .exceptions import ConnectionClosedError
from .wire import Notification

if TYPE_CHECKING:
    from .connection import YeelightConnection

MAILBOX_SIZE = 1

class NotificationStream(
        AsyncContextManager['NotificationStream'],
        AsyncIterable[Notification]
      ):
    """An async iterable of the notifications received on one connection.

    Iteration ends when the connection is closed by the caller. If the connection is
    lost for any other reason (closed by the appliance, read error), iteration raises
    ConnectionClosedError after any buffered notification has been delivered.

    Usage:
        stream, cancel_handle = connection.listen()
        async for notification in stream:
            print(notification.params)
    """

    connection: YeelightConnection
    queue: asyncio.Queue[Notification]
    eos: bool = False
    eos_exc: Optional[BaseException] = None
    dropped_count: int = 0
    """The number of notifications dropped because the slot was occupied."""

    _eos_event: asyncio.Event

    def __init__(self, connection: YeelightConnection):
        self.connection = connection
        self.queue = asyncio.Queue(MAILBOX_SIZE)
        self._eos_event = asyncio.Event()

    def on_notification(self, notification: Notification) -> None:
        """Offers a notification without blocking. Called only by the connection's read loop."""
        if self.eos:
            return
        try:
            self.queue.put_nowait(notification)
        except asyncio.QueueFull:
            self.dropped_count += 1
            logger.debug(f"Notification slot occupied, dropping {notification}")

    def on_end_of_stream(self, exc: Optional[BaseException]=None) -> None:
        if not self.eos:
            self.eos = True
            self.eos_exc = exc
            self._eos_event.set()

    async def receive(self) -> Optional[Notification]:
        """Returns the next notification, or None at the end of the stream."""
        while True:
            if not self.queue.empty():
                return self.queue.get_nowait()
            if self.eos:
                if self.eos_exc is not None:
                    exc = self.eos_exc
                    self.eos_exc = None
                    raise ConnectionClosedError(str(exc)) from exc
                return None
            get_task = asyncio.ensure_future(self.queue.get())
            eos_task = asyncio.ensure_future(self._eos_event.wait())
            try:
                await asyncio.wait({get_task, eos_task}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                get_task.cancel()
                eos_task.cancel()
            if get_task.done() and not get_task.cancelled():
                return get_task.result()

    async def iter_notifications(self) -> AsyncIterator[Notification]:
        while True:
            notification = await self.receive()
            if notification is None:
                break
            yield notification

    def __aiter__(self) -> AsyncIterator[Notification]:
        return self.iter_notifications()

    def close(self) -> None:
        """Stops delivery to this stream without closing the connection."""
        self.connection.remove_subscriber(self)
        self.on_end_of_stream()

    async def __aenter__(self) -> NotificationStream:
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        self.close()
        return False

class CancelHandle:
    """Cancels the notification stream returned alongside it by closing the connection
       it reads from. Any command still awaiting a result on that connection fails with
       ConnectionClosedError. Cancelling more than once has no further effect."""

    connection: YeelightConnection

    def __init__(self, connection: YeelightConnection):
        self.connection = connection

    @property
    def cancelled(self) -> bool:
        return self.connection.is_closed

    async def cancel(self) -> None:
        await self.connection.close()

    def __str__(self) -> str:
        return f"CancelHandle({self.connection})"

    def __repr__(self) -> str:
        return str(self)
