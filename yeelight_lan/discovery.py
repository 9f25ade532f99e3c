#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
DiscoveryClient -- A discovery client that can:

  1. Send an M-SEARCH query to the appliance multicast group (239.255.255.250:1982), or
     directly to a single known appliance IP address
  2. Receive and decode reply DiscoveryDatagram's from appliances
  3. Return the first reply, or all replies received within a configurable timeout period

A single discovery attempt is a single network round trip; there are no retries.
"""

from __future__ import annotations

import asyncio
import datetime
import socket
import time

from .internal_types import *
from .pkg_logging import logger
from .constants import (
    DISCOVERY_MULTICAST_ADDRESS,
    DISCOVERY_PORT,
    DEFAULT_DISCOVERY_TIMEOUT,
  )
from .exceptions import YeelightError, NotFoundError
from .address import DeviceAddress
from .discovery_datagram import DiscoveryDatagram
from .util import get_local_ip_addresses

MAX_QUEUE_SIZE = 1000

WILDCARD_ADDRESS = "0.0.0.0"

class DiscoverySocketBinding:
    """
    An encapsulation of one low-level bound UDP socket used by a DiscoveryClient. There
    is one binding for the wildcard address by default, or one per local interface
    address when the client is asked to search on all interfaces.
    """

    sock: Optional[socket.socket] = None
    """The low-level socket."""

    transport: Optional[asyncio.DatagramTransport] = None
    """The asyncio transport wrapping sock, once the datagram endpoint has been created."""

    unicast_addr: HostAndPort
    """The local address and ephemeral port the socket is bound to."""

    def __init__(self, sock: socket.socket):
        self.sock = sock
        unicast_addr = sock.getsockname()
        assert isinstance(unicast_addr, tuple)
        self.unicast_addr = (unicast_addr[0], unicast_addr[1])

    def sendto(self, datagram: DiscoveryDatagram, addr: HostAndPort) -> None:
        logger.debug(f"Sending DiscoveryDatagram via {self} to {addr}: {datagram}")
        if self.transport is None:
            raise YeelightError(f"{self} is not open")
        self.transport.sendto(datagram.raw_data, addr)

    def close(self) -> None:
        if self.transport is not None:
            try:
                self.transport.close()
            except Exception as e:
                logger.error(f"Error closing transport on {self}: {e}")
            self.transport = None
        if self.sock is not None:
            try:
                self.sock.close()
            except OSError as e:
                logger.error(f"Error closing socket on {self}: {e}")
            self.sock = None

    def __str__(self) -> str:
        return f"DiscoverySocketBinding({self.unicast_addr[0]}:{self.unicast_addr[1]})"

    def __repr__(self) -> str:
        return str(self)

class _DiscoveryProtocol(asyncio.DatagramProtocol):
    """An adapter between one asyncio datagram transport and its DiscoveryClient."""

    client: DiscoveryClient
    socket_binding: DiscoverySocketBinding

    def __init__(self, client: DiscoveryClient, socket_binding: DiscoverySocketBinding):
        self.client = client
        self.socket_binding = socket_binding

    def datagram_received(self, data: bytes, addr: Tuple[str, int]):
        self.client.datagram_received(self.socket_binding, addr, data)

    def error_received(self, exc: Exception):
        self.client.error_received(self.socket_binding, exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        logger.debug(f"Transport closed on {self.socket_binding}, exc={exc}")

class DiscoveryReply:
    """A reply to a discovery query."""

    socket_binding: DiscoverySocketBinding
    """The socket binding on which the reply was received"""

    src_addr: HostAndPort
    """The source address of the reply"""

    datagram: DiscoveryDatagram
    """The reply datagram"""

    monotonic_time: float
    """The local time (in seconds) since an arbitrary point in the past at which
       the reply was received, as returned by time.monotonic()."""

    utc_time: datetime.datetime
    """The UTC time at which the reply was received."""

    def __init__(
            self,
            socket_binding: DiscoverySocketBinding,
            src_addr: HostAndPort,
            datagram: DiscoveryDatagram,
          ) -> None:
        self.socket_binding = socket_binding
        self.src_addr = src_addr
        self.datagram = datagram
        self.monotonic_time = time.monotonic()
        self.utc_time = datetime.datetime.now(datetime.timezone.utc)

    @property
    def address(self) -> Optional[DeviceAddress]:
        """The appliance's command address, or None if the reply did not include one."""
        return self.datagram.location

    @property
    def params(self) -> Dict[str, str]:
        """All reply headers, with lower-case names."""
        return dict(self.datagram.headers.lower_items())

    def to_json(self) -> JsonableDict:
        address = self.address
        return {
            "src_addr": f"{self.src_addr[0]}:{self.src_addr[1]}",
            "local_addr": f"{self.socket_binding.unicast_addr[0]}:{self.socket_binding.unicast_addr[1]}",
            "address": None if address is None else str(address),
            "headers": self.params,
            "utc_time": self.utc_time.isoformat(),
        }

    def __str__(self) -> str:
        return f"DiscoveryReply(src={self.src_addr}, address={self.address}, id={self.datagram.hdr_id})"

    def __repr__(self) -> str:
        return str(self)

class DiscoverySearch(
        AsyncContextManager['DiscoverySearch'],
        AsyncIterable[DiscoveryReply]
      ):
    """An object that manages a single discovery query on a DiscoveryClient and all of the received
       replies within an AsyncContextManager/AsyncIterable interface."""

    client: DiscoveryClient
    target: Optional[str]
    response_wait_time: float
    max_responses: int
    include_error_responses: bool
    queue: asyncio.Queue[Optional[DiscoveryReply]]
    end_time: float = 0.0
    eos: bool = False
    eos_exc: Optional[BaseException] = None

    def __init__(
            self,
            client: DiscoveryClient,
            target: Optional[str]=None,
            response_wait_time: Optional[float]=None,
            max_responses: int=0,
            include_error_responses: bool=False,
          ):
        """Create an async context manager/iterable that sends a discovery query and returns the replies
        as they arrive.

        Parameters:
            client:                  The DiscoveryClient used to send the query and receive replies.
            target:                  If None (the default), the query is sent to the client's multicast group.
                                        Otherwise, the IP address of a single appliance to query directly; replies
                                        from other hosts are ignored.
            response_wait_time:      The amount of time (in seconds) to wait for replies to come in. Defaults to
                                        client.response_wait_time.
            max_responses:           The maximum number of replies to return. If 0 (the default), all replies received
                                        within response_wait_time will be returned.
            include_error_responses: If True, replies whose status line is not "200 OK" are included.

        Usage:
            async with DiscoverySearch(client, ...) as search:
                async for reply in search:
                    print(reply.address)
        """
        self.client = client
        self.target = target
        self.response_wait_time = client.response_wait_time if response_wait_time is None else response_wait_time
        self.max_responses = max_responses
        self.include_error_responses = include_error_responses
        self.queue = asyncio.Queue(MAX_QUEUE_SIZE)

    async def __aenter__(self) -> DiscoverySearch:
        # The search must be subscribed before the query goes out so that no reply is missed.
        self.client.add_search(self)
        try:
            if self.target is None:
                dest_host = self.client.multicast_address
            else:
                dest_host = self.target
            dest_port = self.client.multicast_port
            query = DiscoveryDatagram.create_search(dest_host, dest_port)
            for socket_binding in self.client.socket_bindings:
                socket_binding.sendto(query, (dest_host, dest_port))
            self.end_time = time.monotonic() + self.response_wait_time
        except BaseException:
            self.client.remove_search(self)
            raise
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        self.client.remove_search(self)
        return False

    def on_datagram(self, socket_binding: DiscoverySocketBinding, addr: HostAndPort, datagram: DiscoveryDatagram) -> None:
        if self.eos:
            return
        if self.target is not None and addr[0] != self.target:
            logger.debug(f"Ignoring discovery reply from {addr}; waiting for {self.target}")
            return
        if not self.include_error_responses and not datagram.is_ok_response:
            logger.debug(f"Ignoring non-OK discovery reply from {addr}: {datagram.statement_line}")
            return
        try:
            self.queue.put_nowait(DiscoveryReply(socket_binding, addr, datagram))
        except asyncio.QueueFull:
            logger.warning(f"Queue full, dropping discovery reply from {addr}: {datagram}")

    def on_end_of_stream(self, exc: Optional[BaseException]=None) -> None:
        if not self.eos:
            self.eos = True
            self.eos_exc = exc
            try:
                # wake up any waiting tasks
                self.queue.put_nowait(None)
            except asyncio.QueueFull:
                # queue is full so waiters will wake up soon
                pass

    async def iter_responses(self) -> AsyncIterator[DiscoveryReply]:
        n = 0
        while True:
            if self.max_responses > 0 and n >= self.max_responses:
                break
            remaining_time = self.end_time - time.monotonic()
            if remaining_time <= 0.0:
                break
            try:
                reply = await asyncio.wait_for(self.queue.get(), remaining_time)
            except asyncio.TimeoutError:
                break
            if reply is None:
                if self.eos_exc is not None:
                    raise self.eos_exc
                break
            logger.debug(f"Received discovery reply: {reply}")
            n += 1
            yield reply

    def __aiter__(self) -> AsyncIterator[DiscoveryReply]:
        return self.iter_responses()

class DiscoveryClient(AsyncContextManager['DiscoveryClient']):
    """
    A discovery client that can:

      1. Send a discovery query to the appliance multicast group, or to a single appliance
      2. Receive and decode reply DiscoveryDatagram's from appliances
      3. Return the first reply, or collect the replies received within a timeout period

    Usage:
        async with DiscoveryClient() as client:
            address = await client.discover(timeout=3.0)
    """

    response_wait_time: float
    """The default amount of time (in seconds) to wait for replies to come in."""

    multicast_address: str = DISCOVERY_MULTICAST_ADDRESS
    """The multicast address to send queries to."""

    multicast_port: int = DISCOVERY_PORT
    """The port to send queries to. Appliances answer on the same port whether queried by
       multicast or unicast."""

    bind_addresses: List[str]
    """The local IP addresses to bind sockets to, one socket per address."""

    socket_bindings: List[DiscoverySocketBinding]
    """One binding per bound socket, once started."""

    searches: Set[DiscoverySearch]
    """The searches that are currently waiting for replies."""

    def __init__(
            self,
            response_wait_time: float=DEFAULT_DISCOVERY_TIMEOUT,
            multicast_address: str=DISCOVERY_MULTICAST_ADDRESS,
            multicast_port: int=DISCOVERY_PORT,
            bind_addresses: Optional[Iterable[str]]=None,
            all_interfaces: bool=False,
            include_loopback: bool=False,
          ) -> None:
        """Create a discovery client.

        Parameters:
            response_wait_time: The default amount of time (in seconds) to wait for replies.
            multicast_address:  The address queries are sent to.
            multicast_port:     The port queries are sent to.
            bind_addresses:     The local addresses to bind to. If None, a single socket bound to the
                                  wildcard address is used, unless all_interfaces is True.
            all_interfaces:     If True and bind_addresses is None, one socket is bound to each local
                                  IPv4 address, so the query leaves every interface of a multi-homed host.
            include_loopback:   If True, loopback addresses are included when all_interfaces is True.
        """
        self.response_wait_time = response_wait_time
        self.multicast_address = multicast_address
        self.multicast_port = multicast_port
        if bind_addresses is None:
            if all_interfaces:
                bind_addresses = get_local_ip_addresses(include_loopback=include_loopback)
            else:
                bind_addresses = [WILDCARD_ADDRESS]
        self.bind_addresses = list(bind_addresses)
        self.socket_bindings = []
        self.searches = set()

    async def start(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            logger.debug(f"Creating discovery socket bindings to {self.bind_addresses}")
            for bind_address in self.bind_addresses:
                sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
                try:
                    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                    sock.bind((bind_address, 0))
                    if bind_address != WILDCARD_ADDRESS:
                        # Make multicast queries leave through the interface that owns bind_address
                        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_IF, socket.inet_aton(bind_address))
                except BaseException:
                    sock.close()
                    raise
                socket_binding = DiscoverySocketBinding(sock)
                self.socket_bindings.append(socket_binding)
                untyped_transport, _ = await loop.create_datagram_endpoint(
                    lambda: _DiscoveryProtocol(self, socket_binding),
                    sock=sock
                  )
                # asyncio's datagram transports do not inherit from asyncio.DatagramTransport
                socket_binding.transport = untyped_transport # type: ignore[assignment]
                logger.debug(f"Created datagram endpoint for {socket_binding}")
            if len(self.socket_bindings) == 0:
                raise YeelightError("No local addresses to bind discovery sockets to")
        except BaseException:
            self.stop()
            raise

    def stop(self) -> None:
        """Closes all sockets and ends any searches in progress."""
        for search in list(self.searches):
            search.on_end_of_stream()
        for socket_binding in self.socket_bindings:
            socket_binding.close()
        self.socket_bindings = []

    def add_search(self, search: DiscoverySearch) -> None:
        self.searches.add(search)

    def remove_search(self, search: DiscoverySearch) -> None:
        self.searches.discard(search)

    def datagram_received(self, socket_binding: DiscoverySocketBinding, addr: HostAndPort, data: bytes) -> None:
        try:
            datagram = DiscoveryDatagram(raw_data=data)
        except Exception as e:
            logger.warning(f"Error parsing datagram from {addr}, raw=[{data!r}]: {e}")
            return
        logger.debug(f"Received datagram from {addr} on {socket_binding}: {datagram}")
        for search in list(self.searches):
            search.on_datagram(socket_binding, addr, datagram)

    def error_received(self, socket_binding: DiscoverySocketBinding, exc: Exception) -> None:
        logger.warning(f"Error received from transport {socket_binding}: {exc}")
        for search in list(self.searches):
            search.on_end_of_stream(exc)

    def search(
            self,
            target: Optional[str]=None,
            response_wait_time: Optional[float]=None,
            max_responses: int=0,
            include_error_responses: bool=False,
          ) -> DiscoverySearch:
        """Create an async context manager/iterable that sends a discovery query and returns the replies
           as they arrive. See DiscoverySearch for parameters.

        Usage:
            async with client.search() as search:
                async for reply in search:
                    print(reply.address)
        """
        return DiscoverySearch(
                self,
                target=target,
                response_wait_time=response_wait_time,
                max_responses=max_responses,
                include_error_responses=include_error_responses,
              )

    async def simple_search(
            self,
            response_wait_time: Optional[float]=None,
            max_responses: int=0,
          ) -> List[DiscoveryReply]:
        """Sends a multicast query, waits for the full wait time (or max_responses), and returns
           every reply received."""
        results: List[DiscoveryReply] = []
        async with self.search(response_wait_time=response_wait_time, max_responses=max_responses) as search:
            async for reply in search:
                results.append(reply)
        return results

    async def _first_reply(self, target: Optional[str], timeout: Optional[float]) -> DiscoveryReply:
        try:
            async with self.search(target=target, response_wait_time=timeout) as search:
                async for reply in search:
                    if reply.address is None and target is None:
                        logger.warning(f"Discovery reply from {reply.src_addr} has no location; ignoring")
                        continue
                    return reply
        except OSError as e:
            # e.g., ICMP port unreachable from a unicast target
            raise NotFoundError(f"no devices found: {e}") from e
        raise NotFoundError("no devices found")

    async def discover(self, timeout: Optional[float]=None) -> DeviceAddress:
        """Sends a multicast query and returns the address of the first appliance that replies.

        Raises NotFoundError if no appliance replies within timeout seconds (default: response_wait_time).
        """
        reply = await self._first_reply(None, timeout)
        address = reply.address
        assert address is not None
        logger.info(f"Device with address {address} found")
        return address

    async def discover_params(self, ip: str, timeout: Optional[float]=None) -> DiscoveryReply:
        """Sends a query directly to the appliance at ip and returns its reply, which carries the
           appliance's current parameters (power, brightness, color, name, etc.).

        Raises NotFoundError if the appliance does not reply within timeout seconds.
        """
        return await self._first_reply(ip, timeout)

    async def __aenter__(self) -> DiscoveryClient:
        await self.start()
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        self.stop()
        return False

async def discover(timeout: float=DEFAULT_DISCOVERY_TIMEOUT, **kwargs: Any) -> DeviceAddress:
    """Finds one appliance on the local network and returns its command address.

    Keyword arguments are passed to DiscoveryClient. Raises NotFoundError if nothing replies within timeout.
    """
    async with DiscoveryClient(response_wait_time=timeout, **kwargs) as client:
        return await client.discover(timeout)
