"""
In-process stand-ins for an appliance: FakeBulb serves the TCP command port, and
FakeDiscoveryResponder answers discovery queries by UDP. Both listen on 127.0.0.1 with
an ephemeral port.
"""

from __future__ import annotations

import asyncio
import json

from typing import Any, Callable, Dict, List, Optional, Tuple, Union

Message = Union[Dict[str, Any], bytes]
Responder = Callable[[Dict[str, Any]], Optional[Message]]

def ok_responder(request: Dict[str, Any]) -> Optional[Message]:
    return {"id": request["id"], "result": ["ok"]}

def silent_responder(request: Dict[str, Any]) -> Optional[Message]:
    return None

def encode(message: Message) -> bytes:
    if isinstance(message, bytes):
        return message
    return json.dumps(message).encode('utf-8') + b'\r\n'

class FakeBulb:
    responder: Responder
    requests: List[Dict[str, Any]]
    raw_lines: List[bytes]
    writers: List[asyncio.StreamWriter]
    server: Optional[asyncio.AbstractServer] = None
    port: int = 0

    def __init__(self, responder: Responder=ok_responder):
        self.responder = responder
        self.requests = []
        self.raw_lines = []
        self.writers = []
        self._connected = asyncio.Event()

    async def start(self) -> None:
        self.server = await asyncio.start_server(self._handle_client, '127.0.0.1', 0)
        self.port = self.server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        assert self.server is not None
        self.server.close()
        await self.disconnect()
        try:
            await asyncio.wait_for(self.server.wait_closed(), 2.0)
        except asyncio.TimeoutError:
            pass

    async def disconnect(self) -> None:
        """Closes every client connection from the appliance side."""
        for writer in self.writers:
            writer.close()
        self.writers = []

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.writers.append(writer)
        self._connected.set()
        try:
            while True:
                line = await reader.readline()
                if len(line) == 0:
                    break
                self.raw_lines.append(line)
                request = json.loads(line)
                self.requests.append(request)
                reply = self.responder(request)
                if reply is not None:
                    writer.write(encode(reply))
                    await writer.drain()
        except ConnectionError:
            pass
        finally:
            writer.close()

    async def send(self, message: Message) -> None:
        """Writes a message (a JSON-able dict, or raw bytes) to every connected client."""
        await asyncio.wait_for(self._connected.wait(), 2.0)
        for writer in self.writers:
            writer.write(encode(message))
            await writer.drain()

    async def wait_for_requests(self, n: int, timeout: float=2.0) -> List[Dict[str, Any]]:
        async def poll() -> None:
            while len(self.requests) < n:
                await asyncio.sleep(0.01)
        await asyncio.wait_for(poll(), timeout)
        return self.requests

    async def __aenter__(self) -> FakeBulb:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        await self.stop()
        return False

DEFAULT_REPLY = (
    "HTTP/1.1 200 OK\r\n"
    "Cache-Control: max-age=3600\r\n"
    "Date: \r\n"
    "Ext: \r\n"
    "Location: yeelight://192.168.1.239:55443\r\n"
    "Server: POSIX UPnP/1.0 YGLC/1\r\n"
    "id: 0x000000000015243f\r\n"
    "model: color\r\n"
    "fw_ver: 18\r\n"
    "support: get_prop set_default set_power toggle set_bright start_cf stop_cf set_rgb set_hsv set_name\r\n"
    "power: on\r\n"
    "bright: 100\r\n"
    "color_mode: 2\r\n"
    "ct: 4000\r\n"
    "rgb: 16711680\r\n"
    "hue: 100\r\n"
    "sat: 35\r\n"
    "name: my_bulb\r\n"
  ).encode('utf-8')

class FakeDiscoveryResponder(asyncio.DatagramProtocol):
    """Answers every datagram it receives with each of its replies, in order."""

    replies: List[bytes]
    queries: List[Tuple[bytes, Tuple[str, int]]]
    transport: Optional[asyncio.DatagramTransport] = None
    port: int = 0

    def __init__(self, replies: Optional[List[bytes]]=None):
        self.replies = [DEFAULT_REPLY] if replies is None else replies
        self.queries = []

    def connection_made(self, transport) -> None:
        self.transport = transport

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        self.queries.append((data, addr))
        assert self.transport is not None
        for reply in self.replies:
            self.transport.sendto(reply, addr)

    async def start(self) -> None:
        loop = asyncio.get_running_loop()
        await loop.create_datagram_endpoint(lambda: self, local_addr=('127.0.0.1', 0))
        assert self.transport is not None
        self.port = self.transport.get_extra_info('sockname')[1]

    async def __aenter__(self) -> FakeDiscoveryResponder:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if self.transport is not None:
            self.transport.close()
        return False
