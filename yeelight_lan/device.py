#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Yeelight -- the public face of one appliance. It owns at most one YeelightConnection at a
time, opening it on first use, and layers typed operations (power, brightness, color,
flows) on top of execute_command().
"""

from __future__ import annotations

import asyncio
from enum import Enum

from .internal_types import *
from .pkg_logging import logger
from .constants import (
    DEFAULT_COMMAND_PORT,
    DEFAULT_TIMEOUT,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_DISCOVERY_TIMEOUT,
    DISCOVERY_PORT,
    DEFAULT_TRANSITION_DURATION,
  )
from .address import DeviceAddress
from .wire import CommandResult
from .connection import YeelightConnection
from .notifications import NotificationStream, CancelHandle
from .discovery import DiscoveryClient, DiscoveryReply
from .color import rgb_to_yeelight, check_brightness
from .flow import Flow

class Effect(Enum):
    """How the appliance moves to a new state."""
    SMOOTH = "smooth"
    SUDDEN = "sudden"

class PowerMode(Enum):
    """The mode an appliance switches to when it is turned on."""
    LAST = 0
    NORMAL = 1
    RGB = 2
    HSV = 3
    COLOR_FLOW = 4
    MOONLIGHT = 5

class Yeelight(AsyncContextManager['Yeelight']):
    host: str
    port: int
    effect: Effect
    timeout_secs: float
    connect_timeout_secs: float

    connection: Optional[YeelightConnection] = None
    """The current connection, if one has been opened. Replaced by a new one if it closes."""

    _connect_lock: Optional[asyncio.Lock] = None

    def __init__(
            self,
            host: str,
            port: int = DEFAULT_COMMAND_PORT,
            effect: Effect = Effect.SMOOTH,
            timeout_secs: float = DEFAULT_TIMEOUT,
            connect_timeout_secs: float = DEFAULT_CONNECT_TIMEOUT,
          ):
        if host == '':
            raise ValueError("An appliance host is required")
        self.host = host
        self.port = port
        self.effect = effect
        self.timeout_secs = timeout_secs
        self.connect_timeout_secs = connect_timeout_secs

    @classmethod
    def from_address(cls, address: DeviceAddress, **kwargs: Any) -> Yeelight:
        return cls(address.host, address.port, **kwargs)

    @classmethod
    async def discover(
            cls,
            timeout: float = DEFAULT_DISCOVERY_TIMEOUT,
            discovery_client: Optional[DiscoveryClient] = None,
            **kwargs: Any
          ) -> Yeelight:
        """Finds the first appliance that answers a multicast discovery query.

        Keyword arguments are passed to the Yeelight constructor. Raises NotFoundError if no
        appliance replies within timeout seconds.
        """
        if discovery_client is None:
            async with DiscoveryClient(response_wait_time=timeout) as client:
                address = await client.discover(timeout)
        else:
            address = await discovery_client.discover(timeout)
        return cls.from_address(address, **kwargs)

    @property
    def address(self) -> DeviceAddress:
        return DeviceAddress(self.host, self.port)

    async def discover_params(
            self,
            timeout: float = DEFAULT_DISCOVERY_TIMEOUT,
            discovery_port: int = DISCOVERY_PORT,
          ) -> DiscoveryReply:
        """Queries this appliance directly (by unicast) and returns its discovery reply, which
           carries its current parameters."""
        async with DiscoveryClient(response_wait_time=timeout, multicast_port=discovery_port) as client:
            return await client.discover_params(self.host, timeout)

    async def connect(self) -> YeelightConnection:
        """Returns the open connection, opening a new one if there is none or the last one closed.

        Raises DialError if the appliance cannot be reached.
        """
        if self._connect_lock is None:
            self._connect_lock = asyncio.Lock()
        async with self._connect_lock:
            if self.connection is None or not self.connection.is_running:
                if self.connection is not None:
                    await self.connection.close()
                connection = YeelightConnection(
                    self.host,
                    self.port,
                    timeout_secs=self.timeout_secs,
                    connect_timeout_secs=self.connect_timeout_secs,
                  )
                await connection.connect()
                self.connection = connection
            return self.connection

    async def close(self) -> None:
        if self.connection is not None:
            await self.connection.close()
            self.connection = None

    async def execute_command(self, method: str, *params: Jsonable) -> CommandResult:
        """Sends a command to the appliance and returns its result.

        See YeelightConnection.execute_command() for the errors raised.
        """
        connection = await self.connect()
        return await connection.execute_command(method, *params)

    async def listen(self) -> Tuple[NotificationStream, CancelHandle]:
        """Returns a stream of the appliance's notifications and a handle that cancels it.

        The stream shares the command connection; cancelling it closes that connection, and
        the next command opens a new one.
        """
        connection = await self.connect()
        return connection.listen()

    async def turn_on(self, mode: Optional[PowerMode] = None, duration: Optional[int] = None) -> CommandResult:
        """Turns the appliance on. duration is the transition time in milliseconds."""
        params: List[Jsonable] = ["on", self.effect.value]
        if duration is not None or mode is not None:
            params.append(DEFAULT_TRANSITION_DURATION if duration is None else duration)
        if mode is not None:
            params.append(mode.value)
        return await self.execute_command("set_power", *params)

    async def turn_off(self) -> CommandResult:
        return await self.execute_command("set_power", "off", self.effect.value)

    async def toggle(self) -> CommandResult:
        return await self.execute_command("toggle")

    async def get_props(self, props: Iterable[str]) -> Dict[str, str]:
        """Returns the current values of the named properties, e.g. ["power", "bright"]."""
        prop_names = list(props)
        result = await self.execute_command("get_prop", *prop_names)
        return { name: str(value) for name, value in zip(prop_names, result.result) }

    async def ensure_on(self) -> None:
        """Turns the appliance on if it is not already on."""
        props = await self.get_props(["power"])
        if props.get("power") != "on":
            logger.debug(f"{self}: power is {props.get('power')}; turning on")
            await self.turn_on()

    async def set_brightness(self, brightness: int, duration: Optional[int] = None) -> CommandResult:
        """Sets brightness (1-100), turning the appliance on first if necessary."""
        check_brightness(brightness)
        await self.ensure_on()
        params: List[Jsonable] = [brightness, self.effect.value]
        if duration is not None:
            params.append(duration)
        return await self.execute_command("set_bright", *params)

    async def set_rgb(self, red: int, green: int, blue: int) -> CommandResult:
        value = rgb_to_yeelight(red, green, blue)
        await self.ensure_on()
        return await self.execute_command("set_rgb", value, self.effect.value)

    async def set_hsv(self, hue: int, saturation: int) -> CommandResult:
        if not 0 <= hue <= 359:
            raise ValueError(f"Hue must be in the range 0-359, got {hue}")
        if not 0 <= saturation <= 100:
            raise ValueError(f"Saturation must be in the range 0-100, got {saturation}")
        await self.ensure_on()
        return await self.execute_command("set_hsv", hue, saturation, self.effect.value)

    async def start_flow(self, flow: Flow) -> CommandResult:
        await self.ensure_on()
        return await self.execute_command("start_cf", *flow.as_start_params())

    async def stop_flow(self) -> CommandResult:
        return await self.execute_command("stop_cf")

    async def set_name(self, name: str) -> CommandResult:
        return await self.execute_command("set_name", name)

    async def __aenter__(self) -> Yeelight:
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
        return f"Yeelight(host={self.host}, port={self.port}, effect={self.effect.value})"

    def __repr__(self) -> str:
        return str(self)
