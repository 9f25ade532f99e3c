#!/usr/bin/env python3

# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

from __future__ import annotations

import sys
import os
import argparse
import json
import asyncio
import logging
from signal import SIGINT, SIGTERM

from yeelight_lan.internal_types import *

from yeelight_lan import (
    __version__ as pkg_version,
    Yeelight,
    DiscoveryClient,
    DEFAULT_COMMAND_PORT,
    DEFAULT_TIMEOUT,
    DEFAULT_DISCOVERY_TIMEOUT,
  )

HOST_ENV_VAR = "YEELIGHT_HOST"

class CmdExitError(RuntimeError):
    exit_code: int

    def __init__(self, exit_code: int, msg: Optional[str]=None):
        if msg is None:
            msg = f"Command exited with return code {exit_code}"
        super().__init__(msg)
        self.exit_code = exit_code

class ArgparseExitError(CmdExitError):
    pass

class NoExitArgumentParser(argparse.ArgumentParser):
    def exit(self, status=0, message=None):
        if message:
            self._print_message(message, sys.stderr)
        raise ArgparseExitError(status, message)

def parse_param(value: str) -> Jsonable:
    """Command params are JSON where possible (numbers, lists, quoted strings); anything
       else is passed as a bare string."""
    try:
        result: Jsonable = json.loads(value)
    except json.JSONDecodeError:
        result = value
    return result

class CommandHandler:
    _argv: Optional[Sequence[str]]
    _parser: argparse.ArgumentParser
    _args: argparse.Namespace
    _provide_traceback: bool = True

    def __init__(self, argv: Optional[Sequence[str]]=None):
        self._argv = argv

    async def cmd_bare(self) -> int:
        print("A command is required", file=sys.stderr)
        return 1

    def _create_device(self) -> Yeelight:
        host: Optional[str] = self._args.host
        if host is None or host == '':
            host = os.getenv(HOST_ENV_VAR)
            if host is None or host == '':
                raise CmdExitError(1, f"No appliance host specified. Use --host or set env var {HOST_ENV_VAR}")
        return Yeelight(host, port=self._args.port, timeout_secs=self._args.timeout)

    async def cmd_discover(self) -> int:
        bind_addresses: Optional[List[str]] = self._args.bind_addresses
        if not bind_addresses is None and len(bind_addresses) == 0:
            bind_addresses = None
        async with DiscoveryClient(
                response_wait_time=self._args.wait_time,
                bind_addresses=bind_addresses,
                all_interfaces=self._args.all_interfaces,
              ) as client:
            async with client.search(max_responses=self._args.max_responses) as search:
                n = 0
                async for reply in search:
                    print(json.dumps(reply.to_json(), indent=2, sort_keys=True))
                    sys.stdout.flush()
                    n += 1
        if n == 0:
            raise CmdExitError(1, "no devices found")
        return 0

    async def cmd_command(self) -> int:
        method: str = self._args.method
        params = [ parse_param(x) for x in self._args.params ]
        async with self._create_device() as device:
            result = await device.execute_command(method, *params)
        print(json.dumps(result.to_json(), sort_keys=True))
        return 0

    async def cmd_listen(self) -> int:
        max_notifications: int = self._args.count
        async with self._create_device() as device:
            stream, cancel_handle = await device.listen()
            loop = asyncio.get_running_loop()
            sig_tasks: List[asyncio.Task[None]] = []
            def on_signal() -> None:
                sig_tasks.append(asyncio.create_task(cancel_handle.cancel()))
            for signal in (SIGINT, SIGTERM):
                loop.add_signal_handler(signal, on_signal)
            try:
                n = 0
                async for notification in stream:
                    print(json.dumps(notification.to_json(), sort_keys=True))
                    sys.stdout.flush()
                    n += 1
                    if max_notifications > 0 and n >= max_notifications:
                        break
            finally:
                for signal in (SIGINT, SIGTERM):
                    loop.remove_signal_handler(signal)
                await cancel_handle.cancel()
                if len(sig_tasks) > 0:
                    await asyncio.wait(sig_tasks)
        return 0

    async def cmd_on(self) -> int:
        async with self._create_device() as device:
            await device.turn_on()
        return 0

    async def cmd_off(self) -> int:
        async with self._create_device() as device:
            await device.turn_off()
        return 0

    async def cmd_version(self) -> int:
        print(pkg_version)
        return 0

    def _add_device_args(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument('-H', '--host', default=None,
                            help=f'''The appliance hostname or IP address. Default: Use env var {HOST_ENV_VAR}''')
        parser.add_argument('--port', type=int, default=DEFAULT_COMMAND_PORT,
                            help=f'''The appliance command port. Default: {DEFAULT_COMMAND_PORT}''')
        parser.add_argument('-t', '--timeout', type=float, default=DEFAULT_TIMEOUT,
                            help=f'''Timeout for connecting and for each command, in seconds. Default: {DEFAULT_TIMEOUT}''')

    async def arun(self) -> int:
        """Run the yeelight command-line tool with provided arguments

        Args:
            argv (Optional[Sequence[str]], optional):
                A list of commandline arguments (NOT including the program as argv[0]!),
                or None to use sys.argv[1:]. Defaults to None.

        Returns:
            int: The exit code that would be returned if this were run as a standalone command.
        """
        parser = NoExitArgumentParser(prog="yeelight", description="Discover and control Yeelight appliances on the local network.")


        # ======================= Main command

        self._parser = parser
        parser.add_argument('--traceback', "--tb", action='store_true', default=False,
                            help='Display detailed exception information')
        parser.add_argument('--log-level', dest='log_level', default='warning',
                            choices=['debug', 'info', 'warning', 'error', 'critical'],
                            help='''The logging level to use. Default: warning''')
        parser.set_defaults(func=self.cmd_bare)

        subparsers = parser.add_subparsers(
                            title='Commands',
                            description='Valid commands',
                            help='Additional help available with "<command-name> -h"')


        # ======================= discover

        parser_discover = subparsers.add_parser('discover', description="Search for appliances on the local network")
        parser_discover.add_argument('--wait-time', type=float, default=DEFAULT_DISCOVERY_TIMEOUT,
                            help=f'''The amount of time to wait for replies, in seconds. Default: {DEFAULT_DISCOVERY_TIMEOUT}''')
        parser_discover.add_argument('-b', '--bind', dest="bind_addresses", action='append', default=[],
                            help='''The local IP address to bind to. May be repeated. Default: the wildcard address.''')
        parser_discover.add_argument('--all-interfaces', dest="all_interfaces", action='store_true', default=False,
                            help='Send the query from every local non-loopback IPv4 address. Default: False')
        parser_discover.add_argument('--max-responses', type=int, default=0,
                            help='The maximum number of replies to return. Default: 0 (no limit)')
        parser_discover.set_defaults(func=self.cmd_discover)

        # ======================= command

        parser_command = subparsers.add_parser('command', description="Send one command to an appliance and print its result")
        self._add_device_args(parser_command)
        parser_command.add_argument('method', help='The command method name, e.g. "get_prop"')
        parser_command.add_argument('params', nargs='*', default=[],
                            help='Command params. Each is parsed as JSON if possible, otherwise passed as a string.')
        parser_command.set_defaults(func=self.cmd_command)

        # ======================= listen

        parser_listen = subparsers.add_parser('listen', description="Print notifications from an appliance until interrupted")
        self._add_device_args(parser_listen)
        parser_listen.add_argument('-n', '--count', type=int, default=0,
                            help='Exit after this many notifications. Default: 0 (no limit)')
        parser_listen.set_defaults(func=self.cmd_listen)

        # ======================= on/off

        parser_on = subparsers.add_parser('on', description="Turn an appliance on")
        self._add_device_args(parser_on)
        parser_on.set_defaults(func=self.cmd_on)

        parser_off = subparsers.add_parser('off', description="Turn an appliance off")
        self._add_device_args(parser_off)
        parser_off.set_defaults(func=self.cmd_off)

        # ======================= version

        parser_version = subparsers.add_parser('version',
                                description='''Display version information.''')
        parser_version.set_defaults(func=self.cmd_version)

        # =========================================================

        try:
            args = parser.parse_args(self._argv)
        except ArgparseExitError as ex:
            return ex.exit_code
        traceback: bool = args.traceback
        self._provide_traceback = traceback

        try:
            logging.basicConfig(
                level=logging.getLevelName(args.log_level.upper()),
            )
            self._args = args
            func: Callable[[], Awaitable[int]] = args.func
            logging.debug(f"Running command {func.__name__}, tb = {traceback}")
            rc = await func()
            logging.debug(f"Command {func.__name__} returned {rc}")
        except Exception as ex:
            if isinstance(ex, CmdExitError):
                rc = ex.exit_code
            else:
                rc = 1
            if rc != 0:
                if traceback:
                    raise
            print(f"yeelight: error: {ex}", file=sys.stderr)
        except BaseException as ex:
            print(f"yeelight: Unhandled exception: {ex}", file=sys.stderr)
            raise

        return rc

    def run(self) -> int:
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            rc = loop.run_until_complete(self.arun())
        finally:
            loop.close()
        return rc

def run(argv: Optional[Sequence[str]]=None) -> int:
    try:
        rc = CommandHandler(argv).run()
    except CmdExitError as ex:
        rc = ex.exit_code
    return rc

async def arun(argv: Optional[Sequence[str]]=None) -> int:
    try:
        rc = await CommandHandler(argv).arun()
    except CmdExitError as ex:
        rc = ex.exit_code
    return rc

# allow running with "python3 -m", or as a standalone script
if __name__ == "__main__":
    sys.exit(run())
