#!/usr/bin/env python3

# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

from __future__ import annotations

import sys
import argparse
import json
import asyncio
import logging

from onkyo_receiver.internal_types import *
from onkyo_receiver import (
    __version__ as pkg_version,
    DEFAULT_PORT,
    DEFAULT_DISCOVERY_TIMEOUT,
    EiscpConnection,
    CommandTranslator,
    ReceiverConfig,
    ReceiverMessage,
    discover,
    parse_command,
    full_class_name,
  )

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

    async def cmd_find_ip(self) -> int:
        timeout_secs: float = self._args.timeout
        devices: int = self._args.devices
        receivers = await discover(devices=devices, timeout_secs=timeout_secs)
        if len(receivers) == 0:
            raise CmdExitError(1, "No receiver found")
        if self._args.json:
            print(json.dumps([r.to_jsonable() for r in receivers], indent=2))
        else:
            for receiver in receivers:
                print(f"{receiver.host}\t{receiver.port}\t{receiver.model}\t{receiver.mac}")
        return 0

    async def cmd_emulator(self) -> int:
        bind_addr: str = self._args.bind
        port: int = self._args.port
        model: str = self._args.model
        with_discovery: bool = not self._args.no_discovery
        from onkyo_receiver.emulator import OnkyoReceiverEmulator
        emulator = OnkyoReceiverEmulator(
            model=model,
            bind_addr=bind_addr,
            port=port,
            with_discovery=with_discovery,
          )
        await emulator.run()
        return 0

    async def cmd_list_commands(self) -> int:
        translator = CommandTranslator()
        command: Optional[str] = self._args.command
        if command is None:
            for name in translator.list_commands():
                print(name)
        else:
            for value in translator.list_command_values(command):
                print(value)
        return 0

    async def cmd_exec(self) -> int:
        continue_on_error: bool = self._args.continue_on_error
        listen_secs: float = self._args.listen
        cmds: List[str] = self._args.exec_command
        config = ReceiverConfig(
            host=self._args.host,
            model=self._args.model,
            port=self._args.port,
          )
        response_datas: List[JsonableDict] = []
        received: List[JsonableDict] = []

        def on_message(message: ReceiverMessage) -> None:
            received.append(message.to_jsonable())

        try:
            async with EiscpConnection(
                    config.host,
                    config.port,
                    config.model,
                    send_delay_secs=config.send_delay_secs,
                    net_menu_delay_secs=config.net_menu_delay_secs,
                    discovery_timeout_secs=config.timeout_secs,
                  ) as connection:
                connection.set_message_handler(on_message)
                await connection.connect()
                await connection.wait_for_connect()
                for cmd_text in cmds:
                    response_data: JsonableDict = dict(command=cmd_text)
                    try:
                        iscp_message = await connection.send_command(parse_command(cmd_text))
                        response_data["iscp"] = iscp_message
                    except Exception as exc:
                        error_classname = full_class_name(exc)
                        error_message = str(exc)
                        if error_message == "":
                            error_message = error_classname

                        response_data.update(
                            error=error_classname,
                            error_message=error_message,
                          )
                        response_datas.append(response_data)
                        if not continue_on_error:
                            raise
                    else:
                        response_datas.append(response_data)
                if listen_secs > 0:
                    await asyncio.sleep(listen_secs)
        finally:
            print(json.dumps(dict(sent=response_datas, received=received), indent=2))
        return 0

    async def cmd_version(self) -> int:
        print(pkg_version)
        return 0

    async def arun(self) -> int:
        """Run the onkyo-receiver command-line tool with provided arguments

        Args:
            argv (Optional[Sequence[str]], optional):
                A list of commandline arguments (NOT including the program as argv[0]!),
                or None to use sys.argv[1:]. Defaults to None.

        Returns:
            int: The exit code that would be returned if this were run as a standalone command.
        """
        parser = NoExitArgumentParser(description="Control an Onkyo/Integra receiver.")


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

        # ======================= find-ip

        parser_search = subparsers.add_parser('find-ip', description="Use eISCP UDP discovery to find Onkyo receivers on the local subnet")
        parser_search.add_argument('-t', '--timeout', type=float, default=DEFAULT_DISCOVERY_TIMEOUT,
                            help=f'''The time to wait for responses, in seconds. Default: {DEFAULT_DISCOVERY_TIMEOUT}''')
        parser_search.add_argument('-n', '--devices', type=int, default=1,
                            help='''Stop after this many receivers have answered. 0 waits for the full timeout. Default: 1''')
        parser_search.add_argument('--json', action='store_true', default=False,
                            help='Print the responses as JSON')
        parser_search.set_defaults(func=self.cmd_find_ip)

        # ======================= emulator

        parser_emulator = subparsers.add_parser('emulator', description="Run a receiver emulator for testing purposes.")
        parser_emulator.add_argument("--port", default=DEFAULT_PORT, type=int,
            help=f"Port number to listen on for eISCP and discovery. Default: {DEFAULT_PORT}")
        parser_emulator.add_argument('-b', '--bind', default="0.0.0.0",
                            help='''The local unicast IP address to bind to. Default: 0.0.0.0.''')
        parser_emulator.add_argument('-m', '--model', default="TX-NR686",
                            help='''The model name reported in discovery responses. Default: TX-NR686.''')
        parser_emulator.add_argument('--no-discovery', action='store_true', default=False,
                            help='''Do not answer UDP discovery queries.''')

        parser_emulator.set_defaults(func=self.cmd_emulator)

        # ======================= exec

        parser_exec = subparsers.add_parser('exec', description="Execute one or more commands in the receiver.")
        parser_exec.add_argument('--host', default=None,
                            help='''The receiver host address. Default: use env var ONKYO_RECEIVER_HOST, or discovery.''')
        parser_exec.add_argument("--port", default=None, type=int,
            help=f"Receiver port number to connect to. Default: {DEFAULT_PORT}")
        parser_exec.add_argument('-m', '--model', default=None,
                            help='''The receiver model. Default: use env var ONKYO_RECEIVER_MODEL, or discovery.''')
        parser_exec.add_argument('--continue', dest="continue_on_error", action='store_true', default=False,
                            help='Continue running commands on error. Default: False')
        parser_exec.add_argument('-l', '--listen', type=float, default=1.0,
                            help='''Seconds to keep collecting receiver messages after the last command. Default: 1.0''')
        parser_exec.add_argument('exec_command', nargs=argparse.REMAINDER,
                            help='''One or more commands to execute; e.g., "system-power=query" or "main.volume=level-up".''')

        parser_exec.set_defaults(func=self.cmd_exec)

        # ======================= list-commands

        parser_list = subparsers.add_parser('list-commands',
                                description='''List symbolic command names, or the argument names of one command.''')
        parser_list.add_argument('command', nargs='?', default=None,
                            help='''A command name, e.g. "input-selector". Default: list all commands.''')
        parser_list.set_defaults(func=self.cmd_list_commands)

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
            ex_desc = str(ex)
            if len(ex_desc) == 0:
                ex_desc = ex.__class__.__name__
            print(f"onkyo-receiver: error: {ex_desc}", file=sys.stderr)
        except BaseException as ex:
            print(f"onkyo-receiver: Unhandled exception {ex.__class__.__name__}: {ex}", file=sys.stderr)
            raise

        return rc

    def run(self) -> int:
        return asyncio.run(self.arun())

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
