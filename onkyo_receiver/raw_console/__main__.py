#!/usr/bin/env python3

# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

from __future__ import annotations

import sys
import argparse
import asyncio
import logging
import dotenv
import aioconsole
import colorama # type: ignore[import]
from colorama import Fore, Style
import traceback

from onkyo_receiver.internal_types import *
from onkyo_receiver.pkg_logging import logger

from onkyo_receiver.client import ReceiverConfig
from onkyo_receiver.discovery import discover
from onkyo_receiver.protocol import (
    encode_eiscp_packet,
    decode_eiscp_packet,
    CommandTranslator,
  )
from onkyo_receiver.protocol_impl import FrameStream

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
    """Sends raw ISCP telegrams typed at the console (e.g. "PWRQSTN") and prints
    every telegram the receiver sends, with its decoded form."""

    _argv: Optional[Sequence[str]]
    _parser: argparse.ArgumentParser
    _args: argparse.Namespace
    _provide_traceback: bool = True
    _stream: Optional[FrameStream] = None
    _console_task: Optional[asyncio.Task[None]] = None
    _receive_task: Optional[asyncio.Task[None]] = None
    _colorize_stdout: bool = True
    _translator: CommandTranslator

    def __init__(self, argv: Optional[Sequence[str]]=None):
        self._argv = argv
        self._translator = CommandTranslator()

    def ocolor(self, codes: str) -> str:
        return codes if self._colorize_stdout else ""

    async def get_receiver_address(self) -> HostAndPort:
        config = ReceiverConfig(host=self._args.ip_address, port=self._args.port)
        if config.host is not None:
            return (config.host, config.port)
        receivers = await discover(devices=1, timeout_secs=config.timeout_secs)
        if len(receivers) == 0:
            raise CmdExitError(1, "No receiver found")
        logger.debug(f"Discovered {receivers[0]}")
        return (receivers[0].host, receivers[0].port)

    async def connect_receiver(self) -> FrameStream:
        host, port = await self.get_receiver_address()
        reader, writer = await asyncio.open_connection(host, port)
        print(f"{self.ocolor(Fore.YELLOW)}Connected to {host}:{port}{self.ocolor(Style.RESET_ALL)}")
        return FrameStream(reader, writer)

    async def handle_console_input(self) -> None:
        assert self._stream is not None and self._receive_task is not None
        try:
            while True:
                raw_data = await aioconsole.ainput(">>> ")
                raw_data = raw_data.strip()
                if raw_data == "":
                    continue
                if raw_data == "exit" or raw_data == "quit" or raw_data == "q":
                    break
                frame: Optional[bytes] = None
                try:
                    frame = encode_eiscp_packet(raw_data)
                except Exception as e:
                    if self._provide_traceback:
                        print(f"\r{self.ocolor(Fore.RED)}Invalid telegram: {e}\n{traceback.format_exc()}{self.ocolor(Style.RESET_ALL)}")
                    else:
                        print(f"\r{self.ocolor(Fore.RED)}Invalid telegram: {e}{self.ocolor(Style.RESET_ALL)}")
                if frame is not None:
                    print(f"\r{self.ocolor(Fore.GREEN)}{raw_data:<20} ->{self.ocolor(Style.RESET_ALL)}")
                    await self._stream.write(frame)
                    await self._stream.flush()
                ### allow a response to be printed before the next prompt
                await asyncio.sleep(0.3)
        except EOFError:
            print()
        except Exception as e:
            logger.debug("Exception in console input handler", exc_info=e)
            raise
        finally:
            logger.debug("Console input handler exiting")
            self._receive_task.cancel()

    async def handle_received_data(self) -> None:
        assert self._stream is not None and self._console_task is not None
        try:
            async for frame in self._stream:
                message = decode_eiscp_packet(frame)
                decoded = self._translator.iscp_to_command(message)
                if decoded.is_undefined:
                    print(f"\r{' '*20}    <- {self.ocolor(Fore.BLUE)}{message}{self.ocolor(Style.RESET_ALL)}")
                else:
                    print(f"\r{' '*20}    <- {self.ocolor(Fore.BLUE)}{message:<20}{self.ocolor(Style.RESET_ALL)}"
                          f" {decoded.command}={decoded.argument!r}")
        except Exception as e:
            logger.debug("Exception in Receive data handler", exc_info=e)
            raise
        finally:
            logger.debug("Receive data handler exiting")
            self._console_task.cancel()

    async def cmd_bare(self) -> int:
        stream = await self.connect_receiver()
        self._stream = stream
        try:
            self._receive_task = asyncio.create_task(self.handle_received_data())
            self._console_task = asyncio.create_task(self.handle_console_input())
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass
        finally:
            logger.debug("Command exiting")
            if self._console_task is not None:
                self._console_task.cancel()
            stream.close()
            await stream.wait_closed()

        return 0

    async def arun(self) -> int:
        """Run the raw console with provided arguments

        Args:
            argv (Optional[Sequence[str]], optional):
                A list of commandline arguments (NOT including the program as argv[0]!),
                or None to use sys.argv[1:]. Defaults to None.

        Returns:
            int: The exit code that would be returned if this were run as a standalone command.
        """
        parser = NoExitArgumentParser(description="Send raw ISCP telegrams to an Onkyo receiver.")

        self._parser = parser
        parser.add_argument('--traceback', "--tb", action='store_true', default=False,
                            help='Display detailed exception information')
        parser.add_argument('--log-level', dest='log_level', default='warning',
                            choices=['debug', 'info', 'warning', 'error', 'critical'],
                            help='''The logging level to use. Default: warning''')
        parser.add_argument('--no-color', dest='no_color', action='store_true', default=False,
                            help='''Do not colorize output''')
        parser.add_argument('-p', '--port', default=None, type=int,
                            help='''The port number to connect to. Default: Use discovery response or 60128 if not using discovery''')
        parser.add_argument('ip_address', default=None, nargs='?',
                            help='''The local LAN IP address of the receiver. Default: ONKYO_RECEIVER_HOST, or use discovery to locate receiver.''')

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
            self._colorize_stdout = not args.no_color and sys.stdout.isatty()
            if self._colorize_stdout:
                colorama.just_fix_windows_console()
            rc = await self.cmd_bare()
            logging.debug(f"Command returned {rc}")
        except Exception as ex:
            if isinstance(ex, CmdExitError):
                rc = ex.exit_code
            else:
                rc = 1
            if rc != 0:
                if traceback:
                    raise
            print(f"raw_console: error: {ex}", file=sys.stderr)
        except BaseException as ex:
            print(f"raw_console: Unhandled exception: {ex}", file=sys.stderr)
            raise

        return rc

    def run(self) -> int:
        return asyncio.run(self.arun())

def run(argv: Optional[Sequence[str]]=None) -> int:
    dotenv.load_dotenv()
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
