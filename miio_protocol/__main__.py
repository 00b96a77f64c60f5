#!/usr/bin/env python3

# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

from __future__ import annotations

import sys
import argparse
import json
import logging

from miio_protocol.internal_types import *

from miio_protocol import (
    __version__ as pkg_version,
    Session,
    Device,
    Token,
    DEFAULT_TIMEOUT_MS,
    DEFAULT_RETRIES,
  )
from miio_protocol.config import ConfigContext, DeviceConfig, KeyringTokenConfig
from miio_protocol.config.keyring_token import DEFAULT_KEYRING_SERVICE

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

    def cmd_bare(self) -> int:
        print("A command is required", file=sys.stderr)
        return 1

    def _keyring_cfg(self) -> KeyringTokenConfig:
        key: Optional[str] = self._args.keyring_key
        if key is None:
            key = self._args.device
        if key is None:
            key = self._args.ip
        if key is None:
            raise CmdExitError(1, "A keyring key (--keyring-key), device profile (--device) or device address (--ip) is required")
        return KeyringTokenConfig(service=self._args.keyring_service, key=key)

    def _create_session(self) -> Session:
        """Builds a session from --config or --device (if given), overridden by any explicit command-line options."""
        overrides: Dict[str, Any] = {}
        if self._args.ip is not None:
            overrides['address'] = self._args.ip
        if self._args.token is not None:
            overrides['token'] = Token(self._args.token)
        elif self._args.keyring_key is not None:
            overrides['token'] = self._keyring_cfg().get_token()
        if len(self._args.models) > 0:
            overrides['acceptable_models'] = self._args.models
        if self._args.timeout is not None:
            overrides['timeout'] = self._args.timeout
        if self._args.retries is not None:
            overrides['retries'] = self._args.retries

        config_file: Optional[str] = self._args.config
        if config_file is not None:
            cfg = ConfigContext().load_file(config_file, required_type=DeviceConfig)
            return cfg.create_session(**overrides)
        if self._args.device is not None:
            cfg = ConfigContext().load_device_profile(self._args.device)
            return cfg.create_session(**overrides)
        overrides.setdefault('timeout', DEFAULT_TIMEOUT_MS)
        overrides.setdefault('retries', DEFAULT_RETRIES)
        return Session(**overrides)

    def _print_json(self, data: Jsonable) -> None:
        print(json.dumps(data, indent=2, sort_keys=True))
        sys.stdout.flush()

    def cmd_discover(self) -> int:
        with self._create_session() as session:
            if not session.discover():
                raise CmdExitError(1, "No device found")
            self._print_json(session.to_state())
            if self._args.save is not None:
                self._save_profile(self._args.save, session)
        return 0

    def _save_profile(self, name: str, session: Session) -> None:
        """Stores the session's token in the keyring under `name` and writes a device profile that refers to it."""
        token = session.token
        assert token is not None
        KeyringTokenConfig(service=self._args.keyring_service, key=name).set_token(token)
        file_data = DeviceConfig.make_profile_data(
            address=session.address,
            models=session.acceptable_models,
            timeout=session.timeout,
            retries=session.retries,
            keyring_key=name,
            keyring_service=self._args.keyring_service,
          )
        pathname = ConfigContext().save_device_profile(name, file_data)
        print(f"Saved device profile {name} to {pathname}", file=sys.stderr)

    def cmd_send(self) -> int:
        method: str = self._args.method
        params: Jsonable = None
        if self._args.params is not None:
            params = json.loads(self._args.params)
            if not isinstance(params, (list, dict)):
                raise CmdExitError(1, "PARAMS must be a JSON array or object")
        with self._create_session() as session:
            response = session.send(method, params)
            self._print_json(response.parameters)
        return 0

    def cmd_raw(self) -> int:
        with self._create_session() as session:
            print(session.send_raw(self._args.payload))
        return 0

    def cmd_info(self) -> int:
        with Device(session=self._create_session()) as device:
            self._print_json(device.info())
        return 0

    def cmd_token_get(self) -> int:
        print(self._keyring_cfg().get_token().hex)
        return 0

    def cmd_token_set(self) -> int:
        self._keyring_cfg().set_token(Token(self._args.value))
        return 0

    def cmd_token_delete(self) -> int:
        self._keyring_cfg().delete_token()
        return 0

    def cmd_version(self) -> int:
        print(pkg_version)
        return 0

    def run(self) -> int:
        """Run the miio command-line tool with provided arguments

        Args:
            argv (Optional[Sequence[str]], optional):
                A list of commandline arguments (NOT including the program as argv[0]!),
                or None to use sys.argv[1:]. Defaults to None.

        Returns:
            int: The exit code that would be returned if this were run as a standalone command.
        """
        parser = NoExitArgumentParser(description="Discover and control miIO devices.")


        # ======================= Main command

        self._parser = parser
        parser.add_argument('--traceback', "--tb", action='store_true', default=False,
                            help='Display detailed exception information')
        parser.add_argument('--log-level', dest='log_level', default='warning',
                            choices=['debug', 'info', 'warning', 'error', 'critical'],
                            help='''The logging level to use. Default: warning''')
        parser.add_argument('--ip', default=None,
                            help='''The IP address of the device. Default: discover by broadcast (requires --model)''')
        parser.add_argument('--token', default=None,
                            help='''The device token, as 32 hex digits. Default: keyring, config file, or discovered''')
        parser.add_argument('-m', '--model', dest='models', action='append', default=[],
                            help='''An acceptable device model. May be repeated.''')
        parser.add_argument('--timeout', type=int, default=None,
                            help=f'''The receive timeout in milliseconds. Default: {DEFAULT_TIMEOUT_MS}''')
        parser.add_argument('--retries', type=int, default=None,
                            help=f'''The number of retries after a failed exchange. Default: {DEFAULT_RETRIES}''')
        parser.add_argument('-c', '--config', default=None,
                            help='''A JSON DeviceConfig file to load settings from.''')
        parser.add_argument('-d', '--device', default=None,
                            help='''A named device profile to load settings from (see "discover --save").''')
        parser.add_argument('--keyring-key', dest='keyring_key', default=None,
                            help='''The keyring key under which the device token is stored. Default: the --device or --ip value''')
        parser.add_argument('--keyring-service', dest='keyring_service', default=DEFAULT_KEYRING_SERVICE,
                            help=f'''The keyring service under which device tokens are stored. Default: {DEFAULT_KEYRING_SERVICE}''')
        parser.set_defaults(func=self.cmd_bare)

        subparsers = parser.add_subparsers(
                            title='Commands',
                            description='Valid commands',
                            help='Additional help available with "<command-name> -h"')


        # ======================= discover

        parser_discover = subparsers.add_parser('discover', description="Perform the hello handshake and print the resolved session state")
        parser_discover.add_argument('--save', metavar='NAME', default=None,
                            help='Save the discovered device as profile NAME, with its token in the keyring')
        parser_discover.set_defaults(func=self.cmd_discover)

        # ======================= send

        parser_send = subparsers.add_parser('send', description="Send a command and print the result")
        parser_send.add_argument('method', help='The method name, e.g., "get_prop"')
        parser_send.add_argument('params', nargs='?', default=None,
                            help='The parameters, as a JSON array or object. Default: none')
        parser_send.set_defaults(func=self.cmd_send)

        # ======================= raw

        parser_raw = subparsers.add_parser('raw', description="Send a raw JSON payload and print the decrypted reply")
        parser_raw.add_argument('payload', help='The complete payload text')
        parser_raw.set_defaults(func=self.cmd_raw)

        # ======================= info

        parser_info = subparsers.add_parser('info', description="Print the device's miIO.info")
        parser_info.set_defaults(func=self.cmd_info)

        # ======================= token

        parser_token = subparsers.add_parser('token', description="Manage device tokens stored in the system keyring")
        token_subparsers = parser_token.add_subparsers(title='Token commands')
        parser_token_get = token_subparsers.add_parser('get', description="Print a stored token")
        parser_token_get.set_defaults(func=self.cmd_token_get)
        parser_token_set = token_subparsers.add_parser('set', description="Store a token")
        parser_token_set.add_argument('value', help='The token, as 32 hex digits')
        parser_token_set.set_defaults(func=self.cmd_token_set)
        parser_token_delete = token_subparsers.add_parser('delete', description="Delete a stored token")
        parser_token_delete.set_defaults(func=self.cmd_token_delete)

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
            func: Callable[[], int] = args.func
            logging.debug(f"Running command {func.__name__}, tb = {traceback}")
            rc = func()
            logging.debug(f"Command {func.__name__} returned {rc}")
        except Exception as ex:
            if isinstance(ex, CmdExitError):
                rc = ex.exit_code
            else:
                rc = 1
            if rc != 0:
                if traceback:
                    raise
            print(f"miio: error: {ex}", file=sys.stderr)
        except BaseException as ex:
            print(f"miio: Unhandled exception: {ex}", file=sys.stderr)
            raise

        return rc

def run(argv: Optional[Sequence[str]]=None) -> int:
    try:
        rc = CommandHandler(argv).run()
    except CmdExitError as ex:
        rc = ex.exit_code
    return rc

# allow running with "python3 -m", or as a standalone script
if __name__ == "__main__":
    sys.exit(run())
