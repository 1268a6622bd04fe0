"""Command line access to the bridge and ECP operations.

Every subcommand prints its result as JSON on stdout. Bridge failures are
reported on stderr with exit status 1.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

import msgspec
import uvloop
from marshmallow import ValidationError

from .client import OnDeviceComponent
from .config.logging import configure_logging
from .config.settings import RuntimeConfig, load_runtime_config
from .errors import BridgeError
from .metrics import render_metrics
from .protocol.values import Base
from .remote.ecp import EcpClient
from .services.observer import NO_MATCH, FieldMatch

Handler = Callable[[argparse.Namespace, RuntimeConfig], Awaitable[Any]]


def _json_value(text: str) -> Any:
    """Decode *text* as JSON, falling back to the raw string."""
    try:
        return msgspec.json.decode(text)
    except msgspec.DecodeError:
        return text


def _json_object(text: str) -> dict[str, Any]:
    try:
        value = msgspec.json.decode(text)
    except msgspec.DecodeError as exc:
        raise argparse.ArgumentTypeError(f"invalid JSON: {exc}") from exc
    if not isinstance(value, dict):
        raise argparse.ArgumentTypeError("value must be a JSON object")
    return value


def _key_value(text: str) -> tuple[str, str]:
    key, sep, value = text.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError("expected KEY=VALUE")
    return key, value


def _add_target(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("key_path", help="Dot separated key path, e.g. 'poster.0.title'.")
    parser.add_argument(
        "--base",
        choices=[base.value for base in Base],
        default=Base.GLOBAL.value,
        help="Resolution root (default: global).",
    )


@asynccontextmanager
async def _bridge(args: argparse.Namespace, config: RuntimeConfig) -> AsyncIterator[OnDeviceComponent]:
    async with OnDeviceComponent(config) as odc:
        try:
            yield odc
        finally:
            if args.metrics:
                sys.stderr.write(render_metrics(odc.dispatcher).decode("utf-8"))


async def _cmd_get(args: argparse.Namespace, config: RuntimeConfig) -> Any:
    async with _bridge(args, config) as odc:
        return await odc.get_value_at_key_path(args.key_path, base=args.base)


async def _cmd_set(args: argparse.Namespace, config: RuntimeConfig) -> Any:
    async with _bridge(args, config) as odc:
        return {"time_taken": await odc.set_value_at_key_path(args.key_path, args.value, base=args.base)}


async def _cmd_observe(args: argparse.Namespace, config: RuntimeConfig) -> Any:
    match: Any = NO_MATCH
    if args.match_key_path is not None:
        match = FieldMatch(
            key_path=args.match_key_path,
            value=args.match,
            base=Base.coerce(args.match_base),
        )
    elif args.match is not NO_MATCH:
        match = args.match
    async with _bridge(args, config) as odc:
        return await odc.observe_field(
            args.key_path,
            base=args.base,
            match=match,
            retry_timeout=args.timeout,
        )


async def _cmd_call(args: argparse.Namespace, config: RuntimeConfig) -> Any:
    async with _bridge(args, config) as odc:
        return await odc.call_func(args.key_path, args.func_name, args.params, base=args.base)


async def _cmd_registry_read(args: argparse.Namespace, config: RuntimeConfig) -> Any:
    async with _bridge(args, config) as odc:
        return await odc.read_registry(args.filter)


async def _cmd_registry_write(args: argparse.Namespace, config: RuntimeConfig) -> Any:
    async with _bridge(args, config) as odc:
        return {"time_taken": await odc.write_registry(args.values)}


async def _cmd_registry_delete(args: argparse.Namespace, config: RuntimeConfig) -> Any:
    async with _bridge(args, config) as odc:
        if args.all:
            return {"time_taken": await odc.delete_entire_registry()}
        return {"time_taken": await odc.delete_registry_sections(args.sections)}


async def _cmd_key(args: argparse.Namespace, config: RuntimeConfig) -> Any:
    async with EcpClient(config) as ecp:
        await ecp.send_key_press_sequence(args.keys, args.wait)
    return {"sent": args.keys}


async def _cmd_text(args: argparse.Namespace, config: RuntimeConfig) -> Any:
    async with EcpClient(config) as ecp:
        await ecp.send_text(args.text, args.wait)
    return {"sent": args.text}


async def _cmd_launch(args: argparse.Namespace, config: RuntimeConfig) -> Any:
    async with EcpClient(config) as ecp:
        await ecp.send_launch_channel(args.channel_id, dict(args.param), verify_launch=not args.no_verify)
    return {"launched": args.channel_id or config.channel_id}


async def _cmd_active_app(args: argparse.Namespace, config: RuntimeConfig) -> Any:
    async with EcpClient(config) as ecp:
        return await ecp.get_active_app()


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="odcbridge",
        description="Drive an application through its on-device component and ECP.",
    )
    parser.add_argument("--config", "-c", help="TOML file with an [odcbridge] table.")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    parser.add_argument(
        "--metrics",
        action="store_true",
        help="Print Prometheus request counters to stderr when the bridge session ends.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    get = commands.add_parser("get", help="Read the value at a key path.")
    _add_target(get)
    get.set_defaults(handler=_cmd_get)

    set_ = commands.add_parser("set", help="Assign a JSON value at a key path.")
    _add_target(set_)
    set_.add_argument("value", type=_json_value, help="JSON value; bare words are strings.")
    set_.set_defaults(handler=_cmd_set)

    observe = commands.add_parser("observe", help="Wait for a field to change.")
    _add_target(observe)
    observe.add_argument("--match", type=_json_value, default=NO_MATCH, help="Value to wait for.")
    observe.add_argument("--match-key-path", help="Compare --match against this key path instead.")
    observe.add_argument("--match-base", choices=[base.value for base in Base], default=Base.GLOBAL.value)
    observe.add_argument("--timeout", type=float, help="Seconds to wait (default: observe_timeout).")
    observe.set_defaults(handler=_cmd_observe)

    call = commands.add_parser("call", help="Call a function on a node.")
    _add_target(call)
    call.add_argument("func_name")
    call.add_argument("params", nargs="*", type=_json_value, help="JSON encoded parameters.")
    call.set_defaults(handler=_cmd_call)

    registry_read = commands.add_parser("registry-read", help="Read registry sections.")
    registry_read.add_argument(
        "filter",
        nargs="?",
        type=_json_object,
        help='JSON filter such as {"section": ["key"]}; omit to read everything.',
    )
    registry_read.set_defaults(handler=_cmd_registry_read)

    registry_write = commands.add_parser("registry-write", help="Merge values into the registry.")
    registry_write.add_argument("values", type=_json_object, help='JSON such as {"section": {"key": "value"}}.')
    registry_write.set_defaults(handler=_cmd_registry_write)

    registry_delete = commands.add_parser("registry-delete", help="Delete sections, or everything with --all.")
    registry_delete.add_argument("sections", nargs="*", help="Sections to delete.")
    registry_delete.add_argument("--all", action="store_true", help="Clear the whole registry.")
    registry_delete.set_defaults(handler=_cmd_registry_delete)

    key = commands.add_parser("key", help="Send key presses.")
    key.add_argument("keys", nargs="+", help="Key names such as Select or Down.")
    key.add_argument("--wait", type=float, default=0.0, help="Seconds to pause after each key.")
    key.set_defaults(handler=_cmd_key)

    text = commands.add_parser("text", help="Type text one character at a time.")
    text.add_argument("text")
    text.add_argument("--wait", type=float, default=0.0)
    text.set_defaults(handler=_cmd_text)

    launch = commands.add_parser("launch", help="Launch a channel.")
    launch.add_argument("channel_id", nargs="?", help="Channel id (default: channel_id from config).")
    launch.add_argument("--param", type=_key_value, action="append", default=[], help="Launch parameter KEY=VALUE.")
    launch.add_argument("--no-verify", action="store_true", help="Skip the active-app check.")
    launch.set_defaults(handler=_cmd_launch)

    active_app = commands.add_parser("active-app", help="Show the active application.")
    active_app.set_defaults(handler=_cmd_active_app)

    return parser


def _render(result: Any) -> str:
    return msgspec.json.format(msgspec.json.encode(result)).decode("utf-8")


def main(argv: list[str] | None = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)
    if getattr(args, "match_key_path", None) is not None and args.match is NO_MATCH:
        parser.error("--match-key-path requires --match")
    if args.command == "registry-delete" and bool(args.sections) == args.all:
        parser.error("registry-delete needs section names or --all, not both")

    try:
        config = load_runtime_config(args.config)
    except (OSError, ValueError, ValidationError) as exc:
        parser.error(f"cannot load configuration: {exc}")
        return 2
    if args.debug:
        config.debug_logging = True
    configure_logging(config)

    handler: Handler = args.handler
    try:
        result = asyncio.run(handler(args, config), loop_factory=uvloop.new_event_loop)
    except BridgeError as exc:
        print(f"{exc.kind}: {exc.message}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130

    print(_render(result))
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
