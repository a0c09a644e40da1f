"""Command-line client for a Window agent.

Usage:
    window-client --host 127.0.0.1:8080 --key SECRET
    window-client --mock
    window-client                 # reconnect with stored credentials
    window-client --forget

Prompts are read from stdin, one per line; ``/quit`` or EOF exits.
Timeline changes are printed as plain lines.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from window.engine.config import SessionConfig
from window.engine.controller import SessionController
from window.engine.timeline import TimelineEntry
from window.shared.models.message import Message


MOCK_HOST = "mock"


def render_entry(entry: TimelineEntry) -> str:
    """One line per timeline entry."""
    if isinstance(entry, Message):
        return f"[{entry.role.value}] {entry.content}"
    steps = ", ".join(f"{s.name}={s.status.value}" for s in entry.steps)
    line = f"[task {entry.status.value} {entry.progress:.0%}] {entry.title}"
    if steps:
        line += f" ({steps})"
    if entry.result:
        line += f" -> {entry.result}"
    return line


class TimelinePrinter:
    """Prints entries that are new or changed since the last update.

    Streaming placeholders are not printed until they are finalized.
    """

    def __init__(self, out=None) -> None:
        self._out = out or sys.stdout
        self._printed: dict[str, str] = {}
        self._state: str | None = None
        self._error: str | None = None

    def __call__(self, controller: SessionController) -> None:
        if controller.state.value != self._state:
            self._state = controller.state.value
            self._write(f"* session {self._state}")
        if controller.connection_error and controller.connection_error != self._error:
            self._write(f"! {controller.connection_error}")
        self._error = controller.connection_error

        seen = set()
        for entry in controller.timeline:
            seen.add(entry.key)
            if isinstance(entry, Message) and entry.is_streaming:
                continue
            line = render_entry(entry)
            if self._printed.get(entry.key) != line:
                self._printed[entry.key] = line
                self._write(line)
        for key in set(self._printed) - seen:
            del self._printed[key]

    def _write(self, line: str) -> None:
        print(line, file=self._out, flush=True)


def _build_config(args: argparse.Namespace) -> SessionConfig:
    if args.config:
        from window.engine.yaml_config import load_yaml_config
        config = load_yaml_config(args.config)
    else:
        config = SessionConfig.from_env()
    if args.history_limit is not None:
        config.history_limit = args.history_limit
    return config


async def _prompt_loop(controller: SessionController) -> None:
    loop = asyncio.get_running_loop()
    while True:
        line = await loop.run_in_executor(None, sys.stdin.readline)
        if not line:
            break
        content = line.strip()
        if not content:
            continue
        if content == "/quit":
            break
        await controller.send_message(content)


async def run(args: argparse.Namespace, config: SessionConfig) -> int:
    controller = SessionController(config)

    if args.forget:
        await controller.forget_agent()
        print("Stored credentials removed.")
        return 0

    controller.add_listener(TimelinePrinter())

    if args.mock:
        ok = await controller.connect(MOCK_HOST, "", use_mock=True)
    elif args.host and args.key:
        ok = await controller.connect(args.host, args.key)
    elif args.host or args.key:
        print("Error: --host and --key must be given together.")
        return 2
    else:
        ok = await controller.attempt_auto_connect()
        if not ok and controller.connection_error is None:
            print("Error: no stored credentials; pass --host and --key or --mock.")
            return 2

    if not ok:
        return 1

    try:
        await _prompt_loop(controller)
    finally:
        await controller.disconnect()
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="window-client",
        description="Terminal client for a Window agent",
    )
    parser.add_argument(
        "--host",
        default=None,
        help="Agent host, e.g. 127.0.0.1:8080 or https://agent.example",
    )
    parser.add_argument(
        "--key",
        default=None,
        help="API key for the agent",
    )
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Talk to the built-in scripted agent instead of a server",
    )
    parser.add_argument(
        "--forget",
        action="store_true",
        help="Remove stored credentials and exit",
    )
    parser.add_argument(
        "--config", metavar="PATH",
        help="YAML config file (session and mock sections)",
    )
    parser.add_argument(
        "--history-limit",
        type=int,
        default=None,
        help="Messages fetched on connect (default: 20)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    config = _build_config(args)

    # Configure logging
    level = logging.DEBUG if args.verbose else config.log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        code = asyncio.run(run(args, config))
    except KeyboardInterrupt:
        print("\nInterrupted.")
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
