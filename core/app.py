"""
Terminal front end for one unheardpath chat session.

Usage:
    unheardpath-chat --message "Where should I eat in Kadıköy?"
    echo "Hello" | unheardpath-chat

Without --message, prompts are read from stdin, one per line.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from core.session import ChatSession
from runtime import version as runtime_version
from services.chat.engine import ConversationBusyError
from services.gateway.client import TransportError
from services.sse.router import Toast, UICallbacks
from shared.config.client import ConfigError, load_client_config
from shared.logging.logger import get_logger

log = get_logger("core.app", runtime="cli")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chat with the unheardpath backend")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Client config JSON (default: shared/config/client.json or $UNHEARDPATH_CONFIG)",
    )
    parser.add_argument(
        "--message",
        action="append",
        default=None,
        help="Message to send; repeat for several turns. Reads stdin when omitted.",
    )
    parser.add_argument(
        "--no-history",
        action="store_true",
        help="Do not restore previous chat messages at startup",
    )
    parser.add_argument(
        "--print-features",
        action="store_true",
        help="Print the final map feature collection as GeoJSON",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=runtime_version.as_string(),
    )
    return parser.parse_args(argv)


def _print_toast(toast: Toast) -> None:
    print(f"[{toast.variant}] {toast.message}", file=sys.stderr)


def _build_callbacks() -> UICallbacks:
    return UICallbacks(
        on_toast=_print_toast,
        on_dismiss_keyboard=lambda: log.debug("Map updated"),
        on_show_info_sheet=lambda: print("[info sheet requested]", file=sys.stderr),
    )


async def _prompts(messages: Optional[List[str]]):
    if messages:
        for message in messages:
            yield message
        return

    while True:
        line = await asyncio.to_thread(sys.stdin.readline)
        if not line:
            return
        yield line


async def main(args: argparse.Namespace) -> int:
    load_dotenv()

    try:
        config = load_client_config(path=args.config)
    except ConfigError as e:
        log.error(f"Invalid configuration: {e}")
        return 2

    log.info(f"{runtime_version.as_string()} → {config.api.base_url}")
    failures = 0

    async with ChatSession(config, callbacks=_build_callbacks()) as session:
        if not args.no_history:
            session.restore()

        async for prompt in _prompts(args.message):
            try:
                reply = await session.send(prompt)
            except TransportError as e:
                failures += 1
                print(f"error: {e}", file=sys.stderr)
                continue
            except ConversationBusyError as e:
                failures += 1
                log.warning(str(e))
                continue

            if reply is not None:
                print(reply.text)

        if args.print_features:
            print(session.features.to_canonical_string())

    return 1 if failures else 0


def run(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        return asyncio.run(main(args))
    except KeyboardInterrupt:
        log.info("KeyboardInterrupt received, shutting down")
        return 130


if __name__ == "__main__":
    sys.exit(run())
