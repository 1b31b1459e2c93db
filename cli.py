#!/usr/bin/env python3
"""
CLI entry point for the Cryptorg API client.

Usage examples
--------------
Service status and bot list::

    python cli.py status
    python cli.py bots

Create a bot with custom settings::

    python cli.py create-bot --pair BTC-USDT --exchange binance \\
        --attr strategy=long --attr volume=100

Analytics for a period::

    python cli.py analytics --start 2024-01-01 --end 2024-01-31
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Any, Awaitable, Callable, List, Optional

from dotenv import load_dotenv

# ── Bootstrap ──────────────────────────────────────────────────────────────
# Ensure the package root is on sys.path so ``cryptorg`` can be imported when
# this script is executed directly (``python cli.py …``).
SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
if SCRIPT_DIR not in sys.path:
    sys.path.insert(0, SCRIPT_DIR)

from cryptorg.client import (  # noqa: E402
    BASE_URL,
    ConfigurationError,
    Credentials,
    CryptorgClient,
    TransportError,
)
from cryptorg.logging_config import setup_logging  # noqa: E402
from cryptorg.validators import (  # noqa: E402
    parse_attributes,
    validate_exchange,
    validate_id,
    validate_pair,
    validate_period,
)

# (command, client method, help) for commands taking a single id.
_BOT_COMMANDS = [
    ("bot-info", "bot_info", "Show bot details"),
    ("delete-bot", "delete_bot", "Delete a bot"),
    ("activate-bot", "activate_bot", "Activate a bot"),
    ("deactivate-bot", "deactivate_bot", "Deactivate a bot"),
    ("start-bot", "start_bot_force", "Force-start a bot"),
    ("bot-logs", "get_bot_logs", "Show bot logs"),
]
_DEAL_COMMANDS = [
    ("deal-info", "deal_info", "Show deal details"),
    ("freeze-deal", "freeze_deal", "Freeze a deal"),
    ("unfreeze-deal", "unfreeze_deal", "Unfreeze a deal"),
    ("update-take-profit", "update_take_profit", "Recalculate a deal's take-profit"),
    ("cancel-deal", "cancel_deal", "Cancel a deal"),
]

# ── Argument parser ────────────────────────────────────────────────────────


def _add_attr_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--attr",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Form field sent in the request body (repeatable)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cryptorg",
        description="Manage Cryptorg trading bots and deals.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  cryptorg bots\n"
            "  cryptorg bot-info --bot-id 42\n"
            "  cryptorg create-bot --pair BTC-USDT --exchange binance --attr volume=100\n"
        ),
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log requests to the console")
    parser.add_argument("--base-url", default=None, help="Override the API base URL")
    sub = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    sub.add_parser("status", help="Check service status")
    sub.add_parser("bots", help="List all bots")

    for name, _, help_text in _BOT_COMMANDS:
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--bot-id", required=True, help="Bot identifier")
    for name, _, help_text in _DEAL_COMMANDS:
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--deal-id", required=True, help="Deal identifier")

    for name, help_text in (("create-bot", "Create a bot"), ("create-preset", "Create a bot from a preset")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--pair", required=True, help="Trading pair (e.g. BTC-USDT)")
        p.add_argument("--exchange", required=True, help="Exchange name (e.g. binance)")
        _add_attr_option(p)

    p = sub.add_parser("update-bot", help="Reconfigure a bot")
    p.add_argument("--bot-id", required=True, help="Bot identifier")
    p.add_argument("--pair", required=True, help="Trading pair (e.g. BTC-USDT)")
    _add_attr_option(p)

    p = sub.add_parser("analytics", help="Trading analytics for a period")
    p.add_argument("--start", required=True, help="Start date (YYYY-MM-DD)")
    p.add_argument("--end", required=True, help="End date (YYYY-MM-DD)")
    _add_attr_option(p)

    return parser


def build_call(client: CryptorgClient, args: argparse.Namespace) -> Awaitable[str]:
    """
    Validate *args* and return the pending client call for ``args.command``.

    Raises
    ------
    ValueError
        If any parameter is invalid.
    """
    command = args.command
    if command == "status":
        return client.status()
    if command == "bots":
        return client.bot_list()

    for name, method, _ in _BOT_COMMANDS:
        if command == name:
            call: Callable[[int], Awaitable[str]] = getattr(client, method)
            return call(validate_id(args.bot_id, "bot id"))
    for name, method, _ in _DEAL_COMMANDS:
        if command == name:
            call = getattr(client, method)
            return call(validate_id(args.deal_id, "deal id"))

    attributes = parse_attributes(args.attr)
    if command == "create-bot":
        return client.create_bot(validate_pair(args.pair), validate_exchange(args.exchange), attributes)
    if command == "create-preset":
        return client.create_preset(validate_pair(args.pair), validate_exchange(args.exchange), attributes)
    if command == "update-bot":
        return client.update_bot(validate_id(args.bot_id, "bot id"), validate_pair(args.pair), attributes)
    if command == "analytics":
        start, end = validate_period(args.start, args.end)
        return client.get_analytics(start, end, attributes)

    raise ValueError(f"Unknown command '{command}'")


def format_response(body: str) -> str:
    """Pretty-print *body* when it is JSON, otherwise return it as is."""
    try:
        parsed: Any = json.loads(body)
    except ValueError:
        return body
    return json.dumps(parsed, indent=2, ensure_ascii=False)


# ── Main ───────────────────────────────────────────────────────────────────


def main(argv: Optional[List[str]] = None) -> None:
    # Load .env for API keys
    load_dotenv(os.path.join(SCRIPT_DIR, ".env"))

    parser = build_parser()
    args = parser.parse_args(argv)

    logger = setup_logging(console_level=logging.DEBUG if args.verbose else logging.INFO)

    # --- Read credentials ---------------------------------------------------
    try:
        credentials = Credentials.from_env()
    except ConfigurationError as exc:
        logger.error("%s", exc)
        sys.exit(1)

    base_url = args.base_url or os.getenv("CRYPTORG_BASE_URL") or BASE_URL

    with CryptorgClient(credentials, base_url=base_url) as client:
        # --- Validate inputs ------------------------------------------------
        try:
            pending = build_call(client, args)
        except ValueError as exc:
            logger.error("Validation error: %s", exc)
            sys.exit(1)

        # --- Send request ---------------------------------------------------
        try:
            body = asyncio.run(pending)
        except TransportError as exc:
            logger.error("Request failed: %s", exc)
            print(f"\n✗ {args.command} FAILED – {exc}")
            sys.exit(1)
        except Exception as exc:
            logger.exception("Unexpected error during %s", args.command)
            print(f"\n✗ {args.command} FAILED – {exc}")
            sys.exit(1)

    print(format_response(body))


if __name__ == "__main__":
    main()
