"""Command-line interface for vmrobot.

Provides the entry point for running the server and for executing an
action batch against a remote server from a JSON file.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="vmrobot",
        description="Remote keyboard/mouse control of virtual machines",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/vmrobot.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("serve", help="Start the HTTP server")

    run_parser = subparsers.add_parser(
        "run-actions",
        help="Execute a JSON list of actions on a remote VM",
    )
    target = run_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--connect", type=str, help="Running machine to attach to")
    target.add_argument("--clone", type=str, help="Machine to clone and launch")
    run_parser.add_argument("--snapshot", type=str, default=None, help="Snapshot to clone from")
    run_parser.add_argument(
        "--isolated", action="store_true",
        help="Report translation errors per action instead of aborting",
    )
    run_parser.add_argument("actions", type=Path, help="JSON file holding the action list")

    return parser.parse_args(argv)


async def _run_actions(settings, args) -> None:
    """Create a remote session, run the batch, close the session."""
    from vmrobot.client import RobotClient

    actions = json.loads(args.actions.read_text())
    password = settings.server.password.get_secret_value() if settings.server.password else None

    async with RobotClient(
        base_url=settings.client.base_url,
        username=settings.server.username,
        password=password,
        timeout=settings.client.timeout,
    ) as client:
        if args.clone:
            vm = await client.clone_vm(args.clone, snapshot=args.snapshot)
        else:
            vm = await client.connect_vm(args.connect)
        try:
            result = await vm.execute(actions, isolated=args.isolated)
        finally:
            await vm.close()

    if args.isolated:
        for index, item in enumerate(result):
            status = "ok" if item.success else f"error: {item.error}"
            print(f"  [{index + 1}] {status}")
    elif result is not None:
        print(f"Result: {json.dumps(result)}")


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the vmrobot CLI."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return

    from vmrobot.config.settings import load_settings
    from vmrobot.utils.logging import setup_logging

    settings = load_settings(args.config)

    if args.verbose:
        settings.logging.level = "DEBUG"

    setup_logging(settings.logging)

    if args.command == "serve":
        logger.info("Starting vmrobot server on %s:%d", settings.server.host, settings.server.port)
        from vmrobot.server.app import main as serve

        serve(settings)

    elif args.command == "run-actions":
        logger.info("Running actions from %s", args.actions)
        asyncio.run(_run_actions(settings, args))


if __name__ == "__main__":
    main()
