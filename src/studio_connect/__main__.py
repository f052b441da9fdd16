#!/usr/bin/env python3
"""
Studio Connect entry point.

Checks the Opencast connection settings and reports the resulting state.

Usage:
    python -m studio_connect [options]

Options:
    --server-url URL     Opencast server URL
    --workflow-id ID     Workflow used for uploads
    --username NAME      Login name
    --password PASS      Login password
    --login-provided     Session cookies are provided by the hosting context
    --anonymous          Accept a connection without login
    --save               Save the settings if the check succeeds
    --config PATH        Path to the settings file
    --verbose, -v        Enable verbose debug logging
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from studio_connect import __version__
from studio_connect.common.config import StudioConfig, get_config_dir
from studio_connect.common.logging_config import setup_logging
from studio_connect.common.settings_check import CheckStatus, check_settings


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="studio-connect",
        description="Check the connection to an Opencast server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--server-url", type=str, help="Opencast server URL")
    parser.add_argument("--workflow-id", type=str, help="Upload workflow ID")
    parser.add_argument("--username", type=str, help="Login name")
    parser.add_argument("--password", type=str, help="Login password")
    parser.add_argument(
        "--login-provided",
        action="store_true",
        help="Session cookies are provided by the hosting Opencast instance",
    )
    parser.add_argument(
        "--anonymous",
        action="store_true",
        help="Accept a connection without login",
    )
    parser.add_argument(
        "--save",
        action="store_true",
        help="Save the settings if the check succeeds",
    )
    parser.add_argument("--config", type=str, help="Path to the settings file")
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose debug logging",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )

    return parser.parse_args(argv)


def form_data_from_args(args: argparse.Namespace) -> dict:
    """Collect the settings given on the command line."""
    data = {}
    if args.server_url:
        data["server_url"] = args.server_url
    if args.workflow_id:
        data["workflow_id"] = args.workflow_id
    if args.username:
        data["login_name"] = args.username
    if args.password:
        data["login_password"] = args.password
    if args.login_provided:
        data["login_provided"] = True
    return data


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    setup_logging(verbose=args.verbose)
    logger = logging.getLogger("studio-connect")

    config = StudioConfig(config_path=Path(args.config) if args.config else None)
    logger.debug(f"Studio Connect v{__version__}, config directory: {get_config_dir()}")

    try:
        result = asyncio.run(
            check_settings(
                config,
                form_data_from_args(args),
                save=args.save,
                require_login=not args.anonymous,
            )
        )
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return 1

    manager = result.manager
    print(f"Server: {manager.server_url or '-'}")
    print(f"State: {result.state.value}")
    identity = manager.current_identity()
    if identity is not None:
        print(f"User: {identity.username}")
    print(result.message)
    if result.status is CheckStatus.SAVED:
        print(f"Settings saved to {config.config_path}")

    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
