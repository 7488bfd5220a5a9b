"""
Management CLI of the default backend.

Handles the flags that make the server start in management mode
instead of listening: help, version and extension management.
The default backend has no extensions, so extension commands report
that they are not implemented.
"""

import sys
import argparse
from typing import List, Optional

from core.config import SERVER_NAME, SERVER_VERSION, ExitCode


EXTENSION_COMMANDS = (
    "list_extensions",
    "install_extension",
    "install_builtin_extension",
    "uninstall_extension",
    "locate_extension",
)


def create_parser() -> argparse.ArgumentParser:
    """
    Create the management CLI parser.

    Returns:
        parser (argparse.ArgumentParser): The argparse parser object.
    """
    parser = argparse.ArgumentParser(
        prog=SERVER_NAME,
        description="Agent host server",
        add_help=False,
        allow_abbrev=False,
    )
    parser.add_argument("--help", action="store_true", help="Show this help message")
    parser.add_argument("--version", action="store_true", help="Print the server version")
    parser.add_argument("--list-extensions", action="store_true", help="List installed extensions")
    parser.add_argument("--install-extension", metavar="ID", help="Install an extension")
    parser.add_argument("--install-builtin-extension", metavar="ID", help="Install a built-in extension")
    parser.add_argument("--uninstall-extension", metavar="ID", help="Uninstall an extension")
    parser.add_argument("--locate-extension", metavar="ID", help="Print the location of an extension")
    return parser


def spawn_cli(argv: Optional[List[str]] = None) -> int:
    """
    Run the management CLI.

    Args:
        argv: Command line arguments (server flags are ignored)

    Returns:
        Exit code
    """
    parser = create_parser()
    args, _ = parser.parse_known_args(argv)

    if args.help:
        parser.print_help()
        return ExitCode.SUCCESS.value

    if args.version:
        print(SERVER_VERSION)
        return ExitCode.SUCCESS.value

    requested = [name for name in EXTENSION_COMMANDS if getattr(args, name)]
    if requested:
        flag = "--" + requested[0].replace("_", "-")
        print(f"Error: {flag} is not supported by this server", file=sys.stderr)
        return ExitCode.NOT_IMPLEMENTED.value

    parser.print_usage()
    return ExitCode.INVALID_ARGS.value
