"""
Command-line entry point for the agent host server.

Decides between two modes:
- Management CLI (help, version, extension commands): delegated to the
  backend module's ``spawn_cli``; no socket is opened
- Server: resolve the port, listen, and serve through a lazily built
  backend until shutdown
"""

import sys
import asyncio
import logging
import argparse
from typing import List, Optional

from core.config import ExitCode, ServerSettings, load_settings
from core.performance_tracker import StartupMark, StartupTimeline
from server_mgmt import (
    Listener,
    ListenOptions,
    ShutdownCoordinator,
    load_backend,
)
from server_mgmt.backend_loader import import_backend_module


logger = logging.getLogger(__name__)

EXTENSION_CLI_ARGS = (
    "list_extensions",
    "install_extension",
    "install_builtin_extension",
    "uninstall_extension",
    "locate_extension",
)


def setup_logging(verbose: int, default_level: str = "WARNING") -> int:
    """
    Setup logging based on verbosity level.

    Args:
        verbose: Verbosity count (0=configured level, 1=INFO, 2+=DEBUG)
        default_level: Level name used without -v

    Returns:
        Effective log level
    """
    if verbose == 0:
        level = getattr(logging, default_level.upper(), logging.WARNING)
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
    )
    return level


def create_parser() -> argparse.ArgumentParser:
    """
    Create the server argument parser.

    ``--help`` is a plain flag here: it selects management CLI mode
    rather than printing this parser's help.

    Returns:
        parser (argparse.ArgumentParser): The argparse parser object.
    """
    parser = argparse.ArgumentParser(
        description="Agent host server",
        add_help=False,
        allow_abbrev=False,
    )

    # Listening
    parser.add_argument('--socket-path', help='Listen on a Unix domain socket instead of host/port')
    parser.add_argument('--host', help='Interface to listen on (default: all interfaces)')
    parser.add_argument('--port', help='Port number, 0 for any free port, or a start-end range to scan')
    parser.add_argument('--pick-port', help='start-end range to pick a free port from')
    parser.add_argument(
        '--print-ip-address',
        action='store_true',
        help='Print the IPv4 addresses of external network interfaces'
    )
    parser.add_argument(
        '--start-server',
        action='store_true',
        help='Start the server even if extension management flags are present'
    )
    parser.add_argument('--backend', help='Backend module providing create_server(address)')
    parser.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Increase verbosity (can be repeated: -v, -vv)'
    )

    # Management CLI
    parser.add_argument('--help', action='store_true')
    parser.add_argument('--version', action='store_true')
    parser.add_argument('--list-extensions', action='store_true')
    parser.add_argument('--install-extension')
    parser.add_argument('--install-builtin-extension')
    parser.add_argument('--uninstall-extension')
    parser.add_argument('--locate-extension')

    return parser


def should_spawn_cli(args: argparse.Namespace) -> bool:
    """
    Check if the arguments ask for the management CLI instead of a server.

    Args:
        args: Parsed arguments

    Returns:
        True for help, version, or extension commands without --start-server
    """
    if args.help or args.version:
        return True
    return not args.start_server and any(getattr(args, name) for name in EXTENSION_CLI_ARGS)


def build_listen_options(args: argparse.Namespace, settings: ServerSettings, log_level: int) -> ListenOptions:
    """
    Build listener options from parsed arguments and settings.

    Args:
        args: Parsed arguments
        settings: Server settings
        log_level: Effective log level

    Returns:
        ListenOptions
    """
    return ListenOptions(
        socket_path=args.socket_path,
        host=args.host,
        port=args.port,
        pick_port=args.pick_port,
        print_ip_address=args.print_ip_address,
        greeting=settings.greeting,
        fallback_port=settings.fallback_port,
        log_level=logging.getLevelName(log_level),
    )


def run_management_cli(backend_module: str, argv: List[str]) -> int:
    """
    Delegate to the backend module's management CLI.

    Args:
        backend_module: Backend module import path
        argv: Raw command line arguments

    Returns:
        Exit code
    """
    try:
        module = import_backend_module(backend_module)
    except ImportError as e:
        print(f"Error: cannot load backend module {backend_module}: {e}", file=sys.stderr)
        return ExitCode.ERROR.value

    spawn_cli = getattr(module, "spawn_cli", None)
    if not callable(spawn_cli):
        print(f"Error: backend module {backend_module} has no management CLI", file=sys.stderr)
        return ExitCode.NOT_IMPLEMENTED.value

    result = spawn_cli(argv)
    return ExitCode.SUCCESS.value if result is None else int(result)


def run_server(args: argparse.Namespace, settings: ServerSettings, log_level: int) -> int:
    """
    Listen and serve until shutdown.

    Args:
        args: Parsed arguments
        settings: Server settings
        log_level: Effective log level

    Returns:
        Exit code
    """
    backend_module = args.backend or settings.backend_module
    options = build_listen_options(args, settings, log_level)
    timeline = StartupTimeline()
    timeline.mark(StartupMark.START)

    listener = Listener(
        options,
        lambda address: load_backend(backend_module, address),
        timeline=timeline
    )

    with ShutdownCoordinator(listener):
        try:
            asyncio.run(listener.run())
        except KeyboardInterrupt:
            logger.info("Interrupted")
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)
            return ExitCode.ERROR.value

    return ExitCode.SUCCESS.value


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code
    """
    argv = sys.argv[1:] if argv is None else list(argv)

    parser = create_parser()
    args, unknown = parser.parse_known_args(argv)

    settings = load_settings()
    log_level = setup_logging(args.verbose, settings.log_level)
    if unknown:
        logger.debug(f"Ignoring unknown arguments: {' '.join(unknown)}")

    if should_spawn_cli(args):
        return run_management_cli(args.backend or settings.backend_module, argv)

    return run_server(args, settings, log_level)


if __name__ == "__main__":
    sys.exit(main())
