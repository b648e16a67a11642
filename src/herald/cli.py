"""CLI entry point for Herald."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .config import (
    HeraldConfig,
    config_to_yaml,
    ensure_server_uuid,
    load_config,
    merge_cli_args,
    validate_config,
)
from .controller import Outcome
from .heartbeat import build_controller, run_adapter


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    """Add config flags shared by the run/register/deregister subcommands."""
    parser.add_argument("--config", type=str, help="Path to YAML config file")
    parser.add_argument(
        "--server-address", type=str, dest="server_address",
        help="Base URL of the directory service, without endpoint (e.g. http://127.0.0.1:8889)",
    )
    parser.add_argument(
        "--communication-key", type=str, dest="communication_key",
        help="Shared key presented to the directory with every request",
    )
    parser.add_argument("--server-uuid", type=str, dest="server_uuid", help="Server UUID")
    parser.add_argument("--server-name", type=str, dest="server_name", help="Server name")
    parser.add_argument("--server-port", type=int, dest="server_port", help="Game server port")
    parser.add_argument(
        "--player-count", type=int, dest="player_count",
        help="Players currently on the server",
    )
    parser.add_argument(
        "--player-capacity", type=int, dest="player_capacity",
        help="Players allowed on the server",
    )
    parser.add_argument(
        "--extra-information", type=str, dest="extra_information",
        help="Extra information, conventionally a JSON string",
    )
    parser.add_argument(
        "--update-period", type=float, dest="update_server_period_seconds",
        help="Seconds between periodic updates (default: 300)",
    )
    parser.add_argument(
        "--periodic", action=argparse.BooleanOptionalAction,
        dest="update_server_periodically", default=None,
        help="Refresh the directory entry periodically",
    )
    parser.add_argument(
        "--log-level", type=str, dest="log_level",
        help="Logging level (default: INFO)",
    )


def _build_config(args) -> HeraldConfig:
    """Build a HeraldConfig from a config file + CLI overrides."""
    if args.config:
        config = load_config(args.config)
    else:
        config = HeraldConfig()
    merge_cli_args(config, args)
    validate_config(config)
    return config


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="[herald] %(levelname)s %(message)s",
        stream=sys.stderr,
    )


def _load_or_exit(args) -> HeraldConfig:
    try:
        config = _build_config(args)
    except (OSError, ValueError, TypeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    _setup_logging(config.log_level)
    return config


def cmd_run(args) -> None:
    """Register, keep the entry fresh, and deregister on SIGINT/SIGTERM."""
    config = _load_or_exit(args)
    ok = asyncio.run(run_adapter(config))
    if not ok:
        sys.exit(1)


async def _one_shot(config: HeraldConfig, operation: str) -> bool:
    controller = build_controller(config)
    outcomes: list[Outcome] = []
    controller.add_event_listener(lambda event: outcomes.append(event.outcome))
    task = getattr(controller, operation)()
    if task is not None:
        await task
    return bool(outcomes) and outcomes[-1] is Outcome.SUCCESS


def cmd_register(args) -> None:
    """Send a single add exchange (with the update fallback if enabled)."""
    config = _load_or_exit(args)
    # A one-shot process cannot refresh anything after it exits.
    config.update_server_periodically = False
    if not asyncio.run(_one_shot(config, "register")):
        sys.exit(1)


def cmd_deregister(args) -> None:
    """Send a single remove exchange."""
    config = _load_or_exit(args)
    if not config.server_uuid:
        print("Error: a server UUID is required to deregister (--server-uuid or config).",
              file=sys.stderr)
        sys.exit(1)
    if not asyncio.run(_one_shot(config, "deregister")):
        sys.exit(1)


def cmd_init_config(args) -> None:
    """Write a config file with a freshly generated server UUID."""
    path = Path(args.path)
    if path.exists() and not args.force:
        print(f"Error: '{path}' already exists (use --force to overwrite).", file=sys.stderr)
        sys.exit(1)
    config = HeraldConfig()
    if args.server_address:
        config.server_address = args.server_address
    ensure_server_uuid(config)
    path.write_text(config_to_yaml(config))
    print(f"Wrote {path} with server UUID {config.server_uuid}")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="herald",
        description="Herald: keep a game server listed in a directory service",
    )
    subparsers = parser.add_subparsers(dest="command")

    # run
    run_parser = subparsers.add_parser(
        "run", help="Register and keep the server listed until interrupted",
    )
    _add_common_args(run_parser)
    run_parser.add_argument(
        "--no-deregister", action="store_false", dest="deregister_on_exit",
        default=None,
        help="Leave the entry in place on exit and let the directory expire it",
    )
    run_parser.set_defaults(func=cmd_run)

    # register
    register_parser = subparsers.add_parser(
        "register", help="Register the server once and exit",
    )
    _add_common_args(register_parser)
    register_parser.add_argument(
        "--no-fallback", action="store_false", dest="retry_registration_as_update_on_fail",
        default=None,
        help="Do not retry a failed registration as an update",
    )
    register_parser.set_defaults(func=cmd_register)

    # deregister
    deregister_parser = subparsers.add_parser(
        "deregister", help="Remove the server from the directory and exit",
    )
    _add_common_args(deregister_parser)
    deregister_parser.set_defaults(func=cmd_deregister)

    # init-config
    init_parser = subparsers.add_parser(
        "init-config", help="Write a config file with a generated server UUID",
    )
    init_parser.add_argument("path", type=str, help="Where to write the YAML config")
    init_parser.add_argument(
        "--server-address", type=str, dest="server_address", default=None,
        help="Directory base URL to put in the file",
    )
    init_parser.add_argument(
        "--force", action="store_true",
        help="Overwrite an existing file",
    )
    init_parser.set_defaults(func=cmd_init_config)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)
