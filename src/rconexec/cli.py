"""CLI entry point for gated RCON execution."""

from __future__ import annotations

import argparse
import dataclasses
import getpass
import logging
import os
import sys
from pathlib import Path

from rconexec.config import AppConfig, load_config
from rconexec.credentials import encrypt_secret, generate_key
from rconexec.errors import CredentialUnavailable
from rconexec.repl import run_console, run_line
from rconexec.service import build_service

DEFAULT_SERVER = "main"


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="rconexec",
        description="Run RCON commands on configured game servers, with auditing",
    )
    parser.add_argument(
        "server",
        nargs="?",
        default=DEFAULT_SERVER,
        help=f"Server name from the config (default: {DEFAULT_SERVER})",
    )
    parser.add_argument(
        "-c",
        "--command",
        help="Execute a single command and exit (non-interactive mode)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config.toml (default: $RCONEXEC_CONFIG or ~/.config/rconexec)",
    )
    parser.add_argument(
        "--actor",
        help="Actor recorded in the audit log (default: current OS user)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Socket timeout in seconds (overrides the config)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Enable debug logging",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        default=False,
        help="Serve POST /executeCommand over HTTP instead of running commands",
    )
    parser.add_argument("--bind", default="127.0.0.1", help="HTTP bind address")
    parser.add_argument("--port", type=int, default=8080, help="HTTP port")
    parser.add_argument(
        "--generate-key",
        action="store_true",
        default=False,
        help="Print a new base64 encryption key and exit",
    )
    parser.add_argument(
        "--encrypt-password",
        action="store_true",
        default=False,
        help="Prompt for an RCON password and print its ciphertext for the config",
    )
    return parser


def _encrypt_password(config: AppConfig) -> int:
    key = os.environ.get(config.secrets.key_env)
    if not key:
        print(f"Error: ${config.secrets.key_env} is not set", file=sys.stderr)
        return 1
    password = getpass.getpass("RCON password: ")
    try:
        print(encrypt_secret(key, password))
    except CredentialUnavailable as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def _serve(config: AppConfig, bind: str, port: int) -> None:
    import uvicorn

    from rconexec.api import create_app

    uvicorn.run(create_app(config), host=bind, port=port)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.generate_key:
        print(generate_key())
        return

    config = load_config(args.config)
    if args.timeout is not None:
        config = dataclasses.replace(config, timeout=args.timeout)

    if args.encrypt_password:
        sys.exit(_encrypt_password(config))

    if args.serve:
        _serve(config, args.bind, args.port)
        return

    actor = args.actor or getpass.getuser()
    service = build_service(config)

    if args.command:
        if not run_line(service, args.server, actor, args.command):
            sys.exit(1)
        return

    print(f"Console for {args.server} as {actor}")
    print("Each line runs as one audited command. Ctrl+D or 'exit' to quit.\n")
    run_console(service, args.server, actor)
