"""Command-line interface for running and bootstrapping the backend."""

from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from pathlib import Path

from fintracker import __version__
from fintracker.config import ConfigurationError, Settings, load_settings
from fintracker.database import build_engine, init_db
from fintracker.logging import configure_logging

DESCRIPTION = "Personal finance tracking backend"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fintracker", description=DESCRIPTION)
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional YAML settings file (environment variables take precedence)",
    )
    parser.add_argument(
        "--json-logs",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Mirror logs to <log_dir>/fintracker.log in JSON format",
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("init-db", help="Create the database schema if it is missing")

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1", help="Interface to bind")
    serve.add_argument("--port", type=int, default=8080, help="Port to bind")
    return parser


def _settings(args: argparse.Namespace) -> Settings:
    settings = load_settings(config_path=args.config)
    if args.json_logs is not None and args.json_logs != settings.json_logs:
        settings = replace(settings, json_logs=bool(args.json_logs))
    return settings


def _handle_init_db(settings: Settings) -> None:
    engine = build_engine(settings.database_url)
    try:
        init_db(engine)
    finally:
        engine.dispose()
    print(f"[fintracker] init-db status=ok backend={engine.url.get_backend_name()}")


def _handle_serve(settings: Settings, args: argparse.Namespace) -> None:
    import uvicorn

    from fintracker.server import create_app

    app = create_app(settings)
    print(f"[fintracker] serve host={args.host} port={args.port}")
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = _settings(args)
    except ConfigurationError as exc:
        print(f"[fintracker] configuration error: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc
    configure_logging(settings)
    if args.cmd == "init-db":
        _handle_init_db(settings)
    elif args.cmd == "serve":
        _handle_serve(settings, args)


if __name__ == "__main__":
    main()
