"""Command-line interface for serving the auction and exporting results."""

from __future__ import annotations

import argparse
import logging
from dataclasses import replace
from pathlib import Path

from liveauction.config import load_settings
from liveauction.engine import AssignmentEngine
from liveauction.export import export_results_to_csv
from liveauction.models import Principal
from liveauction.persistence import AuctionStore
from liveauction.tenancy import TenantScope


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run or inspect a live player auction")
    parser.add_argument("--db", default=None, help="SQLite path (overrides LIVEAUCTION_DB_PATH)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP and WebSocket server")
    serve.add_argument("--host", default="127.0.0.1", help="Interface to bind")
    serve.add_argument("--port", type=int, default=8000, help="Port to listen on")
    serve.add_argument("--log-level", default="info", help="Log level passed to uvicorn")

    results = subparsers.add_parser("results", help="Export a tenant's final results as CSV")
    results.add_argument("--tenant", required=True, help="Tenant (auctioneer) id")
    results.add_argument("--output", type=Path, default=None, help="Output CSV path (stdout if omitted)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    settings = load_settings()
    if args.db:
        settings = replace(settings, db_path=args.db)

    if args.command == "serve":
        import uvicorn

        from liveauction.api import create_app

        logging.basicConfig(level=args.log_level.upper())
        uvicorn.run(create_app(settings), host=args.host, port=args.port, log_level=args.log_level)
        return

    store = AuctionStore(settings.db_path, busy_timeout=settings.busy_timeout)
    engine = AssignmentEngine(store)
    scope = TenantScope(Principal(tenant_id=args.tenant))
    csv_text = export_results_to_csv(engine.final_results(scope))
    if args.output:
        args.output.write_text(csv_text, encoding="utf-8")
        print(f"Wrote results for {args.tenant} to {args.output}")
    else:
        print(csv_text, end="")


if __name__ == "__main__":
    main()
