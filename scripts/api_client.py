"""Lightweight REST client for the liveauction API."""

from __future__ import annotations

import argparse
import json
from pathlib import Path

import httpx


def _headers(tenant: str, role: str) -> dict[str, str]:
    return {"x-tenant-id": tenant, "x-role": role}


def _fail(resp: httpx.Response) -> None:
    try:
        detail = resp.json().get("detail", resp.text)
    except ValueError:
        detail = resp.text
    raise SystemExit(f"{resp.request.method} {resp.request.url.path} failed ({resp.status_code}): {detail}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Interact with the liveauction REST API")
    parser.add_argument("base_url", help="Base URL of the API, e.g. http://localhost:8000")
    parser.add_argument("--tenant", required=True, help="Tenant (auctioneer) id to act as")
    parser.add_argument("--role", default="auctioneer", help="Role header to send")
    parser.add_argument("--list-teams", action="store_true", help="List teams and exit")
    parser.add_argument("--list-players", action="store_true", help="List players and exit")
    parser.add_argument("--status", choices=["available", "sold", "unsold"], help="Filter for --list-players")
    parser.add_argument("--results", action="store_true", help="Print final results")
    parser.add_argument("--export-path", type=Path, help="Write final results JSON to this path")
    parser.add_argument("--audit", action="store_true", help="Print the consistency audit")
    parser.add_argument("--reset", action="store_true", help="Delete every player and team of the tenant")
    parser.add_argument("--yes", action="store_true", help="Confirm --reset")
    args = parser.parse_args()

    if not any((args.list_teams, args.list_players, args.results, args.audit, args.reset)):
        raise SystemExit("nothing to do; pass --list-teams, --list-players, --results, --audit or --reset")
    if args.reset and not args.yes:
        raise SystemExit("--reset deletes the whole auction; add --yes to confirm")

    with httpx.Client(base_url=args.base_url, headers=_headers(args.tenant, args.role)) as client:
        if args.list_teams:
            resp = client.get("/api/teams")
            if resp.is_error:
                _fail(resp)
            for team in resp.json():
                budget = "unlimited" if team["budget"] is None else f"{team['remaining_budget']:g}/{team['budget']:g}"
                print(f"{team['name']}: {team['filled_slots']}/{team['total_slots']} slots, budget {budget}")
        if args.list_players:
            params = {"status": args.status} if args.status else None
            resp = client.get("/api/players", params=params)
            if resp.is_error:
                _fail(resp)
            print(json.dumps(resp.json(), indent=2))
        if args.results:
            resp = client.get("/api/teams/results/final")
            if resp.is_error:
                _fail(resp)
            if args.export_path:
                args.export_path.write_text(json.dumps(resp.json(), indent=2))
                print(f"Results saved to {args.export_path}")
            else:
                print(json.dumps(resp.json(), indent=2))
        if args.audit:
            resp = client.get("/api/auction/audit")
            if resp.is_error:
                _fail(resp)
            print(json.dumps(resp.json(), indent=2))
        if args.reset:
            resp = client.post("/api/auction/reset")
            if resp.is_error:
                _fail(resp)
            summary = resp.json()
            print(f"Deleted {summary['players_deleted']} players and {summary['teams_deleted']} teams")


if __name__ == "__main__":
    main()
