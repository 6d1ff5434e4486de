#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
from datetime import UTC, datetime
from typing import Any
from urllib import error, request


def _http_json(method: str, url: str, payload: dict[str, Any] | None, timeout: float) -> Any:
    data = None
    headers = {"Content-Type": "application/json"}
    if payload is not None:
        data = json.dumps(payload).encode("utf-8")
    req = request.Request(url=url, method=method, data=data, headers=headers)
    with request.urlopen(req, timeout=timeout) as resp:
        body = resp.read().decode("utf-8")
        return json.loads(body) if body else None


def print_status(rows: list[dict[str, Any]]) -> None:
    print("\nBins")
    for row in rows:
        record = row["bin"]
        print(
            f"  {record['code']} | {row['status']:<11} | "
            f"fill={record['fill_percentage']:.1f}% | battery={record['battery_level']}% | "
            f"updated {row['since_update']} ago"
        )
    print("")


def print_alerts(rows: list[dict[str, Any]]) -> None:
    print(f"\nActive alerts ({len(rows)})")
    for row in rows:
        print(f"  [{row['priority']}] {row['message']}")
    print("")


def print_fleet(payload: dict[str, Any]) -> None:
    print("\nFleet")
    print(f"  online:      {payload['online_bins']}/{payload['total_bins']} ({payload['online_pct']:.0f}%)")
    print(f"  full:        {payload['full_bins']}")
    print(f"  low battery: {payload['low_battery_bins']}")
    print(f"  deposits:    {payload['deposits_today']}")
    print(f"  weight:      {payload['total_weight']:.1f} kg")
    print("")


def run(args: argparse.Namespace) -> int:
    base = args.api_base
    try:
        if args.command == "status":
            print_status(_http_json("GET", f"{base}/api/bins", None, args.timeout))
        elif args.command == "alerts":
            print_alerts(_http_json("GET", f"{base}/api/alerts", None, args.timeout))
        elif args.command == "fleet":
            print_fleet(_http_json("GET", f"{base}/api/fleet", None, args.timeout))
        elif args.command == "resolve":
            payload = _http_json("POST", f"{base}/api/alerts/{args.code}/{args.type}/resolve", None, args.timeout)
            print("[ok] resolved" if payload["resolved"] else "[noop] no active alert")
        elif args.command == "ingest":
            snapshot: dict[str, Any] = {"code": args.code, "timestamp": datetime.now(tz=UTC).isoformat()}
            for key in ("weight", "battery", "online", "deposit_increment"):
                value = getattr(args, key)
                if value is not None:
                    snapshot[key] = value
            payload = _http_json("POST", f"{base}/api/ingest", snapshot, args.timeout)
            print(f"[ok] {payload['bin']['code']} is now {payload['status']}")
    except error.HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="ignore")
        print(f"[error] HTTP {exc.code}: {detail or exc.reason}")
        return 1
    except error.URLError as exc:
        print(f"[error] Request error: {exc.reason}")
        return 1
    return 0


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Query and feed the bin fleet monitoring API.")
    parser.add_argument("--api-base", default="http://localhost:8000", help="Backend API base URL")
    parser.add_argument("--timeout", type=float, default=2.0, help="HTTP timeout seconds")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Show every bin with its status")
    sub.add_parser("alerts", help="Show active alerts")
    sub.add_parser("fleet", help="Show fleet statistics")

    resolve = sub.add_parser("resolve", help="Acknowledge an alert")
    resolve.add_argument("code")
    resolve.add_argument("type", choices=["full", "low_battery", "offline"])

    ingest = sub.add_parser("ingest", help="Send a manual sensor snapshot")
    ingest.add_argument("code")
    ingest.add_argument("--weight", type=float)
    ingest.add_argument("--battery", type=int)
    ingest.add_argument("--online", action=argparse.BooleanOptionalAction, default=None)
    ingest.add_argument("--deposit-increment", type=int)
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    raise SystemExit(run(args))


if __name__ == "__main__":
    main()
