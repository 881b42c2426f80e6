from __future__ import annotations

import argparse
import json
import sys

import requests


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="LVS health monitor CLI")
    p.add_argument("--api", default="http://localhost:8000", help="API base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("targets", help="Show health of every backend")

    s_tgt = sub.add_parser("target", help="Show health of one backend")
    s_tgt.add_argument("address")

    sub.add_parser("services", help="Show configured and registered virtual services")

    s_ev = sub.add_parser("events", help="Show membership events")
    s_ev.add_argument("--limit", type=int, default=20)

    args = p.parse_args(argv)

    base = args.api.rstrip("/")

    if args.cmd == "targets":
        r = requests.get(f"{base}/targets", timeout=10)
    elif args.cmd == "target":
        r = requests.get(f"{base}/targets/{args.address}", timeout=10)
    elif args.cmd == "services":
        r = requests.get(f"{base}/services", timeout=10)
    elif args.cmd == "events":
        r = requests.get(f"{base}/events", params={"limit": args.limit}, timeout=10)
    else:
        return 2

    _print(r.json())
    return 0 if r.ok else 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
