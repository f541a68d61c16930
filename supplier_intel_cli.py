import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

import httpx


DEFAULT_API_BASE = "http://127.0.0.1:8000"


def _join_url(base: str, path: str) -> str:
    return base.rstrip("/") + path


def _print_error(resp: httpx.Response, action: str) -> None:
    try:
        detail = resp.json().get("error")
    except ValueError:
        detail = resp.text
    print(f"Failed to {action}: HTTP {resp.status_code} {detail or ''}".rstrip())


def _print_status(status: dict) -> None:
    if status.get("status") != "online":
        print(status.get("message") or "No AI service available.")
        return
    line = f"Online via {status.get('provider')}"
    if status.get("url"):
        line += f" at {status['url']}"
    print(line)
    models = status.get("models") or []
    if models:
        print(f"Models: {', '.join(models)}")


def _print_intel(intel: dict) -> None:
    print(f"{intel.get('company')} ({intel.get('industry')})")
    print(intel.get("summary") or "")
    reputation = intel.get("reputation") or {}
    print(f"Reputation: {reputation.get('overall')}/100 - {reputation.get('summary') or ''}")
    esg = intel.get("esgScore") or {}
    print(f"ESG: {esg.get('overall')} ({esg.get('source') or 'analysis'})")
    for risk in (intel.get("risks") or [])[:5]:
        print(f"- [{risk.get('level')}] {risk.get('category')}: {risk.get('description')}")
    for item in (intel.get("news") or [])[:5]:
        print(f"* {item.get('title')} ({item.get('source')})")


def run_status(args: argparse.Namespace) -> int:
    with httpx.Client() as client:
        resp = client.get(_join_url(args.base_url, "/ollama-status"), timeout=10)
        if resp.status_code >= 400:
            _print_error(resp, "fetch status")
            return 1
        _print_status(resp.json())
    return 0


def run_intel(args: argparse.Namespace) -> int:
    with httpx.Client() as client:
        resp = client.get(
            _join_url(args.base_url, "/intel"),
            params={"supplier": args.supplier},
            timeout=args.timeout,
        )
        if resp.status_code >= 400:
            _print_error(resp, "gather intel")
            return 1
        data = resp.json()
    if args.json:
        print(json.dumps(data, indent=2))
    else:
        _print_intel(data)
    return 0


def run_chat(args: argparse.Namespace) -> int:
    payload = {"message": args.message, "supplierName": args.supplier, "history": []}
    with httpx.Client() as client:
        resp = client.post(_join_url(args.base_url, "/chat"), json=payload, timeout=args.timeout)
        if resp.status_code >= 400:
            _print_error(resp, "chat")
            return 1
        print(resp.json().get("reply") or "")
    return 0


def run_portfolio(args: argparse.Namespace) -> int:
    try:
        suppliers = json.loads(Path(args.file).read_text())
    except (OSError, ValueError) as exc:
        print(f"Could not read supplier list: {exc}")
        return 1
    if isinstance(suppliers, dict):
        suppliers = suppliers.get("suppliers")
    with httpx.Client() as client:
        resp = client.post(
            _join_url(args.base_url, "/portfolio-analysis"),
            json={"suppliers": suppliers},
            timeout=args.timeout,
        )
        if resp.status_code >= 400:
            _print_error(resp, "analyze portfolio")
            return 1
        data = resp.json()
    print(f"[source: {data.get('source')}]")
    print(data.get("analysis") or "")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Supplier Intel CLI")
    parser.add_argument("--base-url", default=DEFAULT_API_BASE, help="API base URL")
    parser.add_argument("--timeout", type=float, default=180, help="Request timeout in seconds")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("status", help="Show which AI provider is usable")

    intel = subparsers.add_parser("intel", help="Gather intelligence on a supplier")
    intel.add_argument("supplier", help="Supplier company name")
    intel.add_argument("--json", action="store_true", help="Print the raw JSON report")

    chat = subparsers.add_parser("chat", help="Ask a question about a supplier")
    chat.add_argument("supplier", help="Supplier company name")
    chat.add_argument("message", help="Question to ask")

    portfolio = subparsers.add_parser("portfolio", help="Analyze a supplier portfolio JSON file")
    portfolio.add_argument("file", help="JSON list of suppliers (or {\"suppliers\": [...]})")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    handlers = {
        "status": run_status,
        "intel": run_intel,
        "chat": run_chat,
        "portfolio": run_portfolio,
    }
    handler = handlers.get(args.command)
    if handler is None:
        parser.print_help()
        return 1
    try:
        return handler(args)
    except httpx.RequestError as exc:
        print(f"Could not reach {args.base_url}: {exc}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
