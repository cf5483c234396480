from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
import sys
from typing import Any

from harvester.logging_config import configure_logging, parse_redact_fields
from harvester.services.browser.session import BrowserManager, PlaywrightEnvironmentFactory
from harvester.services.export import write_csv
from harvester.services.scan.commands import ScanCommandService
from harvester.services.scan.config import ScanConfig
from harvester.services.scan.events import PROGRESS_EVENT, TERMINAL_EVENT, scan_events
from harvester.services.scan.session import new_session_token
from harvester.settings import settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="comment-harvester",
        description="Collect email addresses posted in the comments of a post.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    login = subparsers.add_parser("login", help="Open a browser window to sign in on the saved profile.")
    login.add_argument(
        "--timeout",
        type=float,
        default=300.0,
        help="Seconds to wait for the sign-in to complete.",
    )

    scan = subparsers.add_parser("scan", help="Scan one post and write the results as CSV.")
    scan.add_argument("post_url", help="URL of the post to scan.")
    scan.add_argument("--out", type=Path, default=Path("comment-emails.csv"), help="CSV output path.")
    scan.add_argument("--headed", action="store_true", help="Show the browser window while scanning.")
    return parser


def _progress_line(data: dict[str, Any]) -> str:
    counters = data.get("counters") or {}
    return (
        f"[{data.get('phase', '')}] {data.get('status', '')} | "
        f"emails={data.get('total_count', 0)} "
        f"comments={counters.get('comments_scanned', 0)} "
        f"pages={counters.get('replay_pages_processed', 0)}/{counters.get('replay_total_pages', 0)}"
    )


async def _login(timeout_seconds: float) -> int:
    browser = BrowserManager.from_settings(settings, headless=False)
    try:
        ok = await browser.login(settings.platform_origin, timeout_seconds=timeout_seconds)
    finally:
        await browser.close()
    print("Signed in; the session is saved in the browser profile." if ok else "Sign-in was not detected.")
    return 0 if ok else 1


async def _scan(post_url: str, out: Path, *, headed: bool) -> int:
    browser = BrowserManager.from_settings(settings, headless=not headed)
    service = ScanCommandService(
        environment_factory=PlaywrightEnvironmentFactory(browser=browser, settings=settings),
        config=ScanConfig.from_settings(settings),
        publisher=scan_events,
    )
    nonce = new_session_token()
    queue = scan_events.subscribe(nonce)
    terminal: dict[str, Any] = {}
    try:
        outcome = await service.start(post_url, nonce=nonce)
        if not outcome.started:
            print(outcome.message, file=sys.stderr)
            return 2

        while True:
            message = await queue.get()
            if message["type"] == PROGRESS_EVENT:
                print(_progress_line(message["data"]), flush=True)
            elif message["type"] == TERMINAL_EVENT:
                terminal = message["data"]
                break

        session = await service.wait(nonce)
        count = write_csv(out, session.store.get_valid_results())
    finally:
        scan_events.unsubscribe(nonce, queue)
        await service.shutdown()
        await browser.close()

    print(json.dumps(terminal.get("stats", {}), indent=2, default=str))
    if terminal.get("error_message"):
        print(f"Scan ended: {terminal['error_message']}", file=sys.stderr)
    print(f"Wrote {count} records to {out}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(
        level=settings.log_level,
        log_format=settings.log_format,
        redact_fields=parse_redact_fields(settings.log_redact_fields),
        include_uvicorn_access=False,
    )
    if args.command == "login":
        return asyncio.run(_login(args.timeout))
    return asyncio.run(_scan(args.post_url, args.out, headed=args.headed))


if __name__ == "__main__":
    raise SystemExit(main())
