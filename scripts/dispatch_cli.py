#!/usr/bin/env python3
"""
Operate dispatch drafts from a terminal.

Drafts live in the local cache directory (CACHE_DIR, default .dispatch_cache)
and are submitted through the gateway (GATEWAY_BASE_URL).

Usage:
    python scripts/dispatch_cli.py show oil
    python scripts/dispatch_cli.py set oil serialNo 42 20L 10 10L 5
    python scripts/dispatch_cli.py calc oil
    python scripts/dispatch_cli.py reset soap
    python scripts/dispatch_cli.py lookup doc 2024-05-01 T-77
    python scripts/dispatch_cli.py submit oil            # preview only
    python scripts/dispatch_cli.py submit oil --yes      # preview + send
    python scripts/dispatch_cli.py serve --port 4000     # run the gateway

Exit codes:
    0  success
    1  validation errors or ledger failure
    2  bad arguments
"""
import argparse
import asyncio
import sys
from contextlib import asynccontextmanager
from pathlib import Path

# Allow running from a checkout without installing
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.config import settings  # noqa: E402
from app.core.dispatch import DispatchSession, FormKind, UnknownFieldError  # noqa: E402
from app.core.dispatch.domain import SubmissionOutcome  # noqa: E402
from app.infra.http_client import close_all_sessions  # noqa: E402
from app.infra.ledger_client import GatewayLedgerClient  # noqa: E402
from app.infra.local_cache import FileDraftCache  # noqa: E402
from app.infra.logging_config import setup_logging  # noqa: E402


def _print_rows(rows):
    width = max((len(label) for label, _ in rows), default=0)
    for label, value in rows:
        print(f"  {label.ljust(width)}  {value}")


@asynccontextmanager
async def open_session(args):
    """Session for one command; drafts flushed and HTTP sessions closed on exit."""
    try:
        session = await DispatchSession.create(
            cache=FileDraftCache(args.cache_dir),
            ledger=GatewayLedgerClient(args.gateway),
            kinds=(args.kind,),
            active=args.kind,
            prefetch=not args.no_prefetch,
        )
        try:
            yield session
        finally:
            await session.dispose()
    finally:
        await close_all_sessions()


async def cmd_show(args) -> int:
    async with open_session(args) as session:
        store = session.active_store
        print(f"{store.schema.title}")
        _print_rows(store.preview_rows())
    return 0


async def cmd_set(args) -> int:
    if len(args.pairs) % 2:
        print("Error: expected FIELD VALUE pairs", file=sys.stderr)
        return 2

    pairs = list(zip(args.pairs[0::2], args.pairs[1::2]))
    async with open_session(args) as session:
        try:
            for name, value in pairs:
                session.set_field(name, value)
        except UnknownFieldError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 2

        store = session.active_store
        print(f"{store.schema.total_label}: {store.record.total}")
    return 0


async def cmd_calc(args) -> int:
    async with open_session(args) as session:
        total = session.recompute_total()
        print(f"{session.active_store.schema.total_label}: {total}")
    return 0


async def cmd_reset(args) -> int:
    async with open_session(args) as session:
        await session.reset()
        print(f"{session.active_store.schema.title} draft reset")
    return 0


async def cmd_lookup(args) -> int:
    async with open_session(args) as session:
        found = await session.prefetch(date=args.date, identifier=args.identifier)
        if found:
            _print_rows(session.active_store.preview_rows())
        else:
            print("No matching record on the ledger")
    return 0 if found else 1


async def cmd_submit(args) -> int:
    async with open_session(args) as session:
        controller = session.controller

        errors = controller.request_preview()
        if errors:
            for message in errors.values():
                print(f"  ! {message}", file=sys.stderr)
            return 1

        print(f"Preview - {session.active_store.schema.title}")
        _print_rows(controller.preview_rows())

        if not args.yes:
            print("\nNot sent. Re-run with --yes to confirm and submit.")
            controller.cancel_preview()
            return 0

        controller.confirm()
        attempt = await controller.submit()
        print(attempt.notice)
        controller.acknowledge()
    return 0 if attempt.outcome is SubmissionOutcome.SUCCESS else 1


def cmd_serve(args) -> int:
    import uvicorn

    uvicorn.run("app.transport.http_app:app", host=args.host, port=args.port)
    return 0


COMMANDS = {
    "show": cmd_show,
    "set": cmd_set,
    "calc": cmd_calc,
    "reset": cmd_reset,
    "lookup": cmd_lookup,
    "submit": cmd_submit,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Capture and submit dispatch forms",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument("--cache-dir", default=settings.cache_dir, help="Local draft cache directory")
    parser.add_argument("--gateway", default=settings.gateway_base_url, help="Gateway base URL")
    parser.add_argument("--no-prefetch", action="store_true", help="Skip the ledger lookup on open")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log at DEBUG level")

    sub = parser.add_subparsers(dest="command", required=True)
    kinds = [k.value for k in FormKind]

    for name in ("show", "calc", "reset"):
        p = sub.add_parser(name)
        p.add_argument("kind", choices=kinds)

    p = sub.add_parser("set", help="Set one or more fields")
    p.add_argument("kind", choices=kinds)
    p.add_argument("pairs", nargs="+", metavar="FIELD VALUE")

    p = sub.add_parser("lookup", help="Pre-populate from the ledger")
    p.add_argument("kind", choices=kinds)
    p.add_argument("date", help="YYYY-MM-DD")
    p.add_argument("identifier", help="Serial no (oil/soap) or ticket no (doc)")

    p = sub.add_parser("submit", help="Preview, then submit with --yes")
    p.add_argument("kind", choices=kinds)
    p.add_argument("--yes", "-y", action="store_true", help="Confirm and send")

    p = sub.add_parser("serve", help="Run the ledger gateway")
    p.add_argument("--host", default="0.0.0.0")
    p.add_argument("--port", type=int, default=4000)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(level="DEBUG" if args.verbose else "WARNING", use_json=False)

    if args.command == "serve":
        return cmd_serve(args)
    return asyncio.run(COMMANDS[args.command](args))


if __name__ == "__main__":
    sys.exit(main())
