"""CLI entrypoint for searching packages and checking for updates."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import threading

from dotenv import load_dotenv

from batch import resolve_many
from errors import Cancelled, SourceUnavailable
from models import AggregationResult, PackageRecord, UpdateRecord
from sources import PackageSources, open_sources
from updates import compute_updates

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line flags."""
    parser = argparse.ArgumentParser(
        description="Search installed, sync-repository and AUR packages and list pending updates"
    )
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--deadline",
        type=float,
        default=None,
        help="Cancel the operation after this many seconds",
    )
    parser.add_argument("--no-aur", action="store_true", help="Do not query the AUR")
    parser.add_argument("--db-path", default=None, help="pacman database directory (default: PACMAN_DB_PATH)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    search = subparsers.add_parser("search", help="Search every source for a term")
    search.add_argument("term")

    info = subparsers.add_parser("info", help="Resolve package names to their best record, in order")
    info.add_argument("names", nargs="+")

    subparsers.add_parser("updates", help="List installed packages with a newer version available")
    subparsers.add_parser("installed", help="List installed packages")

    is_installed = subparsers.add_parser("is-installed", help="Exit 0 if the package is installed")
    is_installed.add_argument("name")

    return parser.parse_args(argv)


def run(args: argparse.Namespace, sources: PackageSources, cancel: threading.Event) -> int:
    """Dispatch one subcommand against already opened sources."""
    if args.command == "search":
        result = sources.aggregator().search_all(args.term, cancel=cancel)
        _print_search(result, as_json=args.json)
        if result.cancelled:
            return EXIT_CANCELLED
        return EXIT_FAILURE if result.all_failed else EXIT_OK

    if args.command == "info":
        records = resolve_many(
            sources.aggregator(),
            args.names,
            policy=sources.merge_policy(),
            cancel=cancel,
        )
        _print_records(records, as_json=args.json)
        return EXIT_OK

    if args.command == "updates":
        updates = compute_updates(sources, cancel=cancel)
        _print_updates(updates, as_json=args.json)
        return EXIT_OK

    if sources.local is None:
        raise SourceUnavailable("Local", "local database is not available")

    if args.command == "installed":
        _print_records(sorted(sources.local.installed(), key=lambda r: r.name), as_json=args.json)
        return EXIT_OK

    if args.command == "is-installed":
        installed = sources.local.is_installed(args.name)
        if args.json:
            print(json.dumps({"name": args.name, "installed": installed}))
        else:
            print(f"{args.name} is {'installed' if installed else 'not installed'}")
        return EXIT_OK if installed else EXIT_FAILURE

    raise ValueError(f"Unknown command: {args.command}")


def _print_search(result: AggregationResult, as_json: bool) -> None:
    if as_json:
        payload = {
            "results": [record.to_dict() for record in result.records],
            "failures": [
                {"source": f.source_tag, "kind": f.kind, "message": f.message} for f in result.failures
            ],
            "cancelled": result.cancelled,
        }
        print(json.dumps(payload, indent=2))
        return

    _print_records(result.records, as_json=False)
    for failure in result.failures:
        logging.warning("Source %s failed (%s): %s", failure.source_tag, failure.kind, failure.message)
    if not result.records and not result.all_failed:
        print("No matches found.")


def _print_records(records: list[PackageRecord], as_json: bool) -> None:
    if as_json:
        print(json.dumps([record.to_dict() for record in records], indent=2))
        return
    for record in records:
        print(f"{record.repository}/{record.name} {record.version}".rstrip())
        if record.description:
            print(f"    {record.description}")


def _print_updates(updates: list[UpdateRecord], as_json: bool) -> None:
    if as_json:
        print(json.dumps([update.to_dict() for update in updates], indent=2))
        return
    if not updates:
        print("Everything is up to date.")
        return
    for update in updates:
        print(f"{update.repository}/{update.name} {update.old_version} -> {update.new_version}")


def main(argv: list[str] | None = None) -> int:
    """Initialize config and execute one command."""
    load_dotenv()
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )

    cancel = threading.Event()
    timer: threading.Timer | None = None
    if args.deadline is not None:
        timer = threading.Timer(args.deadline, cancel.set)
        timer.daemon = True
        timer.start()

    try:
        with open_sources(db_path=args.db_path, remote=False if args.no_aur else None) as sources:
            return run(args, sources, cancel)
    except (Cancelled, KeyboardInterrupt):
        cancel.set()
        logging.warning("Cancelled")
        return EXIT_CANCELLED
    except SourceUnavailable as exc:
        logging.error("%s", exc)
        return EXIT_FAILURE
    finally:
        if timer is not None:
            timer.cancel()


if __name__ == "__main__":
    sys.exit(main())
