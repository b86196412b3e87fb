"""Admin CLI: schema creation, recent rows, and offline batch import."""

import argparse
import asyncio
import csv
import io
import json
import sys
from pathlib import Path

from .config import get_settings
from .errors import IngestionError, StoreError, ValidationError
from .ingest import IngestionEngine
from .logging import setup_logging
from .query import DEFAULT_LIMIT, MAX_LIMIT, WeightQuery, WeightRow
from .samples import SampleNormalizer
from .store import SampleStore

VALID_FORMATS = {"text", "json", "csv"}


def _open_store(db_path: Path | None) -> SampleStore:
    settings = get_settings()
    return SampleStore(
        db_path=db_path or Path(settings.store.db_path),
        busy_timeout_ms=settings.store.busy_timeout_ms,
    )


async def _init_db(store: SampleStore) -> int:
    await store.initialize()
    print(f"Schema ready at {store.db_path}")
    return 0


def _output_text(rows: list[WeightRow]) -> None:
    """Print rows as an aligned table with a short summary."""
    if not rows:
        print("No data found.")
        return

    print(f"{'date':<32} {'kg':>8} {'lb':>8}")
    for row in rows:
        print(f"{row.date:<32} {row.kg:>8.2f} {row.lb:>8.2f}")

    newest, oldest = rows[0], rows[-1]
    print(f"Change: {newest.kg - oldest.kg:+.2f} kg over {len(rows)} samples")


def _output_json(rows: list[WeightRow]) -> None:
    print(json.dumps([row.model_dump() for row in rows], indent=2))


def _output_csv(rows: list[WeightRow]) -> None:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(["date", "kg", "lb"])
    for row in rows:
        writer.writerow([row.date, row.kg, row.lb])
    print(buf.getvalue(), end="")


async def _recent(store: SampleStore, limit: int, fmt: str) -> int:
    # The query layer swallows store errors; surface them here instead.
    try:
        await store.initialize()
    except StoreError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    rows = await WeightQuery(store).list_recent(limit)
    if fmt == "json":
        _output_json(rows)
    elif fmt == "csv":
        _output_csv(rows)
    else:
        _output_text(rows)
    return 0


async def _import_file(store: SampleStore, path: Path, dry_run: bool) -> int:
    settings = get_settings()
    normalizer = SampleNormalizer(
        default_source=settings.app.default_source,
        strict_ids=settings.app.strict_sample_ids,
    )

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
        print(f"Error: cannot read {path}: {exc}", file=sys.stderr)
        return 1

    try:
        samples = normalizer.normalize(payload)
    except ValidationError as exc:
        print(f"Error: invalid payload: {exc}", file=sys.stderr)
        return 1

    if dry_run:
        for sample in samples[:10]:
            print(f"  [{sample.id}] {sample.start_time}: {sample.mass_kg:.2f} kg")
        print(f"\nDry run: {len(samples)} samples would be upserted")
        return 0

    try:
        result = await IngestionEngine(store).apply(samples, kind="import")
    except IngestionError as exc:
        print(f"Error: {exc}: {exc.__cause__}", file=sys.stderr)
        return 1

    print(f"Upserted {result.accepted} samples")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="health-bridge-admin",
        description="Manage the weight sample store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  health-bridge-admin init-db\n"
            "  health-bridge-admin recent --limit 10 --format csv\n"
            "  health-bridge-admin import export.json --dry-run\n"
        ),
    )
    parser.add_argument(
        "--db-path",
        type=Path,
        default=None,
        help="SQLite database path (default: STORE_DB_PATH)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the database schema")

    recent = sub.add_parser("recent", help="Print the most recent samples")
    recent.add_argument(
        "--limit",
        type=int,
        default=DEFAULT_LIMIT,
        help=f"Rows to print, 1-{MAX_LIMIT} (default: {DEFAULT_LIMIT})",
    )
    recent.add_argument(
        "--format",
        default="text",
        choices=sorted(VALID_FORMATS),
        help="Output format (default: text)",
    )

    imp = sub.add_parser("import", help="Upsert a bodyMass or single-sample JSON file")
    imp.add_argument("file", type=Path, help="JSON payload file")
    imp.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate and list samples without writing",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the admin CLI and return the exit code."""
    args = build_parser().parse_args(argv)
    setup_logging(get_settings().app, stream=sys.stderr)
    store = _open_store(args.db_path)

    if args.command == "init-db":
        try:
            return asyncio.run(_init_db(store))
        except StoreError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
    if args.command == "recent":
        return asyncio.run(_recent(store, args.limit, args.format))
    return asyncio.run(_import_file(store, args.file, args.dry_run))


def admin() -> None:
    """CLI entry point.

    Usage:
        health-bridge-admin [--db-path PATH] {init-db,recent,import} ...
    """
    sys.exit(main())
