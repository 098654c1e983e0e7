import argparse
import logging
import signal
import sys
from datetime import datetime
from pathlib import Path

from . import config
from .cancellation import CancelToken
from .config import ScanOptions
from .core import MediaCatalogApp
from .exceptions import CorruptPersistence, MediaCatalogError
from .models import MediaFormat, MediaKind
from .reporting import ReportGenerator
from .search import BoundingBox, Predicate, Range
from .validation import ValidationMode


def setup_logging(log_dir: Path, verbose: bool):
    """Sets up logging to both console and a file in the library."""
    log_level = logging.DEBUG if verbose else logging.INFO

    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / config.LOG_FILENAME

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.FileHandler(log_file, encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ]
    )

    # Silence chatty libraries
    logging.getLogger("exifread").setLevel(logging.ERROR)
    logging.getLogger("PIL").setLevel(logging.WARNING)


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Media Catalog: content-addressed index of a media library")

    p.add_argument("library", type=Path, help="Library root (managed directory)")
    p.add_argument("--db", type=Path, default=None,
                   help=f"Catalog snapshot path (default: library/{config.CATALOG_FILENAME})")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    p.add_argument("--workers", type=int, default=config.DEFAULT_WORKERS, help="Parallel hashing workers")
    p.add_argument("--no-exiftool", action="store_true", help="Never shell out to exiftool")
    p.add_argument("--mtime-fallback", action="store_true",
                   help="Use file modification time when no capture time is found")

    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Create an empty catalog")

    add = sub.add_parser("add", help="Index a directory in place")
    add.add_argument("directory", type=Path)

    imp = sub.add_parser("import", help="Copy new files from a directory into the library")
    imp.add_argument("source", type=Path)
    imp.add_argument("--report-csv", type=Path, default=None)

    norm = sub.add_parser("normalize", help="Move files to match a naming template")
    norm.add_argument("--template", default=config.DEFAULT_TEMPLATE,
                      help="Placeholders: {year} {month} {day} {timestamp_ns} {hash} {ext} {device}")

    val = sub.add_parser("validate", help="Compare the catalog with the disk")
    val.add_argument("--full", action="store_true", help="Re-hash every file")
    val.add_argument("--report-csv", type=Path, default=None)
    val.add_argument("--deindex-missing", action="store_true",
                     help="Remove records whose file is missing (explicit repair)")

    search = sub.add_parser("search", help="Find records")
    search.add_argument("--format", help="Exact format, e.g. image/jpeg")
    search.add_argument("--kind", choices=[k.value for k in MediaKind])
    search.add_argument("--device")
    search.add_argument("--device-contains")
    search.add_argument("--path-contains")
    search.add_argument("--since", type=datetime.fromisoformat)
    search.add_argument("--until", type=datetime.fromisoformat)
    search.add_argument("--iso-min", type=int)
    search.add_argument("--iso-max", type=int)
    search.add_argument("--bbox", type=float, nargs=4, metavar=("MIN_LAT", "MIN_LON", "MAX_LAT", "MAX_LON"))
    search.add_argument("--label")
    search.add_argument("--sort", choices=["hash", "filepath", "format", "created", "device", "iso"])

    sub.add_parser("stats", help="Summarise the catalog")

    label = sub.add_parser("label", help="Add or remove a label")
    label.add_argument("action", choices=["add", "remove"])
    label.add_argument("target", help="Catalogued file path or hash")
    label.add_argument("label")

    return p.parse_args(argv)


def build_predicate(args) -> Predicate:
    created = Range(args.since, args.until) if (args.since or args.until) else None
    iso = Range(args.iso_min, args.iso_max) if (args.iso_min is not None or args.iso_max is not None) else None
    return Predicate(
        format=MediaFormat.parse(args.format) if args.format else None,
        kind=MediaKind(args.kind) if args.kind else None,
        device=args.device,
        device_contains=args.device_contains,
        filepath_contains=args.path_contains,
        created=created,
        iso=iso,
        location=BoundingBox(*args.bbox) if args.bbox else None,
        label=args.label,
    )


def open_app(args, options: ScanOptions) -> MediaCatalogApp:
    db_path = args.db if args.db else args.library / config.CATALOG_FILENAME
    if args.command == "init":
        if db_path.exists():
            raise SystemExit(f"Catalog already exists: {db_path}")
        return MediaCatalogApp.create(args.library, options, snapshot_path=db_path)
    if not db_path.exists():
        raise SystemExit(f"Catalog not found at {db_path}. Run 'init' first.")
    return MediaCatalogApp.read_from_disk(db_path, library_root=args.library, options=options)


def run(args, app: MediaCatalogApp, cancel: CancelToken) -> bool:
    """Executes one command. Returns True when the snapshot should be saved."""
    reporter = ReportGenerator()

    if args.command == "init":
        return True

    if args.command == "add":
        print(app.add_directory(args.directory, cancel=cancel).summary())
        return True

    if args.command == "import":
        report = app.copy_from_directory(args.source, cancel=cancel)
        print(report.summary())
        for diag in report.diagnostics:
            print(f"  {diag.kind}: {diag.path}: {diag.message}")
        if args.report_csv:
            reporter.write_batch_report(report, args.report_csv)
        return True

    if args.command == "normalize":
        print(app.normalize_directory_structure(args.template, cancel=cancel).summary())
        return True

    if args.command == "validate":
        mode = ValidationMode.FULL_HASH if args.full else ValidationMode.QUICK
        report = app.validate(mode, cancel=cancel)
        print(report.summary())
        for record in report.missing:
            print(f"  Missing: {record.filepath}")
        for record, actual in report.hash_mismatch:
            print(f"  HashMismatch: {record.filepath}")
        for path in report.orphans:
            print(f"  Orphan: {path}")
        if args.report_csv:
            reporter.write_validation_report(report, args.report_csv)
        if args.deindex_missing and report.missing:
            print(f"Removed {app.deindex_missing(report)} missing records")
            return True
        return False

    if args.command == "search":
        for record in app.search(build_predicate(args), sort_key=args.sort):
            created = record.created.isoformat() if record.created else ""
            print(f"{record.hash[:12]}  {str(record.format):12}  {created:19}  {record.device or '':20}  {record.filepath}")
        return False

    if args.command == "stats":
        print(reporter.format_stats(app.stats()))
        return False

    if args.command == "label":
        if args.action == "add":
            app.add_label(args.target, args.label)
        elif not app.remove_label(args.target, args.label):
            print(f"{args.target} has no label {args.label!r}")
        return True

    raise SystemExit(f"Unknown command: {args.command}")


def main(argv=None):
    args = parse_args(argv)
    library = args.library.resolve()
    args.library = library

    setup_logging(library, args.verbose)
    logging.info(f"=== Media Catalog: {args.command} ===")

    options = ScanOptions(
        max_workers=args.workers,
        mtime_fallback_for_created=args.mtime_fallback,
        use_exiftool=not args.no_exiftool,
        show_progress=True,
    )

    # Ctrl-C finishes the current file, then stops; committed work is still saved
    cancel = CancelToken()
    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: cancel.cancel())

    try:
        app = open_app(args, options)
        if run(args, app, cancel):
            path = app.write_to_disk()
            logging.info(f"Catalog saved: {path}")
    except CorruptPersistence as e:
        logging.error(f"Catalog snapshot is unusable: {e}")
        sys.exit(2)
    except MediaCatalogError as e:
        logging.error(str(e))
        sys.exit(1)
    except Exception:
        logging.exception("Fatal error.")
        sys.exit(1)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    if cancel.is_cancelled:
        logging.warning("Operation cancelled by user.")
        sys.exit(130)


if __name__ == "__main__":
    main()
