import argparse
import logging
import sys
from pathlib import Path

from . import config
from .core import CasketImporter
from .exceptions import FatalError
from .reporting import log_summary, write_csv_report
from .settings import get_catalog, validate_catalog
from .thumbnails.converter import default_converter
from .thumbnails.engine import ThumbnailSettings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def setup_logging(verbose: bool):
    """Console logging; the log file is attached once the catalog is known."""
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Silence chatty libraries
    logging.getLogger("exifread").setLevel(logging.ERROR)
    logging.getLogger("PIL").setLevel(logging.WARNING)


def attach_log_file(log_dir: Path):
    handler = logging.FileHandler(log_dir / config.LOG_FILENAME, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(handler)


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Casket: import photos and videos into a catalog")

    p.add_argument("-s", "--source", type=Path, required=True, help="Source directory to import")
    p.add_argument("-c", "--catalog", required=True, help="Catalog name from the settings file")

    p.add_argument("--config", type=Path, default=None,
                   help=f"Settings file (default: ${config.CONFIG_ENV_VAR} or ~/.config/casket/catalogs.toml)")
    p.add_argument("-j", "--workers", type=int, default=config.DEFAULT_WORKERS,
                   help="Parallel workers for decoding and copying (1 = sequential)")
    p.add_argument("--max-dimension", type=int, default=config.DEFAULT_MAX_DIMENSION,
                   help="Longest thumbnail edge in pixels")
    p.add_argument("--quality", type=int, default=config.DEFAULT_QUALITY_LEVEL,
                   choices=range(config.MIN_QUALITY_LEVEL, config.MAX_QUALITY_LEVEL + 1), metavar="1-10",
                   help="Thumbnail quality level (n -> JPEG quality n*10)")
    p.add_argument("--batch-size", type=int, default=config.DEFAULT_BATCH_SIZE,
                   help="Catalog rows per transaction")
    p.add_argument("--report-csv", type=Path, default=None, help="Write a per-file CSV report")
    p.add_argument("--no-progress", action="store_true", help="Hide the progress bar")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    return p.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose)

    logging.info("=== Casket Import Started ===")
    src_root = args.source.expanduser().resolve()
    logging.info(f"Source:  {src_root}")
    logging.info(f"Catalog: {args.catalog}")

    try:
        catalog = get_catalog(args.catalog, args.config)
        validate_catalog(catalog)
        attach_log_file(catalog.thumbnail_path)
        logging.info(f"Data path:      {catalog.data_path}")
        logging.info(f"Thumbnail path: {catalog.thumbnail_path}")

        settings = ThumbnailSettings(max_dimension=args.max_dimension, quality_level=args.quality)
        importer = CasketImporter(
            catalog,
            settings=settings,
            converter=default_converter(),
            max_workers=args.workers,
            batch_size=args.batch_size,
            show_progress=not args.no_progress,
        )
        summary = importer.run(src_root)
    except FatalError as e:
        logging.error(f"Fatal: {e}")
        return 1
    except ValueError as e:
        logging.error(f"Invalid option: {e}")
        return 1
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user.")
        return 1
    except Exception:
        logging.exception("Fatal error during import.")
        return 1

    log_summary(summary)
    if args.report_csv:
        try:
            write_csv_report(summary, args.report_csv)
        except OSError as e:
            logging.error(f"Could not write report {args.report_csv}: {e}")

    return 1 if summary.interrupted else 0


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
