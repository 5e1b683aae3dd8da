"""CLI entrypoint: serve the HTTP API or run one CSV through the pipeline offline."""

from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

from models import ProgressEvent
from normalizer import normalize_record
from pipeline import decode_csv_bytes, read_records, run_pipeline
from workbook_sink import WORKBOOK_OUTPUT_PATH, write_workbook


def parse_args() -> argparse.Namespace:
    """Parse command-line flags."""
    parser = argparse.ArgumentParser(description="Generate APA-7 citations from a Dublin-Core CSV export")
    parser.add_argument(
        "--mode",
        choices=["serve", "batch"],
        default="serve",
        help=(
            "'serve' (default): run the HTTP API. "
            "'batch': read --input, cite every row and write the workbook to --output."
        ),
    )
    parser.add_argument("--input", type=Path, default=None, help="CSV export to process (batch mode)")
    parser.add_argument(
        "--output",
        type=Path,
        default=Path(WORKBOOK_OUTPUT_PATH),
        help="Workbook path to write (batch mode)",
    )
    parser.add_argument("--limit", type=int, default=None, help="Process only the first N rows (batch mode)")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only normalize and log the rows, without calling the model",
    )
    parser.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "3000")))
    return parser.parse_args()


def _log_progress(event: ProgressEvent) -> None:
    logging.info(
        "Progress: %s%% (%s/%s)", event.progress, event.processed_records, event.total_records
    )


def run_batch(input_path: Path, output_path: Path, limit: int | None, dry_run: bool) -> Path | None:
    """Run one CSV file end to end and return the written workbook path."""
    records = read_records(decode_csv_bytes(input_path.read_bytes()))
    if limit is not None:
        records = records[:limit]
    logging.info("Loaded %s rows from %s", len(records), input_path)

    if dry_run:
        for index, raw in enumerate(records, start=1):
            logging.info("[dry-run] Row %s: %s", index, normalize_record(raw))
        logging.info("[dry-run] Would request %s citations", len(records))
        return None

    results = run_pipeline(records, on_progress=_log_progress)
    return write_workbook(results, output_path)


def serve(host: str, port: int) -> None:
    import uvicorn  # noqa: PLC0415

    from app import app  # noqa: PLC0415

    uvicorn.run(app, host=host, port=port)


def main() -> None:
    """Initialize config and dispatch to the selected mode."""
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    args = parse_args()

    if not os.getenv("OPENAI_API_KEY") and not args.dry_run:
        logging.warning("OPENAI_API_KEY is not set; every citation will fall back to the error placeholder")

    if args.mode == "batch":
        if args.input is None:
            raise SystemExit("--input is required in batch mode")
        run_batch(args.input, args.output, limit=args.limit, dry_run=args.dry_run)
    else:
        serve(args.host, args.port)


if __name__ == "__main__":
    main()
