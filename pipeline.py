"""CSV ingestion and the sequential citation pipeline."""

from __future__ import annotations

import csv
import io
import logging
from collections.abc import Callable, Mapping, Sequence

from charset_normalizer import from_bytes

from llm_client import generate_citation, request_citation
from models import NormalizedRecord, ProgressEvent, ResultRecord
from normalizer import KNOWN_COLUMNS, normalize_record

LOGGER = logging.getLogger(__name__)

_UTF8_BOM = b"\xef\xbb\xbf"

Requester = Callable[[NormalizedRecord], str]
ProgressCallback = Callable[[ProgressEvent], None]


def decode_csv_bytes(raw: bytes) -> str:
    """Decode an uploaded CSV to text.

    Repository exports are usually UTF-8 (sometimes with a BOM) but Latin-1
    exports from spreadsheet round-trips are common, so the encoding is
    detected best-effort via charset-normalizer.
    """
    if raw.startswith(_UTF8_BOM):
        return raw[len(_UTF8_BOM):].decode("utf-8", errors="replace")

    match = from_bytes(raw).best()
    encoding = match.encoding if match is not None else "utf-8"
    try:
        return raw.decode(encoding)
    except (LookupError, UnicodeDecodeError):
        LOGGER.warning("CSV decode with detected encoding=%s failed; using utf-8 with replacement", encoding)
        return raw.decode("utf-8", errors="replace")


def read_records(text: str) -> list[dict[str, str]]:
    """Parse all CSV rows up front so the total is known before any API call."""
    reader = csv.DictReader(io.StringIO(text, newline=""))
    records = [dict(row) for row in reader]

    headers = reader.fieldnames or []
    unknown = [name for name in headers if name not in KNOWN_COLUMNS]
    LOGGER.info("CSV read: rows=%s columns=%s ignored_columns=%s", len(records), len(headers), len(unknown))
    if unknown:
        LOGGER.debug("Ignored CSV columns: %s", ", ".join(unknown))
    return records


def run_pipeline(
    raw_records: Sequence[Mapping[str, str | None]],
    requester: Requester = generate_citation,
    on_progress: ProgressCallback | None = None,
) -> list[ResultRecord]:
    """Normalize and cite every record, one at a time, in input order.

    A failing citation call never aborts the batch: the row keeps the error
    placeholder and is tagged ``failed``. ``on_progress`` receives one event
    per processed row; an empty batch emits none.
    """
    total = len(raw_records)
    results: list[ResultRecord] = []

    for index, raw in enumerate(raw_records, start=1):
        results.append(request_citation(normalize_record(raw), requester))

        if on_progress is not None:
            on_progress(ProgressEvent(processed_records=index, total_records=total))

    failed = sum(1 for result in results if result.failed)
    LOGGER.info("Pipeline complete. processed=%s failed=%s", len(results), failed)
    return results
