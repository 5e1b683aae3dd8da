"""Shared typed models for the citation pipeline."""

from __future__ import annotations

import math
from dataclasses import dataclass

CONFERENCE_NAME = "dc.conference.name"
CONFERENCE_PLACE = "dc.conference.place"
CREATOR = "dc.creator"
DATE_ISSUED = "dc.date.issued"
IDENTIFIER_URI = "dc.identifier.uri"
TITLE = "dc.title"
TYPE = "dc.type"
CITATION = "citation"

# Workbook column order.
CANONICAL_FIELDS: tuple[str, ...] = (
    CONFERENCE_NAME,
    CONFERENCE_PLACE,
    CREATOR,
    DATE_ISSUED,
    IDENTIFIER_URI,
    TITLE,
    TYPE,
)

CITATION_ERROR_PLACEHOLDER = "Error al obtener la citación"


@dataclass(frozen=True, slots=True)
class NormalizedRecord:
    """One bibliographic row reduced to the seven canonical fields."""

    conference_name: str
    conference_place: str
    creator: str
    date_issued: str
    identifier_uri: str
    title: str
    item_type: str

    def as_row(self) -> dict[str, str]:
        return {
            CONFERENCE_NAME: self.conference_name,
            CONFERENCE_PLACE: self.conference_place,
            CREATOR: self.creator,
            DATE_ISSUED: self.date_issued,
            IDENTIFIER_URI: self.identifier_uri,
            TITLE: self.title,
            TYPE: self.item_type,
        }


@dataclass(frozen=True, slots=True)
class ResultRecord:
    """A normalized record plus the citation generated for it.

    ``failed`` tags rows whose citation is the error placeholder, so callers
    do not have to compare strings to tell a failed call from real output.
    """

    record: NormalizedRecord
    citation: str
    failed: bool = False

    def as_row(self) -> dict[str, str]:
        row = self.record.as_row()
        row[CITATION] = self.citation
        return row


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    processed_records: int
    total_records: int

    @property
    def progress(self) -> int:
        if self.total_records <= 0:
            return 0
        return math.floor(self.processed_records / self.total_records * 100)

    def to_dict(self) -> dict[str, int]:
        return {
            "progress": self.progress,
            "processedRecords": self.processed_records,
            "totalRecords": self.total_records,
        }
