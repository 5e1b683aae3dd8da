"""Dublin-Core column-variant selection and field cleanup (no LLM calls)."""

from __future__ import annotations

import re
from collections.abc import Mapping

from models import NormalizedRecord

DEFAULT_CONFERENCE_PLACE = "CIMMYT"
DEFAULT_CREATOR = "unknown"

# Source columns per canonical field, highest priority first. Repository
# exports name the same element differently depending on language qualifiers.
_CONFERENCE_NAME_COLUMNS: tuple[str, ...] = (
    "dc.conference.name[]",
    "dc.conference.name[en_US]",
)
_CONFERENCE_PLACE_COLUMNS: tuple[str, ...] = (
    "dc.conference.place[]",
    "dc.conference.place[en_US]",
)
_CREATOR_COLUMNS: tuple[str, ...] = (
    "dc.creator",
    "dc.creator.aux",
    "dc.creator.aux[]",
    "dc.creator.aux[en_US]",
    "dc.creator.aux[eng]",
    "dc.creator.corporate[]",
)
_DATE_ISSUED_COLUMNS: tuple[str, ...] = (
    "dc.date.issued",
    "dc.date.issued[]",
    "dc.date.issued[en_US]",
    "dc.date.issued[eng]",
)
_IDENTIFIER_URI_COLUMNS: tuple[str, ...] = (
    "dc.identifier.uri",
    "dc.identifier.uri[]",
)
_TITLE_COLUMNS: tuple[str, ...] = (
    "dc.title",
    "dc.title.alternative[]",
    "dc.title[]",
    "dc.title[en_US]",
)
_TYPE_COLUMNS: tuple[str, ...] = (
    "dc.type",
    "dc.type[]",
    "dc.type[en_US]",
)

KNOWN_COLUMNS: frozenset[str] = frozenset(
    _CONFERENCE_NAME_COLUMNS
    + _CONFERENCE_PLACE_COLUMNS
    + _CREATOR_COLUMNS
    + _DATE_ISSUED_COLUMNS
    + _IDENTIFIER_URI_COLUMNS
    + _TITLE_COLUMNS
    + _TYPE_COLUMNS
)

_AUTHOR_SEPARATOR = "||"
_AUTHORITY_SEPARATOR = "::"
_YEAR_PATTERN = re.compile(r"\b(19|20)\d{2}\b", re.ASCII)


def first_present(raw: Mapping[str, str | None], columns: tuple[str, ...], default: str = "") -> str:
    """Return the first non-empty value among ``columns``, else ``default``."""
    for column in columns:
        value = raw.get(column)
        if value:
            return value
    return default


def clean_creator(value: str) -> str:
    """Turn ``"Smith::123||Doe::456"`` into ``"Smith, Doe"``.

    Authority keys after ``::`` are dropped. An empty string stays empty.
    """
    authors = [segment.split(_AUTHORITY_SEPARATOR, 1)[0] for segment in value.split(_AUTHOR_SEPARATOR)]
    return ", ".join(authors)


def clean_date(value: str) -> str:
    """Return the first 19xx/20xx year in ``value``, or ``value`` unchanged."""
    match = _YEAR_PATTERN.search(value)
    return match.group(0) if match else value


def normalize_record(raw: Mapping[str, str | None]) -> NormalizedRecord:
    """Reduce one CSV row to the seven canonical fields.

    Every field is always populated: missing values become ``""`` except the
    conference place and creator, which fall back to fixed defaults.
    """
    return NormalizedRecord(
        conference_name=first_present(raw, _CONFERENCE_NAME_COLUMNS),
        conference_place=first_present(raw, _CONFERENCE_PLACE_COLUMNS, DEFAULT_CONFERENCE_PLACE),
        creator=clean_creator(first_present(raw, _CREATOR_COLUMNS, DEFAULT_CREATOR)),
        date_issued=clean_date(first_present(raw, _DATE_ISSUED_COLUMNS)),
        identifier_uri=first_present(raw, _IDENTIFIER_URI_COLUMNS),
        title=first_present(raw, _TITLE_COLUMNS),
        item_type=first_present(raw, _TYPE_COLUMNS),
    )
