"""
Header normalisation and per-field value coercion.

Keyword exports from different ASO tools name the same column in
different ways ("Search Volume", "Monthly Searches", "Traffic" ...).
``normalize_headers`` maps every header to a canonical field name using a
static synonym table; headers the table does not know are kept under
their lower-cased text so nothing in the file is lost.

The coercion table decides, once per canonical field, how a raw cell is
interpreted.  Downstream code never re-interprets a value.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Callable, NamedTuple

from .exceptions import MissingKeywordColumn

logger = logging.getLogger(__name__)


# --------------------------------------------------------------------------- #
# Synonym table
# --------------------------------------------------------------------------- #

# raw lower-cased header → canonical field name
FIELD_SYNONYMS = {
    # App-level columns
    "app name": "app_name",
    "app_name": "app_name",
    "application name": "app_name",
    "app id": "app_id",
    "app_id": "app_id",
    "bundle id": "app_id",
    "package name": "app_id",
    "store": "store",
    "platform": "store",
    "category": "category",
    "installs": "current_installs",
    "downloads": "current_installs",
    "current installs": "current_installs",
    # Keyword-level columns
    "keyword": "keyword",
    "term": "keyword",
    "search term": "keyword",
    "query": "keyword",
    "volume": "volume",
    "search volume": "volume",
    "monthly searches": "volume",
    "traffic": "volume",
    "difficulty": "difficulty",
    "keyword difficulty": "difficulty",
    "competition": "difficulty",
    "rank": "current_rank",
    "current rank": "current_rank",
    "position": "current_rank",
    "rankings": "current_rank",
    "relevancy": "relevancy",
    "relevance": "relevancy",
    "relevance score": "relevancy",
    "reach": "maximum_reach",
    "maximum reach": "maximum_reach",
    "potential reach": "maximum_reach",
    "cpc": "cpc",
    "cost per click": "cpc",
    "starred": "starred",
    "branded": "branded",
}

APP_FIELDS = ("app_name", "app_id", "store", "category", "current_installs")

# Keyword metrics whose absence is reported back to the caller.
TRACKED_FIELDS = (
    "volume",
    "difficulty",
    "current_rank",
    "relevancy",
    "maximum_reach",
    "cpc",
)

REQUIRED_FIELD = "keyword"


def canonical_name(header: str) -> str:
    """Canonical field for a raw header; unknown headers map to themselves."""
    key = (header or "").strip().lower()
    return FIELD_SYNONYMS.get(key, key)


@dataclass
class HeaderMapping:
    """
    Outcome of normalising one header row.

    ``columns`` maps canonical name → original header.  When two headers
    resolve to the same canonical field the first one wins; the later one
    is kept as an extension column under its own lower-cased text.
    """

    columns: dict[str, str] = field(default_factory=dict)
    extension_columns: dict[str, str] = field(default_factory=dict)
    available_fields: list[str] = field(default_factory=list)
    missing_fields: list[str] = field(default_factory=list)
    # One entry per header position: (storage key, canonical field), or
    # None for a blank header.  The storage key differs from the canonical
    # field only for a header that lost a canonical-name collision.
    positions: list[tuple[str, str] | None] = field(default_factory=list)

    @property
    def keyword_header(self) -> str:
        return self.columns[REQUIRED_FIELD]

    def header_for(self, canonical: str) -> str | None:
        return self.columns.get(canonical)


def normalize_headers(headers: list[str]) -> HeaderMapping:
    """
    Map the header row of a CSV to canonical field names.

    Raises:
        MissingKeywordColumn: no header maps to ``keyword``.
    """
    mapping = HeaderMapping()
    for header in headers:
        if header is None or not header.strip():
            mapping.positions.append(None)
            continue
        canonical = canonical_name(header)
        mapping.available_fields.append(canonical)
        if canonical in mapping.columns:
            raw_key = header.strip().lower()
            logger.info(
                f"Header {header!r} duplicates canonical field {canonical!r}; "
                f"kept as {raw_key!r}"
            )
            mapping.extension_columns[raw_key] = header
            mapping.positions.append((raw_key, canonical))
            continue
        mapping.columns[canonical] = header
        mapping.positions.append((canonical, canonical))

    if REQUIRED_FIELD not in mapping.columns:
        raise MissingKeywordColumn()

    mapping.missing_fields = [
        f for f in TRACKED_FIELDS if f not in mapping.columns
    ]
    return mapping


# --------------------------------------------------------------------------- #
# Coercion
# --------------------------------------------------------------------------- #

_NUMERIC_NOISE = re.compile(r"[,%$€£\s]")


def parse_numeric(value) -> float | None:
    """
    Parse a numeric cell, tolerating thousands separators, ``%`` and ``$``.

    Returns None for blank, malformed or non-finite input; never raises.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    cleaned = _NUMERIC_NOISE.sub("", str(value))
    if not cleaned:
        return None
    try:
        number = float(cleaned)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def parse_boolean(value) -> bool:
    """True iff the cell reads "true", "yes" or "1" (case-insensitive)."""
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("true", "yes", "1")


def parse_text(value) -> str:
    return str(value).strip()


def is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class Coercion(NamedTuple):
    parse: Callable
    # Value used when ``parse`` cannot make sense of the cell.
    default: object = None


COERCIONS = {
    "volume": Coercion(parse_numeric),
    "difficulty": Coercion(parse_numeric),
    "current_rank": Coercion(parse_numeric),
    "relevancy": Coercion(parse_numeric),
    "maximum_reach": Coercion(parse_numeric),
    "cpc": Coercion(parse_numeric),
    "current_installs": Coercion(parse_numeric),
    "starred": Coercion(parse_boolean, False),
    "branded": Coercion(parse_boolean, False),
}

_TEXT = Coercion(parse_text)


def coerce(canonical: str, value):
    """
    Coerce one raw cell for its canonical field.

    Blank cells are absent (None) regardless of the field type.
    """
    if is_blank(value):
        return None
    rule = COERCIONS.get(canonical, _TEXT)
    parsed = rule.parse(value)
    return rule.default if parsed is None else parsed
