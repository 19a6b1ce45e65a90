"""
CSV parsers turning an uploaded keyword export into a ``ParsedDataset``.

Two independent strategies share the output contract:

  * ``FlexibleCSVParser``: accepts any columns, infers canonical fields
    from the header synonyms and leaves unparseable numbers absent.
  * ``StrictCSVParser``: expects the fixed 20-column keyword export,
    reports every header mismatch and row-level issue, and falls back to
    ``0`` / clamped values for bad numbers.

Callers pick one explicitly (see ``parse_upload``).  Neither strategy is a
specialisation of the other.
"""

import csv
import io
import logging
import random
import secrets

from .exceptions import (
    EmptyInputError,
    NoDataRowsError,
    RowValidationError,
    SchemaMismatchError,
    StrictValidationError,
)
from .fields import (
    APP_FIELDS,
    REQUIRED_FIELD,
    TRACKED_FIELDS,
    coerce,
    normalize_headers,
    parse_boolean,
    parse_numeric,
)
from .records import (
    BOOLEAN_FIELDS,
    NUMERIC_FIELDS,
    AppDetails,
    KeywordRecord,
    ParsedDataset,
)

logger = logging.getLogger(__name__)

SCHEMA_FLEXIBLE = "flexible"
SCHEMA_STRICT = "strict"
SCHEMAS = (SCHEMA_FLEXIBLE, SCHEMA_STRICT)

_RECORD_ATTRS = set(NUMERIC_FIELDS) | set(BOOLEAN_FIELDS)


# --------------------------------------------------------------------------- #
# Default generators
# --------------------------------------------------------------------------- #


class RandomDefaultGenerator:
    """
    Back-fills absent rank / volume / difficulty with random stand-ins.

    Only ever consulted at parse time, so aggregation and projection stay
    deterministic for a given dataset.  Pass ``seed`` for reproducible
    output.
    """

    FIELDS = ("current_rank", "volume", "difficulty")

    def __init__(self, seed=None):
        self._rng = random.Random(seed)

    def value_for(self, field: str) -> float:
        if field == "current_rank":
            return float(self._rng.randint(1, 100))
        if field == "volume":
            return float(self._rng.randint(100, 1099))
        if field == "difficulty":
            return float(self._rng.randint(0, 99))
        raise KeyError(field)


class FixedDefaultGenerator:
    """Back-fills absent metrics with constants (mostly for tests)."""

    FIELDS = ("current_rank", "volume", "difficulty")

    def __init__(self, current_rank=100.0, volume=100.0, difficulty=50.0):
        self._values = {
            "current_rank": float(current_rank),
            "volume": float(volume),
            "difficulty": float(difficulty),
        }

    def value_for(self, field: str) -> float:
        return self._values[field]


def _apply_defaults(record: KeywordRecord, generator) -> None:
    for field in generator.FIELDS:
        if getattr(record, field) is None:
            setattr(record, field, generator.value_for(field))
            record.estimated_fields.append(field)


# --------------------------------------------------------------------------- #
# Shared helpers
# --------------------------------------------------------------------------- #


def detect_separator(header_line: str) -> str:
    """Comma when the header holds more commas than tabs, tab otherwise."""
    if header_line.count(",") > header_line.count("\t"):
        return ","
    return "\t"


def _read_rows(text: str) -> tuple[list[list[str]], str]:
    """Split text into non-empty CSV rows and return the detected separator."""
    if text is None or not text.strip():
        raise EmptyInputError()

    text = text.lstrip("\ufeff")
    first_line = next(line for line in text.splitlines() if line.strip())
    separator = detect_separator(first_line)

    reader = csv.reader(io.StringIO(text), delimiter=separator)
    rows = [row for row in reader if any(cell.strip() for cell in row)]
    if not rows:
        raise EmptyInputError()
    return rows, separator


def _new_dataset_id() -> str:
    return secrets.token_hex(8)


def decode_upload(raw: bytes) -> str:
    """Decode uploaded bytes: UTF-8 (BOM tolerated), Latin-1 as a fallback."""
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.info("Upload is not valid UTF-8, decoding as Latin-1")
        return raw.decode("latin-1")


# --------------------------------------------------------------------------- #
# Flexible schema
# --------------------------------------------------------------------------- #


class FlexibleCSVParser:
    """
    Tolerant parser: any columns, synonym-based header mapping.

    Rows with an empty keyword, or whose keyword was already seen, are
    dropped silently (the first occurrence wins).
    """

    def __init__(self, default_generator=None):
        self.default_generator = default_generator

    def parse(self, text: str) -> ParsedDataset:
        rows, _ = _read_rows(text)
        headers = [h.strip() for h in rows[0]]
        data_rows = rows[1:]
        if not data_rows:
            raise NoDataRowsError()

        mapping = normalize_headers(headers)
        keyword_index = headers.index(mapping.keyword_header)

        app_details = self._app_details(mapping, headers, data_rows[0])

        keywords: list[KeywordRecord] = []
        seen: set[str] = set()
        dropped = 0

        for row in data_rows:
            cells = row + [""] * (len(headers) - len(row))
            keyword = cells[keyword_index].strip()
            if not keyword or keyword in seen:
                dropped += 1
                continue
            seen.add(keyword)

            record = KeywordRecord(keyword=keyword)
            for position, value in zip(mapping.positions, cells):
                if position is None:
                    continue
                key, canonical = position
                if key == REQUIRED_FIELD or key in APP_FIELDS:
                    continue
                parsed = coerce(canonical, value)
                if parsed is None:
                    continue
                if key in _RECORD_ATTRS:
                    setattr(record, key, parsed)
                else:
                    record.extra[key] = parsed

            if self.default_generator is not None:
                _apply_defaults(record, self.default_generator)
            keywords.append(record)

        if not keywords:
            raise NoDataRowsError("No valid data rows were found in the file.")

        logger.info(
            f"Parsed {len(keywords)} keyword rows "
            f"({dropped} dropped as empty or duplicate)"
        )
        return ParsedDataset(
            dataset_id=_new_dataset_id(),
            app_details=app_details,
            keywords=keywords,
            missing_fields=mapping.missing_fields,
            available_fields=mapping.available_fields,
            schema=SCHEMA_FLEXIBLE,
        )

    @staticmethod
    def _app_details(mapping, headers: list[str], first_row: list[str]) -> AppDetails:
        """App details come from the first data row only."""
        details = AppDetails()
        for field in APP_FIELDS:
            header = mapping.header_for(field)
            if header is None:
                continue
            index = headers.index(header)
            if index >= len(first_row):
                continue
            value = coerce(field, first_row[index])
            if value is not None:
                setattr(details, field, value)
        return details


# --------------------------------------------------------------------------- #
# Strict schema
# --------------------------------------------------------------------------- #


class StrictCSVParser:
    """
    Parser for the fixed keyword-export layout.

    Header mismatches abort with a full listing of missing and unexpected
    columns.  Row-level issues (wrong column count, missing App Name / App
    ID / Keyword) are collected; the offending rows are skipped and the
    parse only fails when no row survives.
    """

    EXPECTED_HEADERS = [
        "App Name",
        "App ID",
        "Store",
        "Device",
        "Country Code",
        "Language Code",
        "Main App ID",
        "Main App Name",
        "Keyword",
        "Keyword List",
        "Starred",
        "Volume",
        "Difficulty",
        "Maximum Reach",
        "Branded",
        "Branded App ID",
        "Branded App Name",
        "KEI",
        "Chance",
        "Relevancy Score",
    ]

    REQUIRED_VALUES = ("App Name", "App ID", "Keyword")

    # Fields exposed on ParsedDataset.available_fields for this layout.
    AVAILABLE_FIELDS = [
        "app_name", "app_id", "store", "device", "country_code",
        "language_code", "main_app_id", "main_app_name", "keyword",
        "keyword_list", "starred", "volume", "difficulty", "maximum_reach",
        "branded", "branded_app_id", "branded_app_name", "kei", "chance",
        "relevancy",
    ]

    def parse(self, text: str) -> ParsedDataset:
        rows, separator = _read_rows(text)
        headers = [self._clean(h) for h in rows[0]]
        if len(rows) < 2:
            raise NoDataRowsError()

        self._check_headers(headers, separator)
        index = {h.lower(): i for i, h in enumerate(headers)}

        keywords: list[KeywordRecord] = []
        errors: list[RowValidationError] = []
        app_details = None
        seen: set[str] = set()

        for row_number, raw in enumerate(rows[1:], start=2):
            values = [self._clean(v) for v in raw]
            if len(values) != len(headers):
                errors.append(RowValidationError(
                    row_number,
                    f"Expected {len(headers)} columns but found {len(values)}",
                ))
                continue

            def get(column, values=values):
                return values[index[column.lower()]]

            missing = [c for c in self.REQUIRED_VALUES if not get(c)]
            if missing:
                errors.append(RowValidationError(
                    row_number, f"Missing values for: {', '.join(missing)}",
                ))
                continue

            keyword = get("Keyword")
            if keyword in seen:
                continue
            seen.add(keyword)

            if app_details is None:
                app_details = AppDetails(
                    app_name=get("App Name"),
                    app_id=get("App ID"),
                    store="iOS" if get("Store").lower() == "ios" else "Android",
                )
            keywords.append(self._record(get))

        for error in errors:
            logger.warning(f"Strict CSV row rejected: {error.message}")

        if not keywords:
            if errors:
                raise StrictValidationError(errors)
            raise NoDataRowsError("No valid data rows were found in the file.")

        logger.info(
            f"Parsed {len(keywords)} keyword rows with the strict schema "
            f"({len(errors)} rejected)"
        )
        return ParsedDataset(
            dataset_id=_new_dataset_id(),
            app_details=app_details,
            keywords=keywords,
            missing_fields=[
                f for f in TRACKED_FIELDS if f not in self.AVAILABLE_FIELDS
            ],
            available_fields=list(self.AVAILABLE_FIELDS),
            schema=SCHEMA_STRICT,
            row_errors=[e.message for e in errors],
        )

    def _check_headers(self, headers: list[str], separator: str) -> None:
        expected_lower = {h.lower() for h in self.EXPECTED_HEADERS}
        found_lower = {h.lower() for h in headers}
        missing = [h for h in self.EXPECTED_HEADERS if h.lower() not in found_lower]
        unexpected = [h for h in headers if h.lower() not in expected_lower]
        if missing or unexpected:
            raise SchemaMismatchError(missing, unexpected, headers, separator)

    def _record(self, get) -> KeywordRecord:
        keyword = get("Keyword")
        volume = get("Volume")
        difficulty = get("Difficulty")
        app_id = get("App ID")
        app_name = get("App Name")
        return KeywordRecord(
            keyword=keyword,
            volume=self._number(volume, minimum=0) if volume else None,
            difficulty=self._number(difficulty, 0, 100) if difficulty else 0.0,
            maximum_reach=self._number(get("Maximum Reach"), minimum=0),
            relevancy=self._number(get("Relevancy Score"), 0, 100),
            starred=parse_boolean(get("Starred")),
            branded=parse_boolean(get("Branded")),
            extra={
                "device": get("Device") or "all",
                "country_code": get("Country Code") or "US",
                "language_code": get("Language Code") or "en",
                "main_app_id": get("Main App ID") or app_id,
                "main_app_name": get("Main App Name") or app_name,
                "keyword_list": get("Keyword List") or keyword,
                "branded_app_id": get("Branded App ID") or None,
                "branded_app_name": get("Branded App Name") or None,
                "kei": self._number(get("KEI"), 0, 100),
                "chance": self._number(get("Chance"), 0, 100),
            },
        )

    @staticmethod
    def _number(value: str, minimum=None, maximum=None) -> float:
        """Integer cell: invalid input becomes 0, then clamps to the bounds."""
        parsed = parse_numeric(value)
        number = float(int(parsed)) if parsed is not None else 0.0
        if minimum is not None and number < minimum:
            return float(minimum)
        if maximum is not None and number > maximum:
            return float(maximum)
        return number

    @staticmethod
    def _clean(value: str) -> str:
        return value.strip().strip("\"'").strip()


# --------------------------------------------------------------------------- #
# Entry point
# --------------------------------------------------------------------------- #


def parse_text(text: str, schema: str = SCHEMA_FLEXIBLE, default_generator=None) -> ParsedDataset:
    """Parse CSV text with the explicitly selected schema."""
    if schema == SCHEMA_STRICT:
        return StrictCSVParser().parse(text)
    if schema == SCHEMA_FLEXIBLE:
        return FlexibleCSVParser(default_generator=default_generator).parse(text)
    raise ValueError(f"Unknown schema: {schema!r}")


def parse_upload(uploaded_file, schema: str = SCHEMA_FLEXIBLE, default_generator=None) -> ParsedDataset:
    """Read an uploaded file object and parse it."""
    raw = uploaded_file.read()
    text = decode_upload(raw) if isinstance(raw, bytes) else raw
    return parse_text(text, schema=schema, default_generator=default_generator)


