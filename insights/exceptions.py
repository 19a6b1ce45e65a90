"""
Error taxonomy for CSV import and the metadata collaborator.

Every import failure derives from ``CSVImportError`` and carries a single
human-readable message; views hand that message straight back to the
caller.  Numeric coercion failures are not errors; they resolve silently
to an absent value (flexible schema) or a clamped default (strict schema).
"""


class CSVImportError(Exception):
    """Base class for anything that aborts a CSV import."""

    default_message = "Failed to process the CSV file."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class EmptyInputError(CSVImportError):
    default_message = "The file is empty. Please provide a file with data."


class NoDataRowsError(CSVImportError):
    default_message = (
        "The file must contain a header row and at least one data row."
    )


class MissingKeywordColumn(CSVImportError):
    default_message = "CSV file must contain a keyword column"


class RowValidationError(CSVImportError):
    """A single row-level issue found by the strict parser."""

    def __init__(self, row_number: int, message: str):
        self.row_number = row_number
        super().__init__(f"Row {row_number}: {message}")


class SchemaMismatchError(CSVImportError):
    """Strict header check failed: columns missing and/or unexpected."""

    def __init__(
        self,
        missing: list[str],
        unexpected: list[str],
        headers: list[str],
        separator: str,
    ):
        self.missing = missing
        self.unexpected = unexpected
        self.headers = headers
        self.separator = separator

        lines = ["There are issues with the column headers:", ""]
        if missing:
            lines.append("Missing columns:")
            lines.extend(f"- {col}" for col in missing)
            lines.append("")
        if unexpected:
            lines.append("Unexpected columns:")
            lines.extend(f"- {col}" for col in unexpected)
            lines.append("")
        sep_name = "tabs" if separator == "\t" else "commas"
        lines.append(f"File appears to be using {sep_name} as separators.")
        lines.append(f"Found {len(headers)} columns: {', '.join(headers)}")
        super().__init__("\n".join(lines))


class StrictValidationError(CSVImportError):
    """Every data row failed validation; lists all collected row issues."""

    def __init__(self, errors: list[RowValidationError]):
        self.errors = errors
        listing = "\n".join(e.message for e in errors)
        super().__init__(
            "Found the following issues in your file:\n\n"
            f"{listing}\n\n"
            "Please fix these issues and try uploading again."
        )


class MetadataServiceError(Exception):
    """The remote metadata generation service failed or answered garbage."""
