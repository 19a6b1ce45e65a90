"""Data records shared by the parsers and the service classes."""

from __future__ import annotations

from dataclasses import dataclass, field, fields

# Canonical numeric fields every keyword record carries (absent = None).
NUMERIC_FIELDS = (
    "volume",
    "difficulty",
    "current_rank",
    "relevancy",
    "traffic",
    "maximum_reach",
    "cpc",
    "competition",
)

BOOLEAN_FIELDS = ("starred", "branded")


@dataclass
class KeywordRecord:
    """One unique keyword row of an uploaded dataset."""

    keyword: str
    volume: float | None = None
    difficulty: float | None = None
    current_rank: float | None = None
    relevancy: float | None = None
    # Set only from a "Traffic" column that sits beside the primary volume
    # column; "Competition" beside "Difficulty" works the same way.
    traffic: float | None = None
    maximum_reach: float | None = None
    cpc: float | None = None
    competition: float | None = None
    starred: bool | None = None
    branded: bool | None = None
    # Unrecognised columns, keyed by their normalised header, in CSV order.
    extra: dict = field(default_factory=dict)
    # Fields back-filled by a default generator at parse time.
    estimated_fields: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {f.name: _copy(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict) -> KeywordRecord:
        known = {f.name for f in fields(cls)}
        return cls(**{k: _copy(v) for k, v in data.items() if k in known})


@dataclass
class AppDetails:
    app_name: str | None = None
    app_id: str | None = None
    store: str | None = None
    category: str | None = None
    current_installs: float | None = None

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict) -> AppDetails:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in known})


@dataclass
class ParsedDataset:
    """
    Result of parsing one uploaded file.

    Created once per upload and replaced wholesale by the next one.
    ``keywords`` preserves input order and holds no duplicate keyword text.
    """

    dataset_id: str
    app_details: AppDetails
    keywords: list[KeywordRecord]
    missing_fields: list[str] = field(default_factory=list)
    available_fields: list[str] = field(default_factory=list)
    schema: str = "flexible"
    # Strict schema only: row-level issues that did not abort the parse.
    row_errors: list[str] = field(default_factory=list)

    def get(self, keyword: str) -> KeywordRecord | None:
        for record in self.keywords:
            if record.keyword == keyword:
                return record
        return None

    def keyword_list(self) -> list[str]:
        """Deduplicated keyword texts in input order."""
        return [record.keyword for record in self.keywords]

    def to_dict(self) -> dict:
        return {
            "dataset_id": self.dataset_id,
            "app_details": self.app_details.to_dict(),
            "keywords": [k.to_dict() for k in self.keywords],
            "missing_fields": list(self.missing_fields),
            "available_fields": list(self.available_fields),
            "schema": self.schema,
            "row_errors": list(self.row_errors),
        }

    @classmethod
    def from_dict(cls, data: dict) -> ParsedDataset:
        return cls(
            dataset_id=data["dataset_id"],
            app_details=AppDetails.from_dict(data.get("app_details")),
            keywords=[KeywordRecord.from_dict(k) for k in data.get("keywords", [])],
            missing_fields=list(data.get("missing_fields", [])),
            available_fields=list(data.get("available_fields", [])),
            schema=data.get("schema", "flexible"),
            row_errors=list(data.get("row_errors", [])),
        )


@dataclass(frozen=True)
class ProjectionPoint:
    months: int
    projected_rank: float
    projected_installs: int


@dataclass(frozen=True)
class ProjectionResult:
    """Projected rank and installs for one keyword over several horizons."""

    keyword: str
    current_rank: float
    points: tuple[ProjectionPoint, ...]

    def to_dict(self) -> dict:
        return {
            "keyword": self.keyword,
            "current_rank": self.current_rank,
            "points": [
                {
                    "months": p.months,
                    "projected_rank": round(p.projected_rank, 2),
                    "projected_installs": p.projected_installs,
                }
                for p in self.points
            ],
        }


@dataclass(frozen=True)
class MetadataOption:
    title: str
    subtitle: str
    keywords: list[str]

    @property
    def keyword_string(self) -> str:
        return ", ".join(self.keywords)

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "subtitle": self.subtitle,
            "keywords": list(self.keywords),
        }


def _copy(value):
    if isinstance(value, dict):
        return dict(value)
    if isinstance(value, list):
        return list(value)
    return value
