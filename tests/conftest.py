from pathlib import Path

import pytest

from insights.parsers import FlexibleCSVParser, StrictCSVParser
from insights.records import AppDetails, KeywordRecord, ParsedDataset

FIXTURES = Path(__file__).parent / "fixtures"


def make_dataset(*records, app_name=None, app_id=None, store=None):
    """Build a dataset directly from ``KeywordRecord``s or keyword strings."""
    keywords = [
        r if isinstance(r, KeywordRecord) else KeywordRecord(keyword=r)
        for r in records
    ]
    return ParsedDataset(
        dataset_id="test",
        app_details=AppDetails(app_name=app_name, app_id=app_id, store=store),
        keywords=keywords,
    )


@pytest.fixture
def keywords_csv():
    return (FIXTURES / "keywords.csv").read_text(encoding="utf-8")


@pytest.fixture
def strict_tsv():
    return (FIXTURES / "strict_keywords.tsv").read_text(encoding="utf-8")


@pytest.fixture
def dataset(keywords_csv):
    return FlexibleCSVParser().parse(keywords_csv)


@pytest.fixture
def strict_dataset(strict_tsv):
    return StrictCSVParser().parse(strict_tsv)
