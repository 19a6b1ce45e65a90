"""Flexible and strict CSV parsing."""

import io

import pytest

from insights.exceptions import (
    EmptyInputError,
    MissingKeywordColumn,
    NoDataRowsError,
    SchemaMismatchError,
    StrictValidationError,
)
from insights.parsers import (
    FixedDefaultGenerator,
    FlexibleCSVParser,
    RandomDefaultGenerator,
    StrictCSVParser,
    decode_upload,
    detect_separator,
    parse_text,
    parse_upload,
)
from insights.records import ParsedDataset


class TestFlexibleParser:
    """FlexibleCSVParser.parse"""

    def test_quoted_thousands_separator(self):
        dataset = FlexibleCSVParser().parse(
            'keyword,volume,difficulty\n"fitness tracker","1,200","35"\n'
        )
        record = dataset.keywords[0]
        assert record.keyword == "fitness tracker"
        assert record.volume == 1200
        assert record.difficulty == 35

    def test_fixture_keywords_in_order(self, dataset):
        assert dataset.keyword_list() == [
            "fitness tracker",
            "workout planner",
            "fitness app",
            "calorie counter",
            "home workout",
            "step counter",
        ]

    def test_duplicate_keyword_first_occurrence_wins(self, dataset):
        record = dataset.get("fitness tracker")
        assert record.volume == 1200
        assert record.current_rank == 12
        assert record.extra["notes"] == "core"

    def test_malformed_number_is_absent_row_kept(self, dataset):
        record = dataset.get("step counter")
        assert record.volume is None
        assert record.difficulty == 45

    def test_blank_cells_are_absent(self, dataset):
        record = dataset.get("fitness app")
        assert record.current_rank is None
        assert record.maximum_reach is None
        assert "notes" not in record.extra

    def test_app_details_from_first_row(self, dataset):
        app = dataset.app_details
        assert app.app_name == "FitPal"
        assert app.app_id == "com.example.fitpal"
        assert app.store == "iOS"

    def test_field_availability(self, dataset):
        assert "volume" in dataset.available_fields
        assert "notes" in dataset.available_fields
        assert dataset.missing_fields == ["relevancy", "cpc"]
        assert dataset.schema == "flexible"

    def test_tab_separated(self):
        dataset = FlexibleCSVParser().parse("Keyword\tVolume\nyoga\t300\n")
        assert dataset.keywords[0].volume == 300

    def test_byte_order_mark_is_ignored(self):
        dataset = FlexibleCSVParser().parse("\ufeffkeyword,volume\nyoga,300\n")
        assert dataset.keyword_list() == ["yoga"]

    def test_short_rows_are_padded(self):
        dataset = FlexibleCSVParser().parse("keyword,volume,difficulty\nyoga,300\n")
        assert dataset.keywords[0].difficulty is None

    def test_rows_without_keyword_are_dropped(self):
        dataset = FlexibleCSVParser().parse("keyword,volume\n,300\nyoga,200\n")
        assert dataset.keyword_list() == ["yoga"]

    def test_colliding_header_kept_as_extension(self):
        dataset = FlexibleCSVParser().parse(
            "Keyword,Volume,Search Volume\nyoga,300,450\n"
        )
        record = dataset.keywords[0]
        assert record.volume == 300
        assert record.extra["search volume"] == 450

    def test_second_keyword_header_kept_as_extension(self):
        dataset = FlexibleCSVParser().parse(
            "Keyword,Term,Volume\nyoga,yoga poses,300\n"
        )
        record = dataset.keywords[0]
        assert record.keyword == "yoga"
        assert record.extra["term"] == "yoga poses"

    def test_traffic_and_competition_beside_primary_columns(self):
        dataset = FlexibleCSVParser().parse(
            "keyword,volume,traffic,difficulty,competition\nyoga,300,250,40,0.5\n"
        )
        record = dataset.keywords[0]
        assert record.volume == 300
        assert record.traffic == 250
        assert record.difficulty == 40
        assert record.competition == 0.5
        assert "traffic" not in record.extra

    def test_flags_are_booleans(self):
        dataset = FlexibleCSVParser().parse(
            "keyword,starred,branded\nyoga,yes,no\n"
        )
        assert dataset.keywords[0].starred is True
        assert dataset.keywords[0].branded is False

    def test_missing_keyword_column(self):
        with pytest.raises(MissingKeywordColumn):
            FlexibleCSVParser().parse("volume,difficulty\n100,20\n")

    def test_header_only(self):
        with pytest.raises(NoDataRowsError):
            FlexibleCSVParser().parse("keyword,volume\n")

    def test_only_blank_keywords(self):
        with pytest.raises(NoDataRowsError) as exc:
            FlexibleCSVParser().parse("keyword,volume\n,100\n,200\n")
        assert exc.value.message == "No valid data rows were found in the file."

    @pytest.mark.parametrize("text", ["", "   \n\n"])
    def test_empty_input(self, text):
        with pytest.raises(EmptyInputError):
            FlexibleCSVParser().parse(text)


class TestDefaultGenerators:
    """Optional back-filling of absent metrics at parse time."""

    def test_fixed_defaults_fill_absent_only(self):
        parser = FlexibleCSVParser(default_generator=FixedDefaultGenerator())
        dataset = parser.parse("keyword,volume\nyoga,300\n")
        record = dataset.keywords[0]
        assert record.volume == 300
        assert record.current_rank == 100
        assert record.difficulty == 50
        assert record.estimated_fields == ["current_rank", "difficulty"]

    def test_random_defaults_are_seeded_and_bounded(self):
        text = "keyword\nyoga\npilates\nstretching\n"
        first = FlexibleCSVParser(RandomDefaultGenerator(seed=7)).parse(text)
        second = FlexibleCSVParser(RandomDefaultGenerator(seed=7)).parse(text)

        assert [k.to_dict() for k in first.keywords] == [
            k.to_dict() for k in second.keywords
        ]
        for record in first.keywords:
            assert 1 <= record.current_rank <= 100
            assert 100 <= record.volume <= 1099
            assert 0 <= record.difficulty <= 99

    def test_no_generator_leaves_fields_absent(self, dataset):
        assert all(not k.estimated_fields for k in dataset.keywords)


class TestStrictParser:
    """StrictCSVParser.parse"""

    def test_valid_rows_kept(self, strict_dataset):
        assert strict_dataset.keyword_list() == ["fitness tracker", "calorie counter"]
        assert strict_dataset.schema == "strict"

    def test_row_errors_collected(self, strict_dataset):
        assert strict_dataset.row_errors == [
            "Row 3: Missing values for: App ID",
            "Row 5: Expected 20 columns but found 3",
        ]

    def test_app_details(self, strict_dataset):
        app = strict_dataset.app_details
        assert app.app_name == "FitPal"
        assert app.app_id == "com.example.fitpal"
        assert app.store == "iOS"

    def test_values_parsed(self, strict_dataset):
        record = strict_dataset.get("fitness tracker")
        assert record.volume == 1200
        assert record.difficulty == 35
        assert record.maximum_reach == 5000
        assert record.relevancy == 85
        assert record.starred is True
        assert record.branded is False
        assert record.extra["country_code"] == "GB"
        assert record.extra["main_app_id"] == "com.example.fitpal"
        assert record.extra["keyword_list"] == "fitness tracker"

    def test_values_clamped_and_defaulted(self, strict_dataset):
        record = strict_dataset.get("calorie counter")
        assert record.volume is None
        assert record.difficulty == 100
        assert record.maximum_reach == 0
        assert record.relevancy == 100
        assert record.branded is True
        assert record.extra["device"] == "all"
        assert record.extra["country_code"] == "US"
        assert record.extra["language_code"] == "en"

    def test_header_mismatch_lists_columns(self):
        with pytest.raises(SchemaMismatchError) as exc:
            StrictCSVParser().parse("Keyword,Volume,Extra\nyoga,100,x\n")
        error = exc.value
        assert "App Name" in error.missing
        assert error.unexpected == ["Extra"]
        assert "Missing columns:" in error.message
        assert "commas" in error.message

    def test_all_rows_invalid(self):
        header = "\t".join(StrictCSVParser.EXPECTED_HEADERS)
        with pytest.raises(StrictValidationError) as exc:
            StrictCSVParser().parse(f"{header}\nFitPal\tcom.example\n")
        assert "Row 2: Expected 20 columns but found 2" in exc.value.message

    def test_header_only(self):
        header = "\t".join(StrictCSVParser.EXPECTED_HEADERS)
        with pytest.raises(NoDataRowsError):
            StrictCSVParser().parse(header + "\n")


class TestEntryPoints:
    """parse_text / parse_upload / helpers"""

    def test_schema_is_explicit(self, strict_tsv):
        assert parse_text(strict_tsv, schema="strict").schema == "strict"
        # The strict layout is also readable by the flexible parser.
        assert parse_text(strict_tsv).schema == "flexible"

    def test_unknown_schema(self):
        with pytest.raises(ValueError):
            parse_text("keyword\nyoga\n", schema="loose")

    def test_parse_upload_bytes(self):
        upload = io.BytesIO("keyword,volume\ncafé,10\n".encode("utf-8"))
        dataset = parse_upload(upload)
        assert isinstance(dataset, ParsedDataset)
        assert dataset.keyword_list() == ["café"]

    def test_decode_latin1_fallback(self):
        assert decode_upload(b"keyword\ncaf\xe9\n") == "keyword\ncafé\n"

    def test_decode_strips_bom(self):
        assert decode_upload("\ufeffkeyword".encode("utf-8")) == "keyword"

    @pytest.mark.parametrize(
        "line, separator",
        [("a,b,c", ","), ("a\tb\tc", "\t"), ("keyword", "\t"), ("a,b\tc,d", ",")],
    )
    def test_detect_separator(self, line, separator):
        assert detect_separator(line) == separator

    def test_dataset_survives_session_round_trip(self, dataset):
        restored = ParsedDataset.from_dict(dataset.to_dict())
        assert restored == dataset
