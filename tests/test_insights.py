"""InsightAggregator and AnalysisService."""

import pytest

from insights.records import KeywordRecord
from insights.services import AnalysisService, InsightAggregator

from .conftest import make_dataset


@pytest.fixture
def aggregator():
    return InsightAggregator()


def keywords(records):
    return [r.keyword for r in records]


class TestKeywordScore:
    """keyword_score / top_keywords"""

    def test_top_keywords_order(self, aggregator, dataset):
        assert keywords(aggregator.top_keywords(dataset)) == [
            "fitness tracker",
            "calorie counter",
            "workout planner",
            "home workout",
            "fitness app",
            "step counter",
        ]

    def test_absent_metrics_use_defaults(self, aggregator):
        assert aggregator.keyword_score(KeywordRecord(keyword="x")) == 0
        score = aggregator.keyword_score(KeywordRecord(keyword="x", volume=1000))
        assert score == pytest.approx(600 / (1.5 * 3.0043), rel=1e-3)

    def test_ties_keep_input_order(self, aggregator):
        dataset = make_dataset(
            KeywordRecord(keyword="b", volume=100, difficulty=10, current_rank=5),
            KeywordRecord(keyword="a", volume=100, difficulty=10, current_rank=5),
            KeywordRecord(keyword="c", volume=900, difficulty=10, current_rank=5),
        )
        assert keywords(aggregator.top_keywords(dataset)) == ["c", "b", "a"]

    def test_limited_to_ten(self, aggregator):
        dataset = make_dataset(
            *[KeywordRecord(keyword=f"kw {i}", volume=i) for i in range(15)]
        )
        assert len(aggregator.top_keywords(dataset)) == 10

    @pytest.mark.parametrize(
        "score, label",
        [(1500, "Excellent"), (631, "Very Good"), (300, "Good"), (120, "Fair"), (100, "Limited")],
    )
    def test_opportunity_label(self, aggregator, score, label):
        assert aggregator.opportunity_label(score) == label


class TestKeywordLists:
    """Filtered top-5 lists."""

    def test_low_competition_opportunities(self, aggregator, dataset):
        assert keywords(aggregator.low_competition_opportunities(dataset)) == [
            "fitness tracker",
            "fitness app",
            "home workout",
        ]

    def test_underperforming(self, aggregator, dataset):
        assert keywords(aggregator.underperforming_keywords(dataset)) == [
            "calorie counter",
            "workout planner",
            "home workout",
        ]

    def test_trending(self, aggregator, dataset):
        assert keywords(aggregator.trending_keywords(dataset)) == [
            "calorie counter",
            "fitness tracker",
            "workout planner",
        ]

    def test_high_volume_skips_absent_volume(self, aggregator, dataset):
        result = keywords(aggregator.high_volume_keywords(dataset))
        assert len(result) == 5
        assert "step counter" not in result
        assert result[0] == "calorie counter"

    def test_thresholds_are_strict(self, aggregator):
        dataset = make_dataset(
            KeywordRecord(keyword="edge", volume=300, difficulty=39, current_rank=50),
        )
        assert aggregator.low_competition_opportunities(dataset) == []
        assert aggregator.underperforming_keywords(dataset) == []


class TestCategorize:
    """Theme grouping by shared words."""

    def test_fixture_themes(self, aggregator, dataset):
        categories = aggregator.categorize(dataset)
        assert {k: keywords(v) for k, v in categories.items()} == {
            "fitness": ["fitness tracker", "fitness app"],
            "workout": ["workout planner", "home workout"],
            "counter": ["calorie counter", "step counter"],
        }

    def test_leftovers_go_to_other(self, aggregator):
        dataset = make_dataset("yoga mat", "fitness tracker", "fitness app")
        categories = aggregator.categorize(dataset)
        assert keywords(categories["fitness"]) == ["fitness tracker", "fitness app"]
        assert keywords(categories["other"]) == ["yoga mat"]

    def test_short_words_never_form_themes(self, aggregator):
        dataset = make_dataset("run app", "fun app")
        assert list(aggregator.categorize(dataset)) == ["other"]

    def test_case_insensitive(self, aggregator):
        dataset = make_dataset("Yoga Poses", "yoga mat")
        assert keywords(aggregator.categorize(dataset)["yoga"]) == ["Yoga Poses", "yoga mat"]

    def test_repeated_word_counts_once_per_keyword(self, aggregator):
        dataset = make_dataset("yoga yoga", "pilates mat")
        categories = aggregator.categorize(dataset)
        assert list(categories) == ["other"]
        assert keywords(categories["other"]) == ["yoga yoga", "pilates mat"]

    def test_single_keyword(self, aggregator):
        categories = aggregator.categorize(make_dataset("fitness tracker"))
        assert keywords(categories["other"]) == ["fitness tracker"]


class TestKeywordDetail:
    """Per-keyword figures."""

    def test_opportunity_score(self, aggregator, dataset):
        assert aggregator.opportunity_score(dataset.get("fitness tracker")) == 227

    def test_opportunity_score_needs_volume_and_difficulty(self, aggregator):
        assert aggregator.opportunity_score(KeywordRecord(keyword="x", volume=500)) == 0
        assert aggregator.opportunity_score(KeywordRecord(keyword="x", difficulty=10)) == 0

    @pytest.mark.parametrize(
        "difficulty, status",
        [(None, "High Opportunity"), (30, "High Opportunity"), (60, "Moderate Opportunity"), (61, "Challenging")],
    )
    def test_competitive_landscape(self, aggregator, difficulty, status):
        record = KeywordRecord(keyword="x", difficulty=difficulty)
        assert aggregator.competitive_landscape(record)["status"] == status

    @pytest.mark.parametrize(
        "rank, status",
        [(None, "Not Ranked"), (10, "Excellent"), (50, "Good"), (100, "Fair"), (101, "Needs Improvement")],
    )
    def test_rank_status(self, aggregator, rank, status):
        assert aggregator.rank_status(KeywordRecord(keyword="x", current_rank=rank)) == status

    def test_reach_percentage(self, aggregator, dataset):
        assert aggregator.reach_percentage(dataset.get("fitness tracker")) == 24
        assert aggregator.reach_percentage(dataset.get("fitness app")) == 0
        capped = KeywordRecord(keyword="x", volume=500, maximum_reach=100)
        assert aggregator.reach_percentage(capped) == 100


class TestSummaries:
    """Warnings, summary text and the combined insights dict."""

    def test_no_warnings_for_complete_fixture(self, aggregator, dataset):
        assert aggregator.missing_data_warnings(dataset) == []

    def test_warnings_for_bare_dataset(self, aggregator):
        warnings = aggregator.missing_data_warnings(make_dataset("yoga"))
        assert len(warnings) == 4
        assert warnings[0].startswith("App name is missing")
        assert warnings[-1] == (
            "Missing search volume, difficulty/competition, current rank data "
            "for keywords. Analysis will be limited."
        )

    def test_summary_mentions_opportunities(self, aggregator, dataset):
        summary = aggregator.summary(dataset)
        assert summary.startswith("We analyzed 6 keywords for FitPal.")
        assert '"fitness tracker", "fitness app", "home workout"' in summary

    def test_empty_dataset(self, aggregator):
        empty = make_dataset()
        assert aggregator.top_keywords(empty) == []
        assert aggregator.low_competition_opportunities(empty) == []
        assert aggregator.underperforming_keywords(empty) == []
        assert aggregator.trending_keywords(empty) == []
        assert aggregator.high_volume_keywords(empty) == []
        assert aggregator.categorize(empty) == {}
        insights = aggregator.insights(empty)
        assert insights["top_keywords"] == []
        assert insights["keyword_categories"] == {}

    def test_insights_idempotent(self, aggregator, dataset):
        before = [k.to_dict() for k in dataset.keywords]
        assert aggregator.insights(dataset) == aggregator.insights(dataset)
        assert [k.to_dict() for k in dataset.keywords] == before

    def test_top_keyword_entry(self, aggregator, dataset):
        top = aggregator.insights(dataset)["top_keywords"][0]
        assert top["keyword"] == "fitness tracker"
        assert top["label"] == "Very Good"
        assert top["score"] == pytest.approx(631.0, abs=1)


class TestAnalysisService:
    """AnalysisService.analyze"""

    def test_result_sections(self, dataset):
        result = AnalysisService().analyze(dataset)
        assert set(result) == {
            "missing_data_warnings", "insights", "recommendations", "projections",
        }
        assert result["projections"]["timeframes"] == [1, 3, 6, 12]
        assert len(result["projections"]["projected_downloads"]) == 4

    def test_projection_keywords_follow_recommendations(self, dataset):
        service = AnalysisService()
        recommendations = service.recommender.recommendations(dataset)
        selected = keywords(service.projection_keywords(dataset, recommendations))
        assert "calorie counter" in selected

    def test_growth_falls_back_to_top_volume(self, dataset):
        service = AnalysisService()
        empty = {"title": [], "subtitle": [], "keyword_field": []}
        assert service.projection_keywords(dataset, empty) == []
        growth = service.projector.growth_projections(dataset, [])
        assert list(growth["projected_rank_improvements"]) == [
            "calorie counter",
            "fitness tracker",
            "workout planner",
            "fitness app",
            "home workout",
        ]

    def test_empty_dataset(self):
        result = AnalysisService().analyze(make_dataset())
        assert result["recommendations"]["title"] == []
        assert result["projections"]["projected_downloads"] == [0, 0, 0, 0]
