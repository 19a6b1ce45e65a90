"""
Service classes for keyword insights, rank / install projections and
metadata recommendations.

Everything here is a pure function of a ``ParsedDataset`` snapshot: no
service mutates a ``KeywordRecord`` and none of them draws random numbers
except ``MetadataTemplateGenerator``, whose generator is injectable.
``MetadataServiceClient`` is the only class that leaves the process.
"""

import logging
import math
import random
from collections import Counter
from datetime import date

import requests

from .exceptions import MetadataServiceError
from .records import MetadataOption, ProjectionPoint, ProjectionResult

logger = logging.getLogger(__name__)

# Default month horizons for per-keyword projections.
DEFAULT_HORIZONS = (3, 6, 9, 12)
# Default timeframes for the dataset-level growth projection.
GROWTH_TIMEFRAMES = (1, 3, 6, 12)

TITLE_LIMIT = 30
SUBTITLE_LIMIT = 30
KEYWORD_FIELD_LIMIT = 100
# Running-length budget for the keyword field; leaves room for a separator.
KEYWORD_FIELD_BUDGET = 97


def truncate(text: str, limit: int) -> str:
    """Cut ``text`` to at most ``limit`` characters."""
    return text[:limit].rstrip()


def pack_keywords(candidates, budget: int = KEYWORD_FIELD_BUDGET) -> list[str]:
    """
    Greedily pick keywords for the 100-character keyword field.

    A keyword is added while the running comma-joined string plus that
    keyword stays within ``budget``; the joined result therefore never
    exceeds ``budget + 2`` characters.  Duplicates are skipped.
    """
    chosen: list[str] = []
    running = ""
    for keyword in candidates:
        keyword = (keyword or "").strip()
        if not keyword or keyword in chosen:
            continue
        if len(running + keyword) <= budget:
            running += (", " if running else "") + keyword
            chosen.append(keyword)
    return chosen


def brief(record) -> dict:
    """Compact JSON view of a keyword record for insight lists."""
    return {
        "keyword": record.keyword,
        "volume": record.volume,
        "difficulty": record.difficulty,
        "current_rank": record.current_rank,
    }


# --------------------------------------------------------------------------- #
# Insight Aggregator
# --------------------------------------------------------------------------- #


class InsightAggregator:
    """
    Dataset-wide keyword summaries.

    Lists:
      - Top keywords by a blended score (volume up, difficulty and current
        rank down), stable on ties.
      - Low-competition opportunities: difficulty < 40 and volume > 300.
      - Underperformers: volume > 300 but ranked below position 50.
      - Trending (volume > 500) and high-volume keywords.
      - Thematic categories built from words shared between keywords.

    Missing metrics never raise; they fall back to neutral defaults or
    keep a keyword out of a list that needs them.
    """

    TOP_LIMIT = 10
    LIST_LIMIT = 5

    LOW_COMPETITION_MAX_DIFFICULTY = 40
    OPPORTUNITY_MIN_VOLUME = 300
    UNDERPERFORMING_MIN_RANK = 50
    TRENDING_MIN_VOLUME = 500

    # Words of this length or shorter never form a theme.
    THEME_MIN_EXCLUDED_LENGTH = 3
    OTHER_CATEGORY = "other"

    # Click-through rate of the first search result.
    MAX_POTENTIAL_CTR = 0.35

    # (threshold, label); the first threshold the score exceeds wins.
    _SCORE_LABELS = [
        (1000, "Excellent"),
        (500, "Very Good"),
        (250, "Good"),
        (100, "Fair"),
    ]

    # -- scoring ----------------------------------------------------------- #

    def keyword_score(self, record) -> float:
        """
        Blend volume, difficulty and rank into one ranking score.

        ``volume * 0.6 / ((difficulty / 100 + 0.5) * log10(rank + 10))``.
        Unknown volume counts as 0, unknown difficulty as 100 and an
        unranked keyword as rank 1000.
        """
        volume = record.volume if record.volume is not None else 0
        difficulty = record.difficulty if record.difficulty is not None else 100
        rank = record.current_rank if record.current_rank is not None else 1000
        return (volume * 0.6) / (
            (max(difficulty, 0) / 100 + 0.5) * math.log10(max(rank, 0) + 10)
        )

    def opportunity_label(self, score: float) -> str:
        for threshold, label in self._SCORE_LABELS:
            if score > threshold:
                return label
        return "Limited"

    def opportunity_score(self, record) -> int:
        """
        Installs a keyword could still win by climbing to position 1.

        ``volume * (0.35 - current_ctr) * (100 - difficulty) / 100`` with
        ``current_ctr = 0.35 * e^(-0.15 * rank)``; unranked keywords count
        as rank 100.  Zero when volume or difficulty is unknown.
        """
        if record.volume is None or record.difficulty is None:
            return 0
        rank = record.current_rank if record.current_rank is not None else 100
        current_ctr = self.MAX_POTENTIAL_CTR * math.exp(-0.15 * rank)
        growth = self.MAX_POTENTIAL_CTR - current_ctr
        return math.floor(record.volume * growth * (100 - record.difficulty) / 100)

    def competitive_landscape(self, record) -> dict:
        difficulty = record.difficulty or 0
        if difficulty <= 30:
            return {
                "status": "High Opportunity",
                "description": (
                    "Low competition with significant growth potential. "
                    "Quick wins possible."
                ),
                "time_to_rank": "1-3 months",
            }
        if difficulty <= 60:
            return {
                "status": "Moderate Opportunity",
                "description": (
                    "Balanced competition. Strategic approach needed for growth."
                ),
                "time_to_rank": "3-6 months",
            }
        return {
            "status": "Challenging",
            "description": (
                "High competition requires long-term strategy and content "
                "optimization."
            ),
            "time_to_rank": "6-12 months",
        }

    def rank_status(self, record) -> str:
        rank = record.current_rank
        if not rank:
            return "Not Ranked"
        if rank <= 10:
            return "Excellent"
        if rank <= 50:
            return "Good"
        if rank <= 100:
            return "Fair"
        return "Needs Improvement"

    def reach_percentage(self, record) -> int:
        """Share of the keyword's maximum reach its volume represents."""
        if not record.maximum_reach:
            return 0
        return min(100, round((record.volume or 0) / record.maximum_reach * 100))

    # -- lists ------------------------------------------------------------- #

    def top_keywords(self, dataset, limit: int = TOP_LIMIT) -> list:
        """Keywords by descending ``keyword_score``; ties keep input order."""
        return sorted(dataset.keywords, key=self.keyword_score, reverse=True)[:limit]

    def _by_volume(self, records, limit: int = LIST_LIMIT) -> list:
        return sorted(records, key=lambda r: r.volume, reverse=True)[:limit]

    def low_competition_opportunities(self, dataset) -> list:
        return self._by_volume(
            r for r in dataset.keywords
            if r.difficulty is not None
            and r.volume is not None
            and r.difficulty < self.LOW_COMPETITION_MAX_DIFFICULTY
            and r.volume > self.OPPORTUNITY_MIN_VOLUME
        )

    def underperforming_keywords(self, dataset) -> list:
        return self._by_volume(
            r for r in dataset.keywords
            if r.volume is not None
            and r.current_rank is not None
            and r.volume > self.OPPORTUNITY_MIN_VOLUME
            and r.current_rank > self.UNDERPERFORMING_MIN_RANK
        )

    def trending_keywords(self, dataset) -> list:
        # No historical data: high current volume stands in for a trend.
        return self._by_volume(
            r for r in dataset.keywords
            if r.volume is not None and r.volume > self.TRENDING_MIN_VOLUME
        )

    def high_volume_keywords(self, dataset) -> list:
        return self._by_volume(r for r in dataset.keywords if r.volume is not None)

    def categorize(self, dataset) -> dict:
        """
        Group keywords by shared words.

        Any word longer than three characters that appears in at least two
        distinct keywords becomes a theme; every keyword containing the
        theme (case-insensitive substring) joins it.  Keywords left over go
        to ``other``.  Themes ending up with fewer than two members are
        dropped.
        """
        keywords = dataset.keywords
        frequency: Counter = Counter()
        for record in keywords:
            # Each word counts once per keyword, in first-seen order.
            words = list(dict.fromkeys(
                w for w in record.keyword.lower().split()
                if len(w) > self.THEME_MIN_EXCLUDED_LENGTH
            ))
            frequency.update(words)

        themes = [word for word, count in frequency.items() if count >= 2]

        categories: dict = {}
        categorized: set[str] = set()
        for theme in themes:
            members = [r for r in keywords if theme in r.keyword.lower()]
            if len(members) < 2:
                continue
            categories[theme] = members
            categorized.update(r.keyword for r in members)

        other = [r for r in keywords if r.keyword not in categorized]
        if other:
            categories[self.OTHER_CATEGORY] = other
        return categories

    # -- summaries --------------------------------------------------------- #

    def missing_data_warnings(self, dataset) -> list[str]:
        warnings = []
        app = dataset.app_details
        if not app.app_name:
            warnings.append(
                "App name is missing. Recommendations may be less targeted."
            )
        if not app.app_id:
            warnings.append(
                "App ID is missing. We cannot verify if the app exists in "
                "the stores."
            )
        if not app.store:
            warnings.append(
                "Store information is missing. Recommendations are based on "
                "general app store guidelines."
            )
        if not dataset.keywords:
            warnings.append(
                "No keywords found in the data. Please ensure your CSV "
                "contains keyword information."
            )

        missing = []
        if not any(k.volume is not None for k in dataset.keywords):
            missing.append("search volume")
        if not any(k.difficulty is not None for k in dataset.keywords):
            missing.append("difficulty/competition")
        if not any(k.current_rank is not None for k in dataset.keywords):
            missing.append("current rank")
        if missing:
            warnings.append(
                f"Missing {', '.join(missing)} data for keywords. "
                "Analysis will be limited."
            )
        return warnings

    def summary(self, dataset, opportunities=None, underperforming=None) -> str:
        if opportunities is None:
            opportunities = self.low_competition_opportunities(dataset)
        if underperforming is None:
            underperforming = self.underperforming_keywords(dataset)

        app_name = dataset.app_details.app_name or "Your app"
        keywords = dataset.keywords
        volumes = [k.volume for k in keywords if k.volume is not None]
        difficulties = [k.difficulty for k in keywords if k.difficulty is not None]
        avg_volume = sum(volumes) / (len(volumes) or 1)
        avg_difficulty = sum(difficulties) / (len(difficulties) or 1)

        parts = [
            f"We analyzed {len(keywords)} keywords for {app_name}.",
            f"The average search volume is {round(avg_volume)} with an "
            f"average difficulty of {round(avg_difficulty)}/100.",
        ]
        if opportunities:
            quoted = ", ".join(f'"{k.keyword}"' for k in opportunities[:3])
            parts.append(f"Your top keyword opportunities are: {quoted}.")
        if underperforming:
            quoted = ", ".join(f'"{k.keyword}"' for k in underperforming[:3])
            parts.append(
                f"You should focus on improving your ranking for: {quoted}."
            )
        parts.append(
            "By optimizing your metadata with our recommendations, you can "
            "improve visibility and increase downloads."
        )
        return " ".join(parts)

    def insights(self, dataset) -> dict:
        """All aggregations as one JSON-ready dict."""
        opportunities = self.low_competition_opportunities(dataset)
        underperforming = self.underperforming_keywords(dataset)
        top = []
        for record in self.top_keywords(dataset):
            score = self.keyword_score(record)
            top.append({
                **brief(record),
                "score": round(score, 2),
                "label": self.opportunity_label(score),
            })
        return {
            "top_keywords": top,
            "trending_keywords": [brief(r) for r in self.trending_keywords(dataset)],
            "low_competition_opportunities": [brief(r) for r in opportunities],
            "high_volume_keywords": [
                brief(r) for r in self.high_volume_keywords(dataset)
            ],
            "underperforming_keywords": [brief(r) for r in underperforming],
            "keyword_categories": {
                theme: [r.keyword for r in members]
                for theme, members in self.categorize(dataset).items()
            },
            "summary": self.summary(dataset, opportunities, underperforming),
        }


# --------------------------------------------------------------------------- #
# Rank Projector
# --------------------------------------------------------------------------- #


class RankProjector:
    """
    Projects a keyword's rank and monthly installs over time.

    Rank model:
        difficulty_factor = 1 - difficulty / 200          (0.5 to 1.0)
        rank_factor       = min(log10(rank + 10) / 2, 1)
        improvement       = rank_factor * difficulty_factor * sqrt(months) * 20
        projected_rank    = max(1, rank - min(rank - 1, improvement))

    Install model: ``volume * conversion_rate(rank) * 30``, where volume is
    read as a daily figure and scaled to a month.

    Unknown volume, difficulty and rank default to 100, 50 and 100.
    """

    # (max rank, conversion rate); the first bucket containing the rank wins.
    _CONVERSION_RATES = [
        (1, 0.12),
        (3, 0.08),
        (5, 0.05),
        (10, 0.03),
        (20, 0.01),
        (50, 0.005),
    ]
    _TAIL_CONVERSION_RATE = 0.001

    DEFAULT_VOLUME = 100
    DEFAULT_DIFFICULTY = 50
    DEFAULT_RANK = 100
    DAYS_PER_MONTH = 30
    # Keywords projected when the caller selects none.
    FALLBACK_KEYWORDS = 5

    def conversion_rate(self, rank: float) -> float:
        for max_rank, rate in self._CONVERSION_RATES:
            if rank <= max_rank:
                return rate
        return self._TAIL_CONVERSION_RATE

    def metrics(self, record) -> tuple[float, float, float]:
        """(volume, difficulty, rank) with defaults filled in."""
        volume = record.volume if record.volume is not None else self.DEFAULT_VOLUME
        difficulty = (
            record.difficulty if record.difficulty is not None
            else self.DEFAULT_DIFFICULTY
        )
        rank = (
            record.current_rank if record.current_rank is not None
            else self.DEFAULT_RANK
        )
        return volume, min(max(difficulty, 0), 100), max(rank, 1)

    def rank_improvement(
        self,
        current_rank: float,
        difficulty: float,
        months: float,
        metadata_boost: float = 1.0,
    ) -> float:
        """Positions gained after ``months``; never more than ``rank - 1``."""
        if months <= 0 or current_rank <= 1:
            return 0.0
        difficulty_factor = 1 - difficulty / 200
        rank_factor = min(math.log10(current_rank + 10) / 2, 1)
        improvement = (
            rank_factor * difficulty_factor * math.sqrt(months) * 20 * metadata_boost
        )
        return max(0.0, min(current_rank - 1, improvement))

    def projected_rank(
        self,
        current_rank: float,
        difficulty: float,
        months: float,
        metadata_boost: float = 1.0,
    ) -> float:
        improvement = self.rank_improvement(
            current_rank, difficulty, months, metadata_boost
        )
        return max(1.0, current_rank - improvement)

    def projected_installs(self, volume: float, rank: float) -> int:
        return round(volume * self.conversion_rate(rank) * self.DAYS_PER_MONTH)

    def project(
        self, record, horizons=DEFAULT_HORIZONS, metadata_boost: float = 1.0
    ) -> ProjectionResult:
        volume, difficulty, rank = self.metrics(record)
        points = []
        for months in horizons:
            projected = self.projected_rank(rank, difficulty, months, metadata_boost)
            points.append(ProjectionPoint(
                months=months,
                projected_rank=projected,
                projected_installs=self.projected_installs(volume, projected),
            ))
        return ProjectionResult(
            keyword=record.keyword, current_rank=rank, points=tuple(points)
        )

    def growth_projections(
        self, dataset, keywords=None, timeframes=GROWTH_TIMEFRAMES
    ) -> dict:
        """
        Total projected monthly downloads across ``keywords`` per timeframe.

        ``keywords`` are records of ``dataset``; when empty or omitted the
        top keywords by volume are projected instead.

        Returns:
            timeframes: the month horizons used
            projected_downloads: summed installs per timeframe
            projected_rank_improvements: keyword → projected rank per timeframe
        """
        records = list(keywords or self.top_by_volume(dataset))
        downloads = []
        ranks: dict[str, list[float]] = {r.keyword: [] for r in records}
        for months in timeframes:
            total = 0.0
            for record in records:
                volume, difficulty, rank = self.metrics(record)
                projected = self.projected_rank(rank, difficulty, months)
                ranks[record.keyword].append(round(projected, 2))
                total += volume * self.conversion_rate(projected) * self.DAYS_PER_MONTH
            downloads.append(round(total))
        return {
            "timeframes": list(timeframes),
            "projected_downloads": downloads,
            "projected_rank_improvements": ranks,
        }

    def top_by_volume(self, dataset, limit: int = FALLBACK_KEYWORDS) -> list:
        return sorted(
            (r for r in dataset.keywords if r.volume is not None),
            key=lambda r: r.volume,
            reverse=True,
        )[:limit]

    def target_install_gain(
        self, record, current_rank: float, target_rank: float, months: float
    ) -> int:
        """
        Extra installs from reaching ``target_rank`` within ``months``.

        Zero when the target is not an improvement.
        """
        improvement = current_rank - target_rank
        if improvement <= 0 or months <= 0:
            return 0
        volume, difficulty, _ = self.metrics(record)
        multiplier = (months / 3) ** 1.2
        gain = (volume * improvement * multiplier) / (
            current_rank * (difficulty / 100 + 1)
        )
        return max(0, math.floor(gain))


# --------------------------------------------------------------------------- #
# Install Impact Estimator
# --------------------------------------------------------------------------- #


class InstallImpactEstimator:
    """
    Estimates install gains from a ranking improvement with a CTR curve.

    Independent from ``RankProjector``: this model answers "what if we
    climb N positions?" scenarios, not time-based rank projections.

      CTR(rank)            0.35 / 0.15 / 0.08 / 0.04 for ranks ≤1/≤5/≤10/≤20,
                           0.35 * e^(-0.2 * rank) beyond
      market penetration   1 - e^(-0.15 * months)
      competition factor   (1 - difficulty / 100) ^ 0.7
      market size cap      maximum reach, or 2 × volume when unknown
      seasonality          1 + 0.3 * sin(2π * month_index / 12)
    """

    _CTR_STEPS = [(1, 0.35), (5, 0.15), (10, 0.08), (20, 0.04)]

    # (months, (conservative, moderate, aggressive) positions gained, strategy)
    SCENARIOS = [
        (3, (5, 10, 15), "Quick optimization of existing assets"),
        (6, (15, 25, 35), "Content refresh and targeted keyword optimization"),
        (9, (25, 40, 55), "Deep metadata optimization and review management"),
        (12, (35, 55, 75), "Complete ASO overhaul with continuous optimization"),
    ]
    SCENARIO_LABELS = ("conservative", "moderate", "aggressive")

    DEFAULT_VOLUME = RankProjector.DEFAULT_VOLUME
    DEFAULT_DIFFICULTY = RankProjector.DEFAULT_DIFFICULTY
    DEFAULT_RANK = RankProjector.DEFAULT_RANK

    def ctr(self, rank: float) -> float:
        for max_rank, rate in self._CTR_STEPS:
            if rank <= max_rank:
                return rate
        return 0.35 * math.exp(-0.2 * rank)

    def seasonality(self, month_index: int | None = None) -> float:
        """Seasonal multiplier; ``month_index`` is 0 (January) to 11."""
        if month_index is None:
            month_index = date.today().month - 1
        return 1 + 0.3 * math.sin(2 * math.pi * month_index / 12)

    def potential_installs(
        self,
        record,
        rank_improvement: float,
        months: float,
        month_index: int | None = None,
    ) -> int:
        volume = record.volume if record.volume is not None else self.DEFAULT_VOLUME
        difficulty = (
            record.difficulty if record.difficulty is not None
            else self.DEFAULT_DIFFICULTY
        )
        difficulty = min(max(difficulty, 0), 100)
        current_rank = record.current_rank or self.DEFAULT_RANK
        target_rank = max(1, current_rank - rank_improvement)

        ctr_gain = self.ctr(target_rank) - self.ctr(current_rank)
        penetration = 1 - math.exp(-0.15 * months)
        competition = (1 - difficulty / 100) ** 0.7
        market_size = record.maximum_reach or volume * 2

        base = min(market_size, volume * ctr_gain * penetration * competition)
        return math.floor(max(0, base * self.seasonality(month_index)))

    def scenarios(self, record, month_index: int | None = None) -> list[dict]:
        results = []
        for months, improvements, strategy in self.SCENARIOS:
            installs = {
                label: self.potential_installs(record, gain, months, month_index)
                for label, gain in zip(self.SCENARIO_LABELS, improvements)
            }
            results.append({
                "months": months,
                "strategy": strategy,
                "improvements": dict(zip(self.SCENARIO_LABELS, improvements)),
                "installs": installs,
            })
        return results


# --------------------------------------------------------------------------- #
# Metadata Recommender
# --------------------------------------------------------------------------- #


class MetadataRecommender:
    """
    Scores keywords for the title, subtitle and keyword-field slots and
    assembles candidate metadata.

    Slot scores (unknown volume = 0, difficulty = 50, rank = 100):
      title     0.6 * volume + 0.3 * (100 - difficulty) + 0.1 * (100 - min(rank, 100))
      subtitle  0.7 * volume + 0.3 * (100 - difficulty)
      keywords  0.5 * volume + 0.5 * (100 - difficulty)

    Every generated title and subtitle fits in 30 characters and every
    keyword field in 100.
    """

    SLOTS = ("title", "subtitle", "keywords")
    # How many top-scored keywords feed each slot.
    SLOT_POOL = {"title": 10, "subtitle": 15, "keywords": 20}

    REASONING = (
        "The title recommendations focus on high-volume, moderately "
        "competitive keywords where you already have some ranking. The "
        "subtitle includes complementary keywords with good search volume "
        "to expand your visibility. The keyword field maximizes coverage "
        "across your most valuable keyword opportunities."
    )

    @staticmethod
    def _metrics(record) -> tuple[float, float, float]:
        volume = record.volume if record.volume is not None else 0
        difficulty = record.difficulty if record.difficulty is not None else 50
        rank = record.current_rank if record.current_rank is not None else 100
        return volume, difficulty, rank

    def title_score(self, record) -> float:
        volume, difficulty, rank = self._metrics(record)
        return volume * 0.6 + (100 - difficulty) * 0.3 + (100 - min(rank, 100)) * 0.1

    def subtitle_score(self, record) -> float:
        volume, difficulty, _ = self._metrics(record)
        return volume * 0.7 + (100 - difficulty) * 0.3

    def keyword_field_score(self, record) -> float:
        volume, difficulty, _ = self._metrics(record)
        return volume * 0.5 + (100 - difficulty) * 0.5

    def score(self, record, slot: str) -> float:
        if slot == "title":
            return self.title_score(record)
        if slot == "subtitle":
            return self.subtitle_score(record)
        if slot == "keywords":
            return self.keyword_field_score(record)
        raise ValueError(f"Unknown slot: {slot!r}")

    def ranked(self, dataset, slot: str, limit: int | None = None) -> list:
        """Records sorted by descending slot score (stable on ties)."""
        if slot not in self.SLOTS:
            raise ValueError(f"Unknown slot: {slot!r}")
        if limit is None:
            limit = self.SLOT_POOL[slot]
        return sorted(
            dataset.keywords, key=lambda r: self.score(r, slot), reverse=True
        )[:limit]

    def _title_options(self, app_name: str, top: list[str]) -> list[str]:
        first = top[0]
        if app_name:
            options = [f"{app_name}: {first}", f"{first} - {app_name}"]
            if len(top) > 1:
                options.append(f"{app_name} - {first} & {top[1]}")
        else:
            options = [f"{first} App"]
            if len(top) > 1:
                options.append(f"{first} & {top[1]}")
            if len(top) > 2:
                options.append(f"Ultimate {first} & {top[1]} Tool")
        return [truncate(o, TITLE_LIMIT) for o in options]

    def _subtitle_options(self, top: list[str]) -> list[str]:
        options = []
        if len(top) > 2:
            options.append(f"{top[0]} {top[1]} & {top[2]}")
        if len(top) > 1:
            options.append(f"Best {top[0]} App for {top[1]}")
            options.append(f"{top[0]} Made Easy | {top[1]} & More")
        else:
            options.append(f"{top[0]} Made Easy")
        return [truncate(o, SUBTITLE_LIMIT) for o in options]

    def _keyword_field_options(self, top: list[str]) -> list[list[str]]:
        slices = [top[0:8], top[8:16], top[0:4] + top[10:14]]
        options = []
        for chunk in slices:
            packed = pack_keywords(chunk)
            if packed and packed not in options:
                options.append(packed)
        return options

    def recommendations(self, dataset) -> dict:
        """
        Candidate strings per slot plus the reasoning shown to the user.

        Empty lists when the dataset has no keywords.
        """
        if not dataset.keywords:
            return {
                "title": [],
                "subtitle": [],
                "keyword_field": [],
                "reasoning": self.REASONING,
            }

        app_name = dataset.app_details.app_name or ""
        titles = [r.keyword for r in self.ranked(dataset, "title")]
        subtitles = [r.keyword for r in self.ranked(dataset, "subtitle")]
        fields = [r.keyword for r in self.ranked(dataset, "keywords")]
        return {
            "title": self._title_options(app_name, titles),
            "subtitle": self._subtitle_options(subtitles),
            "keyword_field": [
                ", ".join(o) for o in self._keyword_field_options(fields)
            ],
            "reasoning": self.REASONING,
        }

    def metadata_options(self, dataset, count: int = 3) -> list[MetadataOption]:
        """
        ``count`` title / subtitle / keyword-list combinations.

        Option ``i`` takes the ``i``-th candidate of each slot, wrapping
        around when a slot has fewer candidates.
        """
        if not dataset.keywords or count <= 0:
            return []
        app_name = dataset.app_details.app_name or ""
        titles = self._title_options(
            app_name, [r.keyword for r in self.ranked(dataset, "title")]
        )
        subtitles = self._subtitle_options(
            [r.keyword for r in self.ranked(dataset, "subtitle")]
        )
        keyword_lists = self._keyword_field_options(
            [r.keyword for r in self.ranked(dataset, "keywords")]
        ) or [[]]
        return [
            MetadataOption(
                title=titles[i % len(titles)],
                subtitle=subtitles[i % len(subtitles)],
                keywords=list(keyword_lists[i % len(keyword_lists)]),
            )
            for i in range(count)
        ]


# --------------------------------------------------------------------------- #
# Metadata generation
# --------------------------------------------------------------------------- #


class MetadataTemplateGenerator:
    """
    Builds metadata options from a bare keyword list with fixed templates.

    Stands in for a remote generation service.  The main keyword of each
    option and the keyword-field shuffle come from ``rng``; pass a seeded
    ``random.Random`` for reproducible output.
    """

    TITLE_PATTERNS = [
        "Easy {kw} - Track Your Progress",
        "{kw} Pro - Smart Tracking & Analysis",
        "Ultimate {kw} Assistant & Tracker",
        "{kw} Master - Professional Tools",
        "Smart {kw} - Your Personal Guide",
    ]
    SUBTITLE_PATTERNS = [
        "Boost your {kw} results with AI-powered insights",
        "Professional {kw} tools for better performance",
        "Smart {kw} tracking & personalized recommendations",
        "Advanced {kw} analytics for professionals",
        "The ultimate {kw} companion for success",
    ]
    MODIFIERS = ["pro", "best", "top", "smart", "easy", "professional"]
    OPTION_COUNT = 3

    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    def generate(self, keywords: list[str], current_installs=None) -> list[MetadataOption]:
        """
        Raises:
            ValueError: ``keywords`` is empty or holds no usable text.
        """
        cleaned = list(dict.fromkeys(
            k.strip() for k in keywords if isinstance(k, str) and k.strip()
        ))
        if not cleaned:
            raise ValueError("Invalid keywords in request body")

        logger.info(
            f"Generating {self.OPTION_COUNT} metadata options from "
            f"{len(cleaned)} keywords (installs={current_installs})"
        )
        return [
            self._option(cleaned, seed) for seed in range(1, self.OPTION_COUNT + 1)
        ]

    def _option(self, keywords: list[str], seed: int) -> MetadataOption:
        main = self.rng.choice(keywords)
        title_pattern = self.TITLE_PATTERNS[seed % len(self.TITLE_PATTERNS)]
        subtitle_pattern = self.SUBTITLE_PATTERNS[seed % len(self.SUBTITLE_PATTERNS)]

        title = truncate(title_pattern.format(kw=main[:1].upper() + main[1:]), TITLE_LIMIT)
        subtitle = truncate(subtitle_pattern.format(kw=main.lower()), SUBTITLE_LIMIT)

        candidates = list(keywords)
        candidates.extend(f"{self.rng.choice(self.MODIFIERS)} {kw}" for kw in keywords)
        self.rng.shuffle(candidates)

        return MetadataOption(
            title=title, subtitle=subtitle, keywords=pack_keywords(candidates)
        )


class MetadataServiceClient:
    """
    Client for a remote metadata generation service.

    Speaks ``POST {keywords, currentInstalls?}`` → ``{options: [...]}``.
    """

    ENDPOINT = "/api/generate-metadata/"

    def __init__(self, base_url: str, timeout: float = 30):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def generate(self, keywords: list[str], current_installs=None) -> list[MetadataOption]:
        payload = {"keywords": list(keywords)}
        if current_installs is not None:
            payload["currentInstalls"] = current_installs

        try:
            response = requests.post(
                self.base_url + self.ENDPOINT, json=payload, timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Metadata service request failed: {e}")
            raise MetadataServiceError(str(e)) from e

        options = data.get("options") if isinstance(data, dict) else None
        if not isinstance(options, list):
            logger.error(f"Metadata service returned no options: {data!r}")
            raise MetadataServiceError("Metadata service returned no options.")
        return [self._parse_option(o) for o in options if isinstance(o, dict)]

    @staticmethod
    def _parse_option(option: dict) -> MetadataOption:
        keywords = option.get("keywords") or []
        if isinstance(keywords, str):
            keywords = [k.strip() for k in keywords.split(",") if k.strip()]
        return MetadataOption(
            title=truncate(str(option.get("title", "")), TITLE_LIMIT),
            subtitle=truncate(str(option.get("subtitle", "")), SUBTITLE_LIMIT),
            keywords=pack_keywords(keywords),
        )


# --------------------------------------------------------------------------- #
# Analysis
# --------------------------------------------------------------------------- #


class AnalysisService:
    """
    One-shot analysis of a dataset: warnings, insights, metadata
    recommendations and the growth projection for recommended keywords.
    """

    def __init__(
        self,
        aggregator: InsightAggregator | None = None,
        projector: RankProjector | None = None,
        recommender: MetadataRecommender | None = None,
        timeframes=GROWTH_TIMEFRAMES,
    ):
        self.aggregator = aggregator or InsightAggregator()
        self.projector = projector or RankProjector()
        self.recommender = recommender or MetadataRecommender()
        self.timeframes = tuple(timeframes)

    def projection_keywords(self, dataset, recommendations: dict) -> list:
        """
        Keywords that overlap the recommended metadata text.

        Empty when nothing overlaps.
        """
        terms: set[str] = set()
        for text in recommendations["title"] + recommendations["subtitle"]:
            terms.update(w.lower() for w in text.split())
        for text in recommendations["keyword_field"]:
            terms.update(w.strip().lower() for w in text.split(","))
        terms = {t for t in terms if any(c.isalnum() for c in t)}

        return [
            r for r in dataset.keywords
            if any(t in r.keyword.lower() or r.keyword.lower() in t for t in terms)
        ]

    def analyze(self, dataset) -> dict:
        recommendations = self.recommender.recommendations(dataset)
        keywords = self.projection_keywords(dataset, recommendations)
        return {
            "missing_data_warnings": self.aggregator.missing_data_warnings(dataset),
            "insights": self.aggregator.insights(dataset),
            "recommendations": recommendations,
            "projections": self.projector.growth_projections(
                dataset, keywords, self.timeframes
            ),
        }
