import csv
import json
import logging

from django.conf import settings
from django.http import HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from .exceptions import CSVImportError, MetadataServiceError
from .fields import parse_numeric
from .forms import CSVUploadForm, MetadataRequestForm
from .parsers import RandomDefaultGenerator, parse_upload
from .records import ParsedDataset
from .services import (
    DEFAULT_HORIZONS,
    GROWTH_TIMEFRAMES,
    AnalysisService,
    InsightAggregator,
    InstallImpactEstimator,
    MetadataRecommender,
    MetadataServiceClient,
    MetadataTemplateGenerator,
    RankProjector,
)

logger = logging.getLogger(__name__)

SESSION_KEY = "insights_dataset"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


# --------------------------------------------------------------------------- #
# Helpers
# --------------------------------------------------------------------------- #


def _horizons():
    return tuple(getattr(settings, "INSIGHTS_PROJECTION_HORIZONS", DEFAULT_HORIZONS))


def _timeframes():
    return tuple(getattr(settings, "INSIGHTS_GROWTH_TIMEFRAMES", GROWTH_TIMEFRAMES))


def _load_dataset(request):
    """The dataset of the current session, or None before the first upload."""
    data = request.session.get(SESSION_KEY)
    if not data:
        return None
    return ParsedDataset.from_dict(data)


def _no_dataset():
    return JsonResponse(
        {"error": "No keyword data uploaded yet. Upload a CSV file first."},
        status=404,
    )


def _first_error(form) -> str:
    for errors in form.errors.values():
        if errors:
            return errors[0]
    return "Invalid form data."


def _dataset_summary(dataset) -> dict:
    return {
        "dataset_id": dataset.dataset_id,
        "schema": dataset.schema,
        "app_details": dataset.app_details.to_dict(),
        "keyword_count": len(dataset.keywords),
        "available_fields": dataset.available_fields,
        "missing_fields": dataset.missing_fields,
        "row_errors": dataset.row_errors,
    }


def _metadata_generator():
    """Remote metadata service when configured, the local templates otherwise."""
    url = getattr(settings, "METADATA_SERVICE_URL", "")
    if url:
        return MetadataServiceClient(
            url, timeout=getattr(settings, "METADATA_SERVICE_TIMEOUT", 30)
        )
    return MetadataTemplateGenerator()


# --------------------------------------------------------------------------- #
# Upload & dataset
# --------------------------------------------------------------------------- #


@csrf_exempt
@require_POST
def upload_view(request):
    """
    Parse an uploaded keyword export and make it the session's dataset.

    The previous dataset, if any, is replaced wholesale.  Returns the
    dataset summary together with the full analysis.
    """
    form = CSVUploadForm(request.POST, request.FILES)
    if not form.is_valid():
        return JsonResponse({"error": _first_error(form)}, status=400)

    default_generator = (
        RandomDefaultGenerator() if form.cleaned_data.get("estimate_missing") else None
    )
    try:
        dataset = parse_upload(
            form.cleaned_data["file"],
            schema=form.cleaned_data["schema"],
            default_generator=default_generator,
        )
    except CSVImportError as e:
        logger.info(f"Rejected upload {form.cleaned_data['file'].name}: {e.message}")
        return JsonResponse({"error": e.message}, status=400)

    request.session[SESSION_KEY] = dataset.to_dict()
    logger.info(
        f"Stored dataset {dataset.dataset_id} with {len(dataset.keywords)} keywords"
    )

    analysis = AnalysisService(timeframes=_timeframes()).analyze(dataset)
    return JsonResponse({"dataset": _dataset_summary(dataset), "analysis": analysis})


@require_GET
def dataset_view(request):
    dataset = _load_dataset(request)
    if dataset is None:
        return _no_dataset()
    return JsonResponse({
        **_dataset_summary(dataset),
        "keywords": [k.to_dict() for k in dataset.keywords],
    })


# --------------------------------------------------------------------------- #
# Insights, projections & recommendations
# --------------------------------------------------------------------------- #


@require_GET
def insights_view(request):
    dataset = _load_dataset(request)
    if dataset is None:
        return _no_dataset()
    aggregator = InsightAggregator()
    return JsonResponse({
        "insights": aggregator.insights(dataset),
        "missing_data_warnings": aggregator.missing_data_warnings(dataset),
    })


@require_GET
def keyword_detail_view(request, keyword):
    """
    Everything known about one keyword.

    Optional ``?target_rank=N&months=M`` adds the target-rank install gain.
    """
    dataset = _load_dataset(request)
    if dataset is None:
        return _no_dataset()
    record = dataset.get(keyword)
    if record is None:
        return JsonResponse({"error": f"Keyword not found: {keyword}"}, status=404)

    aggregator = InsightAggregator()
    projector = RankProjector()
    score = aggregator.keyword_score(record)

    data = {
        "keyword": record.to_dict(),
        "score": round(score, 2),
        "label": aggregator.opportunity_label(score),
        "opportunity_score": aggregator.opportunity_score(record),
        "competitive_landscape": aggregator.competitive_landscape(record),
        "rank_status": aggregator.rank_status(record),
        "reach_percentage": aggregator.reach_percentage(record),
        "projection": projector.project(record, _horizons()).to_dict(),
        "install_scenarios": InstallImpactEstimator().scenarios(record),
    }

    target_rank = request.GET.get("target_rank")
    if target_rank:
        target_rank = parse_numeric(target_rank)
        months = parse_numeric(request.GET.get("months", "6"))
        if target_rank is None or months is None:
            return JsonResponse({"error": "Invalid target rank or months."}, status=400)
        _, _, current_rank = projector.metrics(record)
        data["target"] = {
            "target_rank": target_rank,
            "months": months,
            "install_gain": projector.target_install_gain(
                record, current_rank, target_rank, months
            ),
        }

    return JsonResponse(data)


@require_GET
def projections_view(request):
    dataset = _load_dataset(request)
    if dataset is None:
        return _no_dataset()
    service = AnalysisService(timeframes=_timeframes())
    keywords = service.projection_keywords(
        dataset, service.recommender.recommendations(dataset)
    )
    return JsonResponse(
        service.projector.growth_projections(dataset, keywords, service.timeframes)
    )


@require_GET
def recommendations_view(request):
    dataset = _load_dataset(request)
    if dataset is None:
        return _no_dataset()
    recommender = MetadataRecommender()
    return JsonResponse({
        "recommendations": recommender.recommendations(dataset),
        "options": [o.to_dict() for o in recommender.metadata_options(dataset)],
    })


# --------------------------------------------------------------------------- #
# Metadata generation
# --------------------------------------------------------------------------- #


@csrf_exempt
@require_POST
def metadata_suggest_view(request):
    """
    Generate metadata options for the session's keywords.

    A JSON body ``{"keywords": [...]}`` overrides the session keywords.
    """
    body = {}
    if request.content_type == "application/json" and request.body:
        try:
            body = json.loads(request.body)
        except json.JSONDecodeError:
            return JsonResponse({"error": "Invalid JSON."}, status=400)
        if not isinstance(body, dict):
            return JsonResponse({"error": "Invalid JSON."}, status=400)

    if "keywords" not in body:
        dataset = _load_dataset(request)
        if dataset is None:
            return _no_dataset()
        installs = dataset.app_details.current_installs
        body = {
            "keywords": dataset.keyword_list(),
            "currentInstalls": int(installs) if installs is not None else None,
        }

    form = MetadataRequestForm(body)
    if not form.is_valid():
        return JsonResponse({"error": _first_error(form)}, status=400)

    try:
        options = _metadata_generator().generate(
            form.cleaned_data["keywords"], form.cleaned_data.get("current_installs")
        )
    except MetadataServiceError as e:
        return JsonResponse({"error": f"Metadata service failed: {e}"}, status=502)

    return JsonResponse({"options": [o.to_dict() for o in options]})


@csrf_exempt
def generate_metadata_view(request):
    """
    Metadata generation endpoint for external callers.

    ``POST {keywords, currentInstalls?}`` → ``{options: [{title, subtitle,
    keywords}]}``.  Answers CORS preflight requests with 204.
    """
    if request.method == "OPTIONS":
        response = HttpResponse(status=204)
    elif request.method != "POST":
        response = JsonResponse({"error": "Method not allowed."}, status=405)
    else:
        response = _generate_metadata(request)

    for header, value in CORS_HEADERS.items():
        response[header] = value
    return response


def _generate_metadata(request):
    try:
        body = json.loads(request.body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return JsonResponse({"error": "Invalid JSON."}, status=400)
    if not isinstance(body, dict):
        return JsonResponse({"error": "Invalid keywords in request body"}, status=400)

    form = MetadataRequestForm(body)
    if not form.is_valid():
        return JsonResponse({"error": _first_error(form)}, status=400)

    options = MetadataTemplateGenerator().generate(
        form.cleaned_data["keywords"], form.cleaned_data.get("current_installs")
    )
    return JsonResponse({"options": [o.to_dict() for o in options]})


# --------------------------------------------------------------------------- #
# Export
# --------------------------------------------------------------------------- #


@require_GET
def export_keywords_csv_view(request):
    """Export the current dataset with a 12-month projection as a CSV file."""
    dataset = _load_dataset(request)
    if dataset is None:
        return _no_dataset()

    aggregator = InsightAggregator()
    projector = RankProjector()

    response = HttpResponse(content_type="text/csv")
    response["Content-Disposition"] = 'attachment; filename="keyword-insights.csv"'

    writer = csv.writer(response)
    writer.writerow([
        "Keyword", "Volume", "Difficulty", "Current Rank", "Score",
        "Opportunity Score", "Rank Status", "Projected Rank (12 mo)",
        "Projected Installs (12 mo)",
    ])

    for record in dataset.keywords:
        point = projector.project(record, horizons=(12,)).points[0]
        writer.writerow([
            record.keyword,
            record.volume if record.volume is not None else "",
            record.difficulty if record.difficulty is not None else "",
            record.current_rank if record.current_rank is not None else "",
            round(aggregator.keyword_score(record), 2),
            aggregator.opportunity_score(record),
            aggregator.rank_status(record),
            round(point.projected_rank, 2),
            point.projected_installs,
        ])

    return response
