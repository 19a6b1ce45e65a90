from django.urls import path

from . import views

app_name = "insights"

urlpatterns = [
    path("upload/", views.upload_view, name="upload"),
    path("dataset/", views.dataset_view, name="dataset"),
    path("insights/", views.insights_view, name="insights"),
    path("keywords/<path:keyword>/", views.keyword_detail_view, name="keyword_detail"),
    path("projections/", views.projections_view, name="projections"),
    path("recommendations/", views.recommendations_view, name="recommendations"),
    path("metadata/suggest/", views.metadata_suggest_view, name="metadata_suggest"),
    path("api/generate-metadata/", views.generate_metadata_view, name="generate_metadata"),
    path("export/keywords.csv", views.export_keywords_csv_view, name="export_keywords_csv"),
]
