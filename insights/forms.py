from django import forms
from django.conf import settings

from .parsers import SCHEMA_FLEXIBLE, SCHEMA_STRICT

SCHEMA_CHOICES = [
    (SCHEMA_FLEXIBLE, "Flexible (any keyword export)"),
    (SCHEMA_STRICT, "Strict (fixed 20-column export)"),
]

ALLOWED_EXTENSIONS = (".csv", ".tsv", ".txt")


class CSVUploadForm(forms.Form):
    """Form for uploading a keyword export."""

    file = forms.FileField(
        label="Keyword CSV",
        help_text="Comma- or tab-separated export with a keyword column.",
    )
    schema = forms.ChoiceField(
        choices=SCHEMA_CHOICES,
        required=False,
        initial=SCHEMA_FLEXIBLE,
    )
    estimate_missing = forms.BooleanField(
        required=False,
        help_text="Fill absent rank, volume and difficulty with estimates.",
    )

    def clean_file(self):
        """Reject files with an unexpected extension or over the size cap."""
        upload = self.cleaned_data["file"]
        name = (upload.name or "").lower()
        if not name.endswith(ALLOWED_EXTENSIONS):
            raise forms.ValidationError("Please upload a CSV file.")

        max_size = getattr(settings, "INSIGHTS_MAX_UPLOAD_SIZE", 5 * 1024 * 1024)
        if upload.size > max_size:
            raise forms.ValidationError(
                f"File is too large (max {max_size // (1024 * 1024)} MB)."
            )
        return upload

    def clean_schema(self):
        return self.cleaned_data.get("schema") or SCHEMA_FLEXIBLE


class MetadataRequestForm(forms.Form):
    """Validates the body of a metadata generation request."""

    current_installs = forms.IntegerField(required=False, min_value=0)

    def __init__(self, data=None, *args, **kwargs):
        data = data or {}
        self.raw_keywords = data.get("keywords")
        super().__init__(
            {"current_installs": data.get("currentInstalls")}, *args, **kwargs
        )

    def clean(self):
        cleaned = super().clean()
        keywords = self.raw_keywords
        if not isinstance(keywords, list) or not keywords:
            raise forms.ValidationError("Invalid keywords in request body")
        if not all(isinstance(k, str) for k in keywords):
            raise forms.ValidationError("Invalid keywords in request body")
        keywords = [k.strip() for k in keywords if k.strip()]
        if not keywords:
            raise forms.ValidationError("Invalid keywords in request body")
        cleaned["keywords"] = list(dict.fromkeys(keywords))
        return cleaned
