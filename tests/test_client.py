"""MetadataServiceClient with a mocked HTTP layer."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from insights.exceptions import MetadataServiceError
from insights.services import MetadataServiceClient


def mock_response(payload):
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


class TestMetadataServiceClient:
    """MetadataServiceClient.generate"""

    @patch("insights.services.requests.post")
    def test_posts_keywords(self, mock_post):
        mock_post.return_value = mock_response({
            "options": [
                {"title": "FitPal", "subtitle": "Track it", "keywords": ["fitness", "gym"]},
            ]
        })

        client = MetadataServiceClient("http://meta.local/", timeout=5)
        options = client.generate(["fitness", "gym"], current_installs=5000)

        mock_post.assert_called_once_with(
            "http://meta.local/api/generate-metadata/",
            json={"keywords": ["fitness", "gym"], "currentInstalls": 5000},
            timeout=5,
        )
        assert len(options) == 1
        assert options[0].title == "FitPal"
        assert options[0].keywords == ["fitness", "gym"]

    @patch("insights.services.requests.post")
    def test_installs_omitted_when_unknown(self, mock_post):
        mock_post.return_value = mock_response({"options": []})

        MetadataServiceClient("http://meta.local").generate(["yoga"])

        assert mock_post.call_args.kwargs["json"] == {"keywords": ["yoga"]}

    @patch("insights.services.requests.post")
    def test_comma_string_keywords_and_limits(self, mock_post):
        mock_post.return_value = mock_response({
            "options": [
                {
                    "title": "A title that is far longer than thirty characters",
                    "subtitle": "Short",
                    "keywords": "yoga, pilates, , stretch",
                },
            ]
        })

        option = MetadataServiceClient("http://meta.local").generate(["yoga"])[0]

        assert len(option.title) <= 30
        assert option.keywords == ["yoga", "pilates", "stretch"]

    @patch("insights.services.requests.post")
    def test_http_error(self, mock_post):
        response = mock_response({})
        response.raise_for_status.side_effect = requests.HTTPError("500 Server Error")
        mock_post.return_value = response

        with pytest.raises(MetadataServiceError):
            MetadataServiceClient("http://meta.local").generate(["yoga"])

    @patch("insights.services.requests.post")
    def test_connection_error(self, mock_post):
        mock_post.side_effect = requests.ConnectionError("refused")

        with pytest.raises(MetadataServiceError):
            MetadataServiceClient("http://meta.local").generate(["yoga"])

    @patch("insights.services.requests.post")
    def test_invalid_json(self, mock_post):
        response = mock_response(None)
        response.json.side_effect = ValueError("No JSON")
        mock_post.return_value = response

        with pytest.raises(MetadataServiceError):
            MetadataServiceClient("http://meta.local").generate(["yoga"])

    @patch("insights.services.requests.post")
    def test_missing_options(self, mock_post):
        mock_post.return_value = mock_response({"error": "nope"})

        with pytest.raises(MetadataServiceError):
            MetadataServiceClient("http://meta.local").generate(["yoga"])
