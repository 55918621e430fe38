from unittest.mock import MagicMock, Mock, patch

import httpx

from app.services.media_store import BUCKET_MISSING, UPLOAD_ERROR, MediaStore, build_image_key


def make_response(status_code, body=None, text=""):
    response = Mock()
    response.status_code = status_code
    response.text = text
    if body is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = body
    return response


def make_store():
    return MediaStore("https://project.supabase.co/", "service-key", "catalog-images")


class TestBuildImageKey:
    def test_jpeg(self):
        assert build_image_key("image/jpeg", now=1718000000.0) == "1718000000000.jpg"

    def test_png(self):
        assert build_image_key("image/png", now=1718000000.5) == "1718000000500.png"

    def test_unknown_type_defaults_to_jpg(self):
        assert build_image_key(None, now=1.0) == "1000.jpg"
        assert build_image_key("image/x-unknown", now=1.0) == "1000.jpg"


class TestPublicUrl:
    def test_public_url(self):
        assert (
            make_store().public_url("1.jpg")
            == "https://project.supabase.co/storage/v1/object/public/catalog-images/1.jpg"
        )


class TestUpload:
    @patch("app.services.media_store.httpx.Client")
    def test_success_returns_public_url(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.return_value = make_response(200, {"Key": "catalog-images/1.jpg"})

        result = make_store().upload(b"bytes", "1.jpg", "image/jpeg")

        assert result.ok is True
        assert result.value == "https://project.supabase.co/storage/v1/object/public/catalog-images/1.jpg"

        call_args = mock_client.post.call_args
        assert call_args[0][0] == "https://project.supabase.co/storage/v1/object/catalog-images/1.jpg"
        headers = call_args[1]["headers"]
        assert headers["Authorization"] == "Bearer service-key"
        assert headers["Content-Type"] == "image/jpeg"
        assert headers["x-upsert"] == "true"
        assert call_args[1]["content"] == b"bytes"

    @patch("app.services.media_store.httpx.Client")
    def test_bucket_not_found(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.return_value = make_response(
            404,
            {"statusCode": "404", "error": "Bucket not found", "message": "Bucket not found"},
            text='{"error":"Bucket not found"}',
        )

        result = make_store().upload(b"bytes", "1.jpg")

        assert result.ok is False
        assert result.error_code == BUCKET_MISSING
        assert "catalog-images" in result.error

    @patch("app.services.media_store.httpx.Client")
    def test_other_http_error(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.return_value = make_response(500, text="Internal Server Error")

        result = make_store().upload(b"bytes", "1.jpg")

        assert result.error_code == UPLOAD_ERROR
        assert "500" in result.error

    @patch("app.services.media_store.httpx.Client")
    def test_unauthorized_is_not_bucket_missing(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.return_value = make_response(400, {"error": "Invalid JWT"}, text="Invalid JWT")

        assert make_store().upload(b"bytes", "1.jpg").error_code == UPLOAD_ERROR

    @patch("app.services.media_store.httpx.Client")
    def test_network_error(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.side_effect = httpx.ConnectError("connection refused")

        result = make_store().upload(b"bytes", "1.jpg")

        assert result.error_code == UPLOAD_ERROR
        assert "connection refused" in result.error

    def test_not_configured(self):
        result = MediaStore("", "", "catalog-images").upload(b"bytes", "1.jpg")

        assert result.ok is False
        assert result.error_code == UPLOAD_ERROR
