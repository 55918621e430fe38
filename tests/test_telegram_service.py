from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, Mock, patch

import httpx

from app.services.state_machine import CommandKind, DraftProduct
from app.services.telegram_service import (
    TelegramService,
    build_category_buttons,
    build_main_menu,
    build_product_buttons,
    format_product_summary,
)


def json_response(body, status_code=200):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = body
    return response


class TestSendMessage:
    @patch("app.services.telegram_service.httpx.Client")
    def test_sends_text_and_keyboard(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.return_value = json_response({"ok": True, "result": {"message_id": 5}})

        result = TelegramService("TOKEN").send_message(42, "Hola", build_main_menu())

        assert result.ok is True
        assert result.value == {"message_id": 5}
        call_args = mock_client.post.call_args
        assert call_args[0][0] == "https://api.telegram.org/botTOKEN/sendMessage"
        assert call_args[1]["json"]["chat_id"] == 42
        assert call_args[1]["json"]["reply_markup"] == build_main_menu()

    @patch("app.services.telegram_service.httpx.Client")
    def test_message_prefix(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.return_value = json_response({"ok": True, "result": {}})

        TelegramService("TOKEN", message_prefix="[Catálogo]").send_message(42, "Hola")

        assert mock_client.post.call_args[1]["json"]["text"] == "[Catálogo] Hola"

    @patch("app.services.telegram_service.httpx.Client")
    def test_api_error(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.return_value = json_response({"ok": False, "description": "Bad Request: chat not found"}, 400)

        result = TelegramService("TOKEN").send_message(42, "Hola")

        assert result.ok is False
        assert result.error == "Bad Request: chat not found"

    @patch("app.services.telegram_service.httpx.Client")
    def test_network_error(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.side_effect = httpx.ReadTimeout("timed out")

        result = TelegramService("TOKEN").send_message(42, "Hola")

        assert result.ok is False
        assert "timed out" in result.error


class TestFiles:
    @patch("app.services.telegram_service.httpx.Client")
    def test_get_file_url(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.return_value = json_response({"ok": True, "result": {"file_path": "photos/file_1.jpg"}})

        result = TelegramService("TOKEN").get_file_url("abc")

        assert result.value == "https://api.telegram.org/file/botTOKEN/photos/file_1.jpg"
        assert mock_client.post.call_args[1]["json"] == {"file_id": "abc"}

    @patch("app.services.telegram_service.httpx.Client")
    def test_get_file_url_not_found(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.return_value = json_response({"ok": False, "description": "Bad Request: invalid file_id"})

        result = TelegramService("TOKEN").get_file_url("abc")

        assert result.error_code == "file_not_found"

    @patch("app.services.telegram_service.httpx.Client")
    def test_download_file(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        response = Mock(status_code=200, content=b"\xff\xd8")
        mock_client.get.return_value = response

        result = TelegramService("TOKEN").download_file("https://api.telegram.org/file/botTOKEN/p.jpg")

        assert result.value == b"\xff\xd8"

    @patch("app.services.telegram_service.httpx.Client")
    def test_download_file_error(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.get.return_value = Mock(status_code=404, content=b"")

        result = TelegramService("TOKEN").download_file("https://api.telegram.org/file/botTOKEN/p.jpg")

        assert result.error_code == "download_error"


class TestWebhookSetup:
    @patch("app.services.telegram_service.httpx.Client")
    def test_set_webhook_with_secret(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.return_value = json_response({"ok": True, "result": True})

        result = TelegramService("TOKEN").set_webhook("https://bot.example.com/telegram-webhook", "s3cret")

        assert result.ok is True
        payload = mock_client.post.call_args[1]["json"]
        assert payload["secret_token"] == "s3cret"
        assert payload["allowed_updates"] == ["message", "callback_query"]


class TestKeyboards:
    def test_main_menu_callbacks(self):
        callbacks = [row[0]["callback_data"] for row in build_main_menu()["inline_keyboard"]]
        assert callbacks == ["cmd_create", "cmd_edit", "cmd_disable", "cmd_delete"]

    def test_category_buttons(self):
        categories = [SimpleNamespace(id=1, name="Tazas"), SimpleNamespace(id=2, name="Peluches")]

        rows = build_category_buttons(categories)["inline_keyboard"]

        assert [row[0]["callback_data"] for row in rows] == ["cat_select_1", "cat_select_2", "cat_new"]

    def test_category_buttons_without_categories(self):
        rows = build_category_buttons([])["inline_keyboard"]
        assert [row[0]["callback_data"] for row in rows] == ["cat_new"]

    def test_product_buttons(self):
        products = [SimpleNamespace(id=9, name="Vela")]

        rows = build_product_buttons(products, CommandKind.ACT_DELETE)["inline_keyboard"]

        assert rows == [[{"text": "Vela", "callback_data": "act_delete_9"}]]

    def test_summary(self):
        draft = DraftProduct(name="Taza", price=Decimal("25.50"), category_name="Tazas", ai_description="Bonita")

        summary = format_product_summary(draft)

        assert "Nombre: Taza" in summary
        assert "Precio: 25.50" in summary
        assert "Categoría: Tazas" in summary
        assert "Bonita" in summary
