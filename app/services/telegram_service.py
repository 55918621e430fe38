from typing import Iterable, Optional

import httpx

from app.services.result import Result
from app.services.state_machine import Command, CommandKind, DraftProduct


class TelegramService:
    """Thin client for the Telegram Bot API. Failures come back as Result, never raised."""

    BASE_URL = "https://api.telegram.org/bot{token}"
    FILE_URL = "https://api.telegram.org/file/bot{token}/{path}"

    def __init__(self, bot_token: str, timeout_seconds: float = 15.0, message_prefix: str = ""):
        self.bot_token = bot_token
        self.base_url = self.BASE_URL.format(token=bot_token)
        self.timeout_seconds = timeout_seconds
        self.message_prefix = message_prefix

    def _make_request(self, method: str, data: Optional[dict] = None) -> dict:
        """Make request to Telegram API."""
        url = f"{self.base_url}/{method}"
        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.post(url, json=data or {})
                return response.json()
        except (httpx.HTTPError, ValueError) as e:
            return {"ok": False, "description": str(e)}

    @staticmethod
    def _to_result(response: dict, code: str = "telegram_error") -> Result[dict]:
        if response.get("ok"):
            return Result.success(response.get("result"))
        return Result.failure(response.get("description") or "Telegram request failed", code)

    def send_message(
        self,
        chat_id: int | str,
        text: str,
        reply_markup: Optional[dict] = None,
        parse_mode: Optional[str] = None,
    ) -> Result[dict]:
        """Send message to Telegram chat, optionally with an inline keyboard."""
        if self.message_prefix:
            text = f"{self.message_prefix} {text}"
        data = {
            "chat_id": chat_id,
            "text": text,
        }
        if reply_markup:
            data["reply_markup"] = reply_markup
        if parse_mode:
            data["parse_mode"] = parse_mode

        return self._to_result(self._make_request("sendMessage", data))

    def answer_callback_query(self, callback_query_id: str, text: Optional[str] = None) -> Result[dict]:
        """Stop the loading spinner on a pressed button."""
        data = {"callback_query_id": callback_query_id}
        if text:
            data["text"] = text
        return self._to_result(self._make_request("answerCallbackQuery", data))

    def get_file_url(self, file_id: str) -> Result[str]:
        """Resolve a file_id to a downloadable URL."""
        response = self._make_request("getFile", {"file_id": file_id})
        file_path = (response.get("result") or {}).get("file_path") if response.get("ok") else None
        if not file_path:
            return Result.failure(response.get("description") or f"File {file_id} not found", "file_not_found")
        return Result.success(self.FILE_URL.format(token=self.bot_token, path=file_path))

    def download_file(self, url: str) -> Result[bytes]:
        """Fetch file bytes from a URL returned by get_file_url."""
        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.get(url)
        except httpx.HTTPError as e:
            return Result.failure(str(e), "download_error")

        if response.status_code != 200:
            return Result.failure(f"Download failed with status {response.status_code}", "download_error")
        return Result.success(response.content)

    def set_webhook(self, url: str, secret_token: Optional[str] = None) -> Result[dict]:
        """Register the webhook URL, restricted to message and callback updates."""
        data = {"url": url, "allowed_updates": ["message", "callback_query"]}
        if secret_token:
            data["secret_token"] = secret_token
        return self._to_result(self._make_request("setWebhook", data))


def _button(text: str, command: Command) -> dict:
    return {"text": text, "callback_data": command.to_callback_data()}


def build_main_menu() -> dict:
    """Build inline keyboard for the main menu."""
    return {
        "inline_keyboard": [
            [_button("➕ Crear Producto", Command(CommandKind.CREATE))],
            [_button("📝 Editar Producto", Command(CommandKind.EDIT))],
            [_button("🚫 Desactivar", Command(CommandKind.DISABLE))],
            [_button("🗑️ Eliminar", Command(CommandKind.DELETE))],
        ]
    }


def build_description_buttons() -> dict:
    return {
        "inline_keyboard": [
            [_button("✅ Aprobar", Command(CommandKind.APPROVE_DESCRIPTION))],
            [_button("✏️ Editar descripción", Command(CommandKind.EDIT_DESCRIPTION))],
            [_button("🔄 Otra foto", Command(CommandKind.RETRY_DESCRIPTION))],
        ]
    }


def build_category_buttons(categories: Iterable) -> dict:
    """One button per category plus a trailing "new category" button."""
    rows = [[_button(category.name, Command(CommandKind.SELECT_CATEGORY, category.id))] for category in categories]
    rows.append([_button("🆕 Nueva categoría", Command(CommandKind.NEW_CATEGORY))])
    return {"inline_keyboard": rows}


def build_product_buttons(products: Iterable, action: CommandKind) -> dict:
    return {"inline_keyboard": [[_button(product.name, Command(action, product.id))] for product in products]}


def build_confirmation_buttons() -> dict:
    return {
        "inline_keyboard": [
            [
                _button("✅ Confirmar", Command(CommandKind.FINAL_CONFIRM)),
                _button("❌ Cancelar", Command(CommandKind.FINAL_CANCEL)),
            ]
        ]
    }


def format_product_summary(draft: DraftProduct) -> str:
    """Format the confirmation summary shown before saving a product."""
    return f"""📋 Resumen del producto

Nombre: {draft.name}
Precio: {draft.price}
Categoría: {draft.category_name}

Descripción:
{draft.ai_description or "(sin descripción)"}

¿Guardamos el producto?"""
