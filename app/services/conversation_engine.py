"""Catalog creation and maintenance dialogue.

One call to ``ConversationEngine.handle`` is one turn: it takes the stored
state and draft plus the inbound event, performs the side effects of the
transition in order (photo upload, description, catalog writes) and returns
the state and draft to persist together with the replies for the chat.
Replies are held back until the dispatcher has committed the turn, so a turn
that is discarded never reports a write that did not happen. The only message
sent during the turn is the progress notice before the description call.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.services import catalog_repository
from app.services.description_service import DescriptionService
from app.services.media_store import BUCKET_MISSING, MediaStore, build_image_key
from app.services.state_machine import (
    BUTTON_STATES,
    PRODUCT_LIST_COMMANDS,
    BotState,
    Command,
    CommandKind,
    DraftProduct,
    parse_price,
    transition,
)
from app.services.telegram_service import (
    TelegramService,
    build_category_buttons,
    build_confirmation_buttons,
    build_description_buttons,
    build_main_menu,
    build_product_buttons,
    format_product_summary,
)

logger = get_logger("conversation_engine")

STALE_BUTTON_NOTICE = "Esta opción ya no está disponible."
PHOTO_PROMPT = "Envía una foto para crear un producto o usa el menú /start."
USE_BUTTONS_PROMPT = "Por favor selecciona una opción de los botones de arriba."
NAME_PROMPT = "¿Cuál es el nombre de este regalo?"

ACTION_VERBS = {
    CommandKind.ACT_EDIT: "editar",
    CommandKind.ACT_DISABLE: "desactivar",
    CommandKind.ACT_DELETE: "eliminar",
}


@dataclass
class InboundEvent:
    """One inbound update, reduced to what the dialogue needs."""

    update_id: int
    actor_id: int
    chat_id: int
    text: Optional[str] = None
    image_file_id: Optional[str] = None
    image_content_type: str = "image/jpeg"
    callback_id: Optional[str] = None
    command: Optional[Command] = None

    @property
    def is_callback(self) -> bool:
        return self.callback_id is not None

    @property
    def slash_command(self) -> Optional[str]:
        """Normalize "/start@my_bot extra" to "/start"."""
        if not self.text or not self.text.startswith("/"):
            return None
        return self.text.split()[0].split("@")[0].lower()


@dataclass
class TurnResult:
    state: BotState
    draft: DraftProduct
    callback_notice: Optional[str] = None
    replies: list[tuple[str, Optional[dict]]] = field(default_factory=list)


class ConversationEngine:
    def __init__(
        self,
        db: Session,
        telegram: TelegramService,
        media_store: MediaStore,
        describer: DescriptionService,
        recent_products_limit: int = 10,
    ):
        self.db = db
        self.telegram = telegram
        self.media_store = media_store
        self.describer = describer
        self.recent_products_limit = recent_products_limit
        self._outbox: list[tuple[str, Optional[dict]]] = []

        self._command_handlers: dict[tuple[BotState, CommandKind], Callable] = {
            (BotState.AWAITING_APPROVAL, CommandKind.APPROVE_DESCRIPTION): self._approve_description,
            (BotState.AWAITING_APPROVAL, CommandKind.EDIT_DESCRIPTION): self._request_manual_description,
            (BotState.AWAITING_APPROVAL, CommandKind.RETRY_DESCRIPTION): self._retry_description,
            (BotState.SELECTING_CATEGORY, CommandKind.SELECT_CATEGORY): self._select_category,
            (BotState.SELECTING_CATEGORY, CommandKind.NEW_CATEGORY): self._request_new_category,
            (BotState.AWAITING_FINAL_CONFIRMATION, CommandKind.FINAL_CONFIRM): self._confirm_product,
            (BotState.AWAITING_FINAL_CONFIRMATION, CommandKind.FINAL_CANCEL): self._cancel_product,
            (BotState.SELECTING_PRODUCT_EDIT, CommandKind.ACT_EDIT): self._edit_product,
            (BotState.SELECTING_PRODUCT_DISABLE, CommandKind.ACT_DISABLE): self._disable_product,
            (BotState.SELECTING_PRODUCT_DELETE, CommandKind.ACT_DELETE): self._delete_product,
        }
        self._message_handlers: dict[BotState, Callable] = {
            BotState.IDLE: self._on_idle_message,
            BotState.AWAITING_MANUAL_EDIT: self._on_manual_description,
            BotState.AWAITING_NAME: self._on_name,
            BotState.AWAITING_PRICE: self._on_price,
            BotState.AWAITING_NEW_CATEGORY_NAME: self._on_new_category_name,
        }

    def handle(self, state: BotState, draft: DraftProduct, event: InboundEvent) -> TurnResult:
        self._outbox = []
        try:
            result = self._dispatch(state, draft, event)
        finally:
            replies, self._outbox = self._outbox, []
        result.replies = replies
        transition(state, result.state)
        if result.state != state:
            logger.info(
                "Conversation transition",
                extra={"context": {"from": state.value, "to": result.state.value, "update_id": event.update_id}},
            )
        return result

    def _dispatch(self, state: BotState, draft: DraftProduct, event: InboundEvent) -> TurnResult:
        slash_command = event.slash_command
        if slash_command == "/start":
            self._reply("¡Hola Dueño! ¿Qué acción deseas realizar hoy?", build_main_menu())
            return TurnResult(BotState.IDLE, DraftProduct())
        if slash_command == "/status":
            return self._report_status(state, draft, event)

        command = event.command
        if command and command.kind == CommandKind.CREATE:
            self._reply("Iniciando creación. 📸 Por favor, envía la foto del regalito.")
            return TurnResult(BotState.IDLE, DraftProduct())
        if command and command.kind in PRODUCT_LIST_COMMANDS:
            return self._list_products(state, draft, event, command.kind)

        missing = draft.missing_for_state(state)
        if missing:
            logger.warning(
                "Stored draft does not match state, resetting",
                extra={"context": {"state": state.value, "missing": missing}},
            )
            self._reply("⚠️ El borrador guardado estaba incompleto. Empecemos de nuevo: envía una foto.")
            return TurnResult(BotState.IDLE, DraftProduct())

        if event.is_callback:
            handler = self._command_handlers.get((state, command.kind)) if command else None
            if not handler:
                # Stale or replayed button: acknowledge only.
                return TurnResult(state, draft, callback_notice=STALE_BUTTON_NOTICE)
            return handler(state, draft, event)

        handler = self._message_handlers.get(state)
        if handler:
            return handler(state, draft, event)
        if state in BUTTON_STATES:
            self._reply(USE_BUTTONS_PROMPT)
        return TurnResult(state, draft)

    # --- global commands ---

    def _report_status(self, state: BotState, draft: DraftProduct, event: InboundEvent) -> TurnResult:
        count = catalog_repository.count_products(self.db)
        self._reply(f"✅ Estado Operativo. Productos: {count}.")
        return TurnResult(state, draft)

    def _list_products(
        self, state: BotState, draft: DraftProduct, event: InboundEvent, kind: CommandKind
    ) -> TurnResult:
        target_state, action = PRODUCT_LIST_COMMANDS[kind]
        products = catalog_repository.list_recent_products(self.db, self.recent_products_limit)
        if not products:
            self._reply("No se encontraron productos.")
            return TurnResult(BotState.IDLE, draft)

        self._reply(
            f"Selecciona el producto a {ACTION_VERBS[action]}:",
            build_product_buttons(products, action),
        )
        return TurnResult(target_state, draft)

    # --- creation flow ---

    def _on_idle_message(self, state: BotState, draft: DraftProduct, event: InboundEvent) -> TurnResult:
        if event.image_file_id:
            return self._ingest_image(event)
        self._reply(PHOTO_PROMPT)
        return TurnResult(state, draft)

    def _ingest_image(self, event: InboundEvent) -> TurnResult:
        idle = TurnResult(BotState.IDLE, DraftProduct())

        file_url = self.telegram.get_file_url(event.image_file_id)
        if not file_url.ok:
            self._reply("No pude obtener la foto desde Telegram. Intenta enviarla de nuevo.")
            return idle

        image = self.telegram.download_file(file_url.value)
        if not image.ok:
            self._reply("No pude descargar la foto. Intenta enviarla de nuevo.")
            return idle

        self._progress(event.chat_id, "📸 ¡Foto recibida! Generando descripción...")

        key = build_image_key(event.image_content_type)
        upload = self.media_store.upload(image.value, key, event.image_content_type)
        if upload.failed_with(BUCKET_MISSING):
            logger.error(
                "Storage bucket missing",
                extra={"context": {"bucket": self.media_store.bucket, "error": upload.error}},
            )
            self._reply(
                f"⚠️ Error de configuración: el bucket '{self.media_store.bucket}' no existe en el almacenamiento. "
                f"Créalo y vuelve a intentarlo. Detalle: {upload.error}",
            )
            return idle
        if not upload.ok:
            logger.warning("Image upload failed", extra={"context": {"error": upload.error, "key": key}})
            self._reply(f"Error subiendo imagen: {upload.error}. Envía la foto de nuevo.")
            return idle

        description = self.describer.describe(image.value, event.image_content_type)
        if not description.ok:
            logger.warning("Description generation failed", extra={"context": {"error": description.error}})
            self._reply("No pude generar la descripción con IA. Envía la foto de nuevo en unos minutos.")
            return idle

        draft = DraftProduct(image_url=upload.value, ai_description=description.value)
        self._reply(f"✨ Descripción sugerida:\n\n{description.value}", build_description_buttons())
        return TurnResult(BotState.AWAITING_APPROVAL, draft)

    def _approve_description(self, state: BotState, draft: DraftProduct, event: InboundEvent) -> TurnResult:
        self._reply(f"👍 Descripción aprobada. {NAME_PROMPT}")
        return TurnResult(BotState.AWAITING_NAME, draft)

    def _request_manual_description(self, state: BotState, draft: DraftProduct, event: InboundEvent) -> TurnResult:
        self._reply("✏️ Escribe la descripción que prefieras:")
        return TurnResult(BotState.AWAITING_MANUAL_EDIT, draft)

    def _retry_description(self, state: BotState, draft: DraftProduct, event: InboundEvent) -> TurnResult:
        self._reply("🔄 De acuerdo. Envía otra foto del producto.")
        return TurnResult(BotState.IDLE, DraftProduct())

    def _on_manual_description(self, state: BotState, draft: DraftProduct, event: InboundEvent) -> TurnResult:
        text = _clean_text(event.text)
        if not text:
            self._reply("Escribe la descripción como texto.")
            return TurnResult(state, draft)
        self._reply(f"Descripción actualizada. {NAME_PROMPT}")
        return TurnResult(BotState.AWAITING_NAME, draft.model_copy(update={"ai_description": text}))

    def _on_name(self, state: BotState, draft: DraftProduct, event: InboundEvent) -> TurnResult:
        name = _clean_text(event.text)
        if not name:
            self._reply("Escribe el nombre del producto como texto.")
            return TurnResult(state, draft)
        self._reply(f"Nombre: {name}. Ahora, ¿cuál es el precio?")
        return TurnResult(BotState.AWAITING_PRICE, draft.model_copy(update={"name": name}))

    def _on_price(self, state: BotState, draft: DraftProduct, event: InboundEvent) -> TurnResult:
        price = parse_price(event.text)
        if price is None:
            self._reply("Por favor envía un número válido (ej. 25.50).")
            return TurnResult(state, draft)

        categories = catalog_repository.list_categories(self.db)
        self._reply(f"Precio: {price}. Elige la categoría:", build_category_buttons(categories))
        return TurnResult(BotState.SELECTING_CATEGORY, draft.model_copy(update={"price": price}))

    def _select_category(self, state: BotState, draft: DraftProduct, event: InboundEvent) -> TurnResult:
        category = catalog_repository.get_category(self.db, event.command.argument)
        if not category:
            categories = catalog_repository.list_categories(self.db)
            self._reply("Esa categoría ya no existe. Elige otra:", build_category_buttons(categories))
            return TurnResult(state, draft)
        return self._show_summary(event, _with_category(draft, category))

    def _request_new_category(self, state: BotState, draft: DraftProduct, event: InboundEvent) -> TurnResult:
        self._reply("Escribe el nombre de la nueva categoría:")
        return TurnResult(BotState.AWAITING_NEW_CATEGORY_NAME, draft)

    def _on_new_category_name(self, state: BotState, draft: DraftProduct, event: InboundEvent) -> TurnResult:
        name = _clean_text(event.text)
        if not name:
            self._reply("Escribe el nombre de la categoría como texto.")
            return TurnResult(state, draft)

        category = catalog_repository.find_category_by_name(self.db, name)
        if not category:
            try:
                with self.db.begin_nested():
                    category = catalog_repository.insert_category(self.db, name)
            except SQLAlchemyError as e:
                logger.error("Category creation failed", extra={"context": {"name": name, "error": str(e)}})
                self._reply(f"No pude crear la categoría: {e}. Intenta con otro nombre.")
                return TurnResult(state, draft)

        return self._show_summary(event, _with_category(draft, category))

    def _show_summary(self, event: InboundEvent, draft: DraftProduct) -> TurnResult:
        self._reply(format_product_summary(draft), build_confirmation_buttons())
        return TurnResult(BotState.AWAITING_FINAL_CONFIRMATION, draft)

    def _confirm_product(self, state: BotState, draft: DraftProduct, event: InboundEvent) -> TurnResult:
        idle = TurnResult(BotState.IDLE, DraftProduct())
        if not draft.is_complete():
            self._reply("⚠️ Faltan datos del producto. Empecemos de nuevo: envía una foto.")
            return idle

        try:
            with self.db.begin_nested():
                product = catalog_repository.insert_product(self.db, draft)
        except SQLAlchemyError as e:
            logger.error("Product insert failed", extra={"context": {"name": draft.name, "error": str(e)}})
            self._reply(f"Error DB: {e}")
            return idle

        logger.info("Product created", extra={"context": {"product_id": product.id, "name": product.name}})
        self._reply(f"✅ Producto '{product.name}' guardado con éxito.")
        return idle

    def _cancel_product(self, state: BotState, draft: DraftProduct, event: InboundEvent) -> TurnResult:
        self._reply("❌ Creación cancelada. Usa /start para volver al menú.")
        return TurnResult(BotState.IDLE, DraftProduct())

    # --- catalog maintenance ---

    def _edit_product(self, state: BotState, draft: DraftProduct, event: InboundEvent) -> TurnResult:
        self._reply("🛠️ La edición de productos aún no está disponible.")
        return TurnResult(BotState.IDLE, draft)

    def _disable_product(self, state: BotState, draft: DraftProduct, event: InboundEvent) -> TurnResult:
        product = catalog_repository.set_in_stock(self.db, event.command.argument, False)
        if not product:
            self._reply("Producto no encontrado.")
        else:
            self._reply(f"✅ Producto {product.name} desactivado.")
        return TurnResult(BotState.IDLE, draft)

    def _delete_product(self, state: BotState, draft: DraftProduct, event: InboundEvent) -> TurnResult:
        name = catalog_repository.delete_product(self.db, event.command.argument)
        if name is None:
            self._reply("Producto no encontrado.")
        else:
            self._reply(f"🗑️ Producto {name} eliminado.")
        return TurnResult(BotState.IDLE, draft)

    def deliver(self, chat_id: int, replies: list[tuple[str, Optional[dict]]]) -> None:
        """Send the replies of a committed turn, in order."""
        for text, reply_markup in replies:
            self._send(chat_id, text, reply_markup)

    def _reply(self, text: str, reply_markup: Optional[dict] = None) -> None:
        self._outbox.append((text, reply_markup))

    def _progress(self, chat_id: int, text: str) -> None:
        self._send(chat_id, text)

    def _send(self, chat_id: int, text: str, reply_markup: Optional[dict] = None) -> None:
        result = self.telegram.send_message(chat_id, text, reply_markup)
        if not result.ok:
            logger.warning("Telegram send failed", extra={"context": {"chat_id": chat_id, "error": result.error}})


def _clean_text(text: Optional[str]) -> str:
    return (text or "").strip()


def _with_category(draft: DraftProduct, category) -> DraftProduct:
    return draft.model_copy(update={"category_id": category.id, "category_name": category.name})
