from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.logging_config import LoggerAdapter, get_logger
from app.schemas.telegram import TelegramUpdate
from app.services.auth_service import format_denial, is_authorized
from app.services.catalog_repository import append_log
from app.services.conversation_engine import ConversationEngine, InboundEvent
from app.services.conversation_store import (
    StaleConversationError,
    load_conversation,
    read_draft,
    read_state,
    save_conversation,
)
from app.services.dedup_service import claim_update
from app.services.description_service import DescriptionService
from app.services.media_store import MediaStore
from app.services.state_machine import parse_command
from app.services.telegram_service import TelegramService

logger = get_logger("update_dispatcher")

GENERIC_FAILURE_MESSAGE = "⚠️ Ocurrió un error inesperado procesando tu mensaje. Intenta de nuevo o usa /start."
STALE_TURN_MESSAGE = "⚠️ Otra operación modificó la conversación al mismo tiempo. Repite el último paso."


def extract_event(update: TelegramUpdate) -> Optional[InboundEvent]:
    """Reduce a Telegram update to an event. None when there is nobody to answer."""
    callback = update.callback_query
    if callback:
        chat_id = callback.message.chat.id if callback.message else callback.from_user.id
        return InboundEvent(
            update_id=update.update_id,
            actor_id=callback.from_user.id,
            chat_id=chat_id,
            callback_id=callback.id,
            command=parse_command(callback.data),
        )

    message = update.message
    if message and message.from_user:
        attachment = message.image_attachment()
        event = InboundEvent(
            update_id=update.update_id,
            actor_id=message.from_user.id,
            chat_id=message.chat.id,
            text=message.text,
        )
        if attachment:
            event.image_file_id, event.image_content_type = attachment
        return event

    return None


class UpdateDispatcher:
    """Runs one webhook turn end to end. Never raises."""

    def __init__(
        self,
        db: Session,
        telegram: TelegramService,
        media_store: MediaStore,
        describer: DescriptionService,
        fallback_owner_id: Optional[str] = None,
        recent_products_limit: int = 10,
        dedup_ttl_hours: int = 24,
    ):
        self.db = db
        self.telegram = telegram
        self.fallback_owner_id = fallback_owner_id
        self.dedup_ttl_hours = dedup_ttl_hours
        self.engine = ConversationEngine(
            db,
            telegram,
            media_store,
            describer,
            recent_products_limit=recent_products_limit,
        )

    def dispatch(self, payload: dict[str, Any]) -> str:
        """Process one raw update. Returns a short status for the webhook response."""
        try:
            update = TelegramUpdate.model_validate(payload)
        except ValidationError as e:
            logger.warning("Invalid Telegram update", extra={"context": {"error": str(e)}})
            self._record_failure(e, payload, chat_id=None)
            return "Invalid update"

        event = extract_event(update)
        if event is None:
            return "No actionable content"

        log = LoggerAdapter(logger, {"update_id": event.update_id, "actor_id": event.actor_id})

        notice = None
        try:
            status, notice = self._run_turn(event, log)
            return status
        except StaleConversationError as e:
            self.db.rollback()
            log.warning(str(e))
            self._notify(event.chat_id, STALE_TURN_MESSAGE)
            return "Stale conversation"
        except Exception as e:
            self.db.rollback()
            log.error(f"Turn failed: {e}", exc_info=True)
            self._record_failure(e, payload, chat_id=event.chat_id)
            return "Error handled"
        finally:
            if event.is_callback:
                self._acknowledge(event.callback_id, notice)

    def _run_turn(self, event: InboundEvent, log: LoggerAdapter) -> tuple[str, Optional[str]]:
        if not claim_update(self.db, event.update_id, self.dedup_ttl_hours):
            self.db.rollback()
            return "Duplicate update", None

        conversation = load_conversation(self.db)

        if not is_authorized(event.actor_id, conversation.owner_identity, self.fallback_owner_id):
            log.warning("Unauthorized access attempt")
            self.db.commit()
            self._notify(event.chat_id, format_denial(event.actor_id))
            return "Unauthorized", None

        state = read_state(conversation)
        draft = read_draft(conversation)

        result = self.engine.handle(state, draft, event)

        save_conversation(self.db, conversation, result.state, result.draft)
        self.db.commit()

        log.info("Turn processed", context={"state": result.state.value, "replies": len(result.replies)})
        self.engine.deliver(event.chat_id, result.replies)
        return "Processed", result.callback_notice

    def _acknowledge(self, callback_id: str, notice: Optional[str]) -> None:
        try:
            result = self.telegram.answer_callback_query(callback_id, notice)
        except Exception as e:
            logger.warning(f"Callback acknowledge failed: {e}")
            return
        if not result.ok:
            logger.warning("Callback acknowledge failed", extra={"context": {"error": result.error}})

    def _notify(self, chat_id: int, text: str) -> None:
        """Best-effort chat notice; failures are logged and swallowed."""
        try:
            result = self.telegram.send_message(chat_id, text)
        except Exception as e:
            logger.warning(f"Failed to notify chat {chat_id}: {e}")
            return
        if not result.ok:
            logger.warning("Failed to notify chat", extra={"context": {"chat_id": chat_id, "error": result.error}})

    def _record_failure(self, error: Exception, payload: Any, chat_id: Optional[int]) -> None:
        try:
            append_log(self.db, f"{type(error).__name__}: {error}", payload)
            self.db.commit()
        except Exception as log_error:
            self.db.rollback()
            logger.error(f"Failed to write diagnostic log: {log_error}", exc_info=True)

        if chat_id is not None:
            self._notify(chat_id, GENERIC_FAILURE_MESSAGE)
