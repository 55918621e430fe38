from datetime import datetime, timezone

from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models import Conversation
from app.services.state_machine import BotState, DraftProduct, coerce_state

logger = get_logger("conversation_store")


class ConversationNotProvisionedError(Exception):
    def __init__(self):
        super().__init__("Conversation record is missing; run scripts/provision_owner.py")


class StaleConversationError(Exception):
    def __init__(self, conversation_id: int, expected_version: int):
        self.conversation_id = conversation_id
        self.expected_version = expected_version
        super().__init__(
            f"Conversation {conversation_id} changed since version {expected_version}; turn discarded"
        )


def load_conversation(db: Session) -> Conversation:
    """Load the single operator conversation."""
    conversation = db.query(Conversation).order_by(Conversation.id).first()
    if not conversation:
        raise ConversationNotProvisionedError()
    return conversation


def read_state(conversation: Conversation) -> BotState:
    return coerce_state(conversation.current_state)


def read_draft(conversation: Conversation) -> DraftProduct:
    """Stored draft, or an empty one if the blob does not validate."""
    draft = DraftProduct.from_stored(conversation.draft)
    if draft is None:
        logger.warning(
            "Discarding invalid stored draft",
            extra={"context": {"conversation_id": conversation.id, "draft": conversation.draft}},
        )
        return DraftProduct()
    return draft


def save_conversation(db: Session, conversation: Conversation, state: BotState, draft: DraftProduct) -> int:
    """Write state and draft if nobody else wrote since we read. Returns the new version."""
    expected_version = conversation.version or 0
    updated = (
        db.query(Conversation)
        .filter(Conversation.id == conversation.id, Conversation.version == expected_version)
        .update(
            {
                Conversation.current_state: state.value,
                Conversation.draft: draft.to_stored(),
                Conversation.version: expected_version + 1,
                Conversation.updated_at: datetime.now(timezone.utc),
            },
            synchronize_session=False,
        )
    )
    if updated == 0:
        raise StaleConversationError(conversation.id, expected_version)

    db.expire(conversation)
    return expected_version + 1


def create_conversation(db: Session, owner_identity: str) -> Conversation:
    """Provision the conversation row for an owner (idempotent)."""
    conversation = db.query(Conversation).filter(Conversation.owner_identity == owner_identity).first()
    if conversation:
        return conversation

    conversation = Conversation(
        owner_identity=owner_identity,
        current_state=BotState.IDLE.value,
        draft={},
        version=0,
    )
    db.add(conversation)
    db.flush()
    return conversation
