from decimal import Decimal

import pytest

from app.models import Conversation
from app.services.conversation_store import (
    ConversationNotProvisionedError,
    StaleConversationError,
    create_conversation,
    load_conversation,
    read_draft,
    read_state,
    save_conversation,
)
from app.services.state_machine import BotState, DraftProduct


class TestLoadConversation:
    def test_missing_row(self, db_session):
        with pytest.raises(ConversationNotProvisionedError):
            load_conversation(db_session)

    def test_loads_provisioned_row(self, db_session, conversation):
        record = load_conversation(db_session)

        assert record.owner_identity == "111222333"
        assert read_state(record) == BotState.IDLE
        assert read_draft(record).is_empty()

    def test_create_is_idempotent(self, db_session, conversation):
        again = create_conversation(db_session, "111222333")

        assert again.id == conversation.id
        assert db_session.query(Conversation).count() == 1


class TestReadDraft:
    def test_invalid_blob_becomes_empty(self, db_session, conversation):
        conversation.draft = {"price": "gratis"}
        db_session.commit()

        assert read_draft(load_conversation(db_session)) == DraftProduct()

    def test_price_is_decimal(self, db_session, conversation):
        conversation.draft = {"name": "Taza", "price": "25.50"}
        db_session.commit()

        assert read_draft(load_conversation(db_session)).price == Decimal("25.50")


class TestSaveConversation:
    def test_save_bumps_version(self, db_session, conversation):
        draft = DraftProduct(image_url="https://cdn/1.jpg", ai_description="Bonita")

        new_version = save_conversation(db_session, conversation, BotState.AWAITING_APPROVAL, draft)
        db_session.commit()

        assert new_version == 1
        record = load_conversation(db_session)
        assert record.version == 1
        assert record.current_state == "AWAITING_APPROVAL"
        assert record.draft == {"image_url": "https://cdn/1.jpg", "ai_description": "Bonita"}

    def test_concurrent_write_is_rejected(self, db_session, conversation):
        assert conversation.version == 0

        # Another turn committed after this one loaded the row
        db_session.query(Conversation).filter(Conversation.id == conversation.id).update(
            {Conversation.version: 5}, synchronize_session=False
        )

        with pytest.raises(StaleConversationError) as exc_info:
            save_conversation(db_session, conversation, BotState.IDLE, DraftProduct())

        assert exc_info.value.expected_version == 0
