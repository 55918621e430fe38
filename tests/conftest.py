import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from itertools import count
from unittest.mock import Mock

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base
from app.services.conversation_store import create_conversation
from app.services.description_service import DescriptionService
from app.services.media_store import MediaStore
from app.services.result import Result
from app.services.telegram_service import TelegramService

OWNER_ID = 111222333
STRANGER_ID = 999888777
IMAGE_URL = "https://project.supabase.co/storage/v1/object/public/catalog-images/1718000000000.jpg"
AI_DESCRIPTION = "Taza de cerámica que revela un diseño al servir bebidas calientes."

test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# pysqlite needs manual BEGIN for SAVEPOINT support
@event.listens_for(test_engine, "connect")
def _disable_pysqlite_transactions(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(test_engine, "begin")
def _emit_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestSession = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture
def db_session():
    """Real session on an in-memory SQLite database."""
    Base.metadata.create_all(bind=test_engine)
    session = TestSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def conversation(db_session):
    """Provisioned operator conversation in IDLE."""
    record = create_conversation(db_session, str(OWNER_ID))
    db_session.commit()
    return record


@pytest.fixture
def telegram():
    service = Mock(spec=TelegramService)
    service.send_message.return_value = Result.success({"message_id": 1})
    service.answer_callback_query.return_value = Result.success(True)
    service.get_file_url.return_value = Result.success("https://api.telegram.org/file/botTOKEN/photos/file_1.jpg")
    service.download_file.return_value = Result.success(b"\xff\xd8\xff\xe0jpeg")
    return service


@pytest.fixture
def media_store():
    store = Mock(spec=MediaStore)
    store.bucket = "catalog-images"
    store.upload.return_value = Result.success(IMAGE_URL)
    return store


@pytest.fixture
def describer():
    service = Mock(spec=DescriptionService)
    service.describe.return_value = Result.success(AI_DESCRIPTION)
    return service


@pytest.fixture
def update_ids():
    return count(1000)


@pytest.fixture
def message_update(update_ids):
    """Factory for raw Telegram message updates."""

    def _make(text=None, photo=False, user_id=OWNER_ID, update_id=None):
        message = {
            "message_id": 10,
            "date": 1718000000,
            "chat": {"id": user_id, "type": "private"},
            "from": {"id": user_id, "is_bot": False, "first_name": "Dueño"},
        }
        if text is not None:
            message["text"] = text
        if photo:
            message["photo"] = [
                {"file_id": "small", "file_unique_id": "s", "width": 90, "height": 90},
                {"file_id": "large", "file_unique_id": "l", "width": 1280, "height": 1280},
            ]
        return {"update_id": update_id if update_id is not None else next(update_ids), "message": message}

    return _make


@pytest.fixture
def callback_update(update_ids):
    """Factory for raw Telegram callback_query updates."""

    def _make(data, user_id=OWNER_ID, update_id=None):
        return {
            "update_id": update_id if update_id is not None else next(update_ids),
            "callback_query": {
                "id": f"cb-{data}",
                "from": {"id": user_id, "is_bot": False, "first_name": "Dueño"},
                "message": {
                    "message_id": 11,
                    "date": 1718000000,
                    "chat": {"id": user_id, "type": "private"},
                },
                "data": data,
            },
        }

    return _make
