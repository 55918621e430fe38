from sqlalchemy import Column, Integer, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.sql import func

from app.database import Base, JSONVariant


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True)
    owner_identity = Column(Text, nullable=False, unique=True)
    current_state = Column(Text, nullable=False, default="IDLE")
    draft = Column(JSONVariant, nullable=False, default=dict)
    version = Column(Integer, nullable=False, default=0)  # bumped on every saved turn
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
