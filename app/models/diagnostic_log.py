from sqlalchemy import Column, Integer, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.sql import func

from app.database import Base, JSONVariant


class DiagnosticLog(Base):
    __tablename__ = "diagnostic_logs"

    id = Column(Integer, primary_key=True)
    error = Column(Text, nullable=False)
    payload = Column(JSONVariant)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
