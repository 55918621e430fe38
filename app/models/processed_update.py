from sqlalchemy import BigInteger, Column
from sqlalchemy.dialects.postgresql import TIMESTAMP

from app.database import Base


class ProcessedUpdate(Base):
    __tablename__ = "processed_updates"

    update_id = Column(BigInteger, primary_key=True, autoincrement=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)
