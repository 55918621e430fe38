from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models import ProcessedUpdate

logger = get_logger("dedup_service")


def claim_update(db: Session, update_id: int, ttl_hours: int = 24) -> bool:
    """Record an update id for this turn. False if it was already handled.

    The claim lives in the turn's transaction: a concurrent redelivery blocks on
    the primary key until the first turn commits (duplicate) or rolls back (retry).
    """
    now = datetime.now(timezone.utc)
    db.query(ProcessedUpdate).filter(ProcessedUpdate.created_at < now - timedelta(hours=ttl_hours)).delete(
        synchronize_session=False
    )

    try:
        with db.begin_nested():
            db.add(ProcessedUpdate(update_id=update_id, created_at=now))
    except IntegrityError:
        logger.info("Duplicate update", extra={"context": {"update_id": update_id}})
        return False
    return True
