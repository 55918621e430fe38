#!/usr/bin/env python3
"""
Create the catalog tables and the operator conversation row.
Usage: python scripts/provision_owner.py <telegram_user_id>
"""

import sys

from app.database import Base, SessionLocal, engine
from app.models import Conversation  # noqa: F401  registers tables on Base
from app.services.conversation_store import create_conversation


def main():
    if len(sys.argv) < 2 or not sys.argv[1].strip().isdigit():
        print("Usage: python scripts/provision_owner.py <telegram_user_id>")
        sys.exit(1)

    owner_id = sys.argv[1].strip()

    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        conversation = create_conversation(db, owner_id)
        db.commit()
        print(f"Conversation {conversation.id} ready for owner {conversation.owner_identity}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
