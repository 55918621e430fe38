import os

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.logging_config import setup_logging
from app.models import Category, Conversation, DiagnosticLog, Product
from app.routers import telegram_webhook

setup_logging(settings.log_level)

app = FastAPI(
    title="Catalog Bot API",
    description="Telegram admin console for the gift catalog",
    version="0.1.0",
)

cors_env = os.environ.get("CORS_ALLOW_ORIGINS", "*")
cors_origins = [origin.strip() for origin in cors_env.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(telegram_webhook.router)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/db-check")
def db_check(db: Session = Depends(get_db)):
    conversation = db.query(Conversation).order_by(Conversation.id).first()
    return {
        "status": "ok",
        "products": db.query(Product).count(),
        "categories": db.query(Category).count(),
        "diagnostic_logs": db.query(DiagnosticLog).count(),
        "conversation_state": conversation.current_state if conversation else None,
    }
