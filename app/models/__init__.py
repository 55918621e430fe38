from app.models.category import Category
from app.models.conversation import Conversation
from app.models.diagnostic_log import DiagnosticLog
from app.models.processed_update import ProcessedUpdate
from app.models.product import Product

__all__ = [
    "Category",
    "Conversation",
    "DiagnosticLog",
    "ProcessedUpdate",
    "Product",
]
