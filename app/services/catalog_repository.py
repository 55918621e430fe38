from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models import Category, DiagnosticLog, Product
from app.services.state_machine import PRODUCT_REQUIRED_FIELDS, DraftProduct


class IncompleteDraftError(ValueError):
    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Draft is missing required fields: {', '.join(missing)}")


def list_recent_products(db: Session, limit: int = 10) -> list[Product]:
    """Newest products first."""
    return db.query(Product).order_by(Product.id.desc()).limit(limit).all()


def get_product(db: Session, product_id: int) -> Optional[Product]:
    return db.query(Product).filter(Product.id == product_id).first()


def count_products(db: Session) -> int:
    return db.query(Product).count()


def set_in_stock(db: Session, product_id: int, in_stock: bool) -> Optional[Product]:
    """Toggle availability. Returns the product, or None if it does not exist."""
    product = get_product(db, product_id)
    if not product:
        return None
    product.in_stock = in_stock
    db.flush()
    return product


def delete_product(db: Session, product_id: int) -> Optional[str]:
    """Delete a product row. Returns the deleted product's name, or None if not found."""
    product = get_product(db, product_id)
    if not product:
        return None
    name = product.name
    db.delete(product)
    db.flush()
    return name


def insert_product(db: Session, draft: DraftProduct) -> Product:
    """Persist a completed draft as an approved, in-stock product."""
    if not draft.is_complete():
        raise IncompleteDraftError(draft.missing_fields(PRODUCT_REQUIRED_FIELDS))

    product = Product(
        name=draft.name,
        price=draft.price,
        image_url=draft.image_url,
        category_id=draft.category_id,
        ai_description=draft.ai_description,
        approval_status="approved",
        in_stock=True,
    )
    db.add(product)
    db.flush()
    return product


def list_categories(db: Session) -> list[Category]:
    return db.query(Category).order_by(Category.display_order, Category.name).all()


def get_category(db: Session, category_id: int) -> Optional[Category]:
    return db.query(Category).filter(Category.id == category_id).first()


def find_category_by_name(db: Session, name: str) -> Optional[Category]:
    return db.query(Category).filter(func.lower(Category.name) == name.strip().lower()).first()


def insert_category(db: Session, name: str) -> Category:
    category = Category(name=name.strip())
    db.add(category)
    db.flush()
    return category


def append_log(db: Session, error: str, payload: Any) -> DiagnosticLog:
    """Append a diagnostic entry. The caller commits."""
    entry = DiagnosticLog(error=error, payload=payload)
    db.add(entry)
    db.flush()
    return entry
