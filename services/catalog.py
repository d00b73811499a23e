"""Read-only lookups against the product catalog."""
from typing import Iterable

from sqlalchemy.orm import Session

from models.product import Product


def get_product(db: Session, product_id: int) -> Product | None:
    return db.get(Product, product_id)


def get_products(db: Session, product_ids: Iterable[int]) -> dict[int, Product]:
    ids = set(product_ids)
    if not ids:
        return {}
    return {p.id: p for p in db.query(Product).filter(Product.id.in_(ids)).all()}
