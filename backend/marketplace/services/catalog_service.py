# Overview: Catalog store contract used by the bulk upload pipeline.

from __future__ import annotations

from ..extensions import db
from ..models import Product


def exists_by_sku(sku: str) -> bool:
    return db.session.query(Product.id).filter(Product.sku == sku).first() is not None


def exists_by_product_code(product_code: str) -> bool:
    return (
        db.session.query(Product.id).filter(Product.product_code == product_code).first()
        is not None
    )


def create_entry(*, shop_id: int, fields: dict, upload_id: int | None = None) -> Product:
    """
    Insert a catalog entry and flush so the id is assigned.

    No commit: callers own the transaction boundary. Unique-constraint
    violations surface as sqlalchemy IntegrityError from the flush.
    """
    product = Product(shop_id=shop_id, imported_from_upload_id=upload_id, **fields)
    db.session.add(product)
    db.session.flush()
    return product
