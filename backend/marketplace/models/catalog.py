from __future__ import annotations

from ..extensions import db
from marketplace.time_utils import to_utc_z


def _money(value):
    return str(value) if value is not None else None

class Product(db.Model):
    """
    Catalog entry owned by a shop.

    UNIQUENESS:
    Both sku and product_code are unique across the WHOLE catalog, not per shop.
    The unique constraints are the authoritative duplicate signal; service-level
    pre-checks only exist to give merchants a readable message early.

    IMAGES:
    icon1 / icon2 / meta_image hold platform-hosted URLs; the matching
    *_public_id columns hold object-store keys so assets can be removed later.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.UniqueConstraint("product_code", name="uq_products_product_code"),
        db.Index("ix_products_shop_status", "shop_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    # Merchant-facing identifier ("productId" in spreadsheets)
    product_code = db.Column(db.String(64), nullable=False)
    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")

    category_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=False, index=True)
    subcategory_id = db.Column(db.Integer, db.ForeignKey("product_subcategories.id"), nullable=False, index=True)

    unit = db.Column(db.String(16), nullable=False)
    search_tags = db.Column(db.JSON, nullable=False, default=list)

    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    min_order_qty = db.Column(db.Integer, nullable=False, default=1)
    current_stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock_qty = db.Column(db.Integer, nullable=False, default=0)

    discount_type = db.Column(db.String(16), nullable=False, default="flat")
    discount_value = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_type = db.Column(db.String(16), nullable=False, default="inclusive")
    shipping_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    meta_title = db.Column(db.String(255), nullable=False, default="")
    meta_description = db.Column(db.Text, nullable=False, default="")

    status = db.Column(db.String(16), nullable=False, default="draft", index=True)

    icon1 = db.Column(db.String(1024), nullable=True)
    icon1_public_id = db.Column(db.String(512), nullable=True)
    icon2 = db.Column(db.JSON, nullable=False, default=list)
    icon2_public_ids = db.Column(db.JSON, nullable=False, default=list)
    meta_image = db.Column(db.String(1024), nullable=True)
    meta_image_public_id = db.Column(db.String(512), nullable=True)

    imported_from_upload_id = db.Column(db.Integer, db.ForeignKey("bulk_uploads.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    shop = db.relationship("Shop", backref=db.backref("products", lazy=True))
    category = db.relationship("Category")
    subcategory = db.relationship("SubCategory")

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} product_code={self.product_code!r} shop_id={self.shop_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "product_code": self.product_code,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category_id": self.category_id,
            "subcategory_id": self.subcategory_id,
            "unit": self.unit,
            "search_tags": list(self.search_tags or []),
            "unit_price": _money(self.unit_price),
            "min_order_qty": self.min_order_qty,
            "current_stock": self.current_stock,
            "min_stock_qty": self.min_stock_qty,
            "discount_type": self.discount_type,
            "discount_value": _money(self.discount_value),
            "tax_type": self.tax_type,
            "shipping_cost": _money(self.shipping_cost),
            "meta_title": self.meta_title,
            "meta_description": self.meta_description,
            "status": self.status,
            "icon1": self.icon1,
            "icon2": list(self.icon2 or []),
            "meta_image": self.meta_image,
            "imported_from_upload_id": self.imported_from_upload_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
