from __future__ import annotations

from ..extensions import db
from marketplace.time_utils import to_utc_z

class Category(db.Model):
    """
    Top-level product category.

    Categories are platform-wide (not shop-owned). Only ACTIVE categories
    may be referenced by new catalog entries.
    """
    __tablename__ = "product_categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="active", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }

class SubCategory(db.Model):
    """Second taxonomy level; always belongs to exactly one category."""
    __tablename__ = "product_subcategories"
    __table_args__ = (
        db.Index("ix_subcategories_category", "category_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    category = db.relationship("Category", backref=db.backref("subcategories", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category_id": self.category_id,
            "name": self.name,
        }
