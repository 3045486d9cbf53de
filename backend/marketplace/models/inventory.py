from __future__ import annotations

from ..extensions import db
from marketplace.time_utils import to_utc_z

class StockMovement(db.Model):
    """
    Inventory ledger entry.

    APPEND-ONLY: rows are inserted by ledger_service and never updated or
    deleted (enforced by mapper events in ledger_service).

    Bulk uploads write exactly one movement per committed product:
    type="in", reason="bulk_upload", previous_stock=0, new_stock=current_stock.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_shop_created", "shop_id", "created_at"),
        db.Index("ix_stock_movements_shop_product_created", "shop_id", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # in, out, adjustment, return
    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    # purchase, sale, adjustment, restock, initial_stock, bulk_upload, ...
    reason = db.Column(db.String(32), nullable=False)

    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)

    notes = db.Column(db.String(255), nullable=True)
    performed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("stock_movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "product_id": self.product_id,
            "type": self.type,
            "quantity": self.quantity,
            "reason": self.reason,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "notes": self.notes,
            "performed_by_user_id": self.performed_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
