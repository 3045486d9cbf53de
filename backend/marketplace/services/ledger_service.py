# Overview: Service-layer operations for the inventory ledger.

"""
Inventory Ledger Invariants (authoritative)

- Append-only: movements are inserted, never updated or deleted.
- quantity is always stored as a positive magnitude; type carries direction.
- Movements are written inside the same DB transaction as the stock change
  they record.
"""
from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..models import StockMovement

MOVEMENT_TYPES = ("in", "out", "adjustment", "return")
MOVEMENT_REASONS = (
    "purchase",
    "sale",
    "return_from_customer",
    "return_to_supplier",
    "damage",
    "theft",
    "adjustment",
    "restock",
    "initial_stock",
    "bulk_upload",
)


class LedgerImmutableError(RuntimeError):
    """Raised on any attempt to rewrite ledger history."""


@event.listens_for(StockMovement, "before_update")
def _reject_update(mapper, connection, target):
    raise LedgerImmutableError(f"Stock movement {target.id} is append-only")


@event.listens_for(StockMovement, "before_delete")
def _reject_delete(mapper, connection, target):
    raise LedgerImmutableError(f"Stock movement {target.id} is append-only")


def append_stock_movement(
    *,
    shop_id: int,
    product_id: int,
    type: str,
    quantity: int,
    reason: str,
    previous_stock: int,
    new_stock: int,
    performed_by_user_id: int | None = None,
    notes: str | None = None,
) -> StockMovement:
    """
    Append-only ledger write.

    - No domain logic here.
    - No deletes/updates of existing movements.
    """
    if type not in MOVEMENT_TYPES:
        raise ValueError(f"Unknown stock movement type: {type}")
    if reason not in MOVEMENT_REASONS:
        raise ValueError(f"Unknown stock movement reason: {reason}")

    movement = StockMovement(
        shop_id=shop_id,
        product_id=product_id,
        type=type,
        quantity=abs(int(quantity)),
        reason=reason,
        previous_stock=previous_stock,
        new_stock=new_stock,
        performed_by_user_id=performed_by_user_id,
        notes=notes,
    )
    db.session.add(movement)
    db.session.flush()  # ensures movement.id is assigned without committing
    return movement
