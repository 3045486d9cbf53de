# Overview: Read-only lookups against the category/subcategory taxonomy.

from __future__ import annotations

from ..extensions import db
from ..models import Category, SubCategory

CATEGORY_ACTIVE = "active"


def find_active_category(category_id: int) -> Category | None:
    return (
        db.session.query(Category)
        .filter_by(id=category_id, status=CATEGORY_ACTIVE)
        .first()
    )


def find_sub_category(subcategory_id: int, parent_id: int) -> SubCategory | None:
    """Subcategory must belong to exactly this parent; no cross-category fallback."""
    return (
        db.session.query(SubCategory)
        .filter_by(id=subcategory_id, category_id=parent_id)
        .first()
    )


def list_active_taxonomy() -> list[dict]:
    categories = (
        db.session.query(Category)
        .filter_by(status=CATEGORY_ACTIVE)
        .order_by(Category.name.asc(), Category.id.asc())
        .all()
    )
    return [
        {
            "category_id": category.id,
            "category_name": category.name,
            "subcategories": [
                {"subcategory_id": sub.id, "subcategory_name": sub.name}
                for sub in sorted(category.subcategories, key=lambda s: (s.name, s.id))
            ],
        }
        for category in categories
    ]
