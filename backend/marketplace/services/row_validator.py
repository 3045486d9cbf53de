# Overview: Row-level validation and normalization for bulk catalog uploads.

"""
Row Validator

Every check reports independently so a merchant sees all problems with a
row in one pass. Checks that depend on a missing or malformed field are
skipped for that field only.

Order:
1. Required fields (plus max lengths)
2. Enumerations (unit, discountType, taxType, status)
3. Numeric parseability (thousands separators allowed)
4. Discount consistency
5. Image URL syntax
6. Taxonomy references
7. Catalog-wide uniqueness of sku / productId

In-batch uniqueness (BatchKeys) runs in the orchestrator BEFORE this module
so the database is not queried for rows that duplicate an earlier row.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from flask import current_app

from ..validation import (
    MAX_MONEY,
    ValidationError,
    is_valid_http_url,
    is_whole_number,
    parse_number,
    split_list_cell,
)
from . import catalog_service, taxonomy_service
from .workbook_service import (
    REQUIRED_COLUMNS,
    VALID_DISCOUNT_TYPES,
    VALID_STATUSES,
    VALID_TAX_TYPES,
    VALID_UNITS,
)

HEADER_ROW_OFFSET = 2
MAX_SECONDARY_IMAGES = 5

MAX_LENGTHS = {
    "productId": 64,
    "sku": 64,
    "productName": 255,
    "metaTitle": 255,
}

ENUM_FIELDS = (
    ("unit", VALID_UNITS),
    ("discountType", VALID_DISCOUNT_TYPES),
    ("taxType", VALID_TAX_TYPES),
    ("status", VALID_STATUSES),
)

MONEY_FIELDS = ("unitPrice", "discountValue", "shippingCost")
QUANTITY_FIELDS = ("minOrderQty", "currentStock", "minStockQty")
NUMERIC_FIELDS = ("unitPrice", "minOrderQty", "currentStock", "minStockQty", "discountValue", "shippingCost")


def spreadsheet_row_number(index: int) -> int:
    """0-based data row index -> 1-based sheet row, counting the header."""
    return index + HEADER_ROW_OFFSET


def _value(row: dict, key: str) -> str:
    return (row.get(key) or "").strip()


@dataclass
class RowError:
    row: int
    field: str
    message: str
    data: dict

    def to_dict(self) -> dict:
        return {"row": self.row, "field": self.field, "message": self.message, "data": self.data}


@dataclass
class ImageSources:
    icon1: str | None = None
    icon2: list[str] = field(default_factory=list)
    meta_image: str | None = None

    def is_empty(self) -> bool:
        return not (self.icon1 or self.icon2 or self.meta_image)


@dataclass
class RowValidation:
    valid: bool
    normalized: dict | None = None
    images: ImageSources | None = None
    errors: list[RowError] = field(default_factory=list)


class BatchKeys:
    """SKUs and productIds already claimed by earlier rows of the same upload."""

    def __init__(self):
        self.skus: set[str] = set()
        self.product_codes: set[str] = set()

    def find_duplicates(self, row: dict, index: int) -> list[RowError]:
        row_number = spreadsheet_row_number(index)
        snapshot = dict(row)
        errors = []
        sku = _value(row, "sku")
        product_code = _value(row, "productId")
        if sku and sku in self.skus:
            errors.append(RowError(
                row_number, "sku",
                f"Duplicate SKU '{sku}' found in this upload (duplicate within this upload)",
                snapshot,
            ))
        if product_code and product_code in self.product_codes:
            errors.append(RowError(
                row_number, "productId",
                f"Duplicate Product ID '{product_code}' found in this upload (duplicate within this upload)",
                snapshot,
            ))
        return errors

    def claim(self, row: dict) -> None:
        sku = _value(row, "sku")
        product_code = _value(row, "productId")
        if sku:
            self.skus.add(sku)
        if product_code:
            self.product_codes.add(product_code)


def _normalize_tags(raw: str) -> list[str]:
    tags: list[str] = []
    for tag in split_list_cell(raw):
        lowered = tag.lower()
        if lowered not in tags:
            tags.append(lowered)
    return tags


def _parse_id(raw: str) -> int | None:
    if raw.isdecimal():
        return int(raw)
    return None


def validate_row(row: dict, index: int, shop_id: int) -> RowValidation:
    """
    Validate one raw spreadsheet row for the given shop.

    Database failures (e.g. sqlalchemy OperationalError) are NOT caught here:
    losing the store mid-validation is fatal for the job, not the row.
    """
    row_number = spreadsheet_row_number(index)
    snapshot = dict(row)
    errors: list[RowError] = []

    def fail(field_name: str, message: str) -> None:
        errors.append(RowError(row_number, field_name, message, snapshot))

    # 1. Required fields
    for key in REQUIRED_COLUMNS:
        if not _value(row, key):
            fail(key, f"{key}* is required")
    for key, max_length in MAX_LENGTHS.items():
        value = _value(row, key)
        if len(value) > max_length:
            fail(key, f"{key} exceeds max length {max_length}")

    # 2. Enumerations
    enums: dict[str, str] = {}
    for key, allowed in ENUM_FIELDS:
        raw = _value(row, key)
        if not raw:
            continue
        if raw.lower() in allowed:
            enums[key] = raw.lower()
        else:
            fail(key, f"Invalid {key} '{raw}'. Must be one of: {', '.join(allowed)}")

    # 3. Numbers
    numbers: dict[str, Decimal] = {}
    for key in NUMERIC_FIELDS:
        raw = _value(row, key)
        if not raw:
            continue
        try:
            number = parse_number(raw)
        except ValidationError:
            fail(key, f"{key} must be a valid number (got '{raw}')")
            continue
        if number < 0:
            fail(key, f"{key} cannot be negative")
            continue
        if key in QUANTITY_FIELDS and not is_whole_number(number):
            fail(key, f"{key} must be a whole number")
            continue
        if key in MONEY_FIELDS and number > MAX_MONEY:
            fail(key, f"{key} cannot exceed {MAX_MONEY:,}")
            continue
        numbers[key] = number

    # 4. Discount consistency
    # A blank discountType is stored as "flat"; an unrecognized one already failed above
    discount_type = enums.get("discountType", None if _value(row, "discountType") else "flat")
    discount_raw = _value(row, "discountValue")
    discount_value = numbers.get("discountValue", Decimal("0") if not discount_raw else None)
    if discount_type and discount_value is not None:
        if discount_type == "flat" and "unitPrice" in numbers and discount_value > numbers["unitPrice"]:
            fail("discountValue", "Flat discount cannot exceed unit price")
        if discount_type == "percentage" and not (Decimal("0") <= discount_value <= Decimal("100")):
            fail("discountValue", "Percentage discount must be between 0 and 100")

    # 5. Image URLs
    images = ImageSources()
    icon1 = _value(row, "icon1Url")
    if icon1:
        if is_valid_http_url(icon1):
            images.icon1 = icon1
        else:
            fail("icon1Url", f"Invalid image URL: {icon1}")

    max_secondary = current_app.config.get("MAX_SECONDARY_IMAGES", MAX_SECONDARY_IMAGES)
    secondary = split_list_cell(_value(row, "icon2Urls"))
    if len(secondary) > max_secondary:
        fail("icon2Urls", f"Maximum {max_secondary} additional images allowed (found {len(secondary)})")
    for url in secondary:
        if is_valid_http_url(url):
            images.icon2.append(url)
        else:
            fail("icon2Urls", f"Invalid URL: {url}")

    meta_image = _value(row, "metaImageUrl")
    if meta_image:
        if is_valid_http_url(meta_image):
            images.meta_image = meta_image
        else:
            fail("metaImageUrl", f"Invalid image URL: {meta_image}")

    # 6. Taxonomy
    category_raw = _value(row, "categoryId")
    subcategory_raw = _value(row, "subCategoryId")
    category_id = _parse_id(category_raw) if category_raw else None
    subcategory_id = _parse_id(subcategory_raw) if subcategory_raw else None

    if category_raw:
        if category_id is None:
            fail("categoryId", f"Invalid category ID format: '{category_raw}'")
        elif taxonomy_service.find_active_category(category_id) is None:
            fail("categoryId", f"Category '{category_raw}' does not exist or is inactive")

    if subcategory_raw:
        if subcategory_id is None:
            fail("subCategoryId", f"Invalid subcategory ID format: '{subcategory_raw}'")
        elif category_id is not None and taxonomy_service.find_sub_category(subcategory_id, category_id) is None:
            fail(
                "subCategoryId",
                f"Subcategory '{subcategory_raw}' does not exist or does not belong to category '{category_raw}'",
            )

    # 7. Catalog-wide uniqueness
    sku = _value(row, "sku")
    product_code = _value(row, "productId")
    if sku and catalog_service.exists_by_sku(sku):
        fail("sku", f"SKU '{sku}' already exists")
    if product_code and catalog_service.exists_by_product_code(product_code):
        fail("productId", f"Product ID '{product_code}' already exists")

    if errors:
        return RowValidation(valid=False, errors=errors)

    normalized = {
        "product_code": product_code,
        "name": _value(row, "productName"),
        "description": _value(row, "description"),
        "category_id": category_id,
        "subcategory_id": subcategory_id,
        "unit": enums["unit"],
        "sku": sku,
        "search_tags": _normalize_tags(_value(row, "searchTags")),
        "unit_price": numbers["unitPrice"],
        "min_order_qty": int(numbers.get("minOrderQty", Decimal("1"))),
        "current_stock": int(numbers["currentStock"]),
        "min_stock_qty": int(numbers.get("minStockQty", Decimal("0"))),
        "discount_type": enums.get("discountType", "flat"),
        "discount_value": numbers.get("discountValue", Decimal("0")),
        "tax_type": enums.get("taxType", "inclusive"),
        "shipping_cost": numbers.get("shippingCost", Decimal("0")),
        "meta_title": _value(row, "metaTitle"),
        "meta_description": _value(row, "metaDescription"),
        "status": enums.get("status", "draft"),
    }
    return RowValidation(valid=True, normalized=normalized, images=images)


def check_batch_duplicates(row: dict, index: int, batch_keys: BatchKeys) -> list[RowError]:
    return batch_keys.find_duplicates(row, index)
