"""
Spreadsheet handling for bulk catalog uploads (openpyxl).

- Template: "Instructions" sheet + "Products" sheet (header row + one example row)
- Parser: reads the first sheet whose name contains "product" into row maps
- Error report: one row per recorded row error
"""
from __future__ import annotations

import io
import logging
import zipfile
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterator, Sequence

from openpyxl import Workbook, load_workbook
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException

logger = logging.getLogger(__name__)


class TemplateError(ValueError):
    """The uploaded file is not a readable product template. Fatal for the job."""


@dataclass(frozen=True)
class TemplateColumn:
    key: str
    required: bool
    example: str

    @property
    def header(self) -> str:
        return f"{self.key}*" if self.required else self.key


TEMPLATE_COLUMNS: tuple[TemplateColumn, ...] = (
    TemplateColumn("productId", True, "PROD001"),
    TemplateColumn("productName", True, "Sample Product"),
    TemplateColumn("description", False, "This is a sample product description"),
    TemplateColumn("categoryId", True, "1"),
    TemplateColumn("subCategoryId", True, "1"),
    TemplateColumn("unit", True, "piece"),
    TemplateColumn("sku", True, "SKU001"),
    TemplateColumn("searchTags", False, "electronics, gadgets, smartphone"),
    TemplateColumn("unitPrice", True, "25000"),
    TemplateColumn("minOrderQty", False, "1"),
    TemplateColumn("currentStock", True, "100"),
    TemplateColumn("minStockQty", False, "10"),
    TemplateColumn("discountType", False, "percentage"),
    TemplateColumn("discountValue", False, "10"),
    TemplateColumn("taxType", False, "inclusive"),
    TemplateColumn("shippingCost", False, "50"),
    TemplateColumn("metaTitle", False, "Best Smartphone 2024"),
    TemplateColumn("metaDescription", False, "Buy the best smartphone with amazing features"),
    TemplateColumn("status", False, "active"),
    TemplateColumn("icon1Url", False, "https://images.example.com/products/main.jpg"),
    TemplateColumn(
        "icon2Urls",
        False,
        "https://images.example.com/products/img1.jpg,https://images.example.com/products/img2.jpg",
    ),
    TemplateColumn("metaImageUrl", False, "https://images.example.com/products/meta.jpg"),
)

TEMPLATE_HEADERS: tuple[str, ...] = tuple(column.header for column in TEMPLATE_COLUMNS)
REQUIRED_COLUMNS: tuple[str, ...] = tuple(c.key for c in TEMPLATE_COLUMNS if c.required)

PRODUCTS_SHEET = "Products"
INSTRUCTIONS_SHEET = "Instructions"
TEMPLATE_COLUMN_WIDTH = 20

VALID_UNITS = ("piece", "kilogram", "meter", "kg")
VALID_DISCOUNT_TYPES = ("flat", "percentage")
VALID_TAX_TYPES = ("inclusive", "exclusive")
VALID_STATUSES = ("active", "inactive", "draft")

INSTRUCTIONS: tuple[str, ...] = (
    "BULK PRODUCT UPLOAD TEMPLATE - WITH IMAGE SUPPORT",
    "",
    "INSTRUCTIONS:",
    "1. Fields marked with * are mandatory",
    "2. Do not modify the header row",
    "3. categoryId and subCategoryId must be ids of active categories (see the categories endpoint)",
    "4. subCategoryId must belong to the categoryId on the same row",
    f"5. unit: {', '.join(VALID_UNITS)}",
    f"6. discountType: {', '.join(VALID_DISCOUNT_TYPES)}",
    f"7. taxType: {', '.join(VALID_TAX_TYPES)}",
    f"8. status: {', '.join(VALID_STATUSES)}",
    "9. searchTags: comma-separated values (e.g., electronics, phone, mobile)",
    "10. Numeric fields accept thousands separators (e.g., 1,234)",
    "11. SKU and productId must be unique across all products",
    "",
    "IMAGE UPLOAD INSTRUCTIONS:",
    "12. icon1Url: Main product image (single URL)",
    "13. icon2Urls: Additional images (comma-separated URLs, max 5)",
    "14. metaImageUrl: SEO/meta image (single URL)",
    "15. All image URLs must be publicly accessible http(s) URLs",
    "16. Supported formats: jpg, jpeg, png, webp",
    "17. Images that cannot be downloaded are skipped; the product is still created",
    "",
    "VALID VALUES:",
    f"- unit: {', '.join(VALID_UNITS)}",
    f"- discountType: {', '.join(VALID_DISCOUNT_TYPES)}",
    f"- taxType: {', '.join(VALID_TAX_TYPES)}",
    f"- status: {', '.join(VALID_STATUSES)}",
)


def _workbook_bytes(workbook: Workbook) -> bytes:
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def build_template_workbook() -> Workbook:
    workbook = Workbook()

    instructions = workbook.active
    instructions.title = INSTRUCTIONS_SHEET
    for line in INSTRUCTIONS:
        instructions.append([line])
    instructions.column_dimensions["A"].width = 100

    products = workbook.create_sheet(PRODUCTS_SHEET)
    products.append(list(TEMPLATE_HEADERS))
    products.append([column.example for column in TEMPLATE_COLUMNS])
    for index in range(1, len(TEMPLATE_HEADERS) + 1):
        products.column_dimensions[get_column_letter(index)].width = TEMPLATE_COLUMN_WIDTH

    return workbook


def template_bytes() -> bytes:
    return _workbook_bytes(build_template_workbook())


def normalize_header(value: Any) -> str:
    """'productId*' -> 'productId'; headers are matched on the bare column name."""
    if value is None:
        return ""
    return str(value).strip().rstrip("*").strip()


def cell_to_text(value: Any) -> str:
    """Render a cell the way a merchant sees it; empty cells become ''."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value).strip()


class ProductSheet:
    """
    Read-only view of the products sheet of an uploaded workbook.

    iter_rows() is a single-pass generator; count_rows() makes its own pass.
    Use as a context manager so the underlying file handle is released.
    """

    def __init__(self, workbook, worksheet):
        self._workbook = workbook
        self._worksheet = worksheet
        self.sheet_name = worksheet.title
        header_values = next(worksheet.iter_rows(min_row=1, max_row=1, values_only=True), ())
        self.headers: list[str] = [normalize_header(value) for value in header_values]

    @classmethod
    def open(cls, path: str) -> "ProductSheet":
        try:
            workbook = load_workbook(path, read_only=True, data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
            logger.error("Unable to read workbook %s: %s", path, exc)
            raise TemplateError(
                "Unable to read the uploaded file. Please upload an .xlsx file created from the official template."
            ) from exc

        sheet_name = next(
            (name for name in workbook.sheetnames if "product" in name.lower()),
            None,
        )
        if sheet_name is None:
            workbook.close()
            raise TemplateError(
                "Invalid template: 'Products' sheet not found. Please use the official template."
            )
        return cls(workbook, workbook[sheet_name])

    def __enter__(self) -> "ProductSheet":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._workbook.close()

    def _data_rows(self) -> Iterator[Sequence[Any]]:
        for values in self._worksheet.iter_rows(min_row=2, values_only=True):
            if all(cell_to_text(value) == "" for value in values):
                continue
            yield values

    def count_rows(self) -> int:
        return sum(1 for _ in self._data_rows())

    def iter_rows(self) -> Iterator[dict[str, str]]:
        headers = self.headers
        for values in self._data_rows():
            row: dict[str, str] = {}
            for position, header in enumerate(headers):
                if not header:
                    continue
                value = values[position] if position < len(values) else None
                row[header] = cell_to_text(value)
            yield row


ERROR_REPORT_SHEET = "Errors"
ERROR_REPORT_COLUMNS: tuple[tuple[str, int], ...] = (
    ("Row", 10),
    ("Field", 20),
    ("Error", 50),
    ("Product Name", 30),
    ("SKU", 20),
)


def build_error_report(errors: list[dict]) -> Workbook:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = ERROR_REPORT_SHEET
    sheet.append([title for title, _ in ERROR_REPORT_COLUMNS])
    for index, (_, width) in enumerate(ERROR_REPORT_COLUMNS, start=1):
        sheet.column_dimensions[get_column_letter(index)].width = width

    for error in errors:
        snapshot = error.get("data") or {}
        sheet.append([
            error.get("row"),
            error.get("field", ""),
            error.get("message", ""),
            snapshot.get("productName", ""),
            snapshot.get("sku", ""),
        ])
    return workbook


def error_report_bytes(errors: list[dict]) -> bytes:
    return _workbook_bytes(build_error_report(errors))
