# Overview: Pytest coverage for row validation and normalization.

"""
Row Validator Tests

Every rule is checked independently; a row with several problems reports
all of them, and row numbers account for the header row.
"""

from decimal import Decimal

import pytest

from marketplace.models import Product
from marketplace.services.row_validator import (
    BatchKeys,
    check_batch_duplicates,
    spreadsheet_row_number,
    validate_row,
)


def _fields(result):
    return [error.field for error in result.errors]


def _messages(result):
    return [error.message for error in result.errors]


@pytest.fixture
def existing_product(db_session, shop, taxonomy):
    product = Product(
        shop_id=shop.id,
        product_code="PROD-EXISTING",
        sku="SKU-EXISTING",
        name="Existing",
        category_id=taxonomy["electronics"].id,
        subcategory_id=taxonomy["phones"].id,
        unit="piece",
        unit_price=Decimal("10"),
        current_stock=1,
    )
    db_session.add(product)
    db_session.commit()
    return product


class TestValidRow:
    def test_valid_row_is_normalized_with_defaults(self, shop, make_row, taxonomy):
        row = make_row(searchTags="Phone, gadgets, PHONE", unit="Piece", unitPrice="1,234.50")
        result = validate_row(row, 0, shop.id)

        assert result.valid, _messages(result)
        normalized = result.normalized
        assert normalized["product_code"] == "PROD001"
        assert normalized["category_id"] == taxonomy["electronics"].id
        assert normalized["subcategory_id"] == taxonomy["phones"].id
        assert normalized["unit"] == "piece"
        assert normalized["unit_price"] == Decimal("1234.50")
        assert normalized["current_stock"] == 100
        assert normalized["search_tags"] == ["phone", "gadgets"]
        assert normalized["min_order_qty"] == 1
        assert normalized["min_stock_qty"] == 0
        assert normalized["discount_type"] == "flat"
        assert normalized["discount_value"] == Decimal("0")
        assert normalized["tax_type"] == "inclusive"
        assert normalized["shipping_cost"] == Decimal("0")
        assert normalized["status"] == "draft"
        assert normalized["description"] == ""
        assert result.images.is_empty()

    def test_image_urls_collected(self, shop, make_row):
        row = make_row(
            icon1Url="https://img.test/main.jpg",
            icon2Urls="https://img.test/1.jpg, https://img.test/2.jpg",
            metaImageUrl="https://img.test/meta.png",
        )
        result = validate_row(row, 0, shop.id)
        assert result.valid
        assert result.images.icon1 == "https://img.test/main.jpg"
        assert result.images.icon2 == ["https://img.test/1.jpg", "https://img.test/2.jpg"]
        assert result.images.meta_image == "https://img.test/meta.png"


class TestRequiredAndEnums:
    def test_missing_required_fields_all_reported(self, shop, make_row):
        row = make_row(productId="", sku=" ", unitPrice="")
        result = validate_row(row, 3, shop.id)

        assert not result.valid
        assert {"productId", "sku", "unitPrice"} <= set(_fields(result))
        assert all(error.row == 5 for error in result.errors)
        assert result.errors[0].data["productName"] == "Sample Phone"

    def test_invalid_enum_reported_verbatim_with_valid_values(self, shop, make_row):
        result = validate_row(make_row(unit="Dozen", taxType="none"), 0, shop.id)
        assert not result.valid
        assert "Invalid unit 'Dozen'. Must be one of: piece, kilogram, meter, kg" in _messages(result)
        assert any("'none'" in m and "inclusive, exclusive" in m for m in _messages(result))


class TestNumbers:
    def test_non_numeric_price_rejected(self, shop, make_row):
        result = validate_row(make_row(unitPrice="abc"), 0, shop.id)
        assert _fields(result) == ["unitPrice"]
        assert "abc" in result.errors[0].message

    def test_negative_and_fractional_quantities_rejected(self, shop, make_row):
        result = validate_row(make_row(currentStock="-1", minOrderQty="1.5"), 0, shop.id)
        assert set(_fields(result)) == {"currentStock", "minOrderQty"}

    def test_thousands_separator_in_stock(self, shop, make_row):
        result = validate_row(make_row(currentStock="1,000"), 0, shop.id)
        assert result.valid
        assert result.normalized["current_stock"] == 1000


class TestDiscount:
    def test_percentage_over_100_rejected(self, shop, make_row):
        result = validate_row(make_row(discountType="percentage", discountValue="150"), 0, shop.id)
        assert not result.valid
        assert _fields(result) == ["discountValue"]

    def test_flat_discount_above_price_rejected(self, shop, make_row):
        result = validate_row(
            make_row(unitPrice="100", discountType="flat", discountValue="150"), 0, shop.id
        )
        assert not result.valid
        assert "Flat discount cannot exceed unit price" in _messages(result)

    def test_blank_discount_type_checked_as_flat(self, shop, make_row):
        result = validate_row(make_row(unitPrice="100", discountValue="500"), 0, shop.id)
        assert not result.valid
        assert _fields(result) == ["discountValue"]
        assert "Flat discount cannot exceed unit price" in _messages(result)

    def test_percentage_zero_accepted(self, shop, make_row):
        result = validate_row(make_row(discountType="percentage", discountValue="0"), 0, shop.id)
        assert result.valid
        assert result.normalized["discount_type"] == "percentage"
        assert result.normalized["discount_value"] == Decimal("0")


class TestImageUrls:
    def test_malformed_urls_echoed(self, shop, make_row):
        result = validate_row(
            make_row(icon1Url="not a url", icon2Urls="https://img.test/ok.jpg,ftp://img.test/x.jpg"),
            0,
            shop.id,
        )
        assert not result.valid
        assert "Invalid image URL: not a url" in _messages(result)
        assert "Invalid URL: ftp://img.test/x.jpg" in _messages(result)

    def test_sixth_secondary_image_rejected(self, shop, make_row):
        urls = ",".join(f"https://img.test/{n}.jpg" for n in range(6))
        result = validate_row(make_row(icon2Urls=urls), 0, shop.id)
        assert not result.valid
        assert _fields(result) == ["icon2Urls"]
        assert "found 6" in result.errors[0].message


class TestTaxonomy:
    def test_subcategory_from_other_category_rejected(self, shop, make_row, taxonomy):
        row = make_row(subCategoryId=str(taxonomy["tools"].id))
        result = validate_row(row, 0, shop.id)
        assert not result.valid
        assert _fields(result) == ["subCategoryId"]
        assert "does not belong to category" in result.errors[0].message

    def test_inactive_category_rejected(self, shop, make_row, taxonomy):
        row = make_row(categoryId=str(taxonomy["archived"].id), subCategoryId=str(taxonomy["old"].id))
        result = validate_row(row, 0, shop.id)
        assert not result.valid
        assert "categoryId" in _fields(result)

    def test_non_integer_category_is_format_error(self, shop, make_row):
        result = validate_row(make_row(categoryId="electronics"), 0, shop.id)
        assert not result.valid
        assert "Invalid category ID format: 'electronics'" in _messages(result)

    def test_superscript_digit_ids_are_format_errors(self, shop, make_row):
        result = validate_row(make_row(categoryId="²", subCategoryId="³"), 0, shop.id)
        assert not result.valid
        assert set(_fields(result)) == {"categoryId", "subCategoryId"}
        assert "Invalid category ID format: '²'" in _messages(result)


class TestUniqueness:
    def test_existing_sku_and_product_id_rejected(self, shop, make_row, existing_product):
        row = make_row(sku="SKU-EXISTING", productId="PROD-EXISTING")
        result = validate_row(row, 0, shop.id)
        assert set(_fields(result)) == {"sku", "productId"}
        assert "SKU 'SKU-EXISTING' already exists" in _messages(result)

    def test_sku_in_other_shop_still_rejected(self, other_shop, make_row, existing_product):
        result = validate_row(make_row(sku="SKU-EXISTING"), 0, other_shop.id)
        assert not result.valid

    def test_batch_keys_flag_duplicates_within_upload(self, make_row):
        keys = BatchKeys()
        first = make_row()
        assert check_batch_duplicates(first, 0, keys) == []
        keys.claim(first)

        errors = check_batch_duplicates(make_row(productId="PROD002"), 1, keys)
        assert len(errors) == 1
        assert errors[0].row == 3
        assert errors[0].field == "sku"
        assert "found in this upload" in errors[0].message


def test_spreadsheet_row_number():
    assert spreadsheet_row_number(0) == 2
    assert spreadsheet_row_number(2) == 4
