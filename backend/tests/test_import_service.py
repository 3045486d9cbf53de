# Overview: Pytest coverage for the bulk upload pipeline and job queries.

"""
Bulk Upload Pipeline Tests

Covers the job lifecycle end to end:
1. Row-scoped failures are recorded and the batch continues
2. Fatal failures mark the job failed and still remove the upload
3. Counters, catalog entries and ledger entries stay consistent
4. Queries are scoped to the owning shop
"""

import io
import os
from decimal import Decimal

import pytest
from openpyxl import load_workbook
from sqlalchemy.exc import OperationalError

from marketplace.extensions import object_store
from marketplace.models import BulkUpload, Product, StockMovement
from marketplace.models.imports import InvalidTransitionError
from marketplace.services import catalog_service, import_service, taxonomy_service
from marketplace.validation import ConflictError, NotFoundError, ValidationError


@pytest.fixture
def run_upload(shop, user, make_workbook):
    """Create a job for the given rows and run the pipeline on it."""

    def runner(rows, **workbook_kwargs):
        path = make_workbook(rows, **workbook_kwargs)
        upload = import_service.create_bulk_upload(
            shop_id=shop.id,
            user_id=user.id,
            file_path=path,
            file_name="products.xlsx",
        )
        return import_service.process_bulk_upload(upload.id, path), path

    return runner


def _assert_counters_consistent(upload):
    assert upload.success_count + upload.failed_count == upload.processed_rows
    assert upload.processed_rows == upload.total_rows


class TestEndToEnd:
    def test_mixed_upload_is_partial(self, db_session, run_upload, make_row, user):
        rows = [
            make_row(),
            make_row(productId="PROD002", sku="SKU002", unitPrice="abc"),
            make_row(productId="PROD003", sku="SKU001"),
        ]
        upload, path = run_upload(rows)

        assert upload.status == "partial"
        assert upload.total_rows == 3
        assert upload.success_count == 1
        assert upload.failed_count == 2
        _assert_counters_consistent(upload)
        assert upload.progress == 100
        assert [error["row"] for error in upload.errors] == [3, 4]
        assert upload.errors[0]["field"] == "unitPrice"
        assert "found in this upload" in upload.errors[1]["message"]
        assert upload.started_at is not None
        assert upload.completed_at is not None
        assert upload.processing_time_seconds >= 0
        assert not os.path.exists(path)

        product = db_session.query(Product).one()
        assert product.sku == "SKU001"
        assert product.unit_price == Decimal("25000")
        assert product.imported_from_upload_id == upload.id

        movement = db_session.query(StockMovement).one()
        assert movement.product_id == product.id
        assert movement.type == "in"
        assert movement.reason == "bulk_upload"
        assert movement.quantity == 100
        assert movement.previous_stock == 0
        assert movement.new_stock == 100
        assert movement.performed_by_user_id == user.id

        filename, content = import_service.error_report(upload.id, upload.shop_id)
        assert filename == f"error-report-{upload.id}.xlsx"
        sheet = load_workbook(io.BytesIO(content))["Errors"]
        assert [sheet.cell(row=r, column=1).value for r in (2, 3)] == [3, 4]
        assert sheet.max_row == 3

    def test_failed_rows_never_become_products(self, db_session, run_upload, make_row):
        rows = [
            make_row(),
            make_row(productId="PROD002", sku="SKU002", discountType="percentage", discountValue="150"),
        ]
        upload, _ = run_upload(rows)

        failed_skus = {error["data"]["sku"] for error in upload.errors}
        persisted = {p.sku for p in db_session.query(Product).all()}
        assert failed_skus == {"SKU002"}
        assert not failed_skus & persisted

    def test_duplicate_sku_within_upload(self, run_upload, make_row):
        upload, _ = run_upload([make_row(), make_row(productId="PROD002")])

        assert upload.success_count == 1
        assert upload.failed_count == 1
        message = upload.errors[0]["message"]
        assert "found in this upload" in message
        assert "already exists" not in message

    def test_all_rows_valid_is_completed_and_invalidates_cache(self, run_upload, make_row, redis_client):
        upload, _ = run_upload([make_row(), make_row(productId="PROD002", sku="SKU002")])

        assert upload.status == "completed"
        assert upload.errors == []
        assert redis_client.keys == {"api:1:/orders"}

    def test_all_rows_invalid_is_failed_and_keeps_cache(self, run_upload, make_row, redis_client):
        upload, _ = run_upload([make_row(unit="box"), make_row(productId="PROD002", sku="")])

        assert upload.status == "failed"
        assert upload.failed_count == 2
        assert upload.success_count == 0
        assert "user:7:/products" in redis_client.keys

    def test_unreachable_image_still_commits_product(self, db_session, run_upload, make_row):
        row = make_row(icon2Urls="https://img.test/ok.jpg,https://img.test/missing.jpg")
        upload, _ = run_upload([row])

        assert upload.status == "completed"
        product = db_session.query(Product).one()
        assert len(product.icon2) == 1
        assert len(upload.warnings) == 1
        assert upload.warnings[0]["url"] == "https://img.test/missing.jpg"

    def test_malformed_image_url_rejects_row(self, db_session, run_upload, make_row):
        upload, _ = run_upload([make_row(icon2Urls="https://img.test/ok.jpg,not-a-url")])

        assert upload.status == "failed"
        assert upload.errors[0]["field"] == "icon2Urls"
        assert db_session.query(Product).count() == 0

    def test_unparseable_image_url_only_fails_its_row(self, db_session, run_upload, make_row):
        rows = [
            make_row(icon1Url="http://[broken/a.jpg"),
            make_row(productId="PROD002", sku="SKU002"),
        ]
        upload, _ = run_upload(rows)

        assert upload.status == "partial"
        assert upload.success_count == 1
        assert upload.failed_count == 1
        assert upload.errors[0]["row"] == 2
        assert upload.errors[0]["field"] == "icon1Url"
        assert db_session.query(Product).one().sku == "SKU002"

    def test_non_ascii_digit_category_only_fails_its_row(self, run_upload, make_row):
        rows = [
            make_row(categoryId="²"),
            make_row(productId="PROD002", sku="SKU002"),
        ]
        upload, _ = run_upload(rows)

        assert upload.status == "partial"
        assert upload.success_count == 1
        assert upload.failed_count == 1
        assert upload.errors[0]["field"] == "categoryId"
        assert all(error["field"] != "system" for error in upload.errors)


class TestFatalFailures:
    def test_missing_products_sheet(self, run_upload, make_row):
        upload, path = run_upload([make_row()], sheet_name="Sheet1", with_instructions=False)

        assert upload.status == "failed"
        assert len(upload.errors) == 1
        assert upload.errors[0]["row"] == 0
        assert upload.errors[0]["field"] == "system"
        assert "Products" in upload.errors[0]["message"]
        assert upload.completed_at is not None
        assert not os.path.exists(path)

    def test_empty_sheet_is_failed(self, run_upload):
        upload, _ = run_upload([])

        assert upload.status == "failed"
        assert upload.total_rows == 0
        assert upload.errors[-1]["message"] == import_service.EMPTY_UPLOAD_MESSAGE

    def test_database_failure_during_validation(self, monkeypatch, run_upload, make_row):
        def unavailable(category_id):
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        monkeypatch.setattr(taxonomy_service, "find_active_category", unavailable)
        upload, path = run_upload([make_row()])

        assert upload.status == "failed"
        assert upload.processed_rows == 0
        assert upload.errors[-1]["message"] == import_service.SYSTEM_ERROR_MESSAGE
        assert "locked" not in upload.errors[-1]["message"]
        assert not os.path.exists(path)

    def test_job_cannot_be_processed_twice(self, run_upload, make_row, make_workbook):
        upload, _ = run_upload([make_row()])
        path = make_workbook([make_row(productId="PROD002", sku="SKU002")])

        with pytest.raises(InvalidTransitionError):
            import_service.process_bulk_upload(upload.id, path)
        assert not os.path.exists(path)


class TestRowCommit:
    def test_constraint_violation_is_row_scoped(
        self, db_session, monkeypatch, run_upload, make_row, shop, taxonomy, s3_client
    ):
        # Another writer committed the same sku after the pre-check ran
        db_session.add(Product(
            shop_id=shop.id,
            product_code="OTHER",
            sku="SKU001",
            name="Concurrent",
            category_id=taxonomy["electronics"].id,
            subcategory_id=taxonomy["phones"].id,
            unit="piece",
            unit_price=Decimal("1"),
            current_stock=0,
        ))
        db_session.commit()
        monkeypatch.setattr(catalog_service, "exists_by_sku", lambda sku: False)

        rows = [
            make_row(icon1Url="https://img.test/main.jpg"),
            make_row(productId="PROD002", sku="SKU002"),
        ]
        upload, _ = run_upload(rows)

        assert upload.status == "partial"
        assert upload.errors[0]["row"] == 2
        assert upload.errors[0]["field"] == "general"
        assert upload.errors[0]["message"] == "SKU 'SKU001' already exists"
        assert db_session.query(StockMovement).count() == 1
        assert any(key.startswith("bulk-uploads/products/") for key in s3_client.deleted)


class TestQueries:
    def test_upload_backup_recorded(self, run_upload, make_row, s3_client):
        upload, _ = run_upload([make_row()])
        assert upload.file_public_id.startswith("bulk-uploads/")
        assert upload.file_public_id.endswith("products.xlsx")
        assert upload.file_url == f"https://cdn.test/{upload.file_public_id}"

    def test_backup_failure_falls_back_to_local_path(self, app, shop, user, make_workbook):
        app.config["AWS_STORAGE_BUCKET_NAME"] = None
        object_store.init_app(app)
        path = make_workbook([])

        upload = import_service.create_bulk_upload(
            shop_id=shop.id, user_id=user.id, file_path=path, file_name="products.xlsx"
        )
        assert upload.status == "pending"
        assert upload.file_url == path
        assert upload.file_public_id is None

    def test_get_is_scoped_to_shop(self, run_upload, make_row, other_shop):
        upload, _ = run_upload([make_row()])
        assert import_service.get_bulk_upload(upload.id, upload.shop_id).id == upload.id
        with pytest.raises(NotFoundError):
            import_service.get_bulk_upload(upload.id, other_shop.id)

    def test_list_paginates_newest_first(self, run_upload, make_row):
        ids = []
        for n in range(3):
            upload, _ = run_upload([make_row(productId=f"PROD{n}", sku=f"SKU{n}")])
            ids.append(upload.id)

        page = import_service.list_bulk_uploads(upload.shop_id, page=1, limit=2)
        assert [item["id"] for item in page["uploads"]] == [ids[2], ids[1]]
        assert page["pagination"] == {"total": 3, "page": 1, "limit": 2, "pages": 2}
        assert "errors" not in page["uploads"][0]
        assert page["uploads"][0]["progress"] == 100

        filtered = import_service.list_bulk_uploads(upload.shop_id, status="failed")
        assert filtered["pagination"]["total"] == 0

        with pytest.raises(ValidationError):
            import_service.list_bulk_uploads(upload.shop_id, status="done")

    def test_delete_rejected_while_processing(self, db_session, shop, user):
        upload = BulkUpload(
            shop_id=shop.id,
            uploaded_by_user_id=user.id,
            file_name="products.xlsx",
            file_url="/tmp/products.xlsx",
            status="processing",
            errors=[],
            warnings=[],
        )
        db_session.add(upload)
        db_session.commit()

        with pytest.raises(ConflictError):
            import_service.delete_bulk_upload(upload.id, shop.id)

    def test_delete_removes_record_and_backup(self, db_session, run_upload, make_row, s3_client):
        upload, _ = run_upload([make_row()])
        upload_id, public_id = upload.id, upload.file_public_id

        import_service.delete_bulk_upload(upload_id, upload.shop_id)

        assert db_session.get(BulkUpload, upload_id) is None
        assert public_id in s3_client.deleted
        assert db_session.query(Product).one().imported_from_upload_id is None

    def test_error_report_requires_errors(self, run_upload, make_row):
        upload, _ = run_upload([make_row()])
        with pytest.raises(NotFoundError):
            import_service.error_report(upload.id, upload.shop_id)
