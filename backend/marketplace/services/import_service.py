# Overview: Service-layer operations for bulk catalog uploads; orchestrates parsing, validation, asset re-hosting and commits.

from __future__ import annotations

import logging
import os
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import catalog_cache, db, object_store
from ..models import BulkUpload, Product
from ..models.imports import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PARTIAL,
    STATUS_PROCESSING,
    STATUSES,
)
from ..time_utils import elapsed_seconds, utcnow
from ..validation import ConflictError, NotFoundError, ValidationError
from . import catalog_service
from .asset_service import RowAssets, import_row_assets
from .ledger_service import append_stock_movement
from .row_validator import (
    BatchKeys,
    RowError,
    check_batch_duplicates,
    spreadsheet_row_number,
    validate_row,
)
from .storage_service import UPLOAD_BACKUP_PREFIX, ObjectStoreError
from .workbook_service import ProductSheet, TemplateError, error_report_bytes

logger = logging.getLogger(__name__)


class BulkUploadError(ValueError):
    """Raised when bulk upload operations fail."""


class RowCommitError(BulkUploadError):
    """A validated row could not be persisted. Row-scoped; carries a merchant-readable message."""


SYSTEM_ERROR_MESSAGE = (
    "An unexpected system error occurred while processing the upload. Please try again later."
)
EMPTY_UPLOAD_MESSAGE = "No product rows found in the uploaded file"

LIST_LIMIT_DEFAULT = 20
LIST_LIMIT_MAX = 100


def _get_upload_for_shop(job_id: int, shop_id: int) -> BulkUpload:
    upload = db.session.query(BulkUpload).filter_by(id=job_id, shop_id=shop_id).first()
    if not upload:
        raise NotFoundError("Bulk upload not found")
    return upload


def _system_error(message: str) -> dict[str, Any]:
    return {"row": 0, "field": "system", "message": message, "data": {}}


def _remove_file(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Could not remove uploaded file %s: %s", path, exc)


def _discard_assets(assets: RowAssets) -> None:
    stored = [assets.icon1, assets.meta_image, *assets.icon2]
    for image in stored:
        if image is None:
            continue
        try:
            object_store.delete(image.public_id)
        except ObjectStoreError as exc:
            logger.warning("Could not remove orphaned image %s: %s", image.public_id, exc)


def _commit_error_message(exc: IntegrityError, normalized: dict) -> str:
    detail = str(exc.orig).lower() if exc.orig is not None else ""
    if "sku" in detail:
        return f"SKU '{normalized.get('sku')}' already exists"
    if "product_code" in detail:
        return f"Product ID '{normalized.get('product_code')}' already exists"
    return "Product could not be saved because it conflicts with an existing product"


def commit_row(
    normalized: dict,
    assets: RowAssets,
    shop_id: int,
    user_id: int,
    job_id: int | None = None,
) -> Product:
    """
    Persist one catalog entry and its opening stock movement.

    Both writes share a SAVEPOINT: either the product and its ledger entry
    exist together or neither does. Unique-constraint violations (a
    concurrent upload won the race for the sku/productId) surface as
    RowCommitError.
    """
    fields = {**normalized, **assets.to_fields()}
    try:
        with db.session.begin_nested():
            product = catalog_service.create_entry(shop_id=shop_id, fields=fields, upload_id=job_id)
            append_stock_movement(
                shop_id=shop_id,
                product_id=product.id,
                type="in",
                quantity=product.current_stock,
                reason="bulk_upload",
                previous_stock=0,
                new_stock=product.current_stock,
                performed_by_user_id=user_id,
                notes="Bulk upload - Initial stock",
            )
    except IntegrityError as exc:
        logger.warning("Row commit rejected by constraint: %s", exc.orig)
        raise RowCommitError(_commit_error_message(exc, normalized)) from exc
    except SQLAlchemyError as exc:
        logger.error("Row commit failed: %s", exc)
        raise RowCommitError("Product could not be saved due to a database error") from exc
    return product


def create_bulk_upload(
    *,
    shop_id: int,
    user_id: int,
    file_path: str,
    file_name: str,
) -> BulkUpload:
    """
    Record a pending job for an accepted spreadsheet.

    The spreadsheet is copied to object storage when possible; a failed
    backup is logged and the local path is recorded instead.
    """
    file_url = file_path
    file_public_id = None
    try:
        stored = object_store.upload_file(file_path, file_name, prefix=UPLOAD_BACKUP_PREFIX)
        file_url = stored.url
        file_public_id = stored.public_id
    except (ObjectStoreError, OSError) as exc:
        logger.warning("Upload backup skipped for %s (shop %s): %s", file_name, shop_id, exc)

    upload = BulkUpload(
        shop_id=shop_id,
        uploaded_by_user_id=user_id,
        file_name=file_name,
        file_url=file_url,
        file_public_id=file_public_id,
        errors=[],
        warnings=[],
    )
    db.session.add(upload)
    db.session.commit()
    logger.info("Bulk upload %s created for shop %s (%s)", upload.id, shop_id, file_name)
    return upload


def _terminal_status(success_count: int, failed_count: int, total_rows: int) -> str:
    if failed_count > 0 and success_count > 0:
        return STATUS_PARTIAL
    if failed_count == total_rows:
        return STATUS_FAILED
    return STATUS_COMPLETED


def _process_rows(upload: BulkUpload, sheet: ProductSheet, errors: list[dict], warnings: list[dict]) -> None:
    batch_keys = BatchKeys()

    for index, row in enumerate(sheet.iter_rows()):
        row_number = spreadsheet_row_number(index)
        row_errors: list[RowError] = check_batch_duplicates(row, index, batch_keys)

        if not row_errors:
            result = validate_row(row, index, upload.shop_id)
            if result.valid:
                batch_keys.claim(row)
                assets = import_row_assets(result.images, row_number)
                warnings.extend(assets.warnings)
                try:
                    commit_row(
                        result.normalized,
                        assets,
                        upload.shop_id,
                        upload.uploaded_by_user_id,
                        upload.id,
                    )
                except RowCommitError as exc:
                    _discard_assets(assets)
                    row_errors = [RowError(row_number, "general", str(exc), dict(row))]
            else:
                row_errors = result.errors

        if row_errors:
            upload.failed_count += 1
            errors.extend(error.to_dict() for error in row_errors)
            logger.warning(
                "Bulk upload %s row %d rejected: %s",
                upload.id,
                row_number,
                "; ".join(error.message for error in row_errors),
            )
        else:
            upload.success_count += 1
            logger.debug("Bulk upload %s row %d committed", upload.id, row_number)

        upload.processed_rows += 1
        db.session.commit()


def process_bulk_upload(job_id: int, file_path: str) -> BulkUpload:
    """
    Run the whole pipeline for one pending job.

    Row problems are recorded and the batch continues. An unreadable
    workbook, a missing products sheet or a database failure aborts the job
    as failed. The uploaded file is removed on every exit path.
    """
    errors: list[dict] = []
    warnings: list[dict] = []
    try:
        upload = db.session.get(BulkUpload, job_id)
        if upload is None:
            raise NotFoundError("Bulk upload not found")
        upload.start(utcnow())
        db.session.commit()
        logger.info("Bulk upload %s started for shop %s", upload.id, upload.shop_id)

        try:
            with ProductSheet.open(file_path) as sheet:
                upload.total_rows = sheet.count_rows()
                db.session.commit()
                _process_rows(upload, sheet, errors, warnings)
        except TemplateError as exc:
            logger.error("Bulk upload %s aborted: %s", job_id, exc)
            return _fail_upload(job_id, errors, warnings, str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.error("Bulk upload %s aborted by system error: %s", job_id, exc, exc_info=True)
            return _fail_upload(job_id, errors, warnings, SYSTEM_ERROR_MESSAGE)

        return _finish_upload(upload, errors, warnings)
    finally:
        _remove_file(file_path)


def _finish_upload(upload: BulkUpload, errors: list[dict], warnings: list[dict]) -> BulkUpload:
    if upload.total_rows == 0:
        errors.append(_system_error(EMPTY_UPLOAD_MESSAGE))

    status = _terminal_status(upload.success_count, upload.failed_count, upload.total_rows)
    now = utcnow()

    if upload.success_count > 0:
        catalog_cache.invalidate_products()
        catalog_cache.invalidate_sales_reports()

    upload.errors = list(errors)
    upload.warnings = list(warnings)
    upload.finish(status, now, elapsed_seconds(upload.started_at, now))
    db.session.commit()
    logger.info(
        "Bulk upload %s finished: status=%s total=%s success=%s failed=%s warnings=%s time=%ss",
        upload.id,
        upload.status,
        upload.total_rows,
        upload.success_count,
        upload.failed_count,
        len(warnings),
        upload.processing_time_seconds,
    )
    return upload


def _fail_upload(job_id: int, errors: list[dict], warnings: list[dict], message: str) -> BulkUpload:
    db.session.rollback()
    upload = db.session.get(BulkUpload, job_id)
    if upload.status != STATUS_PROCESSING:
        raise BulkUploadError(f"Bulk upload {job_id} is not processing")

    if upload.success_count > 0:
        catalog_cache.invalidate_products()
        catalog_cache.invalidate_sales_reports()

    now = utcnow()
    upload.errors = [*errors, _system_error(message)]
    upload.warnings = list(warnings)
    upload.finish(STATUS_FAILED, now, elapsed_seconds(upload.started_at, now))
    db.session.commit()
    return upload


def get_bulk_upload(job_id: int, shop_id: int) -> BulkUpload:
    return _get_upload_for_shop(job_id, shop_id)


def list_bulk_uploads(
    shop_id: int,
    status: str | None = None,
    page: int = 1,
    limit: int = LIST_LIMIT_DEFAULT,
) -> dict[str, Any]:
    if status and status not in STATUSES:
        raise ValidationError(f"Invalid status '{status}'. Must be one of: {', '.join(STATUSES)}")
    page = max(1, int(page or 1))
    limit = max(1, min(LIST_LIMIT_MAX, int(limit or LIST_LIMIT_DEFAULT)))

    query = db.session.query(BulkUpload).filter_by(shop_id=shop_id)
    if status:
        query = query.filter(BulkUpload.status == status)

    total = query.count()
    uploads = (
        query.order_by(BulkUpload.created_at.desc(), BulkUpload.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "uploads": [u.to_dict(include_errors=False) for u in uploads],
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "pages": (total + limit - 1) // limit,
        },
    }


def delete_bulk_upload(job_id: int, shop_id: int) -> None:
    upload = _get_upload_for_shop(job_id, shop_id)
    if upload.status == STATUS_PROCESSING:
        raise ConflictError("Cannot delete an upload that is currently processing")

    if upload.file_public_id:
        try:
            object_store.delete(upload.file_public_id)
        except ObjectStoreError as exc:
            logger.warning("Could not delete backup %s of upload %s: %s", upload.file_public_id, job_id, exc)

    db.session.query(Product).filter(Product.imported_from_upload_id == upload.id).update(
        {Product.imported_from_upload_id: None}, synchronize_session=False
    )
    db.session.delete(upload)
    db.session.commit()
    logger.info("Bulk upload %s deleted for shop %s", job_id, shop_id)


def error_report_filename(job_id: int) -> str:
    return f"error-report-{job_id}.xlsx"


def error_report(job_id: int, shop_id: int) -> tuple[str, bytes]:
    upload = _get_upload_for_shop(job_id, shop_id)
    if not upload.errors:
        raise NotFoundError("No errors found for this upload")
    return error_report_filename(upload.id), error_report_bytes(upload.errors)
