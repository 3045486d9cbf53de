from __future__ import annotations

from ..extensions import db
from marketplace.time_utils import to_utc_z

STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_PARTIAL = "partial"

STATUSES = (STATUS_PENDING, STATUS_PROCESSING, STATUS_COMPLETED, STATUS_FAILED, STATUS_PARTIAL)
TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_FAILED, STATUS_PARTIAL)


class InvalidTransitionError(ValueError):
    """Raised when a bulk upload is moved through its lifecycle out of order."""


def progress_percent(processed_rows: int | None, total_rows: int | None) -> int:
    if not total_rows:
        return 0
    return int(round((processed_rows or 0) / total_rows * 100))


class BulkUpload(db.Model):
    """
    One merchant spreadsheet upload and its results.

    LIFECYCLE:
    1. pending: file accepted, nothing processed yet
    2. processing: rows are being validated and committed (non-reentrant)
    3. completed: every row committed
    4. partial: some rows committed, some rejected
    5. failed: every row rejected, or the job aborted before/while processing

    COUNTERS:
    success_count + failed_count == processed_rows <= total_rows, and none of
    them ever decreases while processing. Counters are persisted after every
    row so pollers see progress mid-batch.

    errors holds {row, field, message, data} dicts (data is the raw row
    snapshot). warnings holds {row, field, url, message} dicts for images that
    could not be re-hosted; those rows still succeeded.
    """
    __tablename__ = "bulk_uploads"
    __table_args__ = (
        db.Index("ix_bulk_uploads_shop_status", "shop_id", "status"),
        db.Index("ix_bulk_uploads_uploader_created", "uploaded_by_user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    uploaded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    # Source artifact: backup URL when the copy succeeded, local path otherwise
    file_name = db.Column(db.String(255), nullable=False)
    file_url = db.Column(db.String(1024), nullable=False)
    file_public_id = db.Column(db.String(512), nullable=True)

    total_rows = db.Column(db.Integer, nullable=False, default=0)
    processed_rows = db.Column(db.Integer, nullable=False, default=0)
    success_count = db.Column(db.Integer, nullable=False, default=0)
    failed_count = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)

    errors = db.Column(db.JSON, nullable=False, default=list)
    warnings = db.Column(db.JSON, nullable=False, default=list)

    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    processing_time_seconds = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    shop = db.relationship("Shop", backref=db.backref("bulk_uploads", lazy=True))
    uploaded_by = db.relationship("User", foreign_keys=[uploaded_by_user_id])

    @property
    def progress(self) -> int:
        return progress_percent(self.processed_rows, self.total_rows)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def start(self, now) -> None:
        if self.status != STATUS_PENDING:
            raise InvalidTransitionError(
                f"Bulk upload {self.id} cannot start from status '{self.status}'"
            )
        self.status = STATUS_PROCESSING
        self.started_at = now

    def finish(self, status: str, now, processing_time_seconds: int) -> None:
        if self.status != STATUS_PROCESSING:
            raise InvalidTransitionError(
                f"Bulk upload {self.id} cannot finish from status '{self.status}'"
            )
        if status not in TERMINAL_STATUSES:
            raise InvalidTransitionError(f"'{status}' is not a terminal status")
        self.status = status
        self.completed_at = now
        self.processing_time_seconds = processing_time_seconds

    def to_dict(self, include_errors: bool = True) -> dict:
        data = {
            "id": self.id,
            "shop_id": self.shop_id,
            "uploaded_by_user_id": self.uploaded_by_user_id,
            "uploaded_by": self.uploaded_by.to_summary() if self.uploaded_by else None,
            "file_name": self.file_name,
            "file_url": self.file_url,
            "file_public_id": self.file_public_id,
            "total_rows": self.total_rows,
            "processed_rows": self.processed_rows,
            "success_count": self.success_count,
            "failed_count": self.failed_count,
            "status": self.status,
            "progress": self.progress,
            "error_count": len(self.errors or []),
            "warning_count": len(self.warnings or []),
            "started_at": to_utc_z(self.started_at) if self.started_at else None,
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "processing_time_seconds": self.processing_time_seconds,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_errors:
            data["errors"] = list(self.errors or [])
            data["warnings"] = list(self.warnings or [])
        return data
