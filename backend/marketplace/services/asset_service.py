# Overview: Re-hosts a row's external images into platform object storage.

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..extensions import object_store
from .row_validator import ImageSources
from .storage_service import IMAGE_PREFIX, ObjectStoreError, StoredObject

logger = logging.getLogger(__name__)


@dataclass
class RowAssets:
    icon1: StoredObject | None = None
    icon2: list[StoredObject] = field(default_factory=list)
    meta_image: StoredObject | None = None
    warnings: list[dict] = field(default_factory=list)

    def to_fields(self) -> dict:
        """Catalog entry columns for the successfully stored images."""
        return {
            "icon1": self.icon1.url if self.icon1 else None,
            "icon1_public_id": self.icon1.public_id if self.icon1 else None,
            "icon2": [image.url for image in self.icon2],
            "icon2_public_ids": [image.public_id for image in self.icon2],
            "meta_image": self.meta_image.url if self.meta_image else None,
            "meta_image_public_id": self.meta_image.public_id if self.meta_image else None,
        }


def _warning(row_number: int, field_name: str, url: str, exc: Exception) -> dict:
    return {
        "row": row_number,
        "field": field_name,
        "url": url,
        "message": f"Image could not be imported and was skipped: {exc}",
    }


def import_row_assets(images: ImageSources | None, row_number: int) -> RowAssets:
    """
    Fetch and store every image referenced by a validated row.

    Image failures never fail the row: the image is omitted and a warning
    is recorded instead.
    """
    assets = RowAssets()
    if images is None or images.is_empty():
        return assets

    def store(field_name: str, url: str) -> StoredObject | None:
        try:
            return object_store.import_from_url(url, prefix=IMAGE_PREFIX)
        except ObjectStoreError as exc:
            logger.warning("Row %d: skipping %s image %s: %s", row_number, field_name, url, exc)
            assets.warnings.append(_warning(row_number, field_name, url, exc))
            return None

    if images.icon1:
        assets.icon1 = store("icon1Url", images.icon1)
    for url in images.icon2:
        stored = store("icon2Urls", url)
        if stored is not None:
            assets.icon2.append(stored)
    if images.meta_image:
        assets.meta_image = store("metaImageUrl", images.meta_image)
    return assets
