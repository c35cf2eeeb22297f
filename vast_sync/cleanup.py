"""
Periodic cleanup of hosted images that belong to soft-deleted rows.

Rows soft-deleted more than ``IMAGE_RETENTION_DAYS`` ago lose their images:
each public id is destroyed in the asset store and the url/public-id columns
are cleared. An asset that is already gone counts as deleted. Every run
writes one ``image_cleanup_logs`` row.
"""

import hmac
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Protocol

import cloudinary
import cloudinary.uploader

from .config import IMAGE_RETENTION_DAYS
from .db.store import Collection, Database
from .exceptions import StoreError

logger = logging.getLogger(__name__)

CLEANUP_LOG_TYPE = "cloudinary_images"


class DeleteOutcome(Enum):
    DELETED = "ok"
    NOT_FOUND = "not found"
    ERROR = "error"


class AssetStore(Protocol):
    def destroy(self, public_id: str) -> DeleteOutcome: ...


class CloudinaryAssets:
    """AssetStore over the Cloudinary upload API."""

    def __init__(self, cloud_name: str, api_key: str, api_secret: str):
        cloudinary.config(
            cloud_name=cloud_name, api_key=api_key, api_secret=api_secret, secure=True
        )

    def destroy(self, public_id: str) -> DeleteOutcome:
        response = cloudinary.uploader.destroy(public_id, invalidate=True)
        result = response.get("result")
        try:
            return DeleteOutcome(result)
        except ValueError:
            logger.warning("Cloudinary returned %r for %s", result, public_id)
            return DeleteOutcome.ERROR


@dataclass
class CleanupResult:
    total_checked: int = 0
    deleted: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


def is_authorized_trigger(authorization: str | None, secret: str | None) -> bool:
    """Check an ``Authorization: Bearer <secret>`` header; no secret means no access."""
    if not secret or not authorization:
        return False
    return hmac.compare_digest(authorization, f"Bearer {secret}")


def _destroy(assets: AssetStore, public_id: str) -> str | None:
    """Destroy one asset; returns an error message or None on success."""
    try:
        outcome = assets.destroy(public_id)
    except Exception as exc:
        logger.warning("Destroying %s raised: %s", public_id, exc)
        return str(exc)
    if outcome in (DeleteOutcome.DELETED, DeleteOutcome.NOT_FOUND):
        return None
    return f"Unexpected result: {outcome.value}"


def _tally(result: CleanupResult, label: str, row_id: str, error: str | None) -> bool:
    if error is None:
        result.deleted += 1
        return True
    result.failed += 1
    result.errors.append(f"{label} {row_id}: {error}")
    return False


def _clear(result: CleanupResult, label: str, row_id: str, coll: Collection, values: dict) -> None:
    try:
        coll.update(values, coll.c.id == row_id)
    except StoreError as exc:
        logger.error("Could not clear image columns of %s %s: %s", label, row_id, exc)
        result.failed += 1
        result.errors.append(f"{label} {row_id}: {exc}")


def cleanup_deleted_images(
    db: Database,
    assets: AssetStore,
    now: datetime | None = None,
    retention_days: int = IMAGE_RETENTION_DAYS,
) -> CleanupResult:
    """Destroy the images of rows soft-deleted before the retention cutoff.

    Store failures are counted per row; the run always finishes and logs.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=retention_days)
    result = CleanupResult()

    apps = db.finance_applications
    try:
        expired_apps = apps.select(
            apps.c.deleted_at.is_not(None),
            apps.c.deleted_at < cutoff,
            columns=["id", "ktp_image_public_id", "proof_image_public_id"],
        )
    except StoreError as exc:
        logger.error("Could not read deleted finance applications: %s", exc)
        result.errors.append(f"Finance: {exc}")
        expired_apps = []

    for app in expired_apps:
        result.total_checked += 1
        if app["ktp_image_public_id"]:
            _tally(result, "KTP", app["id"], _destroy(assets, app["ktp_image_public_id"]))
        if app["proof_image_public_id"]:
            _tally(result, "Proof", app["id"], _destroy(assets, app["proof_image_public_id"]))
        _clear(
            result, "Finance", app["id"], apps,
            {
                "ktp_image_public_id": None,
                "ktp_image_url": None,
                "proof_image_public_id": None,
                "proof_image_url": None,
            },
        )

    sales = db.sales
    try:
        expired_sales = sales.select(
            sales.c.deleted_at.is_not(None),
            sales.c.image_public_id.is_not(None),
            sales.c.deleted_at < cutoff,
            columns=["id", "image_public_id"],
        )
    except StoreError as exc:
        logger.error("Could not read deleted sales: %s", exc)
        result.errors.append(f"Sales: {exc}")
        expired_sales = []

    for sale in expired_sales:
        result.total_checked += 1
        if _tally(result, "Sales", sale["id"], _destroy(assets, sale["image_public_id"])):
            _clear(result, "Sales", sale["id"], sales, {"image_public_id": None, "image_url": None})

    try:
        db.image_cleanup_logs.insert(
            {
                "type": CLEANUP_LOG_TYPE,
                "total_checked": result.total_checked,
                "deleted_count": result.deleted,
                "failed_count": result.failed,
                "errors": result.errors or None,
                "executed_at": now,
            }
        )
    except StoreError:
        logger.exception("Could not record cleanup run")

    logger.info(
        "Image cleanup: checked=%d deleted=%d failed=%d",
        result.total_checked, result.deleted, result.failed,
    )
    return result
