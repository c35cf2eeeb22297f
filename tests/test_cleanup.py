from datetime import date, datetime, timedelta, timezone

import cloudinary
import cloudinary.uploader
import pytest

from vast_sync.cleanup import (
    CloudinaryAssets,
    DeleteOutcome,
    cleanup_deleted_images,
    is_authorized_trigger,
)
from vast_sync.exceptions import ConfigurationError, StoreError
from vast_sync.pipeline import run_cleanup

NOW = datetime(2026, 2, 1, 3, 0, tzinfo=timezone.utc)


class FakeAssets:
    def __init__(self, outcomes=None):
        self.outcomes = outcomes or {}
        self.destroyed = []

    def destroy(self, public_id):
        self.destroyed.append(public_id)
        outcome = self.outcomes.get(public_id, DeleteOutcome.DELETED)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _application(public_id, deleted_days_ago):
    return {
        "sale_date": date(2025, 12, 2),
        "status_pengajuan": "ACC",
        "customer_name": "X",
        "customer_phone": "0",
        "pekerjaan": "PNS",
        "ktp_image_public_id": f"ktp/{public_id}",
        "ktp_image_url": f"https://img/ktp/{public_id}",
        "proof_image_public_id": f"proof/{public_id}",
        "proof_image_url": f"https://img/proof/{public_id}",
        "deleted_at": None if deleted_days_ago is None else NOW - timedelta(days=deleted_days_ago),
    }


def _sale(public_id, deleted_days_ago):
    return {
        "sale_date": date(2025, 11, 2),
        "promoter_name": "P",
        "status": "ACC",
        "image_public_id": public_id,
        "image_url": f"https://img/{public_id}",
        "deleted_at": NOW - timedelta(days=deleted_days_ago),
    }


def test_only_old_soft_deleted_rows_are_cleaned(db):
    db.finance_applications.insert_many([_application("old", 40), _application("recent", 10), _application("live", None)])
    assets = FakeAssets()

    result = cleanup_deleted_images(db, assets, now=NOW)

    assert assets.destroyed == ["ktp/old", "proof/old"]
    assert (result.total_checked, result.deleted, result.failed) == (1, 2, 0)
    apps = {r["ktp_image_url"] for r in db.finance_applications.select()}
    assert apps == {None, "https://img/ktp/recent", "https://img/ktp/live"}


def test_not_found_counts_as_deleted(db):
    db.finance_applications.insert_many([_application("gone", 45)])
    assets = FakeAssets({"ktp/gone": DeleteOutcome.NOT_FOUND})

    result = cleanup_deleted_images(db, assets, now=NOW)

    assert result.deleted == 2
    assert result.failed == 0


def test_failed_sale_image_keeps_its_public_id(db):
    db.sales.insert_many([_sale("bad", 31), _sale("boom", 31), _sale("good", 31)])
    assets = FakeAssets({"bad": DeleteOutcome.ERROR, "boom": RuntimeError("timeout")})

    result = cleanup_deleted_images(db, assets, now=NOW)

    assert (result.total_checked, result.deleted, result.failed) == (3, 1, 2)
    remaining = sorted(r["image_public_id"] for r in db.sales.select() if r["image_public_id"])
    assert remaining == ["bad", "boom"]
    assert any("timeout" in e for e in result.errors)


def test_every_run_is_logged(db):
    db.sales.insert_many([_sale("bad", 31)])
    cleanup_deleted_images(db, FakeAssets({"bad": DeleteOutcome.ERROR}), now=NOW)
    cleanup_deleted_images(db, FakeAssets(), now=NOW + timedelta(hours=1))

    logs = db.image_cleanup_logs.select(order_by="executed_at")
    assert len(logs) == 2
    assert logs[0]["type"] == "cloudinary_images"
    assert logs[0]["failed_count"] == 1
    assert logs[0]["errors"] == ["Sales " + db.sales.select()[0]["id"] + ": Unexpected result: error"]
    assert logs[1]["errors"] is None


@pytest.mark.parametrize(
    "header, secret, expected",
    [
        ("Bearer s3cret", "s3cret", True),
        ("Bearer wrong", "s3cret", False),
        ("s3cret", "s3cret", False),
        (None, "s3cret", False),
        ("Bearer ", None, False),
        ("Bearer ", "", False),
    ],
)
def test_trigger_authorization(header, secret, expected):
    assert is_authorized_trigger(header, secret) is expected


def test_store_failure_is_counted_per_row(db, monkeypatch):
    db.finance_applications.insert_many([_application("a", 40), _application("b", 40)])
    db.sales.insert_many([_sale("s", 40)])

    def broken_update(values, *where):
        raise StoreError("update failed", table="vast_finance_applications")

    monkeypatch.setattr(db.finance_applications, "update", broken_update)
    result = cleanup_deleted_images(db, FakeAssets(), now=NOW)

    assert result.total_checked == 3
    assert result.deleted == 5
    assert result.failed == 2
    assert all("update failed" in e for e in result.errors)
    assert db.sales.select()[0]["image_public_id"] is None

    log = db.image_cleanup_logs.first()
    assert log["failed_count"] == 2
    assert len(log["errors"]) == 2


# ---------------------------------------------------------------------------
# Cloudinary adapter and the scheduled job
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "reply, outcome",
    [
        ({"result": "ok"}, DeleteOutcome.DELETED),
        ({"result": "not found"}, DeleteOutcome.NOT_FOUND),
        ({"result": "rate limited"}, DeleteOutcome.ERROR),
        ({}, DeleteOutcome.ERROR),
    ],
)
def test_cloudinary_results_map_to_outcomes(monkeypatch, reply, outcome):
    calls = []

    def fake_destroy(public_id, **options):
        calls.append(public_id)
        return reply

    monkeypatch.setattr(cloudinary.uploader, "destroy", fake_destroy)
    assets = CloudinaryAssets("demo", "key", "secret")

    assert assets.destroy("vast-sales/abc") is outcome
    assert calls == ["vast-sales/abc"]
    assert cloudinary.config().cloud_name == "demo"


def test_run_cleanup_requires_matching_trigger(db, settings):
    settings.cron_secret = "s3cret"
    db.sales.insert_many([_sale("old", 40)])

    with pytest.raises(ConfigurationError, match="rejected"):
        run_cleanup(db, settings, "Bearer nope", assets=FakeAssets())
    assert db.image_cleanup_logs.count() == 0

    result = run_cleanup(db, settings, "Bearer s3cret", assets=FakeAssets())
    assert result.deleted == 1
    assert db.image_cleanup_logs.count() == 1


def test_run_cleanup_needs_cron_secret_and_cloudinary(db, settings):
    with pytest.raises(ConfigurationError, match="CRON_SECRET"):
        run_cleanup(db, settings, "Bearer ")

    settings.cron_secret = "s3cret"
    with pytest.raises(ConfigurationError, match="CLOUDINARY_API_SECRET"):
        run_cleanup(db, settings, "Bearer s3cret")
