import pytest

import main
from vast_sync.config import ROLE_PROMOTER, SPV_MAPPING
from vast_sync.partition import LEGACY, SUCCESSOR
from vast_sync.pipeline import (
    legacy_window,
    run_assign,
    run_import_window,
    run_migrate_excel,
    run_populate_hierarchy,
    run_provision,
    run_verify,
    target_for_window,
)
from vast_sync.transforms import DateWindow

DECEMBER = DateWindow("2025-12-01", "2025-12-11")


def _live(coll):
    return coll.count(coll.c.deleted_at.is_(None))


def _write_spv_csv(path):
    lines = ["name,role,area,secret,email,employee_id,sator_name"]
    lines += [f"SPV {area},spv_area,{area},spv123,{email},," for area, email in SPV_MAPPING.items()]
    path.write_text("\n".join(lines) + "\n")
    return path


# ---------------------------------------------------------------------------
# Windows
# ---------------------------------------------------------------------------

def test_legacy_window_ends_the_day_before_cutover():
    assert legacy_window() == DateWindow("2025-09-01", "2025-11-30")


def test_target_for_window():
    assert target_for_window(DateWindow("2025-11-01", "2025-11-30")) is LEGACY
    assert target_for_window(DECEMBER) is SUCCESSOR
    with pytest.raises(ValueError, match="straddles"):
        target_for_window(DateWindow("2025-11-25", "2025-12-05"))


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------

def test_migrate_excel(db, workbook):
    result = run_migrate_excel(db, workbook, actor_id="u-1")

    assert result.entities["stores"].kept == 12
    assert result.entities["stores"].duplicates == 1
    assert result.stores.inserted == 12
    assert result.promoters.inserted == 12
    assert db.stores.count() == 12

    sales = result.sales
    assert sales.sales.blank_rows == 1
    assert sales.sales.failed_date_parse == 1
    assert sales.sales.empty_store_id == 1
    assert sales.sales.out_of_window > 0
    assert sales.reconcile.ok, sales.reconcile.verification.failures
    assert sales.reconcile.inserted == sales.sales.kept == db.sales.count()
    assert db.sales.min("sale_date").isoformat() >= "2025-09-01"


def test_migrate_excel_rerun_updates_in_place(db, workbook):
    first = run_migrate_excel(db, workbook)
    second = run_migrate_excel(db, workbook)

    assert (second.stores.inserted, second.stores.updated) == (0, 12)
    assert (second.promoters.inserted, second.promoters.updated) == (0, 12)
    assert second.sales.reconcile.target_deleted == first.sales.reconcile.inserted
    assert db.sales.count() == first.sales.reconcile.inserted


def test_import_window_into_successor(db, workbook):
    run_migrate_excel(db, workbook)
    result = run_import_window(db, workbook, DECEMBER, actor_id="u-1")

    assert result.reconcile.target == SUCCESSOR.name
    assert result.reconcile.ok, result.reconcile.verification.failures
    assert _live(db.finance_applications) == result.sales.kept
    assert result.sales.out_of_window > 0

    row = db.finance_applications.first()
    assert row["created_by_user_id"] == "u-1"
    assert row["customer_name"]

    assert run_verify(db).ok
    assert run_verify(db, window=DECEMBER).ok


def test_legacy_sheet_can_be_forced_into_successor(db, workbook):
    window = DateWindow("2025-11-01", "2025-11-30")
    run_migrate_excel(db, workbook)

    result = run_import_window(db, workbook, window, "u-1", target=SUCCESSOR, source="legacy")

    assert result.reconcile.conflicting_deleted > 0
    assert db.sales.count(db.sales.c.sale_date >= window.start_date) == 0
    # successor rows now sit before the cutover
    assert not result.reconcile.verification.ok


def test_provision_then_assign(db, workbook, settings, tmp_path):
    run_migrate_excel(db, workbook)
    provisioned = run_provision(db, _write_spv_csv(tmp_path / "spv.csv"), settings)
    assert all(r.success for r in provisioned)

    report = run_assign(db, settings)

    assert len(report.succeeded) == 12
    assert report.area_counts == {"KUPANG": 4, "KABUPATEN": 4, "SUMBA": 4}
    assert db.user_profiles.count(db.user_profiles.c.role == ROLE_PROMOTER) == 12
    assert run_assign(db, settings).total == 0

    hierarchy = run_populate_hierarchy(db)
    assert hierarchy.error is None
    assert sum(r["promoter_count"] for r in db.area_hierarchy.select()) == 12


def test_invalid_default_pin_is_a_configuration_error(db, settings):
    from vast_sync.exceptions import ConfigurationError

    settings.default_promoter_pin = "12"
    with pytest.raises(ConfigurationError, match="DEFAULT_PROMOTER_PIN"):
        run_assign(db, settings)


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------

@pytest.fixture
def cli_env(monkeypatch, tmp_path):
    for name in ("DATABASE_URL", "IMPORT_CREATED_BY_USER_ID", "DEFAULT_PROMOTER_PIN"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    monkeypatch.chdir(tmp_path)
    return monkeypatch


def test_cli_runs_each_job(cli_env, workbook, tmp_path, capsys):
    url = f"sqlite:///{tmp_path / 'vast.db'}"
    base = ["--database-url", url, "--create-tables"]

    assert main.main(base + ["migrate-excel", "--workbook", str(workbook)]) == 0
    assert main.main(base + ["provision-users", str(_write_spv_csv(tmp_path / "spv.csv"))]) == 0
    assert main.main(base + ["assign-promoters"]) == 0
    assert main.main(base + ["populate-hierarchy"]) == 0

    cli_env.setenv("IMPORT_CREATED_BY_USER_ID", "u-1")
    args = ["import-window", "--workbook", str(workbook), "--start", "2025-12-01", "--end", "2025-12-11"]
    assert main.main(base + args) == 0
    assert main.main(base + ["verify"]) == 0

    out = capsys.readouterr().out
    assert "Partition OK" in out
    assert "Done." in out


def test_cli_needs_database_url(cli_env, capsys):
    assert main.main(["verify"]) == 1
    assert "DATABASE_URL" in capsys.readouterr().err


def test_cli_import_needs_actor(cli_env, workbook, tmp_path, capsys):
    url = f"sqlite:///{tmp_path / 'vast.db'}"
    code = main.main(
        ["--database-url", url, "--create-tables", "import-window", "--workbook", str(workbook),
         "--start", "2025-12-01", "--end", "2025-12-11"]
    )
    assert code == 1
    assert "IMPORT_CREATED_BY_USER_ID" in capsys.readouterr().err


def test_cli_rejects_half_window(cli_env, tmp_path):
    url = f"sqlite:///{tmp_path / 'vast.db'}"
    assert main.main(["--database-url", url, "--create-tables", "verify", "--start", "2025-12-01"]) == 1


def test_cli_reports_invalid_settings(cli_env, tmp_path, capsys):
    cli_env.setenv("BCRYPT_ROUNDS", "many")
    url = f"sqlite:///{tmp_path / 'vast.db'}"
    assert main.main(["--database-url", url, "verify"]) == 1
    assert "BCRYPT_ROUNDS" in capsys.readouterr().err


def test_cli_cleanup_images(cli_env, tmp_path, capsys):
    url = f"sqlite:///{tmp_path / 'vast.db'}"
    base = ["--database-url", url, "--create-tables", "cleanup-images"]
    cli_env.setenv("CRON_SECRET", "s3cret")
    cli_env.setenv("CLOUDINARY_CLOUD_NAME", "demo")
    cli_env.setenv("CLOUDINARY_API_KEY", "key")
    cli_env.setenv("CLOUDINARY_API_SECRET", "secret")

    assert main.main(base + ["--authorization", "Bearer wrong"]) == 1
    assert "rejected" in capsys.readouterr().err

    # nothing is old enough to clean, so the image host is never called
    assert main.main(base + ["--authorization", "Bearer s3cret"]) == 0
    assert "Rows checked:    0" in capsys.readouterr().out
