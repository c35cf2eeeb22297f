import pandas as pd
import pytest

from vast_sync.config import HIERARCHY_SATORS, ROLE_MANAGER_AREA, ROLE_PROMOTER, ROLE_SATOR
from vast_sync.credentials import hash_pin
from vast_sync.exceptions import StoreError
from vast_sync.hierarchy import (
    AreaSequence,
    assign_promoters,
    count_agents,
    generate_employee_id,
    rebuild_hierarchy,
)

PIN_HASH = hash_pin("1234")


def _promoter(db, name):
    return db.promoters.first(db.promoters.c.name == name)


def test_generate_employee_id():
    assert generate_employee_id("KUPANG", 1) == "KPG001"
    assert generate_employee_id("KABUPATEN", 2) == "KBP002"
    assert generate_employee_id("SUMBA", 120) == "SMB120"


def test_area_sequence_starts_after_issued_ids():
    seq = AreaSequence.seeded(["KPG007", "KPG003", "KBP002", "XYZ010", "junk", None])
    assert seq.next_id("KUPANG") == "KPG008"
    assert seq.next_id("KABUPATEN") == "KBP003"
    assert seq.next_id("SUMBA") == "SMB001"
    assert seq.next_id("SUMBA") == "SMB002"


def test_second_kabupaten_agent_gets_kbp002(db, add_store, add_promoter, add_supervisors):
    spvs = add_supervisors()
    add_store("S1", "Kab. TTS")
    add_store("S2", "Kec. Kabupaten Timur")
    add_store("S3", "Kota Kupang")
    add_promoter("Ana", "S1")
    add_promoter("Budi", "S3")
    add_promoter("Citra", "S2")

    report = assign_promoters(db, PIN_HASH)

    assert len(report.succeeded) == 3
    assert report.area_counts == {"KUPANG": 1, "KABUPATEN": 2, "SUMBA": 0}

    citra = _promoter(db, "Citra")
    assert citra["employee_id"] == "KBP002"
    assert citra["area"] == "KABUPATEN"
    assert citra["spv_id"] == spvs["KABUPATEN"]["id"]
    assert citra["category"] == "official"
    assert citra["updated_at"] is not None

    account = db.user_profiles.first(db.user_profiles.c.id == citra["user_id"])
    assert account["role"] == ROLE_PROMOTER
    assert account["employee_id"] == "KBP002"
    assert account["pin_hash"] == PIN_HASH
    assert account["password_hash"] is None

    assert _promoter(db, "Budi")["employee_id"] == "KPG001"


def test_missing_store_defaults_to_kupang(db, add_promoter, add_supervisors):
    add_supervisors()
    add_promoter("Ana", "NOPE")
    report = assign_promoters(db, PIN_HASH)
    assert report.results[0].employee_id == "KPG001"
    assert report.results[0].area == "KUPANG"


def test_agent_without_supervisor_is_skipped(db, add_store, add_promoter, add_supervisors):
    add_supervisors(["KUPANG", "KABUPATEN"])
    add_store("S1", "Sumba Timur")
    add_store("S2", "Kota Kupang")
    add_promoter("Ana", "S1")
    add_promoter("Budi", "S2")

    report = assign_promoters(db, PIN_HASH)

    assert [r.promoter_name for r in report.skipped] == ["Ana"]
    assert report.skipped[0].spv_email == "anfal@vast.com"
    assert [r.promoter_name for r in report.succeeded] == ["Budi"]
    assert _promoter(db, "Ana")["user_id"] is None


def test_linked_and_inactive_promoters_are_not_reassigned(db, add_store, add_promoter, add_supervisors):
    add_supervisors()
    add_store("S1", "Kota Kupang")
    add_promoter("Ana", "S1")
    add_promoter("Budi", "S1", is_active=False)

    first = assign_promoters(db, PIN_HASH)
    second = assign_promoters(db, PIN_HASH)

    assert first.total == 1
    assert second.total == 0
    assert db.user_profiles.count(db.user_profiles.c.role == ROLE_PROMOTER) == 1


def test_new_agents_after_earlier_run_continue_the_sequence(db, add_store, add_promoter, add_supervisors):
    add_supervisors()
    add_store("S1", "Kota Kupang")
    add_promoter("Ana", "S1")
    assign_promoters(db, PIN_HASH)

    add_promoter("Budi", "S1")
    report = assign_promoters(db, PIN_HASH)
    assert report.results[0].employee_id == "KPG002"


def test_failed_link_rolls_back_account(db, add_store, add_promoter, add_supervisors, monkeypatch):
    add_supervisors()
    add_store("S1", "Kota Kupang")
    add_promoter("Ana", "S1")

    def broken_update(values, *where):
        raise StoreError("update failed", table="promoters")

    monkeypatch.setattr(db.promoters, "update", broken_update)
    report = assign_promoters(db, PIN_HASH)

    assert len(report.failed) == 1
    assert "update failed" in report.failed[0].error
    assert db.user_profiles.count(db.user_profiles.c.role == ROLE_PROMOTER) == 0


def test_failed_rollback_is_reported(db, add_store, add_promoter, add_supervisors, monkeypatch):
    add_supervisors()
    add_store("S1", "Kota Kupang")
    add_promoter("Ana", "S1")

    def broken(*args, **kwargs):
        raise StoreError("down")

    monkeypatch.setattr(db.promoters, "update", broken)
    monkeypatch.setattr(db.user_profiles, "delete", broken)
    report = assign_promoters(db, PIN_HASH)

    assert "rollback failed" in report.failed[0].error


# ---------------------------------------------------------------------------
# Area hierarchy
# ---------------------------------------------------------------------------

def test_count_agents_uses_canonical_area_then_store():
    promoters = pd.DataFrame(
        [
            {"name": "A", "sator": "T1", "store_id": "S1", "area": "SUMBA", "is_active": True},
            {"name": "B", "sator": "T1", "store_id": "S1", "area": None, "is_active": True},
            {"name": "C", "sator": "T1", "store_id": "S1", "area": None, "is_active": False},
        ]
    )
    counts = count_agents(promoters, {"S1": "Kec. Kabupaten Timur"})
    assert counts.values.tolist() == [["KABUPATEN", "T1", 1], ["SUMBA", "T1", 1]]


def test_rebuild_hierarchy(db, add_store, add_promoter):
    db.user_profiles.insert({"email": "m@vast.com", "name": "Wilibrodus Samara", "role": ROLE_MANAGER_AREA, "area": "KABUPATEN"})
    sator = db.user_profiles.insert(
        {"email": "h@vast.com", "name": "Hery", "role": ROLE_SATOR, "area": "KABUPATEN",
         "sator_name": "TUTOR HERY YULIUS DILLAK"}
    )
    add_store("S1", "Kec. Kabupaten Timur")
    add_promoter("Ana", "S1")
    add_promoter("Budi", "S1")
    add_promoter("Citra", "S1", is_active=False)
    add_promoter("Dewi", "S1", sator="TUTOR BARU")

    report = rebuild_hierarchy(db)

    assert report.error is None
    assert report.inserted == len(HIERARCHY_SATORS) + 1
    rows = {(r["area"], r["sator_name"]): r for r in db.area_hierarchy.select()}
    hery = rows[("KABUPATEN", "TUTOR HERY YULIUS DILLAK")]
    assert hery["promoter_count"] == 2
    assert hery["manager_name"] == "Wilibrodus Samara"
    assert hery["sator_user_id"] == sator["id"]
    assert hery["manager_user_id"] is not None
    assert rows[("KABUPATEN", "TUTOR BARU")]["promoter_count"] == 1
    assert rows[("SUMBA", "TUTOR KUSMYATI KILIMANDU")]["promoter_count"] == 0
    assert rows[("SUMBA", "TUTOR KUSMYATI KILIMANDU")]["sator_user_id"] is None


def test_rebuild_hierarchy_is_idempotent(db, add_store, add_promoter):
    add_store("S1", "Kota Kupang")
    add_promoter("Ana", "S1", sator="TUTOR ANDRI RUDOLOF ELI MANAFE")

    rebuild_hierarchy(db)
    first = sorted((r["area"], r["sator_name"], r["promoter_count"]) for r in db.area_hierarchy.select())
    rebuild_hierarchy(db)
    second = sorted((r["area"], r["sator_name"], r["promoter_count"]) for r in db.area_hierarchy.select())

    assert first == second
    assert db.area_hierarchy.count() == len(HIERARCHY_SATORS)
