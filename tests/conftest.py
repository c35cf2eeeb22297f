import pytest

from vast_sync.config import ROLE_SPV_AREA, SPV_MAPPING, Settings
from vast_sync.db import connect
from vast_sync.simulator import generate_workbook_sheets, write_workbook


@pytest.fixture
def db():
    database = connect("sqlite:///:memory:", create_tables=True)
    yield database
    database.engine.dispose()


@pytest.fixture
def settings():
    return Settings(_env_file=None, database_url="sqlite:///:memory:", bcrypt_rounds=4)


@pytest.fixture
def workbook(tmp_path):
    return write_workbook(tmp_path / "vast.xlsx", generate_workbook_sheets(seed=7))


@pytest.fixture
def add_store(db):
    def _add(store_id, area_detail, name=None):
        return db.stores.insert({"id": store_id, "name": name or f"Toko {store_id}", "area_detail": area_detail})

    return _add


@pytest.fixture
def add_promoter(db):
    def _add(name, store_id, sator="TUTOR HERY YULIUS DILLAK", **extra):
        return db.promoters.insert(
            dict({"name": name, "sator": sator, "target": 10, "store_id": store_id, "is_active": True}, **extra)
        )

    return _add


@pytest.fixture
def add_supervisors(db):
    """Insert spv_area accounts for the given areas (all areas by default)."""

    def _add(areas=tuple(SPV_MAPPING)):
        return {
            area: db.user_profiles.insert(
                {"email": SPV_MAPPING[area], "name": f"SPV {area}", "role": ROLE_SPV_AREA, "area": area}
            )
            for area in areas
        }

    return _add
