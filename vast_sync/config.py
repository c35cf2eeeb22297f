"""
Configuration: workbook contract, hierarchy constants, environment settings.

Everything the engine needs to know about the source workbook (sheet names,
header names) and about the organisation (areas, supervisor accounts,
employee-id prefixes) lives here as module-level constants. Credentials and
endpoints come from the environment through :class:`Settings`.
"""

from pathlib import Path

from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

# ---------------------------------------------------------------------------
# File paths: adjust these if the source workbook moves
# ---------------------------------------------------------------------------
DATA_DIR = Path(__file__).resolve().parent.parent

WORKBOOK_FILE = DATA_DIR / "Data Sheet Vast (2).xlsx"

# ---------------------------------------------------------------------------
# Workbook contract (sheet and header names are fixed upstream)
# ---------------------------------------------------------------------------
STORES_SHEET = "Database Toko"
PROMOTERS_SHEET = "Database Promotor"
LEGACY_SALES_SHEET = "Sheet21"
FINANCE_MASTER_SHEET = "Master Data All"
FINANCE_LOOKUP_SHEET = "Data Penjualan Bersih"

STORE_COLUMNS = {
    "id": "ID Toko",
    "name": "Nama Toko",
    "city": "Kota",
    "area_detail": "Area Detail",
}

PROMOTER_COLUMNS = {
    "name": "Promotor",
    "sator": "Sator",
    "target": "Target Pengajuan",
    "store_id": "ID Toko Penempatan",
}

# Note the space inside "ID _TOKO": that is how the header is spelled upstream.
LEGACY_SALES_COLUMNS = {
    "date": "TANGGAL",
    "promoter": "NAMA_PROMOTOR",
    "status": "STATUS_PENGAJUAN",
    "store_id": "ID _TOKO",
}

FINANCE_PROMOTER_COLUMNS = ("Nama Promotor",) + tuple(
    f"Nama Promotor_{i}" for i in range(1, 9)
)

FINANCE_MASTER_COLUMNS = {
    "date": "Timestamp",
    "status": "Status pengajuan",
    "area": "Area",
    "phone_type": "Tipe HP VIVO yang diambil konsumen",
    "customer_name": "Nama Pemohon Kredit",
    "customer_phone": "Nomor Telepon Pemohon Kredit",
    "pekerjaan": "Pekerjaan Pemohon Kredit",
    "penghasilan": "Penghasilan Bulanan Pemohon Kredit",
    "npwp": "Apakah ada NPWP",
    "limit_amount": "Total limit yang didapatkan",
    "proof_image_url": "Upload bukti pengajuan",
}

FINANCE_LOOKUP_COLUMNS = {
    "key": "Timestamp",
    "store_id": "ID Toko",
    "sator": "Sator",
    "area": "Area",
    "phone_type": "Tipe hp",
    "promoter": "Nama Promotor",
    "status": "Status",
}

# ---------------------------------------------------------------------------
# Organisation
# ---------------------------------------------------------------------------
AREA_KUPANG = "KUPANG"
AREA_KABUPATEN = "KABUPATEN"
AREA_SUMBA = "SUMBA"
AREAS = (AREA_KUPANG, AREA_KABUPATEN, AREA_SUMBA)

# Unmatched store area labels fall back to this area.
DEFAULT_AREA = AREA_KUPANG

EMPLOYEE_ID_PREFIXES: dict[str, str] = {
    AREA_KUPANG: "KPG",
    AREA_KABUPATEN: "KBP",
    AREA_SUMBA: "SMB",
}

# Supervisor (spv_area) account responsible for the promoters of each area.
SPV_MAPPING: dict[str, str] = {
    AREA_KUPANG: "gery.spv@vast.com",
    AREA_KABUPATEN: "wilibrodus@vast.com",
    AREA_SUMBA: "anfal@vast.com",
}

AREA_MANAGERS: dict[str, str] = {
    AREA_KUPANG: "Gery B. Dahoklory",
    AREA_KABUPATEN: "Wilibrodus Samara",
    AREA_SUMBA: "Anfal Jupriadi",
}

# (area, sator) pairs listed in the hierarchy even when no agent is assigned.
HIERARCHY_SATORS: tuple[tuple[str, str], ...] = (
    (AREA_KUPANG, "TUTOR ANDRI RUDOLOF ELI MANAFE"),
    (AREA_KUPANG, "TUTOR ANTONIO DE JANAIRO TOMASOEY"),
    (AREA_KABUPATEN, "SPV WILIBRODUS R MANEK SAMARA"),
    (AREA_KABUPATEN, "TUTOR HERY YULIUS DILLAK"),
    (AREA_KABUPATEN, "TUTOR LEU ADOLF QICHEN LEI BAIT"),
    (AREA_KABUPATEN, "TUTOR MARSELUS M LAMBO"),
    (AREA_KABUPATEN, "TUTOR YACOB CHRISTIAN BOLING"),
    (AREA_SUMBA, "SPV ANFAL JUPRIADI AMBU WARU"),
    (AREA_SUMBA, "TUTOR KUSMYATI KILIMANDU"),
)

ROLE_SUPER_ADMIN = "super_admin"
ROLE_MANAGER_AREA = "manager_area"
ROLE_SPV_AREA = "spv_area"
ROLE_SATOR = "sator"
ROLE_PROMOTER = "promoter"
ROLES = (ROLE_SUPER_ADMIN, ROLE_MANAGER_AREA, ROLE_SPV_AREA, ROLE_SATOR, ROLE_PROMOTER)

DEFAULT_PROMOTER_CATEGORY = "official"

# ---------------------------------------------------------------------------
# Fact tables and the cutover seam
# ---------------------------------------------------------------------------
LEGACY_TABLE = "sales"
SUCCESSOR_TABLE = "vast_finance_applications"

# First day that belongs to the successor table.
CUTOVER_DATE = "2025-12-01"

# Legacy history starts in September; August rows are dropped on import.
LEGACY_HISTORY_START = "2025-09-01"

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
EXCEL_EPOCH = "1899-12-30"
SALES_BATCH_SIZE = 1000
FINANCE_BATCH_SIZE = 500
IMAGE_RETENTION_DAYS = 30
PIN_LENGTH = 4
BCRYPT_ROUNDS = 10


# ---------------------------------------------------------------------------
# Environment settings
# ---------------------------------------------------------------------------
class Settings(BaseSettings):
    database_url: str | None = None
    import_created_by_user_id: str | None = None
    cron_secret: str | None = None
    default_promoter_pin: str = "1234"
    bcrypt_rounds: int = BCRYPT_ROUNDS
    cloudinary_cloud_name: str | None = None
    cloudinary_api_key: str | None = None
    cloudinary_api_secret: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="", case_sensitive=False, extra="ignore"
    )

    def require_database_url(self) -> str:
        if not self.database_url:
            raise ConfigurationError("DATABASE_URL is not set")
        return self.database_url

    def require_actor_id(self) -> str:
        if not self.import_created_by_user_id:
            raise ConfigurationError(
                "IMPORT_CREATED_BY_USER_ID is not set (user id to attribute inserts)"
            )
        return self.import_created_by_user_id

    def require_cloudinary(self) -> tuple[str, str, str]:
        """(cloud name, api key, api secret) for the image host."""
        values = {
            "CLOUDINARY_CLOUD_NAME": self.cloudinary_cloud_name,
            "CLOUDINARY_API_KEY": self.cloudinary_api_key,
            "CLOUDINARY_API_SECRET": self.cloudinary_api_secret,
        }
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise ConfigurationError(f"missing Cloudinary settings: {', '.join(missing)}")
        return self.cloudinary_cloud_name, self.cloudinary_api_key, self.cloudinary_api_secret


def get_settings(**overrides) -> Settings:
    """Read settings from the environment and ``.env`` at call time."""
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        fields = ", ".join(str(err["loc"][0]).upper() for err in exc.errors() if err.get("loc"))
        raise ConfigurationError(f"invalid settings: {fields or exc}") from exc
