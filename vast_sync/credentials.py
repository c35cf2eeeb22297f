"""
Credential provisioning for dashboard accounts.

Passwords are hashed with bcrypt. Promoter PINs are 4-digit strings hashed as
lowercase SHA-256 hex, the same digest the store's PIN login function
computes, so they cannot use a salted scheme. Plaintext secrets are never
written anywhere.

Accounts are upserted by natural key: ``email`` for password roles,
``employee_id`` for promoters.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import bcrypt
import pandas as pd

from .config import BCRYPT_ROUNDS, PIN_LENGTH, ROLE_PROMOTER, ROLES
from .db.store import Database
from .exceptions import StoreError
from .loaders.utils import clean_text

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------

def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    if not password:
        raise ValueError("password must not be empty")
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("ascii")


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("ascii"))
    except ValueError:
        logger.warning("Stored password hash is not a bcrypt hash")
        return False


def validate_pin(pin: str) -> str:
    pin = clean_text(pin)
    if len(pin) != PIN_LENGTH or not pin.isdigit():
        raise ValueError(f"PIN must be exactly {PIN_LENGTH} digits")
    return pin


def hash_pin(pin: str) -> str:
    return hashlib.sha256(validate_pin(pin).encode("utf-8")).hexdigest()


def verify_pin(pin: str, pin_hash: str | None) -> bool:
    if not pin_hash:
        return False
    try:
        candidate = hash_pin(pin)
    except ValueError:
        return False
    return hmac.compare_digest(candidate, pin_hash)


# ---------------------------------------------------------------------------
# Provisioning
# ---------------------------------------------------------------------------

@dataclass
class AccountSpec:
    """One account to provision. ``secret`` is a password, or a PIN for promoters."""

    name: str
    role: str
    area: str
    secret: str
    email: str | None = None
    employee_id: str | None = None
    sator_name: str | None = None

    @property
    def uses_pin(self) -> bool:
        return self.role == ROLE_PROMOTER

    @property
    def identity(self) -> str:
        return (self.employee_id if self.uses_pin else self.email) or self.name


@dataclass
class ProvisionResult:
    identity: str
    success: bool
    action: str
    message: str = ""


def _key_clause(db: Database, spec: AccountSpec):
    users = db.user_profiles
    if spec.uses_pin:
        if not spec.employee_id:
            raise ValueError("promoter accounts need an employee_id")
        return users.c.employee_id == spec.employee_id
    if not spec.email:
        raise ValueError(f"{spec.role} accounts need an email")
    return users.c.email == spec.email


def provision_account(db: Database, spec: AccountSpec, rounds: int = BCRYPT_ROUNDS) -> ProvisionResult:
    """Create or update a single account; errors come back as a failed result."""
    try:
        if spec.role not in ROLES:
            raise ValueError(f"unknown role {spec.role!r}")
        key = _key_clause(db, spec)
        values = {
            "name": spec.name,
            "role": spec.role,
            "area": spec.area,
            "sator_name": spec.sator_name,
            "is_active": True,
        }
        if spec.uses_pin:
            values["pin_hash"] = hash_pin(spec.secret)
        else:
            values["password_hash"] = hash_password(spec.secret, rounds)

        existing = db.user_profiles.first(key, columns=["id"])
        if existing:
            values["updated_at"] = datetime.now(timezone.utc)
            db.user_profiles.update(values, db.user_profiles.c.id == existing["id"])
            action = "updated"
        else:
            values["email"] = spec.email
            values["employee_id"] = spec.employee_id
            db.user_profiles.insert(values)
            action = "created"
    except (ValueError, StoreError) as exc:
        logger.error("Could not provision %s: %s", spec.identity, exc)
        return ProvisionResult(spec.identity, False, "failed", str(exc))

    logger.info("Account %s %s (%s, %s)", spec.identity, action, spec.role, spec.area)
    return ProvisionResult(spec.identity, True, action)


def provision_accounts(
    db: Database,
    specs: list[AccountSpec],
    rounds: int = BCRYPT_ROUNDS,
) -> list[ProvisionResult]:
    results = [provision_account(db, spec, rounds) for spec in specs]
    failed = sum(not r.success for r in results)
    logger.info("Provisioned %d accounts (%d failed)", len(results) - failed, failed)
    return results


def load_account_specs(path: str | Path) -> list[AccountSpec]:
    """Read account specs from a CSV with columns
    name, role, area, secret, email, employee_id, sator_name.
    """
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    missing = {"name", "role", "area", "secret"} - set(df.columns)
    if missing:
        raise ValueError(f"{path}: missing columns {sorted(missing)}")

    specs = []
    for record in df.to_dict("records"):
        specs.append(
            AccountSpec(
                name=clean_text(record["name"]),
                role=clean_text(record["role"]),
                area=clean_text(record["area"]),
                secret=clean_text(record["secret"]),
                email=clean_text(record.get("email")) or None,
                employee_id=clean_text(record.get("employee_id")) or None,
                sator_name=clean_text(record.get("sator_name")) or None,
            )
        )
    logger.info("Loaded %d account specs from %s", len(specs), path)
    return specs
