"""
Hierarchy assignment: area → supervisor → promoter.

Two jobs live here:

``assign_promoters``
    Gives every active promoter without an account a promoter login: an
    employee id (``KPG001``, ``KBP001``, ``SMB001`` ...), a PIN hash, the
    supervisor of its area and its canonical area. Creating the account and
    linking the promoter are two separate writes; if the link fails the new
    account is deleted again.

``rebuild_hierarchy``
    Recomputes the ``area_hierarchy`` table from scratch: active promoter
    counts per (area, sator), plus manager and sator account ids.

Assumptions
-----------
- A promoter's area comes from its store's ``Area Detail`` label; a missing
  store falls back to the default area.
- Employee-id numbers are never reused: the sequence starts after the
  highest number already issued for each prefix.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable

import pandas as pd

from .config import (
    AREA_MANAGERS,
    AREAS,
    DEFAULT_PROMOTER_CATEGORY,
    EMPLOYEE_ID_PREFIXES,
    HIERARCHY_SATORS,
    ROLE_PROMOTER,
    SPV_MAPPING,
)
from .db.store import Database
from .exceptions import StoreError
from .loaders.utils import is_blank
from .normalizers import map_store_area

logger = logging.getLogger(__name__)

_EMPLOYEE_ID_PATTERN = re.compile(r"^([A-Z]{3})(\d+)$")


def generate_employee_id(area: str, seq: int) -> str:
    """``generate_employee_id("KABUPATEN", 2) -> "KBP002"``."""
    return f"{EMPLOYEE_ID_PREFIXES[area]}{seq:03d}"


@dataclass
class AreaSequence:
    """Per-area employee-id counter, advanced in processing order."""

    last: dict[str, int] = field(default_factory=lambda: {area: 0 for area in AREAS})

    @classmethod
    def seeded(cls, employee_ids: Iterable[str | None]) -> "AreaSequence":
        by_prefix = {prefix: area for area, prefix in EMPLOYEE_ID_PREFIXES.items()}
        seq = cls()
        for employee_id in employee_ids:
            match = _EMPLOYEE_ID_PATTERN.match(employee_id or "")
            if not match or match.group(1) not in by_prefix:
                continue
            area = by_prefix[match.group(1)]
            seq.last[area] = max(seq.last[area], int(match.group(2)))
        return seq

    def next_id(self, area: str) -> str:
        self.last[area] = self.last.get(area, 0) + 1
        return generate_employee_id(area, self.last[area])


def _issued_employee_ids(db: Database) -> list[str]:
    ids = [r["employee_id"] for r in db.promoters.select(columns=["employee_id"])]
    ids += [r["employee_id"] for r in db.user_profiles.select(columns=["employee_id"])]
    return [i for i in ids if i]


def _store_areas(db: Database) -> dict[str, str | None]:
    return {s["id"]: s["area_detail"] for s in db.stores.select(columns=["id", "area_detail"])}


# ---------------------------------------------------------------------------
# Promoter accounts
# ---------------------------------------------------------------------------

@dataclass
class AssignmentResult:
    promoter_name: str
    success: bool
    employee_id: str | None = None
    area: str | None = None
    spv_email: str | None = None
    error: str | None = None


@dataclass
class AssignmentReport:
    total: int = 0
    results: list[AssignmentResult] = field(default_factory=list)
    skipped: list[AssignmentResult] = field(default_factory=list)
    area_counts: dict[str, int] = field(default_factory=lambda: {area: 0 for area in AREAS})

    @property
    def succeeded(self) -> list[AssignmentResult]:
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> list[AssignmentResult]:
        return [r for r in self.results if not r.success]


def assign_promoters(
    db: Database,
    pin_hash: str,
    now: datetime | None = None,
) -> AssignmentReport:
    """Create promoter accounts for active, unlinked promoters.

    Parameters
    ----------
    pin_hash : hash of the default PIN every new account starts with.

    Returns
    -------
    AssignmentReport. Promoters whose area has no supervisor account are in
    ``skipped``; store failures are in ``results`` with ``success=False``.
    """
    promoters = db.promoters
    users = db.user_profiles
    now = now or datetime.now(timezone.utc)

    pending = promoters.select(
        promoters.c.is_active.is_(True),
        promoters.c.user_id.is_(None),
        order_by="created_at",
    )
    report = AssignmentReport(total=len(pending))
    if not pending:
        logger.info("No promoters to assign (all active promoters have accounts)")
        return report

    store_areas = _store_areas(db)
    spvs = {
        u["email"]: u
        for u in users.select(users.c.email.in_(list(SPV_MAPPING.values())), columns=["id", "email"])
    }
    logger.info("Assigning %d promoters (%d supervisor accounts found)", len(pending), len(spvs))
    seq = AreaSequence.seeded(_issued_employee_ids(db))

    for promoter in pending:
        area = map_store_area(store_areas.get(promoter["store_id"]))
        employee_id = seq.next_id(area)
        spv_email = SPV_MAPPING[area]
        spv = spvs.get(spv_email)

        if spv is None:
            logger.warning(
                "No supervisor account %s for area %s, skipping promoter %s",
                spv_email, area, promoter["name"],
            )
            report.skipped.append(
                AssignmentResult(
                    promoter["name"], False, area=area, spv_email=spv_email,
                    error=f"supervisor {spv_email} not found",
                )
            )
            continue

        try:
            account = users.insert(
                {
                    "name": promoter["name"],
                    "role": ROLE_PROMOTER,
                    "area": area,
                    "employee_id": employee_id,
                    "pin_hash": pin_hash,
                    "is_active": True,
                }
            )
        except StoreError as exc:
            report.results.append(
                AssignmentResult(promoter["name"], False, employee_id, area, spv_email, str(exc))
            )
            continue

        try:
            promoters.update(
                {
                    "user_id": account["id"],
                    "spv_id": spv["id"],
                    "area": area,
                    "employee_id": employee_id,
                    "category": DEFAULT_PROMOTER_CATEGORY,
                    "updated_at": now,
                },
                promoters.c.id == promoter["id"],
            )
        except StoreError as exc:
            error = str(exc)
            try:
                users.delete(users.c.id == account["id"])
            except StoreError as rollback_exc:
                logger.exception("Rollback of account %s failed", employee_id)
                error = f"{error}; rollback failed: {rollback_exc}"
            report.results.append(
                AssignmentResult(promoter["name"], False, employee_id, area, spv_email, error)
            )
            continue

        report.area_counts[area] += 1
        report.results.append(AssignmentResult(promoter["name"], True, employee_id, area, spv_email))
        logger.info("%s - %s (%s)", employee_id, promoter["name"], area)

    logger.info(
        "Promoter assignment: %d succeeded, %d failed, %d skipped",
        len(report.succeeded), len(report.failed), len(report.skipped),
    )
    return report


# ---------------------------------------------------------------------------
# Area hierarchy
# ---------------------------------------------------------------------------

@dataclass
class HierarchyReport:
    entries: pd.DataFrame
    deleted: int = 0
    inserted: int = 0
    error: str | None = None


def count_agents(promoters: pd.DataFrame, store_areas: dict[str, str | None]) -> pd.DataFrame:
    """Active promoter counts per (area, sator).

    Returns
    -------
    DataFrame with columns: area, sator_name, promoter_count
    """
    columns = ["area", "sator_name", "promoter_count"]
    if promoters.empty:
        return pd.DataFrame(columns=columns)

    df = promoters[promoters["is_active"].astype(bool)].copy()
    df["area"] = [
        area if not is_blank(area) else map_store_area(store_areas.get(store_id))
        for area, store_id in zip(df["area"], df["store_id"])
    ]
    counts = df.groupby(["area", "sator"]).size().reset_index(name="promoter_count")
    return counts.rename(columns={"sator": "sator_name"})[columns]


def build_hierarchy(counts: pd.DataFrame, users: pd.DataFrame) -> pd.DataFrame:
    """Attach configured pairs, manager names and account ids to the counts."""
    configured = pd.DataFrame(list(HIERARCHY_SATORS), columns=["area", "sator_name"])
    df = configured.merge(counts, on=["area", "sator_name"], how="outer")
    df["promoter_count"] = df["promoter_count"].fillna(0).astype(int)
    df = df.sort_values(["area", "sator_name"]).reset_index(drop=True)
    df["manager_name"] = df["area"].map(AREA_MANAGERS)

    managers, sators = {}, {}
    if not users.empty:
        for user in users.to_dict("records"):
            if user["role"] != ROLE_PROMOTER:
                managers.setdefault(user["name"], user["id"])
                if not is_blank(user["sator_name"]):
                    sators.setdefault(user["sator_name"], user["id"])
    df["manager_user_id"] = df["manager_name"].map(managers)
    df["sator_user_id"] = df["sator_name"].map(sators)
    # NaN from unmatched lookups must reach the store as NULL
    return df.astype(object).where(df.notna(), None)


def rebuild_hierarchy(db: Database) -> HierarchyReport:
    """Delete every hierarchy row and insert a freshly computed set."""
    promoters = pd.DataFrame(
        db.promoters.select(columns=["name", "sator", "store_id", "area", "is_active"]),
        columns=["name", "sator", "store_id", "area", "is_active"],
    )
    users = pd.DataFrame(
        db.user_profiles.select(columns=["id", "name", "role", "sator_name"]),
        columns=["id", "name", "role", "sator_name"],
    )
    counts = count_agents(promoters, _store_areas(db))
    entries = build_hierarchy(counts, users)
    report = HierarchyReport(entries=entries)

    for row in entries.to_dict("records"):
        logger.info("%s / %s: %d promoters", row["area"], row["sator_name"], row["promoter_count"])

    try:
        report.deleted = db.area_hierarchy.delete()
        report.inserted = db.area_hierarchy.insert_many(entries.to_dict("records"))
    except StoreError as exc:
        logger.exception("Hierarchy rebuild failed")
        report.error = str(exc)
        return report

    logger.info("Rebuilt area hierarchy: %d removed, %d inserted", report.deleted, report.inserted)
    return report
