"""
Ordered free-text classifiers: sale status, applicant occupation, store area.

Each classifier is a tuple of ``(predicate, result)`` rules evaluated
first-match-wins. Rule order is significant: pending variants such as
"Dapat limit tapi belum ambil HP" also contain reject words, so the pending
rule must stay ahead of the reject rule.
"""

import logging
from enum import Enum
from typing import Any, Callable, Iterable, TypeVar

from .config import AREA_KABUPATEN, AREA_KUPANG, AREA_SUMBA, DEFAULT_AREA
from .loaders.utils import clean_text

logger = logging.getLogger(__name__)

T = TypeVar("T")

Rule = tuple[Callable[[str], bool], str]


class SaleStatus(str, Enum):
    ACC = "ACC"
    PENDING = "Pending"
    REJECT = "Reject"


# Labels the successor table uses for the canonical statuses.
FINANCE_STATUS_LABELS: dict[SaleStatus, str] = {
    SaleStatus.ACC: "ACC",
    SaleStatus.PENDING: "Dapat limit tapi belum proses",
    SaleStatus.REJECT: "Belum disetujui",
}


def _equals(word: str) -> Callable[[str], bool]:
    return lambda text: text == word


def _contains(*words: str) -> Callable[[str], bool]:
    return lambda text: any(word in text for word in words)


STATUS_RULES: tuple[tuple[Callable[[str], bool], SaleStatus], ...] = (
    (_equals("acc"), SaleStatus.ACC),
    (_contains("dapat limit", "pending"), SaleStatus.PENDING),
    (
        _contains(
            "reject", "belum", "tidak", "no limit", "tolak", "sistem", "error", "eror"
        ),
        SaleStatus.REJECT,
    ),
)

OCCUPATION_RULES: tuple[Rule, ...] = (
    (_contains("pns"), "PNS"),
    (_contains("swasta"), "Pegawai Swasta"),
    (_contains("buruh"), "Buruh"),
    (_contains("pelajar", "mahasiswa", "student"), "Pelajar"),
    (_contains("irt", "rumah tangga"), "IRT"),
)
DEFAULT_OCCUPATION = "Tidak Bekerja"

AREA_RULES: tuple[Rule, ...] = (
    (_contains("kupang", "kota"), AREA_KUPANG),
    (_contains("kabupaten", "kab"), AREA_KABUPATEN),
    (_contains("sumba"), AREA_SUMBA),
)


def first_match(
    rules: Iterable[tuple[Callable[[str], bool], T]], text: str, default: T | None = None
) -> T | None:
    """Result of the first rule whose predicate accepts ``text``."""
    for predicate, result in rules:
        if predicate(text):
            return result
    return default


def classify_status(raw: Any) -> SaleStatus | None:
    """Canonical status for a raw cell, or None when no rule matches."""
    return first_match(STATUS_RULES, clean_text(raw).lower())


def normalise_status(raw: Any, passthrough: bool = False) -> str:
    """Map free-text status to a canonical value.

    Unrecognised text is logged. With ``passthrough`` the trimmed raw text is
    returned unchanged; otherwise it is treated as a rejection.
    """
    status = classify_status(raw)
    if status is not None:
        return status.value
    text = clean_text(raw)
    if passthrough:
        logger.warning("Unknown status %r kept as-is", text)
        return text
    logger.warning("Unknown status %r -> defaulting to %s", text, SaleStatus.REJECT.value)
    return SaleStatus.REJECT.value


def normalise_occupation(raw: Any) -> str:
    """Occupation category for a raw applicant occupation cell."""
    return first_match(OCCUPATION_RULES, clean_text(raw).lower(), DEFAULT_OCCUPATION)


def map_store_area(area_detail: Any) -> str:
    """Canonical area for a store's raw area label.

    Unmatched or blank labels fall back to ``DEFAULT_AREA``.
    """
    text = clean_text(area_detail).lower()
    area = first_match(AREA_RULES, text)
    if area is None:
        logger.debug("Area label %r unmatched, defaulting to %s", text, DEFAULT_AREA)
        return DEFAULT_AREA
    return area
