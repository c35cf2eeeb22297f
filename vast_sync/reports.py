"""
Printable run summaries.

Each function turns a stage result into a small DataFrame (or lines of text)
that ``main.py`` prints. Nothing here touches the store.
"""

import logging

import pandas as pd

from .cleanup import CleanupResult
from .credentials import ProvisionResult
from .hierarchy import AssignmentReport, HierarchyReport
from .partition import PartitionReport, ReconcileReport
from .transforms import DiscardSummary, EntitySummary

logger = logging.getLogger(__name__)


def entity_table(summaries: dict[str, EntitySummary]) -> pd.DataFrame:
    """One row per entity type.

    Returns
    -------
    DataFrame with columns: entity, total_rows, incomplete, duplicates, kept
    """
    rows = [{"entity": name, **summary.as_dict()} for name, summary in summaries.items()]
    return pd.DataFrame(rows, columns=["entity", "total_rows", "incomplete", "duplicates", "kept"])


def discard_table(summary: DiscardSummary) -> pd.DataFrame:
    """Rows per outcome of a sales extraction, dropped reasons first."""
    counts = summary.as_dict()
    total = counts.pop("total_rows")
    df = pd.DataFrame(list(counts.items()), columns=["reason", "rows"])
    df.loc[len(df)] = ["total_rows", total]
    return df


def check_lines(report: PartitionReport) -> list[str]:
    return [
        f"  [{'PASS' if check.passed else 'FAIL'}] {check.name}: {check.detail}"
        for check in report.checks
    ]


def reconcile_lines(report: ReconcileReport) -> list[str]:
    lines = [
        f"Window {report.window} -> {report.target}",
        f"  conflicting rows removed: {report.conflicting_deleted}",
        f"  target rows removed:      {report.target_deleted}",
    ]
    if report.write is not None:
        write = report.write
        lines.append(f"  inserted: {write.inserted}/{write.total} in {write.chunks_written} chunks")
        if write.failed_chunk is not None:
            lines.append(
                f"  stopped at chunk {write.failed_chunk} "
                f"(last successful: {write.last_successful_chunk}): {write.error}"
            )
    for error in report.errors:
        lines.append(f"  error: {error}")
    if report.verification is not None:
        lines.extend(check_lines(report.verification))
    return lines


def assignment_table(report: AssignmentReport) -> pd.DataFrame:
    """Per-promoter outcome of an assignment pass, skipped promoters included.

    Returns
    -------
    DataFrame with columns:
        promoter_name, employee_id, area, spv_email, outcome, error
    """
    outcomes = [(r, "ok" if r.success else "failed") for r in report.results]
    outcomes += [(r, "skipped") for r in report.skipped]

    rows = []
    for result, outcome in outcomes:
        rows.append({
            "promoter_name": result.promoter_name,
            "employee_id": result.employee_id,
            "area": result.area,
            "spv_email": result.spv_email,
            "outcome": outcome,
            "error": result.error,
        })
    return pd.DataFrame(
        rows, columns=["promoter_name", "employee_id", "area", "spv_email", "outcome", "error"]
    )


def hierarchy_table(report: HierarchyReport) -> pd.DataFrame:
    cols = ["area", "manager_name", "sator_name", "promoter_count"]
    if report.entries.empty:
        return pd.DataFrame(columns=cols)
    return report.entries[cols]


def provision_table(results: list[ProvisionResult]) -> pd.DataFrame:
    return pd.DataFrame(
        [vars(r) for r in results], columns=["identity", "success", "action", "message"]
    )


def cleanup_lines(result: CleanupResult) -> list[str]:
    lines = [
        f"Rows checked:    {result.total_checked}",
        f"Images deleted:  {result.deleted}",
        f"Failures:        {result.failed}",
    ]
    lines += [f"  - {error}" for error in result.errors]
    return lines
