"""Public API for payment table QA checks.

In-memory checks over fact_transactions and mart_bus_payments. Nothing is
read from or written to disk and nothing is printed; progress is logged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import pandas as pd

from fleet_payments.exceptions import DataQualityError
from fleet_payments.payments.transform import LOADING, NOT_AVAILABLE

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["id", "bus_id", "bus_plate", "route", "total_amount", "payment_status"]
SUMMARY_REQUIRED_COLUMNS = ["bus_id", "total_revenue", "transaction_count"]


@dataclass
class TransactionsQAResult:
    """Result of the transactions QA checks.

    Attributes:
        summary: Dictionary with counts and flags.
        duplicate_ids: Rows sharing a booking id, or None if none found.
        unresolved: Rows whose route or bus plate is unresolved, or None.
        conservation_mismatches: Buses whose summary totals differ from the
            sum of their transactions, or None.
    """

    summary: dict
    duplicate_ids: pd.DataFrame | None
    unresolved: pd.DataFrame | None
    conservation_mismatches: pd.DataFrame | None

    @property
    def has_issues(self) -> bool:
        return bool(self.summary.get("has_issues"))


def _check_conservation(
    transactions: pd.DataFrame, bus_summaries: pd.DataFrame, tolerance: float
) -> Optional[pd.DataFrame]:
    tx = transactions[transactions["bus_id"].fillna("").astype(str) != ""]
    expected = tx.groupby("bus_id").agg(
        expected_revenue=("total_amount", "sum"),
        expected_count=("total_amount", "size"),
    ).reset_index()
    merged = bus_summaries[SUMMARY_REQUIRED_COLUMNS].merge(expected, how="outer", on="bus_id")
    merged[["total_revenue", "expected_revenue"]] = merged[
        ["total_revenue", "expected_revenue"]
    ].fillna(0.0)
    merged[["transaction_count", "expected_count"]] = (
        merged[["transaction_count", "expected_count"]].fillna(0).astype("int64")
    )
    bad = ((merged["total_revenue"] - merged["expected_revenue"]).abs() > tolerance) | (
        merged["transaction_count"] != merged["expected_count"]
    )
    if not bad.any():
        return None
    return merged[bad].reset_index(drop=True)


def run_transactions_qa(
    transactions: pd.DataFrame,
    bus_summaries: pd.DataFrame | None = None,
    tolerance: float = 1e-6,
) -> TransactionsQAResult:
    """Run consistency checks on the pipeline's output tables.

    Checks:
    - booking ids are unique
    - routes and bus plates are resolved ("N/A"/"Loading…" rows are reported)
    - amounts are non-negative
    - per-bus total_revenue and transaction_count equal the sums over the
      bus's transactions (only when ``bus_summaries`` is given)

    Args:
        transactions: fact_transactions frame.
        bus_summaries: Optional mart_bus_payments frame built from it.
        tolerance: Allowed absolute revenue difference.

    Returns:
        TransactionsQAResult.

    Raises:
        DataQualityError: If required columns are missing.
    """
    missing_cols = [col for col in REQUIRED_COLUMNS if col not in transactions.columns]
    if missing_cols:
        raise DataQualityError(
            f"Missing required columns in transactions: {missing_cols}. Required: {REQUIRED_COLUMNS}"
        )
    if bus_summaries is not None:
        missing_cols = [c for c in SUMMARY_REQUIRED_COLUMNS if c not in bus_summaries.columns]
        if missing_cols:
            raise DataQualityError(
                f"Missing required columns in bus_summaries: {missing_cols}. "
                f"Required: {SUMMARY_REQUIRED_COLUMNS}"
            )

    logger.info("Running QA checks for %d transaction(s)", len(transactions))

    dup_mask = transactions["id"].duplicated(keep=False)
    duplicate_ids = transactions[dup_mask].reset_index(drop=True) if dup_mask.any() else None

    unresolved_mask = (transactions["route"] == NOT_AVAILABLE) | transactions["bus_plate"].isin(
        [NOT_AVAILABLE, LOADING]
    )
    unresolved = transactions[unresolved_mask].reset_index(drop=True) if unresolved_mask.any() else None

    negative_amounts = int((transactions["total_amount"] < 0).sum())

    mismatches = None
    if bus_summaries is not None:
        mismatches = _check_conservation(transactions, bus_summaries, tolerance)

    summary = {
        "total_rows": int(len(transactions)),
        "total_buses": int(len(bus_summaries)) if bus_summaries is not None else None,
        "duplicate_ids": 0 if duplicate_ids is None else int(duplicate_ids["id"].nunique()),
        "unresolved_rows": 0 if unresolved is None else int(len(unresolved)),
        "negative_amounts": negative_amounts,
        "conservation_mismatches": 0 if mismatches is None else int(len(mismatches)),
    }
    summary["has_issues"] = bool(
        summary["duplicate_ids"] or summary["negative_amounts"] or summary["conservation_mismatches"]
    )
    if summary["has_issues"]:
        logger.warning("QA found issues: %s", summary)
    return TransactionsQAResult(
        summary=summary,
        duplicate_ids=duplicate_ids,
        unresolved=unresolved,
        conservation_mismatches=mismatches,
    )
