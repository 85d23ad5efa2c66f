"""Selectors for the collection kernel (read side)."""

from collection_kernel.selectors.collection_selector import CollectionSelector
from collection_kernel.selectors.dashboard_selector import (
    DashboardSelector,
    DashboardSummary,
    PersonTodayStatus,
)
from collection_kernel.selectors.reconciliation_selector import (
    ActiveCycleConflict,
    CycleDiscrepancy,
    ReconciliationSelector,
)
from collection_kernel.selectors.report_selector import (
    CycleSummary,
    MonthlyPivot,
    MonthlyReport,
    PersonMonthStats,
    PivotRow,
    ReportSelector,
)

__all__ = [
    "ActiveCycleConflict",
    "CollectionSelector",
    "CycleDiscrepancy",
    "CycleSummary",
    "DashboardSelector",
    "DashboardSummary",
    "MonthlyPivot",
    "MonthlyReport",
    "PersonMonthStats",
    "PersonTodayStatus",
    "PivotRow",
    "ReconciliationSelector",
    "ReportSelector",
]
