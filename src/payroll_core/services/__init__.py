"""Payroll core services."""

from payroll_core.services.payroll_run_service import (
    LoanUndoResult,
    PayrollPreview,
    PayrollRunService,
    PayrollRunStatus,
    RunTotals,
)
from payroll_core.services.source_store import EmployeeEventStore

__all__ = [
    "EmployeeEventStore",
    "LoanUndoResult",
    "PayrollPreview",
    "PayrollRunService",
    "PayrollRunStatus",
    "RunTotals",
]
