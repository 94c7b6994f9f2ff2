"""Exception taxonomy for payroll generation and run maintenance."""

from __future__ import annotations

from decimal import Decimal
from typing import Any


class PayrollError(Exception):
    """Base class for payroll core errors."""


class ValidationError(PayrollError):
    """Raised when a preview/generate request is malformed."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class DuplicatePeriodError(PayrollError):
    """Raised when a run already exists for the same period and calendar."""

    def __init__(self, period: str, calendar_key: str):
        self.period = period
        self.calendar_key = calendar_key
        super().__init__(
            f"Payroll run already exists for period '{period}' (calendar: {calendar_key})"
        )


class NotFoundError(PayrollError):
    """Raised when a referenced run, entry or calendar does not exist."""

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class LoanDeductionConflict(PayrollError):
    """Raised when deleting a run whose loan deductions were not reversed."""

    def __init__(self, payroll_run_id: Any, outstanding: Decimal):
        self.payroll_run_id = payroll_run_id
        self.outstanding = outstanding
        super().__init__(
            f"Payroll run {payroll_run_id} still has {outstanding} in loan deductions; "
            "undo loan deductions before deleting it"
        )


class RecalculateInconsistency(PayrollError):
    """An entry field that cannot be read as a number during recalculation.

    Recalculation does not raise this; the value is counted as zero and the
    condition is logged.
    """

    def __init__(self, payroll_entry_id: Any, field: str, value: Any):
        self.payroll_entry_id = payroll_entry_id
        self.field = field
        self.value = value
        super().__init__(
            f"Entry {payroll_entry_id} field '{field}' has non-numeric value {value!r}"
        )
