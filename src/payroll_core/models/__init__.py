"""ORM models for the payroll core."""

from payroll_core.models.base import Base, TimestampMixin
from payroll_core.models.employee import Employee, EmployeeEvent, VacationRequest
from payroll_core.models.loans import Loan, LoanPayment
from payroll_core.models.payroll import (
    DEFAULT_CALENDAR_KEY,
    PayCalendar,
    PayrollEntry,
    PayrollRun,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "DEFAULT_CALENDAR_KEY",
    "Employee",
    "EmployeeEvent",
    "Loan",
    "LoanPayment",
    "PayCalendar",
    "PayrollEntry",
    "PayrollRun",
    "VacationRequest",
]
