"""Pay calendar, payroll run, and payroll entry models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_core.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from payroll_core.models.employee import Employee
    from payroll_core.models.loans import LoanPayment

DEFAULT_CALENDAR_KEY = "default"


class PayCalendar(Base, TimestampMixin):
    """Pay calendar defining the standard working days of a period."""

    __tablename__ = "pay_calendar"

    calendar_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    standard_working_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)

    __table_args__ = (
        CheckConstraint("standard_working_days > 0", name="pay_calendar_working_days_check"),
    )


class PayrollRun(Base, TimestampMixin):
    """Finalized payroll run with aggregate totals over its entries."""

    __tablename__ = "payroll_run"

    payroll_run_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    period: Mapped[str] = mapped_column(String, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    calendar_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("pay_calendar.calendar_id"),
        nullable=True,
    )
    # calendar_id rendered as text, or "default"; part of the duplicate key
    calendar_key: Mapped[str] = mapped_column(String, nullable=False, default=DEFAULT_CALENDAR_KEY)
    scenario_key: Mapped[str] = mapped_column(String, nullable=False, default="base")
    scenario_toggles: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(String, nullable=False, default="completed")
    gross_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    total_deductions: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    net_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    __table_args__ = (
        UniqueConstraint("period", "calendar_key", name="payroll_run_period_calendar_unique"),
        CheckConstraint("end_date >= start_date", name="payroll_run_dates_check"),
        CheckConstraint(
            "status IN ('draft', 'completed')",
            name="payroll_run_status_check",
        ),
    )

    # Relationships
    calendar: Mapped[PayCalendar | None] = relationship()
    entries: Mapped[list[PayrollEntry]] = relationship(back_populates="payroll_run")
    loan_payments: Mapped[list[LoanPayment]] = relationship(back_populates="payroll_run")


class PayrollEntry(Base, TimestampMixin):
    """Per-employee result of a payroll run.

    Fields may be corrected manually after creation; the owning run's totals
    are then stale until recalculated.
    """

    __tablename__ = "payroll_entry"

    payroll_entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    payroll_run_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_run.payroll_run_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id"),
        nullable=False,
        index=True,
    )
    base_salary: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    gross_pay: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    net_pay: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    bonus_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    allowances: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    working_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    actual_working_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    vacation_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tax_deduction: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 2), nullable=True, default=Decimal("0")
    )
    social_security_deduction: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 2), nullable=True, default=Decimal("0")
    )
    health_insurance_deduction: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 2), nullable=True, default=Decimal("0")
    )
    loan_deduction: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 2), nullable=True, default=Decimal("0")
    )
    other_deductions: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 2), nullable=True, default=Decimal("0")
    )
    adjustment_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    payroll_run: Mapped[PayrollRun] = relationship(back_populates="entries")
    employee: Mapped[Employee] = relationship()

    DEDUCTION_FIELDS = (
        "tax_deduction",
        "social_security_deduction",
        "health_insurance_deduction",
        "loan_deduction",
        "other_deductions",
    )
