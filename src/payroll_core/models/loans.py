"""Employee loans and the payments payroll runs apply against them."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_core.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from payroll_core.models.employee import Employee
    from payroll_core.models.payroll import PayrollRun


class Loan(Base, TimestampMixin):
    """Employee loan repaid through monthly payroll installments."""

    __tablename__ = "loan"

    loan_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    monthly_deduction: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    remaining_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        CheckConstraint("remaining_amount >= 0", name="loan_remaining_nonnegative"),
    )

    employee: Mapped[Employee] = relationship(back_populates="loans")
    payments: Mapped[list[LoanPayment]] = relationship(back_populates="loan")

    @property
    def installment(self) -> Decimal:
        """Amount the next payroll run would deduct."""
        remaining = self.remaining_amount or Decimal("0")
        monthly = self.monthly_deduction or Decimal("0")
        if remaining <= 0 or monthly <= 0:
            return Decimal("0")
        return min(monthly, remaining)


class LoanPayment(Base, TimestampMixin):
    """Balance reduction applied to a loan by a payroll run."""

    __tablename__ = "loan_payment"

    loan_payment_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    loan_id: Mapped[UUID] = mapped_column(
        ForeignKey("loan.loan_id", ondelete="CASCADE"),
        nullable=False,
    )
    payroll_run_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_run.payroll_run_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    applied_date: Mapped[date] = mapped_column(Date, nullable=False)
    source: Mapped[str] = mapped_column(String, nullable=False, default="payroll")

    loan: Mapped[Loan] = relationship(back_populates="payments")
    payroll_run: Mapped[PayrollRun] = relationship(back_populates="loan_payments")
