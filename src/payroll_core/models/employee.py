"""Employee master data and the time-stamped inputs that feed payroll."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_core.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from payroll_core.models.loans import Loan


class Employee(Base, TimestampMixin):
    """Employee record, owned by the HR store."""

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_code: Mapped[str | None] = mapped_column(String, nullable=True)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str | None] = mapped_column(String, nullable=True)
    salary: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    standard_working_days: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Relationships
    events: Mapped[list[EmployeeEvent]] = relationship(back_populates="employee")
    vacations: Mapped[list[VacationRequest]] = relationship(back_populates="employee")
    loans: Mapped[list[Loan]] = relationship(back_populates="employee")

    @property
    def full_name(self) -> str:
        """Get full name."""
        return " ".join(part for part in (self.first_name, self.last_name) if part)


class EmployeeEvent(Base, TimestampMixin):
    """Financial or HR event attached to an employee.

    Monthly recurring allowances are stored once with their anchor date;
    individual occurrences are derived at read time.
    """

    __tablename__ = "employee_event"

    event_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_type: Mapped[str] = mapped_column(String, nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False, default="")
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    event_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    recurrence_type: Mapped[str] = mapped_column(String, nullable=False, default="none")
    recurrence_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    affects_payroll: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")

    __table_args__ = (
        CheckConstraint(
            "recurrence_type IN ('none', 'monthly')",
            name="employee_event_recurrence_type_check",
        ),
        CheckConstraint(
            "recurrence_end_date IS NULL OR recurrence_end_date >= event_date",
            name="employee_event_recurrence_end_check",
        ),
    )

    employee: Mapped[Employee] = relationship(back_populates="events")


class VacationRequest(Base, TimestampMixin):
    """Leave request; approved requests reduce actual working days."""

    __tablename__ = "vacation_request"

    vacation_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    leave_type: Mapped[str] = mapped_column(String, nullable=False, default="annual")
    deduct_from_salary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="approved")

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="vacation_request_dates_check"),
        CheckConstraint(
            "leave_type IN ('annual', 'sick', 'emergency', 'unpaid')",
            name="vacation_request_leave_type_check",
        ),
    )

    employee: Mapped[Employee] = relationship(back_populates="vacations")
