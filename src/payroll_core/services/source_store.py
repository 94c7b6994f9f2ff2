"""Read access to employee master data and payroll inputs."""

from __future__ import annotations

from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_core.errors import NotFoundError, ValidationError
from payroll_core.models import Employee, EmployeeEvent, Loan, PayCalendar, VacationRequest


def as_uuid(value: Any, field: str = "id") -> UUID:
    """Coerce an id from a request to UUID."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError(f"Invalid {field}: {value!r}", field=field)


class EmployeeEventStore:
    """Queries over the HR tables the payroll core consumes.

    Only ``active`` employees and events, ``approved`` vacations and loans
    with a remaining balance are returned to the aggregator.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_employee(self, employee_id: Any) -> Employee:
        employee = await self.session.get(Employee, as_uuid(employee_id, "employee_id"))
        if employee is None:
            raise NotFoundError("Employee", employee_id)
        return employee

    async def list_active_employees(self) -> list[Employee]:
        result = await self.session.execute(
            select(Employee)
            .where(Employee.status == "active")
            .order_by(Employee.first_name, Employee.last_name, Employee.employee_id)
        )
        return list(result.scalars().all())

    async def list_events(
        self,
        employee_id: Any,
        start: date,
        end: date,
        event_type: str | None = None,
    ) -> list[EmployeeEvent]:
        """Active events dated in [start, end], plus recurring allowances reaching it."""
        recurring_allowance = and_(
            EmployeeEvent.event_type == "allowance",
            EmployeeEvent.recurrence_type == "monthly",
            EmployeeEvent.event_date <= end,
            or_(
                EmployeeEvent.recurrence_end_date.is_(None),
                EmployeeEvent.recurrence_end_date >= start,
            ),
        )
        query = select(EmployeeEvent).where(
            EmployeeEvent.employee_id == as_uuid(employee_id, "employee_id"),
            EmployeeEvent.status == "active",
            or_(
                and_(EmployeeEvent.event_date >= start, EmployeeEvent.event_date <= end),
                recurring_allowance,
            ),
        )
        if event_type is not None:
            query = query.where(EmployeeEvent.event_type == event_type)
        result = await self.session.execute(
            query.order_by(EmployeeEvent.event_date, EmployeeEvent.event_id)
        )
        return list(result.scalars().all())

    async def list_vacations(self, employee_id: Any, start: date, end: date) -> list[VacationRequest]:
        result = await self.session.execute(
            select(VacationRequest)
            .where(
                VacationRequest.employee_id == as_uuid(employee_id, "employee_id"),
                VacationRequest.status == "approved",
                VacationRequest.start_date <= end,
                VacationRequest.end_date >= start,
            )
            .order_by(VacationRequest.start_date, VacationRequest.vacation_id)
        )
        return list(result.scalars().all())

    async def list_loans(self, employee_id: Any) -> list[Loan]:
        """Active loans in repayment order (start date, creation, id)."""
        result = await self.session.execute(
            select(Loan)
            .where(
                Loan.employee_id == as_uuid(employee_id, "employee_id"),
                Loan.status == "active",
                Loan.remaining_amount > 0,
            )
            .order_by(Loan.start_date.asc().nulls_last(), Loan.created_at, Loan.loan_id)
        )
        return list(result.scalars().all())

    async def get_calendar(self, calendar_id: Any) -> PayCalendar:
        calendar = await self.session.get(PayCalendar, as_uuid(calendar_id, "calendar_id"))
        if calendar is None:
            raise NotFoundError("PayCalendar", calendar_id)
        return calendar
