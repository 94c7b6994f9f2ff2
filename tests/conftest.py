"""Pytest fixtures for payroll core tests."""

from __future__ import annotations

import dataclasses
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from payroll_core.config import Settings, get_settings
from payroll_core.database import create_schema
from payroll_core.models import (
    Employee,
    EmployeeEvent,
    Loan,
    PayCalendar,
    VacationRequest,
)

# In-memory SQLite shared across the connections of one engine
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def engine():
    """Create a fresh test database per test."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)

    await create_schema(engine)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with flat statutory amounts, independent of the environment."""
    return dataclasses.replace(
        get_settings(),
        database_url=TEST_DATABASE_URL,
        statutory_tax_deduction=Decimal("50.00"),
        statutory_social_security_deduction=Decimal("20.00"),
        statutory_health_insurance_deduction=Decimal("10.00"),
        max_comparison_scenarios=3,
    )


# ============================================================================
# Factories
# ============================================================================


@pytest.fixture
def make_employee(session: AsyncSession):
    async def factory(
        first_name: str = "Alice",
        last_name: str = "Smith",
        salary: str = "3000.00",
        status: str = "active",
        standard_working_days: int | None = 30,
    ) -> Employee:
        employee = Employee(
            first_name=first_name,
            last_name=last_name,
            salary=Decimal(salary),
            status=status,
            standard_working_days=standard_working_days,
        )
        session.add(employee)
        await session.flush()
        return employee

    return factory


@pytest.fixture
def make_event(session: AsyncSession):
    async def factory(
        employee: Employee,
        event_type: str,
        amount: str,
        event_date: date,
        title: str = "",
        recurrence_type: str = "none",
        recurrence_end_date: date | None = None,
        affects_payroll: bool = True,
        status: str = "active",
    ) -> EmployeeEvent:
        event = EmployeeEvent(
            employee_id=employee.employee_id,
            event_type=event_type,
            title=title or event_type.title(),
            amount=Decimal(amount),
            event_date=event_date,
            recurrence_type=recurrence_type,
            recurrence_end_date=recurrence_end_date,
            affects_payroll=affects_payroll,
            status=status,
        )
        session.add(event)
        await session.flush()
        return event

    return factory


@pytest.fixture
def make_vacation(session: AsyncSession):
    async def factory(
        employee: Employee,
        start_date: date,
        end_date: date,
        deduct_from_salary: bool = True,
        status: str = "approved",
        leave_type: str = "annual",
    ) -> VacationRequest:
        vacation = VacationRequest(
            employee_id=employee.employee_id,
            start_date=start_date,
            end_date=end_date,
            deduct_from_salary=deduct_from_salary,
            status=status,
            leave_type=leave_type,
        )
        session.add(vacation)
        await session.flush()
        return vacation

    return factory


@pytest.fixture
def make_loan(session: AsyncSession):
    async def factory(
        employee: Employee,
        amount: str = "1000.00",
        monthly_deduction: str = "200.00",
        remaining_amount: str | None = None,
        start_date: date | None = date(2024, 1, 1),
        status: str = "active",
    ) -> Loan:
        loan = Loan(
            employee_id=employee.employee_id,
            amount=Decimal(amount),
            monthly_deduction=Decimal(monthly_deduction),
            remaining_amount=Decimal(remaining_amount or amount),
            start_date=start_date,
            status=status,
        )
        session.add(loan)
        await session.flush()
        return loan

    return factory


@pytest.fixture
def make_calendar(session: AsyncSession):
    async def factory(name: str = "Monthly", standard_working_days: int = 22) -> PayCalendar:
        calendar = PayCalendar(name=name, standard_working_days=standard_working_days)
        session.add(calendar)
        await session.flush()
        return calendar

    return factory
