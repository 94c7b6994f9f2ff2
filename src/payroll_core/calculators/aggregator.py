"""Per-employee aggregation of vacations, loans, events, and allowances."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date
from typing import TYPE_CHECKING, Any

from payroll_core.calculators.money import ZERO, to_decimal
from payroll_core.calculators.recurrence import (
    allowance_recurs_in_range,
    expand_occurrences,
    is_recurring_monthly_allowance,
    normalize_date,
)
from payroll_core.calculators.types import (
    AdjustmentItem,
    EmployeeInputs,
    EmployeeSnapshot,
    EventType,
    LoanItem,
    VacationItem,
)

if TYPE_CHECKING:
    from payroll_core.models import Employee, EmployeeEvent, Loan, VacationRequest
    from payroll_core.services.source_store import EmployeeEventStore

logger = logging.getLogger(__name__)


def inclusive_days(start: date, end: date) -> int:
    """Number of calendar days in [start, end], zero when inverted."""
    return max(0, (end - start).days + 1)


def resolve_working_days(
    period_start: date,
    period_end: date,
    calendar_days: int | None = None,
    employee_days: int | None = None,
) -> int:
    """Working days for an employee: calendar, then employee, then period length."""
    for candidate in (calendar_days, employee_days):
        if candidate is not None and candidate > 0:
            return int(candidate)
    return max(1, inclusive_days(period_start, period_end))


def snapshot_employee(employee: Employee, working_days: int) -> EmployeeSnapshot:
    salary = to_decimal(employee.salary)
    return EmployeeSnapshot(
        employee_id=str(employee.employee_id),
        name=employee.full_name or str(employee.employee_id),
        salary=salary if salary is not None else ZERO,
        status=employee.status,
        working_days=working_days,
    )


def collect_vacations(
    vacations: Iterable[VacationRequest], period_start: date, period_end: date
) -> tuple[VacationItem, ...]:
    items: list[VacationItem] = []
    for vacation in vacations:
        start = normalize_date(vacation.start_date)
        end = normalize_date(vacation.end_date)
        if start is None or end is None:
            continue
        if start > period_end or end < period_start:
            continue
        items.append(
            VacationItem(
                vacation_id=str(vacation.vacation_id),
                start_date=start,
                end_date=end,
                days=inclusive_days(max(start, period_start), min(end, period_end)),
                leave_type=vacation.leave_type,
                deduct_from_salary=bool(vacation.deduct_from_salary),
            )
        )
    return tuple(sorted(items, key=lambda v: (v.start_date, v.vacation_id)))


def collect_loans(loans: Iterable[Loan]) -> tuple[LoanItem, ...]:
    items: list[LoanItem] = []
    for loan in loans:
        remaining = to_decimal(loan.remaining_amount)
        if remaining is None or remaining <= 0:
            continue
        installment = loan.installment
        if installment <= 0:
            continue
        items.append(
            LoanItem(
                loan_id=str(loan.loan_id),
                installment=installment,
                remaining_amount=remaining,
            )
        )
    return tuple(items)


def collect_adjustments(
    events: Iterable[EmployeeEvent], period_start: date, period_end: date
) -> tuple[tuple[AdjustmentItem, ...], tuple[AdjustmentItem, ...]]:
    """Split financial events into (non-allowance events, allowance occurrences)."""
    adjustments: list[AdjustmentItem] = []
    allowances: list[AdjustmentItem] = []

    for event in events:
        event_type = EventType.parse(event.event_type)
        if event_type is None or not event.affects_payroll:
            continue

        if is_recurring_monthly_allowance(event):
            if not allowance_recurs_in_range(event, period_start, period_end):
                continue
            occurrences = expand_occurrences(event, period_start, period_end)
        else:
            occurrences = [
                o
                for o in expand_occurrences(event)
                if period_start <= o.occurrence_date <= period_end
            ]

        for occurrence in occurrences:
            item = AdjustmentItem.create(
                item_id=occurrence.occurrence_id if occurrence.recurring else occurrence.event_id,
                source_event_id=occurrence.event_id,
                event_type=event_type,
                amount=occurrence.amount,
                item_date=occurrence.occurrence_date,
                title=occurrence.title,
            )
            if event_type is EventType.ALLOWANCE:
                allowances.append(item)
            else:
                adjustments.append(item)

    def order(item: AdjustmentItem) -> tuple[date, str]:
        return (item.item_date, item.item_id)

    return tuple(sorted(adjustments, key=order)), tuple(sorted(allowances, key=order))


def aggregate_employee_inputs(
    employee: Employee,
    vacations: Iterable[VacationRequest],
    loans: Iterable[Loan],
    events: Iterable[EmployeeEvent],
    period_start: date,
    period_end: date,
    working_days: int,
) -> EmployeeInputs:
    """Collect everything that applies to one employee in one period."""
    adjustments, allowances = collect_adjustments(events, period_start, period_end)
    return EmployeeInputs(
        employee=snapshot_employee(employee, working_days),
        vacations=collect_vacations(vacations, period_start, period_end),
        loans=collect_loans(loans),
        events=adjustments,
        allowances=allowances,
    )


class EventAggregator:
    """Reads one employee's inputs from the store and aggregates them.

    Vacations are included when they overlap the period; loans whenever a
    balance remains; events when dated inside the period and flagged as
    affecting payroll; allowances as the union of expanded recurring
    occurrences and one-off allowance events inside the period.
    """

    def __init__(self, store: EmployeeEventStore, calendar_working_days: int | None = None):
        self.store = store
        self.calendar_working_days = calendar_working_days

    async def for_employee(
        self, employee_id: Any, period_start: date, period_end: date
    ) -> EmployeeInputs:
        employee = await self.store.get_employee(employee_id)
        return await self.for_loaded_employee(employee, period_start, period_end)

    async def for_loaded_employee(
        self, employee: Employee, period_start: date, period_end: date
    ) -> EmployeeInputs:
        vacations = await self.store.list_vacations(employee.employee_id, period_start, period_end)
        loans = await self.store.list_loans(employee.employee_id)
        events = await self.store.list_events(employee.employee_id, period_start, period_end)

        working_days = resolve_working_days(
            period_start,
            period_end,
            calendar_days=self.calendar_working_days,
            employee_days=employee.standard_working_days,
        )
        inputs = aggregate_employee_inputs(
            employee, vacations, loans, events, period_start, period_end, working_days
        )
        logger.debug(
            "Aggregated employee %s: %d vacations, %d loans, %d events, %d allowances",
            inputs.employee.employee_id,
            len(inputs.vacations),
            len(inputs.loans),
            len(inputs.events),
            len(inputs.allowances),
        )
        return inputs
