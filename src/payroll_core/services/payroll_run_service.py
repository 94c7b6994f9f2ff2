"""Payroll run service - preview, finalization, and run maintenance."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from payroll_core.calculators.aggregator import EventAggregator
from payroll_core.calculators.money import ZERO, round_to_cents, to_decimal
from payroll_core.calculators.overrides import OverrideResolver, ResolvedPayrollInputs
from payroll_core.calculators.recurrence import normalize_date
from payroll_core.calculators.scenario import (
    BASE_SCENARIO_KEY,
    ScenarioEvaluator,
    order_employees,
)
from payroll_core.calculators.types import (
    PayBreakdown,
    PayrollOverrides,
    PreviewSnapshot,
    ScenarioResult,
    ScenarioSpec,
    ScenarioToggles,
    StatutoryDeductions,
)
from payroll_core.config import Settings, get_settings
from payroll_core.errors import (
    DuplicatePeriodError,
    LoanDeductionConflict,
    NotFoundError,
    RecalculateInconsistency,
    ValidationError,
)
from payroll_core.models import (
    DEFAULT_CALENDAR_KEY,
    LoanPayment,
    PayrollEntry,
    PayrollRun,
)
from payroll_core.services.source_store import EmployeeEventStore, as_uuid

logger = logging.getLogger(__name__)


class PayrollRunStatus(str, Enum):
    """Payroll run status values."""

    DRAFT = "draft"
    COMPLETED = "completed"


# Entry fields a manual correction may change
EDITABLE_ENTRY_FIELDS = frozenset(
    {
        "base_salary",
        "gross_pay",
        "net_pay",
        "bonus_amount",
        "allowances",
        "working_days",
        "actual_working_days",
        "vacation_days",
        "adjustment_reason",
        *PayrollEntry.DEDUCTION_FIELDS,
    }
)

NULLABLE_ENTRY_FIELDS = frozenset({"adjustment_reason", *PayrollEntry.DEDUCTION_FIELDS})


@dataclass
class PayrollPreview:
    """Base scenario plus comparisons over one shared snapshot."""

    period: str
    snapshot: PreviewSnapshot
    scenarios: list[ScenarioResult]
    calendar_id: UUID | None = None

    @property
    def base(self) -> ScenarioResult:
        return self.scenarios[0]

    @property
    def comparisons(self) -> list[ScenarioResult]:
        return self.scenarios[1:]


@dataclass
class RunTotals:
    """Run totals as written by recalculation."""

    payroll_run_id: UUID
    gross_amount: Decimal
    total_deductions: Decimal
    net_amount: Decimal
    entry_count: int
    entries_updated: int = 0


@dataclass
class LoanUndoResult:
    payroll_run_id: UUID
    restored: dict[str, Decimal] = field(default_factory=dict)
    payments_removed: int = 0
    entries_cleared: int = 0
    totals: RunTotals | None = None


def coerce_toggles(value: ScenarioToggles | Mapping[str, Any] | None) -> ScenarioToggles:
    if isinstance(value, ScenarioToggles):
        return value
    return ScenarioToggles.from_mapping(value)


def coerce_overrides(value: PayrollOverrides | Mapping[str, Any] | None) -> PayrollOverrides:
    if value is None:
        return PayrollOverrides()
    if isinstance(value, PayrollOverrides):
        return value
    unknown = set(value) - {"skipped_vacation_ids", "skipped_loan_ids", "skipped_event_ids"}
    if unknown:
        raise ValidationError(f"Unknown override keys: {sorted(unknown)}", field="overrides")
    return PayrollOverrides.from_lists(
        value.get("skipped_vacation_ids"),
        value.get("skipped_loan_ids"),
        value.get("skipped_event_ids"),
    )


def coerce_scenario(value: ScenarioSpec | Mapping[str, Any]) -> ScenarioSpec:
    if isinstance(value, ScenarioSpec):
        return value
    key = value.get("key")
    if not key:
        raise ValidationError("Comparison scenario requires a key", field="comparisons")
    return ScenarioSpec(key=str(key), toggles=coerce_toggles(value.get("toggles")))


class PayrollRunService:
    """Service for payroll previews and finalized payroll runs.

    Operations:
    - preview: evaluate the base scenario and up to N comparisons, no writes
    - generate: finalize a run with entries and apply loan installments
    - recalculate: re-derive run totals from current entry fields
    - undo_loan_deductions: reverse the loan payments a run applied
    - delete_run: remove a run, refused while loan deductions are outstanding
    - update_entry: manual correction of one entry

    The service flushes but never commits; the caller's session scope is the
    unit of work.
    """

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        self.session = session
        self.settings = settings or get_settings()
        self.store = EmployeeEventStore(session)

    def statutory_deductions(
        self, overrides: StatutoryDeductions | Mapping[str, Any] | None = None
    ) -> StatutoryDeductions:
        """Flat statutory amounts from settings, optionally replaced per request."""
        if isinstance(overrides, StatutoryDeductions):
            return overrides
        values = dict(overrides or {})
        amounts = {
            "tax": values.get("tax_deduction", self.settings.statutory_tax_deduction),
            "social_security": values.get(
                "social_security_deduction", self.settings.statutory_social_security_deduction
            ),
            "health_insurance": values.get(
                "health_insurance_deduction", self.settings.statutory_health_insurance_deduction
            ),
        }
        parsed: dict[str, Decimal] = {}
        for name, raw in amounts.items():
            amount = to_decimal(raw)
            if amount is None or amount < 0:
                raise ValidationError(f"Invalid {name} deduction: {raw!r}", field="deductions")
            parsed[name] = round_to_cents(amount)
        return StatutoryDeductions(**parsed)

    def evaluator(self, deductions: StatutoryDeductions | Mapping[str, Any] | None = None) -> ScenarioEvaluator:
        return ScenarioEvaluator(
            statutory=self.statutory_deductions(deductions),
            max_comparisons=self.settings.max_comparison_scenarios,
        )

    async def build_snapshot(
        self, start_date: date, end_date: date, calendar_id: Any = None
    ) -> PreviewSnapshot:
        """Aggregate inputs for every active employee over the period."""
        calendar_days = None
        if calendar_id is not None:
            calendar = await self.store.get_calendar(calendar_id)
            calendar_days = calendar.standard_working_days

        aggregator = EventAggregator(self.store, calendar_working_days=calendar_days)
        employees = await self.store.list_active_employees()
        inputs = [
            await aggregator.for_loaded_employee(employee, start_date, end_date)
            for employee in employees
        ]
        return PreviewSnapshot(
            period_start=start_date,
            period_end=end_date,
            employees=order_employees(inputs),
        )

    async def preview(
        self,
        period: str,
        start_date: Any,
        end_date: Any,
        calendar_id: Any = None,
        toggles: ScenarioToggles | Mapping[str, Any] | None = None,
        comparisons: Sequence[ScenarioSpec | Mapping[str, Any]] = (),
        deductions: StatutoryDeductions | Mapping[str, Any] | None = None,
    ) -> PayrollPreview:
        """Evaluate scenarios over one snapshot without writing anything."""
        start, end = validate_period(period, start_date, end_date)
        base = ScenarioSpec(key=BASE_SCENARIO_KEY, toggles=coerce_toggles(toggles))
        specs = [coerce_scenario(c) for c in comparisons or ()]
        evaluator = self.evaluator(deductions)

        snapshot = await self.build_snapshot(start, end, calendar_id)
        scenarios = evaluator.compare(base, specs, snapshot.employees)
        return PayrollPreview(
            period=period,
            snapshot=snapshot,
            scenarios=scenarios,
            calendar_id=as_uuid(calendar_id, "calendar_id") if calendar_id is not None else None,
        )

    async def generate(
        self,
        period: str,
        start_date: Any,
        end_date: Any,
        calendar_id: Any = None,
        toggles: ScenarioToggles | Mapping[str, Any] | None = None,
        overrides: PayrollOverrides | Mapping[str, Any] | None = None,
        status: str = PayrollRunStatus.COMPLETED.value,
        deductions: StatutoryDeductions | Mapping[str, Any] | None = None,
        scenario_key: str = BASE_SCENARIO_KEY,
    ) -> PayrollRun:
        """Finalize a payroll run for the period.

        Creates the run and one entry per active employee, and applies loan
        installments for the included loans. Raises DuplicatePeriodError when
        a run for the same period and calendar exists.
        """
        start, end = validate_period(period, start_date, end_date)
        try:
            run_status = PayrollRunStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid status: {status!r}", field="status")
        scenario_toggles = coerce_toggles(toggles)
        skip = coerce_overrides(overrides)
        evaluator = self.evaluator(deductions)

        calendar_uuid = as_uuid(calendar_id, "calendar_id") if calendar_id is not None else None
        calendar_key = str(calendar_uuid) if calendar_uuid is not None else DEFAULT_CALENDAR_KEY
        await self._ensure_period_free(period, calendar_key)

        snapshot = await self.build_snapshot(start, end, calendar_uuid)
        if not snapshot.employees:
            raise ValidationError("No active employees found")

        resolved = OverrideResolver.apply(snapshot, skip)
        result = evaluator.evaluate(scenario_toggles, resolved.employees, key=scenario_key)

        run = PayrollRun(
            period=period,
            start_date=start,
            end_date=end,
            calendar_id=calendar_uuid,
            calendar_key=calendar_key,
            scenario_key=scenario_key,
            scenario_toggles=scenario_toggles.to_dict(),
            status=run_status.value,
            gross_amount=result.total_gross,
            total_deductions=result.total_deductions,
            net_amount=result.total_net,
        )
        self.session.add(run)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise DuplicatePeriodError(period, calendar_key) from exc

        entries = [self._entry_from_breakdown(run, breakdown) for breakdown in result.employees]
        self.session.add_all(entries)
        await self.session.flush()

        payments = await self._apply_loan_installments(run, result.employees, resolved)

        logger.info(
            "Generated payroll run %s for %s (%s): %d entries, %d loan payments, net %s",
            run.payroll_run_id,
            period,
            calendar_key,
            len(entries),
            payments,
            run.net_amount,
        )
        return run

    async def recalculate(self, payroll_run_id: Any) -> RunTotals:
        """Re-derive entry net pay and run totals from current entry fields.

        Missing or non-numeric fields count as zero.
        """
        run = await self.get_run(payroll_run_id)
        if not run.entries:
            raise NotFoundError("PayrollEntry for run", payroll_run_id)

        gross_total = ZERO
        deductions_total = ZERO
        net_total = ZERO
        updated = 0
        for entry in run.entries:
            gross = self._entry_amount(entry, "gross_pay")
            deductions = sum(
                (self._entry_amount(entry, name) for name in PayrollEntry.DEDUCTION_FIELDS),
                ZERO,
            )
            net = gross - deductions
            if to_decimal(entry.net_pay) != net:
                entry.net_pay = net
                updated += 1
            gross_total += gross
            deductions_total += deductions
            net_total += net

        run.gross_amount = round_to_cents(gross_total)
        run.total_deductions = round_to_cents(deductions_total)
        run.net_amount = round_to_cents(net_total)
        await self.session.flush()

        logger.info(
            "Recalculated payroll run %s: gross %s, deductions %s, net %s (%d entries updated)",
            run.payroll_run_id,
            run.gross_amount,
            run.total_deductions,
            run.net_amount,
            updated,
        )
        return RunTotals(
            payroll_run_id=run.payroll_run_id,
            gross_amount=run.gross_amount,
            total_deductions=run.total_deductions,
            net_amount=run.net_amount,
            entry_count=len(run.entries),
            entries_updated=updated,
        )

    async def undo_loan_deductions(self, payroll_run_id: Any) -> LoanUndoResult:
        """Restore loan balances reduced by this run and clear entry deductions."""
        run = await self.get_run(payroll_run_id)
        result = await self.session.execute(
            select(LoanPayment)
            .where(LoanPayment.payroll_run_id == run.payroll_run_id)
            .options(selectinload(LoanPayment.loan))
        )
        payments = list(result.scalars().all())

        undo = LoanUndoResult(payroll_run_id=run.payroll_run_id)
        for payment in payments:
            loan = payment.loan
            loan.remaining_amount = (loan.remaining_amount or ZERO) + payment.amount
            if loan.remaining_amount > 0 and loan.status == "completed":
                loan.status = "active"
            key = str(loan.loan_id)
            undo.restored[key] = undo.restored.get(key, ZERO) + payment.amount
            await self.session.delete(payment)
        undo.payments_removed = len(payments)

        for entry in run.entries:
            if to_decimal(entry.loan_deduction) != ZERO:
                entry.loan_deduction = ZERO
                undo.entries_cleared += 1
        await self.session.flush()

        if run.entries:
            undo.totals = await self.recalculate(run.payroll_run_id)

        logger.info(
            "Reversed %d loan payment(s) for payroll run %s across %d loan(s)",
            undo.payments_removed,
            run.payroll_run_id,
            len(undo.restored),
        )
        return undo

    async def delete_run(self, payroll_run_id: Any, undo_loans: bool = False) -> None:
        """Delete a run with its entries and loan payments.

        Raises LoanDeductionConflict while any entry still carries a loan
        deduction, unless ``undo_loans`` reverses them first in the same
        unit of work.
        """
        run = await self.get_run(payroll_run_id)
        outstanding = sum(
            (amount for amount in (to_decimal(e.loan_deduction) for e in run.entries) if amount and amount > 0),
            ZERO,
        )
        if outstanding > 0:
            if not undo_loans:
                raise LoanDeductionConflict(run.payroll_run_id, outstanding)
            await self.undo_loan_deductions(run.payroll_run_id)

        run_id = run.payroll_run_id
        await self.session.execute(delete(LoanPayment).where(LoanPayment.payroll_run_id == run_id))
        await self.session.execute(delete(PayrollEntry).where(PayrollEntry.payroll_run_id == run_id))
        await self.session.execute(delete(PayrollRun).where(PayrollRun.payroll_run_id == run_id))
        await self.session.flush()
        logger.info("Deleted payroll run %s (%s)", run_id, run.period)

    async def update_entry(self, payroll_entry_id: Any, **changes: Any) -> PayrollEntry:
        """Apply a manual correction to an entry; run totals go stale until recalculated."""
        unknown = set(changes) - EDITABLE_ENTRY_FIELDS
        if unknown:
            raise ValidationError(f"Fields not editable: {sorted(unknown)}", field="changes")

        cleared = sorted(
            name for name, value in changes.items() if value is None and name not in NULLABLE_ENTRY_FIELDS
        )
        if cleared:
            raise ValidationError(f"Fields cannot be null: {cleared}", field="changes")

        entry = await self.session.get(PayrollEntry, as_uuid(payroll_entry_id, "payroll_entry_id"))
        if entry is None:
            raise NotFoundError("PayrollEntry", payroll_entry_id)

        for name, value in changes.items():
            setattr(entry, name, value)
        await self.session.flush()
        logger.info("Updated payroll entry %s fields %s", entry.payroll_entry_id, sorted(changes))
        return entry

    async def get_run(self, payroll_run_id: Any) -> PayrollRun:
        """Load a run with its entries."""
        result = await self.session.execute(
            select(PayrollRun)
            .where(PayrollRun.payroll_run_id == as_uuid(payroll_run_id, "payroll_run_id"))
            .options(selectinload(PayrollRun.entries))
        )
        run = result.scalar_one_or_none()
        if run is None:
            raise NotFoundError("PayrollRun", payroll_run_id)
        return run

    async def list_entries(self, payroll_run_id: Any) -> list[PayrollEntry]:
        run = await self.get_run(payroll_run_id)
        return sorted(run.entries, key=lambda e: str(e.employee_id))

    async def _ensure_period_free(self, period: str, calendar_key: str) -> None:
        result = await self.session.execute(
            select(PayrollRun.payroll_run_id)
            .where(PayrollRun.period == period, PayrollRun.calendar_key == calendar_key)
            .limit(1)
        )
        if result.scalar_one_or_none() is not None:
            raise DuplicatePeriodError(period, calendar_key)

    def _entry_from_breakdown(self, run: PayrollRun, breakdown: PayBreakdown) -> PayrollEntry:
        return PayrollEntry(
            payroll_run_id=run.payroll_run_id,
            employee_id=UUID(breakdown.employee_id),
            base_salary=breakdown.base_salary,
            gross_pay=breakdown.gross_pay,
            net_pay=breakdown.net_pay,
            bonus_amount=breakdown.bonus_amount,
            allowances={k: str(v) for k, v in breakdown.allowances.items()},
            working_days=breakdown.working_days,
            actual_working_days=breakdown.actual_working_days,
            vacation_days=breakdown.vacation_days,
            tax_deduction=breakdown.tax_deduction,
            social_security_deduction=breakdown.social_security_deduction,
            health_insurance_deduction=breakdown.health_insurance_deduction,
            loan_deduction=breakdown.loan_deduction,
            other_deductions=breakdown.other_deductions,
            adjustment_reason=breakdown.adjustment_reason,
        )

    async def _apply_loan_installments(
        self,
        run: PayrollRun,
        breakdowns: Sequence[PayBreakdown],
        resolved: ResolvedPayrollInputs,
    ) -> int:
        """Reduce included loan balances by each entry's loan deduction.

        Returns the number of LoanPayment rows written.
        """
        included = {
            inputs.employee.employee_id: {loan.loan_id for loan in inputs.loans}
            for inputs in resolved.employees
        }
        written = 0
        for breakdown in breakdowns:
            pending = breakdown.loan_deduction
            if pending <= 0:
                continue
            loan_ids = included.get(breakdown.employee_id, set())
            for loan in await self.store.list_loans(breakdown.employee_id):
                if pending <= 0:
                    break
                if str(loan.loan_id) not in loan_ids:
                    continue
                applied = min(loan.installment, pending)
                if applied <= 0:
                    continue
                loan.remaining_amount = loan.remaining_amount - applied
                if loan.remaining_amount <= 0:
                    loan.remaining_amount = ZERO
                    loan.status = "completed"
                self.session.add(
                    LoanPayment(
                        loan_id=loan.loan_id,
                        payroll_run_id=run.payroll_run_id,
                        employee_id=loan.employee_id,
                        amount=applied,
                        applied_date=run.end_date,
                        source="payroll",
                    )
                )
                pending -= applied
                written += 1
        await self.session.flush()
        return written

    def _entry_amount(self, entry: PayrollEntry, name: str) -> Decimal:
        value = getattr(entry, name)
        amount = to_decimal(value)
        if amount is None:
            if value is not None:
                logger.warning(
                    "%s; counting it as zero",
                    RecalculateInconsistency(entry.payroll_entry_id, name, value),
                )
            return ZERO
        return amount


def validate_period(period: str, start_date: Any, end_date: Any) -> tuple[date, date]:
    """Check the period label and return normalized (start, end) dates."""
    if not period or not str(period).strip():
        raise ValidationError("Period is required", field="period")
    start = normalize_date(start_date)
    end = normalize_date(end_date)
    if start is None:
        raise ValidationError(f"Invalid start date: {start_date!r}", field="start_date")
    if end is None:
        raise ValidationError(f"Invalid end date: {end_date!r}", field="end_date")
    if start > end:
        raise ValidationError("Start date must not be after end date", field="start_date")
    return start, end
