"""Type definitions for the aggregation and scenario pipeline."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from payroll_core.calculators.money import ZERO, sum_amounts
from payroll_core.errors import ValidationError


class Effect(str, Enum):
    """Direction an adjustment moves pay."""

    ADDITIVE = "additive"
    SUBTRACTIVE = "subtractive"


class Toggle(str, Enum):
    """Scenario toggle keys; each gates one aggregated category."""

    ATTENDANCE = "attendance"
    LOANS = "loans"
    BONUSES = "bonuses"
    ALLOWANCES = "allowances"
    STATUTORY = "statutory"
    OVERTIME = "overtime"


class EventType(str, Enum):
    """Employee event types that carry a payroll amount."""

    BONUS = "bonus"
    COMMISSION = "commission"
    DEDUCTION = "deduction"
    ALLOWANCE = "allowance"
    OVERTIME = "overtime"
    PENALTY = "penalty"

    @property
    def effect(self) -> Effect:
        if self in (EventType.DEDUCTION, EventType.PENALTY):
            return Effect.SUBTRACTIVE
        return Effect.ADDITIVE

    @property
    def toggle(self) -> Toggle:
        if self is EventType.ALLOWANCE:
            return Toggle.ALLOWANCES
        if self is EventType.OVERTIME:
            return Toggle.OVERTIME
        return Toggle.BONUSES

    @classmethod
    def parse(cls, value: Any) -> EventType | None:
        """Return the financial event type, or None for non-payroll types."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class ScenarioToggles:
    """Boolean toggles of one scenario. Absent keys default to enabled."""

    attendance: bool = True
    loans: bool = True
    bonuses: bool = True
    allowances: bool = True
    statutory: bool = True
    overtime: bool = True

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any] | None) -> ScenarioToggles:
        """Build toggles from a request map, rejecting unknown keys."""
        if not values:
            return cls()
        known = {t.value for t in Toggle}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValidationError(
                f"Unknown scenario toggle(s): {', '.join(unknown)}",
                field="scenario_toggles",
            )
        return cls(**{key: bool(value) for key, value in values.items()})

    def is_enabled(self, toggle: Toggle) -> bool:
        return bool(getattr(self, toggle.value))

    def to_dict(self) -> dict[str, bool]:
        return {t.value: self.is_enabled(t) for t in Toggle}


@dataclass(frozen=True)
class AllowanceOccurrence:
    """One dated instance of an event; recurring allowances yield many."""

    occurrence_id: str
    event_id: str
    event_type: str
    occurrence_date: date
    amount: Decimal
    title: str = ""
    recurring: bool = False


@dataclass(frozen=True)
class AdjustmentItem:
    """A financial event or allowance occurrence applicable to one period.

    The effect and gating toggle are fixed from the event type when the item
    is built; use ``AdjustmentItem.create``.
    """

    item_id: str
    source_event_id: str
    event_type: EventType
    effect: Effect
    toggle: Toggle
    amount: Decimal
    item_date: date
    title: str = ""

    @classmethod
    def create(
        cls,
        item_id: str,
        source_event_id: str,
        event_type: EventType,
        amount: Decimal,
        item_date: date,
        title: str = "",
    ) -> AdjustmentItem:
        return cls(
            item_id=item_id,
            source_event_id=source_event_id,
            event_type=event_type,
            effect=event_type.effect,
            toggle=event_type.toggle,
            amount=abs(amount),
            item_date=item_date,
            title=title,
        )


@dataclass(frozen=True)
class VacationItem:
    """Approved leave overlapping the period, clipped to it."""

    vacation_id: str
    start_date: date
    end_date: date
    days: int  # inclusive overlap with the period
    leave_type: str = "annual"
    deduct_from_salary: bool = True


@dataclass(frozen=True)
class LoanItem:
    """Active loan and the installment it contributes to this period."""

    loan_id: str
    installment: Decimal
    remaining_amount: Decimal


@dataclass(frozen=True)
class EmployeeSnapshot:
    """Employee master data frozen for one aggregation."""

    employee_id: str
    name: str
    salary: Decimal
    status: str
    working_days: int


@dataclass(frozen=True)
class EmployeeInputs:
    """Everything aggregated for one employee and one period."""

    employee: EmployeeSnapshot
    vacations: tuple[VacationItem, ...] = ()
    loans: tuple[LoanItem, ...] = ()
    events: tuple[AdjustmentItem, ...] = ()
    allowances: tuple[AdjustmentItem, ...] = ()

    @property
    def sort_key(self) -> tuple[str, str]:
        return (self.employee.name.casefold(), self.employee.employee_id)


@dataclass(frozen=True)
class PreviewSnapshot:
    """Aggregated inputs for all employees of one preview."""

    period_start: date
    period_end: date
    employees: tuple[EmployeeInputs, ...]

    def vacation_ids(self) -> set[str]:
        return {v.vacation_id for e in self.employees for v in e.vacations}

    def loan_ids(self) -> set[str]:
        return {loan.loan_id for e in self.employees for loan in e.loans}

    def event_ids(self) -> set[str]:
        return {
            item.item_id
            for e in self.employees
            for item in (*e.events, *e.allowances)
        }


@dataclass(frozen=True)
class PayrollOverrides:
    """Caller-supplied exclusions, one typed set per id space."""

    skipped_vacation_ids: frozenset[str] = frozenset()
    skipped_loan_ids: frozenset[str] = frozenset()
    skipped_event_ids: frozenset[str] = frozenset()

    @classmethod
    def from_lists(
        cls,
        skipped_vacation_ids: Iterable[Any] | None = None,
        skipped_loan_ids: Iterable[Any] | None = None,
        skipped_event_ids: Iterable[Any] | None = None,
    ) -> PayrollOverrides:
        return cls(
            skipped_vacation_ids=frozenset(str(i) for i in skipped_vacation_ids or ()),
            skipped_loan_ids=frozenset(str(i) for i in skipped_loan_ids or ()),
            skipped_event_ids=frozenset(str(i) for i in skipped_event_ids or ()),
        )

    @property
    def is_empty(self) -> bool:
        return not (self.skipped_vacation_ids or self.skipped_loan_ids or self.skipped_event_ids)


@dataclass(frozen=True)
class StatutoryDeductions:
    """Flat statutory amounts applied per employee when enabled."""

    tax: Decimal = ZERO
    social_security: Decimal = ZERO
    health_insurance: Decimal = ZERO


@dataclass(frozen=True)
class BreakdownLine:
    """One reviewable item of a scenario breakdown."""

    category: str
    item_id: str
    description: str
    amount: Decimal
    effect: Effect
    included: bool


@dataclass
class PayBreakdown:
    """Per-employee result of evaluating one scenario."""

    employee_id: str
    employee_name: str
    working_days: int
    vacation_days: int
    actual_working_days: int
    base_salary: Decimal
    bonus_amount: Decimal
    gross_pay: Decimal
    tax_deduction: Decimal
    social_security_deduction: Decimal
    health_insurance_deduction: Decimal
    loan_deduction: Decimal
    other_deductions: Decimal
    net_pay: Decimal
    allowances: dict[str, Decimal] = field(default_factory=dict)
    lines: list[BreakdownLine] = field(default_factory=list)

    @property
    def total_deductions(self) -> Decimal:
        return sum_amounts(
            (
                self.tax_deduction,
                self.social_security_deduction,
                self.health_insurance_deduction,
                self.loan_deduction,
                self.other_deductions,
            )
        )

    @property
    def adjustment_reason(self) -> str | None:
        parts: list[str] = []
        if self.vacation_days > 0:
            parts.append(f"{self.vacation_days} vacation days.")
        if self.loan_deduction > 0:
            parts.append(f"Loan deduction: {self.loan_deduction:.2f}.")
        return " ".join(parts) or None


@dataclass
class ScenarioResult:
    """Result of evaluating one named scenario over all employees."""

    key: str
    toggles: ScenarioToggles
    employees: list[PayBreakdown]
    total_gross: Decimal = ZERO
    total_deductions: Decimal = ZERO
    total_net: Decimal = ZERO

    def for_employee(self, employee_id: str) -> PayBreakdown | None:
        for breakdown in self.employees:
            if breakdown.employee_id == employee_id:
                return breakdown
        return None


@dataclass(frozen=True)
class ScenarioSpec:
    """Named toggle set requested for comparison."""

    key: str
    toggles: ScenarioToggles = field(default_factory=ScenarioToggles)
