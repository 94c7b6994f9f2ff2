"""Scenario evaluation: toggle-gated pay computation over aggregated inputs."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from decimal import Decimal

from payroll_core.calculators.money import ZERO, round_to_cents, sum_amounts
from payroll_core.calculators.types import (
    BreakdownLine,
    Effect,
    EmployeeInputs,
    PayBreakdown,
    ScenarioResult,
    ScenarioSpec,
    ScenarioToggles,
    StatutoryDeductions,
    Toggle,
)
from payroll_core.errors import ValidationError

BASE_SCENARIO_KEY = "base"


def order_employees(inputs: Iterable[EmployeeInputs]) -> tuple[EmployeeInputs, ...]:
    """Stable employee order shared by every scenario of a comparison."""
    return tuple(sorted(inputs, key=lambda i: i.sort_key))


class ScenarioEvaluator:
    """Computes gross/net/deductions for a toggle set.

    Evaluation is a pure function of the toggles and the (immutable) inputs:
    a disabled category contributes zero while its items remain in the
    breakdown with ``included=False``.
    """

    def __init__(
        self,
        statutory: StatutoryDeductions | None = None,
        max_comparisons: int = 3,
    ):
        self.statutory = statutory or StatutoryDeductions()
        self.max_comparisons = max_comparisons

    def evaluate(
        self,
        toggles: ScenarioToggles,
        inputs: Iterable[EmployeeInputs],
        key: str = BASE_SCENARIO_KEY,
    ) -> ScenarioResult:
        employees = [self.evaluate_employee(toggles, i) for i in order_employees(inputs)]
        return ScenarioResult(
            key=key,
            toggles=toggles,
            employees=employees,
            total_gross=sum_amounts(e.gross_pay for e in employees),
            total_deductions=sum_amounts(e.total_deductions for e in employees),
            total_net=sum_amounts(e.net_pay for e in employees),
        )

    def compare(
        self,
        base: ScenarioSpec,
        comparisons: Sequence[ScenarioSpec],
        inputs: Iterable[EmployeeInputs],
    ) -> list[ScenarioResult]:
        """Evaluate the base scenario followed by each comparison scenario."""
        if len(comparisons) > self.max_comparisons:
            raise ValidationError(
                f"At most {self.max_comparisons} comparison scenarios are allowed",
                field="comparisons",
            )
        keys = [base.key, *(c.key for c in comparisons)]
        if len(set(keys)) != len(keys):
            raise ValidationError("Scenario keys must be unique", field="comparisons")

        shared = order_employees(inputs)
        return [self.evaluate(spec.toggles, shared, key=spec.key) for spec in (base, *comparisons)]

    def evaluate_employee(self, toggles: ScenarioToggles, inputs: EmployeeInputs) -> PayBreakdown:
        employee = inputs.employee
        lines: list[BreakdownLine] = []

        # Attendance: deductible leave reduces the days paid
        vacation_days = 0
        for vacation in inputs.vacations:
            counted = toggles.attendance and vacation.deduct_from_salary
            lines.append(
                BreakdownLine(
                    category="vacation",
                    item_id=vacation.vacation_id,
                    description=(
                        f"{vacation.leave_type} leave {vacation.start_date.isoformat()}"
                        f" to {vacation.end_date.isoformat()}"
                    ),
                    amount=Decimal(vacation.days),
                    effect=Effect.SUBTRACTIVE,
                    included=counted,
                )
            )
            if counted:
                vacation_days += vacation.days

        working_days = employee.working_days
        actual_working_days = max(0, working_days - vacation_days)
        if employee.status == "active" and working_days > 0:
            base_salary = round_to_cents(employee.salary * actual_working_days / working_days)
        else:
            base_salary = ZERO

        loan_deduction = ZERO
        for loan in inputs.loans:
            lines.append(
                BreakdownLine(
                    category="loan",
                    item_id=loan.loan_id,
                    description="Loan installment",
                    amount=loan.installment,
                    effect=Effect.SUBTRACTIVE,
                    included=toggles.loans,
                )
            )
            if toggles.loans:
                loan_deduction += loan.installment

        bonus_amount = ZERO
        other_deductions = ZERO
        allowances: dict[str, Decimal] = {}
        for item in (*inputs.events, *inputs.allowances):
            included = toggles.is_enabled(item.toggle)
            lines.append(
                BreakdownLine(
                    category=item.event_type.value,
                    item_id=item.item_id,
                    description=item.title or item.event_type.value,
                    amount=item.amount,
                    effect=item.effect,
                    included=included,
                )
            )
            if not included:
                continue
            if item.effect is Effect.ADDITIVE:
                bonus_amount += item.amount
                if item.toggle is Toggle.ALLOWANCES:
                    label = item.title or item.event_type.value
                    allowances[label] = round_to_cents(allowances.get(label, ZERO) + item.amount)
            else:
                other_deductions += item.amount

        if toggles.statutory:
            tax = self.statutory.tax
            social_security = self.statutory.social_security
            health_insurance = self.statutory.health_insurance
        else:
            tax = social_security = health_insurance = ZERO

        bonus_amount = round_to_cents(bonus_amount)
        gross_pay = base_salary + bonus_amount
        breakdown = PayBreakdown(
            employee_id=employee.employee_id,
            employee_name=employee.name,
            working_days=working_days,
            vacation_days=vacation_days,
            actual_working_days=actual_working_days,
            base_salary=base_salary,
            bonus_amount=bonus_amount,
            gross_pay=gross_pay,
            tax_deduction=round_to_cents(tax),
            social_security_deduction=round_to_cents(social_security),
            health_insurance_deduction=round_to_cents(health_insurance),
            loan_deduction=round_to_cents(loan_deduction),
            other_deductions=round_to_cents(other_deductions),
            net_pay=ZERO,
            allowances=allowances,
            lines=lines,
        )
        breakdown.net_pay = gross_pay - breakdown.total_deductions
        return breakdown
