"""Payroll calculation pipeline: expansion, aggregation, scenarios, overrides."""

from payroll_core.calculators.aggregator import EventAggregator, aggregate_employee_inputs
from payroll_core.calculators.overrides import OverrideResolver, ResolvedPayrollInputs
from payroll_core.calculators.recurrence import MAX_OCCURRENCES, expand_occurrences
from payroll_core.calculators.scenario import ScenarioEvaluator
from payroll_core.calculators.types import (
    PayrollOverrides,
    PreviewSnapshot,
    ScenarioSpec,
    ScenarioToggles,
    StatutoryDeductions,
)

__all__ = [
    "EventAggregator",
    "aggregate_employee_inputs",
    "OverrideResolver",
    "ResolvedPayrollInputs",
    "MAX_OCCURRENCES",
    "expand_occurrences",
    "ScenarioEvaluator",
    "PayrollOverrides",
    "PreviewSnapshot",
    "ScenarioSpec",
    "ScenarioToggles",
    "StatutoryDeductions",
]
