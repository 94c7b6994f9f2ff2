"""Resolution of caller-supplied skip overrides against a preview snapshot."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace

from payroll_core.calculators.types import EmployeeInputs, PayrollOverrides, PreviewSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedPayrollInputs:
    """Per-employee inputs after overrides, ready to be finalized."""

    employees: tuple[EmployeeInputs, ...]
    applied: PayrollOverrides = field(default_factory=PayrollOverrides)
    unmatched_ids: dict[str, frozenset[str]] = field(default_factory=dict)


class OverrideResolver:
    """Applies three typed skip sets to a snapshot.

    Inclusion is the default; an item is dropped only when its id is in the
    skip set of its own id space. Allowance occurrences are matched by
    occurrence id, so skipping one month leaves other months untouched. Ids
    that match nothing in the snapshot are ignored.
    """

    @staticmethod
    def apply(snapshot: PreviewSnapshot, overrides: PayrollOverrides | None) -> ResolvedPayrollInputs:
        if overrides is None or overrides.is_empty:
            return ResolvedPayrollInputs(employees=snapshot.employees)

        unmatched = {
            "vacations": overrides.skipped_vacation_ids - snapshot.vacation_ids(),
            "loans": overrides.skipped_loan_ids - snapshot.loan_ids(),
            "events": overrides.skipped_event_ids - snapshot.event_ids(),
        }
        unmatched = {kind: ids for kind, ids in unmatched.items() if ids}
        for kind, ids in unmatched.items():
            logger.debug("Dropping %d stale %s override id(s): %s", len(ids), kind, sorted(ids))

        applied = PayrollOverrides(
            skipped_vacation_ids=overrides.skipped_vacation_ids - unmatched.get("vacations", frozenset()),
            skipped_loan_ids=overrides.skipped_loan_ids - unmatched.get("loans", frozenset()),
            skipped_event_ids=overrides.skipped_event_ids - unmatched.get("events", frozenset()),
        )

        employees = tuple(
            replace(
                inputs,
                vacations=tuple(
                    v for v in inputs.vacations if v.vacation_id not in applied.skipped_vacation_ids
                ),
                loans=tuple(l for l in inputs.loans if l.loan_id not in applied.skipped_loan_ids),
                events=tuple(e for e in inputs.events if e.item_id not in applied.skipped_event_ids),
                allowances=tuple(
                    a for a in inputs.allowances if a.item_id not in applied.skipped_event_ids
                ),
            )
            for inputs in snapshot.employees
        )
        return ResolvedPayrollInputs(employees=employees, applied=applied, unmatched_ids=unmatched)
