"""Service tests for payroll preview, generation and run maintenance."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from payroll_core.errors import (
    DuplicatePeriodError,
    LoanDeductionConflict,
    NotFoundError,
    ValidationError,
)
from payroll_core.models import LoanPayment, PayrollEntry, PayrollRun
from payroll_core.services import PayrollRunService

pytestmark = pytest.mark.asyncio

START = date(2024, 3, 1)
END = date(2024, 3, 31)


@pytest.fixture
def service(session, test_settings) -> PayrollRunService:
    return PayrollRunService(session, settings=test_settings)


async def count(session, model) -> int:
    return await session.scalar(select(func.count()).select_from(model))


class TestGenerate:
    """Test run finalization."""

    async def test_prorated_entry(self, service, make_employee, make_vacation):
        """900 over 30 working days with 3 vacation days pays 810."""
        employee = await make_employee(salary="900.00", standard_working_days=30)
        await make_vacation(employee, date(2024, 3, 11), date(2024, 3, 13))

        run = await service.generate(
            "2024-03", START, END, toggles={"statutory": False}
        )
        entries = await service.list_entries(run.payroll_run_id)

        assert len(entries) == 1
        entry = entries[0]
        assert entry.working_days == 30
        assert entry.vacation_days == 3
        assert entry.actual_working_days == 27
        assert entry.gross_pay == Decimal("810.00")
        assert entry.net_pay == Decimal("810.00")
        assert run.net_amount == Decimal("810.00")
        assert run.status == "completed"
        assert run.calendar_key == "default"
        assert run.scenario_toggles["statutory"] is False

    async def test_totals_and_statutory(self, service, make_employee, make_event):
        alice = await make_employee("Alice", salary="3000.00")
        bob = await make_employee("Bob", salary="2000.00")
        await make_event(alice, "bonus", "500", date(2024, 3, 15))
        await make_event(bob, "penalty", "25", date(2024, 3, 20))

        run = await service.generate("2024-03", START, END)

        assert run.gross_amount == Decimal("5500.00")
        # 80 statutory per employee plus the penalty
        assert run.total_deductions == Decimal("185.00")
        assert run.net_amount == Decimal("5315.00")
        entries = {e.employee_id: e for e in await service.list_entries(run.payroll_run_id)}
        assert entries[alice.employee_id].bonus_amount == Decimal("500.00")
        assert entries[bob.employee_id].other_deductions == Decimal("25.00")
        assert entries[bob.employee_id].tax_deduction == Decimal("50.00")

    async def test_calendar_working_days(self, service, make_employee, make_calendar, make_vacation):
        calendar = await make_calendar(standard_working_days=22)
        employee = await make_employee(salary="2200.00", standard_working_days=30)
        await make_vacation(employee, date(2024, 3, 4), date(2024, 3, 5))

        run = await service.generate(
            "2024-03", START, END, calendar_id=calendar.calendar_id, toggles={"statutory": False}
        )
        entry = (await service.list_entries(run.payroll_run_id))[0]

        assert run.calendar_key == str(calendar.calendar_id)
        assert entry.working_days == 22
        assert entry.gross_pay == Decimal("2000.00")

    async def test_inactive_employees_get_no_entry(self, service, make_employee):
        await make_employee("Alice")
        await make_employee("Carol", status="terminated")

        run = await service.generate("2024-03", START, END)

        assert len(await service.list_entries(run.payroll_run_id)) == 1

    async def test_draft_status(self, service, make_employee):
        await make_employee()

        run = await service.generate("2024-03", START, END, status="draft")

        assert run.status == "draft"

    async def test_recurring_allowance_in_entry(self, service, make_employee, make_event):
        employee = await make_employee(salary="1000.00")
        await make_event(
            employee, "allowance", "150", date(2024, 1, 31), title="Housing", recurrence_type="monthly"
        )

        run = await service.generate("2024-02", date(2024, 2, 1), date(2024, 2, 29), toggles={"statutory": False})
        entry = (await service.list_entries(run.payroll_run_id))[0]

        assert entry.allowances == {"Housing": "150.00"}
        assert entry.gross_pay == Decimal("1150.00")


class TestGenerateValidation:
    async def test_inverted_dates(self, service, make_employee):
        await make_employee()

        with pytest.raises(ValidationError):
            await service.generate("2024-03", END, START)

    async def test_unknown_status(self, service, make_employee):
        await make_employee()

        with pytest.raises(ValidationError):
            await service.generate("2024-03", START, END, status="approved")

    async def test_no_active_employees(self, service, make_employee):
        await make_employee(status="terminated")

        with pytest.raises(ValidationError):
            await service.generate("2024-03", START, END)

    async def test_unknown_calendar(self, service, make_employee):
        await make_employee()

        with pytest.raises(NotFoundError):
            await service.generate(
                "2024-03", START, END, calendar_id="11111111-1111-1111-1111-111111111111"
            )

    async def test_unknown_toggle(self, service, make_employee):
        await make_employee()

        with pytest.raises(ValidationError):
            await service.generate("2024-03", START, END, toggles={"holidays": False})


class TestDuplicateDetection:
    async def test_same_period_and_calendar_rejected(self, service, session, make_employee):
        await make_employee()
        await service.generate("2024-03", START, END)

        with pytest.raises(DuplicatePeriodError) as exc_info:
            await service.generate("2024-03", START, END)

        assert exc_info.value.calendar_key == "default"
        assert await count(session, PayrollRun) == 1

    async def test_other_calendar_is_a_different_key(self, service, session, make_employee, make_calendar):
        await make_employee()
        calendar = await make_calendar()

        await service.generate("2024-03", START, END)
        await service.generate("2024-03", START, END, calendar_id=calendar.calendar_id)

        assert await count(session, PayrollRun) == 2


class TestOverrides:
    async def test_skipped_event_does_not_contribute(self, service, make_employee, make_event):
        employee = await make_employee(salary="1000.00")
        skipped = await make_event(employee, "bonus", "300", date(2024, 3, 10))
        await make_event(employee, "bonus", "200", date(2024, 3, 11))

        run = await service.generate(
            "2024-03",
            START,
            END,
            toggles={"statutory": False},
            overrides={"skipped_event_ids": [str(skipped.event_id)]},
        )
        entry = (await service.list_entries(run.payroll_run_id))[0]

        assert entry.bonus_amount == Decimal("200.00")
        assert entry.gross_pay == Decimal("1200.00")

    async def test_skipping_one_allowance_month(self, service, make_employee, make_event):
        employee = await make_employee(salary="1000.00", standard_working_days=30)
        housing = await make_event(
            employee, "allowance", "100", date(2024, 1, 15), title="Housing", recurrence_type="monthly"
        )

        run = await service.generate(
            "Q1",
            date(2024, 1, 1),
            date(2024, 3, 31),
            toggles={"statutory": False},
            overrides={"skipped_event_ids": [f"{housing.event_id}:2024-02-15"]},
        )
        entry = (await service.list_entries(run.payroll_run_id))[0]

        assert entry.bonus_amount == Decimal("200.00")

    async def test_skipped_vacation_and_loan(self, service, session, make_employee, make_vacation, make_loan):
        employee = await make_employee(salary="900.00", standard_working_days=30)
        vacation = await make_vacation(employee, date(2024, 3, 4), date(2024, 3, 6))
        loan = await make_loan(employee)

        run = await service.generate(
            "2024-03",
            START,
            END,
            toggles={"statutory": False},
            overrides={
                "skipped_vacation_ids": [str(vacation.vacation_id), "stale-id"],
                "skipped_loan_ids": [str(loan.loan_id)],
            },
        )
        entry = (await service.list_entries(run.payroll_run_id))[0]

        assert entry.vacation_days == 0
        assert entry.gross_pay == Decimal("900.00")
        assert entry.loan_deduction == Decimal("0.00")
        assert await count(session, LoanPayment) == 0
        assert loan.remaining_amount == Decimal("1000.00")


class TestLoanInstallments:
    async def test_installments_reduce_balances(self, service, session, make_employee, make_loan):
        employee = await make_employee(salary="3000.00")
        first = await make_loan(employee, amount="1000.00", monthly_deduction="200.00", start_date=date(2023, 1, 1))
        last = await make_loan(
            employee, amount="500.00", monthly_deduction="100.00", remaining_amount="60.00", start_date=date(2023, 6, 1)
        )

        run = await service.generate("2024-03", START, END, toggles={"statutory": False})
        entry = (await service.list_entries(run.payroll_run_id))[0]

        assert entry.loan_deduction == Decimal("260.00")
        assert entry.net_pay == Decimal("2740.00")
        assert first.remaining_amount == Decimal("800.00")
        assert last.remaining_amount == Decimal("0")
        assert last.status == "completed"

        payments = (
            await session.execute(select(LoanPayment).where(LoanPayment.payroll_run_id == run.payroll_run_id))
        ).scalars().all()
        assert sorted(p.amount for p in payments) == [Decimal("60.00"), Decimal("200.00")]
        assert all(p.applied_date == END and p.source == "payroll" for p in payments)

    async def test_loans_toggle_off_leaves_balances(self, service, session, make_employee, make_loan):
        employee = await make_employee()
        loan = await make_loan(employee)

        await service.generate("2024-03", START, END, toggles={"loans": False})

        assert loan.remaining_amount == Decimal("1000.00")
        assert await count(session, LoanPayment) == 0


class TestRecalculate:
    async def test_round_trip_keeps_totals(self, service, make_employee, make_event, make_loan, make_vacation):
        alice = await make_employee("Alice", salary="3100.00", standard_working_days=31)
        bob = await make_employee("Bob", salary="2000.00")
        await make_event(alice, "bonus", "123.45", date(2024, 3, 2))
        await make_event(bob, "deduction", "10.10", date(2024, 3, 3))
        await make_loan(bob, monthly_deduction="150.00")
        await make_vacation(alice, date(2024, 3, 28), date(2024, 4, 2))

        run = await service.generate("2024-03", START, END)
        before = (run.gross_amount, run.total_deductions, run.net_amount)

        totals = await service.recalculate(run.payroll_run_id)

        assert (totals.gross_amount, totals.total_deductions, totals.net_amount) == before
        assert totals.entries_updated == 0
        assert totals.entry_count == 2

    async def test_manual_edit_then_recalculate(self, service, make_employee):
        alice = await make_employee("Alice", salary="1000.00")
        await make_employee("Bob", salary="2000.00")
        run = await service.generate("2024-03", START, END, toggles={"statutory": False})
        entries = await service.list_entries(run.payroll_run_id)
        entry = next(e for e in entries if e.employee_id == alice.employee_id)

        await service.update_entry(entry.payroll_entry_id, gross_pay=Decimal("1500.00"), other_deductions=Decimal("100.00"))
        stale = await service.get_run(run.payroll_run_id)
        assert stale.gross_amount == Decimal("3000.00")

        totals = await service.recalculate(run.payroll_run_id)

        assert totals.gross_amount == Decimal("3500.00")
        assert totals.total_deductions == Decimal("100.00")
        assert totals.net_amount == Decimal("3400.00")
        assert totals.entries_updated == 1
        assert entry.net_pay == Decimal("1400.00")

    async def test_missing_fields_count_as_zero(self, service, make_employee):
        await make_employee(salary="1000.00")
        run = await service.generate("2024-03", START, END)
        entry = (await service.list_entries(run.payroll_run_id))[0]

        await service.update_entry(entry.payroll_entry_id, tax_deduction=None, health_insurance_deduction=None)
        totals = await service.recalculate(run.payroll_run_id)

        assert totals.total_deductions == Decimal("20.00")
        assert totals.net_amount == Decimal("980.00")

    async def test_non_numeric_value_counts_as_zero(self, service):
        entry = PayrollEntry(gross_pay="not-a-number")

        assert service._entry_amount(entry, "gross_pay") == Decimal("0")

    async def test_unknown_run(self, service):
        with pytest.raises(NotFoundError):
            await service.recalculate("22222222-2222-2222-2222-222222222222")

    async def test_update_rejects_unknown_and_null_fields(self, service, make_employee):
        await make_employee()
        run = await service.generate("2024-03", START, END)
        entry = (await service.list_entries(run.payroll_run_id))[0]

        with pytest.raises(ValidationError):
            await service.update_entry(entry.payroll_entry_id, employee_id=None)
        with pytest.raises(ValidationError):
            await service.update_entry(entry.payroll_entry_id, gross_pay=None)


class TestDeleteAndUndo:
    async def test_delete_blocked_until_undo(self, service, session, make_employee, make_loan):
        employee = await make_employee(salary="3000.00")
        loan = await make_loan(employee, amount="1000.00", monthly_deduction="250.00")
        run = await service.generate("2024-03", START, END)
        assert loan.remaining_amount == Decimal("750.00")

        with pytest.raises(LoanDeductionConflict) as exc_info:
            await service.delete_run(run.payroll_run_id)
        assert exc_info.value.outstanding == Decimal("250.00")

        undo = await service.undo_loan_deductions(run.payroll_run_id)

        assert loan.remaining_amount == Decimal("1000.00")
        assert loan.status == "active"
        assert undo.restored == {str(loan.loan_id): Decimal("250.00")}
        assert undo.totals.total_deductions == Decimal("80.00")

        await service.delete_run(run.payroll_run_id)

        assert await count(session, PayrollRun) == 0
        assert await count(session, PayrollEntry) == 0
        assert await count(session, LoanPayment) == 0

    async def test_undo_reactivates_paid_off_loan(self, service, make_employee, make_loan):
        employee = await make_employee()
        loan = await make_loan(employee, amount="500.00", monthly_deduction="200.00", remaining_amount="120.00")
        run = await service.generate("2024-03", START, END)
        assert loan.status == "completed"

        await service.undo_loan_deductions(run.payroll_run_id)

        assert loan.remaining_amount == Decimal("120.00")
        assert loan.status == "active"

    async def test_delete_with_undo_in_one_call(self, service, session, make_employee, make_loan):
        employee = await make_employee()
        loan = await make_loan(employee)
        run = await service.generate("2024-03", START, END)

        await service.delete_run(run.payroll_run_id, undo_loans=True)

        assert loan.remaining_amount == Decimal("1000.00")
        assert await count(session, PayrollRun) == 0

    async def test_delete_without_loans(self, service, session, make_employee):
        await make_employee()
        run = await service.generate("2024-03", START, END)

        await service.delete_run(run.payroll_run_id)

        assert await count(session, PayrollRun) == 0

    async def test_delete_unknown_run(self, service):
        with pytest.raises(NotFoundError):
            await service.delete_run("33333333-3333-3333-3333-333333333333")


class TestPreview:
    async def test_preview_compares_without_writing(self, service, session, make_employee, make_event, make_loan):
        employee = await make_employee(salary="1000.00")
        await make_event(employee, "bonus", "100", date(2024, 3, 5))
        loan = await make_loan(employee)

        preview = await service.preview(
            "2024-03",
            START,
            END,
            toggles={"statutory": False},
            comparisons=[
                {"key": "no-bonus", "toggles": {"bonuses": False, "statutory": False}},
                {"key": "no-loans", "toggles": {"loans": False, "statutory": False}},
            ],
        )

        assert [s.key for s in preview.scenarios] == ["base", "no-bonus", "no-loans"]
        assert preview.base.total_net == Decimal("900.00")
        assert preview.comparisons[0].total_net == Decimal("800.00")
        assert preview.comparisons[1].total_net == Decimal("1100.00")
        assert await count(session, PayrollRun) == 0
        assert loan.remaining_amount == Decimal("1000.00")

    async def test_preview_uses_request_deductions(self, service, make_employee):
        await make_employee(salary="1000.00")

        preview = await service.preview(
            "2024-03", START, END, deductions={"tax_deduction": "100"}
        )

        employee = preview.base.employees[0]
        assert employee.tax_deduction == Decimal("100.00")
        assert employee.social_security_deduction == Decimal("20.00")

    async def test_preview_comparison_limit(self, service, make_employee):
        await make_employee()

        with pytest.raises(ValidationError):
            await service.preview(
                "2024-03", START, END, comparisons=[{"key": f"s{i}"} for i in range(4)]
            )
