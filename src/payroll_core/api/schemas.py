"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from payroll_core.calculators.types import Effect


# ============================================================================
# Request schemas
# ============================================================================


class ScenarioTogglesIn(BaseModel):
    """Category switches; every category is enabled unless set to false."""

    model_config = ConfigDict(extra="forbid")

    attendance: bool = True
    loans: bool = True
    bonuses: bool = True
    allowances: bool = True
    statutory: bool = True
    overtime: bool = True


class ComparisonScenarioIn(BaseModel):
    key: str = Field(min_length=1)
    toggles: ScenarioTogglesIn = Field(default_factory=ScenarioTogglesIn)


class StatutoryDeductionsIn(BaseModel):
    """Per-request replacement for the configured flat statutory amounts."""

    model_config = ConfigDict(extra="forbid")

    tax_deduction: Decimal | None = Field(default=None, ge=0)
    social_security_deduction: Decimal | None = Field(default=None, ge=0)
    health_insurance_deduction: Decimal | None = Field(default=None, ge=0)

    def to_mapping(self) -> dict[str, Decimal]:
        return self.model_dump(exclude_none=True)


class PayrollOverridesIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    skipped_vacation_ids: list[str] = []
    skipped_loan_ids: list[str] = []
    skipped_event_ids: list[str] = []


class PayrollPreviewRequest(BaseModel):
    """Schema for previewing a payroll period."""

    period: str = Field(min_length=1)
    start_date: date
    end_date: date
    calendar_id: UUID | None = None
    scenario_toggles: ScenarioTogglesIn = Field(default_factory=ScenarioTogglesIn)
    comparisons: list[ComparisonScenarioIn] = []
    deductions: StatutoryDeductionsIn | None = None


class PayrollGenerateRequest(BaseModel):
    """Schema for finalizing a payroll run."""

    period: str = Field(min_length=1)
    start_date: date
    end_date: date
    calendar_id: UUID | None = None
    status: str = "completed"
    scenario_toggles: ScenarioTogglesIn = Field(default_factory=ScenarioTogglesIn)
    overrides: PayrollOverridesIn = Field(default_factory=PayrollOverridesIn)
    deductions: StatutoryDeductionsIn | None = None


class PayrollEntryUpdate(BaseModel):
    """Manual correction of a payroll entry; omitted fields are unchanged."""

    model_config = ConfigDict(extra="forbid")

    base_salary: Decimal | None = None
    gross_pay: Decimal | None = None
    net_pay: Decimal | None = None
    bonus_amount: Decimal | None = None
    working_days: int | None = None
    actual_working_days: int | None = None
    vacation_days: int | None = None
    tax_deduction: Decimal | None = None
    social_security_deduction: Decimal | None = None
    health_insurance_deduction: Decimal | None = None
    loan_deduction: Decimal | None = None
    other_deductions: Decimal | None = None
    adjustment_reason: str | None = None


# ============================================================================
# Preview schemas
# ============================================================================


class BreakdownLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    category: str
    item_id: str
    description: str
    amount: Decimal
    effect: Effect
    included: bool


class EmployeeBreakdownResponse(BaseModel):
    """Per-employee pay computed by a scenario."""

    model_config = ConfigDict(from_attributes=True)

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
    total_deductions: Decimal
    net_pay: Decimal
    allowances: dict[str, Decimal] = {}
    adjustment_reason: str | None = None
    lines: list[BreakdownLineResponse] = []


class ScenarioResultResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    key: str
    toggles: dict[str, bool]
    total_gross: Decimal
    total_deductions: Decimal
    total_net: Decimal
    employees: list[EmployeeBreakdownResponse]


class PayrollPreviewResponse(BaseModel):
    """Schema for payroll preview response."""

    period: str
    start_date: date
    end_date: date
    calendar_id: UUID | None = None
    base: ScenarioResultResponse
    comparisons: list[ScenarioResultResponse] = []


# ============================================================================
# Run schemas
# ============================================================================


class PayrollRunResponse(BaseModel):
    """Schema for payroll run response."""

    model_config = ConfigDict(from_attributes=True)

    payroll_run_id: UUID
    period: str
    start_date: date
    end_date: date
    calendar_id: UUID | None = None
    calendar_key: str
    scenario_key: str
    scenario_toggles: dict[str, bool]
    status: str
    gross_amount: Decimal
    total_deductions: Decimal
    net_amount: Decimal
    created_at: datetime | None = None


class PayrollEntryResponse(BaseModel):
    """Schema for payroll entry response."""

    model_config = ConfigDict(from_attributes=True)

    payroll_entry_id: UUID
    payroll_run_id: UUID
    employee_id: UUID
    base_salary: Decimal
    gross_pay: Decimal
    net_pay: Decimal
    bonus_amount: Decimal
    allowances: dict[str, Any] = {}
    working_days: int
    actual_working_days: int
    vacation_days: int
    tax_deduction: Decimal | None = None
    social_security_deduction: Decimal | None = None
    health_insurance_deduction: Decimal | None = None
    loan_deduction: Decimal | None = None
    other_deductions: Decimal | None = None
    adjustment_reason: str | None = None


class PayrollEntryListResponse(BaseModel):
    items: list[PayrollEntryResponse]
    total: int


class RunTotalsResponse(BaseModel):
    """Schema for recalculation response."""

    model_config = ConfigDict(from_attributes=True)

    payroll_run_id: UUID
    gross_amount: Decimal
    total_deductions: Decimal
    net_amount: Decimal
    entry_count: int
    entries_updated: int


class LoanUndoResponse(BaseModel):
    """Schema for loan deduction reversal response."""

    model_config = ConfigDict(from_attributes=True)

    payroll_run_id: UUID
    restored: dict[str, Decimal]
    payments_removed: int
    entries_cleared: int
    totals: RunTotalsResponse | None = None


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
