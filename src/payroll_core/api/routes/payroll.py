"""Payroll preview and run API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, Response, status

from payroll_core.api.dependencies import PayrollService
from payroll_core.api.schemas import (
    EmployeeBreakdownResponse,
    ErrorResponse,
    LoanUndoResponse,
    PayrollEntryListResponse,
    PayrollEntryResponse,
    PayrollEntryUpdate,
    PayrollGenerateRequest,
    PayrollPreviewRequest,
    PayrollPreviewResponse,
    PayrollRunResponse,
    RunTotalsResponse,
    ScenarioResultResponse,
)
from payroll_core.calculators.types import ScenarioResult

router = APIRouter(prefix="/payroll", tags=["payroll"])


def scenario_response(result: ScenarioResult) -> ScenarioResultResponse:
    return ScenarioResultResponse(
        key=result.key,
        toggles=result.toggles.to_dict(),
        total_gross=result.total_gross,
        total_deductions=result.total_deductions,
        total_net=result.total_net,
        employees=[EmployeeBreakdownResponse.model_validate(e) for e in result.employees],
    )


# ============================================================================
# Preview and generation
# ============================================================================


@router.post(
    "/preview",
    response_model=PayrollPreviewResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def preview_payroll(
    service: PayrollService,
    payload: PayrollPreviewRequest,
) -> PayrollPreviewResponse:
    """Evaluate the base scenario and comparisons without persisting anything."""
    preview = await service.preview(
        period=payload.period,
        start_date=payload.start_date,
        end_date=payload.end_date,
        calendar_id=payload.calendar_id,
        toggles=payload.scenario_toggles.model_dump(),
        comparisons=[c.model_dump() for c in payload.comparisons],
        deductions=payload.deductions.to_mapping() if payload.deductions else None,
    )
    return PayrollPreviewResponse(
        period=preview.period,
        start_date=preview.snapshot.period_start,
        end_date=preview.snapshot.period_end,
        calendar_id=preview.calendar_id,
        base=scenario_response(preview.base),
        comparisons=[scenario_response(c) for c in preview.comparisons],
    )


@router.post(
    "/generate",
    response_model=PayrollRunResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def generate_payroll(
    service: PayrollService,
    payload: PayrollGenerateRequest,
) -> PayrollRunResponse:
    """Finalize a payroll run for the period."""
    run = await service.generate(
        period=payload.period,
        start_date=payload.start_date,
        end_date=payload.end_date,
        calendar_id=payload.calendar_id,
        toggles=payload.scenario_toggles.model_dump(),
        overrides=payload.overrides.model_dump(),
        status=payload.status,
        deductions=payload.deductions.to_mapping() if payload.deductions else None,
    )
    await service.session.commit()
    await service.session.refresh(run)
    return PayrollRunResponse.model_validate(run)


# ============================================================================
# Run maintenance
# ============================================================================


@router.post(
    "/{payroll_run_id}/recalculate",
    response_model=RunTotalsResponse,
    responses={404: {"model": ErrorResponse}},
)
async def recalculate_payroll_run(
    service: PayrollService,
    payroll_run_id: Annotated[UUID, Path()],
) -> RunTotalsResponse:
    """Rewrite run totals from the current entry values."""
    totals = await service.recalculate(payroll_run_id)
    await service.session.commit()
    return RunTotalsResponse.model_validate(totals)


@router.post(
    "/{payroll_run_id}/undo-loan-deductions",
    response_model=LoanUndoResponse,
    responses={404: {"model": ErrorResponse}},
)
async def undo_loan_deductions(
    service: PayrollService,
    payroll_run_id: Annotated[UUID, Path()],
) -> LoanUndoResponse:
    """Restore loan balances reduced by the run."""
    result = await service.undo_loan_deductions(payroll_run_id)
    await service.session.commit()
    return LoanUndoResponse.model_validate(result)


@router.delete(
    "/{payroll_run_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def delete_payroll_run(
    service: PayrollService,
    payroll_run_id: Annotated[UUID, Path()],
    undo_loans: Annotated[bool, Query()] = False,
) -> Response:
    """Delete a run; 409 while loan deductions are outstanding unless undo_loans is set."""
    await service.delete_run(payroll_run_id, undo_loans=undo_loans)
    await service.session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{payroll_run_id}",
    response_model=PayrollRunResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_payroll_run(
    service: PayrollService,
    payroll_run_id: Annotated[UUID, Path()],
) -> PayrollRunResponse:
    """Get a specific payroll run by ID."""
    run = await service.get_run(payroll_run_id)
    return PayrollRunResponse.model_validate(run)


@router.get(
    "/{payroll_run_id}/entries",
    response_model=PayrollEntryListResponse,
    responses={404: {"model": ErrorResponse}},
)
async def list_payroll_entries(
    service: PayrollService,
    payroll_run_id: Annotated[UUID, Path()],
) -> PayrollEntryListResponse:
    """List the entries of a payroll run."""
    entries = await service.list_entries(payroll_run_id)
    return PayrollEntryListResponse(
        items=[PayrollEntryResponse.model_validate(e) for e in entries],
        total=len(entries),
    )


@router.patch(
    "/entries/{payroll_entry_id}",
    response_model=PayrollEntryResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def update_payroll_entry(
    service: PayrollService,
    payroll_entry_id: Annotated[UUID, Path()],
    payload: PayrollEntryUpdate,
) -> PayrollEntryResponse:
    """Correct an entry by hand; run totals change only on recalculation."""
    entry = await service.update_entry(payroll_entry_id, **payload.model_dump(exclude_unset=True))
    await service.session.commit()
    return PayrollEntryResponse.model_validate(entry)
