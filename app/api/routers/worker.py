from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.dependencies import get_use_cases
from app.api.schemas.bookings import SweepReportResponse
from app.infrastructure.db.retry import retry_on_deadlock

router = APIRouter()


@router.post(
    "/workers/sweeps/{name}",
    response_model=SweepReportResponse,
    status_code=status.HTTP_200_OK,
)
async def run_sweep(
    name: str,
    use_cases: Annotated[dict, Depends(get_use_cases)],
) -> SweepReportResponse:
    """
    Run one cycle of a named sweeper now, with automatic deadlock retry.

    Meant for ops and schedulers outside the app; cycles are idempotent so
    overlapping with the background loop is safe.
    """
    sweep = use_cases["sweeps"].get(name)
    if sweep is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown sweeper '{name}'",
        )

    async def execute_sweep():
        return await sweep(use_cases["clock"].now())

    report = await retry_on_deadlock(execute_sweep, max_attempts=3, base_delay=0.1)
    return SweepReportResponse.from_report(report)
