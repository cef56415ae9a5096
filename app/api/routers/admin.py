from fastapi import APIRouter, Depends, Query, status

from app.api.dependencies import get_use_cases
from app.api.schemas.bookings import (
    AdminActionPreviewResponse,
    AdminActionRequest,
    AdminActionResponse,
)

router = APIRouter()


@router.get(
    "/admin/actions",
    response_model=AdminActionPreviewResponse,
    status_code=status.HTTP_200_OK,
)
async def preview_admin_action(
    action: str = Query(...),
    token: str = Query(...),
    use_cases=Depends(get_use_cases),
) -> AdminActionPreviewResponse:
    """Target of the emailed links: validates the token and describes the action, changes nothing."""
    return AdminActionPreviewResponse(**use_cases["admin_action"].preview(action, token))


@router.post(
    "/admin/actions",
    response_model=AdminActionResponse,
    status_code=status.HTTP_200_OK,
)
async def execute_admin_action(
    payload: AdminActionRequest,
    use_cases=Depends(get_use_cases),
) -> AdminActionResponse:
    result = await use_cases["admin_action"].execute(
        payload.action,
        payload.token,
        payload.confirm,
        payload.confirm_text,
        **payload.targets(),
    )
    return AdminActionResponse.from_result(result)
