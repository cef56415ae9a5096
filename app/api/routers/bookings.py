from fastapi import APIRouter, Depends, status

from app.api.dependencies import Actor, get_actor, get_use_cases
from app.api.schemas.bookings import (
    AttendanceRequest,
    BookingResponse,
    CancelBookingRequest,
    CreateBookingRequest,
    CreateBookingResponse,
    DisputeRequest,
    DisputeResponse,
    MessageResponse,
    SendMessageRequest,
    WalletResponse,
)
from app.domain.errors import ForbiddenError

router = APIRouter()


@router.post(
    "/bookings",
    response_model=CreateBookingResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_booking(
    payload: CreateBookingRequest,
    actor: Actor = Depends(get_actor),
    use_cases=Depends(get_use_cases),
) -> CreateBookingResponse:
    result = await use_cases["create_booking"].execute(
        explorer_id=actor.user_id,
        experience_id=payload.experience_id,
        quantity=payload.quantity,
    )
    return CreateBookingResponse.from_result(result)


@router.post(
    "/bookings/{booking_id}/cancel",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
)
async def cancel_booking(
    booking_id: int,
    payload: CancelBookingRequest | None = None,
    actor: Actor = Depends(get_actor),
    use_cases=Depends(get_use_cases),
) -> BookingResponse:
    booking = await use_cases["cancel_booking"].execute(
        booking_id=booking_id,
        host_id=actor.user_id,
        reason=payload.reason if payload else None,
    )
    return BookingResponse.from_booking(booking)


@router.post(
    "/bookings/{booking_id}/attendance",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
)
async def record_attendance(
    booking_id: int,
    payload: AttendanceRequest,
    actor: Actor = Depends(get_actor),
    use_cases=Depends(get_use_cases),
) -> BookingResponse:
    booking = await use_cases["record_attendance"].execute(
        booking_id=booking_id, host_id=actor.user_id, outcome=payload.outcome
    )
    return BookingResponse.from_booking(booking)


@router.post(
    "/bookings/{booking_id}/dispute",
    response_model=DisputeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def dispute_booking(
    booking_id: int,
    payload: DisputeRequest,
    actor: Actor = Depends(get_actor),
    use_cases=Depends(get_use_cases),
) -> DisputeResponse:
    booking, report = await use_cases["dispute_booking"].execute(
        booking_id=booking_id,
        explorer_id=actor.user_id,
        reason=payload.reason,
        comment=payload.comment,
    )
    return DisputeResponse.from_entities(booking, report)


@router.get(
    "/bookings/{booking_id}/messages",
    response_model=list[MessageResponse],
    status_code=status.HTTP_200_OK,
)
async def list_messages(
    booking_id: int,
    actor: Actor = Depends(get_actor),
    use_cases=Depends(get_use_cases),
) -> list[MessageResponse]:
    messages = await use_cases["list_messages"].execute(
        booking_id=booking_id, actor_id=actor.user_id, is_admin=actor.is_admin
    )
    return [MessageResponse.from_message(m) for m in messages]


@router.post(
    "/bookings/{booking_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    booking_id: int,
    payload: SendMessageRequest,
    actor: Actor = Depends(get_actor),
    use_cases=Depends(get_use_cases),
) -> MessageResponse:
    message = await use_cases["send_message"].execute(
        booking_id=booking_id, sender_id=actor.user_id, text=payload.text
    )
    return MessageResponse.from_message(message)


@router.get(
    "/hosts/{host_id}/wallet",
    response_model=WalletResponse,
    status_code=status.HTTP_200_OK,
)
async def get_wallet(
    host_id: int,
    actor: Actor = Depends(get_actor),
    use_cases=Depends(get_use_cases),
) -> WalletResponse:
    if actor.user_id != host_id and not actor.is_admin:
        raise ForbiddenError(f"Wallet of host {host_id} is not yours", code="NOT_WALLET_OWNER")
    balance = await use_cases["get_wallet"].execute(host_id=host_id)
    return WalletResponse.from_balance(host_id, balance)
