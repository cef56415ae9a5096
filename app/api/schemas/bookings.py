from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.application.dtos.booking_dto import AdminActionResultDTO, CheckoutResultDTO
from app.application.dtos.sweep_dto import SweepReport
from app.application.use_cases.record_attendance import AttendanceOutcome
from app.domain.entities.booking import Booking
from app.domain.entities.dispute_report import DisputeReport
from app.domain.entities.message import BookingMessage
from app.domain.payout import WalletBalance


class CreateBookingRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    experience_id: int
    quantity: int | None = Field(default=1, ge=1)


class CancelBookingRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reason: str | None = Field(default=None, max_length=255)


class AttendanceRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    outcome: AttendanceOutcome


class DisputeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reason: str
    # Length is enforced by the dispute rules so the error carries the domain code
    comment: str | None = None


class SendMessageRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    text: str


class AdminActionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    action: str
    token: str
    confirm: bool = False
    confirm_text: str | None = None
    report_id: int | None = None
    booking_id: int | None = None
    host_id: int | None = None
    explorer_id: int | None = None
    experience_id: int | None = None

    def targets(self) -> dict[str, int | None]:
        return {
            "report_id": self.report_id,
            "booking_id": self.booking_id,
            "host_id": self.host_id,
            "explorer_id": self.explorer_id,
            "experience_id": self.experience_id,
        }


class BookingResponse(BaseModel):
    id: int
    experience_id: int
    explorer_id: int
    host_id: int
    quantity: int
    amount: int
    deposit_amount: int
    currency: str
    is_deposit: bool
    status: str
    attendance_status: str
    paid_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    refunded_at: datetime | None = None
    payout_eligible_at: datetime | None = None
    disputed_at: datetime | None = None

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingResponse":
        return cls(
            id=booking.id,
            experience_id=booking.experience_id,
            explorer_id=booking.explorer_id,
            host_id=booking.host_id,
            quantity=booking.quantity,
            amount=booking.amount,
            deposit_amount=booking.deposit_amount,
            currency=booking.currency,
            is_deposit=booking.is_deposit,
            status=booking.status.value,
            attendance_status=booking.attendance_status.value,
            paid_at=booking.paid_at,
            completed_at=booking.completed_at,
            cancelled_at=booking.cancelled_at,
            refunded_at=booking.refunded_at,
            payout_eligible_at=booking.payout_eligible_at,
            disputed_at=booking.disputed_at,
        )


class CreateBookingResponse(BaseModel):
    booking_id: int
    status: str
    checkout_session_id: str
    checkout_url: str | None = None
    amount: int
    currency: str
    is_deposit: bool

    @classmethod
    def from_result(cls, result: CheckoutResultDTO) -> "CreateBookingResponse":
        return cls(
            booking_id=result.booking.id,
            status=result.booking.status.value,
            checkout_session_id=result.checkout_session_id,
            checkout_url=result.checkout_url,
            amount=result.amount,
            currency=result.currency,
            is_deposit=result.is_deposit,
        )


class DisputeResponse(BaseModel):
    booking: BookingResponse
    report_id: int
    report_status: str
    deadline_at: datetime | None = None

    @classmethod
    def from_entities(cls, booking: Booking, report: DisputeReport) -> "DisputeResponse":
        return cls(
            booking=BookingResponse.from_booking(booking),
            report_id=report.id,
            report_status=report.status.value,
            deadline_at=report.deadline_at,
        )


class WalletResponse(BaseModel):
    host_id: int
    available: int
    pending: int
    blocked: int
    currency: str

    @classmethod
    def from_balance(cls, host_id: int, balance: WalletBalance) -> "WalletResponse":
        return cls(
            host_id=host_id,
            available=balance.available,
            pending=balance.pending,
            blocked=balance.blocked,
            currency=balance.currency,
        )


class MessageResponse(BaseModel):
    id: int
    booking_id: int
    sender_id: int
    text: str
    created_at: datetime | None = None

    @classmethod
    def from_message(cls, message: BookingMessage) -> "MessageResponse":
        return cls(
            id=message.id,
            booking_id=message.booking_id,
            sender_id=message.sender_id,
            text=message.text,
            created_at=message.created_at,
        )


class AdminActionPreviewResponse(BaseModel):
    action: str
    targets: dict[str, int]
    confirmation_phrase: str | None = None


class AdminActionResponse(BaseModel):
    action: str
    changed: bool
    booking_status: str | None = None
    report_status: str | None = None
    refunded_booking_ids: list[int] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: AdminActionResultDTO) -> "AdminActionResponse":
        return cls(
            action=result.action,
            changed=result.changed,
            booking_status=result.booking_status,
            report_status=result.report_status,
            refunded_booking_ids=list(result.refunded_booking_ids),
        )


class SweepReportResponse(BaseModel):
    name: str
    examined: int
    changed: int
    failed: int
    failed_ids: list[int] = Field(default_factory=list)

    @classmethod
    def from_report(cls, report: SweepReport) -> "SweepReportResponse":
        return cls(
            name=report.name,
            examined=report.examined,
            changed=report.changed,
            failed=report.failed,
            failed_ids=list(report.failed_ids),
        )
