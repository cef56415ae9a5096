"""Domain errors for the booking core.

Every rejection the core can produce is a ``DomainError`` with a stable
``code`` and an HTTP status hint used by the API layer.
"""

from datetime import datetime


class DomainError(Exception):
    """Base class for all domain errors."""

    status_code = 400

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        self.code = code or self.__class__.__name__
        super().__init__(self.message)


# === Not found ===


class NotFoundError(DomainError):
    status_code = 404


class BookingNotFoundError(NotFoundError):
    def __init__(self, booking_id: int):
        super().__init__(message=f"Booking not found: {booking_id}", code="BOOKING_NOT_FOUND")
        self.booking_id = booking_id


class ExperienceNotFoundError(NotFoundError):
    def __init__(self, experience_id: int):
        super().__init__(
            message=f"Experience not found: {experience_id}", code="EXPERIENCE_NOT_FOUND"
        )
        self.experience_id = experience_id


class PaymentNotFoundError(NotFoundError):
    def __init__(self, booking_id: int):
        super().__init__(
            message=f"Payment not found for booking {booking_id}", code="PAYMENT_NOT_FOUND"
        )
        self.booking_id = booking_id


class ParticipantNotFoundError(NotFoundError):
    def __init__(self, participant_id: int):
        super().__init__(
            message=f"Participant not found: {participant_id}", code="PARTICIPANT_NOT_FOUND"
        )
        self.participant_id = participant_id


class ReportNotFoundError(NotFoundError):
    def __init__(self, report_id: int):
        super().__init__(message=f"Report not found: {report_id}", code="REPORT_NOT_FOUND")
        self.report_id = report_id


# === Forbidden ===


class ForbiddenError(DomainError):
    status_code = 403


class NotBookingParticipantError(ForbiddenError):
    def __init__(self, booking_id: int, actor_id: int | None):
        super().__init__(
            message=f"User {actor_id} is not a participant of booking {booking_id}",
            code="NOT_BOOKING_PARTICIPANT",
        )


class NotBookingHostError(ForbiddenError):
    def __init__(self, booking_id: int):
        super().__init__(
            message=f"Only the host can perform this action on booking {booking_id}",
            code="NOT_BOOKING_HOST",
        )


class NotBookingExplorerError(ForbiddenError):
    def __init__(self, booking_id: int):
        super().__init__(
            message=f"Only the explorer can perform this action on booking {booking_id}",
            code="NOT_BOOKING_EXPLORER",
        )


class ParticipantBannedError(ForbiddenError):
    def __init__(self, role: str):
        super().__init__(message=f"The {role} account is banned", code=f"{role.upper()}_BANNED")
        self.role = role


# === Conflicts ===


class ConflictError(DomainError):
    status_code = 409


class InsufficientCapacityError(ConflictError):
    def __init__(self, experience_id: int, requested: int, remaining: int):
        super().__init__(
            message=f"Not enough spots on experience {experience_id}: "
            f"requested {requested}, remaining {remaining}",
            code="INSUFFICIENT_CAPACITY",
        )
        self.experience_id = experience_id
        self.requested = requested
        self.remaining = remaining


class SoldOutError(ConflictError):
    def __init__(self, experience_id: int):
        super().__init__(
            message=f"Experience {experience_id} is sold out", code="EXPERIENCE_SOLD_OUT"
        )


class DisputeLockedError(ConflictError):
    def __init__(self, booking_id: int, status: str):
        super().__init__(
            message=f"Booking {booking_id} is locked by a dispute (status {status})",
            code="DISPUTE_LOCKED",
        )
        self.booking_id = booking_id
        self.status = status


class BookingFinalizedError(ConflictError):
    def __init__(self, booking_id: int, status: str):
        super().__init__(
            message=f"Booking {booking_id} is already finalized (status {status})",
            code="BOOKING_FINALIZED",
        )
        self.booking_id = booking_id
        self.status = status


class ConcurrentModificationError(ConflictError):
    """Another writer updated the booking since it was loaded."""

    def __init__(self, booking_id: int, expected_version: int):
        super().__init__(
            message=f"Booking {booking_id} was modified concurrently "
            f"(expected version {expected_version})",
            code="CONCURRENT_MODIFICATION",
        )
        self.booking_id = booking_id
        self.expected_version = expected_version


class InvalidTransitionError(ConflictError):
    def __init__(self, booking_id: int | None, current_status: str, target_status: str):
        super().__init__(
            message=f"Booking {booking_id} cannot move from {current_status} to {target_status}",
            code="INVALID_TRANSITION",
        )
        self.booking_id = booking_id
        self.current_status = current_status
        self.target_status = target_status


# === Policy rejections ===


class PolicyRejectedError(DomainError):
    status_code = 422


class ValidationError(PolicyRejectedError):
    """Invalid input data."""

    def __init__(self, field: str, message: str):
        super().__init__(message=f"Validation failed on '{field}': {message}", code="VALIDATION_ERROR")
        self.field = field


class ExperienceUnavailableError(PolicyRejectedError):
    def __init__(self, experience_id: int, reason: str):
        super().__init__(
            message=f"Experience {experience_id} is not bookable: {reason}",
            code="EXPERIENCE_UNAVAILABLE",
        )
        self.experience_id = experience_id
        self.reason = reason


class ExperienceAlreadyStartedError(PolicyRejectedError):
    def __init__(self, experience_id: int):
        super().__init__(
            message=f"Experience {experience_id} has already started",
            code="EXPERIENCE_ALREADY_STARTED",
        )


class RepeatedNoShowError(PolicyRejectedError):
    def __init__(self, explorer_id: int, count: int):
        super().__init__(
            message=f"Explorer {explorer_id} has {count} recent no-shows; "
            "free bookings are temporarily blocked",
            code="REPEATED_NO_SHOW",
        )


class OutsideWindowError(PolicyRejectedError):
    """An action was attempted outside its allowed time window."""

    def __init__(
        self,
        action: str,
        opens_at: datetime,
        closes_at: datetime,
        now: datetime,
        code: str,
    ):
        when = "not open yet" if now < opens_at else "closed"
        super().__init__(
            message=f"{action} window is {when}: allowed from {opens_at.isoformat()} "
            f"to {closes_at.isoformat()}",
            code=code,
        )
        self.opens_at = opens_at
        self.closes_at = closes_at


class AttendanceWindowError(OutsideWindowError):
    def __init__(self, opens_at: datetime, closes_at: datetime, now: datetime):
        super().__init__("Attendance", opens_at, closes_at, now, "ATTENDANCE_WINDOW")


class DisputeWindowError(OutsideWindowError):
    def __init__(self, opens_at: datetime, closes_at: datetime, now: datetime):
        super().__init__("Dispute", opens_at, closes_at, now, "DISPUTE_WINDOW")


class InvalidDisputeReasonError(PolicyRejectedError):
    def __init__(self, reason: str):
        super().__init__(message=f"Invalid dispute reason: {reason}", code="INVALID_DISPUTE_REASON")


class ChatUnavailableError(PolicyRejectedError):
    def __init__(self, booking_id: int, archived: bool):
        super().__init__(
            message=f"Chat for booking {booking_id} is "
            + ("archived" if archived else "not available in the current status"),
            code="CHAT_ARCHIVED" if archived else "CHAT_UNAVAILABLE",
        )
        self.booking_id = booking_id
        self.archived = archived


# === Admin actions ===


class AdminActionError(DomainError):
    status_code = 400


class InvalidActionTokenError(AdminActionError):
    status_code = 401

    def __init__(self, reason: str):
        super().__init__(message=f"Invalid action token: {reason}", code="INVALID_ACTION_TOKEN")


class ActionTokenMismatchError(AdminActionError):
    def __init__(self, field: str):
        super().__init__(
            message=f"Action token does not match the requested {field}",
            code="ACTION_TOKEN_MISMATCH",
        )


class ConfirmationRequiredError(AdminActionError):
    def __init__(self, expected_phrase: str | None = None):
        message = "Confirmation is required"
        if expected_phrase:
            message = f"Confirmation phrase '{expected_phrase}' is required"
        super().__init__(message=message, code="CONFIRMATION_REQUIRED")
        self.expected_phrase = expected_phrase


class UnknownAdminActionError(AdminActionError):
    def __init__(self, action: str):
        super().__init__(message=f"Unknown admin action: {action}", code="UNKNOWN_ADMIN_ACTION")


# === Payment gateway ===


class PaymentGatewayError(DomainError):
    """The payment processor could not complete the call."""

    status_code = 502

    def __init__(self, message: str, code: str = "PAYMENT_GATEWAY_ERROR"):
        super().__init__(message=message, code=code)


class PaymentGatewayUnavailableError(PaymentGatewayError):
    status_code = 503

    def __init__(self, message: str = "Payment processor is unavailable"):
        super().__init__(message=message, code="PAYMENT_GATEWAY_UNAVAILABLE")


class CheckoutSessionNotFoundError(PaymentGatewayError):
    def __init__(self, session_id: str):
        super().__init__(
            message=f"Checkout session not found: {session_id}", code="CHECKOUT_SESSION_NOT_FOUND"
        )
        self.session_id = session_id


class GatewayEnvironmentMismatchError(PaymentGatewayError):
    def __init__(self, session_id: str):
        super().__init__(
            message=f"Checkout session {session_id} belongs to a different environment",
            code="GATEWAY_ENVIRONMENT_MISMATCH",
        )
        self.session_id = session_id


class AlreadyRefundedError(PaymentGatewayError):
    def __init__(self, reference: str):
        super().__init__(message=f"Charge already refunded: {reference}", code="ALREADY_REFUNDED")
        self.reference = reference


class InvalidWebhookSignatureError(DomainError):
    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(message=message, code="INVALID_WEBHOOK_SIGNATURE")


class WebhookNotConfiguredError(DomainError):
    """Events cannot be trusted without a signing secret, so none are accepted."""

    status_code = 500

    def __init__(self):
        super().__init__(message="Webhook secret not configured", code="WEBHOOK_NOT_CONFIGURED")
