from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    database_url: str | None = None  # e.g. sqlite+aiosqlite:///./bookings.db
    use_in_memory: bool = True

    # Stripe
    stripe_api_key: str | None = Field(default=None, alias="STRIPE_SECRET_KEY")
    stripe_webhook_secret: str | None = None
    stripe_live_mode: bool | None = None  # derived from the key prefix when unset
    checkout_success_url: str = "http://localhost:3000/payment-success"
    checkout_cancel_url: str = "http://localhost:3000/payment-cancel"

    # Money (minor units)
    default_currency: str = "ron"
    free_booking_deposit_minor: int = 500

    # Disputes and admin action links
    admin_action_secret: str = "change-me-admin-action-secret"
    admin_action_ttl_hours: int = 48
    reports_email: str | None = None
    public_base_url: str = "http://localhost:8000"

    # Notifications
    notifications_base_url: str | None = None
    notifications_timeout_seconds: float = 5.0

    # Background sweepers
    run_sweepers: bool = False
    attendance_sweep_interval_seconds: float = 15 * 60
    reconciliation_interval_seconds: float = 10 * 60
    refund_retry_interval_seconds: float = 6 * 60 * 60
    chat_archive_interval_seconds: float = 30 * 60
    reconcile_batch_size: int = 50


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
