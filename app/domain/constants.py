"""Time windows, limits and defaults shared by the booking core."""

from datetime import timedelta

# Attendance confirmation window: [start + open offset, end + close offset]
ATTENDANCE_OPENS_AFTER_START = timedelta(minutes=15)
ATTENDANCE_CLOSES_AFTER_END = timedelta(hours=48)

# Dispute window: [end + open offset, end + close offset]
DISPUTE_OPENS_AFTER_END = timedelta(minutes=15)
DISPUTE_CLOSES_AFTER_END = timedelta(hours=72)
DISPUTE_REPORT_DEADLINE = timedelta(hours=48)
DISPUTE_COMMENT_MAX_LENGTH = 300

# Holdback between completion and host payout
PAYOUT_HOLDBACK = timedelta(hours=72)

# Effective end time fallbacks
DEFAULT_EXPERIENCE_DURATION = timedelta(hours=24)
END_TIME_HARD_CAP = timedelta(days=7)

# Host reminder cadence while attendance is pending
ATTENDANCE_REMINDER_CADENCE = timedelta(hours=12)

# Chat archival
CHAT_ARCHIVE_AFTER_END = timedelta(hours=48)
CHAT_ARCHIVE_AFTER_DISPUTE_RESOLUTION = timedelta(hours=72)

# Refund retries
MAX_REFUND_ATTEMPTS = 5
REFUND_RETRY_BACKOFF = timedelta(hours=6)

# Repeated no-show guard for free experiences
NO_SHOW_LOOKBACK = timedelta(days=30)
NO_SHOW_LIMIT = 2

# Reconciliation batch limit
RECONCILE_BATCH_SIZE = 50

# Admin action links
ADMIN_ACTION_TOKEN_TTL = timedelta(hours=48)
