"""Constants for autopilot routes."""

CRON_SECRET_NOT_CONFIGURED_DETAIL = "Trigger secret is not configured"
INVALID_TRIGGER_CREDENTIALS_DETAIL = "Unauthorized"
NO_KEYWORD_OPPORTUNITIES_DETAIL = (
    "No active keywords with opportunities found. Refresh keywords first."
)
