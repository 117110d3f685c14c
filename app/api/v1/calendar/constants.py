"""Constants for content calendar routes."""

SCHEDULED_RUN_NOT_FOUND_DETAIL = "No pending scheduled run found for this date"
