"""Constants for keyword routes."""

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200

GOOGLE_ADS_NOT_CONFIGURED_DETAIL = (
    "Google Ads API is not configured. Set GOOGLE_ADS_DEVELOPER_TOKEN, "
    "GOOGLE_ADS_CUSTOMER_ID and GOOGLE_ADS_REFRESH_TOKEN."
)
