"""Custom exception classes for the application."""

from typing import Any


class ContentAutopilotError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# Authentication Errors
class AuthenticationError(ContentAutopilotError):
    """Authentication failed."""

    pass


class InvalidTokenError(AuthenticationError):
    """Invalid or expired token."""

    def __init__(self, message: str = "Invalid or expired token") -> None:
        super().__init__(message)


# Site Errors
class SiteNotFoundError(ContentAutopilotError):
    """Site not found (or not owned by the caller's organization)."""

    def __init__(self, site_id: str) -> None:
        super().__init__(f"Site not found: {site_id}")


class GoogleNotConnectedError(ContentAutopilotError):
    """The site has no active Google connection."""

    def __init__(self, site_id: str) -> None:
        super().__init__(
            "Google is not connected for this site. Please connect Google first.",
            details={"site_id": site_id},
        )


class GoogleTokenExpiredError(AuthenticationError):
    """The site's stored Google access token is missing or expired."""

    def __init__(self, site_id: str) -> None:
        super().__init__(
            "Failed to get a valid Google access token. Please reconnect Google.",
            details={"site_id": site_id},
        )


# Pipeline Errors
class PipelineError(ContentAutopilotError):
    """Base class for autopilot pipeline errors."""

    pass


class InvalidPipelineStateError(PipelineError):
    """Persisted pipeline columns do not form a legal state."""

    def __init__(self, step: str | None, keyword_id: str | None, article_id: str | None) -> None:
        super().__init__(
            f"Invalid pipeline state: step={step!r}",
            details={"step": step, "keyword_id": keyword_id, "article_id": article_id},
        )


class PipelineTransitionError(PipelineError):
    """Requested transition is not legal from the site's current state."""

    def __init__(self, site_id: str, message: str) -> None:
        super().__init__(message, details={"site_id": site_id})


# External API Errors
class ExternalAPIError(ContentAutopilotError):
    """Error calling external API."""

    def __init__(
        self,
        api_name: str,
        message: str,
        *,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        self.api_name = api_name
        self.status_code = status_code
        self.body = body
        super().__init__(
            f"{api_name} API error: {message}",
            details={"status_code": status_code, "body": body},
        )


class RateLimitExceededError(ExternalAPIError):
    """Rate limit exceeded for external API."""

    def __init__(self, api_name: str) -> None:
        super().__init__(api_name, "Rate limit exceeded", status_code=429)


class APIKeyMissingError(ExternalAPIError):
    """API credentials not configured."""

    def __init__(self, api_name: str) -> None:
        super().__init__(api_name, "API credentials not configured")


# Validation Errors
class ValidationError(ContentAutopilotError):
    """Data validation failed."""

    pass
