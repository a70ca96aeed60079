"""Custom exception classes for the scraper core."""
from typing import Any, Optional


class AppException(Exception):
    """Base exception for the application."""

    def __init__(self, message: str, detail: Any = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


class ScrapingError(AppException):
    """Error during scraping operation."""
    pass


class HttpStatusError(ScrapingError):
    """Source answered with an HTTP error status."""

    def __init__(self, status_code: int, url: str, detail: Any = None):
        self.status_code = status_code
        self.url = url
        super().__init__(f"HTTP {status_code} for {url}", detail)


class AuthorizationError(ScrapingError):
    """Source keeps rejecting requests (HTTP 401/403)."""
    pass


class RateLimitError(HttpStatusError):
    """Source is throttling us (HTTP 429)."""
    pass


class CircuitOpenError(ScrapingError):
    """Call rejected because the circuit breaker is open."""

    def __init__(self, message: str = "Circuit breaker is OPEN", retry_after: Optional[float] = None):
        self.retry_after = retry_after
        super().__init__(message, {"retry_after": retry_after})


class ParsingError(AppException):
    """Error parsing a listing item."""
    pass


class PersistenceError(AppException):
    """A batch transaction failed and was rolled back."""
    pass


class ConfigurationError(AppException):
    """Invalid or missing configuration."""
    pass


class UnknownSourceError(ConfigurationError):
    """No scraper is registered under the requested name."""
    pass


class MissingCredentialsError(ConfigurationError):
    """A source needs credentials that are not configured."""
    pass


class JobAlreadyRunningError(AppException):
    """An orchestration cycle is already running."""
    pass
