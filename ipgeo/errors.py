class AppError(Exception):
    """Base application error for the IP geolocation history service."""


class IpProviderError(AppError):
    """Base error for IP geolocation provider failures."""


class UpstreamServiceError(IpProviderError):
    """Raised when the upstream IP provider fails or answers with a non-success status."""


class UpstreamTimeoutError(UpstreamServiceError):
    """Raised when the upstream IP provider does not answer within the configured timeout."""


class AuthenticationError(AppError):
    """Raised when a request carries no bearer token or an unknown one."""


class ApiError(AppError):
    """Raised by the API client when the service answers with a non-success status."""

    def __init__(self, status_code: int, message: str | None = None) -> None:
        super().__init__(message or f"Request failed with HTTP {status_code}")
        self.status_code = status_code
        self.message = message
