from typing import Optional, Dict, Any


class CirrusException(Exception):
    """Base exception for all Cirrus errors."""

    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}


class ExternalAPIError(CirrusException):
    """Raised when the cloud provider API fails or returns an unusable payload."""

    def __init__(
        self,
        message: str,
        code: str = "external_api_error",
        upstream_status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code=code, status_code=502, details=details)
        self.upstream_status = upstream_status


class ConfigurationError(CirrusException):
    """Raised when application configuration is invalid or missing."""

    def __init__(
        self, message: str, code: str = "config_error", details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, code=code, status_code=500, details=details)


class ResourceNotFoundError(CirrusException):
    """Raised when a requested resource is not found."""

    def __init__(
        self, message: str, code: str = "not_found", details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, code=code, status_code=404, details=details)


class PersistenceError(CirrusException):
    """Raised when a sync or evaluation write could not be committed."""

    def __init__(
        self, message: str, code: str = "persistence_error", details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, code=code, status_code=500, details=details)
