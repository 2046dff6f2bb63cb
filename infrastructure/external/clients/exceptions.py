"""
Errors raised by outbound service clients.
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode


class ExternalServiceError(BusinessException):
    """Non-retryable rejection from a downstream service (4xx)."""

    def __init__(self, message: str, *, service: str, status_code: Optional[int] = None, details: Optional[dict] = None):
        full_details = {"service": service, "status_code": status_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=BusinessCode.NETWORK_ERROR,
            message=message,
            error_type="ExternalServiceError",
            details=full_details,
        )


class ExternalServiceUnavailable(ExternalServiceError):
    """Transient downstream failure (5xx, 429, timeout); retried in-process, then by the job queue."""

    retryable = True

    def __init__(self, message: str, *, service: str, status_code: Optional[int] = None, details: Optional[dict] = None):
        super().__init__(message, service=service, status_code=status_code, details=details)
        self.error_type = "ExternalServiceUnavailable"
