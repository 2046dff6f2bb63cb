"""Domain business exceptions shared by the domain and infrastructure layers.

The core layer only maps these to HTTP responses; the domain never imports
core. `retryable` tells callers whether reloading state and retrying can
succeed.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from shared.codes import BusinessCode


class BusinessException(Exception):
    """Base class for business exceptions"""

    retryable: bool = False

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


# ---------------------------------------------------------------------------
# Order lifecycle
# ---------------------------------------------------------------------------


class OrderNotFoundError(BusinessException):
    def __init__(self, order_id: str):
        super().__init__(
            code=BusinessCode.ORDER_NOT_FOUND,
            message=f"Order {order_id} not found",
            error_type="OrderNotFound",
            details={"order_id": order_id},
        )


class InvalidItemsError(BusinessException):
    def __init__(self, reason: str, *, product_ref: str | None = None):
        details = {"reason": reason}
        if product_ref is not None:
            details["product_ref"] = product_ref
        super().__init__(
            code=BusinessCode.INVALID_ITEMS,
            message=f"Invalid order items: {reason}",
            error_type="InvalidItemsError",
            details=details,
            field="items",
        )


class InvalidTransitionError(BusinessException):
    def __init__(self, order_id: str, current: str, target: str):
        super().__init__(
            code=BusinessCode.INVALID_TRANSITION,
            message=f"Order {order_id} cannot move from {current} to {target}",
            error_type="InvalidTransitionError",
            details={"order_id": order_id, "current": current, "target": target},
            field="status",
        )


class AmountMismatchError(BusinessException):
    def __init__(self, order_id: str, expected: Decimal, received: Decimal):
        super().__init__(
            code=BusinessCode.AMOUNT_MISMATCH,
            message=f"Payment amount {received} does not match order total {expected}",
            error_type="AmountMismatchError",
            details={"order_id": order_id, "expected": str(expected), "received": str(received)},
            field="amount",
        )


class RefundExceedsPaidError(BusinessException):
    def __init__(self, order_id: str, requested: Decimal, refundable: Decimal):
        super().__init__(
            code=BusinessCode.REFUND_EXCEEDS_PAID,
            message=f"Refund {requested} exceeds refundable amount {refundable}",
            error_type="RefundExceedsPaidError",
            details={"order_id": order_id, "requested": str(requested), "refundable": str(refundable)},
            field="amount",
        )


class ConcurrentModificationError(BusinessException):
    retryable = True

    def __init__(self, order_id: str, expected_version: int, actual_version: int | None = None):
        details = {"order_id": order_id, "expected_version": expected_version}
        if actual_version is not None:
            details["actual_version"] = actual_version
        super().__init__(
            code=BusinessCode.CONCURRENT_MODIFICATION,
            message=f"Order {order_id} was modified concurrently; reload and retry",
            error_type="ConcurrentModificationError",
            details=details,
            field="expected_version",
        )


class DispatchUnavailableError(BusinessException):
    retryable = True

    def __init__(self, reason: str):
        super().__init__(
            code=BusinessCode.SERVICE_UNAVAILABLE,
            message="Effect dispatch unavailable; retry the request",
            error_type="DispatchUnavailableError",
            details={"reason": reason},
        )


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------


class UnauthenticatedWebhookError(BusinessException):
    def __init__(self, message: str, *, provider: str):
        super().__init__(
            code=BusinessCode.UNAUTHORIZED,
            message=message,
            error_type="UnauthenticatedWebhookError",
            details={"provider": provider},
        )


# ---------------------------------------------------------------------------
# Job queue
# ---------------------------------------------------------------------------


class JobNotFoundError(BusinessException):
    def __init__(self, job_id: int):
        super().__init__(
            code=BusinessCode.JOB_NOT_FOUND,
            message=f"Job {job_id} not found",
            error_type="JobNotFound",
            details={"job_id": job_id},
        )


class InvalidJobStateError(BusinessException):
    def __init__(self, job_id: int, status: str, action: str):
        super().__init__(
            code=BusinessCode.INVALID_JOB_STATE,
            message=f"Cannot {action} job {job_id} in status {status}",
            error_type="InvalidJobStateError",
            details={"job_id": job_id, "status": status, "action": action},
        )


class JobDeadLetteredError(BusinessException):
    def __init__(self, job_id: int, job_type: str, attempts: int, last_error: str | None):
        super().__init__(
            code=BusinessCode.JOB_DEAD_LETTERED,
            message=f"Job {job_id} ({job_type}) dead-lettered after {attempts} attempts",
            error_type="JobDeadLetteredError",
            details={"job_id": job_id, "job_type": job_type, "attempts": attempts, "last_error": last_error},
        )
