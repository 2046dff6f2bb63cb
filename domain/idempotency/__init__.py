"""Idempotency domain exports."""
from .entity import BeginResult, IdempotencyRecord, IdempotencyStatus
from .repository import IdempotencyRepository

__all__ = ["BeginResult", "IdempotencyRecord", "IdempotencyStatus", "IdempotencyRepository"]
