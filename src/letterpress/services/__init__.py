# src/letterpress/services/__init__.py
"""Business logic services for the Letterpress application."""

from .delivery_worker import DeliveryWorker, ExecutionOutcome
from .email_client import (
    EmailClient,
    EmailDeliveryError,
    PermanentDeliveryError,
    TransientDeliveryError,
)
from .idempotency import IdempotencyConflictError

__all__ = [
    "DeliveryWorker",
    "EmailClient",
    "EmailDeliveryError",
    "ExecutionOutcome",
    "IdempotencyConflictError",
    "PermanentDeliveryError",
    "TransientDeliveryError",
]
