"""Validated value types shared by the web and worker layers."""

from .idempotency_key import IdempotencyKey, InvalidIdempotencyKey
from .subscriber_email import InvalidSubscriberEmail, SubscriberEmail

__all__ = [
    "IdempotencyKey",
    "InvalidIdempotencyKey",
    "InvalidSubscriberEmail",
    "SubscriberEmail",
]
