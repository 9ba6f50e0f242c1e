"""Subscriber email addresses as stored in the subscriptions table."""

from __future__ import annotations

from dataclasses import dataclass

from email_validator import EmailNotValidError, validate_email


class InvalidSubscriberEmail(ValueError):
    """Raised when a stored address can never be delivered to."""


@dataclass(frozen=True)
class SubscriberEmail:
    """A syntactically valid recipient address."""

    value: str

    @classmethod
    def parse(cls, raw: str) -> SubscriberEmail:
        """Validate ``raw`` and return it in normalized form.

        Deliverability (DNS) is not checked here; the gateway decides that.
        """
        try:
            result = validate_email(raw, check_deliverability=False)
        except EmailNotValidError as err:
            raise InvalidSubscriberEmail(f"{raw!r} is not a valid subscriber email: {err}") from err
        return cls(result.normalized)

    def __str__(self) -> str:
        return self.value
