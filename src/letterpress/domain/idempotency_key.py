"""Client-supplied idempotency keys."""

from __future__ import annotations

from dataclasses import dataclass

MAX_IDEMPOTENCY_KEY_LENGTH = 50


class InvalidIdempotencyKey(ValueError):
    """Raised when a client sends an unusable idempotency key."""


@dataclass(frozen=True)
class IdempotencyKey:
    """Token identifying one logical request across client retries."""

    value: str

    @classmethod
    def parse(cls, raw: str) -> IdempotencyKey:
        """Validate a raw key without trimming or otherwise coercing it.

        Raises:
            InvalidIdempotencyKey: If the key is empty or longer than
                ``MAX_IDEMPOTENCY_KEY_LENGTH`` characters.
        """
        if not raw:
            raise InvalidIdempotencyKey("The idempotency key cannot be empty")
        if len(raw) > MAX_IDEMPOTENCY_KEY_LENGTH:
            raise InvalidIdempotencyKey(
                f"The idempotency key must be at most {MAX_IDEMPOTENCY_KEY_LENGTH} characters long"
            )
        return cls(raw)

    def __str__(self) -> str:
        return self.value
