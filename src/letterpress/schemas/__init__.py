"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .newsletter import IdempotencyKeyResponse, NewsletterForm

__all__ = ["IdempotencyKeyResponse", "NewsletterForm"]
