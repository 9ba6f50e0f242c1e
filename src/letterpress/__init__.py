"""Letterpress: idempotent newsletter publishing with transactional delivery."""

__version__ = "0.1.0"
