"""Utility helpers shared across the application."""

from .cancellation import raise_if_cancelled, wait_or_cancel

__all__ = ["raise_if_cancelled", "wait_or_cancel"]
