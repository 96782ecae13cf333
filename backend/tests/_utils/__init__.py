"""Shared helpers for backend test suites."""

from .scenario import NOW, at

__all__ = ["NOW", "at"]
