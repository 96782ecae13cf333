# backend/reservo/routes/v1/__init__.py
"""
API v1 Routes

Versioned API endpoints under /api/v1.
"""

from . import bookings, businesses, customers, services

__all__ = [
    "bookings",
    "businesses",
    "customers",
    "services",
]
