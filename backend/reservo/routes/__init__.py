# backend/reservo/routes/__init__.py
"""HTTP routes for the Reservo booking engine."""
