# backend/lessonloop/routes/v1/__init__.py
"""
API v1 Routes

Versioned API endpoints under /api/v1.
"""

from . import billing, jobs, lessons, metrics, slots, teachers

__all__ = [
    "billing",
    "jobs",
    "lessons",
    "metrics",
    "slots",
    "teachers",
]
