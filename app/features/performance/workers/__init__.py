"""Celery workers module - imports all task modules for autodiscovery."""

from app.features.performance.workers import tasks  # noqa: F401
