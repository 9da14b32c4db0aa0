"""Celery application and periodic tasks."""
