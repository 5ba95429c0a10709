"""Celery task definitions package."""

# Ensure task modules are imported so Celery can discover them
from . import reconstruct  # noqa: F401
from .reconstruct import reconstruct_blueprint  # noqa: F401
