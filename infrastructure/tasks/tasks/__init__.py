"""Task modules.

Import side effects register Celery tasks once this package is imported.
"""
from . import jobs  # noqa: F401 to register tasks
from . import maintenance  # noqa: F401

__all__ = ["jobs", "maintenance"]
