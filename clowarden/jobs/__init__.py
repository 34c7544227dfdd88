"""Background triggers: Dramatiq actors and the periodic scheduler."""

from __future__ import annotations

from .scheduler import PeriodicReconciler

__all__ = ["PeriodicReconciler"]
