"""Service package public API definitions.

Service implementations are imported lazily. ``queueboard.clients.backend``
imports ``queueboard.services.exceptions``, which executes this module first;
importing the services eagerly here would pull the client back in and create
a circular import.
"""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any

__all__ = [
    "QueueEstimator",
    "QueueStatusService",
    "ReminderService",
]

_SERVICE_MODULES = {
    "QueueEstimator": "estimator",
    "QueueStatusService": "queue_status",
    "ReminderService": "reminders",
}


def __getattr__(name: str) -> Any:
    if name not in _SERVICE_MODULES:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

    module = import_module(f".{_SERVICE_MODULES[name]}", __name__)
    attr = getattr(module, name)
    globals()[name] = attr
    return attr


if TYPE_CHECKING:  # pragma: no cover - import for static analysis only
    from .estimator import QueueEstimator as QueueEstimator
    from .queue_status import QueueStatusService as QueueStatusService
    from .reminders import ReminderService as ReminderService
