"""
Client side of the sprint backlog.

Provides the async API client and the prioritization board:
- SprintApiClient for every sprint and backlog-story endpoint
- SprintReorderController for optimistic, debounced story ordering
- PrioritizationBoard tying sprints, controllers and the backlog together
"""

from .api_client import SprintApiClient, SprintApiError
from .reorder_controller import (
    LoggingNotifier,
    Notifier,
    PrioritizationBoard,
    ReorderState,
    SprintReorderController,
)
from .timer import DebounceTimer, TimerHandle

__all__ = [
    "SprintApiClient",
    "SprintApiError",
    "LoggingNotifier",
    "Notifier",
    "PrioritizationBoard",
    "ReorderState",
    "SprintReorderController",
    "DebounceTimer",
    "TimerHandle",
]
