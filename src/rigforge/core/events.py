"""EventBus for decoupled publish/subscribe communication."""

from enum import Enum, auto
from typing import Any, Callable
from collections import defaultdict


class EventType(Enum):
    # Loading
    RIG_LOADED = auto()           # data: num_joints (int), num_vertices (int)

    # Handles
    HANDLE_MOVED = auto()         # data: handle (int), target (ndarray)

    # Pose
    POSE_SOLVED = auto()          # data: residual (float)
    POSE_RESET = auto()

    # Frame events
    FRAME_UPDATE = auto()         # data: frame (int), positions (ndarray)


class EventBus:
    """Simple publish/subscribe event system."""

    def __init__(self):
        self._handlers: dict[EventType, list[Callable]] = defaultdict(list)

    def subscribe(self, event_type: EventType, handler: Callable) -> None:
        self._handlers[event_type].append(handler)

    def publish(self, event_type: EventType, **data: Any) -> None:
        for handler in self._handlers[event_type]:
            handler(**data)
