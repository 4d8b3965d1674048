from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

log = logging.getLogger("reelcut")

# Event type ids understood by the notification collaborator.
EVENT_EXPORT = "export"
EVENT_EXPORT_START = "export_start"
EVENT_IMPORT = "import"
EVENT_SAMPLE = "sample"
EVENT_VISIT = "visit"
EVENT_FEEDBACK = "feedback"
EVENT_ERROR = "error"
EVENT_TYPES = (
    EVENT_EXPORT,
    EVENT_EXPORT_START,
    EVENT_IMPORT,
    EVENT_SAMPLE,
    EVENT_VISIT,
    EVENT_FEEDBACK,
    EVENT_ERROR,
)


@dataclass(frozen=True)
class Event:
    type: str
    filename: Optional[str] = None
    file_count: Optional[int] = None
    duration: Optional[float] = None
    contact: Optional[str] = None
    message: Optional[str] = None
    error_message: Optional[str] = None
    stack: Optional[str] = None

    def __post_init__(self) -> None:
        if self.type not in EVENT_TYPES:
            raise ValueError(f"unknown event type: {self.type!r}")

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": self.type}
        for key in ("filename", "file_count", "duration", "contact", "message", "error_message", "stack"):
            v = getattr(self, key)
            if v is not None:
                out[key] = v
        return out


Listener = Callable[[Event], None]


class EventBus:
    """
    Fire-and-forget fan-out of editor events.

    Delivery and formatting belong to the listeners; a failing listener is
    logged and never reaches the code that emitted the event.
    """

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def emit(self, event: Event) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                log.exception("event listener failed for %s", event.type)
