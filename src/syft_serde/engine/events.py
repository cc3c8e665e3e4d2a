"""Observer hook: a sink may watch (un)marshal calls but never influences them."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from syft_serde.utils import _utcnow


@dataclass(frozen=True)
class SerdeEvent:
    """One observation of a call.

    Besides one "marshal" or "unmarshal" event per call, a sink sees one
    "scope_check" event per field check (`success` is whether access was
    granted) and one "validate" event per structural validation.
    """

    action: str  # "marshal" | "unmarshal" | "scope_check" | "validate"
    model_type: str
    format: str
    permissions: tuple[str, ...]
    success: bool
    error: str | None = None
    secure: bool = False
    field_name: str | None = None
    timestamp: datetime = field(default_factory=_utcnow)


class EventSink(Protocol):
    def emit(self, event: SerdeEvent) -> None: ...


class ListEventSink:
    """Keeps every event in memory."""

    def __init__(self):
        self.events: list[SerdeEvent] = []

    def emit(self, event: SerdeEvent) -> None:
        self.events.append(event)
