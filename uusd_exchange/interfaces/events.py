"""Event listener protocol: receives orchestrator events."""
from typing import Any, Protocol


class EventListener(Protocol):
    """Callable invoked with one typed event payload."""

    def __call__(self, event: Any) -> None: ...
