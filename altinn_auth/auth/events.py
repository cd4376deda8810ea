"""
Login flow transition events.

AuthFlow emits one AuthEvent per state transition. Listeners are plain
callables; the default one writes the event to the application log.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


LOGIN_INITIATED = "login_initiated"
CALLBACK_VALIDATED = "callback_validated"
TOKEN_EXCHANGED = "token_exchanged"
USERINFO_FETCHED = "userinfo_fetched"
SESSION_CLEARED = "session_cleared"


class AuthEvent(BaseModel):
    """A single state-machine transition."""
    name: str = Field(..., description="Transition name")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    details: Dict[str, Any] = Field(default_factory=dict, description="Non-secret context")


AuthEventListener = Callable[[AuthEvent], None]


class EventEmitter:
    """Synchronous fan-out to registered listeners."""

    def __init__(self):
        self._listeners: List[AuthEventListener] = []

    def subscribe(self, listener: AuthEventListener) -> None:
        self._listeners.append(listener)

    def emit(self, name: str, **details: Any) -> AuthEvent:
        event = AuthEvent(name=name, details=details)
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                # A broken listener must not break the login itself.
                logger.exception(f"Auth event listener failed for {name}")
        return event


def log_auth_event(event: AuthEvent) -> None:
    """Default listener: one structured log line per transition."""
    logger.info(
        f"Auth transition: {event.name}",
        extra={"event": event.name, **{f"auth_{k}": v for k, v in event.details.items()}},
    )
