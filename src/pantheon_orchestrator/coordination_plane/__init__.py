"""
pantheon-orchestrator coordination plane

Purpose
- Worker-to-worker messaging, handoffs, and the shared session context.

Functional requirements
- A participant joining by handoff can rebuild all prior context from the session alone.
"""

from pantheon_orchestrator.coordination_plane.messenger import Messenger, MessengerSettings
from pantheon_orchestrator.coordination_plane.session import (
    ContextView,
    EventKind,
    Participant,
    SessionContext,
    TimelineEvent,
)

__all__ = [
    "ContextView",
    "EventKind",
    "Messenger",
    "MessengerSettings",
    "Participant",
    "SessionContext",
    "TimelineEvent",
]
