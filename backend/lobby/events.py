"""
Event definitions for the lobby gate reducer.

Rules:
- Events describe facts that have occurred.
- Events carry data only (no behavior).
- All reducer decisions are based on these events.
- No clocks, no async, no side effects.

Inbound events come from the room transport (invitation feed,
presence feed). Owner events are produced by LobbyGate.join() /
LobbyGate.leave() so that owner calls are serialized through the
same transition function as transport callbacks.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from lobby.enums.presence import PresenceKind


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the reducer.

    Every (state, event_type) pair must be explicitly handled
    or explicitly ignored by the reducer.
    """

    # ------------------------------------------------------------------
    # Transport feeds
    # ------------------------------------------------------------------
    INVITATION_RECEIVED = "INVITATION_RECEIVED"
    PRESENCE_CHANGED = "PRESENCE_CHANGED"

    # ------------------------------------------------------------------
    # Owner control
    # ------------------------------------------------------------------
    JOIN_STARTED = "JOIN_STARTED"
    JOIN_SUCCEEDED = "JOIN_SUCCEEDED"
    JOIN_ABORTED = "JOIN_ABORTED"
    LEAVE_REQUESTED = "LEAVE_REQUESTED"


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


# =============================================================================
# Transport Events
# =============================================================================

@dataclass(frozen=True)
class InvitationReceived(Event):
    """
    A moderator approved entry into the main room.

    The payload is informational only; the invitation itself is the grant.
    """

    room_jid: str | None = None
    inviter: str | None = None
    reason: str | None = None


@dataclass(frozen=True)
class PresenceChanged(Event):
    """
    The local participant's presence in some room changed.

    room is the transport's room handle; the reducer compares it with the
    handle the gate joined to decide whether the event is ours.
    """

    kind: PresenceKind
    room: Any = None
    alternate_address: str | None = None
    reason: str | None = None


# =============================================================================
# Owner Events
# =============================================================================

@dataclass(frozen=True)
class JoinStarted(Event):
    """Owner called join(); listeners are about to be registered."""


@dataclass(frozen=True)
class JoinSucceeded(Event):
    """Transport accepted join_as for the lobby room."""
    room: Any


@dataclass(frozen=True)
class JoinAborted(Event):
    """Transport rejected the join; the gate will not be reused."""
    reason: str


@dataclass(frozen=True)
class LeaveRequested(Event):
    """Owner called leave()."""
