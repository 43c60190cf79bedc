"""
Side-effect command definitions for the lobby gate.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by LobbyGate.
- No behavior, no I/O, no clocks.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
    - Each command is executed independently; a failure in one never
      prevents the next one from running.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types emitted by the reducer.

    These are stable discriminants used for logging and dispatch.
    """

    # Notifications (fire-and-forget)
    NOTIFY_WAITING_FOR_REVIEW = "NOTIFY_WAITING_FOR_REVIEW"
    NOTIFY_ACCESS_GRANTED = "NOTIFY_ACCESS_GRANTED"
    NOTIFY_ACCESS_DENIED = "NOTIFY_ACCESS_DENIED"
    NOTIFY_ROOM_DESTROYED = "NOTIFY_ROOM_DESTROYED"

    # Main session
    ADMIT_MAIN_ROOM = "ADMIT_MAIN_ROOM"

    # Transport
    LEAVE_ROOM = "LEAVE_ROOM"
    RELEASE_LISTENERS = "RELEASE_LISTENERS"

    # Observability
    LOG_EVENT = "LOG_EVENT"
    START_WAIT_TIMER = "START_WAIT_TIMER"
    STOP_WAIT_TIMER = "STOP_WAIT_TIMER"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Notification Commands
# =============================================================================

@dataclass(frozen=True)
class NotifyWaitingForReview(Command):
    command_type: CommandType = CommandType.NOTIFY_WAITING_FOR_REVIEW


@dataclass(frozen=True)
class NotifyAccessGranted(Command):
    command_type: CommandType = CommandType.NOTIFY_ACCESS_GRANTED


@dataclass(frozen=True)
class NotifyAccessDenied(Command):
    command_type: CommandType = CommandType.NOTIFY_ACCESS_DENIED


@dataclass(frozen=True)
class NotifyRoomDestroyed(Command):
    command_type: CommandType = CommandType.NOTIFY_ROOM_DESTROYED


# =============================================================================
# Main Session Commands
# =============================================================================

@dataclass(frozen=True)
class AdmitMainRoom(Command):
    """Release the main session controller. Emitted at most once per gate."""
    command_type: CommandType = CommandType.ADMIT_MAIN_ROOM


# =============================================================================
# Transport Commands
# =============================================================================

@dataclass(frozen=True)
class LeaveRoom(Command):
    """
    Unsubscribe both feeds, then leave the given room.

    room is the handle taken out of the snapshot by the reducer, so
    at most one LeaveRoom ever carries it.
    """
    room: Any
    command_type: CommandType = CommandType.LEAVE_ROOM


@dataclass(frozen=True)
class ReleaseListeners(Command):
    """Best-effort unsubscribe of both feeds with no room to leave."""
    command_type: CommandType = CommandType.RELEASE_LISTENERS


# =============================================================================
# Observability Commands
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Structured log record; payload is emitted as one JSONL line."""
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT


@dataclass(frozen=True)
class StartWaitTimer(Command):
    """Start measuring time spent waiting for moderation."""
    command_type: CommandType = CommandType.START_WAIT_TIMER


@dataclass(frozen=True)
class StopWaitTimer(Command):
    """Stop the wait timer and record how the wait ended."""
    outcome: str
    command_type: CommandType = CommandType.STOP_WAIT_TIMER
