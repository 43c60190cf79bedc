"""
Authoritative lobby gate state container.

Rules:
- These dataclasses are pure data models.
- GateSnapshot contains ALL state the reducer may ever need.
- No behavior beyond trivial derived accessors.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from lobby.enums.state import GateState
from lobby.events import Event
from lobby.jid import localpart


# =============================================================================
# Identity
# =============================================================================

@dataclass(frozen=True)
class GateIdentity:
    """
    Immutable identity of one gating attempt.

    lobby_room_jid:
        Address of the lobby room; its local part is the resource name
        used to join.
    main_room_jid:
        Address of the main room the participant is waiting to enter.
    display_name:
        Optional nickname advertised in the lobby presence.
    call_context:
        Opaque call identifier carried on every log record.
    """

    lobby_room_jid: str
    main_room_jid: str
    display_name: str | None = None
    call_context: str = ""

    @property
    def resource_identifier(self) -> str | None:
        return localpart(self.lobby_room_jid)


# =============================================================================
# Gate Snapshot
# =============================================================================

@dataclass(frozen=True)
class GateSnapshot:
    """Immutable snapshot of all gate-owned state."""

    # ------------------------------------------------------------------
    # Control state
    # ------------------------------------------------------------------
    state: GateState = GateState.NOT_JOINED

    # Alternate-room hints on LEFT presence are compared against this.
    main_room_jid: str = ""

    # ------------------------------------------------------------------
    # Joined room handle (None until JoinSucceeded, None again after leave)
    # ------------------------------------------------------------------
    room: Any = None

    # Transport events that arrived before the room handle was known;
    # replayed in arrival order by JoinSucceeded.
    deferred: tuple[Event, ...] = ()

    # ------------------------------------------------------------------
    # Exactly-once flags
    # ------------------------------------------------------------------
    # Set in the same reducer step that emits AdmitMainRoom.
    admitted: bool = False

    # Set in the same reducer step that emits LeaveRoom.
    room_left: bool = False

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------
    last_error: str | None = None
