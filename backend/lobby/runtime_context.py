"""
Collaborator protocols for the lobby gate.

Narrow capabilities the gate needs from the room transport, the main
session and the notification sink. The gate holds non-owning references
to implementations of these; their lifetimes are managed by the owner.

This module contains:
- Protocols only (capabilities, not implementations)
- Zero gating logic
"""

from __future__ import annotations

from typing import Any, Callable, Protocol, runtime_checkable


InvitationCallback = Callable[[Any], None]
PresenceCallback = Callable[[Any], None]


# ---------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------

@runtime_checkable
class ChatRoom(Protocol):
    def join_as(self, nickname: str) -> None:
        """
        Join the room under the given nickname.

        Raises:
            OperationFailedError / OperationNotSupportedError
        """

    def leave(self) -> None: ...


@runtime_checkable
class PresenceDecoratable(Protocol):
    """Rooms that can attach a display name to the outgoing join presence."""

    def add_presence_nickname(self, display_name: str) -> None: ...


@runtime_checkable
class RoomTransport(Protocol):
    """
    Multi-user chat operations.

    add_*_listener returns an opaque subscription handle which is handed
    back to the matching remove_*_listener on teardown.
    """

    def find_room(self, room_jid: str) -> ChatRoom: ...

    def add_invitation_listener(self, callback: InvitationCallback) -> Any: ...
    def remove_invitation_listener(self, handle: Any) -> None: ...

    def add_presence_listener(self, callback: PresenceCallback) -> Any: ...
    def remove_presence_listener(self, handle: Any) -> None: ...


# ---------------------------------------------------------------------
# Main session
# ---------------------------------------------------------------------

@runtime_checkable
class MainSessionController(Protocol):
    def admit_main_room(self) -> None:
        """Proceed with the full conference join. Called at most once."""


# ---------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------

@runtime_checkable
class NotificationSink(Protocol):
    """Audible/visual cues. Failures never affect gating."""

    def waiting_for_review(self) -> None: ...
    def access_granted(self) -> None: ...
    def access_denied(self) -> None: ...
    def room_destroyed(self) -> None: ...
