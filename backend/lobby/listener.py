"""
Transport feed subscriptions for a lobby gate.

Responsibilities:
- Register the invitation and presence callbacks with the transport
- Keep one subscription handle per feed
- Release each feed independently, exactly once
- Translate raw transport payloads into reducer events

Non-responsibilities:
- NO gating decisions
- NO state

Listener failures are logged, never raised.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable

from lobby.enums.presence import PresenceKind
from lobby.events import EventType, InvitationReceived, PresenceChanged
from lobby.runtime_context import RoomTransport

from observability.logger import log_event


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def _now_ms() -> int:
    return time.time_ns() // 1_000_000


_NO_HANDLE = object()


def _presence_kind(raw_type: Any) -> PresenceKind | None:
    if isinstance(raw_type, PresenceKind):
        return raw_type
    if not isinstance(raw_type, str):
        return None
    try:
        return PresenceKind(raw_type.upper())
    except ValueError:
        return None


def to_invitation_event(raw: Any) -> InvitationReceived:
    """Read the optional invitation fields; the invitation itself is the grant."""
    return InvitationReceived(
        event_type=EventType.INVITATION_RECEIVED,
        ts_ms=_now_ms(),
        room_jid=getattr(raw, "room_jid", None),
        inviter=getattr(raw, "inviter", None),
        reason=getattr(raw, "reason", None),
    )


def to_presence_event(raw: Any) -> PresenceChanged | None:
    """
    Translate a raw local-user presence change.

    Returns None when the presence type is not one the gate understands.
    """
    kind = _presence_kind(getattr(raw, "event_type", None))
    if kind is None:
        return None

    return PresenceChanged(
        event_type=EventType.PRESENCE_CHANGED,
        ts_ms=_now_ms(),
        kind=kind,
        room=getattr(raw, "room", None),
        alternate_address=getattr(raw, "alternate_address", None),
        reason=getattr(raw, "reason", None),
    )


# ---------------------------------------------------------------------
# LobbyListener
# ---------------------------------------------------------------------

class LobbyListener:
    """
    Owns the two feed subscriptions of one gate.

    Lifecycle:
    1. subscribe() registers both callbacks and stores the handles
    2. Transport delivers raw events to the callbacks on its own threads
    3. release_*() hands each handle back to the transport once

    A failed or missing subscription on one feed never prevents release
    of the other.
    """

    def __init__(
        self,
        *,
        transport: RoomTransport,
        on_invitation: Callable[[Any], None],
        on_presence_changed: Callable[[Any], None],
        call_context: str = "",
    ) -> None:
        self._transport = transport
        self._on_invitation = on_invitation
        self._on_presence_changed = on_presence_changed
        self._call_context = call_context

        self._lock = threading.Lock()
        self._invitation_handle: Any = _NO_HANDLE
        self._presence_handle: Any = _NO_HANDLE

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def invitation_subscribed(self) -> bool:
        return self._invitation_handle is not _NO_HANDLE

    @property
    def presence_subscribed(self) -> bool:
        return self._presence_handle is not _NO_HANDLE

    def subscribe(self) -> None:
        """Register both feeds. Registration failures are logged and skipped."""
        with self._lock:
            if self._invitation_handle is _NO_HANDLE:
                try:
                    self._invitation_handle = self._transport.add_invitation_listener(
                        self._on_invitation
                    )
                except Exception as e:  # pylint: disable=broad-exception-caught
                    self._log_failure("LISTENER_ADD_FAILED", "invitation", e)

            if self._presence_handle is _NO_HANDLE:
                try:
                    self._presence_handle = self._transport.add_presence_listener(
                        self._on_presence_changed
                    )
                except Exception as e:  # pylint: disable=broad-exception-caught
                    self._log_failure("LISTENER_ADD_FAILED", "presence", e)

    def release_invitation(self) -> None:
        with self._lock:
            handle, self._invitation_handle = self._invitation_handle, _NO_HANDLE
        if handle is _NO_HANDLE:
            return
        try:
            self._transport.remove_invitation_listener(handle)
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._log_failure("LISTENER_REMOVE_FAILED", "invitation", e)

    def release_presence(self) -> None:
        with self._lock:
            handle, self._presence_handle = self._presence_handle, _NO_HANDLE
        if handle is _NO_HANDLE:
            return
        try:
            self._transport.remove_presence_listener(handle)
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._log_failure("LISTENER_REMOVE_FAILED", "presence", e)

    def release_all(self) -> None:
        self.release_invitation()
        self.release_presence()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _log_failure(self, event_type: str, feed: str, error: Exception) -> None:
        log_event({
            "ts_ms": _now_ms(),
            "level": "error",
            "event_type": event_type,
            "call_context": self._call_context,
            "feed": feed,
            "error": repr(error),
        })
