"""
Local-user presence change kinds delivered by the room transport.
"""

from __future__ import annotations

from enum import Enum


class PresenceKind(str, Enum):
    """Why the local participant's membership in the lobby room changed."""

    JOINED = "JOINED"
    KICKED = "KICKED"
    LEFT = "LEFT"
    JOIN_FAILED = "JOIN_FAILED"
    ROOM_DESTROYED = "ROOM_DESTROYED"
