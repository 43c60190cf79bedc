"""
Lobby gate error taxonomy.

Only join() failures ever reach the owner. Listener, side-effect and
unexpected-state problems are contained in the gate and logged.
"""

from __future__ import annotations


class LobbyError(Exception):
    """Base class for lobby gate errors."""


class JoinError(LobbyError):
    """The transport rejected the lobby join. Never retried by the gate."""


class OperationFailedError(JoinError):
    """A transport operation needed for the join failed."""


class OperationNotSupportedError(JoinError):
    """The transport does not support a required operation."""


class GateStateError(LobbyError):
    """join() was called on a gate that is not NOT_JOINED."""
