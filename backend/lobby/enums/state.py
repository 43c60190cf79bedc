"""
Authoritative lobby gate state enumeration.

Rules:
- This enum defines ONLY the gating phases.
- No behavior, no helper methods, no side effects.
- Transitions are defined exclusively in the reducer.
"""

from __future__ import annotations

from enum import Enum


class GateState(str, Enum):
    """
    Phases of a single lobby gating attempt.

    LEFT and TERMINATED are terminal: a gate never leaves them and
    is discarded by its owner afterwards.
    """

    NOT_JOINED = "NOT_JOINED"
    JOINING = "JOINING"
    WAITING = "WAITING"
    LEFT = "LEFT"
    TERMINATED = "TERMINATED"


TERMINAL_STATES: frozenset[GateState] = frozenset(
    {GateState.LEFT, GateState.TERMINATED}
)
