"""
Pure lobby gate reducer.

(snapshot, event) -> (new_snapshot, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every (state, event) pair is handled or explicitly ignored (logged).
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from lobby.commands import (
    AdmitMainRoom,
    Command,
    LeaveRoom,
    LogEvent,
    NotifyAccessDenied,
    NotifyAccessGranted,
    NotifyRoomDestroyed,
    NotifyWaitingForReview,
    ReleaseListeners,
    StartWaitTimer,
    StopWaitTimer,
)
from lobby.enums.presence import PresenceKind
from lobby.enums.state import TERMINAL_STATES, GateState
from lobby.events import (
    Event,
    InvitationReceived,
    JoinAborted,
    JoinStarted,
    JoinSucceeded,
    LeaveRequested,
    PresenceChanged,
)
from lobby.jid import same_bare_jid
from lobby.state_dataclass import GateSnapshot


Result = tuple[GateSnapshot, tuple[Command, ...]]


# =============================================================================
# Small helpers
# =============================================================================

def _log(
    snapshot: GateSnapshot,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
    *,
    level: str = "info",
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "level": level,
            "state": snapshot.state.value,
            "event_type": event.event_type.value,
            "decision": decision,
            "details": details or {},
        }
    )


def _logs_last(commands: tuple[Command, ...]) -> tuple[Command, ...]:
    non_logs: list[Command] = []
    logs: list[Command] = []
    state_change_logs: list[Command] = []

    for command in commands:
        if isinstance(command, LogEvent):
            if command.event.get("decision") == "state_changed":
                state_change_logs.append(command)
            else:
                logs.append(command)
        else:
            non_logs.append(command)

    return tuple(non_logs + logs + state_change_logs)


def _ignore(snapshot: GateSnapshot, event: Event, reason: str) -> Result:
    return snapshot, (_log(snapshot, event, "ignore", {"reason": reason}, level="debug"),)


def _defer(snapshot: GateSnapshot, event: Event) -> Result:
    """Hold a transport event until join_as returns the room handle."""
    new = replace(snapshot, deferred=snapshot.deferred + (event,))
    return new, (
        _log(new, event, "deferred_until_joined", {"pending": len(new.deferred)}, level="debug"),
    )


def _state_changed(
    old: GateSnapshot, new: GateSnapshot, event: Event, source: str
) -> LogEvent:
    return _log(
        new,
        event,
        "state_changed",
        {
            "from_state": old.state.value,
            "to_state": new.state.value,
            "source": source,
        },
    )


def _room_matches(snapshot: GateSnapshot, event: PresenceChanged) -> bool:
    return snapshot.room is not None and event.room == snapshot.room


def _take_room(snapshot: GateSnapshot) -> tuple[GateSnapshot, list[Command]]:
    """
    Hand the joined room to a LeaveRoom command exactly once.

    After this the snapshot no longer holds the room, so no later
    transition can emit a second transport leave.
    """
    if snapshot.room is None or snapshot.room_left:
        return snapshot, []
    room = snapshot.room
    return replace(snapshot, room=None, room_left=True), [LeaveRoom(room=room)]


def _admit(snapshot: GateSnapshot) -> tuple[GateSnapshot, list[Command]]:
    if snapshot.admitted:
        return snapshot, []
    return replace(snapshot, admitted=True), [AdmitMainRoom()]


# =============================================================================
# Owner events
# =============================================================================

def _on_join_started(snapshot: GateSnapshot, event: JoinStarted) -> Result:
    if snapshot.state is not GateState.NOT_JOINED:
        return _ignore(snapshot, event, "join_already_started")

    new = replace(snapshot, state=GateState.JOINING)
    return new, (_state_changed(snapshot, new, event, "join_started"),)


def _on_join_succeeded(snapshot: GateSnapshot, event: JoinSucceeded) -> Result:
    if snapshot.state is not GateState.JOINING:
        # Owner left while join_as was still running; do not strand the
        # participant in a room nobody tracks.
        new = replace(snapshot, room=event.room, deferred=())
        new, cmds = _take_room(new)
        return new, _logs_last(tuple(cmds) + (
            _log(new, event, "join_completed_after_leave", level="warning"),
        ))

    new = replace(snapshot, state=GateState.WAITING, room=event.room, deferred=())
    cmds = _logs_last((
        NotifyWaitingForReview(),
        StartWaitTimer(),
        _log(new, event, "waiting_for_review"),
        _state_changed(snapshot, new, event, "join_succeeded"),
    ))

    # Grants or kicks delivered during join_as take effect now, after
    # the waiting cue.
    for held in snapshot.deferred:
        new, more = reduce(new, held)
        cmds += more
    return new, cmds


def _on_join_aborted(snapshot: GateSnapshot, event: JoinAborted) -> Result:
    cmds: list[Command] = [
        ReleaseListeners(),
        _log(
            snapshot,
            event,
            "join_aborted",
            {"reason": event.reason, "dropped": len(snapshot.deferred)},
            level="error",
        ),
    ]
    if snapshot.state in TERMINAL_STATES:
        return snapshot, _logs_last(tuple(cmds))

    new = replace(
        snapshot, state=GateState.TERMINATED, last_error=event.reason, deferred=()
    )
    cmds.append(_state_changed(snapshot, new, event, "join_aborted"))
    return new, _logs_last(tuple(cmds))


def _on_leave_requested(snapshot: GateSnapshot, event: LeaveRequested) -> Result:
    new, cmds = _take_room(replace(snapshot, deferred=()))

    if not cmds:
        cmds = [
            ReleaseListeners(),
            _log(snapshot, event, "MUC_ROOM_NULL", level="warning"),
        ]

    if new.state is GateState.WAITING:
        cmds.append(StopWaitTimer(outcome="owner_leave"))

    if new.state not in TERMINAL_STATES:
        left = replace(new, state=GateState.LEFT)
        cmds.append(_state_changed(snapshot, left, event, "leave_requested"))
        new = left

    return new, _logs_last(tuple(cmds))


# =============================================================================
# Transport events
# =============================================================================

def _on_invitation(snapshot: GateSnapshot, event: InvitationReceived) -> Result:
    if snapshot.state is GateState.JOINING:
        return _defer(snapshot, event)

    if snapshot.state is not GateState.WAITING:
        return _ignore(snapshot, event, f"not_waiting:{snapshot.state.value}")

    new = replace(snapshot, state=GateState.LEFT)
    new, admit_cmds = _admit(new)
    new, leave_cmds = _take_room(new)

    return new, _logs_last(
        (NotifyAccessGranted(),)
        + tuple(admit_cmds)
        + tuple(leave_cmds)
        + (
            StopWaitTimer(outcome="granted"),
            _log(new, event, "access_granted", {"inviter": event.inviter}),
            _state_changed(snapshot, new, event, "invitation"),
        )
    )


def _on_kicked(snapshot: GateSnapshot, event: PresenceChanged) -> Result:
    new = replace(snapshot, state=GateState.LEFT)
    new, leave_cmds = _take_room(new)

    return new, _logs_last(
        (NotifyAccessDenied(),)
        + tuple(leave_cmds)
        + (
            StopWaitTimer(outcome="denied"),
            _log(new, event, "access_denied", {"reason": event.reason}),
            _state_changed(snapshot, new, event, "kicked"),
        )
    )


def _on_left(snapshot: GateSnapshot, event: PresenceChanged) -> Result:
    if event.alternate_address is None:
        return snapshot, (
            _log(snapshot, event, "left_without_alternate", level="debug"),
        )

    cmds: list[Command] = []
    if not same_bare_jid(event.alternate_address, snapshot.main_room_jid):
        cmds.append(
            _log(
                snapshot,
                event,
                "alternate_room_mismatch",
                {
                    "alternate_address": event.alternate_address,
                    "main_room_jid": snapshot.main_room_jid,
                },
                level="warning",
            )
        )

    # Lobby disabled while waiting: the room hands us over to the main room.
    new = replace(snapshot, state=GateState.LEFT)
    new, admit_cmds = _admit(new)

    return new, _logs_last(
        tuple(admit_cmds)
        + tuple(cmds)
        + (
            StopWaitTimer(outcome="lobby_disabled"),
            _log(new, event, "lobby_disabled", {"alternate_address": event.alternate_address}),
            _state_changed(snapshot, new, event, "left_with_alternate"),
        )
    )


def _on_room_destroyed(snapshot: GateSnapshot, event: PresenceChanged) -> Result:
    new = replace(snapshot, state=GateState.TERMINATED)
    return new, _logs_last((
        NotifyRoomDestroyed(),
        StopWaitTimer(outcome="room_destroyed"),
        _log(new, event, "room_destroyed", {"reason": event.reason}),
        _state_changed(snapshot, new, event, "room_destroyed"),
    ))


def _on_presence(snapshot: GateSnapshot, event: PresenceChanged) -> Result:
    if snapshot.state is GateState.JOINING:
        # No room handle yet to filter against.
        return _defer(snapshot, event)

    if snapshot.state is not GateState.WAITING:
        return _ignore(snapshot, event, f"not_waiting:{snapshot.state.value}")

    if not _room_matches(snapshot, event):
        return _ignore(snapshot, event, "room_mismatch")

    kind = event.kind

    if kind is PresenceKind.KICKED:
        return _on_kicked(snapshot, event)

    if kind is PresenceKind.LEFT:
        return _on_left(snapshot, event)

    if kind is PresenceKind.JOINED:
        # Reserved for a "please wait" playback once the transport
        # reliably reports this.
        return snapshot, (_log(snapshot, event, "lobby_joined", level="debug"),)

    if kind is PresenceKind.JOIN_FAILED:
        return snapshot, (
            _log(snapshot, event, "lobby_join_failed", {"reason": event.reason}, level="error"),
        )

    if kind is PresenceKind.ROOM_DESTROYED:
        return _on_room_destroyed(snapshot, event)

    return _ignore(snapshot, event, f"unknown_presence_kind:{kind}")


# =============================================================================
# Entry point
# =============================================================================

def reduce(snapshot: GateSnapshot, event: Event) -> Result:
    """
    Decide the next snapshot and the ordered commands for one event.

    Functional commands keep their table order; within each step log
    commands come after them. A JoinSucceeded step is followed by the
    steps of any events deferred while joining.
    """
    if isinstance(event, InvitationReceived):
        return _on_invitation(snapshot, event)
    if isinstance(event, PresenceChanged):
        return _on_presence(snapshot, event)
    if isinstance(event, JoinStarted):
        return _on_join_started(snapshot, event)
    if isinstance(event, JoinSucceeded):
        return _on_join_succeeded(snapshot, event)
    if isinstance(event, JoinAborted):
        return _on_join_aborted(snapshot, event)
    if isinstance(event, LeaveRequested):
        return _on_leave_requested(snapshot, event)

    return _ignore(snapshot, event, "unhandled_event")
