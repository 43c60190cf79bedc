"""
Lobby gate: runtime shell around the pure reducer.

Responsibilities:
- Own the authoritative gate snapshot
- Serialize every transition (transport callbacks, join(), leave())
- Call the pure reducer
- Execute emitted commands (notifications, admit, room leave, logging)
- Join the lobby room through the transport

Non-responsibilities:
- Deciding admit/deny (remote moderator)
- Joining the main room (MainSessionController)
- Timeouts or retries
"""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING, Any, Sequence

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
from lobby.enums.state import GateState
from lobby.errors import (
    GateStateError,
    JoinError,
    OperationFailedError,
)
from lobby.events import (
    Event,
    EventType,
    JoinAborted,
    JoinStarted,
    JoinSucceeded,
    LeaveRequested,
)
from lobby.listener import LobbyListener, to_invitation_event, to_presence_event
from lobby.reducer import reduce
from lobby.runtime_context import (
    ChatRoom,
    MainSessionController,
    NotificationSink,
    PresenceDecoratable,
    RoomTransport,
)
from lobby.state_dataclass import GateIdentity, GateSnapshot

from observability.logger import log_event
from observability.metrics import start_timer, stop_timer, timed

if TYPE_CHECKING:
    from config import LobbyConfig


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class LobbyGate:
    """
    One gate == one participant's attempt to pass one lobby.

    Guarantees:
    - The reducer is called exactly once per event, under the gate lock
    - The snapshot is swapped before any side effect executes
    - Side effects run in reducer order, each one guarded on its own;
      only wait-timer bookkeeping and the waiting cue run under the lock
    - admit_main_room() and room.leave() run at most once per gate

    The gate is driven entirely by the caller's threads; it starts none.
    """

    def __init__(
        self,
        *,
        transport: RoomTransport,
        identity: GateIdentity,
        controller: MainSessionController | None,
        notifications: NotificationSink,
    ) -> None:
        self._transport = transport
        self._identity = identity
        self._controller = controller
        self._notifications = notifications

        # Re-entrant: notification and controller calls made while the
        # lock is held may call back into leave() on the same thread.
        self._lock = threading.RLock()
        self._snapshot = GateSnapshot(main_room_jid=identity.main_room_jid)
        self._wait_timer_id: str | None = None

        self._listener = LobbyListener(
            transport=transport,
            on_invitation=self.on_invitation,
            on_presence_changed=self.on_presence_changed,
            call_context=identity.call_context,
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def identity(self) -> GateIdentity:
        return self._identity

    @property
    def call_context(self) -> str:
        return self._identity.call_context

    @property
    def room_jid(self) -> str:
        """The lobby room address."""
        return self._identity.lobby_room_jid

    @property
    def main_room_jid(self) -> str:
        return self._identity.main_room_jid

    @property
    def protocol_provider(self) -> RoomTransport:
        return self._transport

    @property
    def resource_identifier(self) -> str | None:
        """Local part of the lobby address; used as the join nickname."""
        return self._identity.resource_identifier

    @property
    def snapshot(self) -> GateSnapshot:
        """
        Current immutable snapshot.

        Read-only; only the gate replaces it, via the reducer.
        """
        return self._snapshot

    @property
    def state(self) -> GateState:
        return self._snapshot.state

    @property
    def listener(self) -> LobbyListener:
        return self._listener

    # ------------------------------------------------------------------
    # Owner API
    # ------------------------------------------------------------------

    def join(self) -> None:
        """
        Join the lobby room and start waiting for moderation.

        On success the waiting-for-review notification has been played and
        the gate is WAITING, unless a grant or kick delivered during the
        join already settled it. On failure listeners are released, the
        gate is TERMINATED and the transport error is re-raised unchanged.

        The gate lock is not held while the transport joins, so feed
        callbacks arriving on other threads are never blocked by join().

        Raises:
            GateStateError if join() was already called.
            OperationFailedError / OperationNotSupportedError from the transport.
        """
        with self._lock:
            if self._snapshot.state is not GateState.NOT_JOINED:
                raise GateStateError(
                    f"join() requires NOT_JOINED, gate is {self._snapshot.state.value}"
                )
            started = self._apply(
                JoinStarted(event_type=EventType.JOIN_STARTED, ts_ms=_now_ms())
            )
        self._execute(started)

        try:
            with timed(
                "lobby_join",
                call_context=self.call_context,
                details={"room_jid": self.room_jid},
            ):
                room = self.join_room(self.room_jid)
        except JoinError as e:
            self._finish_join(self._join_aborted(e))
            raise
        except Exception as e:
            self._finish_join(self._join_aborted(e))
            raise OperationFailedError(str(e)) from e

        self._finish_join(
            JoinSucceeded(
                event_type=EventType.JOIN_SUCCEEDED,
                ts_ms=_now_ms(),
                room=room,
            )
        )

    def leave(self) -> None:
        """Leave the lobby. Idempotent; never raises."""
        try:
            self.leave_room()
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._log("error", "LEAVE_FAILED", {"error": repr(e)})

    # ------------------------------------------------------------------
    # Overridable hooks
    # ------------------------------------------------------------------

    def join_room(self, room_jid: str) -> ChatRoom:
        """
        Subscribe to the feeds and join the lobby room as resource_identifier.

        Called by join() without the gate lock; feed callbacks may run
        concurrently on transport threads.
        """
        self._listener.subscribe()

        nickname = self.resource_identifier
        if nickname is None:
            raise OperationFailedError(f"lobby address has no local part: {room_jid}")

        room = self._transport.find_room(room_jid)
        if room is None:
            raise OperationFailedError(f"lobby room not found: {room_jid}")

        self.setup_chat_room(room)

        room.join_as(nickname)
        return room

    def leave_room(self) -> None:
        self._dispatch(
            LeaveRequested(event_type=EventType.LEAVE_REQUESTED, ts_ms=_now_ms())
        )

    def setup_chat_room(self, room: ChatRoom) -> None:
        """Advertise the display name in the lobby before joining."""
        if not isinstance(room, PresenceDecoratable):
            return

        display_name = self._identity.display_name
        if display_name is not None:
            room.add_presence_nickname(display_name)
        else:
            self._log("error", "NO_DISPLAY_NAME", {"room_jid": self.room_jid})

    # ------------------------------------------------------------------
    # Transport callbacks
    # ------------------------------------------------------------------

    def on_invitation(self, raw_event: Any) -> None:
        """Invitation feed callback; the invitation is the moderator's grant."""
        try:
            self._dispatch(to_invitation_event(raw_event))
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._log("error", "INVITATION_HANDLER_FAILED", {"error": repr(e)})

    def on_presence_changed(self, raw_event: Any) -> None:
        """Presence feed callback for the local participant."""
        try:
            event = to_presence_event(raw_event)
            if event is None:
                self._log(
                    "debug",
                    "UNKNOWN_PRESENCE_TYPE",
                    {"raw_type": repr(getattr(raw_event, "event_type", None))},
                )
                return
            self._dispatch(event)
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._log("error", "PRESENCE_HANDLER_FAILED", {"error": repr(e)})

    # ------------------------------------------------------------------
    # Reducer dispatch
    # ------------------------------------------------------------------

    def _dispatch(self, event: Event) -> None:
        with self._lock:
            commands = self._apply(event)
        self._execute(commands)

    def _apply(self, event: Event) -> list[Command]:
        """
        Run the reducer and swap the snapshot. Caller holds the lock.

        Wait-timer bookkeeping must follow transition order, so it is
        executed here; everything else is returned for later execution.
        """
        new_snapshot, commands = reduce(self._snapshot, event)
        self._snapshot = new_snapshot

        deferred: list[Command] = []
        for cmd in commands:
            if isinstance(cmd, (StartWaitTimer, StopWaitTimer)):
                self._run_guarded(cmd)
            else:
                deferred.append(cmd)
        return deferred

    def _finish_join(self, event: JoinSucceeded | JoinAborted) -> None:
        # The waiting cue plays before the lock is released so that no
        # grant or kick cue can overtake it.
        with self._lock:
            commands = self._apply(event)
            rest: list[Command] = []
            for cmd in commands:
                if isinstance(cmd, NotifyWaitingForReview):
                    self._run_guarded(cmd)
                else:
                    rest.append(cmd)
        self._execute(rest)

    def _join_aborted(self, error: Exception) -> JoinAborted:
        return JoinAborted(
            event_type=EventType.JOIN_ABORTED,
            ts_ms=_now_ms(),
            reason=repr(error),
        )

    # ------------------------------------------------------------------
    # Command execution (side effects)
    # ------------------------------------------------------------------

    def _execute(self, commands: Sequence[Command]) -> None:
        for cmd in commands:
            self._run_guarded(cmd)

    def _run_guarded(self, cmd: Command) -> None:
        try:
            self._execute_command(cmd)
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._log(
                "error",
                "SIDE_EFFECT_FAILED",
                {"command_type": cmd.command_type.value, "error": repr(e)},
            )

    def _execute_command(self, cmd: Command) -> None:
        """Execute a single command with side effects."""

        if isinstance(cmd, LogEvent):
            log_event({
                **cmd.event,
                "call_context": self.call_context,
                "room_jid": self.room_jid,
            })

        elif isinstance(cmd, NotifyWaitingForReview):
            self._notifications.waiting_for_review()

        elif isinstance(cmd, NotifyAccessGranted):
            self._notifications.access_granted()

        elif isinstance(cmd, NotifyAccessDenied):
            self._notifications.access_denied()

        elif isinstance(cmd, NotifyRoomDestroyed):
            self._notifications.room_destroyed()

        elif isinstance(cmd, AdmitMainRoom):
            if self._controller is None:
                self._log("error", "NO_MAIN_SESSION", {})
                return
            self._controller.admit_main_room()

        elif isinstance(cmd, LeaveRoom):
            self._listener.release_all()
            cmd.room.leave()

        elif isinstance(cmd, ReleaseListeners):
            self._listener.release_all()

        elif isinstance(cmd, StartWaitTimer):
            self._wait_timer_id = start_timer("lobby_wait")

        elif isinstance(cmd, StopWaitTimer):
            timer_id, self._wait_timer_id = self._wait_timer_id, None
            if timer_id is not None:
                stop_timer(
                    timer_id,
                    call_context=self.call_context,
                    state=self._snapshot.state.value,
                    details={"outcome": cmd.outcome},
                )

        else:
            self._log("warning", "UNKNOWN_COMMAND", {"command": repr(cmd)})

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    def _log(self, level: str, event_type: str, details: dict[str, Any]) -> None:
        log_event({
            "ts_ms": _now_ms(),
            "level": level,
            "event_type": event_type,
            "call_context": self.call_context,
            "room_jid": self.room_jid,
            "state": self._snapshot.state.value,
            "details": details,
        })


# ------------------------------------------------------------------
# Construction from configuration
# ------------------------------------------------------------------

def build_gate(
    *,
    config: LobbyConfig,
    transport: RoomTransport,
    lobby_room_jid: str,
    main_room_jid: str,
    controller: MainSessionController | None,
    notifications: NotificationSink,
    call_context: str = "",
) -> LobbyGate:
    """Create a gate whose lobby presence uses the configured display name."""
    return LobbyGate(
        transport=transport,
        identity=GateIdentity(
            lobby_room_jid=lobby_room_jid,
            main_room_jid=main_room_jid,
            display_name=config.lobby_display_name,
            call_context=call_context,
        ),
        controller=controller,
        notifications=notifications,
    )
