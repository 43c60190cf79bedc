# pylint: disable=missing-module-docstring,missing-function-docstring
import threading
from dataclasses import dataclass
from typing import Any, Callable

import pytest

import lobby.gate as gate_mod
from config import LobbyConfig
from lobby.enums.presence import PresenceKind
from lobby.enums.state import GateState
from lobby.errors import (
    GateStateError,
    OperationFailedError,
    OperationNotSupportedError,
)
from lobby.gate import LobbyGate, build_gate
from lobby.state_dataclass import GateIdentity


LOBBY_JID = "abc123@lobby.meet.example.com/sip-gw"
MAIN_ROOM = "abc123@conference.meet.example.com"


# ---------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------

@dataclass
class RawPresence:
    event_type: Any
    room: Any
    alternate_address: str | None = None
    reason: str | None = None


@dataclass
class RawInvitation:
    room_jid: str = MAIN_ROOM
    inviter: str | None = "moderator"
    reason: str | None = None


class FakeRoom:
    def __init__(self, calls: list[str], join_error: Exception | None = None) -> None:
        self.calls = calls
        self.join_error = join_error
        self.nicknames: list[str] = []

    def join_as(self, nickname: str) -> None:
        self.calls.append("room.join_as")
        if self.join_error is not None:
            raise self.join_error
        self.nicknames.append(nickname)

    def leave(self) -> None:
        self.calls.append("room.leave")


class DecoratedRoom(FakeRoom):
    def __init__(self, calls: list[str]) -> None:
        super().__init__(calls)
        self.display_names: list[str] = []

    def add_presence_nickname(self, display_name: str) -> None:
        self.display_names.append(display_name)


class DeliveringRoom(FakeRoom):
    """Runs `during_join` from inside join_as, inline or on a transport thread."""

    def __init__(self, calls: list[str], *, threaded: bool) -> None:
        super().__init__(calls)
        self.threaded = threaded
        self.during_join: Callable[[], None] = lambda: None
        self.delivered = False

    def join_as(self, nickname: str) -> None:
        super().join_as(nickname)
        if not self.threaded:
            self.during_join()
            self.delivered = True
            return
        # A transport that hands over its own presence before join_as returns.
        worker = threading.Thread(target=self.during_join)
        worker.start()
        worker.join(timeout=2)
        self.delivered = not worker.is_alive()


class FakeTransport:
    def __init__(self, calls: list[str], room: FakeRoom | None) -> None:
        self.calls = calls
        self.room = room
        self.found: list[str] = []
        self.invitation_callbacks: dict[str, Callable[[Any], None]] = {}
        self.presence_callbacks: dict[str, Callable[[Any], None]] = {}
        self.removed: list[str] = []

    def find_room(self, room_jid: str) -> FakeRoom | None:
        self.found.append(room_jid)
        return self.room

    def add_invitation_listener(self, callback: Callable[[Any], None]) -> str:
        self.invitation_callbacks["inv"] = callback
        return "inv"

    def remove_invitation_listener(self, handle: str) -> None:
        self.removed.append(handle)
        self.invitation_callbacks.pop(handle)

    def add_presence_listener(self, callback: Callable[[Any], None]) -> str:
        self.presence_callbacks["pres"] = callback
        return "pres"

    def remove_presence_listener(self, handle: str) -> None:
        self.removed.append(handle)
        self.presence_callbacks.pop(handle)

    # -- delivery helpers ------------------------------------------------

    def invite(self) -> None:
        for cb in list(self.invitation_callbacks.values()):
            cb(RawInvitation())

    def presence(self, kind: Any, room: Any = None, alternate_address: str | None = None) -> None:
        raw = RawPresence(
            event_type=kind,
            room=self.room if room is None else room,
            alternate_address=alternate_address,
        )
        for cb in list(self.presence_callbacks.values()):
            cb(raw)


class FakeController:
    def __init__(self, calls: list[str]) -> None:
        self.calls = calls

    def admit_main_room(self) -> None:
        self.calls.append("controller.admit")


class FakeNotifications:
    def __init__(self, calls: list[str], failing: set[str] | None = None) -> None:
        self.calls = calls
        self.failing = failing or set()

    def _record(self, name: str) -> None:
        self.calls.append(f"notify.{name}")
        if name in self.failing:
            raise RuntimeError(f"{name} playback failed")

    def waiting_for_review(self) -> None:
        self._record("waiting_for_review")

    def access_granted(self) -> None:
        self._record("access_granted")

    def access_denied(self) -> None:
        self._record("access_denied")

    def room_destroyed(self) -> None:
        self._record("room_destroyed")


@pytest.fixture
def emitted(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    records: list[dict[str, Any]] = []

    def fake_log_event(payload: dict[str, Any]) -> None:
        records.append(dict(payload))

    monkeypatch.setattr(gate_mod, "log_event", fake_log_event)
    return records


def make_gate(
    *,
    room: FakeRoom | None = None,
    failing: set[str] | None = None,
    display_name: str | None = None,
    with_controller: bool = True,
) -> tuple[LobbyGate, FakeTransport, list[str]]:
    calls: list[str] = []
    if room is None:
        room = FakeRoom(calls)
    else:
        room.calls = calls
    transport = FakeTransport(calls, room)
    gate = LobbyGate(
        transport=transport,
        identity=GateIdentity(
            lobby_room_jid=LOBBY_JID,
            main_room_jid=MAIN_ROOM,
            display_name=display_name,
            call_context="call-1",
        ),
        controller=FakeController(calls) if with_controller else None,
        notifications=FakeNotifications(calls, failing),
    )
    return gate, transport, calls


def joined_gate(**kwargs: Any) -> tuple[LobbyGate, FakeTransport, list[str]]:
    gate, transport, calls = make_gate(**kwargs)
    gate.join()
    calls.clear()
    return gate, transport, calls


# ---------------------------------------------------------------------
# Accessors
# ---------------------------------------------------------------------

def test_accessors_expose_identity():
    gate, transport, _ = make_gate()

    assert gate.room_jid == LOBBY_JID
    assert gate.main_room_jid == MAIN_ROOM
    assert gate.resource_identifier == "abc123"
    assert gate.protocol_provider is transport
    assert gate.call_context == "call-1"
    assert gate.state is GateState.NOT_JOINED


# ---------------------------------------------------------------------
# Join
# ---------------------------------------------------------------------

def test_join_enters_waiting_and_notifies_once(emitted):
    gate, transport, calls = make_gate()

    gate.join()

    assert gate.state is GateState.WAITING
    assert calls == ["room.join_as", "notify.waiting_for_review"]
    assert transport.found == [LOBBY_JID]
    assert transport.room.nicknames == ["abc123"]
    assert set(transport.invitation_callbacks) == {"inv"}
    assert set(transport.presence_callbacks) == {"pres"}
    assert gate.snapshot.room is transport.room
    assert any(e.get("decision") == "waiting_for_review" for e in emitted)


def test_join_twice_is_rejected():
    gate, _, _ = joined_gate()

    with pytest.raises(GateStateError):
        gate.join()


def test_join_decorates_room_with_display_name():
    calls: list[str] = []
    room = DecoratedRoom(calls)
    gate, _, _ = make_gate(room=room, display_name="Alice (SIP)")

    gate.join()

    assert room.display_names == ["Alice (SIP)"]


def test_join_without_display_name_logs_error(emitted):
    calls: list[str] = []
    room = DecoratedRoom(calls)
    gate, _, _ = make_gate(room=room)

    gate.join()

    assert room.display_names == []
    assert any(e["event_type"] == "NO_DISPLAY_NAME" for e in emitted)


@pytest.mark.parametrize(
    "error",
    [OperationFailedError("refused"), OperationNotSupportedError("no muc")],
)
def test_join_failure_is_surfaced_and_listeners_released(error: Exception):
    calls: list[str] = []
    gate, transport, calls = make_gate(room=FakeRoom(calls, join_error=error))

    with pytest.raises(type(error)) as excinfo:
        gate.join()

    assert excinfo.value is error
    assert gate.state is GateState.TERMINATED
    assert transport.invitation_callbacks == {}
    assert transport.presence_callbacks == {}
    assert "notify.waiting_for_review" not in calls


def test_unexpected_join_exception_is_wrapped():
    calls: list[str] = []
    gate, transport, _ = make_gate(room=FakeRoom(calls, join_error=KeyError("x")))

    with pytest.raises(OperationFailedError) as excinfo:
        gate.join()

    assert isinstance(excinfo.value.__cause__, KeyError)
    assert transport.removed == ["inv", "pres"]


def test_missing_room_fails_join():
    gate, transport, _ = make_gate()
    transport.room = None

    with pytest.raises(OperationFailedError):
        gate.join()

    assert gate.state is GateState.TERMINATED


# ---------------------------------------------------------------------
# Delivery while join_as runs
# ---------------------------------------------------------------------

def test_join_does_not_block_delivery_thread():
    room = DeliveringRoom([], threaded=True)
    gate, transport, calls = make_gate(room=room)
    room.during_join = lambda: transport.presence(PresenceKind.JOINED)

    gate.join()

    assert room.delivered
    assert gate.state is GateState.WAITING
    assert calls == ["room.join_as", "notify.waiting_for_review"]


@pytest.mark.parametrize("threaded", [False, True])
def test_invitation_during_join_is_honoured_after_waiting_cue(threaded: bool):
    room = DeliveringRoom([], threaded=threaded)
    gate, transport, calls = make_gate(room=room)
    room.during_join = transport.invite

    gate.join()

    assert room.delivered
    assert calls == [
        "room.join_as",
        "notify.waiting_for_review",
        "notify.access_granted",
        "controller.admit",
        "room.leave",
    ]
    assert gate.state is GateState.LEFT
    assert transport.removed == ["inv", "pres"]


def test_kick_during_join_is_honoured_after_waiting_cue():
    room = DeliveringRoom([], threaded=True)
    gate, transport, calls = make_gate(room=room)
    room.during_join = lambda: transport.presence(PresenceKind.KICKED)

    gate.join()

    assert calls == [
        "room.join_as",
        "notify.waiting_for_review",
        "notify.access_denied",
        "room.leave",
    ]
    assert gate.state is GateState.LEFT


def test_owner_leave_from_other_thread_during_join_leaves_room_once():
    room = DeliveringRoom([], threaded=True)
    gate, transport, calls = make_gate(room=room)
    room.during_join = gate.leave

    gate.join()

    assert room.delivered
    assert calls == ["room.join_as", "room.leave"]
    assert gate.state is GateState.LEFT
    assert transport.invitation_callbacks == {}
    assert transport.presence_callbacks == {}


def test_grant_racing_join_never_cues_before_waiting():
    for _ in range(50):
        room = DeliveringRoom([], threaded=False)
        gate, transport, calls = make_gate(room=room)
        started = threading.Event()

        def deliver_invitation() -> None:
            started.wait()
            transport.invite()

        room.during_join = started.set
        worker = threading.Thread(target=deliver_invitation)
        worker.start()
        gate.join()
        worker.join()

        assert calls.index("notify.waiting_for_review") < calls.index("notify.access_granted")
        assert calls.count("controller.admit") == 1
        assert gate.state is GateState.LEFT


# ---------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------

def test_invitation_grants_then_admits_then_leaves():
    gate, transport, calls = joined_gate()

    transport.invite()

    assert calls == ["notify.access_granted", "controller.admit", "room.leave"]
    assert gate.state is GateState.LEFT
    assert transport.removed == ["inv", "pres"]


def test_kicked_denies_and_leaves_without_admit():
    gate, transport, calls = joined_gate()

    transport.presence(PresenceKind.KICKED)

    assert calls == ["notify.access_denied", "room.leave"]
    assert gate.state is GateState.LEFT


def test_left_with_main_room_alternate_admits_only():
    gate, transport, calls = joined_gate()

    transport.presence("left", alternate_address=MAIN_ROOM)

    assert calls == ["controller.admit"]
    assert gate.state is GateState.LEFT


def test_room_destroyed_notifies_and_terminates():
    gate, transport, calls = joined_gate()

    transport.presence(PresenceKind.ROOM_DESTROYED)

    assert calls == ["notify.room_destroyed"]
    assert gate.state is GateState.TERMINATED


def test_left_without_alternate_changes_nothing():
    gate, transport, calls = joined_gate()

    transport.presence(PresenceKind.LEFT)

    assert calls == []
    assert gate.state is GateState.WAITING


def test_presence_for_other_room_is_ignored():
    gate, transport, calls = joined_gate()

    transport.presence(PresenceKind.KICKED, room=object())
    transport.presence(PresenceKind.ROOM_DESTROYED, room=object())

    assert calls == []
    assert gate.state is GateState.WAITING


def test_unknown_presence_type_is_dropped(emitted):
    gate, transport, calls = joined_gate()

    transport.presence("voice_requested")

    assert calls == []
    assert gate.state is GateState.WAITING
    assert any(e["event_type"] == "UNKNOWN_PRESENCE_TYPE" for e in emitted)


def test_events_after_terminal_produce_no_side_effects():
    gate, transport, calls = joined_gate()
    # Keep callbacks reachable after the gate released them.
    inv_cb = transport.invitation_callbacks["inv"]
    pres_cb = transport.presence_callbacks["pres"]

    pres_cb(RawPresence(PresenceKind.ROOM_DESTROYED, transport.room))
    calls.clear()

    pres_cb(RawPresence(PresenceKind.ROOM_DESTROYED, transport.room))
    inv_cb(RawInvitation())
    pres_cb(RawPresence(PresenceKind.KICKED, transport.room))

    assert calls == []
    assert gate.state is GateState.TERMINATED


def test_admit_at_most_once_when_late_left_follows_invitation():
    gate, transport, calls = joined_gate()
    pres_cb = transport.presence_callbacks["pres"]

    transport.invite()
    pres_cb(RawPresence(PresenceKind.LEFT, transport.room, alternate_address=MAIN_ROOM))

    assert calls.count("controller.admit") == 1
    assert calls.count("room.leave") == 1


def test_missing_controller_is_logged_not_raised(emitted):
    gate, transport, calls = joined_gate(with_controller=False)

    transport.invite()

    assert calls == ["notify.access_granted", "room.leave"]
    assert any(e["event_type"] == "NO_MAIN_SESSION" for e in emitted)


# ---------------------------------------------------------------------
# Fail-soft side effects
# ---------------------------------------------------------------------

def test_notification_failure_does_not_block_admission(emitted):
    gate, transport, calls = joined_gate(failing={"access_granted"})

    transport.invite()

    assert calls == ["notify.access_granted", "controller.admit", "room.leave"]
    assert gate.state is GateState.LEFT
    failures = [e for e in emitted if e["event_type"] == "SIDE_EFFECT_FAILED"]
    assert len(failures) == 1
    assert failures[0]["details"]["command_type"] == "NOTIFY_ACCESS_GRANTED"


def test_waiting_notification_failure_does_not_fail_join():
    gate, _, _ = make_gate(failing={"waiting_for_review"})

    gate.join()

    assert gate.state is GateState.WAITING


# ---------------------------------------------------------------------
# Leave
# ---------------------------------------------------------------------

def test_leave_twice_leaves_room_once():
    gate, transport, calls = joined_gate()

    gate.leave()
    gate.leave()

    assert calls == ["room.leave"]
    assert gate.state is GateState.LEFT
    assert transport.removed == ["inv", "pres"]


def test_leave_after_invitation_does_not_leave_again(emitted):
    gate, transport, calls = joined_gate()

    transport.invite()
    gate.leave()

    assert calls.count("room.leave") == 1
    assert any(e.get("decision") == "MUC_ROOM_NULL" for e in emitted)


def test_leave_after_lobby_disabled_leaves_room():
    gate, transport, calls = joined_gate()

    transport.presence(PresenceKind.LEFT, alternate_address=MAIN_ROOM)
    gate.leave()

    assert calls == ["controller.admit", "room.leave"]


def test_leave_without_join_is_harmless():
    gate, transport, calls = make_gate()

    gate.leave()

    assert calls == []
    assert gate.state is GateState.LEFT
    assert transport.removed == []


def test_leave_swallows_room_errors(emitted):
    gate, transport, _ = joined_gate()

    def broken_leave() -> None:
        raise RuntimeError("connection lost")

    transport.room.leave = broken_leave

    gate.leave()

    assert gate.state is GateState.LEFT
    assert any(e["event_type"] == "SIDE_EFFECT_FAILED" for e in emitted)


# ---------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------

def test_concurrent_invitation_and_kick_pick_exactly_one_outcome():
    for _ in range(50):
        gate, transport, calls = joined_gate()
        inv_cb = transport.invitation_callbacks["inv"]
        pres_cb = transport.presence_callbacks["pres"]
        barrier = threading.Barrier(2)

        def deliver_invitation() -> None:
            barrier.wait()
            inv_cb(RawInvitation())

        def deliver_kick() -> None:
            barrier.wait()
            pres_cb(RawPresence(PresenceKind.KICKED, transport.room))

        threads = [
            threading.Thread(target=deliver_invitation),
            threading.Thread(target=deliver_kick),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        granted = "notify.access_granted" in calls
        denied = "notify.access_denied" in calls
        assert granted != denied
        assert calls.count("controller.admit") == (1 if granted else 0)
        assert calls.count("room.leave") == 1
        assert gate.state is GateState.LEFT


def test_concurrent_owner_leave_and_invitation_leave_room_once():
    for _ in range(50):
        gate, transport, calls = joined_gate()
        inv_cb = transport.invitation_callbacks["inv"]
        barrier = threading.Barrier(2)

        def deliver_invitation() -> None:
            barrier.wait()
            inv_cb(RawInvitation())

        def owner_leave() -> None:
            barrier.wait()
            gate.leave()

        threads = [
            threading.Thread(target=deliver_invitation),
            threading.Thread(target=owner_leave),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert calls.count("room.leave") == 1
        assert calls.count("controller.admit") <= 1


def test_build_gate_uses_configured_display_name():
    calls: list[str] = []
    room = DecoratedRoom(calls)
    transport = FakeTransport(calls, room)
    config = LobbyConfig(
        env="test",
        log_level="INFO",
        enable_json_logs=True,
        lobby_display_name="Dial-in user",
    )

    gate = build_gate(
        config=config,
        transport=transport,
        lobby_room_jid=LOBBY_JID,
        main_room_jid=MAIN_ROOM,
        controller=FakeController(calls),
        notifications=FakeNotifications(calls),
        call_context="call-9",
    )
    gate.join()

    assert gate.identity.display_name == "Dial-in user"
    assert room.display_names == ["Dial-in user"]
