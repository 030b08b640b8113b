"""Tests for ConnectionGateway dispatch, relay and control protocol."""

import json

import pytest

from services.realtime.session_registry import SessionRegistry
from services.realtime.ws_control import MEDIA_COMMANDS
from services.realtime.ws_session import ConnectionGateway


@pytest.fixture
def classroom(connect, join):
    """Tutor T and student S joined to session "abc", message logs cleared."""
    tutor = connect("T")
    student = connect("S")
    join(tutor, "abc", "tutor-1", "TUTOR")
    join(student, "abc", "student-1", "STUDENT")
    tutor.messages.clear()
    student.messages.clear()
    return tutor, student


class TestConnect:
    def test_connection_is_told_its_id(self, gateway: ConnectionGateway, make_connection):
        connection = make_connection("c-1")
        gateway.connect(connection)
        assert connection.messages == [{"type": "connected", "connectionId": "c-1"}]


class TestJoin:
    def test_first_join_receives_full_list(self, connect, join, registry: SessionRegistry):
        tutor = connect("T")
        join(tutor, "abc", "tutor-1", "TUTOR")
        assert tutor.messages == [
            {
                "type": "participantList",
                "participants": [{"connectionId": "T", "userId": "tutor-1", "role": "TUTOR"}],
            }
        ]
        assert tutor.session_id == "abc"
        assert registry.has_session("abc")

    def test_second_join_notifies_peers_then_resyncs_everyone(self, connect, join):
        tutor = connect("T")
        student = connect("S")
        join(tutor, "abc", "tutor-1", "TUTOR")
        tutor.messages.clear()
        join(student, "abc", "student-1", "STUDENT")

        assert tutor.types() == ["participantJoined", "participantList"]
        assert tutor.messages[0] == {
            "type": "participantJoined",
            "connectionId": "S",
            "userId": "student-1",
            "role": "STUDENT",
        }
        assert student.types() == ["participantList"]
        assert {p["connectionId"] for p in student.messages[0]["participants"]} == {"T", "S"}
        assert tutor.messages[1] == student.messages[0]

    def test_n_joins_list_n_distinct_connections(self, connect, join, registry: SessionRegistry):
        connections = [connect(f"c{i}") for i in range(5)]
        for i, connection in enumerate(reversed(connections)):
            join(connection, "abc", f"user-{i}", "STUDENT")
        ids = [p.connection_id for p in registry.list_participants("abc")]
        assert len(ids) == 5
        assert len(set(ids)) == 5

    def test_joining_another_session_leaves_the_first(self, connect, join, registry: SessionRegistry):
        tutor = connect("T")
        student = connect("S")
        join(tutor, "abc", "tutor-1", "TUTOR")
        join(student, "abc", "student-1", "STUDENT")
        tutor.messages.clear()

        join(student, "xyz", "student-1", "STUDENT")

        assert registry.sessions_for_connection("S") == ["xyz"]
        assert tutor.types() == ["participantLeft", "participantList"]
        assert student.session_id == "xyz"

    def test_invalid_join_payload_yields_private_error(self, connect, gateway: ConnectionGateway, registry):
        tutor = connect("T")
        gateway.handle(tutor, {"type": "join", "sessionId": "abc"})
        assert tutor.types() == ["error"]
        assert not registry.has_session("abc")


class TestLeaveAndDisconnect:
    def test_leave_notifies_remaining_peers(self, classroom, gateway: ConnectionGateway, registry):
        tutor, student = classroom
        gateway.handle(student, {"type": "leave", "sessionId": "abc"})

        assert tutor.types() == ["participantLeft", "participantList"]
        assert tutor.messages[0] == {"type": "participantLeft", "connectionId": "S"}
        assert [p["connectionId"] for p in tutor.messages[1]["participants"]] == ["T"]
        assert student.messages == []
        assert student.session_id is None
        assert registry.find_participant_by_user_id("abc", "student-1") == []

    def test_leave_of_unknown_session_is_noop(self, connect, gateway: ConnectionGateway, registry):
        stray = connect("X")
        gateway.handle(stray, {"type": "leave", "sessionId": "nowhere"})
        assert stray.messages == []
        assert not registry.has_session("nowhere")

    def test_disconnect_notifies_and_closes(self, classroom, gateway: ConnectionGateway):
        tutor, student = classroom
        gateway.disconnect("S")
        assert tutor.types() == ["participantLeft", "participantList"]
        assert student.closed is True

    def test_disconnect_before_join_is_safe(self, connect, gateway: ConnectionGateway, registry):
        lurker = connect("L")
        gateway.disconnect("L")
        assert lurker.closed is True
        assert len(registry) == 0

    @pytest.mark.parametrize("exit_event", ["leave", "disconnect"])
    def test_equal_joins_and_exits_leave_no_session(self, connect, join, gateway, registry, exit_event):
        connections = [connect(f"c{i}") for i in range(4)]
        for i, connection in enumerate(connections):
            join(connection, "abc", f"user-{i}", "TUTOR" if i == 0 else "STUDENT")
        for connection in connections:
            if exit_event == "leave":
                gateway.handle(connection, {"type": "leave", "sessionId": "abc"})
            else:
                gateway.disconnect(connection.connection_id)
        assert not registry.has_session("abc")
        assert len(registry) == 0


class TestSignalingRelay:
    @pytest.mark.parametrize("signal", ["offer", "answer", "iceCandidate"])
    def test_untargeted_signal_reaches_all_other_peers(self, classroom, connect, join, gateway, signal):
        tutor, student = classroom
        other = connect("O")
        join(other, "abc", "student-2", "STUDENT")
        tutor.messages.clear()
        student.messages.clear()
        other.messages.clear()

        payload = {"type": signal, "sdp": "v=0\r\no=- 4611 2 IN IP4 127.0.0.1\r\n"}
        gateway.handle(tutor, {"type": signal, "sessionId": "abc", "payload": payload})

        expected = {"type": signal, "payload": payload, "senderConnectionId": "T"}
        assert student.messages == [expected]
        assert other.messages == [expected]
        assert tutor.messages == []

    def test_targeted_signal_reaches_only_target(self, classroom, connect, join, gateway):
        tutor, student = classroom
        other = connect("O")
        join(other, "abc", "student-2", "STUDENT")
        tutor.messages.clear()
        student.messages.clear()
        other.messages.clear()

        candidate = {"candidate": "candidate:1 1 UDP 2122252543 10.0.0.1 54400 typ host", "sdpMLineIndex": 0}
        gateway.handle(
            student,
            {"type": "iceCandidate", "sessionId": "abc", "payload": candidate, "targetConnectionId": "T"},
        )

        assert tutor.messages == [
            {"type": "iceCandidate", "payload": candidate, "senderConnectionId": "S", "targetConnectionId": "T"}
        ]
        assert other.messages == []

    def test_payload_is_forwarded_untouched(self, classroom, gateway):
        tutor, student = classroom
        payload = {"nested": [1, 2.5, None, {"k": "v"}], "unicode": "naïve ✓"}
        gateway.handle(tutor, {"type": "offer", "sessionId": "abc", "payload": payload, "targetConnectionId": "S"})
        assert json.dumps(student.messages[0]["payload"]) == json.dumps(payload)

    def test_target_outside_session_is_ignored(self, classroom, connect, join, gateway):
        tutor, student = classroom
        outsider = connect("Z")
        join(outsider, "xyz", "student-9", "STUDENT")
        outsider.messages.clear()
        gateway.handle(tutor, {"type": "offer", "sessionId": "abc", "payload": {}, "targetConnectionId": "Z"})
        assert outsider.messages == []

    def test_sender_outside_session_is_ignored(self, classroom, connect, gateway):
        tutor, student = classroom
        stranger = connect("X")
        gateway.handle(stranger, {"type": "offer", "sessionId": "abc", "payload": {}})
        assert tutor.messages == []
        assert student.messages == []
        assert stranger.messages == []


class TestControlCommands:
    @pytest.mark.parametrize("command", MEDIA_COMMANDS)
    def test_tutor_media_command_targets_one_connection(self, classroom, gateway, command):
        tutor, student = classroom
        gateway.handle(tutor, {"type": command, "sessionId": "abc", "targetUserId": "student-1"})
        assert student.messages == [{"type": command, "targetUserId": "student-1"}]
        assert tutor.messages == []

    @pytest.mark.parametrize(
        "command",
        [*MEDIA_COMMANDS, "removeParticipant", "approveParticipant"],
    )
    def test_student_control_is_rejected_privately(self, classroom, gateway, registry, command):
        tutor, student = classroom
        gateway.handle(student, {"type": command, "sessionId": "abc", "targetUserId": "tutor-1"})
        assert student.types() == ["error"]
        assert tutor.messages == []
        assert len(registry.list_participants("abc")) == 2

    def test_student_cannot_end_session(self, classroom, gateway, registry):
        tutor, student = classroom
        gateway.handle(student, {"type": "endSession", "sessionId": "abc"})
        assert student.messages == [{"type": "error", "message": "Only the tutor may end the session"}]
        assert tutor.messages == []
        assert registry.has_session("abc")

    def test_unjoined_connection_is_rejected(self, classroom, connect, gateway):
        tutor, student = classroom
        stranger = connect("X")
        gateway.handle(stranger, {"type": "muteAudio", "sessionId": "abc", "targetUserId": "student-1"})
        assert stranger.types() == ["error"]
        assert student.messages == []

    def test_missing_target_is_dropped_quietly(self, classroom, gateway):
        tutor, student = classroom
        gateway.handle(tutor, {"type": "muteVideo", "sessionId": "abc", "targetUserId": "gone"})
        gateway.handle(tutor, {"type": "removeParticipant", "sessionId": "abc", "targetUserId": "gone"})
        gateway.handle(tutor, {"type": "approveParticipant", "sessionId": "abc", "targetUserId": "gone"})
        assert tutor.messages == []
        assert student.messages == []

    def test_remove_evicts_target_and_resyncs_rest(self, classroom, connect, join, gateway, registry):
        tutor, student = classroom
        other = connect("O")
        join(other, "abc", "student-2", "STUDENT")
        tutor.messages.clear()
        student.messages.clear()
        other.messages.clear()

        gateway.handle(tutor, {"type": "removeParticipant", "sessionId": "abc", "targetUserId": "student-1"})

        assert student.messages[-1] == {"type": "removeParticipant", "targetUserId": "student-1"}
        assert "participantList" not in student.types()
        assert student.session_id is None
        for peer in (tutor, other):
            assert peer.types() == ["participantList"]
            assert {p["connectionId"] for p in peer.messages[0]["participants"]} == {"T", "O"}
        assert registry.get_participant("abc", "S") is None

    def test_approve_targets_waiting_participant(self, classroom, gateway):
        tutor, student = classroom
        gateway.handle(tutor, {"type": "approveParticipant", "sessionId": "abc", "targetUserId": "student-1"})
        assert student.messages == [{"type": "approveParticipant", "targetUserId": "student-1"}]

    def test_control_follows_user_to_new_connection(self, classroom, connect, join, gateway):
        tutor, student = classroom
        gateway.disconnect("S")
        reconnected = connect("S2")
        join(reconnected, "abc", "student-1", "STUDENT")
        reconnected.messages.clear()

        gateway.handle(tutor, {"type": "muteAudio", "sessionId": "abc", "targetUserId": "student-1"})

        assert reconnected.messages == [{"type": "muteAudio", "targetUserId": "student-1"}]
        assert student.of_type("muteAudio") == []

    def test_end_session_notifies_everyone_once_and_clears(self, classroom, connect, join, gateway, registry):
        tutor, student = classroom
        other = connect("O")
        join(other, "abc", "student-2", "STUDENT")
        for connection in (tutor, student, other):
            connection.messages.clear()

        gateway.handle(tutor, {"type": "endSession", "sessionId": "abc"})

        for connection in (tutor, student, other):
            assert connection.of_type("sessionEnded") == [{"type": "sessionEnded"}]
            assert connection.session_id is None
        assert not registry.has_session("abc")

    def test_session_id_is_reusable_after_end(self, classroom, connect, join, gateway, registry):
        tutor, student = classroom
        gateway.handle(tutor, {"type": "endSession", "sessionId": "abc"})
        newcomer = connect("N")
        join(newcomer, "abc", "student-3", "STUDENT")
        assert [p.connection_id for p in registry.list_participants("abc")] == ["N"]

    def test_mute_then_unauthorized_remove_scenario(self, classroom, gateway, registry):
        tutor, student = classroom
        gateway.handle(tutor, {"type": "muteAudio", "sessionId": "abc", "targetUserId": "student-1"})
        assert student.messages == [{"type": "muteAudio", "targetUserId": "student-1"}]
        assert tutor.messages == []

        gateway.handle(student, {"type": "removeParticipant", "sessionId": "abc", "targetUserId": "tutor-1"})
        assert student.messages[-1] == {"type": "error", "message": "Only the tutor may remove participants"}
        assert tutor.messages == []
        assert {p.connection_id for p in registry.list_participants("abc")} == {"T", "S"}


class TestErrors:
    def test_unknown_event_type(self, connect, gateway):
        connection = connect("C")
        gateway.handle(connection, {"type": "teleport", "sessionId": "abc"})
        assert connection.messages == [{"type": "error", "message": "Unsupported event type: 'teleport'"}]

    def test_missing_fields_yield_error(self, classroom, gateway):
        tutor, student = classroom
        gateway.handle(tutor, {"type": "muteAudio", "sessionId": "abc"})
        assert tutor.messages == [{"type": "error", "message": "Invalid payload for muteAudio"}]
        assert student.messages == []

    def test_handler_fault_stays_with_issuer(self, classroom, gateway, monkeypatch):
        tutor, student = classroom

        def explode(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(gateway.control, "approve", explode)
        gateway.handle(tutor, {"type": "approveParticipant", "sessionId": "abc", "targetUserId": "student-1"})
        assert tutor.messages == [{"type": "error", "message": "Failed to handle approveParticipant"}]
        assert student.messages == []

    def test_server_side_end_session(self, classroom, gateway, registry):
        tutor, student = classroom
        assert gateway.end_session("abc") == 2
        assert tutor.of_type("sessionEnded") and student.of_type("sessionEnded")
        assert not registry.has_session("abc")
        assert gateway.end_session("abc") == 0
