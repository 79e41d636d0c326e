import socket
import struct

import pytest

import mumble_session.session as session_module
from mumble_session import (
    AlreadyBoundError,
    ConnectionRejectedError,
    MissingUsernameError,
    ProtocolError,
    Session,
    SessionStateError,
    self_state_flags,
)
from mumble_session.codec import ProtobufCodec
from mumble_session.constants import REJECT_TYPE, SESSION_PHASE, TCP_MSG_TYPE
from mumble_session.proto import mumble as mpb
from mumble_session.proto import udp as udppb
from tests.fakes import FakeCodecs, FakeTransport, listen
from tests.msgs import tcp_decode, tcp_encode, udp_decode


def test_handshake_sends_version_then_authenticate():
    transport = FakeTransport()
    s = Session(
        "pi", password="hunter2", tokens=["blue"], codecs=FakeCodecs(), client_type=1
    )
    s.connect_control(transport)

    version, authenticate = tcp_decode(transport.sent)
    assert type(version) is mpb.Version
    assert version.version_v1 == (1 << 16) + (5 << 8) + 255
    assert version.version_v2 == (1 << 48) + (5 << 32) + (735 << 16)
    assert type(authenticate) is mpb.Authenticate
    assert authenticate.username == "pi"
    assert authenticate.password == "hunter2"
    assert list(authenticate.tokens) == ["blue"]
    assert authenticate.opus
    assert list(authenticate.celt_versions) == [-2147483637]
    assert authenticate.client_type == 1
    assert s.phase == SESSION_PHASE.HANDSHAKING


def test_handshake_without_codecs():
    transport = FakeTransport()
    Session("pi").connect_control(transport)
    _, authenticate = tcp_decode(transport.sent)
    assert not authenticate.HasField("password")
    assert not authenticate.opus
    assert list(authenticate.celt_versions) == []


@pytest.mark.parametrize("user", ["", None])
def test_missing_username(user):
    with pytest.raises(MissingUsernameError):
        Session(user)
    with pytest.raises(ValueError):
        Session(user)


def test_invalid_client_type():
    with pytest.raises(ValueError):
        Session("pi", client_type=7)


def test_connect_resolves_on_server_sync(session, server_sync):
    assert not session.connect_future.done()
    session.receive_control(tcp_encode(*server_sync))

    assert session.connect_future.result(timeout=0) is session
    assert session.phase == SESSION_PHASE.SYNCED
    assert session.users.myself is session.users[11] is session.users["pi"]
    assert session.my_channel().name == "Root"
    assert session.root is session.channels[0]
    assert session.max_bandwidth == 558000
    assert session.welcome_text == "<br />Welcome to this fake server...<br />"


def test_connected_fires_once(session, server_sync):
    connected = listen(session.callbacks.connected)
    session.receive_control(tcp_encode(*server_sync))
    session.receive_control(tcp_encode(mpb.ServerSync(session=12)))

    connected.assert_called_once_with()
    assert session.users.my_session == 11


def test_future_handlers_removed_once_settled(synced):
    assert synced.callbacks.connected.get_handlers() == []
    assert synced.callbacks.rejected.get_handlers() == []
    assert synced.callbacks.disconnected.get_handlers() == []


def test_reject_fails_future(session, transport):
    rejected = listen(session.callbacks.rejected)
    disconnected = listen(session.callbacks.disconnected)
    reject = mpb.Reject(type=REJECT_TYPE.WRONG_USER_PW, reason="Wrong password")
    session.receive_control(tcp_encode(reject))

    error = session.connect_future.exception(timeout=0)
    assert isinstance(error, ConnectionRejectedError)
    assert error.message.reason == "Wrong password"
    assert str(error) == "Wrong password"
    rejected.assert_called_once()
    assert rejected.call_args.args[0].type == REJECT_TYPE.WRONG_USER_PW
    disconnected.assert_called_once_with()
    assert session.phase == SESSION_PHASE.DISCONNECTED
    assert transport.closed


def test_sync_after_reject_is_ignored(session, server_sync):
    connected = listen(session.callbacks.connected)
    session.receive_control(tcp_encode(mpb.Reject(reason="go away"), *server_sync))

    assert isinstance(session.connect_future.exception(), ConnectionRejectedError)
    connected.assert_not_called()
    assert session.users.my_session is None


def test_reject_after_sync_keeps_future_result(synced):
    synced.receive_control(tcp_encode(mpb.Reject(reason="late")))
    assert synced.connect_future.result(timeout=0) is synced
    assert synced.phase == SESSION_PHASE.DISCONNECTED


def test_handshake_transport_error():
    transport = FakeTransport(fail_send=True)
    s = Session("pi")
    future = s.connect_control(transport)

    assert isinstance(future.exception(timeout=0), BrokenPipeError)
    assert s.exception is future.exception()
    assert s.phase == SESSION_PHASE.DISCONNECTED
    assert transport.closed


def test_undecodable_control_message_is_fatal(session, transport):
    data = struct.pack("!HL", TCP_MSG_TYPE.UserState, 1) + b"\xff"
    with pytest.raises(ProtocolError):
        session.receive_control(data)

    assert session.phase == SESSION_PHASE.DISCONNECTED
    assert isinstance(session.connect_future.exception(), ProtocolError)
    assert transport.closed


def test_disconnect_is_idempotent(session, transport):
    disconnected = listen(session.callbacks.disconnected)
    session.disconnect()
    session.stop()

    disconnected.assert_called_once_with()
    assert transport.closed
    assert isinstance(session.connect_future.exception(), SessionStateError)


def test_disconnected_session_cannot_be_reused(session):
    session.disconnect()
    with pytest.raises(SessionStateError):
        session.connect_control(FakeTransport())
    with pytest.raises(SessionStateError):
        session.connect_voice(FakeTransport())


def test_binding_control_twice_ends_session(session, transport):
    with pytest.raises(AlreadyBoundError):
        session.connect_control(FakeTransport())
    assert session.phase == SESSION_PHASE.DISCONNECTED
    assert transport.closed
    assert isinstance(session.connect_future.exception(), AlreadyBoundError)


def test_binding_voice_twice_ends_session(session):
    voice = FakeTransport()
    session.connect_voice(voice)
    with pytest.raises(AlreadyBoundError):
        session.connect_voice(FakeTransport())
    assert session.phase == SESSION_PHASE.DISCONNECTED
    assert voice.closed


def test_my_channel_before_sync(session):
    with pytest.raises(SessionStateError):
        session.my_channel()


def test_handler_error_ends_session(session, server_sync, transport):
    def explode(user):
        raise RuntimeError("handler bug")

    session.callbacks.user_created.add_handler(explode)
    with pytest.raises(RuntimeError):
        session.receive_control(tcp_encode(*server_sync))

    assert session.phase == SESSION_PHASE.DISCONNECTED
    assert transport.closed
    assert isinstance(session.connect_future.exception(), RuntimeError)


def test_context_manager(transport):
    with Session("pi") as s:
        s.connect_control(transport)
    assert s.phase == SESSION_PHASE.DISCONNECTED
    assert transport.closed


@pytest.mark.parametrize(
    "mute, deaf, expected",
    [
        (True, None, {"self_mute": True}),
        (False, None, {"self_mute": False, "self_deaf": False}),
        (None, True, {"self_mute": True, "self_deaf": True}),
        (None, False, {"self_deaf": False}),
        (False, True, {"self_mute": True, "self_deaf": True}),
        (None, None, {}),
    ],
)
def test_self_state_flags(mute, deaf, expected):
    assert self_state_flags(mute=mute, deaf=deaf) == expected


def test_deafen_then_unmute(synced, transport):
    synced.set_self_deaf(True)
    synced.set_self_mute(False)

    deafen, unmute = tcp_decode(transport.sent)
    assert deafen.session == 11
    assert deafen.self_deaf and deafen.self_mute
    assert unmute.HasField("self_mute") and unmute.HasField("self_deaf")
    assert not unmute.self_mute and not unmute.self_deaf


@pytest.mark.parametrize(
    "command, value, field",
    [
        ("set_self_texture", b"\x89PNG", "texture"),
        ("set_self_comment", "free luigi!", "comment"),
        ("set_plugin_context", b"Manual placement", "plugin_context"),
        ("set_plugin_identity", "pi@earth", "plugin_identity"),
        ("set_recording", True, "recording"),
    ],
)
def test_self_state_commands(synced, transport, command, value, field):
    getattr(synced, command)(value)

    (userstate,) = tcp_decode(transport.sent)
    assert type(userstate) is mpb.UserState
    assert [f.name for f, _ in userstate.ListFields()] == ["session", field]
    assert userstate.session == 11
    assert getattr(userstate, field) == value


def test_commands_need_a_synced_session(session, server_sync):
    with pytest.raises(SessionStateError):
        session.set_self_mute(True)

    session.receive_control(tcp_encode(*server_sync))
    session.disconnect()
    with pytest.raises(SessionStateError):
        session.set_self_comment("bye")


def test_unknown_message_types_are_skipped(synced):
    synced.receive_control(
        tcp_encode(
            (99, b"\x01\x02"),
            (TCP_MSG_TYPE.ContextAction, b""),
            mpb.UserState(session=12, name="orbital"),
        )
    )
    assert synced.phase == SESSION_PHASE.SYNCED
    assert synced.users[12].name == "orbital"


def test_text_message(synced):
    received = listen(synced.callbacks.text_message_received)
    synced.receive_control(
        tcp_encode(
            mpb.UserState(session=12, name="orbital"),
            mpb.TextMessage(
                actor=12, message="free luigi!", session=[11, 99], channel_id=[0]
            ),
            mpb.TextMessage(message="server notice", tree_id=[0]),
        )
    )

    users, channels = synced.users, synced.channels
    assert received.call_args_list[0].args == (
        users[12],
        "free luigi!",
        [users[11]],
        [channels[0]],
        [],
    )
    assert received.call_args_list[1].args == (
        None,
        "server notice",
        [],
        [],
        [channels[0]],
    )


def test_server_config(synced):
    assert synced.server_allow_html
    synced.receive_control(tcp_encode(mpb.ServerConfig(allow_html=False, message_length=128)))
    assert not synced.server_allow_html
    assert synced.server_max_message_length == 128
    assert synced.server_max_image_message_length == 131072


def test_ping(synced, transport):
    synced.ping()
    (ping,) = tcp_decode(transport.sent)
    assert type(ping) is mpb.Ping
    assert ping.timestamp == synced.ping_stats["time_send"]
    assert ping.tcp_packets == 0

    synced.receive_control(tcp_encode(mpb.Ping(timestamp=ping.timestamp)))
    assert synced.ping_stats["nb"] == 1
    assert synced.ping_stats["last_rcv"] >= ping.timestamp


def test_ping_over_voice_transport(synced, transport):
    voice = FakeTransport()
    synced.connect_voice(voice)
    synced.ping()

    (ping,) = tcp_decode(transport.sent)
    (voice_ping,) = [udp_decode(chunk) for chunk in voice.chunks]
    assert type(voice_ping) is udppb.Ping
    assert voice_ping.timestamp == ping.timestamp


def test_ping_timeout_disconnects(synced, transport):
    disconnected = listen(synced.callbacks.disconnected)
    synced.ping_stats["last_rcv"] = 1  # the server last answered in 1970

    synced.ping()
    assert synced.phase == SESSION_PHASE.DISCONNECTED
    assert isinstance(synced.exception, ConnectionResetError)
    disconnected.assert_called_once_with()
    assert transport.closed


def test_get_channel(synced):
    synced.receive_control(tcp_encode(mpb.ChannelState(channel_id=3, parent=0, name="Lobby")))
    assert synced.get_channel("Lobby") is synced.channels[3]
    assert synced.get_channel("Attic") is None


def test_session_loop(server_sync, monkeypatch):
    monkeypatch.setattr(session_module, "PING_INTERVAL", 0.05)
    client_sock, server_sock = socket.socketpair()
    server_sock.settimeout(5)
    with client_sock, server_sock:
        s = Session("pi", loop_rate=0.01)
        connected = s.connect_control(client_sock)
        s.start()
        server_sock.sendall(tcp_encode(*server_sync))

        assert connected.result(timeout=5) is s
        assert s.my_channel().name == "Root"

        # the client keeps pinging the server once synced
        codec = ProtobufCodec()
        received = []
        while TCP_MSG_TYPE.Ping not in [msgtype for msgtype, _ in received]:
            received.extend(codec.decode_control(server_sock.recv(4096)))
        assert [msgtype for msgtype, _ in received[:2]] == [
            TCP_MSG_TYPE.Version,
            TCP_MSG_TYPE.Authenticate,
        ]

        s.disconnect()
        s.join(timeout=5)
        assert not s.is_alive()
        assert s.exception is None


def test_session_loop_server_hangs_up():
    client_sock, server_sock = socket.socketpair()
    with client_sock:
        s = Session("pi", loop_rate=0.01)
        connected = s.connect_control(client_sock)
        s.start()
        server_sock.close()

        assert isinstance(connected.exception(timeout=5), ConnectionResetError)
        s.join(timeout=5)
        assert s.phase == SESSION_PHASE.DISCONNECTED


def test_session_loop_handler_error(server_sync):
    client_sock, server_sock = socket.socketpair()
    with client_sock, server_sock:
        s = Session("pi", loop_rate=0.01)
        disconnected = listen(s.callbacks.disconnected)

        def explode(user):
            raise RuntimeError("handler bug")

        s.callbacks.user_created.add_handler(explode)
        connected = s.connect_control(client_sock)
        s.start()
        server_sock.sendall(tcp_encode(*server_sync))

        assert isinstance(connected.exception(timeout=5), RuntimeError)
        s.join(timeout=5)
        assert not s.is_alive()
        assert s.phase == SESSION_PHASE.DISCONNECTED
        assert isinstance(s.exception, RuntimeError)
        disconnected.assert_called_once_with()
