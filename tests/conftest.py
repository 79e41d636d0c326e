from pytest import fixture

from mumble_session import Session
from mumble_session.proto import mumble as mpb
from tests.fakes import FakeCodecs, FakeTransport
from tests.msgs import tcp_encode


@fixture
def server_sync():
    # values captured from mumble-server:v1.5.735-0
    return [
        mpb.CryptSetup(
            key=bytes.fromhex("ba83026a9b443e51232cd0437c6396a2"),
            client_nonce=bytes.fromhex("1f6b6ad1ad79cf43526cfc8490ff5ca3"),
            server_nonce=bytes.fromhex("0a03f62b1862072ccdeef8ccfbc191f3"),
        ),
        mpb.CodecVersion(beta=0, prefer_alpha=True, alpha=-2147483637, opus=True),
        mpb.ChannelState(
            can_enter=True,
            name="Root",
            channel_id=0,
            max_users=0,
            position=0,
            is_enter_restricted=False,
        ),
        mpb.PermissionQuery(channel_id=0, permissions=134744846),
        mpb.UserState(name="pi", session=11, channel_id=0),
        mpb.ServerSync(
            welcome_text="<br />Welcome to this fake server...<br />",
            max_bandwidth=558000,
            permissions=134744846,
            session=11,
        ),
        mpb.ServerConfig(
            message_length=5000,
            max_users=100,
            image_message_length=131072,
            recording_allowed=True,
            allow_html=True,
        ),
    ]


@fixture
def codecs():
    return FakeCodecs()


@fixture
def transport():
    return FakeTransport()


@fixture
def session(codecs, transport):
    "A session in the handshake phase, bound to a fake control transport."
    s = Session("pi", password="hunter2", tokens=["blue"], codecs=codecs)
    s.connect_future = s.connect_control(transport)
    transport.chunks.clear()
    return s


@fixture
def synced(session, server_sync):
    session.receive_control(tcp_encode(*server_sync))
    return session

