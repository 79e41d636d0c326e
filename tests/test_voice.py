import array
import struct
from types import SimpleNamespace

import pytest

from mumble_session import (
    DropStream,
    ProtocolError,
    Session,
    UnknownSourceError,
    VoiceStream,
)
from mumble_session.audio import Position
from mumble_session.constants import MAX_LOST_FRAMES, SESSION_PHASE
from mumble_session.proto import mumble as mpb
from mumble_session.proto import udp as udppb
from tests.fakes import FRAME_SAMPLES, FakeTransport, listen
from tests.msgs import tcp_decode, tcp_encode, tunnel, udp_decode, udp_encode


def tunneled_packets(transport):
    "Voice packets sent through the control transport in UDPTunnel messages."
    return [udp_decode(payload) for payload in tcp_decode(transport.sent)]


def silence(frames: float = 1) -> list:
    return [0.0] * int(FRAME_SAMPLES * frames)


@pytest.mark.parametrize("n", [0, 1, 3])
def test_transmission_numbering(synced, transport, n):
    stream = synced.create_voice_stream()
    assert isinstance(stream, VoiceStream)
    for _ in range(n):
        stream.write(silence())
    stream.close()

    packets = tunneled_packets(transport)
    assert [p.frame_number for p in packets] == list(range(n + 1))
    assert [p.is_terminator for p in packets] == [False] * n + [True]
    assert [p.opus_data for p in packets] == [b"frame%i" % i for i in range(n)] + [b""]
    assert all(p.target == 0 for p in packets)


def test_close_flushes_encoder(synced, transport):
    with synced.create_voice_stream(target=3) as stream:
        stream.write(silence(1.5))
        assert stream.seq_num == 1

    packets = tunneled_packets(transport)
    assert [p.frame_number for p in packets] == [0, 1, 2]
    assert [p.opus_data for p in packets] == [b"frame0", b"frame1", b""]
    assert all(p.target == 3 for p in packets)


def test_close_twice_ends_once(synced, transport):
    stream = synced.create_voice_stream()
    stream.close()
    stream.close()
    assert len(tunneled_packets(transport)) == 1


def test_write_after_close(synced):
    stream = synced.create_voice_stream()
    stream.close()
    with pytest.raises(ValueError):
        stream.write(silence())


@pytest.mark.parametrize("target", [-1, 32])
def test_invalid_target(synced, target):
    with pytest.raises(ValueError):
        synced.create_voice_stream(target=target)


def test_voice_transport_preferred(synced, transport):
    voice = FakeTransport()
    synced.connect_voice(voice)
    assert not synced.multiplexer.tunneled

    with synced.create_voice_stream() as stream:
        stream.write(silence())

    assert transport.chunks == []
    packets = [udp_decode(chunk) for chunk in voice.chunks]
    assert [(p.frame_number, p.is_terminator) for p in packets] == [
        (0, False),
        (1, True),
    ]


def test_drop_stream_without_codecs(server_sync):
    transport = FakeTransport()
    s = Session("pi")
    s.connect_control(transport)
    s.receive_control(tcp_encode(*server_sync))
    transport.chunks.clear()

    with s.create_voice_stream() as stream:
        assert isinstance(stream, DropStream)
        stream.write(silence(10))

    assert stream.closed
    assert transport.chunks == []


@pytest.mark.parametrize(
    "chunk",
    [
        {"pcm": silence(), "x": 1.0, "y": 2.0, "z": -3.0},
        SimpleNamespace(pcm=silence(), x=1.0, y=2.0, z=-3.0),
    ],
)
def test_positional_audio(synced, transport, chunk):
    with synced.create_voice_stream() as stream:
        stream.write(chunk)

    frame, end = tunneled_packets(transport)
    assert list(frame.positional_data) == [1.0, 2.0, -3.0]
    assert list(end.positional_data) == []


def test_raw_pcm_formats(synced, codecs):
    stream = synced.create_voice_stream(number_of_channels=2)
    stream.write(struct.pack("<%if" % FRAME_SAMPLES, *([0.5] * FRAME_SAMPLES)))
    pcm_data = codecs.encoders[0].last
    assert pcm_data.number_of_channels == 2
    assert len(pcm_data.pcm) == FRAME_SAMPLES
    assert pcm_data.pcm[0] == 0.5

    stream.write(array.array("f", silence()))
    assert stream.seq_num == 2

    with pytest.raises(ValueError):
        stream.write(b"\x00\x00\x00")  # not a whole float


@pytest.fixture
def orbital(synced):
    "Another user in the root channel."
    synced.receive_control(tcp_encode(mpb.UserState(session=12, name="orbital")))
    return synced.users[12]


def audio(seq: int, frame: bytes = b"\x08opus", end=False, context=0, sender=12, **kwargs):
    return udppb.Audio(
        context=context,
        sender_session=sender,
        frame_number=seq,
        opus_data=frame,
        is_terminator=end,
        **kwargs,
    )


def receive(session, *packets):
    for packet in packets:
        session.receive_voice(udp_encode(packet))


def test_receive_voice(synced, codecs, orbital):
    received = listen(synced.callbacks.voice_received)
    receive(synced, audio(0))

    user, chunk = received.call_args.args
    assert user is orbital
    assert chunk.seq_num == 0
    assert chunk.frame == b"\x08opus"
    assert chunk.target == "normal"
    assert chunk.position is None
    assert list(chunk.pcm.pcm) == [0.5] * FRAME_SAMPLES
    assert [d.user for d in codecs.decoders] == [orbital]
    assert orbital.talking


@pytest.mark.parametrize(
    "context, label", [(0, "normal"), (1, "shout"), (2, "whisper"), (3, "listen")]
)
def test_receive_tunneled_voice(synced, orbital, context, label):
    received = listen(synced.callbacks.voice_received)
    synced.receive_control(tunnel(audio(0, context=context)))

    _, chunk = received.call_args.args
    assert chunk.target == label


def test_receive_positional_voice(synced, orbital):
    received = listen(synced.callbacks.voice_received)
    receive(synced, audio(0, positional_data=[1.0, 2.0, 3.0]))
    assert received.call_args.args[1].position == Position(1.0, 2.0, 3.0)


def test_receive_without_codecs(server_sync):
    s = Session("pi")
    s.connect_control(FakeTransport())
    s.receive_control(tcp_encode(*server_sync, mpb.UserState(session=12)))
    received = listen(s.callbacks.voice_received)
    receive(s, audio(0))
    assert received.call_args.args[1].pcm is None


def test_unknown_source_is_fatal(synced, orbital):
    with pytest.raises(UnknownSourceError) as excinfo:
        receive(synced, audio(0, sender=99))
    assert excinfo.value.session == 99
    assert synced.phase == SESSION_PHASE.DISCONNECTED


def test_lost_frames(synced, orbital, codecs):
    received = listen(synced.callbacks.voice_received)
    receive(synced, audio(0), audio(1), audio(4))

    chunks = [call.args[1] for call in received.call_args_list]
    assert [(c.seq_num, c.frame) for c in chunks] == [
        (0, b"\x08opus"),
        (1, b"\x08opus"),
        (2, None),
        (3, None),
        (4, b"\x08opus"),
    ]
    assert codecs.decoders[0].decoded[2:4] == [None, None]


def test_lost_frames_are_capped(synced, orbital):
    received = listen(synced.callbacks.voice_received)
    receive(synced, audio(0), audio(100))

    frames = [call.args[1].frame for call in received.call_args_list]
    assert frames.count(None) == MAX_LOST_FRAMES
    assert len(frames) == MAX_LOST_FRAMES + 2


def test_late_and_duplicate_packets_dropped(synced, orbital):
    received = listen(synced.callbacks.voice_received)
    receive(synced, audio(0), audio(2), audio(1), audio(2))

    assert [call.args[1].seq_num for call in received.call_args_list] == [0, 1, 2]


def test_end_of_transmission(synced, orbital, codecs):
    ended = listen(synced.callbacks.transmission_ended)
    received = listen(synced.callbacks.voice_received)
    receive(synced, audio(0), audio(1), audio(2, frame=b"", end=True))

    ended.assert_called_once_with(orbital)
    assert received.call_count == 2
    assert not orbital.talking

    # the next transmission starts over
    receive(synced, audio(0))
    assert received.call_count == 3
    assert len(codecs.decoders) == 2


def test_silence_starts_a_new_transmission(synced, orbital, codecs):
    synced.user_voice_timeout = -1
    received = listen(synced.callbacks.voice_received)
    receive(synced, audio(5), audio(0))

    assert [call.args[1].seq_num for call in received.call_args_list] == [5, 0]
    assert len(codecs.decoders) == 2


def test_voice_ping_ignored(synced):
    synced.receive_voice(udp_encode(udppb.Ping(timestamp=1234)))
    assert synced.phase == SESSION_PHASE.SYNCED


def test_unknown_voice_type_ignored(synced):
    synced.receive_voice(b"\x07whatever")
    assert synced.phase == SESSION_PHASE.SYNCED


@pytest.mark.parametrize("data", [b"", b"\x00\xff"])
def test_undecodable_voice_is_fatal(synced, data):
    with pytest.raises(ProtocolError):
        synced.receive_voice(data)
    assert synced.phase == SESSION_PHASE.DISCONNECTED


@pytest.mark.parametrize(
    "frame, step",
    [
        (b"\x00abc", 1),  # SILK 10ms
        (b"\x08abc", 2),  # SILK 20ms
        (b"\x09abc", 4),  # two SILK 20ms frames in one packet
    ],
)
def test_sequence_steps_without_codecs(server_sync, frame, step):
    s = Session("pi")
    s.connect_control(FakeTransport())
    s.receive_control(tcp_encode(*server_sync, mpb.UserState(session=12)))
    received = listen(s.callbacks.voice_received)
    receive(s, *(audio(i * step, frame=frame) for i in range(4)))

    chunks = [call.args[1] for call in received.call_args_list]
    assert [c.seq_num for c in chunks] == [0, step, 2 * step, 3 * step]
    assert all(c.frame == frame for c in chunks)

    # a gap is still reported as lost frames
    receive(s, audio(5 * step, frame=frame))
    frames = [call.args[1].frame for call in received.call_args_list[4:]]
    assert frames == [None, frame]
