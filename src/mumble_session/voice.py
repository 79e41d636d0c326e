"""
Outgoing voice transmissions.

A :class:`VoiceStream` turns the audio written by the application into voice
packets for one transmission: the frames produced by the codec provider are
numbered from 0, and closing the stream sends a final packet with no frames
and ``end=True`` so that receivers see where the transmission stops.
"""

from __future__ import annotations

import logging
import threading
import typing as t
from dataclasses import dataclass, field

from .audio import Position, VoiceData, normalize_chunk
from .constants import CODEC, TRACE

if t.TYPE_CHECKING:
    from .transport import Multiplexer


@dataclass(slots=True)
class VoicePacket:
    """A voice packet, either sent by this client or received from the server.

    Outgoing packets carry a numeric voice target (0 for normal talking, 1-31
    for a voice target). Incoming packets carry a :class:`VOICE_CONTEXT` label
    as target and the sender's session id as ``source``.
    """

    seq_num: int
    codec: CODEC
    target: int | str
    frames: list[bytes] = field(default_factory=list)
    position: Position | None = None
    end: bool = False
    source: int | None = None


class DropStream:
    """Voice sink used when no codec provider is configured. Everything
    written to it is discarded."""

    closed: bool = False

    def write(self, chunk) -> None:
        pass

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> DropStream:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> t.Literal[False]:
        self.close()
        return False


class VoiceStream:
    """Encode, packetise and send one outgoing transmission.

    Encoding and sending happen in :meth:`write`, on the caller's thread, so a
    transport that is not ready to accept more data blocks the producer
    instead of letting audio pile up.

    :param multiplexer: The session's transport multiplexer.
    :param encoder: Encoder returned by the codec provider's ``create_encoder``.
    :param target: Voice target, 0 for normal talking or 1-31.
    :param number_of_channels: Channels of the interleaved PCM written.
    :param codec: Codec of the produced frames.

    .. code-block:: python

        with session.create_voice_stream() as stream:
            for chunk in pcm_chunks:
                stream.write(chunk)
        # leaving the block ends the transmission
    """

    def __init__(
        self,
        multiplexer: Multiplexer,
        encoder,
        target: int = 0,
        number_of_channels: int = 1,
        codec: CODEC = CODEC.OPUS,
        log: logging.Logger | None = None,
    ):
        self._multiplexer = multiplexer
        self._encoder = encoder
        self._lock = threading.Lock()
        self.target = target
        self.number_of_channels = number_of_channels
        self.codec = codec
        self.seq_num = 0  #: Sequence number of the next packet.
        self.closed = False
        self.log = log or logging.getLogger("MumbleSession")

    def write(self, chunk) -> None:
        """Encode and send an audio chunk.

        :param chunk: Interleaved float PCM as bytes, ``array('f')`` or a float
            sequence, or positional audio with ``pcm``, ``x``, ``y`` and ``z``.
        """
        pcm_data = normalize_chunk(chunk, self.target, self.number_of_channels)
        with self._lock:
            if self.closed:
                raise ValueError("write to a closed voice stream")
            for voice_data in self._encoder.encode(pcm_data):
                self._send_frame(voice_data)

    def close(self) -> None:
        "Send the remaining audio and end the transmission. Does nothing if already closed."
        with self._lock:
            if self.closed:
                return
            self.closed = True
            for voice_data in self._encoder.flush():
                self._send_frame(voice_data)
            self.log.debug(
                "ending transmission to target %i after %i packets",
                self.target,
                self.seq_num,
            )
            self._multiplexer.send_voice(
                VoicePacket(self.seq_num, self.codec, self.target, [], end=True)
            )

    def _send_frame(self, voice_data: VoiceData) -> None:
        packet = VoicePacket(
            self.seq_num,
            self.codec,
            self.target,
            [voice_data.frame],
            voice_data.position,
        )
        self.seq_num += 1
        self.log.log(
            TRACE,
            "audio packet to send: sequence:%i, target:%i, length:%i",
            packet.seq_num,
            packet.target,
            len(voice_data.frame),
        )
        self._multiplexer.send_voice(packet)

    def __enter__(self) -> VoiceStream:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> t.Literal[False]:
        self.close()
        return False
