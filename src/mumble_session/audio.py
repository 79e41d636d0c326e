"""
Audio data exchanged between the session and its codec provider.

A codec provider is any object with the following members (see
:class:`mumble_session.opus.OpusCodecs` for the bundled implementation):

- ``opus``: whether the Opus codec is supported.
- ``celt``: list of supported CELT bitstream versions, sent to the server.
- ``get_duration(codec, frame)``: duration of an encoded frame in ms.
- ``create_encoder(codec)``: a new encoder for one outgoing transmission,
  with ``encode(pcm_data) -> list[VoiceData]`` and ``flush() -> list[VoiceData]``.
- ``create_decoder(user)``: a new decoder for one incoming transmission of
  ``user``, with ``decode(voice_data) -> PCMData``. A ``None`` frame is a lost
  frame.

The factories are called once per transmission and must be cheap.
"""

from __future__ import annotations

import array
import sys
import typing as t
from collections.abc import Mapping
from dataclasses import dataclass

from .constants import CODEC, SAMPLE_RATE
from .errors import ProtocolError


@dataclass(slots=True)
class Position:
    "Position of an audio source, in the coordinates of the positional audio plugin."

    x: float
    y: float
    z: float


@dataclass(slots=True)
class PCMData:
    "Interleaved 32-bit float PCM in [-1, 1] at :data:`SAMPLE_RATE`."

    target: int | str
    pcm: array.array
    number_of_channels: int = 1
    position: Position | None = None

    @property
    def duration(self) -> float:
        "Duration in seconds."
        return len(self.pcm) / self.number_of_channels / SAMPLE_RATE


@dataclass(slots=True)
class VoiceData:
    "One encoded audio frame. ``frame`` is None for a lost frame."

    target: int | str
    codec: CODEC
    frame: bytes | None
    position: Position | None = None


@dataclass(slots=True)
class VoiceChunk:
    "A received frame, as passed to the ``voice_received`` callback."

    seq_num: int
    codec: CODEC
    target: int | str
    frame: bytes | None  #: Encoded frame, None when it was lost on the way.
    pcm: PCMData | None  #: Decoded audio, None without a codec provider.
    position: Position | None = None


class CodecProvider(t.Protocol):
    opus: bool
    celt: list[int]

    def get_duration(self, codec: CODEC, frame: bytes) -> float: ...

    def create_encoder(self, codec: CODEC) -> t.Any: ...

    def create_decoder(self, user) -> t.Any: ...


def to_float_array(samples) -> array.array:
    """Convert raw little endian float32 bytes, a typed array or any sequence
    of floats to an ``array.array('f')``."""
    if isinstance(samples, array.array) and samples.typecode == "f":
        return samples
    if isinstance(samples, (bytes, bytearray, memoryview)):
        pcm = array.array("f")
        pcm.frombytes(bytes(samples))  # raises ValueError if not 4-byte aligned
        if sys.byteorder == "big":
            pcm.byteswap()
        return pcm
    return array.array("f", samples)


def normalize_chunk(chunk, target: int, number_of_channels: int) -> PCMData:
    """Turn an audio chunk written by the application into :class:`PCMData`.

    ``chunk`` is either raw samples (see :func:`to_float_array`) or positional
    audio: a mapping or object with ``pcm``, ``x``, ``y`` and ``z``.
    """
    if isinstance(chunk, Mapping):
        position = Position(chunk["x"], chunk["y"], chunk["z"])
        samples = chunk["pcm"]
    elif hasattr(chunk, "pcm"):
        position = Position(chunk.x, chunk.y, chunk.z)
        samples = chunk.pcm
    else:
        position = None
        samples = chunk
    return PCMData(target, to_float_array(samples), number_of_channels, position)


# frame durations in ms per TOC configuration range, RFC 6716 section 3.1
_SILK_DURATIONS = (10, 20, 40, 60)
_HYBRID_DURATIONS = (10, 20)
_CELT_DURATIONS = (2.5, 5, 10, 20)


def opus_frame_duration(frame: bytes) -> float:
    """Return the duration in ms of an Opus packet, read from its TOC byte
    without decoding it."""
    if not frame:
        raise ProtocolError("empty opus packet")
    toc = frame[0]
    config = toc >> 3
    if config < 12:
        per_frame = _SILK_DURATIONS[config % 4]
    elif config < 16:
        per_frame = _HYBRID_DURATIONS[config % 2]
    else:
        per_frame = _CELT_DURATIONS[config % 4]

    match toc & 0x03:
        case 0:
            count = 1
        case 1 | 2:
            count = 2
        case _:
            if len(frame) < 2:
                raise ProtocolError("opus packet is missing its frame count")
            count = frame[1] & 0x3F
    return per_frame * count
