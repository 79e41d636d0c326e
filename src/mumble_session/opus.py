"""
Opus codec provider, on top of :mod:`opuslib`.

This module needs the libopus shared library at import time, so it is not
imported by :mod:`mumble_session` itself:

.. code-block:: python

    from mumble_session import Session
    from mumble_session.opus import OpusCodecs

    session = Session("robot", codecs=OpusCodecs(profile=OPUS_PROFILE.AUDIO))
"""

from __future__ import annotations

import array
import sys

import opuslib

from .audio import PCMData, VoiceData, opus_frame_duration
from .constants import (
    AUDIO_PER_PACKET,
    CODEC,
    MAX_FRAME_SIZE,
    OPUS_PROFILE,
    SAMPLE_RATE,
)
from .errors import CodecNotSupportedError


def _float_array(data: bytes) -> array.array:
    pcm = array.array("f")
    pcm.frombytes(data)
    if sys.byteorder == "big":
        pcm.byteswap()
    return pcm


class OpusEncoderStream:
    """Encode the PCM of one outgoing transmission into Opus frames of
    ``audio_per_packet`` seconds.

    Samples are kept until a whole frame is available; :meth:`flush` pads the
    remaining samples with silence.
    """

    def __init__(
        self,
        audio_per_packet: float = AUDIO_PER_PACKET,
        profile: OPUS_PROFILE = OPUS_PROFILE.VOIP,
        bitrate: int | None = None,
    ):
        if audio_per_packet not in (0.0025, 0.005, 0.01, 0.02, 0.04, 0.06):
            raise ValueError(
                "Invalid frame duration. Must be 2.5, 5, 10, 20, 40 or 60 ms."
            )
        self.frame_size = int(audio_per_packet * SAMPLE_RATE)  # samples per channel
        self.profile = profile
        self.bitrate = bitrate
        self.encoder: opuslib.Encoder | None = None  # created with the first chunk
        self.channels = 1
        self.buffer = array.array("f")
        self.target: int | str = 0
        self.position = None

    def _create_encoder(self, channels: int) -> None:
        self.channels = channels
        self.encoder = opuslib.Encoder(SAMPLE_RATE, channels, self.profile)
        if self.bitrate:
            self.encoder.bitrate = self.bitrate

    def encode(self, pcm_data: PCMData) -> list[VoiceData]:
        if self.encoder is None:
            self._create_encoder(pcm_data.number_of_channels)
        self.target = pcm_data.target
        self.position = pcm_data.position
        self.buffer.extend(pcm_data.pcm)

        samples = self.frame_size * self.channels
        frames = []
        while len(self.buffer) >= samples:
            frames.append(self._encode_frame(self.buffer[:samples]))
            del self.buffer[:samples]
        return frames

    def flush(self) -> list[VoiceData]:
        if self.encoder is None or len(self.buffer) == 0:
            return []
        samples = self.frame_size * self.channels
        # pad the last frame to match the sample length
        self.buffer.extend([0.0] * (samples - len(self.buffer)))
        frame = self._encode_frame(self.buffer)
        self.buffer = array.array("f")
        return [frame]

    def _encode_frame(self, pcm: array.array) -> VoiceData:
        if sys.byteorder == "big":
            pcm = array.array("f", pcm)
            pcm.byteswap()
        encoded = self.encoder.encode_float(pcm.tobytes(), self.frame_size)
        return VoiceData(self.target, CODEC.OPUS, encoded, self.position)


class OpusDecoderStream:
    """Decode the Opus frames of one incoming transmission to mono PCM.

    Lost frames (``frame=None``) are concealed by the decoder.
    """

    def __init__(self, user=None, channels: int = 1):
        self.user = user
        self.channels = channels
        self.decoder = opuslib.Decoder(SAMPLE_RATE, channels)
        self.last_frame_size = int(AUDIO_PER_PACKET * SAMPLE_RATE)

    def decode(self, voice_data: VoiceData) -> PCMData:
        if voice_data.codec != CODEC.OPUS:
            raise CodecNotSupportedError(voice_data.codec)
        if voice_data.frame is None:
            # an empty packet makes libopus conceal the loss
            data = self.decoder.decode_float(b"", self.last_frame_size)
        else:
            data = self.decoder.decode_float(voice_data.frame, MAX_FRAME_SIZE)
            self.last_frame_size = len(data) // (4 * self.channels)
        return PCMData(
            voice_data.target, _float_array(data), self.channels, voice_data.position
        )


class OpusCodecs:
    """Codec provider supporting Opus only.

    :param audio_per_packet: Duration of an outgoing frame in seconds.
    :param profile: The Opus encoder's intended application.
    :param bitrate: Encoder bitrate in bits/second, libopus' choice by default.
    """

    opus = True
    celt: list[int] = []

    def __init__(
        self,
        audio_per_packet: float = AUDIO_PER_PACKET,
        profile: OPUS_PROFILE = OPUS_PROFILE.VOIP,
        bitrate: int | None = None,
    ):
        self.audio_per_packet = audio_per_packet
        self.profile = profile
        self.bitrate = bitrate

    def get_duration(self, codec: CODEC, frame: bytes) -> float:
        "Duration of an encoded frame in ms."
        if codec != CODEC.OPUS:
            raise CodecNotSupportedError(codec)
        return opus_frame_duration(frame)

    def create_encoder(self, codec: CODEC) -> OpusEncoderStream:
        if codec != CODEC.OPUS:
            raise CodecNotSupportedError(codec)
        return OpusEncoderStream(self.audio_per_packet, self.profile, self.bitrate)

    def create_decoder(self, user) -> OpusDecoderStream:
        return OpusDecoderStream(user)
