"""
Wire format of the Mumble protocol.

Control messages are framed with a 6 byte header (``!HL``: message type,
payload length) followed by the protobuf encoded message. ``UDPTunnel``
payloads are raw voice packets. Voice packets are a one byte
:class:`UDP_MSG_TYPE` header followed by a ``MumbleUDP`` protobuf message.

:class:`ProtobufCodec` is the default codec of a session. Another codec can be
passed to :class:`~mumble_session.Session` as long as it provides the same
methods.
"""

from __future__ import annotations

import logging
import struct
import typing as t

import google.protobuf.message as protobuf_message

from .audio import Position
from .constants import CODEC, TCP_MSG_TYPE, TRACE, UDP_MSG_TYPE, VOICE_CONTEXT
from .errors import ProtocolError
from .proto import mumble as mpb
from .proto import udp as udppb
from .voice import VoicePacket

HEADER = struct.Struct("!HL")


class ProtobufCodec:
    """Encode and decode control messages and voice packets.

    Decoding control data is incremental: bytes are buffered until a whole
    message is available, so the transport may be read in arbitrary pieces.
    """

    def __init__(self, log: logging.Logger | None = None):
        self.log = log or logging.getLogger("MumbleSession")
        self.receive_buffer = bytes()  # control connection input buffer

    def encode_control(self, type: int, message) -> bytes:
        """Frame a control message.

        :param type: The :class:`TCP_MSG_TYPE` of the message.
        :param message: A protobuf message, or the raw voice packet for ``UDPTunnel``.
        """
        if isinstance(message, (bytes, bytearray)):
            payload = bytes(message)
        else:
            payload = message.SerializeToString()
        return HEADER.pack(type, len(payload)) + payload

    def decode_control(
        self, data: bytes
    ) -> t.Iterator[tuple[TCP_MSG_TYPE | int, t.Any]]:
        """Buffer `data` and yield every complete control message as a
        ``(type, message)`` pair.

        ``message`` is the parsed protobuf message for types with a known
        schema, the raw payload bytes for ``UDPTunnel`` and for types this
        library has no schema for, and ``type`` stays a plain ``int`` for
        message types unknown to the protocol.
        """
        self.receive_buffer += data

        while len(self.receive_buffer) >= HEADER.size:  # header is present
            (type, size) = HEADER.unpack_from(self.receive_buffer)

            if len(self.receive_buffer) < size + HEADER.size:
                break  # wait for the rest of the message

            payload = self.receive_buffer[HEADER.size : HEADER.size + size]
            self.receive_buffer = self.receive_buffer[HEADER.size + size :]

            yield self.parse_control(type, payload)

    def parse_control(
        self, type: int, payload: bytes
    ) -> tuple[TCP_MSG_TYPE | int, t.Any]:
        try:
            msgtype = TCP_MSG_TYPE(type)
        except ValueError:
            return type, payload

        MsgClass = getattr(mpb, msgtype.name, None)
        if msgtype == TCP_MSG_TYPE.UDPTunnel or MsgClass is None:
            return msgtype, payload

        message = MsgClass()
        try:
            message.ParseFromString(payload)
        except protobuf_message.DecodeError as e:
            raise ProtocolError(
                "unable to decode message as %s: %s" % (msgtype.name, e)
            ) from e

        if msgtype != TCP_MSG_TYPE.Ping:
            self.log.debug("received message: %s : %s", msgtype.name, message)
        else:
            self.log.log(TRACE, "received message: %s : %s", msgtype.name, message)
        return msgtype, message

    def encode_voice(self, packet: VoicePacket) -> bytes:
        "Encode an outgoing voice packet, including its header byte."
        audio = udppb.Audio(
            target=packet.target,
            frame_number=packet.seq_num,
            opus_data=b"".join(packet.frames),
            is_terminator=packet.end,
        )
        if packet.position is not None:
            audio.positional_data.extend(
                [packet.position.x, packet.position.y, packet.position.z]
            )
        return struct.pack("!B", UDP_MSG_TYPE.Audio) + audio.SerializeToString()

    def encode_voice_ping(self, timestamp: int) -> bytes:
        ping = udppb.Ping(timestamp=timestamp)
        return struct.pack("!B", UDP_MSG_TYPE.Ping) + ping.SerializeToString()

    def decode_voice(self, data: bytes) -> VoicePacket | None:
        """Decode a voice packet received from the server.

        Returns None for pings and for packet types this library does not know.
        """
        if len(data) < 1:
            raise ProtocolError("empty voice packet")

        header, payload = data[0], data[1:]
        try:
            msgtype = UDP_MSG_TYPE(header)
        except ValueError:
            self.log.warning("received UDP message of unknown type %i, ignoring", header)
            return None

        MsgClass = getattr(udppb, msgtype.name)
        message = MsgClass()
        try:
            message.ParseFromString(payload)
        except protobuf_message.DecodeError as e:
            raise ProtocolError(
                "unable to decode message as UDP %s: %s" % (msgtype.name, e)
            ) from e
        self.log.log(TRACE, "message: UDP %s : %s", msgtype.name, message)

        if msgtype == UDP_MSG_TYPE.Ping:
            return None

        try:
            target = VOICE_CONTEXT(message.context).label
        except ValueError:
            target = str(message.context)
        position = None
        if len(message.positional_data) >= 3:
            position = Position(*message.positional_data[:3])

        return VoicePacket(
            seq_num=message.frame_number,
            codec=CODEC.OPUS,
            target=target,
            frames=[message.opus_data] if message.opus_data else [],
            position=position,
            end=message.is_terminator,
            source=message.sender_session,
        )
