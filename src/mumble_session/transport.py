"""
Bind a session to its control and voice transports.

A transport is any connected, ready to use channel exposing the socket
methods ``send``, ``recv``, ``fileno`` and ``close``: typically a TLS socket
for the control channel and a datagram socket for the voice channel. Setting
them up (name resolution, TLS, UDP encryption) is up to the caller.
"""

from __future__ import annotations

import logging
import socket
import threading

from .constants import MAX_UDP_PACKET_SIZE, TCP_MSG_TYPE, TCP_READ_BUFFER_SIZE, TRACE
from .errors import AlreadyBoundError, SessionStateError
from .voice import VoicePacket


class Multiplexer:
    """Own the control transport and the optional voice transport of a session.

    Voice packets are sent over the voice transport when one is bound, and
    tunneled through the control transport in ``UDPTunnel`` messages
    otherwise. Writes from different threads are serialised.

    :param codec: The protocol codec, see :class:`~mumble_session.codec.ProtobufCodec`.
    :param log: The session logger.
    """

    def __init__(self, codec, log: logging.Logger):
        self.codec = codec
        self.log = log.getChild("Multiplexer")
        self.control = None  #: The control transport, once bound.
        self.voice = None  #: The voice transport, if bound.
        self.closed = False
        self._write_lock = threading.Lock()

    @property
    def tunneled(self) -> bool:
        "Whether voice goes through the control transport."
        return self.voice is None

    def bind_control(self, transport) -> None:
        if self.control is not None:
            raise AlreadyBoundError("Control transport already bound")
        self.control = transport

    def bind_voice(self, transport) -> None:
        if self.voice is not None:
            raise AlreadyBoundError("Voice transport already bound")
        self.voice = transport
        self.log.debug("voice transport bound, voice is no longer tunneled")

    def send_control(self, type: TCP_MSG_TYPE, message) -> None:
        """Send a control message to the server.

        :param type: The :class:`TCP_MSG_TYPE` of the message.
        :param message: The protobuf message.
        """
        if type not in (TCP_MSG_TYPE.Ping, TCP_MSG_TYPE.UDPTunnel):
            self.log.debug("sending message: %s : %s", type.name, message)
        else:
            self.log.log(TRACE, "sending message: %s", type.name)
        self._write_control(self.codec.encode_control(type, message))

    def send_voice(self, packet: VoicePacket) -> None:
        "Send a voice packet over the voice transport, or tunnel it."
        data = self.codec.encode_voice(packet)
        if self.voice is None:
            self.send_control(TCP_MSG_TYPE.UDPTunnel, data)
            return
        with self._write_lock:
            self._check_open()
            self.voice.send(data)

    def send_voice_ping(self, timestamp: int) -> None:
        "Ping over the voice transport. Does nothing while voice is tunneled."
        if self.voice is None:
            return
        with self._write_lock:
            self._check_open()
            self.voice.send(self.codec.encode_voice_ping(timestamp))

    def recv_control(self) -> bytes:
        "Read what the control transport has available."
        buffer = self.control.recv(TCP_READ_BUFFER_SIZE)
        if not buffer:
            raise ConnectionResetError("Control transport closed by the server")
        return buffer

    def recv_voice(self) -> bytes:
        "Read one datagram from the voice transport."
        return self.voice.recv(MAX_UDP_PACKET_SIZE)

    def transports(self) -> list:
        return [transport for transport in (self.control, self.voice) if transport]

    def close(self) -> None:
        "Close both transports. Does nothing if already closed."
        with self._write_lock:
            if self.closed:
                return
            self.closed = True
        for transport in self.transports():
            try:
                transport.close()
            except socket.error as e:
                self.log.debug("error while closing transport: %s", e)

    def _check_open(self) -> None:
        if self.closed:
            raise SessionStateError("Transports are closed")
        if self.control is None:
            raise SessionStateError("No control transport bound")

    def _write_control(self, packet: bytes) -> None:
        with self._write_lock:
            self._check_open()
            while len(packet) > 0:
                sent = self.control.send(packet)
                if sent < 0:
                    raise socket.error("Server socket error")
                packet = packet[sent:]
