from __future__ import annotations

import logging
import select
import socket
import threading
import time
import typing as t
from concurrent.futures import Future

from .audio import CodecProvider
from .callbacks import Callbacks
from .channels import Channel, Channels
from .codec import ProtobufCodec
from .constants import (
    CLIENT_TYPE,
    CODEC,
    OS_STRING,
    OS_VERSION_STRING,
    PING_INTERVAL,
    PING_TIMEOUT,
    PROTOCOL_VERSION,
    SESSION_PHASE,
    TCP_MSG_TYPE,
    TRACE,
    USER_VOICE_TIMEOUT,
    VERSION_STRING,
)
from .denials import classify
from .errors import (
    AlreadyBoundError,
    ConnectionRejectedError,
    MissingUsernameError,
    MumbleSessionError,
    SessionStateError,
    UnknownSourceError,
)
from .proto import mumble as mpb
from .transport import Multiplexer
from .users import Users
from .voice import DropStream, VoicePacket, VoiceStream


def self_state_flags(mute: bool | None = None, deaf: bool | None = None) -> dict:
    """Return the UserState fields to send to change the self mute/deaf state.

    Muting changes nothing else, unmuting also undeafens, and deafening also
    mutes. When both are given, the deaf rule is applied last.
    """
    flags = dict()
    if mute is not None:
        flags["self_mute"] = mute
        if not mute:
            flags["self_deaf"] = False
    if deaf is not None:
        flags["self_deaf"] = deaf
        if deaf:
            flags["self_mute"] = True
    return flags


def _version_message(application: str, os_name: str, os_version: str):
    version = mpb.Version()
    if PROTOCOL_VERSION[2] > 255:
        version.version_v1 = (
            (PROTOCOL_VERSION[0] << 16) + (PROTOCOL_VERSION[1] << 8) + 255
        )
    else:
        version.version_v1 = (
            (PROTOCOL_VERSION[0] << 16)
            + (PROTOCOL_VERSION[1] << 8)
            + (PROTOCOL_VERSION[2])
        )
    version.version_v2 = (
        (PROTOCOL_VERSION[0] << 48)
        + (PROTOCOL_VERSION[1] << 32)
        + (PROTOCOL_VERSION[2] << 16)
    )
    version.release = application
    version.os = os_name
    version.os_version = os_version
    return version


class Session(threading.Thread):
    """Single use Mumble client session.

    A session is connected to one server through an already established
    control transport, and optionally a voice transport. Once disconnected it
    cannot be used again: create a new session to reconnect.

    :param user: The username to display when connected to the Mumble server.
    :param password: The Mumble server password.
    :param tokens: List of channel access tokens.
    :param codecs: Codec provider used for voice, see :mod:`mumble_session.audio`.
        Without one, outgoing audio is discarded and received frames are not decoded.
    :param application: Application name to send to the server.
    :param os_name: Operating system name to send to the server.
    :param os_version: Operating system version to send to the server.
    :param client_type: 0 = regular, 1 = bot.
    :param loop_rate: Session loop tick rate in seconds.
    :param user_voice_timeout: Seconds of silence after which a user's next
        voice packet starts a new transmission.
    :param codec: Protocol codec, :class:`ProtobufCodec` by default.
    :param debug: Send debugging messages to `stdout`.

    A brief usage example:

    .. code-block:: python

        import socket, ssl
        from mumble_session import Session
        from mumble_session.opus import OpusCodecs

        context = ssl.create_default_context()
        sock = context.wrap_socket(
            socket.create_connection(("mumble.example.org", 64738)),
            server_hostname="mumble.example.org",
        )

        session = Session("robot", codecs=OpusCodecs())
        connected = session.connect_control(sock)
        session.start()  # run the session loop in its own thread

        # Block until the server has sent its initial state.
        connected.result(timeout=10)
        print(session.welcome_text, session.my_channel())

        with session.create_voice_stream() as stream:
            stream.write(pcm)  # interleaved float32 samples at 48kHz

        session.disconnect()
    """

    def __init__(
        self,
        user: str,
        password: str | None = None,
        tokens: list[str] | None = None,
        codecs: CodecProvider | None = None,
        application: str = VERSION_STRING,
        os_name: str = OS_STRING,
        os_version: str = OS_VERSION_STRING,
        client_type: int = 0,
        loop_rate: float = 0.01,
        user_voice_timeout: float = USER_VOICE_TIMEOUT,
        codec=None,
        debug: bool = False,
    ):
        threading.Thread.__init__(self, name="MumbleSessionThread", daemon=True)

        if not user:
            raise MissingUsernameError("No username given")

        self.client_type = CLIENT_TYPE(
            client_type
        )  # raise ValueError on invalid client type

        logging.addLevelName(TRACE, "trace")
        self.log = logging.getLogger("MumbleSession")
        if debug:
            self.log.setLevel(logging.DEBUG)
        else:
            self.log.setLevel(logging.ERROR)
        if not self.log.handlers:
            ch = logging.StreamHandler()
            ch.setLevel(logging.DEBUG)
            formatter = logging.Formatter(
                "%(asctime)s-%(name)s-%(levelname)s-%(message)s"
            )
            ch.setFormatter(formatter)
            self.log.addHandler(ch)

        self.user = user
        self.password = password
        self.tokens = tokens
        self.codecs = codecs
        self.application = application
        self.os_name = os_name
        self.os_version = os_version
        self.loop_rate = loop_rate
        self.user_voice_timeout = user_voice_timeout

        self.phase = SESSION_PHASE.IDLE
        self.exception: BaseException | None = None  #: Error that ended the session.
        self.max_bandwidth: int | None = None  #: Bandwidth limit set by the server.
        self.welcome_text: str | None = None

        # defaults according to https://wiki.mumble.info/wiki/Murmur.ini
        self.server_allow_html = True
        self.server_max_message_length = 5000
        self.server_max_image_message_length = 131072

        self.callbacks = Callbacks()
        self.users = Users(self)
        self.channels = Channels(self)
        self.multiplexer = Multiplexer(codec or ProtobufCodec(self.log), self.log)

        self.last_ping = 0.0  # time of the last ping sent
        self.ping_stats = {
            "last_rcv": 0,
            "time_send": 0,
            "nb": 0,
            "avg": 40.0,
            "var": 0.0,
        }

    def __enter__(self) -> Session:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> t.Literal[False]:
        self.disconnect()
        if self.is_alive() and threading.current_thread() is not self:
            self.join()
        return False  # do not suppress the raised exception

    # ------------------------------------------------------------------
    # Connection state machine
    # ------------------------------------------------------------------

    def connect_control(self, transport) -> Future:
        """Bind the control transport and start the handshake by sending the
        ``Version`` and ``Authenticate`` messages.

        :param transport: A connected, ready to use stream transport (TLS socket).
        :return: A future resolved with this session once the server has sent
            its initial state, or failed with :class:`ConnectionRejectedError`
            or the error that ended the session, whichever happens first.
        :raise AlreadyBoundError: A control transport is already bound. This ends
            the session.
        """
        if self.phase == SESSION_PHASE.DISCONNECTED:
            raise SessionStateError("A disconnected session cannot be reused")
        try:
            self.multiplexer.bind_control(transport)
        except AlreadyBoundError as e:
            self._fail(e)
            raise

        future: Future = Future()

        def settle(outcome: t.Callable[[], None]) -> None:
            self.callbacks.connected.remove_handler(on_connected)
            self.callbacks.rejected.remove_handler(on_rejected)
            self.callbacks.disconnected.remove_handler(on_disconnected)
            if not future.done():
                outcome()

        def on_connected():
            settle(lambda: future.set_result(self))

        def on_rejected(message):
            settle(lambda: future.set_exception(ConnectionRejectedError(message)))

        def on_disconnected():
            error = self.exception or SessionStateError(
                "Disconnected before the session was synced"
            )
            settle(lambda: future.set_exception(error))

        self.callbacks.connected.add_handler(on_connected)
        self.callbacks.rejected.add_handler(on_rejected)
        self.callbacks.disconnected.add_handler(on_disconnected)

        self.phase = SESSION_PHASE.HANDSHAKING
        try:
            self.multiplexer.send_control(
                TCP_MSG_TYPE.Version,
                _version_message(self.application, self.os_name, self.os_version),
            )

            authenticate = mpb.Authenticate()
            authenticate.username = self.user
            if self.password:
                authenticate.password = self.password
            if self.tokens:
                authenticate.tokens.extend(self.tokens)
            if self.codecs:
                authenticate.celt_versions.extend(self.codecs.celt)
                authenticate.opus = self.codecs.opus
            authenticate.client_type = self.client_type
            self.multiplexer.send_control(TCP_MSG_TYPE.Authenticate, authenticate)
        except socket.error as e:
            self.log.debug("unable to send the handshake: %s", e)
            self._fail(e)

        return future

    def connect_voice(self, transport) -> None:
        """Bind the voice transport. Optional: without one, voice is tunneled
        through the control transport.

        The transport may lose or reorder packets but must deliver them
        unmodified; encryption is its responsibility.

        :raise AlreadyBoundError: A voice transport is already bound. This ends
            the session.
        """
        if self.phase == SESSION_PHASE.DISCONNECTED:
            raise SessionStateError("A disconnected session cannot be reused")
        try:
            self.multiplexer.bind_voice(transport)
        except AlreadyBoundError as e:
            self._fail(e)
            raise

    def run(self):
        """Session loop. Handles:

        - reading messages from both transports for maximum :attr:`loop_rate`
        - sending pings every ``PING_INTERVAL`` seconds once synced
        - checking for disconnection
        """
        if self.multiplexer.control is None:
            raise SessionStateError("connect_control() must be called before start()")

        self.log.debug("entering main loop")
        while self.phase != SESSION_PHASE.DISCONNECTED:
            transports = self.multiplexer.transports()
            try:
                if (
                    self.phase == SESSION_PHASE.SYNCED
                    and self.last_ping + PING_INTERVAL <= time.time()
                ):
                    self.ping()

                (rlist, _, xlist) = select.select(
                    transports, [], transports, self.loop_rate
                )  # wait for a socket activity
                if self.multiplexer.control in rlist:
                    self.receive_control(self.multiplexer.recv_control())
                if self.multiplexer.voice is not None and self.multiplexer.voice in rlist:
                    self.receive_voice(self.multiplexer.recv_voice())
                if xlist:
                    raise ConnectionResetError("Transport closed")
            except MumbleSessionError as e:
                self.log.error("session terminated: %s", e)
                self._fail(e)
                break
            except (OSError, ValueError) as e:
                if self.phase != SESSION_PHASE.DISCONNECTED:
                    self.log.error("transport error: %s", e)
                    self._fail(e)
                break
            except Exception as e:  # raised by a callback handler
                self.log.exception("session terminated: %s", e)
                self._fail(e)
                break

        self.log.debug("shutting down")

    def disconnect(self) -> None:
        """Close both transports and end the session. Does nothing when
        already disconnected."""
        if self.phase == SESSION_PHASE.DISCONNECTED:
            return
        self.phase = SESSION_PHASE.DISCONNECTED
        self.multiplexer.close()
        self.callbacks.disconnected()

    stop = disconnect

    def _fail(self, error: BaseException) -> None:
        if self.phase == SESSION_PHASE.DISCONNECTED:
            return
        self.exception = error
        self.disconnect()

    # ------------------------------------------------------------------
    # Incoming data
    # ------------------------------------------------------------------

    def receive_control(self, data: bytes) -> None:
        """Decode and dispatch bytes read from the control transport.

        Errors are fatal: the session is disconnected and the error re-raised.
        This includes errors raised by callback handlers.
        """
        try:
            for msgtype, message in self.multiplexer.codec.decode_control(data):
                if self.phase == SESSION_PHASE.DISCONNECTED:
                    break
                self.dispatch_control_message(msgtype, message)
        except Exception as e:
            self._fail(e)
            raise

    def receive_voice(self, data: bytes) -> None:
        """Decode and route a voice packet, read from the voice transport or
        tunneled through the control transport.

        Errors are fatal: the session is disconnected and the error re-raised.
        This includes errors raised by callback handlers.
        """
        try:
            packet = self.multiplexer.codec.decode_voice(data)
            if packet is not None:
                self.receive_voice_packet(packet)
        except Exception as e:
            self._fail(e)
            raise

    def receive_voice_packet(self, packet: VoicePacket) -> None:
        "Forward a decoded voice packet to the user who sent it."
        user = self.users.get(packet.source)
        if user is None:
            raise UnknownSourceError(packet.source)
        self.log.log(
            TRACE,
            "audio packet received from %i, sequence %i, target:%s, frames:%i, terminator:%s",
            packet.source,
            packet.seq_num,
            packet.target,
            len(packet.frames),
            packet.end,
        )
        user.on_voice(
            packet.seq_num,
            packet.codec,
            packet.target,
            packet.frames,
            packet.position,
            packet.end,
        )

    def dispatch_control_message(self, msgtype: TCP_MSG_TYPE | int, message) -> None:
        """Run the handler for a decoded control message.

        :param msgtype: The message type, a plain ``int`` for unknown types.
        :param message: The protobuf message, or raw bytes for ``UDPTunnel``
            and types without a schema.
        """
        match msgtype:
            case TCP_MSG_TYPE.UDPTunnel:  # audio encapsulated in control message
                self.receive_voice(message)

            case TCP_MSG_TYPE.Ping:
                self.receive_ping()

            case TCP_MSG_TYPE.Reject:
                self.log.info("connection rejected: %s", message.reason)
                self.callbacks.rejected(message)
                self.disconnect()

            case TCP_MSG_TYPE.ServerSync:  # this message finishes the connection process
                self.users.set_myself(message.session)
                if message.HasField("max_bandwidth"):
                    self.max_bandwidth = message.max_bandwidth
                self.welcome_text = message.welcome_text
                if self.phase == SESSION_PHASE.HANDSHAKING:
                    self.phase = SESSION_PHASE.SYNCED
                    self.last_ping = time.time()
                    self.callbacks.connected()

            case TCP_MSG_TYPE.ChannelRemove:
                self.channels.remove(message.channel_id)

            case TCP_MSG_TYPE.ChannelState:
                self.channels.update(message)

            case TCP_MSG_TYPE.UserRemove:
                self.users.remove(message)

            case TCP_MSG_TYPE.UserState:
                self.users.update(message)

            case TCP_MSG_TYPE.TextMessage:
                self.callbacks.text_message_received(
                    self.users.get(message.actor)
                    if message.HasField("actor")
                    else None,
                    message.message,
                    [self.users[i] for i in message.session if i in self.users],
                    [self.channels[i] for i in message.channel_id if i in self.channels],
                    [self.channels[i] for i in message.tree_id if i in self.channels],
                )

            case TCP_MSG_TYPE.PermissionDenied:
                denial = classify(message, self.users, self.channels)
                self.callbacks.permission_denied(
                    denial.kind, denial.user, denial.channel, denial.detail
                )

            case TCP_MSG_TYPE.ServerConfig:
                if message.HasField("allow_html"):
                    self.server_allow_html = message.allow_html
                if message.HasField("message_length"):
                    self.server_max_message_length = message.message_length
                if message.HasField("image_message_length"):
                    self.server_max_image_message_length = message.image_message_length

            case TCP_MSG_TYPE():
                self.log.debug("unhandled message: %s", msgtype.name)

            case _:
                self.log.warning(
                    "received TCP message of unknown type %s, ignoring", msgtype
                )

    # ------------------------------------------------------------------
    # Keepalive
    # ------------------------------------------------------------------

    def ping(self) -> None:
        """Send a ``Ping`` message to the server, over both transports if a
        voice transport is bound. Disconnects if the server has not answered
        for ``PING_TIMEOUT`` seconds."""
        now = time.time()
        ping = mpb.Ping()
        ping.timestamp = int(now * 1000)
        ping.tcp_ping_avg = self.ping_stats["avg"]
        ping.tcp_ping_var = self.ping_stats["var"]
        ping.tcp_packets = self.ping_stats["nb"]

        self.multiplexer.send_control(TCP_MSG_TYPE.Ping, ping)
        self.multiplexer.send_voice_ping(ping.timestamp)
        self.last_ping = now
        self.ping_stats["time_send"] = int(now * 1000)

        if self.ping_stats["last_rcv"] != 0 and int(now * 1000) > self.ping_stats[
            "last_rcv"
        ] + (PING_TIMEOUT * 1000):
            self.log.info("Ping too long ! Disconnected ?")
            self._fail(ConnectionResetError("No ping response from the server"))

    def receive_ping(self) -> None:
        """Update ping statistics."""
        self.ping_stats["last_rcv"] = int(time.time() * 1000)
        ping = int(time.time() * 1000) - self.ping_stats["time_send"]
        old_avg = self.ping_stats["avg"]
        nb = self.ping_stats["nb"]
        new_avg = ((self.ping_stats["avg"] * nb) + ping) / (nb + 1)

        if nb:
            self.ping_stats["var"] = (
                self.ping_stats["var"]
                + pow(old_avg - new_avg, 2)
                + (1 / nb) * pow(ping - new_avg, 2)
            )

        self.ping_stats["avg"] = new_avg
        self.ping_stats["nb"] += 1

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _send_self_state(self, **fields) -> None:
        if self.phase == SESSION_PHASE.DISCONNECTED:
            raise SessionStateError("Session is disconnected")
        if self.users.my_session is None:
            raise SessionStateError("Session is not synced with the server yet")
        userstate = mpb.UserState(session=self.users.my_session, **fields)
        self.multiplexer.send_control(TCP_MSG_TYPE.UserState, userstate)

    def set_self_mute(self, mute: bool) -> None:
        "Request to (un)mute yourself. Unmuting also undeafens."
        self._send_self_state(**self_state_flags(mute=mute))

    def set_self_deaf(self, deaf: bool) -> None:
        "Request to (un)deafen yourself. Deafening also mutes."
        self._send_self_state(**self_state_flags(deaf=deaf))

    def set_self_texture(self, texture: bytes) -> None:
        self._send_self_state(texture=texture)

    def set_self_comment(self, comment: str) -> None:
        self._send_self_state(comment=comment)

    def set_plugin_context(self, context: bytes) -> None:
        self._send_self_state(plugin_context=context)

    def set_plugin_identity(self, identity: str) -> None:
        self._send_self_state(plugin_identity=identity)

    def set_recording(self, recording: bool) -> None:
        self._send_self_state(recording=recording)

    def create_voice_stream(
        self, target: int = 0, number_of_channels: int = 1
    ) -> VoiceStream | DropStream:
        """Start an outgoing transmission.

        :param target: 0 for normal talking, 1-31 for a voice target.
        :param number_of_channels: Channels of the interleaved PCM that will be written.
        :return: A sink accepting audio chunks, closing it ends the
            transmission. Without a codec provider the sink drops everything.
        """
        if not 0 <= target <= 31:
            raise ValueError("Voice target must be between 0 and 31")
        if self.codecs is None:
            return DropStream()
        return VoiceStream(
            self.multiplexer,
            self.codecs.create_encoder(CODEC.OPUS),
            target,
            number_of_channels,
            log=self.log,
        )

    # ------------------------------------------------------------------
    # Directory shortcuts
    # ------------------------------------------------------------------

    def get_channel(self, name: str) -> Channel | None:
        """Find a channel by name, None if no such channel exists."""
        return self.channels.find_by_name(name)

    @property
    def root(self) -> Channel | None:
        return self.channels.get(0)

    def my_channel(self) -> Channel:
        """Return the currently occupied :class:`Channel`."""
        if self.users.myself is None:
            raise SessionStateError("Session is not synced with the server yet")
        return self.channels[self.users.myself.channel_id]
