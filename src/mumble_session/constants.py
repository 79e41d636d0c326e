# -*- coding: utf-8 -*-

import platform
from enum import IntEnum, StrEnum

VERSION = "0.3.0"

# ============================================================================
# Tunable parameters
# ============================================================================
AUDIO_PER_PACKET = float(20) / 1000  # size of one audio packet in sec
USER_VOICE_TIMEOUT = 5  # silence after which a new transmission starts, in sec
MAX_LOST_FRAMES = 5  # lost frames reported for a single gap in a transmission

# ============================================================================
# Constants
# ============================================================================
PROTOCOL_VERSION = (1, 5, 735)
VERSION_STRING = "mumble-session %s" % VERSION
OS_STRING = platform.system() + " " + platform.machine()
OS_VERSION_STRING = "Python %s" % platform.python_version()

TRACE = 9  # custom logging level for Ping messages

PING_INTERVAL = 10  # interval between 2 pings in sec
PING_TIMEOUT = 60  # no ping response for this long means the server is gone, in sec

SAMPLE_RATE = 48000  # in hz
MAX_FRAME_SIZE = 5760  # samples per channel in the longest opus packet (120ms)

TCP_READ_BUFFER_SIZE = (
    4096  # how much bytes to read at a time from the control socket, in bytes
)
MAX_UDP_PACKET_SIZE = 1024  # from the official C++ implementation


class SESSION_PHASE(IntEnum):
    IDLE = 0
    HANDSHAKING = 1
    SYNCED = 2
    DISCONNECTED = 3


class TCP_MSG_TYPE(IntEnum):
    "Mumble control message types. These names must exactly match the Protocol Buffer Message names."

    Version = 0
    UDPTunnel = 1
    Authenticate = 2
    Ping = 3
    Reject = 4
    ServerSync = 5
    ChannelRemove = 6
    ChannelState = 7
    UserRemove = 8
    UserState = 9
    BanList = 10
    TextMessage = 11
    PermissionDenied = 12
    ACL = 13
    QueryUsers = 14
    CryptSetup = 15
    ContextActionModify = 16
    ContextAction = 17
    UserList = 18
    VoiceTarget = 19
    PermissionQuery = 20
    CodecVersion = 21
    UserStats = 22
    RequestBlob = 23
    ServerConfig = 24
    SuggestConfig = 25
    PluginDataTransmission = 26


class UDP_MSG_TYPE(IntEnum):
    "Mumble data message types. These names must exactly match the Protocol Buffer Message names."

    Audio = 0
    Ping = 1


class CLIENT_TYPE(IntEnum):
    REGULAR = 0
    BOT = 1


class CODEC(StrEnum):
    "Audio codecs a voice packet may carry."

    OPUS = "Opus"


class VOICE_CONTEXT(IntEnum):
    "How received audio reached this client, as sent in ``MumbleUDP.Audio.context``."

    NORMAL = 0
    SHOUT = 1
    WHISPER = 2
    LISTEN = 3

    @property
    def label(self) -> str:
        return self.name.lower()


class DENY_TYPE(StrEnum):
    """Permission denial kinds. Values are the ``PermissionDenied.DenyType``
    names, the numbers are looked up with :meth:`from_wire`."""

    Text = "Text"
    Permission = "Permission"
    SuperUser = "SuperUser"
    ChannelName = "ChannelName"
    TextTooLong = "TextTooLong"
    TemporaryChannel = "TemporaryChannel"
    MissingCertificate = "MissingCertificate"
    UserName = "UserName"
    ChannelFull = "ChannelFull"
    NestingLimit = "NestingLimit"

    @classmethod
    def from_wire(cls, value: int) -> "DENY_TYPE":
        "Raise ``KeyError`` for numbers outside the known taxonomy."
        return _DENY_TYPE_WIRE[value]


_DENY_TYPE_WIRE = {
    0: DENY_TYPE.Text,
    1: DENY_TYPE.Permission,
    2: DENY_TYPE.SuperUser,
    3: DENY_TYPE.ChannelName,
    4: DENY_TYPE.TextTooLong,
    6: DENY_TYPE.TemporaryChannel,
    7: DENY_TYPE.MissingCertificate,
    8: DENY_TYPE.UserName,
    9: DENY_TYPE.ChannelFull,
    10: DENY_TYPE.NestingLimit,
}


class REJECT_TYPE(IntEnum):
    NONE = 0
    WRONG_VERSION = 1
    INVALID_USERNAME = 2
    WRONG_USER_PW = 3
    WRONG_SERVER_PW = 4
    USERNAME_IN_USE = 5
    SERVER_FULL = 6
    NO_CERTIFICATE = 7
    AUTHENTICATOR_FAIL = 8


class OPUS_PROFILE(StrEnum):
    """Defines the encoder's `intended application`_.

    .. _intended application: https://opus-codec.org/docs/opus_api-1.5/group__opus__encoderctls.html#ga18fa17dae52ff8f3eaea314204bf1a36
    """

    VOIP = "voip"  #: Process signal for improved speech intelligibility.
    AUDIO = "audio"  #: Favor faithfulness to the original input.
    RESTRICTED_LOWDELAY = "restricted_lowdelay"  #: Configure the minimum possible coding delay by disabling certain modes of operation.
