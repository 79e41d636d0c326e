"""
Client session engine for the Mumble voice chat protocol.
"""

from .audio import PCMData, Position, VoiceChunk, VoiceData
from .callbacks import Callback, Callbacks
from .channels import Channel, Channels
from .codec import ProtobufCodec
from .constants import (
    CODEC,
    DENY_TYPE,
    SESSION_PHASE,
    TCP_MSG_TYPE,
    UDP_MSG_TYPE,
    VERSION,
    VOICE_CONTEXT,
)
from .denials import Denial, classify
from .errors import (
    AlreadyBoundError,
    CodecNotSupportedError,
    ConnectionRejectedError,
    MissingUsernameError,
    MumbleSessionError,
    ProtocolError,
    SessionStateError,
    UnknownDenialError,
    UnknownSourceError,
)
from .session import Session, self_state_flags
from .transport import Multiplexer
from .users import User, Users
from .voice import DropStream, VoicePacket, VoiceStream

__version__ = VERSION
