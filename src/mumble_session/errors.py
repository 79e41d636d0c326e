# -*- coding: utf-8 -*-


class MumbleSessionError(Exception):
    """Base class for errors raised by a session."""


class ConnectionRejectedError(MumbleSessionError):
    """The server rejected the handshake. :attr:`message` is the ``Reject``
    message sent by the server."""

    def __init__(self, message):
        self.message = message
        super().__init__(getattr(message, "reason", "") or "Connection rejected")


class SessionStateError(MumbleSessionError):
    """The operation is not allowed in the current session phase."""


class AlreadyBoundError(MumbleSessionError):
    """A transport was bound twice to the same session."""


class MissingUsernameError(MumbleSessionError, ValueError):
    """A session was created without a username."""


class ProtocolError(MumbleSessionError):
    """The server sent data that cannot be decoded."""


class UnknownDenialError(ProtocolError):
    """A ``PermissionDenied`` message carried a type outside the known taxonomy."""

    def __init__(self, deny_type):
        self.deny_type = deny_type
        super().__init__("Invalid DenyType: %s" % deny_type)


class UnknownSourceError(ProtocolError):
    """A voice packet referenced a session that is not in the user directory."""

    def __init__(self, session):
        self.session = session
        super().__init__("Voice packet from unknown session %s" % session)


class CodecNotSupportedError(MumbleSessionError):
    """The codec provider cannot handle the requested codec."""
