"""
Control channel messages (``MumbleProto``). Field numbers follow
``Mumble.proto``. Enum fields (``Reject.type``, ``PermissionDenied.type``) are
declared as ``uint32`` so that values outside the known enums survive
decoding; they are interpreted with :class:`~mumble_session.constants.REJECT_TYPE`
and :class:`~mumble_session.constants.DENY_TYPE`.
"""

from . import (
    BOOL,
    BYTES,
    FLOAT,
    INT32,
    REPEATED,
    STRING,
    UINT32,
    UINT64,
    build_messages,
)

# fmt: off
_messages = build_messages("mumble_session/Mumble.proto", "MumbleProto", "proto2", {
    "Version": [
        ("version_v1", 1, UINT32),
        ("release", 2, STRING),
        ("os", 3, STRING),
        ("os_version", 4, STRING),
        ("version_v2", 5, UINT64),
    ],
    "Authenticate": [
        ("username", 1, STRING),
        ("password", 2, STRING),
        ("tokens", 3, STRING, REPEATED),
        ("celt_versions", 4, INT32, REPEATED),
        ("opus", 5, BOOL),
        ("client_type", 6, INT32),
    ],
    "Ping": [
        ("timestamp", 1, UINT64),
        ("good", 2, UINT32),
        ("late", 3, UINT32),
        ("lost", 4, UINT32),
        ("resync", 5, UINT32),
        ("udp_packets", 6, UINT32),
        ("tcp_packets", 7, UINT32),
        ("udp_ping_avg", 8, FLOAT),
        ("udp_ping_var", 9, FLOAT),
        ("tcp_ping_avg", 10, FLOAT),
        ("tcp_ping_var", 11, FLOAT),
    ],
    "Reject": [
        ("type", 1, UINT32),
        ("reason", 2, STRING),
    ],
    "ServerSync": [
        ("session", 1, UINT32),
        ("max_bandwidth", 2, UINT32),
        ("welcome_text", 3, STRING),
        ("permissions", 4, UINT64),
    ],
    "ChannelRemove": [
        ("channel_id", 1, UINT32),
    ],
    "ChannelState": [
        ("channel_id", 1, UINT32),
        ("parent", 2, UINT32),
        ("name", 3, STRING),
        ("links", 4, UINT32, REPEATED),
        ("description", 5, STRING),
        ("links_add", 6, UINT32, REPEATED),
        ("links_remove", 7, UINT32, REPEATED),
        ("temporary", 8, BOOL),
        ("position", 9, INT32),
        ("description_hash", 10, BYTES),
        ("max_users", 11, UINT32),
        ("is_enter_restricted", 12, BOOL),
        ("can_enter", 13, BOOL),
    ],
    "UserRemove": [
        ("session", 1, UINT32),
        ("actor", 2, UINT32),
        ("reason", 3, STRING),
        ("ban", 4, BOOL),
    ],
    "UserState": [
        ("session", 1, UINT32),
        ("actor", 2, UINT32),
        ("name", 3, STRING),
        ("user_id", 4, UINT32),
        ("channel_id", 5, UINT32),
        ("mute", 6, BOOL),
        ("deaf", 7, BOOL),
        ("suppress", 8, BOOL),
        ("self_mute", 9, BOOL),
        ("self_deaf", 10, BOOL),
        ("texture", 11, BYTES),
        ("plugin_context", 12, BYTES),
        ("plugin_identity", 13, STRING),
        ("comment", 14, STRING),
        ("hash", 15, STRING),
        ("comment_hash", 16, BYTES),
        ("texture_hash", 17, BYTES),
        ("priority_speaker", 18, BOOL),
        ("recording", 19, BOOL),
        ("temporary_access_tokens", 20, STRING, REPEATED),
        ("listening_channel_add", 21, UINT32, REPEATED),
        ("listening_channel_remove", 22, UINT32, REPEATED),
    ],
    "TextMessage": [
        ("actor", 1, UINT32),
        ("session", 2, UINT32, REPEATED),
        ("channel_id", 3, UINT32, REPEATED),
        ("tree_id", 4, UINT32, REPEATED),
        ("message", 5, STRING),
    ],
    "PermissionDenied": [
        ("permission", 1, UINT32),
        ("channel_id", 2, UINT32),
        ("session", 3, UINT32),
        ("reason", 4, STRING),
        ("type", 5, UINT32),
        ("name", 6, STRING),
    ],
    "CryptSetup": [
        ("key", 1, BYTES),
        ("client_nonce", 2, BYTES),
        ("server_nonce", 3, BYTES),
    ],
    "PermissionQuery": [
        ("channel_id", 1, UINT32),
        ("permissions", 2, UINT32),
        ("flush", 3, BOOL),
    ],
    "CodecVersion": [
        ("alpha", 1, INT32),
        ("beta", 2, INT32),
        ("prefer_alpha", 3, BOOL),
        ("opus", 4, BOOL),
    ],
    "ServerConfig": [
        ("max_bandwidth", 1, UINT32),
        ("welcome_text", 2, STRING),
        ("allow_html", 3, BOOL),
        ("message_length", 4, UINT32),
        ("image_message_length", 5, UINT32),
        ("max_users", 6, UINT32),
        ("recording_allowed", 7, BOOL),
    ],
})
# fmt: on

Version = _messages["Version"]
Authenticate = _messages["Authenticate"]
Ping = _messages["Ping"]
Reject = _messages["Reject"]
ServerSync = _messages["ServerSync"]
ChannelRemove = _messages["ChannelRemove"]
ChannelState = _messages["ChannelState"]
UserRemove = _messages["UserRemove"]
UserState = _messages["UserState"]
TextMessage = _messages["TextMessage"]
PermissionDenied = _messages["PermissionDenied"]
CryptSetup = _messages["CryptSetup"]
PermissionQuery = _messages["PermissionQuery"]
CodecVersion = _messages["CodecVersion"]
ServerConfig = _messages["ServerConfig"]
