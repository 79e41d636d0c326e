"""
Voice channel messages (``MumbleUDP``). Field numbers follow ``MumbleUDP.proto``.
"""

from . import BOOL, BYTES, FLOAT, OPTIONAL, REPEATED, UINT32, UINT64, build_messages

# fmt: off
_messages = build_messages("mumble_session/MumbleUDP.proto", "MumbleUDP", "proto3", {
    "Audio": [
        ("target", 1, UINT32, OPTIONAL, "Header"),
        ("context", 2, UINT32, OPTIONAL, "Header"),
        ("sender_session", 3, UINT32),
        ("frame_number", 4, UINT64),
        ("opus_data", 5, BYTES),
        ("positional_data", 6, FLOAT, REPEATED),
        ("volume_adjustment", 7, FLOAT),
        ("is_terminator", 16, BOOL),
    ],
    "Ping": [
        ("timestamp", 1, UINT64),
        ("request_extended_information", 2, BOOL),
        ("server_version_v2", 3, UINT64),
        ("user_count", 4, UINT32),
        ("max_user_count", 5, UINT32),
        ("max_bandwidth_per_user", 6, UINT32),
    ],
})
# fmt: on

Audio = _messages["Audio"]
Ping = _messages["Ping"]
