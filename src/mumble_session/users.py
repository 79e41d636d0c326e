from __future__ import annotations

import time
import typing as t
from threading import Lock

from .audio import Position, VoiceChunk, VoiceData, opus_frame_duration
from .constants import CODEC, MAX_LOST_FRAMES, TRACE

if t.TYPE_CHECKING:
    from .channels import Channel
    from .session import Session

# UserState fields that describe the message rather than the user
_NOT_STORED = ("session", "actor", "listening_channel_add", "listening_channel_remove")


class Users:
    """
    Stores the User objects synchronised from the server.

    Lookup Users by their name or session ID like a dictionary. Return the
    entire user list as a dictionary with ``.by_name()`` or ``.by_session()``.
    Iteration follows the order in which users were first seen.

    .. code-block:: python

        >>> session.users["console"]
        <User 93 "console" in channel 0>

        >>> session.users[28]
        <User 28 "user" id 1 in channel 1>

        >>> session.users.by_name()
        {'console': <User 93 "console" in channel 0>,
         'user': <User 28 "user" id 1 in channel 1>}

        # .myself is an alias for your own user session
        >>> session.users.myself == session.users["console"] == session.users[93]
        True
    """

    def __init__(self, connection: Session):
        self.connection = connection
        self.myself: User | None = None  # User object of this session
        self.my_session: int | None = None  # session number of this session
        self.lock = Lock()
        self._users: dict[int, User] = dict()

    def __getitem__(self, key: int | str) -> User:
        if type(key) == str:
            return self.by_name()[key]
        return self._users[key]

    def __contains__(self, session: int) -> bool:
        return session in self._users

    def __iter__(self) -> t.Iterator[User]:
        return iter(list(self._users.values()))

    def __len__(self) -> int:
        return len(self._users)

    def get(self, session: int, default: User | None = None) -> User | None:
        return self._users.get(session, default)

    def values(self) -> list[User]:
        return list(self._users.values())

    def by_name(self) -> dict[str, User]:
        "Return a dictionary of User objects indexed by their username."
        return {user.name: user for user in self._users.values()}

    def by_session(self) -> dict[int, User]:
        "Return a dictionary of User objects indexed by their session ID."
        return dict(self._users)

    def set_myself(self, session: int) -> None:
        """Mark `session` as this connection's own session ID. The first call
        wins, later ones are ignored."""
        if self.my_session is not None:
            if session != self.my_session:
                self.connection.log.warning(
                    "server sent session %i, keeping own session %i",
                    session,
                    self.my_session,
                )
            return
        self.my_session = session
        self.myself = self._users.get(session)

    def update(self, message) -> User:
        "Create or update a User based on a UserState message from the server."
        with self.lock:
            user = self._users.get(message.session)
            created = user is None
            if created:
                user = User(self.connection, message.session)
                self._users[message.session] = user
                if message.session == self.my_session:
                    self.myself = user
            changes = user.update(message)

        if created:
            self.connection.callbacks.user_created(user)
        else:
            self.connection.callbacks.user_updated(user, changes)
        return user

    def remove(self, message) -> None:
        "Remove a User based on a UserRemove message from the server. Unknown sessions are ignored."
        with self.lock:
            actor = self._users.get(message.actor) if message.HasField("actor") else None
            user = self._users.pop(message.session, None)
        if user is not None:
            self.connection.callbacks.user_removed(
                user, actor, message.reason, message.ban
            )


class User:
    """
    Tracks a User's state as sent by the server in UserState messages.

    Attributes are merged from every UserState message: fields absent from a
    message keep their previous value. Change your own state through the
    session's commands (:meth:`Session.set_self_mute` ...); the change is
    reflected here once the server confirms it with its own UserState message.
    """

    session: int  #: User session ID whose state this is.
    name: str | None = None  #: utf8 username
    channel_id: int  #: The user's current channel ID.
    #: Registered user ID, if the user is registered on the server.
    user_id: int | None = None
    mute: bool = False  #: If the user is muted by admin.
    deaf: bool = False  #: If the user is deafened by admin.
    suppress: bool = False  #: If the user has been suppressed from talking by a reason other than being muted.
    self_mute: bool = False  #: If the user has self muted.
    self_deaf: bool = False  #: If the user has self deafened.
    priority_speaker: bool = False  #: If the user is a priority speaker.
    recording: bool = False  #: If the user is currently recording.
    comment: str | None = None  #: User comment.
    texture: bytes | None = None  #: User image.
    plugin_context: bytes | None = None  #: Positional audio plugin context.
    plugin_identity: str | None = None  #: Positional audio plugin identity.
    hash: str | None = None  #: SHA1 hash of the user certificate.
    comment_hash: bytes | None = None
    texture_hash: bytes | None = None
    listening_channels: set[int]  #: The channels the user is listening to.

    def __init__(self, connection: Session, session: int):
        self.connection = connection
        self.session = session
        self.listening_channels = set()
        # Users' channel_id is not sent if they are in the root channel when the client connects.
        self.channel_id = 0

        # state of the transmission currently received from this user
        self._decoder = None
        self._last_sequence: int | None = None
        self._next_sequence = 0
        self._last_voice_time = 0.0

    def __repr__(self):
        name = f'"{self.name}"'
        if self.user_id:
            name += f" id {self.user_id}"
        return f"<User {self.session} {name} in channel {self.channel_id}>"

    @property
    def channel(self) -> Channel | None:
        "The user's channel, None if it is not (or no longer) in the directory."
        return self.connection.channels.get(self.channel_id)

    @property
    def talking(self) -> bool:
        return self._last_sequence is not None

    def update(self, message) -> dict:
        """
        Update a user's information from a UserState message.
        Returns a dictionary of changed values.
        """
        changes = dict()

        for channel in message.listening_channel_add:
            self.listening_channels.add(channel)
        for channel in message.listening_channel_remove:
            self.listening_channels.discard(channel)

        for field, value in message.ListFields():
            if field.name in _NOT_STORED:
                continue
            if field.name == "temporary_access_tokens":
                value = list(value)
            if getattr(self, field.name, None) != value:
                changes[field.name] = value
            setattr(self, field.name, value)

        return changes

    def on_voice(
        self,
        seq_num: int,
        codec: CODEC,
        target: int | str,
        frames: list[bytes],
        position: Position | None,
        end: bool,
    ) -> None:
        """Receive a voice packet sent by this user.

        Packets may arrive late, duplicated or not at all: a packet older than
        the last one is dropped, and a gap in the sequence numbers is reported
        as lost frames (``frame=None``) before the new frames.
        """
        codecs = self.connection.codecs
        now = time.time()

        if (
            self._last_sequence is None
            or now - self._last_voice_time > self.connection.user_voice_timeout
        ):
            # new transmission
            self._decoder = codecs.create_decoder(self) if codecs else None
            lost = 0
        elif seq_num <= self._last_sequence:
            self.connection.log.log(
                TRACE,
                "dropping late voice packet %i from %i (last %i)",
                seq_num,
                self.session,
                self._last_sequence,
            )
            return
        else:
            missing = seq_num - self._next_sequence
            units = max(1, self._next_sequence - self._last_sequence)
            lost = min(MAX_LOST_FRAMES, max(0, -(-missing // units)))

        lost_sequence = self._next_sequence
        self._last_sequence = seq_num
        self._last_voice_time = now
        self._next_sequence = seq_num + self._sequence_units(codecs, codec, frames)

        for i in range(lost):
            self._deliver(lost_sequence + i, codec, target, None, position)
        for frame in frames:
            self._deliver(seq_num, codec, target, frame, position)

        if end:
            self._decoder = None
            self._last_sequence = None
            self.connection.callbacks.transmission_ended(self)

    @staticmethod
    def _sequence_units(codecs, codec: CODEC, frames: list[bytes]) -> int:
        """Number of 10ms sequence steps covered by `frames`, 1 when unknown.

        Without a codec provider the duration is read from the Opus TOC byte.
        """
        if not frames:
            return 1
        if codecs:
            duration = sum(codecs.get_duration(codec, frame) for frame in frames)
        else:
            duration = sum(opus_frame_duration(frame) for frame in frames)
        return max(1, round(duration / 10))

    def _deliver(self, seq_num, codec, target, frame, position) -> None:
        pcm = None
        if self._decoder is not None:
            pcm = self._decoder.decode(VoiceData(target, codec, frame, position))
        chunk = VoiceChunk(seq_num, codec, target, frame, pcm, position)
        self.connection.callbacks.voice_received(self, chunk)
