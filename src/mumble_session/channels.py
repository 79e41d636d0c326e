from __future__ import annotations

import typing as t
from threading import Lock

if t.TYPE_CHECKING:
    from .session import Session
    from .users import User

# ChannelState fields handled apart from the generic merge
_LINK_FIELDS = ("channel_id", "links", "links_add", "links_remove")


class Channels:
    """
    Stores the Channel objects synchronised from the server, indexed by
    channel ID. Iteration follows the order in which channels were first seen.

    .. code-block:: python

        >>> session.channels[0]
        <Channel 0 "Root">

        >>> session.channels.find_by_name("Lobby")
        <Channel 3 "Lobby" in 0>
    """

    def __init__(self, connection: Session):
        self.connection = connection
        self.lock = Lock()
        self._channels: dict[int, Channel] = dict()

    def __getitem__(self, channel_id: int) -> Channel:
        return self._channels[channel_id]

    def __contains__(self, channel_id: int) -> bool:
        return channel_id in self._channels

    def __iter__(self) -> t.Iterator[Channel]:
        return iter(list(self._channels.values()))

    def __len__(self) -> int:
        return len(self._channels)

    def get(self, channel_id: int, default: Channel | None = None) -> Channel | None:
        return self._channels.get(channel_id, default)

    def values(self) -> list[Channel]:
        return list(self._channels.values())

    def find_by_name(self, name: str) -> Channel | None:
        "Return the first channel called `name`, None if there is none."
        for channel in self._channels.values():
            if channel.name == name:
                return channel
        return None

    def update(self, message) -> Channel:
        """Create or update a Channel based on a ChannelState message from the server.

        Links are symmetric: a link removed from this channel is also removed
        from the other channel if it links back.
        """
        unlinked = []
        with self.lock:
            channel = self._channels.get(message.channel_id)
            created = channel is None
            if created:
                channel = Channel(self.connection, message.channel_id)
                self._channels[message.channel_id] = channel

            for other_id in message.links_remove:
                other = self._channels.get(other_id)
                if other is not None and channel.channel_id in other.links:
                    other.links.discard(channel.channel_id)
                    unlinked.append(other)

            changes = channel.update(message)

        for other in unlinked:
            self.connection.callbacks.channel_updated(
                other, {"links": set(other.links)}
            )
        if created:
            self.connection.callbacks.channel_created(channel)
        else:
            self.connection.callbacks.channel_updated(channel, changes)
        return channel

    def remove(self, channel_id: int) -> None:
        "Remove a channel. Unknown channel IDs are ignored."
        with self.lock:
            channel = self._channels.pop(channel_id, None)
        if channel is not None:
            self.connection.callbacks.channel_removed(channel)


class Channel:
    """
    Tracks a Channel's state as sent by the server in ChannelState messages.
    """

    channel_id: int  #: Channel ID, 0 is the root channel.
    name: str | None = None
    parent: int | None = None  #: ID of the parent channel, None for the root.
    description: str | None = None
    description_hash: bytes | None = None
    temporary: bool = False
    position: int = 0  #: Sort order among siblings.
    max_users: int = 0  #: 0 means no limit.
    is_enter_restricted: bool = False
    can_enter: bool = True
    links: set[int]  #: IDs of the channels linked to this one.

    def __init__(self, connection: Session, channel_id: int):
        self.connection = connection
        self.channel_id = channel_id
        self.links = set()

    def __repr__(self):
        parent = f" in {self.parent}" if self.parent is not None else ""
        return f'<Channel {self.channel_id} "{self.name}"{parent}>'

    def update(self, message) -> dict:
        """
        Update a channel's information from a ChannelState message.
        Returns a dictionary of changed values.
        """
        changes = dict()
        links = set(self.links)

        if message.links:
            links = set(message.links)
        links.update(message.links_add)
        links.difference_update(message.links_remove)
        if links != self.links:
            changes["links"] = links
            self.links = links

        for field, value in message.ListFields():
            if field.name in _LINK_FIELDS:
                continue
            if getattr(self, field.name, None) != value:
                changes[field.name] = value
            setattr(self, field.name, value)

        return changes

    def get_parent(self) -> Channel | None:
        if self.parent is None:
            return None
        return self.connection.channels.get(self.parent)

    def get_users(self) -> list[User]:
        "Return the users currently in this channel."
        return [
            user
            for user in self.connection.users.values()
            if user.channel_id == self.channel_id
        ]

    def linked_channels(self) -> list[Channel]:
        "Return the linked channels known to the directory."
        channels = self.connection.channels
        return [channels[i] for i in sorted(self.links) if i in channels]
