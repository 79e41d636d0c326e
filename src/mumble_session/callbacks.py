from __future__ import annotations

import typing as t
from dataclasses import dataclass, field

Handler = t.Callable[..., t.Any]


def _checked(function: Handler) -> Handler:
    if not callable(function):
        raise ValueError("Callback handler must be callable.")
    return function


class Callback:
    """
    An event of the session, dispatched to any number of handler functions.

    Calling the callback calls its handlers with the event's arguments, in
    registration order. Events are fired in the order the session applies
    the state changes they describe; :class:`Callbacks` lists the arguments
    of each event.

    .. note:: Handlers run on the session loop thread and delay everything
              behind them, voice included. Hand long work over to another
              thread. An exception raised by a handler ends the session.

    .. code-block:: python

        session = mumble_session.Session(user="greeter")

        def greet(user):
            print(f"{user.name} joined channel {user.channel_id}")

        def report(kind, user, channel, detail):
            print(f"denied: {kind} {detail}")

        session.callbacks.user_created.add_handler(greet)
        session.callbacks.permission_denied.set_handler(report)
    """

    def __init__(self):
        self.handlers: list[Handler] = []

    def __call__(self, *args) -> None:
        # a handler may remove itself, iterate over a snapshot
        for handler in tuple(self.handlers):
            handler(*args)

    call_handlers = __call__

    def get_handlers(self) -> list[Handler]:
        return self.handlers

    def add_handler(self, function: Handler) -> None:
        self.handlers.append(_checked(function))

    def set_handler(self, function: Handler) -> None:
        "Make `function` the only handler of this callback."
        self.handlers = [_checked(function)]

    def remove_handler(self, function: Handler) -> None:
        "Unregister every occurrence of `function`. Unknown functions are ignored."
        self.handlers = [h for h in self.handlers if h != _checked(function)]

    def clear_handlers(self) -> None:
        self.handlers = []


@dataclass(slots=True)
class Callbacks:
    #: Called once when the session is synced with the server. Sends no parameters.
    connected: Callback = field(default_factory=Callback)
    #: Called when the server rejects the handshake. Sends the Reject protobuf message as the only parameter.
    rejected: Callback = field(default_factory=Callback)
    #: Called once when the session is disconnected, for any reason. Sends no parameters.
    disconnected: Callback = field(default_factory=Callback)
    #: Called when the client detects a new channel. Sends the channel object as the only parameter.
    channel_created: Callback = field(default_factory=Callback)
    #: Called when the client receives a channel update. Sends the updated channel object and a dict with all the modified fields as two parameters.
    channel_updated: Callback = field(default_factory=Callback)
    #: Called when a channel is removed. Sends the removed channel object as the only parameter.
    channel_removed: Callback = field(default_factory=Callback)
    #: Called when a new user is seen. Sends the added user object as the only parameter.
    user_created: Callback = field(default_factory=Callback)
    #: Called when a user's state is updated. Sends the updated user object and a dict with all the modified fields as two parameters.
    user_updated: Callback = field(default_factory=Callback)
    #: Called when a user is removed. Sends the removed user, the user who removed them (or None), the reason and the ban flag.
    user_removed: Callback = field(default_factory=Callback)
    #: Called for every received voice frame. Sends the speaking user and a :class:`~mumble_session.audio.VoiceChunk`.
    voice_received: Callback = field(default_factory=Callback)
    #: Called when a user's transmission ends. Sends the user as the only parameter.
    transmission_ended: Callback = field(default_factory=Callback)
    #: Called when a text message is received. Sends the sender (or None), the text, and the lists of target users, channels and channel trees.
    text_message_received: Callback = field(default_factory=Callback)
    #: Called when a PermissionDenied message is received. Sends the denial kind, user, channel and detail (see :mod:`denials`).
    permission_denied: Callback = field(default_factory=Callback)
