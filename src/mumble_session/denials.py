"""
Classify ``PermissionDenied`` messages.

Each denial kind only carries the fields that make sense for it:

======================  ==============  ==============  =====================
kind                    user            channel         detail
======================  ==============  ==============  =====================
``Text``                                                reason text
``Permission``          denied user     channel         permission bitmask
``SuperUser``
``ChannelName``                                         rejected name
``TextTooLong``
``TemporaryChannel``
``MissingCertificate``  user
``UserName``                                            rejected name
``ChannelFull``
``NestingLimit``
======================  ==============  ==============  =====================
"""

from __future__ import annotations

import typing as t
from dataclasses import dataclass

from .constants import DENY_TYPE
from .errors import UnknownDenialError

if t.TYPE_CHECKING:
    from .channels import Channel, Channels
    from .users import User, Users


@dataclass(frozen=True, slots=True)
class Denial:
    kind: DENY_TYPE
    user: User | None = None
    channel: Channel | None = None
    detail: str | int | None = None


def classify(message, users: Users, channels: Channels) -> Denial:
    """Build a :class:`Denial` from a ``PermissionDenied`` message.

    :raise UnknownDenialError: The denial type is not part of the protocol's
        taxonomy. This is not recoverable.
    """
    try:
        kind = DENY_TYPE.from_wire(message.type)
    except KeyError:
        raise UnknownDenialError(message.type) from None

    match kind:
        case DENY_TYPE.Text:
            return Denial(kind, detail=message.reason)
        case DENY_TYPE.Permission:
            return Denial(
                kind,
                user=users.get(message.session),
                channel=channels.get(message.channel_id),
                detail=message.permission,
            )
        case DENY_TYPE.MissingCertificate:
            return Denial(kind, user=users.get(message.session))
        case DENY_TYPE.ChannelName | DENY_TYPE.UserName:
            return Denial(kind, detail=message.name)
        case _:
            return Denial(kind)
