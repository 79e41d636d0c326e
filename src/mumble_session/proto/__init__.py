"""
Protocol Buffer message classes for the Mumble control and voice protocols.

The classes are built at import time from field tables mirroring
``Mumble.proto`` and ``MumbleUDP.proto`` from the Mumble source tree, so no
``protoc`` step is required. Only the messages this library reads or writes
are described; unknown fields received from the server are preserved by the
protobuf runtime as usual.
"""

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

_FIELD = descriptor_pb2.FieldDescriptorProto

BOOL = _FIELD.TYPE_BOOL
BYTES = _FIELD.TYPE_BYTES
FLOAT = _FIELD.TYPE_FLOAT
INT32 = _FIELD.TYPE_INT32
STRING = _FIELD.TYPE_STRING
UINT32 = _FIELD.TYPE_UINT32
UINT64 = _FIELD.TYPE_UINT64

OPTIONAL = _FIELD.LABEL_OPTIONAL
REPEATED = _FIELD.LABEL_REPEATED

_pool = descriptor_pool.DescriptorPool()


def build_messages(
    filename: str, package: str, syntax: str, messages: dict[str, list[tuple]]
) -> dict[str, type]:
    """Register a protobuf file in the library's private descriptor pool and
    return its message classes indexed by name.

    :param filename: Name of the virtual ``.proto`` file.
    :param package: Protobuf package of the messages.
    :param syntax: ``"proto2"`` or ``"proto3"``.
    :param messages: Field tables indexed by message name. A field is a tuple
        ``(name, number, type[, label[, oneof]])``.
    """
    file_proto = descriptor_pb2.FileDescriptorProto(
        name=filename, package=package, syntax=syntax
    )
    for message_name, fields in messages.items():
        message_proto = file_proto.message_type.add(name=message_name)
        oneofs: list[str] = []
        for field_name, number, field_type, *options in fields:
            field_proto = message_proto.field.add(
                name=field_name,
                number=number,
                type=field_type,
                label=options[0] if options else OPTIONAL,
            )
            if len(options) > 1:
                if options[1] not in oneofs:
                    oneofs.append(options[1])
                    message_proto.oneof_decl.add(name=options[1])
                field_proto.oneof_index = oneofs.index(options[1])

    _pool.AddSerializedFile(file_proto.SerializeToString())

    return {
        message_name: message_factory.GetMessageClass(
            _pool.FindMessageTypeByName(f"{package}.{message_name}")
        )
        for message_name in messages
    }
