#!/usr/bin/python3
# This bot sends any sound it receives back to where it has come from.
# WARNING! Don't put two bots in the same place!

import socket
import ssl

from mumble_session import Session
from mumble_session.opus import OpusCodecs

pwd = ""  # password
server = "127.0.0.1"
nick = "Bob"

context = ssl.create_default_context()
context.check_hostname = False
context.verify_mode = ssl.CERT_NONE
sock = context.wrap_socket(socket.create_connection((server, 64738)))

session = Session(nick, password=pwd, codecs=OpusCodecs(), client_type=1)
streams = {}  # one outgoing transmission per talking user


def sound_received_handler(user, chunk):
    # sending the received sound back to server
    if chunk.pcm is None:
        return
    if user.session not in streams:
        streams[user.session] = session.create_voice_stream()
    streams[user.session].write(chunk.pcm.pcm)


def transmission_ended_handler(user):
    stream = streams.pop(user.session, None)
    if stream is not None:
        stream.close()


session.callbacks.voice_received.set_handler(sound_received_handler)
session.callbacks.transmission_ended.set_handler(transmission_ended_handler)
session.connect_control(sock)
session.start()
session.join()
