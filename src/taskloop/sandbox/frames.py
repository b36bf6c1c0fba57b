"""Demultiplexing of the Docker combined log stream.

A container started without a TTY returns stdout and stderr interleaved in
one stream of frames. Each frame starts with an 8-byte header::

    [stream_type, 0, 0, 0, size_b1, size_b2, size_b3, size_b4]

stream_type is 0 (stdin), 1 (stdout) or 2 (stderr) and size is the
big-endian length of the payload that follows.
"""

import struct

STDIN = 0
STDOUT = 1
STDERR = 2

HEADER_SIZE = 8
_HEADER = struct.Struct(">BxxxL")


def _looks_multiplexed(data: bytes) -> bool:
    return len(data) >= HEADER_SIZE and data[0] in (STDIN, STDOUT, STDERR) and data[1:4] == b"\x00\x00\x00"


def demultiplex(data: bytes) -> tuple[bytes, bytes]:
    """Split a combined stream into (stdout, stderr).

    Data without a valid frame header (a TTY stream) is returned as stdout.
    A final frame shorter than its declared size keeps whatever arrived.
    Frames of type stdin are routed to stdout.
    """
    if not _looks_multiplexed(data):
        return data, b""

    stdout = bytearray()
    stderr = bytearray()
    offset = 0
    total = len(data)

    while offset + HEADER_SIZE <= total:
        stream_type, size = _HEADER.unpack_from(data, offset)
        offset += HEADER_SIZE
        payload = data[offset:offset + size]
        offset += size

        if stream_type == STDERR:
            stderr.extend(payload)
        else:
            stdout.extend(payload)

    # Fewer than HEADER_SIZE trailing bytes cannot carry payload; dropped.
    return bytes(stdout), bytes(stderr)


def encode_frame(stream_type: int, payload: bytes) -> bytes:
    """Build one frame. Used to construct fixtures and by fake runtimes."""
    return _HEADER.pack(stream_type, len(payload)) + payload
