"""Byte-stream framing used by serial-attached eye cameras.

Each frame is an 8-byte little-endian header followed by the remainder of a
JPEG image::

    ff a0 ff a1 | LL LL | ff d8 | <length - 2 bytes of JPEG data>

The last two header bytes double as the JPEG start-of-image marker, so the
emitted payload is ``ff d8`` followed by the bytes read after the header.
A payload is only emitted when it ends with the JPEG end-of-image marker.
"""

from __future__ import annotations

from dataclasses import dataclass

HEADER_MAGIC = 0xD8FF0000A1FFA0FF
HEADER_MASK = 0xFFFF0000FFFFFFFF
HEADER_SIZE = 8

JPEG_SOI = b"\xff\xd8"
JPEG_EOI = b"\xff\xd9"

_LENGTH_BITS = ~HEADER_MASK & 0xFFFF_FFFF_FFFF_FFFF
# Lowest bit cleared in the mask.
LENGTH_SHIFT = (_LENGTH_BITS & -_LENGTH_BITS).bit_length() - 1
MIN_PAYLOAD_SIZE = len(JPEG_SOI) + len(JPEG_EOI)


def is_header(value: int) -> bool:
    return (value & HEADER_MASK) == HEADER_MAGIC


def payload_length(header: int) -> int:
    return (header >> LENGTH_SHIFT) & 0xFFFF


def build_header(length: int) -> bytes:
    if not 0 <= length <= 0xFFFF:
        raise ValueError(f"payload length out of range: {length}")
    return (HEADER_MAGIC | (length << LENGTH_SHIFT)).to_bytes(HEADER_SIZE, "little")


def encode_frame(jpeg: bytes) -> bytes:
    """Frame a complete JPEG (starting with ``ff d8``) for the wire."""
    if not jpeg.startswith(JPEG_SOI):
        raise ValueError("payload is not a JPEG stream")
    return build_header(len(jpeg)) + jpeg[len(JPEG_SOI):]


@dataclass
class FramingStats:
    frames: int = 0
    corrupt: int = 0
    skipped_bytes: int = 0


class FrameParser:
    """Incremental parser; feed it whatever the port returned."""

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._expected: int | None = None
        self.stats = FramingStats()

    @property
    def synchronized(self) -> bool:
        return self._expected is not None

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def reset(self) -> None:
        self._buffer.clear()
        self._expected = None

    def feed(self, data: bytes) -> list[bytes]:
        if data:
            self._buffer.extend(data)
        payloads: list[bytes] = []
        while True:
            if self._expected is None and not self._sync():
                return payloads
            remaining = self._expected - len(JPEG_SOI)
            if len(self._buffer) < remaining:
                return payloads
            payload = JPEG_SOI + bytes(self._buffer[:remaining])
            del self._buffer[:remaining]
            self._expected = None
            if payload.endswith(JPEG_EOI):
                self.stats.frames += 1
                payloads.append(payload)
            else:
                self.stats.corrupt += 1

    def _sync(self) -> bool:
        buffer = self._buffer
        while len(buffer) >= HEADER_SIZE:
            header = int.from_bytes(buffer[:HEADER_SIZE], "little")
            if is_header(header):
                length = payload_length(header)
                del buffer[:HEADER_SIZE]
                if length < MIN_PAYLOAD_SIZE:
                    self.stats.corrupt += 1
                    continue
                self._expected = length
                return True
            del buffer[0]
            self.stats.skipped_bytes += 1
        return False
