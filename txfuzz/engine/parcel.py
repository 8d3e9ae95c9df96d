"""
Parcel - primitive payload codec.

A Parcel is a growable little-endian buffer with one write operation per
primitive type. Every write is padded to a 4-byte boundary so that
consecutive values stay aligned the way native deserializers expect.

Layout:
    int32 / bool      <i (bool as 1 / 0)
    int64             <q
    float / double    <f / <d
    string            int32 UTF-16 code-unit count, UTF-16LE units, 2-byte NUL
                      (None is written as count -1)
    bytes             int32 length, raw bytes
    int32[] / str[]   int32 element count, then each element
    interface token   int32 strict-mode header (0), then string

Request and reply parcels for one transaction are obtained together through
obtain_parcels(), which recycles both on every exit path.
"""
from __future__ import annotations

import struct
from contextlib import contextmanager
from typing import Iterator, Optional, Sequence, Tuple

from txfuzz.exceptions import SerializationError

INT32_MIN = -(1 << 31)
INT32_MAX = (1 << 31) - 1
INT64_MIN = -(1 << 63)
INT64_MAX = (1 << 63) - 1

STRICT_MODE_HEADER = 0


class Parcel:
    """Append-only write buffer with a read cursor for replies."""

    def __init__(self, data: bytes = b""):
        self._buffer = bytearray(data)
        self._position = 0
        self._recycled = False

    # -- lifecycle -------------------------------------------------------

    @property
    def recycled(self) -> bool:
        return self._recycled

    def recycle(self) -> None:
        """Release the buffer. Further use raises SerializationError."""
        self._buffer = bytearray()
        self._position = 0
        self._recycled = True

    def _check_open(self) -> None:
        if self._recycled:
            raise SerializationError("Parcel used after recycle")

    def marshall(self) -> bytes:
        self._check_open()
        return bytes(self._buffer)

    def set_data(self, data: bytes) -> None:
        """Replace contents (used to load a reply) and rewind."""
        self._check_open()
        self._buffer = bytearray(data)
        self._position = 0

    def data_size(self) -> int:
        return len(self._buffer)

    def _pad(self) -> None:
        remainder = len(self._buffer) % 4
        if remainder:
            self._buffer.extend(b"\x00" * (4 - remainder))

    def _pack(self, fmt: str, value, type_name: str) -> None:
        self._check_open()
        try:
            self._buffer.extend(struct.pack(fmt, value))
        except (struct.error, TypeError, OverflowError) as exc:
            raise SerializationError(
                f"Cannot write {type_name} value {value!r}",
                details={"type": type_name, "error": str(exc)},
            )

    # -- writes ----------------------------------------------------------

    def write_int32(self, value: int) -> None:
        if not isinstance(value, int) or not INT32_MIN <= value <= INT32_MAX:
            raise SerializationError(f"int32 out of range: {value!r}")
        self._pack("<i", value, "int32")

    def write_int64(self, value: int) -> None:
        if not isinstance(value, int) or not INT64_MIN <= value <= INT64_MAX:
            raise SerializationError(f"int64 out of range: {value!r}")
        self._pack("<q", value, "int64")

    def write_float(self, value: float) -> None:
        self._pack("<f", value, "float")

    def write_double(self, value: float) -> None:
        self._pack("<d", value, "double")

    def write_bool(self, value: bool) -> None:
        self.write_int32(1 if value else 0)

    def write_string(self, value: Optional[str]) -> None:
        self._check_open()
        if value is None:
            self.write_int32(-1)
            return
        if not isinstance(value, str):
            raise SerializationError(f"string expected, got {type(value).__name__}")
        try:
            encoded = value.encode("utf-16-le")
        except UnicodeEncodeError as exc:
            raise SerializationError(
                "String is not UTF-16 encodable", details={"error": str(exc)}
            )
        self.write_int32(len(encoded) // 2)
        self._buffer.extend(encoded)
        self._buffer.extend(b"\x00\x00")
        self._pad()

    def write_bytes(self, value: Optional[bytes]) -> None:
        self._check_open()
        if value is None:
            self.write_int32(-1)
            return
        if not isinstance(value, (bytes, bytearray)):
            raise SerializationError(f"bytes expected, got {type(value).__name__}")
        self.write_int32(len(value))
        self._buffer.extend(value)
        self._pad()

    def write_int_array(self, values: Optional[Sequence[int]]) -> None:
        if values is None:
            self.write_int32(-1)
            return
        if isinstance(values, (str, bytes)) or not isinstance(values, Sequence):
            raise SerializationError(f"int array expected, got {type(values).__name__}")
        self.write_int32(len(values))
        for value in values:
            self.write_int32(value)

    def write_string_array(self, values: Optional[Sequence[Optional[str]]]) -> None:
        if values is None:
            self.write_int32(-1)
            return
        if isinstance(values, (str, bytes)) or not isinstance(values, Sequence):
            raise SerializationError(f"string array expected, got {type(values).__name__}")
        self.write_int32(len(values))
        for value in values:
            self.write_string(value)

    def write_interface_token(self, token: str) -> None:
        self.write_int32(STRICT_MODE_HEADER)
        self.write_string(token)

    # -- reads -----------------------------------------------------------

    def _take(self, size: int) -> bytes:
        self._check_open()
        end = self._position + size
        if end > len(self._buffer):
            raise SerializationError(
                "Read past end of parcel",
                details={"position": self._position, "size": size, "length": len(self._buffer)},
            )
        chunk = bytes(self._buffer[self._position:end])
        self._position = end
        return chunk

    def _skip_padding(self) -> None:
        remainder = self._position % 4
        if remainder:
            self._position = min(len(self._buffer), self._position + 4 - remainder)

    def read_int32(self) -> int:
        return struct.unpack("<i", self._take(4))[0]

    def read_string(self) -> Optional[str]:
        length = self.read_int32()
        if length < 0:
            return None
        raw = self._take(length * 2 + 2)
        self._skip_padding()
        return raw[:-2].decode("utf-16-le")

    def read_bytes(self) -> Optional[bytes]:
        length = self.read_int32()
        if length < 0:
            return None
        raw = self._take(length)
        self._skip_padding()
        return raw


@contextmanager
def obtain_parcels() -> Iterator[Tuple[Parcel, Parcel]]:
    """Yield a (request, reply) parcel pair, recycled on every exit path."""
    data = Parcel()
    reply = Parcel()
    try:
        yield data, reply
    finally:
        data.recycle()
        reply.recycle()
