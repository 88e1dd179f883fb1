"""Low-level binary reading and writing with byte order and read limits."""

from __future__ import annotations

import io
import struct
from typing import BinaryIO, Optional, Union

from .model import BIG_ENDIAN, LITTLE_ENDIAN, DicomError

_ENCODING = "utf-8"
_ERRORS = "surrogateescape"


def _prefix(byte_order: str) -> str:
    if byte_order == LITTLE_ENDIAN:
        return "<"
    if byte_order == BIG_ENDIAN:
        return ">"
    raise ValueError(f"unknown byte order: {byte_order!r}")


class DicomReader:
    """Reads typed values from a byte stream, honouring a stack of read limits.

    A limit of None means the stream is read until it runs out.
    """

    def __init__(
        self,
        source: Union[bytes, bytearray, BinaryIO],
        byte_order: str = LITTLE_ENDIAN,
        limit: Optional[int] = None,
        implicit: bool = False,
    ) -> None:
        if isinstance(source, (bytes, bytearray, memoryview)):
            source = io.BytesIO(bytes(source))
        self._source = source
        self._pending = bytearray()
        self._limit_stack: list[Optional[int]] = []
        self.limit = limit
        self.bytes_read = 0
        self.byte_order = byte_order
        self.implicit = implicit
        _prefix(byte_order)

    def _fill(self, n: int) -> None:
        while len(self._pending) < n:
            chunk = self._source.read(n - len(self._pending))
            if not chunk:
                break
            self._pending += chunk

    def read_bytes(self, n: int) -> bytes:
        """Read exactly n bytes; raise EOFError if the data or limit ends first."""
        if n < 0:
            raise ValueError("cannot read a negative number of bytes")
        if self.limit is not None and self.bytes_read + n > self.limit:
            raise EOFError(
                f"reading {n} bytes would pass the limit at offset {self.limit}"
            )
        self._fill(n)
        if len(self._pending) < n:
            raise EOFError(f"wanted {n} bytes, only {len(self._pending)} available")
        data = bytes(self._pending[:n])
        del self._pending[:n]
        self.bytes_read += n
        return data

    def _unpack(self, fmt: str, size: int):
        return struct.unpack(_prefix(self.byte_order) + fmt, self.read_bytes(size))[0]

    def read_uint16(self) -> int:
        return self._unpack("H", 2)

    def read_uint32(self) -> int:
        return self._unpack("I", 4)

    def read_int16(self) -> int:
        return self._unpack("h", 2)

    def read_int32(self) -> int:
        return self._unpack("i", 4)

    def read_float32(self) -> float:
        return self._unpack("f", 4)

    def read_float64(self) -> float:
        return self._unpack("d", 8)

    def read_string(self, n: int) -> str:
        """Read n bytes as text; undecodable bytes survive a write round trip."""
        return self.read_bytes(n).decode(_ENCODING, _ERRORS)

    def peek(self, n: int) -> bytes:
        """Return the next n bytes without consuming them."""
        self._fill(n)
        if len(self._pending) < n:
            raise EOFError(f"wanted to peek {n} bytes, only {len(self._pending)} available")
        return bytes(self._pending[:n])

    def skip(self, n: int) -> None:
        """Discard the next n bytes."""
        self.read_bytes(n)

    def push_limit(self, n: int) -> None:
        """Allow only n more bytes to be read until the matching pop_limit."""
        new_limit = self.bytes_read + n
        if self.limit is not None and new_limit > self.limit:
            raise DicomError(
                f"cannot set limit at offset {new_limit} beyond current limit {self.limit}"
            )
        self._limit_stack.append(self.limit)
        self.limit = new_limit

    def pop_limit(self) -> None:
        """Restore the limit in force before the last push_limit."""
        if not self._limit_stack:
            raise DicomError("no limit to pop")
        self.limit = self._limit_stack.pop()

    def limit_exhausted(self) -> bool:
        """Whether nothing more may be read under the current limit."""
        if self.limit is None:
            self._fill(1)
            return not self._pending
        return self.bytes_read >= self.limit

    def set_transfer_syntax(self, byte_order: str, implicit: bool) -> None:
        _prefix(byte_order)
        self.byte_order = byte_order
        self.implicit = implicit


class DicomWriter:
    """Writes typed values to a binary stream in the current byte order."""

    def __init__(
        self,
        out: BinaryIO,
        byte_order: Optional[str] = LITTLE_ENDIAN,
        implicit: bool = False,
    ) -> None:
        self._out = out
        self.byte_order = byte_order or LITTLE_ENDIAN
        self.implicit = implicit
        _prefix(self.byte_order)

    def write_bytes(self, data: bytes) -> None:
        self._out.write(bytes(data))

    def write_zeros(self, n: int) -> None:
        self.write_bytes(bytes(n))

    def write_string(self, text: str) -> None:
        self.write_bytes(text.encode(_ENCODING, _ERRORS))

    def _pack(self, fmt: str, value) -> None:
        try:
            data = struct.pack(_prefix(self.byte_order) + fmt, value)
        except struct.error as exc:
            raise ValueError(f"cannot encode {value!r}: {exc}") from None
        self.write_bytes(data)

    def write_uint16(self, value: int) -> None:
        self._pack("H", value)

    def write_uint32(self, value: int) -> None:
        self._pack("I", value)

    def write_float32(self, value: float) -> None:
        self._pack("f", value)

    def write_float64(self, value: float) -> None:
        self._pack("d", value)

    def set_transfer_syntax(self, byte_order: str, implicit: bool) -> None:
        _prefix(byte_order)
        self.byte_order = byte_order
        self.implicit = implicit