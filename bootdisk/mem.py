"""Bounds-checked little-endian access to a window of a byte buffer."""

from __future__ import annotations

import struct

_FORMATS = {
    1: struct.Struct("<B"),
    2: struct.Struct("<H"),
    4: struct.Struct("<I"),
    8: struct.Struct("<Q"),
}


class MemoryRegion:
    """A window of ``length`` bytes starting at ``base`` inside ``buffer``.

    Every access is checked against the window; values are little-endian.
    Writes go straight through to the underlying buffer.
    """

    def __init__(self, buffer, base: int = 0, length: int | None = None) -> None:
        view = memoryview(buffer).cast("B")
        if length is None:
            length = len(view) - base
        if base < 0 or length < 0 or base + length > len(view):
            raise ValueError(
                f"region {base:#x}+{length:#x} does not fit a buffer of {len(view):#x} bytes"
            )
        self.base = base
        self.length = length
        self._view = view[base : base + length]

    @classmethod
    def from_bytes(cls, data) -> MemoryRegion:
        """Wrap a whole bytes-like object as a region."""
        return cls(data, 0, len(data))

    def as_bytes(self) -> memoryview:
        """The entire region as a byte view."""
        return self._view

    def view(self, offset: int, length: int) -> memoryview:
        """A byte view of ``length`` bytes starting at ``offset``."""
        if offset < 0 or length < 0 or offset + length > self.length:
            raise IndexError(
                f"slice {offset:#x}+{length:#x} outside region of {self.length:#x} bytes"
            )
        return self._view[offset : offset + length]

    def _check(self, offset: int, size: int) -> None:
        if offset < 0 or offset + size > self.length:
            raise IndexError(
                f"access of {size} bytes at {offset:#x} outside region of {self.length:#x} bytes"
            )

    def _read(self, offset: int, size: int) -> int:
        self._check(offset, size)
        return _FORMATS[size].unpack_from(self._view, offset)[0]

    def _write(self, offset: int, size: int, value: int) -> None:
        self._check(offset, size)
        if not 0 <= value < 1 << (8 * size):
            raise ValueError(f"value {value:#x} does not fit in {size} bytes")
        _FORMATS[size].pack_into(self._view, offset, value)

    def read_u8(self, offset: int) -> int:
        return self._read(offset, 1)

    def read_u16(self, offset: int) -> int:
        return self._read(offset, 2)

    def read_u32(self, offset: int) -> int:
        return self._read(offset, 4)

    def read_u64(self, offset: int) -> int:
        return self._read(offset, 8)

    def write_u8(self, offset: int, value: int) -> None:
        self._write(offset, 1, value)

    def write_u16(self, offset: int, value: int) -> None:
        self._write(offset, 2, value)

    def write_u32(self, offset: int, value: int) -> None:
        self._write(offset, 4, value)

    def write_u64(self, offset: int, value: int) -> None:
        self._write(offset, 8, value)

    def __len__(self) -> int:
        return self.length