"""Sector-addressed block devices."""

from __future__ import annotations

import os
from abc import ABC, abstractmethod

SECTOR_SIZE = 512


class BlockIOError(OSError):
    """A sector could not be read from the device."""


class SectorReader(ABC):
    """Anything that can return the contents of a numbered 512-byte sector."""

    @abstractmethod
    def read(self, sector: int) -> bytes:
        """Return exactly ``SECTOR_SIZE`` bytes for ``sector``."""


def _pad(chunk: bytes) -> bytes:
    return chunk.ljust(SECTOR_SIZE, b"\0")


class MemoryDisk(SectorReader):
    """A disk backed by bytes held in memory."""

    def __init__(self, data) -> None:
        self._data = bytes(data)

    def read(self, sector: int) -> bytes:
        start = sector * SECTOR_SIZE
        if sector < 0 or start >= len(self._data):
            raise BlockIOError(f"sector {sector} is outside the disk")
        return _pad(self._data[start : start + SECTOR_SIZE])

    def __len__(self) -> int:
        return len(self._data)


class ImageDisk(SectorReader):
    """A disk backed by an image file."""

    def __init__(self, path) -> None:
        self._file = open(path, "rb")
        self._size = os.fstat(self._file.fileno()).st_size

    def read(self, sector: int) -> bytes:
        start = sector * SECTOR_SIZE
        if sector < 0 or start >= self._size:
            raise BlockIOError(f"sector {sector} is outside the disk")
        try:
            self._file.seek(start)
            chunk = self._file.read(SECTOR_SIZE)
        except (OSError, ValueError) as exc:
            raise BlockIOError(f"cannot read sector {sector}") from exc
        return _pad(chunk)

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> ImageDisk:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def __len__(self) -> int:
        return self._size