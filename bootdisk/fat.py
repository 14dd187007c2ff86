"""Read-only access to FAT12, FAT16 and FAT32 filesystems."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import Iterator, Union

from .disk import SECTOR_SIZE, BlockIOError, SectorReader
from .fatnames import (
    DirectoryEntry,
    FileType,
    is_absolute_path,
    name_to_str,
    compare_name,
    ucs2_to_ascii,
)
from .mem import MemoryRegion

_HEADER = struct.Struct("<3s8sHBHBHHBHHHII")
_FAT32_HEADER = struct.Struct("<IHHI")
_ENTRY_SIZE = 32
_ENTRIES_PER_SECTOR = SECTOR_SIZE // _ENTRY_SIZE
_FAT12_MAX = 0xFF5
_FAT16_MAX = 0xFFF5
_MAX_PATH = 256


class FatError(Exception):
    """The filesystem could not satisfy a request."""


class UnsupportedError(FatError):
    """The operation or filesystem layout is not supported."""


class NotFoundError(FatError):
    """No entry matches the requested path."""


class EndOfFileError(FatError):
    """The end of a file, directory or cluster chain was reached."""


class InvalidOffsetError(FatError):
    """A seek position is not a multiple of the sector size."""


class NodeTypeMismatchError(FatError):
    """A file was expected where a directory was found, or the reverse."""


class FatType(Enum):
    UNKNOWN = auto()
    FAT12 = auto()
    FAT16 = auto()
    FAT32 = auto()


class Filesystem:
    """A FAT filesystem occupying sectors ``start``..``last`` of a device."""

    def __init__(self, device: SectorReader, start: int, last: int) -> None:
        self.device = device
        self.start = start
        self.last = last
        self.bytes_per_sector = 0
        self.sectors = 0
        self.fat_type = FatType.UNKNOWN
        self.clusters = 0
        self.sectors_per_fat = 0
        self.sectors_per_cluster = 0
        self.fat_count = 0
        self.root_dir_sectors = 0
        self.first_fat_sector = 0
        self.first_data_sector = 0
        self.data_sector_count = 0
        self.data_cluster_count = 0
        self.root_cluster = 0

    def read(self, sector: int) -> bytes:
        """Read a sector relative to the start of the filesystem."""
        if self.start + sector > self.last:
            raise BlockIOError(f"sector {sector} lies beyond the filesystem")
        return self.device.read(self.start + sector)

    def init(self) -> None:
        """Parse the boot sector and work out the filesystem geometry."""
        data = self.read(0)
        (
            _magic,
            _identifier,
            bytes_per_sector,
            sectors_per_cluster,
            reserved_sectors,
            fat_count,
            root_dir_count,
            legacy_sectors,
            _media,
            legacy_sectors_per_fat,
            _per_track,
            _heads,
            _hidden,
            sectors,
        ) = _HEADER.unpack_from(data)
        if bytes_per_sector == 0 or sectors_per_cluster == 0:
            raise UnsupportedError("boot sector has no usable geometry")
        sectors_per_fat32, _flags, _version, root_cluster = _FAT32_HEADER.unpack_from(
            data, _HEADER.size
        )

        self.bytes_per_sector = bytes_per_sector
        self.fat_count = fat_count
        self.sectors_per_cluster = sectors_per_cluster
        self.root_dir_sectors = (
            root_dir_count * 32 + bytes_per_sector - 1
        ) // bytes_per_sector
        self.sectors_per_fat = (
            sectors_per_fat32 if legacy_sectors_per_fat == 0 else legacy_sectors_per_fat
        )
        self.sectors = sectors if legacy_sectors == 0 else legacy_sectors
        self.first_fat_sector = reserved_sectors
        self.first_data_sector = (
            self.first_fat_sector + fat_count * self.sectors_per_fat + self.root_dir_sectors
        )
        self.data_sector_count = self.sectors - self.first_data_sector
        self.data_cluster_count = self.data_sector_count // bytes_per_sector
        self.clusters = self.data_sector_count // sectors_per_cluster

        if self.clusters < _FAT12_MAX:
            self.fat_type = FatType.FAT12
        elif self.clusters < _FAT16_MAX:
            self.fat_type = FatType.FAT16
        else:
            self.fat_type = FatType.FAT32
        if self.fat_type is FatType.FAT32:
            self.root_cluster = root_cluster

    def _locate(self, fat_offset: int) -> tuple[int, int]:
        sector = self.first_fat_sector + fat_offset // self.bytes_per_sector
        return sector, fat_offset % self.bytes_per_sector

    def next_cluster(self, cluster: int) -> int:
        """Follow the allocation table from ``cluster`` to the next one."""
        if self.fat_type is FatType.FAT12:
            sector, offset = self._locate(cluster + cluster // 2)
            data = self.read(sector)
            lower = data[offset]
            if offset < SECTOR_SIZE - 1:
                upper = data[offset + 1]
            else:
                upper = self.read(sector + 1)[0]
            raw = lower | (upper << 8)
            value = raw & 0xFFF if cluster % 2 == 0 else raw >> 4
            if value >= 0xFF8:
                raise EndOfFileError("end of cluster chain")
            return value
        if self.fat_type is FatType.FAT16:
            sector, offset = self._locate(cluster * 2)
            value = int.from_bytes(self.read(sector)[offset : offset + 2], "little")
            if value >= 0xFFF8:
                raise EndOfFileError("end of cluster chain")
            return value
        if self.fat_type is FatType.FAT32:
            sector, offset = self._locate(cluster * 4)
            raw = int.from_bytes(self.read(sector)[offset : offset + 4], "little")
            value = raw & 0x0FFF_FFFF
            if value >= 0x0FFF_FFF8:
                raise EndOfFileError("end of cluster chain")
            return value
        raise UnsupportedError("filesystem is not initialised")

    def first_sector_of_cluster(self, cluster: int) -> int:
        return (cluster - 2) * self.sectors_per_cluster + self.first_data_sector

    def root(self) -> Directory:
        if self.fat_type in (FatType.FAT12, FatType.FAT16):
            start = self.first_data_sector - self.root_dir_sectors
            return Directory(self, None, start, start)
        if self.fat_type is FatType.FAT32:
            return Directory(self, self.root_cluster)
        raise UnsupportedError("filesystem is not initialised")

    def get_file(self, cluster: int, size: int) -> File:
        return File(self, cluster, size)

    def get_directory(self, cluster: int) -> Directory:
        return Directory(self, cluster)

    def open(self, path: str) -> Node:
        """Open an absolute path."""
        if not is_absolute_path(path):
            raise ValueError(f"path {path!r} is not absolute")
        return self._open_from(self.root(), path)

    def _open_from(self, origin: Directory, path: str) -> Node:
        if len(path) >= _MAX_PATH:
            raise ValueError(f"path longer than {_MAX_PATH - 1} characters")
        residual = path if is_absolute_path(path) else "/" + path
        current = replace(origin)
        while True:
            current.seek(0)
            rest = residual[1:]
            index = rest.find("/")
            if index < 0:
                index = rest.find("\\")
            if index < 0:
                sub, residual = rest, ""
            else:
                sub, residual = rest[:index], residual[index + 1 :]
            if not sub:
                raise NotFoundError(path)

            while True:
                try:
                    entry = current.next_entry()
                except EndOfFileError:
                    raise NotFoundError(path) from None
                if not compare_name(sub, entry):
                    continue
                if entry.file_type is FileType.FILE:
                    return self.get_file(entry.cluster, entry.size)
                if not residual:
                    return self.get_directory(entry.cluster)
                current = self.get_directory(entry.cluster)
                break


@dataclass
class Directory:
    """A cursor over the entries of a directory."""

    filesystem: Filesystem = field(repr=False)
    cluster: int | None = None
    first_sector: int = 0
    sector: int = 0
    offset: int = 0

    def _read_next(self) -> bytes:
        fs = self.filesystem
        if self.cluster is None:
            return fs.read(self.sector)
        if self.sector >= fs.sectors_per_cluster:
            self.cluster = fs.next_cluster(self.cluster)
            self.sector = 0
            self.offset = 0
        return fs.read(self.sector + fs.first_sector_of_cluster(self.cluster))

    def has_next(self) -> bool:
        """True unless the cursor sits on the end-of-directory marker."""
        data = self._read_next()
        return data[self.offset * _ENTRY_SIZE] != 0

    def next_entry(self) -> DirectoryEntry:
        """Return the entry under the cursor and advance past it."""
        long_entry = [0] * 260
        while True:
            data = self._read_next()
            for i in range(self.offset, _ENTRIES_PER_SECTOR):
                raw = data[i * _ENTRY_SIZE : (i + 1) * _ENTRY_SIZE]
                if raw[0] == 0x00:
                    raise EndOfFileError("end of directory")
                if raw[0] == 0xE5:
                    continue
                flags = raw[11]
                if flags == 0x0F:
                    # Long-name pieces precede the entry in reverse order.
                    seq = (raw[0] & 0x1F) - 1
                    units = (
                        struct.unpack_from("<5H", raw, 1)
                        + struct.unpack_from("<6H", raw, 14)
                        + struct.unpack_from("<2H", raw, 28)
                    )
                    long_entry[seq * 13 : (seq + 1) * 13] = units
                    continue

                cluster_high, = struct.unpack_from("<H", raw, 20)
                cluster_low, size = struct.unpack_from("<HI", raw, 26)
                entry = DirectoryEntry(
                    name=bytes(raw[:11]),
                    long_name=ucs2_to_ascii(long_entry),
                    file_type=FileType.DIRECTORY if flags & 0x10 else FileType.FILE,
                    size=size,
                    cluster=(cluster_high << 16) | cluster_low,
                )
                self.offset = i + 1
                if self.offset >= _ENTRIES_PER_SECTOR:
                    self.sector += self.offset // _ENTRIES_PER_SECTOR
                    self.offset %= _ENTRIES_PER_SECTOR
                return entry
            self.sector += 1
            self.offset = 0

    def next_node(self) -> tuple[Node, str]:
        """Return the next entry opened as a node, with its display name."""
        entry = self.next_entry()
        name = name_to_str(entry.name.decode("latin-1"))
        fs = self.filesystem
        if entry.file_type is FileType.DIRECTORY:
            return fs.get_directory(entry.cluster), name
        return fs.get_file(entry.cluster, entry.size), name

    def open(self, path: str) -> Node:
        """Open ``path`` relative to this directory, or from the root if absolute."""
        origin = self.filesystem.root() if is_absolute_path(path) else self
        return self.filesystem._open_from(origin, path)

    def seek(self, offset: int) -> None:
        """Rewind to the first entry; only offset 0 is supported."""
        if offset != 0:
            raise UnsupportedError("directories can only be rewound")
        self.sector = self.first_sector
        self.offset = 0

    def read(self) -> bytes:
        raise UnsupportedError("directories cannot be read as files")

    @property
    def size(self) -> int:
        return SECTOR_SIZE

    def __iter__(self) -> Iterator[DirectoryEntry]:
        while True:
            try:
                entry = self.next_entry()
            except EndOfFileError:
                return
            yield entry


class File:
    """A file read one sector at a time."""

    def __init__(self, filesystem: Filesystem, cluster: int, size: int) -> None:
        self.filesystem = filesystem
        self.start_cluster = cluster
        self.active_cluster = cluster
        self.sector_offset = 0
        self.size = size
        self.position = 0

    def _advance_cluster_if_needed(self) -> None:
        if self.sector_offset == self.filesystem.sectors_per_cluster:
            self.active_cluster = self.filesystem.next_cluster(self.active_cluster)
            self.sector_offset = 0

    def read(self) -> bytes:
        """Return the next sector's worth of file data (shorter at the end)."""
        if self.position >= self.size:
            raise EndOfFileError("end of file")
        self._advance_cluster_if_needed()
        fs = self.filesystem
        data = fs.read(fs.first_sector_of_cluster(self.active_cluster) + self.sector_offset)
        self.sector_offset += 1
        count = min(SECTOR_SIZE, self.size - self.position)
        self.position += count
        return data[:count]

    def seek(self, position: int) -> None:
        """Move to a sector-aligned position inside the file."""
        if position % SECTOR_SIZE:
            raise InvalidOffsetError(f"position {position} is not sector aligned")
        if position >= self.size:
            raise EndOfFileError(f"position {position} is beyond the file")
        if position < self.position:
            self.position = 0
            self.sector_offset = 0
            self.active_cluster = self.start_cluster
        while self.position != position:
            self._advance_cluster_if_needed()
            self.sector_offset += 1
            self.position += SECTOR_SIZE

    def load_into(self, region: MemoryRegion) -> None:
        """Fill ``region`` with the remainder of the file."""
        target = region.as_bytes()
        full = len(target) - len(target) % SECTOR_SIZE
        for start in range(0, full, SECTOR_SIZE):
            data = self.read()
            target[start : start + len(data)] = data
        tail = len(target) - full
        if tail:
            data = self.read()
            if len(data) != tail:
                raise ValueError(f"expected {tail} trailing bytes, file gave {len(data)}")
            target[full:] = data


Node = Union[File, Directory]