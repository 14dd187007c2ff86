"""GUID partition table parsing."""

from __future__ import annotations

import struct
import uuid
from dataclasses import dataclass

from .disk import SectorReader

GPT_SIGNATURE = b"EFI PART"
EFI_SYSTEM_PARTITION = uuid.UUID("C12A7328-F81F-11D2-BA4B-00A0C93EC93B").bytes_le
MAX_PARTITIONS = 16
MIN_FIRST_USABLE_LBA = 34

_HEADER = struct.Struct("<8s4I4Q16sQ3I")
_ENTRY = struct.Struct("<16s16sQQQ72s")


class PartitionError(Exception):
    """The partition table could not be used."""


class HeaderNotFoundError(PartitionError):
    """No GPT header was found."""


class ViolatesSpecificationError(PartitionError):
    """The GPT header does not follow the specification."""


class NoEFIPartitionError(PartitionError):
    """No EFI system partition is present."""


@dataclass(frozen=True)
class PartitionEntry:
    type_guid: bytes
    guid: bytes
    first_lba: int
    last_lba: int
    flags: int = 0
    partition_name: bytes = bytes(72)

    SIZE = _ENTRY.size

    @classmethod
    def from_bytes(cls, data) -> PartitionEntry:
        if len(data) < _ENTRY.size:
            raise ValueError(f"partition entry needs {_ENTRY.size} bytes, got {len(data)}")
        return cls(*_ENTRY.unpack_from(data))

    def to_bytes(self) -> bytes:
        return _ENTRY.pack(
            self.type_guid,
            self.guid,
            self.first_lba,
            self.last_lba,
            self.flags,
            self.partition_name,
        )

    def is_efi_partition(self) -> bool:
        return self.type_guid == EFI_SYSTEM_PARTITION


def get_partitions(reader: SectorReader) -> list[PartitionEntry]:
    """Return the used entries of the partition table, in table order."""
    (
        signature,
        _revision,
        _header_size,
        _header_crc,
        _reserved,
        _current_lba,
        _backup_lba,
        first_usable_lba,
        _last_usable_lba,
        _disk_guid,
        first_part_lba,
        part_count,
        _entry_size,
        _part_crc,
    ) = _HEADER.unpack_from(reader.read(1))

    if signature != GPT_SIGNATURE:
        raise HeaderNotFoundError("GPT signature not found")
    if first_usable_lba < MIN_FIRST_USABLE_LBA:
        raise ViolatesSpecificationError(
            f"first usable LBA {first_usable_lba} is below {MIN_FIRST_USABLE_LBA}"
        )

    partitions: list[PartitionEntry] = []
    checked = 0
    for lba in range(first_part_lba, first_usable_lba):
        for fields in _ENTRY.iter_unpack(reader.read(lba)):
            entry = PartitionEntry(*fields)
            if any(entry.guid):
                partitions.append(entry)
        checked += 4
        if checked >= part_count:
            break
    return partitions


def find_efi_partition(reader: SectorReader) -> tuple[int, int]:
    """Return the first and last LBA of the EFI system partition."""
    partitions = get_partitions(reader)
    if len(partitions) > MAX_PARTITIONS:
        raise PartitionError(f"more than {MAX_PARTITIONS} partitions on the disk")
    for entry in partitions:
        if entry.is_efi_partition():
            return entry.first_lba, entry.last_lba
    raise NoEFIPartitionError("no EFI system partition found")