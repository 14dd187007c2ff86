import struct
import uuid

import pytest

from bootdisk.disk import BlockIOError, MemoryDisk
from bootdisk.part import (
    HeaderNotFoundError,
    NoEFIPartitionError,
    PartitionEntry,
    PartitionError,
    ViolatesSpecificationError,
    find_efi_partition,
    get_partitions,
)

EFI_TYPE = bytes(
    [0x28, 0x73, 0x2A, 0xC1, 0x1F, 0xF8, 0xD2, 0x11, 0xBA, 0x4B, 0x00, 0xA0, 0xC9, 0x3E, 0xC9, 0x3B]
)
DATA_TYPE = uuid.UUID("EBD0A0A2-B9E5-4433-87C0-68B6B99EC7C5").bytes_le


def _entry(type_guid, n, first, last):
    return PartitionEntry(type_guid, bytes([n]) * 16, first, last)


def _gpt_image(
    entries,
    first_usable=34,
    first_part=2,
    part_count=128,
    signature=b"EFI PART",
    sectors=40,
):
    image = bytearray(sectors * 512)
    header = struct.pack(
        "<8s4I4Q16sQ3I",
        signature,
        0x10000,
        92,
        0,
        0,
        1,
        sectors - 1,
        first_usable,
        sectors - 35,
        b"\x11" * 16,
        first_part,
        part_count,
        128,
        0,
    )
    image[512 : 512 + len(header)] = header
    for slot, entry in entries:
        offset = first_part * 512 + slot * 128
        image[offset : offset + 128] = entry.to_bytes()
    return MemoryDisk(image)


def test_find_efi_partition():
    disk = _gpt_image(
        [(0, _entry(DATA_TYPE, 1, 34, 2047)), (1, _entry(EFI_TYPE, 2, 2048, 1_048_575))]
    )
    assert find_efi_partition(disk) == (2048, 1_048_575)


def test_get_partitions_skips_unused_entries():
    first = _entry(EFI_TYPE, 1, 2048, 4095)
    second = _entry(DATA_TYPE, 3, 4096, 8191)
    disk = _gpt_image([(0, first), (2, second)])
    assert get_partitions(disk) == [first, second]


def test_part_count_limits_sectors_scanned():
    first = _entry(DATA_TYPE, 1, 2048, 4095)
    hidden = _entry(EFI_TYPE, 2, 4096, 8191)
    disk = _gpt_image([(0, first), (5, hidden)], part_count=4)
    assert get_partitions(disk) == [first]
    with pytest.raises(NoEFIPartitionError):
        find_efi_partition(disk)


def test_missing_signature():
    disk = _gpt_image([(0, _entry(EFI_TYPE, 1, 2048, 4095))], signature=b"NOT GPT!")
    with pytest.raises(HeaderNotFoundError):
        get_partitions(disk)


def test_first_usable_lba_too_small():
    disk = _gpt_image([(0, _entry(EFI_TYPE, 1, 2048, 4095))], first_usable=33)
    with pytest.raises(ViolatesSpecificationError):
        find_efi_partition(disk)


def test_no_efi_partition():
    disk = _gpt_image([(0, _entry(DATA_TYPE, 1, 2048, 4095))])
    with pytest.raises(NoEFIPartitionError):
        find_efi_partition(disk)


def test_too_many_partitions():
    entries = [(slot, _entry(DATA_TYPE, slot + 1, 2048 + slot, 2048 + slot)) for slot in range(17)]
    disk = _gpt_image(entries)
    assert len(get_partitions(disk)) == 17
    with pytest.raises(PartitionError):
        find_efi_partition(disk)


def test_block_error_propagates():
    disk = MemoryDisk(bytes(512))
    with pytest.raises(BlockIOError):
        get_partitions(disk)


def test_entry_round_trip():
    entry = PartitionEntry(EFI_TYPE, b"\x42" * 16, 2048, 1_048_575, 5, b"E\0F\0I\0".ljust(72, b"\0"))
    assert PartitionEntry.from_bytes(entry.to_bytes()) == entry
    assert entry.is_efi_partition()
    assert not _entry(DATA_TYPE, 1, 0, 0).is_efi_partition()


def test_entry_too_short():
    with pytest.raises(ValueError):
        PartitionEntry.from_bytes(bytes(100))