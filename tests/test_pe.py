import struct

import pytest

from bootdisk.fat import EndOfFileError, InvalidOffsetError
from bootdisk.mem import MemoryRegion
from bootdisk.pe import (
    MACHINE_AARCH64,
    MACHINE_X86_64,
    InvalidExecutableError,
    Loader,
    PeError,
    PeFileError,
)

SECTOR = 512
PE = 0x80
OPT = PE + 24
SECTIONS = OPT + 0xF0


class _SectorFile:
    """Serves a byte string one sector at a time, like a FAT file."""

    def __init__(self, data):
        self.data = bytes(data)
        self.size = len(self.data)
        self.position = 0

    def read(self):
        if self.position >= self.size:
            raise EndOfFileError("end of file")
        chunk = self.data[self.position : self.position + SECTOR]
        self.position += len(chunk)
        return chunk

    def seek(self, position):
        if position % SECTOR:
            raise InvalidOffsetError("unaligned")
        if position >= self.size:
            raise EndOfFileError("beyond")
        self.position = position


def _build_pe(image_base=0, data_dirs=16, text_virt_size=0x200, reloc_raw_offset=0x600):
    image = bytearray(0x800)
    image[0:2] = b"MZ"
    struct.pack_into("<I", image, 0x3C, PE)
    image[PE : PE + 4] = b"PE\0\0"
    struct.pack_into("<HH", image, PE + 4, MACHINE_X86_64, 2)
    struct.pack_into("<H", image, PE + 20, 0xF0)
    struct.pack_into("<H", image, OPT, 0x20B)
    struct.pack_into("<I", image, OPT + 16, 0x1020)
    struct.pack_into("<Q", image, OPT + 24, image_base)
    struct.pack_into("<II", image, OPT + 56, 0x3000, 0x400)
    struct.pack_into("<I", image, OPT + 108, data_dirs)
    struct.pack_into("<II", image, OPT + 152, 0x2000, 12)
    struct.pack_into(
        "<8sIIII16s", image, SECTIONS, b".text", text_virt_size, 0x1000, 0x200, 0x400, bytes(16)
    )
    struct.pack_into(
        "<8sIIII16s", image, SECTIONS + 40, b".reloc", 12, 0x2000, 0x200, reloc_raw_offset, bytes(16)
    )
    image[0x400:0x404] = b"CODE"
    struct.pack_into("<Q", image, 0x410, 0x1234)
    struct.pack_into("<IIHH", image, 0x600, 0x1000, 12, 0xA010, 0)
    return image


def _load(image, memory_size=0x10000, load_addr=0x4000, fill=0, machine=MACHINE_X86_64):
    memory = bytearray([fill]) * memory_size
    loader = Loader(_SectorFile(image), machine)
    result = loader.load(MemoryRegion(memory), load_addr)
    return result, memory, loader


def _u64(memory, address):
    return struct.unpack_from("<Q", memory, address)[0]


def test_load_relocated_image():
    (entry, addr, size), memory, loader = _load(_build_pe())
    assert (entry, addr, size) == (0x4000 + 0x1020, 0x4000, 0x3000)
    assert loader.num_sections == 2
    assert memory[0x4000:0x4002] == b"MZ"
    assert memory[0x5000:0x5004] == b"CODE"
    assert _u64(memory, 0x5010) == 0x1234 + 0x4000


def test_load_at_preferred_base():
    (entry, addr, size), memory, _ = _load(_build_pe(image_base=0x8000), load_addr=0x4000)
    assert (entry, addr, size) == (0x8000 + 0x1020, 0x8000, 0x3000)
    assert memory[0x9000:0x9004] == b"CODE"
    assert _u64(memory, 0x9010) == 0x1234
    assert memory[0x5000:0x5004] == bytes(4)


def test_no_relocation_without_data_directory():
    _, memory, _ = _load(_build_pe(data_dirs=4))
    assert _u64(memory, 0x5010) == 0x1234


def test_virtual_tail_is_zeroed():
    _, memory, _ = _load(_build_pe(text_virt_size=0x300), fill=0xFF)
    assert memory[0x5000 + 0x250] == 0
    assert memory[0x5000 + 0x2FF] == 0
    assert memory[0x5000 + 0x350] == 0xFF


def test_unaligned_reloc_section_is_skipped():
    _, memory, _ = _load(_build_pe(reloc_raw_offset=0x601), fill=0xFF)
    assert _u64(memory, 0x5010) == 0x1234
    assert memory[0x6000:0x600C] == bytes(12)


def test_bad_mz_signature():
    image = _build_pe()
    image[0:2] = b"ZM"
    with pytest.raises(InvalidExecutableError):
        _load(image)


def test_bad_pe_signature():
    image = _build_pe()
    image[PE : PE + 4] = b"XX\0\0"
    with pytest.raises(InvalidExecutableError):
        _load(image)


def test_pe_offset_beyond_first_sector():
    image = _build_pe()
    struct.pack_into("<I", image, 0x3C, 0x200)
    with pytest.raises(InvalidExecutableError):
        _load(image)


def test_wrong_machine_type():
    with pytest.raises(InvalidExecutableError):
        _load(_build_pe(), machine=MACHINE_AARCH64)


def test_not_pe32_plus():
    image = _build_pe()
    struct.pack_into("<H", image, OPT, 0x10B)
    with pytest.raises(InvalidExecutableError):
        _load(image)


def test_short_file_is_file_error():
    with pytest.raises(PeFileError):
        _load(_build_pe()[:100])


def test_image_larger_than_memory():
    with pytest.raises(PeError):
        _load(_build_pe(), memory_size=0x1000)