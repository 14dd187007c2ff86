"""Loading PE32+ executables into memory."""

from __future__ import annotations

import struct
from dataclasses import dataclass

from .disk import SECTOR_SIZE, BlockIOError
from .fat import FatError
from .mem import MemoryRegion

MACHINE_X86_64 = 0x8664
MACHINE_AARCH64 = 0xAA64
MACHINE_RISCV64 = 0x5064
OPTIONAL_HEADER_MAGIC = 0x20B  # PE32+

HEADER_SIZE = 1024
_MZ_MAGIC = 0x5A4D
_PE_MAGIC = 0x0000_4550
_SECTION = struct.Struct("<8sIIII16s")
_RELOC_DIR64 = 10
_U64_MASK = (1 << 64) - 1


class PeError(Exception):
    """The executable could not be loaded."""


class PeFileError(PeError):
    """Reading the executable's file failed."""


class InvalidExecutableError(PeError):
    """The file is not a loadable PE32+ image for this machine."""


@dataclass(frozen=True)
class _Section:
    virt_size: int
    virt_address: int
    raw_size: int
    raw_offset: int


class Loader:
    """Loads a PE32+ image read sector by sector from ``file``."""

    def __init__(self, file, machine_type: int = MACHINE_X86_64) -> None:
        self.file = file
        self.machine_type = machine_type
        self.num_sections = 0
        self.image_base = 0
        self.image_size = 0

    def _read(self) -> bytes:
        try:
            data = self.file.read()
        except (FatError, BlockIOError) as exc:
            raise PeFileError("cannot read executable") from exc
        return bytes(data).ljust(SECTOR_SIZE, b"\0")

    def _seek(self, position: int) -> None:
        try:
            self.file.seek(position)
        except (FatError, BlockIOError) as exc:
            raise PeFileError(f"cannot seek executable to {position:#x}") from exc

    def load(self, memory: MemoryRegion, load_addr: int) -> tuple[int, int, int]:
        """Load the image into ``memory``, whose offset 0 is address 0.

        The image goes to its preferred base, or to ``load_addr`` when it has
        none. Returns the entry point, the load address and the image size.
        """
        header = self._read() + self._read()
        try:
            return self._load(header, memory, load_addr)
        except IndexError as exc:
            raise InvalidExecutableError(str(exc)) from exc

    def _sections(self, header: bytes, start: int) -> list[_Section]:
        end = start + self.num_sections * _SECTION.size
        if end > len(header):
            raise InvalidExecutableError("section table does not fit the header")
        return [
            _Section(virt_size, virt_address, raw_size, raw_offset)
            for _name, virt_size, virt_address, raw_size, raw_offset, _unused in _SECTION.iter_unpack(
                header[start:end]
            )
        ]

    def _load(self, header: bytes, memory: MemoryRegion, load_addr: int) -> tuple[int, int, int]:
        dos = MemoryRegion.from_bytes(header)
        if dos.read_u16(0) != _MZ_MAGIC:
            raise InvalidExecutableError("missing MZ signature")
        pe_offset = dos.read_u32(0x3C)
        if pe_offset >= SECTOR_SIZE:
            raise InvalidExecutableError(f"PE header offset {pe_offset:#x} too large")

        pe = MemoryRegion(header, pe_offset)
        if pe.read_u32(0) != _PE_MAGIC:
            raise InvalidExecutableError("missing PE signature")
        if pe.read_u16(4) != self.machine_type:
            raise InvalidExecutableError(f"unsupported machine type {pe.read_u16(4):#x}")
        self.num_sections = pe.read_u16(6)
        optional_header_size = pe.read_u16(20)

        optional = MemoryRegion(header, pe_offset + 24)
        if optional.read_u16(0) != OPTIONAL_HEADER_MAGIC:
            raise InvalidExecutableError("not a PE32+ image")
        entry_point = optional.read_u32(16)
        self.image_base = optional.read_u64(24)
        address = self.image_base if self.image_base else load_addr
        self.image_size = optional.read_u32(56)
        size_of_headers = optional.read_u32(60)

        sections = self._sections(header, pe_offset + 24 + optional_header_size)
        image_info = (address + entry_point, address, self.image_size)

        try:
            loaded = MemoryRegion(memory.as_bytes(), address, self.image_size)
        except ValueError as exc:
            raise PeError(str(exc)) from exc

        self._seek(0)
        for header_offset in range(0, size_of_headers, SECTOR_SIZE):
            loaded.view(header_offset, SECTOR_SIZE)[:] = self._read()

        for section in sections:
            loaded.view(section.virt_address, section.virt_size)[:] = bytes(section.virt_size)
            if section.raw_offset % SECTOR_SIZE:
                continue
            self._seek(section.raw_offset)
            section_size = min(section.raw_size, section.virt_size)
            copied = 0
            while copied < section_size:
                count = min(section_size - copied, SECTOR_SIZE)
                data = self._read()
                loaded.view(section.virt_address + copied, count)[:] = data[:count]
                copied += count

        if optional.read_u32(108) < 5:
            return image_info
        reloc_address = optional.read_u32(152)
        reloc_size = optional.read_u32(156)
        if not reloc_address or not reloc_size:
            return image_info
        if any(
            section.virt_address == reloc_address and section.raw_offset % SECTOR_SIZE
            for section in sections
        ):
            return image_info

        self._relocate(loaded, reloc_address, reloc_size, address - self.image_base)
        return image_info

    @staticmethod
    def _relocate(loaded: MemoryRegion, address: int, size: int, base_diff: int) -> None:
        table = MemoryRegion.from_bytes(loaded.view(address, size))
        remaining = size
        offset = 0
        while remaining > 0:
            page_rva = table.read_u32(offset)
            block_size = table.read_u32(offset + 4)
            if block_size < 8 or block_size > remaining:
                raise InvalidExecutableError(f"bad relocation block size {block_size}")
            for entry_offset in range(8, block_size, 2):
                entry = table.read_u16(offset + entry_offset)
                if entry >> 12 == _RELOC_DIR64:
                    location = page_rva + (entry & 0xFFF)
                    value = loaded.read_u64(location)
                    loaded.write_u64(location, (value + base_diff) & _U64_MASK)
            remaining -= block_size
            offset += block_size