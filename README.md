# bootdisk

A library for inspecting bootable disk images from Python:

- find partitions and the EFI System Partition in a GPT disk;
- open FAT12, FAT16 and FAT32 filesystems, walk their directories (including
  long file names) and read files sector by sector;
- resolve the default entry of a `loader.conf` boot menu and parse the entry
  files in `/loader/entries/`;
- load a PE32+ executable into a memory buffer and apply its base relocations.

It uses nothing outside the standard library.

## Installation

```
pip install bootdisk
```

## Disks

`bootdisk.disk` provides the sector-addressed devices everything else reads
from. Every device returns 512-byte sectors from `read(sector)`:

- `ImageDisk(path)` reads an image file; it is a context manager and has
  `close()`;
- `MemoryDisk(data)` wraps bytes held in memory, handy for images built in
  tests;
- `SectorReader` is the abstract base class to subclass for other sources.

Reading a sector outside the device raises `BlockIOError`.

## Finding the EFI partition

```python
from bootdisk.disk import ImageDisk
from bootdisk.part import find_efi_partition, get_partitions

with ImageDisk("disk.img") as disk:
    for entry in get_partitions(disk):
        print(entry.first_lba, entry.last_lba, entry.is_efi_partition())
    start, last = find_efi_partition(disk)
```

`get_partitions` returns the used `PartitionEntry` records in table order.
`find_efi_partition` raises `HeaderNotFoundError` when there is no GPT
header, `ViolatesSpecificationError` when the first usable LBA is below 34,
`NoEFIPartitionError` when no EFI System Partition exists, and
`PartitionError` (the base of all three) when the disk holds more than 16
partitions.

## Reading a FAT filesystem

```python
from bootdisk.disk import ImageDisk
from bootdisk.fat import Filesystem, EndOfFileError
from bootdisk.part import find_efi_partition

with ImageDisk("disk.img") as disk:
    start, last = find_efi_partition(disk)
    fs = Filesystem(disk, start, last)
    fs.init()

    for entry in fs.root():
        print(entry.name, entry.long_name, entry.is_file())

    boot = fs.open("/EFI/BOOT/BOOTX64.EFI")
    chunks = []
    while True:
        try:
            chunks.append(boot.read())
        except EndOfFileError:
            break
```

`Filesystem.open` takes an absolute path and returns a `File` or a
`Directory`; `Directory.open` also accepts paths relative to that
directory. Paths may use `/` or `\` as separators, and each component
matches either the 8.3 short name (case-insensitively) or the long file
name. A missing path raises `NotFoundError`.

`File.read()` returns up to one sector of data and raises `EndOfFileError`
past the end; `File.seek(position)` accepts sector-aligned positions only
(`InvalidOffsetError` otherwise); `File.load_into(region)` fills a
`MemoryRegion` with the rest of the file.

A `Directory` is a cursor: iterating it, or calling `next_entry()`, yields
`DirectoryEntry` records; `next_node()` returns the next entry opened as a
node together with its display name (such as `"X.ABC"`); `seek(0)` rewinds.
The name helpers — `name_to_str`, `compare_short_name`, `compare_name`,
`is_absolute_path` — live in `bootdisk.fatnames`.

All filesystem errors derive from `FatError`.

## Boot loader entries

```python
from bootdisk.loader import compare_entry, default_entry_path, parse_entry

path = default_entry_path(fs)          # e.g. "/loader/entries/linux.conf"
config = parse_entry(fs.open(path))
print(config.bzimage_path, config.initrd_path, config.cmdline)

compare_entry(b"foobar.conf\0", b"foo*.conf\0")   # True
```

The `default` line of `/loader/loader.conf` may hold a glob pattern with
`*`, `?` and `\` escapes; `compare_entry` does the matching on
NUL-terminated names and raises `UnterminatedStringError` when a name runs
out early. When no entry matches, the first `*.conf` entry is used.
Configuration files larger than 4096 bytes raise `LoaderError`.

## Loading a PE32+ image

```python
from bootdisk.mem import MemoryRegion
from bootdisk.pe import Loader, MACHINE_X86_64

memory = MemoryRegion.from_bytes(bytearray(16 * 1024 * 1024))
loader = Loader(fs.open("/EFI/BOOT/BOOTX64.EFI"), MACHINE_X86_64)
entry_point, load_address, image_size = loader.load(memory, 0x100000)
```

Offset 0 of `memory` stands for address 0. The image is placed at its
preferred base if it has one, otherwise at the given load address, so the
region must cover that range. Sections are copied to their virtual
addresses and DIR64 base relocations are applied. Malformed images raise
`InvalidExecutableError`, read failures `PeFileError`, both subclasses of
`PeError`.

## Other modules

- `bootdisk.mem.MemoryRegion` gives bounds-checked little-endian
  `read_u8` … `read_u64` and `write_u8` … `write_u64` access to a window of
  a buffer.
- `bootdisk.layout.MemoryDescriptor` describes a named, page-aligned memory
  range with `range_start()`, `range_end()` and `page_count()`.

## What it does not do

bootdisk only reads. It cannot write to or create disk images or
filesystems, it does not start the kernels or executables it loads, and it
has no command-line tool: everything is used from Python.