"""FAT directory entries and the 8.3 / long file name rules."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterable

SHORT_NAME_LENGTH = 11
DISPLAY_NAME_LENGTH = 12
LONG_NAME_LENGTH = 255


class FileType(Enum):
    FILE = auto()
    DIRECTORY = auto()


@dataclass
class DirectoryEntry:
    """One entry of a FAT directory.

    ``name`` holds the raw 11-byte 8.3 name, space padded and without the
    dot; ``long_name`` holds the long file name, if any.
    """

    name: bytes = bytes(SHORT_NAME_LENGTH)
    long_name: str = ""
    file_type: FileType = FileType.FILE
    size: int = 0
    cluster: int = 0

    def is_file(self) -> bool:
        return self.file_type is FileType.FILE


def is_absolute_path(path: str) -> bool:
    """True if ``path`` starts with either kind of path separator."""
    return path.startswith(("/", "\\"))


def ucs2_to_ascii(units: Iterable[int]) -> str:
    """Keep the low byte of each UCS-2 unit up to the first NUL (at most 255)."""
    chars = []
    for unit in units:
        byte = unit & 0xFF
        if byte == 0 or len(chars) == LONG_NAME_LENGTH:
            break
        chars.append(chr(byte))
    return "".join(chars)


def _ascii_prefix(text: str) -> str:
    return text.split("\0", 1)[0]


def name_to_str(name: str) -> str:
    """Turn a raw 8.3 name such as ``"X       ABC"`` into ``"X.ABC"``."""
    trimmed = _ascii_prefix(name.strip(" \0"))
    raw = trimmed.encode("latin-1")
    length = len(raw)
    if length > DISPLAY_NAME_LENGTH:
        raise ValueError(f"name {trimmed!r} is longer than {DISPLAY_NAME_LENGTH} bytes")
    if trimmed in (".", ".."):
        return trimmed
    if length == 0:
        raise ValueError("empty name")

    output = bytearray(DISPLAY_NAME_LENGTH)
    i = 0
    for slot in range(DISPLAY_NAME_LENGTH):
        c = raw[i]
        if c == 0x20:
            i = 8
            output[slot] = ord(".")
        else:
            i += 1
            output[slot] = c
        if i >= length:
            break

    # A full 11-character name needs the separator put in before the extension.
    if chr(output[10]).isascii() and chr(output[10]).isalpha() and output[7] not in b" .":
        output[8:12] = b"." + output[8:11]

    return output.split(b"\0", 1)[0].decode("latin-1")


def compare_short_name(name: str, entry: DirectoryEntry) -> bool:
    """Case-insensitive match of ``name`` against the entry's 8.3 name."""
    raw = name.strip("\0").encode("latin-1", errors="replace")
    if len(raw.split(b"\0", 1)[0]) > DISPLAY_NAME_LENGTH:
        return False

    short = entry.name
    i = 0
    for c in raw:
        # Names 11 long but not in 8.3 form, e.g. "loader.conf".
        if i == SHORT_NAME_LENGTH:
            return False
        if c == 0:
            break
        if c == ord("."):
            i = 8
            continue
        if bytes([c]).upper() != short[i : i + 1].upper():
            return False
        i += 1
    return all(b == 0x20 for b in short[i:SHORT_NAME_LENGTH])


def compare_name(name: str, entry: DirectoryEntry) -> bool:
    """Match ``name`` against either the short or the long name of ``entry``."""
    return compare_short_name(name, entry) or entry.long_name == name