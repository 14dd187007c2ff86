"""Boot loader specification entries on a FAT filesystem."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Union

from .fat import (
    Directory,
    EndOfFileError,
    File,
    Filesystem,
    NodeTypeMismatchError,
    NotFoundError,
)

ENTRY_DIRECTORY = "/loader/entries"
LOADER_CONF = "/loader/loader.conf"
MAX_CONFIG_SIZE = 4096
_MAX_DEPTH = 32
_CONF_PATTERN = b"*.conf\0"

BytesOrStr = Union[bytes, bytearray, str]


class LoaderError(Exception):
    """A boot entry could not be selected or parsed."""


class UnterminatedStringError(LoaderError):
    """A name or pattern ran out before its terminating NUL."""


@dataclass
class LoaderConfig:
    """The parts of a boot entry needed to start a kernel."""

    bzimage_path: str = ""
    initrd_path: str = ""
    cmdline: str = ""


def _as_bytes(value: BytesOrStr) -> bytes:
    if isinstance(value, str):
        return value.encode("latin-1")
    return bytes(value)


def _terminated(value: BytesOrStr) -> bytes:
    return _as_bytes(value).split(b"\0", 1)[0] + b"\0"


def _read_text(file: File) -> str:
    if file.size > MAX_CONFIG_SIZE:
        raise LoaderError(f"configuration file of {file.size} bytes exceeds {MAX_CONFIG_SIZE}")
    chunks = []
    while True:
        try:
            chunks.append(file.read())
        except EndOfFileError:
            break
    return b"".join(chunks).split(b"\0", 1)[0].decode("utf-8", errors="replace")


def _values(text: str, key: str) -> Iterator[str]:
    for line in text.split("\n"):
        line = line.removesuffix("\r")
        if line.startswith(key):
            yield line[len(key):].strip()


def default_entry_pattern(file: File) -> str:
    """Return the value of the ``default`` option of a ``loader.conf`` file."""
    pattern = ""
    for value in _values(_read_text(file), "default"):
        pattern = value
    return pattern


def compare_entry(file_name: BytesOrStr, pattern: BytesOrStr) -> bool:
    """Match a NUL-terminated file name against a NUL-terminated glob pattern.

    ``*`` matches any run of characters, ``?`` any single one and ``\\``
    escapes the character after it.
    """
    name = _as_bytes(file_name)
    pat = _as_bytes(pattern)

    def match(ni: int, pi: int, depth: int) -> bool:
        if depth == 0:
            return False
        while pi < len(pat):
            p = pat[pi]
            pi += 1
            if ni >= len(name):
                raise UnterminatedStringError("file name is not NUL terminated")
            f = name[ni]
            if p == 0:
                return f == 0
            if p == ord("\\"):
                if pi >= len(pat):
                    return False
                escaped = pat[pi]
                pi += 1
                if escaped == 0 or escaped != f:
                    return False
            elif p == ord("?"):
                if f == 0:
                    return False
            elif p == ord("*"):
                while ni < len(name):
                    if match(ni, pi, depth - 1):
                        return True
                    ni += 1
                if pi >= len(pat):
                    raise UnterminatedStringError("pattern is not NUL terminated")
                return pat[pi] == 0
            elif p == ord("["):
                raise LoaderError("patterns containing [...] sets are not supported")
            elif p != f:
                return False
            ni += 1
        return False

    return match(0, 0, _MAX_DEPTH)


def find_entry(fs: Filesystem, pattern: BytesOrStr) -> str:
    """Pick the first entry file matching ``pattern``.

    Falls back to the first ``*.conf`` file when nothing matches.
    """
    directory = fs.open(ENTRY_DIRECTORY)
    if not isinstance(directory, Directory):
        raise NodeTypeMismatchError(f"{ENTRY_DIRECTORY} is not a directory")
    wanted = _terminated(pattern)
    fallback = None
    for entry in directory:
        if not entry.is_file():
            continue
        name = _terminated(entry.long_name)
        if compare_entry(name, wanted):
            return entry.long_name
        if fallback is None and compare_entry(name, _CONF_PATTERN):
            fallback = entry.long_name
    if fallback is None:
        raise NotFoundError(f"no boot entry in {ENTRY_DIRECTORY}")
    return fallback


def parse_entry(file: File) -> LoaderConfig:
    """Read the ``linux``, ``options`` and ``initrd`` lines of an entry file."""
    text = _read_text(file)
    config = LoaderConfig()
    for line in text.split("\n"):
        line = line.removesuffix("\r")
        if line.startswith("linux"):
            config.bzimage_path = line[len("linux"):].strip()
        if line.startswith("options"):
            config.cmdline = line[len("options"):].strip()
        if line.startswith("initrd"):
            config.initrd_path = line[len("initrd"):].strip()
    return config


def default_entry_path(fs: Filesystem) -> str:
    """Return the absolute path of the entry file selected by ``loader.conf``."""
    conf = fs.open(LOADER_CONF)
    if not isinstance(conf, File):
        raise NotFoundError(f"{LOADER_CONF} is not a file")
    entry = find_entry(fs, default_entry_pattern(conf))
    return f"{ENTRY_DIRECTORY}/{entry}"