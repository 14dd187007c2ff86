"""Read GPT disks and FAT filesystems, parse boot entries and load PE32+ images."""

__version__ = "0.1.0"
__all__ = ["disk", "fat", "fatnames", "layout", "loader", "mem", "part", "pe"]