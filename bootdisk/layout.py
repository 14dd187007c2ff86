"""Descriptions of page-aligned memory ranges."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, ClassVar


class MemoryAttribute(Enum):
    CODE = auto()
    DATA = auto()
    UNUSABLE = auto()
    MMIO = auto()


@dataclass(frozen=True)
class MemoryDescriptor:
    """A named memory range whose bounds are computed on demand."""

    name: str
    span: Callable[[], range]
    attribute: MemoryAttribute

    PAGE_SIZE: ClassVar[int] = 0x1000

    def _aligned(self, addr: int) -> int:
        if addr % self.PAGE_SIZE:
            raise ValueError(f"{self.name}: address {addr:#x} is not page aligned")
        return addr

    def range_start(self) -> int:
        return self._aligned(self.span().start)

    def range_end(self) -> int:
        return self._aligned(self.span().stop)

    def page_count(self) -> int:
        return (self.range_end() - self.range_start()) // self.PAGE_SIZE


MemoryLayout = tuple[MemoryDescriptor, ...]