from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from pexray.constants import SECTION_HEADER_SIZE
from pexray.errors import TruncatedSectionTable
from pexray.flags import SectionFlagsSet
from pexray.reader import BoundedReader

logger = logging.getLogger(__name__)


def _safe_ascii(b: bytes) -> str:
    return b.split(b"\x00", 1)[0].decode("ascii", errors="replace")


@dataclass(frozen=True)
class Section:
    name_raw: bytes
    virtual_size: int
    virtual_address: int
    size_of_raw_data: int
    pointer_to_raw_data: int
    pointer_to_relocations: int
    pointer_to_linenumbers: int
    number_of_relocations: int
    number_of_linenumbers: int
    characteristics: SectionFlagsSet
    source: Optional[BoundedReader] = field(default=None, repr=False, compare=False, hash=False)

    @property
    def name(self) -> str:
        return _safe_ascii(self.name_raw)

    @property
    def alignment(self) -> Optional[int]:
        return self.characteristics.alignment

    def contains_rva(self, rva: int) -> bool:
        span = max(self.virtual_size, self.size_of_raw_data)
        return span > 0 and self.virtual_address <= rva < self.virtual_address + span

    def raw_data(self) -> bytes:
        """
        Resolve this section's bytes from the decoded buffer.
        Raises OutOfBounds when the stated raw-data region leaves the buffer,
        even though the section header itself decoded fine.
        """
        if self.source is None:
            raise ValueError(f"section {self.name!r} is not bound to a buffer")
        if self.size_of_raw_data == 0:
            return b""
        return self.source.read_bytes(self.pointer_to_raw_data, self.size_of_raw_data)


def _decode_section(reader: BoundedReader, off: int) -> Section:
    return Section(
        name_raw=reader.read_bytes(off, 8),
        virtual_size=reader.read_u32(off + 8),
        virtual_address=reader.read_u32(off + 12),
        size_of_raw_data=reader.read_u32(off + 16),
        pointer_to_raw_data=reader.read_u32(off + 20),
        pointer_to_relocations=reader.read_u32(off + 24),
        pointer_to_linenumbers=reader.read_u32(off + 28),
        number_of_relocations=reader.read_u16(off + 32),
        number_of_linenumbers=reader.read_u16(off + 34),
        characteristics=SectionFlagsSet.from_raw(reader.read_u32(off + 36)),
        source=reader,
    )


def decode_section_table(reader: BoundedReader, offset: int, count: int) -> Tuple[List[Section], int]:
    """Decode ``count`` consecutive 40-byte section headers starting at ``offset``."""
    expected = count * SECTION_HEADER_SIZE
    available = reader.remaining(offset)
    if available < expected:
        raise TruncatedSectionTable(expected=expected, available=available, offset=offset)

    sections: List[Section] = []
    for i in range(count):
        sections.append(_decode_section(reader, offset + i * SECTION_HEADER_SIZE))

    logger.debug("Section table at 0x%X: %d section(s)", offset, len(sections))
    return sections, offset + expected
