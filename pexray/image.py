from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from pexray.constants import OptionalMagic
from pexray.errors import DecodeError, DecodeWarning
from pexray.headers import CoffHeader, DosHeader, decode_coff_header, decode_dos_header
from pexray.optional_header import AnyOptionalHeader, decode_optional_header
from pexray.reader import BoundedReader, BytesLike
from pexray.sections import Section, decode_section_table

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Image:
    dos: DosHeader
    coff: CoffHeader
    optional: Optional[AnyOptionalHeader]
    sections: Tuple[Section, ...]
    warnings: Tuple[DecodeWarning, ...] = ()

    @property
    def magic(self) -> Optional[OptionalMagic]:
        if self.optional is None:
            return None
        return self.optional.magic

    @property
    def is_pe32_plus(self) -> bool:
        return self.optional is not None and self.optional.is_pe32_plus

    @property
    def is_dll(self) -> bool:
        return self.coff.is_dll

    def section_for_rva(self, rva: int) -> Optional[Section]:
        """First section, in table order, whose span covers ``rva``."""
        if rva <= 0:
            return None
        for s in self.sections:
            if s.contains_rva(rva):
                return s
        return None

    def rva_to_offset(self, rva: int) -> Optional[int]:
        s = self.section_for_rva(rva)
        if s is None:
            return None
        delta = rva - s.virtual_address
        if delta >= s.size_of_raw_data:
            return None
        off = s.pointer_to_raw_data + delta
        if s.source is not None and off >= len(s.source):
            return None
        return off

    @property
    def entry_point_section(self) -> Optional[Section]:
        if self.optional is None:
            return None
        return self.section_for_rva(self.optional.address_of_entry_point)


@dataclass(frozen=True)
class DecodeResult:
    image: Optional[Image]
    error: Optional[DecodeError]

    @property
    def ok(self) -> bool:
        return self.image is not None


def decode(data: BytesLike) -> Image:
    """
    Decode the PE header chain of ``data``.

    Stages run strictly in order (DOS stub, COFF header, optional header,
    section table) and the first failure is raised as a DecodeError; no
    partially decoded image is ever returned.
    """
    reader = BoundedReader(data)

    dos, coff_off = decode_dos_header(reader)
    coff, opt_off = decode_coff_header(reader, coff_off)
    optional, sect_off, warnings = decode_optional_header(reader, opt_off, coff.size_of_optional_header)
    sections, _ = decode_section_table(reader, sect_off, coff.number_of_sections)

    image = Image(
        dos=dos,
        coff=coff,
        optional=optional,
        sections=tuple(sections),
        warnings=tuple(warnings),
    )
    logger.debug(
        "Decoded %s image: %d section(s), %d warning(s)",
        image.magic.name if image.magic is not None else "COFF-only",
        len(image.sections),
        len(image.warnings),
    )
    return image


def decode_result(data: BytesLike) -> DecodeResult:
    try:
        return DecodeResult(image=decode(data), error=None)
    except DecodeError as e:
        logger.debug("Decode failed: %s", e.code)
        return DecodeResult(image=None, error=e)
