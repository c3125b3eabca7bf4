from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Tuple

from pexray.constants import (
    COFF_HEADER_SIZE,
    DOS_E_LFANEW_OFFSET,
    IMAGE_DOS_SIGNATURE,
    IMAGE_NT_SIGNATURE,
    FileCharacteristics,
    MachineType,
)
from pexray.errors import InvalidCoffMagic, InvalidDosMagic, OutOfBounds
from pexray.flags import FileCharacteristicsSet
from pexray.reader import BoundedReader

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DosHeader:
    e_magic: int
    e_lfanew: int


@dataclass(frozen=True)
class CoffHeader:
    machine_raw: int
    number_of_sections: int
    time_date_stamp: int
    pointer_to_symbol_table: int
    number_of_symbols: int
    size_of_optional_header: int
    characteristics: FileCharacteristicsSet

    @property
    def machine(self) -> MachineType:
        return MachineType.from_raw(self.machine_raw)

    @property
    def timestamp(self) -> datetime:
        # The stored u32 is seconds since the Unix epoch; it always fits.
        return datetime.fromtimestamp(self.time_date_stamp, tz=timezone.utc)

    @property
    def is_dll(self) -> bool:
        return self.characteristics.contains(FileCharacteristics.DLL)


def decode_dos_header(reader: BoundedReader) -> Tuple[DosHeader, int]:
    """
    Validate the MZ stub and return it with the offset of the PE signature.
    Only e_magic and e_lfanew are examined.
    """
    e_magic = reader.read_u16(0)
    if e_magic != IMAGE_DOS_SIGNATURE:
        raise InvalidDosMagic(e_magic)

    e_lfanew = reader.read_u32(DOS_E_LFANEW_OFFSET)
    if e_lfanew >= len(reader):
        raise OutOfBounds(offset=e_lfanew, length=COFF_HEADER_SIZE, buffer_length=len(reader))

    logger.debug("DOS header ok, e_lfanew=0x%X", e_lfanew)
    return DosHeader(e_magic=e_magic, e_lfanew=e_lfanew), e_lfanew


def decode_coff_header(reader: BoundedReader, offset: int) -> Tuple[CoffHeader, int]:
    """Decode the PE signature and IMAGE_FILE_HEADER at ``offset``."""
    signature = reader.read_bytes(offset, 4)
    if signature != IMAGE_NT_SIGNATURE:
        raise InvalidCoffMagic(signature, offset)
    reader.require(offset, COFF_HEADER_SIZE)

    coff = CoffHeader(
        machine_raw=reader.read_u16(offset + 4),
        number_of_sections=reader.read_u16(offset + 6),
        time_date_stamp=reader.read_u32(offset + 8),
        pointer_to_symbol_table=reader.read_u32(offset + 12),
        number_of_symbols=reader.read_u32(offset + 16),
        size_of_optional_header=reader.read_u16(offset + 20),
        characteristics=FileCharacteristicsSet.from_raw(reader.read_u16(offset + 22)),
    )
    logger.debug(
        "COFF header at 0x%X: machine=0x%04X sections=%d optional_size=%d",
        offset,
        coff.machine_raw,
        coff.number_of_sections,
        coff.size_of_optional_header,
    )
    return coff, offset + COFF_HEADER_SIZE
