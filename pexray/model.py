from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from pexray.flags import BitFlagSet
from pexray.image import Image
from pexray.optional_header import AnyOptionalHeader
from pexray.sections import Section


def utc_iso(ts: datetime) -> str:
    """
    UTC timestamp in ISO-8601 with 'Z' suffix, seconds precision.
    Example: 2020-08-15T03:43:27Z
    """
    return ts.replace(microsecond=0).isoformat().replace("+00:00", "Z")


class FlagsReport(BaseModel):
    raw: int
    names: List[str] = Field(default_factory=list)
    unknown_bits: int = 0


class DosReport(BaseModel):
    e_lfanew: int


class CoffReport(BaseModel):
    machine: str
    machine_raw: int
    number_of_sections: int
    time_date_stamp: int
    timestamp_utc: str
    pointer_to_symbol_table: int
    number_of_symbols: int
    size_of_optional_header: int
    characteristics: FlagsReport
    is_dll: bool


class DirectoryReport(BaseModel):
    name: str
    index: int
    virtual_address: int
    size: int


class OptionalReport(BaseModel):
    magic: str
    magic_raw: int
    is_pe32_plus: bool
    linker_version: str
    size_of_code: int
    size_of_initialized_data: int
    size_of_uninitialized_data: int
    address_of_entry_point: int
    base_of_code: int
    base_of_data: Optional[int] = None
    image_base: int
    section_alignment: int
    file_alignment: int
    os_version: str
    image_version: str
    subsystem_version: str
    size_of_image: int
    size_of_headers: int
    checksum: int
    subsystem: str
    subsystem_raw: int
    dll_characteristics: FlagsReport
    size_of_stack_reserve: int
    size_of_stack_commit: int
    size_of_heap_reserve: int
    size_of_heap_commit: int
    number_of_rva_and_sizes: int
    data_directories: List[DirectoryReport] = Field(default_factory=list)


class SectionReport(BaseModel):
    name: str
    name_raw_hex: str
    virtual_size: int
    virtual_address: int
    raw_size: int
    raw_ptr: int
    pointer_to_relocations: int
    pointer_to_linenumbers: int
    number_of_relocations: int
    number_of_linenumbers: int
    characteristics: FlagsReport
    alignment: Optional[int] = None


class ImageReport(BaseModel):
    schema_version: str = "1.0"
    dos: DosReport
    coff: CoffReport
    optional: Optional[OptionalReport] = None
    sections: List[SectionReport] = Field(default_factory=list)
    entry_point_section: Optional[str] = None
    warnings: List[Dict[str, Any]] = Field(default_factory=list)


def _flags(s: BitFlagSet) -> FlagsReport:
    return FlagsReport(raw=s.raw, names=s.names(), unknown_bits=s.unknown_bits)


def _optional(opt: AnyOptionalHeader) -> OptionalReport:
    return OptionalReport(
        magic=opt.magic.name,
        magic_raw=int(opt.magic),
        is_pe32_plus=opt.is_pe32_plus,
        linker_version=str(opt.linker_version),
        size_of_code=opt.size_of_code,
        size_of_initialized_data=opt.size_of_initialized_data,
        size_of_uninitialized_data=opt.size_of_uninitialized_data,
        address_of_entry_point=opt.address_of_entry_point,
        base_of_code=opt.base_of_code,
        base_of_data=opt.base_of_data,
        image_base=opt.image_base,
        section_alignment=opt.section_alignment,
        file_alignment=opt.file_alignment,
        os_version=str(opt.os_version),
        image_version=str(opt.image_version),
        subsystem_version=str(opt.subsystem_version),
        size_of_image=opt.size_of_image,
        size_of_headers=opt.size_of_headers,
        checksum=opt.checksum,
        subsystem=opt.subsystem.name,
        subsystem_raw=opt.subsystem_raw,
        dll_characteristics=_flags(opt.dll_characteristics),
        size_of_stack_reserve=opt.size_of_stack_reserve,
        size_of_stack_commit=opt.size_of_stack_commit,
        size_of_heap_reserve=opt.size_of_heap_reserve,
        size_of_heap_commit=opt.size_of_heap_commit,
        number_of_rva_and_sizes=opt.number_of_rva_and_sizes,
        data_directories=[
            DirectoryReport(name=idx.name, index=int(idx), virtual_address=d.virtual_address, size=d.size)
            for idx, d in opt.data_directories
        ],
    )


def _section(s: Section) -> SectionReport:
    return SectionReport(
        name=s.name,
        name_raw_hex=s.name_raw.hex(),
        virtual_size=s.virtual_size,
        virtual_address=s.virtual_address,
        raw_size=s.size_of_raw_data,
        raw_ptr=s.pointer_to_raw_data,
        pointer_to_relocations=s.pointer_to_relocations,
        pointer_to_linenumbers=s.pointer_to_linenumbers,
        number_of_relocations=s.number_of_relocations,
        number_of_linenumbers=s.number_of_linenumbers,
        characteristics=_flags(s.characteristics),
        alignment=s.alignment,
    )


def build_report(image: Image, *, schema_version: str = "1.0") -> ImageReport:
    coff = image.coff
    ep = image.entry_point_section
    return ImageReport(
        schema_version=schema_version,
        dos=DosReport(e_lfanew=image.dos.e_lfanew),
        coff=CoffReport(
            machine=coff.machine.name,
            machine_raw=coff.machine_raw,
            number_of_sections=coff.number_of_sections,
            time_date_stamp=coff.time_date_stamp,
            timestamp_utc=utc_iso(coff.timestamp),
            pointer_to_symbol_table=coff.pointer_to_symbol_table,
            number_of_symbols=coff.number_of_symbols,
            size_of_optional_header=coff.size_of_optional_header,
            characteristics=_flags(coff.characteristics),
            is_dll=coff.is_dll,
        ),
        optional=_optional(image.optional) if image.optional is not None else None,
        sections=[_section(s) for s in image.sections],
        entry_point_section=ep.name if ep is not None else None,
        warnings=[w.to_dict() for w in image.warnings],
    )
