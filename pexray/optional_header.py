from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import ClassVar, Iterator, List, NamedTuple, Optional, Tuple, Union

from pexray.constants import (
    DATA_DIRECTORY_SIZE,
    NUMBER_OF_DIRECTORY_ENTRIES,
    DataDirectoryIndex,
    OptionalMagic,
    Subsystem,
)
from pexray.errors import (
    DecodeWarning,
    DirectoryCountClamped,
    InconsistentOptionalHeaderSize,
    UnsupportedOptionalMagic,
)
from pexray.flags import DllCharacteristicsSet
from pexray.reader import BoundedReader

logger = logging.getLogger(__name__)


class Version(NamedTuple):
    major: int
    minor: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


@dataclass(frozen=True)
class DataDirectory:
    virtual_address: int
    size: int


class DataDirectories:
    """
    The sixteen IMAGE_DATA_DIRECTORY slots. Slots at or beyond
    NumberOfRvaAndSizes are absent and report None, never a zero entry.
    """

    __slots__ = ("_slots", "declared_count")

    def __init__(self, entries: List[DataDirectory], declared_count: int) -> None:
        if len(entries) > NUMBER_OF_DIRECTORY_ENTRIES:
            raise ValueError("at most 16 data directories")
        padding: List[Optional[DataDirectory]] = [None] * (NUMBER_OF_DIRECTORY_ENTRIES - len(entries))
        self._slots: Tuple[Optional[DataDirectory], ...] = tuple(entries) + tuple(padding)
        self.declared_count = declared_count

    @property
    def valid_count(self) -> int:
        return min(self.declared_count, NUMBER_OF_DIRECTORY_ENTRIES)

    def get(self, index: DataDirectoryIndex) -> Optional[DataDirectory]:
        return self._slots[DataDirectoryIndex(index)]

    def is_present(self, index: DataDirectoryIndex) -> bool:
        return self.get(index) is not None

    def __getitem__(self, index: DataDirectoryIndex) -> Optional[DataDirectory]:
        return self.get(index)

    def __iter__(self) -> Iterator[Tuple[DataDirectoryIndex, DataDirectory]]:
        for idx, entry in zip(DataDirectoryIndex, self._slots):
            if entry is not None:
                yield idx, entry

    def __len__(self) -> int:
        return self.valid_count

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DataDirectories):
            return NotImplemented
        return self._slots == other._slots and self.declared_count == other.declared_count

    def __hash__(self) -> int:
        return hash((self._slots, self.declared_count))

    def __repr__(self) -> str:
        present = ", ".join(f"{idx.name}=0x{d.virtual_address:X}+0x{d.size:X}" for idx, d in self)
        return f"DataDirectories({present})"


@dataclass(frozen=True)
class OptionalHeader:
    magic: ClassVar[OptionalMagic]

    linker_version: Version
    size_of_code: int
    size_of_initialized_data: int
    size_of_uninitialized_data: int
    address_of_entry_point: int
    base_of_code: int
    image_base: int
    section_alignment: int
    file_alignment: int
    os_version: Version
    image_version: Version
    subsystem_version: Version
    win32_version_value: int
    size_of_image: int
    size_of_headers: int
    checksum: int
    subsystem_raw: int
    dll_characteristics: DllCharacteristicsSet
    size_of_stack_reserve: int
    size_of_stack_commit: int
    size_of_heap_reserve: int
    size_of_heap_commit: int
    loader_flags: int
    number_of_rva_and_sizes: int
    data_directories: DataDirectories
    size: int

    @property
    def subsystem(self) -> Subsystem:
        return Subsystem.from_raw(self.subsystem_raw)

    @property
    def is_pe32_plus(self) -> bool:
        return self.magic == OptionalMagic.PE32_PLUS


@dataclass(frozen=True)
class OptionalHeader32(OptionalHeader):
    magic: ClassVar[OptionalMagic] = OptionalMagic.PE32

    base_of_data: int


@dataclass(frozen=True)
class OptionalHeader64(OptionalHeader):
    magic: ClassVar[OptionalMagic] = OptionalMagic.PE32_PLUS

    # PE32+ has no BaseOfData field.
    base_of_data: None = None


AnyOptionalHeader = Union[OptionalHeader32, OptionalHeader64]


class _Layout(NamedTuple):
    word: int  # width of ImageBase and the stack/heap sizes
    base_of_data: Optional[int]
    image_base: int
    size_of_stack_reserve: int
    size_of_stack_commit: int
    size_of_heap_reserve: int
    size_of_heap_commit: int
    loader_flags: int
    number_of_rva_and_sizes: int
    data_directories: int


PE32_LAYOUT = _Layout(
    word=4,
    base_of_data=0x18,
    image_base=0x1C,
    size_of_stack_reserve=0x48,
    size_of_stack_commit=0x4C,
    size_of_heap_reserve=0x50,
    size_of_heap_commit=0x54,
    loader_flags=0x58,
    number_of_rva_and_sizes=0x5C,
    data_directories=0x60,
)

PE32_PLUS_LAYOUT = _Layout(
    word=8,
    base_of_data=None,
    image_base=0x18,
    size_of_stack_reserve=0x48,
    size_of_stack_commit=0x50,
    size_of_heap_reserve=0x58,
    size_of_heap_commit=0x60,
    loader_flags=0x68,
    number_of_rva_and_sizes=0x6C,
    data_directories=0x70,
)

# Offsets identical in both variants.
_MAJOR_LINKER = 0x02
_MINOR_LINKER = 0x03
_SIZE_OF_CODE = 0x04
_SIZE_OF_INIT_DATA = 0x08
_SIZE_OF_UNINIT_DATA = 0x0C
_ENTRY_POINT = 0x10
_BASE_OF_CODE = 0x14
_SECTION_ALIGNMENT = 0x20
_FILE_ALIGNMENT = 0x24
_OS_VERSION = 0x28
_IMAGE_VERSION = 0x2C
_SUBSYSTEM_VERSION = 0x30
_WIN32_VERSION_VALUE = 0x34
_SIZE_OF_IMAGE = 0x38
_SIZE_OF_HEADERS = 0x3C
_CHECKSUM = 0x40
_SUBSYSTEM = 0x44
_DLL_CHARACTERISTICS = 0x46


def _layout_for(magic: int) -> _Layout:
    if magic == OptionalMagic.PE32:
        return PE32_LAYOUT
    if magic == OptionalMagic.PE32_PLUS:
        return PE32_PLUS_LAYOUT
    raise UnsupportedOptionalMagic(magic)


def _read_directories(reader: BoundedReader, offset: int, count: int) -> List[DataDirectory]:
    reader.require(offset, count * DATA_DIRECTORY_SIZE)
    out: List[DataDirectory] = []
    for i in range(count):
        ent = offset + i * DATA_DIRECTORY_SIZE
        out.append(DataDirectory(virtual_address=reader.read_u32(ent), size=reader.read_u32(ent + 4)))
    return out


def decode_optional_header(
    reader: BoundedReader,
    offset: int,
    declared_size: int,
) -> Tuple[Optional[AnyOptionalHeader], int, List[DecodeWarning]]:
    """
    Decode the PE32 or PE32+ optional header at ``offset``.

    The variant is chosen by the header's own magic and fixes the header's
    length (fixed fields plus the full 16-slot directory table); the section
    table follows immediately. ``declared_size`` (SizeOfOptionalHeader) is
    only cross-checked. Returns (header, next_offset, warnings).
    """
    warnings: List[DecodeWarning] = []
    if declared_size == 0:
        logger.debug("No optional header (SizeOfOptionalHeader=0)")
        return None, offset, warnings

    magic = reader.read_u16(offset)
    layout = _layout_for(magic)
    decoded_size = layout.data_directories + NUMBER_OF_DIRECTORY_ENTRIES * DATA_DIRECTORY_SIZE
    reader.require(offset, decoded_size)

    def u16(rel: int) -> int:
        return reader.read_u16(offset + rel)

    def u32(rel: int) -> int:
        return reader.read_u32(offset + rel)

    def word(rel: int) -> int:
        if layout.word == 8:
            return reader.read_u64(offset + rel)
        return reader.read_u32(offset + rel)

    declared_dirs = u32(layout.number_of_rva_and_sizes)
    dir_count = min(declared_dirs, NUMBER_OF_DIRECTORY_ENTRIES)
    if declared_dirs > NUMBER_OF_DIRECTORY_ENTRIES:
        logger.warning("NumberOfRvaAndSizes=%d exceeds 16; extra entries ignored", declared_dirs)
        warnings.append(DirectoryCountClamped(declared=declared_dirs))
    directories = DataDirectories(
        _read_directories(reader, offset + layout.data_directories, dir_count),
        declared_count=declared_dirs,
    )

    fields = dict(
        linker_version=Version(reader.read_u8(offset + _MAJOR_LINKER), reader.read_u8(offset + _MINOR_LINKER)),
        size_of_code=u32(_SIZE_OF_CODE),
        size_of_initialized_data=u32(_SIZE_OF_INIT_DATA),
        size_of_uninitialized_data=u32(_SIZE_OF_UNINIT_DATA),
        address_of_entry_point=u32(_ENTRY_POINT),
        base_of_code=u32(_BASE_OF_CODE),
        image_base=word(layout.image_base),
        section_alignment=u32(_SECTION_ALIGNMENT),
        file_alignment=u32(_FILE_ALIGNMENT),
        os_version=Version(u16(_OS_VERSION), u16(_OS_VERSION + 2)),
        image_version=Version(u16(_IMAGE_VERSION), u16(_IMAGE_VERSION + 2)),
        subsystem_version=Version(u16(_SUBSYSTEM_VERSION), u16(_SUBSYSTEM_VERSION + 2)),
        win32_version_value=u32(_WIN32_VERSION_VALUE),
        size_of_image=u32(_SIZE_OF_IMAGE),
        size_of_headers=u32(_SIZE_OF_HEADERS),
        checksum=u32(_CHECKSUM),
        subsystem_raw=u16(_SUBSYSTEM),
        dll_characteristics=DllCharacteristicsSet.from_raw(u16(_DLL_CHARACTERISTICS)),
        size_of_stack_reserve=word(layout.size_of_stack_reserve),
        size_of_stack_commit=word(layout.size_of_stack_commit),
        size_of_heap_reserve=word(layout.size_of_heap_reserve),
        size_of_heap_commit=word(layout.size_of_heap_commit),
        loader_flags=u32(layout.loader_flags),
        number_of_rva_and_sizes=declared_dirs,
        data_directories=directories,
        size=decoded_size,
    )

    header: AnyOptionalHeader
    if layout.base_of_data is not None:
        header = OptionalHeader32(base_of_data=u32(layout.base_of_data), **fields)
    else:
        header = OptionalHeader64(**fields)

    if declared_size != decoded_size:
        logger.warning(
            "SizeOfOptionalHeader=%d but decoded %s header spans %d bytes",
            declared_size,
            header.magic.name,
            decoded_size,
        )
        warnings.append(InconsistentOptionalHeaderSize(declared=declared_size, decoded=decoded_size))

    logger.debug(
        "Optional header %s at 0x%X: entry=0x%X image_base=0x%X directories=%d",
        header.magic.name,
        offset,
        header.address_of_entry_point,
        header.image_base,
        dir_count,
    )
    return header, offset + decoded_size, warnings
