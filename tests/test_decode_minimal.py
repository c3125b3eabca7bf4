from __future__ import annotations

import pytest

from pe_builder import PE32, PE32_PLUS, build_pe, optional_header, section_header
from pexray.constants import DataDirectoryIndex, MachineType, OptionalMagic
from pexray.errors import DecodeError
from pexray.image import Image, decode, decode_result


def _i386_console_exe() -> bytes:
    opt = optional_header(
        PE32,
        entry=0x1000,
        subsystem=3,
        dll_characteristics=0x8140,
        directories={DataDirectoryIndex.IMPORT_TABLE: (0x1080, 0x28)},
    )
    return build_pe(
        opt=opt,
        sections=[section_header(b".text", raw_ptr=0x200, raw_size=0x200)],
        raw={0x200: b"\x90" * 0x200},
        characteristics=0x0102,
    )


def _arm64_gui_exe() -> bytes:
    return build_pe(
        machine=0xAA64,
        opt=optional_header(PE32_PLUS),
        sections=[section_header(b".text")],
        raw={0x200: b"\x90" * 0x200},
        characteristics=0x0022,
        time_stamp=0x12345678,
    )


def test_decode_minimal_pe_success():
    image = decode(_i386_console_exe())

    assert image.coff.machine is MachineType.I386
    assert image.coff.number_of_sections == 1
    assert image.magic is OptionalMagic.PE32
    assert image.optional.address_of_entry_point == 0x1000
    assert image.optional.image_base == 0x400000
    assert image.sections[0].name == ".text"
    assert image.sections[0].raw_data() == b"\x90" * 0x200
    assert image.entry_point_section is image.sections[0]
    assert image.warnings == ()

    imp = image.optional.data_directories.get(DataDirectoryIndex.IMPORT_TABLE)
    assert (imp.virtual_address, imp.size) == (0x1080, 0x28)
    # present but zero: the slot is within NumberOfRvaAndSizes
    exp = image.optional.data_directories.get(DataDirectoryIndex.EXPORT_TABLE)
    assert exp is not None and exp.size == 0


def test_arm64_pe32plus_detected():
    image = decode(_arm64_gui_exe())
    assert image.coff.machine is MachineType.ARM64
    assert image.is_pe32_plus is True
    assert image.magic == 0x20B
    assert image.optional.image_base == 0x140000000
    assert image.optional.base_of_data is None
    assert len(image.sections) == 1


def test_rva_to_offset_uses_section_table():
    image = decode(_i386_console_exe())
    assert image.rva_to_offset(0x1080) == 0x280
    assert image.section_for_rva(0x1080).name == ".text"
    assert image.rva_to_offset(0x5000) is None
    assert image.rva_to_offset(0) is None


def test_rva_to_offset_stops_at_raw_data_end():
    # virtual size far larger than the raw bytes backing it
    sh = section_header(b".bss", virtual_address=0x1000, virtual_size=0x10000, raw_ptr=0x200, raw_size=0x10)
    image = decode(build_pe(opt=optional_header(PE32), sections=[sh], raw={0x200: b"\xab" * 0x10}))
    assert image.section_for_rva(0x9000) is image.sections[0]
    assert image.rva_to_offset(0x9000) is None
    assert image.rva_to_offset(0x1010) is None
    assert image.rva_to_offset(0x1004) == 0x204
    assert image.rva_to_offset(0x100F) == 0x20F


def test_rva_to_offset_none_when_raw_pointer_past_buffer():
    sh = section_header(b".data", virtual_address=0x2000, raw_ptr=0x10000, raw_size=0x200)
    image = decode(build_pe(opt=optional_header(PE32), sections=[sh]))
    assert image.section_for_rva(0x2010) is image.sections[0]
    assert image.rva_to_offset(0x2010) is None


def test_image_is_immutable():
    image = decode(_i386_console_exe())
    with pytest.raises(AttributeError):
        image.sections = ()  # type: ignore[misc]
    with pytest.raises(AttributeError):
        image.coff.number_of_sections = 5  # type: ignore[misc]


def test_decode_is_deterministic():
    data = _i386_console_exe()
    assert decode(data) == decode(data)


def test_decode_result_success_and_failure():
    ok = decode_result(_i386_console_exe())
    assert ok.ok is True
    assert isinstance(ok.image, Image)
    assert ok.error is None

    bad = decode_result(b"hello world")
    assert bad.ok is False
    assert bad.image is None
    assert isinstance(bad.error, DecodeError)
