from __future__ import annotations

import struct
from typing import Dict, Iterable, Optional, Tuple

PE32 = 0x10B
PE32_PLUS = 0x20B


def dos_stub(e_lfanew: int = 0x80, magic: bytes = b"MZ") -> bytearray:
    # 64-byte DOS header, e_lfanew at 0x3C, padded up to e_lfanew
    dos = bytearray(magic + b"\x00" * 58)
    dos += struct.pack("<I", e_lfanew)
    if len(dos) < e_lfanew:
        dos += b"\x00" * (e_lfanew - len(dos))
    return dos


def coff_header(
    *,
    machine: int = 0x14C,
    num_sections: int = 0,
    time_stamp: int = 0,
    size_opt: int = 0,
    characteristics: int = 0x0002,
    signature: bytes = b"PE\x00\x00",
) -> bytes:
    return signature + struct.pack("<HHIIIHH", machine, num_sections, time_stamp, 0, 0, size_opt, characteristics)


def optional_header(
    magic: int = PE32,
    *,
    num_rva: int = 16,
    size: Optional[int] = None,
    entry: int = 0x1000,
    image_base: Optional[int] = None,
    base_of_data: int = 0x2000,
    subsystem: int = 2,
    dll_characteristics: int = 0,
    directories: Optional[Dict[int, Tuple[int, int]]] = None,
) -> bytearray:
    """PE32 or PE32+ optional header with the full 16-slot directory table."""
    plus = magic == PE32_PLUS
    dd_off = 0x70 if plus else 0x60
    if size is None:
        size = dd_off + 16 * 8
    opt = bytearray(max(size, dd_off + 16 * 8))
    struct.pack_into("<H", opt, 0x00, magic)
    struct.pack_into("<BB", opt, 0x02, 14, 29)      # linker 14.29
    struct.pack_into("<I", opt, 0x04, 0x800)        # SizeOfCode
    struct.pack_into("<I", opt, 0x10, entry)        # AddressOfEntryPoint
    struct.pack_into("<I", opt, 0x14, 0x1000)       # BaseOfCode
    if plus:
        struct.pack_into("<Q", opt, 0x18, 0x140000000 if image_base is None else image_base)
    else:
        struct.pack_into("<I", opt, 0x18, base_of_data)
        struct.pack_into("<I", opt, 0x1C, 0x400000 if image_base is None else image_base)
    struct.pack_into("<I", opt, 0x20, 0x1000)       # SectionAlignment
    struct.pack_into("<I", opt, 0x24, 0x200)        # FileAlignment
    struct.pack_into("<HH", opt, 0x28, 6, 0)        # OS version
    struct.pack_into("<HH", opt, 0x30, 6, 1)        # Subsystem version
    struct.pack_into("<I", opt, 0x38, 0x3000)       # SizeOfImage
    struct.pack_into("<I", opt, 0x3C, 0x400)        # SizeOfHeaders
    struct.pack_into("<H", opt, 0x44, subsystem)
    struct.pack_into("<H", opt, 0x46, dll_characteristics)
    if plus:
        struct.pack_into("<QQQQ", opt, 0x48, 0x100000, 0x1000, 0x100000, 0x1000)
        struct.pack_into("<I", opt, 0x6C, num_rva)
    else:
        struct.pack_into("<IIII", opt, 0x48, 0x100000, 0x1000, 0x100000, 0x1000)
        struct.pack_into("<I", opt, 0x5C, num_rva)
    for idx, (rva, sz) in (directories or {}).items():
        struct.pack_into("<II", opt, dd_off + idx * 8, rva, sz)
    return opt[:size]


def section_header(
    name: bytes = b".text",
    *,
    virtual_size: int = 0x100,
    virtual_address: int = 0x1000,
    raw_size: int = 0x200,
    raw_ptr: int = 0x200,
    characteristics: int = 0x60000020,
) -> bytes:
    sh = bytearray(40)
    sh[0 : len(name)] = name[:8]
    struct.pack_into("<IIII", sh, 8, virtual_size, virtual_address, raw_size, raw_ptr)
    struct.pack_into("<I", sh, 36, characteristics)
    return bytes(sh)


def build_pe(
    *,
    machine: int = 0x14C,
    opt: Optional[bytes] = None,
    sections: Iterable[bytes] = (),
    raw: Optional[Dict[int, bytes]] = None,
    e_lfanew: int = 0x80,
    time_stamp: int = 0x5F3759DF,
    characteristics: int = 0x0002,
    size_opt: Optional[int] = None,
) -> bytes:
    """
    DOS stub + COFF header + optional header + section table, then each
    ``raw`` blob placed at its file offset. ``size_opt`` overrides the
    SizeOfOptionalHeader written to the COFF header.
    """
    sects = list(sections)
    opt = bytes(opt or b"")
    blob = bytes(dos_stub(e_lfanew))
    blob += coff_header(
        machine=machine,
        num_sections=len(sects),
        time_stamp=time_stamp,
        size_opt=len(opt) if size_opt is None else size_opt,
        characteristics=characteristics,
    )
    blob += opt + b"".join(sects)
    for off, data in sorted((raw or {}).items()):
        if len(blob) < off:
            blob += b"\x00" * (off - len(blob))
        blob = blob[:off] + data + blob[off + len(data) :]
    return blob
