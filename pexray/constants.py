from __future__ import annotations

import enum

IMAGE_DOS_SIGNATURE = 0x5A4D  # b"MZ" read as little-endian u16
IMAGE_NT_SIGNATURE = b"PE\x00\x00"

DOS_E_LFANEW_OFFSET = 0x3C
COFF_HEADER_SIZE = 24  # signature + IMAGE_FILE_HEADER
SECTION_HEADER_SIZE = 40
DATA_DIRECTORY_SIZE = 8
NUMBER_OF_DIRECTORY_ENTRIES = 16


class MachineType(enum.IntEnum):
    UNKNOWN = 0x0
    ALPHA = 0x184
    ALPHA64 = 0x284
    AM33 = 0x1D3
    AMD64 = 0x8664
    ARM = 0x1C0
    ARM64 = 0xAA64
    ARMNT = 0x1C4
    EBC = 0xEBC
    I386 = 0x14C
    IA64 = 0x200
    LOONGARCH32 = 0x6232
    LOONGARCH64 = 0x6264
    M32R = 0x9041
    MIPS16 = 0x266
    MIPSFPU = 0x366
    MIPSFPU16 = 0x466
    POWERPC = 0x1F0
    POWERPCFP = 0x1F1
    R4000 = 0x166
    RISCV32 = 0x5032
    RISCV64 = 0x5064
    RISCV128 = 0x5128
    SH3 = 0x1A2
    SH3DSP = 0x1A3
    SH4 = 0x1A6
    SH5 = 0x1A8
    THUMB = 0x1C2
    WCEMIPSV2 = 0x169

    @classmethod
    def from_raw(cls, value: int) -> "MachineType":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class OptionalMagic(enum.IntEnum):
    PE32 = 0x10B
    PE32_PLUS = 0x20B
    ROM = 0x107


class Subsystem(enum.IntEnum):
    UNKNOWN = 0
    NATIVE = 1
    WINDOWS_GUI = 2
    WINDOWS_CUI = 3
    OS2_CUI = 5
    POSIX_CUI = 7
    NATIVE_WINDOWS = 8
    WINDOWS_CE_GUI = 9
    EFI_APPLICATION = 10
    EFI_BOOT_SERVICE_DRIVER = 11
    EFI_RUNTIME_DRIVER = 12
    EFI_ROM = 13
    XBOX = 14
    WINDOWS_BOOT_APPLICATION = 16

    @classmethod
    def from_raw(cls, value: int) -> "Subsystem":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class DataDirectoryIndex(enum.IntEnum):
    EXPORT_TABLE = 0
    IMPORT_TABLE = 1
    RESOURCE_TABLE = 2
    EXCEPTION_TABLE = 3
    CERTIFICATE_TABLE = 4
    BASE_RELOCATION_TABLE = 5
    DEBUG = 6
    ARCHITECTURE = 7
    GLOBAL_PTR = 8
    TLS_TABLE = 9
    LOAD_CONFIG_TABLE = 10
    BOUND_IMPORT = 11
    IAT = 12
    DELAY_IMPORT_DESCRIPTOR = 13
    CLR_RUNTIME_HEADER = 14
    RESERVED = 15


class FileCharacteristics(enum.IntEnum):
    RELOCS_STRIPPED = 0x0001
    EXECUTABLE_IMAGE = 0x0002
    LINE_NUMS_STRIPPED = 0x0004
    LOCAL_SYMS_STRIPPED = 0x0008
    AGGRESSIVE_WS_TRIM = 0x0010
    LARGE_ADDRESS_AWARE = 0x0020
    BYTES_REVERSED_LO = 0x0080
    MACHINE_32BIT = 0x0100
    DEBUG_STRIPPED = 0x0200
    REMOVABLE_RUN_FROM_SWAP = 0x0400
    NET_RUN_FROM_SWAP = 0x0800
    SYSTEM = 0x1000
    DLL = 0x2000
    UP_SYSTEM_ONLY = 0x4000
    BYTES_REVERSED_HI = 0x8000


class DllCharacteristics(enum.IntEnum):
    HIGH_ENTROPY_VA = 0x0020
    DYNAMIC_BASE = 0x0040
    FORCE_INTEGRITY = 0x0080
    NX_COMPAT = 0x0100
    NO_ISOLATION = 0x0200
    NO_SEH = 0x0400
    NO_BIND = 0x0800
    APPCONTAINER = 0x1000
    WDM_DRIVER = 0x2000
    GUARD_CF = 0x4000
    TERMINAL_SERVER_AWARE = 0x8000


# IMAGE_SCN_ALIGN_* share one 4-bit field; everything else is a single bit.
SECTION_ALIGN_MASK = 0x00F00000


class SectionFlags(enum.IntEnum):
    TYPE_NO_PAD = 0x00000008
    CNT_CODE = 0x00000020
    CNT_INITIALIZED_DATA = 0x00000040
    CNT_UNINITIALIZED_DATA = 0x00000080
    LNK_INFO = 0x00000200
    LNK_REMOVE = 0x00000800
    LNK_COMDAT = 0x00001000
    GPREL = 0x00008000
    ALIGN_1BYTES = 0x00100000
    ALIGN_2BYTES = 0x00200000
    ALIGN_4BYTES = 0x00300000
    ALIGN_8BYTES = 0x00400000
    ALIGN_16BYTES = 0x00500000
    ALIGN_32BYTES = 0x00600000
    ALIGN_64BYTES = 0x00700000
    ALIGN_128BYTES = 0x00800000
    ALIGN_256BYTES = 0x00900000
    ALIGN_512BYTES = 0x00A00000
    ALIGN_1024BYTES = 0x00B00000
    ALIGN_2048BYTES = 0x00C00000
    ALIGN_4096BYTES = 0x00D00000
    ALIGN_8192BYTES = 0x00E00000
    LNK_NRELOC_OVFL = 0x01000000
    MEM_DISCARDABLE = 0x02000000
    MEM_NOT_CACHED = 0x04000000
    MEM_NOT_PAGED = 0x08000000
    MEM_SHARED = 0x10000000
    MEM_EXECUTE = 0x20000000
    MEM_READ = 0x40000000
    MEM_WRITE = 0x80000000
