from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, ClassVar, Dict


def _err(code: str, message: str, **extra: Any) -> Dict[str, Any]:
    d = {"code": code, "message": message}
    d.update(extra)
    return d


class DecodeError(Exception):
    """
    Fatal decode failure. Carries a stable error code and the context
    values needed to explain it (offsets, offending values).
    """

    code: ClassVar[str] = "E_PE_DECODE"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        return _err(self.code, self.message, **self.context)


class InvalidDosMagic(DecodeError):
    code = "E_PE_BAD_DOS_MAGIC"

    def __init__(self, value: int) -> None:
        super().__init__(f"DOS header magic is 0x{value:04X}, expected 0x5A4D ('MZ').", value=value)
        self.value = value


class InvalidCoffMagic(DecodeError):
    code = "E_PE_BAD_NT_SIGNATURE"

    def __init__(self, value: bytes, offset: int) -> None:
        super().__init__("Missing PE\\0\\0 signature.", value=value.hex(), offset=offset)
        self.value = value
        self.offset = offset


class OutOfBounds(DecodeError):
    code = "E_PE_OUT_OF_BOUNDS"

    def __init__(self, offset: int, length: int, buffer_length: int) -> None:
        super().__init__(
            f"Read of {length} byte(s) at offset {offset} exceeds buffer of {buffer_length} byte(s).",
            offset=offset,
            length=length,
            buffer_length=buffer_length,
        )
        self.offset = offset
        self.length = length
        self.buffer_length = buffer_length


class UnsupportedOptionalMagic(DecodeError):
    code = "E_PE_OPT_BAD_MAGIC"

    def __init__(self, value: int) -> None:
        super().__init__(f"Optional header magic 0x{value:X} is not PE32 (0x10B) or PE32+ (0x20B).", value=value)
        self.value = value


class TruncatedSectionTable(DecodeError):
    code = "E_PE_SECTION_TABLE_TRUNCATED"

    def __init__(self, expected: int, available: int, offset: int) -> None:
        super().__init__(
            f"Section table needs {expected} byte(s) at offset {offset}, only {available} available.",
            expected=expected,
            available=available,
            offset=offset,
        )
        self.expected = expected
        self.available = available
        self.offset = offset


@dataclass(frozen=True)
class DecodeWarning:
    """Non-fatal inconsistency attached to a successfully decoded image."""

    code: ClassVar[str] = "W_PE_DECODE"

    @property
    def message(self) -> str:
        return self.code

    def to_dict(self) -> Dict[str, Any]:
        return _err(self.code, self.message, **asdict(self))


@dataclass(frozen=True)
class InconsistentOptionalHeaderSize(DecodeWarning):
    code: ClassVar[str] = "W_PE_OPT_SIZE_MISMATCH"

    declared: int
    decoded: int

    @property
    def message(self) -> str:
        return (
            f"SizeOfOptionalHeader is {self.declared} but the decoded optional header "
            f"spans {self.decoded} byte(s)."
        )


@dataclass(frozen=True)
class DirectoryCountClamped(DecodeWarning):
    code: ClassVar[str] = "W_PE_RVA_COUNT_CLAMPED"

    declared: int

    @property
    def message(self) -> str:
        return f"NumberOfRvaAndSizes is {self.declared}; only the first 16 directories are used."
