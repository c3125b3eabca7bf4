"""
Typed bit-flag sets over closed IntEnum declarations.

A set stores the raw integer exactly as it was decoded, unknown bits
included. Only declared enum members are ever yielded by iteration, in
declaration order. Some header fields pack a small enumerated value into a
multi-bit field (section alignment); those members are listed in ``fields``
and are matched by exact field value instead of by bit test.
"""
from __future__ import annotations

import enum
from typing import ClassVar, Generic, Iterator, List, Optional, Tuple, Type, TypeVar

from pexray.constants import (
    SECTION_ALIGN_MASK,
    DllCharacteristics,
    FileCharacteristics,
    SectionFlags,
)

K = TypeVar("K", bound=enum.IntEnum)
S = TypeVar("S", bound="BitFlagSet")


class BitFlagSet(Generic[K]):
    flag_type: ClassVar[Type[enum.IntEnum]]
    bits: ClassVar[int] = 32
    fields: ClassVar[Tuple[int, ...]] = ()

    __slots__ = ("_raw",)

    def __init__(self, raw: int = 0) -> None:
        raw = int(raw)
        if raw < 0 or raw >> self.bits:
            raise ValueError(f"{type(self).__name__} holds {self.bits}-bit values, got 0x{raw:X}")
        self._raw = raw

    @classmethod
    def from_raw(cls: Type[S], value: int) -> S:
        return cls(value)

    @classmethod
    def of(cls: Type[S], *flags: K) -> S:
        out = cls()
        for f in flags:
            out = out.insert(f)
        return out

    @property
    def raw(self) -> int:
        return self._raw

    def _member(self, flag: K) -> int:
        if not isinstance(flag, self.flag_type):
            raise TypeError(f"{type(self).__name__} expects {self.flag_type.__name__}, got {flag!r}")
        return int(flag)

    def _field_of(self, value: int) -> Optional[int]:
        for mask in self.fields:
            if value & mask and not value & ~mask:
                return mask
        return None

    def contains(self, flag: K) -> bool:
        value = self._member(flag)
        mask = self._field_of(value)
        if mask is not None:
            return (self._raw & mask) == value
        return value != 0 and (self._raw & value) == value

    def insert(self: S, flag: K) -> S:
        value = self._member(flag)
        mask = self._field_of(value)
        if mask is not None:
            return type(self)((self._raw & ~mask) | value)
        return type(self)(self._raw | value)

    def remove(self: S, flag: K) -> S:
        value = self._member(flag)
        mask = self._field_of(value)
        if mask is not None:
            if (self._raw & mask) != value:
                return self
            return type(self)(self._raw & ~mask)
        return type(self)(self._raw & ~value)

    def union(self: S, other: S) -> S:
        if type(other) is not type(self):
            raise TypeError(f"cannot combine {type(self).__name__} with {type(other).__name__}")
        return type(self)(self._raw | other._raw)

    def iter(self) -> Iterator[K]:
        for flag in self.flag_type:
            if self.contains(flag):  # type: ignore[arg-type]
                yield flag  # type: ignore[misc]

    def names(self) -> List[str]:
        return [f.name for f in self.iter()]

    @property
    def unknown_bits(self) -> int:
        """Raw bits not accounted for by any declared member."""
        field_mask = 0
        for mask in self.fields:
            field_mask |= mask
        single = 0
        for flag in self.flag_type:
            if self._field_of(int(flag)) is None:
                single |= int(flag)
        unknown = self._raw & ~(single | field_mask)
        for mask in self.fields:
            value = self._raw & mask
            if value and value not in {int(f) for f in self.flag_type}:
                unknown |= value
        return unknown

    def __iter__(self) -> Iterator[K]:
        return self.iter()

    def __contains__(self, flag: object) -> bool:
        if not isinstance(flag, self.flag_type):
            return False
        return self.contains(flag)  # type: ignore[arg-type]

    def __or__(self: S, other: object) -> S:
        if type(other) is not type(self):
            return NotImplemented
        return self.union(other)  # type: ignore[arg-type]

    def __int__(self) -> int:
        return self._raw

    def __bool__(self) -> bool:
        return self._raw != 0

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self._raw == other._raw  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((type(self), self._raw))

    def __repr__(self) -> str:
        names = "|".join(self.names()) or "0"
        width = self.bits // 4
        return f"{type(self).__name__}({names}, raw=0x{self._raw:0{width}X})"


class FileCharacteristicsSet(BitFlagSet[FileCharacteristics]):
    flag_type = FileCharacteristics
    bits = 16
    __slots__ = ()


class DllCharacteristicsSet(BitFlagSet[DllCharacteristics]):
    flag_type = DllCharacteristics
    bits = 16
    __slots__ = ()


class SectionFlagsSet(BitFlagSet[SectionFlags]):
    flag_type = SectionFlags
    bits = 32
    fields = (SECTION_ALIGN_MASK,)
    __slots__ = ()

    @property
    def alignment(self) -> Optional[int]:
        """Alignment in bytes from the IMAGE_SCN_ALIGN_* field, if one is declared."""
        field = (self._raw & SECTION_ALIGN_MASK) >> 20
        if field == 0 or field > 0xE:
            return None
        return 1 << (field - 1)
