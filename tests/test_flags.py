from __future__ import annotations

import pytest

from pexray.constants import DllCharacteristics, FileCharacteristics, SectionFlags
from pexray.flags import DllCharacteristicsSet, FileCharacteristicsSet, SectionFlagsSet


def test_insert_then_contains_for_every_flag():
    for f in FileCharacteristics:
        s = FileCharacteristicsSet().insert(f)
        assert s.contains(f)
        assert f in s


def test_remove_then_not_contains_for_every_flag():
    full = FileCharacteristicsSet.from_raw(0xFFFF)
    for f in FileCharacteristics:
        assert not full.remove(f).contains(f)


def test_insert_and_remove_do_not_mutate():
    s = FileCharacteristicsSet.of(FileCharacteristics.DLL)
    s2 = s.insert(FileCharacteristics.EXECUTABLE_IMAGE)
    s3 = s2.remove(FileCharacteristics.DLL)
    assert s.raw == 0x2000
    assert s2.raw == 0x2002
    assert s3.raw == 0x0002


def test_iteration_yields_declared_flags_in_declaration_order():
    s = FileCharacteristicsSet.from_raw(0x2000 | 0x0020 | 0x0002)
    assert list(s) == [
        FileCharacteristics.EXECUTABLE_IMAGE,
        FileCharacteristics.LARGE_ADDRESS_AWARE,
        FileCharacteristics.DLL,
    ]
    # restartable
    assert list(s.iter()) == list(s.iter())


def test_unknown_bits_are_kept_but_not_enumerated():
    # 0x0040 is reserved in IMAGE_FILE_HEADER.Characteristics
    s = FileCharacteristicsSet.from_raw(0x0040 | 0x0002)
    assert s.raw == 0x0042
    assert s.names() == ["EXECUTABLE_IMAGE"]
    assert s.unknown_bits == 0x0040
    assert int(s) == 0x0042


def test_union_is_bitwise_or_and_leaves_inputs_alone():
    a = DllCharacteristicsSet.of(DllCharacteristics.NX_COMPAT)
    b = DllCharacteristicsSet.of(DllCharacteristics.DYNAMIC_BASE, DllCharacteristics.HIGH_ENTROPY_VA)
    u = a | b
    assert u.raw == a.raw | b.raw
    assert set(u) == set(a) | set(b)
    assert a.union(b) == u
    assert a.raw == 0x0100
    assert b.raw == 0x0060


def test_union_rejects_other_flag_types():
    with pytest.raises(TypeError):
        FileCharacteristicsSet().union(DllCharacteristicsSet())  # type: ignore[arg-type]
    with pytest.raises(TypeError):
        FileCharacteristicsSet() | DllCharacteristicsSet()


def test_contains_rejects_foreign_enum():
    with pytest.raises(TypeError):
        FileCharacteristicsSet().contains(DllCharacteristics.NX_COMPAT)  # type: ignore[arg-type]
    assert DllCharacteristics.NX_COMPAT not in FileCharacteristicsSet.from_raw(0xFFFF)


def test_raw_value_must_fit_width():
    with pytest.raises(ValueError):
        FileCharacteristicsSet.from_raw(0x10000)
    with pytest.raises(ValueError):
        SectionFlagsSet.from_raw(-1)


def test_section_alignment_field_matches_exact_value():
    s = SectionFlagsSet.from_raw(0x60000020 | 0x00300000)  # ALIGN_4BYTES
    assert s.contains(SectionFlags.ALIGN_4BYTES)
    assert not s.contains(SectionFlags.ALIGN_1BYTES)
    assert not s.contains(SectionFlags.ALIGN_2BYTES)
    assert s.names() == ["CNT_CODE", "ALIGN_4BYTES", "MEM_EXECUTE", "MEM_READ"]
    assert s.alignment == 4


def test_section_alignment_insert_replaces_field():
    s = SectionFlagsSet.of(SectionFlags.ALIGN_16BYTES, SectionFlags.MEM_READ)
    s = s.insert(SectionFlags.ALIGN_4096BYTES)
    assert s.raw == 0x40000000 | 0x00D00000
    assert s.alignment == 4096
    assert s.remove(SectionFlags.ALIGN_16BYTES) == s
    assert s.remove(SectionFlags.ALIGN_4096BYTES).raw == 0x40000000


def test_undeclared_alignment_value_is_unknown():
    s = SectionFlagsSet.from_raw(0x00F00000)
    assert list(s) == []
    assert s.alignment is None
    assert s.unknown_bits == 0x00F00000


def test_equality_and_hash():
    a = FileCharacteristicsSet.from_raw(0x2002)
    b = FileCharacteristicsSet.of(FileCharacteristics.DLL, FileCharacteristics.EXECUTABLE_IMAGE)
    assert a == b
    assert hash(a) == hash(b)
    assert a != DllCharacteristicsSet.from_raw(0x2002)
    assert "DLL" in repr(a)
