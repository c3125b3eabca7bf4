from __future__ import annotations

from typing import List

from rich.console import Console
from rich.table import Table

from pexray.model import ImageReport, SectionReport

console = Console()


def _hex(v: object) -> str:
    return f"0x{v:X}" if isinstance(v, int) else str(v)


def render_sections(sections: List[SectionReport], *, title: str = "Sections") -> Table:
    t = Table(title=title)
    for col in ("Name", "VirtAddr", "VirtSize", "RawPtr", "RawSize", "Align", "Flags"):
        t.add_column(col, overflow="fold")
    for s in sections:
        t.add_row(
            s.name,
            _hex(s.virtual_address),
            _hex(s.virtual_size),
            _hex(s.raw_ptr),
            _hex(s.raw_size),
            str(s.alignment or ""),
            " ".join(s.characteristics.names),
        )
    return t


def render_console(report: ImageReport, source: str = "") -> None:
    coff = report.coff
    t = Table(title=f"PE Header {source}".strip())
    t.add_column("Field")
    t.add_column("Value", overflow="fold")
    t.add_row("e_lfanew", _hex(report.dos.e_lfanew))
    t.add_row("machine", f"{coff.machine} ({_hex(coff.machine_raw)})")
    t.add_row("sections", str(coff.number_of_sections))
    t.add_row("timestamp_utc", coff.timestamp_utc)
    t.add_row("characteristics", " ".join(coff.characteristics.names) or _hex(coff.characteristics.raw))

    opt = report.optional
    if opt is not None:
        t.add_row("magic", f"{opt.magic} ({_hex(opt.magic_raw)})")
        t.add_row("entry_point", _hex(opt.address_of_entry_point))
        t.add_row("entry_point_section", str(report.entry_point_section or ""))
        t.add_row("image_base", _hex(opt.image_base))
        if opt.base_of_data is not None:
            t.add_row("base_of_data", _hex(opt.base_of_data))
        t.add_row("subsystem", f"{opt.subsystem} ({opt.subsystem_raw})")
        t.add_row("subsystem_version", opt.subsystem_version)
        t.add_row("dll_characteristics", " ".join(opt.dll_characteristics.names))
        t.add_row("size_of_image", _hex(opt.size_of_image))
    console.print(t)

    if opt is not None and opt.data_directories:
        d = Table(title="Data Directories")
        d.add_column("Index")
        d.add_column("Name")
        d.add_column("RVA")
        d.add_column("Size")
        for dd in opt.data_directories:
            d.add_row(str(dd.index), dd.name, _hex(dd.virtual_address), _hex(dd.size))
        console.print(d)

    if report.sections:
        console.print(render_sections(report.sections))

    for w in report.warnings:
        console.print(f"[yellow]warning:[/yellow] {w.get('code')}: {w.get('message')}")
