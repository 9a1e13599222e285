"""
Synthetic ELF image builder for tests.

Real binaries make poor fixtures for address-mapping code: the interesting
cases (duplicate build IDs, compressed note sections, ELF32 big-endian,
kernel-style segments) are hard to get out of a compiler on demand. This
module lays out minimal but structurally valid ELF images from a list of
sections and segments.

Layout produced by build_elf():
    ELF header
    program header table
    section contents (in order, each aligned to its addralign)
    standalone segment contents
    .shstrtab
    section header table

Usage:
    from elf_test_utils import SectionSpec, SegmentSpec, build_elf

    data = build_elf(
        sections=[SectionSpec(".note.gnu.build-id", SHT_NOTE, notes, addralign=4)],
        segments=[SegmentSpec(PT_NOTE, section=".note.gnu.build-id", align=4)],
    )
    elf = ElfFile(data)
"""

import struct
import zlib
from dataclasses import dataclass

import zstandard as zstd

from elfmap.elf.notes import Note, encode_notes
from elfmap.elf.types import (
    ElfHeader,
    ProgramHeader,
    SectionHeader,
    ELF_MAGIC,
    ELFCLASS64,
    ELFDATA2LSB,
    ELFDATA2MSB,
    ELF32_EHDR_SIZE,
    ELF64_EHDR_SIZE,
    ELF32_PHDR_SIZE,
    ELF64_PHDR_SIZE,
    ELF32_SHDR_SIZE,
    ELF64_SHDR_SIZE,
    ELFCOMPRESS_ZLIB,
    ELFCOMPRESS_ZSTD,
    ET_DYN,
    LITTLE_ENDIAN,
    NT_GNU_BUILD_ID,
    PF_R,
    SHT_NOBITS,
    SHT_PROGBITS,
    SHT_STRTAB,
)

SAMPLE_BUILD_ID = bytes.fromhex("5b1e8f4c2a9d03e7b6c1d8f0a4e2957c13b86d0f")


@dataclass
class SectionSpec:
    """A section to place in the synthetic image."""

    name: str
    sh_type: int = SHT_PROGBITS
    content: bytes = b""
    flags: int = 0
    addr: int = 0
    addralign: int = 1
    size: int | None = None  # Overrides sh_size (e.g. for SHT_NOBITS)


@dataclass
class SegmentSpec:
    """A program header to place in the synthetic image.

    The file range comes from, in priority order: the named section's
    placement, standalone content appended to the file, or the explicit
    offset/filesz fields.
    """

    p_type: int
    p_flags: int = PF_R
    vaddr: int = 0
    memsz: int | None = None
    align: int = 0
    section: str | None = None
    content: bytes | None = None
    offset: int = 0
    filesz: int = 0


def _align(value: int, alignment: int) -> int:
    alignment = max(alignment, 1)
    return (value + alignment - 1) & ~(alignment - 1)


def build_elf(
    sections: list[SectionSpec] | None = None,
    segments: list[SegmentSpec] | None = None,
    e_type: int = ET_DYN,
    elf_class: int = ELFCLASS64,
    byte_order: str = LITTLE_ENDIAN,
) -> bytes:
    """Lay out a minimal ELF image.

    Args:
        sections: Sections in header order (a null section is prepended and
            .shstrtab appended automatically)
        segments: Program headers in table order
        e_type: ELF file type
        elf_class: ELFCLASS32 or ELFCLASS64
        byte_order: "<" or ">"

    Returns:
        ELF image bytes
    """
    sections = sections or []
    segments = segments or []
    is_64 = elf_class == ELFCLASS64
    ehdr_size = ELF64_EHDR_SIZE if is_64 else ELF32_EHDR_SIZE
    phdr_size = ELF64_PHDR_SIZE if is_64 else ELF32_PHDR_SIZE
    shdr_size = ELF64_SHDR_SIZE if is_64 else ELF32_SHDR_SIZE

    phoff = ehdr_size if segments else 0
    body = bytearray(ehdr_size + len(segments) * phdr_size)

    # Section contents
    placement: dict[str, tuple[int, int]] = {}
    section_offsets: list[int] = []
    for spec in sections:
        offset = _align(len(body), spec.addralign)
        body += b"\x00" * (offset - len(body))
        if spec.sh_type != SHT_NOBITS:
            body += spec.content
        section_offsets.append(offset)
        placement[spec.name] = (offset, len(spec.content))

    # Standalone segment contents
    segment_ranges: list[tuple[int, int]] = []
    for spec in segments:
        if spec.section is not None:
            segment_ranges.append(placement[spec.section])
        elif spec.content is not None:
            offset = _align(len(body), max(spec.align, 4))
            body += b"\x00" * (offset - len(body))
            body += spec.content
            segment_ranges.append((offset, len(spec.content)))
        else:
            segment_ranges.append((spec.offset, spec.filesz))

    # Section name string table
    names = bytearray(b"\x00")
    name_offsets = []
    for spec in sections:
        name_offsets.append(len(names))
        names += spec.name.encode("ascii") + b"\x00"
    shstrtab_name = len(names)
    names += b".shstrtab\x00"
    shstrtab_offset = len(body)
    body += names

    shoff = _align(len(body), 8)
    body += b"\x00" * (shoff - len(body))

    shdrs = [SectionHeader(0, 0, 0, 0, 0, 0, 0, 0, 0, 0)]
    for spec, name_off, offset in zip(sections, name_offsets, section_offsets):
        size = spec.size if spec.size is not None else len(spec.content)
        shdrs.append(
            SectionHeader(
                sh_name=name_off,
                sh_type=spec.sh_type,
                sh_flags=spec.flags,
                sh_addr=spec.addr,
                sh_offset=offset,
                sh_size=size,
                sh_link=0,
                sh_info=0,
                sh_addralign=spec.addralign,
                sh_entsize=0,
            )
        )
    shdrs.append(
        SectionHeader(
            sh_name=shstrtab_name,
            sh_type=SHT_STRTAB,
            sh_flags=0,
            sh_addr=0,
            sh_offset=shstrtab_offset,
            sh_size=len(names),
            sh_link=0,
            sh_info=0,
            sh_addralign=1,
            sh_entsize=0,
        )
    )
    for shdr in shdrs:
        body += shdr.to_bytes(elf_class, byte_order)

    for i, (spec, (offset, filesz)) in enumerate(zip(segments, segment_ranges)):
        phdr = ProgramHeader(
            p_type=spec.p_type,
            p_flags=spec.p_flags,
            p_offset=offset,
            p_vaddr=spec.vaddr,
            p_paddr=spec.vaddr,
            p_filesz=filesz,
            p_memsz=spec.memsz if spec.memsz is not None else filesz,
            p_align=spec.align,
        )
        start = ehdr_size + i * phdr_size
        body[start : start + phdr_size] = phdr.to_bytes(elf_class, byte_order)

    ei_data = ELFDATA2LSB if byte_order == LITTLE_ENDIAN else ELFDATA2MSB
    e_ident = ELF_MAGIC + bytes([elf_class, ei_data, 1, 0]) + b"\x00" * 8
    ehdr = ElfHeader(
        e_ident=e_ident,
        e_type=e_type,
        e_machine=0x3E,
        e_version=1,
        e_entry=0,
        e_phoff=phoff,
        e_shoff=shoff,
        e_flags=0,
        e_ehsize=ehdr_size,
        e_phentsize=phdr_size,
        e_phnum=len(segments),
        e_shentsize=shdr_size,
        e_shnum=len(shdrs),
        e_shstrndx=len(shdrs) - 1,
    )
    body[:ehdr_size] = ehdr.to_bytes()
    return bytes(body)


def build_id_note(build_id: bytes = SAMPLE_BUILD_ID) -> Note:
    """A GNU build-id note carrying build_id."""
    return Note(name="GNU", desc=build_id, type=NT_GNU_BUILD_ID)


def build_id_notes(
    build_id: bytes = SAMPLE_BUILD_ID,
    alignment: int = 4,
    byte_order: str = LITTLE_ENDIAN,
) -> bytes:
    """Encoded note stream holding a single GNU build-id note."""
    return encode_notes([build_id_note(build_id)], alignment, byte_order)


def compress_section(
    payload: bytes,
    ch_type: int = ELFCOMPRESS_ZLIB,
    elf_class: int = ELFCLASS64,
    byte_order: str = LITTLE_ENDIAN,
    addralign: int = 4,
    ch_size: int | None = None,
) -> bytes:
    """Build an SHF_COMPRESSED section body (Chdr + compressed payload).

    ch_size defaults to the payload length; pass a smaller value to build a
    section that inflates past its declared size.
    """
    if ch_size is None:
        ch_size = len(payload)
    if ch_type == ELFCOMPRESS_ZLIB:
        compressed = zlib.compress(payload)
    elif ch_type == ELFCOMPRESS_ZSTD:
        compressed = zstd.ZstdCompressor().compress(payload)
    else:
        compressed = payload

    if elf_class == ELFCLASS64:
        chdr = struct.pack(byte_order + "IIQQ", ch_type, 0, ch_size, addralign)
    else:
        chdr = struct.pack(byte_order + "III", ch_type, ch_size, addralign)
    return chdr + compressed

