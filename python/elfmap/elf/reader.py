"""
Read-only ELF structural reader.

ElfFile parses the file header, program headers and section headers once and
hands out byte streams over segment and section contents. It is deliberately
small: the address-mapping code only needs headers, names and raw bytes.

Design principles:
- Parse once, never modify
- Bounds-check every table before reading it
- Fail fast with clear error messages
"""

import io
import logging
import struct
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

import zstandard as zstd

from .types import (
    ElfHeader,
    ProgramHeader,
    SectionHeader,
    ELFCLASS64,
    ELF32_PHDR_SIZE,
    ELF64_PHDR_SIZE,
    ELF32_SHDR_SIZE,
    ELF64_SHDR_SIZE,
    ELFCOMPRESS_ZLIB,
    ELFCOMPRESS_ZSTD,
    PT_LOAD,
    get_section_name,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SectionInfo:
    """Information about a section, combining header with its resolved name."""

    index: int
    name: str
    header: SectionHeader

    @property
    def addr(self) -> int:
        """Virtual address (only meaningful if SHF_ALLOC)."""
        return self.header.sh_addr

    @property
    def offset(self) -> int:
        """File offset."""
        return self.header.sh_offset

    @property
    def size(self) -> int:
        """Section size in bytes."""
        return self.header.sh_size


class ElfFile:
    """Read-only view of an ELF binary.

    Usage:
        elf = ElfFile.load(Path("libfoo.so"))

        text = elf.find_section(".text")
        for phdr in elf.iter_load_segments():
            ...

        with elf.open_section(text) as stream:
            data = stream.read()
    """

    def __init__(self, data: bytes | bytearray, path: Path | None = None):
        """Initialize with binary data.

        Prefer using ElfFile.load() when reading from disk.

        Args:
            data: ELF binary data
            path: Original file path (for error messages)

        Raises:
            ValueError: If the header or header tables are malformed
        """
        self._data = bytes(data)
        self._path = path

        self._ehdr = ElfHeader.from_bytes(self._data)
        self._phdrs = self._parse_program_headers()
        self._shdrs = self._parse_section_headers()
        self._section_names = self._parse_section_names()

    @classmethod
    def load(cls, path: Path) -> "ElfFile":
        """Load an ELF binary from file.

        Args:
            path: Path to ELF binary

        Returns:
            ElfFile instance
        """
        return cls(path.read_bytes(), path)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def data(self) -> bytes:
        return self._data

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def ehdr(self) -> ElfHeader:
        return self._ehdr

    @property
    def byte_order(self) -> str:
        """Struct byte-order prefix for this file ("<" or ">")."""
        return self._ehdr.byte_order

    @property
    def program_headers(self) -> list[ProgramHeader]:
        """All program headers, in file order."""
        return list(self._phdrs)

    @property
    def sections(self) -> list[SectionInfo]:
        """All sections, in file order."""
        return list(self.iter_sections())

    # =========================================================================
    # Parsing (internal)
    # =========================================================================

    def _describe(self) -> str:
        return str(self._path) if self._path is not None else "<memory>"

    def _parse_table(
        self, offset: int, count: int, entsize: int, minsize: int, what: str
    ) -> Iterator[int]:
        """Yield entry offsets of a header table after bounds-checking it."""
        if count == 0:
            return
        if entsize < minsize:
            raise ValueError(
                f"{self._describe()}: {what} entry size {entsize} < {minsize}"
            )
        end = offset + count * entsize
        if end > len(self._data):
            raise ValueError(
                f"{self._describe()}: {what} table [0x{offset:x}, 0x{end:x}) "
                f"extends past end of file (0x{len(self._data):x})"
            )
        for i in range(count):
            yield offset + i * entsize

    def _parse_program_headers(self) -> list[ProgramHeader]:
        """Parse all program headers."""
        ehdr = self._ehdr
        minsize = ELF64_PHDR_SIZE if ehdr.is_64bit else ELF32_PHDR_SIZE
        return [
            ProgramHeader.from_bytes(
                self._data, offset, ehdr.elf_class, ehdr.byte_order
            )
            for offset in self._parse_table(
                ehdr.e_phoff, ehdr.e_phnum, ehdr.e_phentsize, minsize, "program header"
            )
        ]

    def _parse_section_headers(self) -> list[SectionHeader]:
        """Parse all section headers."""
        ehdr = self._ehdr
        minsize = ELF64_SHDR_SIZE if ehdr.is_64bit else ELF32_SHDR_SIZE
        return [
            SectionHeader.from_bytes(
                self._data, offset, ehdr.elf_class, ehdr.byte_order
            )
            for offset in self._parse_table(
                ehdr.e_shoff, ehdr.e_shnum, ehdr.e_shentsize, minsize, "section header"
            )
        ]

    def _parse_section_names(self) -> dict[int, str]:
        """Parse section name string table."""
        names: dict[int, str] = {}
        # SHN_UNDEF: no section name string table.
        if self._ehdr.e_shstrndx == 0 or self._ehdr.e_shstrndx >= len(self._shdrs):
            return names

        shstrtab = self._shdrs[self._ehdr.e_shstrndx]
        for i, shdr in enumerate(self._shdrs):
            names[i] = get_section_name(self._data, shstrtab.sh_offset, shdr.sh_name)
        return names

    # =========================================================================
    # Query Operations
    # =========================================================================

    def find_section(self, name: str) -> SectionInfo | None:
        """Find the first section with the given name.

        Args:
            name: Section name (e.g., ".text")

        Returns:
            SectionInfo if found, None otherwise
        """
        for section in self.iter_sections():
            if section.name == name:
                return section
        return None

    def iter_sections(self) -> Iterator[SectionInfo]:
        """Iterate over all sections."""
        for idx, shdr in enumerate(self._shdrs):
            yield SectionInfo(
                index=idx,
                name=self._section_names.get(idx, ""),
                header=shdr,
            )

    def iter_load_segments(self) -> Iterator[ProgramHeader]:
        """Iterate over PT_LOAD segments."""
        for phdr in self._phdrs:
            if phdr.p_type == PT_LOAD:
                yield phdr

    # =========================================================================
    # Content Access
    # =========================================================================

    def _slice(self, offset: int, size: int) -> bytes:
        # Clip to the buffer; short reads surface as parse errors downstream.
        if offset >= len(self._data):
            return b""
        return self._data[offset : offset + size]

    def open_segment(self, phdr: ProgramHeader) -> io.BytesIO:
        """Open the file-backed bytes of a segment as a stream."""
        return io.BytesIO(self._slice(phdr.p_offset, phdr.p_filesz))

    def open_section(self, section: SectionInfo) -> io.BytesIO:
        """Open a section's contents as a stream.

        SHT_NOBITS sections yield an empty stream. SHF_COMPRESSED sections
        are decompressed.

        Raises:
            ValueError: If a compressed section is malformed or uses an
                unknown compression type
        """
        header = section.header
        if header.is_nobits:
            return io.BytesIO(b"")

        raw = self._slice(header.sh_offset, header.sh_size)
        if not header.is_compressed:
            return io.BytesIO(raw)
        return io.BytesIO(self._decompress_section(section, raw))

    def section_alignment(self, section: SectionInfo) -> int:
        """Alignment of a section's (decompressed) contents.

        For SHF_COMPRESSED sections sh_addralign describes the compressed
        container; the contents use ch_addralign from the compression header.
        """
        header = section.header
        if header.is_nobits or not header.is_compressed:
            return header.sh_addralign
        raw = self._slice(header.sh_offset, header.sh_size)
        _, _, ch_addralign, _ = self._parse_compression_header(section, raw)
        return ch_addralign

    def _parse_compression_header(
        self, section: SectionInfo, raw: bytes
    ) -> tuple[int, int, int, int]:
        """Parse the Chdr at the start of an SHF_COMPRESSED section body.

        Layout (Elf64_Chdr, 24 bytes):
          Offset | Size | Field
          -------|------|------
          0x00   | 4    | ch_type
          0x04   | 4    | ch_reserved
          0x08   | 8    | ch_size (uncompressed size)
          0x10   | 8    | ch_addralign

        Elf32_Chdr is three 4-byte fields: ch_type, ch_size, ch_addralign.

        Returns:
            (ch_type, ch_size, ch_addralign, header size)
        """
        order = self.byte_order
        if self._ehdr.elf_class == ELFCLASS64:
            chdr_size = 24
            if len(raw) < chdr_size:
                raise ValueError(f"Section {section.name}: compression header truncated")
            ch_type, _, ch_size, ch_addralign = struct.unpack_from(order + "IIQQ", raw, 0)
        else:
            chdr_size = 12
            if len(raw) < chdr_size:
                raise ValueError(f"Section {section.name}: compression header truncated")
            ch_type, ch_size, ch_addralign = struct.unpack_from(order + "III", raw, 0)
        return ch_type, ch_size, ch_addralign, chdr_size

    def _decompress_section(self, section: SectionInfo, raw: bytes) -> bytes:
        """Decompress an SHF_COMPRESSED section body.

        Output is capped at ch_size; a payload that inflates past it is
        rejected before the excess is allocated.
        """
        ch_type, ch_size, _, chdr_size = self._parse_compression_header(section, raw)
        payload = raw[chdr_size:]
        logger.debug(
            "Decompressing section %s (type %d, %d -> %d bytes)",
            section.name,
            ch_type,
            len(payload),
            ch_size,
        )

        if ch_type == ELFCOMPRESS_ZLIB:
            dobj = zlib.decompressobj()
            try:
                decompressed = dobj.decompress(payload, ch_size) if ch_size else b""
            except zlib.error as e:
                raise ValueError(f"Section {section.name}: zlib decompression failed: {e}") from e
            if dobj.unconsumed_tail:
                raise ValueError(
                    f"Section {section.name}: decompressed data exceeds {ch_size} bytes"
                )
        elif ch_type == ELFCOMPRESS_ZSTD:
            dctx = zstd.ZstdDecompressor()
            try:
                if zstd.frame_content_size(payload) > ch_size:
                    raise ValueError(
                        f"Section {section.name}: decompressed data exceeds {ch_size} bytes"
                    )
                decompressed = dctx.decompress(payload, max_output_size=ch_size)
            except zstd.ZstdError as e:
                raise ValueError(f"Section {section.name}: zstd decompression failed: {e}") from e
        else:
            raise ValueError(
                f"Section {section.name}: unsupported compression type {ch_type}"
            )

        if len(decompressed) != ch_size:
            raise ValueError(
                f"Section {section.name}: decompressed {len(decompressed)} bytes, "
                f"expected {ch_size}"
            )
        return decompressed
