"""
ELF type definitions for 32- and 64-bit ELF in either byte order.

Headers are parsed into frozen dataclasses; nothing in this package modifies
them. Each struct knows its layout for both ELF classes and takes the byte
order as a struct prefix ("<" or ">") so callers never hardcode endianness.
"""

import struct
from dataclasses import dataclass
from typing import ClassVar

# =============================================================================
# Constants
# =============================================================================

PAGE_SIZE = 0x1000  # 4KB pages
U64_MASK = (1 << 64) - 1
ELF_MAGIC = b"\x7fELF"

LITTLE_ENDIAN = "<"
BIG_ENDIAN = ">"

# e_ident indices and values
EI_CLASS = 4
EI_DATA = 5
ELFCLASS32 = 1
ELFCLASS64 = 2
ELFDATA2LSB = 1
ELFDATA2MSB = 2

ELF32_EHDR_SIZE = 52
ELF64_EHDR_SIZE = 64
ELF32_PHDR_SIZE = 32
ELF64_PHDR_SIZE = 56
ELF32_SHDR_SIZE = 40
ELF64_SHDR_SIZE = 64

# ELF type (e_type)
ET_NONE = 0
ET_REL = 1
ET_EXEC = 2
ET_DYN = 3  # Shared object (or PIE executable)
ET_CORE = 4

ET_NAMES = {
    ET_NONE: "ET_NONE",
    ET_REL: "ET_REL",
    ET_EXEC: "ET_EXEC",
    ET_DYN: "ET_DYN",
    ET_CORE: "ET_CORE",
}

# Program header types (p_type)
PT_NULL = 0
PT_LOAD = 1
PT_DYNAMIC = 2
PT_INTERP = 3
PT_NOTE = 4
PT_SHLIB = 5
PT_PHDR = 6
PT_TLS = 7
PT_GNU_EH_FRAME = 0x6474E550
PT_GNU_STACK = 0x6474E551
PT_GNU_RELRO = 0x6474E552

# Program header flags (p_flags)
PF_X = 0x1  # Execute
PF_W = 0x2  # Write
PF_R = 0x4  # Read

# Section header types (sh_type)
SHT_NULL = 0
SHT_PROGBITS = 1
SHT_SYMTAB = 2
SHT_STRTAB = 3
SHT_RELA = 4
SHT_HASH = 5
SHT_DYNAMIC = 6
SHT_NOTE = 7
SHT_NOBITS = 8
SHT_REL = 9

# Section flags (sh_flags)
SHF_WRITE = 0x1
SHF_ALLOC = 0x2
SHF_EXECINSTR = 0x4
SHF_COMPRESSED = 0x800

# Compression types (ch_type)
ELFCOMPRESS_ZLIB = 1
ELFCOMPRESS_ZSTD = 2

# Note types
NT_GNU_BUILD_ID = 3


def byte_order_for(ei_data: int) -> str:
    """Map an EI_DATA value to a struct byte-order prefix.

    Raises:
        ValueError: If the encoding is neither LSB nor MSB
    """
    if ei_data == ELFDATA2LSB:
        return LITTLE_ENDIAN
    if ei_data == ELFDATA2MSB:
        return BIG_ENDIAN
    raise ValueError(f"Unknown ELF data encoding: {ei_data}")


def _check_class(elf_class: int) -> None:
    if elf_class not in (ELFCLASS32, ELFCLASS64):
        raise ValueError(f"Unknown ELF class: {elf_class}")


# =============================================================================
# ELF Structures
# =============================================================================


@dataclass(frozen=True)
class ElfHeader:
    """ELF file header (Elf32_Ehdr / Elf64_Ehdr).

    The two classes share field order; only the width of e_entry, e_phoff
    and e_shoff differs.
    """

    e_ident: bytes  # 16 bytes: magic, class, endianness, version, OS/ABI, padding
    e_type: int  # Object file type (ET_*)
    e_machine: int  # Architecture (EM_*)
    e_version: int  # ELF version
    e_entry: int  # Entry point virtual address
    e_phoff: int  # Program header table file offset
    e_shoff: int  # Section header table file offset
    e_flags: int  # Processor-specific flags
    e_ehsize: int  # ELF header size
    e_phentsize: int  # Program header entry size
    e_phnum: int  # Number of program headers
    e_shentsize: int  # Section header entry size
    e_shnum: int  # Number of section headers
    e_shstrndx: int  # Section name string table index

    STRUCT_FMT_32: ClassVar[str] = "16sHHIIIIIHHHHHH"
    STRUCT_FMT_64: ClassVar[str] = "16sHHIQQQIHHHHHH"

    @classmethod
    def from_bytes(cls, data: bytes | bytearray) -> "ElfHeader":
        """Parse ELF header from binary data.

        Args:
            data: At least one full ELF header worth of data

        Returns:
            Parsed ElfHeader

        Raises:
            ValueError: If not a valid ELF header
        """
        if len(data) < 16 or data[:4] != ELF_MAGIC:
            raise ValueError("Not an ELF file (bad magic)")

        elf_class = data[EI_CLASS]
        _check_class(elf_class)
        order = byte_order_for(data[EI_DATA])

        size = ELF64_EHDR_SIZE if elf_class == ELFCLASS64 else ELF32_EHDR_SIZE
        if len(data) < size:
            raise ValueError(f"Data too short for ELF header: {len(data)} < {size}")

        fmt = cls.STRUCT_FMT_64 if elf_class == ELFCLASS64 else cls.STRUCT_FMT_32
        fields = struct.unpack_from(order + fmt, data, 0)
        return cls(*fields)

    def to_bytes(self) -> bytes:
        """Serialize ELF header using the class and byte order in e_ident."""
        fmt = self.STRUCT_FMT_64 if self.is_64bit else self.STRUCT_FMT_32
        return struct.pack(
            self.byte_order + fmt,
            self.e_ident,
            self.e_type,
            self.e_machine,
            self.e_version,
            self.e_entry,
            self.e_phoff,
            self.e_shoff,
            self.e_flags,
            self.e_ehsize,
            self.e_phentsize,
            self.e_phnum,
            self.e_shentsize,
            self.e_shnum,
            self.e_shstrndx,
        )

    @property
    def elf_class(self) -> int:
        return self.e_ident[EI_CLASS]

    @property
    def is_64bit(self) -> bool:
        return self.elf_class == ELFCLASS64

    @property
    def byte_order(self) -> str:
        """Struct byte-order prefix for multi-byte fields in this file."""
        return byte_order_for(self.e_ident[EI_DATA])

    @property
    def type_name(self) -> str:
        return ET_NAMES.get(self.e_type, f"ET_0x{self.e_type:x}")


@dataclass(frozen=True)
class ProgramHeader:
    """ELF program header (Elf32_Phdr / Elf64_Phdr).

    Program headers define segments - how the file is loaded into memory.
    ELF32 stores p_flags after p_memsz; ELF64 stores it right after p_type.
    """

    p_type: int  # Segment type (PT_*)
    p_flags: int  # Segment flags (PF_*)
    p_offset: int  # File offset
    p_vaddr: int  # Virtual address
    p_paddr: int  # Physical address (usually same as vaddr)
    p_filesz: int  # Size in file
    p_memsz: int  # Size in memory (may be > filesz for BSS)
    p_align: int  # Alignment (power of 2)

    STRUCT_FMT_32: ClassVar[str] = "IIIIIIII"
    STRUCT_FMT_64: ClassVar[str] = "IIQQQQQQ"

    @classmethod
    def from_bytes(
        cls,
        data: bytes | bytearray,
        offset: int = 0,
        elf_class: int = ELFCLASS64,
        byte_order: str = LITTLE_ENDIAN,
    ) -> "ProgramHeader":
        """Parse program header from binary data at offset."""
        _check_class(elf_class)
        size = ELF64_PHDR_SIZE if elf_class == ELFCLASS64 else ELF32_PHDR_SIZE
        if offset < 0 or len(data) < offset + size:
            raise ValueError(f"Data too short for program header at 0x{offset:x}")

        if elf_class == ELFCLASS64:
            fields = struct.unpack_from(byte_order + cls.STRUCT_FMT_64, data, offset)
            return cls(*fields)

        (
            p_type,
            p_offset,
            p_vaddr,
            p_paddr,
            p_filesz,
            p_memsz,
            p_flags,
            p_align,
        ) = struct.unpack_from(byte_order + cls.STRUCT_FMT_32, data, offset)
        return cls(
            p_type=p_type,
            p_flags=p_flags,
            p_offset=p_offset,
            p_vaddr=p_vaddr,
            p_paddr=p_paddr,
            p_filesz=p_filesz,
            p_memsz=p_memsz,
            p_align=p_align,
        )

    def to_bytes(
        self, elf_class: int = ELFCLASS64, byte_order: str = LITTLE_ENDIAN
    ) -> bytes:
        """Serialize program header to binary data."""
        _check_class(elf_class)
        if elf_class == ELFCLASS64:
            return struct.pack(
                byte_order + self.STRUCT_FMT_64,
                self.p_type,
                self.p_flags,
                self.p_offset,
                self.p_vaddr,
                self.p_paddr,
                self.p_filesz,
                self.p_memsz,
                self.p_align,
            )
        return struct.pack(
            byte_order + self.STRUCT_FMT_32,
            self.p_type,
            self.p_offset,
            self.p_vaddr,
            self.p_paddr,
            self.p_filesz,
            self.p_memsz,
            self.p_flags,
            self.p_align,
        )

    @property
    def end_offset(self) -> int:
        """File offset of end of segment content."""
        return self.p_offset + self.p_filesz

    @property
    def end_memsz_vaddr(self) -> int:
        """Virtual address of end of segment (including BSS)."""
        return self.p_vaddr + self.p_memsz

    @property
    def is_load(self) -> bool:
        return self.p_type == PT_LOAD

    @property
    def is_executable(self) -> bool:
        return bool(self.p_flags & PF_X)

    def contains_vaddr(self, vaddr: int) -> bool:
        """Check if a virtual address falls within this segment."""
        return self.p_vaddr <= vaddr < self.end_memsz_vaddr

    def __str__(self) -> str:
        return (
            f"ProgramHeader(type=0x{self.p_type:x} flags=0x{self.p_flags:x} "
            f"offset=0x{self.p_offset:x} vaddr=0x{self.p_vaddr:x} "
            f"paddr=0x{self.p_paddr:x} filesz=0x{self.p_filesz:x} "
            f"memsz=0x{self.p_memsz:x} align=0x{self.p_align:x})"
        )


@dataclass(frozen=True)
class SectionHeader:
    """ELF section header (Elf32_Shdr / Elf64_Shdr).

    Section headers describe the layout of the file for linking/debugging.
    """

    sh_name: int  # Offset into section name string table
    sh_type: int  # Section type (SHT_*)
    sh_flags: int  # Section flags (SHF_*)
    sh_addr: int  # Virtual address (if SHF_ALLOC set)
    sh_offset: int  # File offset
    sh_size: int  # Section size
    sh_link: int  # Link to another section (section-type dependent)
    sh_info: int  # Additional info (section-type dependent)
    sh_addralign: int  # Alignment (power of 2, 0 or 1 means none)
    sh_entsize: int  # Entry size if section holds table

    STRUCT_FMT_32: ClassVar[str] = "IIIIIIIIII"
    STRUCT_FMT_64: ClassVar[str] = "IIQQQQIIQQ"

    @classmethod
    def from_bytes(
        cls,
        data: bytes | bytearray,
        offset: int = 0,
        elf_class: int = ELFCLASS64,
        byte_order: str = LITTLE_ENDIAN,
    ) -> "SectionHeader":
        """Parse section header from binary data at offset."""
        _check_class(elf_class)
        size = ELF64_SHDR_SIZE if elf_class == ELFCLASS64 else ELF32_SHDR_SIZE
        if offset < 0 or len(data) < offset + size:
            raise ValueError(f"Data too short for section header at 0x{offset:x}")
        fmt = cls.STRUCT_FMT_64 if elf_class == ELFCLASS64 else cls.STRUCT_FMT_32
        fields = struct.unpack_from(byte_order + fmt, data, offset)
        return cls(*fields)

    def to_bytes(
        self, elf_class: int = ELFCLASS64, byte_order: str = LITTLE_ENDIAN
    ) -> bytes:
        """Serialize section header to binary data."""
        _check_class(elf_class)
        fmt = self.STRUCT_FMT_64 if elf_class == ELFCLASS64 else self.STRUCT_FMT_32
        return struct.pack(
            byte_order + fmt,
            self.sh_name,
            self.sh_type,
            self.sh_flags,
            self.sh_addr,
            self.sh_offset,
            self.sh_size,
            self.sh_link,
            self.sh_info,
            self.sh_addralign,
            self.sh_entsize,
        )

    @property
    def end_offset(self) -> int:
        """File offset of end of section content."""
        return self.sh_offset + self.sh_size

    @property
    def is_nobits(self) -> bool:
        """Check if this section has no file content (like BSS)."""
        return self.sh_type == SHT_NOBITS

    @property
    def is_compressed(self) -> bool:
        return bool(self.sh_flags & SHF_COMPRESSED)


# =============================================================================
# Helper Functions
# =============================================================================


def get_section_name(
    data: bytes | bytearray, shstrtab_offset: int, name_idx: int
) -> str:
    """Get section name from the section header string table.

    Args:
        data: Full ELF binary data
        shstrtab_offset: File offset of .shstrtab section
        name_idx: sh_name field from section header

    Returns:
        Section name as string, empty if the name is out of bounds
    """
    name_offset = shstrtab_offset + name_idx
    if name_offset >= len(data):
        return ""
    end = data.find(b"\x00", name_offset)
    if end == -1:
        return ""
    return data[name_offset:end].decode("ascii", errors="ignore")
