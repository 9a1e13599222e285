"""
ELF identity and address-mapping package for elfmap.

This package provides the pieces a symbolizer needs to match sampled
addresses to a binary:
- types: ELF header structs and constants
- reader: ElfFile, a read-only structural reader
- notes: Note record parser
- build_id: GNU build ID extraction
- base: Runtime-to-symbol base address resolution
- segments: Program segment lookup for sections, mappings and file offsets
"""

from .types import (
    ElfHeader,
    ProgramHeader,
    SectionHeader,
    # Constants
    PAGE_SIZE,
    ELF_MAGIC,
    LITTLE_ENDIAN,
    BIG_ENDIAN,
    ELFCLASS32,
    ELFCLASS64,
    # ELF types
    ET_REL,
    ET_EXEC,
    ET_DYN,
    ET_CORE,
    # Program header types
    PT_NULL,
    PT_LOAD,
    PT_DYNAMIC,
    PT_INTERP,
    PT_NOTE,
    PT_PHDR,
    PT_TLS,
    # Section header types
    SHT_NULL,
    SHT_PROGBITS,
    SHT_STRTAB,
    SHT_NOTE,
    SHT_NOBITS,
    # Program header flags
    PF_X,
    PF_W,
    PF_R,
    # Section flags
    SHF_ALLOC,
    SHF_EXECINSTR,
    SHF_COMPRESSED,
    # Note types
    NT_GNU_BUILD_ID,
)
from .reader import ElfFile, SectionInfo
from .notes import (
    Note,
    NoteParseError,
    parse_notes,
    encode_notes,
    MAX_NOTE_SIZE,
)
from .build_id import (
    get_build_id,
    get_build_id_hex,
    find_build_id,
    AmbiguousBuildIdError,
)
from .base import (
    get_base,
    resolve_kernel_base,
    KernelMapping,
    KernelBaseRule,
    KERNEL_BASE_RULES,
    UnsupportedMappingError,
)
from .segments import (
    find_text_program_header,
    program_headers_for_mapping,
    header_for_file_offset,
    ProgramHeaderLookupError,
    NoMatchingProgramHeaderError,
    AmbiguousProgramHeaderError,
)

__all__ = [
    # Reader
    "ElfFile",
    "SectionInfo",
    # Notes
    "Note",
    "NoteParseError",
    "parse_notes",
    "encode_notes",
    "MAX_NOTE_SIZE",
    # Build ID
    "get_build_id",
    "get_build_id_hex",
    "find_build_id",
    "AmbiguousBuildIdError",
    # Base address
    "get_base",
    "resolve_kernel_base",
    "KernelMapping",
    "KernelBaseRule",
    "KERNEL_BASE_RULES",
    "UnsupportedMappingError",
    # Segment lookup
    "find_text_program_header",
    "program_headers_for_mapping",
    "header_for_file_offset",
    "ProgramHeaderLookupError",
    "NoMatchingProgramHeaderError",
    "AmbiguousProgramHeaderError",
    # Structs
    "ElfHeader",
    "ProgramHeader",
    "SectionHeader",
    # Constants
    "PAGE_SIZE",
    "ELF_MAGIC",
    "LITTLE_ENDIAN",
    "BIG_ENDIAN",
    "ELFCLASS32",
    "ELFCLASS64",
    "ET_REL",
    "ET_EXEC",
    "ET_DYN",
    "ET_CORE",
    "PT_NULL",
    "PT_LOAD",
    "PT_DYNAMIC",
    "PT_INTERP",
    "PT_NOTE",
    "PT_PHDR",
    "PT_TLS",
    "SHT_NULL",
    "SHT_PROGBITS",
    "SHT_STRTAB",
    "SHT_NOTE",
    "SHT_NOBITS",
    "PF_X",
    "PF_W",
    "PF_R",
    "SHF_ALLOC",
    "SHF_EXECINSTR",
    "SHF_COMPRESSED",
    "NT_GNU_BUILD_ID",
]
