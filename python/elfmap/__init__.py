"""
elfmap: ELF identity and address-mapping helpers for symbolization.

Profilers record raw program-counter addresses together with the memory
mappings they fell in. To symbolize them, a pipeline has to find the right
binary (by GNU build ID) and translate runtime addresses into the addresses
used by that binary's symbol table. This package provides both:

    from pathlib import Path
    from elfmap import ElfFile, find_text_program_header, get_base, get_build_id

    elf = ElfFile.load(Path("libfoo.so"))
    build_id = get_build_id(elf)

    text = find_text_program_header(elf)
    base = get_base(elf.ehdr.e_type, text, None, start, limit, offset)
    symbol_address = runtime_address - base

Everything lives in the elf subpackage; the most common entry points are
re-exported here.
"""

from .elf import (
    ElfFile,
    Note,
    NoteParseError,
    parse_notes,
    get_build_id,
    get_build_id_hex,
    AmbiguousBuildIdError,
    get_base,
    UnsupportedMappingError,
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
    # Notes and build IDs
    "Note",
    "NoteParseError",
    "parse_notes",
    "get_build_id",
    "get_build_id_hex",
    "AmbiguousBuildIdError",
    # Address mapping
    "get_base",
    "UnsupportedMappingError",
    "find_text_program_header",
    "program_headers_for_mapping",
    "header_for_file_offset",
    "ProgramHeaderLookupError",
    "NoMatchingProgramHeaderError",
    "AmbiguousProgramHeaderError",
]
