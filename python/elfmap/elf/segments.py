"""
Program segment lookup.

Three independent lookups over program headers:
- find_text_program_header: the PT_LOAD segment holding .text
- program_headers_for_mapping: PT_LOAD segments fully inside a runtime mapping
- header_for_file_offset: the single segment containing a file offset

Callers typically chain the last two: narrow the segments for a mapping, then
resolve a sampled file offset within them.
"""

from typing import Sequence

from .reader import ElfFile
from .types import PAGE_SIZE, PT_LOAD, U64_MASK, ProgramHeader

# The loader's page size. 4KB on every architecture we care about; a different
# size would have to be guessed from e_machine of the profiled binary.
PAGE_OFFSET_MASK = PAGE_SIZE - 1
PAGE_MASK = ~PAGE_OFFSET_MASK


class ProgramHeaderLookupError(ValueError):
    """Raised when a file offset does not resolve to exactly one segment."""

    pass


class NoMatchingProgramHeaderError(ProgramHeaderLookupError):
    """No program header contains the file offset."""

    pass


class AmbiguousProgramHeaderError(ProgramHeaderLookupError):
    """More than one program header contains the file offset."""

    def __init__(self, first: ProgramHeader, second: ProgramHeader, file_offset: int):
        self.first = first
        self.second = second
        self.file_offset = file_offset
        super().__init__(
            f"found second program header ({second}) that matches file offset "
            f"0x{file_offset:x}, first program header is {first}. "
            "Does first program segment contain uninitialized data?"
        )


def find_text_program_header(elf: ElfFile) -> ProgramHeader | None:
    """Find the executable PT_LOAD segment containing the .text section.

    Args:
        elf: Parsed ELF binary

    Returns:
        The first matching program header, or None if there is no .text
        section or no executable segment contains it
    """
    for section in elf.iter_sections():
        if section.name != ".text":
            continue
        for phdr in elf.program_headers:
            if (
                phdr.p_type == PT_LOAD
                and phdr.is_executable
                and phdr.contains_vaddr(section.addr)
            ):
                return phdr
    return None


def _aligned_offset(phdr: ProgramHeader) -> int:
    """File offset of the page the loader maps for this segment."""
    in_page = phdr.p_vaddr & PAGE_OFFSET_MASK
    if phdr.p_offset > in_page:
        return phdr.p_offset - in_page
    return 0


def _expected_mapping_size(phdr: ProgramHeader) -> int:
    """Smallest page-aligned mapping size that covers the segment."""
    end = (phdr.p_vaddr + phdr.p_memsz + PAGE_SIZE - 1) & PAGE_MASK
    return (end - (phdr.p_vaddr & PAGE_MASK)) & U64_MASK


def program_headers_for_mapping(
    phdrs: Sequence[ProgramHeader], pgoff: int, memsz: int
) -> list[ProgramHeader]:
    """Find PT_LOAD segments fully contained in a runtime mapping.

    Args:
        phdrs: Program headers of the mapped binary
        pgoff: File offset of the mapping
        memsz: Size of the mapping

    Returns:
        Matching headers (the input objects, in input order). When several
        match and the mapping size is page-aligned, the list narrows to the
        one segment whose page-aligned size equals memsz, if exactly one does.
    """
    headers = [
        phdr
        for phdr in phdrs
        if phdr.p_type == PT_LOAD
        and pgoff <= phdr.p_offset
        and phdr.p_offset + phdr.p_memsz <= pgoff + memsz
        and _aligned_offset(phdr) <= pgoff
    ]
    if len(headers) < 2:
        return headers

    # The size heuristic assumes page-aligned mappings.
    if memsz % PAGE_SIZE != 0:
        return headers

    sized = [phdr for phdr in headers if _expected_mapping_size(phdr) == memsz]
    if len(sized) == 1:
        return sized
    return headers


def header_for_file_offset(
    headers: Sequence[ProgramHeader], file_offset: int
) -> ProgramHeader:
    """Find the unique program header containing a file offset.

    Args:
        headers: Candidate program headers
        file_offset: File offset to resolve

    Returns:
        The only header with p_offset <= file_offset < p_offset + p_memsz

    Raises:
        NoMatchingProgramHeaderError: If no header contains the offset
        AmbiguousProgramHeaderError: If two headers contain it. Without other
            bugs this means two small segments share a page and one other
            than the last holds uninitialized data.
    """
    match: ProgramHeader | None = None
    for phdr in headers:
        if phdr.p_offset <= file_offset < phdr.p_offset + phdr.p_memsz:
            if match is not None:
                raise AmbiguousProgramHeaderError(match, phdr, file_offset)
            match = phdr
    if match is None:
        raise NoMatchingProgramHeaderError(
            f"no program header matches file offset 0x{file_offset:x}"
        )
    return match
