"""
GNU build ID extraction.

The build ID is a "GNU" note of type NT_GNU_BUILD_ID. Linkers place it in a
.note.gnu.build-id section that is normally also covered by a PT_NOTE
segment, so both views are scanned: segments first, then sections that no
scanned segment already covers.
"""

import logging

from .notes import Note, parse_notes
from .reader import ElfFile
from .types import NT_GNU_BUILD_ID, PT_NOTE, SHT_NOTE

logger = logging.getLogger(__name__)

BUILD_ID_NOTE_NAME = "GNU"
DEFAULT_SEGMENT_NOTE_ALIGNMENT = 4


class AmbiguousBuildIdError(ValueError):
    """Raised when a binary carries more than one GNU build ID note."""

    pass


def _collect_notes(elf: ElfFile) -> list[Note]:
    notes: list[Note] = []
    scanned: list[tuple[int, int]] = []

    for phdr in elf.program_headers:
        if phdr.p_type != PT_NOTE:
            continue
        alignment = phdr.p_align or DEFAULT_SEGMENT_NOTE_ALIGNMENT
        logger.debug(
            "Scanning PT_NOTE segment at offset 0x%x (size 0x%x, align %d)",
            phdr.p_offset,
            phdr.p_filesz,
            alignment,
        )
        with elf.open_segment(phdr) as stream:
            notes.extend(parse_notes(stream, alignment, elf.byte_order))
        scanned.append((phdr.p_offset, phdr.end_offset))

    for section in elf.iter_sections():
        header = section.header
        if header.sh_type != SHT_NOTE:
            continue
        if not header.is_compressed and any(
            start <= header.sh_offset and header.end_offset <= end
            for start, end in scanned
        ):
            logger.debug("Skipping %s: already covered by a PT_NOTE segment", section.name)
            continue
        alignment = elf.section_alignment(section) or 1
        logger.debug(
            "Scanning note section %s at offset 0x%x (size 0x%x, align %d)",
            section.name,
            header.sh_offset,
            header.sh_size,
            alignment,
        )
        with elf.open_section(section) as stream:
            notes.extend(parse_notes(stream, alignment, elf.byte_order))

    return notes


def find_build_id(notes: list[Note]) -> bytes | None:
    """Pick the GNU build ID out of a list of notes.

    Args:
        notes: Notes from every scanned region

    Returns:
        Descriptor of the single build-id note, or None if there is none

    Raises:
        AmbiguousBuildIdError: If more than one build-id note is present
    """
    build_id: bytes | None = None
    for note in notes:
        if note.name == BUILD_ID_NOTE_NAME and note.type == NT_GNU_BUILD_ID:
            if build_id is not None:
                raise AmbiguousBuildIdError(
                    "multiple build ids found, don't know which to use"
                )
            build_id = note.desc
    return build_id


def get_build_id(elf: ElfFile) -> bytes | None:
    """Return the raw GNU build ID of an ELF binary.

    Args:
        elf: Parsed ELF binary

    Returns:
        Build ID bytes, or None if the binary has no build-id note

    Raises:
        AmbiguousBuildIdError: If more than one build-id note is found
        NoteParseError: If a note region is malformed
        ValueError: If a compressed note section cannot be decompressed
    """
    return find_build_id(_collect_notes(elf))


def get_build_id_hex(elf: ElfFile) -> str | None:
    """Return the GNU build ID as a lowercase hex string, or None."""
    build_id = get_build_id(elf)
    if build_id is None:
        return None
    return build_id.hex()
