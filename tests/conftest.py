import pytest
import pathlib

from elfmap.elf import (
    ElfFile,
    ET_DYN,
    PF_R,
    PF_X,
    PT_LOAD,
    PT_NOTE,
    SHF_ALLOC,
    SHF_EXECINSTR,
    SHT_NOTE,
    SHT_PROGBITS,
)
from elf_test_utils import SectionSpec, SegmentSpec, build_elf, build_id_notes


TEXT_ADDR = 0x1040
TEXT_SIZE = 0x200


@pytest.fixture
def shared_library_data() -> bytes:
    """
    A small ET_DYN image shaped like a linker's output.

    - .note.gnu.build-id, also covered by a PT_NOTE segment
    - .text at 0x1040 inside an R+X PT_LOAD
    - a read-only PT_LOAD at vaddr 0 ahead of it (not executable)
    """
    return build_elf(
        e_type=ET_DYN,
        sections=[
            SectionSpec(
                ".note.gnu.build-id",
                SHT_NOTE,
                build_id_notes(),
                flags=SHF_ALLOC,
                addralign=4,
            ),
            SectionSpec(
                ".text",
                SHT_PROGBITS,
                b"\x90" * TEXT_SIZE,
                flags=SHF_ALLOC | SHF_EXECINSTR,
                addr=TEXT_ADDR,
                addralign=16,
            ),
        ],
        segments=[
            SegmentSpec(PT_LOAD, PF_R, vaddr=0, offset=0, filesz=0x1000, align=0x1000),
            SegmentSpec(
                PT_LOAD,
                PF_R | PF_X,
                vaddr=0x1000,
                offset=0x1000,
                filesz=0x1000,
                align=0x1000,
            ),
            SegmentSpec(PT_NOTE, section=".note.gnu.build-id", align=4),
        ],
    )


@pytest.fixture
def shared_library(shared_library_data: bytes) -> ElfFile:
    """Parsed form of shared_library_data."""
    return ElfFile(shared_library_data)


@pytest.fixture
def shared_library_path(
    shared_library_data: bytes, tmp_path: pathlib.Path
) -> pathlib.Path:
    """shared_library_data written to disk."""
    path = tmp_path / "libsample.so"
    path.write_bytes(shared_library_data)
    return path
