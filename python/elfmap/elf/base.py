"""
Base address resolution for runtime mappings.

get_base() returns the correction between a runtime virtual address (as seen
in a process or kernel memory mapping) and the address used in the binary's
symbol table: symbol_address = runtime_address - base.

For ET_DYN, a runtime address x maps to file offset fx = x - start + offset,
and file offset fx maps to symbol address sx = fx - p_offset + p_vaddr of the
load segment. Hence base = start - offset + p_offset - p_vaddr.

Kernel images (ET_EXEC outside the user half of the address space, or with a
known _stext) do not follow one rule. Each producer (standard loaders, perf,
ASLR kernels, PowerPC64, ChromeOS address-zero remaps) lays things out
differently, so the kernel case is an ordered chain of independent rules.
Keep the order: several rules overlap and the first match wins.

All arithmetic wraps at 64 bits; the result is returned as a signed 64-bit
value so that "negative" bases such as -_stext come out as negative ints.
"""

import logging
from dataclasses import dataclass
from typing import Callable

from .types import (
    PAGE_SIZE,
    U64_MASK,
    ET_DYN,
    ET_EXEC,
    ET_REL,
    ET_NAMES,
    ProgramHeader,
)

logger = logging.getLogger(__name__)

KERNEL_SPACE_START = 0x8000000000000000  # Canonical user/kernel split
PAGE_OFFSET_PPC64 = 0xC000000000000000  # PAGE_OFFSET, arch/powerpc/Kconfig


class UnsupportedMappingError(ValueError):
    """Raised when a file type / mapping combination matches no known layout."""

    pass


def wrap_u64(value: int) -> int:
    """Reduce an int modulo 2**64."""
    return value & U64_MASK


def to_signed64(value: int) -> int:
    """Interpret the low 64 bits of value as a two's-complement integer."""
    value = wrap_u64(value)
    if value >= 1 << 63:
        return value - (1 << 64)
    return value


@dataclass(frozen=True)
class KernelMapping:
    """Inputs to the kernel base rules.

    All values are unsigned 64-bit. stext_offset is None when the caller did
    not look up the _stext symbol.
    """

    segment: ProgramHeader
    stext_offset: int | None
    start: int
    limit: int
    offset: int

    @property
    def stext_congruent(self) -> bool:
        """_stext is known and shares start's offset within a page."""
        return (
            self.stext_offset is not None
            and self.start % PAGE_SIZE == self.stext_offset % PAGE_SIZE
        )


@dataclass(frozen=True)
class KernelBaseRule:
    """One kernel layout heuristic: a guard and the base it implies."""

    name: str
    applies: Callable[[KernelMapping], bool]
    compute: Callable[[KernelMapping], int]


def _mapped_at_segment_vaddr(m: KernelMapping) -> bool:
    return m.segment.p_vaddr == wrap_u64(m.start - m.offset)


def _remapped_to_zero(m: KernelMapping) -> bool:
    # ChromeOS remaps its kernel to 0. Empirical values:
    #       VADDR=0xffffffff80200000
    # stextOffset=0xffffffff80200198
    return m.start == 0 and m.limit != 0


def _zero_remap_base(m: KernelMapping) -> int:
    if m.stext_offset is not None:
        return -m.stext_offset
    return -m.segment.p_vaddr


def _within_kernel_segment(m: KernelMapping) -> bool:
    # Some kernels look like:
    #       VADDR=0xffffffff80200000
    # stextOffset=0xffffffff80200198
    #       Start=0xffffffff83200000
    #       Limit=0xffffffff84200000
    #      Offset=0 (0xc000000000000000 for PowerPC64) (== Start for ASLR kernel)
    return (
        m.segment.p_vaddr <= m.start < m.limit
        and m.offset in (0, PAGE_OFFSET_PPC64, m.start)
    )


def _within_kernel_segment_base(m: KernelMapping) -> int:
    # perf uses the address of _stext as start. Tools that already adjusted
    # for this pass a start whose page offset differs from _stext's.
    if m.stext_congruent:
        return m.start - m.stext_offset
    return m.start - m.segment.p_vaddr


def _remapped_to_zero_plus_page_offset(m: KernelMapping) -> bool:
    # ChromeOS remaps its kernel to 0 + start%pageSize. Empirical values:
    #       start=0x198 limit=0x2f9fffff offset=0
    #       VADDR=0xffffffff81000000
    # stextOffset=0xffffffff81000198
    return m.start % PAGE_SIZE != 0 and m.stext_congruent


KERNEL_BASE_RULES: tuple[KernelBaseRule, ...] = (
    KernelBaseRule(
        name="mapped-at-segment-vaddr",
        applies=_mapped_at_segment_vaddr,
        compute=lambda m: m.offset,
    ),
    KernelBaseRule(
        name="remapped-to-zero",
        applies=_remapped_to_zero,
        compute=_zero_remap_base,
    ),
    KernelBaseRule(
        name="within-kernel-segment",
        applies=_within_kernel_segment,
        compute=_within_kernel_segment_base,
    ),
    KernelBaseRule(
        name="remapped-to-zero-plus-page-offset",
        applies=_remapped_to_zero_plus_page_offset,
        compute=lambda m: m.start - m.stext_offset,
    ),
)


def _segment_base(
    load_segment: ProgramHeader, start: int, offset: int
) -> int:
    return start - offset + load_segment.p_offset - load_segment.p_vaddr


def resolve_kernel_base(mapping: KernelMapping) -> int:
    """Apply KERNEL_BASE_RULES in order and return the first match's base.

    Returns:
        Unwrapped base (callers reduce it to 64 bits)

    Raises:
        UnsupportedMappingError: If no rule applies
    """
    for rule in KERNEL_BASE_RULES:
        if rule.applies(mapping):
            logger.debug("Kernel base rule %s matched", rule.name)
            return rule.compute(mapping)

    raise UnsupportedMappingError(
        f"don't know how to handle EXEC segment: {mapping.segment} "
        f"start=0x{mapping.start:x} limit=0x{mapping.limit:x} "
        f"offset=0x{mapping.offset:x}"
    )


def get_base(
    file_type: int,
    load_segment: ProgramHeader | None,
    stext_offset: int | None,
    start: int,
    limit: int,
    offset: int,
) -> int:
    """Compute the base offset between runtime and symbol addresses.

    For an executable the base is 0. For a shared library it is derived from
    where the mapping starts. The kernel is special, and may use the address
    of the _stext symbol as the mmap start (`nm vmlinux | grep _stext`).

    Args:
        file_type: ELF e_type (ET_EXEC, ET_DYN, ET_REL)
        load_segment: Load segment backing the mapping, if known
        stext_offset: Address of the kernel _stext symbol, if known
        start: Start address of the runtime mapping
        limit: End address of the runtime mapping
        offset: File offset of the runtime mapping

    Returns:
        Signed 64-bit base offset

    Raises:
        UnsupportedMappingError: If the combination matches no known layout
    """
    if start == 0 and offset == 0 and limit in (0, U64_MASK):
        # Some tools introduce a fake mapping spanning the whole address
        # space. Addresses have already been adjusted.
        return 0

    if file_type == ET_EXEC:
        if load_segment is None:
            # Fixed-address executable.
            return 0
        if stext_offset is None and 0 < start < KERNEL_SPACE_START:
            # Regular user-mode executable. stext_offset alone does not
            # identify a kernel because callers may skip the (expensive)
            # symbol lookup, so also require a user-half start address.
            return to_signed64(_segment_base(load_segment, start, offset))
        mapping = KernelMapping(
            segment=load_segment,
            stext_offset=stext_offset,
            start=start,
            limit=limit,
            offset=offset,
        )
        return to_signed64(resolve_kernel_base(mapping))

    if file_type == ET_REL:
        if offset != 0:
            raise UnsupportedMappingError(
                f"don't know how to handle mapping offset 0x{offset:x} "
                "for a relocatable object"
            )
        return to_signed64(start)

    if file_type == ET_DYN:
        if load_segment is None:
            return to_signed64(start - offset)
        return to_signed64(_segment_base(load_segment, start, offset))

    type_name = ET_NAMES.get(file_type, f"0x{file_type:x}")
    raise UnsupportedMappingError(f"don't know how to handle file type {type_name}")
