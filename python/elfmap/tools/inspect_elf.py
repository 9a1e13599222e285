#!/usr/bin/env python3
"""
ELF inspection CLI tool.

Prints the identity and address-mapping metadata a symbolizer uses: file
type, GNU build ID, the .text load segment and, for a given runtime mapping,
the matching load segments and the computed base offset.

Usage:
    python -m elfmap.tools.inspect_elf <binary> [--start N --limit N --offset N]
        [--stext N] [--verbose]
"""

import argparse
import logging
import sys
from pathlib import Path

from elfmap.elf import (
    ElfFile,
    get_base,
    get_build_id_hex,
    find_text_program_header,
    program_headers_for_mapping,
)


def parse_int(value: str) -> int:
    """Parse a decimal or 0x-prefixed integer argument."""
    try:
        return int(value, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}")


def inspect_binary(
    binary: Path,
    start: int | None = None,
    limit: int | None = None,
    offset: int = 0,
    stext_offset: int | None = None,
) -> None:
    """Print mapping metadata for a binary.

    Args:
        binary: Path to ELF binary
        start: Runtime mapping start (enables base computation)
        limit: Runtime mapping end
        offset: Runtime mapping file offset
        stext_offset: Address of the kernel _stext symbol, if known

    Raises:
        ValueError: If the binary is malformed or the mapping is unsupported
    """
    elf = ElfFile.load(binary)

    print(f"File: {binary}")
    print("-" * 60)
    print(f"  type:     {elf.ehdr.type_name}")
    print(f"  build id: {get_build_id_hex(elf) or 'none'}")

    text = find_text_program_header(elf)
    print(f"  .text:    {text if text is not None else 'none'}")

    if start is None:
        return

    if limit is None:
        limit = start
    print("-" * 60)
    print(f"  mapping:  start=0x{start:x} limit=0x{limit:x} offset=0x{offset:x}")

    headers = program_headers_for_mapping(elf.program_headers, offset, limit - start)
    for phdr in headers:
        print(f"    segment: {phdr}")

    load_segment = headers[0] if len(headers) == 1 else text
    base = get_base(elf.ehdr.e_type, load_segment, stext_offset, start, limit, offset)
    sign = "-" if base < 0 else ""
    print(f"  base:     {sign}0x{abs(base):x}")


def main():
    parser = argparse.ArgumentParser(
        description="Show build ID and address-mapping metadata of an ELF binary"
    )
    parser.add_argument("binary", type=Path, help="Path to ELF binary to inspect")
    parser.add_argument("--start", type=parse_int, help="Runtime mapping start address")
    parser.add_argument("--limit", type=parse_int, help="Runtime mapping end address")
    parser.add_argument(
        "--offset", type=parse_int, default=0, help="Runtime mapping file offset"
    )
    parser.add_argument(
        "--stext", type=parse_int, help="Address of the kernel _stext symbol"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show debug logging",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.binary.exists():
        print(f"Error: {args.binary} does not exist", file=sys.stderr)
        sys.exit(1)

    try:
        inspect_binary(args.binary, args.start, args.limit, args.offset, args.stext)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    sys.exit(0)


if __name__ == "__main__":
    main()
