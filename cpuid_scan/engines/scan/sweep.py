"""
Linear sweep over a code range.

Walks the bytes left to right, one decode per step. A failed decode skips a
single byte so the sweep resynchronizes quickly after data (jump tables,
padding) embedded in a code section.
"""

from collections.abc import Iterator

from cpuid_scan.engines.decoder.base import InstructionDecoder
from cpuid_scan.engines.models import CodeRange, Decoded, DecodeOutcome, Failed


RESYNC_STEP = 1


def sweep(code_range: CodeRange, decoder: InstructionDecoder) -> Iterator[DecodeOutcome]:
    """
    Produce one DecodeOutcome per sweep step over ``code_range``.

    Each call returns a fresh generator starting at offset 0.

    Args:
        code_range: Bytes to scan
        decoder: Decoder used for every step

    Yields:
        Decoded or Failed outcomes covering the range without gaps or overlap
    """
    data = memoryview(code_range.data)
    end = len(data)
    offset = 0

    while offset < end:
        result = decoder.decode_one(
            data[offset:],
            code_range.bitness,
            code_range.base_address + offset,
        )

        if result is not None:
            instruction, length = result
            remaining = end - offset
            if length < 1 or length > remaining:
                raise ValueError(
                    f"Decoder returned length {length} at offset {offset} "
                    f"with {remaining} bytes remaining"
                )
            yield Decoded(offset=offset, instruction=instruction, length=length)
            offset += length
        else:
            yield Failed(offset=offset, skipped_bytes=RESYNC_STEP)
            offset += RESYNC_STEP
