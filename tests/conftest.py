"""
Shared fixtures: a table-driven stub decoder and a file writer.
"""

import pytest

from cpuid_scan.engines.decoder.base import InstructionDecoder
from cpuid_scan.engines.models import Instruction


class StubDecoder(InstructionDecoder):
    """
    Decodes by leading byte.

    ``table`` maps a first byte to ``(text, length, features)``. Unknown
    bytes and instructions running past the end of the data fail.
    """

    def __init__(self, table):
        self.table = table
        self.calls = []

    def decode_one(self, data, bitness, address=0):
        self.calls.append((address, bitness, len(data)))
        if not data:
            return None
        entry = self.table.get(data[0])
        if entry is None:
            return None
        text, length, features = entry
        if length > len(data):
            return None
        encoding = bytes(data[:length])
        return Instruction(text, encoding, frozenset(features)), length

    def diagnose(self):
        return {"backend": "stub"}


# First-byte table used across the engine tests
STUB_TABLE = {
    0xAA: ("MOVAPS xmm1, xmm2/m128", 5, {"SSE"}),
    0xAB: ("MOVAPD xmm1, xmm2/m128", 4, {"SSE2"}),
    0xC0: ("CMOVA r32, r/m32", 3, {"CMOV"}),
    0xC1: ("CMOVA r64, r/m64", 4, {"CMOV"}),
    0xD0: ("AESENC xmm1, xmm2/m128", 2, {"AES", "AVX"}),
    0x90: ("NOP", 1, set()),
    0xE0: ("FADD st(0), st(i)", 2, {"FPU"}),
}


@pytest.fixture
def stub_decoder():
    return StubDecoder(STUB_TABLE)


@pytest.fixture
def write_binary(tmp_path):
    """Write bytes to a file under tmp_path and return its path."""
    def _write(name, data):
        path = tmp_path / name
        path.write_bytes(data)
        return path
    return _write
