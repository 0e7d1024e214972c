"""
Base interface for instruction decoders.

The scan engine only needs one capability from a decoder: decode a single
instruction at the start of a byte buffer. Decoders implement this interface
so the sweep can run against capstone in production and stubs in tests.
"""

from abc import ABC, abstractmethod
from typing import Any

from cpuid_scan.engines.models import Instruction

# Longest legal x86 instruction; decoders never need more than this.
MAX_INSTRUCTION_LENGTH = 15


class InstructionDecoder(ABC):
    """Base class for single-instruction decoders."""

    @abstractmethod
    def decode_one(
        self,
        data: bytes,
        bitness: int,
        address: int = 0,
    ) -> tuple[Instruction, int] | None:
        """
        Decode the instruction at the start of ``data``.

        Args:
            data: Bytes-like buffer starting at the current sweep offset
            bitness: Decoding mode (16, 32 or 64)
            address: Virtual address of ``data[0]``

        Returns:
            ``(instruction, length)`` with ``1 <= length <= len(data)``,
            or None when the bytes do not form a valid instruction
        """
        pass

    @abstractmethod
    def diagnose(self) -> dict[str, Any]:
        """
        Report decoder installation details.

        Returns:
            Dictionary with backend name, version and supported modes
        """
        pass
