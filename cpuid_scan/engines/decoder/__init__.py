"""
Instruction decoders.

Currently supports:
- capstone (x86 16/32/64-bit)
"""

from .base import MAX_INSTRUCTION_LENGTH, InstructionDecoder
from .capstone_decoder import CapstoneDecoder

__all__ = ["CapstoneDecoder", "InstructionDecoder", "MAX_INSTRUCTION_LENGTH"]
