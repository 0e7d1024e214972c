"""
Data classes shared by the scan engine.

Typed representations of the code ranges fed into a sweep, the decoded
instructions coming out of it, and the per-step decode outcomes.
"""

from dataclasses import dataclass, field

VALID_BITNESS = (16, 32, 64)


@dataclass(frozen=True)
class CodeRange:
    """A contiguous byte range known to contain machine code."""

    data: bytes
    base_address: int
    bitness: int
    name: str = ""

    def __post_init__(self):
        if self.bitness not in VALID_BITNESS:
            raise ValueError(f"bitness must be one of {VALID_BITNESS}, got {self.bitness}")
        if self.base_address < 0:
            raise ValueError(f"base_address must be non-negative, got {self.base_address}")

    def __len__(self) -> int:
        return len(self.data)

    def describe(self) -> str:
        """One-line summary used in logs and tool output."""
        label = self.name or "<unnamed>"
        return (
            f"{label} @ 0x{self.base_address:x} "
            f"({len(self.data)} bytes, {self.bitness}-bit)"
        )


@dataclass(frozen=True)
class Instruction:
    """A decoded instruction as reported by the decoder.

    Two instructions are the same report entry when their
    ``mnemonic_and_operands`` text matches; ``encoding_bytes`` only
    distinguishes entries at the opcode level.
    """

    mnemonic_and_operands: str
    encoding_bytes: bytes
    required_features: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class Decoded:
    """Sweep step that produced an instruction."""

    offset: int
    instruction: Instruction
    length: int


@dataclass(frozen=True)
class Failed:
    """Sweep step where nothing could be decoded."""

    offset: int
    skipped_bytes: int = 1


DecodeOutcome = Decoded | Failed
