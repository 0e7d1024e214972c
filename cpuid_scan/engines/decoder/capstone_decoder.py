"""
Capstone-backed x86 instruction decoder.

Decodes one instruction at a time with the capstone x86 engine in detail
mode and turns it into an Instruction:
- text is the upper-case mnemonic plus an operand form (``r32``, ``xmm``,
  ``m128``, ``imm8``...) so register choice does not split report entries
- required features are capstone's x86-specific instruction groups
"""

import logging
import re
import threading
from typing import Any

import capstone
from capstone.x86 import X86_GRP_VM, X86_OP_IMM, X86_OP_MEM, X86_OP_REG

from cpuid_scan.engines.decoder.base import MAX_INSTRUCTION_LENGTH, InstructionDecoder
from cpuid_scan.engines.models import Instruction

logger = logging.getLogger(__name__)

CAPSTONE_MODES = {
    16: capstone.CS_MODE_16,
    32: capstone.CS_MODE_32,
    64: capstone.CS_MODE_64,
}

# Register families reported by name rather than by operand size
_REGISTER_FAMILY = re.compile(r"^(xmm|ymm|zmm|tmm|mm|k|bnd|cr|dr|st)\(?\d*\)?$")
_SEGMENT_REGISTERS = frozenset({"cs", "ds", "es", "fs", "gs", "ss"})
_POINTER_REGISTERS = frozenset({"rip", "eip", "ip"})


def operand_form(insn) -> str:
    """
    Describe the operands of a capstone instruction by kind and width.

    Args:
        insn: capstone CsInsn decoded with detail enabled

    Returns:
        Comma-separated operand forms, e.g. ``"r64, m64"``
    """
    forms = []
    for op in insn.operands:
        bits = op.size * 8
        if op.type == X86_OP_REG:
            name = insn.reg_name(op.reg) or ""
            family = _REGISTER_FAMILY.match(name)
            if family:
                forms.append(family.group(1))
            elif name in _SEGMENT_REGISTERS:
                forms.append("sreg")
            elif name in _POINTER_REGISTERS or not bits:
                forms.append(name)
            else:
                forms.append(f"r{bits}")
        elif op.type == X86_OP_MEM:
            forms.append(f"m{bits}" if bits else "m")
        elif op.type == X86_OP_IMM:
            forms.append(f"imm{bits}" if bits else "imm")
    return ", ".join(forms)


def instruction_text(insn) -> str:
    """Upper-case mnemonic followed by its operand form."""
    mnemonic = insn.mnemonic.upper()
    forms = operand_form(insn)
    return f"{mnemonic} {forms}" if forms else mnemonic


def feature_groups(insn) -> frozenset[str]:
    """
    Collect the CPU feature identifiers an instruction belongs to.

    Generic capstone groups (jump, call, ret, int, privilege...) sit below
    X86_GRP_VM and describe control flow, not CPU features.
    """
    features = set()
    for group_id in insn.groups:
        if group_id < X86_GRP_VM:
            continue
        name = insn.group_name(group_id)
        if name:
            features.add(name.upper())
    return frozenset(features)


class CapstoneDecoder(InstructionDecoder):
    """
    Single-instruction decoder built on capstone.

    Capstone handles are not safe to share between threads, so each thread
    lazily creates its own handle per bitness.
    """

    def __init__(self):
        self._local = threading.local()

    def _handle(self, bitness: int) -> capstone.Cs:
        handles = getattr(self._local, "handles", None)
        if handles is None:
            handles = {}
            self._local.handles = handles

        md = handles.get(bitness)
        if md is None:
            mode = CAPSTONE_MODES.get(bitness)
            if mode is None:
                raise ValueError(f"Unsupported bitness: {bitness}")
            md = capstone.Cs(capstone.CS_ARCH_X86, mode)
            md.detail = True
            handles[bitness] = md
            logger.debug(f"Created capstone handle for {bitness}-bit mode")
        return md

    def decode_one(
        self,
        data: bytes,
        bitness: int,
        address: int = 0,
    ) -> tuple[Instruction, int] | None:
        if not data:
            return None

        md = self._handle(bitness)
        window = bytes(data[:MAX_INSTRUCTION_LENGTH])
        try:
            insn = next(md.disasm(window, address, count=1), None)
        except capstone.CsError as e:
            logger.debug(f"capstone error at 0x{address:x}: {e}")
            return None

        if insn is None or insn.size < 1:
            return None

        instruction = Instruction(
            mnemonic_and_operands=instruction_text(insn),
            encoding_bytes=bytes(insn.bytes),
            required_features=feature_groups(insn),
        )
        return instruction, insn.size

    def diagnose(self) -> dict[str, Any]:
        major, minor, _ = capstone.cs_version()
        return {
            "backend": "capstone",
            "version": f"{major}.{minor}",
            "bindings": getattr(capstone, "__version__", "unknown"),
            "modes": sorted(CAPSTONE_MODES),
        }
