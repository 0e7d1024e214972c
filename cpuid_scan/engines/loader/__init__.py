"""
Binary container readers.

Currently supports:
- PE (pefile)
- ELF (pyelftools)
- Mach-O thin and universal binaries
"""

from .sections import BinaryFormat, CodeSectionReader, list_code_sections

__all__ = ["BinaryFormat", "CodeSectionReader", "list_code_sections"]
