"""
Tests for code section discovery.

Builds minimal PE, ELF and Mach-O files in memory and checks which
sections are reported as code and with which addresses and bitness.
"""

import pytest

from binaries import (
    CPU_TYPE_ARM64,
    CPU_TYPE_X86,
    CPU_TYPE_X86_64,
    S_ATTR_CODE,
    SCN_CODE,
    SCN_DATA,
    SHF_ALLOC,
    SHF_EXECINSTR,
    build_elf,
    build_fat,
    build_macho,
    build_pe,
)
from cpuid_scan.engines.loader.sections import BinaryFormat, CodeSectionReader, list_code_sections
from cpuid_scan.utils.structured_errors import (
    BinaryReadError,
    ErrorCode,
    NoCodeSectionsError,
    UnsupportedFormatError,
)

CODE = b"\x0f\x28\xca\x48\x0f\x47\xc1\xc3"


@pytest.fixture
def reader():
    return CodeSectionReader(max_size_bytes=1024 * 1024)


class TestDetectFormat:
    """Tests for magic-based format detection."""

    def test_known_magics(self, reader):
        assert reader.detect_format(b"MZ\x90\x00") == BinaryFormat.PE
        assert reader.detect_format(b"\x7fELF\x02") == BinaryFormat.ELF
        assert reader.detect_format(b"\xcf\xfa\xed\xfe") == BinaryFormat.MACHO
        assert reader.detect_format(b"\xfe\xed\xfa\xce") == BinaryFormat.MACHO
        assert reader.detect_format(b"\xca\xfe\xba\xbe\x00\x00\x00\x02") == BinaryFormat.MACHO_FAT

    def test_java_class_is_not_fat(self, reader):
        """Java class files share the fat magic but carry a large version number."""
        assert reader.detect_format(b"\xca\xfe\xba\xbe\x00\x00\x00\x34") == BinaryFormat.UNKNOWN

    def test_short_or_unknown(self, reader):
        assert reader.detect_format(b"MZ") == BinaryFormat.UNKNOWN
        assert reader.detect_format(b"#!/bin/sh\n") == BinaryFormat.UNKNOWN


class TestPESections:
    """Tests for PE code section listing."""

    def test_amd64_text_section(self, reader, write_binary):
        path = write_binary("app.exe", build_pe([
            (".text", CODE, SCN_CODE),
            (".data", b"\x01" * 32, SCN_DATA),
        ]))

        ranges = reader.list_code_sections(path)

        assert len(ranges) == 1
        assert ranges[0].name == ".text"
        assert ranges[0].bitness == 64
        assert ranges[0].base_address == 0x140000000 + 0x1000
        assert ranges[0].data == CODE

    def test_i386(self, reader, write_binary):
        path = write_binary("app32.exe", build_pe([(".text", CODE, SCN_CODE)], machine=0x14C, image_base=0x400000))

        ranges = reader.list_code_sections(path)

        assert ranges[0].bitness == 32
        assert ranges[0].base_address == 0x401000

    def test_multiple_code_sections_in_file_order(self, reader, write_binary):
        path = write_binary("multi.exe", build_pe([
            (".text", CODE, SCN_CODE),
            (".rdata", b"\x00" * 16, SCN_DATA),
            (".text2", b"\x90\xc3", SCN_CODE),
        ]))

        names = [r.name for r in reader.list_code_sections(path)]
        assert names == [".text", ".text2"]

    def test_unsupported_machine(self, reader, write_binary):
        path = write_binary("arm.exe", build_pe([(".text", CODE, SCN_CODE)], machine=0xAA64))

        with pytest.raises(UnsupportedFormatError) as exc_info:
            reader.list_code_sections(path)
        assert exc_info.value.code == ErrorCode.UNSUPPORTED_ARCHITECTURE

    def test_no_code_sections(self, reader, write_binary):
        path = write_binary("data.dll", build_pe([(".data", b"\x01" * 32, SCN_DATA)]))

        with pytest.raises(NoCodeSectionsError) as exc_info:
            reader.list_code_sections(path)
        assert exc_info.value.code == ErrorCode.NO_CODE_SECTIONS

    def test_truncated_pe(self, reader, write_binary):
        path = write_binary("broken.exe", b"MZ" + b"\x00" * 10)

        with pytest.raises(UnsupportedFormatError) as exc_info:
            reader.list_code_sections(path)
        assert exc_info.value.code == ErrorCode.MALFORMED_CONTAINER


class TestELFSections:
    """Tests for ELF code section listing."""

    def test_x86_64(self, reader, write_binary):
        path = write_binary("a.out", build_elf([
            (".text", CODE, 0x401000, SHF_ALLOC | SHF_EXECINSTR),
            (".rodata", b"hello\x00", 0x402000, SHF_ALLOC),
            (".init", b"\x90\xc3", 0x400800, SHF_ALLOC | SHF_EXECINSTR),
        ]))

        ranges = reader.list_code_sections(path)

        assert [r.name for r in ranges] == [".text", ".init"]
        assert ranges[0].base_address == 0x401000
        assert ranges[0].bitness == 64
        assert ranges[0].data == CODE

    def test_i386(self, reader, write_binary):
        path = write_binary("a32.out", build_elf(
            [(".text", CODE, 0x8048000, SHF_ALLOC | SHF_EXECINSTR)],
            machine=0x03,
            elfclass=32,
        ))

        ranges = reader.list_code_sections(path)
        assert ranges[0].bitness == 32
        assert ranges[0].base_address == 0x8048000

    def test_arm_rejected(self, reader, write_binary):
        path = write_binary("arm.out", build_elf(
            [(".text", CODE, 0x8000, SHF_ALLOC | SHF_EXECINSTR)],
            machine=0x28,
            elfclass=32,
        ))

        with pytest.raises(UnsupportedFormatError) as exc_info:
            reader.list_code_sections(path)
        assert exc_info.value.code == ErrorCode.UNSUPPORTED_ARCHITECTURE

    def test_no_executable_sections(self, reader, write_binary):
        path = write_binary("data.o", build_elf([(".rodata", b"abc", 0, SHF_ALLOC)]))

        with pytest.raises(NoCodeSectionsError):
            reader.list_code_sections(path)


class TestMachOSections:
    """Tests for Mach-O code section listing."""

    def test_thin_x86_64(self, reader, write_binary):
        path = write_binary("tool", build_macho([
            ("__text", CODE, S_ATTR_CODE),
            ("__cstring", b"hi\x00", 0x2),
        ]))

        ranges = reader.list_code_sections(path)

        assert len(ranges) == 1
        assert ranges[0].name == "__TEXT,__text"
        assert ranges[0].bitness == 64
        assert ranges[0].data == CODE
        assert ranges[0].base_address >= 0x100000000

    def test_thin_i386(self, reader, write_binary):
        path = write_binary("tool32", build_macho([("__text", CODE, S_ATTR_CODE)], cputype=CPU_TYPE_X86, vmaddr=0x1000))

        ranges = reader.list_code_sections(path)
        assert ranges[0].bitness == 32
        assert ranges[0].data == CODE

    def test_fat_prefers_x86_64(self, reader, write_binary):
        slices = [
            (CPU_TYPE_ARM64, build_macho([("__text", b"\x1f\x20\x03\xd5", S_ATTR_CODE)], cputype=CPU_TYPE_ARM64)),
            (CPU_TYPE_X86, build_macho([("__text", b"\x90", S_ATTR_CODE)], cputype=CPU_TYPE_X86, vmaddr=0x1000)),
            (CPU_TYPE_X86_64, build_macho([("__text", CODE, S_ATTR_CODE)])),
        ]
        path = write_binary("universal", build_fat(slices))

        ranges = reader.list_code_sections(path)
        assert ranges[0].bitness == 64
        assert ranges[0].data == CODE

    def test_fat_without_x86(self, reader, write_binary):
        slices = [(CPU_TYPE_ARM64, build_macho([("__text", b"\x1f\x20\x03\xd5", S_ATTR_CODE)], cputype=CPU_TYPE_ARM64))]
        path = write_binary("arm_only", build_fat(slices))

        with pytest.raises(UnsupportedFormatError) as exc_info:
            reader.list_code_sections(path)
        assert exc_info.value.code == ErrorCode.UNSUPPORTED_ARCHITECTURE

    def test_thin_arm64_rejected(self, reader, write_binary):
        path = write_binary("arm", build_macho([("__text", b"\x1f\x20\x03\xd5", S_ATTR_CODE)], cputype=CPU_TYPE_ARM64))

        with pytest.raises(UnsupportedFormatError) as exc_info:
            reader.list_code_sections(path)
        assert exc_info.value.code == ErrorCode.UNSUPPORTED_ARCHITECTURE

    def test_truncated_load_commands(self, reader, write_binary):
        image = build_macho([("__text", CODE, S_ATTR_CODE)])
        path = write_binary("cut", image[:40])

        with pytest.raises(UnsupportedFormatError) as exc_info:
            reader.list_code_sections(path)
        assert exc_info.value.code == ErrorCode.MALFORMED_CONTAINER


class TestReaderErrors:
    """Tests for file level errors."""

    def test_missing_file(self, reader, tmp_path):
        with pytest.raises(BinaryReadError) as exc_info:
            reader.list_code_sections(tmp_path / "missing.bin")
        assert exc_info.value.code == ErrorCode.FILE_NOT_FOUND

    def test_directory(self, reader, tmp_path):
        with pytest.raises(BinaryReadError):
            reader.list_code_sections(tmp_path)

    def test_too_large(self, write_binary):
        path = write_binary("big.bin", b"\x7fELF" + b"\x00" * 100)

        with pytest.raises(BinaryReadError) as exc_info:
            CodeSectionReader(max_size_bytes=16).list_code_sections(path)
        assert exc_info.value.code == ErrorCode.FILE_TOO_LARGE

    def test_unknown_format(self, reader, write_binary):
        path = write_binary("notes.txt", b"just some text\n")

        with pytest.raises(UnsupportedFormatError) as exc_info:
            reader.list_code_sections(path)
        assert exc_info.value.code == ErrorCode.UNSUPPORTED_FORMAT
        assert exc_info.value.to_dict()["debug_info"]["magic"] == b"just".hex()

    def test_module_level_helper(self, write_binary):
        path = write_binary("a.out", build_elf([(".text", CODE, 0x1000, SHF_ALLOC | SHF_EXECINSTR)]))
        assert list_code_sections(str(path))[0].name == ".text"


class TestRawCodeRange:
    """Tests for raw mode."""

    def test_whole_file_is_code(self, reader, write_binary):
        path = write_binary("shellcode.bin", CODE)

        code_range = reader.raw_code_range(path, 32, base_address=0x7000)

        assert code_range.data == CODE
        assert code_range.bitness == 32
        assert code_range.base_address == 0x7000
        assert code_range.name == "shellcode.bin"

    def test_invalid_bitness(self, reader, write_binary):
        path = write_binary("shellcode.bin", CODE)
        with pytest.raises(ValueError):
            reader.raw_code_range(path, 8)
