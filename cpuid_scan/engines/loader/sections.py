"""
Code section discovery for PE, ELF and Mach-O binaries.

Detects the container format from its magic bytes, then lists the sections
flagged as executable code as CodeRange objects ready for scanning. Only
x86 and x86-64 containers are accepted.
"""

import io
import logging
import struct
from enum import Enum
from pathlib import Path

import pefile
from elftools.common.exceptions import ELFError, ELFParseError
from elftools.elf.constants import SH_FLAGS
from elftools.elf.elffile import ELFFile

from cpuid_scan.engines.models import CodeRange
from cpuid_scan.utils.config import get_max_file_size
from cpuid_scan.utils.security import sanitize_binary_path
from cpuid_scan.utils.structured_errors import (
    BinaryReadError,
    NoCodeSectionsError,
    UnsupportedFormatError,
    create_file_unreadable_error,
    create_malformed_container_error,
    create_no_code_sections_error,
    create_unsupported_architecture_error,
    create_unsupported_format_error,
)

logger = logging.getLogger(__name__)


class BinaryFormat(Enum):
    """Recognized container formats."""
    PE = "PE"
    ELF = "ELF"
    MACHO = "Mach-O"
    MACHO_FAT = "Mach-O universal"
    RAW = "raw"
    UNKNOWN = "unknown"


class CodeSectionReader:
    """
    Lists the executable code sections of a binary.

    Format-specific parsing is delegated to pefile (PE), pyelftools (ELF)
    and plain struct header walking (Mach-O).
    """

    # Magic bytes for format detection
    MAGIC_PE = b'MZ'
    MAGIC_ELF = b'\x7fELF'
    MAGIC_MACHO_32 = b'\xfe\xed\xfa\xce'  # Big-endian
    MAGIC_MACHO_32_LE = b'\xce\xfa\xed\xfe'  # Little-endian
    MAGIC_MACHO_64 = b'\xfe\xed\xfa\xcf'  # Big-endian
    MAGIC_MACHO_64_LE = b'\xcf\xfa\xed\xfe'  # Little-endian
    MAGIC_MACHO_FAT = b'\xca\xfe\xba\xbe'  # Universal binary (also Java class)
    MAGIC_MACHO_FAT_64 = b'\xca\xfe\xba\xbf'

    # PE machine types
    PE_MACHINE_BITNESS = {
        pefile.MACHINE_TYPE['IMAGE_FILE_MACHINE_I386']: 32,
        pefile.MACHINE_TYPE['IMAGE_FILE_MACHINE_AMD64']: 64,
    }
    PE_CODE_FLAGS = (
        pefile.SECTION_CHARACTERISTICS['IMAGE_SCN_CNT_CODE']
        | pefile.SECTION_CHARACTERISTICS['IMAGE_SCN_MEM_EXECUTE']
    )

    # ELF machine types
    ELF_X86_MACHINES = ("EM_386", "EM_X86_64")

    # Mach-O constants
    CPU_TYPE_X86 = 0x00000007
    CPU_TYPE_X86_64 = 0x01000007
    LC_SEGMENT = 0x1
    LC_SEGMENT_64 = 0x19
    S_ATTR_PURE_INSTRUCTIONS = 0x80000000
    S_ATTR_SOME_INSTRUCTIONS = 0x00000400
    S_ZEROFILL_TYPES = (0x1, 0xC, 0x12)  # S_ZEROFILL, S_GB_ZEROFILL, S_THREAD_LOCAL_ZEROFILL
    MAX_FAT_ARCHS = 30  # Java class files share the fat magic; their version is >= 45

    def __init__(self, max_size_bytes: int | None = None):
        self.max_size_bytes = max_size_bytes if max_size_bytes is not None else get_max_file_size()

    def read(self, binary_path: str | Path) -> tuple[Path, bytes]:
        """Validate and read the whole binary."""
        path = sanitize_binary_path(binary_path, max_size_bytes=self.max_size_bytes)
        try:
            return path, path.read_bytes()
        except OSError as e:
            raise BinaryReadError(create_file_unreadable_error(str(binary_path), str(e)))

    def list_code_sections(self, binary_path: str | Path) -> list[CodeRange]:
        """
        List executable code sections of a binary.

        Args:
            binary_path: Path to a PE, ELF or Mach-O file

        Returns:
            One CodeRange per non-empty code section, in file order

        Raises:
            BinaryReadError: If the file cannot be read
            UnsupportedFormatError: If the format or architecture is not supported
            NoCodeSectionsError: If no code section is found
        """
        path, data = self.read(binary_path)
        binary_format = self.detect_format(data)
        logger.debug(f"{path.name}: detected {binary_format.value} container")

        if binary_format == BinaryFormat.PE:
            ranges = self._pe_sections(str(path), data)
        elif binary_format == BinaryFormat.ELF:
            ranges = self._elf_sections(str(path), data)
        elif binary_format in (BinaryFormat.MACHO, BinaryFormat.MACHO_FAT):
            ranges = self._macho_sections(str(path), data)
        else:
            raise UnsupportedFormatError(create_unsupported_format_error(str(path), data[:4]))

        if not ranges:
            raise NoCodeSectionsError(create_no_code_sections_error(str(path), binary_format.value))

        for code_range in ranges:
            logger.debug(f"Code section {code_range.describe()}")
        return ranges

    def raw_code_range(
        self,
        binary_path: str | Path,
        bitness: int,
        base_address: int = 0,
    ) -> CodeRange:
        """Treat the whole file as a single code range."""
        path, data = self.read(binary_path)
        return CodeRange(data=data, base_address=base_address, bitness=bitness, name=path.name)

    def detect_format(self, header: bytes) -> BinaryFormat:
        """Detect binary format from header bytes."""
        if len(header) < 4:
            return BinaryFormat.UNKNOWN

        magic = header[:4]
        if header[:2] == self.MAGIC_PE:
            return BinaryFormat.PE
        if magic == self.MAGIC_ELF:
            return BinaryFormat.ELF
        if magic in (self.MAGIC_MACHO_32, self.MAGIC_MACHO_32_LE,
                     self.MAGIC_MACHO_64, self.MAGIC_MACHO_64_LE):
            return BinaryFormat.MACHO
        if magic in (self.MAGIC_MACHO_FAT, self.MAGIC_MACHO_FAT_64) and len(header) >= 8:
            nfat_arch = struct.unpack('>I', header[4:8])[0]
            if 0 < nfat_arch <= self.MAX_FAT_ARCHS:
                return BinaryFormat.MACHO_FAT

        return BinaryFormat.UNKNOWN

    # ------------------------------------------------------------------
    # PE
    # ------------------------------------------------------------------

    def _pe_sections(self, path: str, data: bytes) -> list[CodeRange]:
        try:
            pe = pefile.PE(data=data, fast_load=True)
        except pefile.PEFormatError as e:
            raise UnsupportedFormatError(create_malformed_container_error(path, "PE", str(e)))

        try:
            machine = pe.FILE_HEADER.Machine
            bitness = self.PE_MACHINE_BITNESS.get(machine)
            if bitness is None:
                machine_name = pefile.MACHINE_TYPE.get(machine, f"0x{machine:x}")
                raise UnsupportedFormatError(
                    create_unsupported_architecture_error(path, "PE", str(machine_name))
                )

            image_base = pe.OPTIONAL_HEADER.ImageBase
            ranges = []
            for section in pe.sections:
                name = section.Name.decode('utf-8', errors='ignore').rstrip('\x00')
                if not section.Characteristics & self.PE_CODE_FLAGS:
                    continue

                section_data = section.get_data()
                virtual_size = section.Misc_VirtualSize
                if virtual_size and virtual_size < len(section_data):
                    # Raw data is padded up to FileAlignment
                    section_data = section_data[:virtual_size]

                if not section_data:
                    logger.warning(f"PE section {name} is flagged as code but has no data")
                    continue

                ranges.append(CodeRange(
                    data=bytes(section_data),
                    base_address=image_base + section.VirtualAddress,
                    bitness=bitness,
                    name=name,
                ))
            return ranges
        finally:
            pe.close()

    # ------------------------------------------------------------------
    # ELF
    # ------------------------------------------------------------------

    def _elf_sections(self, path: str, data: bytes) -> list[CodeRange]:
        try:
            elf = ELFFile(io.BytesIO(data))
            machine = elf['e_machine']
            if machine not in self.ELF_X86_MACHINES:
                raise UnsupportedFormatError(
                    create_unsupported_architecture_error(path, "ELF", str(machine))
                )

            bitness = elf.elfclass
            ranges = []
            for section in elf.iter_sections():
                if section['sh_type'] != 'SHT_PROGBITS':
                    continue
                if not section['sh_flags'] & SH_FLAGS.SHF_EXECINSTR:
                    continue

                section_data = section.data()
                if not section_data:
                    continue

                ranges.append(CodeRange(
                    data=bytes(section_data),
                    base_address=section['sh_addr'],
                    bitness=bitness,
                    name=section.name,
                ))
            return ranges
        except (ELFError, ELFParseError, struct.error) as e:
            raise UnsupportedFormatError(create_malformed_container_error(path, "ELF", str(e)))

    # ------------------------------------------------------------------
    # Mach-O
    # ------------------------------------------------------------------

    def _macho_sections(self, path: str, data: bytes) -> list[CodeRange]:
        try:
            if data[:4] in (self.MAGIC_MACHO_FAT, self.MAGIC_MACHO_FAT_64):
                offset, size = self._pick_fat_slice(path, data)
                return self._thin_macho_sections(path, data[offset:offset + size])
            return self._thin_macho_sections(path, data)
        except struct.error as e:
            raise UnsupportedFormatError(create_malformed_container_error(path, "Mach-O", str(e)))

    def _pick_fat_slice(self, path: str, data: bytes) -> tuple[int, int]:
        """Find the x86 slice of a universal binary, preferring x86-64."""
        is_64 = data[:4] == self.MAGIC_MACHO_FAT_64
        nfat_arch = struct.unpack_from('>I', data, 4)[0]
        entry_fmt = '>iiQQII' if is_64 else '>iiIII'
        entry_size = struct.calcsize(entry_fmt)

        slices = {}
        cpu_types = []
        for i in range(nfat_arch):
            fields = struct.unpack_from(entry_fmt, data, 8 + i * entry_size)
            cputype, offset, size = fields[0], fields[2], fields[3]
            cpu_types.append(f"0x{cputype & 0xFFFFFFFF:x}")
            slices.setdefault(cputype, (offset, size))

        for cputype in (self.CPU_TYPE_X86_64, self.CPU_TYPE_X86):
            if cputype in slices:
                logger.debug(f"Using fat slice cputype=0x{cputype:x} of {nfat_arch}")
                return slices[cputype]

        raise UnsupportedFormatError(
            create_unsupported_architecture_error(path, "Mach-O universal", ", ".join(cpu_types))
        )

    def _thin_macho_sections(self, path: str, data: bytes) -> list[CodeRange]:
        magic = data[:4]
        if magic in (self.MAGIC_MACHO_32_LE, self.MAGIC_MACHO_64_LE):
            endian = '<'
        elif magic in (self.MAGIC_MACHO_32, self.MAGIC_MACHO_64):
            endian = '>'
        else:
            raise UnsupportedFormatError(create_unsupported_format_error(path, magic))

        is_64 = magic in (self.MAGIC_MACHO_64, self.MAGIC_MACHO_64_LE)
        cputype, _, _, ncmds, _, _ = struct.unpack_from(f'{endian}iiIIII', data, 4)
        if cputype not in (self.CPU_TYPE_X86, self.CPU_TYPE_X86_64):
            raise UnsupportedFormatError(
                create_unsupported_architecture_error(path, "Mach-O", f"0x{cputype & 0xFFFFFFFF:x}")
            )

        bitness = 64 if cputype == self.CPU_TYPE_X86_64 else 32
        offset = 32 if is_64 else 28

        if is_64:
            segment_fmt, section_fmt = f'{endian}16sQQQQiiII', f'{endian}16s16sQQIIIIIIII'
            segment_cmd = self.LC_SEGMENT_64
        else:
            segment_fmt, section_fmt = f'{endian}16sIIIIiiII', f'{endian}16s16sIIIIIIIII'
            segment_cmd = self.LC_SEGMENT
        segment_size = struct.calcsize(segment_fmt)
        section_size = struct.calcsize(section_fmt)

        ranges = []
        for _ in range(ncmds):
            cmd, cmdsize = struct.unpack_from(f'{endian}II', data, offset)
            if cmdsize < 8:
                raise UnsupportedFormatError(
                    create_malformed_container_error(path, "Mach-O", f"load command size {cmdsize}")
                )

            if cmd == segment_cmd:
                nsects = struct.unpack_from(segment_fmt, data, offset + 8)[7]
                section_offset = offset + 8 + segment_size
                for _ in range(nsects):
                    fields = struct.unpack_from(section_fmt, data, section_offset)
                    section_offset += section_size
                    code_range = self._macho_code_range(data, fields, bitness)
                    if code_range is not None:
                        ranges.append(code_range)

            offset += cmdsize

        return ranges

    def _macho_code_range(self, data: bytes, fields: tuple, bitness: int) -> CodeRange | None:
        sectname, segname, addr, size, file_offset = fields[:5]
        flags = fields[8]

        if not flags & (self.S_ATTR_PURE_INSTRUCTIONS | self.S_ATTR_SOME_INSTRUCTIONS):
            return None
        if flags & 0xFF in self.S_ZEROFILL_TYPES or size == 0:
            return None

        section_data = data[file_offset:file_offset + size]
        if len(section_data) < size:
            logger.warning(
                f"Mach-O section {_cstr(segname)},{_cstr(sectname)} is truncated "
                f"({len(section_data)} of {size} bytes)"
            )
        if not section_data:
            return None

        return CodeRange(
            data=bytes(section_data),
            base_address=addr,
            bitness=bitness,
            name=f"{_cstr(segname)},{_cstr(sectname)}",
        )


def _cstr(raw: bytes) -> str:
    return raw.split(b'\x00', 1)[0].decode('utf-8', errors='ignore')


def list_code_sections(binary_path: str | Path) -> list[CodeRange]:
    """List the code sections of a binary with the default size limit."""
    return CodeSectionReader().list_code_sections(binary_path)
