"""
CPU feature scanning tools for MCP clients.

Provides:
- Code section listing for PE / ELF / Mach-O binaries
- CPUID feature reports with optional instruction, opcode and count detail
- Configuration status (.env and environment)
"""

import json
import logging

from cpuid_scan.engines.decoder.capstone_decoder import CapstoneDecoder
from cpuid_scan.engines.loader.sections import CodeSectionReader
from cpuid_scan.engines.scan.pipeline import scan_and_aggregate
from cpuid_scan.utils.config import (
    MAX_JOBS,
    get_config_int,
    get_config_status,
    get_ignored_features,
    list_config_keys,
)
from cpuid_scan.utils.formatters import ReportConfig, format_bytes, format_report, report_to_dict
from cpuid_scan.utils.security import validate_numeric_range
from cpuid_scan.utils.structured_errors import (
    StructuredBaseError,
    create_parameter_error,
    safe_error_message,
)

logger = logging.getLogger(__name__)

VALID_OUTPUT_FORMATS = ("text", "json")


def _feature_set(features: str) -> frozenset[str] | None:
    names = [name.strip().upper() for name in features.split(",") if name.strip()]
    return frozenset(names) if names else None


def list_binary_code_sections(binary_path: str) -> str:
    """
    List the executable code sections of a binary.

    Args:
        binary_path: Path to a PE, ELF or Mach-O file

    Returns:
        One line per code section with address range, size and bitness

    Example:
        list_binary_code_sections("/usr/bin/ls")
    """
    try:
        ranges = CodeSectionReader().list_code_sections(binary_path)
    except StructuredBaseError as e:
        return safe_error_message("list_binary_code_sections", e)

    output = [f"Code sections: {len(ranges)}", ""]
    for code_range in ranges:
        end = code_range.base_address + len(code_range)
        output.append(
            f"  {code_range.name or '<unnamed>':<24} "
            f"0x{code_range.base_address:x}-0x{end:x} "
            f"{format_bytes(len(code_range)):>10}  {code_range.bitness}-bit"
        )
    return "\n".join(output)


def scan_cpu_features(
    binary_path: str,
    show_instructions: bool = False,
    show_opcodes: bool = False,
    show_counts: bool = False,
    show_percent: bool = False,
    features: str = "",
    ignore_features: str = "",
    include_baseline: bool = False,
    output_format: str = "text",
) -> str:
    """
    Report the CPUID features required by the instructions of a binary.

    Args:
        binary_path: Path to a PE, ELF or Mach-O file
        show_instructions: List instructions under each feature
        show_opcodes: List encodings under each instruction
        show_counts: Include occurrence counts
        show_percent: Include each instruction's share of all decoded steps
        features: Comma-separated features to show (empty shows all)
        ignore_features: Comma-separated features to hide, in addition to CPUID_SCAN_IGNORE
        include_baseline: Include baseline features such as MODE64 and FPU
        output_format: "text" or "json"

    Returns:
        The formatted report, or an error description

    Example:
        scan_cpu_features("/usr/lib/libcrypto.so", show_instructions=True, features="AES,PCLMUL")
    """
    if output_format not in VALID_OUTPUT_FORMATS:
        return create_parameter_error(
            "output_format", output_format, "an output format", list(VALID_OUTPUT_FORMATS)
        ).to_user_message()

    jobs = get_config_int("CPUID_SCAN_JOBS", 1)
    try:
        validate_numeric_range(jobs, 1, MAX_JOBS, "CPUID_SCAN_JOBS")
    except ValueError:
        return create_parameter_error(
            "CPUID_SCAN_JOBS", jobs, f"an integer between 1 and {MAX_JOBS}"
        ).to_user_message()

    ignored = set(_feature_set(ignore_features) or ())
    ignored.update(get_ignored_features())

    config = ReportConfig(
        show_instructions=show_instructions,
        show_opcodes=show_opcodes,
        show_counts=show_counts,
        show_percent=show_percent,
        feature_filter=_feature_set(features),
        ignored_features=frozenset(ignored),
        include_baseline=include_baseline,
    )

    try:
        ranges = CodeSectionReader().list_code_sections(binary_path)
        report = scan_and_aggregate(ranges, workers=jobs)
    except StructuredBaseError as e:
        return safe_error_message("scan_cpu_features", e)

    if output_format == "json":
        return json.dumps(report_to_dict(report, config), indent=2)

    text = format_report(report, config)
    if not text:
        return "No CPUID features matched."
    return text


def decoder_status() -> str:
    """Describe the instruction decoder backend."""
    return json.dumps(CapstoneDecoder().diagnose(), indent=2)


def config_status() -> str:
    """
    Show which configuration keys are set and where their values come from.

    Returns:
        One line per key with its description, source and value
    """
    descriptions = list_config_keys()
    output = ["Configuration:", ""]
    for key, status in get_config_status().items():
        if status["set"]:
            output.append(f"  {key} = {status['value']!r} ({status['source']})")
        else:
            output.append(f"  {key} (not set)")
        output.append(f"      {descriptions[key]}")
    return "\n".join(output)


def register_feature_tools(app):
    """
    Register CPU feature tools with the MCP app.

    Args:
        app: FastMCP application instance
    """
    app.tool()(list_binary_code_sections)
    app.tool()(scan_cpu_features)
    app.tool()(decoder_status)
    app.tool()(config_status)
    logger.debug("Registered CPU feature tools")
