"""
Command line interface.

Shows the CPUID features and instruction encodings used by x86/x64
binaries. Every byte inside a code section is assumed to be code; odd
instructions in the output are usually data decoded as instructions.

    cpuid-scan ./a.out
    cpuid-scan -i -c --cpuid AVX,AVX2 ./libfoo.so
    cpuid-scan -o --raw 64 ./shellcode.bin
"""

import argparse
import json
import logging
import sys

from cpuid_scan.engines.loader.sections import CodeSectionReader
from cpuid_scan.engines.scan.pipeline import scan_and_aggregate
from cpuid_scan.utils.config import MAX_JOBS, get_config, get_config_int, get_ignored_features
from cpuid_scan.utils.formatters import ReportConfig, format_report, report_to_dict
from cpuid_scan.utils.security import validate_numeric_range
from cpuid_scan.utils.structured_errors import StructuredBaseError

logger = logging.getLogger(__name__)


def parse_feature_list(value: str | None) -> list[str]:
    """Split a ','-separated feature list; names are matched upper-case."""
    if not value:
        return []
    return [item.strip().upper() for item in value.split(",") if item.strip()]


def _address(value: str) -> int:
    try:
        address = int(value, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid address: {value!r}")
    if address < 0:
        raise argparse.ArgumentTypeError(f"address must be non-negative: {value!r}")
    return address


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cpuid-scan",
        description="Shows CPUID features and instruction encodings used by x86/x64 binaries.",
        epilog="All bytes inside code sections are assumed to be code.",
    )
    parser.add_argument("binary", help="The executable or library to decode")
    parser.add_argument("-i", "--instr", action="store_true", help="Shows instructions")
    parser.add_argument(
        "-o", "--opcode", action="store_true",
        help="Shows opcodes (implies --instr)",
    )
    parser.add_argument(
        "-c", "--count", action="store_true",
        help="Shows instruction and opcode counts (requires --instr or --opcode)",
    )
    parser.add_argument(
        "-p", "--percent", action="store_true",
        help="Shows how often an instruction is used, in percent (requires --instr or --opcode)",
    )
    parser.add_argument(
        "-a", "--all", action="store_true",
        help="Includes baseline features such as MODE64 and FPU",
    )
    parser.add_argument(
        "--cpuid", metavar="F1,F2",
        help="Shows only the following CPUID features (','-separated). Matches whole strings.",
    )
    parser.add_argument(
        "--ignore-cpuid", metavar="F1,F2",
        help="Ignores the following CPUID features (','-separated). Matches whole strings.",
    )
    parser.add_argument("--json", action="store_true", help="Prints the report as JSON")
    parser.add_argument(
        "--raw", type=int, choices=(16, 32, 64), metavar="BITNESS",
        help="Treats the whole file as code of the given bitness (16, 32 or 64)",
    )
    parser.add_argument(
        "--base-address", type=_address, default=0, metavar="ADDR",
        help="Base address used with --raw (default: 0)",
    )
    parser.add_argument(
        "-j", "--jobs", type=int, default=None,
        help="Worker threads used to scan code sections (default: CPUID_SCAN_JOBS or 1)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enables debug logging")
    return parser


def build_report_config(args: argparse.Namespace) -> ReportConfig:
    """Map parsed arguments onto report rendering options."""
    feature_filter = parse_feature_list(args.cpuid)
    ignored = parse_feature_list(args.ignore_cpuid)
    ignored += get_ignored_features()

    return ReportConfig(
        show_instructions=args.instr,
        show_opcodes=args.opcode,
        show_counts=args.count,
        show_percent=args.percent,
        feature_filter=frozenset(feature_filter) if feature_filter else None,
        ignored_features=frozenset(ignored),
        include_baseline=args.all,
    )


def configure_logging(verbose: bool = False) -> None:
    """Send log records to stderr so stdout only carries the report."""
    level_name = "DEBUG" if verbose else (get_config("CPUID_SCAN_LOG_LEVEL") or "WARNING")
    level = getattr(logging, level_name.upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
    )


def main(argv: list[str] | None = None) -> int:
    """Run the scanner; returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    jobs = args.jobs if args.jobs is not None else get_config_int("CPUID_SCAN_JOBS", 1)
    try:
        validate_numeric_range(jobs, 1, MAX_JOBS, "jobs")
    except ValueError as e:
        parser.error(str(e))

    config = build_report_config(args)
    reader = CodeSectionReader()

    try:
        if args.raw:
            ranges = [reader.raw_code_range(args.binary, args.raw, args.base_address)]
        else:
            ranges = reader.list_code_sections(args.binary)
        report = scan_and_aggregate(ranges, workers=jobs)
    except StructuredBaseError as e:
        logger.error(f"Scan of {args.binary} failed: {e.code.value}")
        print(e.structured_error.to_user_message(), file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(report_to_dict(report, config), indent=2))
    else:
        sys.stdout.write(format_report(report, config))
    return 0


if __name__ == "__main__":
    sys.exit(main())
