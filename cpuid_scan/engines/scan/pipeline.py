"""
Scan-and-aggregate pipeline.

Runs the sweep over every code range and folds the outcomes into one
AggregationReport. Ranges can be scanned by worker threads; each worker
fills a local report and the local reports are merged afterwards, which
gives the same result as a sequential scan.
"""

import logging
import time
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor

from cpuid_scan.engines.decoder.base import InstructionDecoder
from cpuid_scan.engines.decoder.capstone_decoder import CapstoneDecoder
from cpuid_scan.engines.models import CodeRange
from cpuid_scan.engines.scan.aggregator import AggregationReport, merge_reports
from cpuid_scan.engines.scan.sweep import sweep

logger = logging.getLogger(__name__)


def scan_range(code_range: CodeRange, decoder: InstructionDecoder) -> AggregationReport:
    """
    Sweep a single code range into a fresh report.

    Args:
        code_range: Bytes to scan
        decoder: Decoder used for every sweep step

    Returns:
        Report holding only this range's instructions
    """
    start = time.monotonic()
    report = AggregationReport().record_all(sweep(code_range, decoder))
    logger.debug(
        f"Scanned {code_range.describe()}: {report.decoded_count} instructions, "
        f"{report.failed_bytes} undecodable bytes in {time.monotonic() - start:.2f}s"
    )
    return report


def scan_and_aggregate(
    ranges: Sequence[CodeRange],
    decoder: InstructionDecoder | None = None,
    workers: int = 1,
) -> AggregationReport:
    """
    Scan all code ranges and return their combined report.

    Args:
        ranges: Code ranges to scan, typically one per code section
        decoder: Decoder to use (capstone when omitted)
        workers: Number of worker threads; 1 scans sequentially

    Returns:
        The union of all per-range reports
    """
    if workers < 1:
        raise ValueError(f"workers must be at least 1, got {workers}")

    decoder = decoder or CapstoneDecoder()

    if workers == 1 or len(ranges) < 2:
        report = AggregationReport()
        for code_range in ranges:
            report.merge(scan_range(code_range, decoder))
    else:
        with ThreadPoolExecutor(max_workers=min(workers, len(ranges))) as pool:
            report = merge_reports(pool.map(lambda r: scan_range(r, decoder), ranges))

    logger.info(
        f"Scanned {len(ranges)} code range(s): {report.decoded_count} instructions, "
        f"{len(report.features)} feature(s)"
    )
    return report
