"""
Code-section scan engine.

Components:
- sweep.py: Linear sweep with single-byte resynchronization
- classifier.py: Feature classification policy
- aggregator.py: Feature -> instruction -> encoding counts
- pipeline.py: scan_and_aggregate over many code ranges
"""

from cpuid_scan.engines.models import CodeRange, Decoded, DecodeOutcome, Failed, Instruction
from cpuid_scan.engines.scan.aggregator import (
    AggregationReport,
    InstructionStats,
    format_encoding,
    merge_reports,
)
from cpuid_scan.engines.scan.classifier import BASELINE_FEATURES, classify, feature_pairs, is_baseline
from cpuid_scan.engines.scan.pipeline import scan_and_aggregate, scan_range
from cpuid_scan.engines.scan.sweep import sweep

__all__ = [
    "AggregationReport",
    "BASELINE_FEATURES",
    "CodeRange",
    "DecodeOutcome",
    "Decoded",
    "Failed",
    "Instruction",
    "InstructionStats",
    "classify",
    "feature_pairs",
    "format_encoding",
    "is_baseline",
    "merge_reports",
    "scan_and_aggregate",
    "scan_range",
    "sweep",
]
