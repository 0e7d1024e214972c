"""
Aggregation of classified instructions.

Builds the two-level report structure:

    feature -> instruction text -> {total_count, encodings: bytes -> count}

Accumulation only ever adds, so any arrival order (and any merge order of
per-range reports) yields the same final report.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from cpuid_scan.engines.models import Decoded, DecodeOutcome, Failed, Instruction
from cpuid_scan.engines.scan.classifier import feature_pairs


@dataclass
class InstructionStats:
    """Occurrence counts for one instruction text under one feature."""

    total_count: int = 0
    encodings: dict[bytes, int] = field(default_factory=dict)

    def add(self, encoding: bytes, count: int = 1) -> None:
        self.total_count += count
        self.encodings[encoding] = self.encodings.get(encoding, 0) + count

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_count": self.total_count,
            "encodings": {
                format_encoding(encoding): count
                for encoding, count in sorted(self.encodings.items())
            },
        }


@dataclass
class AggregationReport:
    """
    Feature -> instruction text -> InstructionStats.

    Attributes:
        features: The aggregated instruction entries per feature
        decoded_count: Number of successfully decoded instructions
        failed_bytes: Number of bytes skipped by failed decodes
    """

    features: dict[str, dict[str, InstructionStats]] = field(default_factory=dict)
    decoded_count: int = 0
    failed_bytes: int = 0

    @property
    def total_steps(self) -> int:
        """Sweep steps taken: decoded instructions plus failed single bytes."""
        return self.decoded_count + self.failed_bytes

    def is_empty(self) -> bool:
        return not self.features

    def feature_ids(self) -> list[str]:
        return sorted(self.features)

    def add(self, feature: str, text: str, encoding: bytes, count: int = 1) -> None:
        """Count ``count`` occurrences of ``text``/``encoding`` under ``feature``."""
        if count < 1:
            raise ValueError(f"count must be positive, got {count}")
        entries = self.features.setdefault(feature, {})
        stats = entries.setdefault(text, InstructionStats())
        stats.add(bytes(encoding), count)

    def add_instruction(self, instruction: Instruction) -> None:
        """Count one decoded instruction under every feature it requires."""
        self.decoded_count += 1
        for feature, _ in feature_pairs([instruction]):
            self.add(feature, instruction.mnemonic_and_operands, instruction.encoding_bytes)

    def record(self, outcome: DecodeOutcome) -> None:
        """Fold one sweep outcome into the report."""
        if isinstance(outcome, Decoded):
            self.add_instruction(outcome.instruction)
        elif isinstance(outcome, Failed):
            self.failed_bytes += outcome.skipped_bytes
        else:
            raise TypeError(f"Unknown decode outcome: {outcome!r}")

    def record_all(self, outcomes: Iterable[DecodeOutcome]) -> AggregationReport:
        for outcome in outcomes:
            self.record(outcome)
        return self

    def merge(self, other: AggregationReport) -> AggregationReport:
        """Add every count of ``other`` into this report and return self."""
        for feature, entries in other.features.items():
            for text, stats in entries.items():
                for encoding, count in stats.encodings.items():
                    self.add(feature, text, encoding, count)
        self.decoded_count += other.decoded_count
        self.failed_bytes += other.failed_bytes
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict in sorted order."""
        return {
            "decoded_count": self.decoded_count,
            "failed_bytes": self.failed_bytes,
            "features": {
                feature: {
                    text: self.features[feature][text].to_dict()
                    for text in sorted(self.features[feature])
                }
                for feature in self.feature_ids()
            },
        }


def merge_reports(reports: Iterable[AggregationReport]) -> AggregationReport:
    """Merge reports into a new one; inputs are left untouched."""
    merged = AggregationReport()
    for report in reports:
        merged.merge(report)
    return merged


def format_encoding(encoding: bytes) -> str:
    """Render bytes as upper-case, space-separated hex (``0F 28 CA``)."""
    return " ".join(f"{b:02X}" for b in encoding)
