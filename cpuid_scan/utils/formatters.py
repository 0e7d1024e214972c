"""
Output formatting for scan reports.

Text layout:

    FEATURE
    \\t[percent | ][count | ]INSTRUCTION TEXT
    \\t\\t[count | ]ENCODING BYTES

Features, instructions and encodings are always emitted in sorted order so
the same report renders to the same text on every run.
"""

from dataclasses import dataclass
from typing import Any

from cpuid_scan.engines.scan.aggregator import AggregationReport, InstructionStats, format_encoding
from cpuid_scan.engines.scan.classifier import is_baseline


@dataclass(frozen=True)
class ReportConfig:
    """
    Rendering options for a report.

    Attributes:
        show_instructions: List instructions under each feature
        show_opcodes: List encodings under each instruction (implies show_instructions)
        show_counts: Prefix instruction and encoding lines with their counts
        show_percent: Prefix instruction lines with their share of all sweep steps
        feature_filter: Only render these features (None renders all)
        ignored_features: Never render these features
        include_baseline: Render baseline features (MODE64, FPU...) too
    """

    show_instructions: bool = False
    show_opcodes: bool = False
    show_counts: bool = False
    show_percent: bool = False
    feature_filter: frozenset[str] | None = None
    ignored_features: frozenset[str] = frozenset()
    include_baseline: bool = False

    def __post_init__(self):
        if self.show_opcodes and not self.show_instructions:
            object.__setattr__(self, "show_instructions", True)
        if self.feature_filter is not None:
            object.__setattr__(self, "feature_filter", frozenset(self.feature_filter))
        object.__setattr__(self, "ignored_features", frozenset(self.ignored_features))


def select_features(report: AggregationReport, config: ReportConfig) -> list[str]:
    """
    Pick the features to render, in sorted order.

    Features named in ``feature_filter`` are shown even when they are
    baseline features.
    """
    selected = []
    for feature in report.feature_ids():
        if not report.features[feature]:
            continue
        if config.feature_filter is not None and feature not in config.feature_filter:
            continue
        if feature in config.ignored_features:
            continue
        explicitly_requested = config.feature_filter is not None and feature in config.feature_filter
        if is_baseline(feature) and not (config.include_baseline or explicitly_requested):
            continue
        selected.append(feature)
    return selected


def format_percent(count: int, total: int) -> str:
    """Format ``count`` as a percentage of ``total`` with two decimals."""
    if total <= 0:
        return "0.00%"
    return f"{count / total * 100:.2f}%"


def _instruction_line(text: str, stats: InstructionStats, total: int, config: ReportConfig) -> str:
    fields = []
    if config.show_percent:
        fields.append(format_percent(stats.total_count, total))
    if config.show_counts:
        fields.append(str(stats.total_count))
    fields.append(text)
    return "\t" + " | ".join(fields)


def _encoding_line(encoding: bytes, count: int, config: ReportConfig) -> str:
    fields = []
    if config.show_counts:
        fields.append(str(count))
    fields.append(format_encoding(encoding))
    return "\t\t" + " | ".join(fields)


def format_report(report: AggregationReport, config: ReportConfig | None = None) -> str:
    """
    Render a report as text.

    Args:
        report: Completed aggregation report
        config: Rendering options (feature names only when omitted)

    Returns:
        Newline-terminated text, or an empty string when nothing is selected
    """
    config = config or ReportConfig()
    lines = []

    for feature in select_features(report, config):
        lines.append(feature)
        if not config.show_instructions:
            continue

        entries = report.features[feature]
        for text in sorted(entries):
            stats = entries[text]
            lines.append(_instruction_line(text, stats, report.total_steps, config))
            if config.show_opcodes:
                for encoding in sorted(stats.encodings):
                    lines.append(_encoding_line(encoding, stats.encodings[encoding], config))

    return "\n".join(lines) + "\n" if lines else ""


def report_to_dict(report: AggregationReport, config: ReportConfig | None = None) -> dict[str, Any]:
    """
    Build a JSON-serializable view of a report honoring the same selection
    and ordering rules as format_report.
    """
    config = config or ReportConfig()
    features = []

    for feature in select_features(report, config):
        entry: dict[str, Any] = {"feature": feature}
        if config.show_instructions:
            entries = report.features[feature]
            instructions = []
            for text in sorted(entries):
                stats = entries[text]
                item: dict[str, Any] = {"instruction": text, "count": stats.total_count}
                if config.show_percent:
                    item["percent"] = format_percent(stats.total_count, report.total_steps)
                if config.show_opcodes:
                    item["encodings"] = [
                        {"bytes": format_encoding(encoding), "count": stats.encodings[encoding]}
                        for encoding in sorted(stats.encodings)
                    ]
                instructions.append(item)
            entry["instructions"] = instructions
        features.append(entry)

    return {
        "decoded_instructions": report.decoded_count,
        "undecodable_bytes": report.failed_bytes,
        "features": features,
    }


def format_bytes(num_bytes: int) -> str:
    """
    Render a size in binary units for section listings, e.g. "1.5 KB".
    """
    size = float(num_bytes)
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} PB"
