"""
Feature classification policy.

The decoder already attaches the required features to each instruction;
this module decides how those features map onto report buckets:
- instructions without features are not reported at all
- instructions with several features are reported once under each
"""

from collections.abc import Iterable, Iterator

from cpuid_scan.engines.models import Instruction

# Decoding-mode predicates and base ISA groups present in almost every
# x86 binary. Hidden from reports unless explicitly requested.
BASELINE_FEATURES = frozenset({
    "16BITMODE",
    "MODE32",
    "MODE64",
    "NOT64BITMODE",
    "NOVLX",
    "FPU",
})


def classify(instruction: Instruction) -> frozenset[str]:
    """Return the features ``instruction`` requires, unchanged."""
    return instruction.required_features


def feature_pairs(instructions: Iterable[Instruction]) -> Iterator[tuple[str, Instruction]]:
    """
    Expand instructions into (feature, instruction) pairs.

    Zero-feature instructions produce no pairs. Features are emitted in
    sorted order so the expansion itself is deterministic.
    """
    for instruction in instructions:
        for feature in sorted(classify(instruction)):
            yield feature, instruction


def is_baseline(feature: str) -> bool:
    """Check whether a feature is hidden by default."""
    return feature.upper() in BASELINE_FEATURES
