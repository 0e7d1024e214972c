"""
Structured error messages with actionable suggestions.

Provides rich error information for CLI and MCP tool consumers including:
- Error codes for programmatic handling
- Human-readable messages
- Actionable suggestions for resolution
- Debug information for troubleshooting
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """
    Standard error codes for cpuid-scan operations.

    Naming convention: CATEGORY_SPECIFIC_ERROR
    """

    # File errors
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    FILE_UNREADABLE = "FILE_UNREADABLE"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"

    # Container format errors
    UNSUPPORTED_FORMAT = "UNSUPPORTED_FORMAT"
    UNSUPPORTED_ARCHITECTURE = "UNSUPPORTED_ARCHITECTURE"
    MALFORMED_CONTAINER = "MALFORMED_CONTAINER"
    NO_CODE_SECTIONS = "NO_CODE_SECTIONS"

    # Parameter errors
    PARAMETER_INVALID = "PARAMETER_INVALID"

    # General errors
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


@dataclass
class StructuredError:
    """
    Rich error information with actionable suggestions.

    Attributes:
        error: Error code for programmatic handling
        message: Human-readable error description
        reason: Explanation of why the error occurred
        suggestions: List of actionable steps to resolve the error
        debug_info: Additional debugging information
    """

    error: ErrorCode
    message: str
    reason: str | None = None
    suggestions: list[str] = field(default_factory=list)
    debug_info: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.error.value,
            "message": self.message,
            "reason": self.reason,
            "suggestions": self.suggestions,
            "debug_info": self.debug_info,
        }

    def to_json(self, indent: int = 2) -> str:
        """Convert to formatted JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    def to_user_message(self) -> str:
        """
        Format error for human-readable display.

        Returns:
            Multi-line string suitable for display to users
        """
        lines = [
            f"Error [{self.error.value}]: {self.message}",
        ]

        if self.reason:
            lines.append(f"Reason: {self.reason}")

        if self.suggestions:
            lines.append("\nSuggested actions:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"  {i}. {suggestion}")

        if self.debug_info:
            lines.append("\nDebug information:")
            for key, value in self.debug_info.items():
                lines.append(f"  {key}: {value}")

        return "\n".join(lines)

    def __str__(self) -> str:
        """Return user-friendly message."""
        return self.to_user_message()


class StructuredBaseError(Exception):
    """
    Exception that wraps a StructuredError.

    Allows raising structured errors as exceptions while maintaining
    all error information.
    """

    def __init__(self, structured_error: StructuredError):
        self.structured_error = structured_error
        super().__init__(structured_error.to_user_message())

    @property
    def code(self) -> ErrorCode:
        return self.structured_error.error

    def to_dict(self) -> dict[str, Any]:
        """Get the underlying structured error as a dictionary."""
        return self.structured_error.to_dict()

    def to_json(self, indent: int = 2) -> str:
        """Get the underlying structured error as JSON."""
        return self.structured_error.to_json(indent)


class BinaryReadError(StructuredBaseError):
    """The binary could not be opened or read."""


class UnsupportedFormatError(StructuredBaseError):
    """The container format or machine type is not supported."""


class NoCodeSectionsError(UnsupportedFormatError):
    """The container parsed but holds no executable code sections."""


# =============================================================================
# Suggestion Mappings - Predefined suggestions for common error scenarios
# =============================================================================

FILE_SUGGESTIONS = {
    "not_found": [
        "Check the path for typos",
        "Use an absolute path if the working directory is unclear",
    ],
    "unreadable": [
        "Check file permissions",
        "Make sure the file is not locked by another process",
    ],
    "too_large": [
        "Raise CPUID_SCAN_MAX_FILE_SIZE_MB in the environment or .env file",
        "Extract the code section and scan it with --raw instead",
    ],
}

FORMAT_SUGGESTIONS = {
    "unsupported": [
        "Only PE, ELF and Mach-O containers are recognized",
        "Scan a flat code blob with --raw 16|32|64",
    ],
    "architecture": [
        "Only x86 (16/32-bit) and x86-64 binaries can be decoded",
        "For universal Mach-O binaries make sure an x86 slice is present",
    ],
    "malformed": [
        "The file may be truncated or corrupted",
        "Verify the file with a format-specific tool (readelf, objdump, dumpbin)",
    ],
    "no_code": [
        "The binary may be a resource-only or data-only file",
        "Packed binaries may keep code in sections not flagged executable",
        "Scan the file with --raw to treat all bytes as code",
    ],
}


# =============================================================================
# Error Factory Functions
# =============================================================================


def create_file_not_found_error(path: str) -> StructuredError:
    """Create error for a missing input file."""
    return StructuredError(
        error=ErrorCode.FILE_NOT_FOUND,
        message=f"File not found: '{path}'",
        reason="The path does not exist or is not a regular file",
        suggestions=FILE_SUGGESTIONS["not_found"],
        debug_info={"path": path},
    )


def create_file_unreadable_error(path: str, os_error: str | None = None) -> StructuredError:
    """Create error for a file that exists but cannot be read."""
    return StructuredError(
        error=ErrorCode.FILE_UNREADABLE,
        message=f"Cannot read '{path}'",
        reason=os_error or "The file could not be opened",
        suggestions=FILE_SUGGESTIONS["unreadable"],
        debug_info={"path": path},
    )


def create_file_too_large_error(path: str, size: int, max_size: int) -> StructuredError:
    """Create error for a file over the configured size limit."""
    return StructuredError(
        error=ErrorCode.FILE_TOO_LARGE,
        message=f"File too large: '{path}'",
        reason=f"{size} bytes exceeds the limit of {max_size} bytes",
        suggestions=FILE_SUGGESTIONS["too_large"],
        debug_info={"path": path, "size": size, "max_size": max_size},
    )


def create_unsupported_format_error(path: str, magic: bytes = b"") -> StructuredError:
    """Create error for an unrecognized container format."""
    return StructuredError(
        error=ErrorCode.UNSUPPORTED_FORMAT,
        message=f"Unrecognized binary format: '{path}'",
        reason="The file header does not match PE, ELF or Mach-O",
        suggestions=FORMAT_SUGGESTIONS["unsupported"],
        debug_info={"path": path, "magic": magic.hex()},
    )


def create_unsupported_architecture_error(
    path: str,
    container: str,
    machine: str,
) -> StructuredError:
    """Create error for a container holding non-x86 code."""
    return StructuredError(
        error=ErrorCode.UNSUPPORTED_ARCHITECTURE,
        message=f"Unsupported architecture in {container} file: {machine}",
        reason="The decoder only handles x86 and x86-64 instructions",
        suggestions=FORMAT_SUGGESTIONS["architecture"],
        debug_info={"path": path, "container": container, "machine": machine},
    )


def create_malformed_container_error(
    path: str,
    container: str,
    parser_error: str | None = None,
) -> StructuredError:
    """Create error for a container whose headers could not be parsed."""
    return StructuredError(
        error=ErrorCode.MALFORMED_CONTAINER,
        message=f"Could not parse {container} headers of '{path}'",
        reason=parser_error or "Header parsing failed",
        suggestions=FORMAT_SUGGESTIONS["malformed"],
        debug_info={"path": path, "container": container},
    )


def create_no_code_sections_error(path: str, container: str) -> StructuredError:
    """Create error for a container without executable sections."""
    return StructuredError(
        error=ErrorCode.NO_CODE_SECTIONS,
        message=f"No code sections found in {container} file '{path}'",
        reason="No section is flagged as containing executable code",
        suggestions=FORMAT_SUGGESTIONS["no_code"],
        debug_info={"path": path, "container": container},
    )


def create_parameter_error(
    param_name: str,
    provided_value: Any,
    expected: str,
    valid_values: list[Any] | None = None,
) -> StructuredError:
    """Create error for invalid parameter value."""
    suggestions = [
        f"Provide a valid value for '{param_name}'",
        f"Expected: {expected}",
    ]
    if valid_values:
        suggestions.append(f"Valid options: {', '.join(str(v) for v in valid_values)}")

    return StructuredError(
        error=ErrorCode.PARAMETER_INVALID,
        message=f"Invalid value for parameter '{param_name}'",
        reason=f"Got '{provided_value}', expected {expected}",
        suggestions=suggestions,
        debug_info={
            "parameter": param_name,
            "provided": provided_value,
            "expected": expected,
            "valid_values": valid_values,
        },
    )


def safe_error_message(operation: str, exc: Exception) -> str:
    """
    Render an exception as a user-facing message for tool output.

    Structured errors keep their suggestions; anything else is reported
    without internal details.
    """
    if isinstance(exc, StructuredBaseError):
        return exc.structured_error.to_user_message()

    logger.error(f"{operation} failed: {exc}")
    return StructuredError(
        error=ErrorCode.UNKNOWN_ERROR,
        message=f"{operation} failed",
        reason=type(exc).__name__,
        suggestions=["Re-run with CPUID_SCAN_LOG_LEVEL=DEBUG for details"],
    ).to_user_message()
