"""Input validation for paths and numeric parameters."""

from pathlib import Path

from cpuid_scan.utils.structured_errors import (
    BinaryReadError,
    create_file_not_found_error,
    create_file_too_large_error,
    create_file_unreadable_error,
)

DEFAULT_MAX_FILE_SIZE = 500 * 1024 * 1024  # 500MB


def sanitize_binary_path(
    binary_path: str | Path,
    max_size_bytes: int = DEFAULT_MAX_FILE_SIZE,
) -> Path:
    """
    Resolve and validate a user-supplied binary path.

    Args:
        binary_path: User-supplied path to binary file
        max_size_bytes: Maximum allowed file size in bytes

    Returns:
        Validated absolute path

    Raises:
        BinaryReadError: If the path is missing, not a file, unreadable
            or larger than ``max_size_bytes``
    """
    try:
        path = Path(binary_path).resolve()
    except (OSError, RuntimeError) as e:
        raise BinaryReadError(create_file_unreadable_error(str(binary_path), str(e)))

    if not path.exists() or not path.is_file():
        raise BinaryReadError(create_file_not_found_error(str(binary_path)))

    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise BinaryReadError(create_file_unreadable_error(str(binary_path), str(e)))

    if file_size > max_size_bytes:
        raise BinaryReadError(
            create_file_too_large_error(str(binary_path), file_size, max_size_bytes)
        )

    return path


def validate_numeric_range(
    value: int,
    min_val: int,
    max_val: int,
    param_name: str = "value"
) -> int:
    """
    Validate numeric value is within acceptable range.

    Args:
        value: Value to validate
        min_val: Minimum allowed value (inclusive)
        max_val: Maximum allowed value (inclusive)
        param_name: Parameter name for error messages

    Returns:
        Validated value

    Raises:
        TypeError: If value is not an integer
        ValueError: If value is outside range
    """
    if not isinstance(value, int):
        raise TypeError(f"{param_name} must be an integer, got {type(value).__name__}")

    if value < min_val or value > max_val:
        raise ValueError(
            f"{param_name} must be between {min_val} and {max_val}, got {value}"
        )

    return value
