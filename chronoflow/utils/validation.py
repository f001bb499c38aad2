"""
Validation utilities for request parameters
"""


def parse_int_param(value, param_name: str, default: int | None, minimum: int = 0) -> int | None:
    """
    Parse an optional integer parameter

    Example:
        >>> parse_int_param(None, "offset", 0)
        0
        >>> parse_int_param("25", "limit", 100, minimum=1)
        25
        >>> parse_int_param("-1", "offset", 0)
        ValueError: offset must be an integer >= 0
    """
    if value is None or value == "":
        return default
    try:
        parsed = int(str(value).strip())
    except ValueError:
        raise ValueError(f"{param_name} must be an integer >= {minimum}")
    if parsed < minimum:
        raise ValueError(f"{param_name} must be an integer >= {minimum}")
    return parsed


def normalize_task_name(value: str | None, max_length: int = 500) -> str | None:
    """
    Trim a task name; empty means "no task name"

    Raises:
        ValueError: if longer than max_length after trimming
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError("task_name must be a string")
    value = value.strip()
    if not value:
        return None
    if len(value) > max_length:
        raise ValueError(f"task_name must be {max_length} characters or less")
    return value
