from typing import Optional, TypeVar

T = TypeVar('T')


def ensure(value: Optional[T]) -> T:
    """Ensure a value is not None, raising RuntimeError if it is.

    Args:
        value: The value to check

    Returns:
        The value if it is not None

    Raises:
        RuntimeError: If the value is None
    """
    if value is None:
        raise RuntimeError("Value is None")
    return value


def parse_int(value: str) -> Optional[int]:
    """Parse a stored integer, returning None for empty or malformed text."""
    value = value.strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None
