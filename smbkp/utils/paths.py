"""
Path safety helpers.

Item destinations are relative paths chosen in the config file. They must
never let a backup write outside its run directory.
"""

from pathlib import Path
from typing import Union


class PathTraversalError(ValueError):
    """Raised when a relative path would escape its base directory."""
    pass


def validate_relative_path(rel_path: Union[str, Path]) -> bool:
    """
    Check that a path is relative and has no ".." components.

    Examples:
        >>> validate_relative_path("docs/2024")
        True
        >>> validate_relative_path("../etc")
        False
        >>> validate_relative_path("/etc")
        False
    """
    path = Path(rel_path)

    if path.is_absolute() or path.drive:
        return False

    if '..' in path.parts:
        return False

    return True


def safe_join(base: Union[str, Path], relative: Union[str, Path]) -> Path:
    """
    Join base and relative, refusing results outside base.

    Args:
        base: Base directory
        relative: Relative path to join

    Returns:
        The joined path (not resolved, so symlinks in base are kept)

    Raises:
        PathTraversalError: If relative escapes base
    """
    if not validate_relative_path(relative):
        raise PathTraversalError(f"Invalid relative path: {relative}")

    base = Path(base)
    dest = base / relative

    try:
        dest.resolve().relative_to(base.resolve())
    except ValueError:
        raise PathTraversalError(f"Path traversal detected: {relative} escapes {base}")

    return dest
