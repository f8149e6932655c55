"""
Path utilities for the river channel composites pipeline.

Author: Diego Bengochea
"""

from pathlib import Path
from typing import Optional, Union


def ensure_directory(path: Union[str, Path], parents: bool = True) -> Path:
    """
    Ensure directory exists, creating it if necessary.

    Args:
        path: Directory path to create
        parents: Whether to create parent directories

    Returns:
        Path: Created directory path

    Examples:
        >>> output_dir = ensure_directory("data/processed/river_composites/ndwi")
    """
    path = Path(path)
    path.mkdir(parents=parents, exist_ok=True)
    return path


def resolve_path(path: Union[str, Path], base_path: Optional[Union[str, Path]] = None) -> Path:
    """
    Resolve path to absolute path, optionally relative to base_path.

    Args:
        path: Path to resolve
        base_path: Base path for relative resolution (default: current directory)

    Returns:
        Path: Resolved absolute path

    Examples:
        >>> aoi_file = resolve_path("aoi/watershed.geojson", base_path="/project/data/raw")
    """
    path = Path(path)

    if path.is_absolute():
        return path

    if base_path:
        return (Path(base_path) / path).resolve()

    return path.resolve()


def validate_file_exists(path: Union[str, Path], description: str = "") -> Path:
    """
    Validate that file exists and return Path object.

    Args:
        path: File path to validate
        description: Description for error messages

    Returns:
        Path: Validated file path

    Raises:
        FileNotFoundError: If file doesn't exist

    Examples:
        >>> aoi_file = validate_file_exists("watershed.shp", "Watershed polygon")
    """
    path = Path(path)

    if not path.exists():
        desc = f" ({description})" if description else ""
        raise FileNotFoundError(f"File not found{desc}: {path}")

    if not path.is_file():
        desc = f" ({description})" if description else ""
        raise ValueError(f"Path is not a file{desc}: {path}")

    return path
