"""
Output filename formatting for batch results.

format_filename() is pure and total: any config (or none) produces a name.
"""

from typing import List, Optional

from config.constants import (
    DEFAULT_EXTENSION,
    DEFAULT_SEPARATOR,
    BATCH_NAME_TOKEN,
    PREVIEW_COUNT,
)

from .batch_job import NamingConfig, NamingPattern

VALID_SEPARATORS = ("_", "-", ".")


def split_filename(filename: str):
    """
    Split into (base, extension).

    A leading dot ('.hidden') is not an extension; the extension keeps its dot.
    """
    filename = filename or ""
    last_dot = filename.rfind(".")
    if last_dot > 0 and last_dot < len(filename) - 1:
        return filename[:last_dot], filename[last_dot:]
    if last_dot > 0:
        return filename[:last_dot], ""
    return filename, ""


def format_filename(
    original_filename: str,
    index: int,
    config: Optional[NamingConfig] = None,
) -> str:
    """
    Build the output filename for the item at zero-based ``index``.

    Args:
        original_filename: Name of the uploaded original
        index: Position of the item in submission order
        config: Naming configuration; defaults apply when None

    Returns:
        Deterministic filename with the original extension (or the default one)
    """
    config = config or NamingConfig()
    base, extension = split_filename(original_filename)
    extension = extension or DEFAULT_EXTENSION

    sep = config.separator if config.separator in VALID_SEPARATORS else DEFAULT_SEPARATOR
    num = config.start_number + index

    pattern = config.pattern
    if pattern == NamingPattern.NUMBER_ORIGINAL:
        name = f"{num}{sep}{base}"
    elif pattern == NamingPattern.BATCH_NUMBER:
        name = f"{BATCH_NAME_TOKEN}{sep}{num}"
    elif pattern == NamingPattern.CUSTOM:
        prefix = config.prefix or base
        suffix = f"{sep}{config.suffix}" if config.suffix else ""
        name = f"{prefix}{sep}{num}{suffix}"
    else:
        name = f"{base}{sep}{num}"

    return name + extension


def preview_filenames(
    sample_filename: str,
    config: Optional[NamingConfig] = None,
    count: int = PREVIEW_COUNT,
) -> List[str]:
    """First ``count`` output names for a sample file, for settings previews."""
    return [format_filename(sample_filename, i, config) for i in range(count)]
