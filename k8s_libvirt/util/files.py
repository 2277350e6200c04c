"""
File utility functions.
"""

from pathlib import Path


def ensure_dir(path: str | Path) -> Path:
    """Ensure directory exists, creating if necessary."""
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def write_text(path: str | Path, content: str) -> Path:
    """Write text to file, creating parent directories if needed."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(content)
    return p


def remove_files(*paths: str | Path) -> list[Path]:
    """
    Remove files that exist, ignoring the ones that don't.

    Returns:
        Paths that were actually removed
    """
    removed = []
    for path in paths:
        p = Path(path)
        if p.is_file():
            p.unlink()
            removed.append(p)
    return removed
