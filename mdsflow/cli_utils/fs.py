"""Filesystem helpers for locating workflow and agent definition files."""

from __future__ import annotations

import fnmatch
import logging
from pathlib import Path
from typing import Iterable, Sequence, Set

from ..constants import WORKFLOW_FILE_PATTERNS

logger = logging.getLogger(__name__)

DEFAULT_IGNORE_PATTERNS = {
    "__pycache__/",
    "node_modules/",
    "build/",
    "dist/",
    ".venv/",
    "venv/",
    ".git/",
    ".gitignore",
}


def _load_gitignore_patterns(search_path: Path) -> Set[str]:
    """Collect ignore patterns from .gitignore files in the search path and its parents."""
    patterns: Set[str] = set(DEFAULT_IGNORE_PATTERNS)

    current_path = search_path if search_path.is_dir() else search_path.parent
    while True:
        gitignore_file = current_path / ".gitignore"
        if gitignore_file.is_file():
            try:
                lines = gitignore_file.read_text(encoding="utf-8").splitlines()
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Could not read {gitignore_file}: {e}")
                lines = []
            for line in lines:
                line = line.strip()
                if line and not line.startswith(("#", "!")):
                    patterns.add(line.lstrip("/"))
        if current_path == current_path.parent:
            break
        current_path = current_path.parent

    return patterns


def _should_ignore_path(path: Path, patterns: Set[str], base_path: Path) -> bool:
    """Check if a path should be ignored based on gitignore patterns."""
    try:
        relative_path = path.relative_to(base_path)
    except ValueError:
        return False

    path_str = relative_path.as_posix()
    parent_parts = relative_path.parts[:-1]

    for pattern in patterns:
        if pattern.endswith("/"):
            # Directory patterns only match parent directories.
            directory = pattern[:-1]
            if any(fnmatch.fnmatch(part, directory) for part in parent_parts):
                return True
            continue
        if fnmatch.fnmatch(path.name, pattern) or fnmatch.fnmatch(path_str, pattern):
            return True
        if any(fnmatch.fnmatch(part, pattern) for part in parent_parts):
            return True

    return False


def _matches_any(path: Path, patterns: Sequence[str]) -> bool:
    return any(fnmatch.fnmatch(path.name, pattern) for pattern in patterns)


def iter_definition_files(
    search_path: Path,
    patterns: Sequence[str] = WORKFLOW_FILE_PATTERNS,
    respect_gitignore: bool = True,
) -> Iterable[Path]:
    """Yield files under ``search_path`` whose name matches ``patterns``."""

    if search_path.is_file():
        if _matches_any(search_path, patterns):
            yield search_path
        return

    gitignore_patterns: Set[str] = set()
    if respect_gitignore:
        gitignore_patterns = _load_gitignore_patterns(search_path)

    for candidate in sorted(search_path.rglob("*")):
        if not candidate.is_file() or not _matches_any(candidate, patterns):
            continue
        if respect_gitignore and _should_ignore_path(candidate, gitignore_patterns, search_path):
            continue
        yield candidate
