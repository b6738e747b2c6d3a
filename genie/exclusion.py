"""
genie.exclusion
===============

Decides which directories and files take part in a project scan:

* directories are dropped when their name is in the excluded set, or when
  ``.gitignore`` matches them;
* files are included when their extension is allowed and ``.gitignore``
  does not match them.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import pathspec

from .settings import Settings

__all__ = ["GitIgnoreFilter", "ExclusionPolicy", "load_gitignore", "GITIGNORE"]

LOGGER = logging.getLogger(__name__)
GITIGNORE: str = ".gitignore"


class GitIgnoreFilter:
    """Returns *True* for paths that must be skipped according to .gitignore."""

    def __init__(self, root: Path, spec: pathspec.PathSpec) -> None:
        self._root = root.resolve()
        self._spec = spec

    @classmethod
    def from_file(cls, gitignore: Path) -> "GitIgnoreFilter":
        patterns = gitignore.read_text(encoding="utf-8").splitlines()
        return cls(gitignore.parent, pathspec.PathSpec.from_lines("gitwildmatch", patterns))

    def matches(self, path: Path) -> bool:
        """Check whether absolute *path* is ignored; paths outside the root never are."""
        try:
            rel = path.resolve().relative_to(self._root)
        except ValueError:
            return False
        if rel == Path("."):
            return False
        posix = rel.as_posix()
        if path.is_dir():
            posix += "/"
        return self._spec.match_file(posix)


def load_gitignore(directory: Path) -> Optional[GitIgnoreFilter]:
    """
    Build a filter from ``directory/.gitignore``.

    A missing file is normal; an unreadable or unparsable one is logged and
    treated the same way, so every file passes.
    """
    gitignore = directory / GITIGNORE
    if not gitignore.is_file():
        return None
    try:
        return GitIgnoreFilter.from_file(gitignore)
    except (OSError, ValueError) as exc:
        LOGGER.warning("Error initializing gitignore filter from %s: %s", gitignore, exc)
        return None


class ExclusionPolicy:
    """Exclusion rules for one scan: a settings snapshot plus an optional ignore filter."""

    def __init__(self, settings: Settings, ignore: Optional[GitIgnoreFilter] = None) -> None:
        self._settings = settings
        self._ignore = ignore

    def is_directory_excluded(self, path: Path) -> bool:
        return path.is_dir() and (
            path.name in self._settings.excluded_directories or self.is_file_excluded(path)
        )

    def is_file_excluded(self, path: Path) -> bool:
        if self._settings.use_gitignore and self._ignore is not None:
            return self._ignore.matches(path)
        return False

    def is_file_included(self, path: Path) -> bool:
        if path.is_dir():
            return False
        extension = path.suffix[1:].lower()
        return (
            bool(extension)
            and extension in self._settings.included_file_extensions
            and not self.is_file_excluded(path)
        )
