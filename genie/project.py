"""
genie.project
=============

What the scanner needs to know about the host project: its base directory,
its content roots, whether a file belongs to it, and whether indexing has
settled ("smart mode").
"""
from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

__all__ = ["Project", "highest_common_root"]


def highest_common_root(directories: Iterable[Path]) -> Optional[Path]:
    """
    Deepest directory that is an ancestor of (or equal to) every directory given.

    Returns ``None`` for an empty input, or when the directories live on
    different drives and have no common ancestor.
    """
    unique: List[str] = sorted({str(Path(d).resolve()) for d in directories})
    if not unique:
        return None
    try:
        return Path(os.path.commonpath(unique))
    except ValueError:
        return None


class Project:
    """
    A project rooted at *base_dir*.

    Content roots default to the base directory itself. Files are "in
    content" when they sit under one of the content roots.
    """

    def __init__(
        self,
        base_dir: str | Path,
        content_roots: Sequence[str | Path] = (),
        name: Optional[str] = None,
    ) -> None:
        self.base_dir = Path(base_dir).resolve()
        roots = content_roots or (self.base_dir,)
        self._content_roots: List[Path] = []
        for root in roots:
            resolved = Path(root).resolve()
            if resolved not in self._content_roots:
                self._content_roots.append(resolved)
        self.name = name or self.base_dir.name
        self._smart = threading.Event()
        self._smart.set()

    @property
    def content_roots(self) -> List[Path]:
        return list(self._content_roots)

    def is_in_content(self, path: Path) -> bool:
        resolved = path.resolve()
        return any(resolved == root or root in resolved.parents for root in self._content_roots)

    # readiness gate -------------------------------------------------------- #
    def enter_dumb_mode(self) -> None:
        """Indexing started; scans wait until :meth:`exit_dumb_mode`."""
        self._smart.clear()

    def exit_dumb_mode(self) -> None:
        self._smart.set()

    def is_smart(self) -> bool:
        return self._smart.is_set()

    def wait_until_smart(self, timeout: Optional[float] = None) -> bool:
        return self._smart.wait(timeout)

    def __repr__(self) -> str:
        return f"Project({self.name!r}, base_dir={str(self.base_dir)!r})"
