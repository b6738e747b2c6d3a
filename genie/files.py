"""
genie.files
===========

Files the user attached to the next prompt, kept in the order they were
added. Observers hear about every change so a front end can redraw.
"""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import List, Protocol

__all__ = ["FileListManager", "FileListObserver"]

LOGGER = logging.getLogger(__name__)


class FileListObserver(Protocol):
    def file_added(self, path: Path) -> None: ...

    def file_removed(self, path: Path) -> None: ...

    def all_files_removed(self) -> None: ...


class FileListManager:
    """Ordered, duplicate‑free list of attached files."""

    def __init__(self) -> None:
        self._files: List[Path] = []
        self._observers: List[FileListObserver] = []
        self._lock = threading.Lock()

    def add_observer(self, observer: FileListObserver) -> None:
        self._observers.append(observer)

    def add_file(self, path: str | Path) -> bool:
        resolved = Path(path).resolve()
        with self._lock:
            if resolved in self._files:
                return False
            self._files.append(resolved)
        for observer in list(self._observers):
            observer.file_added(resolved)
        return True

    def remove_file(self, path: str | Path) -> bool:
        resolved = Path(path).resolve()
        with self._lock:
            if resolved not in self._files:
                return False
            self._files.remove(resolved)
        for observer in list(self._observers):
            observer.file_removed(resolved)
        return True

    def clear(self) -> None:
        with self._lock:
            self._files.clear()
        for observer in list(self._observers):
            observer.all_files_removed()

    def files(self) -> List[Path]:
        with self._lock:
            return list(self._files)

    def is_empty(self) -> bool:
        return not self._files

    def __len__(self) -> int:
        return len(self._files)

    def build_context(self) -> str:
        """Attached files as ``--- <path> ---`` blocks; unreadable files get an error line."""
        parts: List[str] = []
        for path in self.files():
            parts.append(f"\n--- {path} ---\n")
            try:
                parts.append(path.read_text(encoding="utf-8") + "\n")
            except (OSError, UnicodeDecodeError) as exc:
                LOGGER.debug("Could not read attached file %s: %s", path, exc)
                parts.append(f"Error reading file: {exc}\n")
        return "".join(parts)
