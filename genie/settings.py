"""
genie.settings
==============

Read‑only settings snapshot handed to the scanner and the chat model.
Nothing here is persisted; the CLI builds one from its options.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import FrozenSet

__all__ = ["Settings", "DEFAULT_EXCLUDED_DIRECTORIES", "DEFAULT_INCLUDED_EXTENSIONS"]

DEFAULT_EXCLUDED_DIRECTORIES: FrozenSet[str] = frozenset(
    {
        "build",
        ".git",
        "bin",
        "out",
        "target",
        "node_modules",
        ".idea",
        ".venv",
        "__pycache__",
    }
)

DEFAULT_INCLUDED_EXTENSIONS: FrozenSet[str] = frozenset(
    {
        "java", "kt", "groovy", "scala", "py", "js", "ts", "tsx", "jsx",
        "go", "rs", "rb", "php", "cs", "c", "h", "cpp", "hpp", "swift",
        "xml", "json", "yaml", "yml", "toml", "properties", "gradle",
        "html", "css", "scss", "sql", "sh", "md", "txt",
    }
)


@dataclass(frozen=True)
class Settings:
    """One immutable snapshot of user settings."""

    excluded_directories: FrozenSet[str] = DEFAULT_EXCLUDED_DIRECTORIES
    included_file_extensions: FrozenSet[str] = DEFAULT_INCLUDED_EXTENSIONS
    use_gitignore: bool = True
    exclude_doc_comments: bool = False

    # generation capability knobs
    model_name: str = "gemma3:4b"
    ollama_host: str | None = None
    temperature: float = 0.7
    timeout: float = 60.0
    max_retries: int = 3

    # budgets
    window_context: int = 8192
    max_messages: int = 10

    def __post_init__(self) -> None:
        # extensions are compared lower‑case and without the leading dot
        normalised = frozenset(
            ext.lower().lstrip(".") for ext in self.included_file_extensions if ext
        )
        object.__setattr__(self, "included_file_extensions", normalised)
        object.__setattr__(self, "excluded_directories", frozenset(self.excluded_directories))
        if self.max_messages <= 0:
            raise ValueError("max_messages must be positive")
        if self.window_context < 0:
            raise ValueError("window_context must not be negative")

    def with_changes(self, **changes) -> "Settings":
        return replace(self, **changes)
