"""
genie.scanner
=============

Walks a project directory, honours the exclusion rules and ``.gitignore``,
and produces a plain‑text snapshot suitable for LLM context:

* first an indented tree of the included files,
* then every included file, each under a ``--- <path> ---`` header.

The result is cut to a token budget at the tokenizer level.

Time / Space complexity
-----------------------
* Scanning  : **O(F + S)** F = number of files visited, S = bytes read.
* Truncation: **O(T)** T = tokens of the assembled text.
"""
from __future__ import annotations

import enum
import logging
import re
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Set

from .exclusion import ExclusionPolicy, load_gitignore
from .notifications import Notifier, NullNotifier
from .project import Project, highest_common_root
from .settings import Settings
from .tokens import TokenCounter, format_tokens

__all__ = [
    "ProjectScanner",
    "ScanContentResult",
    "ScanError",
    "ContentWalker",
    "VisitResult",
    "render_source_tree",
    "strip_doc_comments",
    "truncate_to_tokens",
    "TRUNCATION_MARKER",
]

LOGGER = logging.getLogger(__name__)

TREE_HEADER: str = "Directory Structure:\n"
CONTENTS_HEADER: str = "\n\nFile Contents:\n"
TRUNCATION_MARKER: str = "\n--- Project context truncated due to token limit ---\n"

_BLOCK_COMMENT = re.compile(r"/\*{1,2}[\s\S]*?\*/")
_TRIPLE_SLASH_COMMENT = re.compile(r"^\s*///.*$", re.MULTILINE)


class ScanError(RuntimeError):
    """Raised through the scan future when a scan cannot start."""


@dataclass(frozen=True)
class ScanContentResult:
    content: str = ""
    token_count: int = 0
    file_count: int = 0
    skipped_file_count: int = 0
    skipped_directory_count: int = 0


# ───────────────────────────────── helpers ───────────────────────────────── #

def _children(directory: Path) -> List[Path]:
    return sorted(directory.iterdir(), key=lambda p: p.name)


def strip_doc_comments(content: str) -> str:
    """
    Remove block comments (Javadoc included) and ``///`` line comments.

    Purely textual: a ``/*`` inside a string literal is treated as a comment.
    """
    content = _BLOCK_COMMENT.sub("", content)
    return _TRIPLE_SLASH_COMMENT.sub("", content)


def render_source_tree(
    directory: Path,
    policy: ExclusionPolicy,
    depth: int = 0,
    seen: Optional[Set[Path]] = None,
) -> str:
    """
    Indented tree of *directory*, two spaces per level, pruning excluded subtrees.

    Each real directory is rendered once, so symlink loops end at the link.
    """
    if policy.is_file_excluded(directory) or policy.is_directory_excluded(directory):
        return ""
    seen = set() if seen is None else seen
    real = directory.resolve()
    if real in seen:
        return ""
    seen.add(real)

    indent = "  " * depth
    lines: List[str] = [f"{indent}{directory.name}/\n"]
    for child in _children(directory):
        if child.is_dir():
            lines.append(render_source_tree(child, policy, depth + 1, seen))
        elif policy.is_file_included(child):
            lines.append(f"{indent}  {child.name}\n")
    return "".join(lines)


class VisitResult(enum.Enum):
    CONTINUE = "continue"
    SKIP_SUBTREE = "skip_subtree"
    STOP = "stop"


class ContentWalker:
    """
    Pre‑order walk that appends every included file below a directory.

    Counters and the running token total belong to one walk; create a new
    walker per scan.
    """

    def __init__(
        self,
        project: Project,
        policy: ExclusionPolicy,
        counter: TokenCounter,
        max_tokens: int,
        strip_docs: bool = False,
    ) -> None:
        self._project = project
        self._policy = policy
        self._counter = counter
        self._max_tokens = max_tokens
        self._strip_docs = strip_docs
        self._parts: List[str] = []
        self.current_tokens = 0
        self.file_count = 0
        self.skipped_file_count = 0
        self.skipped_directory_count = 0
        self._seen: Set[Path] = set()

    @property
    def content(self) -> str:
        return "".join(self._parts)

    def walk(self, directory: Path) -> str:
        self._visit(directory)
        return self.content

    def _visit(self, node: Path) -> VisitResult:
        if node.is_dir():
            if self._policy.is_directory_excluded(node):
                self.skipped_directory_count += 1
                return VisitResult.SKIP_SUBTREE
            real = node.resolve()
            if real in self._seen:
                LOGGER.debug("Skipping %s, already visited as %s", node, real)
                return VisitResult.SKIP_SUBTREE
            self._seen.add(real)
            for child in _children(node):
                if self._visit(child) is VisitResult.STOP:
                    return VisitResult.STOP
            return VisitResult.CONTINUE
        return self._visit_file(node)

    def _visit_file(self, path: Path) -> VisitResult:
        if not (
            self._project.is_in_content(path)
            and not self._policy.is_file_excluded(path)
            and self._policy.is_file_included(path)
        ):
            self.skipped_file_count += 1
            return VisitResult.CONTINUE

        self.file_count += 1
        self._parts.append(f"\n--- {path} ---\n")
        try:
            text = path.read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            LOGGER.debug("Could not read %s: %s", path, exc)
            self._parts.append(f"Error reading file: {exc}\n")
            return VisitResult.CONTINUE

        if self._strip_docs:
            text = strip_doc_comments(text)
        self._parts.append(text + "\n")

        self.current_tokens += self._counter.count(text)
        if self.current_tokens >= self._max_tokens:
            LOGGER.debug("Token budget of %d reached at %s", self._max_tokens, path)
            return VisitResult.STOP
        return VisitResult.CONTINUE


def truncate_to_tokens(
    text: str,
    max_tokens: int,
    counter: TokenCounter,
    is_token_calculation: bool = False,
    notifier: Optional[Notifier] = None,
    project: Any = None,
) -> str:
    """
    Cut *text* to at most *max_tokens* tokens.

    Outside calculation mode a notification reports the outcome and a marker
    line is appended when the text was cut.
    """
    notifier = notifier or NullNotifier()
    tokens = counter.encode(text)
    if len(tokens) <= max_tokens:
        if not is_token_calculation:
            notifier.notify(project, "Added. Project context " + format_tokens(len(tokens), "tokens"))
        return text

    truncated = counter.decode(tokens[:max_tokens])
    if is_token_calculation:
        return truncated

    notifier.notify(
        project,
        f"Project context truncated due to token limit, was {len(tokens):,} tokens "
        f"but limit is {max_tokens:,} tokens. "
        "You can exclude directories or files in the settings page.",
    )
    return truncated + TRUNCATION_MARKER


# ──────────────────────────────── facade ─────────────────────────────────── #

class ProjectScanner:
    """
    Facade that produces a :class:`ScanContentResult` for a project.

    Scans run on *executor*; the returned future is completed on
    *completion_executor* when one is given (e.g. the caller's main queue).
    """

    def __init__(
        self,
        settings: Settings,
        counter: Optional[TokenCounter] = None,
        notifier: Optional[Notifier] = None,
        executor: Optional[Executor] = None,
        completion_executor: Optional[Executor] = None,
    ) -> None:
        self._settings = settings
        self._counter = counter or TokenCounter()
        self._notifier = notifier or NullNotifier()
        self._executor = executor or ThreadPoolExecutor(thread_name_prefix="genie-scan")
        self._completion_executor = completion_executor

    @property
    def counter(self) -> TokenCounter:
        return self._counter

    # public API ------------------------------------------------------------ #
    def scan_project(
        self,
        project: Project,
        start_directory: Optional[Path] = None,
        window_context_max_tokens: Optional[int] = None,
        is_token_calculation: bool = False,
    ) -> "Future[ScanContentResult]":
        """Scan *project* (or *start_directory*) in the background."""
        future: "Future[ScanContentResult]" = Future()
        max_tokens = (
            self._settings.window_context
            if window_context_max_tokens is None
            else window_context_max_tokens
        )
        settings = self._settings

        def run() -> None:
            try:
                project.wait_until_smart()
                result = self.scan(project, start_directory, max_tokens, is_token_calculation, settings)
            except Exception as exc:
                LOGGER.debug("Scan of %s failed: %s", project, exc)
                self._complete(future.set_exception, exc)
            else:
                self._complete(future.set_result, result)

        self._executor.submit(run)
        return future

    def scan(
        self,
        project: Project,
        start_directory: Optional[Path],
        max_tokens: int,
        is_token_calculation: bool = False,
        settings: Optional[Settings] = None,
    ) -> ScanContentResult:
        """Synchronous scan body; callers normally go through :meth:`scan_project`."""
        settings = settings or self._settings
        if start_directory is not None:
            root = Path(start_directory).resolve()
            if not root.is_dir():
                raise ScanError(f"Start directory is not a directory: {start_directory}")
            ignore_root = root
        else:
            common = highest_common_root(project.content_roots)
            if common is None:
                raise ScanError(f"No content roots found for {project}")
            root = common
            ignore_root = project.base_dir

        LOGGER.info("Analysing codebase at %s", root)
        policy = ExclusionPolicy(settings, load_gitignore(ignore_root) if settings.use_gitignore else None)
        walker = ContentWalker(project, policy, self._counter, max_tokens, settings.exclude_doc_comments)

        full_content = TREE_HEADER + render_source_tree(root, policy) + CONTENTS_HEADER + walker.walk(root)

        if is_token_calculation:
            content = full_content
        else:
            content = truncate_to_tokens(
                full_content, max_tokens, self._counter, False, self._notifier, project
            )

        result = ScanContentResult(
            content=content,
            token_count=self._counter.count(content),
            file_count=walker.file_count,
            skipped_file_count=walker.skipped_file_count,
            skipped_directory_count=walker.skipped_directory_count,
        )
        LOGGER.debug(
            "Scan of %s: %d files, %d skipped files, %d skipped directories, %d tokens",
            root,
            result.file_count,
            result.skipped_file_count,
            result.skipped_directory_count,
            result.token_count,
        )
        return result

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)

    def _complete(self, setter, value) -> None:
        if self._completion_executor is None:
            setter(value)
        else:
            self._completion_executor.submit(setter, value)
