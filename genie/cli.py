"""
genie/cli.py
============

Command‑line chat for **Genie** running on a local Ollama server, with the
project's source code as context.
Features
--------
* Multi‑line prompt entry (paste blocks, hit *blank line* or `/send` to submit)
* `/scan [dir]` attaches the project tree and sources (cut to `--context` tokens)
* `/tokens [dir]` only counts the tokens a scan would produce
* `/add`, `/remove`, `/files`, `/clear-files` manage attached files
* `/test`, `/explain`, `/review` ask canned questions about the attached files
* `/undo` forgets the last question/answer pair, `/new` starts over
* Ctrl‑C while **typing**  → draft cleared (stay in prompt)
* Ctrl‑C during **answer** → cancel completion (keeps CLI alive)
* Ctrl‑D (or Ctrl‑Z+Enter on Windows) → quit program
"""

from __future__ import annotations

import logging
import sys
from concurrent.futures import CancelledError
from concurrent.futures import TimeoutError as FutureTimeout
from pathlib import Path
from typing import List, Optional, Tuple

import click
from rich.console import Console, Group
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.text import Text

from .client import OllamaChatModel
from .execution import ChatMessageContext, EditorInfo, PromptExecutionError, PromptExecutionService
from .files import FileListManager
from .notifications import ConsoleNotifier
from .project import Project
from .scanner import ProjectScanner, ScanError
from .settings import DEFAULT_EXCLUDED_DIRECTORIES, DEFAULT_INCLUDED_EXTENSIONS, Settings
from .tokens import format_tokens

# ---------------------------------------------------------------------------

LOGGER = logging.getLogger(__name__)
console = Console()
PREFIX_TEXT = Text("🧞 Genie - ", style="bold cyan")

CANNED_PROMPTS = {
    "/test": "Write unit tests for the selected code.",
    "/explain": "Explain the selected code.",
    "/review": "Review the selected code and point out bugs and improvements.",
}

_LANGUAGE_BY_EXTENSION = {
    "py": "Python",
    "java": "Java",
    "kt": "Kotlin",
    "js": "JavaScript",
    "ts": "TypeScript",
    "go": "Go",
    "rs": "Rust",
    "rb": "Ruby",
    "cs": "C#",
    "cpp": "C++",
    "c": "C",
    "php": "PHP",
    "scala": "Scala",
    "swift": "Swift",
}


# ──────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────
def _read_multiline_question() -> str:
    """
    Read a prompt of arbitrary length from ``stdin`` **synchronously**.

    Terminators
    -----------
    * Blank line **after** ≥ 1 line of text, or
    * A line containing only ``/send``, or
    * A first line starting with ``/`` (a command).

    Special keys
    ------------
    * Ctrl‑C → abandon current draft, return ``""`` (no request sent)
    * Ctrl‑D → exit program immediately
    """
    console.print(
        "[bold magenta]You[/] "
        "(multi‑line allowed; end with blank line or /send; Ctrl‑D to quit)"
    )

    lines: List[str] = []
    while True:
        try:
            line = input()
        except KeyboardInterrupt:           # Ctrl‑C while typing
            console.print("[red]⏹️  Draft cleared (Ctrl‑C)[/]\n")
            return ""
        except EOFError:                    # Ctrl‑D / Ctrl‑Z+Enter
            console.print("\nGood‑bye 👋", style="cyan")
            raise SystemExit(0)

        if not lines and line.startswith("/"):
            return line.strip()
        if line.strip().lower() == "/send" or (line == "" and lines):
            break
        if line == "" and not lines:        # stray blank at start
            continue

        lines.append(line)

    return "\n".join(lines).rstrip("\n")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


class _FileChips:
    """Prints a short line whenever the attached files change."""

    def file_added(self, path: Path) -> None:
        console.print(f"[green]📎 {path.name}[/] attached")

    def file_removed(self, path: Path) -> None:
        console.print(f"[yellow]📎 {path.name}[/] removed")

    def all_files_removed(self) -> None:
        console.print("[yellow]📎 all attached files removed[/]")


# ──────────────────────────────────────────────────────────────────────────
# Session
# ──────────────────────────────────────────────────────────────────────────
class ChatSession:
    """Everything one interactive session needs, wired together once."""

    def __init__(self, settings: Settings, project: Project) -> None:
        self.settings = settings
        self.project = project
        self.scanner = ProjectScanner(settings, notifier=ConsoleNotifier(console))
        self.service = PromptExecutionService(max_messages=settings.max_messages)
        self.chat_model = OllamaChatModel.from_settings(settings)
        self.files = FileListManager()
        self.files.add_observer(_FileChips())
        self.project_context: Optional[str] = None
        self.last_context: Optional[ChatMessageContext] = None

    # commands -------------------------------------------------------------- #
    def scan(self, argument: str, calculate_only: bool) -> None:
        start = Path(argument).expanduser() if argument else None
        future = self.scanner.scan_project(
            self.project, start, self.settings.window_context, calculate_only
        )
        try:
            with console.status("Scanning project…"):
                result = future.result()
        except ScanError as exc:
            console.print(f"[red]{exc}[/]")
            return
        except Exception as exc:
            LOGGER.exception("Scan failed")
            console.print(f"[red]Scan failed: {exc}[/]")
            return

        console.print(
            f"[cyan]{result.file_count}[/] files, "
            f"[yellow]{result.skipped_file_count}[/] skipped files, "
            f"[yellow]{result.skipped_directory_count}[/] skipped directories — "
            f"[magenta]{format_tokens(result.token_count)}[/]"
        )
        if not calculate_only:
            self.project_context = result.content

    def undo(self) -> None:
        if self.last_context is None:
            console.print("[yellow]Nothing to undo.[/]")
            return
        self.service.remove_message_pair(self.last_context)
        self.last_context = None
        console.print("[cyan]↩️  Last question removed from the conversation.[/]")

    def reset(self) -> None:
        self.service.clear_chat_messages()
        self.project_context = None
        self.last_context = None

    def ask(self, prompt: str) -> None:
        selected, language = self._selection()
        context = ChatMessageContext(
            user_prompt=prompt,
            chat_model=self.chat_model,
            editor_info=EditorInfo(language=language, selected_text=selected),
            context=self.project_context,
        )
        future = self.service.submit(context)
        try:
            with console.status("Thinking… (Ctrl‑C to cancel)"):
                while True:
                    try:
                        reply = future.result(timeout=0.2)
                        break
                    except FutureTimeout:
                        continue
        except KeyboardInterrupt:           # Ctrl‑C cancels completion
            if not future.done():
                self.service.submit(context)    # a second submit stops the first
            console.print("\n[red]⏹️  Completion cancelled (Ctrl‑C)[/]")
            return
        except CancelledError:
            console.print("[red]⏹️  Completion cancelled[/]")
            return
        except PromptExecutionError as exc:
            console.print(f"[red]{exc}[/]")
            return

        self.last_context = context
        console.print(Group(PREFIX_TEXT, Markdown(reply.text)))
        console.print()                     # tidy newline after answer

    def _selection(self) -> Tuple[Optional[str], Optional[str]]:
        files = self.files.files()
        if not files:
            return None, None
        language = _LANGUAGE_BY_EXTENSION.get(files[0].suffix[1:].lower())
        return self.files.build_context(), language

    def handle(self, question: str) -> None:
        command, _, argument = question.partition(" ")
        command = command.lower()
        argument = argument.strip()

        if command == "/scan":
            self.scan(argument, calculate_only=False)
        elif command == "/tokens":
            self.scan(argument, calculate_only=True)
        elif command == "/add" and argument:
            if not Path(argument).expanduser().is_file():
                console.print(f"[red]No such file: {argument}[/]")
            elif not self.files.add_file(Path(argument).expanduser()):
                console.print(f"[yellow]{argument} is already attached[/]")
        elif command == "/remove" and argument:
            if not self.files.remove_file(Path(argument).expanduser()):
                console.print(f"[yellow]{argument} is not attached[/]")
        elif command == "/files":
            for path in self.files.files():
                console.print(f"📎 {path}")
        elif command == "/clear-files":
            self.files.clear()
        elif command == "/undo":
            self.undo()
        elif command == "/new":
            self.reset()
            console.print("[cyan]🔄  New chat started.[/]\n")
        elif command in CANNED_PROMPTS:
            if self.files.is_empty():
                console.print("[yellow]Attach a file with /add first.[/]")
                return
            prompt = CANNED_PROMPTS[command]
            self.ask(f"{prompt} {argument}".strip())
        else:
            self.ask(question)

    def close(self) -> None:
        self.service.shutdown()
        self.scanner.shutdown()


# ──────────────────────────────────────────────────────────────────────────
# Main loop
# ──────────────────────────────────────────────────────────────────────────
@click.command()
@click.option(
    "--model", default="gemma3:4b", envvar="GENIE_MODEL",
    help="Ollama model name to use", show_default=True,
)
@click.option("--host", default=None, envvar="OLLAMA_HOST", help="Ollama server URL")
@click.option(
    "--context",
    "context_window",
    default=8192,
    type=int,
    envvar="GENIE_CONTEXT",
    help="Token budget for the project context",
    show_default=True,
)
@click.option(
    "--project",
    "project_dir",
    default=".",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Project base directory",
    show_default=True,
)
@click.option(
    "--root",
    "content_roots",
    multiple=True,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Content root (repeatable); defaults to the project directory",
)
@click.option("--exclude-dir", multiple=True, help="Extra directory name to exclude (repeatable)")
@click.option("--extension", "extensions", multiple=True, help="Only include these file extensions (repeatable)")
@click.option("--gitignore/--no-gitignore", default=True, show_default=True)
@click.option("--strip-doc-comments/--keep-doc-comments", default=False, show_default=True)
@click.option("--max-messages", default=10, type=click.IntRange(min=1), show_default=True)
@click.option("--temperature", default=0.7, type=float, show_default=True)
@click.option("--timeout", default=60.0, type=float, help="Generation timeout in seconds", show_default=True)
@click.option("--retries", default=3, type=click.IntRange(min=1), show_default=True)
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
def cli(
    model: str,
    host: Optional[str],
    context_window: int,
    project_dir: Path,
    content_roots: Tuple[Path, ...],
    exclude_dir: Tuple[str, ...],
    extensions: Tuple[str, ...],
    gitignore: bool,
    strip_doc_comments: bool,
    max_messages: int,
    temperature: float,
    timeout: float,
    retries: int,
    verbose: bool,
) -> None:
    """
    Genie CLI for chatting about a code base with a local Ollama model.
    """
    _configure_logging(verbose)
    settings = Settings(
        excluded_directories=DEFAULT_EXCLUDED_DIRECTORIES | frozenset(exclude_dir),
        included_file_extensions=frozenset(extensions) or DEFAULT_INCLUDED_EXTENSIONS,
        use_gitignore=gitignore,
        exclude_doc_comments=strip_doc_comments,
        model_name=model,
        ollama_host=host,
        temperature=temperature,
        timeout=timeout,
        max_retries=retries,
        window_context=context_window,
        max_messages=max_messages,
    )
    project = Project(project_dir, content_roots)

    console.print(
        f"[bold cyan]Genie Local CLI[/] — model: [magenta]{model}[/], "
        f"context: [yellow]{format_tokens(context_window)}[/], project: [green]{project.base_dir}[/]\n"
        "Press Ctrl‑D to quit, Ctrl‑C to cancel\n"
    )

    session = ChatSession(settings, project)
    try:
        while True:
            question = _read_multiline_question()
            if not question.strip():
                continue
            session.handle(question)
    finally:
        session.close()


if __name__ == "__main__":
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\nGood‑bye 👋", style="cyan")
        sys.exit(0)
