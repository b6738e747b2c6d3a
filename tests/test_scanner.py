"""Tests for genie.scanner."""

from __future__ import annotations

import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List

import pytest

from genie.exclusion import ExclusionPolicy, load_gitignore
from genie.project import Project, highest_common_root
from genie.scanner import (
    TRUNCATION_MARKER,
    ContentWalker,
    ProjectScanner,
    ScanError,
    render_source_tree,
    strip_doc_comments,
    truncate_to_tokens,
)
from genie.settings import Settings
from genie.tokens import TokenCounter
from tests._fixtures.fakes import RecordingNotifier, make_tree


@pytest.fixture
def sample_root(tmp_path: Path) -> Path:
    return make_tree(
        tmp_path / "root",
        {
            "node_modules/X.java": "class X {}",
            "src/A.java": "class A {}",
            "src/B.txt": "notes",
        },
    ).resolve()


def _scanner(settings: Settings, counter: TokenCounter, notifier=None) -> ProjectScanner:
    return ProjectScanner(settings, counter=counter, notifier=notifier or RecordingNotifier())


# ───────────────────────────── tree rendering ───────────────────────────── #

def test_tree_prunes_excluded_directories_and_files(sample_root: Path, settings: Settings) -> None:
    tree = render_source_tree(sample_root, ExclusionPolicy(settings))

    assert tree == "root/\n  src/\n    A.java\n"


def test_tree_of_excluded_root_is_empty(sample_root: Path, settings: Settings) -> None:
    policy = ExclusionPolicy(settings)

    assert render_source_tree(sample_root / "node_modules", policy) == ""


def test_tree_honours_gitignore(tmp_path: Path, settings: Settings) -> None:
    root = make_tree(
        tmp_path / "proj",
        {".gitignore": "gen/\n", "gen/G.java": "", "lib/deep/D.java": ""},
    )
    policy = ExclusionPolicy(settings, load_gitignore(root))

    assert render_source_tree(root, policy) == "proj/\n  lib/\n    deep/\n      D.java\n"


def test_tree_stops_at_a_looping_symlink(tmp_path: Path, settings: Settings) -> None:
    root = make_tree(tmp_path / "root", {"src/A.java": "class A {}"}).resolve()
    os.symlink(root, root / "src" / "loop", target_is_directory=True)

    assert render_source_tree(root, ExclusionPolicy(settings)) == "root/\n  src/\n    A.java\n"


# ──────────────────────────── content walking ───────────────────────────── #

def test_walker_counts_and_collects(sample_root: Path, settings: Settings, counter: TokenCounter) -> None:
    walker = ContentWalker(Project(sample_root), ExclusionPolicy(settings), counter, max_tokens=1_000)

    content = walker.walk(sample_root)

    assert content == f"\n--- {sample_root / 'src' / 'A.java'} ---\nclass A {{}}\n"
    assert walker.file_count == 1
    assert walker.skipped_file_count == 1
    assert walker.skipped_directory_count == 1
    assert walker.current_tokens == len("class A {}")


def test_walker_stops_once_budget_reached(tmp_path: Path, settings: Settings, counter: TokenCounter) -> None:
    root = make_tree(tmp_path / "r", {"a.java": "aaaa", "b.java": "bbbb", "c.java": "cccc"})
    walker = ContentWalker(Project(root), ExclusionPolicy(settings), counter, max_tokens=4)

    content = walker.walk(root)

    assert "aaaa" in content
    assert "bbbb" not in content
    assert walker.file_count == 1
    assert walker.skipped_file_count == 0


def test_walker_skips_files_outside_project_content(tmp_path: Path, settings: Settings, counter: TokenCounter) -> None:
    root = make_tree(tmp_path / "r", {"src/A.java": "a", "Top.java": "t"})
    project = Project(root, content_roots=[root / "src"])
    walker = ContentWalker(project, ExclusionPolicy(settings), counter, max_tokens=100)

    walker.walk(root)

    assert walker.file_count == 1
    assert walker.skipped_file_count == 1


def test_walker_marks_unreadable_files_and_continues(tmp_path: Path, settings: Settings, counter: TokenCounter) -> None:
    root = make_tree(tmp_path / "r", {"b.java": "class B {}"})
    (root / "a.java").write_bytes(b"\xff\xfe\x00\x81")
    walker = ContentWalker(Project(root), ExclusionPolicy(settings), counter, max_tokens=100)

    content = walker.walk(root)

    assert "Error reading file:" in content
    assert "class B {}" in content
    assert walker.file_count == 2


def test_walker_strips_doc_comments_when_asked(tmp_path: Path, settings: Settings, counter: TokenCounter) -> None:
    root = make_tree(tmp_path / "r", {"A.java": "/** Docs. */\nclass A {}\n"})
    walker = ContentWalker(Project(root), ExclusionPolicy(settings), counter, 100, strip_docs=True)

    content = walker.walk(root)

    assert "Docs." not in content
    assert "class A {}" in content


def test_strip_doc_comments() -> None:
    source = (
        "/**\n * Javadoc.\n */\n"
        "class A {\n"
        "    /* block */ int x;\n"
        "    /// triple slash note\n"
        "    // regular comment\n"
        "}\n"
    )

    stripped = strip_doc_comments(source)

    assert "Javadoc" not in stripped
    assert "block" not in stripped
    assert "triple slash" not in stripped
    assert "// regular comment" in stripped
    assert "int x;" in stripped


# ─────────────────────────────── truncation ─────────────────────────────── #

def test_truncate_keeps_text_within_budget(counter: TokenCounter, notifier: RecordingNotifier) -> None:
    text = "small"

    assert truncate_to_tokens(text, 5, counter, notifier=notifier) == text
    assert notifier.messages == ["Added. Project context 5 tokens"]


def test_truncate_cuts_at_token_level_and_appends_marker(counter: TokenCounter, notifier: RecordingNotifier) -> None:
    text = "x" * 25

    result = truncate_to_tokens(text, 10, counter, notifier=notifier)

    assert result.endswith(TRUNCATION_MARKER)
    assert counter.count(result[: -len(TRUNCATION_MARKER)]) == 10
    assert len(notifier.messages) == 1
    assert "was 25 tokens" in notifier.messages[0]
    assert "limit is 10 tokens" in notifier.messages[0]


def test_truncate_groups_large_numbers(counter: TokenCounter, notifier: RecordingNotifier) -> None:
    truncate_to_tokens("y" * 12_345, 1_000, counter, notifier=notifier)

    assert "was 12,345 tokens but limit is 1,000 tokens" in notifier.messages[0]


def test_truncate_in_calculation_mode_is_silent(counter: TokenCounter, notifier: RecordingNotifier) -> None:
    result = truncate_to_tokens("abcdefghij", 4, counter, is_token_calculation=True, notifier=notifier)

    assert result == "abcd"
    assert notifier.messages == []


# ────────────────────────────── orchestration ───────────────────────────── #

def test_scan_project_scenario(sample_root: Path, settings: Settings, counter: TokenCounter) -> None:
    scanner = _scanner(settings, counter)

    result = scanner.scan_project(Project(sample_root)).result(timeout=10)

    assert result.content.startswith("Directory Structure:\nroot/\n  src/\n    A.java\n\n\nFile Contents:\n")
    assert "node_modules" not in result.content
    assert "B.txt" not in result.content
    assert result.file_count == 1
    assert result.skipped_file_count == 1
    assert result.skipped_directory_count == 1
    assert result.token_count == counter.count(result.content)


def test_scan_project_truncates_for_display(sample_root: Path, settings: Settings, counter: TokenCounter) -> None:
    notifier = RecordingNotifier()
    scanner = _scanner(settings, counter, notifier)

    result = scanner.scan_project(Project(sample_root), window_context_max_tokens=10).result(timeout=10)

    assert result.content.endswith(TRUNCATION_MARKER)
    assert result.content.startswith("Directory")
    assert "truncated" in notifier.messages[0]


def test_token_calculation_keeps_full_text(sample_root: Path, settings: Settings, counter: TokenCounter) -> None:
    notifier = RecordingNotifier()
    scanner = _scanner(settings, counter, notifier)

    result = scanner.scan_project(Project(sample_root), None, 10, is_token_calculation=True).result(timeout=10)

    assert "class A {}" in result.content
    assert not result.content.endswith(TRUNCATION_MARKER)
    assert result.token_count > 10
    assert notifier.messages == []


def test_scan_from_explicit_start_directory(sample_root: Path, settings: Settings, counter: TokenCounter) -> None:
    (sample_root / "src" / ".gitignore").write_text("A.java\n", encoding="utf-8")
    scanner = _scanner(settings, counter)

    result = scanner.scan_project(Project(sample_root), sample_root / "src").result(timeout=10)

    assert result.content.startswith("Directory Structure:\nsrc/\n\n\nFile Contents:\n")
    assert result.file_count == 0
    assert result.skipped_file_count == 3


def test_scan_uses_highest_common_root(tmp_path: Path, settings: Settings, counter: TokenCounter) -> None:
    base = make_tree(tmp_path / "base", {"mod/x/X.java": "x", "mod/y/Y.java": "y", "other/O.java": "o"}).resolve()
    project = Project(base, content_roots=[base / "mod" / "x", base / "mod" / "y"])

    result = _scanner(settings, counter).scan_project(project).result(timeout=10)

    assert result.content.startswith("Directory Structure:\nmod/\n")
    assert "O.java" not in result.content
    assert result.file_count == 2


def test_scan_fails_without_content_roots(tmp_path: Path, settings: Settings, counter: TokenCounter) -> None:
    class RootlessProject(Project):
        @property
        def content_roots(self) -> List[Path]:
            return []

    future = _scanner(settings, counter).scan_project(RootlessProject(tmp_path))

    with pytest.raises(ScanError):
        future.result(timeout=10)


def test_scan_rejects_missing_start_directory(tmp_path: Path, settings: Settings, counter: TokenCounter) -> None:
    future = _scanner(settings, counter).scan_project(Project(tmp_path), tmp_path / "missing")

    with pytest.raises(ScanError):
        future.result(timeout=10)


def test_scan_waits_for_smart_mode(sample_root: Path, settings: Settings, counter: TokenCounter) -> None:
    project = Project(sample_root)
    project.enter_dumb_mode()

    future = _scanner(settings, counter).scan_project(project)
    time.sleep(0.1)
    assert not future.done()

    project.exit_dumb_mode()
    assert future.result(timeout=10).file_count == 1


def test_scan_completes_on_completion_executor(sample_root: Path, settings: Settings, counter: TokenCounter) -> None:
    main_queue = ThreadPoolExecutor(max_workers=1, thread_name_prefix="main-queue")
    seen: List[str] = []
    done = threading.Event()
    scanner = ProjectScanner(settings, counter=counter, completion_executor=main_queue)

    project = Project(sample_root)
    project.enter_dumb_mode()
    future = scanner.scan_project(project)
    future.add_done_callback(lambda _: (seen.append(threading.current_thread().name), done.set()))
    project.exit_dumb_mode()

    assert done.wait(10)
    assert seen[0].startswith("main-queue")
    main_queue.shutdown()


def test_concurrent_scans_keep_separate_counters(tmp_path: Path, settings: Settings, counter: TokenCounter) -> None:
    one = make_tree(tmp_path / "one", {"A.java": "a"})
    two = make_tree(tmp_path / "two", {"A.java": "a", "B.java": "b", "C.java": "c"})
    scanner = _scanner(settings, counter)

    first = scanner.scan_project(Project(one))
    second = scanner.scan_project(Project(two))

    assert first.result(timeout=10).file_count == 1
    assert second.result(timeout=10).file_count == 3


def test_highest_common_root(tmp_path: Path) -> None:
    a = tmp_path / "a" / "b" / "c"
    d = tmp_path / "a" / "d"

    assert highest_common_root([a, d]) == (tmp_path / "a").resolve()
    assert highest_common_root([a, a]) == a.resolve()
    assert highest_common_root([]) is None


def test_scan_follows_each_directory_once(tmp_path: Path, settings: Settings, counter: TokenCounter) -> None:
    root = make_tree(tmp_path / "root", {"src/A.java": "class A {}"}).resolve()
    os.symlink(root, root / "src" / "loop", target_is_directory=True)

    result = _scanner(settings, counter).scan_project(Project(root)).result(timeout=10)

    assert result.file_count == 1
    assert result.content.count("class A {}") == 1
    assert "loop/" not in result.content
