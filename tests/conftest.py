from __future__ import annotations

import pytest

from genie.settings import Settings
from genie.tokens import TokenCounter
from tests._fixtures.fakes import CharEncoding, RecordingNotifier


@pytest.fixture
def counter() -> TokenCounter:
    return TokenCounter(encoding=CharEncoding())


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        excluded_directories=frozenset({"node_modules"}),
        included_file_extensions=frozenset({"java"}),
        use_gitignore=True,
        exclude_doc_comments=False,
        window_context=10_000,
    )
