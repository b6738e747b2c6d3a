"""
genie.tokens
============

Exact token accounting on top of ``tiktoken``'s *cl100k_base* encoding.

The scanner needs three things from a tokenizer: a count, an encoding to
cut at, and a decoder that turns a prefix of ids back into text.
"""
from __future__ import annotations

import threading
from typing import Any, List, Optional, Sequence

import tiktoken

__all__ = ["TokenCounter", "format_tokens", "ENCODING_NAME"]

ENCODING_NAME: str = "cl100k_base"


class TokenCounter:
    """Thin wrapper around a ``tiktoken`` encoding, loaded lazily."""

    def __init__(self, encoding: Optional[Any] = None) -> None:
        self._encoding = encoding
        self._lock = threading.Lock()

    @property
    def encoding(self) -> Any:
        # tiktoken downloads/caches the BPE table on first use
        if self._encoding is None:
            with self._lock:
                if self._encoding is None:
                    self._encoding = tiktoken.get_encoding(ENCODING_NAME)
        return self._encoding

    def count(self, text: str) -> int:
        return len(self.encode(text))

    def encode(self, text: str) -> List[int]:
        """Encode *text*; special-token strings in source files are plain text."""
        return self.encoding.encode(text, disallowed_special=())

    def decode(self, tokens: Sequence[int]) -> str:
        return self.encoding.decode(list(tokens))


def format_tokens(count: int, suffix: str = "tokens") -> str:
    """
    Human readable token count: ``950 tokens``, ``12K tokens``, ``2M tokens``.
    """
    if count >= 1_000_000:
        return f"{count // 1_000_000}M {suffix}"
    if count >= 1_000:
        return f"{count // 1_000}K {suffix}"
    return f"{count} {suffix}"
