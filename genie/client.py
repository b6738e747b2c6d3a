"""
genie.client
============

The chat model behind :class:`genie.execution.PromptExecutionService`: the
whole history goes to a local Ollama server and one complete answer comes
back. Replies are streamed under the hood so a cancel request takes effect
between chunks.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Any, List, Optional, Protocol, Sequence

import httpx
import ollama                                # type: ignore[import]

from .memory import AiMessage, ChatMessage
from .settings import Settings

__all__ = ["ChatModel", "OllamaChatModel", "GenerationCancelled"]

LOGGER = logging.getLogger(__name__)
MODEL_NAME: str = "gemma3:4b"
MAX_RETRIES: int = 3
BACKOFF_SEC: float = 1.5


class GenerationCancelled(RuntimeError):
    """Raised when a generation call notices its cancel event."""


class ChatModel(Protocol):
    def generate(
        self,
        messages: Sequence[ChatMessage],
        cancel_event: Optional[threading.Event] = None,
    ) -> AiMessage: ...


class OllamaChatModel:
    """Wrapper around ``ollama.Client.chat`` with cancellation and retries."""

    def __init__(
        self,
        model: str = MODEL_NAME,
        host: Optional[str] = None,
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
        max_retries: int = MAX_RETRIES,
        client: Any = None,
    ) -> None:
        self._model = model
        self._temperature = temperature
        self._max_retries = max(1, max_retries)
        self._client = client or ollama.Client(host=host, timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "OllamaChatModel":
        return cls(
            model=settings.model_name,
            host=settings.ollama_host,
            temperature=settings.temperature,
            timeout=settings.timeout,
            max_retries=settings.max_retries,
        )

    @property
    def model(self) -> str:
        return self._model

    # ---------- Public API -------------------------------------------------

    def generate(
        self,
        messages: Sequence[ChatMessage],
        cancel_event: Optional[threading.Event] = None,
    ) -> AiMessage:
        """
        Send the whole history and return the assistant's complete answer.

        Raises
        ------
        GenerationCancelled
            If *cancel_event* is set before the answer is complete.
        RuntimeError
            If the Ollama backend is unreachable after ``max_retries``.
        """
        payload = [message.to_dict() for message in messages]
        options = {} if self._temperature is None else {"temperature": self._temperature}

        for attempt in range(1, self._max_retries + 1):
            self._check_cancelled(cancel_event)
            try:
                return AiMessage(self._stream_answer(payload, options, cancel_event))
            except (ConnectionError, httpx.TimeoutException) as exc:
                LOGGER.warning(
                    "Ollama unavailable (attempt %d/%d): %s",
                    attempt,
                    self._max_retries,
                    exc,
                )
                if attempt < self._max_retries:
                    if cancel_event is not None:
                        cancel_event.wait(BACKOFF_SEC * attempt)
                    else:
                        time.sleep(BACKOFF_SEC * attempt)
        raise RuntimeError("Could not reach the Ollama server after several attempts.")

    # ---------- Internals --------------------------------------------------

    def _stream_answer(
        self,
        payload: List[dict],
        options: dict,
        cancel_event: Optional[threading.Event],
    ) -> str:
        stream = self._client.chat(
            model=self._model,
            messages=payload,
            stream=True,                  # lets us stop between chunks
            options=options or None,
        )
        answer: List[str] = []
        try:
            for chunk in stream:
                self._check_cancelled(cancel_event)
                answer.append(chunk["message"]["content"])
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                close()                   # release the HTTP connection
        return "".join(answer)

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise GenerationCancelled("Generation cancelled")
