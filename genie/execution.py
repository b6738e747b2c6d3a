"""
genie.execution
===============

Runs one prompt at a time against a chat model.

Submitting while a prompt is still running does not queue a second one: it
cancels the running prompt and hands back its (cancelled) future, the way a
"stop" button would.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

from .client import ChatModel, GenerationCancelled
from .memory import AiMessage, MessageWindow, SystemMessage, UserMessage

__all__ = [
    "PromptExecutionService",
    "PromptExecutionError",
    "ChatMessageContext",
    "EditorInfo",
]

LOGGER = logging.getLogger(__name__)

YOU_ARE_A_SOFTWARE_DEVELOPER_WITH_EXPERT_KNOWLEDGE_IN = (
    "You are a software developer with expert knowledge in "
)
PROGRAMMING_LANGUAGE = " programming language."
ALWAYS_RETURN_THE_RESPONSE_IN_MARKDOWN = "Always return the response in Markdown."
COMMANDS_INFO = (
    "The Genie assistant supports the following commands: "
    "/test: write unit tests on selected code\n"
    "/explain: explain the selected code\n"
    "/review: review selected code\n"
    "/custom: set custom prompt in settings"
)
MORE_INFO = "Genie collects project source code as context for your questions."
NO_HALLUCINATIONS = (
    "Do not include any more info which might be incorrect, like discord, twitter, "
    "documentation or website info. Only provide info that is correct and relevant "
    "to the code or plugin."
)
QUESTION = "The user question: "
CONTEXT_PROMPT = "Question context: \n"
DEFAULT_LANGUAGE = "programming"


class PromptExecutionError(RuntimeError):
    """Wraps whatever the chat model raised."""


@dataclass
class EditorInfo:
    language: Optional[str] = None
    selected_text: Optional[str] = None


@dataclass
class ChatMessageContext:
    """
    One question: the prompt, what the editor had selected, the assembled
    project context, and the model to ask. The service fills in
    ``user_message`` and ``ai_message``.
    """

    user_prompt: str
    chat_model: ChatModel
    editor_info: Optional[EditorInfo] = None
    context: Optional[str] = None
    user_message: Optional[UserMessage] = None
    ai_message: Optional[AiMessage] = None


def create_system_message(context: ChatMessageContext) -> SystemMessage:
    language = (context.editor_info.language if context.editor_info else None) or DEFAULT_LANGUAGE
    return SystemMessage(
        YOU_ARE_A_SOFTWARE_DEVELOPER_WITH_EXPERT_KNOWLEDGE_IN
        + language
        + PROGRAMMING_LANGUAGE
        + ALWAYS_RETURN_THE_RESPONSE_IN_MARKDOWN
        + "\n"
        + COMMANDS_INFO
        + "\n"
        + MORE_INFO
        + "\n"
        + NO_HALLUCINATIONS
    )


def create_user_message(context: ChatMessageContext) -> UserMessage:
    selected_text = context.editor_info.selected_text if context.editor_info else None
    project_context = context.context
    if not selected_text and not project_context:
        return UserMessage(QUESTION + " " + context.user_prompt)

    parts = [QUESTION, context.user_prompt, CONTEXT_PROMPT]
    if selected_text:
        parts.append(selected_text + "\n")
    if project_context:
        parts.append(project_context)
    return UserMessage("".join(parts))


class PromptExecutionService:
    """Single‑slot prompt runner that owns the conversation window."""

    def __init__(self, max_messages: int = 10) -> None:
        self._memory = MessageWindow(max_messages)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="genie-prompt")
        self._slot_lock = threading.Lock()
        self._memory_lock = threading.Lock()
        self._future: Optional["Future[Optional[AiMessage]]"] = None
        self._cancel_event: Optional[threading.Event] = None
        self._running = False

    # ---------- Public API -------------------------------------------------

    def execute_query(self, context: ChatMessageContext) -> "Future[Optional[AiMessage]]":
        """
        Start *context* or, if a prompt is already running, cancel that one.

        Returns the new future, or the cancelled one in the second case.
        """
        with self._slot_lock:
            if self._running and self._future is not None:
                LOGGER.info("Cancelling running prompt")
                self._running = False
                self._cancel_event.set()
                self._future.cancel()
                return self._future

            future: "Future[Optional[AiMessage]]" = Future()
            cancel_event = threading.Event()
            self._future = future
            self._cancel_event = cancel_event
            self._running = True

        self._executor.submit(self._run, context, future, cancel_event)
        return future

    submit = execute_query

    def is_running(self) -> bool:
        return self._running

    def messages(self):
        with self._memory_lock:
            return self._memory.messages()

    def clear_chat_messages(self) -> None:
        with self._memory_lock:
            self._memory.clear()

    def remove_message_pair(self, context: ChatMessageContext) -> None:
        """Drop the user/assistant turn of *context* from the history."""
        with self._memory_lock:
            self._memory.remove_pair(context.user_message, context.ai_message)

    def shutdown(self) -> None:
        with self._slot_lock:
            if self._running and self._future is not None:
                self._running = False
                self._cancel_event.set()
                self._future.cancel()
        self._executor.shutdown(wait=False)

    # ---------- Internals --------------------------------------------------

    def _run(
        self,
        context: ChatMessageContext,
        future: "Future[Optional[AiMessage]]",
        cancel_event: threading.Event,
    ) -> None:
        try:
            with self._memory_lock:
                if cancel_event.is_set():
                    return
                self._memory.ensure_system_message(lambda: create_system_message(context))
                context.user_message = create_user_message(context)
                self._memory.add(context.user_message)
                history = self._memory.messages()

            reply = context.chat_model.generate(history, cancel_event)

            with self._memory_lock:
                if cancel_event.is_set() or not future.set_running_or_notify_cancel():
                    LOGGER.info("Dropping answer of a cancelled prompt")
                    return
                self._memory.add(reply)
                context.ai_message = reply
            self._release(future)
            future.set_result(reply)
        except GenerationCancelled:
            LOGGER.info("Prompt cancelled while generating")
        except Exception as exc:
            if cancel_event.is_set():
                LOGGER.debug("Cancelled prompt failed: %s", exc)
                return
            LOGGER.debug("Prompt failed: %s", exc)
            self._release(future)
            error = PromptExecutionError("Failed to execute prompt!\n" + str(exc))
            error.__cause__ = exc
            if future.set_running_or_notify_cancel():
                future.set_exception(error)

    def _release(self, future: "Future[Optional[AiMessage]]") -> None:
        with self._slot_lock:
            if self._future is future:
                self._running = False
