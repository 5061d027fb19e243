"""Conversation memory: session lifecycle, rolling summary and token-budgeted context.

A session keeps every message, a single rolling summary and two counters:
the total message count and the number of messages appended since the last
summary. When enough unsummarised history accumulates, the newest messages
are condensed into a fresh summary that replaces the previous one.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator

from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.helper.text_utils import detect_language, estimate_tokens, truncate
from shared.models.conversation import Conversation, ConversationStats, MemoryContext, Message, MessageRole
from shared.models.errors import StoreError
from shared.store.StateStore import StateStore
from shared.store.database import utcnow
from services.rag.prompts import SUPPORTED_LANGUAGES, build_summary_prompt

DEFAULT_SUMMARY_TRIGGER_MESSAGES = 10
DEFAULT_SUMMARY_TRIGGER_CHARS = 4000
DEFAULT_MAX_TOKENS = 1500
DEFAULT_MAX_RECENT_MESSAGES = 20
DEFAULT_SESSION_TIMEOUT_HOURS = 24


def select_memory(summary: str | None, messages: list[Message], budget: int) -> MemoryContext:
    """Fit a summary and recent messages into a token budget.

    The summary is counted first (cut to the budget if it alone exceeds it).
    Messages are then taken newest to oldest while the running total stays
    within the budget; the first message that would overflow ends the walk and
    every older message is dropped with it.

    Args:
        summary (str | None): The rolling summary.
        messages (list[Message]): Candidate messages, oldest first.
        budget (int): Maximum estimated tokens.

    Returns:
        MemoryContext: Summary and selected messages (oldest first).
    """
    budget = max(0, budget)
    total = 0
    if summary:
        if estimate_tokens(summary) > budget:
            summary = truncate(summary, budget * 4) if budget else None
        total = estimate_tokens(summary) if summary else 0

    selected: list[Message] = []
    for message in reversed(messages):
        tokens = estimate_tokens(message.text)
        if total + tokens > budget:
            break
        selected.append(message)
        total += tokens
    selected.reverse()
    return MemoryContext(summary=summary, messages=selected, total_tokens=total)


class ConversationService:
    def __init__(
        self,
        helper_config: HelperConfig,
        store: StateStore,
        llm_client: LLMClientInterface,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._store = store
        self._llm_client = llm_client

        self.default_language = helper_config.get_string_val("DEFAULT_LANGUAGE", default="ko")
        self.summary_trigger_messages = int(helper_config.get_number_val("MEMORY_SUMMARY_TRIGGER_MESSAGES", default=DEFAULT_SUMMARY_TRIGGER_MESSAGES))
        self.summary_trigger_chars = int(helper_config.get_number_val("MEMORY_SUMMARY_TRIGGER_CHARS", default=DEFAULT_SUMMARY_TRIGGER_CHARS))
        self.max_tokens = int(helper_config.get_number_val("MEMORY_MAX_TOKENS", default=DEFAULT_MAX_TOKENS))
        self.max_recent_messages = int(helper_config.get_number_val("MEMORY_MAX_RECENT_MESSAGES", default=DEFAULT_MAX_RECENT_MESSAGES))
        self.session_timeout_hours = float(helper_config.get_number_val("MEMORY_SESSION_TIMEOUT_HOURS", default=DEFAULT_SESSION_TIMEOUT_HOURS))

        # chat id -> (lock, number of turns holding or awaiting it)
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}

    ##########################################
    ############### LOCKING ##################
    ##########################################

    @asynccontextmanager
    async def lock(self, chat_id: str) -> AsyncIterator[None]:
        """Serialise turns of one chat.

        The entry of a chat is dropped as soon as no turn holds or awaits its lock.
        """
        chat_lock, users = self._locks.get(chat_id, (asyncio.Lock(), 0))
        self._locks[chat_id] = (chat_lock, users + 1)
        try:
            async with chat_lock:
                yield
        finally:
            chat_lock, users = self._locks[chat_id]
            if users <= 1:
                del self._locks[chat_id]
            else:
                self._locks[chat_id] = (chat_lock, users - 1)

    @property
    def active_chats(self) -> int:
        return len(self._locks)

    ##########################################
    ############### SESSIONS #################
    ##########################################

    async def do_ensure_session(self, chat_id: str, language: str | None = None) -> Conversation:
        try:
            return await self._store.get_or_create_conversation(chat_id, language or self.default_language)
        except Exception as exc:
            raise StoreError(f"Cannot load conversation: {exc}", subject=chat_id) from exc

    async def do_reset(self, chat_id: str) -> Conversation:
        """Delete the messages and summary of a chat, keeping the session with zeroed counters."""
        await self.do_ensure_session(chat_id)
        try:
            conversation = await self._store.reset_conversation(chat_id)
        except Exception as exc:
            raise StoreError(f"Cannot reset conversation: {exc}", subject=chat_id) from exc
        self.logging.info("Conversation %s reset.", chat_id)
        return conversation

    async def do_set_language(self, chat_id: str, language: str) -> Conversation:
        if language not in SUPPORTED_LANGUAGES:
            raise ValueError(f"Unsupported language '{language}'.")
        await self.do_ensure_session(chat_id, language)
        try:
            return await self._store.update_conversation(chat_id, language=language)
        except Exception as exc:
            raise StoreError(f"Cannot update language: {exc}", subject=chat_id) from exc

    async def do_detect_language(self, chat_id: str, text: str) -> str:
        """Detect the language of an incoming message and store it on the session if it differs."""
        detected = detect_language(text)
        conversation = await self.do_ensure_session(chat_id, detected)
        if conversation.language != detected:
            try:
                await self._store.update_conversation(chat_id, language=detected)
            except Exception as exc:
                raise StoreError(f"Cannot update language: {exc}", subject=chat_id) from exc
            self.logging.debug("Language of conversation %s switched to %s.", chat_id, detected)
        return detected

    def is_session_active(self, conversation: Conversation | None, now: datetime | None = None) -> bool:
        if conversation is None or conversation.last_activity is None:
            return False
        now = now or utcnow()
        return now - conversation.last_activity < timedelta(hours=self.session_timeout_hours)

    async def do_get_stats(self, chat_id: str) -> ConversationStats | None:
        conversation = await self._store.get_conversation(chat_id)
        if conversation is None:
            return None
        return ConversationStats(
            chat_id=chat_id,
            language=conversation.language,
            message_count=await self._store.count_messages(chat_id),
            has_summary=bool(conversation.summary),
            last_activity=conversation.last_activity,
            is_active=self.is_session_active(conversation),
        )

    ##########################################
    ############### MESSAGES #################
    ##########################################

    async def do_append_message(
        self,
        chat_id: str,
        role: MessageRole,
        text: str,
        metadata: dict | None = None,
    ) -> Message:
        """Persist a message and refresh the rolling summary when the trigger fires.

        Raises:
            StoreError: If the message cannot be stored.
        """
        try:
            message, conversation = await self._store.add_message(
                Message(chat_id=chat_id, role=role, text=text, metadata=metadata or {})
            )
        except Exception as exc:
            raise StoreError(f"Cannot store message: {exc}", subject=chat_id) from exc

        if await self.should_summarize(conversation):
            await self.do_summarize(conversation)
        return message

    async def should_summarize(self, conversation: Conversation) -> bool:
        """True if N messages arrived since the last summary, or the unsummarised tail is long.

        The character rule only looks at messages not yet covered by the
        current summary, capped at the N most recent ones.
        """
        since = conversation.messages_since_summary
        if since <= 0:
            return False
        if since >= self.summary_trigger_messages:
            return True
        window = await self._store.list_recent_messages(conversation.chat_id, min(since, self.summary_trigger_messages))
        return sum(len(m.text) for m in window) >= self.summary_trigger_chars

    async def do_summarize(self, conversation: Conversation) -> str | None:
        """Summarise the last N messages into a new rolling summary.

        A failed model call keeps the previous summary; the error is logged.

        Returns:
            str | None: The new summary, or None if nothing was summarised.
        """
        messages = await self._store.list_recent_messages(conversation.chat_id, self.summary_trigger_messages)
        if not messages:
            return None
        prompt = build_summary_prompt(messages, conversation.language)
        try:
            summary = await self._llm_client.do_complete(prompt)
        except Exception as exc:
            self.logging.error("Summary of conversation %s failed, keeping the previous one: %s", conversation.chat_id, exc)
            return None
        if not summary:
            self.logging.warning("Model returned an empty summary for conversation %s.", conversation.chat_id)
            return None

        await self._store.update_conversation(conversation.chat_id, summary=summary, messages_since_summary=0)
        self.logging.info(
            "Summarised %d message(s) of conversation %s: %s",
            len(messages), conversation.chat_id, truncate(summary, 100),
        )
        return summary

    async def do_force_summary(self, chat_id: str) -> str | None:
        conversation = await self._store.get_conversation(chat_id)
        if conversation is None:
            return None
        summary = await self.do_summarize(conversation)
        if summary is None:
            refreshed = await self._store.get_conversation(chat_id)
            return refreshed.summary if refreshed else None
        return summary

    ##########################################
    ################ MEMORY ##################
    ##########################################

    async def do_build_memory_context(self, chat_id: str, max_tokens: int | None = None) -> MemoryContext:
        """Assemble the summary and the newest messages that fit into the token budget."""
        budget = self.max_tokens if max_tokens is None else max_tokens
        conversation = await self._store.get_conversation(chat_id)
        if conversation is None:
            return MemoryContext()
        messages = await self._store.list_recent_messages(chat_id, self.max_recent_messages)
        context = select_memory(conversation.summary, messages, budget)
        self.logging.debug(
            "Memory context for %s: %d token(s), %d message(s), summary=%s.",
            chat_id, context.total_tokens, len(context.messages), bool(context.summary),
        )
        return context
