import asyncio
from datetime import timedelta

import pytest

from services.conversation.ConversationService import select_memory
from shared.helper.text_utils import estimate_tokens
from shared.models.conversation import Message, MessageRole
from shared.store.database import utcnow

CHAT = "chat-1"


def message(text: str, role: MessageRole = MessageRole.USER) -> Message:
    return Message(chat_id=CHAT, role=role, text=text)


##########################################
############ MEMORY SELECTION ############
##########################################

def test_memory_takes_newest_messages_first():
    messages = [message(f"{i}" * 40) for i in range(5)]  # 10 tokens each

    context = select_memory(None, messages, budget=25)

    assert [m.text for m in context.messages] == ["3" * 40, "4" * 40]
    assert context.total_tokens == 20


def test_memory_counts_summary_first():
    messages = [message("x" * 40), message("y" * 40)]

    context = select_memory("s" * 40, messages, budget=25)

    assert context.summary == "s" * 40
    assert [m.text for m in context.messages] == ["y" * 40]
    assert context.total_tokens == 20


def test_memory_stops_at_the_first_message_that_does_not_fit():
    messages = [message("a" * 40), message("b" * 200), message("c" * 40)]

    context = select_memory(None, messages, budget=30)

    # the oldest message would fit, but it lies behind the boundary
    assert [m.text for m in context.messages] == ["c" * 40]


def test_oversized_summary_is_cut_to_the_budget():
    context = select_memory("s" * 400, [message("hello")], budget=10)

    assert context.total_tokens <= 10
    assert len(context.summary) == 40
    assert context.messages == []


def test_memory_grows_monotonically_with_the_budget():
    messages = [message("m" * (10 + 7 * i)) for i in range(12)]
    previous = -1

    for budget in range(0, 200, 5):
        context = select_memory("summary of the chat", messages, budget)
        assert context.total_tokens <= budget
        assert len(context.messages) >= previous
        previous = len(context.messages)
        expected = sum(estimate_tokens(m.text) for m in context.messages)
        if context.summary:
            expected += estimate_tokens(context.summary)
        assert context.total_tokens == expected


##########################################
############### SESSIONS #################
##########################################

@pytest.mark.asyncio
async def test_session_is_created_with_default_language(conversation_service):
    conversation = await conversation_service.do_ensure_session(CHAT)

    assert conversation.language == "ko"
    assert conversation.message_count == 0


@pytest.mark.asyncio
async def test_reset_clears_history_but_keeps_session(conversation_service, store):
    await conversation_service.do_ensure_session(CHAT, "en")
    for text in ("one", "two", "three"):
        await conversation_service.do_append_message(CHAT, MessageRole.USER, text)
    await store.update_conversation(CHAT, summary="old summary")

    conversation = await conversation_service.do_reset(CHAT)

    assert conversation.summary is None
    assert (conversation.message_count, conversation.messages_since_summary) == (0, 0)
    assert conversation.language == "en"
    assert await store.count_messages(CHAT) == 0
    memory = await conversation_service.do_build_memory_context(CHAT)
    assert memory.messages == [] and memory.summary is None


@pytest.mark.asyncio
async def test_language_handling(conversation_service):
    with pytest.raises(ValueError):
        await conversation_service.do_set_language(CHAT, "fr")

    assert (await conversation_service.do_set_language(CHAT, "en")).language == "en"
    assert await conversation_service.do_detect_language(CHAT, "연차 휴가는 며칠인가요?") == "ko"
    assert (await conversation_service.do_ensure_session(CHAT)).language == "ko"


@pytest.mark.asyncio
async def test_session_activity_window(conversation_service):
    conversation = await conversation_service.do_ensure_session(CHAT)

    assert conversation_service.is_session_active(conversation) is True
    later = conversation.last_activity + timedelta(hours=25)
    assert conversation_service.is_session_active(conversation, now=later) is False
    assert conversation_service.is_session_active(None) is False


@pytest.mark.asyncio
async def test_stats(conversation_service):
    assert await conversation_service.do_get_stats(CHAT) is None

    await conversation_service.do_ensure_session(CHAT)
    await conversation_service.do_append_message(CHAT, MessageRole.USER, "hello")
    stats = await conversation_service.do_get_stats(CHAT)

    assert stats.message_count == 1
    assert stats.has_summary is False
    assert stats.is_active is True


##########################################
############# ROLLING SUMMARY ############
##########################################

@pytest.mark.asyncio
async def test_summary_after_message_count_trigger(conversation_service, llm_client, store):
    llm_client.reply = "User asks about annual leave."
    await conversation_service.do_ensure_session(CHAT, "en")

    for i in range(9):
        await conversation_service.do_append_message(CHAT, MessageRole.USER, f"question {i}")
    assert llm_client.prompts == []

    await conversation_service.do_append_message(CHAT, MessageRole.ASSISTANT, "answer")

    conversation = await store.get_conversation(CHAT)
    assert len(llm_client.prompts) == 1
    assert conversation.summary == "User asks about annual leave."
    assert conversation.messages_since_summary == 0
    assert conversation.message_count == 10


@pytest.mark.asyncio
async def test_summary_after_character_trigger(conversation_service, llm_client, store):
    await conversation_service.do_ensure_session(CHAT, "en")

    await conversation_service.do_append_message(CHAT, MessageRole.USER, "a" * 2100)
    assert llm_client.prompts == []
    await conversation_service.do_append_message(CHAT, MessageRole.ASSISTANT, "b" * 2100)

    assert len(llm_client.prompts) == 1
    assert (await store.get_conversation(CHAT)).messages_since_summary == 0


@pytest.mark.asyncio
async def test_failed_summary_keeps_the_previous_one(conversation_service, llm_client, store):
    llm_client.reply = "old summary"
    await conversation_service.do_ensure_session(CHAT, "en")
    for i in range(10):
        await conversation_service.do_append_message(CHAT, MessageRole.USER, f"q{i}")

    llm_client.fail = True
    for i in range(10):
        await conversation_service.do_append_message(CHAT, MessageRole.USER, f"r{i}")

    conversation = await store.get_conversation(CHAT)
    assert conversation.summary == "old summary"
    assert conversation.messages_since_summary == 10
    assert conversation.message_count == 20


@pytest.mark.asyncio
async def test_new_summary_replaces_the_previous_one(conversation_service, llm_client, store):
    await conversation_service.do_ensure_session(CHAT, "en")
    await store.update_conversation(CHAT, summary="earlier facts about travel")
    for i in range(10):
        await conversation_service.do_append_message(CHAT, MessageRole.USER, f"how many leave days, take {i}?")

    conversation = await store.get_conversation(CHAT)

    assert conversation.summary == llm_client.reply
    assert "earlier facts about travel" not in llm_client.prompts[-1]
    assert "User: how many leave days, take 9?" in llm_client.prompts[-1]


@pytest.mark.asyncio
async def test_force_summary_of_unknown_chat(conversation_service):
    assert await conversation_service.do_force_summary("nobody") is None


@pytest.mark.asyncio
async def test_memory_context_uses_stored_summary(conversation_service, store):
    await conversation_service.do_ensure_session(CHAT, "en")
    await store.update_conversation(CHAT, summary="s" * 40)
    await conversation_service.do_append_message(CHAT, MessageRole.USER, "x" * 40)
    await conversation_service.do_append_message(CHAT, MessageRole.ASSISTANT, "y" * 40)

    memory = await conversation_service.do_build_memory_context(CHAT, max_tokens=25)

    assert memory.summary == "s" * 40
    assert [m.text for m in memory.messages] == ["y" * 40]
    assert memory.total_tokens == 20


@pytest.mark.asyncio
async def test_turns_of_one_chat_are_serialised(conversation_service):
    order = []

    async def turn(chat_id: str, label: str):
        async with conversation_service.lock(chat_id):
            order.append(f"{label}-start")
            await asyncio.sleep(0)
            order.append(f"{label}-end")

    await asyncio.gather(turn("a", "1"), turn("a", "2"), turn("b", "3"))

    assert order.index("1-end") < order.index("2-start")
    assert order.index("3-start") < order.index("1-end")
    assert conversation_service.active_chats == 0
