import pytest

from services.rag.AnswerService import collect_sources, format_sources
from services.rag.RetrievalService import RetrievalService
from services.rag.prompts import NO_EVIDENCE_MESSAGE, SOURCES_HEADER, build_answer_prompt
from shared.models.context import RequestContext
from shared.models.conversation import Message, MessageRole
from shared.models.errors import ModelError
from shared.models.search import RetrievedChunk
from tests.fakes import make_hit

CHAT = "chat-7"
QUESTION = "How many days of annual leave do employees get?"


@pytest.fixture
def ctx() -> RequestContext:
    return RequestContext(chat_id=CHAT, correlation_id="corr-1")


@pytest.fixture
def evidence_hits(rag_client):
    rag_client.search_hits = [
        make_hit("p1", 0.95, "Annual Leave", "Employees receive fifteen days of annual leave", language="en", document_id="doc_leave"),
        make_hit("p2", 0.93, "Annual Leave", "Unused leave days expire at the end of March", language="en", document_id="doc_leave"),
        make_hit("p3", 0.90, "Holidays", "Public holidays are not counted as leave", language="en"),
        make_hit("p4", 0.88, "Sick Leave", "Sick leave requires a medical certificate", language="en"),
        make_hit("p5", 0.86, "Parental Leave", "Parental leave lasts up to one year", language="en"),
    ]
    return rag_client.search_hits


@pytest.mark.asyncio
async def test_no_evidence_answers_without_the_model(answer_service, llm_client, store, ctx):
    result = await answer_service.do_answer(QUESTION, ctx)

    assert result.has_evidence is False
    assert result.language == "en"
    assert result.answer == NO_EVIDENCE_MESSAGE["en"]
    assert result.sources == []
    assert llm_client.prompts == []

    messages = await store.list_recent_messages(CHAT, 10)
    assert [m.role for m in messages] == [MessageRole.USER, MessageRole.ASSISTANT]
    assert messages[0].text == QUESTION
    assert messages[1].metadata["has_evidence"] is False


@pytest.mark.asyncio
async def test_korean_question_gets_korean_refusal(answer_service, ctx):
    result = await answer_service.do_answer("연차 휴가는 며칠인가요?", ctx)

    assert result.language == "ko"
    assert result.answer == "규정에 해당 내용이 없습니다."


@pytest.mark.asyncio
async def test_grounded_answer_cites_up_to_three_sources(answer_service, llm_client, store, ctx, evidence_hits):
    result = await answer_service.do_answer(QUESTION, ctx)

    assert result.has_evidence is True
    assert result.correlation_id == "corr-1"
    assert [s.title for s in result.sources] == ["Annual Leave", "Holidays", "Sick Leave"]
    assert result.answer.startswith(llm_client.reply)
    assert SOURCES_HEADER in result.answer

    prompt = llm_client.prompts[0]
    assert QUESTION in prompt
    assert "Employees receive fifteen days of annual leave" in prompt
    assert "[Regulation evidence]" in prompt

    messages = await store.list_recent_messages(CHAT, 10)
    assert [m.role for m in messages] == [MessageRole.USER, MessageRole.ASSISTANT]
    assert messages[1].text == result.answer
    assert len(messages[1].metadata["sources"]) == 3


@pytest.mark.asyncio
async def test_previous_turns_reach_the_prompt(answer_service, llm_client, ctx, evidence_hits):
    await answer_service.do_answer(QUESTION, ctx)

    await answer_service.do_answer("And what about sick leave?", ctx)

    second_prompt = llm_client.prompts[-1]
    assert "[Recent conversation]" in second_prompt
    assert f"User: {QUESTION}" in second_prompt
    assert "Question: And what about sick leave?" in second_prompt


@pytest.mark.asyncio
async def test_forced_language_skips_detection(answer_service, ctx):
    result = await answer_service.do_answer(QUESTION, ctx, language="ko")

    assert result.language == "ko"
    assert result.answer == NO_EVIDENCE_MESSAGE["ko"]


@pytest.mark.asyncio
async def test_model_failure_is_tagged_and_question_kept(answer_service, llm_client, store, ctx, evidence_hits):
    llm_client.fail = True

    with pytest.raises(ModelError):
        await answer_service.do_answer(QUESTION, ctx)

    messages = await store.list_recent_messages(CHAT, 10)
    assert [m.role for m in messages] == [MessageRole.USER]


def test_sources_are_deduplicated_by_document():
    chunks = [
        RetrievalService.to_chunk(make_hit("a1", 0.9, "Leave", "t", document_id="doc_a")),
        RetrievalService.to_chunk(make_hit("a2", 0.9, "Leave", "t", document_id="doc_a")),
        RetrievalService.to_chunk(make_hit("b1", 0.9, "Travel", "t", document_id="doc_b")),
    ]

    sources = collect_sources(chunks)

    assert [s.title for s in sources] == ["Leave", "Travel"]
    assert format_sources(sources).splitlines() == [
        SOURCES_HEADER,
        f"• Leave ({sources[0].url})",
        f"• Travel ({sources[1].url})",
    ]


@pytest.mark.asyncio
async def test_one_off_chats_leave_no_locks_behind(answer_service, conversation_service):
    for i in range(50):
        await answer_service.do_answer(QUESTION, RequestContext(chat_id=f"api_{i}", correlation_id=f"corr-{i}"))

    assert conversation_service.active_chats == 0


def test_prompt_keeps_the_last_five_turns():
    history = []
    for turn in range(6):
        history.append(Message(chat_id=CHAT, role=MessageRole.USER, text=f"question {turn}"))
        history.append(Message(chat_id=CHAT, role=MessageRole.ASSISTANT, text=f"answer {turn}"))
    chunk = RetrievedChunk(point_id="p1", score=0.9, document_id="doc", path="policies/leave.md", title="Leave", text="Fifteen days.")

    prompt = build_answer_prompt(QUESTION, [chunk], "en", recent_messages=history)

    assert "question 0" not in prompt and "answer 0" not in prompt
    assert "User: question 1" in prompt
    assert "Assistant: answer 5" in prompt
