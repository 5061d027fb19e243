"""Shared fixtures: an in-memory state store, backend fakes and the services wired on top."""

import logging

import pytest
import pytest_asyncio

from shared.clients.transport.telegram.TransportClientTelegram import TransportClientTelegram
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import ColorLogger
from shared.store.StateStore import StateStore
from services.chat.ChatService import ChatService
from services.conversation.ConversationService import ConversationService
from services.doc_sync.ChangeClassifier import ChangeClassifier
from services.doc_sync.ChunkLifecycle import ChunkLifecycle
from services.doc_sync.SyncService import SyncService
from services.rag.AnswerService import AnswerService
from services.rag.RetrievalService import RetrievalService
from tests.fakes import FakeContentClient, FakeEmbedClient, FakeLLMClient, FakeRAGClient, FakeTransportClient


##########################################
############### FIXTURES #################
##########################################

@pytest.fixture
def helper_config(monkeypatch) -> HelperConfig:
    for key in ("DEFAULT_LANGUAGE", "RAG_MIN_SCORE", "RAG_TOP_K", "MEMORY_MAX_TOKENS", "SYNC_CONCURRENCY"):
        monkeypatch.delenv(key, raising=False)
    return HelperConfig(logger=ColorLogger(logging.getLogger("tests")))


@pytest_asyncio.fixture
async def store(helper_config):
    state_store = StateStore(helper_config=helper_config, database_url="sqlite+aiosqlite:///:memory:")
    await state_store.boot()
    yield state_store
    await state_store.close()


@pytest.fixture
def content_client() -> FakeContentClient:
    return FakeContentClient()


@pytest.fixture
def embed_client() -> FakeEmbedClient:
    return FakeEmbedClient()


@pytest.fixture
def rag_client() -> FakeRAGClient:
    return FakeRAGClient()


@pytest.fixture
def llm_client() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture
def transport_client() -> FakeTransportClient:
    return FakeTransportClient()


@pytest.fixture
def classifier(helper_config) -> ChangeClassifier:
    return ChangeClassifier(helper_config=helper_config)


@pytest.fixture
def lifecycle(helper_config, rag_client, store) -> ChunkLifecycle:
    return ChunkLifecycle(helper_config=helper_config, rag_client=rag_client, store=store)


@pytest.fixture
def sync_service(helper_config, content_client, embed_client, lifecycle, store, classifier) -> SyncService:
    return SyncService(
        helper_config=helper_config,
        content_client=content_client,
        embed_client=embed_client,
        lifecycle=lifecycle,
        store=store,
        classifier=classifier,
    )


@pytest.fixture
def retrieval_service(helper_config, embed_client, rag_client) -> RetrievalService:
    return RetrievalService(helper_config=helper_config, embed_client=embed_client, rag_client=rag_client)


@pytest.fixture
def conversation_service(helper_config, store, llm_client) -> ConversationService:
    return ConversationService(helper_config=helper_config, store=store, llm_client=llm_client)


@pytest.fixture
def answer_service(helper_config, conversation_service, retrieval_service, llm_client) -> AnswerService:
    return AnswerService(
        helper_config=helper_config,
        conversation_service=conversation_service,
        retrieval_service=retrieval_service,
        llm_client=llm_client,
    )


@pytest.fixture
def chat_service(helper_config, transport_client, conversation_service, answer_service) -> ChatService:
    return ChatService(
        helper_config=helper_config,
        transport_client=transport_client,
        conversation_service=conversation_service,
        answer_service=answer_service,
    )


@pytest.fixture
def telegram_client(helper_config, monkeypatch) -> TransportClientTelegram:
    monkeypatch.setenv("TRANSPORT_TELEGRAM_BOT_TOKEN", "123:abc")
    monkeypatch.setenv("TRANSPORT_TELEGRAM_SECRET_TOKEN", "s3cret")
    return TransportClientTelegram(helper_config=helper_config)
