import logging

import pytest

from services.AppContext import PAYLOAD_INDEXES, AppContext
from services.doc_sync import sync_runner
from shared.logging.logging_setup import ColorLogger

LEAVE = "policies/hr/leave.md"


@pytest.fixture
def app_context(
    helper_config, store, content_client, embed_client, llm_client, rag_client, transport_client,
    classifier, sync_service, retrieval_service, conversation_service, answer_service, chat_service,
) -> AppContext:
    return AppContext(
        helper_config=helper_config,
        store=store,
        content_client=content_client,
        embed_client=embed_client,
        llm_client=llm_client,
        rag_client=rag_client,
        transport_client=transport_client,
        classifier=classifier,
        sync_service=sync_service,
        retrieval_service=retrieval_service,
        conversation_service=conversation_service,
        answer_service=answer_service,
        chat_service=chat_service,
    )


@pytest.mark.asyncio
async def test_missing_collection_is_created_with_indexes(app_context, rag_client):
    rag_client.collection_exists = False

    await app_context.ensure_collection()

    assert rag_client.collection_config == {"size": 3, "distance": "Cosine"}
    assert rag_client.payload_indexes == PAYLOAD_INDEXES


@pytest.mark.asyncio
async def test_existing_collection_is_left_alone(app_context, rag_client):
    await app_context.ensure_collection()

    assert rag_client.collection_config is None
    assert rag_client.payload_indexes == {}


@pytest.mark.asyncio
async def test_unreachable_model_is_fatal(app_context, llm_client):
    llm_client.healthy = False

    with pytest.raises(Exception, match="llm"):
        await app_context.check_connections()


@pytest.mark.asyncio
async def test_unreachable_chat_and_content_only_warn(app_context, transport_client, content_client):
    transport_client.healthy = False
    content_client.healthy = False

    await app_context.check_connections()


##########################################
############## SYNC RUNNER ###############
##########################################

def test_runner_arguments():
    defaults = sync_runner.parse_args([])
    custom = sync_runner.parse_args(["--branch", "release", "--force"])

    assert (defaults.branch, defaults.force) == (None, False)
    assert (custom.branch, custom.force) == ("release", True)


@pytest.fixture
def runner(monkeypatch, app_context):
    monkeypatch.setattr(sync_runner, "setup_logging", lambda: ColorLogger(logging.getLogger("tests.runner")))
    monkeypatch.setattr(sync_runner, "build_app_context", lambda config: app_context)
    return sync_runner


@pytest.mark.asyncio
async def test_runner_indexes_the_corpus(runner, content_client, rag_client):
    content_client.files = {LEAVE: "# Annual Leave\n\nEmployees receive 15 days of annual leave per year."}
    rag_client.collection_exists = False

    assert await runner.main([]) == 0
    assert rag_client.collection_config is not None
    assert len(rag_client.points) == 1


@pytest.mark.asyncio
async def test_runner_reports_failed_files(runner, content_client):
    content_client.files = {LEAVE: "# Annual Leave\n\nFifteen days."}
    content_client.failing_paths = {LEAVE}

    assert await runner.main([]) == 2


@pytest.mark.asyncio
async def test_runner_aborts_when_index_is_unreachable(runner, rag_client, embed_client):
    rag_client.healthy = False

    assert await runner.main(["--force"]) == 1
    assert embed_client.calls == []
