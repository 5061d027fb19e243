import json

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI

from server.routers.HealthRouter import router as health_router
from server.routers.QueryRouter import router as query_router
from server.routers.SyncRouter import router as sync_router
from server.routers.TelegramRouter import router as telegram_router
from server.routers.WebhookRouter import router as webhook_router
from services.AppContext import AppContext
from services.rag.prompts import HELP_MESSAGE
from shared.models.sync import SyncStatus, SyncTrigger
from tests.fakes import make_hit, sign

API_KEY = {"X-Api-Key": "test-key"}
LEAVE = "policies/hr/leave.md"


@pytest.fixture
def app_context(
    monkeypatch, helper_config, store, content_client, embed_client, llm_client, rag_client, telegram_client,
    classifier, sync_service, retrieval_service, conversation_service, answer_service, chat_service,
) -> AppContext:
    monkeypatch.setenv("API_SERVER_API_KEY", "test-key")
    content_client.files = {LEAVE: "# Annual Leave\n\nEmployees receive 15 days of annual leave per year."}
    return AppContext(
        helper_config=helper_config,
        store=store,
        content_client=content_client,
        embed_client=embed_client,
        llm_client=llm_client,
        rag_client=rag_client,
        # parses and authenticates updates, replies go through the chat service's fake transport
        transport_client=telegram_client,
        classifier=classifier,
        sync_service=sync_service,
        retrieval_service=retrieval_service,
        conversation_service=conversation_service,
        answer_service=answer_service,
        chat_service=chat_service,
    )


@pytest_asyncio.fixture
async def client(app_context):
    app = FastAPI()
    for router in (health_router, webhook_router, sync_router, query_router, telegram_router):
        app.include_router(router)
    app.state.context = app_context
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as http_client:
        yield http_client


def push_payload(branch: str = "main", added: list[str] | None = None) -> bytes:
    return json.dumps({
        "ref": f"refs/heads/{branch}",
        "after": "9" * 40,
        "commits": [{"added": added if added is not None else [LEAVE], "modified": [], "removed": []}],
    }).encode("utf-8")


async def post_push(client: httpx.AsyncClient, body: bytes, event: str = "push", signature: str | None = None) -> httpx.Response:
    return await client.post(
        "/webhook/github",
        content=body,
        headers={"X-GitHub-Event": event, "X-Hub-Signature-256": signature or sign(body)},
    )


##########################################
################ WEBHOOK #################
##########################################

@pytest.mark.asyncio
async def test_push_schedules_incremental_sync(client, sync_service, rag_client):
    response = await post_push(client, push_payload())

    assert response.status_code == 200
    assert response.json()["status"] == "accepted"
    assert response.json()["changes"] == 1
    jobs = await sync_service.get_recent_jobs()
    assert [(job.trigger, job.status) for job in jobs] == [(SyncTrigger.INCREMENTAL, SyncStatus.COMPLETED)]
    assert len(rag_client.points) == 1


@pytest.mark.asyncio
async def test_push_with_bad_signature_is_rejected(client, sync_service):
    response = await post_push(client, push_payload(), signature="sha256=" + "0" * 64)

    assert response.status_code == 401
    assert await sync_service.get_recent_jobs() == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body, event",
    [
        (push_payload(), "ping"),
        (push_payload(branch="feature/draft"), "push"),
        (push_payload(added=["README.md"]), "push"),
    ],
)
async def test_push_without_work_is_ignored(client, sync_service, body, event):
    response = await post_push(client, body, event=event)

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"
    assert await sync_service.get_recent_jobs() == []


@pytest.mark.asyncio
async def test_malformed_push_is_a_bad_request(client):
    response = await post_push(client, b"{not json")
    assert response.status_code == 400

    response = await post_push(client, json.dumps({"ref": "refs/heads/main"}).encode("utf-8"))
    assert response.status_code == 400


##########################################
################# SYNC ###################
##########################################

@pytest.mark.asyncio
async def test_full_sync_and_status(client):
    response = await client.post("/sync/full", headers=API_KEY)
    assert response.status_code == 200
    assert response.json()["status"] == "accepted"

    status = await client.get("/sync/status", headers=API_KEY)

    assert status.status_code == 200
    assert status.json()["total"] == 1
    job = status.json()["jobs"][0]
    assert job["trigger"] == "full"
    assert job["status"] == "completed"
    assert job["files_processed"] == 1


@pytest.mark.asyncio
async def test_sync_requires_api_key(client):
    response = await client.post("/sync/full", headers={"X-Api-Key": "wrong"})

    assert response.status_code == 401


##########################################
################## RAG ###################
##########################################

@pytest.mark.asyncio
async def test_search_returns_evidence(client, rag_client):
    rag_client.search_hits = [make_hit("p1", 0.91, "Annual Leave", "Fifteen days of leave", language="en")]

    response = await client.post("/rag/search", json={"query": "leave days", "lang": "en"}, headers=API_KEY)

    body = response.json()
    assert response.status_code == 200
    assert body["has_evidence"] is True
    assert body["total"] == 1
    assert body["results"][0]["title"] == "Annual Leave"


@pytest.mark.asyncio
async def test_search_backend_failure_is_bad_gateway(client, embed_client):
    embed_client.fail = True

    response = await client.post("/rag/search", json={"query": "leave days"}, headers=API_KEY)

    assert response.status_code == 502
    assert response.json()["detail"]["kind"] == "embedding"


@pytest.mark.asyncio
async def test_search_validates_input(client):
    response = await client.post("/rag/search", json={"query": "", "k": 0}, headers=API_KEY)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_query_without_evidence(client, llm_client):
    response = await client.post(
        "/rag/query",
        json={"question": "How many leave days do I get?"},
        headers={**API_KEY, "X-Request-ID": "req-123"},
    )

    body = response.json()
    assert response.status_code == 200
    assert body["has_evidence"] is False
    assert body["lang"] == "en"
    assert body["correlation_id"] == "req-123"
    assert body["chat_id"] == "api_req-123"
    assert llm_client.prompts == []


@pytest.mark.asyncio
async def test_query_with_evidence_and_chat_id(client, rag_client, store):
    rag_client.search_hits = [make_hit("p1", 0.91, "Annual Leave", "Fifteen days of leave", language="en")]

    response = await client.post(
        "/rag/query",
        json={"question": "How many leave days do I get?", "chat_id": "web-1"},
        headers=API_KEY,
    )

    body = response.json()
    assert body["has_evidence"] is True
    assert body["chat_id"] == "web-1"
    assert body["sources"][0]["title"] == "Annual Leave"
    assert await store.count_messages("web-1") == 2


##########################################
################ TELEGRAM ################
##########################################

@pytest.mark.asyncio
async def test_telegram_update_is_answered(client, transport_client):
    response = await client.post(
        "/telegram/webhook",
        json={"message": {"chat": {"id": 42}, "text": "/help"}},
        headers={"X-Telegram-Bot-Api-Secret-Token": "s3cret"},
    )

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert transport_client.sent == [("42", HELP_MESSAGE["ko"])]


@pytest.mark.asyncio
async def test_telegram_rejects_wrong_secret(client, transport_client):
    response = await client.post(
        "/telegram/webhook",
        json={"message": {"chat": {"id": 42}, "text": "/help"}},
        headers={"X-Telegram-Bot-Api-Secret-Token": "nope"},
    )

    assert response.status_code == 401
    assert transport_client.sent == []


@pytest.mark.asyncio
async def test_telegram_ignores_non_text_updates(client, transport_client):
    response = await client.post(
        "/telegram/webhook",
        json={"message": {"chat": {"id": 42}, "sticker": {"emoji": "👍"}}},
        headers={"X-Telegram-Bot-Api-Secret-Token": "s3cret"},
    )

    assert response.json() == {"ok": True, "message": "Ignored non-text update"}
    assert transport_client.sent == []


@pytest.mark.asyncio
async def test_conversation_admin_endpoints(client, conversation_service):
    assert (await client.get("/telegram/conversations/42/stats", headers=API_KEY)).status_code == 404
    assert (await client.post("/telegram/conversations/42/summary", headers=API_KEY)).status_code == 404

    await client.post(
        "/telegram/webhook",
        json={"message": {"chat": {"id": 42}, "text": "How many leave days do I get?"}},
        headers={"X-Telegram-Bot-Api-Secret-Token": "s3cret"},
    )

    stats = await client.get("/telegram/conversations/42/stats", headers=API_KEY)
    memory = await client.get("/telegram/conversations/42/memory", headers=API_KEY)
    summary = await client.post("/telegram/conversations/42/summary", headers=API_KEY)

    assert stats.json()["message_count"] == 2
    assert stats.json()["language"] == "en"
    assert len(memory.json()["messages"]) == 2
    assert summary.status_code == 200
    assert summary.json()["summary"] == "Annual leave is 15 days."


##########################################
################# HEALTH #################
##########################################

@pytest.mark.asyncio
async def test_health_reports_required_backends(client, llm_client):
    healthy = await client.get("/health")

    assert healthy.status_code == 200
    assert healthy.json()["services"]["rag"] is True
    # the telegram client is never booted in tests
    assert healthy.json()["services"]["transport"] is False

    llm_client.healthy = False
    unhealthy = await client.get("/health")

    assert unhealthy.status_code == 503
    assert unhealthy.json()["status"] == "unhealthy"
