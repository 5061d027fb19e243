"""Explicit application context.

Built once at startup by the API server (or the sync runner) and handed to
every consumer; components receive their collaborators through their
constructors and never look them up globally.
"""

from dataclasses import dataclass

import httpx

from shared.clients.ClientInterface import ClientInterface
from shared.clients.ClientManager import ClientManager
from shared.clients.content.ContentClientInterface import ContentClientInterface
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.transport.TransportClientInterface import TransportClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.store.StateStore import StateStore
from services.chat.ChatService import ChatService
from services.conversation.ConversationService import ConversationService
from services.doc_sync.ChangeClassifier import ChangeClassifier
from services.doc_sync.ChunkLifecycle import ChunkLifecycle
from services.doc_sync.SyncService import SyncService
from services.rag.AnswerService import AnswerService
from services.rag.RetrievalService import RetrievalService

# payload fields filtered on by sync and retrieval
PAYLOAD_INDEXES: dict[str, str] = {
    "document_id": "keyword",
    "path": "keyword",
    "language": "keyword",
    "revision": "keyword",
    "seq": "integer",
}


@dataclass
class AppContext:
    helper_config: HelperConfig
    store: StateStore
    content_client: ContentClientInterface
    embed_client: EmbedClientInterface
    llm_client: LLMClientInterface
    rag_client: RAGClientInterface
    transport_client: TransportClientInterface
    classifier: ChangeClassifier
    sync_service: SyncService
    retrieval_service: RetrievalService
    conversation_service: ConversationService
    answer_service: AnswerService
    chat_service: ChatService

    @property
    def clients(self) -> list[ClientInterface]:
        return [self.content_client, self.embed_client, self.llm_client, self.rag_client, self.transport_client]

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def boot(self) -> None:
        logging = self.helper_config.get_logger()
        logging.info("Booting state store and all clients...")
        await self.store.boot()
        for client in self.clients:
            await client.boot()
        logging.info("All clients booted successfully.")

    async def close(self) -> None:
        logging = self.helper_config.get_logger()
        logging.info("Shutting down, closing all clients...")
        for client in self.clients:
            await client.close()
        await self.store.close()
        logging.info("All clients closed.")

    async def ensure_collection(self) -> None:
        """Create the vector collection and its payload indexes if the collection is missing."""
        logging = self.helper_config.get_logger()
        if await self.rag_client.do_existence_check():
            return
        vector_size, distance = await self.embed_client.do_fetch_embedding_vector_size()
        await self.rag_client.do_create_collection(vector_size=vector_size, distance=distance)
        for field_name, field_schema in PAYLOAD_INDEXES.items():
            await self.rag_client.do_create_payload_index(field_name, field_schema)
        logging.info("Created vector collection (size %d, %s) with %d payload index(es).", vector_size, distance, len(PAYLOAD_INDEXES))

    async def check_connections(self) -> None:
        """Check connectivity to all configured backends on startup.

        Content and transport failures are non-fatal (sync or chat replies will
        fail later, but the server stays up). Vector index, embedding and model
        failures are fatal: questions cannot be answered without them.

        Raises:
            Exception: If a critical backend is not reachable.
        """
        logging = self.helper_config.get_logger()
        for client in [self.content_client, self.transport_client]:
            result: httpx.Response = await client.do_healthcheck()
            if not result.is_success:
                logging.warning(
                    "%s client '%s' is not reachable (status %d).",
                    client.get_client_type(), client.get_engine_name(), result.status_code,
                )

        for client in [self.rag_client, self.embed_client, self.llm_client]:
            result = await client.do_healthcheck()
            if not result.is_success:
                raise Exception(
                    f"{client.get_client_type()} client '{client.get_engine_name()}' is not reachable "
                    f"(status {result.status_code}). Cannot serve questions."
                )


def build_app_context(helper_config: HelperConfig, store: StateStore | None = None) -> AppContext:
    """Instantiate clients from configuration and wire all services together."""
    store = store or StateStore(helper_config=helper_config)
    content_client = ClientManager(helper_config, "content", default_engine="github").get_client()
    embed_client = ClientManager(helper_config, "embed").get_client()
    llm_client = ClientManager(helper_config, "llm").get_client()
    rag_client = ClientManager(helper_config, "rag", default_engine="qdrant").get_client()
    transport_client = ClientManager(helper_config, "transport", default_engine="telegram").get_client()

    classifier = ChangeClassifier(helper_config=helper_config)
    lifecycle = ChunkLifecycle(helper_config=helper_config, rag_client=rag_client, store=store)
    sync_service = SyncService(
        helper_config=helper_config,
        content_client=content_client,
        embed_client=embed_client,
        lifecycle=lifecycle,
        store=store,
        classifier=classifier,
    )
    retrieval_service = RetrievalService(helper_config=helper_config, embed_client=embed_client, rag_client=rag_client)
    conversation_service = ConversationService(helper_config=helper_config, store=store, llm_client=llm_client)
    answer_service = AnswerService(
        helper_config=helper_config,
        conversation_service=conversation_service,
        retrieval_service=retrieval_service,
        llm_client=llm_client,
    )
    chat_service = ChatService(
        helper_config=helper_config,
        transport_client=transport_client,
        conversation_service=conversation_service,
        answer_service=answer_service,
    )
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
