"""Grounded answers for a chat turn.

One turn runs under the chat's lock and always in this order: ensure the
session, detect the language, build the memory context, persist the user
message, retrieve, gate on evidence, prompt the model, attach sources,
persist the assistant message.
"""

from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.context import RequestContext
from shared.models.conversation import MemoryContext, MessageRole
from shared.models.errors import ModelError
from shared.models.search import AnswerResult, RetrievalResult, RetrievedChunk, SourceRef
from services.conversation.ConversationService import ConversationService
from services.rag.RetrievalService import RetrievalService
from services.rag.prompts import NO_EVIDENCE_MESSAGE, SOURCES_HEADER, build_answer_prompt, localize

MAX_SOURCES = 3


def collect_sources(evidence: list[RetrievedChunk], limit: int = MAX_SOURCES) -> list[SourceRef]:
    """Deduplicate evidence by document and keep the first ``limit`` sources."""
    sources: list[SourceRef] = []
    seen: set[str] = set()
    for chunk in evidence:
        key = chunk.document_id or chunk.path
        if key in seen:
            continue
        seen.add(key)
        sources.append(SourceRef(title=chunk.title or chunk.path, path=chunk.path, url=chunk.source_url))
        if len(sources) >= limit:
            break
    return sources


def format_sources(sources: list[SourceRef]) -> str:
    lines = [SOURCES_HEADER]
    for source in sources:
        if source.url:
            lines.append(f"• {source.title} ({source.url})")
        else:
            lines.append(f"• {source.title}")
    return "\n".join(lines)


class AnswerService:
    def __init__(
        self,
        helper_config: HelperConfig,
        conversation_service: ConversationService,
        retrieval_service: RetrievalService,
        llm_client: LLMClientInterface,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._conversations = conversation_service
        self._retrieval = retrieval_service
        self._llm_client = llm_client

    async def do_answer(self, question: str, ctx: RequestContext, language: str | None = None) -> AnswerResult:
        """Answer a question from the indexed corpus, with conversation memory.

        Args:
            question (str): The user question.
            ctx (RequestContext): Chat id and correlation id of this call.
            language (str | None): Forces the answer language instead of detecting it.

        Returns:
            AnswerResult: The final answer, its sources and the gate outcome.

        Raises:
            EmbeddingError, VectorIndexError: If retrieval fails.
            ModelError: If the answer model call fails.
            StoreError: If the session or a message cannot be persisted.
        """
        async with self._conversations.lock(ctx.chat_id):
            return await self._answer_turn(question, ctx, language)

    async def _answer_turn(self, question: str, ctx: RequestContext, language: str | None) -> AnswerResult:
        chat_id = ctx.chat_id
        await self._conversations.do_ensure_session(chat_id, language)
        if language is None:
            language = await self._conversations.do_detect_language(chat_id, question)
        memory = await self._conversations.do_build_memory_context(chat_id)
        await self._conversations.do_append_message(chat_id, MessageRole.USER, question)
        self.logging.info(
            "[%s] Answering for chat %s (lang=%s, memory %d token(s)).",
            ctx.correlation_id, chat_id, language, memory.total_tokens,
        )

        retrieval = await self._retrieval.do_retrieve(question, language=language)
        if not retrieval.has_evidence:
            self.logging.info(
                "[%s] No evidence for chat %s (top score %.3f < %.2f).",
                ctx.correlation_id, chat_id, retrieval.top_score, retrieval.min_score,
            )
            answer = localize(NO_EVIDENCE_MESSAGE, language)
            await self._conversations.do_append_message(
                chat_id, MessageRole.ASSISTANT, answer,
                metadata={"has_evidence": False, "top_score": retrieval.top_score},
            )
            return AnswerResult(
                chat_id=chat_id,
                correlation_id=ctx.correlation_id,
                language=language,
                answer=answer,
                has_evidence=False,
                top_score=retrieval.top_score,
            )

        answer, sources = await self._generate(question, retrieval, memory, language, ctx)
        await self._conversations.do_append_message(
            chat_id, MessageRole.ASSISTANT, answer,
            metadata={
                "has_evidence": True,
                "top_score": retrieval.top_score,
                "sources": [source.model_dump() for source in sources],
            },
        )
        return AnswerResult(
            chat_id=chat_id,
            correlation_id=ctx.correlation_id,
            language=language,
            answer=answer,
            has_evidence=True,
            top_score=retrieval.top_score,
            sources=sources,
        )

    async def _generate(
        self,
        question: str,
        retrieval: RetrievalResult,
        memory: MemoryContext,
        language: str,
        ctx: RequestContext,
    ) -> tuple[str, list[SourceRef]]:
        prompt = build_answer_prompt(
            question=question,
            evidence=retrieval.evidence,
            language=language,
            summary=memory.summary,
            recent_messages=memory.messages,
        )
        try:
            raw_answer = await self._llm_client.do_complete(prompt)
        except Exception as exc:
            raise ModelError(f"Answer generation failed: {exc}", subject=ctx.chat_id) from exc

        sources = collect_sources(retrieval.evidence)
        answer = raw_answer
        if sources:
            answer = f"{raw_answer}\n\n{format_sources(sources)}"
        self.logging.info(
            "[%s] Answered chat %s from %d evidence chunk(s), %d source(s).",
            ctx.correlation_id, ctx.chat_id, len(retrieval.evidence), len(sources),
        )
        return answer, sources
