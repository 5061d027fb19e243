"""Persistent state of the bridge.

Holds the logical records the pipelines share: tracked documents and their
chunks, sync job audit records, the repository watermark, conversations and
their messages. All methods open a short-lived session and return pydantic
domain models, never ORM instances.
"""

import asyncio
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from shared.helper.HelperConfig import HelperConfig
from shared.models.conversation import Conversation, Message, MessageRole
from shared.models.document import Chunk, Document, RepositoryState
from shared.models.sync import SyncJob, SyncStatus, SyncTrigger, can_transition
from shared.store.database import create_engine, create_sessionmaker, create_tables, utcnow
from shared.store.tables import (
    ChunkRecord,
    ConversationRecord,
    DocumentRecord,
    MessageRecord,
    RepositoryRecord,
    SyncJobRecord,
)

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./data/policy_rag.db"


class StateStore:
    def __init__(self, helper_config: HelperConfig, database_url: str | None = None) -> None:
        self.logging = helper_config.get_logger()
        self._database_url = database_url or helper_config.get_string_val("STORE_DATABASE_URL", default=DEFAULT_DATABASE_URL)
        self._echo = helper_config.get_bool_val("STORE_ECHO", default=False)
        self._engine: AsyncEngine | None = None
        self._sessionmaker = None
        # in-memory SQLite runs on one shared connection, sessions must take turns
        self._connection_lock: asyncio.Lock | None = None

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def boot(self) -> None:
        """Create the engine and all missing tables."""
        if self._database_url.startswith("sqlite") and ":memory:" not in self._database_url:
            db_path = self._database_url.split(":///", 1)[-1]
            db_dir = os.path.dirname(db_path)
            if db_dir and not os.path.exists(db_dir):
                os.makedirs(db_dir)
        self._engine = create_engine(self._database_url, echo=self._echo)
        self._sessionmaker = create_sessionmaker(self._engine)
        self._connection_lock = asyncio.Lock() if ":memory:" in self._database_url else None
        await create_tables(self._engine)
        self.logging.info("State store ready (%s).", self._database_url.split("://", 1)[0])

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._sessionmaker = None

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        if self._sessionmaker is None:
            raise Exception("State store not initialised. Call boot() before using it.")
        if self._connection_lock is None:
            async with self._sessionmaker() as session:
                yield session
            return
        async with self._connection_lock:
            async with self._sessionmaker() as session:
                yield session

    ##########################################
    ############### DOCUMENTS ################
    ##########################################

    @staticmethod
    def _to_document(record: DocumentRecord) -> Document:
        return Document(
            id=record.id,
            repo_id=record.repo_id,
            path=record.path,
            revision=record.revision,
            content_hash=record.content_hash,
            language=record.language,
            title=record.title,
            chunk_count=record.chunk_count,
            active=record.active,
            updated_at=record.updated_at,
        )

    async def get_document(self, document_id: str) -> Document | None:
        async with self._session() as session:
            record = await session.get(DocumentRecord, document_id)
            return self._to_document(record) if record else None

    async def list_documents(self, repo_id: str) -> list[Document]:
        async with self._session() as session:
            result = await session.execute(
                select(DocumentRecord).where(DocumentRecord.repo_id == repo_id).order_by(DocumentRecord.path)
            )
            return [self._to_document(r) for r in result.scalars().all()]

    async def save_document(self, document: Document) -> Document:
        """Insert or update a document record."""
        async with self._session() as session:
            async with session.begin():
                record = await session.get(DocumentRecord, document.id)
                if record is None:
                    record = DocumentRecord(id=document.id)
                    session.add(record)
                record.repo_id = document.repo_id
                record.path = document.path
                record.revision = document.revision
                record.content_hash = document.content_hash
                record.language = document.language
                record.title = document.title
                record.chunk_count = document.chunk_count
                record.active = document.active
                record.updated_at = utcnow()
            return self._to_document(record)

    async def set_document_revision(self, document_id: str, revision: str) -> None:
        async with self._session() as session:
            async with session.begin():
                await session.execute(
                    update(DocumentRecord)
                    .where(DocumentRecord.id == document_id)
                    .values(revision=revision, updated_at=utcnow())
                )

    async def delete_document(self, document_id: str) -> bool:
        async with self._session() as session:
            async with session.begin():
                result = await session.execute(delete(DocumentRecord).where(DocumentRecord.id == document_id))
                return result.rowcount > 0

    ##########################################
    ################ CHUNKS ##################
    ##########################################

    async def replace_chunks(self, document_id: str, chunks: list[Chunk]) -> int:
        """Replace the chunk set of a document in one transaction.

        Returns:
            int: Number of chunk rows that existed before.
        """
        async with self._session() as session:
            async with session.begin():
                result = await session.execute(delete(ChunkRecord).where(ChunkRecord.document_id == document_id))
                session.add_all(
                    ChunkRecord(
                        id=chunk.chunk_id,
                        document_id=chunk.document_id,
                        seq=chunk.seq,
                        text=chunk.text,
                        text_hash=chunk.text_hash,
                        language=chunk.language,
                        title=chunk.title,
                    )
                    for chunk in chunks
                )
                return result.rowcount or 0

    async def delete_chunks(self, document_id: str) -> int:
        async with self._session() as session:
            async with session.begin():
                result = await session.execute(delete(ChunkRecord).where(ChunkRecord.document_id == document_id))
                return result.rowcount or 0

    async def list_chunks(self, document_id: str) -> list[Chunk]:
        async with self._session() as session:
            result = await session.execute(
                select(ChunkRecord).where(ChunkRecord.document_id == document_id).order_by(ChunkRecord.seq)
            )
            return [
                Chunk(
                    document_id=r.document_id,
                    seq=r.seq,
                    text=r.text,
                    text_hash=r.text_hash,
                    language=r.language,
                    title=r.title,
                )
                for r in result.scalars().all()
            ]

    ##########################################
    ############### SYNC JOBS ################
    ##########################################

    @staticmethod
    def _to_job(record: SyncJobRecord) -> SyncJob:
        return SyncJob(
            job_id=record.job_id,
            trigger=SyncTrigger(record.trigger),
            status=SyncStatus(record.status),
            revision=record.revision,
            branch=record.branch,
            files_total=record.files_total,
            files_processed=record.files_processed,
            files_skipped=record.files_skipped,
            files_failed=record.files_failed,
            chunks_created=record.chunks_created,
            chunks_updated=record.chunks_updated,
            chunks_deleted=record.chunks_deleted,
            started_at=record.started_at,
            completed_at=record.completed_at,
            error=record.error,
        )

    async def create_job(self, job: SyncJob) -> SyncJob:
        async with self._session() as session:
            async with session.begin():
                record = SyncJobRecord(
                    job_id=job.job_id,
                    trigger=job.trigger.value,
                    status=job.status.value,
                    revision=job.revision,
                    branch=job.branch,
                    files_total=job.files_total,
                    started_at=job.started_at or utcnow(),
                )
                session.add(record)
            return self._to_job(record)

    async def update_job(self, job_id: str, status: SyncStatus | None = None, **fields) -> SyncJob:
        """Update counters and optionally move the job to a new status.

        Args:
            job_id (str): The job to update.
            status (SyncStatus | None): Target status, None keeps the current one.
            **fields: SyncJob attributes to overwrite (counters, revision, error...).

        Returns:
            SyncJob: The updated job.

        Raises:
            KeyError: If the job does not exist.
            ValueError: If the status transition is not allowed.
        """
        async with self._session() as session:
            async with session.begin():
                record = await session.get(SyncJobRecord, job_id)
                if record is None:
                    raise KeyError(f"Sync job '{job_id}' not found.")
                current = SyncStatus(record.status)
                target = status or current
                if not can_transition(current, target):
                    raise ValueError(f"Sync job '{job_id}' cannot move from {current.value} to {target.value}.")
                record.status = target.value
                for key, value in fields.items():
                    setattr(record, key, value)
                if target in (SyncStatus.COMPLETED, SyncStatus.FAILED):
                    record.completed_at = utcnow()
            return self._to_job(record)

    async def get_job(self, job_id: str) -> SyncJob | None:
        async with self._session() as session:
            record = await session.get(SyncJobRecord, job_id)
            return self._to_job(record) if record else None

    async def list_recent_jobs(self, limit: int = 10) -> list[SyncJob]:
        async with self._session() as session:
            result = await session.execute(
                select(SyncJobRecord).order_by(SyncJobRecord.started_at.desc(), SyncJobRecord.job_id.desc()).limit(limit)
            )
            return [self._to_job(r) for r in result.scalars().all()]

    async def find_jobs_for_revision(self, trigger: SyncTrigger, revision: str, statuses: list[SyncStatus]) -> list[SyncJob]:
        async with self._session() as session:
            result = await session.execute(
                select(SyncJobRecord).where(
                    SyncJobRecord.trigger == trigger.value,
                    SyncJobRecord.revision == revision,
                    SyncJobRecord.status.in_([s.value for s in statuses]),
                )
            )
            return [self._to_job(r) for r in result.scalars().all()]

    ##########################################
    ############## REPOSITORIES ##############
    ##########################################

    async def get_repository(self, repo_id: str) -> RepositoryState | None:
        async with self._session() as session:
            record = await session.get(RepositoryRecord, repo_id)
            if record is None:
                return None
            return RepositoryState(
                repo_id=record.repo_id,
                default_branch=record.default_branch,
                last_synced_revision=record.last_synced_revision,
                last_synced_at=record.last_synced_at,
                files_total=record.files_total,
                files_processed=record.files_processed,
                active=record.active,
            )

    async def save_repository_watermark(self, repo_id: str, default_branch: str, revision: str, files_total: int, files_processed: int) -> RepositoryState:
        async with self._session() as session:
            async with session.begin():
                record = await session.get(RepositoryRecord, repo_id)
                if record is None:
                    record = RepositoryRecord(repo_id=repo_id, default_branch=default_branch)
                    session.add(record)
                record.default_branch = default_branch
                record.last_synced_revision = revision
                record.last_synced_at = utcnow()
                record.files_total = files_total
                record.files_processed = files_processed
        return await self.get_repository(repo_id)

    ##########################################
    ############# CONVERSATIONS ##############
    ##########################################

    @staticmethod
    def _to_conversation(record: ConversationRecord) -> Conversation:
        return Conversation(
            chat_id=record.chat_id,
            language=record.language,
            summary=record.summary,
            message_count=record.message_count,
            messages_since_summary=record.messages_since_summary,
            last_activity=record.last_activity,
            created_at=record.created_at,
        )

    async def get_conversation(self, chat_id: str) -> Conversation | None:
        async with self._session() as session:
            record = await session.get(ConversationRecord, chat_id)
            return self._to_conversation(record) if record else None

    async def get_or_create_conversation(self, chat_id: str, language: str) -> Conversation:
        async with self._session() as session:
            async with session.begin():
                record = await session.get(ConversationRecord, chat_id)
                if record is None:
                    now = utcnow()
                    record = ConversationRecord(
                        chat_id=chat_id,
                        language=language,
                        summary=None,
                        message_count=0,
                        messages_since_summary=0,
                        last_activity=now,
                        created_at=now,
                    )
                    session.add(record)
            return self._to_conversation(record)

    async def update_conversation(self, chat_id: str, **fields) -> Conversation:
        async with self._session() as session:
            async with session.begin():
                record = await session.get(ConversationRecord, chat_id)
                if record is None:
                    raise KeyError(f"Conversation '{chat_id}' not found.")
                for key, value in fields.items():
                    setattr(record, key, value)
            return self._to_conversation(record)

    async def add_message(self, message: Message) -> tuple[Message, Conversation]:
        """Append a message and bump the conversation counters in one transaction.

        The counters are incremented in SQL so concurrent appends never lose an increment.

        Returns:
            tuple[Message, Conversation]: The stored message and the updated conversation.
        """
        async with self._session() as session:
            async with session.begin():
                now = utcnow()
                record = MessageRecord(
                    chat_id=message.chat_id,
                    role=message.role.value,
                    text=message.text,
                    msg_metadata=message.metadata or {},
                    created_at=now,
                )
                session.add(record)
                result = await session.execute(
                    update(ConversationRecord)
                    .where(ConversationRecord.chat_id == message.chat_id)
                    .values(
                        message_count=ConversationRecord.message_count + 1,
                        messages_since_summary=ConversationRecord.messages_since_summary + 1,
                        last_activity=now,
                    )
                )
                if result.rowcount == 0:
                    raise KeyError(f"Conversation '{message.chat_id}' not found.")
                await session.flush()
                conversation = await session.get(ConversationRecord, message.chat_id)
                await session.refresh(conversation)
            return self._to_message(record), self._to_conversation(conversation)

    @staticmethod
    def _to_message(record: MessageRecord) -> Message:
        return Message(
            id=record.id,
            chat_id=record.chat_id,
            role=MessageRole(record.role),
            text=record.text,
            metadata=record.msg_metadata or {},
            created_at=record.created_at,
        )

    async def list_recent_messages(self, chat_id: str, limit: int) -> list[Message]:
        """Return the newest ``limit`` messages of a chat, oldest first."""
        if limit <= 0:
            return []
        async with self._session() as session:
            result = await session.execute(
                select(MessageRecord)
                .where(MessageRecord.chat_id == chat_id)
                .order_by(MessageRecord.id.desc())
                .limit(limit)
            )
            records = list(result.scalars().all())
            records.reverse()
            return [self._to_message(r) for r in records]

    async def count_messages(self, chat_id: str) -> int:
        async with self._session() as session:
            result = await session.execute(select(func.count()).select_from(MessageRecord).where(MessageRecord.chat_id == chat_id))
            return int(result.scalar_one())

    async def reset_conversation(self, chat_id: str) -> Conversation:
        """Delete all messages of a chat and zero its counters and summary, keeping the record."""
        async with self._session() as session:
            async with session.begin():
                await session.execute(delete(MessageRecord).where(MessageRecord.chat_id == chat_id))
                record = await session.get(ConversationRecord, chat_id)
                if record is None:
                    raise KeyError(f"Conversation '{chat_id}' not found.")
                record.summary = None
                record.message_count = 0
                record.messages_since_summary = 0
                record.last_activity = utcnow()
            return self._to_conversation(record)
