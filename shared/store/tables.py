"""ORM tables of the bridge state: documents, chunks, sync jobs, repositories, conversations, messages."""

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text

from shared.store.database import Base, utcnow


class DocumentRecord(Base):
    __tablename__ = "documents"

    id = Column(String(64), primary_key=True)
    repo_id = Column(String(255), nullable=False, index=True)
    path = Column(String(1024), nullable=False, index=True)
    revision = Column(String(64), nullable=False)
    content_hash = Column(String(64), nullable=False)
    language = Column(String(8), nullable=False)
    title = Column(String(512), nullable=False, default="")
    chunk_count = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class ChunkRecord(Base):
    __tablename__ = "chunks"

    id = Column(String(96), primary_key=True)
    document_id = Column(String(64), nullable=False, index=True)
    seq = Column(Integer, nullable=False)
    text = Column(Text, nullable=False)
    text_hash = Column(String(64), nullable=False)
    language = Column(String(8), nullable=False)
    title = Column(String(512), nullable=False, default="")


class SyncJobRecord(Base):
    __tablename__ = "sync_jobs"

    job_id = Column(String(128), primary_key=True)
    trigger = Column(String(16), nullable=False)
    status = Column(String(16), nullable=False, index=True)
    revision = Column(String(64), nullable=True, index=True)
    branch = Column(String(255), nullable=True)
    files_total = Column(Integer, nullable=False, default=0)
    files_processed = Column(Integer, nullable=False, default=0)
    files_skipped = Column(Integer, nullable=False, default=0)
    files_failed = Column(Integer, nullable=False, default=0)
    chunks_created = Column(Integer, nullable=False, default=0)
    chunks_updated = Column(Integer, nullable=False, default=0)
    chunks_deleted = Column(Integer, nullable=False, default=0)
    started_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    error = Column(Text, nullable=True)


class RepositoryRecord(Base):
    __tablename__ = "repositories"

    repo_id = Column(String(255), primary_key=True)
    default_branch = Column(String(255), nullable=False)
    last_synced_revision = Column(String(64), nullable=True)
    last_synced_at = Column(DateTime, nullable=True)
    files_total = Column(Integer, nullable=False, default=0)
    files_processed = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)


class ConversationRecord(Base):
    __tablename__ = "conversations"

    chat_id = Column(String(128), primary_key=True)
    language = Column(String(8), nullable=False)
    summary = Column(Text, nullable=True)
    message_count = Column(Integer, nullable=False, default=0)
    messages_since_summary = Column(Integer, nullable=False, default=0)
    last_activity = Column(DateTime, nullable=False, default=utcnow)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class MessageRecord(Base):
    __tablename__ = "messages"

    # autoincrement id orders messages created within the same timestamp
    id = Column(Integer, primary_key=True, autoincrement=True)
    chat_id = Column(String(128), nullable=False, index=True)
    role = Column(String(16), nullable=False)
    text = Column(Text, nullable=False)
    msg_metadata = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
