"""Pydantic models for change notifications and sync jobs."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel

from shared.models.document import ChunkCounts
from shared.models.errors import ErrorKind


class ChangeStatus(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


class FileChange(BaseModel):
    path: str
    status: ChangeStatus


class PushNotification(BaseModel):
    """A parsed push notification: the target revision and its changed files."""

    revision: str
    branch: str | None = None
    changes: list[FileChange] = []


class SyncTrigger(str, Enum):
    INCREMENTAL = "incremental"
    FULL = "full"


class SyncStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# terminal states have no outgoing transitions
_TRANSITIONS: dict[SyncStatus, set[SyncStatus]] = {
    SyncStatus.PENDING: {SyncStatus.RUNNING, SyncStatus.FAILED},
    SyncStatus.RUNNING: {SyncStatus.COMPLETED, SyncStatus.FAILED},
    SyncStatus.COMPLETED: set(),
    SyncStatus.FAILED: set(),
}


def can_transition(current: SyncStatus, target: SyncStatus) -> bool:
    """Return True if a job may move from ``current`` to ``target``.

    Progress checkpoints keep the status unchanged, which is always allowed
    for a running job.
    """
    if current == target:
        return current == SyncStatus.RUNNING
    return target in _TRANSITIONS[current]


class SyncJob(BaseModel):
    """Audit record of one synchronisation run.

    Attributes:
        job_id:          Generated run id (e.g. "sync_1718000000000_ab12cd34").
        trigger:         Incremental (webhook) or full (manual/runner).
        status:          pending -> running -> completed | failed.
        revision:        Target revision (commit sha) once known.
        branch:          Branch of a full sync, if given.
        files_total:     Files scheduled for processing.
        files_processed: Files indexed or removed successfully.
        files_skipped:   Files skipped as already synced at this revision.
        files_failed:    Files whose processing raised a per-file error.
        chunks_created / chunks_updated / chunks_deleted: chunk mutations.
        error:           Error message of a failed run.
    """

    job_id: str
    trigger: SyncTrigger
    status: SyncStatus = SyncStatus.PENDING
    revision: str | None = None
    branch: str | None = None
    files_total: int = 0
    files_processed: int = 0
    files_skipped: int = 0
    files_failed: int = 0
    chunks_created: int = 0
    chunks_updated: int = 0
    chunks_deleted: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None


class FileOutcome(BaseModel):
    """Result of processing a single changed file.

    A failed file carries the tag of its error instead of raising, so one bad
    file never aborts the whole run.
    """

    path: str
    status: ChangeStatus
    processed: bool
    skipped: bool = False
    error_kind: ErrorKind | None = None
    error: str | None = None
    counts: ChunkCounts = ChunkCounts()
