"""Synchronisation service.

Keeps the vector index and the chunk store in line with the policy corpus.
Two entry modes share the per-file pipeline (fetch, hash, detect language,
extract title, chunk, embed, replace chunk/point set):

- incremental: driven by a push notification's classified change list.
- full: enumerates every tracked file at a revision, skipping files already
  indexed at that exact revision unless forced, and removes documents that
  disappeared from the corpus.

Every run is recorded as a SyncJob (pending -> running -> completed | failed).
Per-file failures are returned as FileOutcome results and counted; only
failures of shared setup (job record, revision lookup, listing) fail a run.
"""

import asyncio
import time
from dataclasses import dataclass, field

from shared.clients.content.ContentClientInterface import ContentClientInterface
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.helper.text_utils import clean_text, content_hash, detect_language, extract_title
from shared.models.document import ChunkCounts, Document
from shared.models.errors import BridgeError, EmbeddingError, ErrorKind, FetchError, JobSetupError, StoreError
from shared.models.sync import ChangeStatus, FileChange, FileOutcome, SyncJob, SyncStatus, SyncTrigger
from shared.store.StateStore import StateStore
from services.doc_sync.ChangeClassifier import ChangeClassifier
from services.doc_sync.ChunkLifecycle import ChunkLifecycle, make_document_id
from services.doc_sync.chunking import DEFAULT_CHUNK_OVERLAP, DEFAULT_CHUNK_SIZE, split_text

DOC_CONCURRENCY = 5       # max parallel file syncs per batch
EMBED_BATCH_SIZE = 50     # max chunk texts per embedding call
RECENT_JOBS_LIMIT = 10


@dataclass
class _JobTally:
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    counts: ChunkCounts = field(default_factory=ChunkCounts)

    def add(self, outcome: FileOutcome) -> None:
        if outcome.error_kind is not None:
            self.failed += 1
        elif outcome.skipped:
            self.skipped += 1
        else:
            self.processed += 1
        self.counts = self.counts + outcome.counts

    def as_fields(self) -> dict:
        return {
            "files_processed": self.processed,
            "files_skipped": self.skipped,
            "files_failed": self.failed,
            "chunks_created": self.counts.created,
            "chunks_updated": self.counts.updated,
            "chunks_deleted": self.counts.deleted,
        }


class SyncService:
    """Orchestrates incremental and full synchronisation of the corpus into the vector index."""

    def __init__(
        self,
        helper_config: HelperConfig,
        content_client: ContentClientInterface,
        embed_client: EmbedClientInterface,
        lifecycle: ChunkLifecycle,
        store: StateStore,
        classifier: ChangeClassifier,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._content_client = content_client
        self._embed_client = embed_client
        self._lifecycle = lifecycle
        self._store = store
        self._classifier = classifier

        self._chunk_size = int(helper_config.get_number_val("SYNC_CHUNK_SIZE", default=DEFAULT_CHUNK_SIZE))
        self._chunk_overlap = int(helper_config.get_number_val("SYNC_CHUNK_OVERLAP", default=DEFAULT_CHUNK_OVERLAP))
        self._concurrency = max(1, int(helper_config.get_number_val("SYNC_CONCURRENCY", default=DOC_CONCURRENCY)))
        self._embed_batch_size = max(1, int(helper_config.get_number_val("SYNC_EMBED_BATCH_SIZE", default=EMBED_BATCH_SIZE)))
        self._last_job_ms = 0

    ##########################################
    ################ JOBS ####################
    ##########################################

    def _now_ms(self) -> int:
        # job ids embed the timestamp, keep it strictly increasing
        self._last_job_ms = max(int(time.time() * 1000), self._last_job_ms + 1)
        return self._last_job_ms

    async def _open_job(self, job: SyncJob) -> SyncJob:
        """Create the job record and move it to running.

        Raises:
            JobSetupError: If the job record cannot be written.
        """
        try:
            await self._store.create_job(job)
            return await self._store.update_job(job.job_id, status=SyncStatus.RUNNING)
        except Exception as exc:
            raise JobSetupError(f"Cannot create sync job: {exc}", subject=job.job_id) from exc

    async def _checkpoint(self, job_id: str, tally: _JobTally, **fields) -> SyncJob:
        try:
            return await self._store.update_job(job_id, **tally.as_fields(), **fields)
        except Exception as exc:
            raise JobSetupError(f"Cannot update sync job: {exc}", subject=job_id) from exc

    async def _fail_job(self, job_id: str, error: BaseException) -> None:
        try:
            await self._store.update_job(job_id, status=SyncStatus.FAILED, error=str(error))
        except Exception as exc:
            self.logging.error("Could not mark sync job %s as failed: %s", job_id, exc)

    async def get_recent_jobs(self, limit: int = RECENT_JOBS_LIMIT) -> list[SyncJob]:
        return await self._store.list_recent_jobs(limit=limit)

    async def is_revision_synced(self, revision: str) -> bool:
        """True if an incremental run for this revision is running or has completed."""
        jobs = await self._store.find_jobs_for_revision(
            SyncTrigger.INCREMENTAL, revision, [SyncStatus.RUNNING, SyncStatus.COMPLETED]
        )
        return bool(jobs)

    ##########################################
    ########### INCREMENTAL SYNC #############
    ##########################################

    async def do_incremental_sync(self, revision: str, changes: list[FileChange]) -> SyncJob | None:
        """Apply a classified change list at a revision.

        Removed paths lose their document, chunks and points. Added and modified
        paths are re-indexed from their content at the revision. A redelivered
        notification for a revision that is already running or synced is skipped.

        Args:
            revision (str): Target commit id.
            changes (list[FileChange]): Classified, de-duplicated changes.

        Returns:
            SyncJob | None: The finished job, or None if the revision was already synced.

        Raises:
            JobSetupError: If the job record cannot be read or written.
        """
        try:
            already_synced = await self.is_revision_synced(revision)
        except Exception as exc:
            raise JobSetupError(f"Cannot look up jobs for revision: {exc}", subject=revision) from exc
        if already_synced:
            self.logging.info("Revision %s already synced or syncing, skipping notification.", revision[:12])
            return None

        job = await self._open_job(SyncJob(
            job_id=f"sync_{self._now_ms()}_{revision[:8]}",
            trigger=SyncTrigger.INCREMENTAL,
            revision=revision,
            files_total=len(changes),
        ))
        self.logging.info("Incremental sync %s started: %d change(s) at %s.", job.job_id, len(changes), revision[:12])

        tally = _JobTally()
        try:
            await self._process_in_batches(job.job_id, changes, revision, tally, force=False)
            job = await self._store.update_job(job.job_id, status=SyncStatus.COMPLETED, **tally.as_fields())
        except JobSetupError as exc:
            await self._fail_job(job.job_id, exc)
            raise
        except Exception as exc:
            await self._fail_job(job.job_id, exc)
            raise JobSetupError(f"Cannot complete sync job: {exc}", subject=job.job_id) from exc

        self.logging.info(
            "Incremental sync %s completed: %d processed, %d skipped, %d failed, chunks +%d ~%d -%d.",
            job.job_id, tally.processed, tally.skipped, tally.failed,
            tally.counts.created, tally.counts.updated, tally.counts.deleted,
            color="green",
        )
        return job

    ##########################################
    ############## FULL SYNC #################
    ##########################################

    async def do_full_sync(self, branch: str | None = None, force: bool = False) -> SyncJob:
        """Resynchronise every tracked file at the head of a branch.

        Args:
            branch (str | None): Branch to sync, defaults to the configured one.
            force (bool): Re-index files already indexed at this revision.

        Returns:
            SyncJob: The finished job.

        Raises:
            JobSetupError: If the job record cannot be created or updated.
            FetchError: If the revision lookup or the listing fails.
            StoreError: If the document list or the watermark cannot be read or written.
        """
        branch = branch or self._content_client.get_default_branch()
        repo_id = self._content_client.get_repository_id()
        job = await self._open_job(SyncJob(
            job_id=f"full_sync_{self._now_ms()}_{branch}",
            trigger=SyncTrigger.FULL,
            branch=branch,
        ))
        self.logging.info("Full sync %s started for '%s' on branch '%s' (force=%s).", job.job_id, repo_id, branch, force)

        # shared setup: resolve the revision and list the corpus
        try:
            revision = await self._content_client.do_resolve_revision(branch)
            paths = self._classifier.classify_paths(await self._content_client.do_list_files(revision))
        except Exception as exc:
            error = FetchError(f"Cannot list corpus: {exc}", subject=branch)
            await self._fail_job(job.job_id, error)
            raise error from exc

        try:
            known = {doc.path: doc for doc in await self._store.list_documents(repo_id)}
        except Exception as exc:
            error = StoreError(f"Cannot read tracked documents: {exc}", subject=repo_id)
            await self._fail_job(job.job_id, error)
            raise error from exc

        pending: list[FileChange] = []
        tally = _JobTally()
        for path in paths:
            existing = known.get(path)
            if not force and existing and existing.active and existing.revision == revision:
                tally.skipped += 1
                continue
            status = ChangeStatus.MODIFIED if existing else ChangeStatus.ADDED
            pending.append(FileChange(path=path, status=status))

        # tracked documents that vanished from the corpus
        listed = set(paths)
        pending.extend(FileChange(path=p, status=ChangeStatus.REMOVED) for p in known if p not in listed)

        self.logging.info(
            "Full sync %s at %s: %d tracked file(s), %d to process, %d already synced.",
            job.job_id, revision[:12], len(paths), len(pending), tally.skipped,
        )

        try:
            await self._checkpoint(job.job_id, tally, revision=revision, files_total=len(pending))
            await self._process_in_batches(job.job_id, pending, revision, tally, force=force)
        except JobSetupError as exc:
            await self._fail_job(job.job_id, exc)
            raise

        # the watermark moves only after every batch ran
        try:
            await self._store.save_repository_watermark(
                repo_id=repo_id,
                default_branch=branch,
                revision=revision,
                files_total=len(paths),
                files_processed=tally.processed,
            )
        except Exception as exc:
            error = StoreError(f"Cannot save repository watermark: {exc}", subject=repo_id)
            await self._fail_job(job.job_id, error)
            raise error from exc

        try:
            job = await self._store.update_job(job.job_id, status=SyncStatus.COMPLETED, **tally.as_fields())
        except Exception as exc:
            await self._fail_job(job.job_id, exc)
            raise JobSetupError(f"Cannot complete sync job: {exc}", subject=job.job_id) from exc

        self.logging.info(
            "Full sync %s completed: %d processed, %d skipped, %d failed, chunks +%d ~%d -%d.",
            job.job_id, tally.processed, tally.skipped, tally.failed,
            tally.counts.created, tally.counts.updated, tally.counts.deleted,
            color="green",
        )
        return job

    ##########################################
    ############### BATCHING #################
    ##########################################

    async def _process_in_batches(
        self,
        job_id: str,
        changes: list[FileChange],
        revision: str,
        tally: _JobTally,
        force: bool,
    ) -> None:
        """Process changes in sequential batches of bounded size, checkpointing after each batch.

        Raises:
            JobSetupError: If a progress checkpoint cannot be written.
        """
        for batch_start in range(0, len(changes), self._concurrency):
            batch = changes[batch_start: batch_start + self._concurrency]
            to_fetch = [c.path for c in batch if c.status != ChangeStatus.REMOVED]
            contents = await self._content_client.do_fetch_files(to_fetch, revision) if to_fetch else {}

            results = await asyncio.gather(
                *[self._process_change(change, revision, contents.get(change.path), force) for change in batch],
                return_exceptions=True,
            )
            for change, result in zip(batch, results):
                if isinstance(result, BaseException):
                    self.logging.error("Unexpected failure for '%s': %s", change.path, result)
                    result = FileOutcome(
                        path=change.path, status=change.status, processed=False,
                        error_kind=ErrorKind.INTERNAL, error=str(result),
                    )
                tally.add(result)

            await self._checkpoint(job_id, tally)
            self.logging.info(
                "Sync %s progress: %d/%d file(s) handled.",
                job_id, min(batch_start + len(batch), len(changes)), len(changes),
            )

    ##########################################
    ############# FILE PIPELINE ##############
    ##########################################

    async def _process_change(
        self,
        change: FileChange,
        revision: str,
        content: str | BaseException | None,
        force: bool,
    ) -> FileOutcome:
        """Apply one change. Never raises: failures come back as tagged outcomes."""
        try:
            if change.status == ChangeStatus.REMOVED:
                return await self._remove_file(change)
            if isinstance(content, BaseException) or content is None:
                raise FetchError(f"Cannot fetch content: {content}", subject=change.path)
            return await self._index_file(change, revision, content, force)
        except BridgeError as exc:
            self.logging.error("Sync of '%s' failed: %s", change.path, exc)
            return FileOutcome(path=change.path, status=change.status, processed=False, error_kind=exc.kind, error=str(exc))
        except Exception as exc:
            self.logging.exception("Sync of '%s' failed unexpectedly: %s", change.path, exc)
            return FileOutcome(path=change.path, status=change.status, processed=False, error_kind=ErrorKind.INTERNAL, error=str(exc))

    async def _remove_file(self, change: FileChange) -> FileOutcome:
        document_id = make_document_id(self._content_client.get_repository_id(), change.path)
        deleted = await self._lifecycle.do_remove_document(document_id)
        self.logging.info("Removed '%s' (%d chunk(s)).", change.path, deleted)
        return FileOutcome(path=change.path, status=change.status, processed=True, counts=ChunkCounts(deleted=deleted))

    async def _index_file(self, change: FileChange, revision: str, content: str, force: bool) -> FileOutcome:
        repo_id = self._content_client.get_repository_id()
        document_id = make_document_id(repo_id, change.path)
        digest = content_hash(content)

        existing = await self._store.get_document(document_id)
        if not force and existing and existing.active and existing.content_hash == digest:
            # same content under a new revision: no re-embedding needed
            if existing.revision != revision:
                await self._store.set_document_revision(document_id, revision)
            self.logging.debug("Content of '%s' unchanged, skipping re-index.", change.path)
            return FileOutcome(path=change.path, status=change.status, processed=True, skipped=True)

        text = clean_text(content)
        document = Document(
            id=document_id,
            repo_id=repo_id,
            path=change.path,
            revision=revision,
            content_hash=digest,
            language=detect_language(text),
            title=extract_title(text, change.path),
        )
        texts = split_text(text, max_size=self._chunk_size, overlap=self._chunk_overlap)
        vectors = await self._embed_texts(texts, change.path)
        counts = await self._lifecycle.do_replace_document(
            document, texts, vectors,
            source_url=self._content_client.build_source_url(change.path, revision),
        )
        self.logging.info("Indexed '%s' (%s, %d chunk(s)).", change.path, document.language, len(texts))
        return FileOutcome(path=change.path, status=change.status, processed=True, counts=counts)

    async def _embed_texts(self, texts: list[str], path: str) -> list[list[float]]:
        """Embed chunk texts in batches.

        Raises:
            EmbeddingError: If any embedding call fails.
        """
        vectors: list[list[float]] = []
        try:
            for batch_start in range(0, len(texts), self._embed_batch_size):
                vectors.extend(await self._embed_client.do_embed(texts[batch_start: batch_start + self._embed_batch_size]))
        except Exception as exc:
            raise EmbeddingError(f"Embedding failed: {exc}", subject=path) from exc
        return vectors
