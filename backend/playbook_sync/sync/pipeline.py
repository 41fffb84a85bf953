"""Playbook Sync Pipeline — WINDOW → SELECT → CACHE → MATCH → EDIT → CREATE → PUBLISH.

Reconciles knowledge entries captured since the last successful run against
the SOP corpus in the playbook repository, and commits the resulting edits
and new documents in one commit.

Failures of a single entry, document or cluster are recorded in the run's
error list and processing continues. Anything escaping the run marks it
``failed`` and is re-raised to the caller (scheduler, Celery task or CLI).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from playbook_sync.config import settings
from playbook_sync.knowledge.store import KnowledgeStore
from playbook_sync.models.knowledge import KnowledgeEntry
from playbook_sync.models.playbook import EnrichmentGroup, FileChange, NewDocument, SyncResult
from playbook_sync.sync.classifier import Classification, EntryClassifier
from playbook_sync.sync.creator import OrphanClusterer, next_counter_seed
from playbook_sync.sync.edit_generator import EditGenerator
from playbook_sync.sync.ledger import RunLedger, resolve_status
from playbook_sync.sync.patcher import apply_edit
from playbook_sync.sync.publisher import Publisher, build_commit_message, commit_summary
from playbook_sync.sync.sidebar import DocumentIndex, SidebarsJsIndex

logger = logging.getLogger(__name__)


class _RunState:
    """Mutable bookkeeping for one run."""

    def __init__(self, run_id: str, window_start: datetime) -> None:
        self.run_id = run_id
        self.window_start = window_start
        self.entries_processed = 0
        self.entries_enriched = 0
        self.entries_redundant = 0
        self.entries_orphaned = 0
        self.groups: dict[str, EnrichmentGroup] = {}
        self.orphans: list[KnowledgeEntry] = []
        self.changes: dict[str, FileChange] = {}
        self.edit_summaries: dict[str, str] = {}
        self.docs_created: list[str] = []
        self.errors: list[str] = []
        self.cost = 0.0

    def add_cost(self, meta) -> None:
        if meta is not None:
            self.cost += meta.cost

    def result(self, status: str, commit_sha: str | None = None) -> SyncResult:
        return SyncResult(
            run_id=self.run_id,
            status=status,
            entries_processed=self.entries_processed,
            entries_enriched=self.entries_enriched,
            entries_redundant=self.entries_redundant,
            entries_orphaned=self.entries_orphaned,
            docs_enriched=list(self.edit_summaries),
            docs_created=list(self.docs_created),
            commit_sha=commit_sha,
            errors=list(self.errors),
        )


class PlaybookSyncPipeline:
    """Weekly knowledge → playbook reconciliation.

    Usage:
        pipeline = create_pipeline()
        result = await pipeline.run()
    """

    def __init__(
        self,
        llm,
        embedder,
        cache,
        repository,
        store: KnowledgeStore | None = None,
        ledger: RunLedger | None = None,
        index: DocumentIndex | None = None,
        similarity_threshold: float | None = None,
        fuzzy_threshold: float | None = None,
        known_modules: list[str] | None = None,
    ) -> None:
        self.embedder = embedder
        self.cache = cache
        self.repository = repository
        self.store = store or KnowledgeStore()
        self.ledger = ledger or RunLedger()
        self.index = index or SidebarsJsIndex()
        self.similarity_threshold = (
            settings.similarity_threshold if similarity_threshold is None else similarity_threshold
        )
        self.fuzzy_threshold = settings.fuzzy_match_threshold if fuzzy_threshold is None else fuzzy_threshold
        self.known_modules = list(known_modules or settings.known_modules)

        self.classifier = EntryClassifier(llm)
        self.editor = EditGenerator(llm)
        self.clusterer = OrphanClusterer(llm, known_modules=self.known_modules)
        self.publisher = Publisher(repository)

    async def run(self) -> SyncResult:
        """Execute one sync run and return its outcome."""
        window_start = await asyncio.to_thread(self.ledger.resolve_window_start)
        sync_run = await asyncio.to_thread(self.ledger.start_run, window_start)
        state = _RunState(sync_run.id, window_start)
        logger.info("Starting playbook sync run %s (window start %s)", sync_run.id, window_start.isoformat())

        try:
            return await self._execute(state)
        except (Exception, asyncio.CancelledError) as e:
            message = str(e) or type(e).__name__
            logger.error("Playbook sync run %s failed: %s", state.run_id, message)
            try:
                # The task may already be cancelled: no awaits here
                self.ledger.finalize_run(
                    state.run_id,
                    "failed",
                    error_log="\n".join(state.errors + [message]),
                    entries_processed=state.entries_processed,
                    entries_enriched=state.entries_enriched,
                    entries_redundant=state.entries_redundant,
                    entries_orphaned=state.entries_orphaned,
                    docs_enriched=list(state.edit_summaries),
                    docs_created=list(state.docs_created),
                    llm_cost=round(state.cost, 6),
                )
            except Exception as finalize_error:
                logger.error("Could not mark run %s failed: %s", state.run_id, finalize_error)
            raise

    async def _execute(self, state: _RunState) -> SyncResult:
        # 1. Select entries: new since the window, plus orphans carried forward
        entries = await self._select_entries(state.window_start)
        logger.info("Selected %d knowledge entries", len(entries))
        if not entries:
            await asyncio.to_thread(self.ledger.finalize_run, state.run_id, "success")
            logger.info("No entries to process; run %s finished", state.run_id)
            return state.result("success")

        # 2. Refresh the document cache
        files = await asyncio.to_thread(self.repository.list_document_files)
        await self.cache.sync(files)
        logger.info("Loaded %d playbook documents", len(self.cache))

        # 3. Match and classify, one entry at a time
        for entry in entries:
            await self._match_entry(entry, state)
        logger.info(
            "Matched %d entries: %d enrich, %d redundant, %d orphaned",
            state.entries_processed, state.entries_enriched,
            state.entries_redundant, state.entries_orphaned,
        )

        # 4. One edit per enriched document
        for group in state.groups.values():
            await self._enrich_document(group, state)

        # 5. Cluster orphans into new documents
        if len(state.orphans) >= settings.min_orphans_for_clustering:
            await self._create_documents(state)

        # 6. Publish
        commit_sha = None
        if state.changes:
            message = build_commit_message(
                entries_processed=state.entries_processed,
                window_start=state.window_start,
                enriched=state.edit_summaries,
                created=state.docs_created,
                entries_enriched=state.entries_enriched,
                entries_redundant=state.entries_redundant,
                entries_orphaned=state.entries_orphaned,
            )
            commit_sha, error = await self.publisher.publish(list(state.changes.values()), message)
            if error:
                state.errors.append(f"commit: {error}")

        # 7. Finalize
        status = resolve_status(len(state.errors), state.entries_enriched, len(state.docs_created))
        await asyncio.to_thread(
            self.ledger.finalize_run,
            state.run_id,
            status,
            entries_processed=state.entries_processed,
            entries_enriched=state.entries_enriched,
            entries_redundant=state.entries_redundant,
            entries_orphaned=state.entries_orphaned,
            docs_enriched=list(state.edit_summaries),
            docs_created=list(state.docs_created),
            commit_sha=commit_sha,
            commit_message=(
                commit_summary(len(state.edit_summaries), len(state.docs_created)) if commit_sha else None
            ),
            error_log="\n".join(state.errors) or None,
            llm_cost=round(state.cost, 6),
        )
        logger.info(
            "Playbook sync run %s finished: %s (%d enriched docs, %d new docs, %d errors, cost=%.4f)",
            state.run_id, status, len(state.edit_summaries), len(state.docs_created),
            len(state.errors), state.cost,
        )
        return state.result(status, commit_sha)

    async def _select_entries(self, window_start: datetime) -> list[KnowledgeEntry]:
        new_entries = await asyncio.to_thread(self.store.list_entries_created_after, window_start)
        carried = await asyncio.to_thread(self.store.list_entries_with_latest_action, "orphaned")

        selected: list[KnowledgeEntry] = []
        seen: set[str] = set()
        for entry in new_entries + carried:
            if entry.id in seen:
                continue
            seen.add(entry.id)
            selected.append(entry)
        if carried:
            logger.info("Carrying forward %d previously orphaned entries", len(carried))
        return selected

    async def _record(self, entry: KnowledgeEntry, state: _RunState, action: str,
                      document_path: str | None, similarity: float, rationale: str) -> None:
        await asyncio.to_thread(
            self.store.record_match, entry.id, state.run_id, action, document_path, similarity, rationale,
        )

    async def _match_entry(self, entry: KnowledgeEntry, state: _RunState) -> None:
        state.entries_processed += 1
        try:
            await self._place_entry(entry, state)
        except Exception as e:
            logger.error("Matching failed for entry %s: %s", entry.id, e)
            state.errors.append(f"entry:{entry.id}: {e}")

    async def _place_entry(self, entry: KnowledgeEntry, state: _RunState) -> None:
        # Counters move only once the match record is written
        try:
            vector = await self.embedder.embed(entry.embedding_text())
        except Exception as e:
            logger.error("Embedding failed for entry %s: %s", entry.id, e)
            await self._record(entry, state, "orphaned", None, 0.0, f"Embedding failed: {e}")
            state.errors.append(f"entry:{entry.id}: {e}")
            return

        document, score = self.cache.best_match(vector)
        if document is None or score < self.similarity_threshold:
            await self._record(
                entry, state, "orphaned", document.path if document else None, score,
                f"Best match score {score:.3f} below threshold {self.similarity_threshold}",
            )
            state.entries_orphaned += 1
            state.orphans.append(entry)
            return

        try:
            classification, meta = await self.classifier.classify(entry, document.content, document.title)
            state.add_cost(meta)
        except Exception as e:
            logger.error("Classification failed for entry %s: %s", entry.id, e)
            state.errors.append(f"classify:{entry.id}: {e}")
            classification = Classification(action="tangential", rationale=f"Classification failed: {e}")

        await self._record(entry, state, classification.action, document.path, score, classification.rationale)

        if classification.action == "enrich":
            state.entries_enriched += 1
            group = state.groups.setdefault(document.path, EnrichmentGroup(document_path=document.path))
            group.add(entry, classification.target_section)
        elif classification.action == "redundant":
            state.entries_redundant += 1
        else:
            logger.info("Entry %s is tangential to %s", entry.id, document.path)

    async def _enrich_document(self, group: EnrichmentGroup, state: _RunState) -> None:
        document = self.cache.get(group.document_path)
        if document is None:
            state.errors.append(f"edit:{group.document_path}: document no longer cached")
            return

        section = group.primary_section()
        try:
            edit, meta = await self.editor.synthesize_edit(group.entries, document.content, document.title, section)
            state.add_cost(meta)
        except Exception as e:
            logger.error("Edit synthesis failed for %s: %s", group.document_path, e)
            state.errors.append(f"edit:{group.document_path}: {e}")
            return

        patched = apply_edit(document.content, edit, self.fuzzy_threshold)
        state.changes[document.path] = FileChange(path=document.path, content=patched)
        state.edit_summaries[document.path] = edit.summary
        logger.info("Enriched %s (%d entries, section '%s')", document.path, len(group.entries), section)

    async def _create_documents(self, state: _RunState) -> None:
        try:
            clusters, meta = await self.clusterer.cluster(state.orphans, self.known_modules)
            state.add_cost(meta)
        except Exception as e:
            logger.error("Orphan clustering failed: %s", e)
            state.errors.append(f"cluster: {e}")
            return
        logger.info("Found %d orphan clusters", len(clusters))
        if not clusters:
            return

        known_ids = self.cache.known_doc_ids()
        counter = next_counter_seed(known_ids)
        index_file = None
        index_content: str | None = None
        index_fetched = False

        for cluster in clusters:
            try:
                document, meta = await self.clusterer.draft_new_document(cluster, known_ids, counter)
                state.add_cost(meta)
                await asyncio.to_thread(
                    self.store.mark_absorbed,
                    [e.id for e in cluster.entries],
                    state.run_id,
                    document.path,
                    f"Clustered into new document: {document.title}",
                )
            except Exception as e:
                logger.error("Creating '%s' failed: %s", cluster.suggested_title, e)
                state.errors.append(f"new-doc:{cluster.suggested_title}: {e}")
                continue

            known_ids.append(document.doc_id)
            counter = next_counter_seed([document.doc_id], counter + 1)
            state.changes[document.path] = FileChange(path=document.path, content=document.content)
            state.docs_created.append(document.path)
            logger.info("Created %s from %d orphans", document.path, len(cluster.entries))

            if not index_fetched:
                index_fetched = True
                index_file = await self._fetch_index(state)
                index_content = index_file.content if index_file else None
            if index_content is not None:
                index_content = self._register(index_content, document)

        if index_file is not None and index_content != index_file.content:
            state.changes[index_file.path] = FileChange(path=index_file.path, content=index_content)

    async def _fetch_index(self, state: _RunState):
        try:
            return await asyncio.to_thread(self.repository.fetch_sidebars)
        except Exception as e:
            logger.error("Could not fetch the document index: %s", e)
            state.errors.append(f"index: {e}")
            return None

    def _register(self, index_content: str, document: NewDocument) -> str:
        if document.module not in self.known_modules:
            logger.warning("New document %s targets unknown module '%s'", document.doc_id, document.module)
        return self.index.register(index_content, document.module, document.index_entry)


def create_pipeline() -> PlaybookSyncPipeline:
    """Pipeline wired to the configured services."""
    from playbook_sync.integrations.github_repo import GithubDocumentRepository
    from playbook_sync.llm.layer import LLMLayer
    from playbook_sync.memory.document_cache import DocumentCache
    from playbook_sync.memory.embeddings import EmbeddingProvider

    embedder = EmbeddingProvider()
    return PlaybookSyncPipeline(
        llm=LLMLayer(),
        embedder=embedder,
        cache=DocumentCache(embedder),
        repository=GithubDocumentRepository(),
    )
