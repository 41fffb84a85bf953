"""Document Cache — playbook embeddings persisted in ChromaDB.

ChromaDB runs in embedded mode inside the worker process and persists to
``settings.chroma_dir``. One collection holds one vector per document path,
with the content hash in metadata: a document whose hash is unchanged since
the previous run reuses its stored embedding instead of being re-embedded.
Embeddings are always supplied by the EmbeddingProvider, never computed by
ChromaDB itself.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import chromadb
from chromadb.config import Settings as ChromaSettings

from playbook_sync.config import settings
from playbook_sync.memory.embeddings import EmbeddingProvider, cosine_similarity
from playbook_sync.models.playbook import DocumentFile, ProceduralDocument

logger = logging.getLogger(__name__)


class DocumentCache:
    """Path → (content, embedding) map over the current playbook corpus.

    Usage:
        cache = DocumentCache(embedder)
        docs = await cache.sync(files)
        best, score = cache.best_match(entry_vector)
    """

    def __init__(
        self,
        embedder: EmbeddingProvider,
        persist_dir: str | Path | None = None,
        collection_name: str | None = None,
    ) -> None:
        persist_path = str(persist_dir or settings.chroma_dir)
        os.makedirs(persist_path, exist_ok=True)

        self.embedder = embedder
        self.client = chromadb.PersistentClient(
            path=persist_path,
            settings=ChromaSettings(anonymized_telemetry=False),
        )
        self.collection = self.client.get_or_create_collection(
            name=collection_name or settings.document_collection,
            metadata={"hnsw:space": "cosine"},
            embedding_function=None,
        )
        self.documents: dict[str, ProceduralDocument] = {}
        self.reused_count = 0
        self.embedded_count = 0

    def _stored(self) -> dict[str, tuple[str, list[float]]]:
        """Stored path → (content hash, embedding) pairs."""
        result = self.collection.get(include=["embeddings", "metadatas"])
        ids = result.get("ids") or []
        embeddings = result.get("embeddings")
        metadatas = result.get("metadatas")
        stored: dict[str, tuple[str, list[float]]] = {}
        for i, path in enumerate(ids):
            if embeddings is None or metadatas is None:
                break
            meta = metadatas[i] or {}
            stored[path] = (str(meta.get("content_hash", "")), [float(x) for x in embeddings[i]])
        return stored

    async def sync(self, files: list[DocumentFile]) -> list[ProceduralDocument]:
        """Refresh the cache against the repository's current files.

        Unchanged documents reuse their stored embedding; changed and new
        ones are embedded in one batch; removed paths are dropped.
        """
        stored = self._stored()
        documents: dict[str, ProceduralDocument] = {}
        stale: list[ProceduralDocument] = []

        for file in files:
            doc = ProceduralDocument.from_file(file)
            previous = stored.get(file.path)
            if previous and previous[0] == doc.content_hash and previous[1]:
                doc.embedding = previous[1]
            else:
                stale.append(doc)
            documents[file.path] = doc

        if stale:
            logger.info("Embedding %d new or changed documents", len(stale))
            vectors = await self.embedder.embed_many(
                [f"{doc.title}\n\n{doc.content}" for doc in stale]
            )
            for doc, vector in zip(stale, vectors):
                doc.embedding = vector
            self.collection.upsert(
                ids=[doc.path for doc in stale],
                embeddings=[doc.embedding for doc in stale],
                metadatas=[{"content_hash": doc.content_hash, "title": doc.title} for doc in stale],
            )

        removed = [path for path in stored if path not in documents]
        if removed:
            self.collection.delete(ids=removed)
            logger.info("Dropped %d documents no longer in the repository", len(removed))

        self.documents = documents
        self.embedded_count = len(stale)
        self.reused_count = len(documents) - len(stale)
        logger.info(
            "Document cache synced: %d documents (%d reused, %d embedded)",
            len(documents), self.reused_count, self.embedded_count,
        )
        return list(documents.values())

    def get(self, path: str) -> ProceduralDocument | None:
        return self.documents.get(path)

    def best_match(self, vector: list[float]) -> tuple[ProceduralDocument | None, float]:
        """Most similar document by cosine similarity (first wins on ties)."""
        best: ProceduralDocument | None = None
        best_score = 0.0
        for doc in self.documents.values():
            score = cosine_similarity(vector, doc.embedding)
            if score > best_score:
                best_score = score
                best = doc
        return best, best_score

    def known_doc_ids(self) -> list[str]:
        """Front-matter ids of all cached documents."""
        return [doc.doc_id for doc in self.documents.values() if doc.doc_id]

    def __len__(self) -> int:
        return len(self.documents)
