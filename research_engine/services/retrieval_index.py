from __future__ import annotations

import asyncio
import hashlib
import re
from pathlib import Path
from typing import Any

import chromadb

from research_engine.config import settings
from research_engine.models.index import IndexChunk, IndexHit, IndexUpsertResult
from research_engine.services.embeddings_local import LocalEmbeddingService
from research_engine.services.logger import logger


class RetrievalIndex:
    """Named document indexes backed by a persistent ChromaDB client.

    Each index id maps to one collection. Documents are split into
    overlapping character windows before embedding.
    """

    def __init__(
        self,
        persist_dir: str,
        *,
        embedder: Any | None = None,
        chunk_chars: int | None = None,
        chunk_overlap: int | None = None,
    ):
        self.persist_dir = Path(persist_dir)
        self.chunk_chars = max(int(chunk_chars or settings.index_chunk_chars), 1)
        self.chunk_overlap = int(
            chunk_overlap if chunk_overlap is not None else settings.index_chunk_overlap
        )
        if self.chunk_overlap >= self.chunk_chars:
            raise ValueError("Cannot have chunk_overlap >= chunk_chars")
        self._embedder = embedder or LocalEmbeddingService()
        self._client: Any | None = None
        self._client_lock = asyncio.Lock()

    async def add_documents(self, index_id: str, documents: list[tuple[str, str]]) -> IndexUpsertResult:
        """Chunk, embed and upsert `(filename, text)` pairs into an index."""
        chunks = [
            chunk
            for filename, text in documents
            for chunk in chunk_document(filename, text, self.chunk_chars, self.chunk_overlap)
        ]
        if not chunks:
            return IndexUpsertResult()

        vectors = await self._embedder.embed_texts([chunk.text for chunk in chunks])
        client = await self._get_client()

        def _sync_upsert() -> None:
            collection = client.get_or_create_collection(
                name=collection_name(index_id),
                metadata={"index_id": index_id},
            )
            collection.upsert(
                ids=[chunk.id for chunk in chunks],
                documents=[chunk.text for chunk in chunks],
                metadatas=[
                    {"filename": chunk.filename, "chunk_index": chunk.chunk_index, **chunk.metadata}
                    for chunk in chunks
                ],
                embeddings=vectors,
            )

        await asyncio.to_thread(_sync_upsert)
        logger.info("Indexed %d chunks from %d documents into %s", len(chunks), len(documents), index_id)
        return IndexUpsertResult(documents=len(documents), chunks=len(chunks))

    async def query(self, index_id: str, text: str, *, top_k: int = 5) -> list[IndexHit]:
        vector = await self._embedder.embed_text(text)
        client = await self._get_client()

        def _sync_query() -> list[IndexHit]:
            collection = client.get_or_create_collection(
                name=collection_name(index_id),
                metadata={"index_id": index_id},
            )
            if collection.count() == 0:
                return []
            result = collection.query(
                query_embeddings=[vector],
                n_results=max(int(top_k), 1),
                include=["documents", "metadatas", "distances"],
            )

            docs = (result.get("documents") or [[]])[0]
            metas = (result.get("metadatas") or [[]])[0]
            distances = (result.get("distances") or [[]])[0]
            ids = (result.get("ids") or [[]])[0]
            hits: list[IndexHit] = []
            for idx, doc in enumerate(docs):
                if not isinstance(doc, str):
                    continue
                metadata = metas[idx] if idx < len(metas) and isinstance(metas[idx], dict) else {}
                distance = float(distances[idx]) if idx < len(distances) else 1.0
                score = 1.0 / (1.0 + max(distance, 0.0))
                hit_id = ids[idx] if idx < len(ids) and isinstance(ids[idx], str) else f"hit_{idx}"
                hits.append(IndexHit(id=hit_id, text=doc, score=score, metadata=dict(metadata)))
            return hits

        return await asyncio.to_thread(_sync_query)

    async def delete_index(self, index_id: str) -> None:
        client = await self._get_client()
        await asyncio.to_thread(client.delete_collection, collection_name(index_id))

    async def _get_client(self) -> Any:
        async with self._client_lock:
            if self._client is None:
                self.persist_dir.mkdir(parents=True, exist_ok=True)
                self._client = chromadb.PersistentClient(path=str(self.persist_dir))
            return self._client


def chunk_document(filename: str, text: str, chunk_chars: int, chunk_overlap: int) -> list[IndexChunk]:
    normalized = re.sub(r"[ \t]+", " ", text).strip()
    if not normalized:
        return []
    step = chunk_chars - chunk_overlap
    chunks: list[IndexChunk] = []
    for chunk_index, start in enumerate(range(0, len(normalized), step)):
        body = normalized[start : start + chunk_chars].strip()
        if body:
            digest = hashlib.sha1(f"{filename}\x00{chunk_index}\x00{body}".encode("utf-8")).hexdigest()
            chunks.append(IndexChunk(id=digest, filename=filename, chunk_index=chunk_index, text=body))
        if start + chunk_chars >= len(normalized):
            break
    return chunks


def collection_name(index_id: str) -> str:
    # Chroma names: 3-63 chars of [A-Za-z0-9._-], alphanumeric at both ends.
    slug = re.sub(r"[^A-Za-z0-9_-]", "_", index_id)[:40]
    digest = hashlib.sha1(index_id.encode("utf-8")).hexdigest()[:8]
    return f"index_{slug}_{digest}"


_index: RetrievalIndex | None = None


def get_retrieval_index() -> RetrievalIndex:
    global _index
    if _index is None:
        _index = RetrievalIndex(settings.chroma_persist_dir)
    return _index
