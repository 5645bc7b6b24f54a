from __future__ import annotations

import re

import pytest

from research_engine.services.retrieval_index import RetrievalIndex, chunk_document, collection_name


class FakeEmbedder:
    def __init__(self):
        self.batches: list[list[str]] = []

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        self.batches.append(list(texts))
        return [[float(len(text)), 1.0] for text in texts]

    async def embed_text(self, text: str) -> list[float]:
        return (await self.embed_texts([text]))[0]


class FakeCollection:
    def __init__(self):
        self.rows: dict[str, dict] = {}

    def upsert(self, ids, documents, metadatas, embeddings):
        for row_id, doc, meta, emb in zip(ids, documents, metadatas, embeddings):
            self.rows[row_id] = {"document": doc, "metadata": meta, "embedding": emb}

    def count(self) -> int:
        return len(self.rows)

    def query(self, query_embeddings, n_results, include):
        ids = list(self.rows)[:n_results]
        return {
            "ids": [ids],
            "documents": [[self.rows[i]["document"] for i in ids]],
            "metadatas": [[self.rows[i]["metadata"] for i in ids]],
            "distances": [[0.0 + idx for idx, _ in enumerate(ids)]],
        }


class FakeChromaClient:
    def __init__(self):
        self.collections: dict[str, FakeCollection] = {}
        self.deleted: list[str] = []

    def get_or_create_collection(self, name, metadata=None):
        return self.collections.setdefault(name, FakeCollection())

    def delete_collection(self, name):
        self.deleted.append(name)
        self.collections.pop(name, None)


def _index(tmp_path, **kwargs) -> tuple[RetrievalIndex, FakeChromaClient, FakeEmbedder]:
    embedder = FakeEmbedder()
    index = RetrievalIndex(str(tmp_path), embedder=embedder, **kwargs)
    client = FakeChromaClient()
    index._client = client
    return index, client, embedder


def test_chunk_document_windows_overlap():
    chunks = chunk_document("notes.md", "abcdefghij", chunk_chars=4, chunk_overlap=1)

    assert [chunk.text for chunk in chunks] == ["abcd", "defg", "ghij"]
    assert [chunk.chunk_index for chunk in chunks] == [0, 1, 2]
    assert len({chunk.id for chunk in chunks}) == 3


def test_chunk_document_blank_text_has_no_chunks():
    assert chunk_document("empty.md", "   \t ", chunk_chars=10, chunk_overlap=2) == []


def test_collection_name_is_chroma_safe_and_stable():
    name = collection_name("Quarterly reports / 2024!")

    assert name == collection_name("Quarterly reports / 2024!")
    assert name != collection_name("Quarterly reports / 2025!")
    assert re.fullmatch(r"[A-Za-z0-9][A-Za-z0-9._-]{1,61}[A-Za-z0-9]", name)


def test_overlap_must_be_smaller_than_chunk(tmp_path):
    with pytest.raises(ValueError):
        RetrievalIndex(str(tmp_path), embedder=FakeEmbedder(), chunk_chars=10, chunk_overlap=10)


@pytest.mark.asyncio
async def test_add_documents_then_query(tmp_path):
    index, client, embedder = _index(tmp_path, chunk_chars=100, chunk_overlap=10)

    result = await index.add_documents(
        "handbook",
        [("pricing.md", "Plans start at ten dollars."), ("faq.md", "Refunds within 30 days.")],
    )
    hits = await index.query("handbook", "how much", top_k=5)

    assert (result.documents, result.chunks) == (2, 2)
    assert embedder.batches[0] == ["Plans start at ten dollars.", "Refunds within 30 days."]
    assert [hit.metadata["filename"] for hit in hits] == ["pricing.md", "faq.md"]
    assert hits[0].score == 1.0
    assert hits[0].score > hits[1].score
    assert list(client.collections) == [collection_name("handbook")]


@pytest.mark.asyncio
async def test_query_on_empty_index_returns_nothing(tmp_path):
    index, _, _ = _index(tmp_path)

    assert await index.query("missing", "anything") == []


@pytest.mark.asyncio
async def test_add_documents_without_text_is_a_noop(tmp_path):
    index, client, embedder = _index(tmp_path)

    result = await index.add_documents("handbook", [("blank.md", "  ")])

    assert (result.documents, result.chunks) == (0, 0)
    assert embedder.batches == []
    assert client.collections == {}


@pytest.mark.asyncio
async def test_delete_index_drops_collection(tmp_path):
    index, client, _ = _index(tmp_path)
    await index.add_documents("handbook", [("a.md", "text")])

    await index.delete_index("handbook")

    assert client.deleted == [collection_name("handbook")]
