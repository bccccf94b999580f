"""Tests for the knowledge store."""

import pytest

from whatsdesk.core.exceptions import KnowledgeStoreError, ValidationError
from whatsdesk.models import DocumentCategory, DocumentStatus
from whatsdesk.services.knowledge import DocumentMetadata, InMemoryBlobStore, KnowledgeStore, chunk_text
from whatsdesk.services.knowledge.chunking import relevance_score
from whatsdesk.storage.memory import InMemoryStorage

TENANT = "test-tenant"


class BrokenDocumentStorage(InMemoryStorage):
    async def save_document(self, document):
        raise ConnectionError("write failed")


@pytest.fixture
def blobs():
    return InMemoryBlobStore()


@pytest.fixture
def knowledge(storage, blobs):
    return KnowledgeStore(storage, blobs, chunk_size=500, chunk_overlap=50)


async def upload_text(knowledge, text, name="doc", category=DocumentCategory.GENERAL):
    return await knowledge.upload(
        TENANT,
        filename=f"{name}.txt",
        mime_type="text/plain",
        data=text.encode(),
        metadata=DocumentMetadata(name=name, category=category),
    )


# ==================== Chunking ====================


@pytest.mark.parametrize("word_count", [0, 1, 49, 450, 500, 501, 950, 1337, 4000])
def test_chunks_reconstruct_original_words(word_count):
    words = [f"w{i}" for i in range(word_count)]

    chunks = chunk_text(" ".join(words), 500, 50)

    rebuilt = chunks[0].split() if chunks else []
    for chunk in chunks[1:]:
        rebuilt.extend(chunk.split()[50:])
    assert rebuilt == words
    assert chunks == chunk_text(" ".join(words), 500, 50)


def test_chunk_windows_advance_by_size_minus_overlap():
    words = [f"w{i}" for i in range(1000)]

    chunks = chunk_text(" ".join(words), 500, 50)

    assert len(chunks) == 3
    assert chunks[1].split()[0] == "w450"
    assert chunks[2].split()[0] == "w900"


def test_whitespace_only_text_has_no_chunks():
    assert chunk_text("   \n\t  ") == []


def test_invalid_chunk_parameters():
    with pytest.raises(ValueError):
        chunk_text("a b c", chunk_size=10, overlap=10)


def test_relevance_score_is_capped():
    assert relevance_score(["clareamento"], "clareamento clareamento") == 1.0
    assert relevance_score(["clareamento"], "") == 0.0


# ==================== Upload ====================


@pytest.mark.asyncio
async def test_upload_text_document_is_ready(knowledge, blobs, storage):
    document = await upload_text(knowledge, "Fazemos limpeza e clareamento dental.")

    assert document.status == DocumentStatus.READY
    assert document.chunks == ["Fazemos limpeza e clareamento dental."]
    assert await blobs.exists(document.file_path)
    assert (await storage.get_document(document.id)) is not None


@pytest.mark.asyncio
async def test_oversized_upload_rejected_before_any_write(knowledge, blobs, storage):
    data = b"x" * (15 * 1024 * 1024)

    with pytest.raises(ValidationError):
        await knowledge.upload(
            TENANT,
            filename="big.txt",
            mime_type="text/plain",
            data=data,
            metadata=DocumentMetadata(name="big"),
        )

    assert blobs.blobs == {}
    assert await storage.list_documents(TENANT) == []


@pytest.mark.asyncio
async def test_disallowed_type_rejected(knowledge, blobs):
    with pytest.raises(ValidationError):
        await knowledge.upload(
            TENANT,
            filename="photo.png",
            mime_type="image/png",
            data=b"\x89PNG",
            metadata=DocumentMetadata(name="photo"),
        )

    assert blobs.blobs == {}


@pytest.mark.asyncio
async def test_failure_after_blob_write_removes_blob(blobs):
    knowledge = KnowledgeStore(BrokenDocumentStorage(), blobs)

    with pytest.raises(KnowledgeStoreError):
        await upload_text(knowledge, "conteúdo qualquer")

    assert blobs.blobs == {}


@pytest.mark.asyncio
async def test_pdf_waits_for_extracted_text(knowledge):
    document = await knowledge.upload(
        TENANT,
        filename="tabela.pdf",
        mime_type="application/pdf",
        data=b"%PDF-1.4",
        metadata=DocumentMetadata(name="Tabela de preços"),
    )
    assert document.status == DocumentStatus.PROCESSING
    assert await knowledge.search(TENANT, "clareamento") == []

    processed = await knowledge.process_document(document.id, "clareamento dental")

    assert processed.status == DocumentStatus.READY
    assert len(await knowledge.search(TENANT, "clareamento")) == 1

    with pytest.raises(ValidationError):
        await knowledge.process_document(document.id, "outro texto")


# ==================== Search ====================


@pytest.mark.asyncio
async def test_search_filters_and_orders_by_score(knowledge):
    await upload_text(knowledge, "clareamento dental clareamento", name="strong")
    await upload_text(knowledge, "clareamento dental com gel profissional importado", name="medium")
    weak = " ".join(["clareamento"] + [f"palavra{i}" for i in range(19)])
    await upload_text(knowledge, weak, name="weak")
    await upload_text(knowledge, "Estacionamento gratuito disponível", name="unrelated")

    hits = await knowledge.search(TENANT, "clareamento")

    assert [h.document_name for h in hits] == ["strong", "medium"]
    assert all(h.relevance_score > 0.1 for h in hits)
    scores = [h.relevance_score for h in hits]
    assert scores == sorted(scores, reverse=True)


@pytest.mark.asyncio
async def test_search_respects_limit_category_and_active(knowledge):
    faq = await upload_text(knowledge, "clareamento dental", name="faq", category=DocumentCategory.FAQ)
    await upload_text(knowledge, "clareamento dental", name="services", category=DocumentCategory.SERVICES)

    assert len(await knowledge.search(TENANT, "clareamento", limit=1)) == 1

    hits = await knowledge.search(TENANT, "clareamento", category=DocumentCategory.FAQ)
    assert [h.document_name for h in hits] == ["faq"]

    await knowledge.update_metadata(TENANT, faq.id, active=False)
    hits = await knowledge.search(TENANT, "clareamento")
    assert [h.document_name for h in hits] == ["services"]


@pytest.mark.asyncio
async def test_search_is_scoped_to_tenant(knowledge):
    await upload_text(knowledge, "clareamento dental")

    assert await knowledge.search("other-tenant", "clareamento") == []


@pytest.mark.asyncio
async def test_empty_query_returns_nothing(knowledge):
    await upload_text(knowledge, "clareamento dental")

    assert await knowledge.search(TENANT, "   ") == []


# ==================== Management ====================


@pytest.mark.asyncio
async def test_update_metadata_keeps_content(knowledge):
    document = await upload_text(knowledge, "clareamento dental")

    updated = await knowledge.update_metadata(TENANT, document.id, name="Serviços", keywords=["dente"])

    assert updated.name == "Serviços"
    assert updated.keywords == ["dente"]
    assert updated.chunks == document.chunks


@pytest.mark.asyncio
async def test_delete_document_removes_blob(knowledge, blobs):
    document = await upload_text(knowledge, "clareamento dental")

    await knowledge.delete_document(TENANT, document.id)

    assert blobs.blobs == {}
    assert await knowledge.list_documents(TENANT) == []


@pytest.mark.asyncio
async def test_stats(knowledge):
    await upload_text(knowledge, "um", category=DocumentCategory.FAQ)
    await upload_text(knowledge, "dois", category=DocumentCategory.FAQ)

    stats = await knowledge.stats(TENANT)

    assert stats["total"] == 2
    assert stats["by_category"] == {"faq": 2}
    assert stats["by_status"] == {"ready": 2}
