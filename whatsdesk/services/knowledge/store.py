"""Knowledge store: document upload, chunking and lexical search."""

import secrets
import time
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any
from uuid import uuid4

import structlog

from whatsdesk.core.config import settings
from whatsdesk.core.exceptions import DocumentNotFound, KnowledgeStoreError, ValidationError
from whatsdesk.models import DocumentCategory, DocumentStatus, KnowledgeDocument
from whatsdesk.services.knowledge.blobs import BlobStore
from whatsdesk.services.knowledge.chunking import (
    RELEVANCE_THRESHOLD,
    chunk_text,
    query_terms,
    relevance_score,
)
from whatsdesk.storage.base import StorageBackend

logger = structlog.get_logger()

ALLOWED_MIME_TYPES: dict[str, str] = {
    "application/pdf": "pdf",
    "text/plain": "txt",
    "application/msword": "doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "text/csv": "csv",
}

# Unchunked documents are returned truncated to this many characters
UNCHUNKED_PREVIEW_CHARS = 500


@dataclass
class KnowledgeHit:
    """A chunk returned by search."""

    document_id: str
    document_name: str
    chunk_text: str
    relevance_score: float
    category: DocumentCategory = DocumentCategory.GENERAL


@dataclass
class DocumentMetadata:
    name: str
    category: DocumentCategory = DocumentCategory.GENERAL
    description: str | None = None
    keywords: list[str] | None = None


class TextExtractor(ABC):
    """Turns uploaded bytes into plain text."""

    @abstractmethod
    async def extract(self, data: bytes, mime_type: str, filename: str) -> str | None:
        """Return the text, or None when this extractor cannot read the format."""
        ...


class PlainTextExtractor(TextExtractor):
    """Decodes text and CSV uploads; other formats wait for an external extractor."""

    TEXT_TYPES = frozenset({"text/plain", "text/csv"})

    async def extract(self, data: bytes, mime_type: str, filename: str) -> str | None:
        if mime_type not in self.TEXT_TYPES:
            return None
        return data.decode("utf-8", errors="replace")


class KnowledgeStore:
    """Holds tenant reference documents and answers relevance queries."""

    def __init__(
        self,
        storage: StorageBackend,
        blobs: BlobStore,
        extractor: TextExtractor | None = None,
        chunk_size: int | None = None,
        chunk_overlap: int | None = None,
        max_upload_bytes: int | None = None,
    ) -> None:
        self.storage = storage
        self.blobs = blobs
        self.extractor = extractor or PlainTextExtractor()
        self.chunk_size = chunk_size or settings.knowledge_chunk_size
        self.chunk_overlap = chunk_overlap if chunk_overlap is not None else settings.knowledge_chunk_overlap
        self.max_upload_bytes = max_upload_bytes or settings.knowledge_max_upload_bytes

    # ==================== Upload ====================

    def validate_upload(self, mime_type: str, size: int) -> None:
        """Reject files by type and size before anything is written."""
        if mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                "File type not allowed. Use PDF, DOC, DOCX, TXT or CSV.",
                details={"mime_type": mime_type, "allowed": sorted(ALLOWED_MIME_TYPES)},
            )
        if size > self.max_upload_bytes:
            raise ValidationError(
                f"File too large. Maximum size is {self.max_upload_bytes // (1024 * 1024)}MB.",
                details={"size": size, "max_size": self.max_upload_bytes},
            )

    @staticmethod
    def _blob_path(tenant_id: str, filename: str, mime_type: str) -> str:
        ext = PurePosixPath(filename).suffix.lstrip(".").lower() or ALLOWED_MIME_TYPES[mime_type]
        return f"{tenant_id}/{int(time.time() * 1000)}-{secrets.token_hex(4)}.{ext}"

    async def upload(
        self,
        tenant_id: str,
        filename: str,
        mime_type: str,
        data: bytes,
        metadata: DocumentMetadata,
        uploaded_by: str | None = None,
    ) -> KnowledgeDocument:
        """Store a document and chunk its text.

        Args:
            tenant_id: Owning tenant
            filename: Original file name
            mime_type: Declared content type
            data: File bytes
            metadata: Name, category, description and keywords
            uploaded_by: User who uploaded the file

        Returns:
            The saved document, ``ready`` when its text could be extracted

        Raises:
            ValidationError: Bad type or size (nothing has been written)
            KnowledgeStoreError: Failure after the raw file was written
                (the raw file has been removed)
        """
        self.validate_upload(mime_type, len(data))

        path = self._blob_path(tenant_id, filename, mime_type)
        await self.blobs.put(path, data, mime_type)

        try:
            text = await self._extract(data, mime_type, filename)
            document = KnowledgeDocument(
                id=str(uuid4()),
                tenant_id=tenant_id,
                name=metadata.name,
                category=metadata.category,
                description=metadata.description,
                keywords=metadata.keywords or [],
                original_filename=filename,
                file_path=path,
                file_size=len(data),
                mime_type=mime_type,
                raw_text=text or "",
                uploaded_by=uploaded_by,
            )
            if text:
                document.chunks = chunk_text(text, self.chunk_size, self.chunk_overlap)
                document.status = DocumentStatus.READY
            await self.storage.save_document(document)
        except Exception as e:
            logger.error("Document upload failed after storing file", tenant_id=tenant_id, path=path, error=str(e))
            await self._discard_blob(path)
            raise KnowledgeStoreError(
                f"Failed to save document: {e}",
                details={"filename": filename},
            ) from e

        logger.info(
            "Document uploaded",
            tenant_id=tenant_id,
            document_id=document.id,
            status=document.status.value,
            chunks=len(document.chunks),
        )
        return document

    async def _extract(self, data: bytes, mime_type: str, filename: str) -> str | None:
        try:
            return await self.extractor.extract(data, mime_type, filename)
        except Exception as e:
            logger.warning("Text extraction failed", filename=filename, error=str(e))
            return None

    async def _discard_blob(self, path: str) -> None:
        try:
            await self.blobs.delete(path)
        except Exception as e:
            logger.error("Failed to remove orphaned file", path=path, error=str(e))

    async def process_document(self, document_id: str, text: str) -> KnowledgeDocument:
        """Attach externally extracted text to a document still in ``processing``."""
        document = await self.storage.get_document(document_id)
        if document is None:
            raise DocumentNotFound(document_id)
        if document.status != DocumentStatus.PROCESSING:
            raise ValidationError(
                "Document content is immutable once processed; upload it again instead",
                details={"document_id": document_id, "status": document.status.value},
            )

        document.raw_text = text
        try:
            document.chunks = chunk_text(text, self.chunk_size, self.chunk_overlap)
            document.status = DocumentStatus.READY if document.chunks else DocumentStatus.ERROR
            document.error_message = None if document.chunks else "No text content"
        except Exception as e:
            document.status = DocumentStatus.ERROR
            document.error_message = str(e)

        await self.storage.save_document(document)
        logger.info("Document processed", document_id=document_id, status=document.status.value)
        return document

    # ==================== Search ====================

    async def search(
        self,
        tenant_id: str,
        query: str,
        category: DocumentCategory | None = None,
        limit: int | None = None,
    ) -> list[KnowledgeHit]:
        """Rank chunks of ready, active documents against ``query``.

        Returns:
            Hits scoring above 0.1, best first; ties keep document and
            chunk order
        """
        limit = limit or settings.knowledge_search_limit
        terms = query_terms(query)
        if not terms:
            return []

        documents = await self.storage.list_documents(
            tenant_id,
            status=DocumentStatus.READY,
            active=True,
            category=category,
        )

        hits: list[KnowledgeHit] = []
        for document in documents:
            if document.chunks:
                candidates = [(chunk, chunk) for chunk in document.chunks]
            elif document.raw_text:
                preview = document.raw_text[:UNCHUNKED_PREVIEW_CHARS] + "..."
                candidates = [(document.raw_text, preview)]
            else:
                continue

            for scored_text, shown_text in candidates:
                score = relevance_score(terms, scored_text)
                if score > RELEVANCE_THRESHOLD:
                    hits.append(
                        KnowledgeHit(
                            document_id=document.id,
                            document_name=document.name,
                            chunk_text=shown_text,
                            relevance_score=score,
                            category=document.category,
                        )
                    )

        # list.sort is stable, reverse=True included
        hits.sort(key=lambda h: h.relevance_score, reverse=True)
        return hits[:limit]

    # ==================== Management ====================

    async def get_document(self, tenant_id: str, document_id: str) -> KnowledgeDocument:
        document = await self.storage.get_document(document_id)
        if document is None or document.tenant_id != tenant_id:
            raise DocumentNotFound(document_id)
        return document

    async def list_documents(
        self,
        tenant_id: str,
        category: DocumentCategory | None = None,
    ) -> list[KnowledgeDocument]:
        return await self.storage.list_documents(tenant_id, category=category)

    async def update_metadata(
        self,
        tenant_id: str,
        document_id: str,
        name: str | None = None,
        category: DocumentCategory | None = None,
        description: str | None = None,
        keywords: list[str] | None = None,
        active: bool | None = None,
    ) -> KnowledgeDocument:
        """Edit metadata; text and chunks are never touched."""
        document = await self.get_document(tenant_id, document_id)

        if name is not None:
            document.name = name
        if category is not None:
            document.category = DocumentCategory(category)
        if description is not None:
            document.description = description
        if keywords is not None:
            document.keywords = keywords
        if active is not None:
            document.active = active

        await self.storage.save_document(document)
        logger.info("Document metadata updated", document_id=document_id)
        return document

    async def delete_document(self, tenant_id: str, document_id: str) -> None:
        document = await self.get_document(tenant_id, document_id)
        await self._discard_blob(document.file_path)
        await self.storage.delete_document(document_id)
        logger.info("Document deleted", tenant_id=tenant_id, document_id=document_id)

    async def stats(self, tenant_id: str) -> dict[str, Any]:
        documents = await self.storage.list_documents(tenant_id)
        total_size = sum(d.file_size for d in documents)
        return {
            "total": len(documents),
            "by_category": dict(Counter(d.category.value for d in documents)),
            "by_status": dict(Counter(d.status.value for d in documents)),
            "total_size_mb": round(total_size / (1024 * 1024), 2),
        }
