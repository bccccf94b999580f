"""Knowledge base services."""

from whatsdesk.services.knowledge.blobs import BlobStore, InMemoryBlobStore, LocalBlobStore
from whatsdesk.services.knowledge.chunking import chunk_text, relevance_score
from whatsdesk.services.knowledge.store import (
    ALLOWED_MIME_TYPES,
    DocumentMetadata,
    KnowledgeHit,
    KnowledgeStore,
    PlainTextExtractor,
    TextExtractor,
)

__all__ = [
    "ALLOWED_MIME_TYPES",
    "BlobStore",
    "DocumentMetadata",
    "InMemoryBlobStore",
    "KnowledgeHit",
    "KnowledgeStore",
    "LocalBlobStore",
    "PlainTextExtractor",
    "TextExtractor",
    "chunk_text",
    "relevance_score",
]
