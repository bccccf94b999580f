"""Knowledge base document models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class DocumentStatus(str, Enum):
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class DocumentCategory(str, Enum):
    SERVICES = "services"
    POLICIES = "policies"
    FAQ = "faq"
    PROCEDURES = "procedures"
    GENERAL = "general"


class KnowledgeDocument(BaseModel):
    """Reference document uploaded by a tenant.

    ``raw_text`` and ``chunks`` are fixed once the document is ready;
    only the metadata fields may change afterwards.
    """

    id: str
    tenant_id: str
    name: str
    category: DocumentCategory = DocumentCategory.GENERAL
    description: str | None = None
    keywords: list[str] = Field(default_factory=list)
    active: bool = True

    # File
    original_filename: str
    file_path: str
    file_size: int
    mime_type: str

    # Content
    status: DocumentStatus = DocumentStatus.PROCESSING
    raw_text: str = ""
    chunks: list[str] = Field(default_factory=list)
    error_message: str | None = None

    uploaded_by: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
