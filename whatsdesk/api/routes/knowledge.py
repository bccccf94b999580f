"""Knowledge base endpoints."""

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, File, Form, UploadFile, status
from pydantic import BaseModel

from whatsdesk.api.dependencies import ActorDep, ServicesDep
from whatsdesk.models import DocumentCategory, KnowledgeDocument
from whatsdesk.services.knowledge import DocumentMetadata

logger = structlog.get_logger()

router = APIRouter(prefix="/admin/tenants/{tenant_id}/knowledge", tags=["Knowledge"])


class DocumentUpdate(BaseModel):
    name: str | None = None
    category: DocumentCategory | None = None
    description: str | None = None
    keywords: list[str] | None = None
    active: bool | None = None


class SearchRequest(BaseModel):
    query: str
    category: DocumentCategory | None = None
    limit: int = 5


def _summary(document: KnowledgeDocument) -> dict[str, Any]:
    return document.model_dump(exclude={"raw_text", "chunks"}) | {"chunk_count": len(document.chunks)}


@router.post("/documents", status_code=status.HTTP_201_CREATED)
async def upload_document(
    tenant_id: str,
    services: ServicesDep,
    actor: ActorDep,
    file: Annotated[UploadFile, File()],
    name: Annotated[str, Form()],
    category: Annotated[DocumentCategory, Form()] = DocumentCategory.GENERAL,
    description: Annotated[str | None, Form()] = None,
    keywords: Annotated[str | None, Form(description="Comma separated")] = None,
) -> dict[str, Any]:
    """Upload a reference document (PDF, DOC, DOCX, TXT or CSV, up to 10MB)."""
    mime_type = file.content_type or "application/octet-stream"
    # Reject on the declared size before reading the body
    if file.size is not None:
        services.knowledge.validate_upload(mime_type, file.size)

    data = await file.read()
    document = await services.knowledge.upload(
        tenant_id,
        filename=file.filename or name,
        mime_type=mime_type,
        data=data,
        metadata=DocumentMetadata(
            name=name,
            category=category,
            description=description,
            keywords=[k.strip() for k in keywords.split(",") if k.strip()] if keywords else None,
        ),
        uploaded_by=actor,
    )
    return _summary(document)


@router.get("/documents")
async def list_documents(
    tenant_id: str,
    services: ServicesDep,
    category: DocumentCategory | None = None,
) -> dict[str, Any]:
    documents = await services.knowledge.list_documents(tenant_id, category=category)
    return {
        "tenant_id": tenant_id,
        "count": len(documents),
        "documents": [_summary(d) for d in documents],
    }


@router.get("/documents/{document_id}")
async def get_document(tenant_id: str, document_id: str, services: ServicesDep) -> dict[str, Any]:
    return _summary(await services.knowledge.get_document(tenant_id, document_id))


@router.patch("/documents/{document_id}")
async def update_document(
    tenant_id: str,
    document_id: str,
    data: DocumentUpdate,
    services: ServicesDep,
) -> dict[str, Any]:
    document = await services.knowledge.update_metadata(tenant_id, document_id, **data.model_dump(exclude_unset=True))
    return _summary(document)


@router.delete("/documents/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(tenant_id: str, document_id: str, services: ServicesDep) -> None:
    await services.knowledge.delete_document(tenant_id, document_id)


@router.post("/search")
async def search_knowledge(tenant_id: str, data: SearchRequest, services: ServicesDep) -> dict[str, Any]:
    """Search the tenant's ready documents."""
    hits = await services.knowledge.search(tenant_id, data.query, category=data.category, limit=data.limit)
    return {
        "query": data.query,
        "results": [
            {
                "document_id": h.document_id,
                "document_name": h.document_name,
                "content": h.chunk_text,
                "score": h.relevance_score,
                "category": h.category.value,
            }
            for h in hits
        ],
    }


@router.get("/stats")
async def knowledge_stats(tenant_id: str, services: ServicesDep) -> dict[str, Any]:
    return await services.knowledge.stats(tenant_id)
