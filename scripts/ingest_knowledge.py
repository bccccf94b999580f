#!/usr/bin/env python3
"""Script to upload local text and CSV files into a tenant's knowledge base."""

import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from whatsdesk.api.dependencies import build_services
from whatsdesk.core.config import settings
from whatsdesk.core.exceptions import AppException
from whatsdesk.core.logging import configure_logging
from whatsdesk.models import DocumentCategory
from whatsdesk.services.knowledge import DocumentMetadata, KnowledgeStore

MIME_BY_SUFFIX = {
    ".txt": "text/plain",
    ".md": "text/plain",
    ".csv": "text/csv",
}


async def ingest_file(
    file_path: Path,
    tenant_id: str,
    knowledge: KnowledgeStore,
    category: DocumentCategory,
) -> int:
    """Upload a single file; returns the number of chunks stored."""
    print(f"Processing: {file_path}")

    mime_type = MIME_BY_SUFFIX.get(file_path.suffix.lower())
    if mime_type is None:
        print("  Skipped: unsupported extension")
        return 0

    try:
        document = await knowledge.upload(
            tenant_id,
            filename=file_path.name,
            mime_type=mime_type,
            data=file_path.read_bytes(),
            metadata=DocumentMetadata(name=file_path.stem, category=category),
            uploaded_by="ingest_knowledge",
        )
    except AppException as e:
        print(f"  Failed: {e.message}")
        return 0

    print(f"  Stored document {document.id} ({document.status.value}, {len(document.chunks)} chunks)")
    return len(document.chunks)


async def main():
    parser = argparse.ArgumentParser(description="Upload documents into a tenant's knowledge base")
    parser.add_argument("tenant_id", help="Tenant ID")
    parser.add_argument("path", help="File or directory path to ingest")
    parser.add_argument(
        "--category",
        choices=[c.value for c in DocumentCategory],
        default=DocumentCategory.GENERAL.value,
        help="Category for every uploaded document",
    )
    parser.add_argument("--extensions", nargs="+", default=list(MIME_BY_SUFFIX), help="File extensions to process")

    args = parser.parse_args()
    configure_logging()

    path = Path(args.path)

    if not path.exists():
        print(f"Error: Path does not exist: {path}")
        sys.exit(1)

    if settings.storage_backend == "memory":
        print("Warning: STORAGE_BACKEND=memory, documents will not outlive this process")

    services = build_services()
    category = DocumentCategory(args.category)

    total_chunks = 0

    if path.is_file():
        total_chunks = await ingest_file(path, args.tenant_id, services.knowledge, category)
    else:
        for ext in args.extensions:
            for file_path in sorted(path.rglob(f"*{ext}")):
                total_chunks += await ingest_file(file_path, args.tenant_id, services.knowledge, category)

    await services.shutdown()
    print(f"\nTotal chunks ingested: {total_chunks}")


if __name__ == "__main__":
    asyncio.run(main())
