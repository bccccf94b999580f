"""Webhook ingestion pipeline."""

from whatsdesk.services.pipeline.ingestion import IngestionOutcome, IngestionPipeline, OutcomeStatus

__all__ = ["IngestionOutcome", "IngestionPipeline", "OutcomeStatus"]
