"""Service layer modules used by background jobs and APIs."""

from .scan_ingest import ScanIngestResult, ScanIngestionService

__all__ = ["ScanIngestResult", "ScanIngestionService"]
