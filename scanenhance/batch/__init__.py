# Batch module
# Queue of documents driven through the pipeline:
# - Per-document status, progress and results
# - Sequential batch processing with auto-advance
# - Retry / reprocess and the manual review workflow

from .models import DocumentEntry, DocumentStatus, EventType, QueueEvent
from .orchestrator import BatchOrchestrator

__all__ = [
    "BatchOrchestrator",
    "DocumentEntry",
    "DocumentStatus",
    "EventType",
    "QueueEvent",
]
