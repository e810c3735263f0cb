"""
Queue models - Document entries, statuses and change events
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional
import uuid

import numpy as np

from ..geometry import Quad


class DocumentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REVIEWING = "reviewing"


class EventType(str, Enum):
    ENQUEUED = "enqueued"
    STATUS_CHANGED = "status_changed"
    PROGRESS = "progress"
    REMOVED = "removed"
    CLEARED = "cleared"
    ACTIVE_CHANGED = "active_changed"
    BATCH_STARTED = "batch_started"
    BATCH_PROGRESS = "batch_progress"
    BATCH_FINISHED = "batch_finished"


@dataclass
class QueueEvent:
    """Change notification delivered to orchestrator subscribers"""
    type: EventType
    entry_id: Optional[str] = None
    status: Optional[DocumentStatus] = None
    progress: Optional[float] = None


@dataclass
class DocumentEntry:
    """One document tracked by the batch orchestrator"""
    name: str
    source: Optional[Path] = None  # None for in-memory sources
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: DocumentStatus = DocumentStatus.PENDING
    progress: float = 0.0
    source_bytes: Optional[bytes] = None
    preview: Optional[np.ndarray] = None
    detected_quad: Optional[Quad] = None
    result_image: Optional[np.ndarray] = None
    result_bytes: Optional[bytes] = None
    error_message: Optional[str] = None
    confirmed: bool = False
    created_at: datetime = field(default_factory=datetime.now)
    processed_at: Optional[datetime] = None

    @property
    def file_size(self) -> int:
        return len(self.source_bytes) if self.source_bytes is not None else 0

    @property
    def is_completed(self) -> bool:
        return self.status == DocumentStatus.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.status == DocumentStatus.FAILED

    @property
    def is_processing(self) -> bool:
        return self.status == DocumentStatus.PROCESSING

    @property
    def can_retry(self) -> bool:
        return self.status in (DocumentStatus.COMPLETED, DocumentStatus.FAILED, DocumentStatus.REVIEWING)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "source": str(self.source) if self.source else None,
            "status": self.status.value,
            "progress": self.progress,
            "detected_quad": self.detected_quad.to_list() if self.detected_quad else None,
            "result_size": (
                [self.result_image.shape[1], self.result_image.shape[0]]
                if self.result_image is not None else None
            ),
            "error": self.error_message,
            "confirmed": self.confirmed,
            "created_at": self.created_at.isoformat(),
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
        }
