"""
Document indexers - Hooks for registering scanned documents with a search index
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List
import logging

logger = logging.getLogger(__name__)

BASE_KEYWORDS = ["scan", "document", "enhanced", "image processing"]


@dataclass
class IndexRecord:
    """Searchable attributes of one document"""
    entry_id: str
    title: str
    description: str = "Enhanced scanned document"
    keywords: List[str] = field(default_factory=list)


class DocumentIndexer(ABC):
    """Search index collaborator injected into the batch orchestrator"""

    @abstractmethod
    def index(self, entry) -> None:
        """Add or refresh an entry"""
        pass

    @abstractmethod
    def remove(self, entry_id: str) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass


class NullIndexer(DocumentIndexer):
    """Indexer that ignores everything"""

    def index(self, entry) -> None:
        pass

    def remove(self, entry_id: str) -> None:
        pass

    def clear(self) -> None:
        pass


class InMemoryIndexer(DocumentIndexer):
    """Keeps index records in a dict, keyed by entry id"""

    def __init__(self):
        self.records: Dict[str, IndexRecord] = {}

    def index(self, entry) -> None:
        keywords = list(BASE_KEYWORDS)
        if entry.status.value == "completed":
            keywords.append("processed")
        self.records[entry.id] = IndexRecord(entry_id=entry.id, title=entry.name, keywords=keywords)
        logger.debug(f"Indexed {entry.name} ({entry.id})")

    def remove(self, entry_id: str) -> None:
        self.records.pop(entry_id, None)

    def clear(self) -> None:
        self.records.clear()

    def search(self, term: str) -> List[IndexRecord]:
        term = term.lower()
        return [
            record for record in self.records.values()
            if term in record.title.lower() or any(term in k for k in record.keywords)
        ]
