# Indexing module
# Search-index collaborator used by the batch orchestrator

from .indexer import DocumentIndexer, NullIndexer, InMemoryIndexer, IndexRecord

__all__ = ["DocumentIndexer", "NullIndexer", "InMemoryIndexer", "IndexRecord"]
