"""
scanenhance - Document photo scanning: corner detection, perspective
correction, enhancement and batch processing
"""
from .geometry import Quad, edge_length, estimate_target_size
from .pipeline import DocumentPipeline, PipelineConfig, PipelineStage, ProcessingResult
from .batch import BatchOrchestrator, DocumentEntry, DocumentStatus

__version__ = "0.1.0"

__all__ = [
    "Quad",
    "edge_length",
    "estimate_target_size",
    "DocumentPipeline",
    "PipelineConfig",
    "PipelineStage",
    "ProcessingResult",
    "BatchOrchestrator",
    "DocumentEntry",
    "DocumentStatus",
]
