"""
Pipeline - Detect, rectify and enhance a single document photo
"""
from typing import Optional, Callable, Sequence, Tuple, Union
from dataclasses import dataclass, field
from enum import Enum
import logging
import time

import numpy as np

from .detection import CornerDetector, CornerDetectorConfig, DetectorConfig, RectangleDetector
from .enhancement import DocumentEnhancer, EnhancementConfig
from .errors import ProcessingCancelled
from .export import ExportFormat, encode_image
from .geometry import DEFAULT_MAX_DIMENSION, DEFAULT_MIN_DIMENSION, Quad, QuadLike, as_quad
from .ingestion import decode_image
from .rectification import PerspectiveRectifier

logger = logging.getLogger(__name__)

ProgressCallback = Callable[["PipelineStage", float, str], None]
CancelCheck = Callable[[], bool]


class PipelineStage(Enum):
    DECODE = "decode"
    DETECTION = "detection"
    RECTIFICATION = "rectification"
    ENHANCEMENT = "enhancement"
    ENCODE = "encode"


# Overall progress reported when each stage starts
STAGE_PROGRESS = {
    PipelineStage.DECODE: 0.0,
    PipelineStage.DETECTION: 0.2,
    PipelineStage.RECTIFICATION: 0.5,
    PipelineStage.ENHANCEMENT: 0.8,
    PipelineStage.ENCODE: 0.9,
}


@dataclass
class PipelineConfig:
    """Configuration for pipeline execution"""
    # Detection
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    use_fallback: bool = True
    fallback_margin: float = 0.05

    # Rectification
    min_dimension: int = DEFAULT_MIN_DIMENSION
    max_dimension: int = DEFAULT_MAX_DIMENSION

    # Enhancement
    enhance: bool = True
    enhancement: EnhancementConfig = field(default_factory=EnhancementConfig)

    # Output
    output_format: ExportFormat = ExportFormat.JPEG
    quality: float = 0.9

    @classmethod
    def from_settings(cls, settings=None) -> "PipelineConfig":
        """Build a pipeline configuration from application settings"""
        if settings is None:
            from config.settings import settings

        return cls(
            detector=DetectorConfig(
                min_aspect_ratio=settings.min_aspect_ratio,
                max_aspect_ratio=settings.max_aspect_ratio,
                min_size=settings.min_size,
                min_confidence=settings.min_confidence,
                max_observations=settings.max_observations,
            ),
            use_fallback=settings.use_fallback,
            fallback_margin=settings.fallback_margin,
            min_dimension=settings.min_dimension,
            max_dimension=settings.max_dimension,
            enhance=settings.enhance,
            enhancement=EnhancementConfig(
                contrast=settings.contrast,
                saturation=settings.saturation,
                brightness=settings.brightness,
                gamma=settings.gamma,
                grayscale=settings.grayscale,
                sharpen_intensity=settings.sharpen_intensity,
            ),
            output_format=ExportFormat(settings.output_format),
            quality=settings.jpeg_quality,
        )


@dataclass
class ProcessingResult:
    """Result of processing one document"""
    data: bytes
    quad: Quad
    image: np.ndarray
    used_fallback: bool = False
    timing: dict = field(default_factory=dict)

    @property
    def size(self) -> Tuple[int, int]:
        return self.image.shape[1], self.image.shape[0]


class DocumentPipeline:
    """
    Per-document processing pipeline.

    Pipeline stages:
    1. Decode: source bytes to raster
    2. Detection: find the document quadrilateral (auto mode only)
    3. Rectification: perspective-correct the quadrilateral
    4. Enhancement: illumination, color, sharpening, denoise
    5. Encode: raster to JPEG/PNG bytes

    The pipeline holds no per-document state and writes nothing; the same
    instance can process any number of documents, one call at a time.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        primary_detector: Optional[RectangleDetector] = None,
    ):
        self.config = config or PipelineConfig()
        cfg = self.config
        self.detector = CornerDetector(
            CornerDetectorConfig(
                thresholds=cfg.detector,
                use_fallback=cfg.use_fallback,
                fallback_margin=cfg.fallback_margin,
            ),
            primary=primary_detector,
        )
        self.rectifier = PerspectiveRectifier(cfg.min_dimension, cfg.max_dimension)
        self.enhancer = DocumentEnhancer(cfg.enhancement)

    def auto_process(
        self,
        source_bytes: bytes,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_check: Optional[CancelCheck] = None,
    ) -> ProcessingResult:
        """Decode, detect, rectify, enhance and encode"""
        return self._run(source_bytes, None, progress_callback, cancel_check)

    def manual_process(
        self,
        source_bytes: bytes,
        quad: QuadLike,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_check: Optional[CancelCheck] = None,
    ) -> ProcessingResult:
        """Decode, rectify with a caller-supplied quad, enhance and encode"""
        return self._run(source_bytes, as_quad(quad), progress_callback, cancel_check)

    def process(
        self,
        source_bytes: bytes,
        quad: Union[QuadLike, None] = None,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_check: Optional[CancelCheck] = None,
    ) -> ProcessingResult:
        """
        Process a document, detecting corners unless a quad is given.

        An empty point list is treated like None and re-runs auto-detection.
        Any other point count raises InvalidCornerCount.
        """
        if quad is None or (not isinstance(quad, Quad) and len(quad) == 0):
            return self.auto_process(source_bytes, progress_callback, cancel_check)
        return self.manual_process(source_bytes, quad, progress_callback, cancel_check)

    def _run(
        self,
        source_bytes: bytes,
        quad: Optional[Quad],
        progress_callback: Optional[ProgressCallback],
        cancel_check: Optional[CancelCheck],
    ) -> ProcessingResult:
        cfg = self.config
        timing = {}
        used_fallback = False

        def enter(stage: PipelineStage, message: str):
            if cancel_check is not None and cancel_check():
                raise ProcessingCancelled(f"Processing cancelled before {stage.value}")
            if progress_callback is not None:
                progress_callback(stage, STAGE_PROGRESS[stage], message)

        def timed(stage: PipelineStage, fn, *args, **kwargs):
            start = time.perf_counter()
            try:
                return fn(*args, **kwargs)
            finally:
                timing[stage.value] = time.perf_counter() - start

        enter(PipelineStage.DECODE, "Decoding image...")
        image = timed(PipelineStage.DECODE, decode_image, source_bytes)

        if quad is None:
            enter(PipelineStage.DETECTION, "Detecting document corners...")
            detection = timed(PipelineStage.DETECTION, self.detector.locate, image)
            quad = detection.quad
            used_fallback = detection.used_fallback

        enter(PipelineStage.RECTIFICATION, "Correcting perspective...")
        rectified = timed(PipelineStage.RECTIFICATION, self.rectifier.rectify, image, quad)

        result = rectified
        if cfg.enhance:
            enter(PipelineStage.ENHANCEMENT, "Enhancing document...")
            result = timed(PipelineStage.ENHANCEMENT, self.enhancer.enhance, rectified, cancel_check)

        enter(PipelineStage.ENCODE, "Encoding result...")
        data = timed(PipelineStage.ENCODE, encode_image, result, cfg.output_format, cfg.quality)

        if progress_callback is not None:
            progress_callback(PipelineStage.ENCODE, 1.0, "Done")

        logger.info(
            f"Processed document {image.shape[1]}x{image.shape[0]} -> "
            f"{result.shape[1]}x{result.shape[0]} in {sum(timing.values()):.2f}s"
        )
        return ProcessingResult(
            data=data,
            quad=quad,
            image=result,
            used_fallback=used_fallback,
            timing=timing,
        )


def process_file(
    input_path: str,
    corners: Optional[Sequence[Sequence[float]]] = None,
    config: Optional[PipelineConfig] = None,
) -> ProcessingResult:
    """
    Convenience function to process a single file.

    Args:
        input_path: Path to a photo of a document
        corners: Optional 4 (x, y) points; auto-detected when omitted
        config: Pipeline configuration

    Returns:
        ProcessingResult
    """
    from .ingestion import DocumentLoader

    data = DocumentLoader().read_bytes(input_path)
    return DocumentPipeline(config).process(data, corners)
