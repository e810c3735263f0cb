"""
Tests for the document processing pipeline
"""
import numpy as np
import pytest
from pathlib import Path

from conftest import DOCUMENT_RECT, PHOTO_SIZE, EmptyDetector


class TestPipelineConfig:
    """Test pipeline configuration"""

    def test_default_config(self):
        from scanenhance.export import ExportFormat
        from scanenhance.pipeline import PipelineConfig

        config = PipelineConfig()

        assert config.use_fallback is True
        assert config.fallback_margin == 0.05
        assert config.min_dimension == 300
        assert config.max_dimension == 4000
        assert config.output_format == ExportFormat.JPEG
        assert config.quality == 0.9

    def test_from_settings(self):
        from config.settings import Settings
        from scanenhance.export import ExportFormat
        from scanenhance.pipeline import PipelineConfig

        settings = Settings(
            _env_file=None,
            output_format="png",
            use_fallback=False,
            fallback_margin=0.08,
            contrast=1.5,
            min_size=0.3,
        )
        config = PipelineConfig.from_settings(settings)

        assert config.output_format == ExportFormat.PNG
        assert config.use_fallback is False
        assert config.fallback_margin == 0.08
        assert config.enhancement.contrast == 1.5
        assert config.detector.min_size == 0.3

    def test_settings_reject_bad_margin(self):
        from pydantic import ValidationError
        from config.settings import Settings

        with pytest.raises(ValidationError):
            Settings(_env_file=None, fallback_margin=0.2)


class TestDocumentLoader:
    """Test document loading"""

    def test_supported_formats(self):
        from scanenhance.ingestion import DocumentLoader

        loader = DocumentLoader()
        assert ".jpg" in loader.SUPPORTED_EXTENSIONS
        assert ".png" in loader.SUPPORTED_EXTENSIONS
        assert loader.is_supported("scan.TIFF")
        assert not loader.is_supported("scan.pdf")

    def test_file_not_found(self):
        from scanenhance.errors import DecodeFailed
        from scanenhance.ingestion import DocumentLoader

        with pytest.raises(DecodeFailed):
            DocumentLoader().load(Path("nonexistent.jpg"))

    def test_load_file(self, document_file):
        from scanenhance.ingestion import DocumentLoader, InputFormat

        document = DocumentLoader().load(document_file)

        assert document.format == InputFormat.PNG
        assert (document.width, document.height) == PHOTO_SIZE
        assert document.filepath == document_file
        assert document.metadata["file_size"] == document_file.stat().st_size

    def test_load_bytes(self, document_bytes):
        from scanenhance.ingestion import DocumentLoader

        document = DocumentLoader().load(document_bytes)
        assert document.filepath is None
        assert document.image.shape == (PHOTO_SIZE[1], PHOTO_SIZE[0], 3)

    def test_corrupt_bytes(self, corrupt_bytes):
        from scanenhance.errors import DecodeFailed
        from scanenhance.ingestion import decode_image

        with pytest.raises(DecodeFailed):
            decode_image(corrupt_bytes)

    def test_empty_bytes(self):
        from scanenhance.errors import DecodeFailed
        from scanenhance.ingestion import decode_image

        with pytest.raises(DecodeFailed):
            decode_image(b"")

    def test_truncated_png(self, document_bytes):
        from scanenhance.errors import DecodeFailed
        from scanenhance.ingestion import decode_image

        with pytest.raises(DecodeFailed):
            decode_image(document_bytes[:64])

    @pytest.mark.parametrize("header,expected", [
        (b"\xff\xd8\xff\xe0\x00\x10JFIF", "jpeg"),
        (b"\x89PNG\r\n\x1a\n\x00\x00", "png"),
        (b"II*\x00\x08\x00\x00\x00", "tiff"),
        (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "webp"),
        (b"\x00\x00\x00\x18ftypheic\x00\x00", "heic"),
        (b"%PDF-1.7", "unknown"),
    ])
    def test_detect_format(self, header, expected):
        from scanenhance.ingestion import detect_format

        assert detect_format(header).value == expected


class TestDocumentPipeline:
    """Test the per-document pipeline"""

    def test_auto_process(self, pipeline, document_bytes):
        result = pipeline.auto_process(document_bytes)

        assert result.data.startswith(b"\xff\xd8\xff")
        assert result.used_fallback is False
        assert result.quad.is_within(*PHOTO_SIZE)

        width, height = result.size
        assert 600 <= width <= 1000
        assert 900 <= height <= 1400
        expected_aspect = DOCUMENT_RECT[2] / DOCUMENT_RECT[3]
        assert width / height == pytest.approx(expected_aspect, rel=0.1)

    def test_auto_process_records_timing(self, pipeline, document_bytes):
        result = pipeline.auto_process(document_bytes)
        assert set(result.timing) == {"decode", "detection", "rectification", "enhancement", "encode"}

    def test_manual_process(self, pipeline, document_bytes):
        from scanenhance.geometry import Quad

        quad = Quad.from_rect(200, 300, 500, 600)
        result = pipeline.manual_process(document_bytes, quad)

        assert result.quad == quad
        assert result.size == (500, 600)
        assert "detection" not in result.timing

    def test_manual_differs_from_auto(self, pipeline, document_bytes):
        auto = pipeline.process(document_bytes)
        manual = pipeline.process(document_bytes, [(200, 300), (700, 300), (700, 900), (200, 900)])
        assert auto.data != manual.data

    def test_empty_quad_means_auto(self, pipeline, document_bytes):
        result = pipeline.process(document_bytes, [])
        assert "detection" in result.timing
        assert result.used_fallback is False

    def test_wrong_corner_count(self, pipeline, document_bytes):
        from scanenhance.errors import InvalidCornerCount

        with pytest.raises(InvalidCornerCount):
            pipeline.process(document_bytes, [(0, 0), (10, 0), (10, 10)])

    def test_decode_failure(self, pipeline, corrupt_bytes):
        from scanenhance.errors import DecodeFailed

        with pytest.raises(DecodeFailed):
            pipeline.process(corrupt_bytes)

    def test_blank_image_uses_fallback(self, pipeline, blank_bytes):
        result = pipeline.process(blank_bytes)

        assert result.used_fallback is True
        assert result.quad.top_left == (30, 30)
        assert result.size == (740, 540)

    def test_strict_mode_fails_on_blank_image(self, strict_pipeline, blank_bytes):
        from scanenhance.errors import DetectionFailed

        with pytest.raises(DetectionFailed):
            strict_pipeline.process(blank_bytes)

    def test_custom_primary_detector(self, document_bytes):
        from scanenhance.pipeline import DocumentPipeline

        result = DocumentPipeline(primary_detector=EmptyDetector()).process(document_bytes)
        assert result.used_fallback is True

    def test_progress_is_monotonic(self, pipeline, document_bytes):
        from scanenhance.pipeline import PipelineStage

        updates = []
        pipeline.process(document_bytes, progress_callback=lambda stage, p, msg: updates.append((stage, p)))

        values = [p for _, p in updates]
        assert values == sorted(values)
        assert values[0] == 0.0
        assert values[-1] == 1.0
        assert [stage for stage, _ in updates[:5]] == [
            PipelineStage.DECODE,
            PipelineStage.DETECTION,
            PipelineStage.RECTIFICATION,
            PipelineStage.ENHANCEMENT,
            PipelineStage.ENCODE,
        ]

    def test_cancel_between_stages(self, pipeline, document_bytes):
        from scanenhance.errors import ProcessingCancelled

        stages = []

        def on_progress(stage, progress, message):
            stages.append(stage)

        with pytest.raises(ProcessingCancelled):
            pipeline.process(
                document_bytes,
                progress_callback=on_progress,
                cancel_check=lambda: len(stages) >= 2,
            )
        assert len(stages) == 2

    def test_without_enhancement(self, document_bytes):
        from scanenhance.geometry import Quad
        from scanenhance.ingestion import decode_image
        from scanenhance.pipeline import DocumentPipeline, PipelineConfig

        pipeline = DocumentPipeline(PipelineConfig(enhance=False))
        quad = Quad.from_rect(100, 100, 600, 800)
        result = pipeline.process(document_bytes, quad)

        expected = pipeline.rectifier.rectify(decode_image(document_bytes), quad)
        assert np.array_equal(result.image, expected)

    def test_png_output(self, document_bytes):
        from scanenhance.pipeline import DocumentPipeline, PipelineConfig

        result = DocumentPipeline(PipelineConfig(output_format="png")).process(document_bytes)
        assert result.data.startswith(b"\x89PNG")

    def test_process_file(self, document_file):
        from scanenhance.pipeline import process_file

        result = process_file(str(document_file))
        assert result.used_fallback is False
        assert result.image.ndim == 3
