"""
Pytest configuration and fixtures for document scanning tests
"""
import pytest
import sys
from pathlib import Path

import cv2
import numpy as np

# Make the project root importable when running from a checkout
sys.path.insert(0, str(Path(__file__).parent.parent))

# Synthetic photo: a white sheet centered on a dark table
PHOTO_SIZE = (1000, 1400)          # width, height
DOCUMENT_RECT = (80, 115, 840, 1170)  # x, y, width, height


def make_document_photo(width=PHOTO_SIZE[0], height=PHOTO_SIZE[1], rect=DOCUMENT_RECT):
    """Dark background with a bright document and a few lines of 'text'"""
    image = np.full((height, width, 3), 30, dtype=np.uint8)
    x, y, w, h = rect
    image[y:y + h, x:x + w] = 240
    for i, row in enumerate(range(y + 100, y + h - 100, 70)):
        line_end = x + w - 80 - (i % 3) * 120
        cv2.line(image, (x + 80, row), (line_end, row), (50, 50, 50), 8)
    return image


def make_corner_marked_image(width=600, height=800, rect=(100, 100, 400, 600), patch=60):
    """
    Grey image with a colored square inside each corner of rect:
    red top-left, green top-right, blue bottom-right, yellow bottom-left (BGR).
    """
    image = np.full((height, width, 3), 128, dtype=np.uint8)
    x, y, w, h = rect
    image[y:y + patch, x:x + patch] = (0, 0, 255)
    image[y:y + patch, x + w - patch:x + w] = (0, 255, 0)
    image[y + h - patch:y + h, x + w - patch:x + w] = (255, 0, 0)
    image[y + h - patch:y + h, x:x + patch] = (0, 255, 255)
    return image


def encode_png(image) -> bytes:
    ok, buffer = cv2.imencode(".png", image)
    assert ok
    return buffer.tobytes()


class EmptyDetector:
    """Rectangle detector stub that never finds anything"""

    name = "empty"

    def detect_rectangles(self, image, config):
        return []


class BrokenDetector:
    """Rectangle detector stub that always errors"""

    name = "broken"

    def detect_rectangles(self, image, config):
        raise RuntimeError("vision backend unavailable")


class FixedDetector:
    """Rectangle detector stub returning canned observations"""

    name = "fixed"

    def __init__(self, observations):
        self.observations = observations

    def detect_rectangles(self, image, config):
        return list(self.observations)


@pytest.fixture
def document_photo():
    """BGR raster of a synthetic document photo"""
    return make_document_photo()


@pytest.fixture
def document_bytes(document_photo):
    """Encoded synthetic document photo"""
    return encode_png(document_photo)


@pytest.fixture
def blank_bytes():
    """Encoded uniform image with no document edges"""
    return encode_png(np.full((600, 800, 3), 200, dtype=np.uint8))


@pytest.fixture
def corrupt_bytes():
    """Bytes that no decoder accepts"""
    return b"this is not an image" * 10


@pytest.fixture
def corner_marked_image():
    return make_corner_marked_image()


@pytest.fixture
def document_file(tmp_path, document_bytes):
    """Synthetic document photo written to disk"""
    path = tmp_path / "photos" / "receipt.png"
    path.parent.mkdir()
    path.write_bytes(document_bytes)
    return path


@pytest.fixture
def output_dir(tmp_path):
    """Temporary output directory for tests"""
    output = tmp_path / "output"
    output.mkdir()
    return output


@pytest.fixture
def pipeline():
    from scanenhance.pipeline import DocumentPipeline

    return DocumentPipeline()


@pytest.fixture
def strict_pipeline():
    """Pipeline that fails instead of falling back to the image bounds"""
    from scanenhance.pipeline import DocumentPipeline, PipelineConfig

    return DocumentPipeline(PipelineConfig(use_fallback=False))


@pytest.fixture
def indexer():
    from scanenhance.indexing import InMemoryIndexer

    return InMemoryIndexer()


@pytest.fixture
def orchestrator(pipeline, indexer):
    from scanenhance.batch import BatchOrchestrator

    orch = BatchOrchestrator(pipeline=pipeline, indexer=indexer)
    yield orch
    orch.shutdown()
