"""
Document Loader - Reads source photos and decodes them into rasters
"""
from pathlib import Path
from typing import Union, Optional
from dataclasses import dataclass, field
from enum import Enum
import logging

import cv2
import numpy as np

from ..errors import DecodeFailed

logger = logging.getLogger(__name__)

Source = Union[str, Path, bytes, bytearray, memoryview]


class InputFormat(Enum):
    JPEG = "jpeg"
    PNG = "png"
    TIFF = "tiff"
    BMP = "bmp"
    WEBP = "webp"
    HEIC = "heic"
    UNKNOWN = "unknown"


# Leading bytes of each container format
_SIGNATURES = [
    (b"\xff\xd8\xff", InputFormat.JPEG),
    (b"\x89PNG\r\n\x1a\n", InputFormat.PNG),
    (b"II*\x00", InputFormat.TIFF),
    (b"MM\x00*", InputFormat.TIFF),
    (b"BM", InputFormat.BMP),
]


@dataclass
class LoadedDocument:
    """Container for a loaded source photo"""
    data: bytes
    image: np.ndarray  # BGR uint8, (height, width, 3)
    format: InputFormat
    filepath: Optional[Path] = None
    metadata: dict = field(default_factory=dict)

    @property
    def width(self) -> int:
        return self.image.shape[1]

    @property
    def height(self) -> int:
        return self.image.shape[0]


def detect_format(data: bytes) -> InputFormat:
    """Sniff the container format from the leading bytes"""
    for signature, fmt in _SIGNATURES:
        if data.startswith(signature):
            return fmt
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return InputFormat.WEBP
    if data[4:8] == b"ftyp" and data[8:12] in (b"heic", b"heix", b"mif1", b"msf1"):
        return InputFormat.HEIC
    return InputFormat.UNKNOWN


def decode_image(data: bytes) -> np.ndarray:
    """
    Decode encoded image bytes into a 3-channel BGR raster.

    Raises:
        DecodeFailed: if the bytes are empty or not a decodable image
    """
    if not data:
        raise DecodeFailed("Input is empty")

    buffer = np.frombuffer(bytes(data), dtype=np.uint8)
    try:
        image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    except cv2.error as e:
        raise DecodeFailed(f"Could not decode image: {e}") from e

    if image is None or image.size == 0:
        fmt = detect_format(bytes(data[:16]))
        if fmt == InputFormat.UNKNOWN:
            raise DecodeFailed("Input is not a recognized image format")
        raise DecodeFailed(f"Could not decode {fmt.value} image")
    return image


class DocumentLoader:
    """
    Loads source photos from paths or in-memory bytes.

    Supported formats are whatever OpenCV can decode: JPEG, PNG, TIFF, BMP
    and WebP. HEIC containers are recognized but cannot be decoded.
    """

    SUPPORTED_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.tif', '.tiff', '.bmp', '.webp'}

    def read_bytes(self, source: Source) -> bytes:
        """Return the raw bytes of a source without decoding them"""
        if isinstance(source, (bytes, bytearray, memoryview)):
            return bytes(source)

        filepath = Path(source)
        if not filepath.exists():
            raise DecodeFailed(f"File not found: {filepath}")
        try:
            return filepath.read_bytes()
        except OSError as e:
            raise DecodeFailed(f"Could not read {filepath}: {e}") from e

    def load(self, source: Source) -> LoadedDocument:
        """Read and decode a source photo"""
        filepath = None if isinstance(source, (bytes, bytearray, memoryview)) else Path(source)
        if filepath is not None:
            logger.info(f"Loading image: {filepath}")

        data = self.read_bytes(source)
        image = decode_image(data)
        return LoadedDocument(
            data=data,
            image=image,
            format=detect_format(data[:16]),
            filepath=filepath,
            metadata={"file_size": len(data)},
        )

    def is_supported(self, filepath: Union[str, Path]) -> bool:
        return Path(filepath).suffix.lower() in self.SUPPORTED_EXTENSIONS
