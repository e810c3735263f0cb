"""
Result Exporter - Encodes processed documents and writes images or PDFs
"""
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union
from enum import Enum
import logging

import cv2
import numpy as np
from PIL import Image

from ..errors import EncodeFailed

logger = logging.getLogger(__name__)

# A4 at 300 DPI
A4_PAGE_SIZE = (2480, 3508)
DEFAULT_PDF_DPI = 300


class ExportFormat(Enum):
    JPEG = "jpeg"
    PNG = "png"

    @property
    def extension(self) -> str:
        return "jpg" if self is ExportFormat.JPEG else self.value


def encode_image(
    image: np.ndarray,
    format: Union[ExportFormat, str] = ExportFormat.JPEG,
    quality: float = 0.9,
) -> bytes:
    """
    Encode a BGR raster.

    Args:
        image: BGR uint8 raster
        format: jpeg or png
        quality: JPEG quality factor in [0.1, 1.0]

    Raises:
        EncodeFailed: unknown format, bad quality, or the encoder rejected the raster
    """
    try:
        if isinstance(format, str):
            format = ExportFormat(format.lower())
    except ValueError:
        raise EncodeFailed(f"Unsupported output format: {format}") from None

    if format is ExportFormat.JPEG:
        if not 0.1 <= quality <= 1.0:
            raise EncodeFailed(f"JPEG quality must be within [0.1, 1.0], got {quality}")
        params = [cv2.IMWRITE_JPEG_QUALITY, int(round(quality * 100))]
    else:
        params = [cv2.IMWRITE_PNG_COMPRESSION, 3]

    if image is None or getattr(image, "size", 0) == 0:
        raise EncodeFailed("Cannot encode an empty raster")

    try:
        ok, buffer = cv2.imencode(f".{format.extension}", image, params)
    except cv2.error as e:
        raise EncodeFailed(f"{format.value} encoding failed: {e}") from e
    if not ok:
        raise EncodeFailed(f"{format.value} encoding failed")
    return buffer.tobytes()


def normalize_page(image: np.ndarray, page_size: Tuple[int, int] = A4_PAGE_SIZE) -> Image.Image:
    """
    Fit a BGR raster onto a white page of page_size, keeping its aspect ratio
    and centering it.
    """
    page_width, page_height = page_size
    rgb = Image.fromarray(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))

    image_ratio = rgb.width / rgb.height
    page_ratio = page_width / page_height
    if image_ratio > page_ratio:
        new_size = (page_width, max(1, int(round(page_width / image_ratio))))
    else:
        new_size = (max(1, int(round(page_height * image_ratio))), page_height)

    page = Image.new("RGB", page_size, (255, 255, 255))
    resized = rgb.resize(new_size, Image.Resampling.LANCZOS)
    page.paste(resized, ((page_width - new_size[0]) // 2, (page_height - new_size[1]) // 2))
    return page


class ResultExporter:
    """
    Writes processed documents to disk.

    Image files go to `<output_dir>/<stem>_corrected.<ext>`, or, without an
    output directory, to `<source dir>/<stem>_AI_enhance/<stem>_corrected.<ext>`.
    PDFs are assembled with Pillow, one page per document.
    """

    SUPPORTED_FORMATS = {f.value for f in ExportFormat}

    def __init__(
        self,
        output_dir: Union[str, Path, None] = None,
        format: Union[ExportFormat, str] = ExportFormat.JPEG,
        quality: float = 0.9,
        uniform_size: Optional[Tuple[int, int]] = None,
        pdf_page_size: Tuple[int, int] = A4_PAGE_SIZE,
        pdf_dpi: int = DEFAULT_PDF_DPI,
    ):
        self.output_dir = Path(output_dir) if output_dir else None
        self.format = ExportFormat(format.lower()) if isinstance(format, str) else format
        self.quality = quality
        self.uniform_size = uniform_size
        self.pdf_page_size = pdf_page_size
        self.pdf_dpi = pdf_dpi

    def output_path_for(self, source: Union[str, Path, None], name: str) -> Path:
        stem = Path(name).stem
        filename = f"{stem}_corrected.{self.format.extension}"
        if self.output_dir is not None:
            return self.output_dir / filename
        if source is None:
            return Path.cwd() / f"{stem}_AI_enhance" / filename
        source = Path(source)
        return source.parent / f"{source.stem}_AI_enhance" / filename

    def export(self, entry) -> Path:
        """
        Save a completed queue entry's result image.

        Returns:
            Path to the written file
        """
        if entry.result_image is None and entry.result_bytes is None:
            raise EncodeFailed(f"{entry.name} has no processed result")

        output_path = self.output_path_for(entry.source, entry.name)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(self._encode_entry(entry))
        logger.info(f"Saved {entry.name} to {output_path}")
        return output_path

    def export_multi(self, entries: Iterable) -> List[Path]:
        return [self.export(entry) for entry in entries]

    def export_pdf(self, images: Iterable[np.ndarray], path: Union[str, Path]) -> Path:
        """
        Write one PDF page per raster, each normalized to the page size.

        Raises:
            EncodeFailed: no pages, or Pillow could not write the PDF
        """
        pages = [normalize_page(image, self.pdf_page_size) for image in images]
        if not pages:
            raise EncodeFailed("No pages to export")

        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            pages[0].save(
                path,
                "PDF",
                save_all=True,
                append_images=pages[1:],
                resolution=float(self.pdf_dpi),
            )
        except (OSError, ValueError) as e:
            raise EncodeFailed(f"PDF export failed: {e}") from e

        logger.info(f"Exported {len(pages)} page(s) to {path}")
        return path

    def _encode_entry(self, entry) -> bytes:
        if self.uniform_size is None and entry.result_bytes is not None and self._bytes_match_format(entry.result_bytes):
            return entry.result_bytes

        image = entry.result_image
        if self.uniform_size is not None:
            page = normalize_page(image, self.uniform_size)
            image = cv2.cvtColor(np.asarray(page), cv2.COLOR_RGB2BGR)
        return encode_image(image, self.format, self.quality)

    def _bytes_match_format(self, data: bytes) -> bool:
        if self.format is ExportFormat.JPEG:
            return data.startswith(b"\xff\xd8\xff")
        return data.startswith(b"\x89PNG")
