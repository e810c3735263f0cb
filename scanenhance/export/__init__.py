# Export module
# Outputs processed documents:
# - JPEG / PNG bytes
# - Result image files next to the source or in an output directory
# - Multi-page PDF with pages normalized to a fixed size (A4 by default)

from .exporter import ResultExporter, ExportFormat, encode_image, normalize_page, A4_PAGE_SIZE

__all__ = ["ResultExporter", "ExportFormat", "encode_image", "normalize_page", "A4_PAGE_SIZE"]
