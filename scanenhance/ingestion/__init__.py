# Ingestion module
# Reads source photos and decodes them into rasters:
# - Images (JPEG, PNG, TIFF, BMP, WebP) via OpenCV
# - In-memory bytes or file paths

from .loader import DocumentLoader, LoadedDocument, InputFormat, decode_image, detect_format

__all__ = ["DocumentLoader", "LoadedDocument", "InputFormat", "decode_image", "detect_format"]
