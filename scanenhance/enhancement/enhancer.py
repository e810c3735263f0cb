"""
Document Enhancer - Cleans up a rectified document photo
"""
from typing import Callable, Optional
from dataclasses import dataclass
import logging

import cv2
import numpy as np

from ..errors import FilterUnavailable, ProcessingCancelled

logger = logging.getLogger(__name__)

# BGR luminance weights (Rec. 709)
_LUMA = np.array([0.0722, 0.7152, 0.2126], dtype=np.float32)

# Long side of the copy used to estimate background lighting
_BACKGROUND_WORKING_SIZE = 512


@dataclass
class EnhancementConfig:
    """Configuration for document enhancement"""
    normalize_illumination: bool = True
    background_radius: float = 50.0

    adjust_colors: bool = True
    contrast: float = 1.2
    saturation: float = 1.1
    brightness: float = 0.1
    gamma: float = 0.9
    grayscale: bool = False  # desaturate fully, e.g. for OCR

    sharpen: bool = True
    sharpen_intensity: float = 0.5
    sharpen_radius: float = 2.5

    denoise: bool = True
    noise_level: float = 0.02
    noise_sharpness: float = 0.4
    fallback_blur_radius: float = 0.3


def _cv_filter(name: str):
    """Look up an OpenCV function, raising FilterUnavailable if the build lacks it"""
    fn = getattr(cv2, name, None)
    if fn is None:
        raise FilterUnavailable(name)
    return fn


def _as_bgr(image: np.ndarray) -> np.ndarray:
    """Reduce grayscale and alpha rasters to three BGR channels"""
    if image.ndim == 2:
        image = image[..., None]
    channels = image.shape[2]
    if channels == 1:
        return np.repeat(image, 3, axis=2)
    if channels == 4:
        return np.ascontiguousarray(image[..., :3])
    if channels != 3:
        raise ValueError(f"Unsupported channel count: {channels}")
    return image


class DocumentEnhancer:
    """
    Fixed enhancement pipeline for rectified documents.

    Operations, in order:
    - Illumination normalization (divide by a blurred background estimate)
    - Contrast / saturation / brightness, then gamma
    - Unsharp-mask sharpening
    - Noise reduction (non-local means, mild blur if unavailable)

    Every step keeps the raster size. A step whose OpenCV backend is missing
    is skipped with a warning, so enhance() never fails on a valid raster.
    Repeated application compounds contrast and sharpening.
    """

    def __init__(self, config: Optional[EnhancementConfig] = None):
        self.config = config or EnhancementConfig()

    def enhance(self, image: np.ndarray, cancel_check: Optional[Callable[[], bool]] = None) -> np.ndarray:
        """
        Apply the enhancement pipeline.

        Args:
            image: BGR, BGRA or grayscale raster of any integer or float dtype
            cancel_check: polled between filters; returning True aborts

        Returns:
            New 3-channel BGR raster with the same dimensions and dtype
        """
        cfg = self.config
        image = _as_bgr(image)
        dtype = image.dtype
        # Integer rasters are scaled by their full range, floats are taken as 0..1
        scale = float(np.iinfo(dtype).max) if np.issubdtype(dtype, np.integer) else 1.0
        result = image.astype(np.float32) / scale
        steps = [
            (cfg.normalize_illumination, "illumination", self.normalize_illumination),
            (cfg.adjust_colors, "color", self.adjust_colors),
            (cfg.sharpen, "sharpen", self.sharpen),
            (cfg.denoise, "denoise", self.reduce_noise),
        ]

        applied = []
        for enabled, name, step in steps:
            if not enabled:
                continue
            if cancel_check is not None and cancel_check():
                raise ProcessingCancelled(f"Enhancement cancelled before {name}")
            result = self._apply(name, step, result)
            applied.append(name)

        logger.debug(f"Enhancement applied: {applied}")
        if scale == 1.0:
            return np.clip(result, 0.0, 1.0).astype(dtype)
        return np.clip(result * scale + 0.5, 0, scale).astype(dtype)

    def _apply(self, name: str, step, image: np.ndarray) -> np.ndarray:
        try:
            return step(image)
        except (FilterUnavailable, cv2.error) as e:
            logger.warning(f"Skipping {name} filter: {e}")
            return image

    def normalize_illumination(self, image: np.ndarray) -> np.ndarray:
        """Flatten uneven lighting and shadows: original / blurred background"""
        gaussian_blur = _cv_filter("GaussianBlur")
        resize = _cv_filter("resize")

        height, width = image.shape[:2]
        scale = min(1.0, _BACKGROUND_WORKING_SIZE / max(width, height))
        small = image
        if scale < 1.0:
            small = resize(
                image,
                (max(1, int(round(width * scale))), max(1, int(round(height * scale)))),
                interpolation=cv2.INTER_AREA,
            )
        sigma = max(self.config.background_radius * scale, 0.5)
        background = gaussian_blur(small, (0, 0), sigma)
        if scale < 1.0:
            background = resize(background, (width, height), interpolation=cv2.INTER_LINEAR)

        return np.clip(image / np.maximum(background, 1e-3), 0.0, 1.0)

    def adjust_colors(self, image: np.ndarray) -> np.ndarray:
        """Saturation, brightness and contrast, followed by gamma"""
        cfg = self.config
        saturation = 0.0 if cfg.grayscale else cfg.saturation

        luma = image @ _LUMA
        result = luma[..., None] + saturation * (image - luma[..., None])
        result = result + cfg.brightness
        result = (result - 0.5) * cfg.contrast + 0.5
        result = np.clip(result, 0.0, 1.0)
        return np.power(result, cfg.gamma)

    def sharpen(self, image: np.ndarray) -> np.ndarray:
        """Unsharp mask"""
        gaussian_blur = _cv_filter("GaussianBlur")
        blurred = gaussian_blur(image, (0, 0), self.config.sharpen_radius)
        result = image + self.config.sharpen_intensity * (image - blurred)
        return np.clip(result, 0.0, 1.0)

    def reduce_noise(self, image: np.ndarray) -> np.ndarray:
        """Non-local means denoising, or a very mild blur when unavailable"""
        try:
            return self._denoise(image)
        except FilterUnavailable as e:
            logger.warning(f"{e}, approximating noise reduction with a mild blur")
            gaussian_blur = _cv_filter("GaussianBlur")
            return gaussian_blur(image, (0, 0), self.config.fallback_blur_radius)

    def _denoise(self, image: np.ndarray) -> np.ndarray:
        denoise = _cv_filter("fastNlMeansDenoisingColored")
        strength = max(self.config.noise_level * 255.0, 1.0)

        as_bytes = np.clip(image * 255.0 + 0.5, 0, 255).astype(np.uint8)
        denoised = denoise(as_bytes, None, strength, strength, 5, 11).astype(np.float32) / 255.0

        # Put back part of the detail that the filter removed
        return np.clip(denoised + self.config.noise_sharpness * (image - denoised), 0.0, 1.0)
