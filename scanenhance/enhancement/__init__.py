# Enhancement module
# Cleans up rectified documents:
# - Illumination / shadow normalization
# - Contrast, saturation, brightness and gamma
# - Sharpening
# - Noise reduction

from .enhancer import DocumentEnhancer, EnhancementConfig

__all__ = ["DocumentEnhancer", "EnhancementConfig"]
