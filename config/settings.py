"""
Application settings and configuration
"""
from pathlib import Path
from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application configuration"""

    model_config = SettingsConfigDict(env_prefix="SCAN_", env_file=".env", extra="ignore")

    # Paths
    base_dir: Path = Path(__file__).parent.parent
    output_dir: Optional[Path] = None  # None: next to each source photo

    # Output
    output_format: Literal["jpeg", "png"] = "jpeg"
    jpeg_quality: float = Field(default=0.9, ge=0.1, le=1.0)
    auto_processing: bool = True

    # Uniform page size (A4 at 300 DPI)
    uniform_size: bool = False
    target_width: int = Field(default=2480, gt=0)
    target_height: int = Field(default=3508, gt=0)
    pdf_dpi: int = Field(default=300, gt=0)

    # Rectification
    min_dimension: int = Field(default=300, gt=0)
    max_dimension: int = Field(default=4000, gt=0)

    # Detection
    min_aspect_ratio: float = Field(default=0.2, ge=0.0, le=1.0)
    max_aspect_ratio: float = Field(default=1.0, ge=0.0, le=1.0)
    min_size: float = Field(default=0.2, ge=0.0, le=1.0)
    min_confidence: float = Field(default=0.3, ge=0.0, le=1.0)
    max_observations: int = Field(default=10, ge=1)
    use_fallback: bool = True
    fallback_margin: float = Field(default=0.05, ge=0.05, le=0.10)

    # Enhancement
    enhance: bool = True
    contrast: float = 1.2
    saturation: float = 1.1
    brightness: float = 0.1
    gamma: float = 0.9
    grayscale: bool = False
    sharpen_intensity: float = 0.5

    # Logging
    log_level: str = "INFO"
    log_file: Optional[Path] = None


settings = Settings()
