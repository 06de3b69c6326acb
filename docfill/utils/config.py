"""Configuration management for the document fill pipeline.

Loads and validates YAML configuration with sensible defaults
for extraction, layout resolution, and fill settings.
"""

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_EXTRACTION_PROMPT = """\
You are an AI document extraction engine.
Extract all structured form data and key-value text from the provided document in clean JSON.
Return a single flat JSON object whose keys are descriptive snake_case field names
and whose values are strings, numbers, or booleans.
Keep key names descriptive and preserve all numeric/textual values.
Return only JSON, no explanation."""

DEFAULT_LAYOUT_PROMPT = """\
You are an AI document layout engine.
The attached PDF is a blank target form. Decide where each value of the field map
below should be written on it. Coordinates are PDF points with the origin at the
bottom-left corner of the page; pages are numbered from 1.
Return only JSON of the form
{"fields": [{"key": "...", "page": 1, "x": 0.0, "y": 0.0, "font_size": 10, "max_width": 200}]}
using exactly the keys of the field map. No explanation."""


class ExtractionConfig(BaseModel):
    """Configuration for the extraction oracle call."""

    model: str = "claude-3-5-sonnet-20241022"
    max_tokens: int = 4096
    timeout_s: float = 60.0
    max_source_bytes: int = 20_000_000
    max_source_chars: int = 100_000
    prompt: str = DEFAULT_EXTRACTION_PROMPT


class LayoutConfig(BaseModel):
    """Configuration for native field matching and coordinate layout."""

    use_oracle: bool = True
    model: str = "claude-3-5-sonnet-20241022"
    max_tokens: int = 4096
    timeout_s: float = 60.0
    match_threshold: float = 0.6
    left_margin: float = 50.0
    top_margin: float = 50.0
    line_height: float = 15.0
    font_size: float = 10.0
    prompt: str = DEFAULT_LAYOUT_PROMPT


class FillConfig(BaseModel):
    """Configuration for drawing values onto the target document."""

    font_name: str = "helv"
    font_file: str | None = None
    default_font_size: float = 10.0
    bottom_margin: float = 36.0
    clip_suffix: str = "..."


class AppConfig(BaseModel):
    """Top-level application configuration."""

    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    layout: LayoutConfig = Field(default_factory=LayoutConfig)
    fill: FillConfig = Field(default_factory=FillConfig)
    log_level: str = "INFO"


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
