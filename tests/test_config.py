"""Tests for configuration loading and validation."""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from docfill.utils.config import (
    AppConfig,
    ExtractionConfig,
    FillConfig,
    LayoutConfig,
    load_config,
)


class TestExtractionConfig:
    """Tests for ExtractionConfig defaults and overrides."""

    def test_defaults(self) -> None:
        cfg = ExtractionConfig()
        assert cfg.max_tokens == 4096
        assert cfg.timeout_s == 60.0
        assert cfg.max_source_chars == 100_000
        assert "JSON" in cfg.prompt

    def test_override(self) -> None:
        cfg = ExtractionConfig(timeout_s=5, max_source_chars=10)
        assert cfg.timeout_s == 5.0
        assert cfg.max_source_chars == 10


class TestLayoutConfig:
    """Tests for LayoutConfig defaults."""

    def test_defaults(self) -> None:
        cfg = LayoutConfig()
        assert cfg.use_oracle is True
        assert cfg.match_threshold == 0.6
        assert cfg.left_margin == 50.0
        assert cfg.top_margin == 50.0
        assert cfg.line_height == 15.0
        assert cfg.font_size == 10.0
        assert '"fields"' in cfg.prompt

    def test_rejects_non_numeric_margin(self) -> None:
        with pytest.raises(ValidationError):
            LayoutConfig(left_margin="wide")


class TestFillConfig:
    """Tests for FillConfig defaults."""

    def test_defaults(self) -> None:
        cfg = FillConfig()
        assert cfg.font_name == "helv"
        assert cfg.font_file is None
        assert cfg.bottom_margin == 36.0
        assert cfg.clip_suffix == "..."


class TestAppConfig:
    """Tests for the top-level AppConfig."""

    def test_defaults(self) -> None:
        cfg = AppConfig()
        assert isinstance(cfg.extraction, ExtractionConfig)
        assert isinstance(cfg.layout, LayoutConfig)
        assert isinstance(cfg.fill, FillConfig)
        assert cfg.log_level == "INFO"

    def test_nested_override(self) -> None:
        cfg = AppConfig(
            layout=LayoutConfig(use_oracle=False),
            log_level="DEBUG",
        )
        assert cfg.layout.use_oracle is False
        assert cfg.log_level == "DEBUG"


class TestLoadConfig:
    """Tests for the load_config function."""

    def test_load_default_config(self, config_dir: Path) -> None:
        cfg = load_config(config_dir / "config.yaml")
        assert isinstance(cfg, AppConfig)
        assert cfg.fill.font_name == "helv"
        assert cfg.layout.match_threshold == 0.6

    def test_load_missing_file_returns_defaults(self) -> None:
        cfg = load_config(Path("/nonexistent/path/config.yaml"))
        assert isinstance(cfg, AppConfig)
        assert cfg.fill.bottom_margin == 36.0

    def test_load_custom_yaml(self, tmp_path: Path) -> None:
        config_data = {
            "extraction": {"timeout_s": 12},
            "layout": {"use_oracle": False, "line_height": 20},
            "log_level": "DEBUG",
        }
        config_file = tmp_path / "config.yaml"
        with open(config_file, "w") as f:
            yaml.dump(config_data, f)

        cfg = load_config(config_file)
        assert cfg.extraction.timeout_s == 12.0
        assert cfg.layout.use_oracle is False
        assert cfg.layout.line_height == 20.0
        assert cfg.log_level == "DEBUG"

    def test_load_empty_yaml(self, tmp_path: Path) -> None:
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")
        cfg = load_config(config_file)
        assert isinstance(cfg, AppConfig)

    def test_load_none_defaults_to_standard_path(self) -> None:
        cfg = load_config()
        assert isinstance(cfg, AppConfig)
