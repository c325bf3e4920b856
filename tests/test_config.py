"""
Tests for configuration and environment overrides.
"""

from dataclasses import replace, FrozenInstanceError

import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


ENV_VARS = (
    "IMAGEPREP_BLOCK_SIZE", "IMAGEPREP_K", "IMAGEPREP_R", "IMAGEPREP_METHOD",
    "IMAGEPREP_WORKERS", "IMAGEPREP_DEBUG", "IMAGEPREP_OCR", "IMAGEPREP_OCR_LANG",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestBinarizationConfig:
    """Test Sauvola parameter validation."""

    def test_defaults(self):
        from imageprep.config import BinarizationConfig

        config = BinarizationConfig()

        assert config.block_size == 25
        assert config.k == 0.3
        assert config.r == 128.0
        assert config.radius == 12

    @pytest.mark.parametrize("block_size", [0, -3, 4, 24])
    def test_block_size_must_be_positive_odd(self, block_size):
        from imageprep.config import BinarizationConfig

        with pytest.raises(ValueError):
            BinarizationConfig(block_size=block_size)

    @pytest.mark.parametrize("block_size", [3.0, "25", True])
    def test_block_size_must_be_int(self, block_size):
        from imageprep.config import BinarizationConfig

        with pytest.raises(ValueError):
            BinarizationConfig(block_size=block_size)

    @pytest.mark.parametrize("r", [0, -1.0])
    def test_r_must_be_positive(self, r):
        from imageprep.config import BinarizationConfig

        with pytest.raises(ValueError):
            BinarizationConfig(r=r)

    def test_immutable(self):
        from imageprep.config import BinarizationConfig

        config = BinarizationConfig()

        with pytest.raises(FrozenInstanceError):
            config.k = 0.5

        changed = replace(config, k=0.5)
        assert changed.k == 0.5
        assert config.k == 0.3


class TestPipelineConfig:
    """Test the top-level configuration."""

    def test_defaults(self):
        from imageprep.config import PipelineConfig

        config = PipelineConfig()

        assert config.method == "integral"
        assert config.output_format == ".png"
        assert config.batch.max_workers == 1
        assert config.ocr.enabled is False
        assert config.keep_intermediates is False

    def test_unknown_method(self):
        from imageprep.config import PipelineConfig

        with pytest.raises(ValueError):
            PipelineConfig(method="fast")

    def test_nested_defaults_not_shared(self):
        from imageprep.config import PipelineConfig

        first = PipelineConfig()
        first.ocr.enabled = True

        assert PipelineConfig().ocr.enabled is False


class TestGetConfig:
    """Test environment overrides."""

    def test_no_overrides(self, clean_env):
        from imageprep.config import get_config, PipelineConfig

        config = get_config()

        assert config.binarization == PipelineConfig().binarization
        assert config.debug_mode is False

    def test_overrides(self, clean_env):
        from imageprep.config import get_config

        clean_env.setenv("IMAGEPREP_BLOCK_SIZE", "15")
        clean_env.setenv("IMAGEPREP_K", "0.2")
        clean_env.setenv("IMAGEPREP_R", "100")
        clean_env.setenv("IMAGEPREP_METHOD", "Naive")
        clean_env.setenv("IMAGEPREP_WORKERS", "0")
        clean_env.setenv("IMAGEPREP_DEBUG", "true")
        clean_env.setenv("IMAGEPREP_OCR", "TRUE")
        clean_env.setenv("IMAGEPREP_OCR_LANG", "deu")

        config = get_config()

        assert config.binarization.block_size == 15
        assert config.binarization.k == 0.2
        assert config.binarization.r == 100.0
        assert config.method == "naive"
        assert config.batch.max_workers == 1
        assert config.debug_mode is True
        assert config.keep_intermediates is True
        assert config.ocr.enabled is True
        assert config.ocr.tesseract_lang == "deu"

    def test_blank_values_ignored(self, clean_env):
        from imageprep.config import get_config

        clean_env.setenv("IMAGEPREP_BLOCK_SIZE", "  ")

        assert get_config().binarization.block_size == 25

    @pytest.mark.parametrize("name,value", [
        ("IMAGEPREP_BLOCK_SIZE", "abc"),
        ("IMAGEPREP_BLOCK_SIZE", "10"),
        ("IMAGEPREP_K", "high"),
        ("IMAGEPREP_METHOD", "fast"),
    ])
    def test_invalid_values(self, clean_env, name, value):
        from imageprep.config import get_config

        clean_env.setenv(name, value)

        with pytest.raises(ValueError):
            get_config()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
