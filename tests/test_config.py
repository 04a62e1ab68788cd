"""
Unit tests for EngineConfig.

Tests cover:
- Default values
- Field validation
- Loading from CODEX_ENGINE_* environment variables
"""

import pytest
from pydantic import ValidationError

from codex_engine.config import EngineConfig


class TestEngineConfigDefaults:
    """Tests for EngineConfig default values."""

    def test_default_bounds(self) -> None:
        config = EngineConfig()
        assert config.max_branching == 64
        assert config.max_loadouts_per_model_type == 4096
        assert config.max_enumerated_count == 10

    def test_default_hit_wound_cap(self) -> None:
        """Test that hit and wound modifiers cap at +/-1 by default."""
        assert EngineConfig().hit_wound_cap == 1

    def test_frozen(self) -> None:
        config = EngineConfig()
        with pytest.raises(ValidationError):
            config.max_branching = 3


class TestEngineConfigValidation:
    @pytest.mark.parametrize("field,value", [
        ("max_branching", 0),
        ("max_enumerated_count", 101),
        ("hit_wound_cap", -1),
        ("max_loadouts_per_model_type", 1),
    ])
    def test_out_of_range(self, field: str, value: int) -> None:
        with pytest.raises(ValidationError):
            EngineConfig(**{field: value})


class TestEngineConfigFromEnv:
    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        for name in EngineConfig.model_fields:
            monkeypatch.delenv(f"CODEX_ENGINE_{name.upper()}", raising=False)

    def test_unset_keeps_defaults(self) -> None:
        assert EngineConfig.from_env() == EngineConfig()

    def test_reads_prefixed_variables(self, monkeypatch) -> None:
        monkeypatch.setenv("CODEX_ENGINE_MAX_BRANCHING", "8")
        monkeypatch.setenv("CODEX_ENGINE_HIT_WOUND_CAP", " 2 ")
        config = EngineConfig.from_env()
        assert config.max_branching == 8
        assert config.hit_wound_cap == 2

    def test_blank_value_ignored(self, monkeypatch) -> None:
        monkeypatch.setenv("CODEX_ENGINE_MAX_BRANCHING", "  ")
        assert EngineConfig.from_env().max_branching == 64

    def test_invalid_value_raises(self, monkeypatch) -> None:
        monkeypatch.setenv("CODEX_ENGINE_MAX_BRANCHING", "zero")
        with pytest.raises(ValidationError):
            EngineConfig.from_env()
