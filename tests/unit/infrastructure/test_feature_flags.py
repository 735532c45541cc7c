"""Tests for FeatureFlags (ENV > JSON > default)."""

import json

import pytest

from src.infrastructure.feature_flags import PIPELINE_STAGES, FeatureFlags


@pytest.fixture(autouse=True)
def clean_flag_env(monkeypatch):
    monkeypatch.delenv("FF_EXPANSION_USE_SIMPLE_EXPANSION", raising=False)
    monkeypatch.delenv("FF_EXPANSION_ENABLE_AI_RATIONALE", raising=False)
    for stage in PIPELINE_STAGES:
        monkeypatch.delenv(f"FF_PIPELINE_ENABLE_{stage.upper()}", raising=False)


@pytest.fixture
def flag_file(tmp_path):
    path = tmp_path / "feature_flags.json"
    path.write_text(
        json.dumps(
            {
                "expansion": {"use_simple_expansion": False},
                "pipeline": {"enable_viability_validation": False},
            }
        ),
        encoding="utf-8",
    )
    return path


class TestFeatureFlags:
    def test_defaults_without_file(self, tmp_path):
        flags = FeatureFlags(tmp_path / "missing.json")
        assert flags.use_simple_expansion() is True
        assert flags.enable_ai_rationale() is True
        assert all(flags.is_stage_enabled(stage) for stage in PIPELINE_STAGES)

    def test_json_overrides_default(self, flag_file):
        flags = FeatureFlags(flag_file)
        assert flags.use_simple_expansion() is False
        assert flags.is_stage_enabled("viability_validation") is False
        assert flags.is_stage_enabled("market_analysis") is True

    def test_env_overrides_json(self, flag_file, monkeypatch):
        monkeypatch.setenv("FF_EXPANSION_USE_SIMPLE_EXPANSION", "true")
        monkeypatch.setenv("FF_PIPELINE_ENABLE_MARKET_ANALYSIS", "0")
        flags = FeatureFlags(flag_file)
        assert flags.use_simple_expansion() is True
        assert flags.is_stage_enabled("market_analysis") is False

    @pytest.mark.parametrize("raw,expected", [("1", True), ("yes", True), ("ON", True), ("false", False), ("nope", False)])
    def test_env_truthiness(self, tmp_path, monkeypatch, raw, expected):
        monkeypatch.setenv("FF_EXPANSION_ENABLE_AI_RATIONALE", raw)
        assert FeatureFlags(tmp_path / "missing.json").enable_ai_rationale() is expected

    def test_unreadable_file_means_defaults(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        assert FeatureFlags(path).use_simple_expansion() is True

    def test_unknown_stage(self, tmp_path):
        with pytest.raises(ValueError):
            FeatureFlags(tmp_path / "missing.json").is_stage_enabled("teleportation")

    def test_reload(self, flag_file):
        flags = FeatureFlags(flag_file)
        flag_file.write_text(json.dumps({"expansion": {"use_simple_expansion": True}}), encoding="utf-8")
        assert flags.use_simple_expansion() is False
        flags.reload()
        assert flags.use_simple_expansion() is True

    def test_snapshot(self, flag_file):
        snapshot = FeatureFlags(flag_file).snapshot()
        assert snapshot["expansion.use_simple_expansion"] is False
        assert snapshot["pipeline.enable_viability_validation"] is False
        assert len(snapshot) == 2 + len(PIPELINE_STAGES)

    def test_instances_are_independent(self, flag_file, tmp_path):
        assert FeatureFlags(flag_file).use_simple_expansion() is False
        assert FeatureFlags(tmp_path / "missing.json").use_simple_expansion() is True
