"""Tests for matching tolerance configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

from reconciliation.keys import DEFAULT_AMOUNT_DELTAS
from reconciliation.tolerances import (
    AMOUNT_DELTAS_ENV,
    MatchingConfig,
    MatchingConfigError,
    load_matching_config,
    parse_deltas,
)


@pytest.fixture(autouse=True)
def no_env_override(monkeypatch):
    monkeypatch.delenv(AMOUNT_DELTAS_ENV, raising=False)


class TestMatchingConfig:
    def test_defaults(self):
        config = MatchingConfig()
        assert config.amount_deltas == DEFAULT_AMOUNT_DELTAS == (0, 100, -100, 200, -200)
        assert config.accumulate_payments is True

    def test_empty_deltas_rejected(self):
        with pytest.raises(MatchingConfigError):
            MatchingConfig(amount_deltas=())

    def test_huge_delta_rejected(self):
        with pytest.raises(MatchingConfigError, match="exceeds"):
            MatchingConfig(amount_deltas=(0, 50_000))

    def test_non_integer_delta_rejected(self):
        with pytest.raises(MatchingConfigError):
            MatchingConfig(amount_deltas=(0, 1.5))  # type: ignore[arg-type]


class TestParseDeltas:
    def test_comma_string(self):
        assert parse_deltas("0, 50,-50") == (0, 50, -50)

    def test_list(self):
        assert parse_deltas([0, "25"]) == (0, 25)

    def test_garbage(self):
        with pytest.raises(MatchingConfigError):
            parse_deltas("0,abc")


class TestLoadMatchingConfig:
    """Test YAML loading and environment overrides."""

    def test_missing_file_gives_defaults(self, tmp_path: Path):
        config = load_matching_config(tmp_path / "absent.yaml", force_reload=True)
        assert config == MatchingConfig()

    def test_yaml_values(self, tmp_path: Path):
        path = tmp_path / "recon.yaml"
        path.write_text(
            "matching:\n  amount_deltas: [0, 50, -50]\n  accumulate_payments: false\n"
        )

        config = load_matching_config(path, force_reload=True)

        assert config.amount_deltas == (0, 50, -50)
        assert config.accumulate_payments is False

    def test_invalid_yaml_falls_back(self, tmp_path: Path):
        path = tmp_path / "broken.yaml"
        path.write_text("matching: [unclosed\n")

        config = load_matching_config(path, force_reload=True)

        assert config == MatchingConfig()

    def test_invalid_values_fall_back(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text("matching:\n  amount_deltas: [0, 999999]\n")

        assert load_matching_config(path, force_reload=True) == MatchingConfig()

    def test_env_overrides_file(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "recon.yaml"
        path.write_text("matching:\n  amount_deltas: [0, 50]\n")
        monkeypatch.setenv(AMOUNT_DELTAS_ENV, "0,300,-300")

        config = load_matching_config(path, force_reload=True)

        assert config.amount_deltas == (0, 300, -300)

    def test_cached_per_path(self, tmp_path: Path):
        path = tmp_path / "recon.yaml"
        path.write_text("matching:\n  amount_deltas: [0, 10]\n")
        first = load_matching_config(path, force_reload=True)

        path.write_text("matching:\n  amount_deltas: [0, 20]\n")

        assert load_matching_config(path) is first
        assert load_matching_config(path, force_reload=True).amount_deltas == (0, 20)

    def test_shipped_config_matches_defaults(self):
        shipped = Path(__file__).parent.parent / "config" / "reconciliation.yaml"
        assert load_matching_config(shipped, force_reload=True) == MatchingConfig()
