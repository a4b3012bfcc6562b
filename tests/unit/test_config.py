"""Unit tests for tournament_sync.config."""

from __future__ import annotations

import textwrap
from datetime import timedelta
from pathlib import Path

import pytest

from tournament_sync.config import (
    SyncConfig,
    SyncConfigValidationError,
    load_sync_config,
    validate_sync_config,
)

PROJECT_ROOT = Path(__file__).parent.parent.parent

FULL_YAML = textwrap.dedent("""\
    matcher: normalized
    reconcile:
      create_missing: true
    staging:
      sweep_interval_seconds: 10
      backoff_max_multiplier: 8
      purge_max_age_minutes: 90
""")


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "tournament_sync.yml"
    path.write_text(text, encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# load_sync_config
# ---------------------------------------------------------------------------

class TestLoadSyncConfig:
    def test_none_returns_defaults(self):
        assert load_sync_config(None) == SyncConfig()

    def test_empty_file_returns_defaults(self, tmp_path):
        assert load_sync_config(_write(tmp_path, "")) == SyncConfig()

    def test_full_file(self, tmp_path):
        cfg = load_sync_config(_write(tmp_path, FULL_YAML))
        assert cfg.matcher == "normalized"
        assert cfg.create_missing is True
        assert cfg.sweep_interval_seconds == 10.0
        assert cfg.backoff_max_multiplier == 8.0
        assert cfg.purge_max_age == timedelta(minutes=90)

    def test_partial_file_keeps_other_defaults(self, tmp_path):
        cfg = load_sync_config(_write(tmp_path, "staging:\n  sweep_interval_seconds: 5\n"))
        assert cfg.sweep_interval_seconds == 5.0
        assert cfg.matcher == "exact"
        assert cfg.purge_max_age == timedelta(hours=1)

    def test_shipped_config_loads(self):
        cfg = load_sync_config(PROJECT_ROOT / "config" / "tournament_sync.yml")
        assert cfg == SyncConfig()

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_sync_config(tmp_path / "nope.yml")


# ---------------------------------------------------------------------------
# validate_sync_config
# ---------------------------------------------------------------------------

class TestValidateSyncConfig:
    def test_root_must_be_mapping(self):
        with pytest.raises(SyncConfigValidationError, match="mapping"):
            validate_sync_config(["matcher"])

    def test_unknown_top_level_key(self):
        with pytest.raises(SyncConfigValidationError, match="Unknown config keys"):
            validate_sync_config({"matchr": "exact"})

    def test_unknown_matcher(self):
        with pytest.raises(SyncConfigValidationError, match="Invalid matcher"):
            validate_sync_config({"matcher": "fuzzy"})

    def test_unknown_staging_key(self):
        with pytest.raises(SyncConfigValidationError, match="Unknown staging keys"):
            validate_sync_config({"staging": {"interval": 5}})

    @pytest.mark.parametrize("value", [0, -5, "soon", True])
    def test_staging_values_must_be_positive_numbers(self, value):
        with pytest.raises(SyncConfigValidationError):
            validate_sync_config({"staging": {"sweep_interval_seconds": value}})

    def test_multiplier_below_one_rejected(self):
        with pytest.raises(SyncConfigValidationError, match=">= 1"):
            validate_sync_config({"staging": {"backoff_max_multiplier": 0.5}})

    def test_create_missing_must_be_bool(self):
        with pytest.raises(SyncConfigValidationError, match="create_missing"):
            validate_sync_config({"reconcile": {"create_missing": "yes"}})

    def test_is_a_value_error(self):
        assert issubclass(SyncConfigValidationError, ValueError)

    def test_valid_config_passes(self):
        validate_sync_config({"matcher": "exact", "staging": {"purge_max_age_minutes": 30}})
