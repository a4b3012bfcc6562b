"""tournament_sync.config

YAML-based settings for the reconcile and staging modes.

Responsibilities:
  - Load and validate config/tournament_sync.yml (or any --config path)
  - Fall back to built-in defaults when no file is given

Example:
    matcher: exact
    reconcile:
      create_missing: false
    staging:
      sweep_interval_seconds: 30
      backoff_max_multiplier: 32
      purge_max_age_minutes: 60
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml

from tournament_sync.matching import MATCHER_NAMES

ALLOWED_TOP_LEVEL_KEYS = frozenset({"matcher", "reconcile", "staging"})
ALLOWED_STAGING_KEYS = frozenset({
    "sweep_interval_seconds",
    "backoff_max_multiplier",
    "purge_max_age_minutes",
})
ALLOWED_RECONCILE_KEYS = frozenset({"create_missing"})


class SyncConfigValidationError(ValueError):
    """Raised when a config file fails schema validation."""


@dataclass
class SyncConfig:
    matcher: str = "exact"
    create_missing: bool = False
    sweep_interval_seconds: float = 30.0
    backoff_max_multiplier: float = 32.0
    purge_max_age_minutes: float = 60.0

    @property
    def purge_max_age(self) -> timedelta:
        return timedelta(minutes=self.purge_max_age_minutes)


def load_sync_config(path: Path | None) -> SyncConfig:
    """Load, validate, and return a SyncConfig; None returns the defaults.

    Raises:
        SyncConfigValidationError: If any key is unknown or a value is invalid.
        FileNotFoundError: If the file does not exist.
    """
    if path is None:
        return SyncConfig()
    raw = path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw)
    if data is None:
        return SyncConfig()
    validate_sync_config(data)
    staging = data.get("staging") or {}
    reconcile = data.get("reconcile") or {}
    defaults = SyncConfig()
    return SyncConfig(
        matcher=str(data.get("matcher", defaults.matcher)),
        create_missing=bool(reconcile.get("create_missing", defaults.create_missing)),
        sweep_interval_seconds=float(
            staging.get("sweep_interval_seconds", defaults.sweep_interval_seconds)
        ),
        backoff_max_multiplier=float(
            staging.get("backoff_max_multiplier", defaults.backoff_max_multiplier)
        ),
        purge_max_age_minutes=float(
            staging.get("purge_max_age_minutes", defaults.purge_max_age_minutes)
        ),
    )


def _positive_number(section: str, key: str, value: Any) -> None:
    if isinstance(value, bool):
        raise SyncConfigValidationError(f"{section}.{key} value '{value}' is not numeric.")
    try:
        fval = float(value)
    except (TypeError, ValueError):
        raise SyncConfigValidationError(f"{section}.{key} value '{value}' is not numeric.")
    if fval <= 0:
        raise SyncConfigValidationError(f"{section}.{key} value {fval} must be > 0.")


def validate_sync_config(data: Any) -> None:
    """Raise SyncConfigValidationError if data does not match the schema.

    Validates:
      - root is a mapping with only known keys
      - matcher is one of the registered matchers
      - staging numbers are positive, backoff multiplier >= 1
      - reconcile.create_missing is a boolean
    """
    if not isinstance(data, dict):
        raise SyncConfigValidationError("YAML root must be a mapping.")

    unknown = set(data.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown:
        raise SyncConfigValidationError(f"Unknown config keys: {sorted(unknown)}")

    matcher = data.get("matcher", "exact")
    if matcher not in MATCHER_NAMES:
        raise SyncConfigValidationError(
            f"Invalid matcher '{matcher}'. Must be one of {list(MATCHER_NAMES)}."
        )

    staging = data.get("staging") or {}
    if not isinstance(staging, dict):
        raise SyncConfigValidationError("'staging' must be a mapping.")
    unknown = set(staging.keys()) - ALLOWED_STAGING_KEYS
    if unknown:
        raise SyncConfigValidationError(f"Unknown staging keys: {sorted(unknown)}")
    for key, value in staging.items():
        _positive_number("staging", key, value)
    if float(staging.get("backoff_max_multiplier", 1)) < 1:
        raise SyncConfigValidationError("staging.backoff_max_multiplier must be >= 1.")

    reconcile = data.get("reconcile") or {}
    if not isinstance(reconcile, dict):
        raise SyncConfigValidationError("'reconcile' must be a mapping.")
    unknown = set(reconcile.keys()) - ALLOWED_RECONCILE_KEYS
    if unknown:
        raise SyncConfigValidationError(f"Unknown reconcile keys: {sorted(unknown)}")
    if "create_missing" in reconcile and not isinstance(reconcile["create_missing"], bool):
        raise SyncConfigValidationError("reconcile.create_missing must be true or false.")
