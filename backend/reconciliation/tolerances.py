"""Matching tolerance configuration."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml

from .keys import DEFAULT_AMOUNT_DELTAS

logger = logging.getLogger(__name__)

AMOUNT_DELTAS_ENV = "RECON_AMOUNT_DELTAS"
# Largest allowed fallback offset, in minor units
MAX_ABS_DELTA = 10_000


class MatchingConfigError(ValueError):
    """Raised when a matching configuration value is unusable."""


@dataclass(frozen=True)
class MatchingConfig:
    amount_deltas: tuple[int, ...] = DEFAULT_AMOUNT_DELTAS
    accumulate_payments: bool = True

    def __post_init__(self) -> None:
        if not self.amount_deltas:
            raise MatchingConfigError("amount_deltas must not be empty")
        for delta in self.amount_deltas:
            if isinstance(delta, bool) or not isinstance(delta, int):
                raise MatchingConfigError(f"amount delta {delta!r} is not an integer")
            if abs(delta) > MAX_ABS_DELTA:
                raise MatchingConfigError(
                    f"amount delta {delta} exceeds {MAX_ABS_DELTA} minor units"
                )


def parse_deltas(raw: str | list[Any] | tuple[Any, ...]) -> tuple[int, ...]:
    """Parse deltas from "0,100,-100" or a YAML list."""
    items = raw.split(",") if isinstance(raw, str) else list(raw)
    try:
        return tuple(int(str(item).strip()) for item in items if str(item).strip())
    except ValueError as e:
        raise MatchingConfigError(f"Invalid amount deltas {raw!r}: {e}") from e


_config_cache: dict[str, MatchingConfig] = {}


def load_matching_config(
    config_path: str | Path | None = None, force_reload: bool = False
) -> MatchingConfig:
    """Load matching tolerances from YAML, then apply environment overrides.

    The YAML file is optional::

        matching:
          amount_deltas: [0, 100, -100, 200, -200]
          accumulate_payments: true

    ``RECON_AMOUNT_DELTAS`` (comma separated) overrides the file.
    A file that cannot be read falls back to defaults with a warning.
    """
    cache_key = str(config_path or "")
    if not force_reload and cache_key in _config_cache:
        return _config_cache[cache_key]

    config = MatchingConfig()

    if config_path and Path(config_path).exists():
        try:
            raw = yaml.safe_load(Path(config_path).read_text()) or {}
            matching = raw.get("matching", {}) or {}
            if "amount_deltas" in matching:
                config = replace(
                    config, amount_deltas=parse_deltas(matching["amount_deltas"])
                )
            if "accumulate_payments" in matching:
                config = replace(
                    config, accumulate_payments=bool(matching["accumulate_payments"])
                )
        except (OSError, yaml.YAMLError, AttributeError, MatchingConfigError) as e:
            logger.warning(f"Failed to load matching config {config_path}: {e}")
            config = MatchingConfig()

    env_deltas = os.getenv(AMOUNT_DELTAS_ENV)
    if env_deltas:
        config = replace(config, amount_deltas=parse_deltas(env_deltas))

    _config_cache[cache_key] = config
    return config
