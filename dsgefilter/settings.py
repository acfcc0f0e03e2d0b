#!/usr/bin/env python3
"""
Filter settings.

Settings can be given directly, or read from the ``estimation`` section of a
model YAML file::

    estimation:
      filter:
        presample: 4
        use_numba: true
"""

import os
from dataclasses import dataclass, fields, replace as _replace
from typing import IO, Any, Dict, Mapping, Union

import numpy as np
import yaml

from .dlyap import DIFFUSE_SCALE
from .errors import ConfigurationError
from .logging_config import get_logger

logger = get_logger("settings")

EMPTY_DATA_ACTIONS = ("warn", "raise")

# Spellings accepted in YAML files.
_ALIASES = {
    "presample": "n_presample_periods",
    "t0": "n_presample_periods",
}


@dataclass(frozen=True)
class FilterSettings:
    """
    Options controlling a filter run.

    Attributes:
        allout: Record the per-period outputs (pred, filt, errors, ...).
        n_presample_periods: Leading periods that are filtered but excluded
            from the likelihood and from all per-period outputs.
        diffuse_scale: Variance of the diffuse prior used when the first
            regime is not stationary.
        use_numba: Use the compiled kernel for likelihood-only runs.
        on_empty_data: ``"warn"`` or ``"raise"`` when no observation is
            available in any period.
    """

    allout: bool = True
    n_presample_periods: int = 0
    diffuse_scale: float = DIFFUSE_SCALE
    use_numba: bool = True
    on_empty_data: str = "warn"

    def __post_init__(self):
        try:
            n = None if isinstance(self.n_presample_periods, bool) else int(self.n_presample_periods)
        except (TypeError, ValueError):
            n = None
        if n is None or n != self.n_presample_periods or n < 0:
            raise ConfigurationError(
                f"n_presample_periods must be a non-negative integer, got {self.n_presample_periods!r}")
        object.__setattr__(self, "n_presample_periods", n)

        try:
            scale = None if isinstance(self.diffuse_scale, bool) else float(self.diffuse_scale)
        except (TypeError, ValueError):
            scale = None
        if scale is None or not (np.isfinite(scale) and scale > 0):
            raise ConfigurationError(f"diffuse_scale must be a positive number, got {self.diffuse_scale!r}")
        object.__setattr__(self, "diffuse_scale", scale)

        if self.on_empty_data not in EMPTY_DATA_ACTIONS:
            raise ConfigurationError(
                f"on_empty_data must be one of {EMPTY_DATA_ACTIONS}, got {self.on_empty_data!r}")

        object.__setattr__(self, "allout", bool(self.allout))
        object.__setattr__(self, "use_numba", bool(self.use_numba))

    def replace(self, **overrides) -> "FilterSettings":
        """Copy with the given fields replaced; ``None`` values are ignored."""
        overrides = {k: v for k, v in overrides.items() if v is not None}
        if not overrides:
            return self
        return _replace(self, **overrides)


def _normalize_keys(raw: Mapping[str, Any]) -> Dict[str, Any]:
    known = {f.name for f in fields(FilterSettings)}
    out: Dict[str, Any] = {}
    for key, value in raw.items():
        key = str(key)
        if key == "likelihood_only":
            out["allout"] = not bool(value)
            continue
        key = _ALIASES.get(key, key)
        if key not in known:
            raise ConfigurationError(f"Unknown filter setting {key!r}. Valid settings: {sorted(known)}")
        out[key] = value
    return out


def read_settings(source: Union[str, os.PathLike, IO, Mapping[str, Any], None]) -> FilterSettings:
    """
    Read filter settings from YAML.

    Args:
        source: A path to a YAML file, an open stream, a YAML string, or an
            already parsed mapping. ``None`` gives the defaults.

    Returns:
        The validated settings.

    Raises:
        ConfigurationError: If the YAML cannot be parsed, does not hold a
            mapping, or names an unknown or invalid setting.
    """
    if source is None:
        return FilterSettings()

    try:
        if isinstance(source, Mapping):
            raw = source
        elif hasattr(source, "read"):
            raw = yaml.safe_load(source)
        elif isinstance(source, os.PathLike) or (isinstance(source, str) and os.path.isfile(source)):
            with open(source) as f:
                raw = yaml.safe_load(f)
        else:
            raw = yaml.safe_load(source)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Filter settings are not valid YAML: {e}") from e

    raw = raw or {}
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"Filter settings must be a mapping, got {type(raw).__name__}")

    if "estimation" in raw:
        estimation = raw["estimation"] or {}
        raw = (estimation.get("filter") or {}) if isinstance(estimation, Mapping) else estimation
    elif "filter" in raw:
        raw = raw["filter"] or {}
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"The filter block must be a mapping, got {type(raw).__name__}")

    settings = FilterSettings(**_normalize_keys(raw))
    logger.debug(f"Read filter settings: {settings}")
    return settings


__all__ = ["FilterSettings", "read_settings", "EMPTY_DATA_ACTIONS"]
