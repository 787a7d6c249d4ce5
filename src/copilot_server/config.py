"""Configuration loading utilities for the copilot server.

This module handles layered configuration:
1. Explicit path argument (highest precedence)
2. Environment variable COPILOT_CONFIG
3. Fallback to "config/default.yaml"

Missing keys are filled from :data:`DEFAULTS`. Values can be overridden
from environment variables with prefix ``COPILOT__``
(e.g., COPILOT__MODEL__TEMPERATURE=0.2).
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict

import yaml

from .constants import DEFAULT_MODEL, DEFAULT_TEMPERATURE

logger = logging.getLogger(__name__)

ENV_PREFIX = "COPILOT__"

DEFAULTS: Dict[str, Any] = {
    "model": {
        "name": DEFAULT_MODEL,
        "temperature": DEFAULT_TEMPERATURE,
        "api_key": None,
    },
    "knowledge": {"data_dir": "data", "seed_sample": True},
    "acquisition": {
        "timeout": 15,
        "max_file_mb": 100,
        "reader_proxy": "https://r.jina.ai/",
        "cors_proxy": "https://corsproxy.io/?",
        "secondary_proxy": "https://api.allorigins.win/get?url=",
        "user_agent": "CopilotKnowledgeFetcher/1.0",
    },
    "policy": {"system_prompt": None},
    "server": {"cors_origins": ["*"]},
    "logging": {"level": "INFO"},
}


def _coerce(value: str) -> Any:
    if value.lower() in {"true", "false"}:
        return value.lower() == "true"
    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        return value


def _apply_env_overrides(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides with prefix COPILOT__."""
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        # e.g., COPILOT__ACQUISITION__TIMEOUT -> cfg["acquisition"]["timeout"]
        parts = key[len(ENV_PREFIX):].lower().split("__")
        sub = cfg
        for p in parts[:-1]:
            if p not in sub or not isinstance(sub[p], dict):
                sub[p] = {}
            sub = sub[p]
        sub[parts[-1]] = _coerce(value)
    return cfg


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


def load_config(path: str | None = None) -> Dict[str, Any]:
    """Load YAML configuration for the copilot server.

    Parameters
    ----------
    path : str | None
        Optional path to a configuration file. If not provided, the
        environment variable ``COPILOT_CONFIG`` is consulted. As a
        last resort ``config/default.yaml`` is used.

    Returns
    -------
    Dict[str, Any]
        Defaults merged with the file contents, with env overrides applied.
    """
    if path is None:
        path = os.environ.get("COPILOT_CONFIG", "config/default.yaml")

    path_obj = Path(path)
    if not path_obj.exists():
        logger.warning("Config file not found at %s. Using defaults.", path_obj)
        return _apply_env_overrides(copy.deepcopy(DEFAULTS))

    with path_obj.open("r", encoding="utf-8") as f:
        try:
            loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise RuntimeError(f"Failed to parse config file {path_obj}: {e}") from e

    if not isinstance(loaded, dict):
        raise RuntimeError(f"Invalid config format in {path_obj}, expected dict.")

    return _apply_env_overrides(_merge(DEFAULTS, loaded))


def configure_logging(cfg: Dict[str, Any]) -> None:
    level = str(cfg.get("logging", {}).get("level", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
