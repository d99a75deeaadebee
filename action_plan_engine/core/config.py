"""Load engine settings from an optional YAML file, with env-var overrides."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Literal, Optional, cast

import yaml

from action_plan_engine.core.progress.due_dates import DEFAULT_UPCOMING_LIMIT
from action_plan_engine.core.status.transition import TRANSITION_POLICIES, TransitionPolicy


DeletePolicy = Literal["clear", "block"]
DELETE_POLICIES: tuple[str, ...] = ("clear", "block")
LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_ENV_KEYS: dict[str, str] = {
    "PLANENGINE_TRANSITION_POLICY": "transition_policy",
    "PLANENGINE_ON_DELETE": "on_delete_with_dependents",
    "PLANENGINE_UPCOMING_LIMIT": "upcoming_limit",
    "PLANENGINE_LOG_LEVEL": "log_level",
}


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class EngineConfig:
    transition_policy: TransitionPolicy = "permissive"
    on_delete_with_dependents: DeletePolicy = "clear"
    upcoming_limit: int = DEFAULT_UPCOMING_LIMIT
    log_level: str = "WARNING"


def load_config(config_path: Optional[str | Path] = None) -> EngineConfig:
    """Build an EngineConfig.

    Resolution order, later wins:
      1) defaults
      2) the YAML mapping at config_path (when given)
      3) PLANENGINE_TRANSITION_POLICY, PLANENGINE_ON_DELETE,
         PLANENGINE_UPCOMING_LIMIT, PLANENGINE_LOG_LEVEL
    """

    raw: dict[str, Any] = {}
    if config_path:
        p = Path(config_path)
        if not p.exists():
            raise FileNotFoundError(f"Config file not found: {p}")
        loaded = yaml.safe_load(p.read_text(encoding="utf-8"))
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigError("config file must be a mapping")
        unknown = sorted(set(loaded) - set(_ENV_KEYS.values()))
        if unknown:
            raise ConfigError(f"unknown config keys: {', '.join(map(str, unknown))}")
        raw.update(loaded)

    for env_key, field_name in _ENV_KEYS.items():
        val = os.environ.get(env_key)
        if val is not None and val.strip():
            raw[field_name] = val.strip()

    return replace(EngineConfig(), **_validate(raw))


def _validate(raw: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}

    if "transition_policy" in raw:
        policy = raw["transition_policy"]
        if policy not in TRANSITION_POLICIES:
            raise ConfigError(f"transition_policy must be one of {list(TRANSITION_POLICIES)}")
        out["transition_policy"] = cast(TransitionPolicy, policy)

    if "on_delete_with_dependents" in raw:
        on_delete = raw["on_delete_with_dependents"]
        if on_delete not in DELETE_POLICIES:
            raise ConfigError(f"on_delete_with_dependents must be one of {list(DELETE_POLICIES)}")
        out["on_delete_with_dependents"] = cast(DeletePolicy, on_delete)

    if "upcoming_limit" in raw:
        try:
            limit = int(raw["upcoming_limit"])
        except (TypeError, ValueError) as e:
            raise ConfigError("upcoming_limit must be an integer") from e
        if limit < 0:
            raise ConfigError("upcoming_limit must be >= 0")
        out["upcoming_limit"] = limit

    if "log_level" in raw:
        level = str(raw["log_level"]).upper()
        if level not in LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {list(LOG_LEVELS)}")
        out["log_level"] = level

    return out


def setup_logging(level: str = "WARNING") -> None:
    """Configure the package logger with a single stderr handler.

    Calling it again replaces the handler, so it follows the current sys.stderr.
    """
    root = logging.getLogger("action_plan_engine")
    root.setLevel(getattr(logging, level.upper(), logging.WARNING))
    for h in [h for h in root.handlers if getattr(h, "_planengine", False)]:
        root.removeHandler(h)

    sh = logging.StreamHandler()
    sh.setFormatter(logging.Formatter(LOG_FORMAT))
    sh._planengine = True  # type: ignore[attr-defined]
    root.addHandler(sh)
