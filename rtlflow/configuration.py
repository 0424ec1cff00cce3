"""Layered configuration loader for rtlflow."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import yaml
from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import ConfigurationError
from .structures import EngineConfig

APP_NAME = "rtlflow"
ENV_PREFIX = "RTLFLOW_"
LOCAL_CONFIG_NAME = "rtlflow.yaml"


def normalise_keys(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Accept short or dashed key names and percentage thresholds."""

    normalised: Dict[str, Any] = {}
    for key, value in data.items():
        name = str(key).strip().upper().replace("-", "_")
        if not name.startswith(ENV_PREFIX):
            name = ENV_PREFIX + name
        normalised[name] = value
    threshold = normalised.get("RTLFLOW_THRESHOLD")
    if isinstance(threshold, str) and threshold.strip().endswith("%"):
        try:
            normalised["RTLFLOW_THRESHOLD"] = float(threshold.strip()[:-1]) / 100
        except ValueError:
            pass
    return normalised


class RtlFlowConfig(BaseModel):
    """Schema describing all supported configuration options."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    RTLFLOW_THRESHOLD: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Minimum right-to-left letter ratio for styling.",
    )
    RTLFLOW_DEBOUNCE_MS: float = Field(default=150.0, ge=0.0)
    RTLFLOW_SLICE_BUDGET_MS: float = Field(default=16.0, gt=0.0)
    RTLFLOW_VISUAL_FEEDBACK: bool = Field(default=True)
    RTLFLOW_IFRAME_HANDLING: bool = Field(default=True)
    RTLFLOW_SETTINGS_PATH: Optional[Path] = Field(
        default=None,
        description="JSON file holding the shared enabled flag.",
    )

    @model_validator(mode="before")
    @classmethod
    def _normalise_keys(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return normalise_keys(data)
        return data

    def engine_config(self, **overrides: Any) -> EngineConfig:
        values: Dict[str, Any] = {
            "rtl_threshold": self.RTLFLOW_THRESHOLD,
            "debounce_delay_ms": self.RTLFLOW_DEBOUNCE_MS,
            "slice_budget_ms": self.RTLFLOW_SLICE_BUDGET_MS,
            "visual_feedback": self.RTLFLOW_VISUAL_FEEDBACK,
            "iframe_handling": self.RTLFLOW_IFRAME_HANDLING,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return EngineConfig(**values)


def discover_config_files(app_dir: Path) -> List[Tuple[Path, str]]:
    """Return existing YAML files in increasing order of precedence."""

    candidates = [
        (Path.home() / ".config" / APP_NAME / "config.yaml", "home"),
        (app_dir / LOCAL_CONFIG_NAME, "local"),
    ]
    return [(path, label) for path, label in candidates if path.is_file()]


@lru_cache(maxsize=None)
def _load_config(app_dir: Optional[Path] = None) -> RtlFlowConfig:
    """Load configuration layers once and cache the immutable model."""

    base_dir = app_dir or Path.cwd()
    combined = _load_yaml_layers(base_dir)
    _merge_env_sources(combined, app_dir=base_dir)
    try:
        return RtlFlowConfig.model_validate(combined)
    except ValidationError as exc:
        raise ConfigurationError(_format_validation_errors(exc.errors())) from exc


def _load_yaml_layers(app_dir: Path) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for path, label in discover_config_files(app_dir):
        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(
                f"Configuration file {path} ({label}) could not be read: {exc}"
            ) from exc
        if parsed is None:
            continue
        if not isinstance(parsed, Mapping):
            raise ConfigurationError(
                f"Invalid configuration file {path}: expected a mapping at the root."
            )
        result.update(normalise_keys(dict(parsed)))
    return result


def _merge_env_sources(target: Dict[str, Any], *, app_dir: Path) -> None:
    """Merge .env and process environment variables into the target mapping."""

    allowed = set(RtlFlowConfig.model_fields)

    def merge_values(values: Mapping[str, Optional[str]]) -> None:
        for key, value in sorted(values.items()):
            if value is None or key not in allowed:
                continue
            target[key] = value

    dotenv_path = app_dir / ".env"
    if dotenv_path.exists():
        merge_values(dotenv_values(dotenv_path))
    merge_values(dict(os.environ))


def _format_validation_errors(entries: Sequence[Mapping[str, Any]]) -> str:
    details: List[str] = []
    for entry in entries:
        location = ".".join(str(part) for part in entry.get("loc", ()) if part != "")
        message = str(entry.get("msg") or "Invalid value")
        prefix = f"{location}: " if location else ""
        details.append(f"- {prefix}{message}")
    return "Configuration validation errors detected:\n" + "\n".join(details)


def get_settings(app_dir: Optional[Path] = None) -> RtlFlowConfig:
    """Return the validated configuration model."""

    return _load_config(app_dir=app_dir)


def reset_settings_cache() -> None:
    _load_config.cache_clear()
