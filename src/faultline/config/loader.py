"""
Settings loader for resilience policy documents.

Supports:
- YAML files (.yaml / .yml)
- JSON files (.json)
- The FAULTLINE_CONFIG environment variable as the default location
- Plain dictionaries (already-parsed documents)
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from faultline.config.settings import ResilienceSettings
from faultline.errors import ConfigurationError, ErrorContext

CONFIG_ENV_VAR = "FAULTLINE_CONFIG"

_YAML_SUFFIXES = {".yaml", ".yml"}


def parse_settings(data: dict[str, Any] | None) -> ResilienceSettings:
    """Validate an already-parsed settings document.

    Args:
        data: Parsed document (None or empty yields defaults)

    Returns:
        Validated settings

    Raises:
        ConfigurationError: If the document fails validation
    """
    if data is not None and not isinstance(data, dict):
        raise ConfigurationError(
            "Settings document must be a mapping",
            value=type(data).__name__,
        )

    try:
        return ResilienceSettings.model_validate(data or {})
    except ValidationError as e:
        first = e.errors()[0]
        field_path = ".".join(str(part) for part in first["loc"])
        ctx = ErrorContext(source="config", field_path=field_path)
        ctx.details["errors"] = e.error_count()
        raise ConfigurationError(
            f"Invalid resilience settings: {first['msg']}", ctx
        ) from e


def _read_document(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(
            f"Cannot read settings file: {path}", field=str(path)
        ) from e

    suffix = path.suffix.lower()
    if suffix in _YAML_SUFFIXES:
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in settings file: {path}", field=str(path)
            ) from e
    if suffix == ".json":
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Invalid JSON in settings file: {path}", field=str(path)
            ) from e

    raise ConfigurationError(
        f"Unsupported settings file type: {suffix or '<none>'}",
        field=str(path),
    ).with_hint("use .yaml, .yml or .json")


def load_settings(path: str | Path | None = None) -> ResilienceSettings:
    """Load resilience settings from a file.

    The file is resolved in this order:
    1. Explicit ``path`` if provided
    2. The FAULTLINE_CONFIG environment variable
    3. No file: default (empty) settings

    Args:
        path: Settings file path

    Returns:
        Validated settings

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid
    """
    if path is None:
        env_path = os.getenv(CONFIG_ENV_VAR)
        if not env_path:
            return ResilienceSettings()
        path = env_path

    resolved = Path(path)
    if not resolved.exists():
        raise ConfigurationError(
            f"Settings file not found: {resolved}", field=str(resolved)
        )

    return parse_settings(_read_document(resolved))
