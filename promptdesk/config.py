"""Configuration loader for the PromptDesk server.

Reads a JSON config file naming the catalog (models, prompts,
organizations), log destinations, authentication settings and the default
provider timeout. Provider secrets are never stored here; organizations
name the environment variable that holds theirs.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union


@dataclass
class AuthConfig:
    """API key authentication configuration.

    When disabled, every authenticated route runs as ``default_organization``.
    """

    enabled: bool = True
    default_organization: Optional[str] = None


@dataclass
class PromptDeskConfig:
    """Top-level server configuration."""

    catalog_file: Optional[str] = None
    log_file: str = "logs/promptdesk.log"
    log_level: str = "INFO"
    generation_log_file: str = "logs/generations.jsonl"
    default_timeout_seconds: float = 60.0
    auth: AuthConfig = field(default_factory=AuthConfig)


def load_config(path: Union[str, Path]) -> PromptDeskConfig:
    """Load server configuration from a JSON file.

    Args:
        path: Path to the JSON config file.

    Returns:
        A fully resolved PromptDeskConfig instance.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the config file contains invalid data.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        try:
            raw: Dict[str, Any] = json.load(f)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in config file {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ValueError(f"Config file {path} must contain a JSON object.")

    auth_raw = raw.get("auth", {})
    auth = AuthConfig(
        enabled=auth_raw.get("enabled", True),
        default_organization=auth_raw.get("default_organization"),
    )
    if not auth.enabled and not auth.default_organization:
        raise ValueError("auth.default_organization is required when auth is disabled.")

    try:
        timeout = float(raw.get("default_timeout_seconds", 60.0))
    except (TypeError, ValueError) as exc:
        raise ValueError("default_timeout_seconds must be a number.") from exc
    if timeout <= 0:
        raise ValueError("default_timeout_seconds must be positive.")

    log_level = str(raw.get("log_level", "INFO")).upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ValueError(f"Unknown log_level '{log_level}'.")

    return PromptDeskConfig(
        catalog_file=raw.get("catalog_file"),
        log_file=raw.get("log_file", "logs/promptdesk.log"),
        log_level=log_level,
        generation_log_file=raw.get("generation_log_file", "logs/generations.jsonl"),
        default_timeout_seconds=timeout,
        auth=auth,
    )
