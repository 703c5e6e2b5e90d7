"""
RuleMock Configuration

Server configuration with optional YAML file loading.
"""

import json
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

# Level names uvicorn accepts; "trace" has no stdlib counterpart
LOG_LEVELS = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": logging.DEBUG,
}


@dataclass
class MockConfig:
    """Configuration for mock server behavior."""

    # Server options
    host: str = "127.0.0.1"
    port: int = 3535
    log_level: str = "info"
    verbose_mode: bool = False  # Log the matcher tree for every request

    # Passthrough proxy
    proxy_prefix: str = "/api"
    proxy_target: Optional[str] = None  # e.g. "https://staging.example.com"
    change_origin: bool = True  # Rewrite Host header to the target's host
    proxy_timeout: float = 30.0

    # Response behavior
    mock_status: int = 200  # Status for plain (non-MockResponse) payloads
    max_body_bytes: int = 100 * 1024 * 1024

    # Fallback when nothing matches and nothing is proxied
    fallback_status: int = 404
    fallback_body: str = '{"error": "No matching mock rule and no proxy target"}'

    # Admin API
    admin_enabled: bool = True
    admin_prefix: str = "/__admin__"
    live_requests_limit: int = 100

    def __post_init__(self):
        level = str(self.log_level).lower()
        if level not in LOG_LEVELS:
            raise ValueError(
                f"Invalid log_level '{self.log_level}', expected one of: {', '.join(LOG_LEVELS)}"
            )
        self.log_level = level

    @property
    def logging_level(self) -> int:
        """Stdlib logging level for log_level."""
        return LOG_LEVELS[self.log_level]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MockConfig':
        """
        Create config from a dictionary.

        Raises:
            ValueError: If the dictionary contains unknown keys or an invalid log_level
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(unknown)}")

        values = dict(data)
        # YAML users naturally write fallback_body as a mapping
        if isinstance(values.get('fallback_body'), (dict, list)):
            values['fallback_body'] = json.dumps(values['fallback_body'])
        return cls(**values)

    @classmethod
    def from_yaml(cls, yaml_path: str) -> 'MockConfig':
        """
        Load config from a YAML file.

        Args:
            yaml_path: Path to YAML config file

        Returns:
            MockConfig instance

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the file is not a mapping or has unknown keys
        """
        path = Path(yaml_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping, got {type(data).__name__}")

        return cls.from_dict(data)

    def with_overrides(self, **overrides: Any) -> 'MockConfig':
        """Return a copy with non-None overrides applied."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return MockConfig(**values)
