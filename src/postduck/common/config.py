"""
Postduck Configuration

Runtime settings for the dispatcher, the local agent and the API server.
Settings come from defaults, an optional YAML file and POSTDUCK_* environment
variables, in that order of precedence (last wins).
"""

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

# Environment variable → (field name, type)
ENV_OVERRIDES = {
    'POSTDUCK_AGENT_PORT': ('agent_port', int),
    'POSTDUCK_API_PORT': ('api_port', int),
    'POSTDUCK_TIMEOUT': ('request_timeout', float),
    'POSTDUCK_WEB_ORIGIN': ('web_origin', str),
    'POSTDUCK_STORE': ('store_path', str),
    'POSTDUCK_LOG_LEVEL': ('log_level', str),
}


@dataclass
class PostduckConfig:
    """Configuration for request dispatch and the HTTP surfaces."""

    # Dispatch
    request_timeout: float = 30.0  # Hard timeout per request, in seconds
    health_timeout: float = 1.0  # Local agent health probe timeout
    verify_ssl: bool = True
    form_encoding: str = "urlencoded"  # urlencoded, multipart

    # Local agent
    agent_host: str = "127.0.0.1"
    agent_port: int = 19199

    # Direct dispatch API
    api_host: str = "127.0.0.1"
    api_port: int = 8000
    web_origin: str = "https://postduck.org"

    # Workspace store snapshot
    store_path: Optional[str] = None

    log_level: str = "info"

    @property
    def agent_url(self) -> str:
        """Base URL the dispatcher uses to reach the local agent."""
        return f"http://localhost:{self.agent_port}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PostduckConfig':
        """Create config from a dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in known})

    @classmethod
    def from_yaml(cls, yaml_path: str) -> 'PostduckConfig':
        """Load config from a YAML file."""
        with open(yaml_path, 'r') as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Expected a mapping in {yaml_path}, got {type(data).__name__}")

        return cls.from_dict(data)

    def with_env(self, environ: Optional[Dict[str, str]] = None) -> 'PostduckConfig':
        """
        Return a copy with POSTDUCK_* environment overrides applied.

        Args:
            environ: Environment mapping (defaults to os.environ)
        """
        environ = os.environ if environ is None else environ
        overrides = {}
        for env_name, (field_name, cast) in ENV_OVERRIDES.items():
            if env_name in environ and environ[env_name] != '':
                try:
                    overrides[field_name] = cast(environ[env_name])
                except ValueError:
                    raise ValueError(f"Invalid value for {env_name}: {environ[env_name]!r}")

        return replace(self, **overrides)


def load_config(yaml_path: Optional[str] = None) -> PostduckConfig:
    """
    Load configuration from an optional YAML file plus environment overrides.

    Args:
        yaml_path: Path to a YAML config file (skipped if None or missing)

    Returns:
        Resolved PostduckConfig
    """
    if yaml_path and Path(yaml_path).exists():
        config = PostduckConfig.from_yaml(yaml_path)
    else:
        config = PostduckConfig()

    return config.with_env()
