"""Configuration loading and validation."""

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

DEFAULT_CONFIG_PATH = Path("/etc/pifrost/config.yaml")


class PiholeConfig(BaseModel):
    """Pi-hole connection settings."""

    host: str = Field(description="Pi-hole host, optionally with port (e.g., pihole.local:8080)")
    token: str = Field(description="Pi-hole API token")
    insecure: bool = Field(default=False, description="Talk plain http:// instead of https://")
    timeout: float = Field(default=30.0, description="HTTP timeout in seconds")

    @property
    def secure(self) -> bool:
        return not self.insecure


class KubernetesConfig(BaseModel):
    """Cluster access and Ingress policy."""

    kubeconfig: Path | None = Field(
        default=None, description="Path to kubeconfig (default: in-cluster config)"
    )
    ingress_auto: bool = Field(
        default=False, description="Manage every Ingress, annotated or not"
    )
    ingress_external_ip: str | None = Field(
        default=None, description="Static IP published for all Ingress hosts"
    )


class SettingsConfig(BaseModel):
    """Application settings."""

    log_level: str = Field(default="info", description="debug, info, warning or error")
    health_port: int | None = Field(
        default=None, description="HTTP health endpoint port (optional)"
    )


class Config(BaseModel):
    """Root configuration."""

    pihole: PiholeConfig
    kubernetes: KubernetesConfig = Field(default_factory=KubernetesConfig)
    settings: SettingsConfig = Field(default_factory=SettingsConfig)


def _substitute_env_vars(value: str) -> str:
    """Substitute ${VAR_NAME} patterns with environment variables."""
    pattern = re.compile(r"\$\{([^}]+)\}")

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            raise ValueError(f"Environment variable '{var_name}' not set")
        return env_value

    return pattern.sub(replacer, value)


def _process_env_vars(obj: object) -> object:
    """Recursively process environment variable substitution in a data structure."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: _process_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_process_env_vars(item) for item in obj]
    return obj


def load_config(path: Path) -> Config:
    """Load and validate configuration from a YAML file."""
    with path.open() as f:
        raw_config = yaml.safe_load(f)

    processed_config = _process_env_vars(raw_config)

    return Config.model_validate(processed_config)


def _get_env(name: str, default: str | None = None) -> str:
    """Get environment variable or raise if not set and no default."""
    value = os.environ.get(name, default)
    if value is None:
        raise ValueError(f"Environment variable '{name}' is required")
    return value


def _get_env_float(name: str, default: float) -> float:
    """Get environment variable as float."""
    value = os.environ.get(name)
    return float(value) if value else default


def _get_env_bool(name: str, default: bool) -> bool:
    """Get environment variable as bool."""
    value = os.environ.get(name)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes")


def load_config_from_env() -> Config:
    """Load configuration from environment variables.

    Required environment variables:
        PIHOLE_HOST: Pi-hole host[:port]
        PIHOLE_TOKEN: Pi-hole API token

    Optional environment variables:
        PIHOLE_INSECURE: Use http:// (default: false)
        PIHOLE_TIMEOUT: HTTP timeout in seconds (default: 30)
        KUBECONFIG: Path to kubeconfig (default: in-cluster)
        INGRESS_AUTO: Manage all Ingress objects (default: false)
        INGRESS_EXTERNAL_IP: Static IP for Ingress hosts (default: none)
        LOG_LEVEL: Logging level (default: info)
        HEALTH_PORT: HTTP health port (default: none)
    """
    kubeconfig = os.environ.get("KUBECONFIG")
    health_port_str = os.environ.get("HEALTH_PORT")
    health_port = int(health_port_str) if health_port_str else None

    return Config(
        pihole=PiholeConfig(
            host=_get_env("PIHOLE_HOST"),
            token=_get_env("PIHOLE_TOKEN"),
            insecure=_get_env_bool("PIHOLE_INSECURE", False),
            timeout=_get_env_float("PIHOLE_TIMEOUT", 30.0),
        ),
        kubernetes=KubernetesConfig(
            kubeconfig=Path(kubeconfig) if kubeconfig else None,
            ingress_auto=_get_env_bool("INGRESS_AUTO", False),
            ingress_external_ip=os.environ.get("INGRESS_EXTERNAL_IP") or None,
        ),
        settings=SettingsConfig(
            log_level=_get_env("LOG_LEVEL", "info"),
            health_port=health_port,
        ),
    )


def load_config_auto(path: Path | None = None) -> tuple[Config, str]:
    """Load from an explicit file, the default file if present, else the environment.

    Returns:
        Tuple of the configuration and a description of where it came from
    """
    if path is not None:
        return load_config(path), str(path)
    if DEFAULT_CONFIG_PATH.exists():
        return load_config(DEFAULT_CONFIG_PATH), str(DEFAULT_CONFIG_PATH)
    return load_config_from_env(), "environment"
