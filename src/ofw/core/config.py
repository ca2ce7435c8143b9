"""Configuration management using Pydantic.

Provides:
- Typed configuration models with validation
- YAML file loading with defaults
- Environment variable overrides for overlay addressing
- Configuration initialization and display
"""

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

from ofw.core.exceptions import ConfigurationError, ValidationError
from ofw.core.validation import (
    validate_chain_name,
    validate_cidr,
    validate_resync_period,
    validate_subnet_in_network,
)


# Default configuration paths
DEFAULT_CONFIG_PATH = Path("/etc/ofw/config.yaml")

# Custom chains reached from the built-in FORWARD/INPUT chains
DEFAULT_FORWARD_CHAIN = "OVERLAY-FORWARD"
DEFAULT_INPUT_CHAIN = "OVERLAY-INPUT"

DEFAULT_RESYNC_PERIOD = 5


def _as_value_error(validator, value):
    """Run an ofw validator, re-raising failures the way pydantic expects."""
    try:
        return validator(value)
    except ValidationError as e:
        raise ValueError(e.message) from e


class ChainsConfig(BaseModel):
    """Custom chain names used as jump targets."""

    forward: str = DEFAULT_FORWARD_CHAIN
    input: str = DEFAULT_INPUT_CHAIN

    @field_validator("forward", "input")
    @classmethod
    def validate_chain(cls, v: str) -> str:
        return _as_value_error(validate_chain_name, v)


class IptablesConfig(BaseModel):
    """Backing engine settings."""

    binary: str = "iptables"


class OverlayConfig(BaseModel):
    """Root configuration model for one overlay network on this host.

    Loaded from /etc/ofw/config.yaml. The network and subnet may also come
    from the environment (OFW_NETWORK, OFW_SUBNET).
    """

    network: Optional[str] = None
    subnet: Optional[str] = None
    resync_period: int = DEFAULT_RESYNC_PERIOD

    # Rule set toggles
    ip_masq: bool = True
    forward_rules: bool = True
    input_rules: bool = False

    chains: ChainsConfig = Field(default_factory=ChainsConfig)
    iptables: IptablesConfig = Field(default_factory=IptablesConfig)

    @field_validator("network", "subnet")
    @classmethod
    def validate_network(cls, v: Optional[str]) -> Optional[str]:
        if v:
            return _as_value_error(validate_cidr, v)
        return v

    @field_validator("resync_period")
    @classmethod
    def validate_period(cls, v: int) -> int:
        return _as_value_error(validate_resync_period, v)

    @model_validator(mode="after")
    def validate_subnet_placement(self) -> "OverlayConfig":
        if self.network and self.subnet:
            try:
                validate_subnet_in_network(self.subnet, self.network)
            except ValidationError as e:
                raise ValueError(e.message) from e
        if self.chains.forward == self.chains.input:
            raise ValueError("Forward and input chains must have different names")
        return self

    @classmethod
    def load(cls, path: Path) -> "OverlayConfig":
        """Load configuration from YAML file.

        Args:
            path: Path to configuration file

        Returns:
            Loaded configuration

        Raises:
            ConfigurationError: If file not found or invalid
        """
        if not path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {path}",
                hint="Create it with: ofw config init",
            )

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in configuration file: {path}",
                details=[str(e)],
            ) from e
        except PermissionError:
            raise ConfigurationError(
                f"Cannot read configuration file: {path}",
                hint="Check file permissions or run with sudo",
            )

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration file must contain a mapping: {path}",
            )

        try:
            return cls(**data)
        except Exception as e:
            raise ConfigurationError(
                f"Invalid configuration: {path}",
                details=[str(e)],
            ) from e

    @classmethod
    def load_or_default(cls, path: Optional[Path] = None) -> "OverlayConfig":
        """Load configuration, falling back to defaults if file doesn't exist."""
        if path is None:
            path = DEFAULT_CONFIG_PATH

        if path.exists():
            return cls.load(path)
        return cls()

    def to_yaml(self) -> str:
        """Convert configuration to YAML string."""
        data = self.model_dump(exclude_none=True)
        return yaml.dump(data, default_flow_style=False, sort_keys=False)


class OverlayEnv(BaseSettings):
    """Overlay addressing handed over through the environment.

    Values here take precedence over the configuration file.
    """

    network: Optional[str] = Field(None, alias="OFW_NETWORK")
    subnet: Optional[str] = Field(None, alias="OFW_SUBNET")
    resync_period: Optional[int] = Field(None, alias="OFW_RESYNC_PERIOD")

    class Config:
        extra = "ignore"


class AppConfig:
    """Application configuration combining config file and environment.

    This is the main interface for accessing configuration throughout the app.
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        config: Optional[OverlayConfig] = None,
        env: Optional[OverlayEnv] = None,
    ) -> None:
        """Initialize application configuration.

        Args:
            config_path: Path to config file (uses default if None)
            config: Pre-loaded config (skips file loading if provided)
            env: Pre-loaded environment overrides (read from os.environ if None)
        """
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        file_config = config if config is not None else OverlayConfig.load_or_default(self.config_path)
        self._env = env if env is not None else OverlayEnv()
        self._config = self._merge(file_config, self._env)

    @staticmethod
    def _merge(file_config: OverlayConfig, env: OverlayEnv) -> OverlayConfig:
        overrides: dict[str, Any] = env.model_dump(exclude_none=True)
        if not overrides:
            return file_config

        data = file_config.model_dump()
        data.update(overrides)
        try:
            return OverlayConfig(**data)
        except Exception as e:
            raise ConfigurationError(
                "Invalid overlay settings in environment",
                details=[str(e)],
            ) from e

    @property
    def config(self) -> OverlayConfig:
        """Get the merged configuration."""
        return self._config

    @property
    def env(self) -> OverlayEnv:
        """Get the environment overrides."""
        return self._env

    @property
    def chains(self) -> ChainsConfig:
        """Shortcut to chain names."""
        return self._config.chains

    @property
    def resync_period(self) -> int:
        return self._config.resync_period

    @property
    def network(self) -> str:
        """Overlay network CIDR.

        Raises:
            ConfigurationError: If no network is configured
        """
        if not self._config.network:
            raise ConfigurationError(
                "Overlay network is not configured",
                hint=f"Set 'network' in {self.config_path} or export OFW_NETWORK",
            )
        return self._config.network

    @property
    def subnet(self) -> str:
        """This host's leased subnet CIDR.

        Raises:
            ConfigurationError: If no subnet is configured
        """
        if not self._config.subnet:
            raise ConfigurationError(
                "Lease subnet is not configured",
                hint=f"Set 'subnet' in {self.config_path} or export OFW_SUBNET",
            )
        return self._config.subnet


def get_example_config() -> str:
    """Generate example configuration file content."""
    return f"""# Overlay firewall configuration
# One file per host. OFW_NETWORK / OFW_SUBNET in the environment override
# the addressing below.

# Overlay network spanning all hosts
network: 10.1.0.0/16

# Subnet leased to this host (must be inside the network)
subnet: 10.1.15.0/24

# Seconds between drift checks
resync_period: {DEFAULT_RESYNC_PERIOD}

# Rule sets to manage
ip_masq: true         # nat/POSTROUTING masquerade rules
forward_rules: true   # filter/FORWARD admission via a custom chain
input_rules: false    # filter/INPUT admission via a custom chain

# Custom chain names (change when several overlays share a host)
chains:
  forward: {DEFAULT_FORWARD_CHAIN}
  input: {DEFAULT_INPUT_CHAIN}

iptables:
  binary: iptables
"""


def init_config(path: Path, force: bool = False) -> None:
    """Initialize a new configuration file.

    Args:
        path: Path to create config file
        force: Overwrite if exists

    Raises:
        ConfigurationError: If file exists and force is False
    """
    if path.exists() and not force:
        raise ConfigurationError(
            f"Configuration file already exists: {path}",
            hint="Use --force to overwrite",
        )

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(get_example_config())
    os.chmod(path, 0o644)
