"""
Synth Publish Configuration

Unified configuration with YAML files, environment variables and validation,
plus the network/connection helpers every command needs before touching a
node.

Configuration Sources (in order of precedence):
    1. Environment variables (PUBLISH_*)
    2. Runtime overrides (command-line flags)
    3. User config file (~/.publish/config.yaml)
    4. Project config file (./publish.yaml or ./config/publish.yaml)
    5. Default values

Copyright (c) 2026 Synthetix Publish. All rights reserved.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

from publish.synths.errors import InputError
from publish.synths.observability import PublishLayer, get_logger

logger = get_logger("config", PublishLayer.CONFIG)

T = TypeVar("T")

NETWORKS = ("local", "kovan", "rinkeby", "ropsten", "mainnet")
DEFAULT_NETWORK = "kovan"
LOCAL_PROVIDER_URL = "http://127.0.0.1:8545"


class ConfigError(Exception):
    """Configuration error."""
    pass


class ValidationError(ConfigError):
    """Configuration validation error."""
    pass


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    Supports default values, environment variable binding,
    validation, and change callbacks.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    secret: bool = False  # Never shown by `config show` if True
    _value: Optional[T] = field(default=None, repr=False)
    _callbacks: List[Callable[[T, T], None]] = field(default_factory=list, repr=False)

    def get(self) -> T:
        """Get the current value."""
        if self.env_var and self.env_var in os.environ:
            return self._coerce(os.environ[self.env_var])

        return self._value if self._value is not None else self.default

    def set(self, value: Any) -> None:
        """Set the value with validation."""
        if isinstance(value, str) and not isinstance(self.default, str):
            value = self._coerce(value)
        if self.validator and not self.validator(value):
            raise ValidationError(f"Invalid value for config: {value}")

        old_value = self._value
        self._value = value

        for callback in self._callbacks:
            callback(old_value, value)

    def reset(self) -> None:
        self._value = None

    def _coerce(self, value: str) -> T:
        """Coerce string value to target type."""
        target_type = type(self.default)

        try:
            if target_type == bool:
                return value.lower() in ("true", "1", "yes", "on")  # type: ignore
            elif target_type == int:
                return int(value)  # type: ignore
            elif target_type == float:
                return float(value)  # type: ignore
            elif target_type == Decimal:
                return Decimal(value)  # type: ignore
            elif target_type in (list, tuple):
                return target_type(v.strip() for v in value.split(",") if v.strip())  # type: ignore
            return value  # type: ignore
        except (ArithmeticError, ValueError) as e:
            raise ValidationError(f"Cannot coerce {value!r} to {target_type.__name__}") from e

    def on_change(self, callback: Callable[[T, T], None]) -> None:
        """Register a change callback."""
        self._callbacks.append(callback)


@dataclass
class NetworkConfig:
    """Node and deployment directory settings."""
    default_network: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default=DEFAULT_NETWORK,
        env_var="PUBLISH_NETWORK",
        description="Network to run off when --network is not given",
        validator=lambda x: x.lower() in NETWORKS,
    ))
    deployment_path: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default=os.path.join("publish", "deployed"),
        env_var="PUBLISH_DEPLOYMENT_PATH",
        description="Folder holding one sub-folder of manifests per network",
    ))
    provider_url: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="PUBLISH_PROVIDER_URL",
        description="Node URL; the literal 'network' is replaced by the network name",
    ))
    infura_project_id: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="PUBLISH_INFURA_PROJECT_ID",
        description="Infura project id used when no provider URL is set",
    ))
    private_key: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="PUBLISH_PRIVATE_KEY",
        description="Hex private key of the account sending transactions",
        secret=True,
    ))
    receipt_timeout_seconds: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=120,
        env_var="PUBLISH_RECEIPT_TIMEOUT",
        description="Seconds to wait for a transaction receipt",
        validator=lambda x: x > 0,
    ))


@dataclass
class GasConfig:
    """Fixed gas settings applied to every transaction of a run."""
    gas_price_gwei: ConfigValue[Decimal] = field(default_factory=lambda: ConfigValue(
        default=Decimal("1"),
        env_var="PUBLISH_GAS_PRICE",
        description="Gas price in GWEI",
        validator=lambda x: Decimal(x) > 0,
    ))
    gas_limit: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=150000,
        env_var="PUBLISH_GAS_LIMIT",
        description="Gas limit per transaction",
        validator=lambda x: int(x) > 0,
    ))


@dataclass
class RemovalConfig:
    """Safety settings for synth removal."""
    protected_synths: ConfigValue[tuple] = field(default_factory=lambda: ConfigValue(
        default=("XDR", "sUSD"),
        env_var="PUBLISH_PROTECTED_SYNTHS",
        description="Synths that can never be removed",
        validator=lambda x: len(x) > 0,
    ))


@dataclass
class ObservabilityConfig:
    """Logging settings."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="PUBLISH_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="text",
        env_var="PUBLISH_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))


@dataclass
class PublishConfig:
    """
    Root configuration.

    Aggregates all component configurations and provides
    loading/saving functionality.
    """
    network: NetworkConfig = field(default_factory=NetworkConfig)
    gas: GasConfig = field(default_factory=GasConfig)
    removal: RemovalConfig = field(default_factory=RemovalConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self, include_secrets: bool = False) -> Dict[str, Any]:
        """Convert to dictionary."""
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                if obj.secret and not include_secrets:
                    return "***" if obj.get() else ""
                value = obj.get()
                if isinstance(value, Decimal):
                    return str(value)
                if isinstance(value, tuple):
                    return list(value)
                return value
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract_values(self)

    def to_yaml(self) -> str:
        """Convert to YAML string."""
        return yaml.safe_dump(self.to_dict(), default_flow_style=False)


class ConfigManager:
    """
    Configuration manager with file loading and environment binding.

    Thread-safe singleton that manages configuration lifecycle.
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "ConfigManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._config = PublishConfig()
        self._config_paths: List[Path] = []
        self._initialized = True

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton; the next ConfigManager() starts from defaults."""
        with cls._lock:
            cls._instance = None

    @property
    def config(self) -> PublishConfig:
        return self._config

    @property
    def loaded_paths(self) -> List[Path]:
        return list(self._config_paths)

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if data is None:
            return
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration file must hold a mapping: {path}")

        self._apply_dict(data)
        self._config_paths.append(path)
        logger.info("Loaded configuration file", path=str(path), keys=sorted(data))

    def load_defaults(self) -> None:
        """Load default configuration files if they exist."""
        default_paths = [
            Path.home() / ".publish" / "config.yaml",
            Path("config/publish.yaml"),
            Path("publish.yaml"),
        ]

        for path in default_paths:
            if path.exists():
                self.load_from_file(path)

    def _apply_dict(self, data: Dict[str, Any]) -> None:
        """Apply dictionary values to configuration."""
        def apply_to_config(config_obj: Any, values: Dict[str, Any], prefix: str) -> None:
            for key, value in values.items():
                if not hasattr(config_obj, key):
                    raise ConfigError(f"Unknown config key: {prefix}{key}")
                attr = getattr(config_obj, key)
                if isinstance(attr, ConfigValue):
                    if isinstance(attr.default, tuple) and isinstance(value, list):
                        value = tuple(value)
                    elif isinstance(attr.default, Decimal) and not isinstance(value, Decimal):
                        value = Decimal(str(value))
                    attr.set(value)
                elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                    apply_to_config(attr, value, f"{prefix}{key}.")

        apply_to_config(self._config, data, "")

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: config.set("gas.gas_limit", 200000)
        """
        attr = self.lookup(path)
        if not isinstance(attr, ConfigValue):
            raise ConfigError(f"Invalid config path: {path}")
        attr.set(value)

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: config.get("network.default_network")
        """
        obj = self.lookup(path)
        if isinstance(obj, ConfigValue):
            return obj.get()
        return obj

    def lookup(self, path: str) -> Any:
        obj: Any = self._config
        for part in path.split("."):
            if not hasattr(obj, part):
                raise ConfigError(f"Invalid config path: {path}")
            obj = getattr(obj, part)
        return obj

    def validate(self) -> List[str]:
        """
        Validate all configuration values.

        Returns list of validation errors.
        """
        errors: List[str] = []

        def validate_config(obj: Any, path: str = "") -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                    if obj.validator and not obj.validator(value):
                        errors.append(f"{path}: validation failed for value {value}")
                except (ConfigError, ArithmeticError, ValueError, TypeError) as e:
                    errors.append(f"{path}: {e}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self._config)
        return errors

    def export_schema(self) -> Dict[str, Any]:
        """Export configuration schema for documentation."""
        schema: Dict[str, Any] = {"properties": {}}

        def extract_schema(obj: Any, properties: Dict[str, Any]) -> None:
            if isinstance(obj, ConfigValue):
                properties["type"] = type(obj.default).__name__
                properties["default"] = str(obj.default)
                properties["description"] = obj.description
                if obj.env_var:
                    properties["env_var"] = obj.env_var
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    properties[field_name] = {}
                    extract_schema(getattr(obj, field_name), properties[field_name])

        extract_schema(self._config, schema["properties"])
        return schema


def get_config() -> PublishConfig:
    """Get the current configuration."""
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    """Get the configuration manager instance."""
    return ConfigManager()


# =============================================================================
# NETWORK & CONNECTIONS
# =============================================================================

def ensure_network(network: Optional[str]) -> str:
    """Normalize a network name, rejecting unsupported ones."""
    name = (network or "").strip().lower()
    if name not in NETWORKS:
        raise InputError(
            f"Invalid network name {network!r}; expected one of: {', '.join(NETWORKS)}"
        )
    return name


def explorer_link_prefix(network: str) -> str:
    if network == "mainnet":
        return "https://etherscan.io"
    return f"https://{network}.etherscan.io"


@dataclass(frozen=True)
class Connections:
    """Where to reach the node and which key signs."""
    network: str
    provider_url: str
    private_key: str
    explorer_link_prefix: str

    def __repr__(self) -> str:
        return (
            f"Connections(network={self.network!r}, provider_url={self.provider_url!r}, "
            f"explorer_link_prefix={self.explorer_link_prefix!r})"
        )


def load_connections(network: str, config: Optional[PublishConfig] = None) -> Connections:
    """Resolve node URL, signing key and explorer prefix for a network."""
    network = ensure_network(network)
    config = config or get_config()

    if network == "local":
        provider_url = LOCAL_PROVIDER_URL
    else:
        template = config.network.provider_url.get()
        if template:
            provider_url = template.replace("network", network)
        else:
            project_id = config.network.infura_project_id.get()
            if not project_id:
                raise ConfigError(
                    "No node configured: set PUBLISH_PROVIDER_URL or PUBLISH_INFURA_PROJECT_ID"
                )
            provider_url = f"https://{network}.infura.io/v3/{project_id}"

    private_key = config.network.private_key.get()
    if not private_key:
        raise ConfigError("No signing key configured: set PUBLISH_PRIVATE_KEY")

    logger.debug("Resolved connections", network=network, local=network == "local")
    return Connections(
        network=network,
        provider_url=provider_url,
        private_key=private_key,
        explorer_link_prefix=explorer_link_prefix(network),
    )
