"""
tokenvest configuration.

Settings are layered, later layers winning:

1. dataclass defaults
2. ``config/default.yaml``
3. ``config/<environment>.yaml`` (development, staging, production, testnet)
4. ``TOKENVEST_<SECTION>_<KEY>`` environment variables (``.env`` is loaded first)
5. explicit ``"section.key"`` overrides, e.g. from the command line

The merged result is parsed into one typed dataclass per section and
validated; any problem surfaces as ``ConfigurationError``.
"""

import json
import os
from dataclasses import asdict, dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from dotenv import load_dotenv

from tokenvest.core.exceptions import ConfigurationError

DEFAULT_CONFIG_DIR = Path(__file__).resolve().parent / "config"
ENV_PREFIX = "TOKENVEST_"
ENVIRONMENT_VARIABLE = f"{ENV_PREFIX}ENVIRONMENT"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Environment(Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTNET = "testnet"

    @classmethod
    def resolve(cls, name: Optional[str]) -> "Environment":
        """Map a name or common abbreviation to an environment (development if unknown)."""
        aliases = {"dev": cls.DEVELOPMENT, "stage": cls.STAGING, "prod": cls.PRODUCTION, "test": cls.TESTNET}
        key = (name or "").strip().lower()
        if key in aliases:
            return aliases[key]
        try:
            return cls(key)
        except ValueError:
            return cls.DEVELOPMENT


@dataclass
class VaultConfig:
    """Vault limits and the token minted by ``tokenvest init``"""
    max_schedules_per_beneficiary: int = 100
    max_batch_size: int = 200
    token_name: str = "Vesting Token"
    token_symbol: str = "VEST"
    token_decimals: int = 18

    def validate(self):
        if self.max_schedules_per_beneficiary < 1:
            raise ValueError(
                f"max_schedules_per_beneficiary must be >= 1, got {self.max_schedules_per_beneficiary}"
            )
        if self.max_batch_size < 1:
            raise ValueError(f"max_batch_size must be >= 1, got {self.max_batch_size}")
        if not self.token_symbol:
            raise ValueError("token_symbol cannot be empty")
        if not 0 <= self.token_decimals <= 18:
            raise ValueError(f"token_decimals must be within 0-18, got {self.token_decimals}")


@dataclass
class StorageConfig:
    """Location of the SQLite vault database"""
    data_dir: str = "data"
    database_file: str = "vault.db"

    def validate(self):
        if not self.data_dir or not self.database_file:
            raise ValueError("data_dir and database_file are required")

    @property
    def database_path(self) -> Path:
        return Path(self.data_dir) / self.database_file


@dataclass
class LoggingConfig:
    level: str = "INFO"
    enable_file_logging: bool = False
    log_file: str = "logs/vault.json"
    max_log_size: int = 10 * 1024 * 1024
    log_retention: int = 7
    enable_console_logging: bool = True

    def validate(self):
        if self.level.upper() not in LOG_LEVELS:
            raise ValueError(f"log level must be one of {', '.join(LOG_LEVELS)}, got {self.level}")
        if self.max_log_size < 1024:
            raise ValueError(f"max_log_size must be >= 1024 bytes, got {self.max_log_size}")
        if self.log_retention < 0:
            raise ValueError(f"log_retention cannot be negative, got {self.log_retention}")


@dataclass
class ApiConfig:
    """HTTP API binding and caller identification"""
    host: str = "127.0.0.1"
    port: int = 8650
    caller_header: str = "X-Caller-Address"

    def validate(self):
        if not 1024 <= self.port <= 65535:
            raise ValueError(f"port must be within 1024-65535, got {self.port}")
        if not self.caller_header:
            raise ValueError("caller_header cannot be empty")


SECTIONS = {
    "vault": VaultConfig,
    "storage": StorageConfig,
    "logging": LoggingConfig,
    "api": ApiConfig,
}


def _read_layer(config_dir: Path, name: str) -> Dict[str, Any]:
    """Read ``<name>.yaml`` (or ``<name>.json``); a missing file is an empty layer."""
    for suffix, parse, parse_error in (
        (".yaml", yaml.safe_load, yaml.YAMLError),
        (".json", json.load, json.JSONDecodeError),
    ):
        path = config_dir / f"{name}{suffix}"
        if not path.exists():
            continue
        with open(path, "r") as f:
            try:
                data = parse(f)
            except parse_error as exc:
                raise ConfigurationError(
                    f"Invalid {suffix[1:].upper()} in {path}: {exc}",
                    details={"file": str(path)},
                ) from exc
        if data is not None and not isinstance(data, dict):
            raise ConfigurationError(f"{path} must contain a mapping of sections")
        return data or {}
    return {}


def _overlay(base: Dict[str, Any], layer: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in layer.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _overlay(merged[key], value)
        else:
            merged[key] = value
    return merged


def _coerce(raw: str) -> Union[str, int, float, bool]:
    """Turn an environment string into bool, int or float where it looks like one."""
    lowered = raw.strip().lower()
    if lowered in ("true", "yes", "on"):
        return True
    if lowered in ("false", "no", "off"):
        return False
    for number in (int, float):
        try:
            return number(raw)
        except ValueError:
            continue
    return raw


def _env_layer(environ: Dict[str, str]) -> Dict[str, Dict[str, Any]]:
    """Collect ``TOKENVEST_<SECTION>_<KEY>`` variables into a config layer."""
    layer: Dict[str, Dict[str, Any]] = {}
    for name, raw in environ.items():
        if not name.startswith(ENV_PREFIX) or name == ENVIRONMENT_VARIABLE:
            continue
        section, _, key = name[len(ENV_PREFIX):].lower().partition("_")
        if section in SECTIONS and key:
            layer.setdefault(section, {})[key] = _coerce(raw)
    return layer


def _overrides_layer(overrides: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    layer: Dict[str, Dict[str, Any]] = {}
    for path, value in overrides.items():
        section, _, key = path.partition(".")
        if not key:
            raise ConfigurationError(f"Override '{path}' must use section.key form")
        layer.setdefault(section, {})[key] = value
    return layer


class ConfigManager:
    """
    Loads, validates and exposes tokenvest settings.

    Attributes:
        environment: Selected Environment
        config_dir: Directory holding the YAML layers
        vault, storage, logging, api: Typed configuration sections
    """

    def __init__(self,
                 environment: Optional[str] = None,
                 config_dir: Optional[str] = None,
                 cli_overrides: Optional[Dict[str, Any]] = None):
        """
        Args:
            environment: Environment name; falls back to TOKENVEST_ENVIRONMENT, then development
            config_dir: Directory with default.yaml and the environment files
            cli_overrides: Highest-priority values, e.g. {"vault.max_batch_size": 10}
        """
        load_dotenv()

        self.environment = Environment.resolve(environment or os.getenv(ENVIRONMENT_VARIABLE))
        self.config_dir = Path(config_dir).resolve() if config_dir else DEFAULT_CONFIG_DIR
        self.cli_overrides = dict(cli_overrides or {})

        self.vault: VaultConfig = VaultConfig()
        self.storage: StorageConfig = StorageConfig()
        self.logging: LoggingConfig = LoggingConfig()
        self.api: ApiConfig = ApiConfig()
        self._raw_config: Dict[str, Any] = {}

        self._load_configuration()

    def _load_configuration(self):
        merged: Dict[str, Any] = {}
        for layer in (
            _read_layer(self.config_dir, "default"),
            _read_layer(self.config_dir, self.environment.value),
            _env_layer(dict(os.environ)),
            _overrides_layer(self.cli_overrides),
        ):
            merged = _overlay(merged, layer)

        self._raw_config = merged
        for section, section_cls in SECTIONS.items():
            setattr(self, section, self._build_section(section, section_cls, merged.get(section) or {}))

    @staticmethod
    def _build_section(section: str, section_cls: type, values: Dict[str, Any]) -> Any:
        unknown = sorted(set(values) - {f.name for f in fields(section_cls)})
        if unknown:
            raise ConfigurationError(
                f"Unknown {section} configuration keys: {', '.join(unknown)}",
                details={"section": section, "keys": unknown},
            )
        instance = section_cls(**values)
        try:
            instance.validate()
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(str(exc), details={"section": section}) from exc
        return instance

    def get(self, key: str, default: Any = None) -> Any:
        """
        Look up a value by dotted key ("vault.max_batch_size"); a bare section
        name returns that section as a dict.
        """
        section, _, attr = key.partition(".")
        if section not in SECTIONS:
            return default
        section_obj = getattr(self, section)
        if not attr:
            return asdict(section_obj)
        return getattr(section_obj, attr, default)

    def to_dict(self) -> Dict[str, Any]:
        exported: Dict[str, Any] = {"environment": self.environment.value}
        exported.update({section: asdict(getattr(self, section)) for section in SECTIONS})
        return exported

    def reload(self):
        """Re-read every layer (files and environment)."""
        self._load_configuration()

    def __repr__(self) -> str:
        return f"ConfigManager(environment={self.environment.value}, config_dir={self.config_dir})"


_config_manager: Optional[ConfigManager] = None


def get_config_manager(
    environment: Optional[str] = None,
    config_dir: Optional[str] = None,
    cli_overrides: Optional[Dict[str, Any]] = None,
    force_reload: bool = False
) -> ConfigManager:
    """Process-wide ConfigManager, created on first use or when ``force_reload`` is set."""
    global _config_manager

    if _config_manager is None or force_reload:
        _config_manager = ConfigManager(
            environment=environment,
            config_dir=config_dir,
            cli_overrides=cli_overrides,
        )
    return _config_manager
