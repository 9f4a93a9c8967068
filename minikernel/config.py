"""Kernel configuration: TOML files, environment variables and command-line options."""

import argparse
import json
import logging
import logging.handlers
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from enum import Enum, StrEnum
from pathlib import Path
from typing import Any, get_args, get_origin

import platformdirs
import tomli_w

APP_NAME = "minimal-kernel"
ENV_PREFIX = "MINIMAL_KERNEL_"
ENV_SEPARATOR = "__"
LOG_FILE_NAME = "minimal-kernel.log"
SYSTEM_CONFIG_PATH = Path("/etc/minimal-kernel/config.toml")
TRACE = 5

_VERSION = "0.1.0"
_U16_MAX = 65535
_TRUE_WORDS = frozenset({"true", "1", "yes", "on"})
_FALSE_WORDS = frozenset({"false", "0", "no", "off"})

logging.addLevelName(TRACE, "TRACE")
_log = logging.getLogger(__name__)
_installed_handlers: list[logging.Handler] = []


class LogLevel(StrEnum):
    """Verbosity of the kernel's log output."""

    ERROR = "error"
    WARN = "warn"
    INFO = "info"
    DEBUG = "debug"
    TRACE = "trace"

    def to_logging_level(self) -> int:
        """Return the matching numeric level of the logging module."""
        return {
            LogLevel.ERROR: logging.ERROR,
            LogLevel.WARN: logging.WARNING,
            LogLevel.INFO: logging.INFO,
            LogLevel.DEBUG: logging.DEBUG,
            LogLevel.TRACE: TRACE,
        }[self]


class LogFormat(StrEnum):
    """Layout of log lines."""

    COMPACT = "compact"
    FULL = "full"
    JSON = "json"


@dataclass
class DatabaseConfig:
    url: str = "sqlite:data.db"
    max_connections: int = 5
    connect_timeout: int = 30


@dataclass
class PluginConfig:
    directory: Path = field(default_factory=lambda: Path("plugins"))
    auto_load: bool = True
    timeout_ms: int = 5000
    max_memory_mb: int = 128
    enabled: list[str] = field(default_factory=list)


@dataclass
class LoggingConfig:
    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.COMPACT
    directory: Path | None = None
    max_file_size_mb: int = 10
    max_files: int = 5


@dataclass
class NetworkConfig:
    p2p_enabled: bool = False
    listen_port: int = field(default=8080, metadata={"max": _U16_MAX})
    bootstrap_nodes: list[str] = field(default_factory=list)


@dataclass
class IdentityConfig:
    use_keyring: bool = True
    keyring_timeout_secs: int = 30
    private_key_file: Path | None = None
    allow_env_key: bool = True


@dataclass
class CliArgs:
    """Parsed command-line options."""

    config: Path | None = None
    log_level: LogLevel | None = None
    database_url: str | None = None
    plugin_dir: Path | None = None
    command: str | None = None
    plugin_name: str | None = None


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Minimal kernel: a plugin-based local data platform",
    )
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {_VERSION}")
    parser.add_argument("-c", "--config", type=Path, help="configuration file path")
    parser.add_argument(
        "-l", "--log-level", type=LogLevel, choices=list(LogLevel), help="log level"
    )
    parser.add_argument("-d", "--database-url", help="database URL")
    parser.add_argument("-p", "--plugin-dir", type=Path, help="plugin directory")
    commands = parser.add_subparsers(dest="command")
    commands.add_parser("run", help="run the kernel")
    commands.add_parser("list-plugins", help="list plugins")
    info = commands.add_parser("plugin-info", help="show plugin information")
    info.add_argument("name", help="plugin name")
    commands.add_parser("reset-config", help="reset the configuration")
    return parser


def parse_cli(argv: list[str] | None = None) -> CliArgs:
    """Parse command-line arguments; argparse exits on invalid input."""
    ns = _build_parser().parse_args(argv)
    return CliArgs(
        config=ns.config,
        log_level=ns.log_level,
        database_url=ns.database_url,
        plugin_dir=ns.plugin_dir,
        command=ns.command,
        plugin_name=getattr(ns, "name", None),
    )


def _coerce(value: Any, hint: Any, name: str, limit: int | None = None) -> Any:
    args = get_args(hint)
    optional = type(None) in args
    if value is None:
        if optional:
            return None
        raise ValueError(f"{name}: a value is required")
    if optional:
        hint = next(arg for arg in args if arg is not type(None))

    if get_origin(hint) is list:
        if isinstance(value, str):
            items = [part.strip() for part in value.split(",") if part.strip()]
        elif isinstance(value, (list, tuple)):
            items = list(value)
        else:
            raise ValueError(f"{name}: expected a list, got {value!r}")
        (item_hint,) = get_args(hint)
        return [_coerce(item, item_hint, name) for item in items]

    if isinstance(hint, type) and issubclass(hint, Enum):
        try:
            return hint(value)
        except ValueError:
            raise ValueError(f"{name}: unknown variant {value!r}") from None

    if hint is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            word = value.strip().lower()
            if word in _TRUE_WORDS:
                return True
            if word in _FALSE_WORDS:
                return False
        raise ValueError(f"{name}: expected a boolean, got {value!r}")

    if hint is int:
        if isinstance(value, bool):
            raise ValueError(f"{name}: expected an integer, got {value!r}")
        if isinstance(value, int):
            number = value
        elif isinstance(value, str):
            try:
                number = int(value.strip())
            except ValueError:
                raise ValueError(f"{name}: expected an integer, got {value!r}") from None
        else:
            raise ValueError(f"{name}: expected an integer, got {value!r}")
        if number < 0 or (limit is not None and number > limit):
            raise ValueError(f"{name}: {number} is out of range")
        return number

    if hint is str:
        if isinstance(value, str):
            return value
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return str(value)
        raise ValueError(f"{name}: expected a string, got {value!r}")

    if hint is Path:
        if isinstance(value, (str, os.PathLike)):
            return Path(value)
        raise ValueError(f"{name}: expected a path, got {value!r}")

    raise TypeError(f"{name}: unsupported field type {hint!r}")


def _section_from_mapping(cls: type, data: Mapping[str, Any], section: str) -> Any:
    kwargs = {}
    for f in fields(cls):
        if f.name in data:
            kwargs[f.name] = _coerce(
                data[f.name], f.type, f"{section}.{f.name}", f.metadata.get("max")
            )
    return cls(**kwargs)


def _section_to_mapping(section: Any) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for f in fields(section):
        value = getattr(section, f.name)
        if value is None:
            continue
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, Path):
            value = str(value)
        elif isinstance(value, list):
            value = list(value)
        result[f.name] = value
    return result


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _environment_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, dict[str, str]] = {}
    for name, value in environ.items():
        if not name.upper().startswith(ENV_PREFIX):
            continue
        path = name[len(ENV_PREFIX):].lower().split(ENV_SEPARATOR)
        if len(path) != 2 or not all(path):
            continue
        overrides.setdefault(path[0], {})[path[1]] = value
    return overrides


def _read_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as handle:
        return tomllib.load(handle)


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "target": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def _make_formatter(fmt: LogFormat) -> logging.Formatter:
    if fmt is LogFormat.JSON:
        return _JsonFormatter()
    if fmt is LogFormat.FULL:
        return logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s %(filename)s:%(lineno)d: %(message)s"
        )
    return logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")


@dataclass
class Config:
    """Complete kernel configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    plugins: PluginConfig = field(default_factory=PluginConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    identity: IdentityConfig = field(default_factory=IdentityConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Config":
        """Build a configuration from nested mappings, filling in defaults."""
        if not isinstance(data, Mapping):
            raise ValueError("configuration must be a table")
        kwargs = {}
        for f in fields(cls):
            section = data.get(f.name)
            section_cls = f.type
            if section is None:
                kwargs[f.name] = section_cls()
            elif isinstance(section, Mapping):
                kwargs[f.name] = _section_from_mapping(section_cls, section, f.name)
            else:
                raise ValueError(f"{f.name}: expected a table, got {section!r}")
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        """Return the configuration as TOML-ready nested dictionaries."""
        return {f.name: _section_to_mapping(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def from_file(cls, path: str | os.PathLike[str]) -> "Config":
        """Read a configuration from a TOML file."""
        return cls.from_dict(_read_toml(Path(path)))

    @classmethod
    def load(cls, argv: list[str] | None = None) -> "Config":
        """Load the configuration using the process's command line."""
        return cls.load_with_cli(parse_cli(argv))

    @classmethod
    def load_with_cli(
        cls, cli: CliArgs, environ: Mapping[str, str] | None = None
    ) -> "Config":
        """Merge defaults, config files, environment and CLI options, then validate."""
        if environ is None:
            environ = os.environ
        merged = cls().to_dict()

        for candidate in (cls.get_system_config_path(), cls.get_user_config_path()):
            if candidate is not None and candidate.exists():
                merged = _deep_merge(merged, _read_toml(candidate))

        if cli.config is not None:
            config_path = Path(cli.config)
            if not config_path.exists():
                raise FileNotFoundError(f"configuration file does not exist: {config_path}")
            merged = _deep_merge(merged, _read_toml(config_path))

        merged = _deep_merge(merged, _environment_overrides(environ))
        config = cls.from_dict(merged)

        if cli.log_level is not None:
            config.logging.level = LogLevel(cli.log_level)
        if cli.database_url is not None:
            config.database.url = cli.database_url
        if cli.plugin_dir is not None:
            config.plugins.directory = Path(cli.plugin_dir)

        config.validate()
        return config

    @staticmethod
    def get_system_config_path() -> Path | None:
        return SYSTEM_CONFIG_PATH

    @staticmethod
    def get_user_config_path() -> Path | None:
        return platformdirs.user_config_path(APP_NAME, appauthor=False) / "config.toml"

    @staticmethod
    def get_data_dir() -> Path | None:
        return platformdirs.user_data_path(APP_NAME, appauthor=False)

    @staticmethod
    def get_log_dir() -> Path | None:
        return platformdirs.user_cache_path(APP_NAME, appauthor=False) / "logs"

    @classmethod
    def generate_default_config(cls) -> str:
        """Return the default configuration as TOML text."""
        return tomli_w.dumps(cls().to_dict())

    def save_to_file(self, path: str | os.PathLike[str]) -> None:
        """Write the configuration as TOML, creating parent directories."""
        target = Path(path)
        content = tomli_w.dumps(self.to_dict())
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    def validate(self) -> None:
        """Check the configuration and create missing directories."""
        if not self.database.url:
            raise ValueError("database URL must not be empty")

        if not self.plugins.directory.exists():
            _log.warning(
                "plugin directory does not exist, creating it: %s", self.plugins.directory
            )
            self.plugins.directory.mkdir(parents=True, exist_ok=True)

        if self.logging.directory is not None and not self.logging.directory.exists():
            self.logging.directory.mkdir(parents=True, exist_ok=True)

        if self.network.listen_port == 0:
            raise ValueError("listen port must not be 0")

    def init_logging(self) -> None:
        """Install console and, if configured, daily-rotated file log handlers."""
        root = logging.getLogger()
        for handler in _installed_handlers:
            root.removeHandler(handler)
            handler.close()
        _installed_handlers.clear()

        formatter = _make_formatter(self.logging.format)
        handlers: list[logging.Handler] = [logging.StreamHandler()]
        if self.logging.directory is not None:
            self.logging.directory.mkdir(parents=True, exist_ok=True)
            handlers.append(
                logging.handlers.TimedRotatingFileHandler(
                    self.logging.directory / LOG_FILE_NAME, when="midnight", encoding="utf-8"
                )
            )

        for handler in handlers:
            handler.setFormatter(formatter)
            root.addHandler(handler)
            _installed_handlers.append(handler)
        root.setLevel(self.logging.level.to_logging_level())

        _log.info("logging initialised, level: %s", self.logging.level.value)

    @classmethod
    def init_default_logging(cls) -> None:
        """Initialise logging with the default configuration."""
        cls().init_logging()