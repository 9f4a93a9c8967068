import json
import logging
import tomllib
from pathlib import Path

import pytest

from minikernel.config import (
    CliArgs,
    Config,
    DatabaseConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    NetworkConfig,
    PluginConfig,
    parse_cli,
)


@pytest.fixture
def restore_root_handlers():
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in before:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


def test_default_config():
    config = Config()
    assert config.database.url == "sqlite:data.db"
    assert config.plugins.directory == Path("plugins")
    assert config.logging.level is LogLevel.INFO


def test_config_serialization():
    toml_str = Config.generate_default_config()
    assert "database" in toml_str
    assert "plugins" in toml_str
    assert "logging" in toml_str


def test_default_config_text_round_trips():
    parsed = tomllib.loads(Config.generate_default_config())
    assert Config.from_dict(parsed) == Config()


def test_config_file_loading(tmp_path):
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        """
[database]
url = "sqlite:test.db"
max_connections = 10

[plugins]
directory = "test_plugins"
auto_load = false

[logging]
level = "debug"
format = "full"
""",
        encoding="utf-8",
    )
    config = Config.from_file(config_path)
    assert config.database.url == "sqlite:test.db"
    assert config.database.max_connections == 10
    assert config.plugins.directory == Path("test_plugins")
    assert config.plugins.auto_load is False
    assert config.logging.level is LogLevel.DEBUG
    assert config.logging.format is LogFormat.FULL


def test_log_level_conversion():
    assert LogLevel.ERROR.to_logging_level() == logging.ERROR
    assert LogLevel.WARN.to_logging_level() == logging.WARNING
    assert LogLevel.INFO.to_logging_level() == logging.INFO
    assert LogLevel.DEBUG.to_logging_level() == logging.DEBUG
    assert LogLevel.TRACE.to_logging_level() < logging.DEBUG


def test_from_dict_coerces_strings():
    config = Config.from_dict(
        {"network": {"listen_port": "9000", "p2p_enabled": "true"}}
    )
    assert config.network.listen_port == 9000
    assert config.network.p2p_enabled is True
    assert config.database == DatabaseConfig()


def test_from_dict_rejects_unknown_level():
    with pytest.raises(ValueError):
        Config.from_dict({"logging": {"level": "verbose"}})


def test_from_dict_rejects_port_out_of_range():
    with pytest.raises(ValueError):
        Config.from_dict({"network": {"listen_port": 70000}})


def test_from_dict_rejects_non_table_section():
    with pytest.raises(ValueError):
        Config.from_dict({"database": "sqlite:x.db"})


def test_save_and_reload(tmp_path):
    config = Config()
    config.database.url = "sqlite:saved.db"
    config.plugins.enabled = ["alpha", "beta"]
    target = tmp_path / "nested" / "config.toml"
    config.save_to_file(target)
    assert Config.from_file(target) == config


def test_load_with_cli_layers(tmp_path):
    plugin_dir = tmp_path / "plugins"
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        f'[database]\nurl = "sqlite:file.db"\n\n[plugins]\ndirectory = "{plugin_dir.as_posix()}"\n',
        encoding="utf-8",
    )
    cli = CliArgs(config=config_path, log_level=LogLevel.DEBUG)
    environ = {"MINIMAL_KERNEL_DATABASE__MAX_CONNECTIONS": "7", "UNRELATED": "x"}
    config = Config.load_with_cli(cli, environ)
    assert config.database.url == "sqlite:file.db"
    assert config.database.max_connections == 7
    assert config.logging.level is LogLevel.DEBUG
    assert plugin_dir.is_dir()


def test_load_with_cli_overrides_file(tmp_path):
    config_path = tmp_path / "config.toml"
    config_path.write_text('[database]\nurl = "sqlite:file.db"\n', encoding="utf-8")
    plugin_dir = tmp_path / "cli_plugins"
    cli = CliArgs(config=config_path, database_url="sqlite:cli.db", plugin_dir=plugin_dir)
    config = Config.load_with_cli(cli, {})
    assert config.database.url == "sqlite:cli.db"
    assert config.plugins.directory == plugin_dir


def test_load_with_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        Config.load_with_cli(CliArgs(config=tmp_path / "missing.toml"), {})


def test_validate_rejects_empty_url():
    config = Config(database=DatabaseConfig(url=""))
    with pytest.raises(ValueError):
        config.validate()


def test_validate_rejects_zero_port(tmp_path):
    config = Config(
        plugins=PluginConfig(directory=tmp_path / "p"),
        network=NetworkConfig(listen_port=0),
    )
    with pytest.raises(ValueError):
        config.validate()


def test_validate_creates_directories(tmp_path):
    config = Config(
        plugins=PluginConfig(directory=tmp_path / "p"),
        logging=LoggingConfig(directory=tmp_path / "logs"),
    )
    config.validate()
    assert (tmp_path / "p").is_dir()
    assert (tmp_path / "logs").is_dir()


def test_parse_cli_options_and_subcommand():
    cli = parse_cli(["-l", "warn", "-d", "sqlite:x.db", "plugin-info", "hello"])
    assert cli.log_level is LogLevel.WARN
    assert cli.database_url == "sqlite:x.db"
    assert cli.command == "plugin-info"
    assert cli.plugin_name == "hello"


def test_parse_cli_without_command():
    cli = parse_cli([])
    assert cli == CliArgs()


def test_parse_cli_rejects_bad_level():
    with pytest.raises(SystemExit):
        parse_cli(["--log-level", "loud"])


def test_user_config_path_name():
    assert Config.get_user_config_path().name == "config.toml"
    assert Config.get_log_dir().name == "logs"


def test_init_logging_writes_json_file(tmp_path, restore_root_handlers):
    log_dir = tmp_path / "logs"
    config = Config(logging=LoggingConfig(directory=log_dir, format=LogFormat.JSON))
    config.init_logging()
    for handler in logging.getLogger().handlers:
        handler.flush()
    lines = (log_dir / "minimal-kernel.log").read_text(encoding="utf-8").splitlines()
    entry = json.loads(lines[-1])
    assert entry["level"] == "INFO"
    assert logging.getLogger().level == logging.INFO