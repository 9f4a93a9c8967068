# minikernel

Building blocks for a local-first, plugin-based data processing host:

- `minikernel.config`: layered configuration and logging set-up.
- `minikernel.manifest`: reading `manifest.toml` plugin manifests.
- `minikernel.plugin_info`: finding `.wasm` plugin files and describing them.
- `minikernel.dependency_resolver`: a load order in which every plugin
  comes after the plugins it depends on.
- `minikernel.message` and `minikernel.message_bus`: point-to-point and
  publish/subscribe messages between plugins, routed on asyncio queues.
- `minikernel.storage` and `minikernel.layout`: SQLite storage for plugin
  key/value data, plugin records, a message log, topic subscriptions and
  dashboard layouts.
- `minikernel.health`: a simplified FHIR `Observation` model and an
  in-memory `HealthDataAggregator`.
- `minikernel.log_collector`: a process-wide list of plugin log entries
  (`add_log`, `get_logs`, `clear_logs`).

Python 3.11 or later. Runtime dependencies: `platformdirs` and `tomli-w`.
Install the `test` extra for `pytest` and `pytest-asyncio`.

## Configuration

```python
from minikernel.config import Config, parse_cli

cli = parse_cli(["--log-level", "debug", "--plugin-dir", "plugins"])
config = Config.load_with_cli(cli, {})
config.init_logging()

config.logging.level     # LogLevel.DEBUG
config.database.url      # "sqlite:data.db"
print(Config.generate_default_config())
```

`Config.load_with_cli` starts from the defaults and merges, in order:
`/etc/minimal-kernel/config.toml`, the per-user `config.toml` (see
`Config.get_user_config_path()`), the file given with `--config`, then
environment variables of the form `MINIMAL_KERNEL_<SECTION>__<KEY>` (for
example `MINIMAL_KERNEL_DATABASE__URL`). Finally `--log-level`,
`--database-url` and `--plugin-dir` override what came before.

A `--config` file that does not exist raises `FileNotFoundError`. An empty
database URL or a listen port of 0 raises `ValueError`; a missing plugin or
log directory is created. `Config.from_file`, `Config.to_dict` and
`Config.save_to_file` read and write TOML directly.

`init_logging` installs a console handler and, when `logging.directory` is
set, a file handler for `minimal-kernel.log` rotated at midnight. The
`format` setting chooses a compact, full or JSON line layout.

## Plugin manifests and discovery

```python
from minikernel.manifest import PluginManifest, generate_example_manifest

manifest = PluginManifest.parse_manifest(generate_example_manifest("weather"))
manifest.plugin.name                         # "weather"
manifest.all_dependencies()                  # required, then optional
manifest.is_compatible_with_kernel("0.2.0")  # True
```

`find_and_read_manifest(wasm_path)` looks for `manifest.toml` in the
`.wasm` file's directory and up to two directories above it, and falls back
to a default manifest named after the file. A manifest that cannot be read
or parsed raises `ManifestError`. Version checks compare plain strings.

```python
from minikernel.dependency_resolver import DependencyResolver
from minikernel.plugin_info import discover_plugins, find_plugin_path

plugins = discover_plugins("plugins", loaded={"base"})
resolver = DependencyResolver()
resolver.add_plugins(plugins)
order = resolver.resolve_order(["dashboard"])
path = find_plugin_path("plugins", "dashboard")
```

A cycle raises `CircularDependencyError`; dependencies that are not known
are skipped with a warning. `get_all_dependencies`,
`check_dependencies_satisfied` and `get_stats` answer questions about the
graph.

## Messages

```python
import asyncio

from minikernel.message import Message
from minikernel.message_bus import create_message_bus


async def main() -> None:
    handle, router = create_message_bus(1000)
    inbox = handle.register_plugin("receiver")
    handle.subscribe_topic("receiver", "sensor.readings")

    task = asyncio.create_task(router.run())
    await handle.send_message(Message.new("sender", "receiver", b"hello"))
    await handle.send_message(Message.new_topic("sender", "sensor.readings", b"42"))
    print(await inbox.get(), await inbox.get())

    await handle.shutdown()
    await task


asyncio.run(main())
```

`router.run()` routes until `handle.shutdown()` is awaited and may be run
only once. After it stops, `send_message` raises `MessageBusClosedError`.
`MessageRouter.route_message` delivers a single message and returns a
`MessageResult` whose `status` is a `DeliveryStatus`.

## Storage

```python
from minikernel.layout import CreateLayoutRequest, CreateWidgetRequest, LayoutManager
from minikernel.storage import Storage

with Storage("sqlite::memory:") as storage:
    storage.store_data("weather", "last", {"temp": 21.5})
    storage.get_data("weather", "last")      # {"temp": 21.5}
    storage.list_keys("weather")             # ["last"]

    layouts = LayoutManager(storage.connection())
    layout = layouts.create_layout(
        CreateLayoutRequest(
            name="home",
            widgets=[CreateWidgetRequest(widget_type="chart", position_col=0, position_row=0)],
        )
    )
    layouts.set_default_layout(layout.id)
```

`Storage` accepts `sqlite:<path>` or `sqlite::memory:` URLs, creates the
database's directory if needed and creates its tables on start. Values are
stored as JSON. A layout that does not exist raises `LayoutNotFoundError`.

## Health observations

```python
from minikernel.health.aggregator import HealthDataAggregator
from minikernel.health.fhir import CodeableConcept, Observation, ObservationStatus, Quantity

aggregator = HealthDataAggregator()
aggregator.add_observation(
    Observation(
        id="obs-1",
        status=ObservationStatus.FINAL,
        code=CodeableConcept(code="8867-4", display="Heart rate"),
        value=Quantity(value=72.0, unit="beats/minute"),
    )
)
aggregator.observations()
```

`Observation.to_dict` and `Observation.from_dict` convert to and from plain
dictionaries; malformed input raises `ValueError`.

## What the package does not do

- It does not load or run plugins. It finds plugin files, reads their
  manifests and orders them, but has no WebAssembly runtime and no functions
  exposed to plugins.
- It installs no command. `parse_cli` parses the options and the `run`,
  `list-plugins`, `plugin-info` and `reset-config` subcommands, but nothing
  in the package acts on the subcommand.
- It has no identity management or message signing; the `identity` section
  of the configuration is read and stored only.