"""Plugin manifest files (manifest.toml)."""

from __future__ import annotations

import logging
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

MANIFEST_FILE_NAME = "manifest.toml"

_log = logging.getLogger(__name__)


class ManifestError(ValueError):
    """Raised when a manifest cannot be read or parsed."""


@dataclass
class PluginSection:
    name: str
    version: str
    description: str = ""
    author: str | None = None


@dataclass
class Dependencies:
    requires: list[str] = field(default_factory=list)
    optional: list[str] = field(default_factory=list)


@dataclass
class Metadata:
    tags: list[str] = field(default_factory=list)
    min_kernel_version: str | None = None
    custom: dict[str, Any] = field(default_factory=dict)


def _table(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key, {})
    if not isinstance(value, Mapping):
        raise ManifestError(f"'{key}' must be a table")
    return value


def _string(data: Mapping[str, Any], key: str, context: str) -> str:
    if key not in data:
        raise ManifestError(f"missing field '{context}.{key}'")
    value = data[key]
    if not isinstance(value, str):
        raise ManifestError(f"'{context}.{key}' must be a string")
    return value


def _optional_string(data: Mapping[str, Any], key: str, context: str) -> str | None:
    if key not in data:
        return None
    return _string(data, key, context)


def _string_list(data: Mapping[str, Any], key: str, context: str) -> list[str]:
    value = data.get(key, [])
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ManifestError(f"'{context}.{key}' must be a list of strings")
    return list(value)


@dataclass
class PluginManifest:
    """Metadata describing one plugin."""

    plugin: PluginSection
    dependencies: Dependencies = field(default_factory=Dependencies)
    metadata: Metadata = field(default_factory=Metadata)

    @classmethod
    def from_file(cls, path: str | os.PathLike[str]) -> PluginManifest:
        try:
            content = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ManifestError(f"failed to read manifest file: {exc}") from exc
        return cls.parse_manifest(content)

    @classmethod
    def parse_manifest(cls, content: str) -> PluginManifest:
        try:
            data = tomllib.loads(content)
        except tomllib.TOMLDecodeError as exc:
            raise ManifestError(f"failed to parse manifest: {exc}") from exc

        if "plugin" not in data:
            raise ManifestError("missing table 'plugin'")
        plugin_table = _table(data, "plugin")
        plugin = PluginSection(
            name=_string(plugin_table, "name", "plugin"),
            version=_string(plugin_table, "version", "plugin"),
            description=_optional_string(plugin_table, "description", "plugin") or "",
            author=_optional_string(plugin_table, "author", "plugin"),
        )

        deps_table = _table(data, "dependencies")
        dependencies = Dependencies(
            requires=_string_list(deps_table, "requires", "dependencies"),
            optional=_string_list(deps_table, "optional", "dependencies"),
        )

        meta_table = _table(data, "metadata")
        metadata = Metadata(
            tags=_string_list(meta_table, "tags", "metadata"),
            min_kernel_version=_optional_string(meta_table, "min_kernel_version", "metadata"),
            custom={
                key: value
                for key, value in meta_table.items()
                if key not in ("tags", "min_kernel_version")
            },
        )
        return cls(plugin=plugin, dependencies=dependencies, metadata=metadata)

    @classmethod
    def default_for_plugin(cls, name: str) -> PluginManifest:
        return cls(
            plugin=PluginSection(
                name=name, version="0.1.0", description=f"{name} plugin", author=None
            )
        )

    def all_dependencies(self) -> list[str]:
        """Return required dependencies followed by optional ones."""
        return [*self.dependencies.requires, *self.dependencies.optional]

    def is_compatible_with_kernel(self, kernel_version: str) -> bool:
        """Compare with the minimum kernel version as plain strings."""
        minimum = self.metadata.min_kernel_version
        return minimum is None or minimum <= kernel_version


def find_and_read_manifest(wasm_path: str | os.PathLike[str]) -> PluginManifest:
    """Read the manifest next to, or up to two levels above, a wasm file.

    Falls back to a default manifest named after the file's stem.
    """
    path = Path(wasm_path)
    directories = list(path.parents)[:3] or [path]
    for directory in directories:
        candidate = directory / MANIFEST_FILE_NAME
        if candidate.exists():
            _log.debug("found manifest: %s", candidate)
            return PluginManifest.from_file(candidate)

    name = path.stem
    if not name:
        raise ManifestError(f"invalid plugin path: {path}")
    _log.debug("no manifest found, using defaults: %s", name)
    return PluginManifest.default_for_plugin(name)


def generate_example_manifest(plugin_name: str) -> str:
    """Return the text of an example manifest for a plugin."""
    return f"""# Minimal kernel plugin manifest

[plugin]
name = "{plugin_name}"
version = "0.1.0"
description = "A short description of the {plugin_name} plugin"
author = "Your Name"

[dependencies]
# Plugins that must be present
requires = []
# Plugins used when present
optional = []

[metadata]
# Tags for grouping and search
tags = ["example", "demo"]
# Oldest supported kernel version
min_kernel_version = "0.1.0"

# Custom metadata fields
[metadata.custom]
category = "demo"
homepage = "https://example.com/{plugin_name}"
"""