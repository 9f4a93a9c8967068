"""Plugin descriptions and discovery of plugin files on disk."""

from __future__ import annotations

import logging
import os
from collections.abc import Collection, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from minikernel.manifest import ManifestError, PluginManifest, find_and_read_manifest

WASM_SUFFIX = ".wasm"
RELEASE_TARGET_DIR = Path("target/wasm32-unknown-unknown/release")

_log = logging.getLogger(__name__)


def _file_stats(path: Path) -> tuple[int, datetime]:
    stat = path.stat()
    return stat.st_size, datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)


@dataclass
class PluginInfo:
    """What is known about one plugin file, from the file and its manifest."""

    name: str
    path: Path
    file_size: int
    modified: datetime
    loaded: bool = False
    version: str = "unknown"
    description: str = ""
    author: str | None = None
    dependencies: list[str] = field(default_factory=list)
    optional_dependencies: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    min_kernel_version: str | None = None

    @classmethod
    def from_manifest(cls, path: str | os.PathLike[str], manifest: PluginManifest) -> PluginInfo:
        """Describe a plugin file using the metadata of its manifest."""
        wasm_path = Path(path)
        file_size, modified = _file_stats(wasm_path)
        return cls(
            name=manifest.plugin.name,
            path=wasm_path,
            file_size=file_size,
            modified=modified,
            loaded=False,
            version=manifest.plugin.version,
            description=manifest.plugin.description,
            author=manifest.plugin.author,
            dependencies=list(manifest.dependencies.requires),
            optional_dependencies=list(manifest.dependencies.optional),
            tags=list(manifest.metadata.tags),
            min_kernel_version=manifest.metadata.min_kernel_version,
        )

    @classmethod
    def from_path(cls, path: str | os.PathLike[str]) -> PluginInfo:
        """Describe a plugin file from its path alone."""
        wasm_path = Path(path)
        file_size, modified = _file_stats(wasm_path)
        name = wasm_path.stem
        if not name:
            raise ValueError(f"invalid plugin path: {wasm_path}")
        return cls(
            name=name,
            path=wasm_path,
            file_size=file_size,
            modified=modified,
            loaded=False,
            version="unknown",
            description=f"{name} plugin",
        )

    def is_compatible_with_kernel(self, kernel_version: str) -> bool:
        """Compare with the minimum kernel version as plain strings."""
        minimum = self.min_kernel_version
        return minimum is None or minimum <= kernel_version

    def all_dependencies(self) -> list[str]:
        """Return required dependencies followed by optional ones."""
        return [*self.dependencies, *self.optional_dependencies]

    def has_dependencies(self) -> bool:
        return bool(self.dependencies or self.optional_dependencies)


def iter_wasm_files(plugin_dir: str | os.PathLike[str]) -> Iterator[Path]:
    """Yield every regular .wasm file below a directory, in sorted order."""
    for root, dirnames, filenames in os.walk(plugin_dir):
        dirnames.sort()
        for filename in sorted(filenames):
            candidate = Path(root) / filename
            if candidate.suffix == WASM_SUFFIX and not candidate.is_symlink() and candidate.is_file():
                yield candidate


def discover_plugins(
    plugin_dir: str | os.PathLike[str], loaded: Collection[str] = ()
) -> list[PluginInfo]:
    """Describe every plugin file below a directory without loading it.

    A plugin is marked loaded when its name is in ``loaded``.
    """
    directory = Path(plugin_dir)
    if not directory.exists():
        return []

    plugins = []
    for wasm_path in iter_wasm_files(directory):
        try:
            manifest = find_and_read_manifest(wasm_path)
        except ManifestError:
            _log.debug("describing plugin from its path: %s", wasm_path)
            info = PluginInfo.from_path(wasm_path)
        else:
            _log.debug("describing plugin from its manifest: %s", wasm_path)
            info = PluginInfo.from_manifest(wasm_path, manifest)
        info.loaded = info.name in loaded
        plugins.append(info)
    return plugins


def find_plugin_path(plugin_dir: str | os.PathLike[str], plugin_name: str) -> Path | None:
    """Locate the file of a named plugin, or return None."""
    directory = Path(plugin_dir)
    file_name = f"{plugin_name}{WASM_SUFFIX}"
    candidates = (
        directory / file_name,
        directory / plugin_name / file_name,
        directory / plugin_name / RELEASE_TARGET_DIR / file_name,
    )
    for candidate in candidates:
        if candidate.exists():
            return candidate

    return next(
        (path for path in iter_wasm_files(directory) if path.stem == plugin_name),
        None,
    )