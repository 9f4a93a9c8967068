"""Ordering plugins so that each comes after what it depends on."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable, Sequence

from minikernel.plugin_info import PluginInfo

_log = logging.getLogger(__name__)


class CircularDependencyError(ValueError):
    """Raised when plugins depend on each other in a cycle."""


class DependencyResolver:
    """Dependency graph of known plugins."""

    def __init__(self) -> None:
        self._dependencies: dict[str, list[str]] = {}
        self._plugins: dict[str, PluginInfo] = {}

    def add_plugin(self, plugin: PluginInfo) -> None:
        self._dependencies[plugin.name] = plugin.all_dependencies()
        self._plugins[plugin.name] = plugin

    def add_plugins(self, plugins: Iterable[PluginInfo]) -> None:
        for plugin in plugins:
            self.add_plugin(plugin)

    def resolve_order(self, target_plugins: Sequence[str]) -> list[str]:
        """Return the targets and their dependencies, dependencies first."""
        result: list[str] = []
        visited: set[str] = set()
        visiting: set[str] = set()
        for name in target_plugins:
            if name not in visited:
                self._visit(name, visited, visiting, result)
        return result

    def _visit(
        self, name: str, visited: set[str], visiting: set[str], result: list[str]
    ) -> None:
        if name in visiting:
            raise CircularDependencyError(f"circular dependency detected: {name}")
        if name in visited:
            return

        visiting.add(name)
        for dep in self._dependencies.get(name, ()):
            if dep not in self._plugins:
                _log.warning("dependency not found: %s (required by %s)", dep, name)
                continue
            self._visit(dep, visited, visiting, result)
        visiting.discard(name)
        visited.add(name)
        result.append(name)

    def check_circular_dependencies(self) -> None:
        """Raise CircularDependencyError if any known plugin is part of a cycle."""
        visited: set[str] = set()
        visiting: set[str] = set()
        scratch: list[str] = []
        for name in self._plugins:
            if name not in visited:
                self._visit(name, visited, visiting, scratch)

    def get_all_dependencies(self, plugin_name: str) -> list[str]:
        """Return the plugin's direct and indirect dependencies in breadth-first order."""
        deps: list[str] = []
        visited: set[str] = set()
        queue = deque([plugin_name])
        while queue:
            current = queue.popleft()
            if current in visited:
                continue
            visited.add(current)
            for dep in self._dependencies.get(current, ()):
                if dep not in visited:
                    queue.append(dep)
                    deps.append(dep)
        return deps

    def check_dependencies_satisfied(
        self, plugin_name: str, available_plugins: Iterable[str]
    ) -> bool:
        """Return True if every dependency of the plugin is available."""
        available = set(available_plugins)
        return all(dep in available for dep in self._dependencies.get(plugin_name, ()))

    def get_stats(self) -> tuple[int, int, int]:
        """Return (plugins, dependency edges, plugins that have dependencies)."""
        total_plugins = len(self._plugins)
        total_dependencies = sum(len(deps) for deps in self._dependencies.values())
        with_deps = sum(1 for deps in self._dependencies.values() if deps)
        return total_plugins, total_dependencies, with_deps