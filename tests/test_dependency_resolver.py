from datetime import datetime, timezone
from pathlib import Path

import pytest

from minikernel.dependency_resolver import CircularDependencyError, DependencyResolver
from minikernel.plugin_info import PluginInfo


def create_test_plugin(name, deps, optional=()):
    return PluginInfo(
        name=name,
        path=Path(f"{name}.wasm"),
        file_size=1024,
        modified=datetime.now(timezone.utc),
        loaded=False,
        version="1.0.0",
        description=f"{name} test plugin",
        dependencies=list(deps),
        optional_dependencies=list(optional),
    )


def test_simple_dependency_resolution():
    resolver = DependencyResolver()
    resolver.add_plugin(create_test_plugin("C", []))
    resolver.add_plugin(create_test_plugin("B", ["C"]))
    resolver.add_plugin(create_test_plugin("A", ["B"]))
    assert resolver.resolve_order(["A"]) == ["C", "B", "A"]


def test_circular_dependency_detection():
    resolver = DependencyResolver()
    resolver.add_plugin(create_test_plugin("A", ["B"]))
    resolver.add_plugin(create_test_plugin("B", ["A"]))
    with pytest.raises(CircularDependencyError):
        resolver.resolve_order(["A"])
    with pytest.raises(CircularDependencyError):
        resolver.check_circular_dependencies()


def test_multiple_plugins():
    resolver = DependencyResolver()
    resolver.add_plugins(
        [
            create_test_plugin("base", []),
            create_test_plugin("plugin1", ["base"]),
            create_test_plugin("plugin2", ["base"]),
        ]
    )
    order = resolver.resolve_order(["plugin1", "plugin2"])
    assert set(order) == {"base", "plugin1", "plugin2"}
    assert order.index("base") < order.index("plugin1")
    assert order.index("base") < order.index("plugin2")


def test_missing_dependency_is_skipped():
    resolver = DependencyResolver()
    resolver.add_plugin(create_test_plugin("A", ["ghost"]))
    assert resolver.resolve_order(["A"]) == ["A"]
    assert not resolver.check_dependencies_satisfied("A", ["B"])


def test_no_cycle_passes_check():
    resolver = DependencyResolver()
    resolver.add_plugin(create_test_plugin("C", []))
    resolver.add_plugin(create_test_plugin("B", ["C"]))
    resolver.check_circular_dependencies()
    assert resolver.resolve_order(["B", "C"]) == ["C", "B"]


def test_get_all_dependencies_is_breadth_first():
    resolver = DependencyResolver()
    resolver.add_plugin(create_test_plugin("C", []))
    resolver.add_plugin(create_test_plugin("B", ["C"]))
    resolver.add_plugin(create_test_plugin("A", ["B"], optional=["D"]))
    assert resolver.get_all_dependencies("A") == ["B", "D", "C"]
    assert resolver.get_all_dependencies("C") == []


def test_check_dependencies_satisfied():
    resolver = DependencyResolver()
    resolver.add_plugin(create_test_plugin("A", ["B", "C"]))
    assert resolver.check_dependencies_satisfied("A", ["B", "C", "D"])
    assert not resolver.check_dependencies_satisfied("A", ["B"])
    assert resolver.check_dependencies_satisfied("unknown", [])


def test_get_stats():
    resolver = DependencyResolver()
    resolver.add_plugin(create_test_plugin("base", []))
    resolver.add_plugin(create_test_plugin("plugin1", ["base"]))
    resolver.add_plugin(create_test_plugin("plugin2", ["base"], optional=["plugin1"]))
    assert resolver.get_stats() == (3, 3, 2)