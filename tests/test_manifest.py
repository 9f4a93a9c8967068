import pytest

from minikernel.manifest import (
    ManifestError,
    PluginManifest,
    find_and_read_manifest,
    generate_example_manifest,
)

SAMPLE = """
[plugin]
name = "test-plugin"
version = "1.0.0"
description = "test plugin"
author = "Test Author"

[dependencies]
requires = ["base-plugin"]
optional = ["extra-plugin"]

[metadata]
tags = ["test", "example"]
min_kernel_version = "0.1.0"
"""


def test_parse_manifest():
    manifest = PluginManifest.parse_manifest(SAMPLE)
    assert manifest.plugin.name == "test-plugin"
    assert manifest.plugin.version == "1.0.0"
    assert manifest.plugin.author == "Test Author"
    assert manifest.dependencies.requires == ["base-plugin"]
    assert manifest.dependencies.optional == ["extra-plugin"]
    assert manifest.metadata.tags == ["test", "example"]
    assert manifest.metadata.min_kernel_version == "0.1.0"


def test_all_dependencies_required_first():
    manifest = PluginManifest.parse_manifest(SAMPLE)
    assert manifest.all_dependencies() == ["base-plugin", "extra-plugin"]


def test_find_manifest(tmp_path):
    plugin_dir = tmp_path / "test-plugin"
    target_dir = plugin_dir / "target/wasm32-unknown-unknown/release"
    target_dir.mkdir(parents=True)
    (plugin_dir / "manifest.toml").write_text(generate_example_manifest("test-plugin"))
    wasm_path = target_dir / "test_plugin.wasm"
    wasm_path.write_bytes(b"fake wasm content")

    manifest = find_and_read_manifest(wasm_path)
    assert manifest.plugin.name == "test_plugin"


def test_find_manifest_in_same_directory(tmp_path):
    (tmp_path / "manifest.toml").write_text(SAMPLE)
    wasm_path = tmp_path / "whatever.wasm"
    wasm_path.write_bytes(b"")
    manifest = find_and_read_manifest(wasm_path)
    assert manifest.plugin.name == "test-plugin"


def test_find_manifest_in_grandparent(tmp_path):
    (tmp_path / "manifest.toml").write_text(SAMPLE)
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    manifest = find_and_read_manifest(nested / "x.wasm")
    assert manifest.plugin.version == "1.0.0"


def test_default_manifest():
    manifest = PluginManifest.default_for_plugin("my-plugin")
    assert manifest.plugin.name == "my-plugin"
    assert manifest.plugin.version == "0.1.0"
    assert manifest.dependencies.requires == []


def test_version_compatibility():
    manifest = PluginManifest.default_for_plugin("test")
    assert manifest.is_compatible_with_kernel("0.1.0")
    manifest.metadata.min_kernel_version = "0.1.0"
    assert manifest.is_compatible_with_kernel("0.1.0")
    assert manifest.is_compatible_with_kernel("0.2.0")
    assert not manifest.is_compatible_with_kernel("0.0.9")


def test_example_manifest_round_trip():
    manifest = PluginManifest.parse_manifest(generate_example_manifest("demo"))
    assert manifest.plugin.name == "demo"
    assert manifest.metadata.tags == ["example", "demo"]
    assert manifest.metadata.custom["custom"]["homepage"].endswith("/demo")


def test_missing_optional_sections_use_defaults():
    manifest = PluginManifest.parse_manifest('[plugin]\nname = "x"\nversion = "2"\n')
    assert manifest.plugin.description == ""
    assert manifest.plugin.author is None
    assert manifest.all_dependencies() == []
    assert manifest.metadata.min_kernel_version is None


def test_missing_plugin_table_is_error():
    with pytest.raises(ManifestError):
        PluginManifest.parse_manifest("[metadata]\ntags = []\n")


def test_missing_version_is_error():
    with pytest.raises(ManifestError):
        PluginManifest.parse_manifest('[plugin]\nname = "x"\n')


def test_invalid_toml_is_error():
    with pytest.raises(ManifestError):
        PluginManifest.parse_manifest("[plugin\nname = ")


def test_wrong_type_is_error():
    with pytest.raises(ManifestError):
        PluginManifest.parse_manifest('[plugin]\nname = "x"\nversion = "1"\n[dependencies]\nrequires = "a"\n')


def test_from_file_missing_is_error(tmp_path):
    with pytest.raises(ManifestError):
        PluginManifest.from_file(tmp_path / "absent.toml")