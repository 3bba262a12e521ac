"""Unit tests for targets and the toolchain lookup table."""

import dataclasses

import pytest

from enginepack.config.targets import (
    COMPILER_VERSIONS,
    DEFAULT_COMPILER,
    Target,
    ToolchainDescriptor,
    make_target,
    resolve_compiler_version,
)


class TestResolveCompilerVersion:
    """Test cases for the engine to compiler mapping."""

    @pytest.mark.parametrize(
        "version,expected",
        [
            ("4.27", "14.29.30133"),
            ("5.3", "14.36.32532"),
            ("5.3.2", "14.36.32532"),
            (" 5.2 ", "14.34.31933"),
        ],
    )
    def test_known_versions(self, version, expected):
        assert resolve_compiler_version(version) == expected

    def test_unknown_version_falls_back(self):
        assert resolve_compiler_version("7.1") == DEFAULT_COMPILER
        assert resolve_compiler_version("5") == DEFAULT_COMPILER

    def test_table_covers_supported_engines(self):
        for version in ["4.25", "4.26", "4.27", "5.0", "5.1", "5.2", "5.3", "5.4", "5.5"]:
            assert version in COMPILER_VERSIONS


class TestTarget:
    """Test cases for Target."""

    def test_make_target(self):
        target = make_target("5.3")
        assert target.version == "5.3"
        assert target.toolchain == ToolchainDescriptor("14.36.32532")
        assert str(target) == "5.3"

    def test_compiler_override(self):
        assert make_target("5.3", "14.38.33130").toolchain.compiler_version == "14.38.33130"

    @pytest.mark.parametrize(
        "version,expected",
        [("5.3", "5.3.0"), ("4.27", "4.27.0"), ("5.3.2", "5.3.2"), ("5", "5.0.0")],
    )
    def test_engine_version_string(self, version, expected):
        assert make_target(version).engine_version_string == expected

    @pytest.mark.parametrize("version,expected", [("5.3", "5.3"), ("5.3.2", "5.3"), ("4.27.0", "4.27")])
    def test_engine_association(self, version, expected):
        assert make_target(version).engine_association == expected

    def test_immutable(self):
        target = make_target("5.3")
        with pytest.raises(dataclasses.FrozenInstanceError):
            target.version = "5.4"  # type: ignore[misc]

    def test_equality_by_version(self):
        assert make_target("5.3") == Target("5.3", ToolchainDescriptor("custom"))
        assert make_target("5.3") != make_target("5.2")
        assert len({make_target("5.3"), make_target("5.3")}) == 1

    def test_render_descriptor(self):
        rendered = ToolchainDescriptor("14.36.32532").render()
        assert rendered.startswith('<?xml version="1.0" encoding="utf-8" ?>')
        assert "<WindowsPlatform>" in rendered
        assert "<CompilerVersion>14.36.32532</CompilerVersion>" in rendered
