"""
Target definitions and the engine toolchain lookup table.

Each engine version is built with a specific compiler toolchain. The
table below centralizes that mapping so the toolchain slot can be
switched per target. Unknown versions fall back to DEFAULT_COMPILER.
"""

from dataclasses import dataclass, field
from typing import Optional

DEFAULT_COMPILER = "Latest"

# Engine version -> MSVC compiler version
COMPILER_VERSIONS = {
    "4.25": "14.24.28314",
    "4.26": "14.27.29110",
    "4.27": "14.29.30133",
    "5.0": "14.29.30133",
    "5.1": "14.32.31326",
    "5.2": "14.34.31933",
    "5.3": "14.36.32532",
    "5.4": "14.38.33130",
    "5.5": "14.38.33130",
}

BUILD_CONFIGURATION_TEMPLATE = """<?xml version="1.0" encoding="utf-8" ?>
<Configuration xmlns="https://www.unrealengine.com/BuildConfiguration">
  <WindowsPlatform>
    <CompilerVersion>{compiler_version}</CompilerVersion>
  </WindowsPlatform>
</Configuration>
"""


@dataclass(frozen=True)
class ToolchainDescriptor:
    """Toolchain selection installed into the toolchain slot."""

    compiler_version: str

    def render(self) -> str:
        """Render the toolchain slot file contents."""
        return BUILD_CONFIGURATION_TEMPLATE.format(compiler_version=self.compiler_version)


@dataclass(frozen=True)
class Target:
    """One engine version to build and package for."""

    version: str
    toolchain: ToolchainDescriptor = field(compare=False)

    def __str__(self) -> str:
        return self.version

    @property
    def engine_version_string(self) -> str:
        """Version written into manifests (e.g. '5.3' -> '5.3.0')."""
        parts = self.version.split(".")
        while len(parts) < 3:
            parts.append("0")
        return ".".join(parts)

    @property
    def engine_association(self) -> str:
        """Version written into project files (e.g. '5.3.2' -> '5.3')."""
        return ".".join(self.version.split(".")[:2])


def resolve_compiler_version(version: str) -> str:
    """
    Look up the compiler version for an engine version.

    Matches on major.minor, so '5.3.2' resolves like '5.3'.

    Args:
        version: Engine version string

    Returns:
        Compiler version, or DEFAULT_COMPILER for unknown engines
    """
    key = ".".join(version.strip().split(".")[:2])
    return COMPILER_VERSIONS.get(key, DEFAULT_COMPILER)


def make_target(version: str, compiler_override: Optional[str] = None) -> Target:
    """
    Create a Target with its toolchain resolved.

    Args:
        version: Engine version string (e.g. '5.3')
        compiler_override: Compiler version to use instead of the table value

    Returns:
        Immutable Target
    """
    version = version.strip()
    compiler = compiler_override or resolve_compiler_version(version)
    return Target(version=version, toolchain=ToolchainDescriptor(compiler))
