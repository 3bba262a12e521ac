"""Configuration parsing modules for enginepack."""

from .ini_parser import ProjectConfig, ProjectConfigError, PublishSettings
from .targets import (
    COMPILER_VERSIONS,
    DEFAULT_COMPILER,
    Target,
    ToolchainDescriptor,
    make_target,
    resolve_compiler_version,
)

__all__ = [
    "ProjectConfig",
    "ProjectConfigError",
    "PublishSettings",
    "COMPILER_VERSIONS",
    "DEFAULT_COMPILER",
    "Target",
    "ToolchainDescriptor",
    "make_target",
    "resolve_compiler_version",
]
