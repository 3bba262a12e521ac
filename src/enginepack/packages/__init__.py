"""Packaging components for enginepack.

This module holds the leaf components the pipeline is built from: manifest
editing, tree projection, the toolchain slot, the cache gate and archive
writing.
"""

from .archive_writer import ArchiveError, ArchiveLockedError, ArchiveWriter
from .cache import ArtifactCategory, ArtifactRecord, Cache, CacheGate
from .manifest import (
    Manifest,
    ManifestError,
    ManifestNotFoundError,
    ManifestParseError,
    ManifestStore,
)
from .projector import ProjectionError, ProjectionRule, WorkspaceProjector
from .toolchain_config import ToolchainConfigError, ToolchainConfigManager, ToolchainHandle
from .variants import ManifestRewrite, VariantSpec

__all__ = [
    "ArchiveError",
    "ArchiveLockedError",
    "ArchiveWriter",
    "ArtifactCategory",
    "ArtifactRecord",
    "Cache",
    "CacheGate",
    "Manifest",
    "ManifestError",
    "ManifestNotFoundError",
    "ManifestParseError",
    "ManifestStore",
    "ManifestRewrite",
    "ProjectionError",
    "ProjectionRule",
    "WorkspaceProjector",
    "ToolchainConfigError",
    "ToolchainConfigManager",
    "ToolchainHandle",
    "VariantSpec",
]
