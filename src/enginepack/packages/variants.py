"""Variant specifications.

A variant is one derived artifact produced from an already-built tree: a
ProjectionRule deciding what goes in, plus an optional manifest rewrite.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

from .cache import ArtifactCategory
from .projector import ProjectionRule


@dataclass(frozen=True)
class ManifestRewrite:
    """Edits applied to a manifest inside a projected tree.

    Attributes:
        manifest: Manifest path relative to the tree root
        remove_dependencies: Dependency names dropped from the dependency list
        set_version: Whether the target's engine version is written
        version_field: Field the version goes into (None picks it from the
            manifest kind: EngineAssociation for projects, EngineVersion otherwise)
    """

    manifest: str
    remove_dependencies: Tuple[str, ...] = ()
    set_version: bool = True
    version_field: Optional[str] = None


@dataclass(frozen=True)
class VariantSpec:
    """Declarative description of one derived artifact."""

    name: str
    category: ArtifactCategory
    rule: ProjectionRule = field(default_factory=ProjectionRule)
    rewrite: Optional[ManifestRewrite] = None
