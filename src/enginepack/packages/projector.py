"""Workspace projection.

This module copies a source tree into a staging location while applying a
ProjectionRule: excluded directory names (matched at every depth),
excluded filename glob patterns and forced removals.

Design:
    - Exclusion is structural: a skipped directory is never descended into
    - Walk order is sorted so the resulting tree is identical on every run
    - Rules combine by union, so merging can only exclude more
"""

import fnmatch
import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Iterable, List, Tuple

from ..errors import ConfigError, EnginePackError

logger = logging.getLogger(__name__)


class ProjectionError(EnginePackError):
    """Raised when a tree copy or forced removal fails."""

    pass


@dataclass(frozen=True)
class ProjectionRule:
    """Declarative exclusion rule for deriving a tree from a source tree.

    Attributes:
        directories: Directory names excluded at any depth (exact match)
        patterns: Filename glob patterns excluded at any depth
        force_remove: Relative paths deleted unconditionally after a copy
    """

    directories: FrozenSet[str] = field(default_factory=frozenset)
    patterns: FrozenSet[str] = field(default_factory=frozenset)
    force_remove: Tuple[str, ...] = ()

    @classmethod
    def create(
        cls,
        directories: Iterable[str] = (),
        patterns: Iterable[str] = (),
        force_remove: Iterable[str] = (),
    ) -> "ProjectionRule":
        """Build a rule from plain iterables, normalizing path separators."""
        removals: List[str] = []
        for rel in force_remove:
            normalized = rel.replace("\\", "/").strip("/")
            if normalized and normalized not in removals:
                removals.append(normalized)
        return cls(
            directories=frozenset(d for d in directories if d),
            patterns=frozenset(p for p in patterns if p),
            force_remove=tuple(removals),
        )

    def merge(self, other: "ProjectionRule") -> "ProjectionRule":
        """Union of two rules. The result excludes everything either excludes."""
        return ProjectionRule.create(
            directories=self.directories | other.directories,
            patterns=self.patterns | other.patterns,
            force_remove=list(self.force_remove) + list(other.force_remove),
        )

    def excludes_directory(self, name: str) -> bool:
        return name in self.directories

    def excludes_file(self, name: str) -> bool:
        return any(fnmatch.fnmatch(name, pattern) for pattern in self.patterns)


class WorkspaceProjector:
    """Copies source trees into staging directories under a ProjectionRule.

    Example usage:
        projector = WorkspaceProjector()
        rule = ProjectionRule.create(directories=["Binaries", "Intermediate"])
        count = projector.project(Path("MyPlugin"), staging / "MyPlugin", rule)
    """

    def project(self, source_root: Path, dest_root: Path, rule: ProjectionRule) -> int:
        """
        Recursively copy source_root into dest_root, skipping excluded entries.

        Args:
            source_root: Tree to copy
            dest_root: Destination directory (created if missing)
            rule: Exclusion rule to apply

        Returns:
            Number of files copied

        Raises:
            ProjectionError: If the source is missing or empty, or a copy fails
        """
        source_root = Path(source_root)
        dest_root = Path(dest_root)

        if not source_root.is_dir():
            raise ProjectionError(f"Source tree not found: {source_root}")
        if not any(source_root.iterdir()):
            raise ProjectionError(f"Source tree is empty: {source_root}")

        copied = 0
        try:
            dest_root.mkdir(parents=True, exist_ok=True)
            for dirpath, dirnames, filenames in os.walk(source_root):
                # Prune in place so excluded subtrees are never visited
                dirnames[:] = sorted(d for d in dirnames if not rule.excludes_directory(d))

                rel_dir = Path(dirpath).relative_to(source_root)
                target_dir = dest_root / rel_dir
                target_dir.mkdir(parents=True, exist_ok=True)

                for filename in sorted(filenames):
                    if rule.excludes_file(filename):
                        continue
                    shutil.copy2(Path(dirpath) / filename, target_dir / filename)
                    copied += 1
        except OSError as e:
            raise ProjectionError(f"Failed to copy {source_root} to {dest_root}: {e}") from e

        logger.debug(f"Projected {copied} files from {source_root} to {dest_root}")
        return copied

    def force_remove(self, root: Path, relative_paths: Iterable[str]) -> List[Path]:
        """
        Delete specific files or subtrees from an already-copied tree.

        Missing paths are ignored. Paths escaping root are rejected.

        Args:
            root: Tree to remove from
            relative_paths: Paths relative to root

        Returns:
            List of paths that were removed

        Raises:
            ConfigError: If a path points outside root
            ProjectionError: If a removal fails
        """
        root = Path(root).resolve()
        removed = []
        for rel in relative_paths:
            candidate = (root / rel).resolve()
            if candidate == root or root not in candidate.parents:
                raise ConfigError(f"Forced removal path escapes the tree: {rel}")
            if not candidate.exists():
                continue
            try:
                if candidate.is_dir():
                    shutil.rmtree(candidate)
                else:
                    candidate.unlink()
            except OSError as e:
                raise ProjectionError(f"Failed to remove {candidate}: {e}") from e
            removed.append(candidate)
            logger.debug(f"Removed {candidate}")
        return removed

    def apply(self, source_root: Path, dest_root: Path, rule: ProjectionRule) -> int:
        """Copy under the rule, then apply its forced removals."""
        count = self.project(source_root, dest_root, rule)
        self.force_remove(dest_root, rule.force_remove)
        return count
