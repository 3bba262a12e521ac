"""Output layout and cache gate for enginepack.

Output Structure:
    dist/
    ├── packages/
    │   └── {name}_{version}.zip            # Primary plugin package per target
    ├── examples/
    │   └── {version}/
    │       └── {name}_{variant}_{version}.zip   # Variant artifacts per target
    └── logs/
        ├── enginepack.log                  # Run log
        └── {version}/
            └── {stage}.log                 # Captured external tool output

    .enginepack/staging/
    └── {version}/                          # Ephemeral, removed after each target

The cache is derived, not stored: a target is cached when every artifact
it is expected to produce already exists at its final path. There is no
content or staleness check.
"""

import os
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, List, Optional

if TYPE_CHECKING:
    from ..config.targets import Target


class ArtifactCategory(Enum):
    """Logical category of a produced artifact."""

    PRIMARY = "primary"
    VARIANT_A = "variant-a"
    VARIANT_B = "variant-b"

    @classmethod
    def from_string(cls, value: str) -> "ArtifactCategory":
        """Convert string to ArtifactCategory.

        Raises:
            ValueError: If the value names no category
        """
        return cls(value.strip().lower())


@dataclass(frozen=True)
class ArtifactRecord:
    """A produced (or expected) artifact file."""

    path: Path
    category: ArtifactCategory
    target: str
    variant: Optional[str] = None

    def exists(self) -> bool:
        return self.path.is_file()


class Cache:
    """Manages the enginepack output and staging directory structure.

    The output root can be overridden with the ENGINEPACK_OUTPUT_DIR
    environment variable.
    """

    ENV_VAR = "ENGINEPACK_OUTPUT_DIR"

    def __init__(
        self,
        project_dir: Optional[Path] = None,
        output_dir: Optional[Path] = None,
        staging_dir: Optional[Path] = None,
    ):
        """Initialize cache layout.

        Args:
            project_dir: Project directory. If None, uses current directory.
            output_dir: Output root (default: <project_dir>/dist)
            staging_dir: Staging root (default: <project_dir>/.enginepack/staging)
        """
        if project_dir is None:
            project_dir = Path.cwd()

        self.project_dir = Path(project_dir).resolve()

        output_env = os.environ.get(self.ENV_VAR)
        if output_env:
            self.output_root = Path(output_env).resolve()
        elif output_dir is not None:
            self.output_root = (self.project_dir / output_dir).resolve()
        else:
            self.output_root = self.project_dir / "dist"

        if staging_dir is not None:
            self.staging_root = (self.project_dir / staging_dir).resolve()
        else:
            self.staging_root = self.project_dir / ".enginepack" / "staging"

    @property
    def packages_dir(self) -> Path:
        """Directory for primary plugin packages."""
        return self.output_root / "packages"

    @property
    def examples_dir(self) -> Path:
        """Directory for variant artifacts, grouped by target."""
        return self.output_root / "examples"

    @property
    def logs_dir(self) -> Path:
        """Directory for run and tool logs."""
        return self.output_root / "logs"

    def get_staging_dir(self, target: "Target") -> Path:
        return self.staging_root / target.version

    def get_log_dir(self, target: "Target") -> Path:
        return self.logs_dir / target.version

    def get_log_path(self, target: "Target", stage: str) -> Path:
        return self.get_log_dir(target) / f"{stage.lower()}.log"

    def primary_artifact(self, name: str, target: "Target") -> ArtifactRecord:
        return ArtifactRecord(
            path=self.packages_dir / f"{name}_{target.version}.zip",
            category=ArtifactCategory.PRIMARY,
            target=target.version,
        )

    def variant_artifact(
        self, name: str, target: "Target", variant: str, category: ArtifactCategory
    ) -> ArtifactRecord:
        return ArtifactRecord(
            path=self.examples_dir / target.version / f"{name}_{variant}_{target.version}.zip",
            category=category,
            target=target.version,
            variant=variant,
        )

    def ensure_directories(self) -> None:
        """Create the output directories if they don't exist."""
        for directory in [self.packages_dir, self.examples_dir, self.logs_dir]:
            directory.mkdir(parents=True, exist_ok=True)

    def clean_staging(self, target: Optional["Target"] = None) -> None:
        """Remove staging state for one target, or all of it.

        Args:
            target: Target to clean (None removes the whole staging root)
        """
        staging = self.get_staging_dir(target) if target else self.staging_root
        if staging.exists():
            shutil.rmtree(staging)


class CacheGate:
    """Decides whether a target's work can be skipped."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    def should_skip(self, target: "Target", expected: Iterable[ArtifactRecord]) -> bool:
        """
        Check whether every expected artifact for a target already exists.

        Partial existence returns False so the target is rebuilt.

        Args:
            target: Target being considered
            expected: Artifacts the target would produce

        Returns:
            True only if caching is enabled and all artifacts exist
        """
        if not self.enabled:
            return False

        records: List[ArtifactRecord] = [r for r in expected if r.target == target.version]
        if not records:
            return False
        return all(record.exists() for record in records)
