"""Manifest loading, editing and saving.

Manifests are small JSON documents describing a buildable unit (e.g. a
.uplugin or .uproject file). Only a few fields are interpreted here; every
other field is carried through edits unchanged and in its original order.

Writes go to a temporary file in the same directory which is then renamed
over the target, so other processes never observe a partial file.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import ConfigError

logger = logging.getLogger(__name__)


class ManifestError(ConfigError):
    """Base exception for manifest errors."""

    pass


class ManifestNotFoundError(ManifestError):
    """Raised when a manifest file does not exist."""

    pass


class ManifestParseError(ManifestError):
    """Raised when a manifest file is not valid structured text."""

    pass


class Manifest:
    """In-memory manifest: an ordered mapping of field names to values."""

    VERSION_FIELD = "EngineVersion"
    PROJECT_VERSION_FIELD = "EngineAssociation"
    DEPENDENCIES_FIELD = "Plugins"

    def __init__(self, data: Optional[Dict[str, Any]] = None, path: Optional[Path] = None):
        self.data: Dict[str, Any] = dict(data) if data else {}
        self.path = path

    def __contains__(self, name: str) -> bool:
        return name in self.data

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Manifest):
            return NotImplemented
        return self.data == other.data

    def get_field(self, name: str, default: Any = None) -> Any:
        return self.data.get(name, default)

    def set_field(self, name: str, value: Any) -> None:
        """Insert or overwrite a field. Existing fields keep their position."""
        self.data[name] = value

    def remove_field(self, name: str) -> bool:
        """Remove a field entirely.

        Returns:
            True if the field was present
        """
        if name not in self.data:
            return False
        del self.data[name]
        return True

    @property
    def version(self) -> Optional[str]:
        return self.data.get(self.version_field)

    @property
    def version_field(self) -> str:
        """Field holding the engine version for this kind of manifest."""
        return version_field_for(self.path) if self.path is not None else self.VERSION_FIELD

    def set_version(self, version: str, field: Optional[str] = None) -> None:
        self.set_field(field or self.version_field, version)

    @property
    def dependencies(self) -> List[Any]:
        deps = self.data.get(self.DEPENDENCIES_FIELD)
        return list(deps) if isinstance(deps, list) else []

    def dependency_names(self) -> List[str]:
        names = []
        for entry in self.dependencies:
            if isinstance(entry, dict) and "Name" in entry:
                names.append(entry["Name"])
            elif isinstance(entry, str):
                names.append(entry)
        return names

    def remove_dependency(self, name: str) -> bool:
        """
        Remove entries named `name` from the dependency list.

        A manifest without a dependency list is left untouched; the list is
        never created by this call.

        Args:
            name: Dependency name (matched against each entry's "Name")

        Returns:
            True if at least one entry was removed
        """
        deps = self.data.get(self.DEPENDENCIES_FIELD)
        if not isinstance(deps, list):
            return False

        kept = [
            entry for entry in deps
            if not (entry == name or (isinstance(entry, dict) and entry.get("Name") == name))
        ]
        if len(kept) == len(deps):
            return False

        self.data[self.DEPENDENCIES_FIELD] = kept
        return True


def version_field_for(path: Path) -> str:
    """
    Name of the version field for a manifest file.

    Project files (.uproject) record the engine they open with under
    EngineAssociation; plugin descriptors use EngineVersion.
    """
    if Path(path).suffix.lower() == ".uproject":
        return Manifest.PROJECT_VERSION_FIELD
    return Manifest.VERSION_FIELD


class ManifestStore:
    """Loads and saves manifests."""

    def __init__(self, indent: str = "\t"):
        """
        Initialize the store.

        Args:
            indent: Indentation used when serializing (engine manifests use tabs)
        """
        self.indent = indent

    def load(self, path: Path) -> Manifest:
        """
        Load a manifest from disk.

        Args:
            path: Manifest file path

        Returns:
            Manifest with all fields in file order

        Raises:
            ManifestNotFoundError: If the file does not exist
            ManifestParseError: If the file is not a JSON object
        """
        path = Path(path)
        if not path.is_file():
            raise ManifestNotFoundError(f"Manifest not found: {path}")

        try:
            # utf-8-sig tolerates the BOM some editors write
            text = path.read_text(encoding="utf-8-sig")
            data = json.loads(text)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ManifestParseError(f"Failed to parse manifest {path}: {e}") from e

        if not isinstance(data, dict):
            raise ManifestParseError(f"Manifest {path} must contain an object, got {type(data).__name__}")

        return Manifest(data, path=path)

    def dumps(self, manifest: Manifest) -> str:
        return json.dumps(manifest.data, indent=self.indent, ensure_ascii=False) + "\n"

    def save(self, manifest: Manifest, path: Optional[Path] = None) -> Path:
        """
        Serialize the full manifest and atomically replace the file.

        Args:
            manifest: Manifest to write
            path: Destination (defaults to the path it was loaded from)

        Returns:
            Path written

        Raises:
            ManifestError: If no path is known or the write fails
        """
        dest = Path(path) if path is not None else manifest.path
        if dest is None:
            raise ManifestError("No path given for manifest save")

        temp_file = dest.with_name(f".{dest.name}.tmp")
        try:
            with open(temp_file, "w", encoding="utf-8", newline="\n") as f:
                f.write(self.dumps(manifest))
                f.flush()
                os.fsync(f.fileno())
            temp_file.replace(dest)
        except KeyboardInterrupt:
            temp_file.unlink(missing_ok=True)
            raise
        except OSError as e:
            temp_file.unlink(missing_ok=True)
            raise ManifestError(f"Failed to write manifest {dest}: {e}") from e

        manifest.path = dest
        return dest

    def rewrite(
        self,
        path: Path,
        version: Optional[str] = None,
        remove_dependencies: Optional[List[str]] = None,
        remove_fields: Optional[List[str]] = None,
        version_field: Optional[str] = None,
    ) -> Manifest:
        """
        Load, edit and save a manifest in one step.

        Args:
            path: Manifest file
            version: New value for the version field (None leaves it)
            remove_dependencies: Dependency names to drop from the dependency list
            remove_fields: Field names to remove entirely
            version_field: Field the version is written to (defaults to the
                field matching the manifest kind)

        Returns:
            The edited manifest
        """
        manifest = self.load(path)
        for name in remove_dependencies or []:
            if manifest.remove_dependency(name):
                logger.debug(f"Removed dependency {name} from {path}")
        for name in remove_fields or []:
            manifest.remove_field(name)
        if version is not None:
            manifest.set_version(version, version_field)
        self.save(manifest, path)
        return manifest
