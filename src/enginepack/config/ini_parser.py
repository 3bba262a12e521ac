"""
enginepack.ini configuration parser.

This module parses the project configuration file describing what to build,
for which engine versions, and how to derive the distributable variants.

Example enginepack.ini:
    [project]
    name = MyPlugin
    source_dir = MyPlugin
    example_dir = MyPluginExample
    build_command = "{engine_root}/Engine/Build/BatchFiles/RunUAT.bat" BuildPlugin
        -Plugin={manifest} -Package={output} -Rocket
    use_cache = true

    [target]
    engine_root = C:/Program Files/Epic Games/UE_{version}

    [target:5.2]
    [target:5.3]

    [exclude]
    directories = Binaries, Intermediate, Saved, .git

    [variant:blueprint]
    category = variant-b
    force_remove = Plugins/MyPlugin
    manifest = MyPluginExample.uproject
    remove_dependencies = MyPlugin
"""

import configparser
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from ..errors import ConfigError
from ..packages.cache import ArtifactCategory
from ..packages.manifest import ManifestError, ManifestStore
from ..packages.projector import ProjectionRule
from ..packages.toolchain_config import ToolchainConfigManager
from ..packages.variants import ManifestRewrite, VariantSpec
from .targets import Target, make_target


class ProjectConfigError(ConfigError):
    """Exception raised for enginepack.ini configuration errors."""

    pass


@dataclass
class PublishSettings:
    """Settings from the [publish] section."""

    remote: str
    command: Optional[str] = None
    token_env: Optional[str] = None


def split_list(value: Optional[str]) -> List[str]:
    """
    Split a list-valued option on newlines and commas.

    Example:
        For directories =
            Binaries, Intermediate
            Saved
        Returns: ['Binaries', 'Intermediate', 'Saved']
    """
    if not value:
        return []

    items = []
    for line in value.split("\n"):
        for item in line.split(","):
            item = item.strip()
            if item:
                items.append(item)
    return items


class ProjectConfig:
    """
    Parser for enginepack.ini configuration files.

    Usage:
        config = ProjectConfig(Path("enginepack.ini"))
        for target in config.get_targets():
            root = config.get_engine_root(target)
    """

    DEFAULT_FILENAME = "enginepack.ini"
    REQUIRED_FIELDS = {"name", "source_dir", "build_command"}

    def __init__(self, ini_path: Path):
        """
        Initialize the parser with an enginepack.ini file.

        Args:
            ini_path: Path to the configuration file

        Raises:
            ProjectConfigError: If the file doesn't exist or cannot be parsed
        """
        self.ini_path = Path(ini_path)

        if not self.ini_path.exists():
            raise ProjectConfigError(f"Configuration file not found: {self.ini_path}")

        self.config = configparser.ConfigParser(
            allow_no_value=True, interpolation=configparser.ExtendedInterpolation()
        )
        # Keep option names as written; manifest field names are case-sensitive
        self.config.optionxform = str  # type: ignore[assignment,method-assign]

        try:
            self.config.read(self.ini_path, encoding="utf-8")
        except configparser.Error as e:
            raise ProjectConfigError(f"Failed to parse {self.ini_path}: {e}") from e

        if "project" not in self.config:
            raise ProjectConfigError(f"{self.ini_path} has no [project] section")

        missing_fields = self.REQUIRED_FIELDS - set(self.config["project"].keys())
        if missing_fields:
            raise ProjectConfigError(
                "[project] is missing required fields: " + ", ".join(sorted(missing_fields))
            )

    @property
    def project_dir(self) -> Path:
        """Directory relative paths in the config are resolved against."""
        return self.ini_path.parent.resolve()

    def _get(self, section: str, option: str, fallback: Optional[str] = None) -> Optional[str]:
        if section not in self.config:
            return fallback
        try:
            value = self.config[section].get(option, fallback)
        except configparser.Error as e:
            raise ProjectConfigError(f"Invalid value for [{section}] {option}: {e}") from e
        if value is None:
            return fallback
        value = value.strip()
        return value if value else fallback

    def _get_bool(self, option: str, default: bool) -> bool:
        try:
            return self.config["project"].getboolean(option, fallback=default)
        except ValueError as e:
            raise ProjectConfigError(f"[project] {option} must be a boolean: {e}") from e

    def _get_number(self, option: str, default: float) -> float:
        raw = self._get("project", option)
        if raw is None:
            return default
        try:
            return float(raw)
        except ValueError as e:
            raise ProjectConfigError(f"[project] {option} must be a number, got '{raw}'") from e

    def _resolve(self, value: str) -> Path:
        path = Path(value).expanduser()
        if not path.is_absolute():
            path = self.project_dir / path
        return path.resolve()

    @property
    def name(self) -> str:
        return self._get("project", "name") or ""

    @property
    def source_dir(self) -> Path:
        return self._resolve(self._get("project", "source_dir") or "")

    @property
    def manifest_name(self) -> str:
        return self._get("project", "manifest") or f"{self.name}.uplugin"

    @property
    def manifest_path(self) -> Path:
        return self.source_dir / self.manifest_name

    @property
    def example_dir(self) -> Optional[Path]:
        value = self._get("project", "example_dir")
        return self._resolve(value) if value else None

    @property
    def example_manifest(self) -> Optional[str]:
        """Example project manifest, relative to example_dir.

        Defaults to the first *.uproject file found in example_dir.
        """
        value = self._get("project", "example_manifest")
        if value:
            return value
        example_dir = self.example_dir
        if example_dir is None or not example_dir.is_dir():
            return None
        candidates = sorted(example_dir.glob("*.uproject"))
        return candidates[0].name if candidates else None

    @property
    def output_dir(self) -> Path:
        return Path(self._get("project", "output_dir") or "dist")

    @property
    def staging_dir(self) -> Path:
        return Path(self._get("project", "staging_dir") or ".enginepack/staging")

    @property
    def build_command(self) -> str:
        return self._get("project", "build_command") or ""

    @property
    def upgrade_command(self) -> Optional[str]:
        return self._get("project", "upgrade_command")

    @property
    def use_cache(self) -> bool:
        return self._get_bool("use_cache", False)

    @property
    def fail_fast(self) -> bool:
        return self._get_bool("fail_fast", False)

    @property
    def keep_staging(self) -> bool:
        return self._get_bool("keep_staging", False)

    @property
    def toolchain_swap(self) -> bool:
        return self._get_bool("toolchain_swap", True)

    @property
    def archive_attempts(self) -> int:
        attempts = int(self._get_number("archive_attempts", 6))
        if attempts < 1:
            raise ProjectConfigError("[project] archive_attempts must be at least 1")
        return attempts

    @property
    def archive_retry_delay(self) -> float:
        return self._get_number("archive_retry_delay", 5.0)

    @property
    def remove_dependencies(self) -> List[str]:
        return split_list(self._get("project", "remove_dependencies"))

    def toolchain_config_path(self) -> Path:
        """Path of the toolchain slot, from config or the platform default."""
        value = self._get("project", "toolchain_config")
        if value:
            return self._resolve(value)
        return ToolchainConfigManager.default_slot_path()

    def get_target_names(self) -> List[str]:
        """
        Get list of all target versions in declaration order.

        Example:
            For [target:5.2], [target:5.3], returns ['5.2', '5.3']
        """
        names = []
        for section in self.config.sections():
            if section.startswith("target:"):
                names.append(section.split(":", 1)[1].strip())
        return names

    def get_target_config(self, version: str) -> Dict[str, str]:
        """
        Get configuration for a specific target.

        Values from the base [target] section are inherited and overridden
        by the target's own section.

        Raises:
            ProjectConfigError: If the target is not defined
        """
        section = f"target:{version}"
        if section not in self.config:
            available = ", ".join(self.get_target_names())
            raise ProjectConfigError(
                f"Target '{version}' not found. Available targets: {available or 'none'}"
            )

        target_config: Dict[str, str] = {}
        if "target" in self.config:
            target_config.update({k: (v or "").strip() for k, v in self.config["target"].items()})
        for key in self.config[section]:
            target_config[key] = (self.config[section][key] or "").strip()
        return target_config

    def get_targets(self, only: Optional[List[str]] = None) -> List[Target]:
        """
        Build Target objects for the configured versions.

        Args:
            only: Restrict to these versions (kept in declaration order)

        Raises:
            ProjectConfigError: If a requested version is not configured
        """
        names = self.get_target_names()
        if only:
            unknown = [v for v in only if v not in names]
            if unknown:
                raise ProjectConfigError(f"Unknown target(s): {', '.join(unknown)}")
            names = [n for n in names if n in only]

        targets = []
        for version in names:
            target_config = self.get_target_config(version)
            targets.append(make_target(version, target_config.get("toolchain") or None))
        return targets

    def get_engine_root(self, target: Target) -> Path:
        """
        Resolve the engine install directory for a target.

        Raises:
            ProjectConfigError: If no engine_root is configured
        """
        template = self.get_target_config(target.version).get("engine_root")
        if not template:
            raise ProjectConfigError(f"No engine_root configured for target {target}")
        return self._resolve(template.replace("{version}", target.version))

    def _get_rule(self, section: str) -> ProjectionRule:
        return ProjectionRule.create(
            directories=split_list(self._get(section, "directories")),
            patterns=split_list(self._get(section, "patterns")),
            force_remove=split_list(self._get(section, "force_remove")),
        )

    def get_exclusion_rule(self) -> ProjectionRule:
        """Rule applied when copying the source tree into staging ([exclude])."""
        return self._get_rule("exclude")

    def get_package_rule(self) -> ProjectionRule:
        """Rule applied to the build output before packaging ([package])."""
        return self._get_rule("package")

    def get_variant_names(self) -> List[str]:
        return [s.split(":", 1)[1].strip() for s in self.config.sections() if s.startswith("variant:")]

    def get_variants(self) -> List[VariantSpec]:
        """
        Parse all [variant:NAME] sections.

        Raises:
            ProjectConfigError: If a variant has an invalid category
        """
        variants = []
        for name in self.get_variant_names():
            section = f"variant:{name}"
            raw_category = self._get(section, "category", "variant-a") or "variant-a"
            try:
                category = ArtifactCategory.from_string(raw_category)
            except ValueError as e:
                raise ProjectConfigError(f"[{section}] has unknown category '{raw_category}'") from e
            if category is ArtifactCategory.PRIMARY:
                raise ProjectConfigError(f"[{section}] cannot use the primary category")

            rewrite = None
            manifest = self._get(section, "manifest")
            if manifest:
                try:
                    set_version = self.config[section].getboolean("set_version", fallback=True)
                except ValueError as e:
                    raise ProjectConfigError(f"[{section}] set_version must be a boolean") from e
                rewrite = ManifestRewrite(
                    manifest=manifest,
                    remove_dependencies=tuple(split_list(self._get(section, "remove_dependencies"))),
                    set_version=set_version,
                    version_field=self._get(section, "version_field") or None,
                )

            variants.append(
                VariantSpec(name=name, category=category, rule=self._get_rule(section), rewrite=rewrite)
            )
        return variants

    def get_publish_settings(self) -> Optional[PublishSettings]:
        """Settings for the [publish] section, or None if absent."""
        if "publish" not in self.config:
            return None
        remote = self._get("publish", "remote")
        if not remote:
            raise ProjectConfigError("[publish] requires a remote")
        return PublishSettings(
            remote=remote,
            command=self._get("publish", "command"),
            token_env=self._get("publish", "token_env"),
        )

    def validate(self) -> None:
        """
        Check the configuration against the file system.

        Raises:
            ProjectConfigError: Listing every problem found
        """
        problems = []

        if not self.source_dir.is_dir():
            problems.append(f"source_dir does not exist: {self.source_dir}")
        else:
            try:
                ManifestStore().load(self.manifest_path)
            except ManifestError as e:
                problems.append(str(e))

        if not self.get_target_names():
            problems.append("no [target:VERSION] sections defined")

        try:
            variants = self.get_variants()
        except ProjectConfigError as e:
            problems.append(str(e))
            variants = []

        if variants:
            example_dir = self.example_dir
            if example_dir is None:
                problems.append("variants are defined but [project] has no example_dir")
            elif not example_dir.is_dir():
                problems.append(f"example_dir does not exist: {example_dir}")
            else:
                for variant in variants:
                    if variant.rewrite and not (example_dir / variant.rewrite.manifest).is_file():
                        problems.append(
                            f"variant '{variant.name}' manifest not found: {variant.rewrite.manifest}"
                        )

        try:
            publish = self.get_publish_settings()
        except ProjectConfigError as e:
            problems.append(str(e))
            publish = None

        if publish is not None and publish.command:
            from ..build.runner import format_command

            try:
                format_command(publish.command, {"source": "", "remote": publish.remote})
            except ConfigError as e:
                problems.append(f"[publish] {e}")

        if problems:
            raise ProjectConfigError(
                f"Invalid configuration {self.ini_path}:\n" + "\n".join(f"  - {p}" for p in problems)
            )
