"""
Per-target build pipeline for enginepack.

This module runs one target through its stages, in strict order, each
gated on the previous one succeeding:

    SETUP -> ACQUIRE_TOOLCHAIN -> PROJECT_SOURCE -> APPLY_EXCLUSIONS -> BUILD
          -> PACKAGE_PRIMARY -> [UPGRADE_VARIANT_TREE] -> PACKAGE_VARIANT(s) -> CLEANUP

A failure in SETUP caused by a missing engine or tool skips the target.
Any other failure jumps straight to CLEANUP and fails the target. CLEANUP
always releases the toolchain slot (if it was acquired) and removes the
target's staging directory.

Staging layout for one target:
    {staging}/{version}/
    ├── source/{name}/          # Projected plugin source, manifest rewritten
    ├── build/{name}/           # Build tool output
    ├── package/{name}/         # Marketplace-clean package tree
    ├── example/{project}/      # Example project with the built plugin
    └── variants/{variant}/{project}/
"""

import logging
import shutil
import time
from contextlib import ExitStack
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from ..config.ini_parser import ProjectConfig, ProjectConfigError
from ..config.targets import Target
from ..errors import ConfigError, PrerequisiteMissingError, ResourceStateError
from ..packages.archive_writer import ArchiveWriter
from ..packages.cache import ArtifactRecord, Cache
from ..packages.manifest import Manifest, ManifestStore, version_field_for
from ..packages.projector import ProjectionRule, WorkspaceProjector
from ..packages.toolchain_config import ToolchainConfigManager
from ..packages.variants import VariantSpec
from .runner import BuildStageError, BuildStageRunner, format_command, resolve_executable

logger = logging.getLogger(__name__)


class Stage(Enum):
    """Pipeline stages in execution order."""

    SETUP = "setup"
    ACQUIRE_TOOLCHAIN = "acquire_toolchain"
    PROJECT_SOURCE = "project_source"
    APPLY_EXCLUSIONS = "apply_exclusions"
    BUILD = "build"
    PACKAGE_PRIMARY = "package_primary"
    UPGRADE_VARIANT_TREE = "upgrade_variant_tree"
    PACKAGE_VARIANT = "package_variant"
    CLEANUP = "cleanup"


class TargetStatus(Enum):
    """Terminal state of one target."""

    DONE_SUCCESS = "success"
    DONE_FAILED = "failed"
    DONE_SKIPPED = "skipped"
    PLANNED = "planned"


@dataclass
class TargetResult:
    """Outcome of processing one target."""

    target: Target
    status: TargetStatus
    message: str = ""
    failed_stage: Optional[Stage] = None
    artifacts: List[ArtifactRecord] = field(default_factory=list)
    planned_stages: List[str] = field(default_factory=list)
    duration: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status is TargetStatus.DONE_SUCCESS

    @property
    def failed(self) -> bool:
        return self.status is TargetStatus.DONE_FAILED

    @property
    def skipped(self) -> bool:
        return self.status is TargetStatus.DONE_SKIPPED


@dataclass
class PipelineSettings:
    """Everything the pipeline needs to know about the project."""

    name: str
    source_dir: Path
    manifest_name: str
    build_command: str
    engine_roots: Dict[str, Path] = field(default_factory=dict)
    exclusion_rule: ProjectionRule = field(default_factory=ProjectionRule)
    package_rule: ProjectionRule = field(default_factory=ProjectionRule)
    remove_dependencies: List[str] = field(default_factory=list)
    example_dir: Optional[Path] = None
    example_manifest: Optional[str] = None
    upgrade_command: Optional[str] = None
    variants: List[VariantSpec] = field(default_factory=list)
    keep_staging: bool = False

    @classmethod
    def from_config(cls, config: ProjectConfig, keep_staging: Optional[bool] = None) -> "PipelineSettings":
        """Create settings from a parsed enginepack.ini."""
        engine_roots = {}
        for target in config.get_targets():
            try:
                engine_roots[target.version] = config.get_engine_root(target)
            except ProjectConfigError:
                # Reported as a configuration failure when the target runs
                pass

        return cls(
            name=config.name,
            source_dir=config.source_dir,
            manifest_name=config.manifest_name,
            build_command=config.build_command,
            engine_roots=engine_roots,
            exclusion_rule=config.get_exclusion_rule(),
            package_rule=config.get_package_rule(),
            remove_dependencies=config.remove_dependencies,
            example_dir=config.example_dir,
            example_manifest=config.example_manifest,
            upgrade_command=config.upgrade_command,
            variants=config.get_variants(),
            keep_staging=config.keep_staging if keep_staging is None else keep_staging,
        )


@dataclass
class _TargetRun:
    """Mutable state of one in-flight target."""

    target: Target
    staging_dir: Path
    stage: Stage = Stage.SETUP
    build_command: List[str] = field(default_factory=list)
    upgrade_command: Optional[List[str]] = None
    artifacts: List[ArtifactRecord] = field(default_factory=list)

    @property
    def source_stage(self) -> Path:
        return self.staging_dir / "source"

    @property
    def build_output(self) -> Path:
        return self.staging_dir / "build"

    @property
    def package_stage(self) -> Path:
        return self.staging_dir / "package"

    @property
    def example_stage(self) -> Path:
        return self.staging_dir / "example"

    @property
    def variants_stage(self) -> Path:
        return self.staging_dir / "variants"


class TargetPipeline:
    """
    Runs the stage sequence for one target at a time.

    Example usage:
        pipeline = TargetPipeline(settings, cache, toolchain, runner)
        result = pipeline.run(make_target("5.3"))
        if result.failed:
            print(f"{result.failed_stage.value}: {result.message}")
    """

    def __init__(
        self,
        settings: PipelineSettings,
        cache: Cache,
        toolchain: ToolchainConfigManager,
        runner: Optional[BuildStageRunner] = None,
        projector: Optional[WorkspaceProjector] = None,
        manifests: Optional[ManifestStore] = None,
        archiver: Optional[ArchiveWriter] = None,
    ):
        """
        Initialize pipeline.

        Args:
            settings: Project settings
            cache: Output/staging layout
            toolchain: Toolchain slot manager
            runner: External tool runner
            projector: Tree projector
            manifests: Manifest store
            archiver: Archive writer
        """
        self.settings = settings
        self.cache = cache
        self.toolchain = toolchain
        self.runner = runner or BuildStageRunner()
        self.projector = projector or WorkspaceProjector()
        self.manifests = manifests or ManifestStore()
        self.archiver = archiver or ArchiveWriter()

    @property
    def has_variants(self) -> bool:
        return bool(self.settings.variants)

    def expected_artifacts(self, target: Target) -> List[ArtifactRecord]:
        """Every artifact a successful run of `target` produces."""
        records = [self.cache.primary_artifact(self.settings.name, target)]
        for variant in self.settings.variants:
            records.append(
                self.cache.variant_artifact(self.settings.name, target, variant.name, variant.category)
            )
        return records

    def planned_stages(self, target: Target) -> List[str]:
        """Stage names this pipeline would run for `target`, in order."""
        stages = [
            Stage.SETUP.value,
            Stage.ACQUIRE_TOOLCHAIN.value,
            Stage.PROJECT_SOURCE.value,
            Stage.APPLY_EXCLUSIONS.value,
            Stage.BUILD.value,
            Stage.PACKAGE_PRIMARY.value,
        ]
        if self.has_variants:
            stages.append(Stage.UPGRADE_VARIANT_TREE.value)
            stages.extend(f"{Stage.PACKAGE_VARIANT.value}:{v.name}" for v in self.settings.variants)
        stages.append(Stage.CLEANUP.value)
        return stages

    def run(self, target: Target) -> TargetResult:
        """
        Process one target from SETUP to CLEANUP.

        Errors never escape this method (KeyboardInterrupt excepted, after
        cleanup); they become a failed or skipped TargetResult.

        Args:
            target: Target to build

        Returns:
            TargetResult with terminal status and produced artifacts
        """
        start_time = time.time()
        run = _TargetRun(target=target, staging_dir=self.cache.get_staging_dir(target))

        logger.info(f"=== Target {target} (toolchain {target.toolchain.compiler_version}) ===")

        try:
            with ExitStack() as cleanup:
                cleanup.callback(self._remove_staging, run)

                self._enter(run, Stage.SETUP)
                self._setup(run)

                self._enter(run, Stage.ACQUIRE_TOOLCHAIN)
                cleanup.enter_context(self.toolchain.installed(target))

                self._enter(run, Stage.PROJECT_SOURCE)
                self._project_source(run)

                self._enter(run, Stage.APPLY_EXCLUSIONS)
                self._apply_exclusions(run)

                self._enter(run, Stage.BUILD)
                self._build(run)

                self._enter(run, Stage.PACKAGE_PRIMARY)
                self._package_primary(run)

                if self.has_variants:
                    self._enter(run, Stage.UPGRADE_VARIANT_TREE)
                    self._upgrade_variant_tree(run)

                    for variant in self.settings.variants:
                        self._enter(run, Stage.PACKAGE_VARIANT, variant.name)
                        self._package_variant(run, variant)

                self._enter(run, Stage.CLEANUP)
        except PrerequisiteMissingError as e:
            if run.stage is Stage.SETUP:
                logger.warning(f"Skipping {target}: {e}")
                return self._result(run, TargetStatus.DONE_SKIPPED, str(e), start_time)
            return self._fail(run, run.stage, e, start_time)
        except ResourceStateError as e:
            stage = run.stage if run.stage is Stage.ACQUIRE_TOOLCHAIN else Stage.CLEANUP
            return self._fail(run, stage, e, start_time)
        except Exception as e:
            return self._fail(run, run.stage, e, start_time)

        logger.info(f"Target {target} succeeded ({len(run.artifacts)} artifacts)")
        return self._result(run, TargetStatus.DONE_SUCCESS, "", start_time)

    def _enter(self, run: _TargetRun, stage: Stage, detail: str = "") -> None:
        run.stage = stage
        suffix = f" ({detail})" if detail else ""
        logger.info(f"[{run.target}] {stage.value}{suffix}")

    def _result(self, run: _TargetRun, status: TargetStatus, message: str, start_time: float) -> TargetResult:
        return TargetResult(
            target=run.target,
            status=status,
            message=message,
            failed_stage=run.stage if status is TargetStatus.DONE_FAILED else None,
            artifacts=list(run.artifacts),
            duration=time.time() - start_time,
        )

    def _fail(self, run: _TargetRun, stage: Stage, error: Exception, start_time: float) -> TargetResult:
        message = f"{type(error).__name__}: {error}"
        cause = error.__context__
        if isinstance(error, ResourceStateError) and cause is not None:
            message += f" (while handling {type(cause).__name__}: {cause})"
        logger.error(f"Target {run.target} failed in {stage.value}: {message}")
        run.stage = stage
        return self._result(run, TargetStatus.DONE_FAILED, message, start_time)

    def _command_values(self, run: _TargetRun, engine_root: Path) -> Dict[str, object]:
        name = self.settings.name
        values: Dict[str, object] = {
            "engine_root": engine_root,
            "version": run.target.version,
            "engine_version": run.target.engine_version_string,
            "name": name,
            "source": run.source_stage / name,
            "manifest": run.source_stage / name / self.settings.manifest_name,
            "output": run.build_output / name,
            "project": "",
        }
        if self.settings.example_dir is not None:
            example = run.example_stage / self.settings.example_dir.name
            values["project"] = example / (self.settings.example_manifest or "")
        return values

    def _setup(self, run: _TargetRun) -> None:
        """Resolve commands and check prerequisites before touching anything."""
        target = run.target
        engine_root = self.settings.engine_roots.get(target.version)
        if engine_root is None:
            raise ConfigError(f"No engine_root configured for target {target}")
        if not engine_root.is_dir():
            raise PrerequisiteMissingError(f"Engine {target} not installed at {engine_root}")

        values = self._command_values(run, engine_root)
        run.build_command = format_command(self.settings.build_command, values)
        if resolve_executable(run.build_command[0]) is None:
            raise PrerequisiteMissingError(f"Build tool not found: {run.build_command[0]}")

        if self.has_variants:
            example_dir = self._require_example_dir()
            if not example_dir.is_dir():
                raise ConfigError(f"Example project not found: {example_dir}")
            if self.settings.upgrade_command:
                run.upgrade_command = format_command(self.settings.upgrade_command, values)
                if resolve_executable(run.upgrade_command[0]) is None:
                    raise PrerequisiteMissingError(f"Upgrade tool not found: {run.upgrade_command[0]}")

        if run.staging_dir.exists():
            logger.debug(f"Removing stale staging directory {run.staging_dir}")
            shutil.rmtree(run.staging_dir)

    def _project_source(self, run: _TargetRun) -> None:
        dest = run.source_stage / self.settings.name
        count = self.projector.project(self.settings.source_dir, dest, self.settings.exclusion_rule)
        logger.info(f"      Copied {count} source files")

    def _apply_exclusions(self, run: _TargetRun) -> None:
        dest = run.source_stage / self.settings.name
        self.projector.force_remove(dest, self.settings.exclusion_rule.force_remove)
        self.manifests.rewrite(
            dest / self.settings.manifest_name,
            version=run.target.engine_version_string,
            remove_dependencies=self.settings.remove_dependencies,
        )

    def _build(self, run: _TargetRun) -> None:
        run.build_output.mkdir(parents=True, exist_ok=True)
        log_path = self.cache.get_log_path(run.target, Stage.BUILD.value)
        self.runner.run(run.build_command, log_path, description=f"Build for {run.target}")

        output = run.build_output / self.settings.name
        if not output.is_dir() or not any(output.iterdir()):
            raise BuildStageError(
                f"Build for {run.target} produced no output in {output} (see {log_path})",
                exit_code=0,
                log_path=log_path,
            )

    def _package_primary(self, run: _TargetRun) -> None:
        package_dir = run.package_stage / self.settings.name
        self.projector.apply(run.build_output / self.settings.name, package_dir, self.settings.package_rule)

        record = self.cache.primary_artifact(self.settings.name, run.target)
        record.path.parent.mkdir(parents=True, exist_ok=True)
        self.archiver.compress(package_dir, record.path)
        run.artifacts.append(record)

    def _require_example_dir(self) -> Path:
        example_dir = self.settings.example_dir
        if example_dir is None:
            raise ConfigError("Variants are configured but no example_dir is set")
        return example_dir

    def _upgrade_variant_tree(self, run: _TargetRun) -> None:
        example_dir = self._require_example_dir()
        example = run.example_stage / example_dir.name
        self.projector.project(example_dir, example, self.settings.exclusion_rule)

        # Variants are built against the freshly packaged plugin
        plugin_dir = example / "Plugins" / self.settings.name
        if plugin_dir.exists():
            shutil.rmtree(plugin_dir)
        self.projector.project(run.package_stage / self.settings.name, plugin_dir, ProjectionRule())

        if run.upgrade_command:
            log_path = self.cache.get_log_path(run.target, Stage.UPGRADE_VARIANT_TREE.value)
            self.runner.run(run.upgrade_command, log_path, description=f"Upgrade for {run.target}")

    def _package_variant(self, run: _TargetRun, variant: VariantSpec) -> None:
        example_dir = self._require_example_dir()
        variant_dir = run.variants_stage / variant.name / example_dir.name
        self.projector.apply(run.example_stage / example_dir.name, variant_dir, variant.rule)

        rewrite = variant.rewrite
        if rewrite is not None:
            manifest_path = variant_dir / rewrite.manifest
            version_field = rewrite.version_field or version_field_for(manifest_path)
            version = None
            if rewrite.set_version:
                if version_field == Manifest.PROJECT_VERSION_FIELD:
                    version = run.target.engine_association
                else:
                    version = run.target.engine_version_string
            self.manifests.rewrite(
                manifest_path,
                version=version,
                remove_dependencies=list(rewrite.remove_dependencies),
                version_field=version_field,
            )

        record = self.cache.variant_artifact(self.settings.name, run.target, variant.name, variant.category)
        record.path.parent.mkdir(parents=True, exist_ok=True)
        self.archiver.compress(variant_dir, record.path)
        run.artifacts.append(record)

    def _remove_staging(self, run: _TargetRun) -> None:
        if self.settings.keep_staging:
            logger.info(f"Keeping staging directory {run.staging_dir}")
            return
        if not run.staging_dir.exists():
            return
        try:
            shutil.rmtree(run.staging_dir)
            logger.debug(f"Removed staging directory {run.staging_dir}")
        except OSError as e:
            logger.warning(f"Failed to remove staging directory {run.staging_dir}: {e}")
