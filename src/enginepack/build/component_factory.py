"""
Component factory for enginepack runs.

This module wires a parsed enginepack.ini into a ready-to-run Orchestrator:
output layout, toolchain slot, runner, archive writer, pipeline, cache gate
and publisher. It centralizes the places where CLI flags override config.
"""

from dataclasses import dataclass
from typing import Optional

from ..config.ini_parser import ProjectConfig
from ..deploy.publisher import create_publisher
from ..packages.archive_writer import ArchiveWriter
from ..packages.cache import Cache, CacheGate
from ..packages.toolchain_config import ToolchainConfigManager
from .orchestrator import Orchestrator
from .pipeline import PipelineSettings, TargetPipeline
from .runner import BuildStageRunner


@dataclass
class RunOptions:
    """Command-line overrides. None means "use the config value"."""

    use_cache: Optional[bool] = None
    fail_fast: Optional[bool] = None
    keep_staging: Optional[bool] = None
    publish: bool = False
    verbose: bool = False


class BuildComponentFactory:
    """
    Factory for creating run components from configuration.

    Example usage:
        config = ProjectConfig(Path("enginepack.ini"))
        orchestrator = BuildComponentFactory.create_orchestrator(config, RunOptions(use_cache=True))
    """

    @staticmethod
    def create_cache(config: ProjectConfig) -> Cache:
        return Cache(config.project_dir, output_dir=config.output_dir, staging_dir=config.staging_dir)

    @staticmethod
    def create_pipeline(config: ProjectConfig, options: RunOptions) -> TargetPipeline:
        """
        Create a pipeline with all leaf components configured.

        Args:
            config: Parsed configuration
            options: Command-line overrides

        Returns:
            Configured TargetPipeline
        """
        cache = BuildComponentFactory.create_cache(config)
        settings = PipelineSettings.from_config(config, keep_staging=options.keep_staging)
        toolchain = ToolchainConfigManager(config.toolchain_config_path(), enabled=config.toolchain_swap)
        archiver = ArchiveWriter(attempts=config.archive_attempts, retry_delay=config.archive_retry_delay)
        runner = BuildStageRunner(verbose=options.verbose)
        return TargetPipeline(settings, cache, toolchain, runner=runner, archiver=archiver)

    @staticmethod
    def create_orchestrator(config: ProjectConfig, options: RunOptions) -> Orchestrator:
        """
        Create an orchestrator for a run.

        Raises:
            ProjectConfigError: If the configuration is invalid
            PublishError: If publishing is requested but cannot be set up
        """
        pipeline = BuildComponentFactory.create_pipeline(config, options)

        use_cache = config.use_cache if options.use_cache is None else options.use_cache
        fail_fast = config.fail_fast if options.fail_fast is None else options.fail_fast

        publisher = None
        publish_settings = config.get_publish_settings()
        if options.publish and publish_settings is not None:
            publisher = create_publisher(
                publish_settings,
                pipeline.runner,
                pipeline.cache.logs_dir / "publish.log",
                show_progress=True,
            )

        return Orchestrator(
            pipeline,
            cache_gate=CacheGate(enabled=use_cache),
            publisher=publisher,
            fail_fast=fail_fast,
        )
