"""
Run orchestration for enginepack.

This module drives every configured target through the TargetPipeline, in
declaration order, and aggregates the per-target outcomes:

1. Restore a toolchain slot left behind by an interrupted run
2. For each target: skip it if all its artifacts are cached, otherwise run
   the pipeline (or, in dry-run mode, only report the planned stages)
3. Optionally publish the output directory once, after all targets

A failing target never aborts its siblings unless fail-fast is requested.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Sequence

from ..config.targets import Target
from ..errors import EnginePackError, ResourceStateError
from ..packages.cache import CacheGate
from .pipeline import TargetPipeline, TargetResult, TargetStatus

if TYPE_CHECKING:
    from ..deploy.publisher import IPublisher

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Aggregate result of a run over all targets."""

    results: List[TargetResult] = field(default_factory=list)
    dry_run: bool = False
    published: Optional[bool] = None
    publish_message: str = ""
    duration: float = 0.0

    def _with_status(self, status: TargetStatus) -> List[TargetResult]:
        return [r for r in self.results if r.status is status]

    @property
    def succeeded(self) -> List[TargetResult]:
        return self._with_status(TargetStatus.DONE_SUCCESS)

    @property
    def skipped(self) -> List[TargetResult]:
        return self._with_status(TargetStatus.DONE_SKIPPED)

    @property
    def failed(self) -> List[TargetResult]:
        return self._with_status(TargetStatus.DONE_FAILED)

    @property
    def planned(self) -> List[TargetResult]:
        return self._with_status(TargetStatus.PLANNED)

    @property
    def success(self) -> bool:
        """True when no target failed and publishing (if attempted) worked.

        Skipped targets do not count as failures.
        """
        return not self.failed and self.published is not False

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1

    def status_of(self, version: str) -> Optional[TargetStatus]:
        for result in self.results:
            if result.target.version == version:
                return result.status
        return None

    def totals(self) -> str:
        if self.dry_run:
            return f"{len(self.planned)} planned, {len(self.skipped)} skipped (dry run)"
        return f"{len(self.succeeded)} succeeded, {len(self.skipped)} skipped, {len(self.failed)} failed"

    def summary(self) -> str:
        """Human-readable summary, one line per target."""
        lines = []
        for result in self.results:
            line = f"{result.target.version:<10} {result.status.value:<8}"
            if result.status is TargetStatus.PLANNED:
                line += " " + " -> ".join(result.planned_stages)
            elif result.failed and result.failed_stage is not None:
                line += f" [{result.failed_stage.value}] {result.message}"
            elif result.message:
                line += f" {result.message}"
            if result.duration:
                line += f" ({result.duration:.1f}s)"
            lines.append(line)

        lines.append("")
        lines.append(self.totals())
        if self.published is not None:
            lines.append(f"Publish: {'ok' if self.published else 'FAILED'} {self.publish_message}".rstrip())
        elif self.publish_message:
            lines.append(f"Publish: {self.publish_message}")
        return "\n".join(lines)


class Orchestrator:
    """
    Runs all targets through the pipeline.

    Example usage:
        orchestrator = Orchestrator(pipeline, CacheGate(enabled=True))
        result = orchestrator.run(config.get_targets())
        sys.exit(result.exit_code)
    """

    def __init__(
        self,
        pipeline: TargetPipeline,
        cache_gate: Optional[CacheGate] = None,
        publisher: Optional["IPublisher"] = None,
        fail_fast: bool = False,
    ):
        """
        Initialize orchestrator.

        Args:
            pipeline: Pipeline used for every target
            cache_gate: Decides whether cached targets are skipped
            publisher: Publisher invoked once after all targets
            fail_fast: Stop starting new targets after the first failure
        """
        self.pipeline = pipeline
        self.cache_gate = cache_gate or CacheGate(enabled=False)
        self.publisher = publisher
        self.fail_fast = fail_fast

    def plan(self, targets: Sequence[Target]) -> RunResult:
        """Report the stages each target would run, without side effects."""
        return self.run(targets, dry_run=True)

    def run(self, targets: Sequence[Target], dry_run: bool = False, publish: bool = False) -> RunResult:
        """
        Process targets in declaration order.

        Args:
            targets: Targets to process
            dry_run: Only report planned stages
            publish: Publish the output directory after all targets

        Returns:
            RunResult with one TargetResult per target
        """
        start_time = time.time()
        run_result = RunResult(dry_run=dry_run)

        if not dry_run:
            self._recover_toolchain()

        stop = False
        for index, target in enumerate(targets, start=1):
            logger.info(f"[{index}/{len(targets)}] Target {target}")

            if stop:
                run_result.results.append(
                    TargetResult(target, TargetStatus.DONE_SKIPPED, "not started (fail-fast)")
                )
                continue

            expected = self.pipeline.expected_artifacts(target)
            if self.cache_gate.should_skip(target, expected):
                logger.info(f"Skipping {target}: all {len(expected)} artifacts are cached")
                run_result.results.append(
                    TargetResult(target, TargetStatus.DONE_SKIPPED, "cached", artifacts=expected)
                )
                continue

            if dry_run:
                run_result.results.append(
                    TargetResult(
                        target,
                        TargetStatus.PLANNED,
                        planned_stages=self.pipeline.planned_stages(target),
                    )
                )
                continue

            result = self.pipeline.run(target)
            run_result.results.append(result)

            if result.failed and self.fail_fast:
                logger.error(f"Stopping after failure of {target} (fail-fast)")
                stop = True

        if publish and not dry_run:
            self._publish(run_result)

        run_result.duration = time.time() - start_time
        return run_result

    def _recover_toolchain(self) -> None:
        try:
            self.pipeline.toolchain.recover()
        except ResourceStateError as e:
            # Every acquire retries recovery, so targets still get a chance
            logger.critical(f"Could not recover toolchain slot: {e}")

    def _publish(self, run_result: RunResult) -> None:
        if self.publisher is None:
            logger.warning("Publishing requested but no [publish] section is configured")
            run_result.published = False
            run_result.publish_message = "no publisher configured"
            return

        if run_result.failed:
            logger.warning("Not publishing: some targets failed")
            run_result.publish_message = "skipped, some targets failed"
            return

        logger.info(f"Publishing {self.pipeline.cache.output_root} to {self.publisher.remote}")
        try:
            outcome = self.publisher.publish(self.pipeline.cache.output_root)
        except (EnginePackError, OSError) as e:
            logger.error(f"Publish failed: {e}")
            run_result.published = False
            run_result.publish_message = f"{type(e).__name__}: {e}"
            return

        run_result.published = outcome.success
        run_result.publish_message = outcome.message
        if outcome.success:
            logger.info(outcome.message)
        else:
            logger.error(f"Publish failed: {outcome.message}")
