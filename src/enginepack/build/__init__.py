"""
Build orchestration for enginepack.

This module provides the per-target pipeline and the run orchestrator:
- External tool invocation (build, upgrade) with captured logs
- The per-target stage sequence with guaranteed cleanup
- Run-level aggregation, caching and publishing
"""

from .orchestrator import Orchestrator, RunResult
from .pipeline import PipelineSettings, Stage, TargetPipeline, TargetResult, TargetStatus
from .runner import BuildStageError, BuildStageRunner, InvocationResult, format_command

__all__ = [
    "Orchestrator",
    "RunResult",
    "PipelineSettings",
    "Stage",
    "TargetPipeline",
    "TargetResult",
    "TargetStatus",
    "BuildStageError",
    "BuildStageRunner",
    "InvocationResult",
    "format_command",
]
