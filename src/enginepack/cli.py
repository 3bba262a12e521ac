"""
Command-line interface for enginepack.

This module provides the `enginepack` CLI tool for building and packaging a
plugin against every configured engine version.
"""

import argparse
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from enginepack import __version__
from enginepack.build.component_factory import BuildComponentFactory, RunOptions
from enginepack.cli_utils import (
    BannerFormatter,
    ConfigLocator,
    ErrorFormatter,
    SummaryFormatter,
)
from enginepack.config import ProjectConfig
from enginepack.deploy import PublishError
from enginepack.errors import ConfigError
from enginepack.log import setup_logging


@dataclass
class RunArgs:
    """Arguments for the run command."""

    project_dir: Path
    config: Optional[Path] = None
    targets: List[str] = field(default_factory=list)
    dry_run: bool = False
    skip_validation: bool = False
    use_cache: Optional[bool] = None
    fail_fast: Optional[bool] = None
    no_cleanup: bool = False
    publish: bool = False
    verbose: bool = False


@dataclass
class CleanArgs:
    """Arguments for the clean command."""

    project_dir: Path
    config: Optional[Path] = None
    verbose: bool = False


def run_command(args: RunArgs) -> None:
    """Build and package all targets.

    Examples:
        enginepack run                       # Run every target in enginepack.ini
        enginepack run -t 5.3 -t 5.4         # Only these engine versions
        enginepack run --use-cache           # Skip targets whose artifacts exist
        enginepack run --dry-run             # Show planned stages only
        enginepack run --publish             # Upload dist/ afterwards
    """
    print(f"enginepack v{__version__}")

    try:
        config_path = ConfigLocator.locate(args.project_dir, args.config)
        config = ProjectConfig(config_path)

        if not args.skip_validation:
            config.validate()

        options = RunOptions(
            use_cache=args.use_cache,
            fail_fast=args.fail_fast,
            keep_staging=True if args.no_cleanup else None,
            publish=args.publish,
            verbose=args.verbose,
        )

        cache = BuildComponentFactory.create_cache(config)
        log_file = None if args.dry_run else cache.logs_dir / "enginepack.log"
        setup_logging(log_file, verbose=args.verbose)

        orchestrator = BuildComponentFactory.create_orchestrator(config, options)
        targets = config.get_targets(args.targets or None)
        if not targets:
            ErrorFormatter.print_error("Nothing to do", f"No targets configured in {config_path}")
            sys.exit(1)

        BannerFormatter.print_banner(
            f"{config.name}: {', '.join(t.version for t in targets)}", center=False
        )

        result = orchestrator.run(targets, dry_run=args.dry_run, publish=args.publish)
        SummaryFormatter.print_summary(result)

        if result.success:
            ErrorFormatter.print_success("Dry run complete" if args.dry_run else "All targets done")
            print(f"Time: {result.duration:.2f}s")
            sys.exit(0)
        else:
            failed = ", ".join(r.target.version for r in result.failed) or "none"
            ErrorFormatter.print_error("Run failed!", f"Failed targets: {failed}")
            sys.exit(1)

    except FileNotFoundError as e:
        ErrorFormatter.handle_file_not_found(e)
    except (ConfigError, PublishError) as e:
        ErrorFormatter.handle_config_error(e)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def clean_command(args: CleanArgs) -> None:
    """Remove all staging directories.

    Examples:
        enginepack clean
        enginepack clean path/to/project
    """
    try:
        config_path = ConfigLocator.locate(args.project_dir, args.config)
        config = ProjectConfig(config_path)
        cache = BuildComponentFactory.create_cache(config)
        cache.clean_staging()
        ErrorFormatter.print_success(f"Removed {cache.staging_root}")
        sys.exit(0)
    except FileNotFoundError as e:
        ErrorFormatter.handle_file_not_found(e)
    except ConfigError as e:
        ErrorFormatter.handle_config_error(e)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "project_dir",
        nargs="?",
        type=Path,
        default=Path.cwd(),
        help="Project directory (default: current directory)",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help=f"Alternate config file (default: {ProjectConfig.DEFAULT_FILENAME})",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose output",
    )


def main() -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="enginepack",
        description="Build and package a plugin for several engine versions",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Run command
    run_parser = subparsers.add_parser("run", help="Build and package all targets")
    _add_common_arguments(run_parser)
    run_parser.add_argument(
        "-t",
        "--target",
        dest="targets",
        action="append",
        default=[],
        help="Only process this engine version (repeatable)",
    )
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the planned stages per target without executing them",
    )
    run_parser.add_argument(
        "--skip-validation",
        action="store_true",
        help="Do not validate the configuration before running",
    )
    cache_group = run_parser.add_mutually_exclusive_group()
    cache_group.add_argument(
        "--use-cache",
        dest="use_cache",
        action="store_const",
        const=True,
        default=None,
        help="Skip targets whose artifacts already exist",
    )
    cache_group.add_argument(
        "--no-cache",
        dest="use_cache",
        action="store_const",
        const=False,
        help="Rebuild every target even if its artifacts exist",
    )
    run_parser.add_argument(
        "--fail-fast",
        action="store_const",
        const=True,
        default=None,
        help="Stop starting new targets after the first failure",
    )
    run_parser.add_argument(
        "--no-cleanup",
        action="store_true",
        help="Keep staging directories for debugging",
    )
    run_parser.add_argument(
        "--publish",
        action="store_true",
        help="Publish the output directory after all targets succeed",
    )

    # Plan command
    plan_parser = subparsers.add_parser("plan", help="Show planned stages (same as run --dry-run)")
    _add_common_arguments(plan_parser)
    plan_parser.add_argument("-t", "--target", dest="targets", action="append", default=[])
    plan_parser.add_argument("--use-cache", action="store_const", const=True, default=None)

    # Clean command
    clean_parser = subparsers.add_parser("clean", help="Remove staging directories")
    _add_common_arguments(clean_parser)

    parsed_args = parser.parse_args()

    # If no command specified, show help
    if not parsed_args.command:
        parser.print_help()
        sys.exit(0)

    project_dir = parsed_args.project_dir
    if not project_dir.is_dir():
        print(f"{ErrorFormatter.RED}✗ Error: Not a directory: {project_dir}{ErrorFormatter.RESET}")
        sys.exit(2)

    if parsed_args.command == "run":
        run_command(
            RunArgs(
                project_dir=project_dir,
                config=parsed_args.config,
                targets=parsed_args.targets,
                dry_run=parsed_args.dry_run,
                skip_validation=parsed_args.skip_validation,
                use_cache=parsed_args.use_cache,
                fail_fast=parsed_args.fail_fast,
                no_cleanup=parsed_args.no_cleanup,
                publish=parsed_args.publish,
                verbose=parsed_args.verbose,
            )
        )
    elif parsed_args.command == "plan":
        run_command(
            RunArgs(
                project_dir=project_dir,
                config=parsed_args.config,
                targets=parsed_args.targets,
                dry_run=True,
                use_cache=parsed_args.use_cache,
                verbose=parsed_args.verbose,
            )
        )
    elif parsed_args.command == "clean":
        clean_command(
            CleanArgs(project_dir=project_dir, config=parsed_args.config, verbose=parsed_args.verbose)
        )


if __name__ == "__main__":
    main()
