"""CLI utility functions for enginepack.

This module provides common utilities used across CLI commands including:
- Locating the enginepack.ini configuration file
- Error handling and formatting
- Banners and the end-of-run summary
"""

import sys
from pathlib import Path
from typing import Optional

from enginepack.build.orchestrator import RunResult
from enginepack.build.pipeline import TargetStatus
from enginepack.config import ProjectConfig


class ConfigLocator:
    """Finds the configuration file for a project."""

    @staticmethod
    def locate(project_dir: Path, config_path: Optional[Path] = None) -> Path:
        """Resolve the configuration file to use.

        Args:
            project_dir: Project directory
            config_path: Explicit config path (relative paths resolve against project_dir)

        Returns:
            Path to the configuration file

        Raises:
            FileNotFoundError: If the configuration file doesn't exist
        """
        if config_path is not None:
            path = config_path if config_path.is_absolute() else project_dir / config_path
        else:
            path = project_dir / ProjectConfig.DEFAULT_FILENAME

        if not path.is_file():
            raise FileNotFoundError(f"Configuration file not found: {path}")
        return path


class ErrorFormatter:
    """Formats and displays error messages with ANSI color codes."""

    # ANSI color codes
    RED = "\033[1;31m"
    GREEN = "\033[1;32m"
    YELLOW = "\033[1;33m"
    RESET = "\033[0m"

    @staticmethod
    def print_error(title: str, message: str) -> None:
        """Print formatted error message.

        Args:
            title: Error title (e.g., "Configuration error")
            message: Error message details
        """
        print()
        print(f"{ErrorFormatter.RED}✗ {title}{ErrorFormatter.RESET}")
        print()
        print(message)
        print()

    @staticmethod
    def print_success(message: str) -> None:
        print()
        print(f"{ErrorFormatter.GREEN}✓ {message}{ErrorFormatter.RESET}")

    @staticmethod
    def print_warning(message: str) -> None:
        print()
        print(f"{ErrorFormatter.YELLOW}! {message}{ErrorFormatter.RESET}")

    @staticmethod
    def handle_file_not_found(error: FileNotFoundError) -> None:
        """Handle FileNotFoundError with standard formatting."""
        ErrorFormatter.print_error("Error: File not found", str(error))
        print(f"Run from a project directory containing {ProjectConfig.DEFAULT_FILENAME}, or pass --config.")
        sys.exit(1)

    @staticmethod
    def handle_config_error(error: Exception) -> None:
        """Handle configuration errors with standard formatting."""
        ErrorFormatter.print_error("Configuration error", str(error))
        sys.exit(1)

    @staticmethod
    def handle_keyboard_interrupt() -> None:
        """Handle KeyboardInterrupt with standard formatting."""
        ErrorFormatter.print_warning("Run interrupted")
        sys.exit(130)  # Standard exit code for SIGINT

    @staticmethod
    def handle_unexpected_error(error: Exception, verbose: bool = False) -> None:
        """Handle unexpected errors with standard formatting.

        Args:
            error: The exception to handle
            verbose: Whether to print traceback
        """
        message = f"{type(error).__name__}: {error}"
        ErrorFormatter.print_error("Unexpected error", message)

        if verbose:
            import traceback

            print("Traceback:")
            print(traceback.format_exc())

        sys.exit(1)


class BannerFormatter:
    """Formats and displays banner messages with borders."""

    DEFAULT_WIDTH = 80
    DEFAULT_BORDER_CHAR = "="

    @staticmethod
    def format_banner(
        message: str,
        width: int = DEFAULT_WIDTH,
        border_char: str = DEFAULT_BORDER_CHAR,
        center: bool = True,
    ) -> str:
        """Format a banner message with top and bottom borders.

        Args:
            message: The message to display (can be multi-line)
            width: Width of the banner in characters
            border_char: Character to use for borders
            center: Whether to center text (otherwise indented by two spaces)

        Returns:
            Formatted banner string with borders
        """
        border = border_char * width
        lines = [border]
        for line in message.split("\n"):
            if center:
                lines.append(" " * max((width - len(line)) // 2, 0) + line)
            else:
                lines.append("  " + line)
        lines.append(border)
        return "\n".join(lines)

    @staticmethod
    def print_banner(message: str, width: int = DEFAULT_WIDTH, center: bool = True) -> None:
        print()
        print(BannerFormatter.format_banner(message, width=width, center=center))


class SummaryFormatter:
    """Prints the end-of-run summary."""

    STATUS_COLORS = {
        TargetStatus.DONE_SUCCESS: ErrorFormatter.GREEN,
        TargetStatus.DONE_FAILED: ErrorFormatter.RED,
        TargetStatus.DONE_SKIPPED: ErrorFormatter.YELLOW,
        TargetStatus.PLANNED: "",
    }

    @staticmethod
    def print_summary(result: RunResult) -> None:
        """Print one line per target plus totals, colored by status."""
        title = "Planned stages" if result.dry_run else "Run summary"
        BannerFormatter.print_banner(title, center=False)

        for target_result in result.results:
            color = SummaryFormatter.STATUS_COLORS.get(target_result.status, "")
            reset = ErrorFormatter.RESET if color else ""
            print(f"{color}{target_result.status.value:<8}{reset} {target_result.target.version}")
            if target_result.status is TargetStatus.PLANNED:
                for stage in target_result.planned_stages:
                    print(f"           - {stage}")
            elif target_result.failed and target_result.failed_stage is not None:
                print(f"           failed in {target_result.failed_stage.value}: {target_result.message}")
            elif target_result.message:
                print(f"           {target_result.message}")
            for artifact in target_result.artifacts:
                print(f"           {artifact.category.value}: {artifact.path}")

        print()
        print(result.totals())
