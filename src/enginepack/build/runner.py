"""Build Stage Runner.

This module runs external tools (the engine's plugin builder, the asset
resave/upgrade commandlet, sync clients) as opaque commands with a pass/fail
result.

Design:
    - Combined stdout/stderr is streamed line by line
    - Every line goes to a per-stage log file and to a live sink
    - Any non-zero exit code is a failure
    - On Ctrl+C the whole child process tree is terminated before the
      interrupt propagates
"""

import logging
import os
import shlex
import shutil
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence

import psutil

from ..errors import ConfigError, ExternalToolError

logger = logging.getLogger(__name__)


class BuildStageError(ExternalToolError):
    """Raised when an external tool fails.

    Attributes:
        exit_code: Process exit code (None if it never started)
        log_path: Log file holding the captured output
    """

    def __init__(self, message: str, exit_code: Optional[int] = None, log_path: Optional[Path] = None):
        super().__init__(message)
        self.exit_code = exit_code
        self.log_path = log_path


@dataclass
class InvocationResult:
    """Result of one external tool invocation."""

    command: List[str]
    exit_code: int
    log_path: Path
    duration: float

    @property
    def success(self) -> bool:
        return self.exit_code == 0


def format_command(template: str, values: Mapping[str, object]) -> List[str]:
    """
    Split a command template and fill in placeholders per token.

    Splitting happens before substitution so paths containing spaces stay a
    single argument.

    Args:
        template: Command line with {placeholders}
        values: Placeholder values

    Returns:
        Argument list

    Raises:
        ConfigError: If the template is empty or uses an unknown placeholder

    Example:
        format_command('"{engine_root}/RunUAT.bat" BuildPlugin -Plugin={manifest}', {...})
    """
    posix = os.name != "nt"
    try:
        tokens = shlex.split(template, posix=posix)
    except ValueError as e:
        raise ConfigError(f"Malformed command template '{template}': {e}") from e

    if not tokens:
        raise ConfigError("Command template is empty")

    str_values = {key: str(value) for key, value in values.items()}
    command = []
    for token in tokens:
        if not posix and len(token) >= 2 and token[0] == token[-1] == '"':
            token = token[1:-1]
        try:
            command.append(token.format(**str_values))
        except (KeyError, IndexError) as e:
            raise ConfigError(f"Unknown placeholder {e} in command template '{template}'") from e
    return command


def resolve_executable(program: str) -> Optional[Path]:
    """Locate a program given as a path or a bare name on PATH."""
    candidate = Path(program)
    if candidate.is_absolute() or os.sep in program or (os.altsep and os.altsep in program):
        return candidate if candidate.is_file() else None
    found = shutil.which(program)
    return Path(found) if found else None


def kill_process_tree(pid: int, timeout: float = 5.0) -> int:
    """
    Terminate a process and all of its descendants.

    Args:
        pid: Root process id
        timeout: Seconds to wait before escalating to kill

    Returns:
        Number of processes signalled
    """
    try:
        root = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return 0

    try:
        children = root.children(recursive=True)
    except psutil.NoSuchProcess:
        children = []

    # Children first so nothing gets re-parented mid-way
    processes = list(reversed(children)) + [root]
    for proc in processes:
        try:
            proc.terminate()
        except psutil.NoSuchProcess:
            pass

    _, alive = psutil.wait_procs(processes, timeout=timeout)
    for proc in alive:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            pass

    logger.warning(f"Terminated process tree rooted at {pid} ({len(processes)} processes)")
    return len(processes)


class BuildStageRunner:
    """Runs external tools, capturing output to a log file and a live sink.

    Example usage:
        runner = BuildStageRunner(verbose=True)
        result = runner.run(["RunUAT.bat", "BuildPlugin", ...], log_path=logs / "build.log")
    """

    def __init__(
        self,
        verbose: bool = False,
        sink: Optional[Callable[[str], None]] = None,
        env: Optional[Dict[str, str]] = None,
    ):
        """Initialize runner.

        Args:
            verbose: Echo tool output live (when no sink is given)
            sink: Callable receiving each output line (without newline)
            env: Extra environment variables for child processes
        """
        self.verbose = verbose
        self.sink = sink
        self.env = env

    def _emit(self, line: str) -> None:
        if self.sink is not None:
            self.sink(line)
        elif self.verbose:
            print(line)
        else:
            logger.debug(line)

    def invoke(
        self,
        command: Sequence[str],
        log_path: Path,
        cwd: Optional[Path] = None,
    ) -> InvocationResult:
        """
        Run a command to completion.

        Args:
            command: Program and arguments
            log_path: File receiving the combined output (overwritten)
            cwd: Working directory

        Returns:
            InvocationResult with the exit code

        Raises:
            BuildStageError: If the program cannot be started
        """
        command = [str(part) for part in command]
        log_path = Path(log_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        env = None
        if self.env:
            env = os.environ.copy()
            env.update(self.env)

        logger.info(f"Running: {' '.join(command)}")
        start_time = time.time()

        with open(log_path, "w", encoding="utf-8") as log_file:
            log_file.write(f"$ {' '.join(command)}\n")
            try:
                process = subprocess.Popen(
                    command,
                    cwd=str(cwd) if cwd else None,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                    env=env,
                )
            except OSError as e:
                log_file.write(f"Failed to start: {e}\n")
                raise BuildStageError(f"Failed to start {command[0]}: {e}", log_path=log_path) from e

            try:
                assert process.stdout is not None
                for line in process.stdout:
                    log_file.write(line)
                    self._emit(line.rstrip("\r\n"))
                exit_code = process.wait()
            except KeyboardInterrupt:
                kill_process_tree(process.pid)
                process.wait()
                log_file.write("Interrupted\n")
                raise

            log_file.write(f"Exit code: {exit_code}\n")

        duration = time.time() - start_time
        logger.debug(f"{command[0]} exited with {exit_code} after {duration:.2f}s")
        return InvocationResult(command=command, exit_code=exit_code, log_path=log_path, duration=duration)

    def run(
        self,
        command: Sequence[str],
        log_path: Path,
        cwd: Optional[Path] = None,
        description: str = "Command",
    ) -> InvocationResult:
        """
        Run a command and treat a non-zero exit code as failure.

        Raises:
            BuildStageError: If the command fails, pointing at the log file
        """
        result = self.invoke(command, log_path, cwd=cwd)
        if not result.success:
            raise BuildStageError(
                f"{description} failed with exit code {result.exit_code} (see {log_path})",
                exit_code=result.exit_code,
                log_path=log_path,
            )
        return result
