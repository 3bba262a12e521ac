"""Artifact publishing.

This module uploads the aggregate output directory to remote storage once
all targets are done. Two publishers are provided:

- CommandPublisher: hands the directory to an external sync client
  (rclone, gsutil, aws s3 sync, ...) through a command template
- HttpPublisher: PUTs every file to an HTTP(S) base URL

The directory keeps its categorized layout (packages/, examples/<version>/,
logs/) on the remote side.
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote

import requests
from tqdm import tqdm

from ..build.runner import BuildStageError, BuildStageRunner, format_command
from ..config.ini_parser import PublishSettings
from ..errors import EnginePackError

logger = logging.getLogger(__name__)


@dataclass
class PublishResult:
    """Result of a publish operation."""

    success: bool
    message: str
    files: int = 0


class PublishError(EnginePackError):
    """Raised when a publisher cannot be created or used."""

    pass


class IPublisher(ABC):
    """Interface for artifact publishers."""

    def __init__(self, remote: str):
        self.remote = remote

    @abstractmethod
    def publish(self, source_dir: Path) -> PublishResult:
        """Upload source_dir to the remote.

        Args:
            source_dir: Aggregate output directory

        Returns:
            PublishResult with success status and message
        """
        pass


def collect_files(source_dir: Path) -> List[Path]:
    """Files to publish, in a stable order. Temporary files are left out."""
    return sorted(
        p for p in Path(source_dir).rglob("*")
        if p.is_file() and not p.name.endswith(".tmp")
    )


class CommandPublisher(IPublisher):
    """Publishes through an external sync client.

    Example template:
        rclone copy {source} {remote} --progress
    """

    def __init__(self, remote: str, command: str, runner: BuildStageRunner, log_path: Path):
        """
        Raises:
            ConfigError: If the command template is malformed or uses a
                placeholder other than {source} and {remote}
        """
        super().__init__(remote)
        format_command(command, {"source": "", "remote": remote})
        self.command = command
        self.runner = runner
        self.log_path = log_path

    def publish(self, source_dir: Path) -> PublishResult:
        source_dir = Path(source_dir)
        if not source_dir.is_dir():
            return PublishResult(False, f"Nothing to publish: {source_dir} does not exist")

        files = collect_files(source_dir)
        cmd = format_command(self.command, {"source": source_dir, "remote": self.remote})
        try:
            self.runner.run(cmd, self.log_path, description="Publish")
        except BuildStageError as e:
            return PublishResult(False, str(e))

        return PublishResult(True, f"Published {len(files)} files to {self.remote}", files=len(files))


class HttpPublisher(IPublisher):
    """Publishes by PUTting each file below an HTTP(S) base URL."""

    def __init__(
        self,
        remote: str,
        token: Optional[str] = None,
        timeout: float = 300,
        show_progress: bool = True,
        session: Optional[requests.Session] = None,
    ):
        """Initialize HTTP publisher.

        Args:
            remote: Base URL (files go to <remote>/<relative path>)
            token: Bearer token sent with every request
            timeout: Per-request timeout in seconds
            show_progress: Whether to show an upload progress bar
            session: requests session (created if not given)
        """
        super().__init__(remote.rstrip("/"))
        self.token = token
        self.timeout = timeout
        self.show_progress = show_progress
        self.session = session or requests.Session()

    def url_for(self, relative: Path) -> str:
        return f"{self.remote}/{quote(relative.as_posix())}"

    def publish(self, source_dir: Path) -> PublishResult:
        source_dir = Path(source_dir)
        if not source_dir.is_dir():
            return PublishResult(False, f"Nothing to publish: {source_dir} does not exist")

        files = collect_files(source_dir)
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            total_size = sum(f.stat().st_size for f in files)
        except OSError as e:
            return PublishResult(False, f"Cannot read files to upload: {e}")

        progress_bar = None
        if self.show_progress and total_size > 0:
            progress_bar = tqdm(total=total_size, unit="B", unit_scale=True, unit_divisor=1024, desc="Uploading")

        try:
            for file_path in files:
                url = self.url_for(file_path.relative_to(source_dir))
                with open(file_path, "rb") as f:
                    response = self.session.put(url, data=f, headers=headers, timeout=self.timeout)
                response.raise_for_status()
                logger.debug(f"Uploaded {file_path} -> {url}")
                if progress_bar:
                    progress_bar.update(file_path.stat().st_size)
        except requests.RequestException as e:
            return PublishResult(False, f"Upload failed: {e}")
        except OSError as e:
            return PublishResult(False, f"Upload failed reading {file_path}: {e}")
        finally:
            if progress_bar:
                progress_bar.close()

        return PublishResult(True, f"Uploaded {len(files)} files to {self.remote}", files=len(files))


def create_publisher(
    settings: PublishSettings,
    runner: BuildStageRunner,
    log_path: Path,
    show_progress: bool = True,
) -> IPublisher:
    """
    Pick a publisher for the [publish] settings.

    Raises:
        PublishError: If neither a command nor an HTTP remote is configured
    """
    if settings.command:
        return CommandPublisher(settings.remote, settings.command, runner, log_path)

    if settings.remote.startswith(("http://", "https://")):
        token = os.environ.get(settings.token_env) if settings.token_env else None
        if settings.token_env and not token:
            logger.warning(f"{settings.token_env} is not set, uploading without a token")
        return HttpPublisher(settings.remote, token=token, show_progress=show_progress)

    raise PublishError(
        f"Cannot publish to '{settings.remote}': set [publish] command or use an http(s) remote"
    )
