"""Archive Writer.

This module compresses a staged directory into a single .zip artifact.

Design:
    - Writes to a temporary file beside the destination, then renames it
      over the destination so a prior artifact is fully replaced
    - Retries a bounded number of times when a file is locked by another
      process (antivirus scanners, indexers, an open editor)
    - Fails immediately on anything else
"""

import errno
import logging
import os
import sys
import time
import zipfile
from pathlib import Path
from typing import Callable, Optional

from ..errors import EnginePackError, TransientIOError

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 6
DEFAULT_RETRY_DELAY = 5.0

# Windows sharing/lock violations
_WINERROR_LOCKED = {32, 33}
_ERRNO_LOCKED = {errno.EBUSY, errno.ETXTBSY}


class ArchiveError(EnginePackError):
    """Raised when archive creation fails.

    Attributes:
        attempts: Number of attempts made before giving up
        transient: Whether the final failure was a lock-type failure
    """

    def __init__(self, message: str, attempts: int = 1, transient: bool = False):
        super().__init__(message)
        self.attempts = attempts
        self.transient = transient


class ArchiveLockedError(ArchiveError, TransientIOError):
    """Raised when every attempt failed because the archive was locked."""

    pass


def is_transient_error(error: OSError) -> bool:
    """Whether an OSError is a "resource busy" failure worth retrying."""
    if getattr(error, "winerror", None) in _WINERROR_LOCKED:
        return True
    # On Windows a file held open by another process shows up as EACCES
    if sys.platform == "win32" and error.errno == errno.EACCES:
        return True
    return error.errno in _ERRNO_LOCKED


class ArchiveWriter:
    """Compresses staged directories into artifact files.

    Example usage:
        writer = ArchiveWriter(attempts=6, retry_delay=5)
        writer.compress(staging / "MyPlugin", Path("dist/packages/MyPlugin_5.3.zip"))
    """

    def __init__(
        self,
        attempts: int = DEFAULT_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """Initialize archive writer.

        Args:
            attempts: Maximum number of attempts on transient failures
            retry_delay: Seconds to wait between attempts
            sleep: Sleep function (defaults to time.sleep)
        """
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.attempts = attempts
        self.retry_delay = retry_delay
        self._sleep = sleep or time.sleep

    def compress(self, staged_root: Path, dest_file: Path) -> Path:
        """
        Compress staged_root into dest_file.

        The archive contains staged_root's top-level folder, so extracting it
        yields a single directory named like staged_root.

        Args:
            staged_root: Directory to compress
            dest_file: Output .zip path; its parent directory must exist

        Returns:
            Path to the written archive

        Raises:
            ArchiveError: On a non-transient failure, or once all attempts
                have failed with a transient one
        """
        staged_root = Path(staged_root)
        dest_file = Path(dest_file)

        if not staged_root.is_dir():
            raise ArchiveError(f"Staged directory not found: {staged_root}")
        if not dest_file.parent.is_dir():
            raise ArchiveError(f"Destination directory does not exist: {dest_file.parent}")

        last_error: Optional[OSError] = None
        for attempt in range(1, self.attempts + 1):
            try:
                self._write_archive(staged_root, dest_file)
                size = dest_file.stat().st_size
                logger.info(f"Created {dest_file.name}: {size:,} bytes ({size / 1024 / 1024:.2f} MB)")
                return dest_file
            except OSError as e:
                if not is_transient_error(e):
                    raise ArchiveError(
                        f"Failed to create archive {dest_file.name}: {e}", attempts=attempt
                    ) from e
                last_error = e
                if attempt < self.attempts:
                    logger.warning(
                        f"Archive {dest_file.name} is locked (attempt {attempt}/{self.attempts}), "
                        f"retrying in {self.retry_delay}s: {e}"
                    )
                    self._sleep(self.retry_delay)

        raise ArchiveLockedError(
            f"Failed to create archive {dest_file.name} after {self.attempts} attempts: {last_error}",
            attempts=self.attempts,
            transient=True,
        ) from last_error

    def _write_archive(self, staged_root: Path, dest_file: Path) -> None:
        temp_file = dest_file.with_name(dest_file.name + ".tmp")
        base = staged_root.parent
        try:
            with zipfile.ZipFile(temp_file, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                for dirpath, dirnames, filenames in os.walk(staged_root):
                    dirnames.sort()
                    for filename in sorted(filenames):
                        file_path = Path(dirpath) / filename
                        archive.write(file_path, file_path.relative_to(base).as_posix())
            temp_file.replace(dest_file)
        finally:
            temp_file.unlink(missing_ok=True)
