"""Toolchain slot management.

The engine build tool reads a single machine-wide configuration file to
decide which compiler toolchain to use. Building for several engine
versions means swapping that file per target and putting it back
afterwards, whatever happens in between.

Slot lifecycle:
    {absent | installed(v)} -> backup-if-present -> install(target) -> restore | remove

The backup (or a marker recording that the slot was absent) lives on disk
next to the slot, so a run killed mid-build leaves enough state behind for
the next run's recover() to put the slot back.
"""

import logging
import os
import shutil
import sys
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterator, Optional

from ..errors import ResourceStateError

if TYPE_CHECKING:
    from ..config.targets import Target

logger = logging.getLogger(__name__)

# Process-wide locks, one per slot path
_locks_lock = threading.Lock()
_slot_locks: Dict[str, threading.Lock] = {}


def _get_slot_lock(slot_path: Path) -> threading.Lock:
    key = os.path.normcase(str(slot_path.resolve()))
    with _locks_lock:
        if key not in _slot_locks:
            _slot_locks[key] = threading.Lock()
        return _slot_locks[key]


class ToolchainConfigError(ResourceStateError):
    """Raised when the toolchain slot cannot be installed or restored."""

    pass


@dataclass
class ToolchainHandle:
    """Proof of a successful acquire. Passed back to release()."""

    target: "Target"
    slot_path: Path
    had_previous: bool
    active: bool = True
    released: bool = False


class ToolchainConfigManager:
    """Installs per-target toolchain configuration into the shared slot.

    Example usage:
        manager = ToolchainConfigManager(ToolchainConfigManager.default_slot_path())
        with manager.installed(target):
            run_build()
        # slot is back to its previous contents (or absent) here
    """

    ENV_VAR = "ENGINEPACK_TOOLCHAIN_CONFIG"
    BACKUP_SUFFIX = ".enginepack-backup"
    ABSENT_SUFFIX = ".enginepack-absent"

    def __init__(self, slot_path: Path, enabled: bool = True):
        """
        Initialize the manager.

        Args:
            slot_path: Path of the machine-wide toolchain configuration file
            enabled: When False, acquire/release leave the slot untouched
        """
        self.slot_path = Path(slot_path).expanduser()
        self.enabled = enabled

    @classmethod
    def default_slot_path(cls) -> Path:
        """Location the engine build tool reads its user configuration from.

        The ENGINEPACK_TOOLCHAIN_CONFIG environment variable overrides it.
        """
        override = os.environ.get(cls.ENV_VAR)
        if override:
            return Path(override).expanduser()

        if sys.platform == "win32":
            base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
        else:
            base = Path.home() / ".config"
        return base / "Unreal Engine" / "UnrealBuildTool" / "BuildConfiguration.xml"

    @property
    def backup_path(self) -> Path:
        return self.slot_path.with_name(self.slot_path.name + self.BACKUP_SUFFIX)

    @property
    def absent_marker(self) -> Path:
        return self.slot_path.with_name(self.slot_path.name + self.ABSENT_SUFFIX)

    def has_pending_restore(self) -> bool:
        """True if a previous acquire was never released."""
        return self.backup_path.exists() or self.absent_marker.exists()

    def current_contents(self) -> Optional[str]:
        """Current slot contents, or None when the slot is absent."""
        if not self.slot_path.exists():
            return None
        return self.slot_path.read_text(encoding="utf-8")

    def recover(self) -> bool:
        """
        Restore the slot from state left behind by an interrupted run.

        Returns:
            True if anything was restored

        Raises:
            ToolchainConfigError: If restoration fails
        """
        if not self.enabled or not self.has_pending_restore():
            return False

        logger.warning(f"Restoring toolchain slot left over from an interrupted run: {self.slot_path}")
        self._restore()
        return True

    def acquire(self, target: "Target") -> ToolchainHandle:
        """
        Install the toolchain for `target` into the slot.

        Any prior slot contents are backed up first. Only one holder may
        exist per slot in this process.

        Args:
            target: Target whose toolchain descriptor should be installed

        Returns:
            Handle to pass to release()

        Raises:
            ToolchainConfigError: If the slot is already held or the install fails
        """
        if not self.enabled:
            return ToolchainHandle(target, self.slot_path, had_previous=False, active=False)

        lock = _get_slot_lock(self.slot_path)
        if not lock.acquire(blocking=False):
            raise ToolchainConfigError(f"Toolchain slot is already held: {self.slot_path}")

        try:
            self.recover()

            had_previous = self.slot_path.exists()
            self.slot_path.parent.mkdir(parents=True, exist_ok=True)
            if had_previous:
                temp_backup = self.backup_path.with_name(self.backup_path.name + ".tmp")
                shutil.copy2(self.slot_path, temp_backup)
                temp_backup.replace(self.backup_path)
            else:
                self.absent_marker.touch()

            try:
                self._write_slot(target.toolchain.render())
            except OSError:
                self._restore()
                raise
        except OSError as e:
            lock.release()
            raise ToolchainConfigError(f"Failed to install toolchain for {target}: {e}") from e
        except BaseException:
            lock.release()
            raise

        logger.info(f"Installed toolchain {target.toolchain.compiler_version} for {target}")
        return ToolchainHandle(target, self.slot_path, had_previous=had_previous)

    def release(self, handle: ToolchainHandle) -> None:
        """
        Put the slot back to its state before acquire().

        Safe to call more than once; only the first call restores.

        Args:
            handle: Handle returned by acquire()

        Raises:
            ToolchainConfigError: If restoration fails. The slot lock is
                released regardless so later targets can retry.
        """
        if handle.released:
            return
        handle.released = True

        if not handle.active:
            return

        lock = _get_slot_lock(self.slot_path)
        try:
            self._restore()
        except ToolchainConfigError:
            logger.critical(
                f"Toolchain slot {self.slot_path} could not be restored. "
                "Other builds on this machine may use the wrong toolchain."
            )
            raise
        finally:
            lock.release()

        logger.info(f"Restored toolchain slot after {handle.target}")

    @contextmanager
    def installed(self, target: "Target") -> Iterator[ToolchainHandle]:
        """Scoped acquire/release around a block."""
        handle = self.acquire(target)
        try:
            yield handle
        finally:
            self.release(handle)

    def _write_slot(self, contents: str) -> None:
        temp_file = self.slot_path.with_name(self.slot_path.name + ".tmp")
        try:
            temp_file.write_text(contents, encoding="utf-8")
            temp_file.replace(self.slot_path)
        finally:
            temp_file.unlink(missing_ok=True)

    def _restore(self) -> None:
        try:
            if self.backup_path.exists():
                self.backup_path.replace(self.slot_path)
                self.absent_marker.unlink(missing_ok=True)
            elif self.absent_marker.exists():
                self.slot_path.unlink(missing_ok=True)
                self.absent_marker.unlink()
            else:
                logger.warning(f"No saved state for toolchain slot {self.slot_path}")
        except OSError as e:
            raise ToolchainConfigError(f"Failed to restore toolchain slot {self.slot_path}: {e}") from e
