"""Scratch directory lifecycle.

The pipeline unpacks, edits and repacks the ISO inside one temporary
directory. ``ScratchWorkspace`` owns that directory and guarantees it is
removed on every exit path: normal completion, a pipeline error, Ctrl-C,
or a termination signal.

Layout::

    <root>/tree/     extracted ISO filesystem (repackaged as-is)
    <root>/*.mbr     boot images carved from the source ISO
    <root>/*.efi
"""

from __future__ import annotations

import logging
import os
import shutil
import signal
import stat
import tempfile
import threading
from pathlib import Path
from types import FrameType, TracebackType

logger = logging.getLogger(__name__)

# Signals converted into SystemExit while a workspace is active
CLEANUP_SIGNALS = (signal.SIGTERM, signal.SIGHUP)


def make_writable(root: Path) -> None:
    """Add the owner-write bit to every file and directory under ``root``."""
    for dirpath, dirnames, filenames in os.walk(root):
        for name in (*dirnames, *filenames):
            path = os.path.join(dirpath, name)
            if os.path.islink(path):
                continue
            mode = os.lstat(path).st_mode
            if not mode & stat.S_IWUSR:
                os.chmod(path, stat.S_IMODE(mode) | stat.S_IWUSR)
    root_mode = os.stat(root).st_mode
    if not root_mode & stat.S_IWUSR:
        os.chmod(root, stat.S_IMODE(root_mode) | stat.S_IWUSR)


class ScratchWorkspace:
    """Temporary working directory removed exactly once.

    Args:
        parent: Directory to create the workspace in (system default if None).
    """

    def __init__(self, parent: Path | None = None) -> None:
        self.parent = parent
        self._root: Path | None = None
        self._cleaned = False
        self._previous_handlers: dict[int, object] = {}

    @property
    def root(self) -> Path:
        if self._root is None:
            raise RuntimeError("workspace has not been created")
        return self._root

    @property
    def tree(self) -> Path:
        """Directory the ISO filesystem is extracted into."""
        return self.root / "tree"

    def create(self) -> Path:
        """Create the scratch directory and return its root."""
        if self.parent is not None:
            self.parent.mkdir(parents=True, exist_ok=True)
        self._root = Path(tempfile.mkdtemp(prefix="ubuntu-preseed-", dir=self.parent))
        logger.info("Created temporary working directory %s", self._root)
        return self._root

    def cleanup(self) -> None:
        """Remove the scratch directory. Later calls do nothing."""
        if self._cleaned or self._root is None:
            return
        self._cleaned = True
        if not self._root.exists():
            return
        try:
            make_writable(self._root)
            shutil.rmtree(self._root)
        except OSError as e:
            logger.error("Failed to delete temporary working directory %s: %s", self._root, e)
            return
        logger.info("Deleted temporary working directory %s", self._root)

    def _handle_signal(self, signum: int, frame: FrameType | None) -> None:
        name = signal.Signals(signum).name
        if self._cleaned:
            logger.warning("Received %s during cleanup, ignoring", name)
            return
        logger.warning("Received %s, aborting", name)
        raise SystemExit(128 + signum)

    def _install_signal_handlers(self) -> None:
        # signal.signal only works from the main thread
        if threading.current_thread() is not threading.main_thread():
            return
        for signum in CLEANUP_SIGNALS:
            self._previous_handlers[signum] = signal.signal(signum, self._handle_signal)

    def _restore_signal_handlers(self) -> None:
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)  # type: ignore[arg-type]
        self._previous_handlers.clear()

    def __enter__(self) -> ScratchWorkspace:
        self.create()
        self._install_signal_handlers()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            self.cleanup()
        finally:
            self._restore_signal_handlers()


__all__ = ["CLEANUP_SIGNALS", "ScratchWorkspace", "make_writable"]
