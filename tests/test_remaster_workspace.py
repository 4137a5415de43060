"""Tests for the scratch workspace."""

import os
import signal
import stat

import pytest

from ubuntu_preseed_iso.remaster.workspace import ScratchWorkspace, make_writable


class TestMakeWritable:
    """Tests for make_writable function."""

    def test_read_only_tree(self, tmp_path):
        """Read-only files and directories become owner-writable."""
        sub = tmp_path / "casper"
        sub.mkdir()
        f = sub / "filesystem.squashfs"
        f.write_bytes(b"x")
        f.chmod(0o444)
        sub.chmod(0o555)

        make_writable(tmp_path)

        assert os.stat(sub).st_mode & stat.S_IWUSR
        assert os.stat(f).st_mode & stat.S_IWUSR


class TestScratchWorkspace:
    """Tests for ScratchWorkspace class."""

    def test_root_before_create(self):
        """Accessing the root before creation is an error."""
        with pytest.raises(RuntimeError):
            _ = ScratchWorkspace().root

    def test_created_and_removed(self, tmp_path):
        """The directory exists inside the block and is gone afterwards."""
        with ScratchWorkspace(tmp_path) as workspace:
            root = workspace.root
            assert root.is_dir()
            assert root.parent == tmp_path
            assert workspace.tree == root / "tree"

        assert not root.exists()

    def test_removed_on_error(self, tmp_path):
        """The directory is removed when the block raises."""
        with pytest.raises(ValueError):
            with ScratchWorkspace(tmp_path) as workspace:
                root = workspace.root
                raise ValueError("boom")

        assert not root.exists()

    def test_removes_read_only_content(self, tmp_path):
        """Read-only extracted content does not block removal."""
        with ScratchWorkspace(tmp_path) as workspace:
            root = workspace.root
            tree = workspace.tree
            tree.mkdir()
            (tree / "md5sum.txt").write_text("x")
            (tree / "md5sum.txt").chmod(0o444)
            tree.chmod(0o555)

        assert not root.exists()

    def test_cleanup_runs_once(self, tmp_path, caplog):
        """Repeated cleanup calls do nothing."""
        workspace = ScratchWorkspace(tmp_path)
        workspace.create()

        with caplog.at_level("INFO"):
            workspace.cleanup()
            workspace.cleanup()

        assert caplog.text.count("Deleted temporary working directory") == 1

    def test_sigterm_aborts_and_cleans_up(self, tmp_path):
        """SIGTERM inside the block exits and removes the directory."""
        with pytest.raises(SystemExit) as exc_info:
            with ScratchWorkspace(tmp_path) as workspace:
                root = workspace.root
                os.kill(os.getpid(), signal.SIGTERM)

        assert exc_info.value.code == 128 + signal.SIGTERM
        assert not root.exists()

    def test_restores_signal_handlers(self, tmp_path):
        """Previous handlers are restored after the block."""
        before = signal.getsignal(signal.SIGTERM)
        with ScratchWorkspace(tmp_path):
            assert signal.getsignal(signal.SIGTERM) != before
        assert signal.getsignal(signal.SIGTERM) == before

    def test_signal_during_cleanup_ignored(self, tmp_path):
        """A signal arriving after cleanup started does not abort."""
        workspace = ScratchWorkspace(tmp_path)
        workspace.create()
        workspace.cleanup()

        workspace._handle_signal(signal.SIGHUP, None)
